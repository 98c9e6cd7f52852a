"""
Transports to the recognition source.

A transport is one physical connection. The channel asks its factory for a
fresh transport on every connection attempt and never reuses a closed one.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from interpreter_core.core.errors import FatalAuthError, TransportError
from interpreter_core.streaming.models import Chunk

logger = structlog.get_logger(__name__)

AUTH_REJECTION_STATUSES = (401, 403)


class Transport(ABC):
    """One connection to the recognition source."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            FatalAuthError: if the source rejected the credentials.
            TransportError: for any other connection failure.
        """

    @abstractmethod
    async def send(self, data: Union[Chunk, Dict[str, Any]]) -> None:
        """Send a chunk or a JSON control message."""

    @abstractmethod
    def receive(self) -> AsyncIterator[Chunk]:
        """Yield incoming messages until the connection ends."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""


class WebSocketTransport(Transport):
    """Transport over a websocket connection."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        open_timeout: float = 10.0,
    ):
        self.url = url
        self.api_key = api_key
        self.open_timeout = open_timeout
        self._ws: Optional[ClientConnection] = None

    async def connect(self) -> None:
        headers = {}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key

        try:
            self._ws = await connect(
                self.url,
                additional_headers=headers,
                open_timeout=self.open_timeout,
                ping_interval=20,
                ping_timeout=10,
            )
        except InvalidStatus as e:
            status = e.response.status_code
            if status in AUTH_REJECTION_STATUSES:
                raise FatalAuthError(
                    f"Authentication rejected by source (HTTP {status})",
                    source="transport",
                )
            raise TransportError(f"Handshake failed with HTTP {status}", source="transport")
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"Failed to connect: {e}", source="transport")

        logger.info("Connected to recognition source", url=self.url)

    async def send(self, data: Union[Chunk, Dict[str, Any]]) -> None:
        if self._ws is None:
            raise TransportError("Transport is not connected", source="transport")
        if isinstance(data, dict):
            data = json.dumps(data)
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed while sending: {e}", source="transport")

    async def receive(self) -> AsyncIterator[Chunk]:
        if self._ws is None:
            return
        try:
            async for message in self._ws:
                yield message
        except ConnectionClosed as e:
            if e.rcvd is not None and e.rcvd.code in (4001, 4003):
                raise FatalAuthError(
                    f"Source closed connection: {e.rcvd.reason or 'permission denied'}",
                    source="transport",
                )
            logger.info("Recognition source connection closed", reason=str(e))

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()


class InMemoryTransport(Transport):
    """Transport fed from an in-process queue.

    Used for replaying recorded transcripts and for tests. ``push`` delivers
    a message, ``drop`` simulates the source hanging up.
    """

    _CLOSE = object()

    def __init__(self) -> None:
        self.sent: List[Union[Chunk, Dict[str, Any]]] = []
        self.connected = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def connect(self) -> None:
        self.connected = True

    async def send(self, data: Union[Chunk, Dict[str, Any]]) -> None:
        if not self.connected:
            raise TransportError("Transport is not connected", source="transport")
        self.sent.append(data)

    def push(self, message: Union[Chunk, Dict[str, Any]]) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self._incoming.put_nowait(message)

    def drop(self) -> None:
        self._incoming.put_nowait(self._CLOSE)

    @property
    def pending(self) -> int:
        return self._incoming.qsize()

    async def wait_consumed(self) -> None:
        """Wait until every pushed message has been handled by the reader."""
        await self._incoming.join()

    async def receive(self) -> AsyncIterator[Chunk]:
        while self.connected:
            message = await self._incoming.get()
            try:
                if message is self._CLOSE:
                    break
                yield message
            finally:
                self._incoming.task_done()

    async def close(self) -> None:
        if self.connected:
            self.connected = False
            self._incoming.put_nowait(self._CLOSE)
