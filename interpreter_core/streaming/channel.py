"""
Resilient Stream Channel
========================

Keeps one logical recognition session alive across an unreliable transport.
Handles exponential-backoff reconnection, buffering of outbound chunks while
the transport is down, and strictly ordered delivery of parsed results to a
single listener.

Author: Platform Engineering Team
Version: 2.0.0
"""

from __future__ import annotations

import asyncio
import random
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

import structlog

from interpreter_core.config import ChannelSettings, OverflowPolicy
from interpreter_core.core.errors import (
    CapacityExceeded,
    FatalAuthError,
    InterpreterError,
    MaxReconnectAttemptsExceeded,
    ParseError,
    TransportError,
)
from interpreter_core.streaming.models import Chunk, ConnectionState, SessionParams, Utterance
from interpreter_core.streaming.parsing import parse_recognition_message
from interpreter_core.streaming.transport import Transport

logger = structlog.get_logger(__name__)


TransportFactory = Callable[[], Transport]
SleepFunc = Callable[[float], Awaitable[Any]]


def compute_backoff_delay(
    attempt: int,
    base: float,
    max_delay: float,
    jitter: float = 0.2,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before reconnect attempt ``attempt`` (1-based).

    ``min(base * 2^(attempt-1), max_delay)`` scaled by a uniform factor in
    ``[1 - jitter, 1 + jitter]``.
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    rng = rng or random
    raw = min(base * (2 ** (attempt - 1)), max_delay)
    return raw * (1.0 + rng.uniform(-jitter, jitter))


class ChunkBuffer:
    """Bounded FIFO of outbound chunks held while reconnecting."""

    def __init__(
        self,
        capacity: int = 100,
        policy: OverflowPolicy = OverflowPolicy.DROP_NEWEST,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.policy = policy
        self.dropped = 0
        self._chunks: Deque[Chunk] = deque()

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def is_full(self) -> bool:
        return len(self._chunks) >= self.capacity

    def push(self, chunk: Chunk) -> bool:
        """Buffer a chunk. Returns False if something was dropped."""
        if not self.is_full:
            self._chunks.append(chunk)
            return True

        self.dropped += 1
        if self.policy == OverflowPolicy.DROP_OLDEST:
            self._chunks.popleft()
            self._chunks.append(chunk)
        return False

    def requeue(self, chunk: Chunk) -> None:
        """Put a chunk that failed to send back at the head."""
        self._chunks.appendleft(chunk)
        if len(self._chunks) > self.capacity:
            self.dropped += 1
            if self.policy == OverflowPolicy.DROP_OLDEST:
                self._chunks.popleft()
            else:
                self._chunks.pop()

    def popleft(self) -> Chunk:
        return self._chunks.popleft()

    def snapshot(self) -> List[Chunk]:
        return list(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()


class ChannelListener:
    """Receives everything the channel produces.

    All methods are awaited on the channel's reader task, one at a time, in
    arrival order.
    """

    async def on_result(self, utterance: Utterance) -> None:
        pass

    async def on_channel_error(self, error: InterpreterError) -> None:
        pass

    async def on_state_change(self, state: ConnectionState) -> None:
        pass


@dataclass
class ChannelStats:
    """Counters for one channel."""

    state: ConnectionState
    reconnect_attempts: int
    total_reconnects: int
    buffered_chunks: int
    dropped_chunks: int
    chunks_sent: int
    results_delivered: int
    parse_failures: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "reconnect_attempts": self.reconnect_attempts,
            "total_reconnects": self.total_reconnects,
            "buffered_chunks": self.buffered_chunks,
            "dropped_chunks": self.dropped_chunks,
            "chunks_sent": self.chunks_sent,
            "results_delivered": self.results_delivered,
            "parse_failures": self.parse_failures,
        }


class ResilientStreamChannel:
    """
    Connection to the recognition source that survives transport drops.

    Usage:
        channel = ResilientStreamChannel(
            transport_factory=lambda: WebSocketTransport(url, api_key),
            listener=my_listener,
        )
        await channel.open(SessionParams(language="en-US"))
        await channel.send(audio_chunk)
        ...
        await channel.close()
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        listener: Optional[ChannelListener] = None,
        settings: Optional[ChannelSettings] = None,
        session_id: Optional[str] = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or ChannelSettings()
        self.session_id = session_id
        self._transport_factory = transport_factory
        self._listener = listener or ChannelListener()
        self._sleep = sleep
        self._rng = rng

        self._state = ConnectionState.DISCONNECTED
        self._params: Optional[SessionParams] = None
        self._transport: Optional[Transport] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._active = False
        self._fatal_emitted = False

        self._buffer = ChunkBuffer(
            capacity=self.settings.buffer_capacity,
            policy=self.settings.overflow_policy,
        )
        self._overflow_reported = False
        self._send_lock = asyncio.Lock()
        self._attempts = 0
        self._total_reconnects = 0
        self._last_timestamp = 0.0

        self._chunks_sent = 0
        self._results_delivered = 0
        self._parse_failures = 0

        self._logger = logger.bind(session_id=session_id)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def buffered_chunks(self) -> int:
        return len(self._buffer)

    def stats(self) -> ChannelStats:
        return ChannelStats(
            state=self._state,
            reconnect_attempts=self._attempts,
            total_reconnects=self._total_reconnects,
            buffered_chunks=len(self._buffer),
            dropped_chunks=self._buffer.dropped,
            chunks_sent=self._chunks_sent,
            results_delivered=self._results_delivered,
            parse_failures=self._parse_failures,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self, params: SessionParams) -> None:
        """Connect and start delivering results.

        Raises:
            FatalAuthError: if the source rejected the credentials.
            TransportError: if the first connection failed.
        """
        if self._state != ConnectionState.DISCONNECTED:
            raise RuntimeError(f"Cannot open channel in state: {self._state}")

        self._params = params
        self._active = True
        await self._set_state(ConnectionState.CONNECTING)

        try:
            await self._connect_once()
        except InterpreterError:
            self._active = False
            await self._set_state(ConnectionState.CLOSED)
            raise

        self._supervisor = asyncio.create_task(self._supervise())

    async def close(self) -> None:
        """Close the channel. Idempotent and never raises."""
        self._active = False

        supervisor, self._supervisor = self._supervisor, None
        if (
            supervisor is not None
            and supervisor is not asyncio.current_task()
            and not supervisor.done()
        ):
            supervisor.cancel()
            try:
                await supervisor
            except asyncio.CancelledError:
                pass

        await self._close_transport()
        if self._buffer:
            self._logger.info(f"Discarding {len(self._buffer)} buffered chunks on close")
            self._buffer.clear()
        await self._set_state(ConnectionState.CLOSED)

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def send(self, chunk: Chunk) -> None:
        """Send a chunk, buffer it while reconnecting, else drop it.

        Chunks always leave in the order they were sent: while earlier
        chunks are still buffered, a new chunk queues behind them.
        """
        async with self._send_lock:
            if self._state == ConnectionState.CONNECTED and self._transport is not None:
                if self._buffer:
                    await self._buffer_chunk(chunk)
                    await self._retry_buffered(self._transport)
                    return
                try:
                    await self._transport.send(chunk)
                    self._chunks_sent += 1
                    return
                except InterpreterError as e:
                    self._logger.warning(f"Send failed, buffering chunk: {e}")
                    await self._buffer_chunk(chunk)
                    return

            if self._state == ConnectionState.RECONNECTING:
                await self._buffer_chunk(chunk)

    async def _retry_buffered(self, transport: Transport) -> None:
        try:
            await self._flush_buffer(transport)
        except InterpreterError as e:
            self._logger.warning(f"Send failed, {len(self._buffer)} chunks still buffered: {e}")

    async def _buffer_chunk(self, chunk: Chunk) -> None:
        if self._buffer.push(chunk) or self._overflow_reported:
            return
        self._overflow_reported = True
        policy = self._buffer.policy.value.replace("_", " ")
        await self._emit_error(
            CapacityExceeded(
                f"Reconnect buffer full ({self._buffer.capacity} chunks), {policy}",
                source="channel",
            )
        )

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def _connect_once(self) -> None:
        transport = self._transport_factory()
        try:
            await asyncio.wait_for(
                transport.connect(),
                timeout=self.settings.connect_timeout,
            )
            await transport.send(self._params.to_config_message())
            await self._flush_buffer(transport)
        except asyncio.TimeoutError:
            await self._discard_transport(transport)
            raise TransportError("Timed out connecting to source", source="channel")
        except InterpreterError:
            await self._discard_transport(transport)
            raise
        except Exception as e:
            await self._discard_transport(transport)
            raise TransportError(f"Connection failed: {e}", source="channel") from e

        self._transport = transport
        self._attempts = 0
        self._overflow_reported = False
        await self._set_state(ConnectionState.CONNECTED)

    async def _flush_buffer(self, transport: Transport) -> None:
        flushed = 0
        while self._buffer:
            chunk = self._buffer.popleft()
            try:
                await transport.send(chunk)
            except Exception:
                self._buffer.requeue(chunk)
                raise
            flushed += 1
        self._chunks_sent += flushed
        if flushed:
            self._logger.info(f"Flushed {flushed} buffered chunks")

    async def _supervise(self) -> None:
        """Read until the transport drops, then reconnect, until closed."""
        try:
            while self._active:
                await self._read_loop()
                if not self._active:
                    break
                self._logger.warning("Transport closed unexpectedly")
                if not await self._reconnect():
                    break
        except FatalAuthError as e:
            await self._fail(e)

    async def _read_loop(self) -> None:
        transport = self._transport
        if transport is None:
            return
        try:
            async for message in transport.receive():
                await self._handle_message(message)
        except FatalAuthError:
            raise
        except InterpreterError as e:
            self._logger.warning(f"Transport error while reading: {e}")
        except Exception as e:
            self._logger.error(f"Unexpected error while reading: {e}")

    async def _reconnect(self) -> bool:
        await self._set_state(ConnectionState.RECONNECTING)
        await self._close_transport()

        max_attempts = self.settings.max_reconnect_attempts
        while self._active and self._attempts < max_attempts:
            self._attempts += 1
            delay = compute_backoff_delay(
                self._attempts,
                self.settings.reconnect_base_delay,
                self.settings.reconnect_max_delay,
                self.settings.reconnect_jitter,
                self._rng,
            )
            self._logger.info(
                f"Reconnecting in {delay:.2f}s",
                attempt=self._attempts,
                max_attempts=max_attempts,
            )
            await self._sleep(delay)
            if not self._active:
                return False

            try:
                await self._connect_once()
            except FatalAuthError:
                raise
            except InterpreterError as e:
                self._logger.warning(f"Reconnect attempt {self._attempts} failed: {e}")
                continue

            self._total_reconnects += 1
            self._logger.info("Reconnected to recognition source")
            return True

        if self._active:
            await self._fail(
                MaxReconnectAttemptsExceeded(self._attempts, source="channel")
            )
        return False

    async def _fail(self, error: InterpreterError) -> None:
        """Terminal failure: close and report exactly once."""
        if self._fatal_emitted:
            return
        self._fatal_emitted = True
        self._active = False
        self._logger.error(f"Channel failed: {error}", error_type=type(error).__name__)
        await self._close_transport()
        self._buffer.clear()
        await self._set_state(ConnectionState.CLOSED)
        await self._emit_error(error)

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await self._discard_transport(transport)

    async def _discard_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            self._logger.debug(f"Error closing transport: {e}")

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def _handle_message(self, message: Chunk) -> None:
        language = self._params.language if self._params else "en-US"
        try:
            utterance = parse_recognition_message(message, default_language=language)
        except ParseError as e:
            self._parse_failures += 1
            self._logger.warning(f"Skipping unparseable message: {e}")
            await self._emit_error(e)
            return

        if utterance is None:
            return

        # Timestamps never go backwards within one channel.
        timestamp = max(utterance.timestamp, self._last_timestamp)
        self._last_timestamp = timestamp
        utterance = replace(utterance, timestamp=timestamp, session_id=self.session_id)

        self._results_delivered += 1
        try:
            await self._listener.on_result(utterance)
        except Exception as e:
            self._logger.error(f"Listener failed handling result: {e}")

    async def _emit_error(self, error: InterpreterError) -> None:
        try:
            await self._listener.on_channel_error(error)
        except Exception as e:
            self._logger.error(f"Listener failed handling error: {e}")

    async def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        self._logger.debug(f"Channel state {previous.value} -> {state.value}")
        try:
            await self._listener.on_state_change(state)
        except Exception as e:
            self._logger.error(f"Listener failed handling state change: {e}")
