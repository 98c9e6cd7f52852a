"""
Session storage hand-off.

``SessionStore`` is the interface to whatever keeps finished sessions.
``TranscriptWriter`` batches final utterances so the store sees a few large
writes instead of one write per utterance.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, List, Optional

import structlog

from interpreter_core.config import PersistenceSettings
from interpreter_core.persistence.records import SessionRecord

logger = structlog.get_logger(__name__)


class SessionStore(ABC):
    """Where finished sessions and their transcripts go."""

    @abstractmethod
    async def save_session(self, record: SessionRecord) -> None:
        pass

    @abstractmethod
    async def append_utterances(self, session_id: str, items: List[Dict[str, Any]]) -> None:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        pass

    @abstractmethod
    async def list_sessions(self, limit: int = 50) -> List[SessionRecord]:
        pass

    async def get_transcript(self, session_id: str) -> List[Dict[str, Any]]:
        return []


class InMemorySessionStore(SessionStore):
    """Process-local store keeping the most recent sessions."""

    def __init__(self, settings: Optional[PersistenceSettings] = None):
        self.settings = settings or PersistenceSettings()
        self._sessions: "OrderedDict[str, SessionRecord]" = OrderedDict()
        self._transcripts: Dict[str, Deque[Dict[str, Any]]] = {}

    async def save_session(self, record: SessionRecord) -> None:
        self._sessions[record.session_id] = record
        self._sessions.move_to_end(record.session_id)

        while len(self._sessions) > self.settings.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            self._transcripts.pop(evicted, None)
            logger.info("Evicted old session", session_id=evicted)

    async def append_utterances(self, session_id: str, items: List[Dict[str, Any]]) -> None:
        transcript = self._transcripts.get(session_id)
        if transcript is None:
            transcript = deque(maxlen=self.settings.max_transcript_entries)
            self._transcripts[session_id] = transcript
        transcript.extend(items)

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    async def list_sessions(self, limit: int = 50) -> List[SessionRecord]:
        return list(self._sessions.values())[-limit:]

    async def get_transcript(self, session_id: str) -> List[Dict[str, Any]]:
        return list(self._transcripts.get(session_id, ()))


class TranscriptWriter:
    """
    Batches transcript entries for one session.

    Entries are written when ``batch_size`` accumulate or ``flush_interval``
    seconds after the first pending entry, whichever comes first. Write
    failures are logged and never raised.
    """

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        settings: Optional[PersistenceSettings] = None,
    ):
        self.store = store
        self.session_id = session_id
        self.settings = settings or PersistenceSettings()

        self._pending: List[Dict[str, Any]] = []
        self._timer: Optional[asyncio.Task] = None
        self._written = 0
        self._failed_batches = 0
        self._closed = False

        self._logger = logger.bind(session_id=session_id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def status(self) -> Dict[str, Any]:
        return {
            "written": self._written,
            "pending": len(self._pending),
            "failed_batches": self._failed_batches,
        }

    async def append(self, entry: Dict[str, Any]) -> None:
        if self._closed:
            self._logger.warning("Transcript writer closed, dropping entry")
            return

        self._pending.append(entry)
        if len(self._pending) >= self.settings.batch_size:
            await self.flush()
        elif self._timer is None:
            self._timer = asyncio.create_task(self._flush_later())

    async def _flush_later(self) -> None:
        await asyncio.sleep(self.settings.flush_interval)
        self._timer = None
        await self.flush()

    async def flush(self) -> int:
        """Write all pending entries. Returns how many were written."""
        self._cancel_timer()
        if not self._pending:
            return 0

        batch, self._pending = self._pending, []
        try:
            await self.store.append_utterances(self.session_id, batch)
        except Exception as e:
            self._failed_batches += 1
            self._logger.error(
                f"Transcript batch write failed: {e}",
                entries=len(batch),
            )
            return 0

        self._written += len(batch)
        self._logger.debug(f"Batch write completed: {len(batch)} entries")
        return len(batch)

    async def close(self) -> None:
        """Flush what is pending and stop accepting entries."""
        await self.flush()
        self._closed = True

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()
