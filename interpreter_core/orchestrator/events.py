"""
Session Events
==============

Outbound event model for presentation collaborators.

``SessionListener`` is the callback interface the orchestrator drives.
``EventStreamListener`` turns every callback into a typed ``SessionEvent`` so
consumers that prefer a single stream (websockets, queues) can subscribe to
one thing.

Author: Platform Engineering Team
Version: 2.0.0
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

import structlog

from interpreter_core.core.errors import ErrorEnvelope
from interpreter_core.streaming.models import Utterance

if TYPE_CHECKING:
    from interpreter_core.analysis.pipeline import MetricsSnapshot
    from interpreter_core.enrichment.terminology import TermEnrichment
    from interpreter_core.orchestrator.session import SessionHandle
    from interpreter_core.persistence.records import SessionRecord

logger = structlog.get_logger(__name__)


class EventKind(str, Enum):
    """Kinds of outbound session events."""

    UTTERANCE = "utterance"
    TERM_ENRICHED = "term-enriched"
    METRICS_UPDATE = "metrics-update"
    SESSION_STARTED = "session-started"
    SESSION_COMPLETE = "session-complete"
    ERROR = "error"


@dataclass
class SessionEvent:
    """One event on the outbound stream."""

    kind: EventKind
    session_id: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class SessionListener:
    """
    Callbacks for everything a session produces.

    All methods are no-ops by default; override the ones you need.
    """

    async def on_utterance(self, utterance: Utterance) -> None:
        pass

    async def on_term_enriched(self, enrichment: "TermEnrichment") -> None:
        pass

    async def on_metrics(self, snapshot: "MetricsSnapshot") -> None:
        pass

    async def on_session_started(self, handle: "SessionHandle") -> None:
        pass

    async def on_session_complete(self, record: "SessionRecord") -> None:
        pass

    async def on_error(self, envelope: ErrorEnvelope) -> None:
        pass


EventCallback = Callable[[SessionEvent], Awaitable[None]]


class EventStreamListener(SessionListener):
    """Funnels every callback into ``publish(SessionEvent)``."""

    def __init__(self, callback: Optional[EventCallback] = None):
        self._callback = callback

    async def publish(self, event: SessionEvent) -> None:
        if self._callback is not None:
            await self._callback(event)

    async def on_utterance(self, utterance: Utterance) -> None:
        await self.publish(
            SessionEvent(EventKind.UTTERANCE, utterance.session_id, utterance.to_dict())
        )

    async def on_term_enriched(self, enrichment: "TermEnrichment") -> None:
        await self.publish(
            SessionEvent(EventKind.TERM_ENRICHED, enrichment.session_id, enrichment.to_dict())
        )

    async def on_metrics(self, snapshot: "MetricsSnapshot") -> None:
        await self.publish(
            SessionEvent(EventKind.METRICS_UPDATE, snapshot.session_id, snapshot.to_dict())
        )

    async def on_session_started(self, handle: "SessionHandle") -> None:
        await self.publish(
            SessionEvent(EventKind.SESSION_STARTED, handle.session_id, handle.to_dict())
        )

    async def on_session_complete(self, record: "SessionRecord") -> None:
        await self.publish(
            SessionEvent(EventKind.SESSION_COMPLETE, record.session_id, record.to_dict())
        )

    async def on_error(self, envelope: ErrorEnvelope) -> None:
        await self.publish(
            SessionEvent(EventKind.ERROR, envelope.session_id, envelope.to_dict())
        )


class QueueEventSink(EventStreamListener):
    """
    Puts every event on an ``asyncio.Queue``.

    With a bounded queue the oldest event is dropped to make room, so a slow
    reader never stalls the session.
    """

    def __init__(self, maxsize: int = 0):
        super().__init__()
        self.queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def publish(self, event: SessionEvent) -> None:
        if self.queue.full():
            try:
                self.queue.get_nowait()
                self.dropped += 1
                logger.debug("Event queue full, dropped oldest event")
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(event)

    async def get(self) -> SessionEvent:
        return await self.queue.get()

    def get_nowait(self) -> SessionEvent:
        return self.queue.get_nowait()

    def drain(self) -> list:
        """Everything currently queued, oldest first."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
