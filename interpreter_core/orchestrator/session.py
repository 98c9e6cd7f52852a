"""
Live session state owned by the orchestrator.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from interpreter_core.analysis.report import PerformanceReport
from interpreter_core.core.errors import SessionClosedError
from interpreter_core.persistence.records import SessionStatus
from interpreter_core.streaming.models import Utterance


def new_session_id() -> str:
    """``session_<epoch-ms>_<random>``"""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class SessionHandle:
    """What callers get back from ``start``."""

    session_id: str
    platform: str
    started_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "platform": self.platform,
            "started_at": self.started_at.isoformat(),
        }


@dataclass
class Session:
    """One interpretation session and the final utterances it collected.

    Once closed, a session is frozen: its utterances become a tuple and any
    further assignment raises ``SessionClosedError``.
    """

    platform: str
    session_id: str = field(default_factory=new_session_id)
    started_at: datetime = field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.ACTIVE
    utterances: Sequence[Utterance] = field(default_factory=list)
    report: Optional[PerformanceReport] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_frozen", False):
            raise SessionClosedError(
                f"Session {self.session_id} is closed",
                source="orchestrator",
            )
        super().__setattr__(name, value)

    @property
    def is_closed(self) -> bool:
        return self.ended_at is not None

    @property
    def word_count(self) -> int:
        return sum(u.word_count for u in self.utterances)

    def add_utterance(self, utterance: Utterance) -> None:
        if self.is_closed:
            raise SessionClosedError(
                f"Session {self.session_id} is closed",
                source="orchestrator",
            )
        self.utterances.append(utterance)

    def close(
        self,
        status: SessionStatus = SessionStatus.COMPLETED,
        report: Optional[PerformanceReport] = None,
    ) -> None:
        if self.is_closed:
            return
        self.report = report
        self.status = status
        self.utterances = tuple(self.utterances)
        self.ended_at = datetime.utcnow()
        object.__setattr__(self, "_frozen", True)

    def handle(self) -> SessionHandle:
        return SessionHandle(
            session_id=self.session_id,
            platform=self.platform,
            started_at=self.started_at,
        )
