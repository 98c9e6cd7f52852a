"""
Session record handed to the store when a session closes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from interpreter_core.analysis.report import PerformanceReport


class SessionStatus(str, Enum):
    """Terminal or current status of a session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


def format_duration(seconds: float) -> str:
    """``HH:MM:SS`` for a duration in seconds."""
    total = int(max(0, seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def epoch_ms(value: datetime) -> int:
    """Milliseconds since the epoch. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


@dataclass
class SessionRecord:
    """Everything about a finished session."""

    session_id: str
    platform: str
    started_at: datetime
    ended_at: datetime
    status: SessionStatus
    report: Optional[PerformanceReport] = None
    utterance_count: int = 0
    subsystems: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.ended_at - self.started_at).total_seconds())

    @property
    def duration_ms(self) -> int:
        return int(self.duration_seconds * 1000)

    @property
    def overall_score(self) -> Optional[float]:
        return self.report.overall_score if self.report else None

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "platform": self.platform,
            "started_at": self.started_at.isoformat(),
            "duration": format_duration(self.duration_seconds),
            "status": self.status.value,
            "overall_score": (
                round(self.overall_score, 2) if self.overall_score is not None else None
            ),
            "word_count": self.report.metadata.word_count if self.report else 0,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "platform": self.platform,
            "start": {
                "iso": self.started_at.isoformat(),
                "epoch_ms": epoch_ms(self.started_at),
            },
            "end": {
                "iso": self.ended_at.isoformat(),
                "epoch_ms": epoch_ms(self.ended_at),
            },
            "duration": {
                "ms": self.duration_ms,
                "seconds": round(self.duration_seconds, 3),
                "formatted": format_duration(self.duration_seconds),
            },
            "status": self.status.value,
            "utterance_count": self.utterance_count,
            "report": self.report.to_dict() if self.report else None,
            "subsystems": self.subsystems,
            "error": self.error,
        }
