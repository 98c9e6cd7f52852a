"""Session record hand-off and transcript batching."""

from interpreter_core.persistence.records import (
    SessionRecord,
    SessionStatus,
    epoch_ms,
    format_duration,
)
from interpreter_core.persistence.store import (
    InMemorySessionStore,
    SessionStore,
    TranscriptWriter,
)

__all__ = [
    "SessionRecord",
    "SessionStatus",
    "epoch_ms",
    "format_duration",
    "InMemorySessionStore",
    "SessionStore",
    "TranscriptWriter",
]
