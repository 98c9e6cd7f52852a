"""
Error taxonomy and the uniform error envelope.

Every component raises or reports a subclass of ``InterpreterError``. The
orchestrator normalizes whatever reaches it into an ``ErrorEnvelope`` so
listeners see one shape regardless of where the failure happened.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional


DEFAULT_FATAL_MARKERS = (
    "api key",
    "authentication",
    "unauthorized",
    "permission",
    "quota",
)


# =============================================================================
# Exceptions
# =============================================================================


class InterpreterError(Exception):
    """Base exception for co-pilot operations."""

    code = "INTERPRETER_ERROR"
    recoverable = True

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "source": self.source,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class TransportError(InterpreterError):
    """Transport failed or closed unexpectedly. Triggers a reconnect."""

    code = "TRANSPORT_ERROR"


class FatalAuthError(InterpreterError):
    """Source rejected the credentials. Terminates the session."""

    code = "FATAL_AUTH"
    recoverable = False


class MaxReconnectAttemptsExceeded(InterpreterError):
    """Channel exhausted its reconnect attempts."""

    code = "MAX_RECONNECT_ATTEMPTS"
    recoverable = False

    def __init__(self, attempts: int, **kwargs):
        super().__init__(
            f"Gave up after {attempts} reconnect attempts",
            **kwargs,
        )
        self.attempts = attempts


class ParseError(InterpreterError):
    """One incoming message could not be parsed and was dropped."""

    code = "PARSE_ERROR"


class DetectorError(InterpreterError):
    """A detector failed; its category is skipped for one utterance."""

    code = "DETECTOR_ERROR"

    def __init__(self, message: str, category: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.category = category


class EnrichmentTimeout(InterpreterError):
    """A deep analysis cycle did not finish in time and was skipped."""

    code = "ENRICHMENT_TIMEOUT"


class EnrichmentLookupError(InterpreterError):
    """A terminology lookup failed. The result is not cached."""

    code = "ENRICHMENT_LOOKUP"


class CapacityExceeded(InterpreterError):
    """A bounded buffer overflowed and dropped data."""

    code = "CAPACITY_EXCEEDED"


class PersistenceError(InterpreterError):
    """Writing session data to the store failed."""

    code = "PERSISTENCE_ERROR"


class AlreadyRunningError(InterpreterError):
    """A session is already active on this orchestrator."""

    code = "ALREADY_RUNNING"
    recoverable = False


class SessionClosedError(InterpreterError):
    """Attempted to mutate a closed session."""

    code = "SESSION_CLOSED"
    recoverable = False


class ConfigurationError(InterpreterError):
    """Invalid configuration."""

    code = "CONFIGURATION_ERROR"
    recoverable = False


# =============================================================================
# Error Envelope
# =============================================================================


def is_recoverable(
    exc: BaseException,
    fatal_markers: Iterable[str] = DEFAULT_FATAL_MARKERS,
) -> bool:
    """Decide whether an error lets the session continue.

    Typed errors may declare themselves fatal. Any message containing one
    of the fatal markers is fatal regardless of its type.
    """
    if not getattr(exc, "recoverable", True):
        return False
    message = str(exc).lower()
    return not any(marker.lower() in message for marker in fatal_markers)


@dataclass
class ErrorEnvelope:
    """Uniform error record delivered to listeners."""

    source: str
    message: str
    session_id: Optional[str]
    recoverable: bool
    kind: str = "InterpreterError"
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_exception(
        cls,
        source: str,
        exc: BaseException,
        session_id: Optional[str] = None,
        fatal_markers: Iterable[str] = DEFAULT_FATAL_MARKERS,
    ) -> "ErrorEnvelope":
        return cls(
            source=source,
            message=str(exc) or exc.__class__.__name__,
            session_id=session_id,
            recoverable=is_recoverable(exc, fatal_markers),
            kind=exc.__class__.__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "message": self.message,
            "session_id": self.session_id,
            "recoverable": self.recoverable,
            "kind": self.kind,
            "timestamp": self.timestamp.isoformat(),
        }
