"""Shared infrastructure: error taxonomy and logging setup."""

from interpreter_core.core.errors import (
    AlreadyRunningError,
    CapacityExceeded,
    ConfigurationError,
    DetectorError,
    EnrichmentLookupError,
    EnrichmentTimeout,
    ErrorEnvelope,
    FatalAuthError,
    InterpreterError,
    MaxReconnectAttemptsExceeded,
    ParseError,
    PersistenceError,
    SessionClosedError,
    TransportError,
    is_recoverable,
)
from interpreter_core.core.logging import configure_logging

__all__ = [
    "AlreadyRunningError",
    "CapacityExceeded",
    "ConfigurationError",
    "DetectorError",
    "EnrichmentLookupError",
    "EnrichmentTimeout",
    "ErrorEnvelope",
    "FatalAuthError",
    "InterpreterError",
    "MaxReconnectAttemptsExceeded",
    "ParseError",
    "PersistenceError",
    "SessionClosedError",
    "TransportError",
    "is_recoverable",
    "configure_logging",
]
