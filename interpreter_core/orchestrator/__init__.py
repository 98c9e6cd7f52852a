"""
Session Orchestration
=====================

Lifecycle of one interpretation session and the event stream it produces.

Author: Platform Engineering Team
Version: 2.0.0
"""

from interpreter_core.orchestrator.events import (
    EventKind,
    EventStreamListener,
    QueueEventSink,
    SessionEvent,
    SessionListener,
)
from interpreter_core.orchestrator.session import Session, SessionHandle, new_session_id
from interpreter_core.orchestrator.throttle import Throttle
from interpreter_core.orchestrator.workers import ConsumerWorker
from interpreter_core.orchestrator.orchestrator import OrchestratorState, SessionOrchestrator

__all__ = [
    # Events
    "EventKind",
    "EventStreamListener",
    "QueueEventSink",
    "SessionEvent",
    "SessionListener",
    # Session
    "Session",
    "SessionHandle",
    "new_session_id",
    # Orchestration
    "ConsumerWorker",
    "OrchestratorState",
    "SessionOrchestrator",
    "Throttle",
]
