"""HTTP and websocket surface for the session orchestrator."""

from interpreter_core.api.app import create_app, run

__all__ = ["create_app", "run"]
