"""
Interpreter Copilot
===================

Real-time support for medical interpreters working in live sessions.

This package provides:
- A resilient connection to the speech recognition source
- Incremental quality scoring against the interpreting rubric
- Medical terminology detection and enrichment
- Session orchestration, persistence hand-off and an event stream
- An HTTP/websocket service and a command line interface
"""

__version__ = "2.0.0"
