"""
Transcript Streaming
====================

Connection to the recognition source: transports, message parsing and the
resilient channel that survives transport drops.

Author: Platform Engineering Team
Version: 2.0.0
"""

from interpreter_core.streaming.models import (
    Chunk,
    ConnectionState,
    SessionParams,
    Utterance,
)
from interpreter_core.streaming.parsing import parse_recognition_message
from interpreter_core.streaming.transport import (
    InMemoryTransport,
    Transport,
    WebSocketTransport,
)
from interpreter_core.streaming.channel import (
    ChannelListener,
    ChannelStats,
    ChunkBuffer,
    ResilientStreamChannel,
    compute_backoff_delay,
)

__all__ = [
    # Models
    "Chunk",
    "ConnectionState",
    "SessionParams",
    "Utterance",
    # Parsing
    "parse_recognition_message",
    # Transports
    "InMemoryTransport",
    "Transport",
    "WebSocketTransport",
    # Channel
    "ChannelListener",
    "ChannelStats",
    "ChunkBuffer",
    "ResilientStreamChannel",
    "compute_backoff_delay",
]
