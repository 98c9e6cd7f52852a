"""
Streaming data model: connection states, session parameters and utterances.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


Chunk = Union[bytes, str]


class ConnectionState(str, Enum):
    """Lifecycle of the recognition-source connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass(frozen=True)
class Utterance:
    """One transcript unit produced by the recognition source."""

    text: str
    is_final: bool
    confidence: float = 0.0
    language: str = "en-US"
    timestamp: float = field(default_factory=time.time)
    session_id: Optional[str] = None
    speaker: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            object.__setattr__(self, "confidence", min(max(self.confidence, 0.0), 1.0))

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def with_session(self, session_id: str) -> "Utterance":
        return replace(self, session_id=session_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "is_final": self.is_final,
            "confidence": self.confidence,
            "language": self.language,
            "timestamp": datetime.utcfromtimestamp(self.timestamp).isoformat(),
            "session_id": self.session_id,
            "speaker": self.speaker,
        }


@dataclass
class SessionParams:
    """Configuration sent to the recognition source once per connection."""

    language: str = "en-US"
    encoding: str = "LINEAR16"
    sample_rate_hertz: int = 16000
    interim_results: bool = True
    automatic_punctuation: bool = True
    model: str = "medical_conversation"

    @classmethod
    def from_settings(cls, settings) -> "SessionParams":
        return cls(
            language=settings.language,
            encoding=settings.encoding,
            sample_rate_hertz=settings.sample_rate_hertz,
            interim_results=settings.interim_results,
            automatic_punctuation=settings.automatic_punctuation,
            model=settings.model,
        )

    def to_config_message(self) -> Dict[str, Any]:
        """Streaming-recognize configuration payload."""
        return {
            "config": {
                "encoding": self.encoding,
                "sampleRateHertz": self.sample_rate_hertz,
                "languageCode": self.language,
                "enableAutomaticPunctuation": self.automatic_punctuation,
                "model": self.model,
            },
            "interimResults": self.interim_results,
        }
