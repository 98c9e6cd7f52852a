"""
Request and response models for the HTTP API.
"""

import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class StartSessionRequest(BaseModel):
    """Request to start a session."""

    platform: str = Field(
        default="unknown",
        min_length=1,
        max_length=64,
        description="Meeting platform the interpretation runs on",
    )


class SessionHandleResponse(BaseModel):
    """Returned when a session starts."""

    session_id: str
    platform: str
    started_at: datetime
    events_url: str
    audio_url: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    uptime_seconds: float
    active_session: Optional[str] = None
    state: str


class WSMessageType(str, Enum):
    """Text message types on the audio websocket."""

    AUDIO = "audio"
    PING = "ping"
    PONG = "pong"
    ERROR = "error"


class WSAudioMessage(BaseModel):
    """Base64 audio sent as a text frame."""

    type: WSMessageType = WSMessageType.AUDIO
    audio_base64: str
    timestamp: float = Field(default_factory=time.time)
    sequence: int = 0


class ErrorResponse(BaseModel):
    """Error body for failed requests."""

    detail: str
    error: Optional[Dict[str, Any]] = None
