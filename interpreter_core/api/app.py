"""
Interpreter Copilot Service - FastAPI Application.

HTTP control surface over a single ``SessionOrchestrator`` plus two
websockets: one streaming session events out, one forwarding audio in.
"""

import asyncio
import base64
import binascii
import json
import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from interpreter_core import __version__
from interpreter_core.api.models import (
    ErrorResponse,
    HealthResponse,
    SessionHandleResponse,
    StartSessionRequest,
    WSAudioMessage,
    WSMessageType,
)
from interpreter_core.config import Settings, get_settings
from interpreter_core.core.errors import AlreadyRunningError, InterpreterError
from interpreter_core.core.logging import configure_logging
from interpreter_core.orchestrator import QueueEventSink, SessionOrchestrator

logger = structlog.get_logger(__name__)


def create_app(
    orchestrator: Optional[SessionOrchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application around one orchestrator."""
    settings = settings or (orchestrator.settings if orchestrator else get_settings())
    orchestrator = orchestrator or SessionOrchestrator(settings=settings)
    started_at = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "interpreter_copilot_starting",
            service=settings.service_name,
            port=settings.port,
        )

        yield

        logger.info("interpreter_copilot_stopping")
        try:
            await orchestrator.close()
        except Exception as e:
            logger.error(f"Error closing orchestrator: {e}")

    app = FastAPI(
        title="Interpreter Copilot Service",
        description="Real-time quality analysis and terminology support for medical interpreters.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=__version__,
            uptime_seconds=round(time.time() - started_at, 2),
            active_session=orchestrator.session_id,
            state=orchestrator.state.value,
        )

    # =========================================================================
    # Session Management
    # =========================================================================

    @app.post(
        "/sessions",
        response_model=SessionHandleResponse,
        status_code=201,
        responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    )
    async def start_session(request: Optional[StartSessionRequest] = None):
        request = request or StartSessionRequest()
        try:
            handle = await orchestrator.start(request.platform)
        except AlreadyRunningError as e:
            raise HTTPException(status_code=409, detail=e.message)
        except InterpreterError as e:
            raise HTTPException(status_code=502, detail=e.message)

        logger.info("session_created", session_id=handle.session_id, platform=handle.platform)

        return SessionHandleResponse(
            session_id=handle.session_id,
            platform=handle.platform,
            started_at=handle.started_at,
            events_url="/sessions/events",
            audio_url="/sessions/audio",
        )

    @app.post("/sessions/stop")
    async def stop_session():
        record = await orchestrator.stop()
        if record is None:
            raise HTTPException(status_code=409, detail="No active session")
        return record.to_dict()

    @app.post("/sessions/emergency-stop")
    async def emergency_stop_session():
        record = await orchestrator.emergency_stop()
        return {
            "status": "stopped",
            "record": record.to_dict() if record else None,
        }

    @app.get("/sessions/status")
    async def session_status():
        return orchestrator.status()

    @app.get("/sessions")
    async def list_sessions(limit: int = 20):
        records = await orchestrator.store.list_sessions(limit=min(max(limit, 1), 100))
        return {"sessions": [r.summary() for r in reversed(records)], "total": len(records)}

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str, transcript: bool = False):
        record = await orchestrator.store.get_session(session_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Session not found")

        body = record.to_dict()
        if transcript:
            body["transcript"] = await orchestrator.store.get_transcript(session_id)
        return body

    # =========================================================================
    # WebSocket Streaming
    # =========================================================================

    @app.websocket("/sessions/events")
    async def session_events(websocket: WebSocket):
        """
        Stream session events as JSON text frames.

        Each frame is ``{"type", "session_id", "timestamp", "data"}`` where
        type is one of utterance, term-enriched, metrics-update,
        session-started, session-complete, error.
        """
        await websocket.accept()
        sink = QueueEventSink(maxsize=1000)
        orchestrator.add_listener(sink)
        logger.info("events_websocket_connected")

        async def forward_events():
            while True:
                event = await sink.get()
                await websocket.send_text(event.to_json())

        sender = asyncio.create_task(forward_events())
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            orchestrator.remove_listener(sink)
            logger.info("events_websocket_disconnected")

    @app.websocket("/sessions/audio")
    async def session_audio(websocket: WebSocket):
        """
        Forward audio to the active session.

        Binary frames are sent as-is. Text frames carry either
        ``{"type": "audio", "audio_base64": "..."}`` or ``{"type": "ping"}``.
        """
        await websocket.accept()
        logger.info("audio_websocket_connected", session_id=orchestrator.session_id)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                if message.get("bytes") is not None:
                    if not await orchestrator.send_chunk(message["bytes"]):
                        await websocket.send_json(
                            {"type": WSMessageType.ERROR.value, "message": "No active session"}
                        )
                    continue

                text = message.get("text")
                if text is None:
                    continue

                try:
                    data = json.loads(text)
                except json.JSONDecodeError:
                    await websocket.send_json(
                        {"type": WSMessageType.ERROR.value, "message": "Invalid JSON"}
                    )
                    continue

                if isinstance(data, dict) and data.get("type") == WSMessageType.PING.value:
                    await websocket.send_json({"type": WSMessageType.PONG.value})
                    continue

                try:
                    audio = WSAudioMessage.model_validate(data)
                    chunk = base64.b64decode(audio.audio_base64, validate=True)
                except (ValidationError, binascii.Error) as e:
                    await websocket.send_json(
                        {"type": WSMessageType.ERROR.value, "message": f"Invalid audio message: {e}"}
                    )
                    continue

                if not await orchestrator.send_chunk(chunk):
                    await websocket.send_json(
                        {"type": WSMessageType.ERROR.value, "message": "No active session"}
                    )
        except WebSocketDisconnect:
            pass
        finally:
            logger.info("audio_websocket_disconnected")

    return app


def run(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.logging)
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )
