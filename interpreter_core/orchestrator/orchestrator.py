"""
Session Orchestrator
====================

Owns the lifecycle of one interpretation session and routes data between the
stream channel, the analysis pipeline, the terminology enricher, the
transcript writer and the presentation listeners.

Architecture:

    audio chunks ──► ResilientStreamChannel ──► on_result
                                                   │
                          ┌────────────────────────┼──────────────────┐
                          ▼                        ▼                  ▼
                   live listeners          final utterances     TranscriptWriter
                   (every utterance)              │
                                     ┌────────────┴────────────┐
                                     ▼                         ▼
                            analysis worker            enrichment worker
                            AnalysisPipeline           TerminologyEnricher
                                     │                         │
                                     └──────► listeners ◄──────┘

Author: Platform Engineering Team
Version: 2.0.0
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import structlog

from interpreter_core.analysis.deep import AnthropicDeepAnalyzer, DeepAnalyzer
from interpreter_core.analysis.pipeline import AnalysisPipeline, MetricsSnapshot, PipelineListener
from interpreter_core.analysis.report import PerformanceReport
from interpreter_core.config import Settings, get_settings
from interpreter_core.core.errors import (
    AlreadyRunningError,
    ErrorEnvelope,
    InterpreterError,
    PersistenceError,
    SessionClosedError,
)
from interpreter_core.enrichment.providers import GoogleTranslationProvider, TranslationProvider
from interpreter_core.enrichment.terminology import (
    EnrichmentListener,
    TermEnrichment,
    TerminologyEnricher,
)
from interpreter_core.orchestrator.events import SessionListener
from interpreter_core.orchestrator.session import Session, SessionHandle
from interpreter_core.orchestrator.throttle import Throttle
from interpreter_core.orchestrator.workers import ConsumerWorker
from interpreter_core.persistence.records import SessionRecord, SessionStatus
from interpreter_core.persistence.store import InMemorySessionStore, SessionStore, TranscriptWriter
from interpreter_core.streaming.channel import ChannelListener, ResilientStreamChannel, TransportFactory
from interpreter_core.streaming.models import Chunk, ConnectionState, SessionParams, Utterance
from interpreter_core.streaming.transport import WebSocketTransport

logger = structlog.get_logger(__name__)


class OrchestratorState(str, Enum):
    """Orchestrator states."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class SessionOrchestrator(ChannelListener, PipelineListener, EnrichmentListener):
    """
    Runs at most one session at a time.

    Usage:
        orchestrator = SessionOrchestrator(listeners=[my_listener])
        handle = await orchestrator.start("zoom")
        await orchestrator.send_chunk(audio)
        record = await orchestrator.stop()

    The orchestrator is itself the listener of the channel, the pipeline and
    the enricher. Errors from any of them are normalized into an
    ``ErrorEnvelope`` and delivered to every session listener; a
    non-recoverable one ends the session with status ``failed``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport_factory: Optional[TransportFactory] = None,
        store: Optional[SessionStore] = None,
        listeners: Optional[List[SessionListener]] = None,
        deep_analyzer: Optional[DeepAnalyzer] = None,
        translator: Optional[TranslationProvider] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.store = store or InMemorySessionStore(self.settings.persistence)
        self.listeners: List[SessionListener] = list(listeners or [])

        self._transport_factory = transport_factory or self._default_transport
        self._deep_analyzer = deep_analyzer or self._default_deep_analyzer()
        self._translator = translator or self._default_translator()
        self._clock = clock
        self._sleep = sleep

        # State
        self._state = OrchestratorState.IDLE
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

        # Per-session components
        self._session: Optional[Session] = None
        self._channel: Optional[ResilientStreamChannel] = None
        self._pipeline: Optional[AnalysisPipeline] = None
        self._enricher: Optional[TerminologyEnricher] = None
        self._writer: Optional[TranscriptWriter] = None
        self._workers: List[ConsumerWorker] = []
        self._metrics_throttle = Throttle(self.settings.orchestrator.metrics_interval, clock)

        # Error tracking
        self._error_count = 0
        self._last_error: Optional[ErrorEnvelope] = None
        self._failure: Optional[ErrorEnvelope] = None

        self._logger = logger

    # -------------------------------------------------------------------------
    # Defaults
    # -------------------------------------------------------------------------

    def _default_transport(self) -> WebSocketTransport:
        channel = self.settings.channel
        return WebSocketTransport(
            channel.url,
            api_key=channel.api_key,
            open_timeout=channel.connect_timeout,
        )

    def _default_deep_analyzer(self) -> Optional[DeepAnalyzer]:
        deep = self.settings.deep_analysis
        if deep.enabled and deep.api_key:
            return AnthropicDeepAnalyzer(deep)
        return None

    def _default_translator(self) -> Optional[TranslationProvider]:
        enrichment = self.settings.enrichment
        if enrichment.translate_api_key:
            return GoogleTranslationProvider(
                api_key=enrichment.translate_api_key,
                url=enrichment.translate_url,
                source_language=self.settings.channel.language.split("-")[0],
                timeout=enrichment.lookup_timeout,
            )
        return None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state != OrchestratorState.IDLE

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id if self._session else None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def add_listener(self, listener: SessionListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    # =========================================================================
    # Lifecycle Methods
    # =========================================================================

    async def start(self, platform: str = "unknown") -> SessionHandle:
        """Start a new session.

        Raises:
            AlreadyRunningError: if a session is already active.
            InterpreterError: if the channel could not be opened. The error
                is delivered to listeners before being raised.
        """
        async with self._lock:
            if self._state != OrchestratorState.IDLE:
                raise AlreadyRunningError(
                    f"Session {self.session_id} is already active",
                    source="orchestrator",
                    details={"session_id": self.session_id},
                )

            self._state = OrchestratorState.STARTING
            session = Session(platform=platform)
            self._session = session
            self._failure = None
            self._error_count = 0
            self._last_error = None
            self._metrics_throttle.reset()
            self._logger = logger.bind(session_id=session.session_id)

            self._build_components(session.session_id)

            try:
                await self._pipeline.start()
                for worker in self._workers:
                    worker.start()
                await self._channel.open(SessionParams.from_settings(self.settings.channel))
            except InterpreterError as e:
                self._logger.error(f"Failed to start session: {e}")
                await self._handle_error("channel", e)
                await self._teardown(SessionStatus.FAILED, str(e), swallow=True, persist=False)
                raise

            self._state = OrchestratorState.RUNNING
            handle = session.handle()
            self._logger.info("Session started", platform=platform)

        await self._broadcast("on_session_started", handle)
        return handle

    def _build_components(self, session_id: str) -> None:
        settings = self.settings

        self._pipeline = AnalysisPipeline(
            listener=self,
            settings=settings.analysis,
            deep_settings=settings.deep_analysis,
            deep_analyzer=self._deep_analyzer,
            session_id=session_id,
            clock=self._clock,
        )

        self._enricher = None
        if settings.enrichment.enabled:
            self._enricher = TerminologyEnricher(
                listener=self,
                settings=settings.enrichment,
                translator=self._translator,
            )

        self._writer = TranscriptWriter(self.store, session_id, settings.persistence)

        self._channel = ResilientStreamChannel(
            transport_factory=self._transport_factory,
            listener=self,
            settings=settings.channel,
            session_id=session_id,
            sleep=self._sleep,
        )

        queue_size = settings.orchestrator.consumer_queue_size
        self._workers = [
            ConsumerWorker(
                "analysis",
                self._pipeline.process_final_utterance,
                on_error=self._on_worker_error,
                maxsize=queue_size,
            )
        ]
        if self._enricher is not None:
            self._workers.append(
                ConsumerWorker(
                    "enrichment",
                    self._enricher.process,
                    on_error=self._on_worker_error,
                    maxsize=queue_size,
                )
            )

    async def stop(self) -> Optional[SessionRecord]:
        """Stop the active session and persist its record.

        Returns None when no session is running.
        """
        return await self._stop(SessionStatus.COMPLETED)

    async def emergency_stop(self) -> Optional[SessionRecord]:
        """Tear everything down, logging and swallowing every failure."""
        async with self._lock:
            if self._state != OrchestratorState.RUNNING:
                return None
            self._logger.warning("Emergency stop requested")
            try:
                return await self._teardown(SessionStatus.ABORTED, None, swallow=True)
            except Exception as e:
                self._logger.error(f"Emergency stop failed: {e}")
                self._reset()
                return None

    async def _stop(
        self,
        status: SessionStatus,
        error: Optional[str] = None,
    ) -> Optional[SessionRecord]:
        async with self._lock:
            if self._state != OrchestratorState.RUNNING:
                return None
            return await self._teardown(status, error, swallow=False)

    async def _teardown(
        self,
        status: SessionStatus,
        error: Optional[str],
        swallow: bool,
        persist: bool = True,
    ) -> SessionRecord:
        """Shut down every component and assemble the session record.

        Each step runs regardless of earlier failures. With ``swallow`` set,
        failures are only logged; otherwise they are also delivered to
        listeners as error envelopes.
        """
        self._state = OrchestratorState.STOPPING
        session = self._session
        subsystems: Dict[str, Dict[str, Any]] = {}

        async def step(name: str, action: Callable[[], Awaitable[Any]]) -> Any:
            try:
                result = await action()
                subsystems.setdefault(name, {})["status"] = "ok"
                return result
            except Exception as e:
                subsystems.setdefault(name, {})["status"] = f"failed: {e}"
                self._logger.error(f"Shutdown step '{name}' failed: {e}")
                if not swallow:
                    await self._dispatch_envelope(
                        ErrorEnvelope.from_exception(
                            name,
                            e,
                            self.session_id,
                            self.settings.orchestrator.fatal_markers,
                        )
                    )
                return None

        # Stop intake first, then let consumers finish what is queued
        if self._channel is not None:
            await step("channel", self._channel.close)
            subsystems["channel"].update(self._channel.stats().to_dict())

        drain_timeout = self.settings.orchestrator.drain_timeout
        for worker in self._workers:
            drained = await step(
                f"{worker.name}_queue",
                lambda w=worker: w.drain(drain_timeout),
            )
            subsystems[f"{worker.name}_queue"].update(worker.status(), drained=bool(drained))

        report: Optional[PerformanceReport] = None
        if self._pipeline is not None:
            report = await step("analysis", self._pipeline.stop)
            subsystems["analysis"]["utterances"] = self._pipeline.utterance_count

        if self._writer is not None:
            await step("persistence", self._writer.close)
            subsystems["persistence"].update(self._writer.status())

        if self._enricher is not None:
            await step("enrichment", self._enricher.close)
            subsystems["enrichment"].update(self._enricher.status())
        else:
            subsystems["enrichment"] = {"status": "disabled"}

        if self._failure is not None and status == SessionStatus.COMPLETED:
            status = SessionStatus.FAILED
            error = error or self._failure.message

        session.close(status, report)
        record = SessionRecord(
            session_id=session.session_id,
            platform=session.platform,
            started_at=session.started_at,
            ended_at=session.ended_at,
            status=session.status,
            report=session.report,
            utterance_count=len(session.utterances),
            subsystems=subsystems,
            error=error,
        )

        if persist:
            await step("store", lambda: self._save_record(record))
            self._logger.info(
                "Session stopped",
                status=status.value,
                duration=record.summary()["duration"],
                utterances=record.utterance_count,
            )
            await self._broadcast("on_session_complete", record, report_errors=not swallow)

        self._reset()
        return record

    async def _save_record(self, record: SessionRecord) -> None:
        try:
            await self.store.save_session(record)
        except Exception as e:
            raise PersistenceError(
                f"Could not save session {record.session_id}: {e}",
                source="persistence",
            ) from e

    def _reset(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._tasks.clear()

        for worker in self._workers:
            if worker.is_running:
                task = asyncio.ensure_future(worker.cancel())
                self._track(task)

        self._session = None
        self._channel = None
        self._pipeline = None
        self._enricher = None
        self._writer = None
        self._workers = []
        self._state = OrchestratorState.IDLE
        self._logger = logger

    # =========================================================================
    # Inbound
    # =========================================================================

    async def send_chunk(self, chunk: Chunk) -> bool:
        """Forward an opaque chunk to the recognition source.

        Returns False when no session is running.
        """
        if self._state != OrchestratorState.RUNNING or self._channel is None:
            self._logger.debug("Dropping chunk, no active session")
            return False
        await self._channel.send(chunk)
        return True

    # =========================================================================
    # Channel callbacks
    # =========================================================================

    async def on_result(self, utterance: Utterance) -> None:
        session = self._session
        if self._state != OrchestratorState.RUNNING or session is None:
            return

        utterance = utterance.with_session(session.session_id)
        await self._broadcast("on_utterance", utterance)

        if not utterance.is_final:
            return

        try:
            session.add_utterance(utterance)
        except SessionClosedError:
            return

        await self._writer.append(utterance.to_dict())
        for worker in self._workers:
            await worker.submit(utterance)

    async def on_channel_error(self, error: InterpreterError) -> None:
        await self._handle_error("channel", error)

    async def on_state_change(self, state: ConnectionState) -> None:
        self._logger.debug(f"Channel state: {state.value}")

    # =========================================================================
    # Pipeline / enricher callbacks
    # =========================================================================

    async def on_metrics(self, snapshot: MetricsSnapshot) -> None:
        if not self._metrics_throttle.allow():
            return
        await self._broadcast("on_metrics", snapshot)

    async def on_pipeline_error(self, error: InterpreterError) -> None:
        await self._handle_error("analysis", error)

    async def on_term_enriched(self, enrichment: TermEnrichment) -> None:
        await self._broadcast("on_term_enriched", enrichment)

    async def on_enrichment_error(self, error: InterpreterError) -> None:
        await self._handle_error("enrichment", error)

    async def _on_worker_error(self, name: str, error: BaseException) -> None:
        await self._handle_error(name, error)

    # =========================================================================
    # Error handling
    # =========================================================================

    async def _handle_error(self, source: str, error: BaseException) -> None:
        envelope = ErrorEnvelope.from_exception(
            source,
            error,
            self.session_id,
            self.settings.orchestrator.fatal_markers,
        )
        await self._dispatch_envelope(envelope)

        if (
            not envelope.recoverable
            and self._state == OrchestratorState.RUNNING
            and self._failure is None
        ):
            self._failure = envelope
            self._logger.error(
                "Non-recoverable error, ending session",
                source=source,
                kind=envelope.kind,
            )
            self._track(asyncio.create_task(self._stop(SessionStatus.FAILED, envelope.message)))

    async def _dispatch_envelope(self, envelope: ErrorEnvelope) -> None:
        self._error_count += 1
        self._last_error = envelope
        log = self._logger.warning if envelope.recoverable else self._logger.error
        log(
            f"Session error from {envelope.source}: {envelope.message}",
            kind=envelope.kind,
            recoverable=envelope.recoverable,
        )
        await self._broadcast("on_error", envelope, report_errors=False)

    # =========================================================================
    # Listener dispatch
    # =========================================================================

    async def _broadcast(self, method: str, payload: Any, report_errors: bool = True) -> None:
        """Deliver to every listener. One failing listener never blocks the rest."""
        for listener in list(self.listeners):
            try:
                await getattr(listener, method)(payload)
            except Exception as e:
                self._logger.error(
                    f"Listener {type(listener).__name__}.{method} failed: {e}"
                )
                if report_errors:
                    await self._dispatch_envelope(
                        ErrorEnvelope.from_exception(
                            "listener",
                            e,
                            self.session_id,
                            self.settings.orchestrator.fatal_markers,
                        )
                    )

    def _track(self, task: asyncio.Future) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        session = self._session
        status: Dict[str, Any] = {
            "state": self._state.value,
            "session_id": self.session_id,
            "platform": session.platform if session else None,
            "started_at": session.started_at.isoformat() if session else None,
            "utterance_count": len(session.utterances) if session else 0,
            "error_count": self._error_count,
            "last_error": self._last_error.to_dict() if self._last_error else None,
            "subsystems": {},
        }
        if self._channel is not None:
            status["subsystems"]["channel"] = self._channel.stats().to_dict()
        if self._pipeline is not None:
            status["subsystems"]["analysis"] = self._pipeline.snapshot().to_dict()
        if self._enricher is not None:
            status["subsystems"]["enrichment"] = self._enricher.status()
        if self._writer is not None:
            status["subsystems"]["persistence"] = self._writer.status()
        for worker in self._workers:
            status["subsystems"][f"{worker.name}_queue"] = worker.status()
        return status

    async def close(self) -> None:
        """Release long-lived clients. Stops any active session first."""
        await self.emergency_stop()
        if self._deep_analyzer is not None:
            await self._deep_analyzer.close()
        if self._translator is not None:
            await self._translator.close()
