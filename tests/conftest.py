"""Shared pytest fixtures for testing."""

import asyncio
from typing import AsyncGenerator, Callable, List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from interpreter_core.config import (
    ChannelSettings,
    DeepAnalysisSettings,
    EnrichmentSettings,
    OrchestratorSettings,
    Settings,
)
from interpreter_core.core.errors import ErrorEnvelope, InterpreterError, TransportError
from interpreter_core.orchestrator import SessionListener, SessionOrchestrator
from interpreter_core.persistence import InMemorySessionStore
from interpreter_core.streaming import ChannelListener, ConnectionState, InMemoryTransport, Utterance


# =============================================================================
# Helpers
# =============================================================================


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def recognition_message(
    text: str,
    is_final: bool = True,
    confidence: float = 0.95,
    language: Optional[str] = None,
    speaker: Optional[str] = None,
) -> dict:
    """A message in the recognition source's wire shape."""
    result = {
        "alternatives": [{"transcript": text, "confidence": confidence}],
        "isFinal": is_final,
    }
    if language:
        result["languageCode"] = language
    if speaker:
        result["speaker"] = speaker
    return {"results": [result]}


class FailingTransport(InMemoryTransport):
    """Transport whose connect always fails."""

    def __init__(self, error: Optional[InterpreterError] = None):
        super().__init__()
        self.error = error or TransportError("connection refused", source="transport")

    async def connect(self) -> None:
        raise self.error


class TransportFactory:
    """Hands out queued transports, then fresh in-memory ones."""

    def __init__(self, transports: Optional[List[InMemoryTransport]] = None):
        self.queued = list(transports or [])
        self.created: List[InMemoryTransport] = []

    def __call__(self) -> InMemoryTransport:
        transport = self.queued.pop(0) if self.queued else InMemoryTransport()
        self.created.append(transport)
        return transport

    @property
    def current(self) -> InMemoryTransport:
        return self.created[-1]


class RecordingChannelListener(ChannelListener):
    """Records everything a channel delivers."""

    def __init__(self) -> None:
        self.results: List[Utterance] = []
        self.errors: List[InterpreterError] = []
        self.states: List[ConnectionState] = []

    async def on_result(self, utterance: Utterance) -> None:
        self.results.append(utterance)

    async def on_channel_error(self, error: InterpreterError) -> None:
        self.errors.append(error)

    async def on_state_change(self, state: ConnectionState) -> None:
        self.states.append(state)


class RecordingListener(SessionListener):
    """Records every session callback."""

    def __init__(self) -> None:
        self.utterances = []
        self.terms = []
        self.metrics = []
        self.started = []
        self.completed = []
        self.errors: List[ErrorEnvelope] = []

    async def on_utterance(self, utterance):
        self.utterances.append(utterance)

    async def on_term_enriched(self, enrichment):
        self.terms.append(enrichment)

    async def on_metrics(self, snapshot):
        self.metrics.append(snapshot)

    async def on_session_started(self, handle):
        self.started.append(handle)

    async def on_session_complete(self, record):
        self.completed.append(record)

    async def on_error(self, envelope):
        self.errors.append(envelope)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def channel_settings() -> ChannelSettings:
    """Channel settings with fast, deterministic reconnects."""
    return ChannelSettings(
        api_key="test-key",
        max_reconnect_attempts=10,
        reconnect_base_delay=1.0,
        reconnect_max_delay=30.0,
        reconnect_jitter=0.0,
        connect_timeout=1.0,
        buffer_capacity=5,
    )


@pytest.fixture
def settings(channel_settings: ChannelSettings) -> Settings:
    """Application settings for tests: no external services."""
    return Settings(
        channel=channel_settings,
        orchestrator=OrchestratorSettings(metrics_interval=0.0, drain_timeout=2.0),
        deep_analysis=DeepAnalysisSettings(enabled=False),
        enrichment=EnrichmentSettings(lookup_timeout=1.0),
    )


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the code under test."""
    return []


@pytest.fixture
def instant_sleep(sleeps: List[float]):
    """Sleep replacement that records the delay and yields once."""

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
        await asyncio.sleep(0)

    return _sleep


@pytest.fixture
def transport_factory() -> TransportFactory:
    return TransportFactory()


@pytest.fixture
def store(settings: Settings) -> InMemorySessionStore:
    return InMemorySessionStore(settings.persistence)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest_asyncio.fixture
async def orchestrator(
    settings: Settings,
    transport_factory: TransportFactory,
    store: InMemorySessionStore,
    listener: RecordingListener,
    instant_sleep,
) -> AsyncGenerator[SessionOrchestrator, None]:
    """Orchestrator wired to in-memory transports and store."""
    orchestrator = SessionOrchestrator(
        settings=settings,
        transport_factory=transport_factory,
        store=store,
        listeners=[listener],
        sleep=instant_sleep,
    )
    yield orchestrator
    await orchestrator.close()


# =============================================================================
# API Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(orchestrator: SessionOrchestrator) -> FastAPI:
    """Create test FastAPI application."""
    from interpreter_core.api.app import create_app

    return create_app(orchestrator=orchestrator)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def sample_audio_data() -> bytes:
    """100ms of silence at 16kHz, 16-bit mono."""
    return bytes(1600 * 2)
