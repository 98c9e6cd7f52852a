"""
Configuration for the Interpreter Co-Pilot core.

This module defines every tunable of the streaming channel, the session
orchestrator, the scoring rubric and the enrichment layer. Settings are
validated once and passed explicitly to each component at construction.
"""

from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OverflowPolicy(str, Enum):
    """What the reconnect buffer does when it is full."""

    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


class LogFormat(str, Enum):
    """Log renderer selection."""

    JSON = "json"
    CONSOLE = "console"


class ChannelSettings(BaseSettings):
    """Connection, reconnect and buffering settings for the stream channel."""

    model_config = SettingsConfigDict(env_prefix="CHANNEL_")

    url: str = Field(
        default="wss://speech.googleapis.com/v1/speech:streamingRecognize",
        description="Recognition source websocket endpoint",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Recognition source API key",
    )
    language: str = Field(default="en-US", description="Source language tag")
    encoding: str = Field(default="LINEAR16", description="Audio encoding")
    sample_rate_hertz: int = Field(
        default=16000,
        ge=8000,
        le=48000,
        description="Audio sample rate",
    )
    interim_results: bool = Field(
        default=True,
        description="Ask the source for interim utterances",
    )
    automatic_punctuation: bool = Field(default=True)
    model: str = Field(
        default="medical_conversation",
        description="Recognition model requested from the source",
    )

    max_reconnect_attempts: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Reconnect attempts before the channel gives up",
    )
    reconnect_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base reconnect delay in seconds",
    )
    reconnect_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        description="Upper bound for a single reconnect delay in seconds",
    )
    reconnect_jitter: float = Field(
        default=0.2,
        ge=0.0,
        lt=1.0,
        description="Relative jitter applied to each reconnect delay",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds to wait for a transport connection",
    )

    buffer_capacity: int = Field(
        default=100,
        ge=1,
        description="Chunks kept while reconnecting",
    )
    overflow_policy: OverflowPolicy = Field(
        default=OverflowPolicy.DROP_NEWEST,
        description="Chunk dropped when the buffer is full",
    )

    @model_validator(mode="after")
    def validate_delays(self) -> "ChannelSettings":
        if self.reconnect_max_delay < self.reconnect_base_delay:
            raise ValueError("reconnect_max_delay must be >= reconnect_base_delay")
        return self


class OrchestratorSettings(BaseSettings):
    """Session orchestrator settings."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRATOR_")

    metrics_interval: float = Field(
        default=2.0,
        ge=0.0,
        description="Minimum seconds between two metrics-update events (0 disables)",
    )
    consumer_queue_size: int = Field(
        default=0,
        ge=0,
        description="Per-consumer queue bound (0 means unbounded)",
    )
    drain_timeout: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds stop() waits for consumer queues to drain",
    )
    fatal_markers: List[str] = Field(
        default=["api key", "authentication", "unauthorized", "permission", "quota"],
        description="Message fragments that make an error non-recoverable",
    )


class AnalysisSettings(BaseSettings):
    """Scoring rubric: weights, deductions and pacing targets."""

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_")

    weights: Dict[str, float] = Field(
        default={
            "accuracy": 0.30,
            "professional_conduct": 0.25,
            "fluency": 0.15,
            "grammar": 0.10,
            "sentence_structure": 0.10,
            "cultural_competency": 0.10,
        },
        description="Category weights, must sum to 1.0",
    )
    deductions: Dict[str, float] = Field(
        default={
            "filler_word": -0.5,
            "stutter": -1.0,
            "false_start": -2.0,
            "unnatural_pause": -1.0,
            "subject_verb_agreement": -3.0,
            "tense_consistency": -2.0,
            "pronoun_error": -2.0,
            "sentence_fragment": -2.0,
            "run_on_sentence": -2.0,
            "awkward_phrasing": -1.0,
            "first_person_violation": -5.0,
            "editorial_comment": -10.0,
        },
        description="Point delta applied per finding type",
    )
    window_size: int = Field(
        default=10,
        ge=1,
        description="Recent final utterances kept for deep analysis",
    )
    deep_analysis_every: int = Field(
        default=10,
        ge=1,
        description="Run one deep analysis every N final utterances",
    )
    target_wpm: int = Field(default=90, ge=1)
    min_wpm: int = Field(default=85, ge=1)
    max_wpm: int = Field(default=95, ge=1)
    strength_threshold: float = Field(default=90.0, ge=0.0, le=100.0)
    improvement_threshold: float = Field(default=80.0, ge=0.0, le=100.0)
    max_suggestions: int = Field(default=5, ge=1)
    analyze_speaker: Optional[str] = Field(
        default=None,
        description="Only score utterances from this speaker (None scores all)",
    )

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        from interpreter_core.analysis.base import Category

        known = {c.value for c in Category}
        unknown = sorted(set(v) - known)
        if unknown:
            raise ValueError(
                f"Unknown categories in weights: {', '.join(unknown)} "
                f"(expected one of: {', '.join(sorted(known))})"
            )
        if any(w < 0 for w in v.values()):
            raise ValueError("Category weights must be non-negative")
        total = sum(v.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Category weights must sum to 1.0, got {total:.4f}")
        return v

    @field_validator("deductions")
    @classmethod
    def validate_deductions(cls, v: Dict[str, float]) -> Dict[str, float]:
        for name, delta in v.items():
            if delta > 0:
                raise ValueError(f"Deduction '{name}' must be <= 0")
        return v

    @model_validator(mode="after")
    def validate_wpm_band(self) -> "AnalysisSettings":
        if not self.min_wpm <= self.target_wpm <= self.max_wpm:
            raise ValueError("Expected min_wpm <= target_wpm <= max_wpm")
        return self


class DeepAnalysisSettings(BaseSettings):
    """Higher-latency analysis pass over the recent utterance window."""

    model_config = SettingsConfigDict(env_prefix="DEEP_ANALYSIS_")

    enabled: bool = Field(default=True)
    api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    base_url: str = Field(default="https://api.anthropic.com/v1")
    model: str = Field(default="claude-sonnet-4-20250514")
    max_tokens: int = Field(default=2000, ge=1, le=8192)
    timeout: float = Field(
        default=20.0,
        gt=0.0,
        description="Seconds before a deep analysis cycle is abandoned",
    )


class EnrichmentSettings(BaseSettings):
    """Terminology enrichment settings."""

    model_config = SettingsConfigDict(env_prefix="ENRICHMENT_")

    enabled: bool = Field(default=True)
    target_language: str = Field(default="es", description="Translation target")
    cache_capacity: int = Field(default=500, ge=1)
    recent_tokens: int = Field(
        default=100,
        ge=1,
        description="Distinct tokens remembered for duplicate suppression",
    )
    context_chars: int = Field(default=50, ge=0)
    min_term_length: int = Field(default=3, ge=1)
    translate_api_key: Optional[str] = Field(default=None)
    translate_url: str = Field(
        default="https://translation.googleapis.com/language/translate/v2",
    )
    lookup_timeout: float = Field(default=5.0, gt=0.0)


class PersistenceSettings(BaseSettings):
    """Session store and transcript writer settings."""

    model_config = SettingsConfigDict(env_prefix="PERSISTENCE_")

    batch_size: int = Field(default=10, ge=1)
    flush_interval: float = Field(default=5.0, gt=0.0)
    max_sessions: int = Field(default=50, ge=1)
    max_transcript_entries: int = Field(default=500, ge=1)


class LoggingSettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="info")
    format: LogFormat = Field(default=LogFormat.JSON)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in allowed:
            raise ValueError(f"Log level must be one of {sorted(allowed)}")
        return v.lower()


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="INTERPRETER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="interpreter-copilot")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8090, ge=1024, le=65535)

    channel: ChannelSettings = Field(default_factory=ChannelSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    deep_analysis: DeepAnalysisSettings = Field(default_factory=DeepAnalysisSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
