"""
Unit Tests for Configuration

Tests for settings defaults, validation and environment overrides.
"""

import pytest
from pydantic import ValidationError

from interpreter_core.config import (
    AnalysisSettings,
    ChannelSettings,
    LoggingSettings,
    OrchestratorSettings,
    OverflowPolicy,
    Settings,
)


class TestChannelSettings:
    """Tests for ChannelSettings."""

    def test_defaults(self):
        """Test reconnect and buffer defaults."""
        settings = ChannelSettings()

        assert settings.max_reconnect_attempts == 10
        assert settings.reconnect_base_delay == 1.0
        assert settings.reconnect_max_delay == 30.0
        assert settings.buffer_capacity == 100
        assert settings.overflow_policy == OverflowPolicy.DROP_NEWEST

    def test_max_delay_below_base_rejected(self):
        """Test that the backoff cap must not be below the base delay."""
        with pytest.raises(ValidationError):
            ChannelSettings(reconnect_base_delay=5.0, reconnect_max_delay=1.0)

    def test_env_override(self, monkeypatch):
        """Test reading settings from the environment."""
        monkeypatch.setenv("CHANNEL_BUFFER_CAPACITY", "7")
        monkeypatch.setenv("CHANNEL_OVERFLOW_POLICY", "drop_oldest")

        settings = ChannelSettings()

        assert settings.buffer_capacity == 7
        assert settings.overflow_policy == OverflowPolicy.DROP_OLDEST


class TestAnalysisSettings:
    """Tests for AnalysisSettings."""

    def test_default_weights_sum_to_one(self):
        """Test the default rubric weights."""
        weights = AnalysisSettings().weights

        assert sum(weights.values()) == pytest.approx(1.0)
        assert weights["accuracy"] == 0.30
        assert weights["professional_conduct"] == 0.25
        assert weights["fluency"] == 0.15

    def test_weights_must_sum_to_one(self):
        """Test rejecting weights that do not sum to 1."""
        with pytest.raises(ValidationError):
            AnalysisSettings(weights={"accuracy": 0.5, "fluency": 0.2})

    def test_negative_weight_rejected(self):
        """Test rejecting negative weights."""
        with pytest.raises(ValidationError):
            AnalysisSettings(weights={"accuracy": 1.5, "fluency": -0.5})

    def test_unknown_weight_category_rejected(self):
        """Test that a misspelled category name does not pass as a zero score."""
        with pytest.raises(ValidationError, match="acuracy"):
            AnalysisSettings(weights={"acuracy": 0.5, "fluency": 0.5})

    def test_subset_of_categories_accepted(self):
        settings = AnalysisSettings(weights={"accuracy": 0.5, "fluency": 0.5})

        assert settings.weights == {"accuracy": 0.5, "fluency": 0.5}

    def test_positive_deduction_rejected(self):
        """Test that deductions can only lower a score."""
        with pytest.raises(ValidationError):
            AnalysisSettings(deductions={"filler_word": 0.5})

    def test_wpm_band_validated(self):
        """Test that the target pace must lie inside the band."""
        with pytest.raises(ValidationError):
            AnalysisSettings(target_wpm=120, min_wpm=85, max_wpm=95)


class TestOrchestratorSettings:
    """Tests for OrchestratorSettings."""

    def test_fatal_markers(self):
        """Test the default fatal markers."""
        markers = OrchestratorSettings().fatal_markers

        assert markers == ["api key", "authentication", "unauthorized", "permission", "quota"]

    def test_metrics_interval_default(self):
        assert OrchestratorSettings().metrics_interval == 2.0


class TestLoggingSettings:
    """Tests for LoggingSettings."""

    def test_level_normalized(self):
        assert LoggingSettings(level="DEBUG").level == "debug"

    def test_invalid_level_rejected(self):
        with pytest.raises(ValidationError):
            LoggingSettings(level="loud")


class TestSettings:
    """Tests for the top-level Settings."""

    def test_nested_env_override(self, monkeypatch):
        """Test nested overrides through the double-underscore delimiter."""
        monkeypatch.setenv("INTERPRETER_PORT", "9001")
        monkeypatch.setenv("INTERPRETER_PERSISTENCE__BATCH_SIZE", "3")

        settings = Settings()

        assert settings.port == 9001
        assert settings.persistence.batch_size == 3

    def test_port_range(self):
        with pytest.raises(ValidationError):
            Settings(port=80)
