"""Unit tests for the error taxonomy and error envelope."""

import pytest

from interpreter_core.core.errors import (
    AlreadyRunningError,
    CapacityExceeded,
    DetectorError,
    EnrichmentLookupError,
    ErrorEnvelope,
    FatalAuthError,
    InterpreterError,
    MaxReconnectAttemptsExceeded,
    ParseError,
    SessionClosedError,
    TransportError,
    is_recoverable,
)


class TestInterpreterError:
    """Tests for InterpreterError and subclasses."""

    def test_to_dict(self):
        """Test error serialization."""
        error = TransportError("socket closed", source="channel", details={"code": 1006})

        data = error.to_dict()

        assert data["error"] == "TransportError"
        assert data["message"] == "socket closed"
        assert data["code"] == "TRANSPORT_ERROR"
        assert data["source"] == "channel"
        assert data["recoverable"] is True
        assert data["details"] == {"code": 1006}

    @pytest.mark.parametrize(
        "error_cls",
        [TransportError, ParseError, CapacityExceeded, EnrichmentLookupError],
    )
    def test_recoverable_types(self, error_cls):
        assert error_cls("boom").recoverable is True

    @pytest.mark.parametrize(
        "error",
        [
            FatalAuthError("rejected"),
            MaxReconnectAttemptsExceeded(10),
            AlreadyRunningError("busy"),
            SessionClosedError("closed"),
        ],
    )
    def test_fatal_types(self, error):
        assert error.recoverable is False

    def test_max_reconnect_message(self):
        error = MaxReconnectAttemptsExceeded(10, source="channel")

        assert error.attempts == 10
        assert "10" in str(error)
        assert error.source == "channel"

    def test_detector_error_category(self):
        error = DetectorError("regex blew up", category="grammar")

        assert error.category == "grammar"
        assert isinstance(error, InterpreterError)


class TestIsRecoverable:
    """Tests for recoverability classification."""

    def test_plain_recoverable(self):
        assert is_recoverable(TransportError("connection reset")) is True

    @pytest.mark.parametrize(
        "message",
        [
            "Invalid API key provided",
            "Authentication failed",
            "401 Unauthorized",
            "Permission denied for project",
            "Quota exceeded for the day",
        ],
    )
    def test_fatal_markers_in_message(self, message):
        """Test that fatal markers override a recoverable type."""
        assert is_recoverable(TransportError(message)) is False

    def test_typed_fatal(self):
        assert is_recoverable(FatalAuthError("rejected")) is False

    def test_untyped_exception(self):
        assert is_recoverable(RuntimeError("something odd")) is True

    def test_custom_markers(self):
        assert is_recoverable(TransportError("billing hold"), ["billing"]) is False
        assert is_recoverable(TransportError("api key bad"), ["billing"]) is True


class TestErrorEnvelope:
    """Tests for ErrorEnvelope."""

    def test_from_exception(self):
        """Test normalizing an exception."""
        envelope = ErrorEnvelope.from_exception(
            "channel",
            TransportError("connection reset"),
            session_id="session_1_abc",
        )

        assert envelope.source == "channel"
        assert envelope.message == "connection reset"
        assert envelope.session_id == "session_1_abc"
        assert envelope.recoverable is True
        assert envelope.kind == "TransportError"

    def test_from_fatal_exception(self):
        envelope = ErrorEnvelope.from_exception("channel", ParseError("Unauthorized request"))

        assert envelope.recoverable is False

    def test_empty_message_uses_class_name(self):
        envelope = ErrorEnvelope.from_exception("listener", ValueError())

        assert envelope.message == "ValueError"

    def test_to_dict(self):
        envelope = ErrorEnvelope.from_exception("analysis", DetectorError("failed"))

        data = envelope.to_dict()

        assert set(data) == {"source", "message", "session_id", "recoverable", "kind", "timestamp"}
        assert data["kind"] == "DetectorError"
