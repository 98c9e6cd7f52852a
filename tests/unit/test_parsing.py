"""Unit tests for recognition message parsing and streaming models."""

import json

import pytest

from interpreter_core.core.errors import ParseError
from interpreter_core.streaming.models import SessionParams, Utterance
from interpreter_core.streaming.parsing import parse_recognition_message


class TestParseRecognitionMessage:
    """Tests for parse_recognition_message."""

    def test_final_result(self):
        """Test parsing a final result."""
        raw = json.dumps({
            "results": [{
                "alternatives": [{"transcript": " The patient has a fever. ", "confidence": 0.92}],
                "isFinal": True,
                "languageCode": "en-us",
            }]
        })

        utterance = parse_recognition_message(raw, timestamp=1000.0)

        assert utterance.text == "The patient has a fever."
        assert utterance.is_final is True
        assert utterance.confidence == pytest.approx(0.92)
        assert utterance.language == "en-us"
        assert utterance.timestamp == 1000.0

    def test_interim_defaults(self):
        """Test defaults for missing fields."""
        utterance = parse_recognition_message(
            {"results": [{"alternatives": [{"transcript": "the pat"}]}]},
            default_language="es-US",
        )

        assert utterance.is_final is False
        assert utterance.confidence == 0.0
        assert utterance.language == "es-US"

    def test_speaker(self):
        utterance = parse_recognition_message(
            {"results": [{"alternatives": [{"transcript": "hola"}], "speaker": "interpreter"}]}
        )

        assert utterance.speaker == "interpreter"

    def test_bytes_input(self):
        raw = b'{"results": [{"alternatives": [{"transcript": "ok"}], "isFinal": true}]}'

        assert parse_recognition_message(raw).text == "ok"

    @pytest.mark.parametrize(
        "raw",
        [
            "{}",
            '{"results": []}',
            '{"results": [{"alternatives": []}]}',
        ],
    )
    def test_no_result(self, raw):
        """Test keep-alives and empty results parse to None."""
        assert parse_recognition_message(raw) is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '{"results": [{"alternatives": [{"transcript": 42}]}]}',
            '{"results": ["oops"]}',
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(ParseError):
            parse_recognition_message(raw)

    def test_source_error(self):
        """Test that an error payload from the source raises."""
        with pytest.raises(ParseError, match="quota"):
            parse_recognition_message('{"error": {"message": "quota exhausted"}}')


class TestUtterance:
    """Tests for Utterance."""

    def test_confidence_clamped(self):
        assert Utterance(text="hi", is_final=True, confidence=1.7).confidence == 1.0
        assert Utterance(text="hi", is_final=True, confidence=-0.2).confidence == 0.0

    def test_word_count(self):
        assert Utterance(text="take two tablets daily", is_final=True).word_count == 4

    def test_with_session(self):
        utterance = Utterance(text="hi", is_final=True)

        tagged = utterance.with_session("session_1_abc")

        assert tagged.session_id == "session_1_abc"
        assert utterance.session_id is None


class TestSessionParams:
    """Tests for SessionParams."""

    def test_config_message(self):
        params = SessionParams(language="es-US", sample_rate_hertz=8000, interim_results=False)

        message = params.to_config_message()

        assert message["config"]["languageCode"] == "es-US"
        assert message["config"]["sampleRateHertz"] == 8000
        assert message["config"]["encoding"] == "LINEAR16"
        assert message["interimResults"] is False
