"""Tests for the interpreter-copilot CLI."""

import json

import pytest
from click.testing import CliRunner

from interpreter_core import __version__
from interpreter_core.cli import cli, to_source_message


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def transcript_file(tmp_path):
    """A short recorded session in JSONL."""
    path = tmp_path / "session.jsonl"
    lines = [
        {"text": "the pat", "is_final": False},
        {"text": "The patient has a headache today.", "confidence": 0.94},
        {"text": "Um the doctor will see you now."},
        {"text": "They was waiting in the lobby."},
    ]
    path.write_text("\n".join(json.dumps(line) for line in lines) + "\n")
    return path


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "replay" in result.output
        assert "score" in result.output
        assert "serve" in result.output


class TestScoreCommand:
    """Tests for the score command."""

    def test_clean_utterance(self, runner):
        result = runner.invoke(cli, ["score", "The patient has a headache today."])

        assert result.exit_code == 0
        assert "No issues found" in result.output
        assert "Excellent" in result.output

    def test_findings_table(self, runner):
        result = runner.invoke(cli, ["score", "They was late."])

        assert result.exit_code == 0
        assert "Findings" in result.output
        assert "subject_verb_agreement" in result.output

    def test_json_findings(self, runner):
        result = runner.invoke(cli, ["-o", "json", "score", "I think you should rest."])

        assert result.exit_code == 0
        assert '"editorial_comment"' in result.output

    def test_json_output(self, runner):
        result = runner.invoke(cli, ["-o", "json", "score", "Um, take it."])

        assert result.exit_code == 0
        assert '"overall_score"' in result.output
        assert '"filler_word"' in result.output


class TestReplayCommand:
    """Tests for the replay command."""

    def test_replay_table(self, runner, transcript_file):
        result = runner.invoke(cli, ["replay", str(transcript_file), "--platform", "zoom"])

        assert result.exit_code == 0, result.output
        assert "completed" in result.output
        assert "Category Scores" in result.output
        assert "headache" in result.output

    def test_replay_json(self, runner, transcript_file):
        result = runner.invoke(cli, ["-o", "json", "replay", str(transcript_file)])

        assert result.exit_code == 0, result.output
        assert '"status": "completed"' in result.output
        assert '"utterance_count": 3' in result.output

    def test_replay_without_enrichment(self, runner, transcript_file):
        result = runner.invoke(cli, ["replay", str(transcript_file), "--no-enrichment"])

        assert result.exit_code == 0, result.output
        assert "Medical Terms" not in result.output

    def test_empty_transcript(self, runner, tmp_path):
        path = tmp_path / "empty.jsonl"
        path.write_text("\n")

        result = runner.invoke(cli, ["replay", str(path)])

        assert result.exit_code == 1
        assert "empty" in result.output


class TestToSourceMessage:
    """Tests for JSONL line conversion."""

    def test_plain_record_wrapped(self):
        message = to_source_message('{"text": "hola", "is_final": false, "speaker": "interpreter"}')

        result = message["results"][0]
        assert result["alternatives"][0]["transcript"] == "hola"
        assert result["isFinal"] is False
        assert result["speaker"] == "interpreter"

    def test_source_shape_passed_through(self):
        line = '{"results": [{"alternatives": [{"transcript": "hi"}]}]}'

        assert to_source_message(line) == line

    def test_invalid_line_passed_through(self):
        assert to_source_message("not json") == "not json"
