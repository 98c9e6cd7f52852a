"""Unit tests for the deep analysis client and reply parsing."""

import json

import httpx
import pytest

from interpreter_core.analysis import AnthropicDeepAnalyzer, parse_deep_analysis
from interpreter_core.config import DeepAnalysisSettings
from interpreter_core.core.errors import DetectorError, EnrichmentTimeout


REPLY = {
    "terminologyConsistency": 82,
    "styleConsistency": 90,
    "culturalAdaptations": ["Explained fasting in terms of Ramadan"],
    "registerAppropriate": True,
    "accuracyIssues": [],
    "cognitiveLoad": 55,
    "inconsistencies": ["'BP' and 'blood pressure' used interchangeably"],
}


class TestParseDeepAnalysis:
    """Tests for parse_deep_analysis."""

    def test_plain_json(self):
        result = parse_deep_analysis(json.dumps(REPLY))

        assert result.terminology_consistency == 82
        assert result.register_appropriate is True
        assert result.inconsistencies == ["'BP' and 'blood pressure' used interchangeably"]

    def test_json_inside_prose(self):
        """Test extracting the object from a fenced reply."""
        text = "Here you go:\n```json\n" + json.dumps(REPLY) + "\n```"

        assert parse_deep_analysis(text).style_consistency == 90

    def test_partial_object(self):
        result = parse_deep_analysis('{"styleConsistency": 70}')

        assert result.style_consistency == 70
        assert result.terminology_consistency is None
        assert result.accuracy_issues == []

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "no json here",
            "{not valid json}",
            '{"terminologyConsistency": 150}',
            '{"inconsistencies": "one string"}',
        ],
    )
    def test_unusable_reply(self, text):
        assert parse_deep_analysis(text) is None


def make_analyzer(handler) -> AnthropicDeepAnalyzer:
    settings = DeepAnalysisSettings(api_key="test-key", base_url="https://api.test/v1", timeout=1.0)
    client = httpx.AsyncClient(
        base_url=settings.base_url,
        transport=httpx.MockTransport(handler),
    )
    return AnthropicDeepAnalyzer(settings, client=client)


class TestAnthropicDeepAnalyzer:
    """Tests for AnthropicDeepAnalyzer."""

    @pytest.mark.asyncio
    async def test_analyze(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [{"type": "text", "text": json.dumps(REPLY)}]})

        analyzer = make_analyzer(handler)

        result = await analyzer.analyze("I have a headache.")

        assert result.cognitive_load == 55
        assert seen["path"] == "/v1/messages"
        assert "I have a headache." in seen["body"]["messages"][0]["content"]
        assert seen["body"]["max_tokens"] == 2000

        await analyzer.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        analyzer = make_analyzer(handler)

        with pytest.raises(EnrichmentTimeout):
            await analyzer.analyze("text")

        await analyzer.close()

    @pytest.mark.asyncio
    async def test_error_status(self):
        analyzer = make_analyzer(lambda request: httpx.Response(529))

        with pytest.raises(DetectorError, match="529") as exc_info:
            await analyzer.analyze("text")

        assert exc_info.value.category == "consistency"
        assert exc_info.value.recoverable is True

        await analyzer.close()

    @pytest.mark.asyncio
    async def test_reply_without_text(self):
        analyzer = make_analyzer(lambda request: httpx.Response(200, json={"content": []}))

        assert await analyzer.analyze("text") is None

        await analyzer.close()

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            AnthropicDeepAnalyzer(DeepAnalysisSettings(api_key=None))
