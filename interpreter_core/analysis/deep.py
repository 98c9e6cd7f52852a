"""
Deep analysis pass over the recent utterance window.

A higher-latency model call that returns a bounded JSON object of
consistency scores and observations. Anything that does not parse into the
expected shape is ignored.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from interpreter_core.config import DeepAnalysisSettings
from interpreter_core.core.errors import DetectorError, EnrichmentTimeout

logger = structlog.get_logger(__name__)


SYSTEM_PROMPT = """You are a clinical medical interpretation evaluator. You analyze interpreter performance and provide ONLY structured JSON output.

CRITICAL INSTRUCTIONS:
- Output ONLY valid JSON. No explanations, no commentary, no markdown formatting.
- Do not include any text before or after the JSON object.
- Provide scores as integers from 0-100.
- Include specific examples as strings in arrays.
- Be concise and factual in all assessments."""

USER_PROMPT = """Analyze the following medical interpretation transcript for quality metrics. Return ONLY a JSON object with this exact structure:

{{
  "terminologyConsistency": <0-100 score>,
  "styleConsistency": <0-100 score>,
  "culturalAdaptations": [<strings describing cultural adaptations observed>],
  "registerAppropriate": <true/false>,
  "accuracyIssues": [<strings describing accuracy problems>],
  "cognitiveLoad": <0-100 score>,
  "inconsistencies": [<strings describing terminology or style inconsistencies>]
}}

Transcript:
{transcript}

Remember: Return ONLY the JSON object, nothing else."""

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


class DeepAnalysisResult(BaseModel):
    """Validated deep analysis output."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    terminology_consistency: Optional[float] = Field(
        default=None, ge=0, le=100, alias="terminologyConsistency"
    )
    style_consistency: Optional[float] = Field(
        default=None, ge=0, le=100, alias="styleConsistency"
    )
    cognitive_load: Optional[float] = Field(default=None, ge=0, le=100, alias="cognitiveLoad")
    register_appropriate: Optional[bool] = Field(default=None, alias="registerAppropriate")
    cultural_adaptations: List[str] = Field(default_factory=list, alias="culturalAdaptations")
    accuracy_issues: List[str] = Field(default_factory=list, alias="accuracyIssues")
    inconsistencies: List[str] = Field(default_factory=list)


def parse_deep_analysis(text: str) -> Optional[DeepAnalysisResult]:
    """Extract the JSON object from a model reply, or None if there is none."""
    if not text:
        return None
    match = JSON_OBJECT_PATTERN.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
        if not isinstance(data, dict):
            return None
        return DeepAnalysisResult.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.debug(f"Ignoring unparseable deep analysis reply: {e}")
        return None


class DeepAnalyzer(ABC):
    """Runs one deep analysis over a block of transcript text."""

    @abstractmethod
    async def analyze(self, transcript: str) -> Optional[DeepAnalysisResult]:
        """Return the parsed result, or None if the reply was unusable."""
        pass

    async def close(self) -> None:
        pass


class AnthropicDeepAnalyzer(DeepAnalyzer):
    """Deep analysis via the Anthropic messages API."""

    API_VERSION = "2023-06-01"

    def __init__(
        self,
        settings: DeepAnalysisSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not settings.api_key:
            raise ValueError("Anthropic API key is required for deep analysis")
        self.settings = settings
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={
                    "x-api-key": self.settings.api_key,
                    "anthropic-version": self.API_VERSION,
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.settings.timeout),
            )
        return self._client

    async def analyze(self, transcript: str) -> Optional[DeepAnalysisResult]:
        body = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [
                {"role": "user", "content": USER_PROMPT.format(transcript=transcript)},
            ],
        }

        try:
            client = await self._get_client()
            response = await client.post("/messages", json=body)
        except httpx.TimeoutException:
            raise EnrichmentTimeout(
                f"Deep analysis timed out after {self.settings.timeout}s",
                source="deep_analysis",
            )
        except httpx.HTTPError as e:
            raise DetectorError(
                f"Deep analysis request failed: {e}",
                category="consistency",
                source="deep_analysis",
            )

        if response.status_code != 200:
            raise DetectorError(
                f"Deep analysis API returned {response.status_code}",
                category="consistency",
                source="deep_analysis",
            )

        try:
            text = response.json()["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.debug("Deep analysis reply has no text content")
            return None

        return parse_deep_analysis(text)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
