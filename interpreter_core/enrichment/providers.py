"""
Lookup providers for terminology enrichment.

Each provider answers one question about a term: its translation, how to
pronounce it, or what it means. Providers raise ``EnrichmentLookupError``
when a lookup fails so the caller can decide on fallbacks and caching.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
import structlog

from interpreter_core.core.errors import EnrichmentLookupError

logger = structlog.get_logger(__name__)


# =============================================================================
# Translation
# =============================================================================


class TranslationProvider(ABC):
    """Translates a term into a target language."""

    @abstractmethod
    async def translate(self, term: str, target_language: str) -> str:
        pass

    async def close(self) -> None:
        pass


class PassthroughTranslationProvider(TranslationProvider):
    """Used when no translation service is configured."""

    async def translate(self, term: str, target_language: str) -> str:
        return f"[{term}]"


class GoogleTranslationProvider(TranslationProvider):
    """Google Cloud Translation v2 over HTTP."""

    def __init__(
        self,
        api_key: str,
        url: str = "https://translation.googleapis.com/language/translate/v2",
        source_language: str = "en",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("Translation API key is required")
        self.api_key = api_key
        self.url = url
        self.source_language = source_language
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def translate(self, term: str, target_language: str) -> str:
        try:
            client = await self._get_client()
            response = await client.post(
                self.url,
                params={"key": self.api_key},
                json={
                    "q": term,
                    "target": target_language,
                    "source": self.source_language,
                    "format": "text",
                },
            )
        except httpx.TimeoutException:
            raise EnrichmentLookupError(
                f"Translation timed out after {self.timeout}s",
                source="translation",
            )
        except httpx.HTTPError as e:
            raise EnrichmentLookupError(
                f"Translation request failed: {e}",
                source="translation",
            )

        if response.status_code != 200:
            logger.warning(
                "Translation API error",
                status_code=response.status_code,
                term=term,
            )
            raise EnrichmentLookupError(
                f"Translation API returned {response.status_code}",
                source="translation",
            )

        try:
            return response.json()["data"]["translations"][0]["translatedText"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentLookupError(
                f"Unexpected translation response: {e}",
                source="translation",
            )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


# =============================================================================
# Pronunciation
# =============================================================================


PHONETIC_GUIDE: Dict[str, str] = {
    "diagnosis": "dy-uhg-NOH-sis",
    "prognosis": "prog-NOH-sis",
    "hypertension": "hy-per-TEN-shun",
    "diabetes": "dy-uh-BEE-teez",
    "asthma": "AZ-muh",
    "pneumonia": "noo-MOH-nyuh",
    "bronchitis": "brong-KY-tis",
    "arthritis": "ar-THRY-tis",
    "migraine": "MY-grayn",
    "stroke": "STROHK",
    "cancer": "KAN-ser",
    "tumor": "TOO-mer",
    "antibiotic": "an-tee-by-AH-tik",
    "analgesic": "an-uhl-JEE-zik",
    "anesthetic": "an-uhs-THET-ik",
    "vaccine": "vak-SEEN",
    "insulin": "IN-suh-lin",
    "steroid": "STEHR-oyd",
    "chemotherapy": "kee-moh-THER-uh-pee",
    "cardiovascular": "kar-dee-oh-VAS-kyuh-ler",
    "respiratory": "RES-puh-ruh-tor-ee",
    "gastrointestinal": "gas-troh-in-TES-tuh-nuhl",
    "neurological": "noor-uh-LAH-jih-kuhl",
    "endocrine": "EN-doh-krin",
    "prescription": "pri-SKRIP-shun",
    "medication": "med-i-KAY-shun",
    "treatment": "TREET-ment",
    "procedure": "pruh-SEE-jer",
    "surgery": "SUR-juh-ree",
    "biopsy": "BY-op-see",
    "endoscopy": "en-DAHS-kuh-pee",
    "colonoscopy": "koh-luh-NAHS-kuh-pee",
    "mammogram": "MAM-uh-gram",
    "symptoms": "SIMP-tumz",
    "inflammation": "in-fluh-MAY-shun",
    "infection": "in-FEK-shun",
    "fracture": "FRAK-chur",
    "nausea": "NAW-zee-uh",
    "dizziness": "DIZ-ee-nes",
    "fatigue": "fuh-TEEG",
}

SYLLABLE_PATTERN = re.compile(
    r"[^aeiou]*[aeiou]+(?:[^aeiou]*$|[^aeiou](?=[^aeiou]))?",
    re.IGNORECASE,
)


def approximate_phonetics(term: str) -> str:
    """Rough syllable split joined with hyphens, upper-cased."""
    syllables = SYLLABLE_PATTERN.findall(term.lower())
    if not syllables:
        return term.upper()
    return "-".join(s.upper() for s in syllables)


class PronunciationProvider(ABC):
    """Produces an English pronunciation guide for a term."""

    @abstractmethod
    async def pronounce(self, term: str) -> str:
        pass


class PhoneticGuideProvider(PronunciationProvider):
    """Glossary lookup with a syllable approximation fallback."""

    def __init__(self, guide: Optional[Dict[str, str]] = None):
        self.guide = guide if guide is not None else PHONETIC_GUIDE

    async def pronounce(self, term: str) -> str:
        return self.guide.get(term.lower()) or approximate_phonetics(term)


# =============================================================================
# Definitions
# =============================================================================


DEFINITIONS: Dict[str, str] = {
    "diagnosis": "Identification of a disease or condition by examination",
    "prognosis": "Predicted course and outcome of a disease",
    "hypertension": "High blood pressure (above 140/90 mmHg)",
    "diabetes": "Metabolic disorder affecting blood sugar regulation",
    "asthma": "Chronic respiratory condition causing breathing difficulties",
    "pneumonia": "Infection causing inflammation in the lungs",
    "bronchitis": "Inflammation of the bronchial tubes",
    "arthritis": "Inflammation of one or more joints",
    "migraine": "Severe recurring headache often with nausea",
    "stroke": "Interruption of blood supply to the brain",
    "cancer": "Disease caused by uncontrolled cell growth",
    "tumor": "Abnormal growth of tissue",
    "prescription": "Written instruction for medication from healthcare provider",
    "cardiovascular": "Relating to the heart and blood vessels",
    "respiratory": "Relating to breathing and the lungs",
    "gastrointestinal": "Relating to the stomach and intestines",
    "neurological": "Relating to the nervous system",
    "antibiotic": "Medicine that fights bacterial infections",
    "analgesic": "Pain-relieving medication",
    "anesthetic": "Drug that causes loss of sensation or consciousness",
    "vaccine": "Biological preparation that provides immunity to disease",
    "insulin": "Hormone that regulates blood sugar levels",
    "biopsy": "Removal of tissue sample for diagnostic examination",
    "endoscopy": "Procedure using camera to examine internal organs",
    "colonoscopy": "Examination of the colon using a camera",
    "chronic": "Persisting for a long time or constantly recurring",
    "acute": "Severe and sudden in onset",
    "benign": "Not cancerous or harmful",
    "malignant": "Cancerous; capable of spreading",
}

SUFFIX_DEFINITIONS = (
    ("itis", "Inflammation of the {root}"),
    ("ectomy", "Surgical removal of the {root}"),
    ("otomy", "Surgical incision into the {root}"),
    ("osis", "Abnormal condition or disease of the {root}"),
    ("pathy", "Disease of the {root}"),
    ("plasty", "Surgical repair of the {root}"),
    ("scopy", "Visual examination of the {root}"),
)


class DefinitionProvider(ABC):
    """Produces a plain-language definition of a term."""

    @abstractmethod
    async def define(self, term: str) -> str:
        pass


class GlossaryDefinitionProvider(DefinitionProvider):
    """Glossary lookup, then suffix inference, then a generic label."""

    def __init__(self, glossary: Optional[Dict[str, str]] = None):
        self.glossary = glossary if glossary is not None else DEFINITIONS

    async def define(self, term: str) -> str:
        lower = term.lower()
        if lower in self.glossary:
            return self.glossary[lower]

        for suffix, template in SUFFIX_DEFINITIONS:
            if lower.endswith(suffix) and len(lower) > len(suffix):
                return template.format(root=lower[: -len(suffix)])

        return f"Medical term: {term}"
