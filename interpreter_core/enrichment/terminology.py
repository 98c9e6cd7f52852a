"""
Medical terminology detection and enrichment.

The enricher consumes final utterances, finds medical terms, and emits one
``TermEnrichment`` per newly seen term with its translation, pronunciation
and definition. Lookups for a term run in parallel and are cached only when
all of them succeed.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence

import structlog

from interpreter_core.config import EnrichmentSettings
from interpreter_core.core.errors import EnrichmentLookupError, InterpreterError
from interpreter_core.enrichment.cache import EnrichmentCache, EnrichmentEntry, RecentTokens
from interpreter_core.enrichment.providers import (
    DefinitionProvider,
    GlossaryDefinitionProvider,
    PassthroughTranslationProvider,
    PhoneticGuideProvider,
    PronunciationProvider,
    TranslationProvider,
    approximate_phonetics,
)
from interpreter_core.streaming.models import Utterance

logger = structlog.get_logger(__name__)


MEDICAL_TERM_PATTERNS: Sequence[str] = (
    r"\b(diagnosis|prognosis|symptoms?|treatment|prescription|medication|therapy|surgery"
    r"|procedure|examination|screening|assessment|evaluation)\b",
    r"\b(hypertension|diabetes|asthma|pneumonia|bronchitis|arthritis|infection|inflammation"
    r"|fracture|migraine|stroke|cancer|tumor|depression|anxiety)\b",
    r"\b(antibiotic|analgesic|anesthetic|vaccine|insulin|steroid|antiviral|antihistamine"
    r"|antidepressant|chemotherapy|radiation|immunotherapy)\b",
    r"\b(cardiovascular|respiratory|gastrointestinal|neurological|dermatological|orthopedic"
    r"|endocrine|reproductive|urinary|digestive)\b",
    r"\b(CT scan|CAT scan|MRI|X-ray|ultrasound|ECG|EKG|blood test|biopsy|endoscopy"
    r"|colonoscopy|mammogram|PET scan)\b",
    r"\b(chronic|acute|benign|malignant|congenital|hereditary|idiopathic|symptomatic"
    r"|asymptomatic|terminal|progressive|degenerative)\b",
    r"\b(physician|surgeon|cardiologist|radiologist|anesthesiologist|oncologist|pediatrician"
    r"|psychiatrist|neurologist|dermatologist)\b",
    r"\b(heart|lung|liver|kidney|brain|stomach|intestine|pancreas|spleen|thyroid|artery"
    r"|vein|muscle|bone|joint|nerve)\b",
    r"\b(\d+\s*(?:mg|ml|cc|units?|mmHg|bpm|degrees?|celsius|fahrenheit))\b",
    r"\b([a-z]{3,}itis|[a-z]{3,}osis|[a-z]{3,}emia|[a-z]{3,}pathy|[a-z]{3,}ectomy"
    r"|[a-z]{3,}otomy|[a-z]{3,}plasty|[a-z]{3,}scopy)\b",
    r"\b(pain|fever|nausea|vomiting|diarrhea|constipation|fatigue|weakness|dizziness"
    r"|headache|cough|shortness of breath)\b",
)


class TermDetector:
    """Regex rule set that finds medical terms in free text."""

    def __init__(
        self,
        patterns: Optional[Sequence[str]] = None,
        min_length: int = 3,
    ):
        self.min_length = min_length
        self._patterns: List[Pattern[str]] = [
            re.compile(p, re.IGNORECASE) for p in (patterns or MEDICAL_TERM_PATTERNS)
        ]

    def detect(self, text: str) -> List[str]:
        """Distinct terms in order of first match, case-insensitively deduplicated."""
        seen = set()
        terms: List[str] = []
        for pattern in self._patterns:
            for match in pattern.finditer(text):
                term = match.group(0).strip()
                key = term.lower()
                if len(term) < self.min_length or key in seen:
                    continue
                seen.add(key)
                terms.append(term)
        return terms


def extract_context(text: str, term: str, radius: int = 50) -> str:
    """Text surrounding the first occurrence of ``term``, with ellipses."""
    index = text.lower().find(term.lower())
    if index == -1:
        return text

    start = max(0, index - radius)
    end = min(len(text), index + len(term) + radius)
    context = text[start:end]
    if start > 0:
        context = "..." + context
    if end < len(text):
        context = context + "..."
    return context


@dataclass
class TermEnrichment:
    """A detected term with its enrichment, ready for presentation."""

    term: str
    translation: str
    phonetics: str
    definition: str
    language: str
    context: str
    utterance_timestamp: float
    session_id: Optional[str] = None
    cached: bool = False
    complete: bool = True
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "translation": self.translation,
            "phonetics": self.phonetics,
            "definition": self.definition,
            "language": self.language,
            "context": self.context,
            "utterance_timestamp": self.utterance_timestamp,
            "session_id": self.session_id,
            "cached": self.cached,
            "complete": self.complete,
            "errors": self.errors,
        }


class EnrichmentListener:
    """Receives the enricher's output."""

    async def on_term_enriched(self, enrichment: TermEnrichment) -> None:
        pass

    async def on_enrichment_error(self, error: InterpreterError) -> None:
        pass


class TerminologyEnricher:
    """
    Detects medical terms in final utterances and enriches each new one.

    Not safe for concurrent ``process`` calls: the cache and the recent-token
    set belong to the single task that feeds this enricher.
    """

    def __init__(
        self,
        listener: Optional[EnrichmentListener] = None,
        settings: Optional[EnrichmentSettings] = None,
        translator: Optional[TranslationProvider] = None,
        pronouncer: Optional[PronunciationProvider] = None,
        definer: Optional[DefinitionProvider] = None,
        detector: Optional[TermDetector] = None,
        cache: Optional[EnrichmentCache] = None,
    ):
        self.settings = settings or EnrichmentSettings()
        self.listener = listener or EnrichmentListener()
        self.translator = translator or PassthroughTranslationProvider()
        self.pronouncer = pronouncer or PhoneticGuideProvider()
        self.definer = definer or GlossaryDefinitionProvider()
        self.detector = detector or TermDetector(min_length=self.settings.min_term_length)
        self.cache = cache or EnrichmentCache(self.settings.cache_capacity)
        self.recent = RecentTokens(self.settings.recent_tokens)

        self._terms_detected = 0
        self._terms_emitted = 0
        self._lookup_failures = 0

    @property
    def terms_detected(self) -> int:
        return self._terms_detected

    def status(self) -> Dict[str, Any]:
        return {
            "terms_detected": self._terms_detected,
            "terms_emitted": self._terms_emitted,
            "lookup_failures": self._lookup_failures,
            "cache": self.cache.stats().to_dict(),
        }

    async def process(self, utterance: Utterance) -> List[TermEnrichment]:
        """Enrich the new terms of one final utterance."""
        if not utterance.is_final or not utterance.text:
            return []

        terms = self.detector.detect(utterance.text)
        if not terms:
            return []

        self._terms_detected += len(terms)
        emitted: List[TermEnrichment] = []
        for term in terms:
            if term in self.recent:
                continue
            enrichment = await self._enrich(term, utterance)
            emitted.append(enrichment)
            self._terms_emitted += 1
            try:
                await self.listener.on_term_enriched(enrichment)
            except Exception as e:
                logger.error(f"Enrichment listener failed: {e}", term=term)

        return emitted

    async def _enrich(self, term: str, utterance: Utterance) -> TermEnrichment:
        lang = self.settings.target_language
        context = extract_context(utterance.text, term, self.settings.context_chars)

        entry = self.cache.get(term, lang)
        if entry is not None:
            self.recent.add(term)
            return self._build(entry, context, utterance, cached=True)

        timeout = self.settings.lookup_timeout
        translation, phonetics, definition = await asyncio.gather(
            asyncio.wait_for(self.translator.translate(term, lang), timeout),
            asyncio.wait_for(self.pronouncer.pronounce(term), timeout),
            asyncio.wait_for(self.definer.define(term), timeout),
            return_exceptions=True,
        )

        errors: List[str] = []
        if isinstance(translation, BaseException):
            errors.append(f"translation: {translation or type(translation).__name__}")
            translation = term
        if isinstance(phonetics, BaseException):
            errors.append(f"pronunciation: {phonetics or type(phonetics).__name__}")
            phonetics = approximate_phonetics(term)
        if isinstance(definition, BaseException):
            errors.append(f"definition: {definition or type(definition).__name__}")
            definition = f"Medical term: {term}"

        entry = EnrichmentEntry(
            term=term,
            translation=translation,
            phonetics=phonetics,
            definition=definition,
            language=lang,
        )

        if errors:
            self._lookup_failures += 1
            logger.warning(f"Enrichment incomplete for '{term}'", errors=errors)
            await self._report(
                EnrichmentLookupError(
                    f"Lookup failed for term '{term}': {'; '.join(errors)}",
                    source="terminology",
                    details={"term": term, "errors": errors},
                )
            )
            result = self._build(entry, context, utterance, cached=False)
            result.complete = False
            result.errors = errors
            return result

        self.cache.put(term, lang, entry)
        self.recent.add(term)
        return self._build(entry, context, utterance, cached=False)

    def _build(
        self,
        entry: EnrichmentEntry,
        context: str,
        utterance: Utterance,
        cached: bool,
    ) -> TermEnrichment:
        return TermEnrichment(
            term=entry.term,
            translation=entry.translation,
            phonetics=entry.phonetics,
            definition=entry.definition,
            language=entry.language,
            context=context,
            utterance_timestamp=utterance.timestamp,
            session_id=utterance.session_id,
            cached=cached,
        )

    async def _report(self, error: InterpreterError) -> None:
        try:
            await self.listener.on_enrichment_error(error)
        except Exception as e:
            logger.error(f"Enrichment listener failed handling error: {e}")

    def reset(self) -> None:
        self.cache.clear()
        self.recent.clear()

    async def close(self) -> None:
        await self.translator.close()
