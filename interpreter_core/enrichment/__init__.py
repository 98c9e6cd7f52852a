"""
Terminology Enrichment
======================

Medical term detection with translation, pronunciation and definition
lookups, memoized in a bounded cache.

Author: Platform Engineering Team
Version: 2.0.0
"""

from interpreter_core.enrichment.cache import (
    CacheStats,
    EnrichmentCache,
    EnrichmentEntry,
    RecentTokens,
    normalize_token,
)
from interpreter_core.enrichment.providers import (
    DefinitionProvider,
    GlossaryDefinitionProvider,
    GoogleTranslationProvider,
    PassthroughTranslationProvider,
    PhoneticGuideProvider,
    PronunciationProvider,
    TranslationProvider,
    approximate_phonetics,
)
from interpreter_core.enrichment.terminology import (
    EnrichmentListener,
    TermDetector,
    TermEnrichment,
    TerminologyEnricher,
    extract_context,
)

__all__ = [
    # Cache
    "CacheStats",
    "EnrichmentCache",
    "EnrichmentEntry",
    "RecentTokens",
    "normalize_token",
    # Providers
    "DefinitionProvider",
    "GlossaryDefinitionProvider",
    "GoogleTranslationProvider",
    "PassthroughTranslationProvider",
    "PhoneticGuideProvider",
    "PronunciationProvider",
    "TranslationProvider",
    "approximate_phonetics",
    # Terminology
    "EnrichmentListener",
    "TermDetector",
    "TermEnrichment",
    "TerminologyEnricher",
    "extract_context",
]
