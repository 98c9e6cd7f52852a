"""
Rule-based detectors, one per rubric category.

Each detector inspects a single final utterance and returns findings for its
own category only. Detectors hold no per-session state, so the pipeline can
run them concurrently.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from interpreter_core.analysis.base import Category, Finding
from interpreter_core.config import AnalysisSettings
from interpreter_core.streaming.models import Utterance


@dataclass(frozen=True)
class PatternRule:
    """A regex whose every match is one finding of ``finding_type``."""

    finding_type: str
    pattern: Pattern[str]
    detail: Dict[str, Any] = field(default_factory=dict)
    suggestion: Optional[str] = None
    standard: Optional[str] = None


def rule(finding_type: str, pattern: str, **kwargs: Any) -> PatternRule:
    return PatternRule(finding_type, re.compile(pattern, re.IGNORECASE), **kwargs)


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in re.split(r"[.!?]+", text) if s.strip()]


class Detector(ABC):
    """Base class for category detectors."""

    category: Category
    name: str = "detector"

    def __init__(self, deductions: Optional[Dict[str, float]] = None):
        self.deductions = deductions if deductions is not None else AnalysisSettings().deductions

    @abstractmethod
    async def detect(self, utterance: Utterance) -> List[Finding]:
        """Findings for this detector's category in one utterance."""
        pass

    def finding(
        self,
        finding_type: str,
        span: str,
        utterance: Utterance,
        detail: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
        standard: Optional[str] = None,
    ) -> Finding:
        return Finding(
            category=self.category,
            finding_type=finding_type,
            span=span,
            delta=self.deductions.get(finding_type, 0.0),
            utterance_timestamp=utterance.timestamp,
            detail=dict(detail or {}),
            suggestion=suggestion,
            standard=standard,
        )

    def match_rules(
        self,
        rules: Sequence[PatternRule],
        utterance: Utterance,
    ) -> List[Finding]:
        findings = []
        for r in rules:
            for match in r.pattern.finditer(utterance.text):
                findings.append(
                    self.finding(
                        r.finding_type,
                        match.group(0),
                        utterance,
                        detail=r.detail,
                        suggestion=r.suggestion,
                        standard=r.standard,
                    )
                )
        return findings


# =============================================================================
# Fluency
# =============================================================================


FILLER_WORDS: Dict[str, Tuple[str, ...]] = {
    "en": (
        "um", "uh", "like", "you know", "actually", "basically", "literally",
        "kind of", "sort of", "i mean", "well", "so", "right",
    ),
    "es": ("eh", "este", "pues", "bueno", "o sea", "como", "verdad", "entonces"),
}


class FluencyDetector(Detector):
    """False starts, stutters, filler words and unnatural pauses."""

    category = Category.FLUENCY
    name = "fluency"

    FALSE_START_PATTERNS = (
        re.compile(r"\b(\w+)\s*-\s*(?:I mean|sorry|actually)\s*,?\s*\1\b", re.IGNORECASE),
        re.compile(r"\b(\w+(?:\s+\w+)?)\s*-\s+(\w+)", re.IGNORECASE),
    )
    STUTTER_PATTERN = re.compile(r"\b(\w+)-\1(?:-\1)*\b", re.IGNORECASE)
    PAUSE_PATTERN = re.compile(r"\.{3,}|\s{3,}")

    def __init__(
        self,
        deductions: Optional[Dict[str, float]] = None,
        filler_words: Optional[Dict[str, Sequence[str]]] = None,
    ):
        super().__init__(deductions)
        words = filler_words or FILLER_WORDS
        self._fillers: Dict[str, List[Tuple[str, Pattern[str]]]] = {
            lang: [(w, re.compile(rf"\b{re.escape(w)}\b", re.IGNORECASE)) for w in fillers]
            for lang, fillers in words.items()
        }

    async def detect(self, utterance: Utterance) -> List[Finding]:
        text = utterance.text
        findings: List[Finding] = []

        claimed: List[Tuple[int, int]] = []
        for pattern in self.FALSE_START_PATTERNS:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < c_end and c_start < end for c_start, c_end in claimed):
                    continue
                claimed.append((start, end))
                findings.append(
                    self.finding(
                        "false_start",
                        match.group(0),
                        utterance,
                        suggestion="Practice pausing to gather thoughts before speaking",
                    )
                )

        for match in self.STUTTER_PATTERN.finditer(text):
            findings.append(
                self.finding(
                    "stutter",
                    match.group(0),
                    utterance,
                    suggestion="Take a breath and slow down delivery",
                )
            )

        for word, pattern in self._fillers_for(utterance.language):
            for match in pattern.finditer(text):
                findings.append(
                    self.finding(
                        "filler_word",
                        match.group(0),
                        utterance,
                        detail={"word": word},
                        suggestion="Practice pausing instead of using fillers",
                    )
                )

        for match in self.PAUSE_PATTERN.finditer(text):
            findings.append(
                self.finding(
                    "unnatural_pause",
                    match.group(0),
                    utterance,
                    suggestion="Maintain steady flow; pause only at natural breaks",
                )
            )

        return findings

    def _fillers_for(self, language: str) -> List[Tuple[str, Pattern[str]]]:
        base = (language or "en").split("-")[0].lower()
        return self._fillers.get(base) or self._fillers.get("en", [])


# =============================================================================
# Grammar
# =============================================================================


class GrammarDetector(Detector):
    """Subject-verb agreement, tense consistency and pronoun case."""

    category = Category.GRAMMAR
    name = "grammar"

    RULES = (
        rule("subject_verb_agreement", r"\b(he|she|it)\s+don't\b", detail={"correction": "doesn't"}),
        rule("subject_verb_agreement", r"\b(they|we)\s+was\b", detail={"correction": "were"}),
        rule("subject_verb_agreement", r"\b(he|she|it)\s+were\b", detail={"correction": "was"}),
        rule("subject_verb_agreement", r"\b(I|you|we|they)\s+is\b", detail={"correction": "are/am"}),
        rule(
            "tense_consistency",
            r"\b(had|has|have)\s+\w+ed\s+and\s+\w+s\b",
            suggestion="Maintain consistent tense throughout",
        ),
        rule("pronoun_error", r"\b(me and \w+)\s+(is|was|are)\b", detail={"correction": "[person] and I"}),
        rule("pronoun_error", r"\bbetween you and I\b", detail={"correction": "between you and me"}),
    )

    async def detect(self, utterance: Utterance) -> List[Finding]:
        return self.match_rules(self.RULES, utterance)


# =============================================================================
# Sentence Structure
# =============================================================================


class SentenceStructureDetector(Detector):
    """Fragments, run-on sentences and awkward phrasing."""

    category = Category.SENTENCE_STRUCTURE
    name = "sentence_structure"

    COMMON_VERBS = re.compile(
        r"\b(is|are|was|were|be|been|has|have|had|do|does|did|can|could|will|would|should|may|might)\b",
        re.IGNORECASE,
    )
    CLAUSE_JOINERS = re.compile(r",\s*(?:and|but|or|so)\s+", re.IGNORECASE)
    MAX_SENTENCE_WORDS = 30
    MAX_JOINED_CLAUSES = 2

    AWKWARD_RULES = (
        rule(
            "awkward_phrasing",
            r"\bin regards to\b",
            detail={"alternative": "regarding or with regard to"},
        ),
        rule(
            "awkward_phrasing",
            r"\bcould of\b|\bshould of\b|\bwould of\b",
            detail={"alternative": "could have/should have/would have"},
        ),
        rule("awkward_phrasing", r"\bfor free\b", detail={"alternative": "free or at no cost"}),
    )

    async def detect(self, utterance: Utterance) -> List[Finding]:
        findings: List[Finding] = []

        for sentence in split_sentences(utterance.text):
            words = sentence.split()
            if len(words) < 3 or not self.COMMON_VERBS.search(sentence):
                findings.append(
                    self.finding(
                        "sentence_fragment",
                        sentence,
                        utterance,
                        suggestion="Complete the thought with a full sentence",
                    )
                )
            elif (
                len(words) > self.MAX_SENTENCE_WORDS
                or len(self.CLAUSE_JOINERS.findall(sentence)) > self.MAX_JOINED_CLAUSES
            ):
                findings.append(
                    self.finding(
                        "run_on_sentence",
                        sentence,
                        utterance,
                        detail={"words": len(words)},
                        suggestion="Break into shorter, clearer sentences",
                    )
                )

        findings.extend(self.match_rules(self.AWKWARD_RULES, utterance))
        return findings


# =============================================================================
# Professional Conduct
# =============================================================================


class ProfessionalConductDetector(Detector):
    """Third-person rendering and interpreter commentary."""

    category = Category.PROFESSIONAL_CONDUCT
    name = "professional_conduct"

    RESPECT_FOR_PERSONS = "Standard 8: Respect for Persons"
    IMPARTIALITY = "Standard 5: Impartiality"

    RULES = (
        rule(
            "first_person_violation",
            r"\b(?:he|she|the patient|the doctor)\s+(?:says|said|is saying|wants to know)\b",
            suggestion='Interpret as "I" not "he/she says"',
            standard=RESPECT_FOR_PERSONS,
        ),
        rule(
            "first_person_violation",
            r"\bI'm interpreting that\b",
            suggestion='Interpret as "I" not "he/she says"',
            standard=RESPECT_FOR_PERSONS,
        ),
        rule(
            "first_person_violation",
            r"\bthe patient is asking\b",
            suggestion='Interpret as "I" not "he/she says"',
            standard=RESPECT_FOR_PERSONS,
        ),
        rule(
            "editorial_comment",
            r"\bI think\b|\bin my opinion\b|\byou should\b|\bif I were you\b",
            suggestion="Remove interpreter commentary; interpret only",
            standard=IMPARTIALITY,
        ),
    )

    async def detect(self, utterance: Utterance) -> List[Finding]:
        return self.match_rules(self.RULES, utterance)


def default_detectors(deductions: Optional[Dict[str, float]] = None) -> List[Detector]:
    return [
        FluencyDetector(deductions),
        GrammarDetector(deductions),
        SentenceStructureDetector(deductions),
        ProfessionalConductDetector(deductions),
    ]
