"""
Analysis Base Types

Core types for interpreter performance analysis: rubric categories, findings
produced by detectors, and the running per-category scores.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


# =============================================================================
# Categories and Severity
# =============================================================================


class Category(str, Enum):
    """Scored rubric categories."""

    ACCURACY = "accuracy"
    PROFESSIONAL_CONDUCT = "professional_conduct"
    FLUENCY = "fluency"
    GRAMMAR = "grammar"
    SENTENCE_STRUCTURE = "sentence_structure"
    CULTURAL_COMPETENCY = "cultural_competency"


class Severity(str, Enum):
    """How much a finding matters."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def from_delta(cls, delta: float) -> "Severity":
        """Severity implied by a point deduction."""
        magnitude = abs(delta)
        if magnitude >= 5:
            return cls.CRITICAL
        if magnitude >= 2:
            return cls.HIGH
        if magnitude >= 1:
            return cls.MEDIUM
        return cls.LOW


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


# =============================================================================
# Findings and Scores
# =============================================================================


@dataclass
class Finding:
    """One issue a detector found in one utterance."""

    category: Category
    finding_type: str
    span: str
    delta: float
    utterance_timestamp: float
    detail: Dict[str, Any] = field(default_factory=dict)
    suggestion: Optional[str] = None
    standard: Optional[str] = None

    @property
    def severity(self) -> Severity:
        return Severity.from_delta(self.delta)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "type": self.finding_type,
            "span": self.span,
            "delta": self.delta,
            "severity": self.severity.value,
            "utterance_timestamp": self.utterance_timestamp,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "standard": self.standard,
        }


@dataclass
class CategoryScore:
    """Running score for one category, starting at 100."""

    category: Category
    score: float = 100.0
    findings: List[Finding] = field(default_factory=list)

    def apply(self, findings: Iterable[Finding]) -> float:
        """Record findings and apply their summed deltas, clamped to [0, 100]."""
        findings = list(findings)
        if not findings:
            return self.score
        self.findings.extend(findings)
        self.score = clamp_score(self.score + sum(f.delta for f in findings))
        return self.score

    @property
    def issue_count(self) -> int:
        return len(self.findings)

    def counts_by_type(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for finding in self.findings:
            counts[finding.finding_type] = counts.get(finding.finding_type, 0) + 1
        return counts

    def reset(self) -> None:
        self.score = 100.0
        self.findings.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "score": round(self.score, 2),
            "issue_count": self.issue_count,
            "issues_by_type": self.counts_by_type(),
        }


@dataclass
class ConsistencyScores:
    """Scores set by the periodic deep analysis pass."""

    terminology: float = 100.0
    style: float = 100.0
    cognitive_load: Optional[float] = None
    register_appropriate: Optional[bool] = None
    inconsistencies: List[str] = field(default_factory=list)
    cultural_adaptations: List[str] = field(default_factory=list)
    accuracy_issues: List[str] = field(default_factory=list)
    passes_applied: int = 0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "terminology_consistency": self.terminology,
            "style_consistency": self.style,
            "cognitive_load": self.cognitive_load,
            "register_appropriate": self.register_appropriate,
            "inconsistencies": list(self.inconsistencies),
            "cultural_adaptations": list(self.cultural_adaptations),
            "accuracy_issues": list(self.accuracy_issues),
            "passes_applied": self.passes_applied,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class Completeness:
    """Message-unit counters."""

    message_units: int = 0
    interpreted_units: int = 0

    @property
    def completion_rate(self) -> float:
        if not self.message_units:
            return 100.0
        return self.interpreted_units / self.message_units * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_units": self.message_units,
            "interpreted_units": self.interpreted_units,
            "completion_rate": round(self.completion_rate, 2),
        }
