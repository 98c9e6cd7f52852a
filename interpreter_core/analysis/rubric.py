"""
Scoring rubric: weighted overall score, score bands, and standards compliance.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ScoreBand(str, Enum):
    """Interpretation of an overall score."""

    EXCELLENT = "excellent"
    PROFICIENT = "proficient"
    DEVELOPING = "developing"
    NEEDS_IMPROVEMENT = "needs_improvement"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def description(self) -> str:
        return _BAND_DESCRIPTIONS[self]


_BAND_DESCRIPTIONS = {
    ScoreBand.EXCELLENT: "Exceeds professional standards",
    ScoreBand.PROFICIENT: "Meets professional standards",
    ScoreBand.DEVELOPING: "Approaching professional standards",
    ScoreBand.NEEDS_IMPROVEMENT: "Below professional standards",
}


def interpret_score(score: float) -> ScoreBand:
    if score >= 90:
        return ScoreBand.EXCELLENT
    if score >= 80:
        return ScoreBand.PROFICIENT
    if score >= 70:
        return ScoreBand.DEVELOPING
    return ScoreBand.NEEDS_IMPROVEMENT


def weighted_overall(scores: Mapping[str, float], weights: Mapping[str, float]) -> float:
    """``sum(score_i * weight_i)`` over the weighted categories.

    A weighted category with no score counts as 0.
    """
    return sum(scores.get(name, 0.0) * weight for name, weight in weights.items())


@dataclass(frozen=True)
class Standard:
    """A professional standard checked against one category score."""

    key: str
    title: str
    category: str
    threshold: float


STANDARDS = (
    Standard("accuracy", "Accuracy and Completeness", "accuracy", 85.0),
    Standard(
        "impartiality",
        "Impartiality and Avoidance of Conflict of Interest",
        "professional_conduct",
        90.0,
    ),
    Standard("respect_for_persons", "Respect for Persons", "cultural_competency", 80.0),
)


def compliance_report(
    scores: Mapping[str, float],
    weights: Optional[Mapping[str, float]] = None,
) -> Dict[str, Dict[str, Any]]:
    """Compliance status for every standard whose category carries weight."""
    report: Dict[str, Dict[str, Any]] = {}
    for standard in STANDARDS:
        if weights is not None and not weights.get(standard.category):
            report[standard.key] = {
                "title": standard.title,
                "category": standard.category,
                "applicable": False,
                "status": "not_applicable",
            }
            continue

        score = scores.get(standard.category, 0.0)
        report[standard.key] = {
            "title": standard.title,
            "category": standard.category,
            "applicable": True,
            "status": "compliant" if score >= standard.threshold else "needs_improvement",
            "score": round(score, 2),
            "threshold": standard.threshold,
            "gap": round(max(0.0, standard.threshold - score), 2),
        }
    return report
