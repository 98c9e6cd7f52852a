"""
Final performance report assembly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from interpreter_core.analysis.base import (
    Category,
    CategoryScore,
    Completeness,
    ConsistencyScores,
    Finding,
    Severity,
)
from interpreter_core.analysis.rubric import (
    ScoreBand,
    compliance_report,
    interpret_score,
    weighted_overall,
)
from interpreter_core.config import AnalysisSettings


# Issue text and recommendations per finding type.
SUGGESTION_LIBRARY: Dict[str, Tuple[str, List[str]]] = {
    "first_person_violation": (
        "Third-person rendering instead of first person",
        [
            'Always interpret as "I", not "he/she says"',
            "Practice maintaining first person consistently",
            "Review Standard 8: Respect for Persons",
        ],
    ),
    "editorial_comment": (
        "Interpreter commentary added to the message",
        [
            "Interpret only what is said",
            "No personal opinions or advice",
            "Review Standard 5: Impartiality",
        ],
    ),
    "subject_verb_agreement": (
        "Subject-verb agreement errors",
        ["Review verb agreement with plural and singular subjects"],
    ),
    "tense_consistency": (
        "Inconsistent verb tense",
        ["Maintain consistent tense throughout"],
    ),
    "pronoun_error": (
        "Pronoun case errors",
        ['Use "[person] and I" as a subject and "you and me" as an object'],
    ),
    "false_start": (
        "False starts",
        [
            "Practice pausing to gather thoughts before speaking",
            "Improve note-taking to reduce cognitive load",
        ],
    ),
    "sentence_fragment": (
        "Incomplete sentences",
        ["Complete the thought with a full sentence"],
    ),
    "run_on_sentence": (
        "Run-on sentences",
        ["Break into shorter, clearer sentences"],
    ),
    "stutter": (
        "Stuttered words",
        ["Take a breath and slow down delivery"],
    ),
    "unnatural_pause": (
        "Unnatural pauses",
        ["Maintain steady flow; pause only at natural breaks"],
    ),
    "awkward_phrasing": (
        "Awkward phrasing",
        ["Prefer the standard alternative for common awkward phrases"],
    ),
    "filler_word": (
        "Filler words",
        [
            "Practice pausing instead of using fillers",
            "Record and review your interpretations",
        ],
    ),
}


@dataclass
class Suggestion:
    """One ranked recommendation."""

    priority: Severity
    category: str
    issue: str
    occurrences: int = 0
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value,
            "category": self.category,
            "issue": self.issue,
            "occurrences": self.occurrences,
            "recommendations": self.recommendations,
        }


@dataclass
class ReportMetadata:
    """Session-level figures."""

    session_id: Optional[str]
    duration_seconds: float
    word_count: int
    utterance_count: int
    average_wpm: int
    target_wpm: int
    min_wpm: int
    max_wpm: int
    generated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def pace(self) -> str:
        if not self.word_count or self.duration_seconds <= 0:
            return "insufficient_data"
        if self.average_wpm < self.min_wpm:
            return "below_target"
        if self.average_wpm > self.max_wpm:
            return "above_target"
        return "within_target"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "duration_seconds": round(self.duration_seconds, 2),
            "word_count": self.word_count,
            "utterance_count": self.utterance_count,
            "average_wpm": self.average_wpm,
            "target_wpm": self.target_wpm,
            "wpm_range": [self.min_wpm, self.max_wpm],
            "pace": self.pace,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class PerformanceReport:
    """Final aggregated quality report for one session."""

    metadata: ReportMetadata
    overall_score: float
    interpretation: ScoreBand
    category_scores: Dict[str, float]
    findings: Dict[str, List[Finding]]
    top_suggestions: List[Suggestion]
    strengths: List[Dict[str, Any]]
    improvement_areas: List[Dict[str, Any]]
    compliance: Dict[str, Dict[str, Any]]
    consistency: ConsistencyScores
    completeness: Completeness

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "overall_score": round(self.overall_score, 2),
            "interpretation": {
                "band": self.interpretation.value,
                "label": self.interpretation.label,
                "description": self.interpretation.description,
            },
            "category_scores": {k: round(v, 2) for k, v in self.category_scores.items()},
            "findings": {
                k: [f.to_dict() for f in findings] for k, findings in self.findings.items()
            },
            "top_suggestions": [s.to_dict() for s in self.top_suggestions],
            "strengths": self.strengths,
            "improvement_areas": self.improvement_areas,
            "compliance": self.compliance,
            "consistency": self.consistency.to_dict(),
            "completeness": self.completeness.to_dict(),
        }


def rank_suggestions(
    scores: Mapping[Category, CategoryScore],
    consistency: ConsistencyScores,
    limit: int = 5,
) -> List[Suggestion]:
    """Suggestions ordered by severity, then by number of occurrences."""
    grouped: Dict[str, List[Finding]] = {}
    for category_score in scores.values():
        for finding in category_score.findings:
            grouped.setdefault(finding.finding_type, []).append(finding)

    suggestions: List[Suggestion] = []
    for finding_type, findings in grouped.items():
        issue, recommendations = SUGGESTION_LIBRARY.get(
            finding_type,
            (finding_type.replace("_", " ").capitalize(), []),
        )
        if not recommendations:
            recommendations = sorted({f.suggestion for f in findings if f.suggestion})
        suggestions.append(
            Suggestion(
                priority=max((f.severity for f in findings), key=lambda s: s.rank),
                category=findings[0].category.value,
                issue=issue,
                occurrences=len(findings),
                recommendations=list(recommendations),
            )
        )

    accuracy = scores.get(Category.ACCURACY)
    if accuracy is not None and accuracy.score < 85:
        suggestions.append(
            Suggestion(
                priority=Severity.HIGH,
                category=Category.ACCURACY.value,
                issue="Message completeness concerns",
                recommendations=[
                    "Review note-taking techniques",
                    "Practice memory retention exercises",
                ],
            )
        )

    if consistency.inconsistencies:
        suggestions.append(
            Suggestion(
                priority=Severity.MEDIUM,
                category="consistency",
                issue="Terminology or style inconsistencies",
                occurrences=len(consistency.inconsistencies),
                recommendations=consistency.inconsistencies[:3],
            )
        )

    suggestions.sort(key=lambda s: (s.priority.rank, s.occurrences), reverse=True)
    return suggestions[:limit]


def build_report(
    scores: Mapping[Category, CategoryScore],
    consistency: ConsistencyScores,
    completeness: Completeness,
    metadata: ReportMetadata,
    settings: AnalysisSettings,
) -> PerformanceReport:
    category_scores = {c.value: s.score for c, s in scores.items()}
    overall = weighted_overall(category_scores, settings.weights)

    strengths = [
        {
            "category": name,
            "score": round(score, 2),
            "comment": f"Excellent {name.replace('_', ' ')} demonstrated",
        }
        for name, score in category_scores.items()
        if score >= settings.strength_threshold
    ]

    improvement_areas = sorted(
        (
            {
                "category": c.value,
                "score": round(s.score, 2),
                "issue_count": s.issue_count,
                "priority": "high" if s.score < 70 else "medium",
            }
            for c, s in scores.items()
            if s.score < settings.improvement_threshold
        ),
        key=lambda area: area["score"],
    )

    return PerformanceReport(
        metadata=metadata,
        overall_score=overall,
        interpretation=interpret_score(overall),
        category_scores=category_scores,
        findings={c.value: list(s.findings) for c, s in scores.items()},
        top_suggestions=rank_suggestions(scores, consistency, settings.max_suggestions),
        strengths=strengths,
        improvement_areas=improvement_areas,
        compliance=compliance_report(category_scores, settings.weights),
        consistency=consistency,
        completeness=completeness,
    )
