"""
Interpreter Performance Analysis
================================

Rubric-based scoring of final utterances: concurrent per-category detectors,
a weighted overall score, a periodic deep analysis pass over recent text,
and the final performance report.

Usage:
    from interpreter_core.analysis import AnalysisPipeline

    pipeline = AnalysisPipeline()
    await pipeline.start()
    await pipeline.process_final_utterance(utterance)
    report = await pipeline.stop()
    print(report.overall_score, report.interpretation.label)

Author: Platform Engineering Team
Version: 2.0.0
"""

from interpreter_core.analysis.base import (
    Category,
    CategoryScore,
    Completeness,
    ConsistencyScores,
    Finding,
    Severity,
    clamp_score,
)
from interpreter_core.analysis.detectors import (
    Detector,
    FluencyDetector,
    GrammarDetector,
    PatternRule,
    ProfessionalConductDetector,
    SentenceStructureDetector,
    default_detectors,
)
from interpreter_core.analysis.deep import (
    AnthropicDeepAnalyzer,
    DeepAnalysisResult,
    DeepAnalyzer,
    parse_deep_analysis,
)
from interpreter_core.analysis.rubric import (
    STANDARDS,
    ScoreBand,
    compliance_report,
    interpret_score,
    weighted_overall,
)
from interpreter_core.analysis.report import (
    PerformanceReport,
    ReportMetadata,
    Suggestion,
    build_report,
    rank_suggestions,
)
from interpreter_core.analysis.pipeline import (
    AnalysisPipeline,
    MetricsSnapshot,
    PipelineListener,
)

__all__ = [
    # Base
    "Category",
    "CategoryScore",
    "Completeness",
    "ConsistencyScores",
    "Finding",
    "Severity",
    "clamp_score",
    # Detectors
    "Detector",
    "FluencyDetector",
    "GrammarDetector",
    "PatternRule",
    "ProfessionalConductDetector",
    "SentenceStructureDetector",
    "default_detectors",
    # Deep analysis
    "AnthropicDeepAnalyzer",
    "DeepAnalysisResult",
    "DeepAnalyzer",
    "parse_deep_analysis",
    # Rubric
    "STANDARDS",
    "ScoreBand",
    "compliance_report",
    "interpret_score",
    "weighted_overall",
    # Report
    "PerformanceReport",
    "ReportMetadata",
    "Suggestion",
    "build_report",
    "rank_suggestions",
    # Pipeline
    "AnalysisPipeline",
    "MetricsSnapshot",
    "PipelineListener",
]
