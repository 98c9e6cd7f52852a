"""
Analysis Pipeline
=================

Scores each final utterance against the rubric as it arrives. Detectors run
concurrently per utterance; aggregation into the running category scores is
the single serialization point. Every Nth utterance a deep analysis pass is
scheduled in the background over the recent window.

Author: Platform Engineering Team
Version: 2.0.0
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Set

import structlog

from interpreter_core.analysis.base import (
    Category,
    CategoryScore,
    Completeness,
    ConsistencyScores,
    Finding,
)
from interpreter_core.analysis.deep import DeepAnalysisResult, DeepAnalyzer
from interpreter_core.analysis.detectors import Detector, default_detectors
from interpreter_core.analysis.report import PerformanceReport, ReportMetadata, build_report
from interpreter_core.analysis.rubric import weighted_overall
from interpreter_core.config import AnalysisSettings, DeepAnalysisSettings
from interpreter_core.core.errors import (
    DetectorError,
    EnrichmentTimeout,
    InterpreterError,
)
from interpreter_core.streaming.models import Utterance

logger = structlog.get_logger(__name__)


class PipelineListener:
    """Receives live pipeline output."""

    async def on_metrics(self, snapshot: "MetricsSnapshot") -> None:
        pass

    async def on_pipeline_error(self, error: InterpreterError) -> None:
        pass


@dataclass
class MetricsSnapshot:
    """Point-in-time view of the running scores."""

    session_id: Optional[str]
    category_scores: Dict[str, float]
    overall_score: float
    word_count: int
    utterance_count: int
    average_wpm: int
    consistency: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "category_scores": {k: round(v, 2) for k, v in self.category_scores.items()},
            "overall_score": round(self.overall_score, 2),
            "word_count": self.word_count,
            "utterance_count": self.utterance_count,
            "average_wpm": self.average_wpm,
            "consistency": self.consistency,
            "timestamp": self.timestamp.isoformat(),
        }


class AnalysisPipeline:
    """
    Incremental scoring of final utterances.

    Usage:
        pipeline = AnalysisPipeline(listener=my_listener)
        await pipeline.start()
        await pipeline.process_final_utterance(utterance)
        report = await pipeline.stop()
    """

    def __init__(
        self,
        listener: Optional[PipelineListener] = None,
        settings: Optional[AnalysisSettings] = None,
        deep_settings: Optional[DeepAnalysisSettings] = None,
        detectors: Optional[List[Detector]] = None,
        deep_analyzer: Optional[DeepAnalyzer] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or AnalysisSettings()
        self.deep_settings = deep_settings or DeepAnalysisSettings()
        self.listener = listener or PipelineListener()
        self.detectors = detectors if detectors is not None else default_detectors(
            self.settings.deductions
        )
        self.deep_analyzer = deep_analyzer if self.deep_settings.enabled else None
        self.session_id = session_id
        self._clock = clock

        self._scores: Dict[Category, CategoryScore] = {c: CategoryScore(c) for c in Category}
        self._consistency = ConsistencyScores()
        self._completeness = Completeness()
        self._window: Deque[str] = deque(maxlen=self.settings.window_size)

        self._running = False
        self._generation = 0
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._word_count = 0
        self._utterance_count = 0
        self._deep_tasks: Set[asyncio.Task] = set()

        self._logger = logger.bind(session_id=session_id)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scores(self) -> Dict[str, float]:
        return {c.value: s.score for c, s in self._scores.items()}

    @property
    def consistency(self) -> ConsistencyScores:
        return self._consistency

    @property
    def utterance_count(self) -> int:
        return self._utterance_count

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            raise RuntimeError("Analysis pipeline already running")
        self.reset()
        self._generation += 1
        self._running = True
        self._started_at = self._clock()
        self._logger.info("Analysis pipeline started")

    async def stop(self) -> PerformanceReport:
        """Finalize scoring and build the report.

        In-flight deep analysis is cancelled and its result discarded.
        """
        if self._running:
            self._stopped_at = self._clock()
        self._running = False
        self._generation += 1

        tasks = list(self._deep_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._deep_tasks.clear()

        report = build_report(
            self._scores,
            self._consistency,
            self._completeness,
            self._metadata(),
            self.settings,
        )
        self._logger.info(
            "Analysis pipeline stopped",
            overall_score=round(report.overall_score, 2),
            utterances=self._utterance_count,
        )
        return report

    def reset(self) -> None:
        """Clear all scores and counters. For reuse and tests only."""
        for score in self._scores.values():
            score.reset()
        self._consistency = ConsistencyScores()
        self._completeness = Completeness()
        self._window.clear()
        self._word_count = 0
        self._utterance_count = 0
        self._started_at = None
        self._stopped_at = None

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process_final_utterance(self, utterance: Utterance) -> Optional[MetricsSnapshot]:
        """Score one final utterance and publish a metrics snapshot."""
        if not self._running or not utterance.is_final:
            return None

        speaker = self.settings.analyze_speaker
        if speaker and utterance.speaker and utterance.speaker != speaker:
            return None

        self._window.append(utterance.text)
        self._word_count += utterance.word_count
        self._utterance_count += 1
        self._completeness.message_units += 1
        self._completeness.interpreted_units += 1

        results = await asyncio.gather(
            *(detector.detect(utterance) for detector in self.detectors),
            return_exceptions=True,
        )

        for detector, result in zip(self.detectors, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                self._logger.warning(
                    f"Detector {detector.name} failed",
                    error=str(result),
                )
                await self._report_error(
                    DetectorError(
                        f"Detector {detector.name} failed: {result}",
                        category=detector.category.value,
                        source="analysis",
                    )
                )
                continue
            self._aggregate(detector, result)

        if (
            self.deep_analyzer is not None
            and self._utterance_count % self.settings.deep_analysis_every == 0
        ):
            self._schedule_deep_analysis()

        snapshot = self.snapshot()
        try:
            await self.listener.on_metrics(snapshot)
        except Exception as e:
            self._logger.error(f"Metrics listener failed: {e}")
        return snapshot

    def _aggregate(self, detector: Detector, findings: List[Finding]) -> None:
        own = [f for f in findings if f.category == detector.category]
        if len(own) != len(findings):
            self._logger.warning(
                f"Detector {detector.name} reported findings outside its category",
                dropped=len(findings) - len(own),
            )
        self._scores[detector.category].apply(own)

    def snapshot(self) -> MetricsSnapshot:
        scores = self.scores
        return MetricsSnapshot(
            session_id=self.session_id,
            category_scores=scores,
            overall_score=weighted_overall(scores, self.settings.weights),
            word_count=self._word_count,
            utterance_count=self._utterance_count,
            average_wpm=self._average_wpm(),
            consistency=self._consistency.to_dict(),
        )

    # -------------------------------------------------------------------------
    # Deep analysis
    # -------------------------------------------------------------------------

    def _schedule_deep_analysis(self) -> None:
        transcript = "\n".join(self._window)
        task = asyncio.create_task(self._run_deep_analysis(transcript, self._generation))
        self._deep_tasks.add(task)
        task.add_done_callback(self._deep_tasks.discard)

    async def _run_deep_analysis(self, transcript: str, generation: int) -> None:
        try:
            result = await asyncio.wait_for(
                self.deep_analyzer.analyze(transcript),
                timeout=self.deep_settings.timeout,
            )
        except asyncio.TimeoutError:
            await self._report_error(
                EnrichmentTimeout(
                    f"Deep analysis timed out after {self.deep_settings.timeout}s",
                    source="analysis",
                )
            )
            return
        except InterpreterError as e:
            await self._report_error(e)
            return
        except Exception as e:
            await self._report_error(
                DetectorError(
                    f"Deep analysis failed: {e}",
                    category="consistency",
                    source="analysis",
                )
            )
            return

        if result is None:
            self._logger.debug("Deep analysis returned nothing usable")
            return
        if not self._running or generation != self._generation:
            self._logger.debug("Discarding late deep analysis result")
            return
        self._apply_deep_analysis(result)

    def _apply_deep_analysis(self, result: DeepAnalysisResult) -> None:
        consistency = self._consistency
        if result.terminology_consistency is not None:
            consistency.terminology = float(result.terminology_consistency)
        if result.style_consistency is not None:
            consistency.style = float(result.style_consistency)
        if result.cognitive_load is not None:
            consistency.cognitive_load = float(result.cognitive_load)
        if result.register_appropriate is not None:
            consistency.register_appropriate = result.register_appropriate
        consistency.inconsistencies.extend(result.inconsistencies)
        consistency.cultural_adaptations.extend(result.cultural_adaptations)
        consistency.accuracy_issues.extend(result.accuracy_issues)
        consistency.passes_applied += 1
        consistency.last_updated = datetime.utcnow()
        self._logger.info(
            "Applied deep analysis",
            terminology=consistency.terminology,
            style=consistency.style,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return max(0.0, end - self._started_at)

    def _average_wpm(self) -> int:
        elapsed = self._elapsed_seconds()
        if elapsed <= 0 or not self._word_count:
            return 0
        return round(self._word_count / (elapsed / 60))

    def _metadata(self) -> ReportMetadata:
        return ReportMetadata(
            session_id=self.session_id,
            duration_seconds=self._elapsed_seconds(),
            word_count=self._word_count,
            utterance_count=self._utterance_count,
            average_wpm=self._average_wpm(),
            target_wpm=self.settings.target_wpm,
            min_wpm=self.settings.min_wpm,
            max_wpm=self.settings.max_wpm,
        )

    async def _report_error(self, error: InterpreterError) -> None:
        try:
            await self.listener.on_pipeline_error(error)
        except Exception as e:
            self._logger.error(f"Pipeline listener failed handling error: {e}")
