"""Replay engine: runs recorded data through the detection engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from novapulse.config.constants import ConditionId, LifecycleEvent, SignalType
from novapulse.core.engine import DetectionEngine
from novapulse.data.models import Signal
from novapulse.replay.feed import ReplayFeed
from novapulse.scoring.learner import AdaptiveWeightLearner

if TYPE_CHECKING:
    import pandas as pd

    from novapulse.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ReplayReport:
    """Summary of a replay run."""

    source: str = ""
    start: int | None = None
    end: int | None = None
    ticks: int = 0
    processed: int = 0
    skipped: int = 0
    attempted: int = 0
    realized: int = 0
    resolved: int = 0
    successes: int = 0
    max_score: float = 0.0
    mean_score: float = 0.0
    signals_by_type: dict[SignalType, int] = field(default_factory=dict)
    events: dict[LifecycleEvent, int] = field(default_factory=dict)
    weights: dict[ConditionId, float] = field(default_factory=dict)
    top_condition: tuple[ConditionId, float] | None = None
    signals: list[Signal] = field(default_factory=list)

    @property
    def success_rate(self) -> float | None:
        return self.successes / self.resolved if self.resolved else None


class ReplayRunner:
    """Replay a recording tick by tick.

    Parameters
    ----------
    settings:
        Full application settings.
    learner:
        Learner to continue from (e.g. loaded from the store). A fresh one
        is used when omitted.
    """

    def __init__(
        self,
        settings: "Settings",
        learner: AdaptiveWeightLearner | None = None,
    ) -> None:
        self._settings = settings
        self.engine = DetectionEngine(settings, learner)

    async def run(
        self,
        samples: "pd.DataFrame",
        transactions: "pd.DataFrame | None" = None,
        source: str = "",
        resolve_pending: bool = True,
    ) -> ReplayReport:
        """Execute the replay and return its report.

        Steps:
        1. Feed every sample row through ``DetectionEngine.tick``
        2. Optionally grade signals still pending at the end of the data
        3. Aggregate counters, scores and learner state
        """
        feed = ReplayFeed(samples, transactions)
        report = ReplayReport(source=source, ticks=len(feed))
        learner = self.engine.learner
        known = {id(s) for s in learner.signals}

        scores: list[float] = []
        last_ts: int | None = None
        logger.info("Starting replay of %d samples", len(feed))

        while True:
            snapshot = await feed.fetch_snapshot()
            if snapshot is None:
                break
            if report.start is None:
                report.start = snapshot.timestamp
            report.end = last_ts = snapshot.timestamp

            result = self.engine.tick(snapshot)
            if result is None:
                report.skipped += 1
                continue

            report.processed += 1
            scores.append(result.score)
            report.signals.extend(result.signals)
            for event in result.events:
                report.events[event] = report.events.get(event, 0) + 1

        if resolve_pending and last_ts is not None:
            flush_at = last_ts + self._settings.learning.evaluation_period_ms
            learner.process(flush_at, self.engine.buffer.samples)

        for signal in report.signals:
            report.signals_by_type[signal.type] = report.signals_by_type.get(signal.type, 0) + 1
        graded = [s for s in report.signals if id(s) not in known and not s.pending]
        report.resolved = len(graded)
        report.successes = sum(1 for s in graded if s.success)

        counters = self.engine.counters
        report.attempted = counters.attempted
        report.realized = counters.realized
        report.max_score = max(scores, default=0.0)
        report.mean_score = sum(scores) / len(scores) if scores else 0.0
        report.weights = dict(learner.weights)
        report.top_condition = learner.top_condition()

        logger.info(
            "Replay finished: %d processed, %d skipped, %d signals",
            report.processed,
            report.skipped,
            len(report.signals),
        )
        return report
