"""Detection engine: one synchronous tick over a market snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from novapulse.analysis.conditions import (
    ConditionEvaluator,
    MarketContext,
    MarketContextBuilder,
    matched_pattern,
)
from novapulse.analysis.indicators import IndicatorEngine
from novapulse.analysis.patterns import (
    Consolidation,
    PatternRecognizer,
    PatternWindow,
    detect_consolidation,
)
from novapulse.analysis.timeframes import MultiTimeframeAggregator
from novapulse.config.constants import (
    MAX_TRANSACTIONS,
    AlertKind,
    ConditionId,
    LifecycleEvent,
    PatternName,
    ScanStatus,
)
from novapulse.core.alerts import AlertCounters, AlertInputs, AlertStateMachine
from novapulse.core.buffer import SampleBuffer
from novapulse.data.models import IndicatorSet, MarketSnapshot, Sample, Signal
from novapulse.scoring.learner import AdaptiveWeightLearner
from novapulse.scoring.scorer import FalseSignalFilter, ScoringEngine

if TYPE_CHECKING:
    from novapulse.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Everything observable about one processed tick."""

    timestamp: int
    price: float
    volume: float
    score: float
    raw_score: float
    false_signal: bool
    status: ScanStatus
    conditions: dict[ConditionId, bool]
    indicators: IndicatorSet
    patterns: dict[PatternName, bool]
    matched_pattern: PatternName | None
    consolidation: Consolidation
    context: MarketContext
    convergence_ratio: float
    active_alerts: dict[AlertKind, float] = field(default_factory=dict)
    signals: list[Signal] = field(default_factory=list)
    resolved_signals: list[Signal] = field(default_factory=list)
    events: list[LifecycleEvent] = field(default_factory=list)
    instant_confidence: float = 0.0
    mega_confidence: float = 0.0


class DetectionEngine:
    """Owns all mutable detection state and runs the per-tick pipeline.

    Data flow per tick::

        buffer → market context → patterns → indicators → conditions
        → score → alerts → learner → timeframes

    The weight table and signal history live in the learner and survive
    ``reset_context``; everything else is rebuilt.

    Parameters
    ----------
    settings:
        Full application settings.
    learner:
        Pre-loaded learner (weights and signal history). A fresh one with
        default weights is created when omitted.
    """

    def __init__(
        self,
        settings: "Settings",
        learner: AdaptiveWeightLearner | None = None,
    ) -> None:
        self._settings = settings
        self.learner = learner or AdaptiveWeightLearner(settings.learning)

        self.buffer = SampleBuffer(settings.history_capacity)
        self._context = MarketContextBuilder(settings)
        self._patterns = PatternRecognizer(settings.patterns)
        self._indicators = IndicatorEngine(settings.shockwave)
        self._conditions = ConditionEvaluator(settings)
        self._scorer = ScoringEngine()
        self.false_signals = FalseSignalFilter(settings)
        self.alerts = AlertStateMachine(settings)
        self.timeframes = MultiTimeframeAggregator(settings.timeframes, settings.shockwave)

    @property
    def counters(self) -> AlertCounters:
        return self.alerts.counters

    def reset_context(self) -> None:
        """Drop all per-asset state; weights and signal history are kept."""
        self.buffer = SampleBuffer(self._settings.history_capacity)
        self._context.reset()
        self._indicators.reset()
        self.false_signals.reset()
        self.alerts.reset()
        self.timeframes.reset()
        logger.info("Detection context reset")

    def tick(self, snapshot: MarketSnapshot, now: int | None = None) -> TickResult | None:
        """Process one snapshot.

        Returns ``None`` (and mutates nothing) when the snapshot's price or
        volume is missing or not positive.
        """
        now = snapshot.timestamp if now is None else now
        sample = Sample(timestamp=snapshot.timestamp, price=snapshot.price, volume=snapshot.volume)
        if not self.buffer.append(sample):
            logger.debug("Tick at %d skipped: no usable price/volume", now)
            return None

        detection = self._settings.detection
        prices = self.buffer.prices
        volumes = self.buffer.volumes
        transactions = list(snapshot.transactions[-MAX_TRANSACTIONS:])

        context = self._context.build(snapshot, now)
        patterns = self._patterns.recognize(PatternWindow(prices, volumes, transactions))
        consolidation = detect_consolidation(
            prices, detection.consolidation_period, detection.volatility_threshold
        )
        indicators = self._indicators.compute(
            prices,
            volumes,
            patterns,
            recent_false_signals=self.false_signals.recent_count(now),
        )
        conditions = self._conditions.evaluate(
            context,
            indicators,
            patterns,
            consolidation,
            volumes,
            timeframe_converged=self.timeframes.converged(),
        )

        false_signal = self.false_signals.check(
            prices, indicators.rsi, now, self.alerts.last_explosion_time
        )
        scored = self._scorer.score(conditions, self.learner.weights, false_signal)

        outcome = self.alerts.evaluate(
            AlertInputs(
                now=now,
                price=sample.price,
                score=scored.score,
                conditions=conditions,
                context=context,
                patterns=patterns,
                prices=prices,
                volumes=volumes,
                consolidation=consolidation,
                volatility_index=indicators.volatility,
                volume_reference=snapshot.volume_reference,
            )
        )

        resolved = self.learner.process(now, self.buffer.samples)
        for signal in outcome.signals:
            self.learner.register(signal)

        self.timeframes.ingest(sample.price, sample.volume, now)

        return TickResult(
            timestamp=now,
            price=sample.price,
            volume=sample.volume,
            score=scored.score,
            raw_score=scored.raw_score,
            false_signal=false_signal,
            status=outcome.status,
            conditions=conditions,
            indicators=indicators,
            patterns=patterns,
            matched_pattern=matched_pattern(patterns),
            consolidation=consolidation,
            context=context,
            convergence_ratio=self.timeframes.convergence_ratio(),
            active_alerts=outcome.active_alerts,
            signals=outcome.signals,
            resolved_signals=resolved,
            events=outcome.events,
            instant_confidence=outcome.instant_confidence,
            mega_confidence=outcome.mega_confidence,
        )
