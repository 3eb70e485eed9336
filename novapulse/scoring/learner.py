"""Deferred signal grading and per-condition weight adaptation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from novapulse.config.constants import DEFAULT_WEIGHT, WEIGHT_MAX, WEIGHT_MIN, ConditionId
from novapulse.data.models import Sample, Signal

if TYPE_CHECKING:
    from novapulse.config.settings import LearningSettings

logger = logging.getLogger(__name__)

_TOP_CONDITION_MIN_TOTAL = 5


def clamp_weight(value: float) -> float:
    return max(WEIGHT_MIN, min(WEIGHT_MAX, value))


def default_weights() -> dict[ConditionId, float]:
    return {cond: DEFAULT_WEIGHT for cond in ConditionId}


@dataclass
class ConditionStats:
    """How often signals with this condition active turned out successful."""

    total: int = 0
    success: int = 0

    @property
    def accuracy(self) -> float:
        return self.success / self.total if self.total else 0.0


class AdaptiveWeightLearner:
    """Owns the weight table and the pending-signal queue.

    Signals are registered as they fire; ``process`` grades every signal
    whose evaluation window has closed, applies the reward to the weights and
    prunes anything older than the retention window.

    Parameters
    ----------
    settings:
        Learning rate, success threshold, evaluation and retention periods.
    weights:
        Persisted weight table; unknown conditions default to 1.0 and every
        value is clamped to [0.1, 2.0].
    signals:
        Persisted signal history (pending and resolved).
    stats:
        Persisted per-condition accuracy counters.
    """

    def __init__(
        self,
        settings: "LearningSettings",
        weights: Mapping[ConditionId, float] | None = None,
        signals: Iterable[Signal] | None = None,
        stats: Mapping[ConditionId, ConditionStats] | None = None,
    ) -> None:
        self._settings = settings
        self.weights = default_weights()
        for cond, value in (weights or {}).items():
            self.weights[cond] = clamp_weight(value)
        self.signals: list[Signal] = list(signals or [])
        self.stats: dict[ConditionId, ConditionStats] = {
            cond: ConditionStats() for cond in ConditionId
        }
        self.stats.update(stats or {})
        self.dirty = False

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------

    def update_weights(self, success: bool, active_conditions: Mapping[ConditionId, bool]) -> None:
        """``w += rate * reward * active`` for every condition in the snapshot."""
        reward = 1.0 if success else -1.0
        rate = self._settings.learning_rate
        for cond, active in active_conditions.items():
            current = self.weights.get(cond, DEFAULT_WEIGHT)
            self.weights[cond] = clamp_weight(current + rate * reward * (1 if active else 0))
        self.dirty = True

    def reset_weights(self) -> None:
        self.weights = default_weights()
        self.dirty = True

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def register(self, signal: Signal) -> None:
        self.signals.append(signal)
        self.dirty = True

    def evaluate_signal_success(
        self,
        signal: Signal,
        samples: Sequence[Sample],
        now: int,
    ) -> bool | None:
        """Grade *signal* against prices seen after it fired.

        Returns ``None`` before the deadline. Afterwards the signal succeeded
        iff the highest price in ``(time, deadline]`` reached
        ``price * (1 + success_threshold)``; an empty window is a failure.
        """
        if now < signal.evaluation_deadline:
            return None
        window = [
            s.price
            for s in samples
            if signal.time < s.timestamp <= signal.evaluation_deadline
        ]
        if not window:
            return False
        return max(window) >= signal.price * (1 + self._settings.success_threshold)

    def process(self, now: int, samples: Sequence[Sample]) -> list[Signal]:
        """Resolve due signals once each and drop expired history.

        Returns the signals resolved on this call.
        """
        resolved: list[Signal] = []
        for signal in self.signals:
            if not signal.pending:
                continue
            outcome = self.evaluate_signal_success(signal, samples, now)
            if outcome is None:
                continue
            signal.success = outcome
            self.update_weights(outcome, signal.active_conditions)
            self._record_stats(outcome, signal.active_conditions)
            resolved.append(signal)
            logger.debug(
                "Resolved %s signal from %d: %s",
                signal.type.value,
                signal.time,
                "success" if outcome else "failure",
            )

        retention = self._settings.signal_retention_ms
        kept = [s for s in self.signals if now - s.time < retention]
        if len(kept) != len(self.signals):
            logger.debug("Dropped %d expired signals", len(self.signals) - len(kept))
            self.signals = kept
            self.dirty = True
        return resolved

    def _record_stats(self, success: bool, active_conditions: Mapping[ConditionId, bool]) -> None:
        for cond, active in active_conditions.items():
            if not active:
                continue
            stats = self.stats.setdefault(cond, ConditionStats())
            stats.total += 1
            if success:
                stats.success += 1

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def top_condition(
        self, min_total: int = _TOP_CONDITION_MIN_TOTAL
    ) -> tuple[ConditionId, float] | None:
        """Most accurate condition with at least *min_total* graded signals."""
        best: tuple[ConditionId, float] | None = None
        for cond, stats in self.stats.items():
            if stats.total < min_total:
                continue
            if stats.accuracy > (best[1] if best else 0.0):
                best = (cond, stats.accuracy)
        return best

    def success_rate(self) -> float | None:
        """Share of retained signals that succeeded, or ``None`` when empty."""
        if not self.signals:
            return None
        return sum(1 for s in self.signals if s.success) / len(self.signals)

    def pending_count(self) -> int:
        return sum(1 for s in self.signals if s.pending)
