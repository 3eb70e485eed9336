"""Weighted condition scoring with false-signal dampening."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from novapulse.analysis.indicators import window_volatility
from novapulse.config.constants import (
    BASE_SCORES,
    DEFAULT_BASE_SCORE,
    DEFAULT_WEIGHT,
    FALSE_SIGNAL_DAMPING,
    FALSE_SIGNAL_LOOKBACK_MS,
    SCORE_MAX,
    SCORE_MIN,
    ConditionId,
)

if TYPE_CHECKING:
    from novapulse.config.settings import Settings

logger = logging.getLogger(__name__)

# Explosion alerts within this many cooldown periods count as "recent"
_EXPLOSION_RECENCY_FACTOR = 3
_SIDEWAYS_FACTOR = 0.7


def base_score(condition: ConditionId) -> float:
    return BASE_SCORES.get(condition, DEFAULT_BASE_SCORE)


@dataclass
class ScoreResult:
    score: float
    raw_score: float
    false_signal: bool


class FalseSignalFilter:
    """Flags sideways, overbought or just-exploded markets.

    Each trip is timestamped in a bounded history whose recent count feeds
    the explosion-odds penalty.
    """

    def __init__(self, settings: "Settings") -> None:
        self._volatility_threshold = settings.detection.volatility_threshold
        self._overbought = settings.shockwave.rsi_overbought_threshold
        self._explosion_window_ms = (
            settings.detection.cooldown_period_ms * _EXPLOSION_RECENCY_FACTOR
        )
        self.history: deque[int] = deque(maxlen=settings.shockwave.max_false_signal_history)

    def check(
        self,
        prices: Sequence[float],
        rsi: float,
        now: int,
        last_explosion_time: int | None = None,
    ) -> bool:
        """Evaluate the filter and record a trip at *now* when it fires."""
        tripped = self._sideways(prices) or rsi > self._overbought or (
            last_explosion_time is not None
            and now - last_explosion_time < self._explosion_window_ms
        )
        if tripped:
            self.history.append(now)
        return tripped

    def _sideways(self, prices: Sequence[float]) -> bool:
        if not prices:
            return False
        return window_volatility(prices) < self._volatility_threshold * _SIDEWAYS_FACTOR

    def recent_count(self, now: int, window_ms: int = FALSE_SIGNAL_LOOKBACK_MS) -> int:
        return sum(1 for t in self.history if now - t < window_ms)

    def reset(self) -> None:
        self.history.clear()


class ScoringEngine:
    """Sums ``base(c) * weight(c)`` over active conditions.

    The total is multiplied by 0.7 when the false-signal filter trips and is
    always clamped to [0, 100].
    """

    def score(
        self,
        conditions: Mapping[ConditionId, bool],
        weights: Mapping[ConditionId, float],
        false_signal: bool = False,
    ) -> ScoreResult:
        raw = sum(
            base_score(cond) * weights.get(cond, DEFAULT_WEIGHT)
            for cond, active in conditions.items()
            if active
        )
        total = raw * FALSE_SIGNAL_DAMPING if false_signal else raw
        return ScoreResult(
            score=max(SCORE_MIN, min(SCORE_MAX, total)),
            raw_score=raw,
            false_signal=false_signal,
        )
