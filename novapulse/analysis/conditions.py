"""Market/whale context and the boolean condition set fed to scoring."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from novapulse.analysis.patterns import Consolidation
from novapulse.config.constants import (
    MAX_TRANSACTIONS,
    PATTERN_MATCH_SET,
    PRO_TRADER_LOOKBACK_MS,
    ConditionId,
    PatternName,
    TransactionType,
)
from novapulse.data.models import IndicatorSet, MarketSnapshot, TransactionRecord

if TYPE_CHECKING:
    from novapulse.config.settings import Settings

logger = logging.getLogger(__name__)

_OBV_SPIKE_RATIO = 1.8
_VOLUME_ACCEL_THRESHOLD = 0.25
_SHOCKWAVE_ODDS = 70.0
_EXPLOSION_ODDS = 80.0
_SPIKE_LOOKBACK = 5

ConditionSet = dict[ConditionId, bool]

# Micro-pattern flags mapped one-to-one onto conditions
_PATTERN_CONDITIONS: dict[ConditionId, PatternName] = {
    ConditionId.MICRO_RANGE: PatternName.MICRO_RANGE_COMPRESSION,
    ConditionId.VDU_SPIKE: PatternName.VDU_SPIKE,
    ConditionId.FLASH_ABSORPTION: PatternName.FLASH_SPIKE_ABSORPTION,
    ConditionId.TRAP_RUN: PatternName.TRAP_AND_RUN,
    ConditionId.SHAKEOUT_BAR: PatternName.SHAKEOUT_BAR,
    ConditionId.SUPPLY_ABSORPTION: PatternName.SUPPLY_ABSORPTION,
    ConditionId.VOLUME_STAIRCASE: PatternName.VOLUME_STAIRCASE,
    ConditionId.DARVAS_BOX: PatternName.DARVAS_BOX,
    ConditionId.BOX_BREAKOUT: PatternName.BOX_BREAKOUT_RETEST,
    ConditionId.HIDDEN_DIVERGENCE: PatternName.HIDDEN_BULLISH_DIVERGENCE,
    ConditionId.OBV_UPTREND: PatternName.OBV_UPTREND,
    ConditionId.BUY_WALL_STACK: PatternName.BUY_WALL_STACK,
    ConditionId.VWAP_RETEST: PatternName.VWAP_RETEST_SUCCESS,
}


@dataclass
class MarketContext:
    """Whale-flow summary derived from the transaction feed for one tick."""

    total_buy: float = 0.0
    total_sell: float = 0.0
    net_flow: float = 0.0
    buy_pressure: float = 0.0
    sell_pressure: float = 0.0
    accumulation_ratio: float = 0.0
    is_accumulating: bool = False
    whale_cluster: bool = False
    holders: int = 0
    pro_traders: int = 0
    pro_traders_change: int = 0


def matched_pattern(patterns: Mapping[PatternName, bool]) -> PatternName | None:
    """First active pattern in display priority order, if any."""
    for name in PATTERN_MATCH_SET:
        if patterns.get(name, False):
            return name
    return None


def average_volume(volumes: Sequence[float], lookback: int) -> float:
    """Mean of the last *lookback* volumes divided by *lookback*.

    Divides by the nominal lookback even when fewer points exist, matching how
    the spike ratios are calibrated.
    """
    if lookback <= 0:
        return 0.0
    return sum(volumes[-lookback:]) / lookback


class MarketContextBuilder:
    """Builds ``MarketContext`` values and tracks pro-trader history.

    Parameters
    ----------
    settings:
        Full application settings (detection thresholds are read).
    """

    def __init__(self, settings: "Settings") -> None:
        self._detection = settings.detection
        self._pro_history: deque[tuple[int, int]] = deque()

    def reset(self) -> None:
        self._pro_history.clear()

    def build(self, snapshot: MarketSnapshot, now: int) -> MarketContext:
        transactions: list[TransactionRecord] = list(snapshot.transactions[-MAX_TRANSACTIONS:])
        total_buy = sum(t.value for t in transactions if t.type == TransactionType.BUY)
        total_sell = sum(t.value for t in transactions if t.type == TransactionType.SELL)
        total = total_buy + total_sell

        ratio = total_buy / (total_sell + 1)
        cluster_size = sum(
            1
            for t in transactions
            if t.type == TransactionType.BUY
            and now - t.detected_time < self._detection.cluster_time_window_ms
        )

        return MarketContext(
            total_buy=total_buy,
            total_sell=total_sell,
            net_flow=total_buy - total_sell,
            buy_pressure=total_buy / total if total > 0 else 0.0,
            sell_pressure=total_sell / total if total > 0 else 0.0,
            accumulation_ratio=ratio,
            is_accumulating=(
                ratio > self._detection.accumulation_ratio_threshold
                and total_buy > self._detection.min_accumulation_buy
            ),
            whale_cluster=cluster_size >= self._detection.min_cluster_size,
            holders=snapshot.holders,
            pro_traders=snapshot.pro_traders,
            pro_traders_change=self._track_pro_traders(snapshot.pro_traders, now),
        )

    def _track_pro_traders(self, count: int, now: int) -> int:
        """Change in pro-trader count relative to the oldest entry within 15 s."""
        self._pro_history.append((now, count))
        while self._pro_history and now - self._pro_history[0][0] > PRO_TRADER_LOOKBACK_MS:
            self._pro_history.popleft()
        if len(self._pro_history) > 1:
            return count - self._pro_history[0][1]
        return 0


class ConditionEvaluator:
    """Maps context, indicators and patterns onto the closed condition set."""

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings

    def evaluate(
        self,
        context: MarketContext,
        indicators: IndicatorSet,
        patterns: Mapping[PatternName, bool],
        consolidation: Consolidation,
        volumes: Sequence[float],
        timeframe_converged: bool = False,
    ) -> ConditionSet:
        """Evaluate every condition for the current tick.

        ``volumes`` must already contain the current tick's volume as its last
        element.
        """
        detection = self._settings.detection
        scalping = self._settings.scalping
        volume = volumes[-1] if volumes else 0.0

        results: ConditionSet = {
            ConditionId.PRO_TRADER_BUY_VOLUME: context.total_buy > detection.pro_trader_min_amount,
            ConditionId.NET_WHALE_FLOW: context.net_flow > detection.min_whale_net_flow,
            ConditionId.OBV_SPIKE: indicators.obv > volume * _OBV_SPIKE_RATIO,
            ConditionId.WHALE_CLUSTER: context.whale_cluster,
            ConditionId.ACCUMULATION_PATTERN: context.is_accumulating,
            ConditionId.VOLUME_ACCELERATION: indicators.volume_acceleration > _VOLUME_ACCEL_THRESHOLD,
            ConditionId.CONSOLIDATION: consolidation.detected,
            ConditionId.PATTERN_MATCH: matched_pattern(patterns) is not None,
            ConditionId.SHOCKWAVE_ENGINE: indicators.explosion_odds > _SHOCKWAVE_ODDS,
            ConditionId.EXPLOSION_ODDS: indicators.explosion_odds > _EXPLOSION_ODDS,
            ConditionId.CANDLE_PATTERN: (
                patterns.get(PatternName.MARUBOZU, False)
                or patterns.get(PatternName.BULLISH_ENGULFING, False)
            ),
            ConditionId.VWAP_CONFIRMATION: indicators.vwap_retest and indicators.vwap_bounce,
            ConditionId.TIMEFRAME_CONVERGENCE: timeframe_converged,
            ConditionId.SCALPING_MODE: scalping.scalping_mode,
            ConditionId.INSTANT_BUY_PRESSURE: (
                context.buy_pressure > scalping.instant_buy_pressure_threshold
            ),
            ConditionId.VOLUME_SPIKE: (
                volume > average_volume(volumes, _SPIKE_LOOKBACK) * scalping.min_instant_volume_ratio
            ),
        }
        for condition, pattern in _PATTERN_CONDITIONS.items():
            results[condition] = patterns.get(pattern, False)

        return {cond: bool(results[cond]) for cond in ConditionId}
