"""Technical indicators computed from the sample buffer.

All functions accept plain sequences (oldest first) and fall back to a
neutral value when there is not enough data, so a short or gappy buffer never
raises.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import numpy as np

from novapulse.config.constants import (
    BULLISH_ODDS_PATTERNS,
    NEUTRAL_RSI,
    PatternName,
)
from novapulse.data.models import IndicatorSet

if TYPE_CHECKING:
    from novapulse.config.settings import ShockwaveSettings

logger = logging.getLogger(__name__)

# Weights of the three most recent relative changes (newest first)
_ACCEL_WEIGHTS = (1.0, 0.7, 0.5)
_ACCEL_NORM = 2.2

_MIN_REGRESSION_POINTS = 10
_MIN_ODDS_POINTS = 10
_VOLATILITY_WINDOW = 10


def rsi_series(prices: Sequence[float], period: int = 14) -> list[float]:
    """Running-sum RSI.

    Gains and losses are accumulated change by change; once ``period``
    changes are in, each step emits ``100 - 100 / (1 + RS)`` and then removes
    the oldest change from the totals. ``RS`` is 100 when the average loss is
    zero. No Wilder smoothing is applied.
    """
    values: list[float] = []
    if period <= 0:
        return values

    gains = 0.0
    losses = 0.0
    for i in range(1, len(prices)):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change

        if i >= period:
            avg_gain = gains / period
            avg_loss = losses / period
            rs = 100.0 if avg_loss <= 0 else avg_gain / avg_loss
            rsi = 100.0 - (100.0 / (1.0 + rs))
            values.append(min(100.0, max(0.0, rsi)))

            old_change = prices[i - period + 1] - prices[i - period]
            if old_change > 0:
                gains -= old_change
            else:
                losses += old_change

    return values


def latest_rsi(prices: Sequence[float], period: int = 14) -> float:
    """Most recent RSI value, or 50 when the window is too short."""
    values = rsi_series(prices, period)
    return values[-1] if values else NEUTRAL_RSI


def vwap(prices: Sequence[float], volumes: Sequence[float]) -> float:
    """Volume-weighted average price over the full window (0 without volume)."""
    n = min(len(prices), len(volumes))
    if n == 0:
        return 0.0
    total_volume = float(sum(volumes[:n]))
    if total_volume <= 0:
        return 0.0
    weighted = sum(p * v for p, v in zip(prices[:n], volumes[:n]))
    return weighted / total_volume


def obv(prices: Sequence[float], volumes: Sequence[float]) -> float:
    """On-balance volume starting from 0."""
    total = 0.0
    for i in range(1, min(len(prices), len(volumes))):
        if prices[i] > prices[i - 1]:
            total += volumes[i]
        elif prices[i] < prices[i - 1]:
            total -= volumes[i]
    return total


def regression_slope(prices: Sequence[float]) -> float:
    """OLS slope of price against sample index (0 below 10 points)."""
    if len(prices) < _MIN_REGRESSION_POINTS:
        return 0.0
    x = np.arange(len(prices), dtype=float)
    slope, _intercept = np.polyfit(x, np.asarray(prices, dtype=float), 1)
    return float(slope)


def relative_changes(values: Sequence[float]) -> list[float]:
    """Successive relative changes; a zero base yields a zero change."""
    changes = []
    for prev, cur in zip(values, values[1:]):
        changes.append((cur - prev) / prev if prev else 0.0)
    return changes


def acceleration(values: Sequence[float]) -> float:
    """Weighted blend of the last three relative changes.

    ``(d1 + 0.7*d2 + 0.5*d3) / 2.2`` where ``d1`` is the newest change.
    Returns 0 with fewer than 4 values.
    """
    if len(values) < 4:
        return 0.0
    d3, d2, d1 = relative_changes(values[-4:])
    w1, w2, w3 = _ACCEL_WEIGHTS
    return (d1 * w1 + d2 * w2 + d3 * w3) / _ACCEL_NORM


def window_volatility(prices: Sequence[float], window: int = _VOLATILITY_WINDOW) -> float:
    """Range over mean price of the last *window* points."""
    recent = list(prices[-window:])
    if not recent:
        return 0.0
    avg = sum(recent) / len(recent)
    if avg <= 0:
        return 0.0
    return (max(recent) - min(recent)) / avg


def explosion_odds(
    prev_odds: float,
    volume_accel: float,
    bullish_pattern: bool,
    vwap_confirmed: bool,
    rsi: float,
    overbought: float,
    recent_false_signals: int,
) -> float:
    """Blend the explosion-odds terms into a 0-100 value.

    A first-order filter: 30% of the previous odds carry over, the rest is
    rebuilt from volume acceleration, pattern, VWAP and RSI evidence minus a
    penalty for recent false signals.
    """
    odds = (prev_odds / 100.0) * 0.3
    odds += min(0.3, volume_accel * 0.5)
    if bullish_pattern:
        odds += 0.15
    if vwap_confirmed:
        odds += 0.15
    if rsi < overbought - 10:
        odds += 0.1
    elif rsi > overbought:
        odds -= 0.2
    odds -= min(0.2, recent_false_signals * 0.05)
    return max(0.0, min(100.0, odds * 100.0))


class IndicatorEngine:
    """Recomputes the ``IndicatorSet`` each tick.

    Holds the previous explosion odds, which start at 0.

    Parameters
    ----------
    settings:
        Shockwave configuration (RSI period, overbought level, VWAP retest band).
    """

    def __init__(self, settings: "ShockwaveSettings") -> None:
        self._settings = settings
        self._prev_odds = 0.0

    @property
    def previous_odds(self) -> float:
        return self._prev_odds

    def reset(self) -> None:
        self._prev_odds = 0.0

    def compute(
        self,
        prices: Sequence[float],
        volumes: Sequence[float],
        patterns: Mapping[PatternName, bool],
        recent_false_signals: int = 0,
    ) -> IndicatorSet:
        """Build the indicator set for the current buffers."""
        current_vwap = vwap(prices, volumes)
        price = prices[-1] if prices else 0.0
        prev_price = prices[-2] if len(prices) > 1 else price

        retest = current_vwap > 0 and abs(price - current_vwap) < (
            current_vwap * self._settings.vwap_retest_threshold
        )
        bounce = retest and price > prev_price and price > current_vwap

        rsi = latest_rsi(prices, self._settings.rsi_period)
        volume_accel = acceleration(volumes)

        if len(prices) < _MIN_ODDS_POINTS:
            odds = 0.0
        else:
            odds = explosion_odds(
                prev_odds=self._prev_odds,
                volume_accel=volume_accel,
                bullish_pattern=any(patterns.get(p, False) for p in BULLISH_ODDS_PATTERNS),
                vwap_confirmed=retest and bounce,
                rsi=rsi,
                overbought=self._settings.rsi_overbought_threshold,
                recent_false_signals=recent_false_signals,
            )
        self._prev_odds = odds

        return IndicatorSet(
            rsi=rsi,
            vwap=current_vwap,
            obv=obv(prices, volumes),
            regression_slope=regression_slope(prices),
            volume_acceleration=volume_accel,
            price_acceleration=acceleration(prices),
            explosion_odds=odds,
            vwap_retest=retest,
            vwap_bounce=bounce,
            volatility=window_volatility(prices),
        )
