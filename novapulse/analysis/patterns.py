"""Chart, candlestick and scalping pattern detectors.

Every detector implements ``detect(window) -> bool`` and registers itself via
``register_pattern``; ``PatternRecognizer`` simply runs the registry, so a
new pattern only needs a new class here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from novapulse.analysis.indicators import obv, rsi_series, vwap
from novapulse.config.constants import (
    CHART_PATTERN_MIN_HISTORY,
    CHART_PATTERN_WINDOW,
    PatternName,
    TransactionType,
)
from novapulse.data.models import TransactionRecord

if TYPE_CHECKING:
    from novapulse.config.settings import PatternSettings

logger = logging.getLogger(__name__)

_CANDLE_MIN_POINTS = 3
_SCALPING_MIN_POINTS = 10

# Synthetic candle wicks extend this fraction of the body beyond open/close
_WICK_FRACTION = 0.1


@dataclass
class PatternWindow:
    """Snapshot of the buffers handed to every detector (oldest first)."""

    prices: Sequence[float]
    volumes: Sequence[float]
    transactions: Sequence[TransactionRecord] = field(default_factory=list)

    def chart(self) -> tuple[list[float], list[float]]:
        """The last 15 prices and volumes used by chart patterns."""
        return (
            list(self.prices[-CHART_PATTERN_WINDOW:]),
            list(self.volumes[-CHART_PATTERN_WINDOW:]),
        )


@dataclass
class Candle:
    open: float
    close: float
    high: float
    low: float

    @classmethod
    def from_points(cls, open_: float, close: float) -> "Candle":
        """Approximate a bar from two consecutive prices."""
        body = abs(open_ - close)
        return cls(
            open=open_,
            close=close,
            high=max(open_, close) + body * _WICK_FRACTION,
            low=min(open_, close) - body * _WICK_FRACTION,
        )

    @property
    def body(self) -> float:
        return abs(self.open - self.close)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body_ratio(self) -> float | None:
        """Body over range, ``None`` for a flat bar."""
        return self.body / self.range if self.range > 0 else None


@dataclass
class Consolidation:
    detected: bool = False
    duration: int = 0
    start_price: float = 0.0
    end_price: float = 0.0


class PatternDetector(ABC):
    """Boolean predicate over a ``PatternWindow``."""

    name: ClassVar[PatternName]
    min_points: ClassVar[int] = 0

    def __init__(self, settings: "PatternSettings") -> None:
        self._settings = settings

    def detect(self, window: PatternWindow) -> bool:
        """Return ``False`` when the window is too short, else evaluate."""
        if len(window.prices) < self.min_points or len(window.volumes) < self.min_points:
            return False
        return bool(self._detect(window))

    @abstractmethod
    def _detect(self, window: PatternWindow) -> bool:
        ...


_REGISTRY: dict[PatternName, type[PatternDetector]] = {}


def register_pattern(cls: type[PatternDetector]) -> type[PatternDetector]:
    """Class decorator adding a detector to the registry."""
    if cls.name in _REGISTRY:
        raise ValueError(f"Pattern {cls.name.value} registered twice")
    _REGISTRY[cls.name] = cls
    return cls


def registered_patterns() -> dict[PatternName, type[PatternDetector]]:
    return dict(_REGISTRY)


# ---------------------------------------------------------------------------
# Chart patterns
# ---------------------------------------------------------------------------

class ChartPattern(PatternDetector):
    min_points = CHART_PATTERN_MIN_HISTORY


@register_pattern
class BullFlag(ChartPattern):
    """Strong pole over the first half, shallow drift at the end."""

    name = PatternName.BULL_FLAG

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        pole = p[7] - p[0]
        flag = p[14] - p[10]
        return pole > 0 and abs(flag) < pole * 0.22 and v[0] > v[7] * 2.2


@register_pattern
class CupAndHandle(ChartPattern):
    name = PatternName.CUP_AND_HANDLE

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        cup_depth = max(p[0:7]) - min(p[0:7])
        handle_depth = p[14] - min(p[10:14])
        return cup_depth > 0 and handle_depth < cup_depth * 0.25 and v[14] > v[10] * 1.9


@register_pattern
class FallingWedge(ChartPattern):
    name = PatternName.FALLING_WEDGE

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        high1, high2 = max(p[0:3]), max(p[5:8])
        low1, low2, low3 = min(p[0:3]), min(p[5:8]), min(p[10:13])
        return high2 < high1 and low2 > low1 and low3 > low2 and v[13] > v[0] * 1.7


@register_pattern
class AscendingTriangle(ChartPattern):
    """Flat resistance from the first five points with rising lows after it.

    Each low is the lower of two neighbouring points in the tail.
    """

    name = PatternName.ASCENDING_TRIANGLE

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        resistance = max(p[0:5])
        tail = p[5:]
        lows = [min(tail[i], tail[i - 1]) for i in range(1, len(tail))]
        ascending = all(lows[i] > lows[i - 1] for i in range(1, len(lows)))
        return all(x < resistance for x in tail) and ascending and v[14] > v[5] * 2.0


@register_pattern
class DoubleBottom(ChartPattern):
    name = PatternName.DOUBLE_BOTTOM

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        first = p.index(min(p[0:5]))
        second = p.index(min(p[6:10]))
        if not (first < 5 and 5 < second < 10):
            return False
        return (
            abs(p[first] - p[second]) < p[first] * 0.03
            and p[14] > max(p[first:second])
            and v[second] > v[first] * 1.2
        )


@register_pattern
class InverseHeadShoulders(ChartPattern):
    name = PatternName.INVERSE_HEAD_SHOULDERS

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        left = min(p[0:3])
        head = min(p[4:7])
        right = min(p[8:11])
        neckline = (p[3] + p[7]) / 2
        return (
            head < left
            and head < right
            and abs(left - right) < left * 0.03
            and p[14] > neckline
            and v[10] > v[4] * 1.3
        )


@register_pattern
class Pennant(ChartPattern):
    name = PatternName.PENNANT

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        pole = abs(p[4] - p[0])
        body = p[5:10]
        height = max(body) - min(body)
        return pole > 0 and pole > height * 3 and v[4] > v[0] * 2.5 and p[14] > max(body)


@register_pattern
class RoundingBottom(ChartPattern):
    name = PatternName.ROUNDING_BOTTOM

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.chart()
        first_min = min(p[0:7])
        second_min = min(p[7:])
        mid = p[7]
        return (
            first_min < mid
            and second_min < mid
            and abs(first_min - second_min) < first_min * 0.05
            and p[14] > mid
            and v[14] > v[0] * 1.8
        )


# ---------------------------------------------------------------------------
# Candlestick patterns (synthetic two-bar OHLC)
# ---------------------------------------------------------------------------

class CandlePattern(PatternDetector):
    """Rule over the previous and current bar.

    Live windows only ever produce synthetic bars; ``matches`` takes any pair
    of candles.
    """

    min_points = _CANDLE_MIN_POINTS

    @staticmethod
    def bars(window: PatternWindow) -> tuple[Candle, Candle]:
        """Previous and current synthetic bars."""
        p = window.prices
        return Candle.from_points(p[-3], p[-2]), Candle.from_points(p[-2], p[-1])

    def _detect(self, window: PatternWindow) -> bool:
        return self.matches(*self.bars(window))

    @abstractmethod
    def matches(self, prev: Candle, cur: Candle) -> bool:
        ...


@register_pattern
class Marubozu(CandlePattern):
    name = PatternName.MARUBOZU

    def matches(self, prev: Candle, cur: Candle) -> bool:
        ratio = cur.body_ratio
        return ratio is not None and ratio > 0.9


@register_pattern
class BullishEngulfing(CandlePattern):
    name = PatternName.BULLISH_ENGULFING

    def matches(self, prev: Candle, cur: Candle) -> bool:
        return (
            cur.close > cur.open
            and prev.close < prev.open
            and cur.open < prev.close
            and cur.close > prev.open
        )


@register_pattern
class BearishEngulfing(CandlePattern):
    name = PatternName.BEARISH_ENGULFING

    def matches(self, prev: Candle, cur: Candle) -> bool:
        return (
            cur.close < cur.open
            and prev.close > prev.open
            and cur.open > prev.close
            and cur.close < prev.open
        )


@register_pattern
class Hammer(CandlePattern):
    name = PatternName.HAMMER

    def matches(self, prev: Candle, cur: Candle) -> bool:
        ratio = cur.body_ratio
        if ratio is None:
            return False
        lower_wick = cur.close - cur.low
        upper_wick = cur.high - cur.close
        return ratio < 0.3 and lower_wick > cur.body * 2 and upper_wick < cur.body * 0.5


@register_pattern
class InvertedHammer(CandlePattern):
    name = PatternName.INVERTED_HAMMER

    def matches(self, prev: Candle, cur: Candle) -> bool:
        ratio = cur.body_ratio
        if ratio is None:
            return False
        lower_wick = cur.close - cur.low
        upper_wick = cur.high - cur.close
        return ratio < 0.3 and upper_wick > cur.body * 2 and lower_wick < cur.body * 0.5


# ---------------------------------------------------------------------------
# Scalping micro patterns
# ---------------------------------------------------------------------------

class ScalpingPattern(PatternDetector):
    min_points = _SCALPING_MIN_POINTS


@register_pattern
class MicroRangeCompression(ScalpingPattern):
    name = PatternName.MICRO_RANGE_COMPRESSION

    def _detect(self, window: PatternWindow) -> bool:
        p = window.prices
        recent = max(p[-5:]) - min(p[-5:])
        previous = max(p[-10:-5]) - min(p[-10:-5])
        return recent < previous * self._settings.micro_range_threshold


@register_pattern
class VduSpike(ScalpingPattern):
    """Volume dry-up followed by a spike on an up tick."""

    name = PatternName.VDU_SPIKE

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.prices, window.volumes
        avg_volume = sum(v[-10:]) / 10
        return v[-1] > avg_volume * self._settings.vdu_spike_threshold and p[-1] > p[-2]


@register_pattern
class FlashSpikeAbsorption(ScalpingPattern):
    """Volume jumps by more than 150% while price barely moves."""

    name = PatternName.FLASH_SPIKE_ABSORPTION

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.prices, window.volumes
        if v[-2] <= 0 or p[-2] <= 0:
            return False
        volume_change = (v[-1] - v[-2]) / v[-2]
        price_change = (p[-1] - p[-2]) / p[-2]
        return volume_change > 1.5 and abs(price_change) < 0.01


@register_pattern
class TrapAndRun(ScalpingPattern):
    name = PatternName.TRAP_AND_RUN

    def _detect(self, window: PatternWindow) -> bool:
        p, v = window.prices, window.volumes
        return (
            p[-3] > p[-2]
            and p[-1] > p[-3]
            and v[-1] > v[-2] * self._settings.trap_run_volume_ratio
        )


@register_pattern
class ShakeoutBar(ScalpingPattern):
    name = PatternName.SHAKEOUT_BAR

    def _detect(self, window: PatternWindow) -> bool:
        last3 = window.prices[-3:]
        high, low = max(last3), min(last3)
        if high == low:
            return False
        return (last3[-1] - low) / (high - low) < self._settings.shakeout_bar_threshold


@register_pattern
class SupplyAbsorption(ScalpingPattern):
    """Mostly sells in the latest trades, yet price still ticks up."""

    name = PatternName.SUPPLY_ABSORPTION

    def _detect(self, window: PatternWindow) -> bool:
        tx = window.transactions
        if len(tx) <= 5:
            return False
        sells = sum(1 for t in tx[-5:] if t.type == TransactionType.SELL)
        return sells > 3 and window.prices[-1] > window.prices[-2]


@register_pattern
class VolumeStaircase(ScalpingPattern):
    name = PatternName.VOLUME_STAIRCASE

    def _detect(self, window: PatternWindow) -> bool:
        v = window.volumes
        steps = self._settings.volume_staircase_min_steps
        if len(v) <= steps + 1:
            return False
        return all(v[-2 - i] < v[-1 - i] for i in range(steps))


@register_pattern
class DarvasBox(ScalpingPattern):
    name = PatternName.DARVAS_BOX

    def _detect(self, window: PatternWindow) -> bool:
        last5 = window.prices[-5:]
        low = min(last5)
        return low > 0 and (max(last5) - low) / low < self._settings.darvas_box_size


@register_pattern
class BoxBreakoutRetest(ScalpingPattern):
    """Break above the prior 5-point box, dip back inside, break out again."""

    name = PatternName.BOX_BREAKOUT_RETEST

    def _detect(self, window: PatternWindow) -> bool:
        p = window.prices
        box_high = max(p[-8:-3])
        return (
            p[-3] > box_high * self._settings.box_breakout_threshold
            and p[-2] < box_high
            and p[-1] > box_high
        )


@register_pattern
class HiddenBullishDivergence(ScalpingPattern):
    """Price prints a lower local low while RSI prints a higher one."""

    name = PatternName.HIDDEN_BULLISH_DIVERGENCE

    def _detect(self, window: PatternWindow) -> bool:
        period = self._settings.hidden_divergence_period
        prices = list(window.prices)
        if len(prices) <= period:
            return False
        rsi = rsi_series(prices, period)
        if len(rsi) < period:
            return False

        p = prices[-period:]
        r = rsi[-period:]
        lows = [
            i for i in range(1, len(p) - 1)
            if p[i] < p[i - 1] and p[i] <= p[i + 1]
        ]
        if len(lows) < 2:
            return False
        older, recent = lows[-2], lows[-1]
        return p[recent] < p[older] and r[recent] > r[older]


@register_pattern
class ObvUptrend(ScalpingPattern):
    name = PatternName.OBV_UPTREND

    def _detect(self, window: PatternWindow) -> bool:
        return obv(window.prices, window.volumes) > 0


@register_pattern
class BuyWallStack(ScalpingPattern):
    name = PatternName.BUY_WALL_STACK

    def _detect(self, window: PatternWindow) -> bool:
        last3 = list(window.transactions[-3:])
        return len(last3) == 3 and all(t.type == TransactionType.BUY for t in last3)


@register_pattern
class VwapRetestSuccess(ScalpingPattern):
    name = PatternName.VWAP_RETEST_SUCCESS

    def _detect(self, window: PatternWindow) -> bool:
        level = vwap(window.prices, window.volumes)
        return window.prices[-1] > level and window.prices[-2] < level


# ---------------------------------------------------------------------------
# Recognizer
# ---------------------------------------------------------------------------

def detect_consolidation(
    prices: Sequence[float],
    period: int,
    volatility_threshold: float,
) -> Consolidation:
    """Low-volatility regime over the last ``period + 1`` prices."""
    if len(prices) < period + 2:
        return Consolidation()
    recent = list(prices[-period - 1:])
    avg = sum(recent) / len(recent)
    if avg <= 0:
        return Consolidation()
    volatility = (max(recent) - min(recent)) / avg
    if volatility >= volatility_threshold:
        return Consolidation()
    return Consolidation(
        detected=True,
        duration=period,
        start_price=recent[0],
        end_price=recent[-1],
    )


class PatternRecognizer:
    """Runs every registered detector against the current window.

    Parameters
    ----------
    settings:
        Pattern thresholds shared by all detectors.
    """

    def __init__(self, settings: "PatternSettings") -> None:
        self._detectors = [cls(settings) for cls in _REGISTRY.values()]

    @property
    def names(self) -> list[PatternName]:
        return [d.name for d in self._detectors]

    def recognize(self, window: PatternWindow) -> dict[PatternName, bool]:
        flags = {d.name: d.detect(window) for d in self._detectors}
        matched = [name.value for name, hit in flags.items() if hit]
        if matched:
            logger.debug("Patterns matched: %s", ", ".join(matched))
        return flags
