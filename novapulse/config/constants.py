"""Enums and constants used throughout the detection engine."""

from enum import Enum


class TransactionType(str, Enum):
    """Side of a recent on-chain transaction."""

    BUY = "Buy"
    SELL = "Sell"


class SignalType(str, Enum):
    """Kind of alert that produced a ``Signal``."""

    ACCUMULATION = "accumulation"
    EXPLOSION = "explosion"
    HYPERSPEED = "hyperspeed_explosion"
    MEGA_ACCUMULATION = "mega_accumulation"
    INSTANT_EXPLOSION = "instant_explosion"


class AlertKind(str, Enum):
    """Independently timed alert states."""

    ACCUMULATION = "accumulation"
    EXPLOSION = "explosion"
    HYPERSPEED = "hyperspeed"
    MEGA_ACCUMULATION = "mega_accumulation"


class ScanStatus(str, Enum):
    """Headline status reported for a tick."""

    SCANNING = "scanning"
    EARLY_ACCUMULATION = "early_accumulation"
    ACCUMULATION = "accumulation"
    EXPLOSION = "explosion"
    HYPERSPEED = "hyperspeed"
    MEGA_ACCUMULATION = "mega_accumulation"
    INSTANT_EXPLOSION = "instant_explosion"
    SCALPING = "scalping"


class LifecycleEvent(str, Enum):
    """Notices emitted by the trade lifecycle and scalping checks."""

    REASSURANCE = "reassurance"
    RESUMED = "resumed"
    ENDED = "ended"
    END_REMINDER = "end_reminder"
    EXPIRED = "expired"
    SCALP_BUY_PRESSURE = "scalp_buy_pressure"
    SCALP_RANGE_BREAKOUT = "scalp_range_breakout"


class TimeframeTrend(str, Enum):
    """Classification of a coarse timeframe series."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class PatternName(str, Enum):
    """Chart, candlestick and micro patterns known to the recognizer."""

    # Chart patterns
    BULL_FLAG = "bull_flag"
    CUP_AND_HANDLE = "cup_and_handle"
    FALLING_WEDGE = "falling_wedge"
    ASCENDING_TRIANGLE = "ascending_triangle"
    DOUBLE_BOTTOM = "double_bottom"
    INVERSE_HEAD_SHOULDERS = "inverse_head_shoulders"
    PENNANT = "pennant"
    ROUNDING_BOTTOM = "rounding_bottom"

    # Scalping micro patterns
    MICRO_RANGE_COMPRESSION = "micro_range_compression"
    VDU_SPIKE = "vdu_spike"
    FLASH_SPIKE_ABSORPTION = "flash_spike_absorption"
    TRAP_AND_RUN = "trap_and_run"
    SHAKEOUT_BAR = "shakeout_bar"
    SUPPLY_ABSORPTION = "supply_absorption"
    VOLUME_STAIRCASE = "volume_staircase"
    DARVAS_BOX = "darvas_box"
    BOX_BREAKOUT_RETEST = "box_breakout_retest"
    HIDDEN_BULLISH_DIVERGENCE = "hidden_bullish_divergence"
    OBV_UPTREND = "obv_uptrend"
    BUY_WALL_STACK = "buy_wall_stack"
    VWAP_RETEST_SUCCESS = "vwap_retest_success"

    # Candlestick patterns
    MARUBOZU = "marubozu"
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"
    HAMMER = "hammer"
    INVERTED_HAMMER = "inverted_hammer"


class ConditionId(str, Enum):
    """Closed vocabulary shared by evaluation, scoring and weight learning."""

    PRO_TRADER_BUY_VOLUME = "pro_trader_buy_volume"
    NET_WHALE_FLOW = "net_whale_flow"
    OBV_SPIKE = "obv_spike"
    WHALE_CLUSTER = "whale_cluster"
    ACCUMULATION_PATTERN = "accumulation_pattern"
    VOLUME_ACCELERATION = "volume_acceleration"
    CONSOLIDATION = "consolidation"
    PATTERN_MATCH = "pattern_match"
    SHOCKWAVE_ENGINE = "shockwave_engine"
    EXPLOSION_ODDS = "explosion_odds"
    CANDLE_PATTERN = "candle_pattern"
    VWAP_CONFIRMATION = "vwap_confirmation"
    TIMEFRAME_CONVERGENCE = "timeframe_convergence"
    SCALPING_MODE = "scalping_mode"
    INSTANT_BUY_PRESSURE = "instant_buy_pressure"
    VOLUME_SPIKE = "volume_spike"
    MICRO_RANGE = "micro_range"
    VDU_SPIKE = "vdu_spike"
    FLASH_ABSORPTION = "flash_absorption"
    TRAP_RUN = "trap_run"
    SHAKEOUT_BAR = "shakeout_bar"
    SUPPLY_ABSORPTION = "supply_absorption"
    VOLUME_STAIRCASE = "volume_staircase"
    DARVAS_BOX = "darvas_box"
    BOX_BREAKOUT = "box_breakout"
    HIDDEN_DIVERGENCE = "hidden_divergence"
    OBV_UPTREND = "obv_uptrend"
    BUY_WALL_STACK = "buy_wall_stack"
    VWAP_RETEST = "vwap_retest"


# Points contributed by an active condition before weighting
BASE_SCORES: dict[ConditionId, float] = {
    ConditionId.ACCUMULATION_PATTERN: 25,
    ConditionId.NET_WHALE_FLOW: 20,
    ConditionId.WHALE_CLUSTER: 15,
    ConditionId.PATTERN_MATCH: 15,
    ConditionId.PRO_TRADER_BUY_VOLUME: 15,
    ConditionId.EXPLOSION_ODDS: 12,
    ConditionId.VOLUME_ACCELERATION: 10,
    ConditionId.SHOCKWAVE_ENGINE: 10,
    ConditionId.VWAP_CONFIRMATION: 10,
    ConditionId.TIMEFRAME_CONVERGENCE: 10,
    ConditionId.OBV_SPIKE: 10,
    ConditionId.CONSOLIDATION: 8,
    ConditionId.CANDLE_PATTERN: 8,
}
DEFAULT_BASE_SCORE = 5.0

# Patterns that count as a "pattern match" (reported pattern text != NONE)
PATTERN_MATCH_SET: tuple[PatternName, ...] = (
    PatternName.BULL_FLAG,
    PatternName.CUP_AND_HANDLE,
    PatternName.FALLING_WEDGE,
    PatternName.ASCENDING_TRIANGLE,
    PatternName.DOUBLE_BOTTOM,
    PatternName.INVERSE_HEAD_SHOULDERS,
    PatternName.PENNANT,
    PatternName.ROUNDING_BOTTOM,
    PatternName.MICRO_RANGE_COMPRESSION,
    PatternName.VDU_SPIKE,
    PatternName.TRAP_AND_RUN,
)

# Patterns that add to explosion odds
BULLISH_ODDS_PATTERNS: tuple[PatternName, ...] = (
    PatternName.BULL_FLAG,
    PatternName.ASCENDING_TRIANGLE,
    PatternName.BULLISH_ENGULFING,
)

# Weight table bounds and default
WEIGHT_MIN = 0.1
WEIGHT_MAX = 2.0
DEFAULT_WEIGHT = 1.0

# Score bounds and false-signal dampening
SCORE_MIN = 0.0
SCORE_MAX = 100.0
FALSE_SIGNAL_DAMPING = 0.7

# Neutral RSI reported before enough data exists
NEUTRAL_RSI = 50.0

# Minimum history before chart patterns are evaluated (last 15 points used)
CHART_PATTERN_MIN_HISTORY = 20
CHART_PATTERN_WINDOW = 15

# Window for the false-signal count feeding explosion odds
FALSE_SIGNAL_LOOKBACK_MS = 60_000

# Window for the pro-trader change indicator
PRO_TRADER_LOOKBACK_MS = 15_000

# Maximum transactions considered per tick
MAX_TRANSACTIONS = 50

# One day, in milliseconds
DAY_MS = 86_400_000
