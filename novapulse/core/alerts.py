"""Alert state machine: four timed alert kinds plus the trade lifecycle.

Per tick the machine runs, in order:

1. expiry of alert states whose lifetime has elapsed
2. instant-explosion prediction
3. mega accumulation
4. hyperspeed, then explosion (suppressed while hyperspeed is active)
5. trade-lifecycle hysteresis (resume / end / reminders / expiry)
6. scalping notices
7. accumulation (cooldown-gated, blocked by any explosive state)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from novapulse.analysis.conditions import MarketContext, average_volume
from novapulse.analysis.indicators import acceleration, relative_changes
from novapulse.analysis.patterns import Consolidation
from novapulse.config.constants import (
    AlertKind,
    ConditionId,
    LifecycleEvent,
    PatternName,
    ScanStatus,
    SignalType,
)
from novapulse.data.models import Signal

if TYPE_CHECKING:
    from novapulse.config.settings import Settings

logger = logging.getLogger(__name__)

_EXPLOSION_MIN_ACCEL = 0.05
_HYPERSPEED_MIN_ACCEL = 0.1
_HYPERSPEED_DECAY = 2.0
_MEGA_LIFETIME_FACTOR = 1.5
_MEGA_MIN_CONSOLIDATION = 3
_MEGA_VOLUME_LOOKBACK = 10
_EARLY_ACCUMULATION_MARGIN = 15
_DUMP_MIN_CONDITIONS = 2
_DUMP_VOLUME_LOOKBACK = 5
_SCALP_NOTICE_SPACING_MS = 2000
_BREAKOUT_LOOKBACK = 5
_BREAKOUT_VOLUME_RATIO = 2.5


def predict_instant_explosion(
    prices: Sequence[float],
    window: int,
    threshold: float,
) -> tuple[bool, float]:
    """Sum of positive changes in relative change, over their count.

    Uses the last ``window + 1`` prices. Returns ``(predicted, confidence)``.
    """
    if window < 2 or len(prices) < window + 1:
        return False, 0.0
    changes = relative_changes(list(prices[-window - 1:]))
    accels = [b - a for a, b in zip(changes, changes[1:])]
    if not accels:
        return False, 0.0
    confidence = sum(a for a in accels if a > 0) / len(accels)
    return confidence > threshold, confidence


@dataclass
class AlertState:
    """Timing state of one alert kind."""

    kind: AlertKind
    active: bool = False
    start_time: int | None = None
    last_fired: int | None = None
    cooldown_until: int | None = None

    def fire(self, now: int, cooldown_ms: int = 0) -> None:
        self.active = True
        self.start_time = now
        self.last_fired = now
        self.cooldown_until = now + cooldown_ms

    def elapsed(self, now: int) -> int:
        return now - self.start_time if self.start_time is not None else 0

    def remaining_strength(self, now: int, lifetime_ms: float, decay: float = 1.0) -> float:
        """Linear decay from 100 to 0 over the lifetime (scaled by *decay*)."""
        if not self.active or lifetime_ms <= 0:
            return 0.0
        return max(0.0, 100.0 * (1.0 - decay * self.elapsed(now) / lifetime_ms))


@dataclass
class TradeLifecycle:
    in_trade: bool = False
    accumulation_active: bool = False
    end_alert_active: bool = False
    end_counter: float = 0.0
    trade_start_time: int | None = None
    end_alert_count: int = 0
    last_end_alert_time: int | None = None
    last_reassurance_time: int | None = None


@dataclass
class AlertCounters:
    """Attempted (accumulation) versus realized (explosive/mega) alerts."""

    attempted: int = 0
    realized: int = 0
    by_type: dict[SignalType, int] = field(default_factory=lambda: {t: 0 for t in SignalType})


@dataclass
class AlertInputs:
    """Per-tick evidence consumed by the state machine."""

    now: int
    price: float
    score: float
    conditions: Mapping[ConditionId, bool]
    context: MarketContext
    patterns: Mapping[PatternName, bool]
    prices: Sequence[float]
    volumes: Sequence[float]
    consolidation: Consolidation
    volatility_index: float = 0.0
    volume_reference: float | None = None


@dataclass
class AlertOutcome:
    status: ScanStatus = ScanStatus.SCANNING
    signals: list[Signal] = field(default_factory=list)
    events: list[LifecycleEvent] = field(default_factory=list)
    active_alerts: dict[AlertKind, float] = field(default_factory=dict)
    instant_confidence: float = 0.0
    mega_confidence: float = 0.0


class AlertStateMachine:
    """Owns every alert timer, the cooldown clocks and the trade lifecycle.

    Parameters
    ----------
    settings:
        Full application settings.
    """

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self.reset()

    def reset(self) -> None:
        self.states: dict[AlertKind, AlertState] = {kind: AlertState(kind) for kind in AlertKind}
        self.lifecycle = TradeLifecycle()
        self.counters = AlertCounters()
        self.last_signal_time: int | None = None
        self.last_mega_time: int | None = None

    # ------------------------------------------------------------------
    # Lifetimes
    # ------------------------------------------------------------------

    def lifetime(self, kind: AlertKind) -> float:
        base = self._settings.detection.min_strength_duration_ms
        if kind == AlertKind.MEGA_ACCUMULATION:
            return base * _MEGA_LIFETIME_FACTOR
        if kind == AlertKind.ACCUMULATION:
            return self._settings.detection.cooldown_period_ms
        return base

    def is_active(self, kind: AlertKind) -> bool:
        return self.states[kind].active

    @property
    def last_explosion_time(self) -> int | None:
        return self.states[AlertKind.EXPLOSION].last_fired

    def active_strengths(self, now: int) -> dict[AlertKind, float]:
        strengths = {}
        for kind, state in self.states.items():
            if state.active:
                decay = _HYPERSPEED_DECAY if kind == AlertKind.HYPERSPEED else 1.0
                strengths[kind] = state.remaining_strength(now, self.lifetime(kind), decay)
        return strengths

    def _expire(self, now: int) -> None:
        for kind, state in self.states.items():
            if state.active and state.elapsed(now) > self.lifetime(kind):
                state.active = False
                logger.debug("%s alert decayed", kind.value)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def evaluate(self, inputs: AlertInputs) -> AlertOutcome:
        now = inputs.now
        outcome = AlertOutcome()
        self._expire(now)

        instant = self._check_instant_explosion(inputs, outcome)
        self._check_mega(inputs, outcome)
        self._check_explosions(inputs, outcome)

        if self._settings.lifecycle.alerts_enabled and self.lifecycle.in_trade:
            outcome.events.extend(self._update_lifecycle(inputs))

        scalp_notice = False
        if self._settings.scalping.scalping_mode:
            notices = self._scalping_notices(inputs)
            outcome.events.extend(notices)
            scalp_notice = bool(notices)

        accumulated = self._check_accumulation(inputs, outcome)

        outcome.active_alerts = self.active_strengths(now)
        outcome.status = self._status(inputs.score, accumulated, instant, scalp_notice)
        return outcome

    def _emit(
        self,
        inputs: AlertInputs,
        signal_type: SignalType,
        confidence: float,
        outcome: AlertOutcome,
        prediction_time: int | None = None,
    ) -> Signal:
        signal = Signal(
            time=inputs.now,
            price=inputs.price,
            type=signal_type,
            confidence=confidence,
            evaluation_deadline=inputs.now + self._settings.learning.evaluation_period_ms,
            active_conditions=dict(inputs.conditions),
            prediction_time=prediction_time,
        )
        self.counters.by_type[signal_type] += 1
        outcome.signals.append(signal)
        logger.info(
            "%s alert at price %.10g (confidence %.4f)",
            signal_type.value,
            inputs.price,
            confidence,
        )
        return signal

    def _enter_trade(self, now: int) -> None:
        lc = self.lifecycle
        lc.in_trade = True
        lc.trade_start_time = now
        lc.accumulation_active = True
        lc.end_alert_active = False

    def _check_instant_explosion(self, inputs: AlertInputs, outcome: AlertOutcome) -> bool:
        learning = self._settings.learning
        predicted, confidence = predict_instant_explosion(
            inputs.prices,
            learning.hyperspeed_detection_window,
            learning.hyperspeed_confidence_threshold,
        )
        outcome.instant_confidence = confidence
        if not predicted or self.is_active(AlertKind.EXPLOSION) or self.is_active(AlertKind.HYPERSPEED):
            return False
        self._emit(
            inputs,
            SignalType.INSTANT_EXPLOSION,
            confidence,
            outcome,
            prediction_time=inputs.now + learning.instant_explosion_prediction_seconds * 1000,
        )
        return True

    def mega_preconditions(self, inputs: AlertInputs) -> list[bool]:
        mega = self._settings.mega
        volume = inputs.volumes[-1] if inputs.volumes else 0.0
        consolidation = inputs.consolidation
        return [
            inputs.score >= mega.mega_accumulation_threshold,
            inputs.context.pro_traders >= mega.mega_pro_traders_threshold,
            inputs.context.total_buy >= mega.mega_buy_volume_threshold,
            consolidation.detected and consolidation.duration >= _MEGA_MIN_CONSOLIDATION,
            inputs.volatility_index < mega.mega_volatility_threshold,
            bool(inputs.conditions.get(ConditionId.PATTERN_MATCH, False)),
            volume > average_volume(inputs.volumes, _MEGA_VOLUME_LOOKBACK) * mega.mega_volume_ratio,
        ]

    def _check_mega(self, inputs: AlertInputs, outcome: AlertOutcome) -> None:
        mega = self._settings.mega
        checks = self.mega_preconditions(inputs)
        confidence = sum(checks) / len(checks)
        outcome.mega_confidence = confidence

        cooled = (
            self.last_mega_time is None
            or inputs.now - self.last_mega_time > mega.mega_accumulation_cooldown_ms
        )
        if confidence < mega.mega_pattern_weight or not cooled:
            return

        self.states[AlertKind.MEGA_ACCUMULATION].fire(inputs.now, mega.mega_accumulation_cooldown_ms)
        self.last_mega_time = inputs.now
        self.counters.realized += 1
        self._emit(inputs, SignalType.MEGA_ACCUMULATION, confidence, outcome)
        self._enter_trade(inputs.now)

    def _check_explosions(self, inputs: AlertInputs, outcome: AlertOutcome) -> None:
        prices = inputs.prices
        if len(prices) < 4:
            return
        detection = self._settings.detection
        last_change = relative_changes(list(prices[-2:]))[0]
        accel = acceleration(prices)

        reference = inputs.volume_reference
        if reference is None and len(inputs.volumes) > 1:
            reference = inputs.volumes[-2]
        volume = inputs.volumes[-1] if inputs.volumes else 0.0

        if (
            last_change > detection.hyperspeed_threshold
            and accel > _HYPERSPEED_MIN_ACCEL
            and reference is not None
            and volume > reference * detection.hyperspeed_volume_ratio
        ):
            self.states[AlertKind.HYPERSPEED].fire(inputs.now)
            self.counters.realized += 1
            self._emit(inputs, SignalType.HYPERSPEED, accel, outcome)
            self._enter_trade(inputs.now)

        if (
            last_change > detection.explosion_threshold
            and accel > _EXPLOSION_MIN_ACCEL
            and not self.is_active(AlertKind.HYPERSPEED)
        ):
            self.states[AlertKind.EXPLOSION].fire(inputs.now)
            self.counters.realized += 1
            self._emit(inputs, SignalType.EXPLOSION, accel, outcome)
            self._enter_trade(inputs.now)

    def _update_lifecycle(self, inputs: AlertInputs) -> list[LifecycleEvent]:
        """Reassurance, resume/end hysteresis, end reminders and hard expiry."""
        settings = self._settings.lifecycle
        lc = self.lifecycle
        now = inputs.now
        events: list[LifecycleEvent] = []

        if lc.accumulation_active and (
            lc.last_reassurance_time is None
            or now - lc.last_reassurance_time > settings.reassurance_interval_ms
        ):
            events.append(LifecycleEvent.REASSURANCE)
            lc.last_reassurance_time = now

        if inputs.score > settings.resume_score and not lc.accumulation_active:
            lc.accumulation_active = True
            lc.end_alert_active = False
            lc.last_reassurance_time = now
            events.append(LifecycleEvent.RESUMED)
        elif inputs.score < settings.exit_score and lc.accumulation_active:
            if self._dump_confirmed(inputs):
                lc.end_counter += 1
                if lc.end_counter >= settings.accumulation_end_confirmation:
                    lc.accumulation_active = False
                    lc.end_counter = 0
                    lc.end_alert_active = True
                    lc.end_alert_count = 0
                    lc.last_end_alert_time = now
                    events.append(LifecycleEvent.ENDED)
                    logger.info("Accumulation ended at price %.10g", inputs.price)
            else:
                lc.end_counter = max(0, lc.end_counter - 1)
        else:
            lc.end_counter = 0

        if (
            lc.end_alert_active
            and lc.last_end_alert_time is not None
            and now - lc.last_end_alert_time > settings.reassurance_interval_ms
        ):
            lc.end_alert_count += 1
            lc.last_end_alert_time = now
            events.append(LifecycleEvent.END_REMINDER)
            if lc.end_alert_count >= settings.max_end_alerts:
                lc.end_alert_active = False

        if lc.trade_start_time is not None and now - lc.trade_start_time > settings.max_trade_duration_ms:
            lc.in_trade = False
            lc.accumulation_active = False
            lc.end_alert_active = False
            events.append(LifecycleEvent.EXPIRED)
            logger.info("Trade duration expired")

        return events

    def _dump_confirmed(self, inputs: AlertInputs) -> bool:
        settings = self._settings.lifecycle
        volume = inputs.volumes[-1] if inputs.volumes else 0.0
        dump = [
            inputs.context.sell_pressure > settings.dump_confirmation_threshold,
            volume > average_volume(inputs.volumes, _DUMP_VOLUME_LOOKBACK)
            * settings.panic_sell_volume_multiplier,
            not inputs.patterns.get(PatternName.SUPPLY_ABSORPTION, False),
        ]
        return sum(dump) >= _DUMP_MIN_CONDITIONS

    def _scalping_notices(self, inputs: AlertInputs) -> list[LifecycleEvent]:
        """Buy-pressure and micro-range breakout notices; both reset the cooldown clock."""
        now = inputs.now
        events: list[LifecycleEvent] = []

        if (
            inputs.conditions.get(ConditionId.INSTANT_BUY_PRESSURE, False)
            and inputs.conditions.get(ConditionId.VOLUME_SPIKE, False)
            and (self.last_signal_time is None or now - self.last_signal_time > _SCALP_NOTICE_SPACING_MS)
        ):
            events.append(LifecycleEvent.SCALP_BUY_PRESSURE)
            self.last_signal_time = now

        prior = list(inputs.prices[-_BREAKOUT_LOOKBACK - 1:-1])
        volume = inputs.volumes[-1] if inputs.volumes else 0.0
        if (
            prior
            and inputs.patterns.get(PatternName.MICRO_RANGE_COMPRESSION, False)
            and inputs.price > max(prior)
            and volume > average_volume(inputs.volumes, _BREAKOUT_LOOKBACK) * _BREAKOUT_VOLUME_RATIO
        ):
            events.append(LifecycleEvent.SCALP_RANGE_BREAKOUT)
            self.last_signal_time = now

        return events

    def _check_accumulation(self, inputs: AlertInputs, outcome: AlertOutcome) -> bool:
        detection = self._settings.detection
        now = inputs.now
        if inputs.score < detection.min_accumulation_score:
            return False
        if self.last_signal_time is not None and now - self.last_signal_time <= detection.cooldown_period_ms:
            return False
        if self._explosive_active():
            return False

        self.states[AlertKind.ACCUMULATION].fire(now, detection.cooldown_period_ms)
        self.last_signal_time = now
        self.counters.attempted += 1
        self._emit(inputs, SignalType.ACCUMULATION, inputs.score, outcome)
        self._enter_trade(now)
        return True

    def _explosive_active(self) -> bool:
        return (
            self.is_active(AlertKind.EXPLOSION)
            or self.is_active(AlertKind.HYPERSPEED)
            or self.is_active(AlertKind.MEGA_ACCUMULATION)
        )

    def _status(
        self,
        score: float,
        accumulated: bool,
        instant: bool,
        scalp_notice: bool,
    ) -> ScanStatus:
        if self.is_active(AlertKind.HYPERSPEED):
            return ScanStatus.HYPERSPEED
        if self.is_active(AlertKind.EXPLOSION):
            return ScanStatus.EXPLOSION
        if self.is_active(AlertKind.MEGA_ACCUMULATION):
            return ScanStatus.MEGA_ACCUMULATION
        if accumulated:
            return ScanStatus.ACCUMULATION
        if instant:
            return ScanStatus.INSTANT_EXPLOSION
        if scalp_notice:
            return ScanStatus.SCALPING
        if score >= self._settings.detection.min_accumulation_score - _EARLY_ACCUMULATION_MARGIN:
            return ScanStatus.EARLY_ACCUMULATION
        return ScanStatus.SCANNING
