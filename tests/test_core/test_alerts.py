"""Tests for the alert state machine and trade lifecycle."""

from __future__ import annotations

import pytest

from novapulse.analysis.conditions import MarketContext
from novapulse.analysis.patterns import Consolidation
from novapulse.config.constants import (
    AlertKind,
    ConditionId,
    LifecycleEvent,
    PatternName,
    ScanStatus,
    SignalType,
)
from novapulse.core.alerts import (
    AlertInputs,
    AlertState,
    AlertStateMachine,
    predict_instant_explosion,
)

FLAT = [100.0] * 10


def _inputs(
    now: int,
    score: float = 0.0,
    prices=None,
    volumes=None,
    conditions=None,
    context=None,
    patterns=None,
    consolidation=None,
    volatility_index: float = 0.5,
    volume_reference=None,
) -> AlertInputs:
    prices = list(prices if prices is not None else FLAT)
    volumes = list(volumes if volumes is not None else [100.0] * len(prices))
    return AlertInputs(
        now=now,
        price=prices[-1],
        score=score,
        conditions=conditions or {},
        context=context or MarketContext(),
        patterns=patterns or {},
        prices=prices,
        volumes=volumes,
        consolidation=consolidation or Consolidation(),
        volatility_index=volatility_index,
        volume_reference=volume_reference,
    )


class TestPredictInstantExplosion:
    def test_confidence(self):
        predicted, confidence = predict_instant_explosion([100.0, 10.0, 10.0, 20.0], 3, 0.85)
        assert predicted is True
        assert confidence == pytest.approx(0.95)

    def test_short_history(self):
        assert predict_instant_explosion([100.0, 101.0], 3, 0.85) == (False, 0.0)
        assert predict_instant_explosion(FLAT, 1, 0.85) == (False, 0.0)


class TestAlertState:
    def test_linear_decay(self):
        state = AlertState(AlertKind.EXPLOSION)
        state.fire(0)
        assert state.remaining_strength(0, 3200) == 100.0
        assert state.remaining_strength(1600, 3200) == pytest.approx(50.0)
        assert state.remaining_strength(1600, 3200, decay=2.0) == 0.0
        assert state.remaining_strength(5000, 3200) == 0.0

    def test_inactive_has_no_strength(self):
        assert AlertState(AlertKind.EXPLOSION).remaining_strength(0, 3200) == 0.0


class TestAccumulation:
    def test_fires_once_then_cooldown(self, settings):
        machine = AlertStateMachine(settings)

        first = machine.evaluate(_inputs(0, score=95.0))
        assert [s.type for s in first.signals] == [SignalType.ACCUMULATION]
        assert first.signals[0].confidence == 95.0
        assert first.signals[0].evaluation_deadline == 30_000
        assert first.status == ScanStatus.ACCUMULATION
        assert machine.counters.attempted == 1
        assert machine.lifecycle.in_trade is True

        second = machine.evaluate(_inputs(1000, score=95.0))
        assert second.signals == []
        assert second.status == ScanStatus.EARLY_ACCUMULATION
        assert machine.counters.attempted == 1

        third = machine.evaluate(_inputs(5001, score=95.0))
        assert [s.type for s in third.signals] == [SignalType.ACCUMULATION]

    def test_below_threshold(self, settings):
        outcome = AlertStateMachine(settings).evaluate(_inputs(0, score=91.0))
        assert outcome.signals == []
        assert outcome.status == ScanStatus.EARLY_ACCUMULATION

    def test_scanning(self, settings):
        assert AlertStateMachine(settings).evaluate(_inputs(0, score=10.0)).status == ScanStatus.SCANNING

    def test_signal_snapshots_conditions(self, settings):
        conditions = {ConditionId.NET_WHALE_FLOW: True}
        outcome = AlertStateMachine(settings).evaluate(
            _inputs(0, score=95.0, conditions=conditions)
        )
        signal = outcome.signals[0]
        assert signal.active_conditions == conditions
        assert signal.active_conditions is not conditions


class TestExplosions:
    jump = [100.0] * 9 + [250.0]

    def test_explosion(self, settings):
        machine = AlertStateMachine(settings)
        outcome = machine.evaluate(_inputs(0, prices=self.jump))
        assert [s.type for s in outcome.signals] == [SignalType.EXPLOSION]
        assert outcome.signals[0].confidence == pytest.approx(1.5 / 2.2)
        assert outcome.status == ScanStatus.EXPLOSION
        assert machine.last_explosion_time == 0
        assert machine.counters.realized == 1
        assert machine.lifecycle.in_trade is True

    def test_small_move_ignored(self, settings):
        prices = [100.0] * 9 + [110.0]
        assert AlertStateMachine(settings).evaluate(_inputs(0, prices=prices)).signals == []

    def test_hyperspeed_suppresses_explosion(self, settings):
        machine = AlertStateMachine(settings)
        volumes = [100.0] * 9 + [400.0]
        outcome = machine.evaluate(_inputs(0, prices=self.jump, volumes=volumes))
        assert [s.type for s in outcome.signals] == [SignalType.HYPERSPEED]
        assert outcome.status == ScanStatus.HYPERSPEED
        assert machine.is_active(AlertKind.HYPERSPEED)
        assert not machine.is_active(AlertKind.EXPLOSION)

    def test_hyperspeed_uses_volume_reference(self, settings):
        volumes = [100.0] * 9 + [400.0]
        outcome = AlertStateMachine(settings).evaluate(
            _inputs(0, prices=self.jump, volumes=volumes, volume_reference=200.0)
        )
        assert [s.type for s in outcome.signals] == [SignalType.EXPLOSION]

    def test_decay_and_expiry(self, settings):
        machine = AlertStateMachine(settings)
        machine.evaluate(_inputs(0, prices=self.jump))

        held = self.jump + [250.0]
        outcome = machine.evaluate(_inputs(1600, prices=held))
        assert outcome.active_alerts[AlertKind.EXPLOSION] == pytest.approx(50.0)

        machine.evaluate(_inputs(3201, prices=held))
        assert not machine.is_active(AlertKind.EXPLOSION)

    def test_explosion_blocks_accumulation(self, settings):
        machine = AlertStateMachine(settings)
        machine.evaluate(_inputs(0, prices=self.jump))
        outcome = machine.evaluate(_inputs(1000, score=95.0, prices=self.jump + [250.0]))
        assert outcome.signals == []
        assert outcome.status == ScanStatus.EXPLOSION


class TestInstantExplosion:
    def test_fires_without_entering_trade(self, settings):
        machine = AlertStateMachine(settings)
        prices = [100.0] * 6 + [100.0, 10.0, 10.0, 20.0]
        outcome = machine.evaluate(_inputs(0, prices=prices))
        assert [s.type for s in outcome.signals] == [SignalType.INSTANT_EXPLOSION]
        assert outcome.signals[0].prediction_time == 3000
        assert outcome.instant_confidence == pytest.approx(0.95)
        assert outcome.status == ScanStatus.INSTANT_EXPLOSION
        assert machine.lifecycle.in_trade is False


class TestMegaAccumulation:
    def _mega_inputs(self, now: int, volatility_index: float = 0.01) -> AlertInputs:
        return _inputs(
            now,
            score=96.0,
            volumes=[100.0] * 9 + [1000.0],
            conditions={ConditionId.PATTERN_MATCH: True},
            context=MarketContext(total_buy=300000.0, pro_traders=20),
            consolidation=Consolidation(detected=True, duration=5, start_price=100, end_price=100),
            volatility_index=volatility_index,
        )

    def test_fires_and_blocks_accumulation(self, settings):
        machine = AlertStateMachine(settings)
        outcome = machine.evaluate(self._mega_inputs(0))
        assert [s.type for s in outcome.signals] == [SignalType.MEGA_ACCUMULATION]
        assert outcome.mega_confidence == pytest.approx(1.0)
        assert outcome.status == ScanStatus.MEGA_ACCUMULATION
        assert machine.counters.realized == 1
        assert machine.counters.attempted == 0

    def test_cooldown(self, settings):
        machine = AlertStateMachine(settings)
        machine.evaluate(self._mega_inputs(0))
        assert machine.evaluate(self._mega_inputs(1000)).signals == []

    def test_six_of_seven_is_enough(self, settings):
        outcome = AlertStateMachine(settings).evaluate(self._mega_inputs(0, volatility_index=0.5))
        assert outcome.mega_confidence == pytest.approx(6 / 7)
        assert [s.type for s in outcome.signals] == [SignalType.MEGA_ACCUMULATION]

    def test_preconditions_reported(self, settings):
        checks = AlertStateMachine(settings).mega_preconditions(self._mega_inputs(0))
        assert checks == [True] * 7


class TestScalpingNotices:
    pressure = {ConditionId.INSTANT_BUY_PRESSURE: True, ConditionId.VOLUME_SPIKE: True}

    def test_buy_pressure_notice(self, settings):
        machine = AlertStateMachine(settings)
        outcome = machine.evaluate(_inputs(0, conditions=self.pressure))
        assert outcome.events == [LifecycleEvent.SCALP_BUY_PRESSURE]
        assert outcome.status == ScanStatus.SCALPING

        assert machine.evaluate(_inputs(1000, conditions=self.pressure)).events == []
        assert machine.evaluate(_inputs(2001, conditions=self.pressure)).events == [
            LifecycleEvent.SCALP_BUY_PRESSURE
        ]

    def test_notice_resets_accumulation_cooldown(self, settings):
        outcome = AlertStateMachine(settings).evaluate(
            _inputs(0, score=95.0, conditions=self.pressure)
        )
        assert outcome.signals == []

    def test_range_breakout(self, settings):
        outcome = AlertStateMachine(settings).evaluate(
            _inputs(
                0,
                prices=[100.0] * 9 + [105.0],
                volumes=[100.0] * 9 + [1000.0],
                patterns={PatternName.MICRO_RANGE_COMPRESSION: True},
            )
        )
        assert LifecycleEvent.SCALP_RANGE_BREAKOUT in outcome.events

    def test_disabled_in_standard_mode(self, standard_settings):
        outcome = AlertStateMachine(standard_settings).evaluate(
            _inputs(0, conditions=self.pressure)
        )
        assert outcome.events == []


class TestLifecycle:
    dump = MarketContext(sell_pressure=0.9)

    def _enter(self, settings) -> AlertStateMachine:
        machine = AlertStateMachine(settings)
        machine.evaluate(_inputs(0, score=95.0))
        assert machine.lifecycle.in_trade
        return machine

    def test_end_confirmation_and_resume(self, standard_settings):
        machine = self._enter(standard_settings)

        first = machine.evaluate(_inputs(1000, score=50.0, context=self.dump))
        assert LifecycleEvent.REASSURANCE in first.events
        assert LifecycleEvent.ENDED not in first.events
        assert LifecycleEvent.ENDED not in machine.evaluate(
            _inputs(2000, score=50.0, context=self.dump)
        ).events

        ended = machine.evaluate(_inputs(3000, score=50.0, context=self.dump))
        assert LifecycleEvent.ENDED in ended.events
        assert machine.lifecycle.accumulation_active is False
        assert machine.lifecycle.end_alert_active is True

        resumed = machine.evaluate(_inputs(4000, score=80.0))
        assert LifecycleEvent.RESUMED in resumed.events
        assert machine.lifecycle.accumulation_active is True

    def test_no_dump_keeps_accumulation(self, standard_settings):
        machine = self._enter(standard_settings)
        for t in (1000, 2000, 3000, 4000):
            events = machine.evaluate(_inputs(t, score=50.0)).events
            assert LifecycleEvent.ENDED not in events
        assert machine.lifecycle.accumulation_active is True

    def test_end_reminder(self, standard_settings):
        machine = self._enter(standard_settings)
        for t in (1000, 2000, 3000):
            machine.evaluate(_inputs(t, score=50.0, context=self.dump))
        outcome = machine.evaluate(_inputs(13_001, score=65.0))
        assert LifecycleEvent.END_REMINDER in outcome.events
        assert machine.lifecycle.end_alert_count == 1

    def test_trade_expiry(self, standard_settings):
        machine = self._enter(standard_settings)
        outcome = machine.evaluate(_inputs(30 * 60 * 1000 + 1, score=65.0))
        assert LifecycleEvent.EXPIRED in outcome.events
        assert machine.lifecycle.in_trade is False

    def test_alerts_disabled(self, standard_settings):
        standard_settings.lifecycle.alerts_enabled = False
        machine = self._enter(standard_settings)
        assert machine.evaluate(_inputs(1000, score=50.0, context=self.dump)).events == []

    def test_reset(self, settings):
        machine = self._enter(settings)
        machine.reset()
        assert machine.lifecycle.in_trade is False
        assert machine.counters.attempted == 0
        assert not machine.is_active(AlertKind.ACCUMULATION)
