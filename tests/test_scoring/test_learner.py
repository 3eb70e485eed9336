"""Tests for deferred signal grading and weight adaptation."""

from __future__ import annotations

import pytest

from novapulse.config.constants import WEIGHT_MAX, WEIGHT_MIN, ConditionId, SignalType
from novapulse.config.settings import LearningSettings
from novapulse.data.models import Sample, Signal
from novapulse.scoring.learner import AdaptiveWeightLearner, ConditionStats

A = ConditionId.NET_WHALE_FLOW
B = ConditionId.OBV_SPIKE


@pytest.fixture
def learner() -> AdaptiveWeightLearner:
    return AdaptiveWeightLearner(LearningSettings())


def _signal(time: int = 1000, price: float = 100.0, conditions=None) -> Signal:
    return Signal(
        time=time,
        price=price,
        type=SignalType.ACCUMULATION,
        confidence=95.0,
        evaluation_deadline=time + 30_000,
        active_conditions=conditions if conditions is not None else {A: True, B: False},
    )


class TestWeights:
    def test_defaults(self, learner):
        assert set(learner.weights) == set(ConditionId)
        assert all(w == 1.0 for w in learner.weights.values())
        assert learner.dirty is False

    def test_success_rewards_active_conditions_only(self, learner):
        learner.update_weights(True, {A: True, B: False})
        assert learner.weights[A] == pytest.approx(1.05)
        assert learner.weights[B] == 1.0
        assert learner.dirty is True

    def test_failure_penalizes(self, learner):
        learner.update_weights(False, {A: True})
        assert learner.weights[A] == pytest.approx(0.95)

    def test_clamped_to_bounds(self, learner):
        for _ in range(50):
            learner.update_weights(True, {A: True})
            learner.update_weights(False, {B: True})
        assert learner.weights[A] == WEIGHT_MAX
        assert learner.weights[B] == WEIGHT_MIN

    def test_persisted_weights_clamped(self):
        learner = AdaptiveWeightLearner(LearningSettings(), weights={A: 5.0, B: 0.0})
        assert learner.weights[A] == WEIGHT_MAX
        assert learner.weights[B] == WEIGHT_MIN
        assert learner.weights[ConditionId.DARVAS_BOX] == 1.0

    def test_reset_weights(self, learner):
        learner.update_weights(True, {A: True})
        learner.reset_weights()
        assert learner.weights[A] == 1.0


class TestSignalGrading:
    def test_pending_until_deadline(self, learner):
        signal = _signal()
        samples = [Sample(2000, 102.5, 1.0)]
        assert learner.evaluate_signal_success(signal, samples, now=30_999) is None
        assert learner.evaluate_signal_success(signal, samples, now=31_000) is True

    def test_failure_below_threshold(self, learner):
        samples = [Sample(2000, 101.0, 1.0)]
        assert learner.evaluate_signal_success(_signal(), samples, now=31_000) is False

    def test_window_excludes_signal_time_and_after_deadline(self, learner):
        samples = [Sample(1000, 200.0, 1.0), Sample(31_001, 200.0, 1.0)]
        assert learner.evaluate_signal_success(_signal(), samples, now=40_000) is False

    def test_deadline_sample_included(self, learner):
        samples = [Sample(31_000, 110.0, 1.0)]
        assert learner.evaluate_signal_success(_signal(), samples, now=31_000) is True

    def test_empty_window_fails(self, learner):
        assert learner.evaluate_signal_success(_signal(), [], now=40_000) is False


class TestProcess:
    def test_resolves_once(self, learner):
        signal = _signal()
        learner.register(signal)
        samples = [Sample(2000, 102.5, 1.0)]

        assert learner.process(20_000, samples) == []
        assert signal.pending

        resolved = learner.process(31_000, samples)
        assert resolved == [signal]
        assert signal.success is True
        assert learner.weights[A] == pytest.approx(1.05)
        assert learner.weights[B] == 1.0

        assert learner.process(32_000, samples) == []
        assert learner.weights[A] == pytest.approx(1.05)

    def test_updates_condition_stats(self, learner):
        learner.register(_signal())
        learner.process(31_000, [Sample(2000, 90.0, 1.0)])
        assert learner.stats[A].total == 1
        assert learner.stats[A].success == 0
        assert learner.stats[B].total == 0

    def test_retention(self, learner):
        learner.register(_signal(time=0))
        learner.process(86_400_000, [])
        assert learner.signals == []
        assert learner.success_rate() is None

    def test_success_rate_and_pending(self, learner):
        done = _signal(time=0)
        done.success = True
        failed = _signal(time=0)
        failed.success = False
        learner = AdaptiveWeightLearner(LearningSettings(), signals=[done, failed, _signal()])
        assert learner.success_rate() == pytest.approx(1 / 3)
        assert learner.pending_count() == 1


class TestTopCondition:
    def test_requires_minimum_samples(self):
        stats = {A: ConditionStats(total=5, success=4), B: ConditionStats(total=4, success=4)}
        learner = AdaptiveWeightLearner(LearningSettings(), stats=stats)
        assert learner.top_condition() == (A, pytest.approx(0.8))

    def test_none_without_history(self, learner):
        assert learner.top_condition() is None
