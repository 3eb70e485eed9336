"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from novapulse.config.constants import (
    BASE_SCORES,
    DAY_MS,
    DEFAULT_BASE_SCORE,
    PATTERN_MATCH_SET,
    ConditionId,
    PatternName,
    SignalType,
    TransactionType,
)
from novapulse.config.settings import load_settings


class TestSettings:
    def test_load_default_settings(self):
        settings = load_settings("default")
        assert settings.detection.min_accumulation_score == 92
        assert settings.detection.cooldown_period_ms == 5000
        assert settings.scalping.scalping_mode is True
        assert settings.learning.evaluation_period_ms == 30000
        assert settings.learning.export_format == "json"
        assert settings.learning.signal_retention_ms == DAY_MS

    def test_scalping_mode_capacity_and_cadence(self):
        settings = load_settings("default")
        assert settings.history_capacity == 120
        assert settings.tick_interval_ms == 5000

    def test_load_standard_profile(self):
        settings = load_settings("standard")
        assert settings.scalping.scalping_mode is False
        assert settings.history_capacity == 60
        assert settings.tick_interval_ms == 500

    def test_load_backtest_profile(self):
        settings = load_settings("backtest")
        assert settings.database.path == "data/novapulse_replay.db"
        assert settings.logging.level == "WARNING"
        # Unrelated sections still come from default.yaml
        assert settings.mega.mega_accumulation_threshold == 95

    def test_timeframe_series(self):
        settings = load_settings("default")
        names = [s.name for s in settings.timeframes.series]
        assert names == ["5s", "15s", "1m"]
        assert settings.timeframes.series[2].interval_ms == 60000

    def test_overrides_merge_over_yaml(self):
        settings = load_settings("default", {"detection": {"cooldown_period_ms": 8000}})
        assert settings.detection.cooldown_period_ms == 8000
        assert settings.detection.min_accumulation_score == 92

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("NOVAPULSE_DETECTION__COOLDOWN_PERIOD_MS", "7000")
        settings = load_settings("default", {"detection": {"cooldown_period_ms": 8000}})
        assert settings.detection.cooldown_period_ms == 7000

    def test_invalid_export_format_rejected(self):
        with pytest.raises(ValidationError):
            load_settings("default", {"learning": {"export_format": "xml"}})

    def test_unknown_profile_falls_back_to_default(self):
        settings = load_settings("does-not-exist")
        assert settings.detection.min_accumulation_score == 92


class TestConstants:
    def test_condition_vocabulary(self):
        assert len(ConditionId) == 29
        assert ConditionId.NET_WHALE_FLOW == "net_whale_flow"

    def test_base_scores(self):
        assert BASE_SCORES[ConditionId.ACCUMULATION_PATTERN] == 25
        assert BASE_SCORES.get(ConditionId.MICRO_RANGE, DEFAULT_BASE_SCORE) == 5.0

    def test_pattern_match_set(self):
        assert PatternName.BULL_FLAG in PATTERN_MATCH_SET
        assert PatternName.DARVAS_BOX not in PATTERN_MATCH_SET

    def test_enum_values(self):
        assert TransactionType.BUY == "Buy"
        assert SignalType.HYPERSPEED == "hyperspeed_explosion"
