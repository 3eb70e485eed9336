"""Tests for the replay reporter."""

from __future__ import annotations

import json

from rich.console import Console

from novapulse.config.constants import ConditionId, LifecycleEvent, SignalType
from novapulse.data.models import Signal
from novapulse.replay.engine import ReplayReport
from novapulse.replay.reporter import ReplayReporter
from novapulse.scoring.learner import default_weights


def _report() -> ReplayReport:
    signal = Signal(
        time=1704067200000,
        price=0.5,
        type=SignalType.ACCUMULATION,
        confidence=95.0,
        evaluation_deadline=1704067230000,
        success=True,
    )
    return ReplayReport(
        source="session.csv",
        start=1704067200000,
        end=1704067260000,
        ticks=61,
        processed=60,
        skipped=1,
        attempted=1,
        resolved=1,
        successes=1,
        max_score=97.5,
        mean_score=41.2,
        signals_by_type={SignalType.ACCUMULATION: 1},
        events={LifecycleEvent.REASSURANCE: 2},
        top_condition=(ConditionId.NET_WHALE_FLOW, 0.8),
        signals=[signal],
    )


def _console() -> Console:
    return Console(record=True, width=140)


class TestReplayReporter:
    def test_print_summary(self):
        console = _console()
        ReplayReporter(console).print_summary(_report())
        text = console.export_text()

        assert "Replay Results" in text
        assert "session.csv" in text
        assert "97.5" in text
        assert "100.0%" in text
        assert "net_whale_flow" in text
        assert "reassurance" in text

    def test_summary_without_grades(self):
        console = _console()
        ReplayReporter(console).print_summary(ReplayReport())
        assert "N/A" in console.export_text()

    def test_print_weights(self):
        weights = default_weights()
        weights[ConditionId.NET_WHALE_FLOW] = 1.45
        console = _console()
        ReplayReporter(console).print_weights(weights)
        text = console.export_text()

        assert "Condition Weights" in text
        assert "1.45" in text
        assert all(cond.value in text for cond in ConditionId)

    def test_export(self, tmp_path):
        path = tmp_path / "signals.json"
        count = ReplayReporter(_console()).export(_report(), str(path), "json")
        assert count == 1
        assert json.loads(path.read_text())[0]["type"] == "accumulation"
