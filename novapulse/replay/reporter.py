"""Rich rendering and export of replay results."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from rich.console import Console
from rich.table import Table

from novapulse.config.constants import WEIGHT_MAX, WEIGHT_MIN, ConditionId
from novapulse.data.export import iso_timestamp, write_export
from novapulse.replay.engine import ReplayReport

logger = logging.getLogger(__name__)


class ReplayReporter:
    """Format replay reports and weight tables for the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def print_summary(self, report: ReplayReport) -> None:
        """Print a formatted summary table to the console (Rich)."""
        table = Table(title="Replay Results", show_header=True)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green", justify="right")

        if report.source:
            table.add_row("Source", report.source)
        if report.start is not None and report.end is not None:
            table.add_row("Period", f"{iso_timestamp(report.start)} → {iso_timestamp(report.end)}")
        table.add_row("Samples", str(report.ticks))
        table.add_row("Processed / Skipped", f"{report.processed} / {report.skipped}")
        table.add_row("Max Score", f"{report.max_score:.1f}")
        table.add_row("Mean Score", f"{report.mean_score:.1f}")
        table.add_row("Accumulation Alerts", str(report.attempted))
        table.add_row("Explosive / Mega Alerts", str(report.realized))
        for signal_type, count in sorted(report.signals_by_type.items(), key=lambda kv: kv[0].value):
            table.add_row(f"  {signal_type.value}", str(count))
        table.add_row("Graded Signals", str(report.resolved))
        rate = report.success_rate
        table.add_row("Success Rate", f"{rate:.1%}" if rate is not None else "N/A")
        if report.top_condition is not None:
            cond, accuracy = report.top_condition
            table.add_row("Top Condition", f"{cond.value} ({accuracy:.0%})")
        for event, count in sorted(report.events.items(), key=lambda kv: kv[0].value):
            table.add_row(f"Notice: {event.value}", str(count))

        self._console.print(table)

    def print_weights(self, weights: Mapping[ConditionId, float]) -> None:
        """Weight table, highlighting conditions the learner has moved."""
        table = Table(title="Condition Weights", show_header=True)
        table.add_column("Condition", style="cyan")
        table.add_column("Weight", justify="right")

        for cond in ConditionId:
            weight = weights.get(cond, 1.0)
            if weight >= WEIGHT_MAX or weight <= WEIGHT_MIN:
                style = "bold red"
            elif weight > 1.2:
                style = "green"
            elif weight < 1.0:
                style = "yellow"
            else:
                style = "white"
            table.add_row(cond.value, f"[{style}]{weight:.2f}[/]")

        self._console.print(table)

    def export(self, report: ReplayReport, path: str, fmt: str = "json") -> int:
        """Export the replay's signals (JSON or CSV)."""
        return write_export(report.signals, path, fmt)
