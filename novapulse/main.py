"""CLI interface for the NovaPulse accumulation detector."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich.console import Console

app = typer.Typer(
    name="novapulse",
    help="NovaPulse accumulation and explosion signal detector with adaptive weights.",
    add_completion=False,
)
console = Console()


def _configure_logging(level: str = "INFO") -> None:
    """Set up root logger with the specified level and the configured format."""
    from novapulse.config.settings import LoggingSettings

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LoggingSettings().format,
    )


def _parse_assignment(assignment: str) -> tuple[str, str, Any]:
    """Split ``section.field=value``; the value is parsed as YAML."""
    key, sep, raw = assignment.partition("=")
    section, dot, field = key.strip().partition(".")
    if not sep or not dot or not section or not field:
        raise typer.BadParameter(f"Expected section.field=value, got {assignment!r}")
    return section, field, yaml.safe_load(raw)


async def _open_repository(settings):
    """Connect to the configured store and ensure its schema exists."""
    from novapulse.data.database import Database
    from novapulse.data.migrations import apply_schema
    from novapulse.data.repository import StateRepository

    db = Database(settings.database.path)
    await db.connect()
    try:
        await apply_schema(db.connection)
    except Exception:
        await db.disconnect()
        raise
    return db, StateRepository(db)


async def _load_effective_settings(profile: str):
    """YAML profile with the persisted configuration record merged on top."""
    from novapulse.config.settings import load_settings

    settings = load_settings(profile)
    try:
        db, repo = await _open_repository(settings)
    except Exception:
        logging.getLogger(__name__).warning(
            "Store unavailable at %s; using profile settings only", settings.database.path
        )
        return settings
    try:
        record = await repo.get_config()
    finally:
        await db.disconnect()
    return load_settings(profile, record) if record else settings


async def _run_replay(
    profile: str,
    samples: Path,
    transactions: Path | None,
    persist: bool,
    export: str | None,
    fmt: str | None,
) -> None:
    from novapulse.replay.data_loader import ReplayDataLoader
    from novapulse.replay.engine import ReplayRunner
    from novapulse.replay.reporter import ReplayReporter
    from novapulse.scoring.learner import AdaptiveWeightLearner

    settings = await _load_effective_settings(profile)
    loader = ReplayDataLoader(settings.detection.price_scale)
    samples_df = loader.load_samples(samples)
    transactions_df = loader.load_transactions(transactions)

    db = repo = None
    learner = None
    if persist:
        db, repo = await _open_repository(settings)
        learner = AdaptiveWeightLearner(
            settings.learning,
            weights=await repo.load_weights(),
            signals=await repo.load_signals(),
            stats=await repo.load_condition_stats(),
        )

    try:
        runner = ReplayRunner(settings, learner)
        report = await runner.run(samples_df, transactions_df, source=str(samples))

        reporter = ReplayReporter(console)
        reporter.print_summary(report)

        if export:
            count = reporter.export(report, export, fmt or settings.learning.export_format)
            console.print(f"[green]Exported {count} signals to {export}[/]")

        if repo is not None:
            learner = runner.engine.learner
            await repo.save_weights(learner.weights)
            await repo.replace_signals(learner.signals)
            await repo.save_condition_stats(learner.stats)
            console.print(f"[green]Learner state saved to {settings.database.path}[/]")
    finally:
        if db is not None:
            await db.disconnect()


@app.command()
def replay(
    samples: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV of samples"),
    transactions: Optional[Path] = typer.Option(
        None, exists=True, dir_okay=False, help="CSV of transactions (timestamp,type,value)"
    ),
    profile: str = typer.Option("backtest", help="Config profile (default/standard/backtest)"),
    persist: bool = typer.Option(False, help="Start from and save the stored learner state"),
    export: Optional[str] = typer.Option(None, help="Export emitted signals to this path"),
    fmt: Optional[str] = typer.Option(None, "--format", help="Export format (json/csv)"),
    log_level: str = typer.Option("WARNING", help="Log level"),
) -> None:
    """Replay a recorded sample stream through the detector."""
    _configure_logging(log_level)
    console.print(f"[bold blue]Replaying[/] {samples} (profile={profile})")
    asyncio.run(_run_replay(profile, samples, transactions, persist, export, fmt))


async def _run_export(profile: str, output: str, fmt: str | None) -> None:
    from novapulse.data.export import write_export

    settings = await _load_effective_settings(profile)
    db, repo = await _open_repository(settings)
    try:
        signals = await repo.load_signals()
    finally:
        await db.disconnect()
    count = write_export(signals, output, fmt or settings.learning.export_format)
    console.print(f"[green]Exported {count} signals to {output}[/]")


@app.command()
def export(
    output: str = typer.Argument(..., help="Destination file"),
    fmt: Optional[str] = typer.Option(None, "--format", help="json or csv (default from config)"),
    profile: str = typer.Option("default", help="Config profile"),
    log_level: str = typer.Option("WARNING", help="Log level"),
) -> None:
    """Export the stored signal history."""
    _configure_logging(log_level)
    if fmt is not None and fmt.lower() not in ("json", "csv"):
        console.print(f"[red]Unsupported format: {fmt}[/]")
        raise typer.Exit(code=1)
    asyncio.run(_run_export(profile, output, fmt))


async def _run_weights(profile: str) -> None:
    from novapulse.replay.reporter import ReplayReporter
    from novapulse.scoring.learner import AdaptiveWeightLearner

    settings = await _load_effective_settings(profile)
    db, repo = await _open_repository(settings)
    try:
        learner = AdaptiveWeightLearner(
            settings.learning,
            weights=await repo.load_weights(),
            signals=await repo.load_signals(),
            stats=await repo.load_condition_stats(),
        )
    finally:
        await db.disconnect()

    ReplayReporter(console).print_weights(learner.weights)
    rate = learner.success_rate()
    console.print(f"Signals stored: {len(learner.signals)} ({learner.pending_count()} pending)")
    console.print(f"Success rate: {f'{rate:.1%}' if rate is not None else 'N/A'}")
    top = learner.top_condition()
    if top is not None:
        console.print(f"Top condition: {top[0].value} ({top[1]:.0%})")


@app.command()
def weights(
    profile: str = typer.Option("default", help="Config profile"),
    log_level: str = typer.Option("WARNING", help="Log level"),
) -> None:
    """Show the stored condition weights and signal statistics."""
    _configure_logging(log_level)
    asyncio.run(_run_weights(profile))


async def _run_set_config(profile: str, assignments: list[str]) -> None:
    from pydantic import ValidationError

    from novapulse.config.settings import _deep_merge, load_settings

    base = load_settings(profile)
    db, repo = await _open_repository(base)
    try:
        record = await repo.get_config()
        for assignment in assignments:
            section, field, value = _parse_assignment(assignment)
            record = _deep_merge(record, {section: {field: value}})
        try:
            load_settings(profile, record)
        except ValidationError as exc:
            console.print(f"[red]Invalid configuration:[/] {exc}")
            raise typer.Exit(code=1)
        await repo.set_config(record)
    finally:
        await db.disconnect()
    console.print(f"[green]Stored {len(assignments)} setting(s).[/]")


@app.command("set-config")
def set_config(
    assignments: list[str] = typer.Argument(..., help="section.field=value pairs"),
    profile: str = typer.Option("default", help="Config profile"),
) -> None:
    """Persist configuration overrides (merged over the YAML profile)."""
    asyncio.run(_run_set_config(profile, assignments))


async def _run_reset_weights(profile: str) -> None:
    from novapulse.config.settings import load_settings

    settings = load_settings(profile)
    db, repo = await _open_repository(settings)
    try:
        await repo.clear_weights()
    finally:
        await db.disconnect()


@app.command("reset-weights")
def reset_weights(
    profile: str = typer.Option("default", help="Config profile"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Reset every condition weight to 1.0."""
    if not yes and not typer.confirm("Reset all learned weights?"):
        console.print("[yellow]Aborted.[/]")
        raise typer.Exit()
    asyncio.run(_run_reset_weights(profile))
    console.print("[green]Weights reset.[/]")


@app.command()
def migrate(
    profile: str = typer.Option("default", help="Config profile"),
) -> None:
    """Initialize or migrate the database schema."""
    from novapulse.config.settings import load_settings
    from novapulse.data.migrations import run_migrations

    settings = load_settings(profile)
    console.print(f"[bold]Running migrations[/] → {settings.database.path}")
    asyncio.run(run_migrations(settings.database.path))
    console.print("[green]Migrations complete.[/]")


if __name__ == "__main__":
    app()
