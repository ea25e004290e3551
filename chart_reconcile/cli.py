"""Command Line Interface for chart-reconcile.

This module provides a CLI using Typer for reconciling clinical record
snapshots from several health systems and for checking patient matches.

Security Impact:
    - Secondary sources are merged only after a confirmed patient match
    - Match decisions are always printed, so an excluded source is visible
    - Output carries the rule-based disclaimer
"""

from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chart_reconcile.adapters import get_adapter
from chart_reconcile.domain.clinical_record import Demographics
from chart_reconcile.domain.ports import NoSourceDataError, ReconciliationError
from chart_reconcile.domain.services import PatientMatcher
from chart_reconcile.infrastructure.config_manager import ConfigManager, ReconciliationConfig
from chart_reconcile.infrastructure.export import export_merge_result
from chart_reconcile.infrastructure.logging_config import setup_logging
from chart_reconcile.infrastructure.reconciliation_report import (
    build_reconciliation_report,
    print_reconciliation_summary,
    save_reconciliation_report,
)
from chart_reconcile.infrastructure.settings import APP_VERSION, settings
from chart_reconcile.main import run_pipeline

app = typer.Typer(
    name="chart-reconcile",
    help="Reconcile clinical records for one patient across health systems",
    add_completion=False
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"{settings.app_name} {APP_VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    """Reconcile clinical records for one patient across health systems."""


def _load_config(config_file: Optional[Path]) -> ReconciliationConfig:
    if config_file is None:
        return settings.reconciliation
    try:
        return ConfigManager.from_file(str(config_file)).get_reconciliation_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] Invalid configuration: {e}")
        raise typer.Exit(code=1)


def _parse_today(today: Optional[str]) -> Optional[date]:
    if today is None:
        return None
    try:
        return date.fromisoformat(today)
    except ValueError:
        console.print(f"[red]✗[/red] --today must be YYYY-MM-DD, got {today}")
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    primary: Path = typer.Argument(..., help="Primary source snapshot (JSON)"),
    secondary: Optional[list[Path]] = typer.Argument(None, help="Secondary source snapshots"),
    report: Optional[Path] = typer.Option(None, "--report", "-r", help="Save a JSON report to this path"),
    export_dir: Optional[Path] = typer.Option(None, "--export-dir", "-e", help="Write merged domains as CSV"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
    today: Optional[str] = typer.Option(None, "--today", help="Evaluation date for care gaps (YYYY-MM-DD)"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Merge records from several sources and report conflicts.

    Examples:
        chart-reconcile reconcile epic.json community-mc.json
        chart-reconcile reconcile epic.json community-mc.json --report out/report.json
    """
    setup_logging(use_json=json_logs or settings.log_json, log_level="DEBUG" if verbose else settings.log_level)
    config = _load_config(config_file)
    evaluation_date = _parse_today(today)

    console.print(f"\n[bold blue]{escape(settings.app_name)}[/bold blue] [dim]v{APP_VERSION}[/dim]")
    console.print(f"[dim]Primary:[/dim] {escape(str(primary))}")
    for path in secondary or []:
        console.print(f"[dim]Secondary:[/dim] {escape(str(path))}")
    console.print()

    try:
        result = run_pipeline(
            str(primary),
            [str(p) for p in secondary or []],
            today=evaluation_date,
            config=config,
        )
    except NoSourceDataError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    summary = build_reconciliation_report(result)
    print_reconciliation_summary(summary, console)

    report_path = report
    if report_path is None and settings.save_report:
        report_path = Path(settings.report_dir) / "reconciliation_report.json"
    if report_path is not None:
        saved = save_reconciliation_report(summary, str(report_path))
        if saved.is_success():
            console.print(f"\n[green]✓[/green] Report saved: {saved.value['saved_to']}")
        else:
            console.print(f"[yellow]⚠[/yellow] {saved.error}")

    if export_dir is not None:
        written = export_merge_result(result.merge_result, str(export_dir))
        console.print(f"[green]✓[/green] Exported {len(written)} file(s) to {export_dir}")

    critical = sum(1 for c in result.conflicts if c.severity.value == "critical")
    if critical:
        console.print(f"\n[bold red]{critical} critical conflict(s) need review[/bold red]")
    console.print("\n[green]✓[/green] Reconciliation complete")


@app.command()
def match(
    primary: Path = typer.Argument(..., help="Primary source snapshot (JSON)", exists=True),
    candidate: Path = typer.Argument(..., help="Candidate source snapshot (JSON)", exists=True),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="Override the match threshold"),
) -> None:
    """Compare the patient demographics of two snapshots."""
    demographics: list[Demographics] = []
    for path in (primary, candidate):
        try:
            loaded = get_adapter(str(path)).load(str(path))
        except ReconciliationError as e:
            console.print(f"[red]✗[/red] {e}")
            raise typer.Exit(code=1)
        if loaded.is_failure():
            console.print(f"[red]✗[/red] {loaded.error}")
            raise typer.Exit(code=1)
        if loaded.value.demographics is None:
            console.print(f"[red]✗[/red] {path} has no demographics")
            raise typer.Exit(code=1)
        demographics.append(loaded.value.demographics)

    matcher = PatientMatcher(threshold if threshold is not None else settings.reconciliation.match_threshold)
    result = matcher.match(*demographics)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Decision:", "[green]match[/green]" if result.is_match else "[red]no match[/red]")
    table.add_row("Confidence:", f"{result.confidence:.2f}")
    table.add_row("Threshold:", f"{matcher.threshold:.2f}")
    table.add_row("Matched on:", ", ".join(result.matched_on) or "-")
    table.add_row("Conflicts:", "; ".join(result.conflicts) or "-")
    console.print(table)

    if not result.is_match:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
