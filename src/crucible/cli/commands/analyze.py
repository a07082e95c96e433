"""
crucible analyze - run every selected detector over a units file.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from crucible.cli.commands._common import (
    EXIT_FINDINGS,
    console,
    load_configuration,
    load_units,
    severity_label,
)
from crucible.pipeline.application.orchestrator import AnalysisOrchestrator
from crucible.pipeline.domain.models import BatchReport, UnitReport, UnitStatus


def analyze_command(
    units_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON or YAML units file"),
    rules_file: Optional[Path] = typer.Option(None, "--rules", "-r", help="Rule configuration YAML"),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    fail_on_critical: bool = typer.Option(
        False, "--fail-on-critical", help="Exit with code 1 when any critical finding is reported"
    ),
    parallel: Optional[int] = typer.Option(None, "--parallel", min=1, help="Units analyzed concurrently"),
):
    """
    Analyze compilation units.

    Example:
        crucible analyze units.yaml --rules .crucible/rules.yaml
    """
    config = load_configuration(rules_file)
    units = load_units(units_file)

    orchestrator = AnalysisOrchestrator(config=config, parallel_limit=parallel)
    report = orchestrator.analyze_batch(units)

    if json_output:
        data = report.to_json()
        data["summary"] = _summary(report)
        typer.echo(json.dumps(data, indent=2))
    else:
        _render(report)

    if fail_on_critical and report.has_critical:
        raise typer.Exit(code=EXIT_FINDINGS)


def _summary(report: BatchReport) -> dict:
    return {
        "units": len(report.units),
        "completed": report.count_by_status(UnitStatus.COMPLETED),
        "failed": report.count_by_status(UnitStatus.FAILED),
        "cancelled": report.count_by_status(UnitStatus.CANCELLED),
        "findings": report.total_findings,
        "bySeverity": report.count_by_severity(),
    }


def _render(report: BatchReport) -> None:
    for unit_report in report.units:
        _render_unit(unit_report)

    counts = report.count_by_severity()
    console.print(Panel.fit(
        f"[bold]Units:[/bold] {len(report.units)} "
        f"([green]{report.count_by_status(UnitStatus.COMPLETED)} completed[/green], "
        f"[red]{report.count_by_status(UnitStatus.FAILED)} failed[/red])\n"
        f"[bold]Findings:[/bold] {report.total_findings} "
        f"({severity_label('critical')} {counts['critical']}, "
        f"{severity_label('warning')} {counts['warning']}, "
        f"{severity_label('info')} {counts['info']})",
        title="Summary",
        border_style="red" if report.has_critical else "green",
    ))


def _render_unit(unit_report: UnitReport) -> None:
    if unit_report.status == UnitStatus.FAILED:
        console.print(f"\n[red]✗[/red] [bold]{unit_report.unit_name}[/bold]: {unit_report.error}")
        return
    if unit_report.status == UnitStatus.CANCELLED:
        console.print(f"\n[yellow]-[/yellow] [bold]{unit_report.unit_name}[/bold]: cancelled")
        return

    if not unit_report.findings:
        console.print(f"\n[green]✓[/green] [bold]{unit_report.unit_name}[/bold]: no findings")
    else:
        table = Table(title=unit_report.unit_name, box=box.ROUNDED, title_justify="left")
        table.add_column("Severity", no_wrap=True)
        table.add_column("Rule", style="bold")
        table.add_column("Location", style="dim")
        table.add_column("Confidence", style="dim")
        table.add_column("Message")
        for finding in unit_report.findings:
            table.add_row(
                severity_label(finding.severity.value),
                finding.rule_id,
                str(finding.location),
                finding.confidence.value,
                finding.message,
            )
        console.print()
        console.print(table)

    for run in unit_report.detector_runs:
        for error in run.errors:
            console.print(f"  [yellow]⚠ {run.detector_id}:[/yellow] {error}")
