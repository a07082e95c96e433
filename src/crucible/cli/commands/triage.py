"""
crucible triage - show which detectors the router selects per unit, without running them.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.table import Table

from crucible.cli.commands._common import console, load_configuration, load_units
from crucible.detectors.infrastructure.registry import DetectorRegistry
from crucible.model.application.builder import ModelBuilder
from crucible.shared.domain.exceptions import ModelConstructionError
from crucible.triage.application.router import TriageRouter
from crucible.triage.domain.models import TriageDecision


def triage_command(
    units_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON or YAML units file"),
    rules_file: Optional[Path] = typer.Option(None, "--rules", "-r", help="Rule configuration YAML"),
    json_output: bool = typer.Option(False, "--json", help="Print decisions as JSON"),
    show_signals: bool = typer.Option(False, "--signals", help="Include non-zero signal counts"),
):
    """
    Show triage decisions.

    Example:
        crucible triage units.yaml --signals
    """
    config = load_configuration(rules_file)
    units = load_units(units_file)
    router = TriageRouter(config)
    available = DetectorRegistry().domains()
    builder = ModelBuilder()

    decisions = []
    for position, raw in enumerate(units):
        try:
            unit = builder.build(raw)
        except ModelConstructionError as e:
            name = raw.get("name") if isinstance(raw, dict) else None
            decisions.append({"unit": name or f"<unit {position}>", "error": str(e)})
            continue
        decisions.append(router.route(unit, available))

    if json_output:
        payload = [
            d.model_dump(mode="json", exclude=None if show_signals else {"signals"})
            if isinstance(d, TriageDecision) else d
            for d in decisions
        ]
        typer.echo(json.dumps(payload, indent=2))
        return

    for decision in decisions:
        if not isinstance(decision, TriageDecision):
            console.print(f"\n[red]✗[/red] [bold]{decision['unit']}[/bold]: {decision['error']}")
            continue
        _render(decision, show_signals)


def _render(decision: TriageDecision, show_signals: bool) -> None:
    mode = "small unit, all detectors" if decision.small_unit else "signal routed"
    table = Table(
        title=f"{decision.unit_name} ({decision.declaration_count} declarations, {mode})",
        box=box.SIMPLE,
        title_justify="left",
    )
    table.add_column("Domain", style="bold cyan")
    table.add_column("Score", justify="right")
    table.add_column("Top signal", style="dim")
    table.add_column("Reason")
    for activation in decision.activations:
        table.add_row(
            activation.domain.value,
            str(activation.score),
            activation.top_signal or "-",
            activation.reason,
        )
    console.print()
    console.print(table)

    if decision.skipped:
        console.print(f"  [dim]Skipped:[/dim] {', '.join(d.value for d in decision.skipped)}")
    if show_signals and decision.signals is not None:
        active = {k: v for k, v in decision.signals.as_dict().items() if v}
        console.print(f"  [dim]Signals:[/dim] {active}")
