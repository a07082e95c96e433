"""
Crucible rules commands.
Inspect the rule catalog and validate rule configuration files.
"""

from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from crucible.cli.commands._common import console, load_configuration, severity_label
from crucible.findings.domain.enums import Domain

app = typer.Typer()


@app.command("list")
def list_rules(
    rules_file: Optional[Path] = typer.Option(None, "--rules", "-r", help="Show effective values for this rules file"),
    domain: Optional[Domain] = typer.Option(None, "--domain", "-d", help="Only rules of this domain"),
):
    """
    List every rule with its effective severity and thresholds.

    Example:
        crucible rules list --domain concurrency
    """
    config = load_configuration(rules_file)
    rules = config.rules_for(domain) if domain else list(config.rules.values())

    table = Table(box=box.ROUNDED, title="Rules", title_justify="left")
    table.add_column("Rule", style="bold")
    table.add_column("Domains", style="cyan")
    table.add_column("Severity", no_wrap=True)
    table.add_column("Enabled", justify="center")
    table.add_column("Thresholds", style="dim")
    for rule in rules:
        thresholds = ", ".join(f"{k}={config.threshold(rule.rule_id, k)}" for k in rule.thresholds)
        table.add_row(
            rule.rule_id,
            ", ".join(d.value for d in rule.domains),
            severity_label(rule.severity.value),
            "[green]✓[/green]" if rule.enabled else "[red]✗[/red]",
            thresholds or "-",
        )
    console.print(table)


@app.command()
def validate(
    config_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Path to rules configuration file"),
):
    """
    Validate a rules configuration file.

    Checks YAML syntax, rule ids, severities, thresholds and router settings.

    Example:
        crucible rules validate .crucible/rules.yaml
    """
    config = load_configuration(config_file)

    disabled = [r.rule_id for r in config.rules.values() if not r.enabled]
    overridden = [r.rule_id for r in config.rules.values() if r.severity_override]
    console.print(Panel.fit(
        f"[green]✓[/green] [bold]{config_file}[/bold] is valid\n"
        f"[dim]Rules:[/dim] {len(config.rules)}  "
        f"[dim]Disabled:[/dim] {', '.join(disabled) or 'none'}  "
        f"[dim]Severity overrides:[/dim] {', '.join(overridden) or 'none'}\n"
        f"[dim]Small unit threshold:[/dim] {config.small_unit_threshold}",
        title="Validation",
        border_style="green",
    ))
