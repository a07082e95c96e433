"""
Helpers shared by CLI commands: loading inputs and exiting with a readable error.
"""

from pathlib import Path
from typing import Any, List, Mapping, Optional

import typer
from rich.console import Console

from crucible.model.infrastructure.unit_loader import load_raw_units
from crucible.rules.application.config_loader import RuleConfigLoader
from crucible.rules.domain.models import RunConfiguration
from crucible.shared.domain.exceptions import ModelConstructionError, RuleConfigurationError
from crucible.triage.application.router import build_activation_table

# Exit codes
EXIT_FINDINGS = 1
EXIT_USAGE = 2

SEVERITY_STYLES = {
    "critical": "bold red",
    "warning": "yellow",
    "info": "cyan",
}

console = Console()
error_console = Console(stderr=True)


def load_configuration(rules_file: Optional[Path]) -> RunConfiguration:
    """Resolve rule configuration or exit with code 2."""
    try:
        config = RuleConfigLoader().load(rules_file)
        build_activation_table(config.activation)
        return config
    except RuleConfigurationError as e:
        error_console.print(f"[red]Configuration Error:[/red] {e}")
        for message in e.context.get("errors", []):
            error_console.print(f"  [dim]-[/dim] {message}")
        raise typer.Exit(code=EXIT_USAGE)


def load_units(units_file: Path) -> List[Mapping[str, Any]]:
    """Read raw units or exit with code 2."""
    try:
        return load_raw_units(units_file)
    except (OSError, ModelConstructionError) as e:
        error_console.print(f"[red]Input Error:[/red] {e}")
        raise typer.Exit(code=EXIT_USAGE)


def severity_label(severity: str) -> str:
    style = SEVERITY_STYLES.get(severity, "white")
    return f"[{style}]{severity}[/{style}]"
