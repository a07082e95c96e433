"""
Crucible CLI
Main entry point for the command-line interface

Usage:
    crucible analyze <units>        # Analyze units and report findings
    crucible triage <units>         # Show which detectors each unit would run
    crucible rules list             # List the rule catalog
    crucible rules validate <file>  # Validate a rules file
"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from crucible import __version__
from crucible.cli.commands import analyze, rules, triage
from crucible.shared.infrastructure.logging import configure_logging

app = typer.Typer(
    name="crucible",
    help="Crucible - rule-based static analysis for Rust-like structural models",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


@app.callback()
def _configure(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override CRUCIBLE_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Configure logging before any command runs."""
    configure_logging(level="DEBUG" if verbose else log_level)


# Register commands
app.command("analyze", help="Analyze compilation units and report findings")(analyze.analyze_command)
app.command("triage", help="Show the triage decision for each unit")(triage.triage_command)
app.add_typer(rules.app, name="rules", help="Inspect and validate rule configuration")


@app.command()
def version():
    """Show Crucible version information"""
    console.print(Panel.fit(
        "[bold cyan]Crucible[/bold cyan]\n"
        f"[dim]Version:[/dim] {__version__}\n"
        "[dim]Domains:[/dim] architecture, concurrency, borrowing, error handling, systems, type system",
        title="About Crucible",
        border_style="cyan",
    ))


def main():
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
