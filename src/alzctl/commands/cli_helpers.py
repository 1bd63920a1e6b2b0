"""Shared output helpers for alzctl commands."""

import sys
from typing import NoReturn

import click
from rich.console import Console
from rich.table import Table

from alzctl.identity.models import DeployAction, DeployResult
from alzctl.modules.validation import ValidationError

console = Console()

ACTION_STYLES = {
    DeployAction.CREATED: "green",
    DeployAction.UPDATED: "yellow",
    DeployAction.UNCHANGED: "dim",
    DeployAction.PLANNED: "cyan",
    DeployAction.FAILED: "red",
}


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def fail_validation(error: ValidationError) -> NoReturn:
    click.echo(click.style(f"Error: {error}", fg="red"), err=True)
    details = [e for e in error.errors if e != str(error)]
    for detail in details:
        click.echo(click.style(f"  - {detail}", fg="red"), err=True)
    sys.exit(1)


def print_deploy_results(title: str, results: list[DeployResult]) -> None:
    """Render Graph deployment results; exit 1 when any failed."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Display Name", style="cyan")
    table.add_column("Action")
    table.add_column("Object ID", style="dim")
    table.add_column("Details")

    for result in results:
        style = ACTION_STYLES.get(result.action, "")
        details = result.error or "; ".join(result.warnings or [])
        table.add_row(
            result.display_name,
            f"[{style}]{result.action.value}[/{style}]" if style else result.action.value,
            result.id or "-",
            details,
        )
    console.print(table)

    failed = [r for r in results if not r.ok]
    if failed:
        console.print(f"[red]{len(failed)} of {len(results)} failed[/red]")
        sys.exit(1)


__all__ = ["console", "fail", "fail_validation", "print_deploy_results"]
