"""Config command group: show and change ~/.alzctl/config.toml."""

import click
from rich.table import Table

from alzctl.click_group import AlzGroup
from alzctl.commands.cli_helpers import console, fail
from alzctl.config_manager import ConfigError, ConfigManager


@click.group(name="config", cls=AlzGroup)
def config_group():
    """Show or change alzctl defaults.

    \b
    KEYS:
        default_environment   dev | staging | prod
        default_location      Azure region
        default_spoke_count   2-5
        managed_by            ManagedBy tag value on resource groups
        break_glass_accounts  Comma-separated UPNs or object IDs
        break_glass_groups    Comma-separated group names or object IDs
    """
    pass


@config_group.command(name="show")
def show_config():
    """Show the current configuration."""
    try:
        config = ConfigManager.load_config()
    except ConfigError as e:
        fail(str(e))

    table = Table(title=str(ConfigManager.get_config_path()), show_header=True, header_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        shown = ", ".join(value) if isinstance(value, list) else str(value)
        table.add_row(key, shown or "-")
    console.print(table)


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
def set_config(key: str, value: str):
    """Set KEY to VALUE."""
    try:
        ConfigManager.set_value(key, value)
    except ConfigError as e:
        fail(str(e))
    click.echo(f"Set {key} = {value}")


__all__ = ["config_group"]
