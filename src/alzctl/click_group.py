"""Custom Click group with automatic help display on errors.

A usage error (unknown command, bad argument, missing parameter) prints the
error followed by the help of the command the user was trying to run.
"""

from typing import Any

import click

USAGE_ERRORS = (
    click.exceptions.UsageError,
    click.exceptions.BadParameter,
    click.exceptions.MissingParameter,
)


class AlzGroup(click.Group):
    """Click group that auto-displays contextual help on usage errors."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except USAGE_ERRORS as e:
            click.echo(f"Error: {e.format_message()}", err=True)

            # Prefer the subcommand context when the error came from there
            error_ctx = e.ctx if e.ctx else ctx
            click.echo("")
            click.echo(error_ctx.get_help())
            error_ctx.exit(e.exit_code)
            return None

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        """Show help when the command is not found."""
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            if isinstance(e, click.exceptions.MissingParameter | click.exceptions.BadParameter):
                raise
            click.echo(f"Error: {e.format_message()}", err=True)
            click.echo("")
            click.echo(ctx.get_help())
            ctx.exit(1)
            return None, None, []


# Subgroups created with @group.group() also use AlzGroup
AlzGroup.group_class = AlzGroup
