"""alzctl command-line entry point."""

import logging

import click

from alzctl import __version__
from alzctl.click_group import AlzGroup
from alzctl.commands import (
    config_group,
    deploy,
    destroy,
    identity_group,
    intune_group,
    plan,
    preflight,
)


@click.group(
    cls=AlzGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
@click.version_option(version=__version__)
def main(ctx: click.Context, verbose: bool) -> None:
    """alzctl - Azure Landing Zone deployment.

    Deploys a hub-spoke network, Entra ID groups, Conditional Access policies
    and Intune policies. Every operation is idempotent: resources are looked
    up by name first and only created when missing.

    \b
    NETWORK COMMANDS:
        preflight     Check Azure CLI, login, providers and quota
        plan          Show the resources a deployment would create
        deploy        Deploy the hub-spoke landing zone
        destroy       Delete all landing zone resource groups

    \b
    IDENTITY AND DEVICE COMMANDS:
        identity groups   Deploy Entra ID security groups
        identity ca       Deploy Conditional Access policies
        intune compliance Deploy device compliance policies
        intune config     Deploy device configuration profiles

    \b
    CONFIGURATION:
        Config file: ~/.alzctl/config.toml
        config show / config set KEY VALUE

    For help on any command: alzctl <command> --help
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


main.add_command(preflight)
main.add_command(plan)
main.add_command(deploy)
main.add_command(destroy)
main.add_command(identity_group)
main.add_command(intune_group)
main.add_command(config_group)


if __name__ == "__main__":
    main()
