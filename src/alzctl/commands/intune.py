"""Intune command group: compliance policies and configuration profiles."""

import click

from alzctl.click_group import AlzGroup
from alzctl.commands.cli_helpers import fail, print_deploy_results
from alzctl.graph_client import GraphClient
from alzctl.intune import IntuneDeployer
from alzctl.policy_loader import PolicyLoadError, load_definitions


@click.group(name="intune", cls=AlzGroup)
def intune_group():
    """Deploy Intune device compliance policies and configuration profiles.

    \b
    EXAMPLES:
        $ alzctl intune compliance intune/compliance/
        $ alzctl intune config intune/windows-baseline.json --beta
    """
    pass


def _load(path: str) -> list[dict]:
    try:
        return load_definitions(path)
    except PolicyLoadError as e:
        fail(str(e))


@intune_group.command(name="compliance")
@click.argument("path", type=click.Path(exists=True))
@click.option("--beta", is_flag=True, help="Use the Graph beta endpoint")
def deploy_compliance(path: str, beta: bool):
    """Create or update device compliance policies defined in PATH."""
    definitions = _load(path)
    results = IntuneDeployer(GraphClient(), beta=beta).deploy_compliance(definitions)
    print_deploy_results("Device Compliance Policies", results)


@intune_group.command(name="config")
@click.argument("path", type=click.Path(exists=True))
@click.option("--beta", is_flag=True, help="Use the Graph beta endpoint")
def deploy_configurations(path: str, beta: bool):
    """Create or update device configuration profiles defined in PATH."""
    definitions = _load(path)
    results = IntuneDeployer(GraphClient(), beta=beta).deploy_configurations(definitions)
    print_deploy_results("Device Configuration Profiles", results)


__all__ = ["intune_group"]
