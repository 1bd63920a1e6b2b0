"""Identity command group: Entra ID groups and Conditional Access policies."""

import logging

import click

from alzctl.click_group import AlzGroup
from alzctl.commands.cli_helpers import fail, fail_validation, print_deploy_results
from alzctl.config_manager import ConfigError, ConfigManager
from alzctl.graph_client import GraphClient, GraphError
from alzctl.identity.conditional_access import ConditionalAccessDeployer
from alzctl.identity.groups import EntraGroupDeployer, GroupDefinition
from alzctl.modules.validation import ValidationError
from alzctl.policy_loader import PolicyLoadError, load_definitions

logger = logging.getLogger(__name__)


@click.group(name="identity", cls=AlzGroup)
def identity_group():
    """Deploy Entra ID security groups and Conditional Access policies.

    Definitions are JSON or YAML files (or directories of them) in Microsoft
    Graph format. Objects are matched by displayName: missing ones are
    created, existing ones updated in place.

    \b
    EXAMPLES:
        $ alzctl identity groups identity/groups.yaml
        $ alzctl identity ca identity/policies/ --break-glass breakglass@contoso.com
    """
    pass


@identity_group.command(name="groups")
@click.argument("path", type=click.Path(exists=True))
def deploy_groups(path: str):
    """Create or update security groups defined in PATH."""
    try:
        definitions = [GroupDefinition.from_dict(d) for d in load_definitions(path)]
    except PolicyLoadError as e:
        fail(str(e))
    except ValidationError as e:
        fail_validation(e)

    results = EntraGroupDeployer(GraphClient()).deploy_many(definitions)
    print_deploy_results("Entra ID Groups", results)


@identity_group.command(name="ca")
@click.argument("path", type=click.Path(exists=True))
@click.option(
    "--break-glass",
    "break_glass",
    multiple=True,
    help="Break-glass account UPN or object ID to exclude (repeatable)",
)
@click.option(
    "--break-glass-group",
    "break_glass_groups",
    multiple=True,
    help="Break-glass group name or object ID to exclude (repeatable)",
)
@click.option("--dry-run", is_flag=True, help="Compare with the tenant but do not write")
def deploy_conditional_access(
    path: str,
    break_glass: tuple[str, ...],
    break_glass_groups: tuple[str, ...],
    dry_run: bool,
):
    """Create or update Conditional Access policies defined in PATH.

    Break-glass accounts and groups come from --break-glass options plus
    break_glass_accounts / break_glass_groups in ~/.alzctl/config.toml.
    Enabled policies are refused when no break-glass exclusion is configured.
    """
    try:
        config = ConfigManager.load_config()
        definitions = load_definitions(path)
    except (ConfigError, PolicyLoadError) as e:
        fail(str(e))

    accounts = list(dict.fromkeys([*config.break_glass_accounts, *break_glass]))
    groups = list(dict.fromkeys([*config.break_glass_groups, *break_glass_groups]))
    if not accounts and not groups:
        click.echo(
            click.style("Warning: no break-glass accounts configured", fg="yellow"), err=True
        )

    deployer = ConditionalAccessDeployer(
        GraphClient(), break_glass=accounts, break_glass_groups=groups, dry_run=dry_run
    )
    try:
        results = deployer.deploy_many(definitions)
    except GraphError as e:
        fail(str(e))
    print_deploy_results("Conditional Access Policies", results)


__all__ = ["identity_group"]
