"""Hub-spoke network commands: preflight, plan, deploy, destroy.

The deploy and destroy commands keep the positional arguments of the local
deployment scripts, so existing runbooks keep working:

    alzctl deploy [ENV] [LOCATION] [SPOKE_COUNT] [DEPLOY_VPN] [DEPLOY_BASTION]
                  [VM_COUNT_SPOKE1] [VM_COUNT_SPOKE2]
    alzctl destroy [ENV] [LOCATION]
"""

import logging
import os
from typing import Any

import click
from rich.table import Table

from alzctl.commands.cli_helpers import console, fail, fail_validation
from alzctl.config_manager import ConfigError, ConfigManager
from alzctl.deployment_config import (
    DeploymentParameters,
    load_parameter_file,
    resolve_config_file,
)
from alzctl.destroyer import DEFAULT_MANAGED_BY_VALUES, DestroyError, LandingZoneDestroyer
from alzctl.modules.prerequisites import PrerequisiteChecker, PrerequisiteError
from alzctl.modules.progress import ProgressDisplay, format_duration
from alzctl.modules.validation import ValidationError
from alzctl.network_deployer import (
    DeploymentSummary,
    HubSpokeDeployer,
    NetworkDeploymentError,
    ResourceAction,
    cleanup_hint,
)
from alzctl.topology import FIREWALL_NEXT_HOP_PLACEHOLDER, HubSpokePlan, TopologyError, build_plan

logger = logging.getLogger(__name__)

ADMIN_PASSWORD_ENV = "VM_ADMIN_PASSWORD"


def build_parameters(config_file: str | None, overrides: dict[str, Any]) -> DeploymentParameters:
    """Merge user config, the YAML parameter file and CLI arguments.

    Raises:
        ConfigError: If ~/.alzctl/config.toml is invalid
        ValidationError: If the parameter file or a value is invalid
    """
    user_config = ConfigManager.load_config()
    path = resolve_config_file(config_file)
    file_values = load_parameter_file(path) if path else None
    if path:
        logger.debug(f"Using parameter file {path}")
    return DeploymentParameters.from_sources(
        user_config.deployment_defaults(), file_values, overrides
    )


def _load_parameters(config_file: str | None, overrides: dict[str, Any]) -> DeploymentParameters:
    try:
        return build_parameters(config_file, overrides)
    except ValidationError as e:
        fail_validation(e)
    except ConfigError as e:
        fail(str(e))


def print_configuration(params: DeploymentParameters) -> None:
    table = Table(title="Configuration", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Environment", params.environment)
    table.add_row("Location", params.location)
    table.add_row("Spokes", str(params.spoke_count))
    table.add_row("VPN Gateway", str(params.deploy_vpn).lower())
    table.add_row("Bastion", str(params.deploy_bastion).lower())
    table.add_row("VMs (Spoke1/Spoke2)", f"{params.vm_count_spoke1}/{params.vm_count_spoke2}")
    table.add_row("ManagedBy tag", params.managed_by)
    console.print(table)


def print_plan(plan: HubSpokePlan) -> None:
    """Render names and address spaces of everything a deployment creates."""
    names = plan.names

    groups = Table(title="Resource Groups", show_header=True, header_style="bold")
    groups.add_column("Name", style="cyan")
    for rg in plan.resource_groups:
        groups.add_row(rg)
    console.print(groups)

    networks = Table(title="Virtual Networks", show_header=True, header_style="bold")
    networks.add_column("VNet", style="cyan")
    networks.add_column("Resource Group")
    networks.add_column("Address Space")
    networks.add_column("Subnets")
    for vnet in [plan.hub, *plan.spokes]:
        subnets = ", ".join(f"{s.name} ({s.prefix})" for s in vnet.subnets)
        networks.add_row(vnet.name, vnet.resource_group, vnet.address_space, subnets)
    console.print(networks)

    services = Table(title="Hub Services", show_header=True, header_style="bold")
    services.add_column("Service", style="cyan")
    services.add_column("Name")
    services.add_row("Log Analytics", names.log_analytics_workspace)
    services.add_row("Azure Firewall", names.firewall)
    if plan.params.deploy_bastion:
        services.add_row("Bastion", names.bastion)
    if plan.params.deploy_vpn:
        services.add_row("VPN Gateway", names.vpn_gateway)
    console.print(services)

    routes = Table(title="Spoke Routing", show_header=True, header_style="bold")
    routes.add_column("Route Table", style="cyan")
    routes.add_column("NSG")
    routes.add_column("Routes")
    for table, nsg in zip(plan.route_tables, plan.nsgs):
        entries = ", ".join(
            f"{r.name}: {r.address_prefix} -> {FIREWALL_NEXT_HOP_PLACEHOLDER}" for r in table.routes
        )
        routes.add_row(table.name, nsg.name, entries)
    console.print(routes)

    if plan.vms:
        vms = Table(title="Virtual Machines", show_header=True, header_style="bold")
        vms.add_column("Name", style="cyan")
        vms.add_column("Resource Group")
        vms.add_column("Image")
        vms.add_column("Size")
        for vm in plan.vms:
            vms.add_row(vm.name, vm.resource_group, vm.image, vm.size)
        console.print(vms)


def print_summary(summary: DeploymentSummary, params: DeploymentParameters) -> None:
    console.print()
    if summary.dry_run:
        console.print("[bold cyan]Dry run complete[/bold cyan]")
    else:
        console.print("[bold green]Deployment Complete![/bold green]")
    console.print(f"Deployment: {summary.deployment_name}")
    console.print(f"Duration: {format_duration(summary.duration_seconds)}")

    counts = Table(show_header=True, header_style="bold")
    counts.add_column("Result")
    counts.add_column("Resources", justify="right")
    for action in ResourceAction:
        count = summary.count(action)
        if count:
            counts.add_row(action.value, str(count))
    console.print(counts)

    if summary.firewall_private_ip and not summary.dry_run:
        console.print(f"Firewall IP: {summary.firewall_private_ip}")
    if summary.failed_jobs:
        console.print(f"[yellow]{summary.failed_jobs} VM deployment(s) failed[/yellow]")
    if summary.vm_states:
        states = Table(title="VM Status", show_header=True, header_style="bold")
        states.add_column("Name", style="cyan")
        states.add_column("State")
        for name, state in sorted(summary.vm_states.items()):
            states.add_row(name, state)
        console.print(states)
    if summary.connectivity is not None:
        verdict = "PASSED" if summary.connectivity.reachable else "FAILED"
        console.print(f"Connectivity: {verdict} ({summary.connectivity.status})")
    if params.deploy_bastion and not summary.dry_run:
        console.print("Bastion is still provisioning in the background")
    console.print(f"To delete: alzctl destroy {params.environment} {params.location}")


@click.command()
@click.option("--location", "-l", default=None, help="Location to check quota in")
@click.option("--no-register", is_flag=True, help="Do not register missing resource providers")
def preflight(location: str | None, no_register: bool):
    """Run pre-flight checks (Azure CLI, login, providers, quota)."""
    if location is None:
        try:
            location = ConfigManager.load_config().default_location
        except ConfigError as e:
            fail(str(e))

    try:
        report = PrerequisiteChecker().run(location, register_providers=not no_register)
    except PrerequisiteError as e:
        fail(str(e))

    table = Table(title="Pre-flight Checks", show_header=False)
    table.add_column("Check", style="bold")
    table.add_column("Result")
    table.add_row("Azure CLI", "[green]found[/green]")
    table.add_row("Subscription", f"{report.subscription_name} ({report.subscription_id})")
    table.add_row("Shell", report.shell_type)
    table.add_row("Platform", report.platform_name)
    table.add_row("Providers", ", ".join(report.registered_providers) or "not checked")
    if report.newly_registered:
        table.add_row("Newly registered", ", ".join(report.newly_registered))
    table.add_row(f"B-series quota ({location})", report.quota)
    console.print(table)


def deployment_arguments(func):
    """Positional deployment arguments shared by plan and deploy."""
    for name in reversed(
        [
            "environment",
            "location",
            "spoke_count",
            "deploy_vpn",
            "deploy_bastion",
            "vm_count_spoke1",
            "vm_count_spoke2",
        ]
    ):
        func = click.argument(name, required=False, default=None)(func)
    func = click.option(
        "--config",
        "config_file",
        default=None,
        help="YAML parameter file (default: $ALZ_CONFIG_FILE or ./config/default.yaml)",
    )(func)
    return func


def _overrides(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


@click.command()
@deployment_arguments
def plan(config_file: str | None, **arguments: Any):
    """Show what a deployment would create, without calling Azure.

    \b
    EXAMPLES:
        $ alzctl plan
        $ alzctl plan dev westeurope 2 false true 1 1
    """
    params = _load_parameters(config_file, _overrides(**arguments))
    try:
        params.validate(admin_password=None, require_password=False)
        hub_spoke = build_plan(params)
    except ValidationError as e:
        fail_validation(e)
    except TopologyError as e:
        fail(str(e))

    print_configuration(params)
    print_plan(hub_spoke)


@click.command()
@deployment_arguments
@click.option("--dry-run", is_flag=True, help="Print the az commands without running them")
@click.option("--skip-preflight", is_flag=True, help="Skip pre-flight checks")
@click.option("--skip-validation", is_flag=True, help="Skip the post-deployment connectivity test")
def deploy(
    config_file: str | None,
    dry_run: bool,
    skip_preflight: bool,
    skip_validation: bool,
    **arguments: Any,
):
    """Deploy the hub-spoke landing zone.

    Every step checks whether the resource already exists, so re-running a
    failed or partial deployment is safe.

    \b
    ARGUMENTS (positional, all optional):
        ENV              dev | staging | prod        (default: prod)
        LOCATION         Azure region                (default: eastus)
        SPOKE_COUNT      2-5                         (default: 3)
        DEPLOY_VPN       true | false                (default: false)
        DEPLOY_BASTION   true | false                (default: true)
        VM_COUNT_SPOKE1  0-10 workload VMs           (default: 4)
        VM_COUNT_SPOKE2  0-10 domain controller VMs  (default: 2)

    \b
    ENVIRONMENT:
        VM_ADMIN_PASSWORD  Admin password for VMs (required when deploying VMs)

    \b
    EXAMPLES:
        $ alzctl deploy
        $ alzctl deploy dev eastus 2 false false 1 1
        $ alzctl deploy --config config/dev.yaml --dry-run
    """
    params = _load_parameters(config_file, _overrides(**arguments))
    admin_password = os.environ.get(ADMIN_PASSWORD_ENV)
    if dry_run and params.total_vms and not admin_password:
        # Commands are only printed; a placeholder satisfies validation
        admin_password = "<VM_ADMIN_PASSWORD>"

    try:
        params.validate(admin_password)
    except ValidationError as e:
        fail_validation(e)

    print_configuration(params)

    use_powershell_wrapper = False
    if not skip_preflight and not dry_run:
        console.print("[bold]Pre-flight checks[/bold]")
        try:
            report = PrerequisiteChecker().run(params.location)
        except PrerequisiteError as e:
            fail(str(e))
        use_powershell_wrapper = report.use_powershell_wrapper

    try:
        deployer = HubSpokeDeployer(
            params,
            admin_password=admin_password,
            progress=ProgressDisplay(),
            dry_run=dry_run,
            use_powershell_wrapper=use_powershell_wrapper,
        )
        summary = deployer.deploy(run_validation=not skip_validation)
    except TopologyError as e:
        fail(str(e))
    except NetworkDeploymentError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        click.echo(cleanup_hint(e, params.environment, params.location), err=True)
        raise SystemExit(1) from e

    if dry_run:
        for command in summary.commands:
            click.echo(command)
    print_summary(summary, params)


@click.command()
@click.argument("environment", required=False, default=None)
@click.argument("location", required=False, default=None)
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.option("--no-wait", is_flag=True, help="Start deletions and return immediately")
def destroy(environment: str | None, location: str | None, yes: bool, no_wait: bool):
    """Delete every resource group tagged as part of the landing zone.

    Without ENV/LOCATION all groups tagged ManagedBy=ALZ-v3-Local or
    ALZ-v3-Pipeline are deleted; with them, only groups named for that
    environment and location.
    """
    try:
        managed_by = ConfigManager.load_config().managed_by
    except ConfigError as e:
        fail(str(e))

    values = tuple(dict.fromkeys((*DEFAULT_MANAGED_BY_VALUES, managed_by)))
    destroyer = LandingZoneDestroyer(managed_by_values=values)

    def confirm(groups: list[str]) -> bool:
        console.print("Resource groups to delete:")
        for group in groups:
            console.print(f"  {group}")
        if yes:
            return True
        answer = click.prompt(
            "Are you sure you want to delete all resources? (yes/no)", default="no"
        )
        return answer.strip().lower() == "yes"

    try:
        summary = destroyer.destroy(environment, location, confirm=confirm, wait=not no_wait)
    except DestroyError as e:
        fail(str(e))

    if not summary.groups:
        console.print("No resource groups found")
        return
    if summary.cancelled:
        console.print("Cancelled")
        return
    if summary.failed:
        console.print(f"[red]Failed to start deletion of: {', '.join(summary.failed)}[/red]")
    if no_wait:
        console.print("Deletion initiated for all resource groups")
    elif summary.timed_out:
        console.print("[yellow]WARNING: Timeout reached. Some groups may still be deleting:[/yellow]")
        for group in summary.remaining:
            console.print(f"  {group}")
    elif not summary.failed:
        console.print("[green]All resource groups deleted successfully![/green]")

    if summary.failed:
        raise SystemExit(1)


__all__ = ["build_parameters", "deploy", "destroy", "plan", "preflight"]
