"""Hub-spoke landing-zone deployment through the Azure CLI.

Phases (each must succeed before the next starts):
1. Foundation     - resource groups, Log Analytics workspace
2. Hub Network    - hub VNet, subnets (sequential: same-VNet writes conflict)
3. Hub Services   - public IPs, Azure Firewall, Bastion/VPN gateway (--no-wait)
4. Spoke Networks - spoke VNets in parallel
5. Connectivity   - peerings, NSGs, route tables, subnet association, firewall rule
6. Compute        - VMs with --no-wait; failures are counted, not fatal
7. Validation     - Network Watcher connectivity test between spoke1 and spoke2

Every resource goes through ``_ensure``: an ``az ... show`` probe first, and
the create command only when the resource is missing. Re-running a
deployment is therefore safe and only fills in what is missing.

Public API:
    HubSpokeDeployer: Runs the phases
    DeploymentSummary: What happened to every resource
    ResourceAction / ResourceResult: Per-resource outcome
    NetworkDeploymentError: A phase failed
"""

import logging
import shlex
import subprocess
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from alzctl.azure_cli_executor import az_resource_exists, run_az_command
from alzctl.connectivity_validator import (
    ConnectivityError,
    ConnectivityResult,
    ConnectivityValidator,
)
from alzctl.deployment_config import DeploymentParameters
from alzctl.log_sanitizer import LogSanitizer
from alzctl.modules.progress import ProgressDisplay
from alzctl.modules.validation import sanitize_azure_error
from alzctl.naming import deployment_name
from alzctl.topology import (
    FIREWALL_NEXT_HOP_PLACEHOLDER,
    HubSpokePlan,
    NsgPlan,
    PeeringPlan,
    RouteTablePlan,
    VmPlan,
    build_plan,
)

logger = logging.getLogger(__name__)

# Long-running az operations
RESOURCE_TIMEOUT = 600
FIREWALL_TIMEOUT = 1800


class NetworkDeploymentError(Exception):
    """Raised when a deployment phase fails.

    Attributes:
        phase: Name of the failed phase
        resource_groups: Groups that may hold partially created resources
        results: Per-resource results of the failed phase
    """

    def __init__(
        self,
        message: str,
        phase: str = "",
        resource_groups: list[str] | None = None,
        results: list["ResourceResult"] | None = None,
    ):
        super().__init__(message)
        self.phase = phase
        self.resource_groups = resource_groups or []
        self.results = results or []


class ResourceAction(str, Enum):
    """What happened to a resource."""

    CREATED = "created"
    EXISTING = "existing"
    UPDATED = "updated"
    STARTED = "started"  # --no-wait create accepted by ARM
    PLANNED = "planned"  # dry run
    FAILED = "failed"


@dataclass
class ResourceResult:
    """Outcome for a single resource."""

    resource_type: str
    name: str
    resource_group: str
    action: ResourceAction
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.action != ResourceAction.FAILED


@dataclass
class DeploymentSummary:
    """Aggregated outcome of a deployment run."""

    deployment_name: str
    results: list[ResourceResult] = field(default_factory=list)
    firewall_private_ip: str | None = None
    vm_states: dict[str, str] = field(default_factory=dict)
    connectivity: ConnectivityResult | None = None
    failed_jobs: int = 0
    duration_seconds: float = 0.0
    dry_run: bool = False
    commands: list[str] = field(default_factory=list)

    def count(self, action: ResourceAction) -> int:
        return sum(1 for r in self.results if r.action == action)

    @property
    def failed(self) -> list[ResourceResult]:
        return [r for r in self.results if not r.ok]


class HubSpokeDeployer:
    """Deploy a hub-spoke landing zone.

    Example:
        >>> params = DeploymentParameters(environment="dev", spoke_count=2)
        >>> deployer = HubSpokeDeployer(params, admin_password=os.environ["VM_ADMIN_PASSWORD"])
        >>> summary = deployer.deploy()
        >>> print(summary.firewall_private_ip)
    """

    def __init__(
        self,
        params: DeploymentParameters,
        admin_password: str | None = None,
        *,
        executor: Callable[..., subprocess.CompletedProcess[str]] = run_az_command,
        exists: Callable[[list[str]], bool] = az_resource_exists,
        progress: ProgressDisplay | None = None,
        validator: ConnectivityValidator | None = None,
        max_workers: int = 8,
        dry_run: bool = False,
        use_powershell_wrapper: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize deployer.

        Args:
            params: Validated deployment parameters
            admin_password: VM admin password (only needed when VMs are deployed)
            executor: az command runner (run_az_command signature)
            exists: Existence probe for ``az ... show`` commands
            progress: Progress display (default: stdout)
            validator: Connectivity validator (default: one sharing ``executor``)
            max_workers: Max concurrent az invocations per wave
            dry_run: Record commands without running them
            use_powershell_wrapper: Run peering commands through PowerShell (Git Bash)
            sleep: Sleep function (injected for tests)

        Raises:
            ValueError: If max_workers is not positive
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")

        self.params = params
        self.admin_password = admin_password
        self.executor = executor
        self.exists = exists
        self.progress = progress or ProgressDisplay()
        self.validator = validator or ConnectivityValidator(executor=executor)
        self.max_workers = max_workers
        self.dry_run = dry_run
        self.use_powershell_wrapper = use_powershell_wrapper
        self.sleep = sleep

        self.plan: HubSpokePlan = build_plan(params)
        self.names = self.plan.names
        self.summary = DeploymentSummary(deployment_name=deployment_name(params.environment))
        self.summary.dry_run = dry_run

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def _tag_args(self) -> list[str]:
        return ["--tags", *[f"{k}={v}" for k, v in self.params.tags().items()]]

    def _record(self, result: ResourceResult) -> ResourceResult:
        self.summary.results.append(result)
        return result

    def _run(self, cmd: list[str], timeout: int = RESOURCE_TIMEOUT) -> subprocess.CompletedProcess[str] | None:
        """Run (or, in dry run, record) a mutating az command."""
        self.summary.commands.append(LogSanitizer.sanitize_command(cmd))
        if self.dry_run:
            return None
        return self.executor(cmd, timeout=timeout)

    def _ensure(
        self,
        resource_type: str,
        name: str,
        resource_group: str,
        show_cmd: list[str],
        create_cmd: list[str],
        *,
        timeout: int = RESOURCE_TIMEOUT,
        no_wait: bool = False,
    ) -> ResourceResult:
        """Create a resource unless the show command finds it."""
        if self.dry_run:
            self._run(create_cmd)
            return self._record(
                ResourceResult(resource_type, name, resource_group, ResourceAction.PLANNED)
            )

        if self.exists(show_cmd):
            logger.info(f"{resource_type} {name} already exists")
            return self._record(
                ResourceResult(resource_type, name, resource_group, ResourceAction.EXISTING)
            )

        try:
            self._run(create_cmd, timeout=timeout)
        except subprocess.CalledProcessError as e:
            message = sanitize_azure_error(LogSanitizer.sanitize(e.stderr or str(e)))
            logger.error(f"Failed to create {resource_type} {name}: {message}")
            return self._record(
                ResourceResult(resource_type, name, resource_group, ResourceAction.FAILED, message)
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Timed out creating {resource_type} {name}")
            return self._record(
                ResourceResult(
                    resource_type, name, resource_group, ResourceAction.FAILED, "timed out"
                )
            )

        action = ResourceAction.STARTED if no_wait else ResourceAction.CREATED
        logger.info(f"{resource_type} {name} {action.value}")
        return self._record(ResourceResult(resource_type, name, resource_group, action))

    def _apply(
        self, resource_type: str, name: str, resource_group: str, cmd: list[str]
    ) -> ResourceResult:
        """Run an update command that is idempotent on its own."""
        try:
            self._run(cmd)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            stderr = getattr(e, "stderr", None) or str(e)
            message = sanitize_azure_error(LogSanitizer.sanitize(stderr))
            logger.error(f"Failed to update {resource_type} {name}: {message}")
            return self._record(
                ResourceResult(resource_type, name, resource_group, ResourceAction.FAILED, message)
            )
        action = ResourceAction.PLANNED if self.dry_run else ResourceAction.UPDATED
        return self._record(ResourceResult(resource_type, name, resource_group, action))

    def _parallel(self, tasks: list[Callable[[], list[ResourceResult]]]) -> list[ResourceResult]:
        """Run independent tasks concurrently and flatten their results."""
        results: list[ResourceResult] = []
        if not tasks:
            return results
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tasks))) as pool:
            futures = [pool.submit(task) for task in tasks]
            for future in futures:
                results.extend(future.result())
        return results

    def _check_phase(self, phase: str, results: list[ResourceResult]) -> None:
        failed = [r for r in results if not r.ok]
        if not failed:
            return
        details = "; ".join(f"{r.resource_type} {r.name}: {r.error}" for r in failed)
        raise NetworkDeploymentError(
            f"{phase} failed: {details}",
            phase=phase,
            resource_groups=self.plan.resource_groups,
            results=failed,
        )

    def _tsv(self, cmd: list[str], placeholder: str) -> str:
        if self.dry_run:
            return placeholder
        result = self.executor(cmd, timeout=120)
        return (result.stdout or "").strip()

    # ------------------------------------------------------------------
    # Phase 1: Foundation
    # ------------------------------------------------------------------

    def _ensure_resource_group(self, name: str) -> list[ResourceResult]:
        location = self.params.location
        return [
            self._ensure(
                "resource group",
                name,
                name,
                ["az", "group", "show", "-n", name],
                ["az", "group", "create", "-n", name, "-l", location, *self._tag_args()],
            )
        ]

    def deploy_foundation(self) -> list[ResourceResult]:
        names = self.names
        results = self._ensure_resource_group(names.hub_resource_group)
        self._check_phase("Foundation", results)

        others = [
            names.spoke_resource_group(i) for i in range(1, self.params.spoke_count + 1)
        ] + [names.shared_resource_group]
        results += self._parallel([lambda rg=rg: self._ensure_resource_group(rg) for rg in others])

        workspace = names.log_analytics_workspace
        results.append(
            self._ensure(
                "log analytics workspace",
                workspace,
                names.hub_resource_group,
                [
                    "az",
                    "monitor",
                    "log-analytics",
                    "workspace",
                    "show",
                    "-g",
                    names.hub_resource_group,
                    "-n",
                    workspace,
                ],
                [
                    "az",
                    "monitor",
                    "log-analytics",
                    "workspace",
                    "create",
                    "-g",
                    names.hub_resource_group,
                    "-n",
                    workspace,
                    "--retention-time",
                    str(self.params.log_retention_days),
                ],
            )
        )
        self._check_phase("Foundation", results)
        return results

    # ------------------------------------------------------------------
    # Phase 2: Hub network
    # ------------------------------------------------------------------

    def deploy_hub_network(self) -> list[ResourceResult]:
        hub = self.plan.hub
        results = [
            self._ensure(
                "virtual network",
                hub.name,
                hub.resource_group,
                ["az", "network", "vnet", "show", "-g", hub.resource_group, "-n", hub.name],
                [
                    "az",
                    "network",
                    "vnet",
                    "create",
                    "-g",
                    hub.resource_group,
                    "-n",
                    hub.name,
                    "-l",
                    self.params.location,
                    "--address-prefix",
                    hub.address_space,
                ],
            )
        ]
        self._check_phase("Hub Network", results)

        # Subnets of one VNet cannot be written concurrently
        for subnet in hub.subnets:
            results.append(
                self._ensure(
                    "subnet",
                    subnet.name,
                    hub.resource_group,
                    [
                        "az",
                        "network",
                        "vnet",
                        "subnet",
                        "show",
                        "-g",
                        hub.resource_group,
                        "--vnet-name",
                        hub.name,
                        "-n",
                        subnet.name,
                    ],
                    [
                        "az",
                        "network",
                        "vnet",
                        "subnet",
                        "create",
                        "-g",
                        hub.resource_group,
                        "--vnet-name",
                        hub.name,
                        "-n",
                        subnet.name,
                        "--address-prefix",
                        subnet.prefix,
                    ],
                )
            )
            self._check_phase("Hub Network", results)
        return results

    # ------------------------------------------------------------------
    # Phase 3: Hub services
    # ------------------------------------------------------------------

    def _ensure_public_ip(self, name: str) -> list[ResourceResult]:
        rg = self.names.hub_resource_group
        return [
            self._ensure(
                "public IP",
                name,
                rg,
                ["az", "network", "public-ip", "show", "-g", rg, "-n", name],
                [
                    "az",
                    "network",
                    "public-ip",
                    "create",
                    "-g",
                    rg,
                    "-n",
                    name,
                    "-l",
                    self.params.location,
                    "--sku",
                    "Standard",
                    "--allocation-method",
                    "Static",
                ],
            )
        ]

    def deploy_hub_services(self) -> list[ResourceResult]:
        names = self.names
        rg = names.hub_resource_group
        location = self.params.location

        public_ips = [names.firewall_public_ip]
        if self.params.deploy_bastion:
            public_ips.append(names.bastion_public_ip)
        if self.params.deploy_vpn:
            public_ips.append(names.vpn_public_ip)
        results = self._parallel([lambda n=n: self._ensure_public_ip(n) for n in public_ips])
        self._check_phase("Hub Services", results)

        self.progress.update("Deploying Azure Firewall (this may take several minutes)...")
        results.append(
            self._ensure(
                "firewall",
                names.firewall,
                rg,
                ["az", "network", "firewall", "show", "-g", rg, "-n", names.firewall],
                [
                    "az",
                    "network",
                    "firewall",
                    "create",
                    "-g",
                    rg,
                    "-n",
                    names.firewall,
                    "-l",
                    location,
                    "--sku",
                    "AZFW_VNet",
                    "--tier",
                    "Standard",
                    "--vnet-name",
                    names.hub_vnet,
                    "--public-ip",
                    names.firewall_public_ip,
                ],
                timeout=FIREWALL_TIMEOUT,
            )
        )
        self._check_phase("Hub Services", results)

        try:
            self.summary.firewall_private_ip = self._tsv(
                [
                    "az",
                    "network",
                    "firewall",
                    "show",
                    "-g",
                    rg,
                    "-n",
                    names.firewall,
                    "--query",
                    "ipConfigurations[0].privateIPAddress",
                    "-o",
                    "tsv",
                ],
                FIREWALL_NEXT_HOP_PLACEHOLDER,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise NetworkDeploymentError(
                "Hub Services failed: could not read firewall private IP",
                phase="Hub Services",
                resource_groups=self.plan.resource_groups,
            ) from e
        if not self.summary.firewall_private_ip:
            raise NetworkDeploymentError(
                "Hub Services failed: firewall has no private IP",
                phase="Hub Services",
                resource_groups=self.plan.resource_groups,
            )
        self.progress.update(f"Firewall private IP: {self.summary.firewall_private_ip}")

        if self.params.deploy_bastion:
            results.append(
                self._ensure(
                    "bastion",
                    names.bastion,
                    rg,
                    ["az", "network", "bastion", "show", "-g", rg, "-n", names.bastion],
                    [
                        "az",
                        "network",
                        "bastion",
                        "create",
                        "-g",
                        rg,
                        "-n",
                        names.bastion,
                        "-l",
                        location,
                        "--vnet-name",
                        names.hub_vnet,
                        "--public-ip-address",
                        names.bastion_public_ip,
                        "--sku",
                        "Basic",
                        "--no-wait",
                    ],
                    no_wait=True,
                )
            )

        if self.params.deploy_vpn:
            results.append(
                self._ensure(
                    "vpn gateway",
                    names.vpn_gateway,
                    rg,
                    ["az", "network", "vnet-gateway", "show", "-g", rg, "-n", names.vpn_gateway],
                    [
                        "az",
                        "network",
                        "vnet-gateway",
                        "create",
                        "-g",
                        rg,
                        "-n",
                        names.vpn_gateway,
                        "-l",
                        location,
                        "--vnet",
                        names.hub_vnet,
                        "--public-ip-addresses",
                        names.vpn_public_ip,
                        "--gateway-type",
                        "Vpn",
                        "--vpn-type",
                        "RouteBased",
                        "--sku",
                        "VpnGw1",
                        "--no-wait",
                    ],
                    no_wait=True,
                )
            )

        self._check_phase("Hub Services", results)
        return results

    # ------------------------------------------------------------------
    # Phase 4: Spokes
    # ------------------------------------------------------------------

    def deploy_spokes(self) -> list[ResourceResult]:
        def ensure_spoke(spoke) -> list[ResourceResult]:
            subnet = spoke.subnets[0]
            return [
                self._ensure(
                    "virtual network",
                    spoke.name,
                    spoke.resource_group,
                    ["az", "network", "vnet", "show", "-g", spoke.resource_group, "-n", spoke.name],
                    [
                        "az",
                        "network",
                        "vnet",
                        "create",
                        "-g",
                        spoke.resource_group,
                        "-n",
                        spoke.name,
                        "-l",
                        self.params.location,
                        "--address-prefix",
                        spoke.address_space,
                        "--subnet-name",
                        subnet.name,
                        "--subnet-prefix",
                        subnet.prefix,
                    ],
                )
            ]

        results = self._parallel([lambda s=s: ensure_spoke(s) for s in self.plan.spokes])
        self._check_phase("Spoke Networks", results)
        return results

    # ------------------------------------------------------------------
    # Phase 5: Connectivity
    # ------------------------------------------------------------------

    def _vnet_id(self, resource_group: str, vnet_name: str) -> str:
        return self._tsv(
            ["az", "network", "vnet", "show", "-g", resource_group, "-n", vnet_name, "--query", "id", "-o", "tsv"],
            f"/subscriptions/<subscription>/resourceGroups/{resource_group}"
            f"/providers/Microsoft.Network/virtualNetworks/{vnet_name}",
        )

    def _wrap(self, cmd: list[str]) -> list[str]:
        """Route a command through PowerShell (Git Bash rewrites '/subscriptions/...' paths)."""
        if not self.use_powershell_wrapper:
            return cmd
        return ["powershell", "-Command", " ".join(shlex.quote(arg) for arg in cmd)]

    def _ensure_peering(self, peering: PeeringPlan, remote_id: str) -> list[ResourceResult]:
        create_cmd = [
            "az",
            "network",
            "vnet",
            "peering",
            "create",
            "-g",
            peering.resource_group,
            "-n",
            peering.name,
            "--vnet-name",
            peering.vnet_name,
            "--remote-vnet",
            remote_id,
            "--allow-vnet-access",
            "--allow-forwarded-traffic",
        ]
        if peering.allow_gateway_transit:
            create_cmd.append("--allow-gateway-transit")
        return [
            self._ensure(
                "peering",
                peering.name,
                peering.resource_group,
                [
                    "az",
                    "network",
                    "vnet",
                    "peering",
                    "show",
                    "-g",
                    peering.resource_group,
                    "-n",
                    peering.name,
                    "--vnet-name",
                    peering.vnet_name,
                ],
                self._wrap(create_cmd),
            )
        ]

    def _ensure_nsg(self, nsg: NsgPlan) -> list[ResourceResult]:
        results = [
            self._ensure(
                "network security group",
                nsg.name,
                nsg.resource_group,
                ["az", "network", "nsg", "show", "-g", nsg.resource_group, "-n", nsg.name],
                [
                    "az",
                    "network",
                    "nsg",
                    "create",
                    "-g",
                    nsg.resource_group,
                    "-n",
                    nsg.name,
                    "-l",
                    self.params.location,
                ],
            )
        ]
        if not results[0].ok:
            return results

        for rule in nsg.rules:
            results.append(
                self._ensure(
                    "nsg rule",
                    rule.name,
                    nsg.resource_group,
                    [
                        "az",
                        "network",
                        "nsg",
                        "rule",
                        "show",
                        "-g",
                        nsg.resource_group,
                        "--nsg-name",
                        nsg.name,
                        "-n",
                        rule.name,
                    ],
                    [
                        "az",
                        "network",
                        "nsg",
                        "rule",
                        "create",
                        "-g",
                        nsg.resource_group,
                        "--nsg-name",
                        nsg.name,
                        "--name",
                        rule.name,
                        "--priority",
                        str(rule.priority),
                        "--direction",
                        rule.direction,
                        "--source-address-prefixes",
                        rule.source,
                        "--destination-address-prefixes",
                        rule.destination,
                        "--destination-port-ranges",
                        rule.destination_ports,
                        "--protocol",
                        rule.protocol,
                        "--access",
                        rule.access,
                    ],
                )
            )
        return results

    def _ensure_route_table(self, table: RouteTablePlan, next_hop_ip: str) -> list[ResourceResult]:
        results = [
            self._ensure(
                "route table",
                table.name,
                table.resource_group,
                ["az", "network", "route-table", "show", "-g", table.resource_group, "-n", table.name],
                [
                    "az",
                    "network",
                    "route-table",
                    "create",
                    "-g",
                    table.resource_group,
                    "-n",
                    table.name,
                    "-l",
                    self.params.location,
                ],
            )
        ]
        if not results[0].ok:
            return results

        for route in table.routes:
            results.append(
                self._ensure(
                    "route",
                    route.name,
                    table.resource_group,
                    [
                        "az",
                        "network",
                        "route-table",
                        "route",
                        "show",
                        "-g",
                        table.resource_group,
                        "--route-table-name",
                        table.name,
                        "-n",
                        route.name,
                    ],
                    [
                        "az",
                        "network",
                        "route-table",
                        "route",
                        "create",
                        "-g",
                        table.resource_group,
                        "--route-table-name",
                        table.name,
                        "--name",
                        route.name,
                        "--address-prefix",
                        route.address_prefix,
                        "--next-hop-type",
                        route.next_hop_type,
                        "--next-hop-ip-address",
                        next_hop_ip,
                    ],
                )
            )
        return results

    def _associate_subnet(self, nsg: NsgPlan, table: RouteTablePlan) -> list[ResourceResult]:
        return [
            self._apply(
                "subnet association",
                nsg.subnet,
                nsg.resource_group,
                [
                    "az",
                    "network",
                    "vnet",
                    "subnet",
                    "update",
                    "-g",
                    nsg.resource_group,
                    "--vnet-name",
                    nsg.vnet_name,
                    "-n",
                    nsg.subnet,
                    "--network-security-group",
                    nsg.name,
                    "--route-table",
                    table.name,
                ],
            )
        ]

    def _ensure_firewall_rule(self) -> ResourceResult:
        rule = self.plan.firewall_rule
        rg = self.names.hub_resource_group
        firewall = self.names.firewall
        return self._ensure(
            "firewall rule collection",
            rule.collection_name,
            rg,
            [
                "az",
                "network",
                "firewall",
                "network-rule",
                "collection",
                "show",
                "-g",
                rg,
                "--firewall-name",
                firewall,
                "-n",
                rule.collection_name,
            ],
            [
                "az",
                "network",
                "firewall",
                "network-rule",
                "create",
                "-g",
                rg,
                "--firewall-name",
                firewall,
                "--collection-name",
                rule.collection_name,
                "--name",
                rule.rule_name,
                "--protocols",
                rule.protocols,
                "--source-addresses",
                *rule.sources,
                "--destination-addresses",
                *rule.destinations,
                "--destination-ports",
                rule.destination_ports,
                "--action",
                rule.action,
                "--priority",
                str(rule.priority),
            ],
            timeout=FIREWALL_TIMEOUT,
        )

    def deploy_connectivity(self) -> list[ResourceResult]:
        names = self.names
        try:
            hub_id = self._vnet_id(names.hub_resource_group, names.hub_vnet)
            spoke_ids = {
                peering.vnet_name: self._vnet_id(peering.resource_group, peering.vnet_name)
                for peering in self.plan.peerings
                if peering.resource_group != names.hub_resource_group
            }
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise NetworkDeploymentError(
                "Connectivity failed: could not resolve VNet IDs",
                phase="Connectivity",
                resource_groups=self.plan.resource_groups,
            ) from e

        def remote_id(peering: PeeringPlan) -> str:
            if peering.remote_vnet_name == names.hub_vnet:
                return hub_id
            return spoke_ids[peering.remote_vnet_name]

        self.progress.update("Creating VNet peerings...")
        results = self._parallel(
            [lambda p=p: self._ensure_peering(p, remote_id(p)) for p in self.plan.peerings]
        )
        self._check_phase("Connectivity", results)

        self.progress.update("Creating NSGs with hub-spoke rules...")
        nsg_results = self._parallel([lambda n=n: self._ensure_nsg(n) for n in self.plan.nsgs])
        results += nsg_results
        self._check_phase("Connectivity", nsg_results)

        self.progress.update("Creating route tables...")
        next_hop = self.summary.firewall_private_ip or FIREWALL_NEXT_HOP_PLACEHOLDER
        rt_results = self._parallel(
            [lambda t=t: self._ensure_route_table(t, next_hop) for t in self.plan.route_tables]
        )
        results += rt_results
        self._check_phase("Connectivity", rt_results)

        assoc_results = self._parallel(
            [
                lambda n=n, t=t: self._associate_subnet(n, t)
                for n, t in zip(self.plan.nsgs, self.plan.route_tables)
            ]
        )
        results += assoc_results
        self._check_phase("Connectivity", assoc_results)

        self.progress.update("Configuring firewall spoke-to-spoke rules...")
        fw_result = self._ensure_firewall_rule()
        results.append(fw_result)
        self._check_phase("Connectivity", [fw_result])
        return results

    # ------------------------------------------------------------------
    # Phase 6: Compute
    # ------------------------------------------------------------------

    def _ensure_vm(self, vm: VmPlan) -> list[ResourceResult]:
        return [
            self._ensure(
                "virtual machine",
                vm.name,
                vm.resource_group,
                ["az", "vm", "show", "-g", vm.resource_group, "-n", vm.name],
                [
                    "az",
                    "vm",
                    "create",
                    "-g",
                    vm.resource_group,
                    "-n",
                    vm.name,
                    "--image",
                    vm.image,
                    "--size",
                    vm.size,
                    "--vnet-name",
                    vm.vnet_name,
                    "--subnet",
                    vm.subnet,
                    "--admin-username",
                    self.params.admin_username,
                    "--admin-password",
                    self.admin_password or "",
                    "--public-ip-address",
                    "",
                    "--nsg",
                    "",
                    "--no-wait",
                ],
                no_wait=True,
            )
        ]

    def _collect_vm_states(self, resource_group: str) -> None:
        try:
            result = self.executor(
                [
                    "az",
                    "vm",
                    "list",
                    "-g",
                    resource_group,
                    "--query",
                    "[].[name, provisioningState]",
                    "-o",
                    "tsv",
                ],
                timeout=120,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Could not list VMs in {resource_group}: {e}")
            return
        for line in (result.stdout or "").splitlines():
            parts = line.split("\t")
            if len(parts) == 2:
                self.summary.vm_states[parts[0]] = parts[1]

    def deploy_compute(self) -> list[ResourceResult]:
        if not self.plan.vms:
            self.progress.update("No VMs requested")
            return []

        results = self._parallel([lambda v=v: self._ensure_vm(v) for v in self.plan.vms])
        failed = [r for r in results if not r.ok]
        self.summary.failed_jobs += len(failed)
        if failed:
            self.progress.warning(
                f"{len(failed)} VM deployments failed. Some VMs may have failed to start"
            )

        started = any(r.action == ResourceAction.STARTED for r in results)
        if started and self.params.provision_wait_seconds > 0:
            self.progress.update("Waiting for VMs to provision...")
            self.sleep(self.params.provision_wait_seconds)

        if not self.dry_run:
            for rg in sorted({vm.resource_group for vm in self.plan.vms}):
                self._collect_vm_states(rg)
        return results

    # ------------------------------------------------------------------
    # Phase 7: Validation
    # ------------------------------------------------------------------

    def validate_connectivity(self) -> ConnectivityResult | None:
        if self.params.vm_count_spoke1 == 0 or self.params.vm_count_spoke2 == 0:
            self.progress.update("Connectivity test skipped (needs a VM in spoke1 and spoke2)")
            return None
        if self.dry_run:
            return None

        try:
            result = self.validator.run(
                self.names.spoke_resource_group(1),
                self.names.spoke_resource_group(2),
                port=self.params.connectivity_port,
            )
        except ConnectivityError as e:
            self.progress.warning(f"Connectivity test could not run: {e}")
            return None

        self.summary.connectivity = result
        if result.reachable:
            self.progress.update(f"Connectivity test: PASSED (latency {result.latency_ms}ms)")
        else:
            self.progress.warning(
                f"Connectivity test: FAILED ({result.status}). "
                "Please check NSGs, route tables, and firewall rules"
            )
        return result

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def deploy(self, run_validation: bool = True) -> DeploymentSummary:
        """Run all phases.

        Returns:
            DeploymentSummary

        Raises:
            NetworkDeploymentError: When a phase fails (compute failures excepted)
        """
        start = time.time()
        phases: list[tuple[str, Callable[[], object]]] = [
            ("Phase 1: Foundation", self.deploy_foundation),
            ("Phase 2: Hub Network", self.deploy_hub_network),
            ("Phase 3: Hub Services", self.deploy_hub_services),
            ("Phase 4: Spoke Networks", self.deploy_spokes),
            ("Phase 5: Connectivity", self.deploy_connectivity),
            ("Phase 6: Compute", self.deploy_compute),
        ]
        if run_validation:
            phases.append(("Phase 7: Validation", self.validate_connectivity))

        for title, phase in phases:
            self.progress.start_operation(title)
            try:
                phase()
            except NetworkDeploymentError:
                self.progress.complete(success=False)
                self.summary.duration_seconds = time.time() - start
                raise
            self.progress.complete(success=True)

        self.summary.duration_seconds = time.time() - start
        return self.summary


def cleanup_hint(error: NetworkDeploymentError, environment: str, location: str) -> str:
    """Message telling the user what may need manual cleanup."""
    lines = ["Deployment failed. Resources may need manual cleanup.", "Resource groups created:"]
    lines.extend(f"  {rg}" for rg in error.resource_groups)
    lines.append(f"To delete all resources, run: alzctl destroy {environment} {location}")
    return "\n".join(lines)


__all__ = [
    "DeploymentSummary",
    "HubSpokeDeployer",
    "NetworkDeploymentError",
    "ResourceAction",
    "ResourceResult",
    "cleanup_hint",
]
