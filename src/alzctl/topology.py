"""Hub-spoke network plan.

Pure planning: turns DeploymentParameters into the address spaces, subnets,
peerings, NSG rules, routes and firewall rules a deployment needs. No Azure
calls are made here, so the plan can be printed (``alzctl plan``) and tested
without a subscription.

Address layout:
    hub      10.0.0.0/16
    spoke i  10.i.0.0/16, one subnet 10.i.1.0/24
    10.0.0.0/8 is treated as "inside the landing zone" by the NSG rules
"""

import ipaddress
from dataclasses import dataclass, field

from alzctl.deployment_config import DeploymentParameters
from alzctl.modules.validation import ValidationError, validate_cidr
from alzctl.naming import ResourceNames

HUB_ADDRESS_SPACE = "10.0.0.0/16"
LANDING_ZONE_SUPERNET = "10.0.0.0/8"
FIREWALL_NEXT_HOP_PLACEHOLDER = "<firewall-private-ip>"

HUB_SUBNETS = (
    ("AzureFirewallSubnet", "10.0.1.0/26"),
    ("AzureBastionSubnet", "10.0.2.0/26"),
    ("snet-management", "10.0.3.0/24"),
    ("snet-private-endpoints", "10.0.4.0/24"),
)
GATEWAY_SUBNET = ("GatewaySubnet", "10.0.255.0/27")


@dataclass(frozen=True)
class Subnet:
    name: str
    prefix: str


@dataclass
class VNetPlan:
    resource_group: str
    name: str
    address_space: str
    subnets: list[Subnet] = field(default_factory=list)


@dataclass(frozen=True)
class PeeringPlan:
    """One direction of a hub-spoke peering."""

    name: str
    resource_group: str
    vnet_name: str
    remote_resource_group: str
    remote_vnet_name: str
    allow_gateway_transit: bool = False


@dataclass(frozen=True)
class NsgRule:
    name: str
    priority: int
    direction: str
    source: str
    destination: str
    access: str = "Allow"
    protocol: str = "*"
    destination_ports: str = "*"


@dataclass
class NsgPlan:
    resource_group: str
    name: str
    subnet: str
    vnet_name: str
    rules: list[NsgRule] = field(default_factory=list)


@dataclass(frozen=True)
class RoutePlan:
    name: str
    address_prefix: str
    next_hop_type: str = "VirtualAppliance"


@dataclass
class RouteTablePlan:
    resource_group: str
    name: str
    subnet: str
    vnet_name: str
    spoke_index: int
    routes: list[RoutePlan] = field(default_factory=list)


@dataclass(frozen=True)
class FirewallRulePlan:
    collection_name: str
    rule_name: str
    priority: int
    sources: tuple[str, ...]
    destinations: tuple[str, ...]
    protocols: str = "Any"
    destination_ports: str = "*"
    action: str = "Allow"


@dataclass(frozen=True)
class VmPlan:
    name: str
    resource_group: str
    vnet_name: str
    subnet: str
    image: str
    size: str
    os_type: str


@dataclass
class HubSpokePlan:
    """Everything a deployment will create."""

    params: DeploymentParameters
    names: ResourceNames
    hub: VNetPlan
    spokes: list[VNetPlan]
    peerings: list[PeeringPlan]
    nsgs: list[NsgPlan]
    route_tables: list[RouteTablePlan]
    firewall_rule: FirewallRulePlan
    vms: list[VmPlan]

    @property
    def resource_groups(self) -> list[str]:
        return self.names.resource_groups(self.params.spoke_count)

    @property
    def spoke_cidrs(self) -> list[str]:
        return [spoke.address_space for spoke in self.spokes]


class TopologyError(Exception):
    """Raised when a plan violates an addressing invariant."""

    pass


def spoke_address_space(index: int) -> str:
    return f"10.{index}.0.0/16"


def spoke_subnet_prefix(index: int) -> str:
    return f"10.{index}.1.0/24"


def _hub_plan(params: DeploymentParameters, names: ResourceNames) -> VNetPlan:
    subnets = [Subnet(name, prefix) for name, prefix in HUB_SUBNETS]
    if params.deploy_vpn:
        subnets.append(Subnet(*GATEWAY_SUBNET))
    return VNetPlan(names.hub_resource_group, names.hub_vnet, HUB_ADDRESS_SPACE, subnets)


def _spoke_plans(params: DeploymentParameters, names: ResourceNames) -> list[VNetPlan]:
    return [
        VNetPlan(
            resource_group=names.spoke_resource_group(i),
            name=names.spoke_vnet(i),
            address_space=spoke_address_space(i),
            subnets=[Subnet(names.spoke_subnet(i), spoke_subnet_prefix(i))],
        )
        for i in range(1, params.spoke_count + 1)
    ]


def _peering_plans(params: DeploymentParameters, names: ResourceNames) -> list[PeeringPlan]:
    peerings: list[PeeringPlan] = []
    for i in range(1, params.spoke_count + 1):
        peerings.append(
            PeeringPlan(
                name=names.hub_to_spoke_peering(i),
                resource_group=names.hub_resource_group,
                vnet_name=names.hub_vnet,
                remote_resource_group=names.spoke_resource_group(i),
                remote_vnet_name=names.spoke_vnet(i),
                allow_gateway_transit=params.deploy_vpn,
            )
        )
        peerings.append(
            PeeringPlan(
                name=names.spoke_to_hub_peering(i),
                resource_group=names.spoke_resource_group(i),
                vnet_name=names.spoke_vnet(i),
                remote_resource_group=names.hub_resource_group,
                remote_vnet_name=names.hub_vnet,
            )
        )
    return peerings


def _nsg_plans(params: DeploymentParameters, names: ResourceNames) -> list[NsgPlan]:
    rules = [
        NsgRule("Allow-VNet-Inbound", 100, "Inbound", LANDING_ZONE_SUPERNET, "*"),
        NsgRule("Allow-VNet-Outbound", 100, "Outbound", "*", LANDING_ZONE_SUPERNET),
    ]
    return [
        NsgPlan(
            resource_group=names.spoke_resource_group(i),
            name=names.spoke_nsg(i),
            subnet=names.spoke_subnet(i),
            vnet_name=names.spoke_vnet(i),
            rules=list(rules),
        )
        for i in range(1, params.spoke_count + 1)
    ]


def _route_table_plans(params: DeploymentParameters, names: ResourceNames) -> list[RouteTablePlan]:
    tables: list[RouteTablePlan] = []
    for i in range(1, params.spoke_count + 1):
        routes = [
            RoutePlan(name=f"to-spoke{j}", address_prefix=spoke_address_space(j))
            for j in range(1, params.spoke_count + 1)
            if j != i
        ]
        tables.append(
            RouteTablePlan(
                resource_group=names.spoke_resource_group(i),
                name=names.spoke_route_table(i),
                subnet=names.spoke_subnet(i),
                vnet_name=names.spoke_vnet(i),
                spoke_index=i,
                routes=routes,
            )
        )
    return tables


def _vm_plans(params: DeploymentParameters, names: ResourceNames) -> list[VmPlan]:
    vms = [
        VmPlan(
            name=names.workload_vm(n),
            resource_group=names.spoke_resource_group(1),
            vnet_name=names.spoke_vnet(1),
            subnet=names.spoke_subnet(1),
            image="Ubuntu2204",
            size="Standard_B2s",
            os_type="linux",
        )
        for n in range(1, params.vm_count_spoke1 + 1)
    ]
    vms.extend(
        VmPlan(
            name=names.domain_controller_vm(n),
            resource_group=names.spoke_resource_group(2),
            vnet_name=names.spoke_vnet(2),
            subnet=names.spoke_subnet(2),
            image="Win2022Datacenter",
            size="Standard_D2s_v3",
            os_type="windows",
        )
        for n in range(1, params.vm_count_spoke2 + 1)
    )
    return vms


def check_invariants(plan: HubSpokePlan) -> None:
    """Verify address spaces do not overlap and subnets sit inside their VNet.

    Raises:
        TopologyError: On the first violation found
    """
    vnets = [plan.hub, *plan.spokes]
    for vnet in vnets:
        for prefix in (vnet.address_space, *(s.prefix for s in vnet.subnets)):
            try:
                validate_cidr(prefix)
            except ValidationError as e:
                raise TopologyError(f"{vnet.name}: {e}") from e

    networks = [(v.name, ipaddress.IPv4Network(v.address_space)) for v in vnets]
    for idx, (name_a, net_a) in enumerate(networks):
        for name_b, net_b in networks[idx + 1 :]:
            if net_a.overlaps(net_b):
                raise TopologyError(f"Address space of {name_a} overlaps {name_b}")

    for vnet in vnets:
        parent = ipaddress.IPv4Network(vnet.address_space)
        for subnet in vnet.subnets:
            if not ipaddress.IPv4Network(subnet.prefix).subnet_of(parent):
                raise TopologyError(f"Subnet {subnet.name} is outside {vnet.name}")

    for table in plan.route_tables:
        own = spoke_address_space(table.spoke_index)
        if any(route.address_prefix == own for route in table.routes):
            raise TopologyError(f"{table.name} routes its own spoke through the firewall")


def build_plan(params: DeploymentParameters) -> HubSpokePlan:
    """Build the full hub-spoke plan for ``params``."""
    names = ResourceNames(params.environment, params.location)
    spokes = _spoke_plans(params, names)
    spoke_cidrs = tuple(spoke.address_space for spoke in spokes)

    plan = HubSpokePlan(
        params=params,
        names=names,
        hub=_hub_plan(params, names),
        spokes=spokes,
        peerings=_peering_plans(params, names),
        nsgs=_nsg_plans(params, names),
        route_tables=_route_table_plans(params, names),
        firewall_rule=FirewallRulePlan(
            collection_name="AllowSpokeToSpoke",
            rule_name="Allow-All-Spokes",
            priority=100,
            sources=spoke_cidrs,
            destinations=spoke_cidrs,
        ),
        vms=_vm_plans(params, names),
    )
    check_invariants(plan)
    return plan


__all__ = [
    "FIREWALL_NEXT_HOP_PLACEHOLDER",
    "FirewallRulePlan",
    "HubSpokePlan",
    "NsgPlan",
    "NsgRule",
    "PeeringPlan",
    "RoutePlan",
    "RouteTablePlan",
    "Subnet",
    "TopologyError",
    "VNetPlan",
    "VmPlan",
    "build_plan",
    "check_invariants",
]
