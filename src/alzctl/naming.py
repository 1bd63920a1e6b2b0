"""Landing-zone resource naming convention.

Every name is derived from the environment and location so that a second
run of ``alzctl deploy`` finds the resources of the first one.
"""

from dataclasses import dataclass
from datetime import datetime

SPOKE_ROLES = {1: "workloads", 2: "domain-controllers"}
DEFAULT_SPOKE_ROLE = "future"
NSG_ROLE_SUFFIX = {"workloads": "workloads", "domain-controllers": "dc", "future": "future"}


def spoke_role(index: int) -> str:
    """Role of spoke ``index`` (1-based)."""
    return SPOKE_ROLES.get(index, DEFAULT_SPOKE_ROLE)


def deployment_name(environment: str, now: datetime | None = None) -> str:
    """Name of a deployment run, e.g. ``alz-prod-20250101120000``."""
    timestamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"alz-{environment}-{timestamp}"


@dataclass(frozen=True)
class ResourceNames:
    """Names for one environment/location pair."""

    environment: str
    location: str

    @property
    def _suffix(self) -> str:
        return f"{self.environment}-{self.location}-001"

    @property
    def hub_resource_group(self) -> str:
        return f"rg-hub-networking-{self._suffix}"

    @property
    def shared_resource_group(self) -> str:
        return f"rg-shared-{self._suffix}"

    def spoke_resource_group(self, index: int) -> str:
        return f"rg-spoke{index}-{self._suffix}"

    @property
    def log_analytics_workspace(self) -> str:
        return f"log-hub-{self._suffix}"

    @property
    def hub_vnet(self) -> str:
        return f"vnet-hub-{self._suffix}"

    def spoke_vnet(self, index: int) -> str:
        return f"vnet-spoke{index}-{self._suffix}"

    def spoke_subnet(self, index: int) -> str:
        return f"snet-{spoke_role(index)}"

    @property
    def firewall(self) -> str:
        return f"fw-hub-{self._suffix}"

    @property
    def firewall_public_ip(self) -> str:
        return f"pip-fw-{self._suffix}"

    @property
    def bastion(self) -> str:
        return f"bastion-hub-{self._suffix}"

    @property
    def bastion_public_ip(self) -> str:
        return f"pip-bastion-{self._suffix}"

    @property
    def vpn_gateway(self) -> str:
        return f"vpngw-hub-{self._suffix}"

    @property
    def vpn_public_ip(self) -> str:
        return f"pip-vpn-{self._suffix}"

    def spoke_nsg(self, index: int) -> str:
        return f"nsg-spoke{index}-{NSG_ROLE_SUFFIX[spoke_role(index)]}-001"

    def spoke_route_table(self, index: int) -> str:
        return f"rt-spoke{index}-to-hub"

    @staticmethod
    def hub_to_spoke_peering(index: int) -> str:
        return f"peer-hub-to-spoke{index}"

    @staticmethod
    def spoke_to_hub_peering(index: int) -> str:
        return f"peer-spoke{index}-to-hub"

    def workload_vm(self, number: int) -> str:
        return f"vm-workload-{self.environment}-{number:03d}"

    def domain_controller_vm(self, number: int) -> str:
        return f"vm-dc-{self.environment}-{number:03d}"

    def resource_groups(self, spoke_count: int) -> list[str]:
        """Every resource group a deployment of ``spoke_count`` spokes creates."""
        groups = [self.hub_resource_group]
        groups.extend(self.spoke_resource_group(i) for i in range(1, spoke_count + 1))
        groups.append(self.shared_resource_group)
        return groups


__all__ = ["ResourceNames", "deployment_name", "spoke_role"]
