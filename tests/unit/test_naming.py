"""Tests for the landing-zone naming convention."""

from datetime import datetime

from alzctl.naming import ResourceNames, deployment_name, spoke_role


class TestResourceNames:
    names = ResourceNames("prod", "eastus")

    def test_hub_names(self):
        assert self.names.hub_resource_group == "rg-hub-networking-prod-eastus-001"
        assert self.names.hub_vnet == "vnet-hub-prod-eastus-001"
        assert self.names.firewall == "fw-hub-prod-eastus-001"
        assert self.names.firewall_public_ip == "pip-fw-prod-eastus-001"
        assert self.names.bastion == "bastion-hub-prod-eastus-001"
        assert self.names.log_analytics_workspace == "log-hub-prod-eastus-001"

    def test_spoke_names(self):
        assert self.names.spoke_resource_group(2) == "rg-spoke2-prod-eastus-001"
        assert self.names.spoke_vnet(2) == "vnet-spoke2-prod-eastus-001"
        assert self.names.spoke_subnet(1) == "snet-workloads"
        assert self.names.spoke_subnet(2) == "snet-domain-controllers"
        assert self.names.spoke_subnet(3) == "snet-future"

    def test_nsg_and_route_table_names(self):
        assert self.names.spoke_nsg(1) == "nsg-spoke1-workloads-001"
        assert self.names.spoke_nsg(2) == "nsg-spoke2-dc-001"
        assert self.names.spoke_nsg(4) == "nsg-spoke4-future-001"
        assert self.names.spoke_route_table(3) == "rt-spoke3-to-hub"

    def test_peering_names(self):
        assert ResourceNames.hub_to_spoke_peering(1) == "peer-hub-to-spoke1"
        assert ResourceNames.spoke_to_hub_peering(1) == "peer-spoke1-to-hub"

    def test_vm_names(self):
        assert self.names.workload_vm(1) == "vm-workload-prod-001"
        assert self.names.domain_controller_vm(12) == "vm-dc-prod-012"

    def test_resource_groups_order(self):
        assert ResourceNames("dev", "westus").resource_groups(2) == [
            "rg-hub-networking-dev-westus-001",
            "rg-spoke1-dev-westus-001",
            "rg-spoke2-dev-westus-001",
            "rg-shared-dev-westus-001",
        ]


def test_spoke_role():
    assert spoke_role(1) == "workloads"
    assert spoke_role(5) == "future"


def test_deployment_name():
    assert deployment_name("dev", datetime(2025, 1, 2, 3, 4, 5)) == "alz-dev-20250102030405"
