"""Post-deployment connectivity test between two spokes.

Uses Azure Network Watcher: the first VM of the source spoke tries to reach
the first private IP of the destination spoke. Traffic between spokes only
flows when peerings, route tables, NSGs and the firewall rule are all right,
so one "Reachable" answer validates the whole hub-spoke path.
"""

import json
import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass

from alzctl.azure_cli_executor import run_az_command

logger = logging.getLogger(__name__)


class ConnectivityError(Exception):
    """Raised when the connectivity test cannot be run."""

    pass


@dataclass
class ConnectivityResult:
    """Outcome of a Network Watcher connectivity check."""

    source_vm: str
    destination_ip: str
    port: int
    status: str
    latency_ms: float | None = None

    @property
    def reachable(self) -> bool:
        return self.status == "Reachable"


class ConnectivityValidator:
    """Run ``az network watcher test-connectivity`` between spokes."""

    WATCHER_EXTENSION = "NetworkWatcherAgentLinux"
    WATCHER_PUBLISHER = "Microsoft.Azure.NetworkWatcher"

    def __init__(self, executor: Callable[..., subprocess.CompletedProcess[str]] = run_az_command):
        self.executor = executor

    def _tsv(self, cmd: list[str], what: str) -> str:
        try:
            result = self.executor(cmd, timeout=120)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise ConnectivityError(f"Failed to read {what}") from e
        value = (result.stdout or "").strip()
        if not value:
            raise ConnectivityError(f"No {what} found")
        return value

    def first_vm(self, resource_group: str) -> str:
        return self._tsv(
            ["az", "vm", "list", "-g", resource_group, "--query", "[0].name", "-o", "tsv"],
            f"VM in {resource_group}",
        )

    def first_private_ip(self, resource_group: str) -> str:
        return self._tsv(
            [
                "az",
                "vm",
                "list-ip-addresses",
                "-g",
                resource_group,
                "--query",
                "[0].virtualMachine.network.privateIpAddresses[0]",
                "-o",
                "tsv",
            ],
            f"private IP in {resource_group}",
        )

    def install_watcher_agent(self, resource_group: str, vm_name: str) -> None:
        try:
            self.executor(
                [
                    "az",
                    "vm",
                    "extension",
                    "set",
                    "-g",
                    resource_group,
                    "--vm-name",
                    vm_name,
                    "--name",
                    self.WATCHER_EXTENSION,
                    "--publisher",
                    self.WATCHER_PUBLISHER,
                ],
                timeout=900,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise ConnectivityError(f"Failed to install Network Watcher agent on {vm_name}") from e

    def run(self, source_resource_group: str, dest_resource_group: str, port: int = 22) -> ConnectivityResult:
        """
        Test connectivity from the source spoke to the destination spoke.

        Raises:
            ConnectivityError: If VMs cannot be found or the test cannot run
        """
        source_vm = self.first_vm(source_resource_group)
        dest_ip = self.first_private_ip(dest_resource_group)
        logger.info(f"Testing: {source_vm} -> {dest_ip}:{port}")

        self.install_watcher_agent(source_resource_group, source_vm)

        try:
            result = self.executor(
                [
                    "az",
                    "network",
                    "watcher",
                    "test-connectivity",
                    "-g",
                    source_resource_group,
                    "--source-resource",
                    source_vm,
                    "--dest-address",
                    dest_ip,
                    "--dest-port",
                    str(port),
                    "--query",
                    "{status:connectionStatus, latency:avgLatencyInMs}",
                    "-o",
                    "json",
                ],
                timeout=600,
            )
            data = json.loads(result.stdout or "{}")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise ConnectivityError("Connectivity test failed to run") from e
        except json.JSONDecodeError as e:
            raise ConnectivityError(f"Unexpected connectivity test output: {e}") from e

        latency = data.get("latency")
        return ConnectivityResult(
            source_vm=source_vm,
            destination_ip=dest_ip,
            port=port,
            status=data.get("status") or "Unknown",
            latency_ms=float(latency) if latency is not None else None,
        )


__all__ = ["ConnectivityError", "ConnectivityResult", "ConnectivityValidator"]
