"""Tear down a landing zone by its ManagedBy tag.

Resource groups created by ``alzctl deploy`` (or the pipeline) carry a
``ManagedBy`` tag. Destroy finds them, asks for confirmation, starts
``az group delete --no-wait`` for each in parallel and then polls until the
groups are gone or the wait budget is spent.
"""

import json
import logging
import subprocess
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from alzctl.azure_cli_executor import run_az_command
from alzctl.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

DEFAULT_MANAGED_BY_VALUES = ("ALZ-v3-Local", "ALZ-v3-Pipeline")


class DestroyError(Exception):
    """Raised when resource groups cannot be listed or deleted."""

    pass


@dataclass
class DestroySummary:
    """Outcome of a destroy run."""

    groups: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    timed_out: bool = False
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return not self.cancelled and not self.remaining and not self.failed


class LandingZoneDestroyer:
    """Find and delete landing-zone resource groups."""

    def __init__(
        self,
        managed_by_values: tuple[str, ...] = DEFAULT_MANAGED_BY_VALUES,
        max_wait: int = 600,
        poll_interval: int = 30,
        executor: Callable[..., subprocess.CompletedProcess[str]] = run_az_command,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = 8,
    ):
        self.managed_by_values = tuple(managed_by_values)
        self.max_wait = max_wait
        self.poll_interval = poll_interval
        self.executor = executor
        self.sleep = sleep
        self.max_workers = max_workers

    def _list_groups(self) -> list[dict]:
        try:
            result = self.executor(
                [
                    "az",
                    "group",
                    "list",
                    "--query",
                    "[].{name:name, location:location, tags:tags}",
                    "-o",
                    "json",
                ],
                timeout=120,
            )
            data = json.loads(result.stdout or "[]")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise DestroyError("Failed to list resource groups") from e
        except json.JSONDecodeError as e:
            raise DestroyError(f"Unexpected output from az group list: {e}") from e
        return data if isinstance(data, list) else []

    def find_resource_groups(
        self, environment: str | None = None, location: str | None = None
    ) -> list[str]:
        """Names of resource groups tagged with one of the ManagedBy values.

        Args:
            environment: Keep only groups named for this environment
            location: Keep only groups named for this location
        """
        groups = []
        for group in self._list_groups():
            tags = group.get("tags") or {}
            if tags.get("ManagedBy") not in self.managed_by_values:
                continue
            name = group.get("name", "")
            if environment and f"-{environment}-" not in name:
                continue
            if location and f"-{location}-" not in name:
                continue
            groups.append(name)
        return sorted(groups)

    def _delete(self, name: str) -> bool:
        try:
            self.executor(["az", "group", "delete", "--name", name, "--yes", "--no-wait"], timeout=120)
            logger.info(f"Deletion started: {name}")
            return True
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            stderr = getattr(e, "stderr", None) or str(e)
            logger.error(f"Failed to delete {name}: {LogSanitizer.sanitize(stderr)}")
            return False

    def _exists(self, name: str) -> bool:
        result = self.executor(["az", "group", "exists", "--name", name], timeout=60)
        return (result.stdout or "").strip().lower() == "true"

    def _remaining(self, names: list[str]) -> list[str]:
        remaining = []
        for name in names:
            try:
                if self._exists(name):
                    remaining.append(name)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired):
                # Unknown state counts as still there
                remaining.append(name)
        return remaining

    def destroy(
        self,
        environment: str | None = None,
        location: str | None = None,
        confirm: Callable[[list[str]], bool] | None = None,
        wait: bool = True,
    ) -> DestroySummary:
        """Delete every matching resource group.

        Args:
            environment: Narrow to one environment
            location: Narrow to one location
            confirm: Called with the group names; returning False cancels
            wait: Poll until the groups are gone

        Returns:
            DestroySummary
        """
        summary = DestroySummary(groups=self.find_resource_groups(environment, location))
        if not summary.groups:
            logger.info("No landing zone resource groups found")
            return summary

        if confirm is not None and not confirm(summary.groups):
            summary.cancelled = True
            summary.remaining = list(summary.groups)
            return summary

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(summary.groups))) as pool:
            started = list(pool.map(self._delete, summary.groups))

        pending = [name for name, ok in zip(summary.groups, started) if ok]
        summary.failed = [name for name, ok in zip(summary.groups, started) if not ok]

        if not wait:
            summary.remaining = pending
            return summary

        elapsed = 0
        remaining = pending
        while remaining and elapsed < self.max_wait:
            self.sleep(self.poll_interval)
            elapsed += self.poll_interval
            remaining = self._remaining(remaining)
            logger.info(f"Waiting for deletion... ({len(remaining)} remaining, {elapsed}s elapsed)")

        summary.remaining = remaining
        summary.deleted = [name for name in pending if name not in remaining]
        summary.timed_out = bool(remaining)
        return summary


__all__ = ["DestroyError", "DestroySummary", "LandingZoneDestroyer"]
