"""
Pre-flight Checks Module

Verifies the local tooling and the target subscription before a deployment:
Azure CLI present and logged in, shell flavour, resource providers
registered, and VM quota in the target location.

Security Requirements:
- No credential storage
- Read-only checks, except provider registration which is idempotent
- No shell=True in subprocess calls
"""

import json
import logging
import os
import platform
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import ClassVar

from alzctl.azure_cli_executor import run_az_command

logger = logging.getLogger(__name__)

REQUIRED_PROVIDERS = (
    "Microsoft.Network",
    "Microsoft.Compute",
    "Microsoft.Storage",
    "Microsoft.OperationalInsights",
)


class PrerequisiteError(Exception):
    """Raised when prerequisites are missing."""

    pass


@dataclass
class PreflightReport:
    """Result of pre-flight checks."""

    az_available: bool
    authenticated: bool
    shell_type: str
    platform_name: str
    subscription_name: str | None = None
    subscription_id: str | None = None
    registered_providers: list[str] = field(default_factory=list)
    newly_registered: list[str] = field(default_factory=list)
    quota: str = "N/A"

    @property
    def use_powershell_wrapper(self) -> bool:
        """Git Bash mangles ARM resource IDs, so peerings go through PowerShell."""
        return self.shell_type == "gitbash"

    @property
    def passed(self) -> bool:
        return self.az_available and self.authenticated


class PrerequisiteChecker:
    """
    Run the pre-flight phase of a landing-zone deployment.

    Required tools:
    - az (Azure CLI)
    """

    REQUIRED_TOOLS: ClassVar[list[str]] = ["az"]
    QUOTA_FAMILY: ClassVar[str] = "standardBSFamily"

    def __init__(self, executor: Callable[..., subprocess.CompletedProcess[str]] = run_az_command):
        self.executor = executor

    @classmethod
    def check_tool(cls, tool_name: str) -> bool:
        """
        Check if a single tool is available in PATH.

        Security: Uses shutil.which (safe, no subprocess)
        """
        result = shutil.which(tool_name)
        if result:
            logger.debug(f"Found {tool_name} at {result}")
            return True
        logger.debug(f"Tool not found: {tool_name}")
        return False

    @classmethod
    def detect_shell(cls, environ: dict[str, str] | None = None) -> str:
        """
        Detect the calling shell.

        Returns:
            str: gitbash, powershell or bash
        """
        env = os.environ if environ is None else environ
        if env.get("MSYSTEM"):
            return "gitbash"
        if env.get("PSVersionTable") or env.get("POWERSHELL_DISTRIBUTION_CHANNEL"):
            return "powershell"
        return "bash"

    @classmethod
    def detect_platform(cls) -> str:
        """
        Detect the operating system platform.

        Returns:
            str: Platform name (macos, linux, windows, unknown)
        """
        system = platform.system().lower()
        if system == "darwin":
            return "macos"
        if system in ("linux", "windows"):
            return system
        return "unknown"

    def get_account(self) -> dict | None:
        """Return ``az account show`` output, or None when not logged in."""
        try:
            result = self.executor(["az", "account", "show", "--output", "json"], max_attempts=1)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            logger.debug(f"az account show failed: {e}")
            return None
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            return None

    def ensure_providers(self, providers: tuple[str, ...] = REQUIRED_PROVIDERS) -> tuple[list[str], list[str]]:
        """
        Register every provider that is not yet registered.

        Returns:
            (already registered, newly registered)
        """
        registered: list[str] = []
        newly_registered: list[str] = []

        for provider in providers:
            state = ""
            try:
                result = self.executor(
                    [
                        "az",
                        "provider",
                        "show",
                        "--namespace",
                        provider,
                        "--query",
                        "registrationState",
                        "-o",
                        "tsv",
                    ],
                    check=False,
                )
                state = (result.stdout or "").strip()
            except subprocess.TimeoutExpired:
                logger.warning(f"Timed out reading registration state for {provider}")

            if state == "Registered":
                registered.append(provider)
                continue

            logger.info(f"Registering {provider}...")
            try:
                self.executor(
                    ["az", "provider", "register", "--namespace", provider, "--wait"],
                    timeout=600,
                )
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
                raise PrerequisiteError(f"Failed to register provider {provider}") from e
            newly_registered.append(provider)

        return registered, newly_registered

    def check_quota(self, location: str) -> str:
        """
        Report B-series vCPU usage in ``location``.

        Informative only; returns "N/A" when the query fails.
        """
        query = (
            f"[?contains(name.value, '{self.QUOTA_FAMILY}')]"
            ".{current:currentValue, limit:limit}"
        )
        try:
            result = self.executor(
                ["az", "vm", "list-usage", "--location", location, "--query", query, "-o", "json"],
                check=False,
            )
        except subprocess.TimeoutExpired:
            return "N/A"

        if result.returncode != 0:
            return "N/A"
        try:
            usages = json.loads(result.stdout or "[]")
        except json.JSONDecodeError:
            return "N/A"
        if not usages:
            return "N/A"
        usage = usages[0]
        return f"{usage.get('current')}/{usage.get('limit')}"

    def run(self, location: str, register_providers: bool = True) -> PreflightReport:
        """
        Run all pre-flight checks.

        Raises:
            PrerequisiteError: If az is missing or not logged in
        """
        report = PreflightReport(
            az_available=self.check_tool("az"),
            authenticated=False,
            shell_type=self.detect_shell(),
            platform_name=self.detect_platform(),
        )
        if not report.az_available:
            raise PrerequisiteError(
                "Azure CLI not found. Install it from "
                "https://learn.microsoft.com/cli/azure/install-azure-cli"
            )

        account = self.get_account()
        if account is None:
            raise PrerequisiteError("Not authenticated. Run 'az login'")
        report.authenticated = True
        report.subscription_name = account.get("name")
        report.subscription_id = account.get("id")
        logger.info(f"Azure CLI authenticated ({report.subscription_name})")
        logger.info(f"Shell: {report.shell_type}")

        if register_providers:
            report.registered_providers, report.newly_registered = self.ensure_providers()
            logger.info("All providers registered")

        report.quota = self.check_quota(location)
        logger.info(f"B-series quota: {report.quota}")

        return report


__all__ = ["PreflightReport", "PrerequisiteChecker", "PrerequisiteError", "REQUIRED_PROVIDERS"]
