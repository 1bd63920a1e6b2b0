"""Standardized Azure CLI subprocess execution with retry logic.

Provides:
- run_az_command(): thin wrapper around subprocess.run that retries transient
  Azure CLI failures (CalledProcessError, TimeoutExpired) with exponential backoff
- az_resource_exists(): single-shot ``az ... show`` probe used by the
  check-exists, create-or-update deployment functions

Usage:
    from alzctl.azure_cli_executor import az_resource_exists, run_az_command

    result = run_az_command(["az", "group", "create", "-n", "rg-hub", "-l", "eastus"])
    exists = az_resource_exists(["az", "network", "vnet", "show", "-g", "rg-hub", "-n", "vnet-hub"])
"""

import logging
import subprocess

from alzctl.log_sanitizer import LogSanitizer
from alzctl.retry_config import get_retry_config
from alzctl.retry_handler import retry_with_exponential_backoff

logger = logging.getLogger(__name__)


def run_az_command(
    cmd: list[str],
    *,
    timeout: int = 30,
    max_attempts: int | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute an Azure CLI command with retry logic.

    Args:
        cmd: Command list starting with "az", e.g. ["az", "group", "list"]
        timeout: Subprocess timeout in seconds (default: 30)
        max_attempts: Number of retry attempts (default: from RetryConfig)
        check: If True, raise CalledProcessError on non-zero exit (default: True)

    Returns:
        subprocess.CompletedProcess with stdout/stderr

    Raises:
        subprocess.CalledProcessError: After retries exhausted (when check=True)
        subprocess.TimeoutExpired: After retries exhausted
    """
    config = get_retry_config()
    attempts = max_attempts or config.azure_cli_max_attempts

    logger.debug(f"Running: {LogSanitizer.sanitize_command(cmd)}")

    @retry_with_exponential_backoff(
        max_attempts=attempts,
        initial_delay=config.azure_cli_initial_delay,
        max_delay=config.azure_cli_max_delay,
        jitter=config.jitter_enabled,
        retryable_exceptions=(subprocess.CalledProcessError, subprocess.TimeoutExpired),
    )
    def _run() -> subprocess.CompletedProcess[str]:
        return subprocess.run(cmd, capture_output=True, text=True, check=check, timeout=timeout)

    return _run()


def az_resource_exists(show_cmd: list[str], *, timeout: int = 60) -> bool:
    """Probe for a resource with a single ``show`` call.

    No retry: a non-zero exit is the normal "not found" answer.

    Args:
        show_cmd: ``az ... show`` command list

    Returns:
        True if the command succeeded (resource exists)
    """
    try:
        result = subprocess.run(
            show_cmd, capture_output=True, text=True, check=False, timeout=timeout
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"Existence check timed out: {LogSanitizer.sanitize_command(show_cmd)}")
        return False
    return result.returncode == 0


__all__ = ["az_resource_exists", "run_az_command"]
