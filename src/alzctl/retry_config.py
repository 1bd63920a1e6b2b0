"""Configuration for retry logic.

This module provides configurable retry settings that can be tuned
for different environments and use cases.

Design Philosophy:
- Single configuration object for Azure CLI and Graph calls
- Sensible defaults: Works out of the box
- Environment-aware: Can be overridden via env vars
"""

import os
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Retry configuration settings.

    These settings control retry behavior across alzctl operations.
    """

    # Azure CLI operations
    azure_cli_max_attempts: int = 3
    azure_cli_initial_delay: float = 1.0
    azure_cli_max_delay: float = 30.0

    # Microsoft Graph requests
    graph_max_attempts: int = 4
    graph_initial_delay: float = 2.0
    graph_max_delay: float = 60.0

    # Global settings
    jitter_enabled: bool = True

    @classmethod
    def from_environment(cls) -> "RetryConfig":
        """Load retry configuration from environment variables.

        Environment variables (all optional):
            ALZCTL_RETRY_MAX_ATTEMPTS: Default max attempts (default: 3)
            ALZCTL_RETRY_INITIAL_DELAY: Default initial delay in seconds (default: 1.0)
            ALZCTL_RETRY_MAX_DELAY: Default max delay in seconds (default: 30.0)
            ALZCTL_RETRY_JITTER_ENABLED: Enable jitter (default: true)
            ALZCTL_RETRY_AZURE_CLI_* / ALZCTL_RETRY_GRAPH_*: Per-channel overrides

        Returns:
            RetryConfig with values from environment or defaults
        """
        default_max_attempts = os.getenv("ALZCTL_RETRY_MAX_ATTEMPTS", "3")
        default_initial_delay = os.getenv("ALZCTL_RETRY_INITIAL_DELAY", "1.0")
        default_max_delay = os.getenv("ALZCTL_RETRY_MAX_DELAY", "30.0")
        jitter_enabled = os.getenv("ALZCTL_RETRY_JITTER_ENABLED", "true").lower() == "true"

        return cls(
            azure_cli_max_attempts=int(
                os.getenv("ALZCTL_RETRY_AZURE_CLI_MAX_ATTEMPTS", default_max_attempts)
            ),
            azure_cli_initial_delay=float(
                os.getenv("ALZCTL_RETRY_AZURE_CLI_INITIAL_DELAY", default_initial_delay)
            ),
            azure_cli_max_delay=float(
                os.getenv("ALZCTL_RETRY_AZURE_CLI_MAX_DELAY", default_max_delay)
            ),
            graph_max_attempts=int(os.getenv("ALZCTL_RETRY_GRAPH_MAX_ATTEMPTS", "4")),
            graph_initial_delay=float(os.getenv("ALZCTL_RETRY_GRAPH_INITIAL_DELAY", "2.0")),
            graph_max_delay=float(os.getenv("ALZCTL_RETRY_GRAPH_MAX_DELAY", "60.0")),
            jitter_enabled=jitter_enabled,
        )


# Global configuration instance (lazily loaded)
_config: RetryConfig | None = None


def get_retry_config() -> RetryConfig:
    """Get global retry configuration.

    Returns:
        RetryConfig instance (loaded from environment on first access)

    Example:
        >>> config = get_retry_config()
        >>> print(f"Max attempts: {config.azure_cli_max_attempts}")
    """
    global _config
    if _config is None:
        _config = RetryConfig.from_environment()
    return _config


def reset_retry_config() -> None:
    """Reset global retry configuration.

    Forces reload from environment on next access.
    """
    global _config
    _config = None


__all__ = ["RetryConfig", "get_retry_config", "reset_retry_config"]
