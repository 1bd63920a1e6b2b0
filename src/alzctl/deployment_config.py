"""Deployment parameters for a hub-spoke landing zone.

Parameters are layered, later sources winning:
1. Built-in defaults (the values of the original local deployment script)
2. User defaults from ~/.alzctl/config.toml
3. A YAML parameter file (--config or ALZ_CONFIG_FILE)
4. Explicit CLI arguments

Example YAML file::

    environment: dev
    location: westeurope
    spoke_count: 2
    deploy_bastion: false
    vm_count_spoke1: 1
    vm_count_spoke2: 0
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from alzctl.modules.validation import (
    ValidationError,
    parse_bool,
    validate_azure_resource_name,
    validate_deployment_inputs,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "ALZ_CONFIG_FILE"
DEFAULT_CONFIG_FILE = Path("config") / "default.yaml"
DEFAULT_MANAGED_BY = "ALZ-v3-Local"


@dataclass
class DeploymentParameters:
    """Inputs of one landing-zone deployment."""

    environment: str = "prod"
    location: str = "eastus"
    spoke_count: int = 3
    deploy_vpn: bool = False
    deploy_bastion: bool = True
    vm_count_spoke1: int = 4
    vm_count_spoke2: int = 2
    managed_by: str = DEFAULT_MANAGED_BY
    admin_username: str = "azureadmin"
    log_retention_days: int = 30
    connectivity_port: int = 22
    provision_wait_seconds: int = 120

    @property
    def total_vms(self) -> int:
        return self.vm_count_spoke1 + self.vm_count_spoke2

    def tags(self) -> dict[str, str]:
        """Tags put on every resource group (used by destroy to find them)."""
        return {"Environment": self.environment, "ManagedBy": self.managed_by}

    def validate(self, admin_password: str | None, require_password: bool = True) -> None:
        """Validate every input at once.

        Raises:
            ValidationError: Listing all problems found
        """
        errors = validate_deployment_inputs(
            environment=self.environment,
            location=self.location,
            spoke_count=self.spoke_count,
            deploy_vpn=self.deploy_vpn,
            deploy_bastion=self.deploy_bastion,
            vm_counts={
                "vm_count_spoke1": self.vm_count_spoke1,
                "vm_count_spoke2": self.vm_count_spoke2,
            },
            admin_password=admin_password,
            require_password=require_password,
        )
        for value, label in ((self.admin_username, "Admin username"), (self.managed_by, "ManagedBy tag")):
            try:
                validate_azure_resource_name(value, label)
            except ValidationError as e:
                errors.append(str(e))
        if errors:
            raise ValidationError(f"{len(errors)} validation error(s) found", errors=errors)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_sources(
        cls,
        defaults: dict[str, Any] | None = None,
        file_values: dict[str, Any] | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> "DeploymentParameters":
        """Merge parameter sources; ``None`` values in a source are ignored.

        Raises:
            ValidationError: On unknown keys or values of the wrong type
        """
        merged: dict[str, Any] = {}
        for source in (defaults, file_values, overrides):
            if not source:
                continue
            merged.update({k: v for k, v in source.items() if v is not None})

        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(merged) - set(known))
        if unknown:
            raise ValidationError(f"Unknown deployment parameter(s): {', '.join(unknown)}")

        values: dict[str, Any] = {}
        errors: list[str] = []
        for name, value in merged.items():
            try:
                values[name] = _coerce(name, known[name].type, value)
            except ValidationError as e:
                errors.append(str(e))
        if errors:
            raise ValidationError(f"{len(errors)} validation error(s) found", errors=errors)

        return cls(**values)


def _coerce(name: str, type_name: Any, value: Any) -> Any:
    type_str = type_name if isinstance(type_name, str) else getattr(type_name, "__name__", "")
    if type_str == "bool":
        return parse_bool(value, name)
    if type_str == "int":
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValidationError(f"Invalid {name}: {value}. Must be an integer")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid {name}: {value}. Must be an integer") from e
    return str(value)


def resolve_config_file(cli_value: str | None = None) -> Path | None:
    """Pick the YAML parameter file.

    Precedence: explicit path, then ALZ_CONFIG_FILE, then ./config/default.yaml
    if it exists. An explicit path or env var that does not exist is an error.
    """
    explicit = cli_value or os.environ.get(CONFIG_FILE_ENV)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ValidationError(f"Config file not found: {path}")
        return path

    if DEFAULT_CONFIG_FILE.is_file():
        return DEFAULT_CONFIG_FILE
    return None


def load_parameter_file(path: Path) -> dict[str, Any]:
    """Load deployment parameters from YAML.

    Security:
        Uses yaml.safe_load() to prevent arbitrary code execution

    Raises:
        ValidationError: If the file cannot be parsed or is not a mapping
    """
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValidationError(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise ValidationError(f"Failed to read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping of parameter names to values")

    # Allow the parameters to live under a "deployment" key
    if isinstance(data.get("deployment"), dict):
        data = data["deployment"]

    logger.debug(f"Loaded deployment parameters from {path}")
    return data


__all__ = [
    "CONFIG_FILE_ENV",
    "DEFAULT_MANAGED_BY",
    "DeploymentParameters",
    "load_parameter_file",
    "resolve_config_file",
]
