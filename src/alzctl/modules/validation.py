"""Shared validation utilities for landing-zone inputs.

Philosophy:
- Single source of truth for validation
- Security-first: prevent command injection in names passed to az
- Report every problem at once, not just the first
- Zero dependencies on other alzctl modules

Public API:
    validate_deployment_inputs: Collect all deployment parameter errors
    validate_azure_resource_name: General Azure resource validation
    validate_cidr: IPv4 CIDR validation
    validate_display_name: Graph displayName validation
    parse_bool: Accept true/false strings as booleans
    sanitize_azure_error: Extract a readable message from az stderr
    ValidationError: Base exception for validation failures
"""

import ipaddress
import re
from typing import Any

VALID_ENVIRONMENTS = ("dev", "staging", "prod")
VALID_LOCATIONS = (
    "eastus",
    "eastus2",
    "westus",
    "westus2",
    "centralus",
    "northeurope",
    "westeurope",
)
MIN_SPOKES = 2
MAX_SPOKES = 5
MAX_VMS_PER_SPOKE = 10
MIN_PASSWORD_LENGTH = 12


class ValidationError(Exception):
    """Raised when validation fails.

    Attributes:
        errors: Every individual problem found
    """

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


def parse_bool(value: Any, field_name: str) -> bool:
    """Parse a boolean given as bool or as the strings 'true'/'false'.

    Raises:
        ValidationError: For any other value
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"Invalid {field_name}: {value}. Must be true or false")


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def validate_deployment_inputs(
    environment: str,
    location: str,
    spoke_count: Any,
    deploy_vpn: Any,
    deploy_bastion: Any,
    vm_counts: dict[str, Any],
    admin_password: str | None,
    require_password: bool = True,
) -> list[str]:
    """Validate hub-spoke deployment parameters.

    Args:
        environment: dev, staging or prod
        location: Azure region from VALID_LOCATIONS
        spoke_count: 2-5
        deploy_vpn: Boolean or "true"/"false"
        deploy_bastion: Boolean or "true"/"false"
        vm_counts: Field name -> VM count (0-10 each)
        admin_password: VM admin password (required when any VM is deployed)
        require_password: Skip the password check (planning only)

    Returns:
        List of error messages (empty when everything is valid)
    """
    errors: list[str] = []

    if environment not in VALID_ENVIRONMENTS:
        errors.append(
            f"Invalid environment: {environment}. Must be one of: {', '.join(VALID_ENVIRONMENTS)}"
        )

    if location not in VALID_LOCATIONS:
        errors.append(f"Invalid location: {location}. Valid: {' '.join(VALID_LOCATIONS)}")

    spokes = _parse_int(spoke_count)
    if spokes is None or not MIN_SPOKES <= spokes <= MAX_SPOKES:
        errors.append(f"Invalid spoke count: {spoke_count}. Must be {MIN_SPOKES}-{MAX_SPOKES}")

    for field_name, value in (("deploy_vpn", deploy_vpn), ("deploy_bastion", deploy_bastion)):
        try:
            parse_bool(value, field_name)
        except ValidationError as e:
            errors.append(str(e))

    total_vms = 0
    for field_name, value in vm_counts.items():
        count = _parse_int(value)
        if count is None or not 0 <= count <= MAX_VMS_PER_SPOKE:
            errors.append(f"Invalid {field_name}: {value}. Must be 0-{MAX_VMS_PER_SPOKE}")
        else:
            total_vms += count

    if total_vms > 0 and require_password:
        if not admin_password:
            errors.append("VM_ADMIN_PASSWORD environment variable is required")
        elif len(admin_password) < MIN_PASSWORD_LENGTH:
            errors.append(f"VM_ADMIN_PASSWORD must be at least {MIN_PASSWORD_LENGTH} characters")

    return errors


def validate_azure_resource_name(name: str, resource_type: str) -> str:
    """Validate Azure resource name for safe use on the az command line.

    Args:
        name: Resource name to validate
        resource_type: Type of resource (for error messages)

    Returns:
        Validated name (unchanged if valid)

    Raises:
        ValidationError: If name contains unsafe characters or is too long

    Example:
        >>> validate_azure_resource_name("vnet-hub-prod-eastus-001", "VNet")
        'vnet-hub-prod-eastus-001'
    """
    if not name or not isinstance(name, str):
        raise ValidationError(f"{resource_type} name must be a non-empty string")

    dangerous_patterns = [";", "&", "|", "$", "`", "(", ")", "<", ">", "\n", "\r", "\t"]
    for pattern in dangerous_patterns:
        if pattern in name:
            raise ValidationError(
                f"{resource_type} name contains unsafe character '{pattern}'. "
                f"Use only alphanumeric characters, hyphens, and underscores."
            )

    if ".." in name or "/" in name or "\\" in name:
        raise ValidationError(f"{resource_type} name contains path traversal sequences.")

    if not re.match(r"^[a-zA-Z0-9_.\-]+$", name):
        raise ValidationError(
            f"{resource_type} name must contain only: "
            f"letters (a-z, A-Z), numbers (0-9), hyphens (-), underscores (_), periods (.)"
        )

    if len(name) > 80:
        raise ValidationError(f"{resource_type} name too long: {len(name)} characters (max: 80)")

    return name


def validate_cidr(cidr: str) -> str:
    """Validate an IPv4 network in CIDR notation.

    Host bits must be zero ("10.1.0.0/16", not "10.1.2.3/16").

    Raises:
        ValidationError: If the value is not a valid IPv4 network
    """
    try:
        network = ipaddress.IPv4Network(cidr, strict=True)
    except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as e:
        raise ValidationError(f"Invalid CIDR '{cidr}': {e}") from e
    return str(network)


def validate_display_name(name: Any, kind: str = "Object") -> str:
    """Validate a Microsoft Graph displayName.

    Raises:
        ValidationError: If empty, longer than 256 characters or containing
            control characters
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{kind} displayName must be a non-empty string")
    if len(name) > 256:
        raise ValidationError(f"{kind} displayName too long: {len(name)} characters (max: 256)")
    if any(ord(ch) < 32 for ch in name):
        raise ValidationError(f"{kind} displayName contains control characters: {name!r}")
    return name


def sanitize_azure_error(stderr: str) -> str:
    """Extract a readable message from Azure CLI error output.

    Example:
        >>> sanitize_azure_error("ERROR: (ResourceGroupNotFound) Resource group 'x' could not be found.")
        "Resource group 'x' could not be found."
    """
    if not stderr:
        return "Unknown error"

    patterns = [
        r"ERROR: \((\w+)\) (.+?)(?:\n|$)",
        r"ERROR: (.+?)(?:\n|$)",
        r"error: (.+?)(?:\n|$)",
    ]

    for pattern in patterns:
        match = re.search(pattern, stderr, re.IGNORECASE)
        if match:
            if len(match.groups()) > 1:
                return match.group(2).strip()
            return match.group(1).strip()

    lines = [line.strip() for line in stderr.split("\n") if line.strip()]
    if lines:
        return lines[0]

    return stderr.strip()


__all__ = [
    "MAX_SPOKES",
    "MAX_VMS_PER_SPOKE",
    "MIN_PASSWORD_LENGTH",
    "MIN_SPOKES",
    "VALID_ENVIRONMENTS",
    "VALID_LOCATIONS",
    "ValidationError",
    "parse_bool",
    "sanitize_azure_error",
    "validate_azure_resource_name",
    "validate_cidr",
    "validate_deployment_inputs",
    "validate_display_name",
]
