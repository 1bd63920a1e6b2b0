"""Result types shared by the Graph-based deployers."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class IdentityDeploymentError(Exception):
    """Raised when a Graph object cannot be deployed safely."""

    pass


class DeployAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    PLANNED = "planned"
    FAILED = "failed"


@dataclass
class DeployResult:
    """Outcome of deploying one Graph object."""

    kind: str
    display_name: str
    id: str | None
    action: DeployAction
    error: str | None = None
    warnings: list[str] | None = None

    @property
    def ok(self) -> bool:
        return self.action != DeployAction.FAILED


def differing_fields(desired: dict[str, Any], existing: dict[str, Any]) -> dict[str, Any]:
    """Keys of ``desired`` whose value differs from ``existing``.

    Nested dicts are compared on the keys being set only, so server-side
    defaults that the definition does not mention never count as drift.
    """
    changes: dict[str, Any] = {}
    for key, value in desired.items():
        current = existing.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            if differing_fields(value, current):
                changes[key] = value
        elif isinstance(value, list) and isinstance(current, list):
            if not _same_list(value, current):
                changes[key] = value
        elif value != current:
            changes[key] = value
    return changes


def _same_list(desired: list[Any], existing: list[Any]) -> bool:
    if len(desired) != len(existing):
        return False
    if all(isinstance(v, (str, int, float, bool)) for v in desired + existing):
        return sorted(map(str, desired)) == sorted(map(str, existing))
    return all(
        not differing_fields(d, e) if isinstance(d, dict) and isinstance(e, dict) else d == e
        for d, e in zip(desired, existing)
    )


__all__ = ["DeployAction", "DeployResult", "IdentityDeploymentError", "differing_fields"]
