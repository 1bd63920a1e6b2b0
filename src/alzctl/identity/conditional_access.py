"""Idempotent Conditional Access policy deployment.

Every policy deployed here excludes the break-glass accounts and groups so
that a misconfigured policy can never lock every administrator out of the
tenant. New policies default to report-only
(``enabledForReportingButNotEnforced``) unless the definition says otherwise.
"""

import copy
import logging
from typing import Any

from alzctl.graph_client import GraphClient, GraphError
from alzctl.identity.groups import is_object_id
from alzctl.identity.models import (
    DeployAction,
    DeployResult,
    IdentityDeploymentError,
    differing_fields,
)
from alzctl.modules.validation import ValidationError, validate_display_name

logger = logging.getLogger(__name__)

POLICIES_PATH = "/identity/conditionalAccess/policies"
DEFAULT_STATE = "enabledForReportingButNotEnforced"
VALID_STATES = ("enabled", "disabled", "enabledForReportingButNotEnforced")

# Server-managed properties never sent back to Graph
READ_ONLY_KEYS = ("id", "createdDateTime", "modifiedDateTime", "templateId", "@odata.context")

# Helper keys under conditions.users resolved to group IDs
GROUP_NAME_KEYS = {"includeGroupNames": "includeGroups", "excludeGroupNames": "excludeGroups"}


def _append_unique(values: list[str], additions: list[str]) -> list[str]:
    result = list(values)
    for value in additions:
        if value not in result:
            result.append(value)
    return result


class ConditionalAccessDeployer:
    """Create or update Conditional Access policies with break-glass exclusions."""

    KIND = "conditionalAccessPolicy"

    def __init__(
        self,
        graph: GraphClient,
        break_glass: list[str] | None = None,
        break_glass_groups: list[str] | None = None,
        dry_run: bool = False,
    ):
        """
        Args:
            graph: Graph client
            break_glass: Break-glass account object IDs or UPNs
            break_glass_groups: Break-glass group object IDs or display names
            dry_run: Build payloads and compare, but never write
        """
        self.graph = graph
        self.break_glass = list(break_glass or [])
        self.break_glass_groups = list(break_glass_groups or [])
        self.dry_run = dry_run
        self._resolved_users: list[str] | None = None
        self._resolved_groups: list[str] | None = None

    @property
    def has_break_glass(self) -> bool:
        return bool(self.break_glass or self.break_glass_groups)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _group_id(self, name_or_id: str) -> str:
        if is_object_id(name_or_id):
            return name_or_id
        matches = self.graph.find_by_display_name("/groups", name_or_id, select="id,displayName")
        if not matches:
            raise IdentityDeploymentError(f"Group not found: {name_or_id}")
        if len(matches) > 1:
            raise IdentityDeploymentError(f"Ambiguous group name '{name_or_id}'")
        return matches[0]["id"]

    def _user_id(self, upn_or_id: str) -> str:
        if is_object_id(upn_or_id):
            return upn_or_id
        user = self.graph.get_user(upn_or_id)
        if not user or not user.get("id"):
            raise IdentityDeploymentError(f"Break-glass account not found: {upn_or_id}")
        return user["id"]

    def break_glass_user_ids(self) -> list[str]:
        if self._resolved_users is None:
            self._resolved_users = [self._user_id(v) for v in self.break_glass]
        return self._resolved_users

    def break_glass_group_ids(self) -> list[str]:
        if self._resolved_groups is None:
            self._resolved_groups = [self._group_id(v) for v in self.break_glass_groups]
        return self._resolved_groups

    # ------------------------------------------------------------------
    # Payload
    # ------------------------------------------------------------------

    def build_payload(self, definition: dict[str, Any]) -> dict[str, Any]:
        """Desired policy body: defaults, resolved group names, break-glass exclusions.

        Raises:
            ValidationError: If the definition is malformed
            IdentityDeploymentError: If an enabled policy has no break-glass exclusion
                or a referenced principal cannot be resolved
        """
        payload = copy.deepcopy(definition)
        for key in READ_ONLY_KEYS:
            payload.pop(key, None)

        name = validate_display_name(payload.get("displayName"), "Conditional Access policy")
        payload.setdefault("state", DEFAULT_STATE)
        if payload["state"] not in VALID_STATES:
            raise ValidationError(
                f"Invalid state for policy '{name}': {payload['state']}. "
                f"Must be one of: {', '.join(VALID_STATES)}"
            )

        if payload["state"] == "enabled" and not self.has_break_glass:
            raise IdentityDeploymentError(
                f"Refusing to deploy enabled policy '{name}' without a break-glass exclusion. "
                "Configure break_glass_accounts or pass --break-glass"
            )

        conditions = payload.setdefault("conditions", {})
        if not isinstance(conditions, dict):
            raise ValidationError(f"Policy '{name}': conditions must be an object")
        users = conditions.setdefault("users", {})
        if not isinstance(users, dict):
            raise ValidationError(f"Policy '{name}': conditions.users must be an object")

        for helper_key, target_key in GROUP_NAME_KEYS.items():
            names = users.pop(helper_key, None)
            if names:
                users[target_key] = _append_unique(
                    users.get(target_key, []), [self._group_id(n) for n in names]
                )

        if self.break_glass:
            users["excludeUsers"] = _append_unique(
                users.get("excludeUsers", []), self.break_glass_user_ids()
            )
        if self.break_glass_groups:
            users["excludeGroups"] = _append_unique(
                users.get("excludeGroups", []), self.break_glass_group_ids()
            )
        return payload

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def find_policy(self, display_name: str) -> dict[str, Any] | None:
        matches = self.graph.find_by_display_name(POLICIES_PATH, display_name)
        if len(matches) > 1:
            raise IdentityDeploymentError(
                f"Ambiguous policy name '{display_name}': {len(matches)} policies match"
            )
        return matches[0] if matches else None

    def deploy(self, definition: dict[str, Any]) -> DeployResult:
        """Create the policy, or PATCH it when it differs from the definition."""
        payload = self.build_payload(definition)
        name = payload["displayName"]
        existing = self.find_policy(name)

        if existing is None:
            if self.dry_run:
                logger.info(f"[dry-run] Would create policy {name} ({payload['state']})")
                return DeployResult(self.KIND, name, None, DeployAction.PLANNED)
            created = self.graph.post(POLICIES_PATH, payload) or {}
            logger.info(f"Created policy {name} ({payload['state']})")
            return DeployResult(self.KIND, name, created.get("id"), DeployAction.CREATED)

        policy_id = existing.get("id")
        changes = differing_fields(payload, existing)
        if not changes:
            return DeployResult(self.KIND, name, policy_id, DeployAction.UNCHANGED)

        if self.dry_run:
            logger.info(f"[dry-run] Would update policy {name}: {', '.join(sorted(changes))}")
            return DeployResult(self.KIND, name, policy_id, DeployAction.PLANNED)

        self.graph.patch(f"{POLICIES_PATH}/{policy_id}", changes)
        logger.info(f"Updated policy {name}: {', '.join(sorted(changes))}")
        return DeployResult(self.KIND, name, policy_id, DeployAction.UPDATED)

    def deploy_many(self, definitions: list[dict[str, Any]]) -> list[DeployResult]:
        """Deploy each policy; a failure is recorded and the rest continue."""
        results = []
        for definition in definitions:
            name = str(definition.get("displayName", "<unnamed>"))
            try:
                results.append(self.deploy(definition))
            except (IdentityDeploymentError, ValidationError, GraphError) as e:
                logger.error(f"Failed to deploy policy {name}: {e}")
                results.append(DeployResult(self.KIND, name, None, DeployAction.FAILED, str(e)))
        return results


__all__ = ["DEFAULT_STATE", "ConditionalAccessDeployer", "POLICIES_PATH"]
