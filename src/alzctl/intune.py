"""Idempotent Intune compliance policy and configuration profile deployment."""

import copy
import logging
from typing import Any

from alzctl.graph_client import GraphClient, GraphError
from alzctl.identity.groups import is_object_id
from alzctl.identity.models import DeployAction, DeployResult, differing_fields
from alzctl.modules.validation import ValidationError, validate_display_name

logger = logging.getLogger(__name__)

COMPLIANCE_PATH = "/deviceManagement/deviceCompliancePolicies"
CONFIGURATION_PATH = "/deviceManagement/deviceConfigurations"

ALL_DEVICES = "allDevices"
ALL_LICENSED_USERS = "allLicensedUsers"

READ_ONLY_KEYS = ("id", "createdDateTime", "lastModifiedDateTime", "version", "@odata.context")

DEFAULT_SCHEDULED_ACTIONS = [
    {
        "ruleName": "PasswordRequired",
        "scheduledActionConfigurations": [
            {
                "actionType": "block",
                "gracePeriodHours": 0,
                "notificationTemplateId": "",
                "notificationMessageCCList": [],
            }
        ],
    }
]


class IntuneDeploymentError(Exception):
    """Raised when an Intune definition cannot be deployed."""

    pass


def _assignment_target(group_id: str | None, special: str | None = None) -> dict[str, Any]:
    if special == ALL_DEVICES:
        return {"@odata.type": "#microsoft.graph.allDevicesAssignmentTarget"}
    if special == ALL_LICENSED_USERS:
        return {"@odata.type": "#microsoft.graph.allLicensedUsersAssignmentTarget"}
    return {"@odata.type": "#microsoft.graph.groupAssignmentTarget", "groupId": group_id}


class IntuneDeployer:
    """Deploy compliance policies and configuration profiles by displayName."""

    def __init__(self, graph: GraphClient, beta: bool = False):
        self.graph = graph
        self.beta = beta

    def _group_id(self, name_or_id: str) -> str:
        if is_object_id(name_or_id):
            return name_or_id
        matches = self.graph.find_by_display_name("/groups", name_or_id, select="id,displayName")
        if not matches:
            raise IntuneDeploymentError(f"Assignment group not found: {name_or_id}")
        if len(matches) > 1:
            raise IntuneDeploymentError(f"Ambiguous assignment group '{name_or_id}'")
        return matches[0]["id"]

    def build_assignments(self, targets: list[str]) -> list[dict[str, Any]]:
        """Assignment objects for group names or IDs, allDevices or allLicensedUsers."""
        assignments = []
        for target in targets:
            if target in (ALL_DEVICES, ALL_LICENSED_USERS):
                assignment_target = _assignment_target(None, target)
            else:
                assignment_target = _assignment_target(self._group_id(target))
            assignments.append({"target": assignment_target})
        return assignments

    def _prepare(self, definition: dict[str, Any], compliance: bool) -> tuple[dict[str, Any], list[str]]:
        payload = copy.deepcopy(definition)
        for key in READ_ONLY_KEYS:
            payload.pop(key, None)
        name = validate_display_name(payload.get("displayName"), "Intune policy")
        if not payload.get("@odata.type"):
            raise ValidationError(f"Intune definition '{name}' is missing @odata.type")

        targets = payload.pop("assignments", None) or []
        if not isinstance(targets, list) or not all(isinstance(t, str) for t in targets):
            raise ValidationError(
                f"Intune definition '{name}': assignments must be a list of group names, "
                f"'{ALL_DEVICES}' or '{ALL_LICENSED_USERS}'"
            )
        if compliance:
            payload.setdefault("scheduledActionsForRule", copy.deepcopy(DEFAULT_SCHEDULED_ACTIONS))
        return payload, targets

    def deploy(self, definition: dict[str, Any], compliance: bool) -> DeployResult:
        """Create or update one policy and apply its assignments.

        Raises:
            ValidationError: If the definition is malformed
            IntuneDeploymentError: If an assignment group cannot be resolved
            GraphError: If Graph rejects a request
        """
        path = COMPLIANCE_PATH if compliance else CONFIGURATION_PATH
        kind = "compliancePolicy" if compliance else "configurationProfile"
        payload, targets = self._prepare(definition, compliance)
        name = payload["displayName"]

        matches = self.graph.find_by_display_name(path, name, beta=self.beta)
        if len(matches) > 1:
            raise IntuneDeploymentError(f"Ambiguous {kind} name '{name}': {len(matches)} match")

        if not matches:
            created = self.graph.post(path, payload, beta=self.beta) or {}
            policy_id = created.get("id")
            action = DeployAction.CREATED
            logger.info(f"Created {kind} {name}")
        else:
            existing = matches[0]
            policy_id = existing.get("id")
            # scheduledActionsForRule is create-only; Graph rejects it on PATCH
            update = {k: v for k, v in payload.items() if k != "scheduledActionsForRule"}
            changes = differing_fields(update, existing)
            changes.pop("@odata.type", None)
            if changes:
                changes["@odata.type"] = payload["@odata.type"]
                self.graph.patch(f"{path}/{policy_id}", changes, beta=self.beta)
                action = DeployAction.UPDATED
                logger.info(f"Updated {kind} {name}")
            else:
                action = DeployAction.UNCHANGED

        if targets:
            if not policy_id:
                raise IntuneDeploymentError(f"Graph returned no id for {kind} '{name}'")
            self.graph.post(
                f"{path}/{policy_id}/assign",
                {"assignments": self.build_assignments(targets)},
                beta=self.beta,
            )
            logger.info(f"Assigned {kind} {name} to {', '.join(targets)}")

        return DeployResult(kind, name, policy_id, action)

    def deploy_compliance(self, definitions: list[dict[str, Any]]) -> list[DeployResult]:
        return self._deploy_many(definitions, compliance=True)

    def deploy_configurations(self, definitions: list[dict[str, Any]]) -> list[DeployResult]:
        return self._deploy_many(definitions, compliance=False)

    def _deploy_many(self, definitions: list[dict[str, Any]], compliance: bool) -> list[DeployResult]:
        kind = "compliancePolicy" if compliance else "configurationProfile"
        results = []
        for definition in definitions:
            name = str(definition.get("displayName", "<unnamed>"))
            try:
                results.append(self.deploy(definition, compliance))
            except (IntuneDeploymentError, ValidationError, GraphError) as e:
                logger.error(f"Failed to deploy {kind} {name}: {e}")
                results.append(DeployResult(kind, name, None, DeployAction.FAILED, str(e)))
        return results


__all__ = [
    "COMPLIANCE_PATH",
    "CONFIGURATION_PATH",
    "IntuneDeployer",
    "IntuneDeploymentError",
]
