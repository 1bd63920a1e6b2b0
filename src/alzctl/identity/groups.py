"""Idempotent Entra ID security group deployment.

Groups are matched by displayName. A name that matches more than one group
is an error: picking one would silently manage the wrong object.
"""

import hashlib
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any

from alzctl.graph_client import GraphClient, GraphError
from alzctl.identity.models import DeployAction, DeployResult, IdentityDeploymentError
from alzctl.modules.validation import ValidationError, validate_display_name

logger = logging.getLogger(__name__)

MAIL_NICKNAME_MAX_LENGTH = 64
DIRECTORY_OBJECT_URL = "https://graph.microsoft.com/v1.0/directoryObjects/{}"


def mail_nickname(display_name: str) -> str:
    """Derive a mailNickname: ASCII alphanumerics only, at most 64 characters.

    Example:
        >>> mail_nickname("SG - ALZ Platform Admins")
        'SGALZPlatformAdmins'
    """
    nickname = re.sub(r"[^A-Za-z0-9]", "", display_name)[:MAIL_NICKNAME_MAX_LENGTH]
    if nickname:
        return nickname
    digest = hashlib.sha256(display_name.encode("utf-8")).hexdigest()[:8]
    return f"group{digest}"


def is_object_id(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


@dataclass
class GroupDefinition:
    """Desired state of a security group."""

    display_name: str
    description: str | None = None
    is_assignable_to_role: bool = False
    mail_nickname: str | None = None
    members: list[str] = field(default_factory=list)
    owners: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupDefinition":
        """Build from a definition file entry (Graph-style camelCase keys).

        Raises:
            ValidationError: If displayName is missing or invalid
        """
        name = data.get("displayName")
        if not isinstance(name, str):
            raise ValidationError("Group definition is missing displayName")
        validate_display_name(name, "Group")
        return cls(
            display_name=name,
            description=data.get("description"),
            is_assignable_to_role=bool(data.get("isAssignableToRole", False)),
            mail_nickname=data.get("mailNickname"),
            members=list(data.get("members", []) or []),
            owners=list(data.get("owners", []) or []),
        )

    def create_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "displayName": self.display_name,
            "mailEnabled": False,
            "securityEnabled": True,
            "mailNickname": self.mail_nickname or mail_nickname(self.display_name),
        }
        if self.description:
            payload["description"] = self.description
        if self.is_assignable_to_role:
            payload["isAssignableToRole"] = True
        return payload


class EntraGroupDeployer:
    """Create or update security groups through Microsoft Graph."""

    KIND = "group"

    def __init__(self, graph: GraphClient):
        self.graph = graph

    def find_group(self, display_name: str) -> dict[str, Any] | None:
        """Return the single group with this display name, or None.

        Raises:
            IdentityDeploymentError: If the name is ambiguous
        """
        matches = self.graph.find_by_display_name(
            "/groups",
            display_name,
            select="id,displayName,description,isAssignableToRole,securityEnabled",
        )
        if len(matches) > 1:
            ids = ", ".join(m.get("id", "?") for m in matches)
            raise IdentityDeploymentError(
                f"Ambiguous group name '{display_name}': {len(matches)} groups match ({ids})"
            )
        return matches[0] if matches else None

    def resolve_principal(self, value: str) -> str:
        """Object ID for a UPN or object ID.

        Raises:
            IdentityDeploymentError: If the principal does not exist
        """
        if is_object_id(value):
            return value
        user = self.graph.get_user(value)
        if not user or not user.get("id"):
            raise IdentityDeploymentError(f"User not found: {value}")
        return user["id"]

    def _ensure_links(self, group_id: str, relation: str, principals: list[str]) -> int:
        if not principals:
            return 0
        existing = {
            item.get("id")
            for item in self.graph.list_all(f"/groups/{group_id}/{relation}", params={"$select": "id"})
        }
        added = 0
        for principal in principals:
            object_id = self.resolve_principal(principal)
            if object_id in existing:
                continue
            self.graph.post(
                f"/groups/{group_id}/{relation}/$ref",
                {"@odata.id": DIRECTORY_OBJECT_URL.format(object_id)},
            )
            logger.info(f"Added {principal} to {relation} of group {group_id}")
            added += 1
        return added

    def deploy(self, definition: GroupDefinition) -> DeployResult:
        """Create the group when missing, otherwise bring it in line.

        Raises:
            IdentityDeploymentError: On ambiguous names or unknown members
            GraphError: If Graph rejects a request
        """
        existing = self.find_group(definition.display_name)
        warnings: list[str] = []

        if existing is None:
            created = self.graph.post("/groups", definition.create_payload()) or {}
            group_id = created.get("id")
            if not group_id:
                raise IdentityDeploymentError(
                    f"Graph returned no id for group '{definition.display_name}'"
                )
            logger.info(f"Created group {definition.display_name} ({group_id})")
            action = DeployAction.CREATED
        else:
            group_id = existing["id"]
            action = DeployAction.UNCHANGED
            if definition.description is not None and (
                (existing.get("description") or "") != definition.description
            ):
                self.graph.patch(f"/groups/{group_id}", {"description": definition.description})
                logger.info(f"Updated description of group {definition.display_name}")
                action = DeployAction.UPDATED
            if bool(existing.get("isAssignableToRole")) != definition.is_assignable_to_role:
                # isAssignableToRole can only be set at creation time
                warnings.append(
                    f"isAssignableToRole is {bool(existing.get('isAssignableToRole'))} on the "
                    f"existing group and cannot be changed"
                )
                logger.warning(f"Group {definition.display_name}: {warnings[-1]}")

        changed = self._ensure_links(group_id, "members", definition.members)
        changed += self._ensure_links(group_id, "owners", definition.owners)
        if changed and action == DeployAction.UNCHANGED:
            action = DeployAction.UPDATED

        return DeployResult(
            kind=self.KIND,
            display_name=definition.display_name,
            id=group_id,
            action=action,
            warnings=warnings or None,
        )

    def deploy_many(self, definitions: list[GroupDefinition]) -> list[DeployResult]:
        """Deploy each group; a failure is recorded and the rest continue."""
        results = []
        for definition in definitions:
            try:
                results.append(self.deploy(definition))
            except (IdentityDeploymentError, GraphError) as e:
                logger.error(f"Failed to deploy group {definition.display_name}: {e}")
                results.append(
                    DeployResult(self.KIND, definition.display_name, None, DeployAction.FAILED, str(e))
                )
        return results


__all__ = ["EntraGroupDeployer", "GroupDefinition", "is_object_id", "mail_nickname"]
