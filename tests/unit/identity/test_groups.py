"""Tests for Entra ID security group deployment."""

import pytest

from alzctl.graph_client import GraphError
from alzctl.identity.groups import (
    EntraGroupDeployer,
    GroupDefinition,
    is_object_id,
    mail_nickname,
)
from alzctl.identity.models import DeployAction, IdentityDeploymentError
from alzctl.modules.validation import ValidationError

GROUP_ID = "00000000-0000-0000-0000-0000000000aa"
USER_ID = "11111111-1111-1111-1111-111111111111"


class TestMailNickname:
    def test_strips_non_alphanumerics(self):
        assert mail_nickname("SG - ALZ Platform Admins") == "SGALZPlatformAdmins"

    def test_truncated(self):
        assert len(mail_nickname("a" * 100)) == 64

    def test_fallback_for_non_ascii(self):
        nickname = mail_nickname("Администраторы")
        assert nickname.startswith("group")
        assert len(nickname) == 13
        assert nickname != mail_nickname("Читатели")


class TestGroupDefinition:
    def test_from_dict(self):
        definition = GroupDefinition.from_dict(
            {
                "displayName": "sg-alz-platform-admins",
                "description": "Platform admins",
                "isAssignableToRole": True,
                "members": ["admin@contoso.com"],
            }
        )

        payload = definition.create_payload()
        assert payload == {
            "displayName": "sg-alz-platform-admins",
            "mailEnabled": False,
            "securityEnabled": True,
            "mailNickname": "sgalzplatformadmins",
            "description": "Platform admins",
            "isAssignableToRole": True,
        }
        assert definition.members == ["admin@contoso.com"]

    def test_missing_display_name(self):
        with pytest.raises(ValidationError, match="displayName"):
            GroupDefinition.from_dict({"description": "nameless"})


def test_is_object_id():
    assert is_object_id(USER_ID)
    assert not is_object_id("admin@contoso.com")


class TestDeploy:
    def test_creates_missing_group(self, mock_graph):
        result = EntraGroupDeployer(mock_graph).deploy(GroupDefinition("sg-alz-readers"))

        assert result.action == DeployAction.CREATED
        assert result.id == GROUP_ID
        path, body = mock_graph.post.call_args.args
        assert path == "/groups"
        assert body["mailNickname"] == "sgalzreaders"

    def test_existing_group_unchanged(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [
            {"id": GROUP_ID, "displayName": "sg-alz-readers", "description": "Readers"}
        ]

        result = EntraGroupDeployer(mock_graph).deploy(
            GroupDefinition("sg-alz-readers", description="Readers")
        )

        assert result.action == DeployAction.UNCHANGED
        mock_graph.post.assert_not_called()
        mock_graph.patch.assert_not_called()

    def test_description_drift_patched(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [{"id": GROUP_ID, "description": "old"}]

        result = EntraGroupDeployer(mock_graph).deploy(GroupDefinition("sg-alz-readers", description="new"))

        assert result.action == DeployAction.UPDATED
        mock_graph.patch.assert_called_once_with(f"/groups/{GROUP_ID}", {"description": "new"})

    def test_unset_description_left_alone(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [
            {"id": GROUP_ID, "description": "Owned by platform team"}
        ]

        result = EntraGroupDeployer(mock_graph).deploy(
            GroupDefinition.from_dict({"displayName": "sg-alz-readers"})
        )

        assert result.action == DeployAction.UNCHANGED
        mock_graph.patch.assert_not_called()

    def test_unset_description_not_in_create_payload(self):
        definition = GroupDefinition.from_dict({"displayName": "sg-alz-readers"})

        assert definition.description is None
        assert "description" not in definition.create_payload()

    def test_role_assignable_mismatch_is_warning(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [{"id": GROUP_ID, "isAssignableToRole": False}]

        result = EntraGroupDeployer(mock_graph).deploy(
            GroupDefinition("sg-alz-admins", is_assignable_to_role=True)
        )

        assert result.ok
        assert "cannot be changed" in result.warnings[0]

    def test_ambiguous_name(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [{"id": "1"}, {"id": "2"}]

        with pytest.raises(IdentityDeploymentError, match="Ambiguous"):
            EntraGroupDeployer(mock_graph).deploy(GroupDefinition("sg-dup"))

    def test_missing_members_added(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [{"id": GROUP_ID}]
        mock_graph.get_user.return_value = {"id": USER_ID}
        mock_graph.list_all.return_value = [{"id": "22222222-2222-2222-2222-222222222222"}]

        result = EntraGroupDeployer(mock_graph).deploy(
            GroupDefinition("sg-alz-readers", members=["reader@contoso.com"])
        )

        assert result.action == DeployAction.UPDATED
        mock_graph.post.assert_called_once_with(
            f"/groups/{GROUP_ID}/members/$ref",
            {"@odata.id": f"https://graph.microsoft.com/v1.0/directoryObjects/{USER_ID}"},
        )

    def test_existing_members_skipped(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [{"id": GROUP_ID}]
        mock_graph.list_all.return_value = [{"id": USER_ID}]

        result = EntraGroupDeployer(mock_graph).deploy(GroupDefinition("sg-alz-readers", owners=[USER_ID]))

        assert result.action == DeployAction.UNCHANGED
        mock_graph.post.assert_not_called()
        mock_graph.get_user.assert_not_called()

    def test_unknown_member(self, mock_graph):
        with pytest.raises(IdentityDeploymentError, match="User not found"):
            EntraGroupDeployer(mock_graph).deploy(GroupDefinition("sg-x", members=["ghost@contoso.com"]))


class TestDeployMany:
    def test_failure_does_not_stop_others(self, mock_graph):
        mock_graph.post.side_effect = [GraphError("POST /groups returned 403", status_code=403), {"id": GROUP_ID}]

        results = EntraGroupDeployer(mock_graph).deploy_many(
            [GroupDefinition("sg-first"), GroupDefinition("sg-second")]
        )

        assert [r.action for r in results] == [DeployAction.FAILED, DeployAction.CREATED]
        assert "403" in results[0].error
