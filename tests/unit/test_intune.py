"""Tests for Intune compliance and configuration deployment."""

import pytest

from alzctl.intune import (
    COMPLIANCE_PATH,
    CONFIGURATION_PATH,
    IntuneDeployer,
    IntuneDeploymentError,
)
from alzctl.identity.models import DeployAction
from alzctl.modules.validation import ValidationError

POLICY_ID = "77777777-7777-7777-7777-777777777777"
GROUP_ID = "88888888-8888-8888-8888-888888888888"


def windows_compliance(**overrides):
    policy = {
        "@odata.type": "#microsoft.graph.windows10CompliancePolicy",
        "displayName": "ALZ - Windows baseline",
        "bitLockerEnabled": True,
        "secureBootEnabled": True,
        "osMinimumVersion": "10.0.19045",
    }
    policy.update(overrides)
    return policy


class TestDeploy:
    def test_compliance_created_with_default_actions(self, mock_graph):
        result = IntuneDeployer(mock_graph).deploy(windows_compliance(), compliance=True)

        assert result.action == DeployAction.CREATED
        path, body = mock_graph.post.call_args.args
        assert path == COMPLIANCE_PATH
        action = body["scheduledActionsForRule"][0]["scheduledActionConfigurations"][0]
        assert action["actionType"] == "block"
        assert action["gracePeriodHours"] == 0

    def test_configuration_has_no_scheduled_actions(self, mock_graph):
        profile = {
            "@odata.type": "#microsoft.graph.windows10GeneralConfiguration",
            "displayName": "ALZ - Windows restrictions",
            "passwordRequired": True,
        }

        IntuneDeployer(mock_graph).deploy(profile, compliance=False)

        path, body = mock_graph.post.call_args.args
        assert path == CONFIGURATION_PATH
        assert "scheduledActionsForRule" not in body

    def test_beta_endpoint(self, mock_graph):
        IntuneDeployer(mock_graph, beta=True).deploy(windows_compliance(), compliance=True)

        assert mock_graph.find_by_display_name.call_args.kwargs["beta"] is True
        assert mock_graph.post.call_args.kwargs["beta"] is True

    def test_update_strips_scheduled_actions(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [
            windows_compliance(id=POLICY_ID, bitLockerEnabled=False)
        ]

        result = IntuneDeployer(mock_graph).deploy(windows_compliance(), compliance=True)

        assert result.action == DeployAction.UPDATED
        path, body = mock_graph.patch.call_args.args
        assert path == f"{COMPLIANCE_PATH}/{POLICY_ID}"
        assert body == {
            "bitLockerEnabled": True,
            "@odata.type": "#microsoft.graph.windows10CompliancePolicy",
        }

    def test_unchanged(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [windows_compliance(id=POLICY_ID)]

        result = IntuneDeployer(mock_graph).deploy(windows_compliance(), compliance=True)

        assert result.action == DeployAction.UNCHANGED
        mock_graph.patch.assert_not_called()
        mock_graph.post.assert_not_called()

    def test_assignments_posted(self, mock_graph):
        mock_graph.find_by_display_name.side_effect = [[], [{"id": GROUP_ID}]]
        mock_graph.post.side_effect = [{"id": POLICY_ID}, None]

        IntuneDeployer(mock_graph).deploy(
            windows_compliance(assignments=["allDevices", "sg-alz-devices"]), compliance=True
        )

        path, body = mock_graph.post.call_args.args
        assert path == f"{COMPLIANCE_PATH}/{POLICY_ID}/assign"
        assert body == {
            "assignments": [
                {"target": {"@odata.type": "#microsoft.graph.allDevicesAssignmentTarget"}},
                {
                    "target": {
                        "@odata.type": "#microsoft.graph.groupAssignmentTarget",
                        "groupId": GROUP_ID,
                    }
                },
            ]
        }

    def test_missing_odata_type(self, mock_graph):
        definition = windows_compliance()
        del definition["@odata.type"]

        with pytest.raises(ValidationError, match="@odata.type"):
            IntuneDeployer(mock_graph).deploy(definition, compliance=True)

    def test_unknown_assignment_group(self, mock_graph):
        mock_graph.find_by_display_name.side_effect = [[{"id": POLICY_ID, **windows_compliance()}], []]

        with pytest.raises(IntuneDeploymentError, match="Assignment group not found"):
            IntuneDeployer(mock_graph).deploy(
                windows_compliance(assignments=["sg-missing"]), compliance=True
            )

    def test_ambiguous_policy(self, mock_graph):
        mock_graph.find_by_display_name.return_value = [{"id": "1"}, {"id": "2"}]

        with pytest.raises(IntuneDeploymentError, match="Ambiguous"):
            IntuneDeployer(mock_graph).deploy(windows_compliance(), compliance=True)


def test_deploy_configurations_records_failures(mock_graph):
    results = IntuneDeployer(mock_graph).deploy_configurations(
        [{"displayName": "no type"}, {"@odata.type": "#microsoft.graph.iosGeneralDeviceConfiguration", "displayName": "ALZ - iOS"}]
    )

    assert [r.action for r in results] == [DeployAction.FAILED, DeployAction.CREATED]
    assert results[1].kind == "configurationProfile"
