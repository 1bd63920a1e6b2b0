"""Tests for drift detection between definitions and Graph objects."""

from alzctl.identity.models import DeployAction, DeployResult, differing_fields


class TestDifferingFields:
    def test_identical(self):
        assert differing_fields({"state": "enabled"}, {"state": "enabled", "id": "x"}) == {}

    def test_changed_scalar(self):
        assert differing_fields({"state": "enabled"}, {"state": "disabled"}) == {"state": "enabled"}

    def test_nested_server_defaults_ignored(self):
        desired = {"conditions": {"users": {"includeUsers": ["All"]}}}
        existing = {
            "conditions": {
                "users": {"includeUsers": ["All"], "includeRoles": []},
                "platforms": None,
            }
        }
        assert differing_fields(desired, existing) == {}

    def test_nested_change_returns_whole_key(self):
        desired = {"conditions": {"users": {"excludeUsers": ["a", "b"]}}}
        existing = {"conditions": {"users": {"excludeUsers": ["a"]}, "clientAppTypes": ["all"]}}
        assert differing_fields(desired, existing) == desired

    def test_scalar_lists_compared_unordered(self):
        assert differing_fields({"builtInControls": ["mfa", "compliantDevice"]}, {
            "builtInControls": ["compliantDevice", "mfa"]
        }) == {}

    def test_missing_key_is_a_change(self):
        assert differing_fields({"description": "x"}, {}) == {"description": "x"}


def test_deploy_result_ok():
    assert DeployResult("group", "g", "1", DeployAction.UNCHANGED).ok
    assert not DeployResult("group", "g", None, DeployAction.FAILED, "boom").ok
