"""Tests for deployment parameter loading and merging."""

import pytest

from alzctl.deployment_config import (
    DEFAULT_MANAGED_BY,
    DeploymentParameters,
    load_parameter_file,
    resolve_config_file,
)
from alzctl.modules.validation import ValidationError


class TestDeploymentParameters:
    def test_defaults_match_local_script(self):
        params = DeploymentParameters()
        assert (params.environment, params.location, params.spoke_count) == ("prod", "eastus", 3)
        assert params.deploy_vpn is False
        assert params.deploy_bastion is True
        assert (params.vm_count_spoke1, params.vm_count_spoke2) == (4, 2)
        assert params.total_vms == 6

    def test_tags(self):
        assert DeploymentParameters(environment="dev").tags() == {
            "Environment": "dev",
            "ManagedBy": DEFAULT_MANAGED_BY,
        }

    def test_validate_collects_errors(self):
        params = DeploymentParameters(environment="qa", spoke_count=7)
        with pytest.raises(ValidationError) as exc_info:
            params.validate("Sup3rSecret!Pass")
        assert exc_info.value.errors[0].startswith("Invalid environment: qa")
        assert len(exc_info.value.errors) == 2

    def test_validate_rejects_unsafe_admin_username(self):
        params = DeploymentParameters(admin_username="admin;reboot")
        with pytest.raises(ValidationError) as exc_info:
            params.validate("Sup3rSecret!Pass")
        assert "Admin username" in exc_info.value.errors[0]


class TestFromSources:
    def test_later_sources_win(self):
        params = DeploymentParameters.from_sources(
            {"environment": "dev", "location": "westus"},
            {"location": "westeurope", "spoke_count": 2},
            {"spoke_count": "4"},
        )
        assert params.environment == "dev"
        assert params.location == "westeurope"
        assert params.spoke_count == 4

    def test_none_values_ignored(self):
        params = DeploymentParameters.from_sources({"environment": "dev"}, None, {"environment": None})
        assert params.environment == "dev"

    def test_string_booleans_coerced(self):
        params = DeploymentParameters.from_sources(overrides={"deploy_vpn": "true", "deploy_bastion": "false"})
        assert params.deploy_vpn is True
        assert params.deploy_bastion is False

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError, match="Unknown deployment parameter"):
            DeploymentParameters.from_sources(file_values={"spokes": 3})

    def test_bad_types_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            DeploymentParameters.from_sources(overrides={"spoke_count": "three", "deploy_vpn": "maybe"})
        assert len(exc_info.value.errors) == 2

    def test_fractional_count_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            DeploymentParameters.from_sources(file_values={"spoke_count": 2.7})
        assert exc_info.value.errors == ["Invalid spoke_count: 2.7. Must be an integer"]

    def test_whole_float_accepted(self):
        params = DeploymentParameters.from_sources(file_values={"spoke_count": 3.0})
        assert params.spoke_count == 3


class TestParameterFiles:
    def test_explicit_missing_file_is_error(self, tmp_path):
        with pytest.raises(ValidationError, match="Config file not found"):
            resolve_config_file(str(tmp_path / "missing.yaml"))

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "dev.yaml"
        path.write_text("environment: dev\n")
        monkeypatch.setenv("ALZ_CONFIG_FILE", str(path))
        assert resolve_config_file() == path

    def test_default_file_optional(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("ALZ_CONFIG_FILE", raising=False)
        assert resolve_config_file() is None

        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "default.yaml").write_text("spoke_count: 2\n")
        assert resolve_config_file() is not None

    def test_load_nested_deployment_key(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text("deployment:\n  environment: staging\n  vm_count_spoke1: 0\n")
        assert load_parameter_file(path) == {"environment": "staging", "vm_count_spoke1": 0}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_parameter_file(path) == {}

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValidationError, match="must contain a mapping"):
            load_parameter_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("environment: [unclosed\n")
        with pytest.raises(ValidationError, match="Failed to parse"):
            load_parameter_file(path)
