"""Tests for LogSanitizer."""

from alzctl.log_sanitizer import LogSanitizer


class TestSanitize:
    def test_client_secret_redacted(self):
        assert LogSanitizer.sanitize("client_secret=abc123") == "client_secret=[REDACTED]"

    def test_admin_password_flag_redacted(self):
        result = LogSanitizer.sanitize("az vm create --admin-password Hunter2Hunter2")
        assert "Hunter2Hunter2" not in result
        assert result.endswith("--admin-password [REDACTED]")

    def test_env_password_redacted(self):
        result = LogSanitizer.sanitize("VM_ADMIN_PASSWORD=Sup3rSecret!Pass")
        assert "Sup3rSecret" not in result

    def test_bearer_token_redacted(self):
        token = "eyJ0eXAiOiJKV1QiLCJhbGciOiJSUzI1NiJ9.payload.signature"
        result = LogSanitizer.sanitize(f"Authorization: Bearer {token}")
        assert token not in result

    def test_plain_text_unchanged(self):
        message = "Created resource group rg-hub-networking-prod-eastus-001"
        assert LogSanitizer.sanitize(message) == message

    def test_non_string_input(self):
        assert LogSanitizer.sanitize(42) == "42"


class TestSanitizeCommand:
    def test_masks_value_after_secret_flag(self):
        cmd = ["az", "vm", "create", "-n", "vm1", "--admin-password", "x"]
        assert LogSanitizer.sanitize_command(cmd) == (
            "az vm create -n vm1 --admin-password [REDACTED]"
        )

    def test_empty_password_value_masked(self):
        cmd = ["az", "vm", "create", "--admin-password", "", "--nsg", ""]
        assert "--admin-password [REDACTED] --nsg" in LogSanitizer.sanitize_command(cmd)

    def test_command_without_secrets(self):
        cmd = ["az", "group", "show", "-n", "rg"]
        assert LogSanitizer.sanitize_command(cmd) == "az group show -n rg"


class TestSanitizeDict:
    def test_sensitive_keys_replaced(self):
        data = {"name": "sp", "client_secret": "abc", "nested": {"access_token": "tok"}}

        result = LogSanitizer.sanitize_dict(data)

        assert result["name"] == "sp"
        assert result["client_secret"] == "[REDACTED]"
        assert result["nested"]["access_token"] == "[REDACTED]"

    def test_list_values_sanitized(self):
        result = LogSanitizer.sanitize_dict({"args": ["password=hunter2", 3]})
        assert result["args"] == ["password=[REDACTED]", 3]

    def test_create_safe_error_message(self):
        error = ValueError("Auth failed with client_secret=abc123")
        assert LogSanitizer.create_safe_error_message(error, "Authentication") == (
            "Authentication: Auth failed with client_secret=[REDACTED]"
        )
