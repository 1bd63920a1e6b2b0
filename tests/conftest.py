"""
Shared test fixtures for alzctl tests.

This module provides common fixtures used across all test types:
- Fake az executors that record commands
- Deployment parameters
- Mock Graph clients and credentials
"""

import subprocess
from unittest.mock import Mock

import pytest

from alzctl.deployment_config import DeploymentParameters
from alzctl.modules.progress import ProgressDisplay

# ============================================================================
# AZ CLI FIXTURES
# ============================================================================


class FakeAz:
    """Records az commands and answers them from a list of (match, result) rules.

    A rule matches when every token of ``match`` appears in the command in
    order. Results may be a string (stdout), an exception instance (raised)
    or a callable taking the command.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self.rules: list[tuple[list[str], object]] = []

    def on(self, match: str, result: object) -> "FakeAz":
        self.rules.append((match.split(), result))
        return self

    def __call__(self, cmd, timeout=30, **kwargs):
        self.calls.append(list(cmd))
        for tokens, result in self.rules:
            if _contains_in_order(cmd, tokens):
                if isinstance(result, BaseException):
                    raise result
                if callable(result):
                    result = result(cmd)
                return subprocess.CompletedProcess(cmd, 0, stdout=result or "", stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def commands(self, *prefix: str) -> list[list[str]]:
        """Recorded commands starting with ``az <prefix...>``."""
        return [c for c in self.calls if c[1 : 1 + len(prefix)] == list(prefix)]


def _contains_in_order(cmd: list[str], tokens: list[str]) -> bool:
    position = 0
    for token in tokens:
        try:
            position = cmd.index(token, position) + 1
        except ValueError:
            return False
    return True


@pytest.fixture
def fake_az():
    return FakeAz()


@pytest.fixture
def called_process_error():
    def make(stderr: str = "ERROR: (Conflict) Something went wrong", cmd=None):
        return subprocess.CalledProcessError(1, cmd or ["az"], output="", stderr=stderr)

    return make


# ============================================================================
# DEPLOYMENT FIXTURES
# ============================================================================


@pytest.fixture
def small_params():
    """Two spokes, one VM per spoke, no VPN, no provisioning wait."""
    return DeploymentParameters(
        environment="dev",
        location="eastus",
        spoke_count=2,
        deploy_vpn=False,
        deploy_bastion=True,
        vm_count_spoke1=1,
        vm_count_spoke2=1,
        provision_wait_seconds=0,
    )


@pytest.fixture
def quiet_progress():
    return ProgressDisplay(quiet=True)


# ============================================================================
# GRAPH FIXTURES
# ============================================================================


@pytest.fixture
def mock_credential():
    """Credential returning a token valid far into the future."""
    credential = Mock()
    credential.get_token.return_value = Mock(
        token="fake-graph-token-12345",  # noqa: S106 - test fixture, not a real credential
        expires_on=9999999999,
    )
    return credential


@pytest.fixture
def mock_graph():
    """GraphClient stand-in with nothing in the tenant."""
    graph = Mock()
    graph.find_by_display_name.return_value = []
    graph.list_all.return_value = []
    graph.get_user.return_value = None
    graph.post.return_value = {"id": "00000000-0000-0000-0000-0000000000aa"}
    graph.patch.return_value = None
    return graph
