"""Tests for tag-based landing-zone teardown."""

import json
from unittest.mock import Mock

import pytest

from alzctl.destroyer import DestroyError, LandingZoneDestroyer

GROUPS = [
    {"name": "rg-hub-networking-dev-eastus-001", "location": "eastus", "tags": {"ManagedBy": "ALZ-v3-Local"}},
    {"name": "rg-spoke1-dev-eastus-001", "location": "eastus", "tags": {"ManagedBy": "ALZ-v3-Pipeline"}},
    {"name": "rg-spoke1-prod-westus-001", "location": "westus", "tags": {"ManagedBy": "ALZ-v3-Local"}},
    {"name": "rg-unrelated", "location": "eastus", "tags": {"ManagedBy": "someone-else"}},
    {"name": "rg-untagged", "location": "eastus", "tags": None},
]


@pytest.fixture
def subscription(fake_az):
    fake_az.on("az group list", json.dumps(GROUPS))
    return fake_az


def make_destroyer(fake_az, **kwargs):
    kwargs.setdefault("sleep", Mock())
    return LandingZoneDestroyer(executor=fake_az, poll_interval=30, max_wait=90, **kwargs)


class TestFindResourceGroups:
    def test_matches_managed_by_tag(self, subscription):
        assert make_destroyer(subscription).find_resource_groups() == [
            "rg-hub-networking-dev-eastus-001",
            "rg-spoke1-dev-eastus-001",
            "rg-spoke1-prod-westus-001",
        ]

    def test_narrow_by_environment_and_location(self, subscription):
        destroyer = make_destroyer(subscription)

        assert destroyer.find_resource_groups("dev") == [
            "rg-hub-networking-dev-eastus-001",
            "rg-spoke1-dev-eastus-001",
        ]
        assert destroyer.find_resource_groups(location="westus") == ["rg-spoke1-prod-westus-001"]

    def test_custom_managed_by_values(self, subscription):
        destroyer = make_destroyer(subscription, managed_by_values=("someone-else",))
        assert destroyer.find_resource_groups() == ["rg-unrelated"]

    def test_list_failure(self, fake_az, called_process_error):
        fake_az.on("az group list", called_process_error())

        with pytest.raises(DestroyError, match="Failed to list"):
            make_destroyer(fake_az).find_resource_groups()


class TestDestroy:
    def test_nothing_to_delete(self, fake_az):
        fake_az.on("az group list", "[]")

        summary = make_destroyer(fake_az).destroy()

        assert summary.groups == []
        assert fake_az.commands("group", "delete") == []

    def test_cancelled_by_confirmation(self, subscription):
        summary = make_destroyer(subscription).destroy("dev", confirm=lambda groups: False)

        assert summary.cancelled
        assert not summary.complete
        assert subscription.commands("group", "delete") == []

    def test_deletes_and_waits(self, subscription):
        subscription.on("az group exists", "false")
        confirm = Mock(return_value=True)
        destroyer = make_destroyer(subscription)

        summary = destroyer.destroy("dev", confirm=confirm)

        confirm.assert_called_once_with(["rg-hub-networking-dev-eastus-001", "rg-spoke1-dev-eastus-001"])
        deletes = subscription.commands("group", "delete")
        assert sorted(c[4] for c in deletes) == summary.groups
        assert all(c[-2:] == ["--yes", "--no-wait"] for c in deletes)
        assert summary.deleted == summary.groups
        assert summary.complete
        destroyer.sleep.assert_called_once_with(30)

    def test_times_out(self, subscription):
        subscription.on("az group exists", "true")

        summary = make_destroyer(subscription).destroy("dev")

        assert summary.timed_out
        assert summary.remaining == ["rg-hub-networking-dev-eastus-001", "rg-spoke1-dev-eastus-001"]
        assert summary.deleted == []
        # 90s budget at 30s intervals
        assert len(subscription.commands("group", "exists")) == 6

    def test_no_wait(self, subscription):
        destroyer = make_destroyer(subscription)

        summary = destroyer.destroy("dev", wait=False)

        assert summary.remaining == summary.groups
        assert subscription.commands("group", "exists") == []
        destroyer.sleep.assert_not_called()

    def test_failed_delete_reported(self, subscription, called_process_error):
        subscription.on(
            "az group delete --name rg-spoke1-dev-eastus-001",
            called_process_error("ERROR: (ScopeLocked) locked"),
        )
        subscription.on("az group exists", "false")

        summary = make_destroyer(subscription).destroy("dev")

        assert summary.failed == ["rg-spoke1-dev-eastus-001"]
        assert summary.deleted == ["rg-hub-networking-dev-eastus-001"]
        assert not summary.complete

    def test_unknown_state_counts_as_remaining(self, subscription, called_process_error):
        subscription.on("az group exists", called_process_error())

        summary = make_destroyer(subscription).destroy("dev")

        assert summary.timed_out
        assert len(summary.remaining) == 2
