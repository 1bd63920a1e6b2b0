"""Command groups for alzctl CLI."""

from alzctl.commands.config import config_group
from alzctl.commands.identity import identity_group
from alzctl.commands.intune import intune_group
from alzctl.commands.network import deploy, destroy, plan, preflight

__all__ = [
    "config_group",
    "deploy",
    "destroy",
    "identity_group",
    "intune_group",
    "plan",
    "preflight",
]
