"""Entra ID deployments: security groups and Conditional Access policies."""

from alzctl.identity.conditional_access import ConditionalAccessDeployer
from alzctl.identity.groups import EntraGroupDeployer, GroupDefinition
from alzctl.identity.models import DeployAction, DeployResult, IdentityDeploymentError

__all__ = [
    "ConditionalAccessDeployer",
    "DeployAction",
    "DeployResult",
    "EntraGroupDeployer",
    "GroupDefinition",
    "IdentityDeploymentError",
]
