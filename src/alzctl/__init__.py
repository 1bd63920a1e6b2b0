"""alzctl - Azure Landing Zone deployment CLI

Philosophy:
- Idempotent by default (check-exists, create-or-update)
- Brick architecture (self-contained modules)
- Security by design (no credentials in code or logs)
- Fail fast with helpful guidance

alzctl provisions a hub-spoke landing zone through the Azure CLI and deploys
Entra ID groups, Conditional Access policies and Intune device policies
through Microsoft Graph.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
