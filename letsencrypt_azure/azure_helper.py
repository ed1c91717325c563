"""
Ambient Azure identity values (tenant and subscription).

Configured values take precedence over the standard ``AZURE_*``
environment variables used by the Azure SDKs.
"""

import os
from typing import Optional

from .config_loader import ConfigurationError, AzureSettings


TENANT_ENV_VAR = "AZURE_TENANT_ID"
SUBSCRIPTION_ENV_VAR = "AZURE_SUBSCRIPTION_ID"


class AzureHelper:
    """Resolves tenant and subscription and builds ARM resource ids."""

    def __init__(self, tenant_id: Optional[str] = None, subscription_id: Optional[str] = None):
        self._tenant_id = tenant_id
        self._subscription_id = subscription_id

    @classmethod
    def from_settings(cls, settings: AzureSettings) -> "AzureHelper":
        return cls(tenant_id=settings.tenant_id, subscription_id=settings.subscription_id)

    def get_tenant_id(self) -> Optional[str]:
        """
        Get the tenant used for token requests.

        Returns:
            Tenant id, or None to let the identity library pick its default tenant
        """
        return self._tenant_id or os.environ.get(TENANT_ENV_VAR) or None

    def get_subscription_id(self) -> str:
        """
        Get the subscription owning the target resources.

        Raises:
            ConfigurationError: If neither config nor environment provide one
        """
        subscription_id = self._subscription_id or os.environ.get(SUBSCRIPTION_ENV_VAR)
        if not subscription_id:
            raise ConfigurationError(
                f"azure.subscription_id is required (or set {SUBSCRIPTION_ENV_VAR})"
            )
        return subscription_id

    def resource_id(
        self,
        resource_group: str,
        provider: str,
        resource_type: str,
        name: str,
    ) -> str:
        """Build a fully qualified ARM resource id."""
        return (
            f"/subscriptions/{self.get_subscription_id()}"
            f"/resourceGroups/{resource_group}"
            f"/providers/{provider}/{resource_type}/{name}"
        )
