"""
Resources that consume the renewed certificate.
"""

from typing import List

from .azure_helper import AzureHelper


class CdnTargetResource:
    """An Azure CDN profile and the endpoints served with the certificate."""

    type = "cdn"

    def __init__(
        self,
        name: str,
        resource_group_name: str,
        endpoints: List[str],
        azure_helper: AzureHelper,
    ):
        self.name = name
        self.resource_group_name = resource_group_name
        self.endpoints = list(endpoints)
        self.azure_helper = azure_helper

    @property
    def resource_id(self) -> str:
        return self.azure_helper.resource_id(
            self.resource_group_name, "Microsoft.Cdn", "profiles", self.name
        )

    def endpoint_ids(self) -> List[str]:
        """Resource ids of every configured endpoint of the profile."""
        return [f"{self.resource_id}/endpoints/{endpoint}" for endpoint in self.endpoints]

    def __repr__(self) -> str:
        return (
            f"CdnTargetResource(name={self.name!r}, "
            f"resource_group_name={self.resource_group_name!r}, endpoints={self.endpoints!r})"
        )
