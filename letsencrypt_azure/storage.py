"""
Azure Blob Storage operations.

Storage clients are built either from a token credential (managed
identity) or from a raw connection string. ``probe`` classifies the
result of a cheap existence check so callers can branch on access
denial without catching SDK exceptions themselves.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from .logger import get_logger


HTTP_FORBIDDEN = 403


class ProbeStatus(Enum):
    """Outcome of a storage access probe."""
    ACCEPTED = "accepted"
    DENIED = "denied"
    FAILURE = "failure"


@dataclass
class ProbeResult:
    """Result of ``AzureBlobStorageProvider.probe``."""
    status: ProbeStatus
    exists: bool = False
    error: Optional[BaseException] = None

    @classmethod
    def accepted(cls, exists: bool) -> "ProbeResult":
        return cls(status=ProbeStatus.ACCEPTED, exists=exists)

    @classmethod
    def denied(cls, error: BaseException) -> "ProbeResult":
        return cls(status=ProbeStatus.DENIED, error=error)

    @classmethod
    def failure(cls, error: BaseException) -> "ProbeResult":
        return cls(status=ProbeStatus.FAILURE, error=error)


def is_access_denied(error: BaseException) -> bool:
    """True only for an HTTP 403 returned by the storage service."""
    return isinstance(error, HttpResponseError) and error.status_code == HTTP_FORBIDDEN


class AzureBlobStorageProvider:
    """
    Blob container access used by the HTTP challenge responder.

    Instances are built through ``from_token`` or ``from_connection_string``.
    """

    def __init__(self, service_client: BlobServiceClient, container_name: str, auth_method: str):
        self.service_client = service_client
        self.container_name = container_name
        self.auth_method = auth_method
        self.logger = get_logger()
        self._container = service_client.get_container_client(container_name)

    @classmethod
    def from_token(cls, credential, account_name: str, container_name: str) -> "AzureBlobStorageProvider":
        """
        Build a provider authenticated with a token credential.

        Args:
            credential: Object implementing the TokenCredential protocol
            account_name: Storage account name
            container_name: Blob container name
        """
        account_url = f"https://{account_name}.blob.core.windows.net"
        client = BlobServiceClient(account_url=account_url, credential=credential)
        return cls(client, container_name, auth_method="managed_identity")

    @classmethod
    def from_connection_string(cls, connection_string: str, container_name: str) -> "AzureBlobStorageProvider":
        client = BlobServiceClient.from_connection_string(connection_string)
        return cls(client, container_name, auth_method="connection_string")

    @property
    def account_name(self) -> str:
        return self.service_client.account_name

    def exists(self, path: str) -> bool:
        """Check whether a blob exists in the container."""
        return self._container.get_blob_client(path).exists()

    def probe(self, path: str) -> ProbeResult:
        """
        Run ``exists`` and classify its outcome.

        Args:
            path: Blob name to check (its presence does not matter)

        Returns:
            ACCEPTED if the service answered, DENIED on HTTP 403,
            FAILURE (carrying the original error) for anything else
        """
        try:
            return ProbeResult.accepted(self.exists(path))
        except Exception as e:
            if is_access_denied(e):
                return ProbeResult.denied(e)
            return ProbeResult.failure(e)

    def upload_text(self, path: str, content: str) -> None:
        """Write ``content`` to a blob, replacing any existing one."""
        self._container.upload_blob(
            name=path,
            data=content.encode("utf-8"),
            overwrite=True,
            content_settings=ContentSettings(content_type="text/plain"),
        )
        self.logger.debug(f"Uploaded {self.container_name}/{path}")

    def delete(self, path: str) -> None:
        """Delete a blob; a blob that is already gone is not an error."""
        try:
            self._container.delete_blob(path)
            self.logger.debug(f"Deleted {self.container_name}/{path}")
        except ResourceNotFoundError:
            self.logger.debug(f"Blob already absent: {self.container_name}/{path}")


class BlobStorageFactory:
    """Constructs storage providers; replaceable in tests."""

    def from_token(self, credential, account_name: str, container_name: str) -> AzureBlobStorageProvider:
        return AzureBlobStorageProvider.from_token(credential, account_name, container_name)

    def from_connection_string(self, connection_string: str, container_name: str) -> AzureBlobStorageProvider:
        return AzureBlobStorageProvider.from_connection_string(connection_string, container_name)
