"""
Storage access with managed identity and credential fallbacks.

The managed identity is tried first with a cheap existence check. Only
an explicit access-denied answer moves on to the alternatives, in order:

1. the connection string from configuration
2. a connection string stored as a Key Vault secret

Any other probe failure is raised unchanged.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .cancellation import raise_if_cancelled
from .config_loader import ConfigurationError, StorageProperties
from .keyvault import KeyVaultSecretStore
from .logger import get_logger
from .storage import AzureBlobStorageProvider, BlobStorageFactory, ProbeStatus


# Any blob name works, the probe only needs the service to answer
PROBE_BLOB_NAME = "1.txt"


class UnableToProceedError(ConfigurationError):
    """Raised when managed identity is denied and no fallback credential exists."""

    def __init__(self, account_name: str):
        self.account_name = account_name
        super().__init__(
            f"MSI access failed for {account_name} and could not find fallback connection "
            "string for storage access. Unable to proceed with Let's Encrypt challenge"
        )


class FallbackSource(Enum):
    """Alternative credential source used after the managed identity was denied."""
    CONNECTION_STRING = "connection_string"
    KEY_VAULT_SECRET = "key_vault_secret"


class OutcomeKind(Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    EXHAUSTED = "exhausted"


@dataclass
class FallbackOutcome:
    """Result of running the fallback chain."""
    kind: OutcomeKind
    storage: Optional[AzureBlobStorageProvider] = None
    source: Optional[FallbackSource] = None
    error: Optional[Exception] = None

    @classmethod
    def primary(cls, storage: AzureBlobStorageProvider) -> "FallbackOutcome":
        return cls(kind=OutcomeKind.PRIMARY, storage=storage)

    @classmethod
    def fallback(cls, storage: AzureBlobStorageProvider, source: FallbackSource) -> "FallbackOutcome":
        return cls(kind=OutcomeKind.FALLBACK, storage=storage, source=source)

    @classmethod
    def exhausted(cls, error: Exception) -> "FallbackOutcome":
        return cls(kind=OutcomeKind.EXHAUSTED, error=error)

    def unwrap(self) -> AzureBlobStorageProvider:
        """
        Return the storage provider.

        Raises:
            The terminal error if the chain was exhausted
        """
        if self.kind == OutcomeKind.EXHAUSTED:
            raise self.error
        return self.storage


class FallbackChainExecutor:
    """Chooses the storage credential for the challenge responder."""

    def __init__(
        self,
        storage_factory: BlobStorageFactory,
        secret_store: KeyVaultSecretStore,
        probe_path: str = PROBE_BLOB_NAME,
    ):
        self.storage_factory = storage_factory
        self.secret_store = secret_store
        self.probe_path = probe_path
        self.logger = get_logger()

    def execute(
        self,
        credential,
        props: StorageProperties,
        cancel_event: Optional[threading.Event] = None,
    ) -> FallbackOutcome:
        """
        Probe managed identity access and fall back if it is denied.

        Args:
            credential: Token credential for the managed identity
            props: Storage properties with account and key vault names resolved
            cancel_event: Cancellation signal of the run

        Returns:
            FallbackOutcome (PRIMARY, FALLBACK or EXHAUSTED)

        Raises:
            OperationCancelledError: If the run was cancelled
            Exception: Any non-denied probe failure or secret store failure, unchanged
        """
        account_name = props.account_name
        container_name = props.container_name

        raise_if_cancelled(cancel_event, "storage access probe")
        storage = self.storage_factory.from_token(credential, account_name, container_name)
        # A readonly check: a Blob Reader role passes even though uploads need Contributor
        result = storage.probe(self.probe_path)
        raise_if_cancelled(cancel_event, "storage access probe")

        if result.status == ProbeStatus.ACCEPTED:
            return FallbackOutcome.primary(storage)
        if result.status != ProbeStatus.DENIED:
            raise result.error

        self.logger.warning(
            f"MSI access to storage {account_name} failed. Attempting fallbacks via connection string. "
            "(You can ignore this warning if you don't use MSI authentication)."
        )

        if props.connection_string:
            raise_if_cancelled(cancel_event, "connection string fallback")
            storage = self.storage_factory.from_connection_string(props.connection_string, container_name)
            return FallbackOutcome.fallback(storage, FallbackSource.CONNECTION_STRING)

        connection_string = self._secret_connection_string(props, cancel_event)
        if not connection_string:
            return FallbackOutcome.exhausted(UnableToProceedError(account_name))

        raise_if_cancelled(cancel_event, "key vault secret fallback")
        storage = self.storage_factory.from_connection_string(connection_string, container_name)
        return FallbackOutcome.fallback(storage, FallbackSource.KEY_VAULT_SECRET)

    def _secret_connection_string(
        self,
        props: StorageProperties,
        cancel_event: Optional[threading.Event],
    ) -> Optional[str]:
        """Fetch the connection string secret; None if it is not configured or absent."""
        self.logger.info(
            f"No connection string in config, checking keyvault {props.key_vault_name} "
            f"secret {props.secret_name}"
        )
        if not props.secret_name or not props.key_vault_name:
            return None

        raise_if_cancelled(cancel_event, "key vault secret lookup")
        value = self.secret_store.get_secret(props.key_vault_name, props.secret_name)
        raise_if_cancelled(cancel_event, "key vault secret lookup")
        return value
