"""
Let's Encrypt renewal for Azure hosted endpoints.

This package contains:
- config_loader: Configuration loading and validation
- providers: Provider resolution (target resource, certificate store, challenge responder)
- credentials: Managed identity token broker and renewing token credential
- fallback: Storage credential fallback chain
- keyvault: Azure Key Vault certificate store and secret lookup
- storage: Azure Blob Storage access
- logger: Centralized logging setup
- helpers: Certificate expiry helpers
"""

from .logger import setup_logger, get_logger
from .config_loader import (
    load_config,
    parse_certificate,
    Config,
    ConfigurationError,
    GenericEntry,
    CertificateRenewalOptions,
)
from .azure_helper import AzureHelper
from .cancellation import OperationCancelledError
from .credentials import Credential, CredentialBroker, RenewingTokenCredential, compute_renew_after
from .storage import AzureBlobStorageProvider, BlobStorageFactory, ProbeResult, ProbeStatus
from .keyvault import KeyVaultCertificateStore, KeyVaultSecretStore, KeyVaultError, CertificateInfo
from .fallback import (
    FallbackChainExecutor,
    FallbackOutcome,
    FallbackSource,
    OutcomeKind,
    UnableToProceedError,
)
from .providers import (
    RenewalOptionParser,
    ResolvedProviders,
    ProviderRegistry,
    NotImplementedProviderError,
    to_storage_account_name,
)
from .helpers import is_expiring_soon, format_days_remaining, format_expiration_status

__all__ = [
    # Logger
    "setup_logger",
    "get_logger",
    # Config
    "load_config",
    "parse_certificate",
    "Config",
    "ConfigurationError",
    "GenericEntry",
    "CertificateRenewalOptions",
    "AzureHelper",
    "OperationCancelledError",
    # Credentials
    "Credential",
    "CredentialBroker",
    "RenewingTokenCredential",
    "compute_renew_after",
    # Storage
    "AzureBlobStorageProvider",
    "BlobStorageFactory",
    "ProbeResult",
    "ProbeStatus",
    # Key Vault
    "KeyVaultCertificateStore",
    "KeyVaultSecretStore",
    "KeyVaultError",
    "CertificateInfo",
    # Fallback
    "FallbackChainExecutor",
    "FallbackOutcome",
    "FallbackSource",
    "OutcomeKind",
    "UnableToProceedError",
    # Providers
    "RenewalOptionParser",
    "ResolvedProviders",
    "ProviderRegistry",
    "NotImplementedProviderError",
    "to_storage_account_name",
    # Helpers
    "is_expiring_soon",
    "format_days_remaining",
    "format_expiration_status",
]
