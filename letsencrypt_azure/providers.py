"""
Provider resolution.

Turns the ``targetResource``, ``certificateStore`` and ``challengeResponder``
sections of a certificate entry into concrete providers. Each category
has a registry keyed by the lower-cased ``type``; omitted sections and
omitted properties are defaulted from the providers resolved before them,
which is why resolution always runs target, then store, then responder.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .azure_helper import AzureHelper
from .challenge_responders import AzureStorageHttpChallengeResponder
from .config_loader import (
    CertificateRenewalOptions,
    ConfigurationError,
    GenericEntry,
    CdnProperties,
    KeyVaultProperties,
    StorageProperties,
    parse_properties,
)
from .credentials import CredentialBroker, RenewingTokenCredential, STORAGE_RESOURCE
from .fallback import FallbackChainExecutor
from .keyvault import KeyVaultCertificateStore, KeyVaultSecretStore
from .storage import BlobStorageFactory
from .target_resources import CdnTargetResource


TARGET_RESOURCE = "targetResource"
CERTIFICATE_STORE = "certificateStore"
CHALLENGE_RESPONDER = "challengeResponder"


class NotImplementedProviderError(ConfigurationError):
    """Raised when a section names a ``type`` with no registered handler."""

    def __init__(self, category: str, type_name: str):
        self.category = category
        self.type_name = type_name
        super().__init__(f"{category} type '{type_name}' is not implemented")


def to_storage_account_name(resource_name: Optional[str]) -> Optional[str]:
    """
    Convert a resource name to the equivalent storage account name.

    Storage account names cannot contain dashes, so the usual convention
    is the resource name with all dashes removed.
    """
    if resource_name is None:
        return None
    return resource_name.replace("-", "")


def default_certificate_name(host_name: str) -> str:
    return host_name.replace(".", "-")


@dataclass
class ResolutionContext:
    """Everything a provider factory may use to build its provider."""
    options: CertificateRenewalOptions
    entry: GenericEntry
    parser: "RenewalOptionParser"
    target: Optional[Any] = None
    certificate_store: Optional[Any] = None
    cancel_event: Optional[threading.Event] = None


Factory = Callable[[ResolutionContext], Any]


class ProviderRegistry:
    """Maps a case-insensitive ``type`` to the factory building that provider."""

    def __init__(self, category: str):
        self.category = category
        self._factories: Dict[str, Factory] = {}

    def register(self, type_name: str) -> Callable[[Factory], Factory]:
        """Decorator registering ``factory`` for ``type_name``."""
        def decorator(factory: Factory) -> Factory:
            self._factories[type_name.lower()] = factory
            return factory
        return decorator

    def types(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, type_name: str) -> bool:
        return type_name.lower() in self._factories

    def create(self, context: ResolutionContext) -> Any:
        """
        Build the provider for ``context.entry``.

        Raises:
            NotImplementedProviderError: If the type has no registered factory
        """
        factory = self._factories.get(context.entry.type.lower())
        if factory is None:
            raise NotImplementedProviderError(self.category, context.entry.type)
        return factory(context)


TARGET_RESOURCES = ProviderRegistry(TARGET_RESOURCE)
CERTIFICATE_STORES = ProviderRegistry(CERTIFICATE_STORE)
CHALLENGE_RESPONDERS = ProviderRegistry(CHALLENGE_RESPONDER)


@TARGET_RESOURCES.register("cdn")
def create_cdn_target(context: ResolutionContext) -> CdnTargetResource:
    entry = context.entry
    if entry.properties is None:
        if not entry.name:
            raise ConfigurationError(f"{TARGET_RESOURCE}.name is required when properties are omitted")
        props = CdnProperties(name=entry.name, resource_group_name=entry.name, endpoints=[entry.name])
    else:
        props = parse_properties(CdnProperties, entry.properties, TARGET_RESOURCE)

    if not props.name:
        raise ConfigurationError(f"CDN section is missing required property {TARGET_RESOURCE}.properties.name")

    return CdnTargetResource(
        name=props.name,
        resource_group_name=props.resource_group_name or props.name,
        endpoints=props.endpoints or [props.name],
        azure_helper=context.parser.azure_helper,
    )


@CERTIFICATE_STORES.register("keyVault")
def create_key_vault_store(context: ResolutionContext) -> KeyVaultCertificateStore:
    entry = context.entry
    target = context.target
    if entry.properties is None:
        props = KeyVaultProperties(name=entry.name)
    else:
        props = parse_properties(KeyVaultProperties, entry.properties, CERTIFICATE_STORE)

    return KeyVaultCertificateStore(
        name=props.name or target.name,
        certificate_name=props.certificate_name or default_certificate_name(context.options.primary_host_name),
        resource_group_name=props.resource_group_name or target.resource_group_name,
        azure_helper=context.parser.azure_helper,
        client_factory=context.parser.certificate_client_factory,
    )


@CHALLENGE_RESPONDERS.register("storageAccount")
def create_storage_responder(context: ResolutionContext) -> AzureStorageHttpChallengeResponder:
    entry = context.entry
    parser = context.parser
    if entry.properties is None:
        props = StorageProperties(
            account_name=to_storage_account_name(entry.name),
            key_vault_name=entry.name,
        )
    else:
        props = parse_properties(StorageProperties, entry.properties, CHALLENGE_RESPONDER)

    props.account_name = props.account_name or to_storage_account_name(context.target.name)
    props.key_vault_name = props.key_vault_name or context.certificate_store.name

    credential = RenewingTokenCredential.create(
        parser.broker,
        STORAGE_RESOURCE,
        parser.azure_helper.get_tenant_id(),
        cancel_event=context.cancel_event,
    )
    outcome = parser.fallback_executor.execute(credential, props, context.cancel_event)
    return AzureStorageHttpChallengeResponder(outcome.unwrap())


@dataclass
class ResolvedProviders:
    """The three providers of one certificate entry."""
    target: CdnTargetResource
    certificate_store: KeyVaultCertificateStore
    challenge_responder: AzureStorageHttpChallengeResponder


class RenewalOptionParser:
    """
    Resolves the providers of a certificate entry.

    The broker and the SDK client factories may be shared across renewal
    runs; every resolved provider belongs to the run that resolved it.
    """

    def __init__(
        self,
        azure_helper: AzureHelper,
        broker: Optional[CredentialBroker] = None,
        storage_factory: Optional[BlobStorageFactory] = None,
        secret_store: Optional[KeyVaultSecretStore] = None,
        certificate_client_factory: Optional[Callable] = None,
        target_resources: ProviderRegistry = TARGET_RESOURCES,
        certificate_stores: ProviderRegistry = CERTIFICATE_STORES,
        challenge_responders: ProviderRegistry = CHALLENGE_RESPONDERS,
    ):
        self.azure_helper = azure_helper
        self.broker = broker or CredentialBroker()
        self.fallback_executor = FallbackChainExecutor(
            storage_factory or BlobStorageFactory(),
            secret_store or KeyVaultSecretStore(),
        )
        self.certificate_client_factory = certificate_client_factory
        self.target_resources = target_resources
        self.certificate_stores = certificate_stores
        self.challenge_responders = challenge_responders

    def parse_target_resource(self, cfg: CertificateRenewalOptions) -> CdnTargetResource:
        """
        Resolve the resource that receives the certificate.

        Raises:
            ConfigurationError: If the section is missing or incomplete
        """
        if cfg.target_resource is None:
            raise ConfigurationError(f"{TARGET_RESOURCE} section is required")
        return self.target_resources.create(
            ResolutionContext(options=cfg, entry=cfg.target_resource, parser=self)
        )

    def parse_certificate_store(
        self,
        cfg: CertificateRenewalOptions,
        target: Optional[CdnTargetResource] = None,
    ) -> KeyVaultCertificateStore:
        """Resolve the certificate store, defaulting to a Key Vault named after the target."""
        target = target or self.parse_target_resource(cfg)
        entry = cfg.certificate_store or GenericEntry(type="keyVault", name=target.name)
        return self.certificate_stores.create(
            ResolutionContext(options=cfg, entry=entry, parser=self, target=target)
        )

    def parse_challenge_responder(
        self,
        cfg: CertificateRenewalOptions,
        cancel_event: Optional[threading.Event] = None,
        target: Optional[CdnTargetResource] = None,
        certificate_store: Optional[KeyVaultCertificateStore] = None,
    ) -> AzureStorageHttpChallengeResponder:
        """
        Resolve the challenge responder.

        This is the only resolution step that performs I/O (token
        acquisition, storage probe and possibly a secret lookup).
        """
        target = target or self.parse_target_resource(cfg)
        certificate_store = certificate_store or self.parse_certificate_store(cfg, target)
        entry = cfg.challenge_responder or GenericEntry(
            type="storageAccount",
            properties={
                "accountName": to_storage_account_name(target.name),
                "keyVaultName": certificate_store.name,
            },
        )
        return self.challenge_responders.create(
            ResolutionContext(
                options=cfg,
                entry=entry,
                parser=self,
                target=target,
                certificate_store=certificate_store,
                cancel_event=cancel_event,
            )
        )

    def resolve(
        self,
        cfg: CertificateRenewalOptions,
        cancel_event: Optional[threading.Event] = None,
    ) -> ResolvedProviders:
        """Resolve all three providers in dependency order."""
        target = self.parse_target_resource(cfg)
        certificate_store = self.parse_certificate_store(cfg, target)
        challenge_responder = self.parse_challenge_responder(
            cfg, cancel_event, target=target, certificate_store=certificate_store
        )
        return ResolvedProviders(
            target=target,
            certificate_store=certificate_store,
            challenge_responder=challenge_responder,
        )
