"""
Azure Key Vault operations.

Certificate store (read current certificate, import a renewed PFX) and
secret lookup used as a storage credential fallback.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Any

from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.keyvault.certificates import CertificateClient
from azure.keyvault.secrets import SecretClient

from .azure_helper import AzureHelper
from .logger import get_logger


class KeyVaultError(Exception):
    """Raised when Key Vault operations fail."""
    pass


def vault_url(vault_name: str) -> str:
    return f"https://{vault_name}.vault.azure.net"


@dataclass
class CertificateInfo:
    """Current certificate in a certificate store."""
    name: str
    store_name: str
    domains: List[str]
    expires_on: Optional[datetime]
    issuer: Optional[str]
    thumbprint: Optional[str]
    version: Optional[str] = None
    enabled: bool = True


def extract_domains(cert: x509.Certificate) -> List[str]:
    """
    Extract domain names from a certificate.

    Returns:
        Common name followed by DNS subject alternative names, deduplicated
    """
    domains = []

    for attribute in cert.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME):
        if attribute.value and attribute.value not in domains:
            domains.append(attribute.value)

    try:
        san_ext = cert.extensions.get_extension_for_oid(
            x509.oid.ExtensionOID.SUBJECT_ALTERNATIVE_NAME
        )
    except x509.ExtensionNotFound:
        return domains

    for name in san_ext.value.get_values_for_type(x509.DNSName):
        if name not in domains:
            domains.append(name)
    return domains


def extract_issuer(cert: x509.Certificate) -> Optional[str]:
    """Issuer organization, falling back to the issuer common name."""
    for oid in (x509.oid.NameOID.ORGANIZATION_NAME, x509.oid.NameOID.COMMON_NAME):
        attributes = cert.issuer.get_attributes_for_oid(oid)
        if attributes:
            return attributes[0].value
    return None


def _default_credential():
    return DefaultAzureCredential()


class KeyVaultCertificateStore:
    """
    Certificate store backed by an Azure Key Vault.

    The SDK client is created on first use, so constructing a store does
    not touch the network.
    """

    type = "keyVault"

    def __init__(
        self,
        name: str,
        certificate_name: str,
        resource_group_name: str,
        azure_helper: AzureHelper,
        client_factory: Optional[Callable[[str], CertificateClient]] = None,
    ):
        """
        Initialize the store.

        Args:
            name: Key Vault name
            certificate_name: Name of the certificate inside the vault
            resource_group_name: Resource group of the vault
            azure_helper: Provides the subscription for ``resource_id``
            client_factory: Builds a CertificateClient from a vault URL
        """
        self.name = name
        self.certificate_name = certificate_name
        self.resource_group_name = resource_group_name
        self.azure_helper = azure_helper
        self.logger = get_logger()
        self._client_factory = client_factory or self._create_client
        self._client: Optional[CertificateClient] = None

    @staticmethod
    def _create_client(url: str) -> CertificateClient:
        return CertificateClient(vault_url=url, credential=_default_credential())

    @property
    def vault_url(self) -> str:
        return vault_url(self.name)

    @property
    def resource_id(self) -> str:
        return self.azure_helper.resource_id(
            self.resource_group_name, "Microsoft.KeyVault", "vaults", self.name
        )

    @property
    def client(self) -> CertificateClient:
        if self._client is None:
            self._client = self._client_factory(self.vault_url)
        return self._client

    def get_certificate(self) -> Optional[CertificateInfo]:
        """
        Get the current certificate.

        Returns:
            CertificateInfo, or None if the vault has no such certificate
        """
        try:
            certificate = self.client.get_certificate(self.certificate_name)
        except ResourceNotFoundError:
            self.logger.debug(f"Certificate not found: {self.name}/{self.certificate_name}")
            return None

        props = certificate.properties
        domains: List[str] = []
        issuer = None
        if certificate.cer:
            cert = x509.load_der_x509_certificate(bytes(certificate.cer))
            domains = extract_domains(cert)
            issuer = extract_issuer(cert)

        expires_on = props.expires_on
        if expires_on and expires_on.tzinfo is None:
            expires_on = expires_on.replace(tzinfo=timezone.utc)

        return CertificateInfo(
            name=props.name,
            store_name=self.name,
            domains=domains,
            expires_on=expires_on,
            issuer=issuer,
            thumbprint=props.x509_thumbprint.hex() if props.x509_thumbprint else None,
            version=props.version,
            enabled=bool(props.enabled),
        )

    def upload(self, pfx_data: bytes, password: Optional[str] = None) -> Dict[str, Any]:
        """
        Import a PFX certificate as the new version of this certificate.

        Args:
            pfx_data: PFX (PKCS#12) bytes
            password: PFX password, if any

        Returns:
            Dictionary with the imported certificate details

        Raises:
            KeyVaultError: If the PFX is unreadable or the import fails
        """
        try:
            _, cert, _ = pkcs12.load_key_and_certificates(
                pfx_data, password.encode() if password else None
            )
        except ValueError as e:
            raise KeyVaultError(f"Unable to read PFX for {self.certificate_name}: {e}")
        if cert is None:
            raise KeyVaultError(f"PFX for {self.certificate_name} contains no certificate")

        try:
            certificate = self.client.import_certificate(
                certificate_name=self.certificate_name,
                certificate_bytes=pfx_data,
                password=password,
                enabled=True,
            )
        except AzureError as e:
            raise KeyVaultError(f"Failed to import certificate {self.certificate_name}: {e}")

        self.logger.info(f"Imported certificate: {self.name}/{self.certificate_name}")

        return {
            "name": certificate.properties.name,
            "version": certificate.properties.version,
            "domains": extract_domains(cert),
            "expires_on": certificate.properties.expires_on,
            "thumbprint": (
                certificate.properties.x509_thumbprint.hex()
                if certificate.properties.x509_thumbprint
                else None
            ),
        }


class KeyVaultSecretStore:
    """Reads secrets from any Key Vault by name."""

    def __init__(self, credential=None, client_factory: Optional[Callable[[str], SecretClient]] = None):
        self._credential = credential
        self._client_factory = client_factory
        self.logger = get_logger()

    def _client(self, vault_name: str) -> SecretClient:
        if self._client_factory is not None:
            return self._client_factory(vault_url(vault_name))
        if self._credential is None:
            self._credential = _default_credential()
        return SecretClient(vault_url=vault_url(vault_name), credential=self._credential)

    def get_secret(self, vault_name: str, secret_name: str) -> Optional[str]:
        """
        Get a secret value.

        Args:
            vault_name: Key Vault name
            secret_name: Secret name

        Returns:
            The secret value, or None if the secret does not exist

        Raises:
            AzureError: Any failure other than a missing secret, unchanged
        """
        try:
            secret = self._client(vault_name).get_secret(secret_name)
        except ResourceNotFoundError:
            return None
        except AzureError as e:
            self.logger.error(f"Unable to get secret {secret_name} from keyvault {vault_name}: {e}")
            raise
        return secret.value
