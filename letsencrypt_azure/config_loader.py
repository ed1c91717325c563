"""
Configuration loading, validation, and parsing.

Loads renewal configuration from YAML (or JSON) files and provides typed
access to the per-certificate provider sections. Provider ``properties``
stay opaque here; they are parsed into their typed schema only when the
provider resolver knows which handler owns them.
"""

import dataclasses
import os
import re
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Type, TypeVar

import yaml

from .logger import get_logger


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULT_RENEWAL_THRESHOLD_DAYS = 30
DEFAULT_CHALLENGE_CONTAINER = "$web"

SUPPORTED_SUFFIXES = (".yaml", ".yml", ".json")

P = TypeVar("P")


@dataclass(frozen=True)
class GenericEntry:
    """
    One provider section of a certificate entry.

    ``type`` selects the handler (case-insensitive), ``properties`` is
    handler-specific and may be omitted entirely.
    """
    type: str
    name: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CertificateRenewalOptions:
    """Aggregate configuration for one certificate."""
    host_names: List[str]
    target_resource: Optional[GenericEntry] = None
    certificate_store: Optional[GenericEntry] = None
    challenge_responder: Optional[GenericEntry] = None

    @property
    def primary_host_name(self) -> str:
        return self.host_names[0]


@dataclass
class CdnProperties:
    """Properties of a ``cdn`` target resource."""
    name: Optional[str] = None
    resource_group_name: Optional[str] = None
    endpoints: List[str] = field(default_factory=list)


@dataclass
class KeyVaultProperties:
    """Properties of a ``keyVault`` certificate store."""
    name: Optional[str] = None
    certificate_name: Optional[str] = None
    resource_group_name: Optional[str] = None


@dataclass
class StorageProperties:
    """Properties of a ``storageAccount`` challenge responder."""
    account_name: Optional[str] = None
    container_name: str = DEFAULT_CHALLENGE_CONTAINER
    connection_string: Optional[str] = None
    key_vault_name: Optional[str] = None
    secret_name: Optional[str] = None


@dataclass
class AcmeOptions:
    """Let's Encrypt account options."""
    email: str = ""
    staging: bool = False


@dataclass
class AzureSettings:
    """Ambient Azure identity settings (environment fallbacks apply)."""
    tenant_id: Optional[str] = None
    subscription_id: Optional[str] = None


@dataclass
class Settings:
    """Global settings."""
    renewal_threshold_days: int = DEFAULT_RENEWAL_THRESHOLD_DAYS


@dataclass
class Config:
    """Root configuration object."""
    settings: Settings
    azure: AzureSettings
    acme: AcmeOptions
    certificates: List[CertificateRenewalOptions]


def _expand_env_vars(value: Any) -> Any:
    """
    Expand environment variables in string values.

    Supports ${VAR_NAME} syntax. Unknown variables are left untouched.
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def _lookup(data: Dict[str, Any], key: str) -> Any:
    """Case-insensitive dict lookup that treats camelCase and snake_case alike."""
    wanted = _normalize_key(key)
    for k, v in data.items():
        if isinstance(k, str) and _normalize_key(k) == wanted:
            return v
    return None


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def parse_properties(cls: Type[P], raw: Optional[Dict[str, Any]], section: str) -> P:
    """
    Parse a provider ``properties`` mapping into its typed schema.

    Unknown keys are ignored and missing keys keep the dataclass default.
    A present value of the wrong shape is reported with its full path.

    Args:
        cls: Properties dataclass (CdnProperties, KeyVaultProperties, ...)
        raw: Raw ``properties`` mapping (may be None)
        section: Config path of the owning section, used in error messages

    Returns:
        Instance of ``cls``

    Raises:
        ConfigurationError: If a field has the wrong type
    """
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{section}.properties must be a mapping")

    values = {}
    for f in dataclasses.fields(cls):
        value = _lookup(raw, f.name)
        if value is None:
            continue

        path = f"{section}.properties.{f.name}"
        if f.name == "endpoints":
            if isinstance(value, str):
                value = [value]
            if not _is_string_list(value):
                raise ConfigurationError(f"{path} must be a list of strings")
        elif not isinstance(value, str):
            raise ConfigurationError(f"{path} must be a string")
        elif not value:
            # empty strings mean "use the default"
            continue
        values[f.name] = value

    return cls(**values)


def _parse_entry(data: Any, section: str) -> Optional[GenericEntry]:
    """Parse one optional provider section."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(f"{section} must be a mapping")

    entry_type = _lookup(data, "type")
    if not entry_type or not isinstance(entry_type, str):
        raise ConfigurationError(f"{section}.type is required")

    name = _lookup(data, "name")
    if name is not None and not isinstance(name, str):
        raise ConfigurationError(f"{section}.name must be a string")

    properties = _lookup(data, "properties")
    if properties is not None and not isinstance(properties, dict):
        raise ConfigurationError(f"{section}.properties must be a mapping")

    return GenericEntry(type=entry_type, name=name or None, properties=properties)


def parse_certificate(data: Dict[str, Any], index: int = 0) -> CertificateRenewalOptions:
    """
    Parse a single certificate entry.

    Args:
        data: Raw certificate mapping
        index: Position in the ``certificates`` list (for error messages)

    Returns:
        CertificateRenewalOptions instance

    Raises:
        ConfigurationError: If host names are missing or a section is malformed
    """
    prefix = f"certificates[{index}]"
    if not isinstance(data, dict):
        raise ConfigurationError(f"{prefix} must be a mapping")

    host_names = _lookup(data, "hostNames")
    if not host_names:
        raise ConfigurationError(f"{prefix}.hostNames must contain at least one host name")
    if not _is_string_list(host_names) or not all(host_names):
        raise ConfigurationError(f"{prefix}.hostNames must be a list of non-empty strings")

    return CertificateRenewalOptions(
        host_names=list(host_names),
        target_resource=_parse_entry(_lookup(data, "targetResource"), f"{prefix}.targetResource"),
        certificate_store=_parse_entry(_lookup(data, "certificateStore"), f"{prefix}.certificateStore"),
        challenge_responder=_parse_entry(
            _lookup(data, "challengeResponder"), f"{prefix}.challengeResponder"
        ),
    )


def _parse_settings(data: Dict[str, Any]) -> Settings:
    threshold = data.get("renewal_threshold_days", DEFAULT_RENEWAL_THRESHOLD_DAYS)
    if not isinstance(threshold, int) or isinstance(threshold, bool):
        raise ConfigurationError("settings.renewal_threshold_days must be an integer")
    if threshold < 1:
        raise ConfigurationError("settings.renewal_threshold_days must be at least 1")
    # Let's Encrypt certificates are valid for 90 days
    if threshold >= 90:
        raise ConfigurationError("settings.renewal_threshold_days must be less than 90")
    return Settings(renewal_threshold_days=threshold)


def _parse_azure(data: Dict[str, Any]) -> AzureSettings:
    return AzureSettings(
        tenant_id=data.get("tenant_id") or None,
        subscription_id=data.get("subscription_id") or None,
    )


def _parse_acme(data: Dict[str, Any]) -> AcmeOptions:
    staging = data.get("staging", False)
    if not isinstance(staging, bool):
        raise ConfigurationError("acme.staging must be true or false")
    return AcmeOptions(email=data.get("email", "") or "", staging=staging)


def load_config(config_path: str) -> Config:
    """
    Load and validate configuration from a YAML or JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    logger = get_logger()
    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if path.suffix not in SUPPORTED_SUFFIXES:
        raise ConfigurationError(
            f"Configuration file must be YAML or JSON ({', '.join(SUPPORTED_SUFFIXES)}): {config_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid configuration file syntax: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if not raw_data:
        raise ConfigurationError("Configuration file is empty")
    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    data = _expand_env_vars(raw_data)

    raw_certificates = data.get("certificates")
    if not raw_certificates or not isinstance(raw_certificates, list):
        raise ConfigurationError("At least one entry is required in 'certificates'")

    config = Config(
        settings=_parse_settings(data.get("settings") or {}),
        azure=_parse_azure(data.get("azure") or {}),
        acme=_parse_acme(data.get("acme") or {}),
        certificates=[
            parse_certificate(entry, index) for index, entry in enumerate(raw_certificates)
        ],
    )

    logger.info(f"Loaded configuration from {config_path}")
    logger.info(f"  Certificates: {len(config.certificates)}")
    logger.info(f"  Let's Encrypt environment: {'staging' if config.acme.staging else 'production'}")

    return config
