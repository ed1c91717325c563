"""Unit tests for letsencrypt_azure.providers: provider resolution."""

from __future__ import annotations

import logging
import threading

import pytest
from azure.core.exceptions import HttpResponseError

from letsencrypt_azure.cancellation import OperationCancelledError
from letsencrypt_azure.config_loader import ConfigurationError, parse_certificate
from letsencrypt_azure.fallback import UnableToProceedError
from letsencrypt_azure.providers import (
    CERTIFICATE_STORES,
    CHALLENGE_RESPONDERS,
    TARGET_RESOURCES,
    NotImplementedProviderError,
    ProviderRegistry,
    RenewalOptionParser,
    to_storage_account_name,
)
from letsencrypt_azure.storage import ProbeResult

from .conftest import FakeSecretStore, FakeStorageFactory


def _cfg(**sections):
    data = {"hostNames": ["a.example.com"], "targetResource": {"type": "cdn", "name": "rg1"}}
    data.update(sections)
    return parse_certificate(data)


# ---------------------------------------------------------------------------
# Storage account name derivation
# ---------------------------------------------------------------------------


class TestStorageAccountName:
    def test_removes_dashes(self):
        assert to_storage_account_name("my-resource-1") == "myresource1"

    @pytest.mark.parametrize("name", ["my-resource-1", "plain", "--", "a-b.c_d"])
    def test_idempotent(self, name):
        once = to_storage_account_name(name)
        assert to_storage_account_name(once) == once
        assert once == name.replace("-", "")

    def test_none(self):
        assert to_storage_account_name(None) is None


# ---------------------------------------------------------------------------
# Registry dispatch
# ---------------------------------------------------------------------------


class TestProviderRegistry:
    def test_builtin_types(self):
        assert TARGET_RESOURCES.types() == ["cdn"]
        assert CERTIFICATE_STORES.types() == ["keyvault"]
        assert CHALLENGE_RESPONDERS.types() == ["storageaccount"]

    @pytest.mark.parametrize("type_name", ["cdn", "CDN", "Cdn"])
    def test_type_is_case_insensitive(self, parser, type_name):
        cfg = parse_certificate({"hostNames": ["a.example.com"], "targetResource": {"type": type_name, "name": "x"}})
        assert parser.parse_target_resource(cfg).type == "cdn"
        assert type_name in TARGET_RESOURCES

    @pytest.mark.parametrize(
        "section,category",
        [
            ("targetResource", "targetResource"),
            ("certificateStore", "certificateStore"),
            ("challengeResponder", "challengeResponder"),
        ],
    )
    def test_unregistered_type(self, parser, section, category):
        data = {"hostNames": ["a.example.com"], "targetResource": {"type": "cdn", "name": "rg1"}}
        data[section] = {"type": "FrontDoor", "name": "x"}
        cfg = parse_certificate(data)

        with pytest.raises(NotImplementedProviderError) as exc_info:
            parser.resolve(cfg)

        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.type_name == "FrontDoor"
        assert exc_info.value.category == category
        assert "FrontDoor" in str(exc_info.value)

    def test_custom_registry(self, azure_helper, broker):
        targets = ProviderRegistry("targetResource")

        @targets.register("appService")
        def create(context):
            return ("app", context.entry.name)

        parser = RenewalOptionParser(azure_helper, broker=broker, target_resources=targets)
        cfg = parse_certificate({"hostNames": ["a"], "targetResource": {"type": "APPSERVICE", "name": "web"}})
        assert parser.parse_target_resource(cfg) == ("app", "web")


# ---------------------------------------------------------------------------
# Target resource
# ---------------------------------------------------------------------------


class TestTargetResource:
    def test_defaults_from_entry_name(self, parser):
        target = parser.parse_target_resource(_cfg())
        assert target.name == "rg1"
        assert target.resource_group_name == "rg1"
        assert target.endpoints == ["rg1"]
        assert target.resource_id == "/subscriptions/sub-1/resourceGroups/rg1/providers/Microsoft.Cdn/profiles/rg1"

    def test_explicit_properties(self, parser):
        target = parser.parse_target_resource(_cfg(targetResource={
            "type": "cdn",
            "name": "ignored",
            "properties": {"name": "cdn1", "resourceGroupName": "rg-x", "endpoints": ["e1", "e2"]},
        }))
        assert (target.name, target.resource_group_name, target.endpoints) == ("cdn1", "rg-x", ["e1", "e2"])
        assert target.endpoint_ids()[1].endswith("/profiles/cdn1/endpoints/e2")

    def test_partial_properties_are_defaulted(self, parser):
        target = parser.parse_target_resource(
            _cfg(targetResource={"type": "cdn", "properties": {"name": "cdn1"}})
        )
        assert target.resource_group_name == "cdn1"
        assert target.endpoints == ["cdn1"]

    def test_properties_without_name(self, parser):
        with pytest.raises(ConfigurationError, match="targetResource.properties.name"):
            parser.parse_target_resource(
                _cfg(targetResource={"type": "cdn", "name": "x", "properties": {"resourceGroupName": "rg"}})
            )

    def test_missing_section(self, parser):
        cfg = parse_certificate({"hostNames": ["a.example.com"]})
        with pytest.raises(ConfigurationError, match="targetResource"):
            parser.parse_target_resource(cfg)


# ---------------------------------------------------------------------------
# Certificate store
# ---------------------------------------------------------------------------


class TestCertificateStore:
    def test_default_section(self, parser):
        store = parser.parse_certificate_store(_cfg())
        assert store.type == "keyVault"
        assert store.name == "rg1"
        assert store.certificate_name == "a-example-com"
        assert store.vault_url == "https://rg1.vault.azure.net"

    def test_default_certificate_name_from_first_host(self, parser):
        cfg = parse_certificate({
            "hostNames": ["my.example.com", "other.example.com"],
            "targetResource": {"type": "cdn", "name": "rg1"},
        })
        assert parser.parse_certificate_store(cfg).certificate_name == "my-example-com"

    def test_entry_name_without_properties(self, parser):
        store = parser.parse_certificate_store(_cfg(certificateStore={"type": "KeyVault", "name": "kv1"}))
        assert store.name == "kv1"

    def test_explicit_properties(self, parser):
        store = parser.parse_certificate_store(_cfg(certificateStore={
            "type": "keyVault",
            "properties": {"name": "kv2", "certificateName": "custom", "resourceGroupName": "kv-rg"},
        }))
        assert (store.name, store.certificate_name) == ("kv2", "custom")
        assert store.resource_id == "/subscriptions/sub-1/resourceGroups/kv-rg/providers/Microsoft.KeyVault/vaults/kv2"

    def test_properties_without_name_use_target(self, parser):
        store = parser.parse_certificate_store(
            _cfg(certificateStore={"type": "keyVault", "properties": {"certificateName": "c"}})
        )
        assert store.name == "rg1"
        assert store.resource_group_name == "rg1"


# ---------------------------------------------------------------------------
# Challenge responder
# ---------------------------------------------------------------------------


class TestChallengeResponder:
    def test_full_default_scenario(self, parser, storage_factory, identity, caplog):
        with caplog.at_level(logging.INFO):
            providers = parser.resolve(_cfg())

        assert providers.certificate_store.name == "rg1"
        assert providers.certificate_store.certificate_name == "a-example-com"
        storage = providers.challenge_responder.storage
        assert storage.account_name == "rg1"
        assert storage.container_name == "$web"
        assert storage.auth_method == "managed_identity"
        assert storage_factory.token_calls == [("rg1", "$web")]
        assert identity.calls[0] == (("https://storage.azure.com/.default",), {"tenant_id": "tenant-1"})
        assert caplog.records == []

    def test_account_name_derived_without_dashes(self, parser, storage_factory):
        cfg = parse_certificate({"hostNames": ["a.example.com"], "targetResource": {"type": "cdn", "name": "my-cdn-1"}})
        responder = parser.parse_challenge_responder(cfg)
        assert responder.storage.account_name == "mycdn1"

    def test_entry_name_without_properties(self, parser, storage_factory):
        responder = parser.parse_challenge_responder(
            _cfg(challengeResponder={"type": "storageAccount", "name": "static-site"})
        )
        assert responder.storage.account_name == "staticsite"

    def test_explicit_properties(self, parser, storage_factory):
        responder = parser.parse_challenge_responder(_cfg(challengeResponder={
            "type": "storageAccount",
            "properties": {"accountName": "acct", "containerName": "challenges"},
        }))
        assert storage_factory.token_calls == [("acct", "challenges")]
        assert responder.storage.container_name == "challenges"

    def test_properties_without_account_use_target(self, parser, storage_factory):
        parser.parse_challenge_responder(_cfg(challengeResponder={
            "type": "storageAccount",
            "properties": {"containerName": "challenges"},
        }))
        assert storage_factory.token_calls == [("rg1", "challenges")]

    def test_denied_falls_back_to_certificate_store_vault(self, azure_helper, broker):
        error = HttpResponseError(message="denied")
        error.status_code = 403
        factory = FakeStorageFactory(ProbeResult.denied(error))
        secrets = FakeSecretStore({("rg1", "Storage"): "AccountName=rg1;AccountKey=abc"})
        parser = RenewalOptionParser(azure_helper, broker=broker, storage_factory=factory, secret_store=secrets)

        responder = parser.parse_challenge_responder(_cfg(challengeResponder={
            "type": "storageAccount",
            "properties": {"secretName": "Storage"},
        }))

        assert secrets.calls == [("rg1", "Storage")]
        assert responder.storage.auth_method == "connection_string"

    def test_denied_without_fallback_is_fatal(self, azure_helper, broker):
        error = HttpResponseError(message="denied")
        error.status_code = 403
        parser = RenewalOptionParser(
            azure_helper,
            broker=broker,
            storage_factory=FakeStorageFactory(ProbeResult.denied(error)),
            secret_store=FakeSecretStore(),
        )
        with pytest.raises(UnableToProceedError, match="rg1"):
            parser.resolve(_cfg())

    def test_cancelled(self, parser, storage_factory, identity):
        cancel_event = threading.Event()
        cancel_event.set()
        with pytest.raises(OperationCancelledError):
            parser.resolve(_cfg(), cancel_event)
        assert identity.calls == []
        assert storage_factory.token_calls == []
