"""Shared fixtures and fakes for the letsencrypt_azure test suite."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from azure.core.credentials import AccessToken

# ---------------------------------------------------------------------------
# Make the repository root importable without installing the package
# ---------------------------------------------------------------------------
_ROOT = str(Path(__file__).resolve().parent.parent)
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from letsencrypt_azure.azure_helper import AzureHelper  # noqa: E402
from letsencrypt_azure.credentials import CredentialBroker  # noqa: E402
from letsencrypt_azure.providers import RenewalOptionParser  # noqa: E402
from letsencrypt_azure.storage import ProbeResult  # noqa: E402

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes for the external collaborators
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeIdentity:
    """Identity provider returning numbered tokens valid for ``lifetime``."""

    def __init__(self, clock: FakeClock, lifetime: timedelta = timedelta(hours=1), error=None):
        self.clock = clock
        self.lifetime = lifetime
        self.error = error
        self.calls = []

    def get_token(self, *scopes, **kwargs):
        self.calls.append((scopes, kwargs))
        if self.error is not None:
            raise self.error
        expires_on = int((self.clock() + self.lifetime).timestamp())
        return AccessToken(f"token-{len(self.calls)}", expires_on)


class FakeStorage:
    def __init__(self, account_name, container_name, auth_method, probe_result=None, credential=None):
        self.account_name = account_name
        self.container_name = container_name
        self.auth_method = auth_method
        self.probe_result = probe_result or ProbeResult.accepted(False)
        self.credential = credential
        self.probed = []
        self.uploaded = {}
        self.deleted = []

    def probe(self, path):
        self.probed.append(path)
        return self.probe_result

    def upload_text(self, path, content):
        self.uploaded[path] = content

    def delete(self, path):
        self.deleted.append(path)


class FakeStorageFactory:
    """Builds FakeStorage objects; the managed identity ones answer ``probe_result``."""

    def __init__(self, probe_result=None):
        self.probe_result = probe_result or ProbeResult.accepted(False)
        self.token_calls = []
        self.connection_string_calls = []

    def from_token(self, credential, account_name, container_name):
        self.token_calls.append((account_name, container_name))
        return FakeStorage(
            account_name, container_name, "managed_identity",
            probe_result=self.probe_result, credential=credential,
        )

    def from_connection_string(self, connection_string, container_name):
        self.connection_string_calls.append((connection_string, container_name))
        return FakeStorage("from-connection-string", container_name, "connection_string")


class FakeSecretStore:
    """Secret store keyed by (vault, secret); ``error`` is raised for every lookup."""

    def __init__(self, secrets=None, error=None):
        self.secrets = secrets or {}
        self.error = error
        self.calls = []

    def get_secret(self, vault_name, secret_name):
        self.calls.append((vault_name, secret_name))
        if self.error is not None:
            raise self.error
        return self.secrets.get((vault_name, secret_name))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def identity(clock) -> FakeIdentity:
    return FakeIdentity(clock)


@pytest.fixture()
def broker(identity, clock) -> CredentialBroker:
    return CredentialBroker(identity=identity, clock=clock)


@pytest.fixture()
def azure_helper() -> AzureHelper:
    return AzureHelper(tenant_id="tenant-1", subscription_id="sub-1")


@pytest.fixture()
def storage_factory() -> FakeStorageFactory:
    return FakeStorageFactory()


@pytest.fixture()
def secret_store() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture()
def parser(azure_helper, broker, storage_factory, secret_store) -> RenewalOptionParser:
    return RenewalOptionParser(
        azure_helper,
        broker=broker,
        storage_factory=storage_factory,
        secret_store=secret_store,
    )
