"""
Managed identity credentials for the storage backend.

``CredentialBroker`` obtains bearer tokens for a resource/tenant pair;
``RenewingTokenCredential`` wraps it in the ``TokenCredential`` protocol
the Azure storage SDK calls on every request, refreshing the token once
its renewal cadence has elapsed.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from azure.core.credentials import AccessToken
from azure.identity import DefaultAzureCredential

from .cancellation import raise_if_cancelled
from .logger import get_logger


STORAGE_RESOURCE = "https://storage.azure.com/"

# Tokens are refreshed this long before they actually expire
RENEWAL_MARGIN = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_renew_after(expires_at: datetime, now: datetime) -> timedelta:
    """
    Compute how long a token may be used before it must be renewed.

    Args:
        expires_at: Token expiry (timezone-aware)
        now: Current time (timezone-aware)

    Returns:
        ``expires_at - now - 5 minutes``, never negative
    """
    renew_after = expires_at - now - RENEWAL_MARGIN
    if renew_after < timedelta(0):
        return timedelta(0)
    return renew_after


def resource_to_scope(resource: str) -> str:
    """Convert a resource URI (``https://storage.azure.com/``) to its default scope."""
    if resource.endswith("/.default"):
        return resource
    return resource.rstrip("/") + "/.default"


@dataclass
class Credential:
    """An access token plus the renewal hint computed when it was acquired."""
    access_token: str
    expires_at: datetime
    renew_after: timedelta


class CredentialBroker:
    """
    Obtains bearer tokens from the ambient Azure identity.

    Uses DefaultAzureCredential, which tries the managed identity first when
    running inside Azure and falls back to developer credentials (Azure CLI,
    environment service principal) elsewhere. The broker holds no per-run
    state and may be shared across renewal runs.
    """

    def __init__(
        self,
        identity=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the broker.

        Args:
            identity: Object implementing ``get_token(scope, tenant_id=...)``.
                Defaults to DefaultAzureCredential.
            clock: Returns the current timezone-aware time
        """
        self._identity = identity
        self.clock = clock
        self.logger = get_logger()

    @property
    def identity(self):
        if self._identity is None:
            self._identity = DefaultAzureCredential()
        return self._identity

    def acquire(self, resource: str, tenant: Optional[str] = None) -> Credential:
        """
        Acquire a token for ``resource`` in ``tenant``.

        Authentication and transport errors from the identity library are
        not retried here and propagate unchanged.

        Args:
            resource: Resource URI, e.g. ``https://storage.azure.com/``
            tenant: Tenant id, or None for the identity's default tenant

        Returns:
            Credential with its renewal hint
        """
        scope = resource_to_scope(resource)
        kwargs = {"tenant_id": tenant} if tenant else {}
        token = self.identity.get_token(scope, **kwargs)

        expires_at = datetime.fromtimestamp(token.expires_on, tz=timezone.utc)
        renew_after = compute_renew_after(expires_at, self.clock())
        self.logger.debug(f"Acquired token for {resource} (renew after {renew_after})")

        return Credential(
            access_token=token.token,
            expires_at=expires_at,
            renew_after=renew_after,
        )


class RenewingTokenCredential:
    """
    Token credential that renews itself through a CredentialBroker.

    The first token is acquired eagerly by ``create``. Afterwards every
    ``get_token`` call reuses the current token until its ``renew_after``
    duration has elapsed and then synchronously asks the broker for a new
    one. Renewal happens under a lock so concurrent callers never observe
    a half-updated credential.
    """

    def __init__(
        self,
        broker: CredentialBroker,
        resource: str,
        tenant: Optional[str],
        credential: Credential,
        acquired_at: datetime,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._broker = broker
        self._resource = resource
        self._tenant = tenant
        self._credential = credential
        self._acquired_at = acquired_at
        self._cancel_event = cancel_event
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        broker: CredentialBroker,
        resource: str = STORAGE_RESOURCE,
        tenant: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "RenewingTokenCredential":
        """Acquire the initial token and wrap it."""
        raise_if_cancelled(cancel_event, "token acquisition")
        acquired_at = broker.clock()
        credential = broker.acquire(resource, tenant)
        raise_if_cancelled(cancel_event, "token acquisition")
        return cls(broker, resource, tenant, credential, acquired_at, cancel_event)

    @property
    def credential(self) -> Credential:
        return self._credential

    def renewal_due(self) -> bool:
        return self._broker.clock() >= self._acquired_at + self._credential.renew_after

    def current(self) -> Credential:
        """
        Return the current credential, renewing it first if it is due.

        Returns:
            A credential that is valid for at least the renewal margin
        """
        with self._lock:
            if self.renewal_due():
                raise_if_cancelled(self._cancel_event, "token renewal")
                acquired_at = self._broker.clock()
                self._credential = self._broker.acquire(self._resource, self._tenant)
                self._acquired_at = acquired_at
            return self._credential

    def get_token(self, *scopes, **kwargs) -> AccessToken:
        """TokenCredential protocol; the token is bound to the broker resource."""
        credential = self.current()
        return AccessToken(credential.access_token, int(credential.expires_at.timestamp()))

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
