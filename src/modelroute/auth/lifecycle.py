"""Credential freshness, refresh, and status reporting.

:class:`CredentialManager` sits between the resolver and a
:class:`~modelroute.auth.credential_store.BaseCredentialStore`.  Before an
OAuth-backed adapter makes a call it asks the manager for a usable
credential; the manager refreshes tokens that are close to (or past)
expiry and persists the replacement.

Freshness is derived, never stored::

    active         now < expires_at - refresh_window   (or no expiry)
    needs_refresh  expires_at - refresh_window <= now < expires_at
    expired        now >= expires_at

Refresh is best-effort.  A failed exchange is logged and the stored token
is returned untouched; the provider call that follows surfaces the real
authorisation error if the token is actually dead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

import httpx

from modelroute.auth.credential_store import AuthCredential, BaseCredentialStore
from modelroute.auth.oauth import OAuthProviderConfig, default_oauth_configs, refresh_access_token
from modelroute.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_WINDOW = timedelta(minutes=5)


class CredentialStatus(str, Enum):
    """Freshness state of a stored credential."""

    ACTIVE = "active"
    NEEDS_REFRESH = "needs_refresh"
    EXPIRED = "expired"


class ExpiredCredentialPolicy(str, Enum):
    """What :meth:`CredentialManager.get_usable_credential` does with an
    expired credential that cannot be refreshed."""

    ALLOW = "allow"
    """Log a warning and return the stale credential."""
    REJECT = "reject"
    """Raise :class:`~modelroute.exceptions.AuthenticationError`."""


@dataclass
class CredentialReport:
    """A stored credential annotated with its freshness, for status output."""

    provider: str
    credential: AuthCredential
    status: CredentialStatus


def login_hint(family: str) -> str:
    """The command that creates a credential for *family*."""
    return f"modelroute auth login --provider {family}"


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class CredentialManager:
    """Hand out usable credentials, refreshing them when due.

    Args:
        store: Where credentials live.  Passed explicitly so tests can use
            a :class:`~modelroute.auth.credential_store.MemoryCredentialStore`.
        oauth_configs: OAuth dialect per credential family.  Defaults to
            :func:`~modelroute.auth.oauth.default_oauth_configs`.
        refresh_window: How long before expiry a refresh becomes due.
        expired_policy: Behaviour for expired credentials that cannot be
            refreshed.
        clock: Returns the current aware UTC time.
        http_client: Optional client used for refresh exchanges.

    Example::

        manager = CredentialManager(FileCredentialStore())
        cred = manager.get_usable_credential("openai")
    """

    def __init__(
        self,
        store: BaseCredentialStore,
        oauth_configs: Optional[dict[str, OAuthProviderConfig]] = None,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
        expired_policy: ExpiredCredentialPolicy = ExpiredCredentialPolicy.ALLOW,
        clock: Optional[Callable[[], datetime]] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._store = store
        self._oauth_configs = oauth_configs if oauth_configs is not None else default_oauth_configs()
        self._refresh_window = refresh_window
        self._expired_policy = expired_policy
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._http_client = http_client

    @property
    def store(self) -> BaseCredentialStore:
        """The underlying credential store."""
        return self._store

    def freshness(self, credential: AuthCredential) -> CredentialStatus:
        """Compute *credential*'s freshness at the manager's current time."""
        if credential.expires_at is None:
            return CredentialStatus.ACTIVE
        now = self._clock()
        expires_at = _utc(credential.expires_at)
        if now >= expires_at:
            return CredentialStatus.EXPIRED
        if expires_at - now < self._refresh_window:
            return CredentialStatus.NEEDS_REFRESH
        return CredentialStatus.ACTIVE

    def get_usable_credential(self, family: str) -> AuthCredential:
        """Return a credential for *family*, refreshing it first if due.

        Args:
            family: Credential family key, e.g. ``"openai"``.

        Returns:
            The refreshed credential, or the stored one when no refresh was
            needed or the refresh failed.

        Raises:
            AuthenticationError: If nothing is stored for *family*, or the
                credential is expired, cannot be refreshed, and the policy
                is :attr:`ExpiredCredentialPolicy.REJECT`.
        """
        credential = self._store.get(family)
        if credential is None:
            raise AuthenticationError(
                f"No credentials for {family}. Run: {login_hint(family)}",
                hint=login_hint(family),
            )

        status = self.freshness(credential)
        if status is CredentialStatus.ACTIVE:
            return credential

        oauth_config = self._oauth_configs.get(family)
        if credential.refresh_token and oauth_config is not None:
            try:
                refreshed = refresh_access_token(
                    credential, oauth_config, client=self._http_client, now=self._clock()
                )
            except AuthenticationError as exc:
                logger.warning("Refreshing %s credential failed, using stored token: %s", family, exc)
            else:
                self._store.set(family, refreshed)
                logger.debug("Refreshed %s credential, now expires %s", family, refreshed.expires_at)
                return refreshed

        if status is CredentialStatus.EXPIRED:
            if self._expired_policy is ExpiredCredentialPolicy.REJECT:
                raise AuthenticationError(
                    f"Credentials for {family} have expired. Run: {login_hint(family)}",
                    hint=login_hint(family),
                )
            logger.warning("Credentials for %s have expired; requests may be rejected", family)
        return credential

    def set_credential(self, family: str, credential: AuthCredential) -> None:
        """Store *credential* for *family*, replacing any existing one whole."""
        self._store.set(family, credential)

    def delete_credential(self, family: str) -> None:
        """Remove the credential for *family* if one exists."""
        self._store.delete(family)

    def delete_all_credentials(self) -> None:
        """Remove every stored credential."""
        self._store.delete_all()

    def list_credentials_with_status(self) -> list[CredentialReport]:
        """Return every stored credential with its freshness, sorted by family."""
        return [
            CredentialReport(provider=family, credential=cred, status=self.freshness(cred))
            for family, cred in sorted(self._store.load().items())
        ]

    def token_source(self, family: str) -> Callable[[], AuthCredential]:
        """Return a zero-argument callable adapters use to fetch a fresh credential per call."""
        return lambda: self.get_usable_credential(family)
