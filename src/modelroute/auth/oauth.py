"""OAuth dialects and the token-refresh exchange.

Each OAuth-backed family speaks a slightly different dialect of OAuth 2.0:
different issuers, client ids, scopes, and extra authorisation parameters.
:class:`OAuthProviderConfig` captures one dialect; :func:`default_oauth_configs`
returns the built-in table keyed by credential family.

:func:`refresh_access_token` performs the ``refresh_token`` grant and turns
the response into a replacement :class:`~modelroute.auth.credential_store.AuthCredential`.
It raises on failure; the soft-fail policy lives one level up in
:class:`~modelroute.auth.lifecycle.CredentialManager`.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import jwt
from pydantic import BaseModel, Field

from modelroute.auth.credential_store import AuthCredential
from modelroute.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

REFRESH_TIMEOUT = 15.0
"""Seconds allowed for one refresh exchange."""

DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)
"""Assumed lifetime when a token response omits ``expires_in``."""

_OPENAI_AUTH_CLAIM = "https://api.openai.com/auth"


class OAuthProviderConfig(BaseModel):
    """One family's OAuth 2.0 dialect.

    Example::

        OAuthProviderConfig(
            provider="openai",
            authorization_url="https://auth.openai.com/oauth/authorize",
            token_url="https://auth.openai.com/oauth/token",
            client_id="app_...",
            scopes=["openid", "offline_access"],
        )
    """

    provider: str = Field(description="Credential family key the dialect belongs to")
    authorization_url: str = Field(description="Browser authorisation endpoint")
    token_url: str = Field(description="Code exchange and refresh endpoint")
    device_authorization_url: Optional[str] = Field(
        default=None, description="RFC 8628 device authorisation endpoint"
    )
    userinfo_url: Optional[str] = Field(
        default=None, description="Identity endpoint returning the account email"
    )
    client_id: str = ""
    client_secret: str = ""
    scopes: list[str] = Field(default_factory=list)
    callback_port: int = Field(
        default=0, description="Fixed loopback port for the redirect; 0 picks a free one"
    )
    callback_path: str = "/auth/callback"
    extra_authorize_params: dict[str, str] = Field(default_factory=dict)


def openai_oauth_config() -> OAuthProviderConfig:
    """The ChatGPT/Codex sign-in dialect used for the ``openai`` family."""
    issuer = os.environ.get("MODELROUTE_OPENAI_ISSUER", "https://auth.openai.com")
    return OAuthProviderConfig(
        provider="openai",
        authorization_url=f"{issuer}/oauth/authorize",
        token_url=f"{issuer}/oauth/token",
        device_authorization_url=f"{issuer}/oauth/device/code",
        client_id=os.environ.get("MODELROUTE_OPENAI_CLIENT_ID", "app_EMoamEEZ73f0CkXaXp7hrann"),
        scopes=["openid", "profile", "email", "offline_access"],
        callback_port=1455,
        callback_path="/auth/callback",
        extra_authorize_params={
            "id_token_add_organizations": "true",
            "codex_cli_simplified_flow": "true",
        },
    )


def google_antigravity_oauth_config() -> OAuthProviderConfig:
    """The Google Cloud Code dialect used for the ``google-antigravity`` family.

    Google requires a client secret for installed-app refreshes.  Both the
    client id and secret come from ``MODELROUTE_ANTIGRAVITY_CLIENT_ID`` and
    ``MODELROUTE_ANTIGRAVITY_CLIENT_SECRET``.
    """
    return OAuthProviderConfig(
        provider="google-antigravity",
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        device_authorization_url="https://oauth2.googleapis.com/device/code",
        userinfo_url="https://www.googleapis.com/oauth2/v2/userinfo",
        client_id=os.environ.get("MODELROUTE_ANTIGRAVITY_CLIENT_ID", ""),
        client_secret=os.environ.get("MODELROUTE_ANTIGRAVITY_CLIENT_SECRET", ""),
        scopes=[
            "https://www.googleapis.com/auth/cloud-platform",
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
        ],
        callback_port=51121,
        callback_path="/oauth-callback",
        extra_authorize_params={"access_type": "offline", "prompt": "consent"},
    )


def default_oauth_configs() -> dict[str, OAuthProviderConfig]:
    """Return the built-in dialects keyed by credential family.

    Anthropic tokens are pasted by hand and have no refresh dialect.
    """
    return {
        "openai": openai_oauth_config(),
        "google-antigravity": google_antigravity_oauth_config(),
    }


def parse_account_id(id_token: str) -> str:
    """Extract the ChatGPT account id from an OpenAI ``id_token``.

    The token is only inspected, never trusted for authorisation, so the
    signature is not verified.

    Returns:
        The account id, or ``""`` when the token is malformed or carries
        none.
    """
    try:
        claims = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        logger.debug("Could not decode id_token: %s", exc)
        return ""
    auth_claims = claims.get(_OPENAI_AUTH_CLAIM)
    if isinstance(auth_claims, dict) and auth_claims.get("chatgpt_account_id"):
        return str(auth_claims["chatgpt_account_id"])
    return str(claims.get("chatgpt_account_id", ""))


def credential_from_token_response(
    provider: str,
    token_data: dict[str, Any],
    previous: Optional[AuthCredential] = None,
    now: Optional[datetime] = None,
) -> AuthCredential:
    """Build a credential from an OAuth token endpoint response.

    Identity fields (account, email, project) and the refresh token are
    carried over from *previous* when the response omits them.

    Args:
        provider: Credential family key.
        token_data: Parsed JSON from the token endpoint.
        previous: The credential being replaced, if any.
        now: Reference time for ``expires_in``.  Defaults to the current UTC time.

    Raises:
        AuthenticationError: If ``access_token`` is missing.
    """
    access_token = token_data.get("access_token")
    if not access_token:
        raise AuthenticationError("Token response missing 'access_token' field")

    now = now or datetime.now(timezone.utc)
    expires_in = token_data.get("expires_in")
    lifetime = timedelta(seconds=float(expires_in)) if expires_in else DEFAULT_TOKEN_LIFETIME

    account_id = ""
    if token_data.get("id_token"):
        account_id = parse_account_id(token_data["id_token"])

    return AuthCredential(
        provider=provider,
        access_token=access_token,
        refresh_token=token_data.get("refresh_token") or (previous.refresh_token if previous else ""),
        expires_at=now + lifetime,
        account_id=account_id or (previous.account_id if previous else ""),
        email=previous.email if previous else "",
        project_id=previous.project_id if previous else "",
        auth_method=previous.auth_method if previous else "oauth",
    )


def refresh_access_token(
    credential: AuthCredential,
    config: OAuthProviderConfig,
    client: Optional[httpx.Client] = None,
    now: Optional[datetime] = None,
) -> AuthCredential:
    """Exchange *credential*'s refresh token for a new access token.

    Args:
        credential: The stored credential.  It is not modified.
        config: The family's OAuth dialect.
        client: Optional shared HTTP client.  When ``None`` a one-off
            request is made with :func:`httpx.post`.
        now: Reference time for the new expiry.

    Returns:
        The replacement credential.

    Raises:
        AuthenticationError: If there is no refresh token, the request
            fails, or the response lacks ``access_token``.
    """
    if not credential.refresh_token:
        raise AuthenticationError(f"No refresh token stored for {credential.provider}")

    data: dict[str, str] = {
        "grant_type": "refresh_token",
        "refresh_token": credential.refresh_token,
        "client_id": config.client_id,
    }
    if config.client_secret:
        data["client_secret"] = config.client_secret
    if config.scopes:
        data["scope"] = " ".join(config.scopes)

    headers = {"Accept": "application/json"}
    try:
        if client is not None:
            response = client.post(config.token_url, data=data, headers=headers, timeout=REFRESH_TIMEOUT)
        else:
            response = httpx.post(config.token_url, data=data, headers=headers, timeout=REFRESH_TIMEOUT)
        response.raise_for_status()
        token_data: Any = response.json()
    except httpx.HTTPStatusError as exc:
        raise AuthenticationError(
            f"Token refresh failed with status {exc.response.status_code}: {exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise AuthenticationError(f"Token refresh failed: {exc}") from exc
    except ValueError as exc:
        raise AuthenticationError(f"Token refresh returned invalid JSON: {exc}") from exc

    if not isinstance(token_data, dict):
        raise AuthenticationError("Token refresh returned a non-object JSON body")
    try:
        return credential_from_token_response(credential.provider, token_data, previous=credential, now=now)
    except (TypeError, ValueError) as exc:
        raise AuthenticationError(f"Token refresh returned a malformed response: {exc}") from exc
