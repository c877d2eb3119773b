"""Interactive login flows that produce a new :class:`AuthCredential`.

Three flows are provided, one per way a family hands out tokens:

* :func:`login_browser` -- OAuth 2.0 Authorization Code grant with PKCE
  (:rfc:`7636`).  Opens the browser and receives the redirect on a
  one-shot loopback HTTP server.
* :func:`login_device_code` -- OAuth 2.0 Device Authorization Grant
  (:rfc:`8628`) for headless terminals (SSH, containers).
* :func:`login_paste_token` -- reads a long-lived token pasted by the user.

Each returns a credential; storing it is the caller's job
(:meth:`~modelroute.auth.lifecycle.CredentialManager.set_credential`).
:func:`fetch_user_email` enriches a credential afterwards.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import socket
import sys
import threading
import time
import webbrowser
from datetime import timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, TextIO
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from modelroute.auth.credential_store import AuthCredential
from modelroute.auth.oauth import OAuthProviderConfig, credential_from_token_response
from modelroute.exceptions import AuthenticationError

LOGIN_TIMEOUT = 30.0
"""Seconds allowed for each token, device, or identity request."""

CALLBACK_TIMEOUT = 120
"""Seconds the loopback server waits for the browser redirect."""


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def _find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def build_authorize_url(
    config: OAuthProviderConfig,
    redirect_uri: str,
    code_challenge: str,
    state: str,
) -> str:
    """Compose the browser authorisation URL for *config*'s dialect."""
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    }
    if config.scopes:
        params["scope"] = " ".join(config.scopes)
    params.update(config.extra_authorize_params)
    return f"{config.authorization_url}?{urlencode(params)}"


def _wait_for_callback(port: int, auth_url: str, expected_state: str) -> str:
    """Start a one-shot loopback server, open the browser, and return the code.

    Raises:
        AuthenticationError: If the provider returns an error, the state
            does not match, or no code arrives within :data:`CALLBACK_TIMEOUT`.
    """
    result: dict[str, Optional[str]] = {"code": None, "error": None}

    class CallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            params = parse_qs(urlparse(self.path).query)

            if "error" in params:
                result["error"] = params["error"][0]
                body = f"Authorization failed: {result['error']}"
            elif params.get("state", [""])[0] != expected_state:
                result["error"] = "state_mismatch"
                body = "Authorization failed: state mismatch."
            elif "code" in params:
                result["code"] = params["code"][0]
                body = (
                    "Authorization successful! You can close this window "
                    "and return to the terminal."
                )
            else:
                result["error"] = "no_code"
                body = "No authorization code received."

            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.end_headers()
            self.wfile.write(f"<html><body><h2>{body}</h2></body></html>".encode("utf-8"))

        def log_message(self, format: str, *args: Any) -> None:
            pass

    server = HTTPServer(("127.0.0.1", port), CallbackHandler)
    server.timeout = CALLBACK_TIMEOUT

    sys.stderr.write(f"\nOpen this URL to sign in:\n  {auth_url}\n\n")
    sys.stderr.flush()
    threading.Thread(target=webbrowser.open, args=(auth_url,), daemon=True).start()

    try:
        server.handle_request()
    finally:
        server.server_close()

    if result["error"]:
        raise AuthenticationError(f"OAuth authorization failed: {result['error']}")
    if not result["code"]:
        raise AuthenticationError("No authorization code received from callback")
    return result["code"]


def _post_token(url: str, data: dict[str, str]) -> httpx.Response:
    try:
        return httpx.post(url, data=data, headers={"Accept": "application/json"}, timeout=LOGIN_TIMEOUT)
    except httpx.HTTPError as exc:
        raise AuthenticationError(f"Token request to {url} failed: {exc}") from exc


def exchange_code(
    config: OAuthProviderConfig,
    code: str,
    code_verifier: str,
    redirect_uri: str,
) -> dict[str, Any]:
    """Exchange an authorisation code for tokens.

    Raises:
        AuthenticationError: On HTTP errors or a response without
            ``access_token``.
    """
    data: dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
        "client_id": config.client_id,
    }
    if config.client_secret:
        data["client_secret"] = config.client_secret

    response = _post_token(config.token_url, data)
    if response.status_code != 200:
        raise AuthenticationError(
            f"Token exchange failed with status {response.status_code}: {response.text}"
        )
    token_data: dict[str, Any] = response.json()
    if "access_token" not in token_data:
        raise AuthenticationError("Token response missing 'access_token' field")
    return token_data


def login_browser(config: OAuthProviderConfig) -> AuthCredential:
    """Run the Authorization Code + PKCE flow for *config*.

    Requires a TTY so the user can interact with the browser.

    Raises:
        AuthenticationError: If stdin is not interactive, the client id is
            not configured, or any step of the flow fails.
    """
    if not sys.stdin.isatty():
        raise AuthenticationError(
            "Browser login requires an interactive terminal (stdin must be a TTY); "
            "try --device-code"
        )
    if not config.client_id:
        raise AuthenticationError(f"No OAuth client id configured for {config.provider}")

    code_verifier, code_challenge = generate_pkce_pair()
    state = secrets.token_urlsafe(24)
    port = config.callback_port or _find_free_port()
    redirect_uri = f"http://localhost:{port}{config.callback_path}"

    auth_url = build_authorize_url(config, redirect_uri, code_challenge, state)
    code = _wait_for_callback(port, auth_url, state)
    token_data = exchange_code(config, code, code_verifier, redirect_uri)
    return credential_from_token_response(config.provider, token_data)


# --- Device code (RFC 8628) ---


def _request_device_code(config: OAuthProviderConfig) -> dict[str, Any]:
    assert config.device_authorization_url
    data: dict[str, str] = {"client_id": config.client_id}
    if config.scopes:
        data["scope"] = " ".join(config.scopes)

    response = _post_token(config.device_authorization_url, data)
    if response.status_code != 200:
        raise AuthenticationError(
            f"Device authorization request failed with status "
            f"{response.status_code}: {response.text}"
        )
    result: dict[str, Any] = response.json()
    if "device_code" not in result:
        raise AuthenticationError("Device authorization response missing 'device_code'")
    if "user_code" not in result:
        raise AuthenticationError("Device authorization response missing 'user_code'")
    return result


def _poll_for_token(
    config: OAuthProviderConfig,
    device_code: str,
    interval: int,
    expires_in: int,
) -> dict[str, Any]:
    """Poll the token endpoint per :rfc:`8628` section 3.4."""
    deadline = time.monotonic() + expires_in
    poll_interval = max(interval, 1)

    data: dict[str, str] = {
        "grant_type": "urn:ietf:params:oauth:grant-type:device_code",
        "device_code": device_code,
        "client_id": config.client_id,
    }
    if config.client_secret:
        data["client_secret"] = config.client_secret

    while time.monotonic() < deadline:
        time.sleep(poll_interval)

        response = _post_token(config.token_url, data)
        try:
            token_data: dict[str, Any] = response.json()
        except ValueError as exc:
            raise AuthenticationError(f"Token polling returned invalid JSON: {exc}") from exc

        if response.status_code == 200 and "access_token" in token_data:
            return token_data

        error = token_data.get("error", "")
        if error == "authorization_pending":
            continue
        if error == "slow_down":
            poll_interval += 5
            continue
        if error == "access_denied":
            raise AuthenticationError("Authorization denied by user")
        if error == "expired_token":
            raise AuthenticationError("Device code expired -- please try again")
        desc = token_data.get("error_description", error or f"HTTP {response.status_code}")
        raise AuthenticationError(f"Device code flow failed: {desc}")

    raise AuthenticationError("Device code expired -- please try again")


def login_device_code(config: OAuthProviderConfig) -> AuthCredential:
    """Run the Device Authorization Grant for *config*.

    Prints the verification URL and user code to stderr, then blocks
    polling the token endpoint.

    Raises:
        AuthenticationError: If the dialect has no device endpoint, the user
            denies access, or the code expires.
    """
    if not config.device_authorization_url:
        raise AuthenticationError(f"{config.provider} does not support device code login")
    if not config.client_id:
        raise AuthenticationError(f"No OAuth client id configured for {config.provider}")

    device_data = _request_device_code(config)
    verification_uri: str = device_data.get(
        "verification_uri_complete",
        device_data.get("verification_uri", device_data.get("verification_url", "")),
    )

    sys.stderr.write("\n")
    sys.stderr.write(f"Go to: {verification_uri}\n")
    sys.stderr.write(f"Enter code: {device_data['user_code']}\n")
    sys.stderr.write("\nWaiting for authorization...\n")
    sys.stderr.flush()

    token_data = _poll_for_token(
        config,
        device_data["device_code"],
        int(device_data.get("interval", 5)),
        int(device_data.get("expires_in", 900)),
    )
    return credential_from_token_response(config.provider, token_data)


# --- Paste token ---


def login_paste_token(provider: str, stream: TextIO) -> AuthCredential:
    """Read one pasted token line from *stream*.

    Pasted tokens carry no expiry and no refresh token; they stay
    ``active`` until replaced or deleted.

    Raises:
        AuthenticationError: If the line is empty.
    """
    token = stream.readline().strip()
    if not token:
        raise AuthenticationError("No token provided")
    return AuthCredential(
        provider=provider,
        access_token=token,
        auth_method="token",
    )


def fetch_user_email(access_token: str, config: OAuthProviderConfig) -> str:
    """Return the account email from *config*'s identity endpoint.

    Raises:
        AuthenticationError: If the dialect has no identity endpoint or the
            request fails.
    """
    if not config.userinfo_url:
        raise AuthenticationError(f"{config.provider} has no identity endpoint")
    try:
        response = httpx.get(
            config.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=LOGIN_TIMEOUT,
        )
        response.raise_for_status()
        return str(response.json().get("email", ""))
    except httpx.HTTPError as exc:
        raise AuthenticationError(f"Fetching user info failed: {exc}") from exc


def expires_label(credential: AuthCredential) -> str:
    """Human-readable local expiry, or ``""`` for tokens that never expire."""
    if credential.expires_at is None:
        return ""
    expires_at = credential.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at.astimezone().strftime("%Y-%m-%d %H:%M")