"""Auth commands -- log in to OAuth-backed providers and inspect credentials.

Provides the ``modelroute auth`` sub-command group.  A successful login
stores the credential and flips the provider's ``auth_method`` in the
config file so the resolver picks the OAuth-backed adapter.

Typical workflow::

    modelroute auth login --provider openai           # browser login
    modelroute auth login --provider openai --device-code
    modelroute auth status
    modelroute auth logout --provider openai
"""

from __future__ import annotations

import sys
from typing import Optional

import typer

from modelroute.auth import CredentialManager, FileCredentialStore
from modelroute.exceptions import ModelRouteError
from modelroute.output import error, get_output, info, success, suggest, warning

auth_app = typer.Typer(no_args_is_help=True)

SUPPORTED_PROVIDERS = ("openai", "anthropic", "google-antigravity")

# Credential family -> legacy providers field whose auth_method tracks it.
_CONFIG_FIELDS = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google-antigravity": "antigravity",
}

ANTIGRAVITY_DEFAULT_MODEL = "gemini-3-flash"


def _fail(exc: ModelRouteError) -> typer.Exit:
    """Report *exc* and return the matching :class:`typer.Exit` to raise."""
    error(str(exc))
    hint = getattr(exc, "hint", None)
    if hint:
        suggest(f"Run: {hint}")
    return typer.Exit(code=exc.exit_code)


def _manager() -> CredentialManager:
    return CredentialManager(FileCredentialStore())


def _set_auth_method(family: str, auth_method: str) -> None:
    """Persist *auth_method* on the provider field backing *family*."""
    from modelroute.config import load_config, save_config

    config = load_config()
    endpoint = config.providers.get(_CONFIG_FIELDS[family])
    if endpoint is None:
        return
    endpoint.auth_method = auth_method
    if family == "google-antigravity" and auth_method and not config.agents.defaults.provider:
        config.agents.defaults.provider = "antigravity"
        config.agents.defaults.model = ANTIGRAVITY_DEFAULT_MODEL
    save_config(config)


@auth_app.command("login")
def auth_login(
    provider: str = typer.Option(
        ..., "--provider", "-p", help="Provider: openai, anthropic, google-antigravity."
    ),
    device_code: bool = typer.Option(
        False, "--device-code", help="Use the device-code flow (headless terminals)."
    ),
) -> None:
    """Log in to a provider and store the credential.

    ``openai`` uses a browser (PKCE) or device-code flow, ``anthropic``
    reads a pasted token from stdin, and ``google-antigravity`` uses a
    browser flow followed by Cloud Code project discovery.

    Example::

        modelroute auth login --provider openai
        echo "$TOKEN" | modelroute auth login --provider anthropic
    """
    from modelroute.auth import login as flows
    from modelroute.auth.oauth import default_oauth_configs
    from modelroute.families import credential_family

    family = credential_family(provider)
    if family not in SUPPORTED_PROVIDERS:
        error(f"Unsupported provider: {provider}")
        suggest(f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}")
        raise typer.Exit(code=2)

    oauth_config = default_oauth_configs().get(family)

    try:
        if family == "anthropic":
            info("Paste your Anthropic token and press Enter:")
            credential = flows.login_paste_token(family, sys.stdin)
            auth_method = "token"
        elif device_code:
            credential = flows.login_device_code(oauth_config)
            auth_method = "oauth"
        else:
            credential = flows.login_browser(oauth_config)
            auth_method = "oauth"
    except ModelRouteError as exc:
        raise _fail(exc) from None

    if family == "google-antigravity":
        from modelroute.providers.cloudcode import fetch_project_id

        try:
            credential.email = flows.fetch_user_email(credential.access_token, oauth_config)
        except ModelRouteError as exc:
            warning(f"Could not fetch account email: {exc}")
        try:
            credential.project_id = fetch_project_id(credential.access_token)
        except ModelRouteError as exc:
            warning(f"Could not discover Cloud Code project: {exc}")

    _manager().set_credential(family, credential)
    _set_auth_method(family, auth_method)

    label = credential.email or credential.account_id
    success(f"Logged in to {family}" + (f" as {label}" if label else "") + ".")
    suggest("Check it: modelroute auth status")


@auth_app.command("logout")
def auth_logout(
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Provider to log out of (default: all)."
    ),
) -> None:
    """Delete stored credentials and clear the matching ``auth_method``.

    Example::

        modelroute auth logout --provider openai
        modelroute auth logout
    """
    from modelroute.families import credential_family

    manager = _manager()
    if provider is None:
        manager.delete_all_credentials()
        for family in SUPPORTED_PROVIDERS:
            _set_auth_method(family, "")
        success("Logged out of all providers.")
        return

    family = credential_family(provider)
    manager.delete_credential(family)
    if family in _CONFIG_FIELDS:
        _set_auth_method(family, "")
    success(f"Logged out of {family}.")


@auth_app.command("status")
def auth_status() -> None:
    """Show every stored credential with its freshness.

    Example::

        modelroute auth status
        modelroute --json auth status
    """
    from modelroute.auth.login import expires_label

    reports = _manager().list_credentials_with_status()
    if not reports:
        info("No stored credentials.")
        suggest("Log in: modelroute auth login --provider openai")
        return

    headers = ["Provider", "Method", "Status", "Account", "Email", "Project", "Expires"]
    rows = [
        [
            report.provider,
            report.credential.auth_method,
            report.status.value,
            report.credential.account_id or "-",
            report.credential.email or "-",
            report.credential.project_id or "-",
            expires_label(report.credential) or "never",
        ]
        for report in reports
    ]
    get_output().print_table(headers, rows, title="Stored Credentials")


@auth_app.command("models")
def auth_models() -> None:
    """List the Cloud Code models available to the Antigravity account.

    Example::

        modelroute auth models
    """
    from modelroute.providers.cloudcode import fetch_available_models

    try:
        credential = _manager().get_usable_credential("google-antigravity")
    except ModelRouteError as exc:
        raise _fail(exc) from None
    if not credential.project_id:
        error("The stored Antigravity credential has no Cloud Code project.")
        suggest("Log in again: modelroute auth login --provider google-antigravity")
        raise typer.Exit(code=3)

    try:
        models = fetch_available_models(credential.access_token, credential.project_id)
    except ModelRouteError as exc:
        raise _fail(exc) from None
    if not models:
        info("No models available.")
        return

    rows = [
        [model.id, model.display_name or "-", "✗" if model.is_exhausted else "✓"]
        for model in models
    ]
    get_output().print_table(["Model", "Name", "Available"], rows, title="Cloud Code Models")
