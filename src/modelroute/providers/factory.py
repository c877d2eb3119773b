"""Build a :class:`ChatAdapter` for one family from one endpoint.

Both resolution paths end here: a route-table entry, or a legacy
per-family endpoint the resolver picked.  Which constructor runs is decided
by the family's :class:`~modelroute.families.FamilyKind`, so adding an
HTTP-compatible family needs no change in this module.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from modelroute.auth.credential_store import FileCredentialStore
from modelroute.auth.lifecycle import CredentialManager, login_hint
from modelroute.exceptions import AuthenticationError, ConfigurationError
from modelroute.families import (
    ANTHROPIC_API_BASE,
    FamilyDescriptor,
    FamilyKind,
    lookup_protocol,
)
from modelroute.models import ModelRoute, ProviderEndpointConfig, RouterConfig
from modelroute.protocol import extract_protocol
from modelroute.providers.anthropic import AnthropicChatAdapter
from modelroute.providers.base import ChatAdapter
from modelroute.providers.cli_provider import ClaudeCliAdapter, CodexCliAdapter
from modelroute.providers.cloudcode import CloudCodeChatAdapter
from modelroute.providers.codex import CodexChatAdapter, codex_cli_token_source
from modelroute.providers.gateway import GatewayChatAdapter
from modelroute.providers.http_provider import HTTPChatAdapter

logger = logging.getLogger(__name__)

OAUTH_AUTH_METHODS: frozenset[str] = frozenset({"oauth", "token"})
CODEX_CLI_AUTH_METHOD = "codex-cli"

_CLI_ADAPTERS: dict[str, type] = {
    "claude-cli": ClaudeCliAdapter,
    "codex-cli": CodexCliAdapter,
}


def _require_credential(credentials: CredentialManager, family: str) -> None:
    if credentials.store.get(family) is None:
        raise AuthenticationError(
            f"No credentials for {family}. Run: {login_hint(family)}",
            hint=login_hint(family),
        )


def _build_http(family: FamilyDescriptor, endpoint: ProviderEndpointConfig, default_base: str) -> ChatAdapter:
    if not endpoint.api_key and not endpoint.api_base:
        raise ConfigurationError(
            f"api_key or api_base is required for protocol {family.name!r}"
        )
    return HTTPChatAdapter(
        endpoint.api_key,
        endpoint.api_base or default_base,
        proxy=endpoint.proxy,
    )


def build_adapter(
    family: FamilyDescriptor,
    endpoint: ProviderEndpointConfig,
    model_id: str,
    *,
    credentials: CredentialManager,
    workspace: str = ".",
) -> ChatAdapter:
    """Construct the adapter *family* uses for *endpoint*.

    Args:
        family: Descriptor of the selected family.
        endpoint: Key, base URL, proxy, auth method and connect mode.
        model_id: Effective model id; local gateways bind it as their default.
        credentials: Lifecycle manager backing OAuth families.
        workspace: Working directory for CLI-bridge families.

    Returns:
        A ready-to-use :class:`ChatAdapter`.

    Raises:
        ConfigurationError: If a required field is missing or the gateway
            connect mode is unsupported.
        AuthenticationError: If an OAuth family has no stored credential.
        TransportError: If a local gateway is unreachable.
    """
    kind = family.kind

    if kind is FamilyKind.HTTP:
        return _build_http(family, endpoint, family.default_api_base)

    if kind is FamilyKind.ANTHROPIC:
        if endpoint.auth_method in OAUTH_AUTH_METHODS:
            _require_credential(credentials, family.credential_key)
            return AnthropicChatAdapter(
                credentials.token_source(family.credential_key),
                api_base=endpoint.api_base,
                proxy=endpoint.proxy,
            )
        return _build_http(family, endpoint, ANTHROPIC_API_BASE)

    if kind is FamilyKind.OPENAI:
        if endpoint.auth_method in OAUTH_AUTH_METHODS:
            _require_credential(credentials, family.credential_key)
            return CodexChatAdapter(
                credentials.token_source(family.credential_key),
                api_base=endpoint.api_base,
                proxy=endpoint.proxy,
            )
        if endpoint.auth_method == CODEX_CLI_AUTH_METHOD:
            return CodexChatAdapter(
                codex_cli_token_source(), api_base=endpoint.api_base, proxy=endpoint.proxy
            )
        return _build_http(family, endpoint, family.default_api_base)

    if kind is FamilyKind.CLOUD_CODE:
        return CloudCodeChatAdapter(
            credentials.token_source(family.credential_key),
            api_base=endpoint.api_base,
            proxy=endpoint.proxy,
        )

    if kind is FamilyKind.CLI_BRIDGE:
        return _CLI_ADAPTERS[family.name](workspace=workspace or ".")

    if kind is FamilyKind.LOCAL_GATEWAY:
        return GatewayChatAdapter.connect(
            endpoint.api_base or family.default_api_base,
            endpoint.connect_mode or family.default_connect_mode,
            model=model_id,
        )

    raise ConfigurationError(f"Family {family.name!r} has no adapter")


def route_workspace(route: ModelRoute, config: Optional[RouterConfig]) -> str:
    """Workspace for a CLI bridge: the route's own, then the agent default, then ``.``."""
    if route.workspace:
        return str(Path(route.workspace).expanduser())
    if config is not None and config.agents.defaults.workspace:
        return str(config.workspace_path())
    return "."


def create_adapter_from_route(
    route: ModelRoute,
    config: Optional[RouterConfig] = None,
    credentials: Optional[CredentialManager] = None,
) -> tuple[ChatAdapter, str]:
    """Build the adapter for a route-table entry.

    Args:
        route: The matched entry.
        config: Full config, consulted for the default workspace.
        credentials: Lifecycle manager for OAuth families.  Defaults to one
            over the on-disk store.

    Returns:
        ``(adapter, model_id)`` where ``model_id`` is the part of
        ``route.model`` after the protocol tag.

    Raises:
        ConfigurationError: If the protocol tag is unknown or the entry is
            missing a required field.

    Example::

        adapter, model_id = create_adapter_from_route(
            ModelRoute(model_name="fast", model="groq/llama-3.1-70b", api_key="gsk_...")
        )
        # model_id == "llama-3.1-70b"
    """
    protocol, model_id = extract_protocol(route.model)
    family = lookup_protocol(protocol)
    if family is None:
        raise ConfigurationError(f"unknown protocol {protocol!r} in model {route.model!r}")

    if credentials is None:
        credentials = default_credential_manager()

    logger.debug("Building %s adapter for route %r", family.name, route.model_name)
    adapter = build_adapter(
        family,
        route,
        model_id,
        credentials=credentials,
        workspace=route_workspace(route, config),
    )
    return adapter, model_id


def default_credential_manager() -> CredentialManager:
    """A :class:`CredentialManager` over the on-disk credential store."""
    return CredentialManager(FileCredentialStore())
