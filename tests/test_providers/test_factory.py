"""Tests for building adapters from route-table entries."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

from modelroute.auth.credential_store import AuthCredential, MemoryCredentialStore
from modelroute.auth.lifecycle import CredentialManager
from modelroute.exceptions import AuthenticationError, ConfigurationError, TransportError
from modelroute.families import FAMILIES
from modelroute.models import ModelRoute, ProviderEndpointConfig, RouterConfig
from modelroute.providers.anthropic import AnthropicChatAdapter
from modelroute.providers.cli_provider import ClaudeCliAdapter, CodexCliAdapter
from modelroute.providers.cloudcode import CloudCodeChatAdapter
from modelroute.providers.codex import CodexChatAdapter
from modelroute.providers.factory import (
    build_adapter,
    create_adapter_from_route,
    route_workspace,
)
from modelroute.providers.gateway import GatewayChatAdapter
from modelroute.providers.http_provider import HTTPChatAdapter


def _route(model: str, **kwargs: str) -> ModelRoute:
    return ModelRoute(model_name="test", model=model, **kwargs)


def _with_credential(credentials: CredentialManager, family: str) -> CredentialManager:
    credentials.set_credential(family, AuthCredential(provider=family, access_token="tok"))
    return credentials


class TestHttpRoutes:
    def test_groq(self, credentials: CredentialManager) -> None:
        adapter, model_id = create_adapter_from_route(
            _route("groq/openai/gpt-oss-120b", api_key="gsk"), credentials=credentials
        )
        assert isinstance(adapter, HTTPChatAdapter)
        assert adapter.api_base == "https://api.groq.com/openai/v1"
        assert adapter.api_key == "gsk"
        assert model_id == "openai/gpt-oss-120b"

    def test_bare_model_is_openai(self, credentials: CredentialManager) -> None:
        adapter, model_id = create_adapter_from_route(_route("gpt-4o", api_key="sk"), credentials=credentials)
        assert adapter.api_base == "https://api.openai.com/v1"
        assert model_id == "gpt-4o"

    def test_api_base_override(self, credentials: CredentialManager) -> None:
        adapter, _ = create_adapter_from_route(
            _route("vllm/qwen2", api_base="http://gpu-box:8000/v1/"), credentials=credentials
        )
        assert adapter.api_base == "http://gpu-box:8000/v1"
        assert adapter.api_key == ""

    def test_missing_key_and_base(self, credentials: CredentialManager) -> None:
        with pytest.raises(ConfigurationError, match="api_key or api_base is required for protocol 'openai'"):
            create_adapter_from_route(_route("openai/gpt-4o"), credentials=credentials)

    def test_anthropic_api_key(self, credentials: CredentialManager) -> None:
        adapter, model_id = create_adapter_from_route(
            _route("anthropic/claude-3-sonnet", api_key="sk-ant"), credentials=credentials
        )
        assert isinstance(adapter, HTTPChatAdapter)
        assert adapter.api_base == "https://api.anthropic.com/v1"
        assert model_id == "claude-3-sonnet"

    def test_unknown_protocol(self, credentials: CredentialManager) -> None:
        with pytest.raises(ConfigurationError, match="unknown protocol 'mistral'"):
            create_adapter_from_route(_route("mistral/large", api_key="k"), credentials=credentials)

    def test_legacy_synonym_is_not_a_protocol(self, credentials: CredentialManager) -> None:
        with pytest.raises(ConfigurationError, match="unknown protocol"):
            create_adapter_from_route(_route("gpt/gpt-4o", api_key="k"), credentials=credentials)


class TestOAuthRoutes:
    def test_anthropic_oauth_requires_credential(self, credentials: CredentialManager) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            create_adapter_from_route(
                _route("anthropic/claude-sonnet-4-5", auth_method="oauth"), credentials=credentials
            )
        assert exc_info.value.hint == "modelroute auth login --provider anthropic"

    def test_anthropic_token(self, credentials: CredentialManager) -> None:
        adapter, _ = create_adapter_from_route(
            _route("anthropic/claude-sonnet-4-5", auth_method="token"),
            credentials=_with_credential(credentials, "anthropic"),
        )
        assert isinstance(adapter, AnthropicChatAdapter)

    def test_openai_oauth(self, credentials: CredentialManager) -> None:
        adapter, model_id = create_adapter_from_route(
            _route("openai/gpt-5.1-codex", auth_method="oauth"),
            credentials=_with_credential(credentials, "openai"),
        )
        assert isinstance(adapter, CodexChatAdapter)
        assert model_id == "gpt-5.1-codex"

    def test_openai_codex_cli(self, credentials: CredentialManager) -> None:
        # The Codex CLI file is read per call, not at build time.
        adapter, _ = create_adapter_from_route(
            _route("openai/gpt-5", auth_method="codex-cli"), credentials=credentials
        )
        assert isinstance(adapter, CodexChatAdapter)

    def test_antigravity_builds_without_credential(self, credentials: CredentialManager) -> None:
        adapter, model_id = create_adapter_from_route(
            _route("antigravity/gemini-3-flash"), credentials=credentials
        )
        assert isinstance(adapter, CloudCodeChatAdapter)
        assert model_id == "gemini-3-flash"

    def test_oauth_adapters_honour_api_base(self, credentials: CredentialManager) -> None:
        _with_credential(credentials, "anthropic")
        _with_credential(credentials, "openai")

        anthropic, _ = create_adapter_from_route(
            _route("anthropic/claude-sonnet-4-5", auth_method="token", api_base="https://proxy.local/v1/"),
            credentials=credentials,
        )
        codex, _ = create_adapter_from_route(
            _route("openai/gpt-5", auth_method="oauth", api_base="https://proxy.local/codex"),
            credentials=credentials,
        )
        cloud, _ = create_adapter_from_route(
            _route("antigravity/gemini-3-flash", api_base="https://sandbox.local"),
            credentials=credentials,
        )

        assert isinstance(anthropic, AnthropicChatAdapter)
        assert anthropic.api_base == "https://proxy.local/v1"
        assert isinstance(codex, CodexChatAdapter)
        assert codex.api_base == "https://proxy.local/codex"
        assert isinstance(cloud, CloudCodeChatAdapter)
        assert cloud.api_base == "https://sandbox.local"

    def test_oauth_adapters_default_api_base(self, credentials: CredentialManager) -> None:
        adapter, _ = create_adapter_from_route(
            _route("openai/gpt-5", auth_method="oauth"),
            credentials=_with_credential(credentials, "openai"),
        )
        assert adapter.api_base == "https://chatgpt.com/backend-api/codex"


class TestCliRoutes:
    def test_claude_cli_workspace(self, credentials: CredentialManager, tmp_path: Path) -> None:
        adapter, model_id = create_adapter_from_route(
            _route("claude-cli/opus", workspace=str(tmp_path)), credentials=credentials
        )
        assert isinstance(adapter, ClaudeCliAdapter)
        assert adapter.workspace == str(tmp_path)
        assert model_id == "opus"

    def test_protocol_alias(self, credentials: CredentialManager) -> None:
        adapter, _ = create_adapter_from_route(_route("codexcli/gpt-5"), credentials=credentials)
        assert isinstance(adapter, CodexCliAdapter)

    def test_route_workspace_falls_back_to_agent_default(self) -> None:
        config = RouterConfig()
        assert route_workspace(_route("claude-cli/opus"), config) == str(config.workspace_path())
        assert route_workspace(_route("claude-cli/opus"), None) == "."


class TestGatewayRoutes:
    def test_copilot_reachable(self, credentials: CredentialManager) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]
            adapter, model_id = create_adapter_from_route(
                _route("copilot/gpt-4.1", api_base=f"127.0.0.1:{port}"), credentials=credentials
            )
        assert isinstance(adapter, GatewayChatAdapter)
        assert adapter.api_base == f"http://127.0.0.1:{port}/v1"
        assert adapter.default_model() == "gpt-4.1"
        assert model_id == "gpt-4.1"

    def test_copilot_unreachable(self, credentials: CredentialManager) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", 0))
            port = probe.getsockname()[1]
        with pytest.raises(TransportError):
            create_adapter_from_route(
                _route("github-copilot/gpt-4.1", api_base=f"127.0.0.1:{port}"), credentials=credentials
            )

    def test_copilot_grpc_unsupported(self, credentials: CredentialManager) -> None:
        with pytest.raises(ConfigurationError, match="connect mode"):
            create_adapter_from_route(
                _route("github-copilot/gpt-4.1", connect_mode="grpc"), credentials=credentials
            )


class TestBuildAdapter:
    def test_every_http_family_builds_with_a_key(self) -> None:
        credentials = CredentialManager(MemoryCredentialStore())
        endpoint = ProviderEndpointConfig(api_key="k", api_base="http://override")
        for family in FAMILIES.values():
            if family.needs_credentials:
                adapter = build_adapter(family, endpoint, "m", credentials=credentials)
                assert isinstance(adapter, HTTPChatAdapter), family.name
