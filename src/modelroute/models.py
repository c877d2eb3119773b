"""Canonical Pydantic models shared across modelroute.

The models fall into two groups:

**Configuration models** -- read from the user's JSON config and treated as
read-only input by the resolver:
    :class:`ProviderEndpointConfig`, :class:`ModelRoute`,
    :class:`ProvidersConfig`, :class:`AgentDefaults`, :class:`AgentsConfig`,
    and :class:`RouterConfig`.

**Chat result models** -- the canonical shape every adapter normalises its
wire response into:
    :class:`FunctionCall`, :class:`ToolCall`, :class:`UsageInfo`, and
    :class:`LLMResult`.

Configuration models use ``extra="allow"`` so that keys owned by other
tools sharing the same config file survive a load/save round trip.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Provider endpoints ---


class ProviderEndpointConfig(BaseModel):
    """One configured provider account.

    The identity of an endpoint is the family it is stored under (the
    attribute name on :class:`ProvidersConfig`), so the model itself carries
    no name.

    Example::

        ProviderEndpointConfig(api_key="sk-...", proxy="http://127.0.0.1:8080")
    """

    model_config = ConfigDict(extra="allow")

    api_key: str = Field(default="", description="API key sent as a bearer token")
    api_base: str = Field(default="", description="Base URL overriding the family default")
    proxy: str = Field(default="", description="Outbound HTTP proxy URL")
    auth_method: str = Field(
        default="",
        description="Auth method: '', token, oauth, codex-cli",
    )
    connect_mode: str = Field(
        default="", description="Connect mode for local gateways: http, grpc"
    )

    def is_populated(self) -> bool:
        """Return ``True`` when a key, base URL, or auth method is set."""
        return bool(self.api_key or self.api_base or self.auth_method)


class ModelRoute(ProviderEndpointConfig):
    """A named route-table entry: a logical name bound to ``protocol/model-id``.

    Example::

        ModelRoute(
            model_name="fast",
            model="groq/llama-3.1-70b-versatile",
            api_key="gsk_...",
        )
    """

    model_name: str = Field(description="Logical name callers request")
    model: str = Field(description="Protocol-qualified model string, e.g. openai/gpt-4o")
    workspace: str = Field(
        default="", description="Working directory for CLI-bridge families"
    )


# --- Legacy per-family fields ---


class ProvidersConfig(BaseModel):
    """Legacy per-family endpoint configuration.

    Superseded by :attr:`RouterConfig.model_list` but still honoured as a
    fallback surface.  :func:`~modelroute.migration.convert_providers_to_model_list`
    turns these fields into route-table entries.
    """

    model_config = ConfigDict(extra="allow")

    anthropic: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    openai: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    openrouter: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    groq: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    zhipu: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    vllm: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    gemini: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    nvidia: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    ollama: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    moonshot: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    shengsuanyun: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    deepseek: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    cerebras: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    volcengine: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    github_copilot: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    antigravity: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)
    qwen: ProviderEndpointConfig = Field(default_factory=ProviderEndpointConfig)

    def get(self, field_name: str) -> Optional[ProviderEndpointConfig]:
        """Return the endpoint stored under *field_name*, or ``None`` if unknown."""
        value = getattr(self, field_name, None)
        return value if isinstance(value, ProviderEndpointConfig) else None

    def is_populated(self) -> bool:
        """Return ``True`` if any family has any non-empty field."""
        for name in type(self).model_fields:
            endpoint = getattr(self, name)
            if endpoint.is_populated() or endpoint.proxy or endpoint.connect_mode:
                return True
        return False


# --- Agent defaults ---


class AgentDefaults(BaseModel):
    """Default model and provider used when a caller does not name one."""

    model_config = ConfigDict(extra="allow")

    workspace: str = Field(default="~/.modelroute/workspace")
    provider: str = Field(
        default="", description="Explicit legacy provider family (synonyms accepted)"
    )
    model: str = Field(default="glm-4.7")
    max_tokens: int = Field(default=8192, ge=1)
    temperature: float = Field(default=0.7, ge=0.0)


class AgentsConfig(BaseModel):
    """Container for agent-level settings (``agents.defaults`` in JSON)."""

    model_config = ConfigDict(extra="allow")

    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class RouterConfig(BaseModel):
    """Top-level configuration consumed by the resolver.

    Example::

        RouterConfig.model_validate({
            "agents": {"defaults": {"model": "fast"}},
            "model_list": [
                {"model_name": "fast", "model": "groq/llama-3.1-70b", "api_key": "k"},
            ],
        })
    """

    model_config = ConfigDict(extra="allow")

    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    model_list: list[ModelRoute] = Field(default_factory=list)

    def has_providers_config(self) -> bool:
        """Return ``True`` when the legacy per-family surface is populated."""
        return self.providers.is_populated()

    def get_model_config(self, name: str) -> Optional[ModelRoute]:
        """Return the first route whose logical name or model string equals *name*."""
        for route in self.model_list:
            if route.model_name == name or route.model == name:
                return route
        return None

    def workspace_path(self) -> Path:
        """The agent workspace with ``~`` expanded."""
        return Path(self.agents.defaults.workspace).expanduser()


# --- Chat results ---


class FunctionCall(BaseModel):
    """The function half of a tool call, as it appeared on the wire."""

    name: str = ""
    arguments: str = Field(default="", description="Raw JSON argument string")
    thought_signature: str = ""


class ToolCall(BaseModel):
    """A normalised tool call requested by the model.

    ``arguments`` is the best-effort parsed form of ``function.arguments``.
    When the raw string is not a JSON object it degrades to
    ``{"raw": <string>}`` rather than failing the call.
    """

    id: str = ""
    type: str = "function"
    function: Optional[FunctionCall] = None
    name: str = ""
    arguments: dict[str, Any] = Field(default_factory=dict)


class UsageInfo(BaseModel):
    """Token accounting reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @field_validator("prompt_tokens", "completion_tokens", "total_tokens", mode="before")
    @classmethod
    def _null_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class LLMResult(BaseModel):
    """The canonical result every adapter returns from ``chat``."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str = "stop"
    usage: Optional[UsageInfo] = None
