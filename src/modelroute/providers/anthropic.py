"""Anthropic Messages API adapter backed by a stored OAuth or pasted token.

Used when the ``anthropic`` family is configured with ``auth_method``
``oauth`` or ``token``.  API-key users go through
:class:`~modelroute.providers.http_provider.HTTPChatAdapter` instead.

The adapter asks its token source for a credential before every call, so a
refresh performed by :class:`~modelroute.auth.lifecycle.CredentialManager`
is picked up without rebuilding the adapter.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from modelroute.families import ANTHROPIC_API_BASE
from modelroute.exceptions import DecodeError
from modelroute.models import FunctionCall, LLMResult, ToolCall, UsageInfo
from modelroute.providers.base import (
    DEFAULT_CHAT_TIMEOUT,
    HTTPAdapterBase,
    Message,
    TokenSource,
    ToolDefinition,
    fetch_credential,
    decoding,
    flatten_content,
    parse_tool_arguments,
)

ANTHROPIC_VERSION = "2023-06-01"
OAUTH_BETA = "oauth-2025-04-20"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MODEL = "claude-sonnet-4-5"

_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


def to_anthropic_messages(messages: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Translate OpenAI-shaped messages into ``(system, messages)``.

    System messages are joined into the top-level system prompt.  Tool
    results become ``tool_result`` blocks on a user turn, and consecutive
    turns of the same role are merged because the API requires strict
    alternation.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        role = msg.get("role", "user")
        if role == "system":
            system_parts.append(flatten_content(msg.get("content")))
            continue

        blocks: list[dict[str, Any]] = []
        if role == "tool":
            role = "user"
            blocks.append(
                {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id", ""),
                    "content": flatten_content(msg.get("content")),
                }
            )
        else:
            text = flatten_content(msg.get("content"))
            if text:
                blocks.append({"type": "text", "text": text})
            for call in msg.get("tool_calls") or []:
                function = call.get("function") or {}
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.get("id", ""),
                        "name": function.get("name", ""),
                        "input": parse_tool_arguments(function.get("arguments", "")),
                    }
                )

        if converted and converted[-1]["role"] == role:
            converted[-1]["content"].extend(blocks)
        else:
            converted.append({"role": role, "content": blocks})

    return "\n\n".join(p for p in system_parts if p), converted


def to_anthropic_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    """Translate OpenAI function tools into Anthropic tool definitions."""
    result = []
    for tool in tools:
        function = tool.get("function", tool)
        result.append(
            {
                "name": function.get("name", ""),
                "description": function.get("description", ""),
                "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
            }
        )
    return result


def parse_anthropic_response(data: Any) -> LLMResult:
    """Normalise a Messages API response.

    Raises:
        DecodeError: If the envelope or one of its content blocks has the
            wrong shape.
    """
    with decoding("Messages API"):
        return _parse_anthropic_response(data)


def _parse_anthropic_response(data: Any) -> LLMResult:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")

    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in data.get("content") or []:
        if block.get("type") == "text":
            text_parts.append(block.get("text", ""))
        elif block.get("type") == "tool_use":
            arguments = block.get("input") or {}
            tool_calls.append(
                ToolCall(
                    id=block.get("id", ""),
                    type="function",
                    function=FunctionCall(name=block.get("name", ""), arguments=json.dumps(arguments)),
                    name=block.get("name", ""),
                    arguments=arguments,
                )
            )

    usage = None
    if isinstance(data.get("usage"), dict):
        prompt = int(data["usage"].get("input_tokens") or 0)
        completion = int(data["usage"].get("output_tokens") or 0)
        usage = UsageInfo(
            prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion
        )

    stop_reason = data.get("stop_reason") or "end_turn"
    return LLMResult(
        content="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=_STOP_REASONS.get(stop_reason, stop_reason),
        usage=usage,
    )


class AnthropicChatAdapter(HTTPAdapterBase):
    """Call the Anthropic Messages API with an OAuth bearer token.

    Args:
        token_source: Returns a usable ``anthropic`` credential.
        api_base: Override for the API base URL.
        proxy: Optional outbound proxy URL.
        timeout: Per-request timeout in seconds.
        transport: Optional custom transport (tests).
    """

    def __init__(
        self,
        token_source: TokenSource,
        api_base: str = "",
        proxy: str = "",
        timeout: float = DEFAULT_CHAT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(proxy=proxy, timeout=timeout, transport=transport)
        self._token_source = token_source
        self.api_base = (api_base or ANTHROPIC_API_BASE).rstrip("/")

    @property
    def name(self) -> str:
        return "anthropic-oauth"

    def default_model(self) -> str:
        return DEFAULT_MODEL

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        model: str = "",
        options: Optional[dict[str, Any]] = None,
    ) -> LLMResult:
        credential = await fetch_credential(self._token_source)
        options = options or {}

        system, converted = to_anthropic_messages(messages)
        payload: dict[str, Any] = {
            "model": model or self.default_model(),
            "max_tokens": options.get("max_tokens") or DEFAULT_MAX_TOKENS,
            "messages": converted,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = to_anthropic_tools(tools)
        if isinstance(options.get("temperature"), (int, float)):
            payload["temperature"] = options["temperature"]

        headers = {
            "Authorization": f"Bearer {credential.access_token}",
            "anthropic-version": ANTHROPIC_VERSION,
            "anthropic-beta": OAUTH_BETA,
        }
        data = await self._post_json(f"{self.api_base}/messages", payload, headers)
        return parse_anthropic_response(data)
