"""OpenAI-wire HTTP adapter, the reference :class:`ChatAdapter`.

Every HTTP-compatible family (OpenAI, OpenRouter, Groq, Zhipu, Gemini's
compatibility endpoint, Nvidia, Ollama, Moonshot, DeepSeek, Cerebras,
VolcEngine, vLLM, Qwen, ...) is served by :class:`HTTPChatAdapter`; only
the base URL and key differ.

Request shaping follows a few model-specific rules kept as data tables:

* :data:`~modelroute.families.WIRE_PREFIXES` -- family segments stripped
  from the model id before it goes on the wire
  (``groq/openai/gpt-oss-120b`` sends ``openai/gpt-oss-120b``).
* :data:`COMPLETION_TOKENS_MARKERS` -- models that want
  ``max_completion_tokens`` instead of ``max_tokens``.
* :data:`TEMPERATURE_OVERRIDES` -- models that only accept one temperature.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from modelroute.exceptions import DecodeError
from modelroute.families import WIRE_PREFIXES
from modelroute.models import FunctionCall, LLMResult, ToolCall, UsageInfo
from modelroute.providers.base import (
    DEFAULT_CHAT_TIMEOUT,
    HTTPAdapterBase,
    Message,
    ToolDefinition,
    decoding,
    flatten_content,
    parse_tool_arguments,
)

logger = logging.getLogger(__name__)

COMPLETION_TOKENS_MARKERS: tuple[str, ...] = ("glm", "o1")
"""Lower-cased substrings selecting the ``max_completion_tokens`` field."""

TEMPERATURE_OVERRIDES: tuple[tuple[tuple[str, ...], float], ...] = (
    # Kimi K2 rejects anything but 1.0.
    (("kimi", "k2"), 1.0),
)
"""(substrings that must all appear in the lower-cased model, forced temperature)."""


def strip_wire_prefix(model: str) -> str:
    """Drop a leading family segment the upstream API does not expect."""
    prefix, sep, rest = model.partition("/")
    if sep and prefix in WIRE_PREFIXES:
        return rest
    return model


def temperature_for(model: str, requested: float) -> float:
    """Apply :data:`TEMPERATURE_OVERRIDES` to *requested*."""
    lowered = model.lower()
    for markers, forced in TEMPERATURE_OVERRIDES:
        if all(marker in lowered for marker in markers):
            return forced
    return requested


def max_tokens_field(model: str) -> str:
    """Return the wire field name carrying the token limit for *model*."""
    lowered = model.lower()
    if any(marker in lowered for marker in COMPLETION_TOKENS_MARKERS):
        return "max_completion_tokens"
    return "max_tokens"


class HTTPChatAdapter(HTTPAdapterBase):
    """Talk to any OpenAI-compatible ``/chat/completions`` endpoint.

    Args:
        api_key: Bearer token.  When empty, no ``Authorization`` header is
            sent at all.
        api_base: Base URL; a trailing ``/`` is ignored.
        proxy: Optional outbound proxy URL.
        timeout: Per-request timeout in seconds.
        transport: Optional custom transport (tests).

    Example::

        adapter = HTTPChatAdapter("gsk_...", "https://api.groq.com/openai/v1")
        result = await adapter.chat(
            [{"role": "user", "content": "hi"}], model="groq/llama-3.1-70b"
        )
    """

    def __init__(
        self,
        api_key: str,
        api_base: str,
        proxy: str = "",
        timeout: float = DEFAULT_CHAT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(proxy=proxy, timeout=timeout, transport=transport)
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")

    @property
    def name(self) -> str:
        return "http"

    def build_payload(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
        model: str,
        options: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        """Compose the JSON request body without sending it."""
        wire_model = strip_wire_prefix(model)
        payload: dict[str, Any] = {"model": wire_model, "messages": messages}

        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        options = options or {}
        max_tokens = options.get("max_tokens")
        if isinstance(max_tokens, int) and not isinstance(max_tokens, bool):
            payload[max_tokens_field(wire_model)] = max_tokens

        temperature = options.get("temperature")
        if isinstance(temperature, (int, float)) and not isinstance(temperature, bool):
            payload["temperature"] = temperature_for(wire_model, float(temperature))

        return payload

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        model: str = "",
        options: Optional[dict[str, Any]] = None,
    ) -> LLMResult:
        payload = self.build_payload(messages, tools, model or self.default_model(), options)
        headers: dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        data = await self._post_json(f"{self.api_base}/chat/completions", payload, headers)
        return parse_chat_completion(data)


def parse_chat_completion(data: Any) -> LLMResult:
    """Normalise an OpenAI ``chat.completion`` envelope.

    An empty ``choices`` list is not an error: it yields empty content with
    finish reason ``"stop"``.  Null usage counts read as zero.

    Raises:
        DecodeError: If *data* is not a JSON object or its choices,
            message, or tool calls have the wrong shape.
    """
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")

    with decoding("chat completion"):
        usage = None
        if isinstance(data.get("usage"), dict):
            usage = UsageInfo.model_validate(data["usage"])

        choices = data.get("choices") or []
        if not choices:
            return LLMResult(content="", finish_reason="stop", usage=usage)

        choice = choices[0]
        if not isinstance(choice, dict):
            raise DecodeError(f"Expected a choice object, got {type(choice).__name__}")
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise DecodeError(f"Expected a message object, got {type(message).__name__}")

        tool_calls: list[ToolCall] = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function") or {}
            name = function.get("name", "") or ""
            arguments = function.get("arguments", "") or ""
            tool_calls.append(
                ToolCall(
                    id=raw_call.get("id", "") or "",
                    type=raw_call.get("type", "") or "",
                    function=FunctionCall(
                        name=name,
                        arguments=arguments,
                        thought_signature=function.get("thought_signature", "") or "",
                    ),
                    name=name,
                    arguments=parse_tool_arguments(arguments),
                )
            )

        return LLMResult(
            content=flatten_content(message.get("content")),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "",
            usage=usage,
        )

