"""ChatGPT Codex backend adapter (OpenAI Responses API over SSE).

Used for the ``openai`` family when ``auth_method`` is ``oauth``/``token``
(credential from the store) or ``codex-cli`` (credential read from the
Codex CLI's own ``auth.json``).  The backend only answers in streaming
mode, so the adapter reads the server-sent event stream to completion and
normalises the final ``response.completed`` payload.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import httpx
import jwt

from modelroute.auth.credential_store import AuthCredential
from modelroute.exceptions import AuthenticationError, DecodeError, TransportError
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

logger = logging.getLogger(__name__)

CODEX_API_BASE = "https://chatgpt.com/backend-api/codex"
DEFAULT_MODEL = "gpt-5.1-codex"
DEFAULT_INSTRUCTIONS = "You are a helpful assistant."


# --- Codex CLI token source ---


def codex_home() -> Path:
    """The Codex CLI home directory (``$CODEX_HOME`` or ``~/.codex``)."""
    return Path(os.environ.get("CODEX_HOME", "") or Path.home() / ".codex")


def _token_expiry(access_token: str) -> Optional[datetime]:
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return datetime.fromtimestamp(exp, tz=timezone.utc) if isinstance(exp, (int, float)) else None


def read_codex_cli_credential(path: Optional[Path] = None) -> AuthCredential:
    """Load the token the Codex CLI stored after ``codex login``.

    Raises:
        AuthenticationError: If the file is missing or has no access token.
    """
    path = path or codex_home() / "auth.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise AuthenticationError(
            f"Codex CLI credentials not found at {path}", hint="codex login"
        ) from exc
    except (OSError, ValueError) as exc:
        raise AuthenticationError(f"Cannot read Codex CLI credentials at {path}: {exc}") from exc

    tokens = data.get("tokens") or {}
    access_token = tokens.get("access_token")
    if not access_token:
        raise AuthenticationError(f"No access token in {path}", hint="codex login")

    return AuthCredential(
        provider="openai",
        access_token=access_token,
        refresh_token=tokens.get("refresh_token", ""),
        expires_at=_token_expiry(access_token),
        account_id=tokens.get("account_id", ""),
        auth_method="codex-cli",
    )


def codex_cli_token_source(path: Optional[Path] = None) -> TokenSource:
    """A token source that re-reads the Codex CLI credential on every call."""
    return lambda: read_codex_cli_credential(path)


# --- Wire translation ---


def to_responses_input(messages: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Translate OpenAI chat messages into ``(instructions, input items)``."""
    instructions: list[str] = []
    items: list[dict[str, Any]] = []

    for msg in messages:
        role = msg.get("role", "user")
        text = flatten_content(msg.get("content"))
        if role == "system":
            instructions.append(text)
        elif role == "tool":
            items.append(
                {"type": "function_call_output", "call_id": msg.get("tool_call_id", ""), "output": text}
            )
        elif role == "assistant":
            if text:
                items.append(
                    {
                        "type": "message",
                        "role": "assistant",
                        "content": [{"type": "output_text", "text": text}],
                    }
                )
            for call in msg.get("tool_calls") or []:
                function = call.get("function") or {}
                items.append(
                    {
                        "type": "function_call",
                        "call_id": call.get("id", ""),
                        "name": function.get("name", ""),
                        "arguments": function.get("arguments", ""),
                    }
                )
        else:
            items.append(
                {"type": "message", "role": "user", "content": [{"type": "input_text", "text": text}]}
            )

    return "\n\n".join(i for i in instructions if i), items


def to_responses_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    result = []
    for tool in tools:
        function = tool.get("function", tool)
        result.append(
            {
                "type": "function",
                "name": function.get("name", ""),
                "description": function.get("description", ""),
                "parameters": function.get("parameters") or {"type": "object", "properties": {}},
            }
        )
    return result


def parse_responses_output(response: Any) -> LLMResult:
    """Normalise a completed Responses API object.

    Raises:
        DecodeError: If the object or one of its output items has the wrong
            shape.
    """
    if not isinstance(response, dict):
        raise DecodeError(f"Expected a JSON object, got {type(response).__name__}")
    with decoding("Responses API"):
        return _parse_responses_output(response)


def _parse_responses_output(response: dict[str, Any]) -> LLMResult:
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for item in response.get("output") or []:
        if item.get("type") == "message":
            for part in item.get("content") or []:
                if part.get("type") == "output_text":
                    text_parts.append(part.get("text", ""))
        elif item.get("type") == "function_call":
            arguments = item.get("arguments", "") or ""
            tool_calls.append(
                ToolCall(
                    id=item.get("call_id", ""),
                    type="function",
                    function=FunctionCall(name=item.get("name", ""), arguments=arguments),
                    name=item.get("name", ""),
                    arguments=parse_tool_arguments(arguments),
                )
            )

    usage = None
    if isinstance(response.get("usage"), dict):
        raw = response["usage"]
        usage = UsageInfo(
            prompt_tokens=int(raw.get("input_tokens") or 0),
            completion_tokens=int(raw.get("output_tokens") or 0),
            total_tokens=int(raw.get("total_tokens") or 0),
        )

    finish_reason = "tool_calls" if tool_calls else "stop"
    if (response.get("incomplete_details") or {}).get("reason") == "max_output_tokens":
        finish_reason = "length"
    return LLMResult(content="".join(text_parts), tool_calls=tool_calls, finish_reason=finish_reason, usage=usage)


class CodexChatAdapter(HTTPAdapterBase):
    """Call the ChatGPT Codex Responses endpoint.

    Args:
        token_source: Returns a usable ``openai`` credential.
        api_base: Override for the Codex backend base URL.
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
        self.api_base = (api_base or CODEX_API_BASE).rstrip("/")

    @property
    def name(self) -> str:
        return "codex"

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
        instructions, items = to_responses_input(messages)
        payload: dict[str, Any] = {
            "model": model or self.default_model(),
            "instructions": instructions or DEFAULT_INSTRUCTIONS,
            "input": items,
            "store": False,
            "stream": True,
        }
        if tools:
            payload["tools"] = to_responses_tools(tools)
            payload["tool_choice"] = "auto"
            payload["parallel_tool_calls"] = False

        headers = {
            "Authorization": f"Bearer {credential.access_token}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "OpenAI-Beta": "responses=experimental",
            "originator": "codex_cli_rs",
        }
        if credential.account_id:
            headers["chatgpt-account-id"] = credential.account_id

        response = await self._read_stream(f"{self.api_base}/responses", payload, headers)
        return parse_responses_output(response)

    async def _read_stream(
        self, url: str, payload: dict[str, Any], headers: dict[str, str]
    ) -> dict[str, Any]:
        """POST and consume the SSE stream, returning the completed response object."""
        try:
            async with self._get_client().stream("POST", url, json=payload, headers=headers) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        f"API request failed with status {response.status_code}: {body}",
                        status_code=response.status_code,
                        body=body,
                    )
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data or data == "[DONE]":
                        continue
                    try:
                        event = json.loads(data)
                    except ValueError as exc:
                        raise DecodeError(f"Malformed event from {url}: {exc}") from exc
                    if not isinstance(event, dict):
                        raise DecodeError(f"Malformed event from {url}: expected a JSON object")

                    event_type = event.get("type", "")
                    if event_type == "response.completed":
                        return event.get("response") or {}
                    if event_type in ("response.failed", "error"):
                        detail = json.dumps(event.get("response", event))
                        raise TransportError(f"Codex response failed: {detail}", body=detail)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request to {url} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        raise DecodeError(f"Stream from {url} ended without a completed response")
