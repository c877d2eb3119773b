"""Google Cloud Code (Antigravity) adapter and project discovery.

The ``antigravity`` family always runs on a stored Google OAuth credential;
there is no API-key path.  Requests wrap a Gemini ``generateContent`` body
in a Cloud Code envelope that names the user's Cloud Code project, which
:func:`fetch_project_id` discovers once at login time.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

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

CLOUD_CODE_BASE = "https://cloudcode-pa.googleapis.com"
DEFAULT_MODEL = "gemini-3-flash"
DISCOVERY_TIMEOUT = 15.0

_CLIENT_METADATA = {
    "ideType": "IDE_UNSPECIFIED",
    "platform": "PLATFORM_UNSPECIFIED",
    "pluginType": "GEMINI",
}

_FINISH_REASONS = {"STOP": "stop", "MAX_TOKENS": "length"}


@dataclass
class CloudCodeModel:
    """One model offered to a Cloud Code project."""

    id: str
    display_name: str = ""
    is_exhausted: bool = False


def _discovery_post(path: str, access_token: str, body: dict[str, Any]) -> dict[str, Any]:
    url = f"{CLOUD_CODE_BASE}/v1internal:{path}"
    try:
        response = httpx.post(
            url,
            json=body,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=DISCOVERY_TIMEOUT,
        )
    except httpx.HTTPError as exc:
        raise TransportError(f"Request to {url} failed: {exc}") from exc
    if response.status_code in (401, 403):
        raise AuthenticationError(
            f"Cloud Code rejected the token ({response.status_code}): {response.text}",
            hint="modelroute auth login --provider google-antigravity",
        )
    if not response.is_success:
        raise TransportError(
            f"Cloud Code request failed with status {response.status_code}: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise DecodeError(f"Failed to decode response from {url}: {exc}") from exc


def fetch_project_id(access_token: str) -> str:
    """Return the Cloud Code project assigned to the signed-in account.

    Raises:
        TransportError: If the request fails.
        AuthenticationError: If the token is rejected or no project is
            assigned (Cloud Code Assist not enabled).
    """
    data = _discovery_post("loadCodeAssist", access_token, {"metadata": _CLIENT_METADATA})
    project = data.get("cloudaicompanionProject")
    if isinstance(project, dict):
        project = project.get("id")
    if not project:
        raise AuthenticationError("No Cloud Code project is assigned to this account")
    return str(project)


def fetch_available_models(access_token: str, project_id: str) -> list[CloudCodeModel]:
    """List the models *project_id* may use, flagging exhausted quotas."""
    data = _discovery_post("fetchAvailableModels", access_token, {"project": project_id})
    models: list[CloudCodeModel] = []
    for model_id, info in sorted((data.get("models") or {}).items()):
        info = info or {}
        quota = info.get("quotaInfo") or {}
        remaining = quota.get("remainingFraction")
        models.append(
            CloudCodeModel(
                id=model_id,
                display_name=info.get("displayName", ""),
                is_exhausted=remaining is not None and float(remaining) <= 0,
            )
        )
    return models


# --- Wire translation ---


def to_gemini_request(
    messages: list[Message],
    tools: Optional[list[ToolDefinition]],
    options: dict[str, Any],
) -> dict[str, Any]:
    """Translate OpenAI-shaped messages into a Gemini ``generateContent`` body."""
    system_parts: list[dict[str, str]] = []
    contents: list[dict[str, Any]] = []
    call_names: dict[str, str] = {}

    for msg in messages:
        role = msg.get("role", "user")
        text = flatten_content(msg.get("content"))
        if role == "system":
            system_parts.append({"text": text})
            continue

        parts: list[dict[str, Any]] = []
        if role == "tool":
            gemini_role = "user"
            name = call_names.get(msg.get("tool_call_id", ""), msg.get("name", ""))
            parts.append({"functionResponse": {"name": name, "response": {"content": text}}})
        elif role == "assistant":
            gemini_role = "model"
            if text:
                parts.append({"text": text})
            for call in msg.get("tool_calls") or []:
                function = call.get("function") or {}
                call_names[call.get("id", "")] = function.get("name", "")
                part: dict[str, Any] = {
                    "functionCall": {
                        "name": function.get("name", ""),
                        "args": parse_tool_arguments(function.get("arguments", "")),
                    }
                }
                if function.get("thought_signature"):
                    part["thoughtSignature"] = function["thought_signature"]
                parts.append(part)
        else:
            gemini_role = "user"
            parts.append({"text": text})

        if contents and contents[-1]["role"] == gemini_role:
            contents[-1]["parts"].extend(parts)
        else:
            contents.append({"role": gemini_role, "parts": parts})

    request: dict[str, Any] = {"contents": contents}
    if system_parts:
        request["systemInstruction"] = {"parts": system_parts}
    if tools:
        declarations = []
        for tool in tools:
            function = tool.get("function", tool)
            declarations.append(
                {
                    "name": function.get("name", ""),
                    "description": function.get("description", ""),
                    "parameters": function.get("parameters") or {"type": "object", "properties": {}},
                }
            )
        request["tools"] = [{"functionDeclarations": declarations}]

    generation: dict[str, Any] = {}
    if isinstance(options.get("max_tokens"), int):
        generation["maxOutputTokens"] = options["max_tokens"]
    if isinstance(options.get("temperature"), (int, float)):
        generation["temperature"] = options["temperature"]
    if generation:
        request["generationConfig"] = generation
    return request


def parse_gemini_response(data: Any) -> LLMResult:
    """Normalise a Cloud Code ``generateContent`` response.

    Raises:
        DecodeError: If the envelope, a candidate, or one of its parts has
            the wrong shape.
    """
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
    with decoding("generateContent"):
        return _parse_gemini_response(data)


def _parse_gemini_response(data: dict[str, Any]) -> LLMResult:
    body = data.get("response", data)

    usage = None
    meta = body.get("usageMetadata")
    if isinstance(meta, dict):
        usage = UsageInfo(
            prompt_tokens=int(meta.get("promptTokenCount") or 0),
            completion_tokens=int(meta.get("candidatesTokenCount") or 0),
            total_tokens=int(meta.get("totalTokenCount") or 0),
        )

    candidates = body.get("candidates") or []
    if not candidates:
        return LLMResult(content="", finish_reason="stop", usage=usage)

    candidate = candidates[0]
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        if part.get("thought"):
            continue
        if "text" in part:
            text_parts.append(part["text"])
        elif "functionCall" in part:
            call = part["functionCall"]
            arguments = call.get("args") or {}
            tool_calls.append(
                ToolCall(
                    id=f"call_{len(tool_calls)}",
                    type="function",
                    function=FunctionCall(
                        name=call.get("name", ""),
                        arguments=json.dumps(arguments),
                        thought_signature=part.get("thoughtSignature", ""),
                    ),
                    name=call.get("name", ""),
                    arguments=arguments,
                )
            )

    if tool_calls:
        finish_reason = "tool_calls"
    else:
        raw_reason = candidate.get("finishReason", "STOP")
        finish_reason = _FINISH_REASONS.get(raw_reason, raw_reason.lower())
    return LLMResult(content="".join(text_parts), tool_calls=tool_calls, finish_reason=finish_reason, usage=usage)


class CloudCodeChatAdapter(HTTPAdapterBase):
    """Call Cloud Code ``generateContent`` with a Google OAuth token.

    Args:
        token_source: Returns a usable ``google-antigravity`` credential.
            Its ``project_id`` is sent with every request.
        api_base: Override for the Cloud Code base URL.
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
        self.api_base = (api_base or CLOUD_CODE_BASE).rstrip("/")

    @property
    def name(self) -> str:
        return "cloudcode"

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
        payload: dict[str, Any] = {
            "model": model or self.default_model(),
            "request": to_gemini_request(messages, tools, options or {}),
        }
        if credential.project_id:
            payload["project"] = credential.project_id

        headers = {"Authorization": f"Bearer {credential.access_token}"}
        data = await self._post_json(f"{self.api_base}/v1internal:generateContent", payload, headers)
        return parse_gemini_response(data)
