"""Tests for the OpenAI-wire HTTP adapter."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from modelroute.exceptions import DecodeError, TransportError
from modelroute.providers.base import parse_tool_arguments
from modelroute.providers.http_provider import (
    HTTPChatAdapter,
    max_tokens_field,
    parse_chat_completion,
    strip_wire_prefix,
    temperature_for,
)

USER = [{"role": "user", "content": "hi"}]


def _completion(**message: Any) -> dict[str, Any]:
    return {
        "choices": [{"message": {"role": "assistant", **message}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8},
    }


def _adapter(
    handler: Callable[[httpx.Request], httpx.Response],
    api_key: str = "sk-test",
    api_base: str = "https://api.example.com/v1/",
) -> HTTPChatAdapter:
    return HTTPChatAdapter(api_key, api_base, transport=httpx.MockTransport(handler))


class _Recorder:
    """Capture requests and reply with a fixed response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


class TestRequestShaping:
    @pytest.mark.parametrize(
        ("model", "wire"),
        [
            ("groq/openai/gpt-oss-120b", "openai/gpt-oss-120b"),
            ("moonshot/kimi-k2", "kimi-k2"),
            ("ollama/llama3", "llama3"),
            ("openai/gpt-4o", "openai/gpt-4o"),
            ("gpt-4o", "gpt-4o"),
        ],
    )
    def test_strip_wire_prefix(self, model: str, wire: str) -> None:
        assert strip_wire_prefix(model) == wire

    def test_max_tokens_field(self) -> None:
        assert max_tokens_field("glm-4.7") == "max_completion_tokens"
        assert max_tokens_field("o1-mini") == "max_completion_tokens"
        assert max_tokens_field("GLM-4") == "max_completion_tokens"
        assert max_tokens_field("gpt-4o") == "max_tokens"

    def test_temperature_override(self) -> None:
        assert temperature_for("kimi-k2-0711-preview", 0.2) == 1.0
        assert temperature_for("Kimi-K2", 0.2) == 1.0
        assert temperature_for("kimi-latest", 0.2) == 0.2

    def test_payload(self) -> None:
        adapter = HTTPChatAdapter("k", "https://x")
        tools = [{"type": "function", "function": {"name": "lookup", "parameters": {}}}]
        payload = adapter.build_payload(
            USER, tools, "groq/llama-3", {"max_tokens": 100, "temperature": 0.3}
        )
        assert payload == {
            "model": "llama-3",
            "messages": USER,
            "tools": tools,
            "tool_choice": "auto",
            "max_tokens": 100,
            "temperature": 0.3,
        }

    def test_payload_ignores_invalid_options(self) -> None:
        adapter = HTTPChatAdapter("k", "https://x")
        payload = adapter.build_payload(
            USER, None, "gpt-4o", {"max_tokens": "many", "temperature": True}
        )
        assert payload == {"model": "gpt-4o", "messages": USER}

    def test_payload_glm_and_kimi(self) -> None:
        adapter = HTTPChatAdapter("k", "https://x")
        assert "max_completion_tokens" in adapter.build_payload(USER, None, "glm-4.7", {"max_tokens": 5})
        assert adapter.build_payload(USER, None, "moonshot/kimi-k2", {"temperature": 0.1})["temperature"] == 1.0


class TestChat:
    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        recorder = _Recorder(httpx.Response(200, json=_completion(content="hello")))
        async with _adapter(recorder) as adapter:
            result = await adapter.chat(USER, model="groq/llama-3")

        request = recorder.requests[0]
        assert str(request.url) == "https://api.example.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["Content-Type"] == "application/json"
        assert recorder.body["model"] == "llama-3"
        assert result.content == "hello"
        assert result.finish_reason == "stop"
        assert result.usage is not None
        assert result.usage.total_tokens == 8

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self) -> None:
        recorder = _Recorder(httpx.Response(200, json=_completion(content="ok")))
        async with _adapter(recorder, api_key="") as adapter:
            await adapter.chat(USER, model="llama3")
        assert "Authorization" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        recorder = _Recorder(httpx.Response(429, text='{"error": "rate limited"}'))
        async with _adapter(recorder) as adapter:
            with pytest.raises(TransportError) as exc_info:
                await adapter.chat(USER, model="gpt-4o")
        assert exc_info.value.status_code == 429
        assert "rate limited" in exc_info.value.body
        assert "429" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _adapter(handler) as adapter:
            with pytest.raises(TransportError):
                await adapter.chat(USER, model="gpt-4o")

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        recorder = _Recorder(httpx.Response(200, text="<html>oops</html>"))
        async with _adapter(recorder) as adapter:
            with pytest.raises(DecodeError):
                await adapter.chat(USER, model="gpt-4o")

    @pytest.mark.asyncio
    async def test_tool_calls(self) -> None:
        recorder = _Recorder(
            httpx.Response(
                200,
                json=_completion(
                    content=None,
                    tool_calls=[
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "lookup", "arguments": '{"q": "x"}'},
                        }
                    ],
                ),
            )
        )
        async with _adapter(recorder) as adapter:
            result = await adapter.chat(USER, model="gpt-4o")

        assert result.content == ""
        call = result.tool_calls[0]
        assert call.id == "call_1"
        assert call.name == "lookup"
        assert call.arguments == {"q": "x"}
        assert call.function is not None
        assert call.function.arguments == '{"q": "x"}'

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_request(self) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.Event().wait()
            return httpx.Response(200, json=_completion(content="late"))

        async with _adapter(handler) as adapter:  # type: ignore[arg-type]
            task = asyncio.create_task(adapter.chat(USER, model="gpt-4o"))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert task.cancelled()


class TestParseChatCompletion:
    def test_empty_choices(self) -> None:
        result = parse_chat_completion({"choices": []})
        assert result.content == ""
        assert result.finish_reason == "stop"
        assert result.tool_calls == []

    def test_not_an_object(self) -> None:
        with pytest.raises(DecodeError):
            parse_chat_completion(["nope"])

    def test_null_choice(self) -> None:
        with pytest.raises(DecodeError, match="choice"):
            parse_chat_completion({"choices": [None]})

    def test_message_not_an_object(self) -> None:
        with pytest.raises(DecodeError, match="message"):
            parse_chat_completion({"choices": [{"message": "hello"}]})

    def test_tool_call_not_an_object(self) -> None:
        with pytest.raises(DecodeError):
            parse_chat_completion(_completion(tool_calls=["lookup"]))

    def test_content_parts_are_flattened(self) -> None:
        data = _completion(content=[{"type": "text", "text": "hel"}, {"type": "text", "text": "lo"}])
        assert parse_chat_completion(data).content == "hello"

    def test_null_usage_counts_read_as_zero(self) -> None:
        data = _completion(content="ok")
        data["usage"] = {"prompt_tokens": None, "completion_tokens": 2, "total_tokens": None}
        usage = parse_chat_completion(data).usage
        assert usage is not None
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (0, 2, 0)

    def test_non_numeric_usage(self) -> None:
        data = _completion(content="ok")
        data["usage"] = {"prompt_tokens": "many"}
        with pytest.raises(DecodeError):
            parse_chat_completion(data)

    def test_bad_tool_arguments_degrade_to_raw(self) -> None:
        data = _completion(
            tool_calls=[{"id": "c", "type": "function", "function": {"name": "f", "arguments": "{oops"}}]
        )
        assert parse_chat_completion(data).tool_calls[0].arguments == {"raw": "{oops"}

    def test_parse_tool_arguments(self) -> None:
        assert parse_tool_arguments("") == {}
        assert parse_tool_arguments('{"a": 1}') == {"a": 1}
        assert parse_tool_arguments("[1, 2]") == {"raw": "[1, 2]"}
