"""Tests for the Codex Responses adapter and the Codex CLI token source."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import jwt
import pytest

from modelroute.auth.credential_store import AuthCredential
from modelroute.exceptions import AuthenticationError, DecodeError, TransportError
from modelroute.providers.codex import (
    DEFAULT_INSTRUCTIONS,
    CodexChatAdapter,
    codex_cli_token_source,
    codex_home,
    parse_responses_output,
    read_codex_cli_credential,
    to_responses_input,
)

SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"


def _cred(account_id: str = "acct-1") -> AuthCredential:
    return AuthCredential(provider="openai", access_token="chatgpt-tok", account_id=account_id)


def _sse(*events: dict[str, Any]) -> bytes:
    lines = []
    for event in events:
        lines.append(f"event: {event['type']}")
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    return "\n".join(lines).encode()


_COMPLETED = {
    "type": "response.completed",
    "response": {
        "output": [
            {"type": "message", "content": [{"type": "output_text", "text": "hello"}]},
        ],
        "usage": {"input_tokens": 4, "output_tokens": 2, "total_tokens": 6},
    },
}


def _write_auth(home: Path, tokens: dict[str, Any]) -> Path:
    path = home / "auth.json"
    path.write_text(json.dumps({"tokens": tokens}))
    return path


class TestToResponsesInput:
    def test_roles(self) -> None:
        instructions, items = to_responses_input(
            [
                {"role": "system", "content": "rules"},
                {"role": "user", "content": "hi"},
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [{"id": "c1", "function": {"name": "f", "arguments": "{}"}}],
                },
                {"role": "tool", "tool_call_id": "c1", "content": "42"},
            ]
        )
        assert instructions == "rules"
        assert [item["type"] for item in items] == ["message", "function_call", "function_call_output"]
        assert items[0]["content"] == [{"type": "input_text", "text": "hi"}]
        assert items[2] == {"type": "function_call_output", "call_id": "c1", "output": "42"}


class TestParseResponsesOutput:
    def test_function_call(self) -> None:
        result = parse_responses_output(
            {"output": [{"type": "function_call", "call_id": "c1", "name": "f", "arguments": '{"a": 1}'}]}
        )
        assert result.finish_reason == "tool_calls"
        assert result.tool_calls[0].arguments == {"a": 1}

    def test_incomplete(self) -> None:
        result = parse_responses_output({"output": [], "incomplete_details": {"reason": "max_output_tokens"}})
        assert result.finish_reason == "length"

    @pytest.mark.parametrize(
        "response",
        [["done"], {"output": [None]}, {"output": [{"type": "message", "content": [7]}]}],
    )
    def test_malformed_output(self, response: object) -> None:
        with pytest.raises(DecodeError):
            parse_responses_output(response)


class TestCodexChatAdapter:
    @pytest.mark.asyncio
    async def test_stream_to_completion(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = _sse({"type": "response.created"}, {"type": "response.output_text.delta"}, _COMPLETED)
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        adapter = CodexChatAdapter(_cred, transport=httpx.MockTransport(handler))
        async with adapter:
            result = await adapter.chat([{"role": "user", "content": "hi"}], model="gpt-5.1-codex")

        request = seen[0]
        payload = json.loads(request.content)
        assert str(request.url) == "https://chatgpt.com/backend-api/codex/responses"
        assert request.headers["Authorization"] == "Bearer chatgpt-tok"
        assert request.headers["chatgpt-account-id"] == "acct-1"
        assert payload["stream"] is True
        assert payload["store"] is False
        assert payload["instructions"] == DEFAULT_INSTRUCTIONS
        assert result.content == "hello"
        assert result.usage.total_tokens == 6

    @pytest.mark.asyncio
    async def test_no_account_header_without_account(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_sse(_COMPLETED))

        adapter = CodexChatAdapter(lambda: _cred(account_id=""), transport=httpx.MockTransport(handler))
        async with adapter:
            await adapter.chat([{"role": "user", "content": "hi"}])
        assert "chatgpt-account-id" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        adapter = CodexChatAdapter(
            _cred, transport=httpx.MockTransport(lambda r: httpx.Response(403, text="forbidden"))
        )
        async with adapter:
            with pytest.raises(TransportError) as exc_info:
                await adapter.chat([{"role": "user", "content": "hi"}])
        assert exc_info.value.status_code == 403
        assert exc_info.value.body == "forbidden"

    @pytest.mark.asyncio
    async def test_failed_event(self) -> None:
        body = _sse({"type": "response.failed", "response": {"error": {"message": "quota"}}})
        adapter = CodexChatAdapter(_cred, transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body)))
        async with adapter:
            with pytest.raises(TransportError, match="quota"):
                await adapter.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_stream_without_completion(self) -> None:
        body = _sse({"type": "response.created"})
        adapter = CodexChatAdapter(_cred, transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body)))
        async with adapter:
            with pytest.raises(DecodeError):
                await adapter.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_malformed_event(self) -> None:
        adapter = CodexChatAdapter(
            _cred, transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"data: {oops\n\n"))
        )
        async with adapter:
            with pytest.raises(DecodeError):
                await adapter.chat([{"role": "user", "content": "hi"}])


class TestCodexCliCredential:
    def test_codex_home_env(self, isolated_config: Path) -> None:
        assert codex_home() == isolated_config / "codex"

    def test_read(self, tmp_path: Path) -> None:
        exp = int(datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp())
        access = jwt.encode({"exp": exp}, SIGNING_KEY, algorithm="HS256")
        path = _write_auth(tmp_path, {"access_token": access, "refresh_token": "r", "account_id": "acct-9"})

        cred = read_codex_cli_credential(path)
        assert cred.provider == "openai"
        assert cred.access_token == access
        assert cred.account_id == "acct-9"
        assert cred.auth_method == "codex-cli"
        assert cred.expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_opaque_token_has_no_expiry(self, tmp_path: Path) -> None:
        path = _write_auth(tmp_path, {"access_token": "opaque"})
        assert read_codex_cli_credential(path).expires_at is None

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            read_codex_cli_credential(tmp_path / "auth.json")
        assert exc_info.value.hint == "codex login"

    def test_missing_token(self, tmp_path: Path) -> None:
        path = _write_auth(tmp_path, {})
        with pytest.raises(AuthenticationError, match="No access token"):
            read_codex_cli_credential(path)

    def test_token_source_rereads(self, tmp_path: Path) -> None:
        path = _write_auth(tmp_path, {"access_token": "one"})
        source = codex_cli_token_source(path)
        assert source().access_token == "one"
        _write_auth(tmp_path, {"access_token": "two"})
        assert source().access_token == "two"
