"""The uniform chat contract every backend adapter satisfies.

This module defines:

- :class:`ChatAdapter` -- the abstract base class with a single
  :meth:`~ChatAdapter.chat` coroutine.  The resolver picks one concrete
  adapter per resolution and callers never switch on the backend again.
- :class:`HTTPAdapterBase` -- shared plumbing for adapters that speak
  JSON over HTTP: a lazily created :class:`httpx.AsyncClient`, proxy and
  timeout wiring, and the mapping of transport failures onto
  :class:`~modelroute.exceptions.TransportError` and
  :class:`~modelroute.exceptions.DecodeError`.

Messages and tool definitions use the OpenAI chat shape (``role``,
``content``, ``tool_calls``, ``tool_call_id``; ``{"type": "function",
"function": {...}}``).  Adapters for other wire formats translate from it.

Cancellation: ``chat`` is a coroutine, so cancelling the awaiting task
aborts the in-flight read and ``asyncio.CancelledError`` propagates.  No
adapter ever returns a partial result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, Optional

import httpx

from modelroute.auth.credential_store import AuthCredential
from modelroute.exceptions import DecodeError, TransportError
from modelroute.models import LLMResult

logger = logging.getLogger(__name__)

Message = dict[str, Any]
ToolDefinition = dict[str, Any]
TokenSource = Callable[[], AuthCredential]
"""Blocking callable returning a usable credential; consulted before each call."""

DEFAULT_CHAT_TIMEOUT = 120.0


class ChatAdapter(ABC):
    """Abstract base class for backend adapters.

    Subclasses implement :meth:`chat`.  Adapters own at most one outbound
    transport and release it in :meth:`aclose`; they can also be used as
    async context managers.
    """

    @property
    def name(self) -> str:
        """Short identifier used in logs and ``modelroute resolve`` output."""
        return type(self).__name__

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        model: str = "",
        options: Optional[dict[str, Any]] = None,
    ) -> LLMResult:
        """Send one chat turn and return the normalised result.

        Args:
            messages: Conversation so far, OpenAI chat shape.
            tools: Tool definitions offered to the model.
            model: Model id to request.
            options: Generation options such as ``max_tokens`` and
                ``temperature``.

        Raises:
            TransportError: On a non-2xx response or network failure.
            DecodeError: If the response envelope cannot be decoded.
        """

    def default_model(self) -> str:
        """Model used when the caller passes none.  Empty for most adapters."""
        return ""

    async def aclose(self) -> None:
        """Release the adapter's transport.  Safe to call more than once."""

    async def __aenter__(self) -> ChatAdapter:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


class HTTPAdapterBase(ChatAdapter):
    """Shared JSON-over-HTTP plumbing.

    Args:
        proxy: Optional outbound proxy URL.
        timeout: Per-request timeout in seconds.
        transport: Optional custom transport, mainly
            :class:`httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        proxy: str = "",
        timeout: float = DEFAULT_CHAT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._proxy = proxy or None
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if self._transport is not None:
                self._client = httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
            else:
                self._client = httpx.AsyncClient(proxy=self._proxy, timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """POST *payload* and return the decoded JSON body.

        Raises:
            TransportError: On network failure or a non-2xx status, carrying
                the status code and the raw body.
            DecodeError: If a 2xx body is not valid JSON.
        """
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        logger.debug("POST %s", url)
        try:
            response = await self._get_client().post(url, json=payload, headers=request_headers)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request to {url} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise TransportError(
                f"API request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"Failed to decode response from {url}: {exc}") from exc


async def fetch_credential(token_source: TokenSource) -> AuthCredential:
    """Run a blocking token source off the event loop."""
    return await asyncio.to_thread(token_source)


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    """Best-effort parse of a tool-call argument string.

    Anything that is not a JSON object degrades to ``{"raw": raw}``.  An
    empty string yields ``{}``.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"raw": raw}
    if not isinstance(parsed, dict):
        return {"raw": raw}
    return parsed


def flatten_content(content: Any) -> str:
    """Collapse OpenAI-style content (string or list of parts) into text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return str(content)


@contextmanager
def decoding(what: str) -> Iterator[None]:
    """Re-raise shape errors while walking a response envelope as :class:`DecodeError`.

    ``ValueError`` covers pydantic's ``ValidationError``.
    """
    try:
        yield
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"Malformed {what} response: {exc}") from exc
