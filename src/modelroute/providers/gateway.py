"""Adapter for a local gateway sidecar (GitHub Copilot).

The sidecar owns the upstream login and exposes an OpenAI-compatible
endpoint on a local port.  Building the adapter probes the port; an
unreachable sidecar is a fatal :class:`~modelroute.exceptions.TransportError`
at resolution time rather than a failure on the first chat call.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional
from urllib.parse import urlparse

import httpx

from modelroute.exceptions import ConfigurationError, TransportError
from modelroute.providers.base import DEFAULT_CHAT_TIMEOUT
from modelroute.providers.http_provider import HTTPChatAdapter

logger = logging.getLogger(__name__)

SUPPORTED_CONNECT_MODES: tuple[str, ...] = ("http",)
PROBE_TIMEOUT = 2.0


def gateway_address(api_base: str) -> tuple[str, int, str]:
    """Split a gateway base into ``(host, port, http_base)``.

    Accepts a bare ``host:port`` or a full URL.  The returned HTTP base
    always ends in ``/v1``.

    Raises:
        ConfigurationError: If no port can be determined.
    """
    candidate = api_base if "://" in api_base else f"http://{api_base}"
    parsed = urlparse(candidate)
    host = parsed.hostname or "localhost"
    try:
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid gateway address {api_base!r}: {exc}") from exc

    path = parsed.path.rstrip("/")
    if not path.endswith("/v1"):
        path = f"{path}/v1"
    return host, port, f"{parsed.scheme}://{parsed.netloc}{path}"


def probe_gateway(host: str, port: int, timeout: float = PROBE_TIMEOUT) -> None:
    """Raise :class:`TransportError` unless a TCP connection to the gateway succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            pass
    except OSError as exc:
        raise TransportError(f"Gateway at {host}:{port} is unreachable: {exc}") from exc


class GatewayChatAdapter(HTTPChatAdapter):
    """OpenAI-wire adapter bound to a local sidecar.

    Use :meth:`connect` to build one; it validates the connect mode and
    probes the port first.
    """

    def __init__(
        self,
        api_base: str,
        model: str = "",
        timeout: float = DEFAULT_CHAT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__("", api_base, timeout=timeout, transport=transport)
        self._model = model

    @classmethod
    def connect(
        cls,
        api_base: str,
        connect_mode: str,
        model: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> GatewayChatAdapter:
        """Validate *connect_mode*, probe the sidecar, and build the adapter.

        Raises:
            ConfigurationError: If the connect mode is unsupported or the
                address is malformed.
            TransportError: If the sidecar does not accept connections.
        """
        if connect_mode not in SUPPORTED_CONNECT_MODES:
            raise ConfigurationError(
                f"Unsupported gateway connect mode {connect_mode!r}; "
                f"expected one of: {', '.join(SUPPORTED_CONNECT_MODES)}"
            )
        host, port, http_base = gateway_address(api_base)
        if transport is None:
            probe_gateway(host, port)
        logger.debug("Gateway reachable at %s", http_base)
        return cls(http_base, model=model, transport=transport)

    @property
    def name(self) -> str:
        return "gateway"

    def default_model(self) -> str:
        return self._model
