"""Chat adapters and the resolution engine that picks one.

Typical usage::

    from modelroute.providers import resolve

    adapter, model_id = resolve(config, "fast")
    async with adapter:
        result = await adapter.chat([{"role": "user", "content": "hi"}], model=model_id)
"""

from modelroute.providers.base import ChatAdapter, HTTPAdapterBase
from modelroute.providers.factory import build_adapter, create_adapter_from_route
from modelroute.providers.http_provider import HTTPChatAdapter
from modelroute.providers.resolver import ProviderResolver, resolve

__all__ = [
    "ChatAdapter",
    "HTTPAdapterBase",
    "HTTPChatAdapter",
    "ProviderResolver",
    "build_adapter",
    "create_adapter_from_route",
    "resolve",
]
