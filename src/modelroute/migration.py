"""Convert the legacy per-family ``providers`` block into route-table entries.

Each populated legacy endpoint becomes one :class:`~modelroute.models.ModelRoute`
named after its family, pointing at a representative default model.  The
route order follows :data:`_MIGRATION_TABLE`, so repeated migrations of the
same config produce the same list.
"""

from __future__ import annotations

from modelroute.models import ModelRoute, ProviderEndpointConfig, RouterConfig


# (legacy field, route name, default model, fields copied beyond key/base)
_MIGRATION_TABLE: tuple[tuple[str, str, str, tuple[str, ...]], ...] = (
    ("openai", "openai", "openai/gpt-4o", ("proxy", "auth_method")),
    ("anthropic", "anthropic", "anthropic/claude-3-sonnet", ("proxy", "auth_method")),
    ("openrouter", "openrouter", "openrouter/auto", ("proxy",)),
    ("groq", "groq", "groq/llama-3.1-70b-versatile", ("proxy",)),
    ("zhipu", "zhipu", "openai/glm-4", ("proxy",)),
    ("vllm", "vllm", "openai/auto", ("proxy",)),
    ("gemini", "gemini", "openai/gemini-pro", ("proxy",)),
    ("nvidia", "nvidia", "nvidia/meta/llama-3.1-8b-instruct", ("proxy",)),
    ("ollama", "ollama", "ollama/llama3", ("proxy",)),
    ("moonshot", "moonshot", "moonshot/kimi", ("proxy",)),
    ("shengsuanyun", "shengsuanyun", "openai/auto", ("proxy",)),
    ("deepseek", "deepseek", "openai/deepseek-chat", ("proxy",)),
    ("cerebras", "cerebras", "cerebras/llama-3.3-70b", ("proxy",)),
    ("volcengine", "volcengine", "openai/doubao-pro", ("proxy",)),
    ("github_copilot", "github-copilot", "github-copilot/gpt-4o", ("connect_mode",)),
    ("antigravity", "antigravity", "antigravity/gemini-2.0-flash", ("auth_method",)),
    ("qwen", "qwen", "qwen/qwen-max", ("proxy",)),
)


def _should_migrate(field_name: str, endpoint: ProviderEndpointConfig) -> bool:
    """Decide whether a legacy endpoint carries enough to become a route."""
    if field_name == "antigravity":
        return bool(endpoint.api_key or endpoint.auth_method)
    if field_name == "github_copilot":
        return bool(endpoint.api_key or endpoint.api_base or endpoint.connect_mode)
    return bool(endpoint.api_key or endpoint.api_base)


def convert_providers_to_model_list(config: RouterConfig) -> list[ModelRoute]:
    """Build route-table entries from *config*'s legacy ``providers`` block.

    Args:
        config: The configuration to read.  It is not modified.

    Returns:
        One :class:`~modelroute.models.ModelRoute` per populated legacy
        family, in a fixed family order.  Empty when nothing is populated.
    """
    routes: list[ModelRoute] = []
    for field_name, route_name, model, extra_fields in _MIGRATION_TABLE:
        endpoint = config.providers.get(field_name)
        if endpoint is None or not _should_migrate(field_name, endpoint):
            continue

        values: dict[str, str] = {"model_name": route_name, "model": model}
        # The gateway route never carries a key; the sidecar owns auth.
        if field_name != "github_copilot":
            values["api_key"] = endpoint.api_key
        if field_name != "antigravity":
            values["api_base"] = endpoint.api_base
        for extra in extra_fields:
            values[extra] = getattr(endpoint, extra)
        routes.append(ModelRoute(**values))
    return routes
