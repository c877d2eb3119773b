"""modelroute -- one chat interface over many LLM backends.

Given a configuration describing provider accounts and a requested model
identifier, :func:`~modelroute.providers.resolver.resolve` selects exactly
one backend adapter (plain HTTP, OAuth-backed, CLI bridge, or local
gateway) and hands it back together with the effective model id.  OAuth
credentials backing those adapters are stored, refreshed, and reported by
:class:`~modelroute.auth.lifecycle.CredentialManager`.

Typical use::

    from modelroute.config import load_config
    from modelroute.providers import resolve

    adapter, model = resolve(load_config())
    result = await adapter.chat(messages, model=model)

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for configuration and chat results.
    config: XDG-aware configuration loading and saving.
    protocol: Splits ``protocol/model-id`` strings.
    families: Static descriptor table of supported backend families.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.1.0"
