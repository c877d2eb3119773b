"""Provider Resolution Engine.

Given a :class:`~modelroute.models.RouterConfig` and a requested model,
select exactly one backend family and construct its adapter.  Precedence,
first match wins:

1. the route table (``model_list``), matched by logical name or model string;
2. the legacy explicit provider (``agents.defaults.provider``);
3. the ordered model-name :data:`~modelroute.families.HEURISTICS`;
4. the OpenRouter catch-all key.

Anything else is a :class:`~modelroute.exceptions.ConfigurationError`.
A route-table entry that fails to build is fatal and never falls through to
the legacy surface.
"""

from __future__ import annotations

import logging
from typing import Optional

from modelroute.auth.lifecycle import CredentialManager
from modelroute.exceptions import ConfigurationError
from modelroute.families import (
    CATCH_ALL_FAMILY,
    FAMILIES,
    HEURISTICS,
    FamilyDescriptor,
    lookup_family,
)
from modelroute.migration import convert_providers_to_model_list
from modelroute.models import ProviderEndpointConfig, RouterConfig
from modelroute.protocol import extract_protocol
from modelroute.providers.base import ChatAdapter
from modelroute.providers.factory import (
    build_adapter,
    create_adapter_from_route,
    default_credential_manager,
)

logger = logging.getLogger(__name__)

DEEPSEEK_MODELS: tuple[str, ...] = ("deepseek-chat", "deepseek-reasoner")
DEEPSEEK_DEFAULT_MODEL = "deepseek-chat"


class ProviderResolver:
    """Resolve models against a config, sharing one credential manager.

    Args:
        credentials: Lifecycle manager backing OAuth families.  Defaults to
            one over the on-disk credential store, created on first use.

    Example::

        resolver = ProviderResolver(CredentialManager(MemoryCredentialStore()))
        adapter, model_id = resolver.resolve(config, "fast")
    """

    def __init__(self, credentials: Optional[CredentialManager] = None) -> None:
        self._credentials = credentials

    @property
    def credentials(self) -> CredentialManager:
        if self._credentials is None:
            self._credentials = default_credential_manager()
        return self._credentials

    def resolve(self, config: RouterConfig, model: Optional[str] = None) -> tuple[ChatAdapter, str]:
        """Select and build the adapter for *model*.

        Args:
            config: Read-only configuration.
            model: Requested model or logical route name.  Defaults to
                ``config.agents.defaults.model``.

        Returns:
            ``(adapter, model_id)``; ``model_id`` is what callers pass to
            :meth:`ChatAdapter.chat`.

        Raises:
            ConfigurationError: Unresolvable model, missing required field,
                or unknown protocol tag.
            AuthenticationError: An OAuth family has no stored credential.
            TransportError: A local gateway is unreachable.
        """
        model = (model or config.agents.defaults.model).strip()
        if not model:
            raise ConfigurationError("No model requested and agents.defaults.model is empty")

        if config.model_list:
            route = config.get_model_config(model)
            if route is not None:
                logger.debug("Model %r matched route %r", model, route.model_name)
                return create_adapter_from_route(route, config, self.credentials)
        elif config.has_providers_config():
            suggested = convert_providers_to_model_list(config)
            logger.warning(
                "The 'providers' config section is deprecated; "
                "move provider accounts into 'model_list' (suggested entries: %s)",
                ", ".join(route.model for route in suggested) or "none",
            )

        resolved = self._resolve_explicit_provider(config, model)
        if resolved is not None:
            return resolved

        resolved = self._resolve_heuristic(config, model)
        if resolved is not None:
            return resolved

        protocol, _ = extract_protocol(model)
        raise ConfigurationError(
            f"No provider configured for model {model!r} (family {protocol!r}); "
            "add a model_list entry or set the provider's api_key"
        )

    # --- Legacy surface ---

    @staticmethod
    def _legacy_endpoint(config: RouterConfig, family: FamilyDescriptor) -> ProviderEndpointConfig:
        if family.legacy_field:
            endpoint = config.providers.get(family.legacy_field)
            if endpoint is not None:
                return endpoint
        return ProviderEndpointConfig()

    def _build_legacy(
        self, config: RouterConfig, family: FamilyDescriptor, endpoint: ProviderEndpointConfig, model: str
    ) -> tuple[ChatAdapter, str]:
        adapter = build_adapter(
            family,
            endpoint,
            model,
            credentials=self.credentials,
            workspace=str(config.workspace_path()) or ".",
        )
        return adapter, model

    def _resolve_explicit_provider(
        self, config: RouterConfig, model: str
    ) -> Optional[tuple[ChatAdapter, str]]:
        provider = config.agents.defaults.provider.strip()
        if not provider:
            return None

        family = lookup_family(provider)
        if family is None:
            logger.warning("Unknown provider %r in agents.defaults.provider, ignoring", provider)
            return None

        endpoint = self._legacy_endpoint(config, family)
        if family.needs_credentials and not endpoint.is_populated():
            logger.debug("Provider %s is not configured, trying model heuristics", family.name)
            return None

        if family.name == "deepseek" and model not in DEEPSEEK_MODELS:
            model = DEEPSEEK_DEFAULT_MODEL

        logger.debug("Using explicit provider %s for %r", family.name, model)
        return self._build_legacy(config, family, endpoint, model)

    def _resolve_heuristic(self, config: RouterConfig, model: str) -> Optional[tuple[ChatAdapter, str]]:
        for heuristic in HEURISTICS:
            if not heuristic.matches(model):
                continue
            family = FAMILIES[heuristic.family]
            endpoint = self._legacy_endpoint(config, family)
            usable = endpoint.api_base if heuristic.match_all else endpoint.is_populated()
            if usable:
                logger.debug("Model %r matched %s heuristic", model, family.name)
                return self._build_legacy(config, family, endpoint, model)

        fallback = FAMILIES[CATCH_ALL_FAMILY]
        endpoint = self._legacy_endpoint(config, fallback)
        if endpoint.api_key:
            logger.debug("Routing %r to the %s catch-all", model, fallback.name)
            return self._build_legacy(config, fallback, endpoint, model)
        return None


def resolve(
    config: RouterConfig,
    model: Optional[str] = None,
    *,
    credentials: Optional[CredentialManager] = None,
) -> tuple[ChatAdapter, str]:
    """Resolve *model* against *config*; see :meth:`ProviderResolver.resolve`."""
    return ProviderResolver(credentials).resolve(config, model)
