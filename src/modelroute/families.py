"""Static descriptor table for every supported backend family.

Each family is described once by a :class:`FamilyDescriptor`: its canonical
name, the kind of adapter it builds, its default base URL, the synonyms
accepted for it in the legacy ``agents.defaults.provider`` field, and where
its legacy endpoint and stored credential live.  Adding a family is a table
edit here, not a new branch in the resolver.

The module also holds the ordered model-name :data:`HEURISTICS` the
resolver scans when no explicit provider is usable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FamilyKind(str, Enum):
    """How a family's adapter is constructed."""

    HTTP = "http"
    """OpenAI-wire HTTP; requires a key or a base URL."""
    ANTHROPIC = "anthropic"
    """HTTP unless ``auth_method`` is ``oauth``/``token``, then the stored credential."""
    OPENAI = "openai"
    """HTTP unless ``auth_method`` selects the Codex backend."""
    CLOUD_CODE = "cloud_code"
    """Always backed by a stored OAuth credential."""
    CLI_BRIDGE = "cli_bridge"
    """A locally spawned CLI process; no key required."""
    LOCAL_GATEWAY = "local_gateway"
    """A sidecar listening on a local port."""


@dataclass(frozen=True)
class FamilyDescriptor:
    """Everything the resolver needs to know about one family.

    Attributes:
        name: Canonical family name and protocol tag.
        kind: Which construction rule applies.
        default_api_base: Base URL used when the config leaves it empty.
        aliases: Synonyms accepted in the legacy explicit-provider field.
        protocol_aliases: Extra protocol tags accepted in route-table model
            strings.
        legacy_field: Attribute on :class:`~modelroute.models.ProvidersConfig`
            holding this family's legacy endpoint, or ``""`` if none.
        credential_key: Credential store key for OAuth-backed families.
        strip_wire_prefix: Whether the HTTP adapter drops a leading
            ``<name>/`` segment from the model id before sending it.
        default_connect_mode: Connect mode filled in for local gateways.
    """

    name: str
    kind: FamilyKind
    default_api_base: str = ""
    aliases: tuple[str, ...] = ()
    protocol_aliases: tuple[str, ...] = ()
    legacy_field: str = ""
    credential_key: str = ""
    strip_wire_prefix: bool = False
    default_connect_mode: str = ""

    @property
    def needs_credentials(self) -> bool:
        """``False`` for families usable without any configured key or base."""
        return self.kind in (FamilyKind.HTTP, FamilyKind.ANTHROPIC, FamilyKind.OPENAI)


ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"

_DESCRIPTORS: tuple[FamilyDescriptor, ...] = (
    FamilyDescriptor(
        "openai",
        FamilyKind.OPENAI,
        "https://api.openai.com/v1",
        aliases=("gpt",),
        legacy_field="openai",
        credential_key="openai",
    ),
    FamilyDescriptor(
        "anthropic",
        FamilyKind.ANTHROPIC,
        ANTHROPIC_API_BASE,
        aliases=("claude",),
        legacy_field="anthropic",
        credential_key="anthropic",
    ),
    FamilyDescriptor(
        "openrouter", FamilyKind.HTTP, "https://openrouter.ai/api/v1", legacy_field="openrouter"
    ),
    FamilyDescriptor(
        "groq",
        FamilyKind.HTTP,
        "https://api.groq.com/openai/v1",
        legacy_field="groq",
        strip_wire_prefix=True,
    ),
    FamilyDescriptor(
        "zhipu",
        FamilyKind.HTTP,
        "https://open.bigmodel.cn/api/paas/v4",
        aliases=("glm",),
        legacy_field="zhipu",
    ),
    FamilyDescriptor(
        "gemini",
        FamilyKind.HTTP,
        "https://generativelanguage.googleapis.com/v1beta",
        aliases=("google",),
        legacy_field="gemini",
    ),
    FamilyDescriptor(
        "nvidia",
        FamilyKind.HTTP,
        "https://integrate.api.nvidia.com/v1",
        legacy_field="nvidia",
        strip_wire_prefix=True,
    ),
    FamilyDescriptor(
        "ollama",
        FamilyKind.HTTP,
        "http://localhost:11434/v1",
        legacy_field="ollama",
        strip_wire_prefix=True,
    ),
    FamilyDescriptor(
        "moonshot",
        FamilyKind.HTTP,
        "https://api.moonshot.cn/v1",
        aliases=("kimi",),
        legacy_field="moonshot",
        strip_wire_prefix=True,
    ),
    FamilyDescriptor(
        "shengsuanyun",
        FamilyKind.HTTP,
        "https://router.shengsuanyun.com/api/v1",
        legacy_field="shengsuanyun",
    ),
    FamilyDescriptor(
        "deepseek", FamilyKind.HTTP, "https://api.deepseek.com/v1", legacy_field="deepseek"
    ),
    FamilyDescriptor(
        "cerebras",
        FamilyKind.HTTP,
        "https://api.cerebras.ai/v1",
        legacy_field="cerebras",
        strip_wire_prefix=True,
    ),
    FamilyDescriptor(
        "volcengine",
        FamilyKind.HTTP,
        "https://ark.cn-beijing.volces.com/api/v3",
        aliases=("doubao",),
        legacy_field="volcengine",
    ),
    # vLLM has no public endpoint; the base URL must come from config.
    FamilyDescriptor("vllm", FamilyKind.HTTP, "", legacy_field="vllm"),
    FamilyDescriptor(
        "qwen",
        FamilyKind.HTTP,
        "https://dashscope.aliyuncs.com/compatible-mode/v1",
        legacy_field="qwen",
        strip_wire_prefix=True,
    ),
    FamilyDescriptor(
        "antigravity",
        FamilyKind.CLOUD_CODE,
        aliases=("google-antigravity",),
        legacy_field="antigravity",
        credential_key="google-antigravity",
    ),
    FamilyDescriptor(
        "claude-cli",
        FamilyKind.CLI_BRIDGE,
        aliases=("claudecli", "claude-code", "claudecode"),
        protocol_aliases=("claudecli",),
    ),
    FamilyDescriptor(
        "codex-cli",
        FamilyKind.CLI_BRIDGE,
        aliases=("codexcli", "codex-code"),
        protocol_aliases=("codexcli",),
    ),
    FamilyDescriptor(
        "github-copilot",
        FamilyKind.LOCAL_GATEWAY,
        "localhost:4321",
        aliases=("copilot", "github_copilot"),
        protocol_aliases=("copilot",),
        legacy_field="github_copilot",
        default_connect_mode="http",
    ),
)

FAMILIES: dict[str, FamilyDescriptor] = {d.name: d for d in _DESCRIPTORS}
"""Canonical family name -> descriptor."""

_SYNONYMS: dict[str, str] = {
    alias: d.name for d in _DESCRIPTORS for alias in (d.name, *d.aliases)
}

_PROTOCOLS: dict[str, str] = {
    tag: d.name for d in _DESCRIPTORS for tag in (d.name, *d.protocol_aliases)
}

WIRE_PREFIXES: frozenset[str] = frozenset(d.name for d in _DESCRIPTORS if d.strip_wire_prefix)
"""Leading model-id segments the OpenAI-wire adapter strips before sending."""


def lookup_family(name: str) -> Optional[FamilyDescriptor]:
    """Return the descriptor for a family name or synonym (case-insensitive).

    Args:
        name: A legacy provider name such as ``"GPT"`` or
            ``"claude-code"``.

    Returns:
        The matching :class:`FamilyDescriptor`, or ``None`` when unknown.
    """
    canonical = _SYNONYMS.get(name.strip().lower())
    return FAMILIES[canonical] if canonical else None


def lookup_protocol(tag: str) -> Optional[FamilyDescriptor]:
    """Return the descriptor for a route-table protocol tag, or ``None``.

    Protocol tags are matched exactly; legacy provider synonyms such as
    ``gpt`` are not protocol tags.
    """
    canonical = _PROTOCOLS.get(tag)
    return FAMILIES[canonical] if canonical else None


def credential_family(name: str) -> str:
    """Map a family name or synonym to its credential store key.

    Unknown names are returned lower-cased so that ad-hoc providers can
    still be stored and deleted by name.
    """
    family = lookup_family(name)
    if family is not None and family.credential_key:
        return family.credential_key
    return name.strip().lower()


# --- Model-name heuristics ---


@dataclass(frozen=True)
class Heuristic:
    """One rule in the ordered model-name scan.

    A rule matches when the lower-cased model contains any of ``contains``,
    or the raw model starts with any of ``prefixes``.  ``match_all`` rules
    match every model and exist for families that are usable purely because
    a base URL was configured.
    """

    family: str
    contains: tuple[str, ...] = ()
    prefixes: tuple[str, ...] = ()
    match_all: bool = False

    def matches(self, model: str) -> bool:
        if self.match_all:
            return True
        lowered = model.lower()
        if any(token in lowered for token in self.contains):
            return True
        return any(model.startswith(prefix) for prefix in self.prefixes)


HEURISTICS: tuple[Heuristic, ...] = (
    Heuristic("moonshot", contains=("kimi", "moonshot"), prefixes=("moonshot/",)),
    Heuristic(
        "openrouter",
        prefixes=(
            "openrouter/",
            "anthropic/",
            "openai/",
            "meta-llama/",
            "deepseek/",
            "google/",
        ),
    ),
    Heuristic("anthropic", contains=("claude",), prefixes=("anthropic/",)),
    Heuristic("openai", contains=("gpt",), prefixes=("openai/",)),
    Heuristic("gemini", contains=("gemini",), prefixes=("google/",)),
    Heuristic("zhipu", contains=("glm", "zhipu", "zai")),
    Heuristic("groq", contains=("groq",), prefixes=("groq/",)),
    Heuristic("qwen", contains=("qwen",), prefixes=("qwen/",)),
    Heuristic("nvidia", contains=("nvidia",), prefixes=("nvidia/",)),
    Heuristic("cerebras", contains=("cerebras",), prefixes=("cerebras/",)),
    Heuristic("ollama", contains=("ollama",), prefixes=("ollama/",)),
    Heuristic("volcengine", contains=("doubao", "volcengine")),
    Heuristic("vllm", match_all=True),
)
"""Scanned top to bottom; the first match whose family is populated wins."""

CATCH_ALL_FAMILY = "openrouter"
"""Family used when nothing else matched and its key is configured."""
