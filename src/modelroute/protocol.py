"""Split protocol-qualified model strings.

A model string such as ``groq/openai/gpt-oss-120b`` names the backend family
(``groq``) before the first ``/`` and the model id (``openai/gpt-oss-120b``)
after it.  Bare strings belong to the generic OpenAI-wire family.
"""

from __future__ import annotations

DEFAULT_PROTOCOL = "openai"
"""Protocol tag assumed when a model string carries no ``/``."""

PROTOCOL_SEPARATOR = "/"


def extract_protocol(model: str) -> tuple[str, str]:
    """Return ``(protocol, model_id)`` for *model*.

    Surrounding whitespace is trimmed first.  Only the first separator
    splits; everything after it is kept verbatim as the model id.  The
    function never raises.

    Args:
        model: A model string, e.g. ``"anthropic/claude-3-sonnet"`` or
            ``"gpt-4o"``.

    Returns:
        A tuple of the protocol tag and the bare model id.

    Example::

        >>> extract_protocol("groq/openai/gpt-oss-120b")
        ('groq', 'openai/gpt-oss-120b')
        >>> extract_protocol("  gpt-4o ")
        ('openai', 'gpt-4o')
    """
    model = model.strip()
    protocol, sep, model_id = model.partition(PROTOCOL_SEPARATOR)
    if not sep:
        return DEFAULT_PROTOCOL, model
    return protocol, model_id
