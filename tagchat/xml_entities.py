"""XML entity handling for function-call parameter text.

Parameter text inside ``<parameter>`` elements arrives escaped. Entities are
decoded exactly once, here, so ``&amp;lt;`` becomes ``&lt;`` and never ``<``.
"""

import re
from typing import List

__all__ = ["escape", "unescape", "validate"]

# Decode order matters: &amp; must be last.
_UNESCAPE_ORDER = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

_BARE_AMP_RE = re.compile(r"&(?!(?:lt|gt|amp|quot|apos|#39);)")


def unescape(text: str) -> str:
    """Replace the standard XML entities with the characters they stand for."""
    if not text or "&" not in text:
        return text
    for entity, char in _UNESCAPE_ORDER:
        text = text.replace(entity, char)
    return text


def escape(text: str) -> str:
    """Inverse of :func:`unescape` for the five reserved characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def validate(text: str) -> List[str]:
    """Return warnings for characters that should have been escaped.

    Purely diagnostic: a non-empty result never stops processing.
    """
    warnings = []
    if "<" in text:
        warnings.append("unescaped '<' (use &lt;)")
    if ">" in text:
        warnings.append("unescaped '>' (use &gt;)")
    if _BARE_AMP_RE.search(text):
        warnings.append("unescaped '&' (use &amp;)")
    return warnings
