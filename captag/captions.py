"""
Caption parsing.

A caption is a free-text string of comma-separated tags or phrases. These
helpers turn captions into token lists and back, and repair the formatting
of captions that were edited as raw text.
"""

import re
from typing import Iterable, Optional

TAG_SEPARATOR = ","
JOIN_SEPARATOR = ", "

# A comma followed by one or more (whitespace, comma) groups
_REPEATED_COMMAS_RE = re.compile(r",(?:\s*,)+")
_EDGE_RE = re.compile(r"^[\s,]+|[\s,]+$")


def tokenize(caption: Optional[str]) -> list[str]:
    """Split a caption into trimmed, non-empty tokens, preserving order.

    Single-character tokens are kept; only the tag index drops them.
    """
    if not caption:
        return []
    return [part.strip() for part in caption.split(TAG_SEPARATOR) if part.strip()]


def dedup_tokens(tokens: Iterable[str]) -> list[str]:
    """Unique tokens in order of first occurrence."""
    return list(dict.fromkeys(tokens))


def join(tokens: Iterable[str]) -> str:
    """Compose tokens back into a canonical caption."""
    return JOIN_SEPARATOR.join(tokens)


def unique_display_tags(caption: Optional[str]) -> list[str]:
    """Tags shown for a single item: each distinct token once."""
    return dedup_tokens(tokenize(caption))


def tidy(caption: str) -> str:
    """Repair a caption that was edited as raw text.

    Collapses repeated commas (``a, , b`` → ``a, b``) and trims leading
    and trailing commas and whitespace.
    """
    text = _REPEATED_COMMAS_RE.sub(",", caption)
    return _EDGE_RE.sub("", text)


def contains_tag(caption: Optional[str], tag: str) -> bool:
    """True if ``tag`` is one of the caption's exact trimmed tokens."""
    return tag in tokenize(caption)
