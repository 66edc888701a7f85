"""
Tag index: how many distinct items carry each tag.

The index is a derived view. It is always recomputed from the full set of
current captions, never patched, so manual caption edits cannot make it
drift.
"""

from typing import Iterable

from .captions import dedup_tokens, tokenize
from .types import Item

# Tags must be longer than this (after trimming) to be indexed
MIN_TAG_LENGTH = 1

TagIndex = dict[str, int]


def recompute(items: Iterable[Item]) -> TagIndex:
    """
    Build the tag index from the current captions.

    Each item contributes at most 1 to a tag's count, however many times
    the tag repeats in its caption. Tags of length <= 1 are excluded.
    The result does not depend on item order.
    """
    index: TagIndex = {}
    for item in items:
        if not item.has_caption:
            continue
        for tag in dedup_tokens(tokenize(item.caption)):
            if len(tag) > MIN_TAG_LENGTH:
                index[tag] = index.get(tag, 0) + 1
    return index


def ranked_list(index: TagIndex) -> list[tuple[str, int]]:
    """Tags sorted by count descending, ties by tag ascending."""
    return sorted(index.items(), key=lambda entry: (-entry[1], entry[0]))


def captioned_count(items: Iterable[Item]) -> int:
    """Number of items whose caption is non-blank."""
    return sum(1 for item in items if item.has_caption)
