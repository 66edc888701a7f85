"""
Step through the items that carry a given tag.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .captions import contains_tag
from .types import Item


@dataclass(frozen=True)
class MatchStep:
    """Where the navigator points: an item and its 1-based position."""
    item_id: str
    position: int
    total: int
    span: Optional[tuple[int, int]] = None  # first occurrence of the tag in the caption

    def __str__(self) -> str:
        return f"{self.position} / {self.total}"


class MatchNavigator:
    """Cyclic cursor over the items whose caption contains a tag.

    The match set is rebuilt on every ``select()``; it is not kept in sync
    with later caption edits.
    """

    def __init__(self) -> None:
        self.selected_tag: Optional[str] = None
        self.matches: list[str] = []
        self.cursor = 0
        self._spans: dict[str, Optional[tuple[int, int]]] = {}

    def select(self, tag: str, items: Iterable[Item]) -> Optional[MatchStep]:
        """Select a tag and move to its first match.

        Returns None (leaving the previous selection untouched) when no
        item carries the tag.
        """
        found = [item for item in items if contains_tag(item.caption, tag)]
        if not found:
            return None
        self.selected_tag = tag
        self.matches = [item.id for item in found]
        self._spans = {item.id: _find_span(item.caption, tag) for item in found}
        self.cursor = 0
        return self.current()

    def current(self) -> Optional[MatchStep]:
        if not self.matches:
            return None
        item_id = self.matches[self.cursor]
        return MatchStep(item_id, self.cursor + 1, len(self.matches), self._spans.get(item_id))

    def next(self) -> Optional[MatchStep]:
        return self._step(1)

    def prev(self) -> Optional[MatchStep]:
        return self._step(-1)

    def _step(self, delta: int) -> Optional[MatchStep]:
        total = len(self.matches)
        if not total:
            return None
        self.cursor = (self.cursor + delta + total) % total
        return self.current()

    def clear(self) -> None:
        self.selected_tag = None
        self.matches = []
        self.cursor = 0
        self._spans = {}


def _find_span(caption: str, tag: str) -> Optional[tuple[int, int]]:
    start = caption.find(tag)
    if start == -1:
        return None
    return (start, start + len(tag))
