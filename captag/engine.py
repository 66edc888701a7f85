"""
Engine state: the collection store plus its derived views.

EngineState ties together a collection store, the tag index computed from
it and a match navigator. Bulk operations go through ``apply()``:

1. plan the whole operation against a snapshot (may raise, nothing written)
2. commit every change as one batch and wait for all writes to settle
3. recompute the tag index once

A failed write is recorded against its item and never stops the others.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from .errors import StoreError
from .navigator import MatchNavigator, MatchStep
from .operations import BulkPlan, CaptionChange, Operation, plan
from .protocol import CollectionStoreProtocol
from .tag_index import TagIndex, captioned_count, ranked_list, recompute
from .types import Item

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 10

CaptionListener = Callable[[str, str], None]
IndexListener = Callable[[TagIndex], None]


@dataclass
class BulkResult:
    """Outcome of one bulk operation.

    ``matched`` is how many items were eligible. ``attempted`` is how many
    writes were dispatched and ``modified_count`` how many of them
    succeeded; ``failures`` maps item id to error message for the rest.
    """
    operation: Operation
    matched: int = 0
    modified_count: int = 0
    occurrences: int = 0
    changes: list[CaptionChange] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def attempted(self) -> int:
        return len(self.changes)

    @property
    def nothing_found(self) -> bool:
        """No eligible items at all (distinct from eligible but unchanged)."""
        return self.matched == 0

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "operation": self.operation.kind,
            "matched": self.matched,
            "modified_count": self.modified_count,
            "attempted": self.attempted,
            "occurrences": self.occurrences,
            "dry_run": self.dry_run,
            "changes": [
                {"id": c.id, "before": c.before, "after": c.after}
                for c in self.changes
            ],
            "failures": dict(self.failures),
        }


@dataclass(frozen=True)
class Summary:
    """Collection totals shown alongside the tag list."""
    total: int
    captioned: int
    tags: int


class EngineState:
    """
    Collection store, tag index and navigation state for one editing session.

    Every caption write made through this object is followed by a full
    index recompute and change notifications.
    """

    def __init__(
        self,
        store: CollectionStoreProtocol,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.store = store
        self.max_workers = max(1, max_workers)
        self.index: TagIndex = {}
        self.navigator = MatchNavigator()
        self.caption_listeners: list[CaptionListener] = []
        self.index_listeners: list[IndexListener] = []
        self.refresh()

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    def on_caption_changed(self, listener: CaptionListener) -> None:
        self.caption_listeners.append(listener)

    def on_index_changed(self, listener: IndexListener) -> None:
        self.index_listeners.append(listener)

    def _emit_caption(self, id: str, caption: str) -> None:
        for listener in self.caption_listeners:
            listener(id, caption)

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def items(self) -> list[Item]:
        return self.store.get_all()

    def refresh(self) -> TagIndex:
        """Recompute the tag index from the store's current captions."""
        self.index = recompute(self.store.get_all())
        for listener in self.index_listeners:
            listener(self.index)
        return self.index

    def ranked_tags(self) -> list[tuple[str, int]]:
        return ranked_list(self.index)

    def summary(self) -> Summary:
        items = self.store.get_all()
        return Summary(total=len(items), captioned=captioned_count(items), tags=len(self.index))

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def preview(self, operation: Operation) -> BulkPlan:
        """Plan an operation without writing anything."""
        return plan(operation, self.store.get_all())

    def count_matching(self, operation: Operation) -> int:
        """Dry run for confirmation prompts: how many items would be touched."""
        return self.preview(operation).matched

    def apply(self, operation: Operation, *, dry_run: bool = False) -> BulkResult:
        """
        Run a bulk operation across the whole collection.

        Raises:
            MissingInputError, PatternError: before anything is written
        """
        bulk_plan = self.preview(operation)
        result = BulkResult(
            operation=operation,
            matched=bulk_plan.matched,
            occurrences=bulk_plan.occurrences,
            changes=list(bulk_plan.changes),
            dry_run=dry_run,
        )
        if dry_run or not bulk_plan.changes:
            if bulk_plan.nothing_found:
                logger.info("%s: nothing found", operation.kind)
            return result

        result.failures = self._commit(bulk_plan.changes)
        result.modified_count = result.attempted - len(result.failures)
        self.refresh()

        logger.info(
            "%s: %d matched, %d/%d modified",
            operation.kind, result.matched, result.modified_count, result.attempted,
        )
        return result

    def _commit(self, changes: list[CaptionChange]) -> dict[str, str]:
        """Write every change; return failures by item id.

        Local stores are written in order. Remote stores get the writes
        concurrently; either way this returns only after all have settled.
        """
        if self.store.is_local or len(changes) == 1:
            outcomes = [self._write(change) for change in changes]
        else:
            workers = min(self.max_workers, len(changes))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(self._write, changes))

        failures: dict[str, str] = {}
        for change, error in zip(changes, outcomes):
            if error is None:
                self._emit_caption(change.id, change.after)
            else:
                failures[change.id] = error
        return failures

    def _write(self, change: CaptionChange) -> Optional[str]:
        """Persist one change. Returns an error message, or None on success."""
        try:
            if self.store.set_caption(change.id, change.after):
                return None
            error = "item not found"
        except StoreError as e:
            error = str(e)
        logger.warning("Failed to update caption for %s: %s", change.id, error)
        return error

    # -------------------------------------------------------------------------
    # Single-item operations
    # -------------------------------------------------------------------------

    def set_caption(self, id: str, caption: str) -> bool:
        """Replace one item's caption, as typed by the user."""
        updated = self.store.set_caption(id, caption)
        if updated:
            self._emit_caption(id, caption)
            self.refresh()
        return updated

    def add_item(
        self,
        filename: str,
        data: bytes,
        *,
        caption: str = "",
        content_type: Optional[str] = None,
    ) -> Item:
        item = self.store.add(filename, data, caption=caption, content_type=content_type)
        self.refresh()
        return item

    def delete_item(self, id: str) -> bool:
        deleted = self.store.delete(id)
        if deleted:
            self.refresh()
        return deleted

    def clear(self) -> int:
        removed = self.store.clear()
        self.navigator.clear()
        self.refresh()
        return removed

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def select_tag(self, tag: str) -> Optional[MatchStep]:
        return self.navigator.select(tag, self.store.get_all())

    def next_match(self) -> Optional[MatchStep]:
        return self.navigator.next()

    def prev_match(self) -> Optional[MatchStep]:
        return self.navigator.prev()
