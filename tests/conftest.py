"""
Shared pytest fixtures for captag tests.

Provides an in-memory collection store so engine tests don't touch SQLite
or the network.
"""

import threading
from typing import Optional

import pytest

from captag.document_store import SQLiteCollectionStore
from captag.engine import EngineState
from captag.errors import StoreError
from captag.types import Item


class MemoryStore:
    """
    In-memory collection store for testing.

    ``fail_ids`` makes set_caption raise StoreError for those ids, and
    ``missing_ids`` makes it report the item as gone.
    """

    def __init__(self, captions: Optional[list[str]] = None, *, is_local: bool = True):
        self.is_local = is_local
        self._items: dict[str, Item] = {}
        self._data: dict[str, bytes] = {}
        self.fail_ids: set[str] = set()
        self.missing_ids: set[str] = set()
        self.writes: list[tuple[str, str]] = []
        self._lock = threading.Lock()
        for n, caption in enumerate(captions or []):
            self.add(f"img{n}.png", b"png", caption=caption, id=f"item{n}")

    def get_all(self) -> list[Item]:
        return list(self._items.values())

    def get(self, id: str) -> Optional[Item]:
        return self._items.get(id)

    def get_caption(self, id: str) -> Optional[str]:
        item = self._items.get(id)
        return item.caption if item else None

    def read_bytes(self, id: str) -> bytes:
        return self._data[id]

    def count(self) -> int:
        return len(self._items)

    def set_caption(self, id: str, caption: str) -> bool:
        if id in self.fail_ids:
            raise StoreError(f"write failed for {id}")
        if id in self.missing_ids or id not in self._items:
            return False
        with self._lock:
            old = self._items[id]
            self._items[id] = Item(id=id, filename=old.filename, caption=caption,
                                   content_type=old.content_type)
            self.writes.append((id, caption))
        return True

    def add(self, filename, data, *, caption="", content_type=None, id=None) -> Item:
        item_id = id or f"item{len(self._items)}"
        if item_id in self._items:
            raise ValueError(f"Item already exists: {item_id}")
        item = Item(id=item_id, filename=filename, caption=caption.strip(),
                    content_type=content_type)
        self._items[item_id] = item
        self._data[item_id] = data
        return item

    def delete(self, id: str) -> bool:
        self._data.pop(id, None)
        return self._items.pop(id, None) is not None

    def clear(self) -> int:
        removed = len(self._items)
        self._items.clear()
        self._data.clear()
        return removed

    def close(self) -> None:
        pass

    def captions(self) -> list[str]:
        return [item.caption for item in self._items.values()]


def make_items(*captions: str) -> list[Item]:
    """Items item0, item1, ... with the given captions."""
    return [Item(id=f"item{n}", filename=f"img{n}.png", caption=c) for n, c in enumerate(captions)]


@pytest.fixture
def memory_store():
    """Factory for MemoryStore instances."""
    return MemoryStore


@pytest.fixture
def sqlite_store(tmp_path):
    """A real SQLite collection store in a temp directory."""
    store = SQLiteCollectionStore(tmp_path / "images.db")
    yield store
    store.close()


@pytest.fixture
def state():
    """Engine over a small in-memory collection."""
    store = MemoryStore([
        "cat, dog, outdoors",
        "cat, indoors",
        "dog, outdoors, dog",
        "",
    ])
    return EngineState(store)
