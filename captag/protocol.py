"""
Protocol definition for collection stores.

The engine only talks to a store through this interface. Implemented by:
- SQLiteCollectionStore (local SQLite database)
- RemoteCollectionStore (HTTP client to a captioning server)
"""

from typing import Optional, Protocol, runtime_checkable

from .types import Item


@runtime_checkable
class CollectionStoreProtocol(Protocol):
    """
    The ordered collection of items the engine operates over.

    The store owns item lifetime and guarantees one item per id.
    ``is_local`` tells the engine whether writes are cheap and serial
    (True) or remote and worth dispatching concurrently (False).
    """

    is_local: bool

    # -- Read operations --

    def get_all(self) -> list[Item]: ...

    def get(self, id: str) -> Optional[Item]: ...

    def get_caption(self, id: str) -> Optional[str]: ...

    def read_bytes(self, id: str) -> bytes: ...

    def count(self) -> int: ...

    # -- Write operations --

    def set_caption(self, id: str, caption: str) -> bool: ...

    def add(
        self,
        filename: str,
        data: bytes,
        *,
        caption: str = "",
        content_type: Optional[str] = None,
        id: Optional[str] = None,
    ) -> Item: ...

    def delete(self, id: str) -> bool: ...

    def clear(self) -> int: ...

    def close(self) -> None: ...
