"""
Collection store factory.

Creates the store the engine runs against from configuration. The engine
logic is identical for both; only persistence differs.
"""

from .config import StoreConfig
from .protocol import CollectionStoreProtocol


def create_store(config: StoreConfig) -> CollectionStoreProtocol:
    """
    Create a collection store from configuration.

    For ``backend = "local"`` (default), opens the SQLite database in the
    store directory. For ``backend = "remote"``, connects to the server
    named in the ``[remote]`` section.
    """
    if config.backend == "local":
        return _create_local_store(config)
    if config.backend == "remote":
        return _create_remote_store(config)
    raise ValueError(f"Unknown backend: {config.backend!r}")


def _create_local_store(config: StoreConfig) -> CollectionStoreProtocol:
    from .document_store import DATABASE_FILENAME, SQLiteCollectionStore

    return SQLiteCollectionStore(config.path / DATABASE_FILENAME)


def _create_remote_store(config: StoreConfig) -> CollectionStoreProtocol:
    from .remote import RemoteCollectionStore

    if config.remote is None:
        raise ValueError("Remote backend selected but no [remote] api_url configured")
    return RemoteCollectionStore(
        config.remote.api_url,
        timeout=config.remote.timeout,
        upload_chunk_size=config.upload_chunk_size,
    )
