"""
Pluggable storage backend factory.

Creates the key/value store and vector index from configuration. The local
backend uses SQLite + ChromaDB. External backends register via the
``kbindex.backends`` entry point group.

External backend packages provide a factory function::

    def create_stores(config: StoreConfig) -> StoreBundle:
        ...

and register it in their pyproject.toml::

    [project.entry-points."kbindex.backends"]
    my-backend = "my_package.backend:create_stores"
"""

from typing import NamedTuple

from .config import StoreConfig
from .protocol import KVStoreProtocol, VectorIndexProtocol


class StoreBundle(NamedTuple):
    """Storage backends returned by the factory."""
    kv: KVStoreProtocol
    vector_index: VectorIndexProtocol
    is_local: bool  # True for filesystem-backed stores


def create_stores(config: StoreConfig) -> StoreBundle:
    """
    Create storage backends from configuration.

    For ``backend = "local"`` (default), creates a SQLite key/value store
    and a ChromaDB vector index under the store directory.

    For other values, loads the backend via the ``kbindex.backends`` entry
    point group.
    """
    if config.backend == "local":
        return _create_local_stores(config)
    return _load_backend(config.backend, config)


def _create_local_stores(config: StoreConfig) -> StoreBundle:
    from .kv import SqliteKVStore
    from .vector_index import ChromaVectorIndex

    store_path = config.path
    kv = SqliteKVStore(store_path / "kbindex.db")
    vector_index = ChromaVectorIndex(
        store_path,
        collection=config.vector.collection,
        dimension=config.vector.dimension,
    )
    return StoreBundle(kv=kv, vector_index=vector_index, is_local=True)


def _load_backend(name: str, config: StoreConfig) -> StoreBundle:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="kbindex.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(f"Unknown backend: {name!r}. Available: {available}")
    raise ValueError(
        f"Unknown backend: {name!r}. No backends registered. "
        f"Install a backend package that provides the 'kbindex.backends' entry point."
    )
