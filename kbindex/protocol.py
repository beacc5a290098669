"""
Protocol definitions for the knowledge base's storage backends.

- KVStoreProtocol: string key/value storage for metadata indexes and
  content records (SQLite locally)
- VectorIndexProtocol: approximate-nearest-neighbor index over chunk
  embeddings (ChromaDB locally)

The embedding provider protocol lives in providers.base.
"""

from typing import Optional, Protocol, runtime_checkable

from .types import VectorMatch, VectorRecord


@runtime_checkable
class KVStoreProtocol(Protocol):
    """
    Get/put/delete over string keys with optional TTL.

    Implemented by:
    - SqliteKVStore (local)
    - Any hosted KV exposing the same three calls
    """

    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str, *, ttl: Optional[float] = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class VectorIndexProtocol(Protocol):
    """
    Abstract vector index.

    Deliberately has no "list IDs by prefix" call: deleting a document's
    chunks relies on reconstructing their IDs.

    Implemented by:
    - ChromaVectorIndex (local ChromaDB)
    """

    @property
    def dimension(self) -> Optional[int]: ...

    def insert(self, records: list[VectorRecord]) -> None:
        """Upsert records by ID."""
        ...

    def query_nearest(self, vector: list[float], k: int) -> list[VectorMatch]:
        """Return at most k matches, most similar first."""
        ...

    def delete_by_ids(self, ids: list[str]) -> None:
        """Delete records by ID. Unknown IDs are ignored."""
        ...

    def close(self) -> None: ...
