"""
Vector index adapter backed by ChromaDB.

Stores one record per document chunk. Chunk content is denormalized into
the record metadata so search results need no second content-store read.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigurationError
from .types import VectorMatch, VectorRecord

logger = logging.getLogger(__name__)


class ChromaVectorIndex:
    """
    Persistent ChromaDB collection using cosine distance.

    Scores are reported as `1 - distance`, so higher is more similar.
    """

    def __init__(
        self,
        store_path: Path,
        collection: str = "documents",
        dimension: Optional[int] = None,
    ):
        """
        Args:
            store_path: Store directory; Chroma data lives in store_path/chroma
            collection: Collection name
            dimension: Expected embedding dimension (checked on insert/query)
        """
        import chromadb
        from chromadb.config import Settings

        self._path = Path(store_path) / "chroma"
        self._path.mkdir(parents=True, exist_ok=True)
        self._client = chromadb.PersistentClient(
            path=str(self._path),
            settings=Settings(anonymized_telemetry=False, allow_reset=True),
        )
        self._collection = self._client.get_or_create_collection(
            name=collection,
            metadata={"hnsw:space": "cosine"},
        )
        self._dimension = dimension

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _check_dimension(self, vector: list[float]) -> None:
        if self._dimension is None:
            self._dimension = len(vector)
        elif len(vector) != self._dimension:
            raise ConfigurationError(
                f"Embedding dimension {len(vector)} does not match "
                f"vector index dimension {self._dimension}"
            )

    def insert(self, records: list[VectorRecord]) -> None:
        """Upsert records by ID."""
        if not records:
            return
        for record in records:
            self._check_dimension(record.embedding)
        self._collection.upsert(
            ids=[r.id for r in records],
            embeddings=[r.embedding for r in records],
            metadatas=[_clean_metadata(r.metadata) for r in records],
        )
        logger.debug("Upserted %d vectors", len(records))

    def query_nearest(self, vector: list[float], k: int) -> list[VectorMatch]:
        """Return at most k matches, most similar first."""
        if k <= 0:
            return []
        self._check_dimension(vector)
        count = self._collection.count()
        if count == 0:
            return []
        result = self._collection.query(
            query_embeddings=[vector],
            n_results=min(k, count),
            include=["metadatas", "distances"],
        )
        ids = result["ids"][0]
        distances = result["distances"][0]
        metadatas = result["metadatas"][0]
        matches = [
            VectorMatch(id=id, score=1.0 - float(dist), metadata=dict(meta or {}))
            for id, dist, meta in zip(ids, distances, metadatas)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:k]

    def delete_by_ids(self, ids: list[str]) -> None:
        """Delete records by ID. Unknown IDs are ignored by Chroma."""
        if not ids:
            return
        self._collection.delete(ids=ids)
        logger.debug("Deleted up to %d vectors", len(ids))

    def count(self) -> int:
        return self._collection.count()

    def close(self) -> None:
        # PersistentClient flushes on write; nothing to release explicitly
        self._collection = None
        self._client = None


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Chroma metadata values must be str, int, float or bool."""
    return {
        k: v for k, v in metadata.items()
        if isinstance(v, (str, int, float, bool))
    }
