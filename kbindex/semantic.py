"""
Embedding pipeline for documents: chunk, embed, and sync the vector index.

Vector records are derived state. They can always be rebuilt from stored
content (see backfill), so failures here are reported, never fatal to the
write that triggered them.
"""

import logging
from typing import Optional

from .chunking import chunk_document
from .config import ChunkSettings
from .protocol import VectorIndexProtocol
from .providers.base import EmbeddingProvider
from .types import IndexResult, SearchResult, VectorRecord, chunk_id

logger = logging.getLogger(__name__)

# Chunk IDs probed on delete when a document's chunk count was never recorded
MAX_CHUNK_PROBE = 100


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


class SemanticIndex:
    """Indexes documents into a vector index and queries it."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        vector_index: VectorIndexProtocol,
        settings: Optional[ChunkSettings] = None,
    ):
        self._embedder = embedder
        self._vectors = vector_index
        self._settings = settings or ChunkSettings()

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder

    @property
    def settings(self) -> ChunkSettings:
        return self._settings

    def index_document(self, title: str, content: str) -> IndexResult:
        """
        Chunk, embed and upsert a document.

        Chunks are embedded one at a time and inserted in a single batch.
        Any failure is caught and reported in the result; nothing is
        inserted unless every chunk embedded.
        """
        try:
            chunks = chunk_document(title, content, self._settings)
            records = []
            for chunk in chunks:
                embedding = self._embedder.embed(chunk.text_to_embed)
                records.append(VectorRecord(
                    id=chunk.id,
                    embedding=embedding,
                    metadata={
                        "title": chunk.title,
                        "chunk_index": chunk.chunk_index,
                        "content": chunk.content,
                        "context_prefix": chunk.context_prefix,
                    },
                ))
            if records:
                self._vectors.insert(records)
        except Exception as e:
            logger.warning("Failed to index %r: %s", title, e)
            return IndexResult(
                success=False,
                chunks_indexed=0,
                message=f'Failed to index "{title}": {e}',
            )

        logger.info("Indexed %r in %d chunks", title, len(records))
        return IndexResult(
            success=True,
            chunks_indexed=len(records),
            message=f'Indexed "{title}" in {_plural(len(records), "chunk")}.',
        )

    def remove_document(self, title: str, chunk_count: Optional[int] = None) -> bool:
        """
        Delete a document's vectors by reconstructing their IDs.

        Uses the recorded chunk count when known, otherwise probes
        MAX_CHUNK_PROBE IDs. Errors are logged and reported as False.
        """
        n = chunk_count if chunk_count is not None else MAX_CHUNK_PROBE
        ids = [chunk_id(title, i) for i in range(n)]
        return self._delete(title, ids)

    def delete_excess_chunks(self, title: str, new_count: int, old_count: Optional[int]) -> bool:
        """Delete chunks new_count..old_count-1 left behind by a shrinking update."""
        upper = old_count if old_count is not None else MAX_CHUNK_PROBE
        if upper <= new_count:
            return True
        ids = [chunk_id(title, i) for i in range(new_count, upper)]
        return self._delete(title, ids)

    def _delete(self, title: str, ids: list[str]) -> bool:
        if not ids:
            return True
        try:
            self._vectors.delete_by_ids(ids)
        except Exception as e:
            logger.warning("Failed to remove vectors for %r: %s", title, e)
            return False
        logger.debug("Removed up to %d vectors for %r", len(ids), title)
        return True

    def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        """
        Nearest chunks to `query`, best first.

        Raises whatever the embedder or vector index raises; the search
        orchestrator is responsible for degrading to an empty result.
        """
        embedding = self._embedder.embed(query)
        matches = self._vectors.query_nearest(embedding, limit)
        return [
            SearchResult(
                title=str(m.metadata.get("title") or "Unknown"),
                content=str(m.metadata.get("content") or ""),
                score=m.score,
            )
            for m in matches
        ]
