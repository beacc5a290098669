"""
Shared pytest fixtures for kbindex tests.

Provides in-memory stores and a deterministic embedding provider so tests
never load a model, open ChromaDB, or touch the network.
"""

import hashlib
import math
from pathlib import Path
from typing import Optional

import pytest

from kbindex.api import KnowledgeBase
from kbindex.config import StoreConfig
from kbindex.errors import EmbeddingError
from kbindex.types import VectorMatch, VectorRecord


class MockEmbeddingProvider:
    """
    Deterministic mock embedding provider for testing.

    Generates consistent embeddings based on text hash - no ML model loading.
    Set `fail = True` to make every call raise EmbeddingError.
    """

    model_name = "mock-model"

    def __init__(self, dimension: int = 384):
        self.dimension = dimension
        self.embed_calls = 0
        self.fail = False

    def embed(self, text: str) -> list[float]:
        """Generate deterministic embedding from text hash."""
        self.embed_calls += 1
        if self.fail:
            raise EmbeddingError("Failed to generate embedding: mock failure")
        h = hashlib.md5(text.encode()).hexdigest()
        embedding = []
        for i in range(0, 32, 2):
            embedding.append(int(h[i:i+2], 16) / 255.0 + 0.01)
        # Repeat to full dimension
        return (embedding * (self.dimension // len(embedding) + 1))[:self.dimension]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    return dot / (na * nb) if na and nb else 0.0


class MockVectorIndex:
    """In-memory vector index with cosine scoring and failure switches."""

    def __init__(self, dimension: Optional[int] = None):
        self._dimension = dimension
        self.records: dict[str, VectorRecord] = {}
        self.deleted_batches: list[list[str]] = []
        self.fail_insert = False
        self.fail_query = False
        self.fail_delete = False
        self.closed = False

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def insert(self, records: list[VectorRecord]) -> None:
        if self.fail_insert:
            raise RuntimeError("vector insert failed")
        for r in records:
            self.records[r.id] = r

    def query_nearest(self, vector: list[float], k: int) -> list[VectorMatch]:
        if self.fail_query:
            raise RuntimeError("vector query failed")
        matches = [
            VectorMatch(id=r.id, score=_cosine(vector, r.embedding), metadata=dict(r.metadata))
            for r in self.records.values()
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:max(k, 0)]

    def delete_by_ids(self, ids: list[str]) -> None:
        if self.fail_delete:
            raise RuntimeError("vector delete failed")
        self.deleted_batches.append(list(ids))
        for id in ids:
            self.records.pop(id, None)

    def ids_for(self, prefix: str) -> list[str]:
        return sorted(id for id in self.records if id.startswith(prefix))

    def close(self) -> None:
        self.closed = True


class MemoryKVStore:
    """Dict-backed KV store. TTLs are accepted and ignored."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.puts = 0
        self.closed = False

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def put(self, key: str, value: str, *, ttl: Optional[float] = None) -> None:
        self.puts += 1
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def embedder():
    return MockEmbeddingProvider()


@pytest.fixture
def vector_index():
    return MockVectorIndex()


@pytest.fixture
def kv():
    return MemoryKVStore()


@pytest.fixture
def store_config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(path=tmp_path)


@pytest.fixture
def kb(store_config, kv, vector_index, embedder):
    """KnowledgeBase over in-memory stores with the mock embedder."""
    knowledge_base = KnowledgeBase(
        config=store_config, kv=kv, vector_index=vector_index, embedder=embedder,
    )
    yield knowledge_base
    knowledge_base.close()
