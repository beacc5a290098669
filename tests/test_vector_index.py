"""Tests for the ChromaDB vector index adapter and the backend factory."""

import pytest

chromadb = pytest.importorskip("chromadb")

from kbindex.backend import create_stores
from kbindex.config import StoreConfig
from kbindex.errors import ConfigurationError
from kbindex.kv import SqliteKVStore
from kbindex.types import VectorRecord
from kbindex.vector_index import ChromaVectorIndex


@pytest.fixture
def index(tmp_path):
    idx = ChromaVectorIndex(tmp_path)
    yield idx
    idx.close()


def _record(id: str, embedding: list[float], **metadata) -> VectorRecord:
    return VectorRecord(id=id, embedding=embedding, metadata=metadata)


class TestChromaVectorIndex:

    def test_empty_query(self, index):
        assert index.query_nearest([1.0, 0.0, 0.0], 5) == []

    def test_nearest_first(self, index):
        index.insert([
            _record("a", [1.0, 0.0, 0.0], title="A"),
            _record("b", [0.0, 1.0, 0.0], title="B"),
            _record("c", [0.9, 0.1, 0.0], title="C"),
        ])
        matches = index.query_nearest([1.0, 0.0, 0.0], 2)
        assert [m.id for m in matches] == ["a", "c"]
        assert matches[0].score == pytest.approx(1.0, abs=1e-4)
        assert matches[0].metadata["title"] == "A"

    def test_k_larger_than_collection(self, index):
        index.insert([_record("a", [1.0, 0.0])])
        assert len(index.query_nearest([1.0, 0.0], 10)) == 1

    def test_non_positive_k(self, index):
        index.insert([_record("a", [1.0, 0.0])])
        assert index.query_nearest([1.0, 0.0], 0) == []

    def test_upsert_replaces(self, index):
        index.insert([_record("a", [1.0, 0.0], content="old")])
        index.insert([_record("a", [1.0, 0.0], content="new")])
        assert index.count() == 1
        assert index.query_nearest([1.0, 0.0], 1)[0].metadata["content"] == "new"

    def test_delete_ignores_unknown_ids(self, index):
        index.insert([_record("a", [1.0, 0.0]), _record("b", [0.0, 1.0])])
        index.delete_by_ids(["a", "does-not-exist"])
        assert index.count() == 1

    def test_dimension_adopted_then_enforced(self, index):
        index.insert([_record("a", [1.0, 0.0])])
        assert index.dimension == 2
        with pytest.raises(ConfigurationError):
            index.insert([_record("b", [1.0, 0.0, 0.0])])

    def test_drops_unsupported_metadata(self, index):
        index.insert([_record("a", [1.0, 0.0], title="A", tags=["x"], missing=None)])
        assert index.query_nearest([1.0, 0.0], 1)[0].metadata == {"title": "A"}


class TestBackend:

    def test_local_backend(self, tmp_path):
        bundle = create_stores(StoreConfig(path=tmp_path))
        assert bundle.is_local
        assert isinstance(bundle.kv, SqliteKVStore)
        assert isinstance(bundle.vector_index, ChromaVectorIndex)
        bundle.kv.close()
        bundle.vector_index.close()

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError, match="no-such-backend"):
            create_stores(StoreConfig(path=tmp_path, backend="no-such-backend"))
