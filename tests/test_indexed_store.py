"""Tests for the generic index + item store."""

import threading

from kbindex.documents import DOCS_INDEX_KEY, docs_store_config
from kbindex.indexed_store import IndexedStore
from kbindex.types import Document

from tests.conftest import MemoryKVStore


def _doc(title: str, content: str = "body") -> Document:
    return Document(title=title, content=content, added_by="tester", added_at="2024-01-01T00:00:00.000Z")


def _store(kv=None) -> IndexedStore:
    return IndexedStore(kv or MemoryKVStore(), docs_store_config())


class TestIndex:

    def test_missing_index_reads_as_empty(self):
        store = _store()
        assert store.entries() == []
        assert store.get_count() == 0

    def test_upsert_appends_in_order(self):
        store = _store()
        for title in ("One", "Two", "Three"):
            store.upsert_index_entry(_doc(title))
        assert [m.title for m in store.entries()] == ["One", "Two", "Three"]

    def test_upsert_replaces_in_place(self):
        store = _store()
        for title in ("One", "Two", "Three"):
            store.upsert_index_entry(_doc(title))
        store.upsert_index_entry(_doc("Two", "much longer body"))
        entries = store.entries()
        assert [m.title for m in entries] == ["One", "Two", "Three"]
        assert entries[1].char_count == len("much longer body")

    def test_remove_from_index(self):
        store = _store()
        store.upsert_index_entry(_doc("One"))
        assert store.remove_from_index("one") is True
        assert store.remove_from_index("one") is False
        assert store.get_count() == 0

    def test_find_and_exists(self):
        store = _store()
        store.upsert_index_entry(_doc("Alpha"))
        assert store.find_in_index(lambda m: m.title == "Alpha").title == "Alpha"
        assert store.exists_in_index(lambda m: m.title == "Beta") is False

    def test_index_is_single_key(self):
        kv = MemoryKVStore()
        store = _store(kv)
        store.upsert_index_entry(_doc("One"))
        assert DOCS_INDEX_KEY in kv.data


class TestItems:

    def test_round_trip(self):
        store = _store()
        doc = _doc("Round Trip", "content here")
        store.save_item(doc)
        loaded = store.get_item("round-trip")
        assert loaded == doc

    def test_missing_item_is_none(self):
        assert _store().get_item("nothing") is None

    def test_delete_item_leaves_index(self):
        store = _store()
        doc = _doc("Keep Entry")
        store.save_item(doc)
        store.upsert_index_entry(doc)
        store.delete_item(doc.id)
        assert store.get_item(doc.id) is None
        assert store.get_count() == 1

    def test_get_all_items_skips_ghosts(self):
        store = _store()
        for title in ("A", "B", "C", "D"):
            doc = _doc(title)
            store.upsert_index_entry(doc)
            if title != "C":
                store.save_item(doc)
        assert [d.title for d in store.get_all_items()] == ["A", "B", "D"]

    def test_get_all_items_empty(self):
        assert _store().get_all_items() == []


class TestConcurrency:

    def test_concurrent_upserts_lose_nothing(self):
        store = _store()
        titles = [f"Doc {i}" for i in range(20)]

        def write(title):
            store.upsert_index_entry(_doc(title))

        threads = [threading.Thread(target=write, args=(t,)) for t in titles]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(m.title for m in store.entries()) == sorted(titles)
