"""
Generic "index + detail" store over a key/value backend.

Each store keeps one metadata index (a single JSON blob holding an ordered
list of lightweight entries) plus one record per item under its own key.
Documents and initiatives both use this class; what differs between them is
injected through IndexedStoreConfig rather than subclassing.

Index and item writes are two independent steps. A crash between them
leaves a ghost (index entry without a record) or an orphan (record without
an index entry). Readers must tolerate ghosts; an orphan is overwritten by
the next write of the same id.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

from .protocol import KVStoreProtocol

logger = logging.getLogger(__name__)

IndexT = TypeVar("IndexT")
ItemT = TypeVar("ItemT")
MetaT = TypeVar("MetaT")


@dataclass
class IndexedStoreConfig(Generic[IndexT, ItemT, MetaT]):
    """Key layout, id derivation and codecs for one IndexedStore."""
    index_key: str
    item_key: Callable[[str], str]
    item_id: Callable[[ItemT], str]
    meta_id: Callable[[MetaT], str]
    to_metadata: Callable[[ItemT], MetaT]
    empty_index: Callable[[], IndexT]
    get_entries: Callable[[IndexT], list[MetaT]]
    set_entries: Callable[[IndexT, list[MetaT]], IndexT]
    load_index: Callable[[str], IndexT]
    dump_index: Callable[[IndexT], str]
    load_item: Callable[[str], ItemT]
    dump_item: Callable[[ItemT], str]
    max_workers: int = 8


def prefixed_key(prefix: str) -> Callable[[str], str]:
    """Item-key function that prepends `prefix` to the item id."""
    return lambda id: prefix + id


class IndexedStore(Generic[IndexT, ItemT, MetaT]):
    """
    Index + item CRUD over a KVStoreProtocol.

    Every read-modify-write of the index in this process runs under one
    re-entrant lock. Callers that validate against the index and then write
    should hold `index_lock()` across both steps.
    """

    def __init__(self, kv: KVStoreProtocol, config: IndexedStoreConfig[IndexT, ItemT, MetaT]):
        self._kv = kv
        self._config = config
        self._lock = threading.RLock()

    @property
    def config(self) -> IndexedStoreConfig[IndexT, ItemT, MetaT]:
        return self._config

    @contextmanager
    def index_lock(self) -> Iterator[None]:
        """Hold the index mutation lock."""
        with self._lock:
            yield

    # --- Index -------------------------------------------------------------

    def get_index(self) -> IndexT:
        """Load the index; an absent blob reads as an empty index."""
        raw = self._kv.get(self._config.index_key)
        if not raw:
            return self._config.empty_index()
        return self._config.load_index(raw)

    def save_index(self, index: IndexT) -> None:
        self._kv.put(self._config.index_key, self._config.dump_index(index))

    def entries(self) -> list[MetaT]:
        return list(self._config.get_entries(self.get_index()))

    def find_in_index(self, predicate: Callable[[MetaT], bool]) -> Optional[MetaT]:
        for meta in self._config.get_entries(self.get_index()):
            if predicate(meta):
                return meta
        return None

    def exists_in_index(self, predicate: Callable[[MetaT], bool]) -> bool:
        return self.find_in_index(predicate) is not None

    def upsert_index_entry(self, item: ItemT) -> None:
        """Replace the entry with the item's id in place, or append a new one."""
        cfg = self._config
        with self._lock:
            index = self.get_index()
            entries = list(cfg.get_entries(index))
            id = cfg.item_id(item)
            meta = cfg.to_metadata(item)
            for i, existing in enumerate(entries):
                if cfg.meta_id(existing) == id:
                    entries[i] = meta
                    break
            else:
                entries.append(meta)
            self.save_index(cfg.set_entries(index, entries))

    def remove_from_index(self, id: str) -> bool:
        """Remove the entry with `id`. Returns False if there was none."""
        cfg = self._config
        with self._lock:
            index = self.get_index()
            entries = list(cfg.get_entries(index))
            remaining = [m for m in entries if cfg.meta_id(m) != id]
            if len(remaining) == len(entries):
                return False
            self.save_index(cfg.set_entries(index, remaining))
            return True

    def get_count(self) -> int:
        return len(self._config.get_entries(self.get_index()))

    # --- Items -------------------------------------------------------------

    def get_item(self, id: str) -> Optional[ItemT]:
        raw = self._kv.get(self._config.item_key(id))
        if not raw:
            return None
        return self._config.load_item(raw)

    def save_item(self, item: ItemT) -> None:
        key = self._config.item_key(self._config.item_id(item))
        self._kv.put(key, self._config.dump_item(item))

    def delete_item(self, id: str) -> None:
        """Delete the item record only; the index is not touched."""
        self._kv.delete(self._config.item_key(id))

    def get_all_items(self) -> list[ItemT]:
        """
        Load every indexed item in index order.

        Records are fetched concurrently. Ghost entries are dropped.
        """
        ids = [self._config.meta_id(m) for m in self._config.get_entries(self.get_index())]
        if not ids:
            return []
        workers = max(1, min(self._config.max_workers, len(ids)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self.get_item, ids))
        items = [item for item in results if item is not None]
        if len(items) < len(ids):
            logger.debug("Skipped %d ghost entries in %s", len(ids) - len(items),
                         self._config.index_key)
        return items
