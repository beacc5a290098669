"""
Document store: the knowledge base's text documents.

Each document is stored twice: its full record under ``docs:content:<id>``
and a lightweight entry in the ``docs:index`` blob used for listing, size
accounting and title lookup. Titles are matched case-insensitively; the
storage id is the sanitized title.

Writes are validated by the guard under the index lock, then persisted
content first, index second. Vector indexing runs afterwards and its
failure never undoes the write.
"""

import json
import logging
import random
from dataclasses import replace
from typing import Optional

from .chunking import split_text
from .config import Limits
from .errors import NotFoundError
from .formatting import paginate
from .guard import SizedEntry, WriteLimits, validate_write
from .indexed_store import IndexedStore, IndexedStoreConfig, prefixed_key
from .protocol import KVStoreProtocol
from .semantic import SemanticIndex
from .types import (
    DocMetadata,
    Document,
    DocsIndex,
    IndexResult,
    OperationResult,
    Page,
    sanitize_title,
    utc_now,
)

logger = logging.getLogger(__name__)

DOCS_INDEX_KEY = "docs:index"
DOCS_PREFIX = "docs:content:"


def _load_index(raw: str) -> DocsIndex:
    data = json.loads(raw)
    return DocsIndex([DocMetadata.from_dict(d) for d in data.get("documents", [])])


def _dump_index(index: DocsIndex) -> str:
    return json.dumps({"documents": [m.to_dict() for m in index.documents]})


def _load_document(raw: str) -> Document:
    return Document.from_dict(json.loads(raw))


def _dump_document(doc: Document) -> str:
    return json.dumps(doc.to_dict())


def docs_store_config() -> IndexedStoreConfig[DocsIndex, Document, DocMetadata]:
    return IndexedStoreConfig(
        index_key=DOCS_INDEX_KEY,
        item_key=prefixed_key(DOCS_PREFIX),
        item_id=lambda doc: sanitize_title(doc.title),
        meta_id=lambda meta: sanitize_title(meta.title),
        to_metadata=lambda doc: doc.to_metadata(),
        empty_index=DocsIndex,
        get_entries=lambda index: index.documents,
        set_entries=lambda index, entries: DocsIndex(entries),
        load_index=_load_index,
        dump_index=_dump_index,
        load_item=_load_document,
        dump_item=_dump_document,
    )


def _index_suffix(result: IndexResult) -> str:
    if not result.success:
        return ""
    n = result.chunks_indexed
    return f" Indexed in {n} chunk{'' if n == 1 else 's'} for semantic search."


class DocumentStore:
    """
    Add, update, rename, remove and read knowledge-base documents.

    Failures raise ValidationError or NotFoundError subclasses; successful
    writes return an OperationResult whose `data` is the stored Document.
    """

    def __init__(
        self,
        kv: KVStoreProtocol,
        semantic: SemanticIndex,
        limits: Optional[Limits] = None,
    ):
        self._store = IndexedStore(kv, docs_store_config())
        self._semantic = semantic
        self._limits = limits or Limits()

    @property
    def store(self) -> IndexedStore[DocsIndex, Document, DocMetadata]:
        return self._store

    @property
    def semantic(self) -> SemanticIndex:
        return self._semantic

    @property
    def limits(self) -> Limits:
        return self._limits

    def _write_limits(self) -> WriteLimits:
        return WriteLimits(
            max_title_length=self._limits.max_title_length,
            max_item_size=self._limits.max_doc_size,
            max_total_size=self._limits.max_total_size,
        )

    def _sized(self, entries: list[DocMetadata]) -> list[SizedEntry]:
        return [SizedEntry(m.title, m.char_count) for m in entries]

    def _chunk_count(self, content: str) -> int:
        return len(split_text(content, self._semantic.settings))

    def find(self, title: str) -> Optional[DocMetadata]:
        """Index entry whose title matches case-insensitively."""
        key = title.strip().lower()
        return self._store.find_in_index(lambda m: m.title.lower() == key)

    def _require(self, title: str) -> DocMetadata:
        meta = self.find(title)
        if meta is None:
            raise NotFoundError("document", title)
        return meta

    # --- Writes ------------------------------------------------------------

    def add(self, title: str, content: str, actor: str) -> OperationResult:
        """Store a new document and index it for semantic search."""
        title = title.strip()
        with self._store.index_lock():
            entries = self._store.entries()
            validate_write(title, len(content), self._sized(entries), self._write_limits())
            doc = Document(
                title=title,
                content=content,
                added_by=actor,
                added_at=utc_now(),
                chunk_count=self._chunk_count(content),
            )
            self._store.save_item(doc)
            self._store.upsert_index_entry(doc)

        logger.info("Added %r (%d chars)", title, doc.char_count)
        result = self._semantic.index_document(doc.title, doc.content)
        return OperationResult(
            success=True,
            message=(
                f'Added "{title}" ({doc.char_count} chars) to the knowledge base.'
                f"{_index_suffix(result)}"
            ),
            data=doc,
        )

    def update(self, title: str, new_content: str, actor: str) -> OperationResult:
        """Replace a document's content and fully re-index it."""
        with self._store.index_lock():
            meta = self._require(title)
            entries = self._store.entries()
            validate_write(
                meta.title, len(new_content), self._sized(entries), self._write_limits(),
                replacing=meta.title,
            )
            doc = Document(
                title=meta.title,
                content=new_content,
                added_by=meta.added_by,
                added_at=meta.added_at,
                updated_at=utc_now(),
                updated_by=actor,
                chunk_count=self._chunk_count(new_content),
            )
            self._store.save_item(doc)
            self._store.upsert_index_entry(doc)

        delta = doc.char_count - meta.char_count
        logger.info("Updated %r (%+d chars)", doc.title, delta)
        result = self._semantic.index_document(doc.title, doc.content)
        self._semantic.delete_excess_chunks(doc.title, doc.chunk_count, meta.chunk_count)
        return OperationResult(
            success=True,
            message=(
                f'Updated "{doc.title}" ({meta.char_count} -> {doc.char_count} chars, '
                f"{delta:+d}).{_index_suffix(result)}"
            ),
            data=doc,
        )

    def rename(self, title: str, new_title: str, actor: str) -> OperationResult:
        """
        Give a document a new title.

        The record moves to the new storage id and keeps its index position.
        Vectors under the old title are deleted and the content is
        re-chunked under the new one, since chunk IDs derive from the title.
        """
        new_title = new_title.strip()
        with self._store.index_lock():
            meta = self._require(title)
            old = self._store.get_item(sanitize_title(meta.title))
            if old is None:
                raise NotFoundError("document", title)
            entries = self._store.entries()
            validate_write(
                new_title, meta.char_count, self._sized(entries), self._write_limits(),
                replacing=meta.title,
            )
            doc = replace(
                old,
                title=new_title,
                updated_at=utc_now(),
                updated_by=actor,
                chunk_count=self._chunk_count(old.content),
            )

            old_id = sanitize_title(meta.title)
            self._store.save_item(doc)
            if doc.id != old_id:
                self._store.delete_item(old_id)

            index = self._store.get_index()
            index.documents = [
                doc.to_metadata() if sanitize_title(m.title) == old_id else m
                for m in index.documents
            ]
            self._store.save_index(index)

        logger.info("Renamed %r to %r", meta.title, new_title)
        self._semantic.remove_document(meta.title, meta.chunk_count)
        result = self._semantic.index_document(doc.title, doc.content)
        return OperationResult(
            success=True,
            message=f'Renamed "{meta.title}" to "{new_title}".{_index_suffix(result)}',
            data=doc,
        )

    def remove(self, title: str) -> OperationResult:
        """Delete a document's record and index entry, then sweep its vectors."""
        with self._store.index_lock():
            meta = self._require(title)
            id = sanitize_title(meta.title)
            self._store.delete_item(id)
            self._store.remove_from_index(id)

        logger.info("Removed %r", meta.title)
        self._semantic.remove_document(meta.title, meta.chunk_count)
        return OperationResult(
            success=True,
            message=f'Removed "{meta.title}" from the knowledge base.',
            data=meta,
        )

    def reindex(self, doc: Document, recorded_count: Optional[int]) -> IndexResult:
        """
        Re-chunk and re-embed a stored document with the current chunk settings.

        On success the recorded chunk count is brought up to date and any
        vectors past the new count are deleted. A document changed or
        removed since it was read is left alone.
        """
        result = self._semantic.index_document(doc.title, doc.content)
        if not result.success or result.chunks_indexed == recorded_count:
            return result

        with self._store.index_lock():
            current = self._store.get_item(doc.id)
            if current is None or current.content != doc.content or self.find(doc.title) is None:
                return result
            current.chunk_count = result.chunks_indexed
            self._store.save_item(current)
            self._store.upsert_index_entry(current)

        logger.info(
            "Chunk count for %r changed from %s to %d",
            doc.title, recorded_count, result.chunks_indexed,
        )
        self._semantic.delete_excess_chunks(doc.title, result.chunks_indexed, recorded_count)
        return result

    # --- Reads -------------------------------------------------------------

    def get(self, title: str) -> Optional[Document]:
        """Full document for `title`, or None if absent or a ghost."""
        meta = self.find(title)
        if meta is None:
            return None
        return self._store.get_item(sanitize_title(meta.title))

    def list_page(self, page: int = 1, page_size: Optional[int] = None) -> Page[DocMetadata]:
        return paginate(
            self._store.entries(),
            page=page,
            page_size=page_size or self._limits.default_page_size,
            max_page_size=self._limits.max_page_size,
        )

    def total_size(self) -> int:
        return sum(m.char_count for m in self._store.entries())

    def knowledge_base(self) -> Optional[str]:
        """
        All documents concatenated as one text, in index order.

        Ghost entries are skipped. Returns None when nothing is readable.
        """
        docs = self._store.get_all_items()
        if not docs:
            return None
        return "\n\n---\n\n".join(f"## {d.title}\n\n{d.content}" for d in docs)

    def random_entry(self, rng: Optional[random.Random] = None) -> Optional[tuple[DocMetadata, Optional[Document]]]:
        """
        Pick a random index entry and load its record.

        Returns None for an empty store; the document is None for a ghost.
        """
        entries = self._store.entries()
        if not entries:
            return None
        meta = (rng or random).choice(entries)
        return meta, self._store.get_item(sanitize_title(meta.title))
