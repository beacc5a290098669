"""
KnowledgeBase: the public facade.

Every user-facing operation returns a typed result (OperationResult,
BackfillResult, Page, ...) and never raises. Programmatic callers that
want exceptions use DocumentStore / InitiativeStore directly.

Example:
    with KnowledgeBase() as kb:
        kb.add_item("Onboarding", "Start with the README...", actor="alice")
        for hit in kb.search_semantic("how do I get started"):
            print(hit.title, hit.score)
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .backfill import backfill_all, backfill_if_needed
from .config import StoreConfig, get_store_path, load_or_create_config, save_config
from .documents import DocumentStore
from .errors import ConfigurationError, KBError
from .formatting import (
    format_document_list,
    format_initiative,
    format_initiative_list,
    format_initiatives_context,
    format_search_results_for_context,
    paginate,
)
from .initiatives import InitiativeStore
from .protocol import KVStoreProtocol, VectorIndexProtocol
from .providers.base import EmbeddingProvider, get_registry
from .search import CombinedResults, SearchService
from .semantic import SemanticIndex
from .types import (
    BackfillResult,
    DocMetadata,
    Document,
    ExpectedMetric,
    Initiative,
    InitiativeMetadata,
    InitiativeSearchResult,
    OperationResult,
    Page,
    SearchResult,
)

logger = logging.getLogger(__name__)


class _LazyEmbedding:
    """
    Embedding provider created on first use.

    Read-only operations (list, get, lexical search) never load a model.
    The factory validates the provider against the vector index.
    """

    def __init__(self, factory: Callable[[], EmbeddingProvider]):
        self._factory = factory
        self._provider: Optional[EmbeddingProvider] = None
        self._lock = threading.Lock()

    def _get(self) -> EmbeddingProvider:
        if self._provider is None:
            with self._lock:
                if self._provider is None:
                    self._provider = self._factory()
        return self._provider

    @property
    def loaded(self) -> Optional[EmbeddingProvider]:
        return self._provider

    @property
    def dimension(self) -> int:
        return self._get().dimension

    @property
    def model_name(self) -> str:
        return self._get().model_name

    def embed(self, text: str) -> list[float]:
        return self._get().embed(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return self._get().embed_batch(texts)


class KnowledgeBase:
    """
    Documents with semantic search, plus an initiatives registry.

    Storage is a key/value store (metadata indexes + content records) and a
    vector index (document chunk embeddings), both created from the store's
    kbindex.toml unless injected.
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        kv: Optional[KVStoreProtocol] = None,
        vector_index: Optional[VectorIndexProtocol] = None,
        embedder: Optional[EmbeddingProvider] = None,
    ) -> None:
        """
        Open (or create) a knowledge base.

        Args:
            store_path: Store directory. Defaults to KBINDEX_STORE_PATH or ~/.kbindex.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            kv: Injected key/value store. A missing half is created from config.
            vector_index: Injected vector index.
            embedder: Injected embedding provider (skips the provider registry).

        Raises:
            ConfigurationError: If the embedding dimension does not match
                the vector index.
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
            self._persist_config = False
        else:
            self._config = load_or_create_config(get_store_path(store_path))
            self._persist_config = True
        self._store_path = self._config.path

        # --- Persistent operations log ---
        self._ops_log_handler = None
        if self._persist_config:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._store_path)

        try:
            # --- Storage backends (injected or factory-created) ---
            self._kv = kv
            self._vector_index = vector_index
            if kv is None or vector_index is None:
                self._open_backends()

            # --- Embedding provider ---
            if embedder is not None:
                self._validate_dimension(embedder)
                self._embedder: EmbeddingProvider = embedder
            else:
                self._embedder = _LazyEmbedding(self._create_embedding_provider)
        except Exception:
            self._detach_ops_log()
            raise

        semantic = SemanticIndex(self._embedder, self._vector_index, self._config.chunking)
        self._documents = DocumentStore(self._kv, semantic, self._config.limits)
        self._initiatives = InitiativeStore(self._kv, self._config.initiatives)
        self._search = SearchService(semantic, self._initiatives)

    def _open_backends(self) -> None:
        """Create the backends that were not injected, closing the unused half."""
        from .backend import create_stores
        bundle = create_stores(self._config)
        if self._kv is None:
            self._kv = bundle.kv
        else:
            bundle.kv.close()
        if self._vector_index is None:
            self._vector_index = bundle.vector_index
        else:
            bundle.vector_index.close()

    def _detach_ops_log(self) -> None:
        if self._ops_log_handler is not None:
            logging.getLogger("kbindex").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def _create_embedding_provider(self) -> EmbeddingProvider:
        registry = get_registry()
        provider = registry.create_embedding(
            self._config.embedding.name,
            self._config.embedding.params,
        )
        self._validate_dimension(provider)
        return provider

    def _validate_dimension(self, provider: EmbeddingProvider) -> None:
        """Reject a provider whose dimension differs from the vector index; record it otherwise."""
        expected = self._vector_index.dimension or self._config.vector.dimension
        if expected is not None and provider.dimension != expected:
            raise ConfigurationError(
                f"Embedding provider {provider.model_name!r} produces {provider.dimension}-"
                f"dimensional vectors but the vector index holds {expected}-dimensional "
                f"vectors. Use the original model or rebuild the index."
            )
        if self._config.vector.dimension is None:
            logger.info("Recording embedding dimension %d", provider.dimension)
            self._config.vector.dimension = provider.dimension
            if self._persist_config:
                save_config(self._config)

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    @property
    def initiatives(self) -> InitiativeStore:
        return self._initiatives

    def _run(self, action: str, fn: Callable[..., OperationResult], *args) -> OperationResult:
        """Call a store operation, mapping exceptions to a failed result."""
        try:
            return fn(*args)
        except KBError as e:
            return OperationResult(success=False, message=str(e), error=e)
        except Exception as e:
            logger.exception("Failed to %s", action)
            return OperationResult(success=False, message=f"Failed to {action}: {e}", error=e)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def add_item(self, title: str, content: str, actor: str = "") -> OperationResult:
        """Add a document. Indexing failures do not fail the add."""
        return self._run("add document", self._documents.add, title, content, actor)

    def update_item(self, title: str, new_content: str, actor: str = "") -> OperationResult:
        """Replace a document's content (full re-index)."""
        return self._run("update document", self._documents.update, title, new_content, actor)

    def rename_item(self, title: str, new_title: str, actor: str = "") -> OperationResult:
        return self._run("rename document", self._documents.rename, title, new_title, actor)

    def remove_item(self, title: str) -> OperationResult:
        return self._run("remove document", self._documents.remove, title)

    def get_item(self, title: str) -> Optional[Document]:
        """Document by case-insensitive title, or None."""
        try:
            return self._documents.get(title)
        except Exception:
            logger.exception("Failed to get document %r", title)
            return None

    def list_items(self, page: int = 1, page_size: Optional[int] = None) -> Page[DocMetadata]:
        """One page of document index entries (1-indexed)."""
        try:
            return self._documents.list_page(page, page_size)
        except Exception:
            logger.exception("Failed to list documents")
            return paginate([], page, page_size or self._config.limits.default_page_size)

    def format_items(self, page: int = 1, page_size: Optional[int] = None) -> str:
        """Plain-text document listing with pagination header."""
        return format_document_list(self.list_items(page, page_size))

    def knowledge_base(self) -> Optional[str]:
        """All readable documents as one text block, or None."""
        try:
            return self._documents.knowledge_base()
        except Exception:
            logger.exception("Failed to assemble knowledge base")
            return None

    def random_item(self) -> OperationResult:
        try:
            picked = self._documents.random_entry()
        except Exception as e:
            logger.exception("Failed to pick a random document")
            return OperationResult(False, f"Failed to pick a document: {e}", error=e)
        if picked is None:
            return OperationResult(False, "The knowledge base is empty. Add some documents first!")
        meta, doc = picked
        if doc is None:
            return OperationResult(False, f'Couldn\'t retrieve document "{meta.title}".')
        return OperationResult(True, f"{doc.title}\n\n{doc.content}", data=doc)

    def total_size(self) -> int:
        return self._documents.total_size()

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def search_semantic(self, query: str, limit: int = 5) -> list[SearchResult]:
        """Most relevant document chunks. Returns [] on any failure."""
        return self._search.search_semantic(query, limit)

    def search_lexical(self, query: str, limit: int = 5) -> list[InitiativeSearchResult]:
        """Initiatives ranked by name/description match."""
        try:
            return self._search.search_lexical(query, limit)
        except Exception:
            logger.exception("Lexical search failed")
            return []

    def search(self, query: str, limit: int = 5) -> CombinedResults:
        """Semantic document hits and lexical initiative hits, side by side."""
        return self._search.search(query, limit)

    def search_context(self, query: str, limit: int = 5) -> Optional[str]:
        """Semantic hits rendered as a context block, or None."""
        return format_search_results_for_context(self.search_semantic(query, limit))

    # -------------------------------------------------------------------------
    # Backfill
    # -------------------------------------------------------------------------

    def backfill_all(self) -> BackfillResult:
        """Re-index every document from stored content."""
        try:
            return backfill_all(self._documents)
        except Exception as e:
            logger.exception("Backfill failed")
            return BackfillResult(False, 0, 0, f"Backfill failed: {e}", [str(e)])

    def backfill_if_needed(self, now: Optional[float] = None) -> bool:
        """Backfill unless one ran within the configured interval."""
        try:
            return backfill_if_needed(
                self._documents,
                self._kv,
                interval=self._config.backfill_interval_seconds,
                now=now,
            )
        except Exception:
            logger.exception("Backfill failed")
            return False

    # -------------------------------------------------------------------------
    # Initiatives
    # -------------------------------------------------------------------------

    def add_initiative(self, name: str, description: str, owner: str,
                       actor: str = "") -> OperationResult:
        return self._run("add initiative", self._initiatives.add, name, description, owner, actor)

    def get_initiative(self, id_or_name: str) -> Optional[Initiative]:
        try:
            return self._initiatives.get(id_or_name)
        except Exception:
            logger.exception("Failed to get initiative %r", id_or_name)
            return None

    def update_initiative_status(self, id_or_name: str, status: str,
                                 actor: str = "") -> OperationResult:
        return self._run("update initiative", self._initiatives.update_status,
                         id_or_name, status, actor)

    def update_initiative_name(self, id_or_name: str, new_name: str,
                               actor: str = "") -> OperationResult:
        return self._run("rename initiative", self._initiatives.update_name,
                         id_or_name, new_name, actor)

    def update_initiative_description(self, id_or_name: str, description: str,
                                      actor: str = "") -> OperationResult:
        return self._run("update initiative", self._initiatives.update_description,
                         id_or_name, description, actor)

    def update_initiative_owner(self, id_or_name: str, owner: str,
                                actor: str = "") -> OperationResult:
        return self._run("update initiative", self._initiatives.update_owner,
                         id_or_name, owner, actor)

    def update_initiative_prd(self, id_or_name: str, prd_link: str,
                              actor: str = "") -> OperationResult:
        return self._run("update initiative", self._initiatives.update_prd,
                         id_or_name, prd_link, actor)

    def add_initiative_metric(self, id_or_name: str, metric_type: str, name: str,
                              target: str, actor: str = "") -> OperationResult:
        metric = ExpectedMetric(type=metric_type.strip().lower(), name=name, target=target)
        return self._run("add metric", self._initiatives.add_metric, id_or_name, metric, actor)

    def remove_initiative(self, id_or_name: str) -> OperationResult:
        return self._run("remove initiative", self._initiatives.remove, id_or_name)

    def list_initiatives(
        self,
        owner: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Page[InitiativeMetadata]:
        try:
            return self._initiatives.list_page(owner, status, page, page_size)
        except Exception:
            logger.exception("Failed to list initiatives")
            return paginate([], page, page_size)

    def format_initiatives(self, **kwargs) -> str:
        return format_initiative_list(self.list_initiatives(**kwargs))

    def format_initiative(self, id_or_name: str) -> Optional[str]:
        init = self.get_initiative(id_or_name)
        return format_initiative(init) if init is not None else None

    def initiatives_context(self) -> Optional[str]:
        """Active and proposed initiatives summarized one per line, or None."""
        try:
            return format_initiatives_context(self._initiatives.active())
        except Exception:
            logger.exception("Failed to assemble initiatives context")
            return None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close stores and the embedding client, and detach the ops log."""
        embedder = self._embedder
        if isinstance(embedder, _LazyEmbedding):
            embedder = embedder.loaded
        if embedder is not None and hasattr(embedder, "close"):
            embedder.close()

        if getattr(self, "_vector_index", None) is not None:
            self._vector_index.close()
            self._vector_index = None
        if getattr(self, "_kv", None) is not None:
            self._kv.close()
            self._kv = None

        self._detach_ops_log()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
