"""
kbindex

A knowledge base with semantic search: documents are chunked, embedded and
indexed in a vector store; a parallel initiatives registry is searched by
name and description.

Quick Start:
    from kbindex import KnowledgeBase

    kb = KnowledgeBase()  # uses ~/.kbindex/
    kb.add_item("Onboarding", "Start with the README...", actor="alice")
    results = kb.search_semantic("how do I get started")

CLI Usage:
    kb add "Onboarding" -f onboarding.md
    kb search "getting started"
    kb backfill --if-needed

Environment Variables:
    KBINDEX_STORE_PATH     - Override default store location
    KBINDEX_VERBOSE        - Set to 1 for debug logging
    CLOUDFLARE_ACCOUNT_ID  - Workers AI account (with CLOUDFLARE_API_TOKEN)
    CLOUDFLARE_API_TOKEN   - Workers AI token

The store is initialized automatically on first use. Configuration is persisted
in kbindex.toml within the store directory.
"""

# Configure quiet mode early (before any library imports)
import os
if not os.environ.get("KBINDEX_VERBOSE"):
    os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")
    os.environ.setdefault("TRANSFORMERS_VERBOSITY", "error")
    os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
    os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

from .api import KnowledgeBase
from .errors import KBError, NotFoundError, ValidationError
from .types import Document, DocMetadata, Initiative, OperationResult, SearchResult

__version__ = "0.1.0"
__all__ = [
    "KnowledgeBase",
    "KBError",
    "NotFoundError",
    "ValidationError",
    "Document",
    "DocMetadata",
    "Initiative",
    "OperationResult",
    "SearchResult",
]
