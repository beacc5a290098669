"""
Backfill: rebuild the vector index from stored document content.

Used after changing embedding models, after indexing failures, or for
documents stored before semantic search existed. Documents are processed
one at a time to bound the rate of embedding calls.
"""

import logging
import time
from typing import Optional

from .documents import DocumentStore
from .protocol import KVStoreProtocol
from .types import BackfillResult, sanitize_title

logger = logging.getLogger(__name__)

LAST_BACKFILL_KEY = "sync:backfill:last"
DEFAULT_BACKFILL_INTERVAL = 24 * 60 * 60  # seconds

# Errors listed in the summary message
MAX_LISTED_ERRORS = 5


def format_backfill_message(indexed: int, failed: int, errors: list[str]) -> str:
    message = f"Backfill complete. Indexed: {indexed}, Failed: {failed}"
    if errors:
        listed = "\n".join(f"• {e}" for e in errors[:MAX_LISTED_ERRORS])
        message += f"\n\nErrors:\n{listed}"
        if len(errors) > MAX_LISTED_ERRORS:
            message += f"\n... and {len(errors) - MAX_LISTED_ERRORS} more"
    return message


def backfill_all(documents: DocumentStore) -> BackfillResult:
    """
    Re-index every document in the index, refreshing recorded chunk counts.

    Ghost entries and indexing failures are counted and reported; the job
    always visits every entry.
    """
    entries = documents.store.entries()
    if not entries:
        return BackfillResult(
            success=True, indexed=0, failed=0, message="No documents to backfill."
        )

    indexed = 0
    errors: list[str] = []
    for meta in entries:
        doc = documents.store.get_item(sanitize_title(meta.title))
        if doc is None:
            errors.append(f"{meta.title}: content not found")
            continue
        result = documents.reindex(doc, meta.chunk_count)
        if result.success:
            indexed += 1
        else:
            errors.append(f"{meta.title}: {result.message}")

    failed = len(errors)
    logger.info("Backfill complete: %d indexed, %d failed", indexed, failed)
    return BackfillResult(
        success=failed == 0,
        indexed=indexed,
        failed=failed,
        message=format_backfill_message(indexed, failed, errors),
        errors=errors,
    )


def last_backfill(kv: KVStoreProtocol) -> Optional[float]:
    """Epoch seconds of the last recorded backfill, or None."""
    raw = kv.get(LAST_BACKFILL_KEY)
    if not raw:
        return None
    try:
        return int(raw) / 1000
    except ValueError:
        logger.warning("Ignoring malformed %s value %r", LAST_BACKFILL_KEY, raw)
        return None


def backfill_if_needed(
    documents: DocumentStore,
    kv: KVStoreProtocol,
    interval: float = DEFAULT_BACKFILL_INTERVAL,
    now: Optional[float] = None,
) -> bool:
    """
    Run backfill_all unless one ran within `interval` seconds.

    The run time is recorded (as epoch milliseconds) whether or not every
    document indexed. Returns True if a backfill ran.
    """
    now = time.time() if now is None else now
    last = last_backfill(kv)
    if last is not None and now - last < interval:
        logger.debug("Backfill skipped; last run %.0fs ago", now - last)
        return False

    result = backfill_all(documents)
    kv.put(LAST_BACKFILL_KEY, str(int(now * 1000)))
    if not result.success:
        logger.warning("Backfill finished with %d failures", result.failed)
    return True
