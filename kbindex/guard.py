"""
Pre-write validation for indexed stores.

validate_write() is pure: it reads only its arguments and either raises a
ValidationError subclass or returns the aggregate size the store will have
after the write. Callers run it before any mutation, holding the store's
index lock so the checked state is the state they write over.
"""

from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional, Sequence

from .errors import (
    DocumentTooLargeError,
    DuplicateTitleError,
    EmptyTitleError,
    InvalidTitleError,
    StoreFullError,
    TitleTooLongError,
    TooManyItemsError,
)
from .types import sanitize_title


class SizedEntry(NamedTuple):
    """Title and recorded size of one existing index entry."""
    title: str
    size: int


@dataclass(frozen=True)
class WriteLimits:
    """
    Limits enforced by validate_write.

    `max_total_size` and `max_items` are optional; None disables the check.
    The label fields only shape error messages.
    """
    max_title_length: int
    max_item_size: int
    max_total_size: Optional[int] = None
    max_items: Optional[int] = None
    title_label: str = "Title"
    item_label: str = "Document"
    entity: str = "document"
    entity_plural: str = "documents"
    store_name: str = "Knowledge base"


def _same_title(a: str, b: str, sanitize: Callable[[str], str]) -> bool:
    return a.lower() == b.lower() or sanitize(a) == sanitize(b)


def validate_write(
    title: str,
    content_size: int,
    entries: Sequence[SizedEntry],
    limits: WriteLimits,
    *,
    replacing: Optional[str] = None,
    sanitize: Callable[[str], str] = sanitize_title,
) -> int:
    """
    Validate an insert (or, with `replacing`, an update) against current state.

    Checks run in a fixed order and the first failure is raised:
    empty title, title length, unusable title, item size, item count
    (inserts only), aggregate size, duplicate title.

    Args:
        title: Title of the item being written
        content_size: Size of the new content in characters
        entries: Current index entries
        limits: Limits and message labels
        replacing: Title of the entry this write replaces, if any
        sanitize: Title-to-id function used for the duplicate check

    Returns:
        Aggregate size after the write
    """
    if not title or not title.strip():
        raise EmptyTitleError(limits.title_label)
    if len(title) > limits.max_title_length:
        raise TitleTooLongError(len(title), limits.max_title_length, limits.title_label)
    if not sanitize(title):
        raise InvalidTitleError(title)
    if content_size > limits.max_item_size:
        raise DocumentTooLargeError(content_size, limits.max_item_size, limits.item_label)

    replaced: Optional[SizedEntry] = None
    if replacing is not None:
        replaced = next(
            (e for e in entries if e.title.lower() == replacing.lower()), None
        )

    if replaced is None and limits.max_items is not None and len(entries) >= limits.max_items:
        raise TooManyItemsError(len(entries), limits.max_items, limits.entity_plural)

    current = sum(e.size for e in entries)
    new_total = current - (replaced.size if replaced else 0) + content_size
    if limits.max_total_size is not None and new_total > limits.max_total_size:
        raise StoreFullError(
            current, new_total, limits.max_total_size,
            store_name=limits.store_name, updating=replaced is not None,
        )

    for entry in entries:
        if entry is replaced:
            continue
        if _same_title(entry.title, title, sanitize):
            raise DuplicateTitleError(title, limits.entity)

    return new_total
