"""
Exception taxonomy and error logging for kbindex.

Validation and not-found errors are raised by the stores for programmatic
callers; the KnowledgeBase facade converts them into OperationResult objects.
Unexpected CLI failures are logged with full tracebacks while the user sees
a clean message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class KBError(Exception):
    """Base class for all kbindex errors."""


class ConfigurationError(KBError):
    """Store configuration is inconsistent (e.g. embedding dimension mismatch)."""


class EmbeddingError(KBError):
    """The embedding model returned a malformed response."""


class NotFoundError(KBError):
    """A requested document or initiative does not exist."""

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        if entity == "document":
            super().__init__(f'No document titled "{identifier}" found.')
        else:
            super().__init__(f'{entity.capitalize()} "{identifier}" not found.')


# -----------------------------------------------------------------------------
# Validation errors (non-retryable, raised before any mutation)
# -----------------------------------------------------------------------------

class ValidationError(KBError):
    """A write was rejected before touching storage."""


class EmptyTitleError(ValidationError):
    def __init__(self, label: str = "Title"):
        self.label = label
        super().__init__(f"{label} cannot be empty.")


class TitleTooLongError(ValidationError):
    def __init__(self, length: int, max_length: int, label: str = "Title"):
        self.length = length
        self.max_length = max_length
        self.label = label
        super().__init__(f"{label} too long ({length} chars, max {max_length} chars).")


class InvalidTitleError(ValidationError):
    """Title sanitizes to an empty storage key."""

    def __init__(self, title: str):
        self.title = title
        super().__init__(f'Invalid title: "{title}" results in empty key after sanitization.')


class DocumentTooLargeError(ValidationError):
    def __init__(self, size: int, max_size: int, label: str = "Document"):
        self.size = size
        self.max_size = max_size
        self.label = label
        super().__init__(f"{label} too large ({size} chars). Max size is {max_size} chars.")


class StoreFullError(ValidationError):
    """Aggregate size would exceed the store's global ceiling."""

    def __init__(self, current_size: int, new_total: int, max_size: int,
                 store_name: str = "Knowledge base", updating: bool = False):
        self.current_size = current_size
        self.new_total = new_total
        self.max_size = max_size
        self.store_name = store_name
        self.updating = updating
        if updating:
            message = (
                f"{store_name} full: update would exceed limit "
                f"(new total {new_total} chars, limit {max_size} chars)."
            )
        else:
            message = (
                f"{store_name} full. Current: {current_size} chars, "
                f"limit: {max_size} chars. Remove some documents first."
            )
        super().__init__(message)


class TooManyItemsError(ValidationError):
    def __init__(self, count: int, max_items: int, entity: str = "initiatives"):
        self.count = count
        self.max_items = max_items
        super().__init__(
            f"Too many {entity} (max {max_items}). Complete or remove some first."
        )


class DuplicateTitleError(ValidationError):
    def __init__(self, title: str, entity: str = "document"):
        self.title = title
        self.entity = entity
        if entity == "document":
            message = (
                f'A document titled "{title}" already exists. '
                "Remove it first or use a different title."
            )
        else:
            message = f'An {entity} named "{title}" already exists.'
        super().__init__(message)


class InvalidStatusError(ValidationError):
    def __init__(self, status: str, allowed: tuple[str, ...]):
        self.status = status
        self.allowed = allowed
        super().__init__(
            f'Invalid status "{status}". Use one of: {", ".join(allowed)}.'
        )


# -----------------------------------------------------------------------------
# Error log
# -----------------------------------------------------------------------------

def _error_log_path() -> Path:
    """Resolve error log path, respecting KBINDEX_STORE_PATH."""
    store = os.environ.get("KBINDEX_STORE_PATH")
    if store:
        return Path(store) / "kbindex-errors.log"
    return Path.home() / ".kbindex" / "kbindex-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
