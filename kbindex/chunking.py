"""
Document chunking for semantic indexing.

Splits a document into overlapping, boundary-aware chunks and gives each
one a short prefix describing its position in the document. The prefix is
prepended to the chunk text before embedding so that chunks without
self-contained context still retrieve well.

Chunking is deterministic: the same (title, content) always yields the same
chunk boundaries and IDs, so re-indexing overwrites earlier vectors.
"""

from typing import Optional

from .config import ChunkSettings
from .types import Chunk, chunk_id

# Preferred cut points, best first
_BOUNDARIES = ("\n\n", ". ")


def create_context_prefix(title: str, index: int, total: int) -> str:
    """Describe chunk `index` (0-based) of `total` within document `title`."""
    if total == 1:
        return f'This is the full content of the document "{title}".'
    if index == 0:
        return f'This is the beginning of the document "{title}".'
    if index == total - 1:
        return f'This is the end of the document "{title}".'
    return f'This is part {index + 1} of {total} from the document "{title}".'


def _find_cut(content: str, start: int, limit: int, settings: ChunkSettings) -> int:
    """
    End offset for the chunk starting at `start`.

    Picks the end of the last paragraph break, then sentence break, lying
    wholly inside [start, limit). The cut must be at least `min_size` past
    start, and past the overlap so the next chunk starts further on.
    """
    floor = start + max(settings.min_size, settings.overlap + 1)
    for sep in _BOUNDARIES:
        pos = content.rfind(sep, start, limit)
        if pos != -1 and pos + len(sep) >= floor:
            return pos + len(sep)
    return limit


def split_text(content: str, settings: Optional[ChunkSettings] = None) -> list[str]:
    """
    Split content into overlapping slices.

    Consecutive slices share exactly `settings.overlap` characters, so
    ``s[0] + s[1][overlap:] + s[2][overlap:] + ...`` reconstructs the content.
    """
    settings = settings or ChunkSettings()
    settings.validate()

    if len(content) <= settings.size:
        return [content]

    pieces = []
    start = 0
    while True:
        limit = start + settings.size
        if limit >= len(content):
            pieces.append(content[start:])
            break
        end = _find_cut(content, start, limit, settings)
        pieces.append(content[start:end])
        start = end - settings.overlap
    return pieces


def chunk_document(
    title: str,
    content: str,
    settings: Optional[ChunkSettings] = None,
) -> list[Chunk]:
    """
    Chunk a document for embedding.

    Args:
        title: Document title (used for chunk IDs and context prefixes)
        content: Full document text
        settings: Chunk size, overlap and minimum size

    Returns:
        Chunks in document order
    """
    pieces = split_text(content, settings)
    total = len(pieces)
    return [
        Chunk(
            id=chunk_id(title, i),
            title=title,
            chunk_index=i,
            content=piece,
            context_prefix=create_context_prefix(title, i, total),
        )
        for i, piece in enumerate(pieces)
    ]
