"""
Retrieval orchestrator.

Two independent modes:
- semantic search over document chunks (embedding + vector index)
- lexical search over initiatives (substring and word scoring)

The result sets are not normalized against each other; callers decide how
to present them together.
"""

import logging
from dataclasses import dataclass, field

from .initiatives import InitiativeStore
from .semantic import SemanticIndex
from .types import InitiativeSearchResult, SearchResult

logger = logging.getLogger(__name__)

NAME_MATCH_SCORE = 10
NAME_WORD_SCORE = 3
DESCRIPTION_MATCH_SCORE = 5
DESCRIPTION_WORD_SCORE = 1

# Query words this short or shorter are ignored by per-word scoring
MIN_WORD_LENGTH = 2

__all__ = [
    "CombinedResults",
    "SearchService",
    "extract_snippet",
]


@dataclass
class CombinedResults:
    documents: list[SearchResult] = field(default_factory=list)
    initiatives: list[InitiativeSearchResult] = field(default_factory=list)


def extract_snippet(text: str, match_start: int, match_end: int,
                    before: int = 30, after: int = 50) -> str:
    """Window of `text` around a match, with "..." where it was cut."""
    start = max(0, match_start - before)
    end = min(len(text), match_end + after)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    return f"{prefix}{text[start:end]}{suffix}"


class SearchService:
    """Runs semantic and lexical searches."""

    def __init__(self, semantic: SemanticIndex, initiatives: InitiativeStore):
        self._semantic = semantic
        self._initiatives = initiatives

    def search_semantic(self, query: str, limit: int = 5) -> list[SearchResult]:
        """
        Most relevant document chunks for `query`.

        Never raises: any embedding or vector index failure is logged and
        yields an empty list.
        """
        if not query.strip() or limit <= 0:
            return []
        try:
            return self._semantic.search(query, limit)
        except Exception as e:
            logger.warning("Semantic search failed: %s", e)
            return []

    def search_lexical(self, query: str, limit: int = 5) -> list[InitiativeSearchResult]:
        """
        Score initiatives against `query`.

        A name containing the whole query scores 10; otherwise each query
        word (longer than two characters) found in the name scores 3. When
        the name gave no score or no snippet, the description is checked:
        containing the whole query adds 5, otherwise each matching word
        adds 1. Zero scores are dropped.
        """
        query_lower = query.lower().strip()
        if not query_lower or limit <= 0:
            return []
        words = [w for w in query_lower.split() if len(w) > MIN_WORD_LENGTH]

        results = []
        for meta in self._initiatives.entries():
            score = 0
            snippet = ""

            name_lower = meta.name.lower()
            if query_lower in name_lower:
                score += NAME_MATCH_SCORE
                snippet = meta.name
            else:
                score += NAME_WORD_SCORE * sum(1 for w in words if w in name_lower)

            if score == 0 or not snippet:
                init = self._initiatives.store.get_item(meta.id)
                if init is not None:
                    desc = init.description or ""
                    desc_lower = desc.lower()
                    pos = desc_lower.find(query_lower)
                    if pos != -1:
                        score += DESCRIPTION_MATCH_SCORE
                        snippet = extract_snippet(desc, pos, pos + len(query_lower))
                    else:
                        for word in words:
                            pos = desc_lower.find(word)
                            if pos == -1:
                                continue
                            score += DESCRIPTION_WORD_SCORE
                            if not snippet:
                                snippet = extract_snippet(desc, pos, pos, after=60)

            if score > 0:
                results.append(InitiativeSearchResult(meta, score, snippet or meta.name))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def search(self, query: str, limit: int = 5) -> CombinedResults:
        """Both result sets, side by side. A failing lexical search yields no initiatives."""
        try:
            initiatives = self.search_lexical(query, limit)
        except Exception as e:
            logger.warning("Lexical search failed: %s", e)
            initiatives = []
        return CombinedResults(
            documents=self.search_semantic(query, limit),
            initiatives=initiatives,
        )
