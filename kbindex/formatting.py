"""
Pagination and plain-text rendering of documents and initiatives.
"""

import math
from typing import Sequence, TypeVar

from .types import (
    INITIATIVE_STATUSES,
    DocMetadata,
    Initiative,
    InitiativeMetadata,
    Page,
    SearchResult,
    local_date,
)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

EMPTY_KB_MESSAGE = (
    "The knowledge base is empty. Add documents with:\n"
    'kb add "Title" "Your content here..."'
)
EMPTY_INITIATIVES_MESSAGE = (
    "No initiatives found. Create one with:\n"
    'kb initiative add "Name" --owner NAME --description "Your description"'
)


def paginate(
    items: Sequence[T],
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> Page[T]:
    """
    Slice one page out of `items`.

    Pages are 1-indexed. `page` is raised to at least 1 and `page_size` is
    clamped to [1, max_page_size]. A page past the end is empty.
    """
    page = max(1, page)
    page_size = max(1, min(max_page_size, page_size))
    total = len(items)
    total_pages = math.ceil(total / page_size)
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total_items=total,
        total_pages=total_pages,
    )


def pagination_header(label: str, page: Page, unit: str) -> str:
    if page.total_pages > 1:
        return f"{label} (page {page.page}/{page.total_pages}, {page.total_items} {unit})"
    return f"{label} ({page.total_items} {unit})"


def more_pages_hint(command: str, page: Page) -> str:
    """Hint line pointing at the next page, or "" on the last page."""
    if not page.has_more:
        return ""
    return f"Use `{command} --page {page.page + 1}` for more"


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------

def format_document_line(meta: DocMetadata) -> str:
    return f"• {meta.title} ({meta.char_count} chars, added {local_date(meta.added_at)})"


def format_document_list(page: Page[DocMetadata]) -> str:
    """Render a page of documents, or the empty-state message."""
    if page.total_items == 0:
        return EMPTY_KB_MESSAGE

    header = pagination_header("Knowledge Base", page, "docs")
    if not page.items:
        return f"{header}\n\nNo documents on page {page.page}."

    lines = [format_document_line(m) for m in page.items]
    text = f"{header}\n\n" + "\n".join(lines)
    hint = more_pages_hint("kb list", page)
    if hint:
        text += f"\n\n{hint}"
    return text


def format_search_results_for_context(results: Sequence[SearchResult]) -> str | None:
    """Render semantic search hits as a context block, or None if empty."""
    if not results:
        return None
    sections = [
        f"### {r.title} ({round(r.score * 100)}% match)\n{r.content}"
        for r in results
    ]
    return "## Relevant Knowledge Base Excerpts\n\n" + "\n\n---\n\n".join(sections)


# -----------------------------------------------------------------------------
# Initiatives
# -----------------------------------------------------------------------------

def format_initiative(init: Initiative) -> str:
    lines = [
        init.name,
        f"Status: {init.status.value}",
        f"Owner: {init.owner}",
    ]
    if init.description:
        lines.append(f"\n{init.description}")
    if init.prd_link:
        lines.append(f"\nPRD: {init.prd_link}")
    if init.expected_metrics:
        lines.append("\nExpected Metrics:")
        for m in init.expected_metrics:
            lines.append(f"• [{m.type_label}] {m.name}: {m.target}")
    lines.append(f"\nCreated {local_date(init.created_at)}")
    return "\n".join(lines)


def format_initiative_list(page: Page[InitiativeMetadata]) -> str:
    """Render a page of initiatives grouped by status."""
    if not page.items:
        if page.total_items > 0:
            return f"No initiatives on page {page.page}. Total: {page.total_items}"
        return EMPTY_INITIATIVES_MESSAGE

    lines = [pagination_header("Initiatives", page, "total")]
    for status in INITIATIVE_STATUSES:
        group = [i for i in page.items if i.status == status]
        if not group:
            continue
        lines.append(f"\n{status.capitalize()}")
        for init in group:
            gaps = []
            if not init.has_prd:
                gaps.append("no PRD")
            if not init.has_metrics:
                gaps.append("no metrics")
            gap_str = f" ({', '.join(gaps)})" if gaps else ""
            lines.append(f"• {init.name} - {init.owner}{gap_str}")

    hint = more_pages_hint("kb initiative list", page)
    if hint:
        lines.append(f"\n{hint}")
    return "\n".join(lines)


def format_initiatives_context(initiatives: Sequence[Initiative]) -> str | None:
    """One line per initiative with its metrics and missing pieces."""
    if not initiatives:
        return None
    lines = []
    for init in initiatives:
        line = f"- {init.name} ({init.status.value}): {init.description or 'No description'}"
        metrics = ", ".join(f"{m.name}: {m.target}" for m in init.expected_metrics)
        if metrics:
            line += f" | Metrics: {metrics}"
        gaps = []
        if not init.prd_link:
            gaps.append("missing PRD")
        if not init.expected_metrics:
            gaps.append("no metrics defined")
        if gaps:
            line += f" | Gaps: {', '.join(gaps)}"
        lines.append(line)
    return "\n".join(lines)
