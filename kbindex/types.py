"""
Data types for the knowledge base.

Documents and initiatives each have a full record (stored under its own key)
and a lightweight metadata entry (stored in the store's single index blob).
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar


MAX_TITLE_LENGTH = 100

INITIATIVE_STATUSES = ("active", "proposed", "paused", "completed", "cancelled")

METRIC_TYPES = ("gtm", "product")


def utc_now() -> str:
    """Current UTC timestamp in ISO format with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime."""
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def local_date(utc_iso: str) -> str:
    """Convert a UTC ISO timestamp to a local-timezone date string (YYYY-MM-DD).

    Returns the raw prefix for unparseable input.
    """
    if not utc_iso:
        return ""
    try:
        return parse_utc_timestamp(utc_iso).astimezone().strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        return utc_iso[:10]


# ASCII-only so storage keys and vector IDs stay portable across backends
_UNSAFE_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SPACE_RE = re.compile(r"\s+")
_DASH_RE = re.compile(r"-+")


def _slugify(text: str) -> str:
    text = _UNSAFE_RE.sub("", text)
    text = _SPACE_RE.sub("-", text)
    text = _DASH_RE.sub("-", text)
    return text.strip("-").lower()


def sanitize_title(title: str) -> str:
    """Storage id for a title: truncated, stripped of punctuation, hyphenated, lowercase."""
    return _slugify(title[:MAX_TITLE_LENGTH])


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------

@dataclass
class DocMetadata:
    """Index entry for a document. Never carries the body."""
    title: str
    added_by: str
    added_at: str
    char_count: int
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    chunk_count: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocMetadata":
        return cls(
            title=data["title"],
            added_by=data.get("added_by", ""),
            added_at=data.get("added_at", ""),
            char_count=int(data.get("char_count", 0)),
            updated_at=data.get("updated_at"),
            updated_by=data.get("updated_by"),
            chunk_count=data.get("chunk_count"),
        )


@dataclass
class Document:
    """A stored document: content plus the fields mirrored into its index entry."""
    title: str
    content: str
    added_by: str
    added_at: str
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    chunk_count: Optional[int] = None

    @property
    def id(self) -> str:
        return sanitize_title(self.title)

    @property
    def char_count(self) -> int:
        return len(self.content)

    def to_metadata(self) -> DocMetadata:
        return DocMetadata(
            title=self.title,
            added_by=self.added_by,
            added_at=self.added_at,
            char_count=self.char_count,
            updated_at=self.updated_at,
            updated_by=self.updated_by,
            chunk_count=self.chunk_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        return cls(
            title=data["title"],
            content=data["content"],
            added_by=data.get("added_by", ""),
            added_at=data.get("added_at", ""),
            updated_at=data.get("updated_at"),
            updated_by=data.get("updated_by"),
            chunk_count=data.get("chunk_count"),
        )


@dataclass
class DocsIndex:
    documents: list[DocMetadata] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Chunks and vectors
# -----------------------------------------------------------------------------

def chunk_id(title: str, index: int) -> str:
    """Deterministic vector ID for chunk `index` of `title`, keyed by its storage id."""
    return f"doc:{sanitize_title(title)}:chunk:{index}"


@dataclass
class Chunk:
    """A bounded slice of a document, embedded independently."""
    id: str
    title: str
    chunk_index: int
    content: str
    context_prefix: str = ""

    @property
    def text_to_embed(self) -> str:
        return f"{self.context_prefix}\n\n{self.content}"


@dataclass
class VectorRecord:
    id: str
    embedding: list[float]
    metadata: dict[str, Any]


@dataclass
class VectorMatch:
    """A nearest-neighbor hit. Higher score means more similar."""
    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchResult:
    title: str
    content: str
    score: float


# -----------------------------------------------------------------------------
# Initiatives
# -----------------------------------------------------------------------------

@dataclass
class InitiativeStatus:
    value: str
    updated_at: str
    updated_by: str


@dataclass
class ExpectedMetric:
    type: str  # "gtm" or "product"
    name: str
    target: str

    @property
    def type_label(self) -> str:
        return "GTM" if self.type == "gtm" else "Product"


@dataclass
class InitiativeMetadata:
    """Index entry for an initiative."""
    id: str
    name: str
    owner: str
    status: str
    has_metrics: bool
    has_prd: bool
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InitiativeMetadata":
        return cls(
            id=data["id"],
            name=data["name"],
            owner=data.get("owner", ""),
            status=data.get("status", "proposed"),
            has_metrics=bool(data.get("has_metrics", False)),
            has_prd=bool(data.get("has_prd", False)),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class Initiative:
    id: str
    name: str
    description: str
    owner: str
    status: InitiativeStatus
    created_at: str
    created_by: str
    updated_at: str
    expected_metrics: list[ExpectedMetric] = field(default_factory=list)
    prd_link: Optional[str] = None

    def to_metadata(self) -> InitiativeMetadata:
        return InitiativeMetadata(
            id=self.id,
            name=self.name,
            owner=self.owner,
            status=self.status.value,
            has_metrics=len(self.expected_metrics) > 0,
            has_prd=bool(self.prd_link),
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.prd_link is None:
            del data["prd_link"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Initiative":
        status = data.get("status") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            owner=data.get("owner", ""),
            status=InitiativeStatus(
                value=status.get("value", "proposed"),
                updated_at=status.get("updated_at", ""),
                updated_by=status.get("updated_by", ""),
            ),
            created_at=data.get("created_at", ""),
            created_by=data.get("created_by", ""),
            updated_at=data.get("updated_at", ""),
            expected_metrics=[ExpectedMetric(**m) for m in data.get("expected_metrics", [])],
            prd_link=data.get("prd_link"),
        )


@dataclass
class InitiativeIndex:
    initiatives: list[InitiativeMetadata] = field(default_factory=list)


@dataclass
class InitiativeSearchResult:
    initiative: InitiativeMetadata
    score: int
    snippet: str


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of an index listing. Pages are 1-indexed."""
    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


@dataclass
class OperationResult:
    """
    Outcome of a user-facing operation.

    `error` holds the typed exception on failure so programmatic callers
    can branch on its class without parsing `message`.
    """
    success: bool
    message: str
    error: Optional[Exception] = None
    data: Any = None

    def __bool__(self) -> bool:
        return self.success


@dataclass
class IndexResult:
    success: bool
    chunks_indexed: int
    message: str


@dataclass
class BackfillResult:
    success: bool
    indexed: int
    failed: int
    message: str
    errors: list[str] = field(default_factory=list)
