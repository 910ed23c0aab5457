import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from kbsearch.constants import DEFAULT_LEXICAL_WEIGHT, DEFAULT_SEARCH_LIMIT, DEFAULT_SEMANTIC_WEIGHT


class SearchError(Exception):
    pass


class InvalidCollectionError(SearchError, ValueError):
    pass


class SearchMode(StrEnum):
    HYBRID = "hybrid"
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


class MatchSource(StrEnum):
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


class IntentAction(StrEnum):
    FIND = "find"
    SUMMARIZE = "summarize"
    COMPARE = "compare"
    EXPLAIN = "explain"


class Timeframe(StrEnum):
    TODAY = "today"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    THIS_YEAR = "this_year"


@dataclass(frozen=True)
class SearchableDocument:
    """One indexable unit: a file or a chunk of one."""

    id: str
    collection_id: str
    name: str
    content: str
    file_type: str | None = None
    tags: tuple[str, ...] = ()
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class HighlightSpan:
    """Half-open range [start, end) into document content."""

    start: int
    end: int
    text: str = ""

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "text": self.text}


@dataclass
class MatchResult:
    """One document hit from a single retrieval branch.

    `score` is 0-1 for both sources; the lexical store normalizes its engine rank.
    """

    document: SearchableDocument
    score: float
    source: MatchSource
    snippet: str | None = None
    highlights: list[HighlightSpan] = field(default_factory=list)
    reason: str | None = None

    @property
    def document_id(self) -> str:
        return self.document.id


@dataclass
class FusedResult:
    document: SearchableDocument
    lexical_score: float = 0.0
    semantic_score: float = 0.0
    hybrid_score: float = 0.0
    snippet: str | None = None
    highlights: list[HighlightSpan] = field(default_factory=list)
    sources: set[MatchSource] = field(default_factory=set)
    reason: str | None = None

    @property
    def document_id(self) -> str:
        return self.document.id

    def to_dict(self) -> dict:
        doc = self.document
        return {
            "id": doc.id,
            "collection_id": doc.collection_id,
            "name": doc.name,
            "score": self.hybrid_score,
            "scores": {
                "lexical": self.lexical_score,
                "semantic": self.semantic_score,
                "hybrid": self.hybrid_score,
            },
            "snippet": self.snippet,
            "highlights": [h.to_dict() for h in self.highlights],
            "sources": sorted(s.value for s in self.sources),
            "reason": self.reason,
            "metadata": {
                "file_type": doc.file_type,
                "tags": list(doc.tags),
                "last_modified": doc.updated_at.isoformat(),
            },
        }


@dataclass(frozen=True)
class Weights:
    lexical: float = DEFAULT_LEXICAL_WEIGHT
    semantic: float = DEFAULT_SEMANTIC_WEIGHT

    def __post_init__(self):
        if not (math.isfinite(self.lexical) and math.isfinite(self.semantic)):
            raise ValueError(f"Weights must be finite, got {self.lexical}/{self.semantic}")
        if self.lexical < 0 or self.semantic < 0:
            raise ValueError(f"Weights must be non-negative, got {self.lexical}/{self.semantic}")


LEXICAL_ONLY = Weights(lexical=1.0, semantic=0.0)
SEMANTIC_ONLY = Weights(lexical=0.0, semantic=1.0)


@dataclass(frozen=True)
class CandidateFilter:
    """Document predicates shared by both retrieval branches.

    Unset fields do not constrain. An empty `file_types` set matches nothing;
    every tag in `tags` must be present (case-insensitive).
    """

    file_types: frozenset[str] | None = None
    since: datetime | None = None
    until: datetime | None = None
    tags: frozenset[str] = frozenset()

    def __post_init__(self):
        if self.since and self.until and self.since > self.until:
            raise ValueError(f"Date range start {self.since} is after end {self.until}")

    @property
    def is_empty(self) -> bool:
        return self.file_types is None and self.since is None and self.until is None and not self.tags

    def fill_from(self, fallback: "CandidateFilter") -> "CandidateFilter":
        """Fields set here win; `fallback` only fills dimensions left open.

        Any date bound here suppresses the fallback's whole date window.
        """
        has_window = self.since is not None or self.until is not None
        return CandidateFilter(
            file_types=self.file_types if self.file_types is not None else fallback.file_types,
            since=self.since if has_window else fallback.since,
            until=self.until if has_window else fallback.until,
            tags=self.tags or fallback.tags,
        )


@dataclass(frozen=True)
class SearchOptions:
    collection_id: str | None = None
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0
    mode: SearchMode = SearchMode.HYBRID
    weights: Weights | None = None
    filters: CandidateFilter | None = None

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be non-negative, got {self.offset}")


@dataclass(frozen=True)
class QueryIntent:
    """Structured reading of a free-text query, used only to narrow candidates."""

    action: IntentAction = IntentAction.FIND
    keywords: tuple[str, ...] = ()
    entity: str | None = None
    timeframe: Timeframe | None = None
    file_type: str | None = None  # category name, see file_types.FILE_TYPE_CATEGORIES
