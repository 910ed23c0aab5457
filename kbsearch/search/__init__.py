from kbsearch.search.file_types import TypePreferences
from kbsearch.search.fusion import fuse, fuse_and_rank, rank
from kbsearch.search.intent import IntentAnalyzer
from kbsearch.search.semantic import EmbeddingSemanticScorer, KeywordScorer, LLMSemanticScorer, SemanticScorer
from kbsearch.search.service import HybridSearch, validate_collection_id
from kbsearch.search.store import DocumentStore
from kbsearch.search.types import (
    CandidateFilter,
    FusedResult,
    HighlightSpan,
    InvalidCollectionError,
    MatchResult,
    MatchSource,
    QueryIntent,
    SearchableDocument,
    SearchError,
    SearchMode,
    SearchOptions,
    Weights,
)

__all__ = [
    "CandidateFilter",
    "DocumentStore",
    "EmbeddingSemanticScorer",
    "FusedResult",
    "HighlightSpan",
    "HybridSearch",
    "IntentAnalyzer",
    "InvalidCollectionError",
    "KeywordScorer",
    "LLMSemanticScorer",
    "MatchResult",
    "MatchSource",
    "QueryIntent",
    "SearchError",
    "SearchMode",
    "SearchOptions",
    "SearchableDocument",
    "SemanticScorer",
    "TypePreferences",
    "Weights",
    "fuse",
    "fuse_and_rank",
    "rank",
    "validate_collection_id",
]
