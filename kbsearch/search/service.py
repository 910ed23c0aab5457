import asyncio
import re

from kbsearch.constants import (
    BATCH_CONCURRENCY,
    CANDIDATE_LIMIT,
    DEFAULT_SUGGEST_LIMIT,
    SEARCH_OVERFETCH_FACTOR,
)
from kbsearch.logging import get_logger
from kbsearch.search.file_types import TypePreferences
from kbsearch.search.fusion import fuse_and_rank
from kbsearch.search.intent import IntentAnalyzer, candidate_filter, intent_suggestions
from kbsearch.search.semantic import SemanticScorer
from kbsearch.search.store import DocumentStore
from kbsearch.search.types import (
    LEXICAL_ONLY,
    SEMANTIC_ONLY,
    CandidateFilter,
    FusedResult,
    InvalidCollectionError,
    MatchResult,
    SearchableDocument,
    SearchMode,
    SearchOptions,
    Weights,
)

_logger = get_logger(__name__)

_COLLECTION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_collection_id(collection_id: str | None) -> None:
    if collection_id is None:
        return
    if not isinstance(collection_id, str) or not _COLLECTION_ID_RE.match(collection_id):
        raise InvalidCollectionError(f"Invalid collection id: {collection_id!r}")


class HybridSearch:
    """Lexical + semantic search over one document store.

    Stateless per call: concurrent searches share only the store's read path.
    """

    def __init__(
        self,
        store: DocumentStore,
        analyzer: IntentAnalyzer,
        scorer: SemanticScorer,
        preferences: TypePreferences | None = None,
        weights: Weights | None = None,
        candidate_limit: int = CANDIDATE_LIMIT,
        batch_concurrency: int = BATCH_CONCURRENCY,
    ):
        self.store = store
        self.analyzer = analyzer
        self.scorer = scorer
        self.preferences = preferences or TypePreferences()
        self.weights = weights or Weights()
        self.candidate_limit = candidate_limit
        self.batch_concurrency = batch_concurrency

    async def _lexical(
        self,
        query: str,
        collection_id: str | None,
        limit: int,
        filters: CandidateFilter | None = None,
    ) -> list[MatchResult]:
        try:
            return await self.store.lexical_search(
                query, collection_id, limit=limit, offset=0, candidate_filter=filters
            )
        except Exception as e:
            _logger.warning("Lexical branch failed, continuing without it: %s", e)
            return []

    async def _semantic(
        self,
        query: str,
        collection_id: str | None,
        limit: int,
        filters: CandidateFilter | None = None,
    ) -> list[MatchResult]:
        try:
            intent = await self.analyzer.analyze(query)
            narrowed = candidate_filter(intent)
            if filters is not None:
                narrowed = filters.fill_from(narrowed)
            candidates = await self.store.fetch_candidates(
                collection_id,
                narrowed,
                limit=self.candidate_limit,
            )
            results = await self.scorer.score(query, candidates)
        except Exception as e:
            _logger.warning("Semantic branch failed, continuing without it: %s", e)
            return []
        return results[:limit]

    async def search(self, query: str, options: SearchOptions | None = None) -> list[FusedResult]:
        """Ranked, deduplicated page of results; empty rather than failing.

        Raises InvalidCollectionError for a malformed collection id.
        """
        options = options or SearchOptions()
        if not query or not query.strip():
            return []
        validate_collection_id(options.collection_id)

        fetch_limit = (options.offset + options.limit) * SEARCH_OVERFETCH_FACTOR
        collection_id = options.collection_id
        filters = options.filters
        lexical: list[MatchResult] = []
        semantic: list[MatchResult] = []

        match options.mode:
            case SearchMode.LEXICAL:
                lexical = await self._lexical(query, collection_id, fetch_limit, filters)
                weights = LEXICAL_ONLY
            case SearchMode.SEMANTIC:
                semantic = await self._semantic(query, collection_id, fetch_limit, filters)
                weights = SEMANTIC_ONLY
            case _:
                lexical, semantic = await asyncio.gather(
                    self._lexical(query, collection_id, fetch_limit, filters),
                    self._semantic(query, collection_id, fetch_limit, filters),
                )
                weights = options.weights or self.weights

        _logger.debug(
            "Search %r: %d lexical, %d semantic hits (mode=%s)",
            query,
            len(lexical),
            len(semantic),
            options.mode.value,
        )
        return fuse_and_rank(
            lexical,
            semantic,
            weights,
            query,
            self.preferences,
            offset=options.offset,
            limit=options.limit,
        )

    async def batch_search(
        self,
        queries: list[str],
        options: SearchOptions | None = None,
        concurrency: int | None = None,
    ) -> dict[str, list[FusedResult]]:
        """Run several searches with at most `concurrency` in flight; keyed by query in input order."""
        unique = list(dict.fromkeys(queries))
        if options:
            validate_collection_id(options.collection_id)
        semaphore = asyncio.Semaphore(concurrency or self.batch_concurrency)

        async def _run(query: str) -> list[FusedResult]:
            async with semaphore:
                return await self.search(query, options)

        results = await asyncio.gather(*(_run(q) for q in unique))
        return dict(zip(unique, results))

    async def suggest(
        self,
        query: str,
        collection_id: str | None = None,
        limit: int = DEFAULT_SUGGEST_LIMIT,
    ) -> list[str]:
        """Document-name completions followed by intent-derived phrasings, deduplicated."""
        if not query or not query.strip():
            return []
        validate_collection_id(collection_id)

        async def _names() -> list[str]:
            try:
                return await self.store.suggest_names(query, collection_id, limit)
            except Exception as e:
                _logger.warning("Name suggestions failed: %s", e)
                return []

        names, intent = await asyncio.gather(_names(), self.analyzer.analyze(query))
        suggestions = names + intent_suggestions(query, intent)
        return list(dict.fromkeys(suggestions))[:limit]

    async def stats(self, collection_id: str | None = None) -> dict:
        validate_collection_id(collection_id)
        per_collection = await self.store.get_stats()
        stats: dict = {
            "total": sum(per_collection.values()),
            "collections": per_collection,
        }
        if collection_id:
            stats["collection"] = per_collection.get(collection_id, 0)
        return stats

    async def index(self, document: SearchableDocument) -> None:
        validate_collection_id(document.collection_id)
        await self.store.upsert(document)

    async def remove(self, document_id: str, collection_id: str | None = None) -> bool:
        validate_collection_id(collection_id)
        return await self.store.delete(document_id, collection_id)

    async def rebuild(self) -> int:
        await self.store.rebuild()
        count = await self.store.count()
        _logger.info("Rebuilt full-text index over %d documents", count)
        return count
