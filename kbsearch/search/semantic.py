from abc import ABC, abstractmethod

import numpy as np
from pydantic import BaseModel, field_validator

from kbsearch.constants import (
    CANDIDATE_EXCERPT_LIMIT,
    FALLBACK_CONTENT_WEIGHT,
    FALLBACK_MAX_SCORE,
    FALLBACK_NAME_WEIGHT,
    SCORING_BASE_TOKENS,
    SCORING_TEMPERATURE,
    SCORING_TOKENS_PER_CANDIDATE,
)
from kbsearch.llm.provider import TextCompletionProvider
from kbsearch.logging import get_logger
from kbsearch.parsing import parse_or_default
from kbsearch.search.embedder import Embedder
from kbsearch.search.highlight import highlights, sentence_snippet
from kbsearch.search.prompts import SCORING_DOCUMENT, SCORING_PROMPT, SEARCH_SYSTEM_PROMPT
from kbsearch.search.types import MatchResult, MatchSource, SearchableDocument

_logger = get_logger(__name__)

KEYWORD_FALLBACK_REASON = "keyword match"


class ScoreItem(BaseModel):
    index: int
    score: float
    reason: str | None = None

    @field_validator("score")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return min(max(v, 0.0), 100.0)


class ScoreResponse(BaseModel):
    scores: list[ScoreItem] = []


def keyword_overlap_scores(query: str, candidates: list[SearchableDocument]) -> list[float]:
    """Deterministic 0-100 score per candidate, in candidate order.

    Each query word found in the name adds FALLBACK_NAME_WEIGHT, each found in
    the content adds FALLBACK_CONTENT_WEIGHT; the total is capped.
    """
    words = query.lower().split()
    scores: list[float] = []
    for candidate in candidates:
        name = candidate.name.lower()
        content = candidate.content.lower()
        score = 0
        for word in words:
            if word in name:
                score += FALLBACK_NAME_WEIGHT
            if word in content:
                score += FALLBACK_CONTENT_WEIGHT
        scores.append(float(min(score, FALLBACK_MAX_SCORE)))
    return scores


def build_results(
    query: str,
    scored: list[tuple[SearchableDocument, float, str | None]],
) -> list[MatchResult]:
    """Attach snippets and highlights, then order by descending score (stable)."""
    results = [
        MatchResult(
            document=document,
            score=score,
            source=MatchSource.SEMANTIC,
            snippet=sentence_snippet(document.content, query),
            highlights=highlights(document.content, query),
            reason=reason,
        )
        for document, score, reason in scored
    ]
    results.sort(key=lambda r: r.score, reverse=True)
    return results


def keyword_fallback(query: str, candidates: list[SearchableDocument]) -> list[MatchResult]:
    scores = keyword_overlap_scores(query, candidates)
    return build_results(
        query,
        [(c, s / FALLBACK_MAX_SCORE, KEYWORD_FALLBACK_REASON) for c, s in zip(candidates, scores)],
    )


class SemanticScorer(ABC):
    @abstractmethod
    async def score(self, query: str, candidates: list[SearchableDocument]) -> list[MatchResult]:
        """Return one 0-1 scored result per ranked candidate, best first."""


class KeywordScorer(SemanticScorer):
    """Scorer used when no model is configured."""

    async def score(self, query: str, candidates: list[SearchableDocument]) -> list[MatchResult]:
        return keyword_fallback(query, candidates)


class LLMSemanticScorer(SemanticScorer):
    def __init__(self, llm: TextCompletionProvider, excerpt_limit: int = CANDIDATE_EXCERPT_LIMIT):
        self.llm = llm
        self.excerpt_limit = excerpt_limit

    def _build_prompt(self, query: str, candidates: list[SearchableDocument]) -> str:
        documents = "\n\n".join(
            SCORING_DOCUMENT.format(
                index=i,
                name=c.name,
                excerpt=c.content[: self.excerpt_limit],
            )
            for i, c in enumerate(candidates)
        )
        return SCORING_PROMPT.format(query=query, documents=documents)

    def _reply_budget(self, count: int) -> int:
        budget = SCORING_BASE_TOKENS + SCORING_TOKENS_PER_CANDIDATE * count
        return min(budget, self.llm.max_output_tokens)

    async def score(self, query: str, candidates: list[SearchableDocument]) -> list[MatchResult]:
        if not candidates:
            return []

        try:
            raw = await self.llm.complete(
                self._build_prompt(query, candidates),
                system=SEARCH_SYSTEM_PROMPT,
                temperature=SCORING_TEMPERATURE,
                max_tokens=self._reply_budget(len(candidates)),
                response_format=ScoreResponse,
            )
        except Exception as e:
            _logger.warning("Semantic scoring failed, using keyword fallback: %s", e)
            return keyword_fallback(query, candidates)

        parsed = parse_or_default(raw, ScoreResponse, None)
        if parsed is None:
            return keyword_fallback(query, candidates)

        scored: dict[int, tuple[SearchableDocument, float, str | None]] = {}
        for item in parsed.scores:
            if not 0 <= item.index < len(candidates):
                _logger.debug("Dropping out-of-range score index %d", item.index)
                continue
            # First score for an index wins
            if item.index not in scored:
                scored[item.index] = (candidates[item.index], item.score / 100, item.reason)

        if not scored:
            _logger.warning("Scoring reply had no usable scores, using keyword fallback")
            return keyword_fallback(query, candidates)

        return build_results(query, [scored[i] for i in sorted(scored)])


class EmbeddingSemanticScorer(SemanticScorer):
    """Cosine similarity between the query and each candidate's name plus excerpt."""

    def __init__(self, embedder: Embedder, excerpt_limit: int = CANDIDATE_EXCERPT_LIMIT):
        self.embedder = embedder
        self.excerpt_limit = excerpt_limit

    async def score(self, query: str, candidates: list[SearchableDocument]) -> list[MatchResult]:
        if not candidates:
            return []

        texts = [query] + [f"{c.name}\n{c.content[: self.excerpt_limit]}" for c in candidates]
        try:
            embeddings = await self.embedder.embed(texts)
        except Exception as e:
            _logger.warning("Embedding failed, using keyword fallback: %s", e)
            return keyword_fallback(query, candidates)

        similarities = np.clip(embeddings[1:] @ embeddings[0], 0.0, 1.0)
        return build_results(
            query,
            [(c, float(sim), None) for c, sim in zip(candidates, similarities)],
        )
