from kbsearch.search.file_types import TypePreferences
from kbsearch.search.highlight import merge_highlights
from kbsearch.search.types import FusedResult, MatchResult, MatchSource, Weights


def _longer(a: str | None, b: str | None) -> str | None:
    if not b:
        return a
    if not a or len(b) > len(a):
        return b
    return a


def fuse(
    lexical_results: list[MatchResult],
    semantic_results: list[MatchResult],
    weights: Weights,
) -> list[FusedResult]:
    """Merge both result sets into one record per document id.

    Scores are expected on comparable 0-1 scales. A document missing from one
    source scores 0 there. Highlights from both sources are merged into a
    sorted, non-overlapping list and the longer snippet wins. Output order is
    first appearance, lexical before semantic; use rank() to order it.
    """
    merged: dict[str, FusedResult] = {}

    for match in lexical_results:
        acc = merged.get(match.document_id)
        if acc is None:
            merged[match.document_id] = FusedResult(
                document=match.document,
                lexical_score=match.score,
                snippet=match.snippet,
                highlights=list(match.highlights),
                sources={MatchSource.LEXICAL},
            )
        else:
            acc.lexical_score = max(acc.lexical_score, match.score)
            acc.snippet = _longer(acc.snippet, match.snippet)
            acc.highlights.extend(match.highlights)

    for match in semantic_results:
        acc = merged.get(match.document_id)
        if acc is None:
            merged[match.document_id] = FusedResult(
                document=match.document,
                semantic_score=match.score,
                snippet=match.snippet,
                highlights=list(match.highlights),
                sources={MatchSource.SEMANTIC},
                reason=match.reason,
            )
        else:
            acc.semantic_score = max(acc.semantic_score, match.score)
            acc.snippet = _longer(acc.snippet, match.snippet)
            acc.highlights.extend(match.highlights)
            acc.sources.add(MatchSource.SEMANTIC)
            acc.reason = acc.reason or match.reason

    for acc in merged.values():
        acc.hybrid_score = acc.lexical_score * weights.lexical + acc.semantic_score * weights.semantic
        acc.highlights = merge_highlights(acc.highlights, acc.document.content)

    return list(merged.values())


def rank(results: list[FusedResult], query: str, preferences: TypePreferences | None = None) -> list[FusedResult]:
    """Order by hybrid score, then preferred file type, then most recently modified."""
    preferences = preferences or TypePreferences()
    preferred = preferences.preferred_types(query)

    return sorted(
        results,
        key=lambda r: (
            r.hybrid_score,
            preferences.score(r.document.file_type, preferred),
            r.document.updated_at.timestamp(),
        ),
        reverse=True,
    )


def paginate(results: list[FusedResult], offset: int, limit: int) -> list[FusedResult]:
    return results[offset : offset + limit]


def fuse_and_rank(
    lexical_results: list[MatchResult],
    semantic_results: list[MatchResult],
    weights: Weights,
    query: str,
    preferences: TypePreferences | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> list[FusedResult]:
    ranked = rank(fuse(lexical_results, semantic_results, weights), query, preferences)
    if limit is None:
        return ranked[offset:]
    return paginate(ranked, offset, limit)
