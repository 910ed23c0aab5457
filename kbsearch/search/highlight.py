import re
from collections import defaultdict

from kbsearch.constants import MIN_HIGHLIGHT_TERM_LENGTH, SNIPPET_LENGTH
from kbsearch.search.types import HighlightSpan

ELLIPSIS = "…"


def query_terms(query: str) -> list[str]:
    """Whitespace-split, lowercased, order-preserving unique terms."""
    return list(dict.fromkeys(t.lower() for t in query.split()))


def _occurrences(content: str, term: str):
    return re.finditer(re.escape(term), content, re.IGNORECASE)


def _best_anchor(content: str, terms: list[str]) -> int | None:
    # offset -> total length of terms starting there
    weights: dict[int, int] = defaultdict(int)
    for term in terms:
        for match in _occurrences(content, term):
            weights[match.start()] += len(match.group(0))
    if not weights:
        return None
    return min(weights, key=lambda offset: (-weights[offset], offset))


def snippet(content: str, query: str, max_length: int = SNIPPET_LENGTH) -> str:
    """Excerpt of at most `max_length` chars centred on the densest query match.

    An ellipsis marks each side that was cut, so the result is at most
    `max_length + 2` characters long.
    """
    if not content or max_length <= 0:
        return ""

    anchor = _best_anchor(content, query_terms(query))
    if anchor is None:
        start = 0
    else:
        start = max(0, anchor - max_length // 2)
        start = max(0, min(start, len(content) - max_length))
    end = min(len(content), start + max_length)

    excerpt = content[start:end]
    if start > 0:
        excerpt = ELLIPSIS + excerpt
    if end < len(content):
        excerpt = excerpt + ELLIPSIS
    return excerpt


_SENTENCE_END = re.compile(r"[。！？.!?]")


def sentence_snippet(content: str, query: str, max_length: int = SNIPPET_LENGTH) -> str:
    """The sentence mentioning the most distinct query terms, cut to `max_length`.

    Ties go to the earliest sentence. Without any matching sentence this is
    the same excerpt `snippet` would produce.
    """
    terms = query_terms(query)
    best, best_hits = "", 0
    for sentence in _SENTENCE_END.split(content):
        sentence = sentence.strip()
        lowered = sentence.lower()
        hits = sum(1 for term in terms if term in lowered)
        if hits > best_hits:
            best, best_hits = sentence, hits

    if not best:
        return snippet(content, query, max_length)
    if len(best) > max_length:
        return best[:max_length] + ELLIPSIS
    return best


def highlights(content: str, query: str) -> list[HighlightSpan]:
    """Every case-insensitive occurrence of every query term, unmerged.

    Terms shorter than two characters are ignored. Spans from different terms
    may overlap; pass the result through merge_highlights before rendering.
    """
    if not content:
        return []

    spans: list[HighlightSpan] = []
    for term in query_terms(query):
        if len(term) < MIN_HIGHLIGHT_TERM_LENGTH:
            continue
        for match in _occurrences(content, term):
            spans.append(HighlightSpan(start=match.start(), end=match.end(), text=match.group(0)))
    return spans


def merge_highlights(spans: list[HighlightSpan], content: str | None = None) -> list[HighlightSpan]:
    """Sort by start and coalesce overlapping or touching spans.

    With `content`, every merged span's text is re-sliced from it. Without it,
    span texts must be exact slices of one content string, since a merged
    span's text is stitched together from its parts.
    """
    if not spans:
        return []

    ordered = sorted(spans, key=lambda s: (s.start, s.end))
    merged: list[HighlightSpan] = []
    current = ordered[0]

    for span in ordered[1:]:
        if span.start <= current.end:
            if span.end > current.end:
                tail = span.text[current.end - span.start :]
                current = HighlightSpan(start=current.start, end=span.end, text=current.text + tail)
        else:
            merged.append(current)
            current = span

    merged.append(current)
    if content is not None:
        merged = [HighlightSpan(s.start, s.end, content[s.start : s.end]) for s in merged]
    return merged
