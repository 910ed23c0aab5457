_STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "is", "are", "was", "were",
    "in", "on", "at", "to", "for", "of", "with", "by", "from",
    "it", "its", "this", "that", "these", "those",
    "i", "me", "my", "we", "our", "you", "your",
    "he", "she", "his", "her", "they", "them", "their",
    "do", "does", "did", "has", "have", "had",
    "be", "been", "being", "will", "would", "could", "should",
    "not", "no", "so", "if", "how", "what", "when", "where", "who", "which",
})


def _quote(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def build_fts_query(query: str) -> str | None:
    """Build FTS5 query: OR between meaningful terms, stopwords filtered.

    Falls back to every term when all are stopwords or single characters.
    Returns None for a blank query.
    """
    terms = query.split()
    meaningful = [t for t in terms if t.lower() not in _STOPWORDS and len(t) > 1]
    if not meaningful:
        meaningful = terms
    if not meaningful:
        return None
    return " OR ".join(_quote(t) for t in meaningful)


def build_prefix_query(prefix: str, column: str) -> str | None:
    """Column-scoped phrase query whose last token matches as a prefix."""
    phrase = " ".join(prefix.split())
    if not phrase:
        return None
    return f"{column} : {_quote(phrase)} *"
