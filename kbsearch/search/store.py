import json
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from kbsearch.constants import CANDIDATE_LIMIT
from kbsearch.logging import get_logger
from kbsearch.search.file_types import normalize_file_type
from kbsearch.search.fts import build_fts_query, build_prefix_query
from kbsearch.search.highlight import highlights, snippet
from kbsearch.search.types import CandidateFilter, MatchResult, MatchSource, SearchableDocument
from kbsearch.utils import ensure_utc

_logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    pk INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    collection_id TEXT NOT NULL,
    name TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    file_type TEXT,
    tags TEXT DEFAULT '[]',  -- JSON array
    updated_at TEXT NOT NULL  -- ISO-8601, UTC
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection_id);
CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(updated_at DESC);

CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
    name, content, tags,
    content='documents',
    content_rowid='pk',
    tokenize='unicode61 remove_diacritics 1'
);

CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN
    INSERT INTO documents_fts(rowid, name, content, tags)
    VALUES (new.pk, new.name, new.content, new.tags);
END;

CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, name, content, tags)
    VALUES ('delete', old.pk, old.name, old.content, old.tags);
END;

CREATE TRIGGER IF NOT EXISTS documents_au AFTER UPDATE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, name, content, tags)
    VALUES ('delete', old.pk, old.name, old.content, old.tags);
    INSERT INTO documents_fts(rowid, name, content, tags)
    VALUES (new.pk, new.name, new.content, new.tags);
END;
"""

# bm25 column weights: name, content, tags
_BM25 = "bm25(documents_fts, 10.0, 1.0, 2.0)"

_COLUMNS = "d.id, d.collection_id, d.name, d.content, d.file_type, d.tags, d.updated_at"


def _to_iso(dt: datetime) -> str:
    return ensure_utc(dt).astimezone(UTC).isoformat(timespec="microseconds")


def _row_to_document(row: aiosqlite.Row) -> SearchableDocument:
    return SearchableDocument(
        id=row["id"],
        collection_id=row["collection_id"],
        name=row["name"],
        content=row["content"] or "",
        file_type=row["file_type"],
        tags=tuple(json.loads(row["tags"])) if row["tags"] else (),
        updated_at=ensure_utc(datetime.fromisoformat(row["updated_at"])),
    )


def _filter_clauses(candidate_filter: CandidateFilter | None) -> tuple[list[str], list]:
    """SQL predicates over the `d` alias for a candidate filter."""
    if candidate_filter is None or candidate_filter.is_empty:
        return [], []

    clauses: list[str] = []
    params: list = []

    if candidate_filter.file_types is not None:
        types = sorted(candidate_filter.file_types)
        if types:
            placeholders = ",".join("?" * len(types))
            clauses.append(f"LOWER(d.file_type) IN ({placeholders})")
            params.extend(types)
        else:
            clauses.append("0")

    if candidate_filter.since:
        clauses.append("d.updated_at >= ?")
        params.append(_to_iso(candidate_filter.since))

    if candidate_filter.until:
        clauses.append("d.updated_at <= ?")
        params.append(_to_iso(candidate_filter.until))

    for tag in sorted(candidate_filter.tags):
        clauses.append("EXISTS (SELECT 1 FROM json_each(d.tags) WHERE LOWER(json_each.value) = ?)")
        params.append(tag.lower())

    return clauses, params


class DocumentStore:
    """SQLite/FTS5-backed document index.

    Serves both sides of the search core: ranked lexical lookups and bounded
    candidate fetches for the semantic scorer.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL;")
        await self._conn.execute("PRAGMA synchronous=NORMAL;")
        await self._conn.execute("PRAGMA busy_timeout=30000;")
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("DocumentStore not connected")
        return self._conn

    # --- Maintenance ---

    async def upsert(self, document: SearchableDocument) -> None:
        await self.conn.execute(
            """
            INSERT INTO documents (id, collection_id, name, content, file_type, tags, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                collection_id = excluded.collection_id,
                name = excluded.name,
                content = excluded.content,
                file_type = excluded.file_type,
                tags = excluded.tags,
                updated_at = excluded.updated_at
            """,
            (
                document.id,
                document.collection_id,
                document.name,
                document.content,
                normalize_file_type(document.file_type),
                json.dumps(list(document.tags), ensure_ascii=False),
                _to_iso(document.updated_at),
            ),
        )
        await self.conn.commit()

    async def get(self, document_id: str) -> SearchableDocument | None:
        rows = await self.conn.execute_fetchall(
            f"SELECT {_COLUMNS} FROM documents d WHERE d.id = ?",
            (document_id,),
        )
        return _row_to_document(rows[0]) if rows else None

    async def delete(self, document_id: str, collection_id: str | None = None) -> bool:
        if collection_id:
            cursor = await self.conn.execute(
                "DELETE FROM documents WHERE id = ? AND collection_id = ?", (document_id, collection_id)
            )
        else:
            cursor = await self.conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        await self.conn.commit()
        return cursor.rowcount > 0

    async def clear_collection(self, collection_id: str) -> int:
        cursor = await self.conn.execute("DELETE FROM documents WHERE collection_id = ?", (collection_id,))
        await self.conn.commit()
        return cursor.rowcount

    async def rebuild(self) -> None:
        await self.conn.execute("INSERT INTO documents_fts(documents_fts) VALUES ('rebuild')")
        await self.conn.commit()

    async def count(self, collection_id: str | None = None) -> int:
        if collection_id:
            rows = await self.conn.execute_fetchall(
                "SELECT COUNT(*) FROM documents WHERE collection_id = ?", (collection_id,)
            )
        else:
            rows = await self.conn.execute_fetchall("SELECT COUNT(*) FROM documents")
        return rows[0][0]

    async def get_stats(self) -> dict[str, int]:
        rows = await self.conn.execute_fetchall(
            "SELECT collection_id, COUNT(*) AS cnt FROM documents GROUP BY collection_id"
        )
        return {row["collection_id"]: row["cnt"] for row in rows}

    # --- Lexical index ---

    async def lexical_search(
        self,
        query: str,
        collection_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
        candidate_filter: CandidateFilter | None = None,
    ) -> list[MatchResult]:
        """Ranked full-text lookup with scores normalized to 0-1.

        The best hit of the page scores 1.0 and the rest are scaled by their
        bm25 relevance relative to it.
        """
        fts_query = build_fts_query(query)
        if fts_query is None:
            return []

        sql = f"""
            SELECT {_COLUMNS}, {_BM25} AS score
            FROM documents_fts
            JOIN documents d ON documents_fts.rowid = d.pk
            WHERE documents_fts MATCH ?
        """
        params: list = [fts_query]
        if collection_id:
            sql += " AND d.collection_id = ?"
            params.append(collection_id)
        clauses, filter_params = _filter_clauses(candidate_filter)
        for clause in clauses:
            sql += f" AND {clause}"
        params.extend(filter_params)
        sql += " ORDER BY score LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        try:
            rows = await self.conn.execute_fetchall(sql, params)
        except aiosqlite.OperationalError as e:
            _logger.warning("FTS search failed for query '%s': %s", query, e)
            return []

        # bm25 is negative, lower is better
        raw = [-row["score"] for row in rows]
        top = max(raw, default=0.0)

        results: list[MatchResult] = []
        for row, relevance in zip(rows, raw):
            document = _row_to_document(row)
            results.append(
                MatchResult(
                    document=document,
                    score=relevance / top if top > 0 else 1.0,
                    source=MatchSource.LEXICAL,
                    snippet=snippet(document.content, query),
                    highlights=highlights(document.content, query),
                )
            )
        return results

    async def suggest_names(
        self,
        prefix: str,
        collection_id: str | None = None,
        limit: int = 10,
    ) -> list[str]:
        fts_query = build_prefix_query(prefix, "name")
        if fts_query is None:
            return []

        sql = """
            SELECT DISTINCT d.name
            FROM documents_fts
            JOIN documents d ON documents_fts.rowid = d.pk
            WHERE documents_fts MATCH ?
        """
        params: list = [fts_query]
        if collection_id:
            sql += " AND d.collection_id = ?"
            params.append(collection_id)
        sql += " LIMIT ?"
        params.append(limit)

        try:
            rows = await self.conn.execute_fetchall(sql, params)
        except aiosqlite.OperationalError as e:
            _logger.warning("Name suggestion failed for prefix '%s': %s", prefix, e)
            return []
        return [row["name"] for row in rows]

    # --- Candidates ---

    async def fetch_candidates(
        self,
        collection_id: str | None = None,
        candidate_filter: CandidateFilter | None = None,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[SearchableDocument]:
        """Most recently modified documents with extracted text, narrowed by the filter."""
        clauses = ["d.content != ''"]
        params: list = []

        if collection_id:
            clauses.append("d.collection_id = ?")
            params.append(collection_id)

        filter_clauses, filter_params = _filter_clauses(candidate_filter)
        clauses.extend(filter_clauses)
        params.extend(filter_params)

        params.append(limit)
        rows = await self.conn.execute_fetchall(
            f"""
            SELECT {_COLUMNS} FROM documents d
            WHERE {" AND ".join(clauses)}
            ORDER BY d.updated_at DESC
            LIMIT ?
            """,
            params,
        )
        return [_row_to_document(row) for row in rows]
