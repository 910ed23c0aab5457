from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from kbsearch.constants import DEFAULT_SEARCH_LIMIT, DEFAULT_SUGGEST_LIMIT, MAX_SEARCH_LIMIT
from kbsearch.search.file_types import normalize_file_type
from kbsearch.search.service import HybridSearch
from kbsearch.search.types import (
    CandidateFilter,
    FusedResult,
    InvalidCollectionError,
    SearchableDocument,
    SearchMode,
    SearchOptions,
    Weights,
)
from kbsearch.server.runtime import Runtime
from kbsearch.utils import ensure_utc

router = APIRouter(tags=["search"])

MAX_BATCH_QUERIES = 20


class BatchSearchRequest(BaseModel):
    queries: list[str] = Field(..., min_length=1, max_length=MAX_BATCH_QUERIES)
    mode: SearchMode = SearchMode.HYBRID
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT)


class DateRange(BaseModel):
    start: datetime | None = None
    end: datetime | None = None


class AdvancedSearchRequest(BaseModel):
    query: str = ""
    file_types: list[str] = []
    date_range: DateRange | None = None
    tags: list[str] = []
    mode: SearchMode = SearchMode.HYBRID
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT)
    offset: int = Field(default=0, ge=0)


class IndexDocumentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=1000)
    content: str = ""
    file_type: str | None = None
    tags: list[str] = []
    updated_at: datetime | None = None


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime | None = getattr(request.app.state, "runtime", None)
    if runtime is None or not runtime.connected:
        raise HTTPException(status_code=503, detail="Search is not ready")
    return runtime


def get_search(runtime: Runtime = Depends(get_runtime)) -> HybridSearch:
    return runtime.search


def _parse_weights(raw: str | None) -> Weights | None:
    """'0.7,0.3' -> Weights(lexical=0.7, semantic=0.3)."""
    if not raw:
        return None
    parts = raw.split(",")
    if len(parts) != 2:
        raise HTTPException(status_code=422, detail="weights must be 'lexical,semantic'")
    try:
        return Weights(lexical=float(parts[0]), semantic=float(parts[1]))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid weights: {e}")


def _build_filter(request: AdvancedSearchRequest) -> CandidateFilter:
    file_types = None
    if request.file_types:
        file_types = frozenset(t for t in map(normalize_file_type, request.file_types) if t)
    date_range = request.date_range or DateRange()
    try:
        return CandidateFilter(
            file_types=file_types,
            since=ensure_utc(date_range.start) if date_range.start else None,
            until=ensure_utc(date_range.end) if date_range.end else None,
            tags=frozenset(t.strip() for t in request.tags if t.strip()),
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _results_to_dicts(results: list[FusedResult]) -> list[dict]:
    return [r.to_dict() for r in results]


@router.get("/kb/{kb_id}/search")
async def search(
    kb_id: str,
    q: str = "",
    mode: SearchMode = SearchMode.HYBRID,
    limit: int = Query(default=DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    offset: int = Query(default=0, ge=0),
    weights: str | None = None,
    service: HybridSearch = Depends(get_search),
):
    options = SearchOptions(
        collection_id=kb_id,
        limit=limit,
        offset=offset,
        mode=mode,
        weights=_parse_weights(weights),
    )
    try:
        results = await service.search(q, options)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "query": q,
        "mode": mode.value,
        "results": _results_to_dicts(results),
        "count": len(results),
        "offset": offset,
        "limit": limit,
    }


@router.post("/kb/{kb_id}/search/advanced")
async def advanced_search(
    kb_id: str,
    request: AdvancedSearchRequest,
    service: HybridSearch = Depends(get_search),
):
    options = SearchOptions(
        collection_id=kb_id,
        limit=request.limit,
        offset=request.offset,
        mode=request.mode,
        filters=_build_filter(request),
    )
    try:
        results = await service.search(request.query, options)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "query": request.query,
        "mode": request.mode.value,
        "results": _results_to_dicts(results),
        "count": len(results),
        "offset": request.offset,
        "limit": request.limit,
        "filters": request.model_dump(mode="json", include={"file_types", "date_range", "tags"}),
    }


@router.get("/kb/{kb_id}/search/suggestions")
async def suggestions(
    kb_id: str,
    q: str = "",
    limit: int = Query(default=DEFAULT_SUGGEST_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    service: HybridSearch = Depends(get_search),
):
    try:
        items = await service.suggest(q, collection_id=kb_id, limit=limit)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"query": q, "suggestions": items}


@router.get("/kb/{kb_id}/search/stats")
async def stats(kb_id: str, service: HybridSearch = Depends(get_search)):
    try:
        return await service.stats(kb_id)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/kb/{kb_id}/search/batch")
async def batch_search(
    kb_id: str,
    request: BatchSearchRequest,
    service: HybridSearch = Depends(get_search),
):
    options = SearchOptions(collection_id=kb_id, limit=request.limit, mode=request.mode)
    try:
        results = await service.batch_search(request.queries, options)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "mode": request.mode.value,
        "results": {query: _results_to_dicts(hits) for query, hits in results.items()},
    }


@router.put("/kb/{kb_id}/documents/{document_id}")
async def index_document(
    kb_id: str,
    document_id: str,
    request: IndexDocumentRequest,
    service: HybridSearch = Depends(get_search),
):
    document = SearchableDocument(
        id=document_id,
        collection_id=kb_id,
        name=request.name,
        content=request.content,
        file_type=request.file_type,
        tags=tuple(request.tags),
        updated_at=ensure_utc(request.updated_at) if request.updated_at else datetime.now(UTC),
    )
    try:
        await service.index(document)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"status": "indexed", "id": document_id}


@router.delete("/kb/{kb_id}/documents/{document_id}")
async def remove_document(kb_id: str, document_id: str, service: HybridSearch = Depends(get_search)):
    try:
        removed = await service.remove(document_id, collection_id=kb_id)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "deleted", "id": document_id}


@router.post("/search/rebuild")
async def rebuild_index(service: HybridSearch = Depends(get_search)):
    count = await service.rebuild()
    return {"status": "rebuilt", "documents": count}
