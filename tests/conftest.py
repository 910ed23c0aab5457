import hashlib
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import numpy as np
import pytest
import pytest_asyncio

from kbsearch.llm.provider import TextCompletionProvider
from kbsearch.llm.types import CompletionResponse
from kbsearch.search.store import DocumentStore
from kbsearch.search.types import SearchableDocument

TEST_EMBEDDING_DIM = 64
TEST_MODEL = "gpt-4o-mini"
BASE_TIME = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def mock_llm_response(content: str | None) -> CompletionResponse:
    return CompletionResponse(text=content, model=TEST_MODEL, finish_reason="stop")


def mock_llm(*replies) -> TextCompletionProvider:
    """Provider over an AsyncMock client; each reply is a string or an exception."""
    client = AsyncMock()
    client.completion.side_effect = [r if isinstance(r, BaseException) else mock_llm_response(r) for r in replies]
    return TextCompletionProvider(client, model=TEST_MODEL)


def failing_llm(exc: BaseException | None = None) -> TextCompletionProvider:
    client = AsyncMock()
    client.completion.side_effect = exc or ConnectionError("provider unreachable")
    return TextCompletionProvider(client, model=TEST_MODEL)


def mock_embedding(text: str) -> np.ndarray:
    h = hashlib.md5(text.encode()).hexdigest()
    arr = np.array([int(c, 16) / 15.0 for c in h] * (TEST_EMBEDDING_DIM // 32))
    norm = np.linalg.norm(arr)
    return arr / norm if norm > 0 else arr


def make_document(
    id: str,
    name: str,
    content: str = "",
    collection_id: str = "kb1",
    file_type: str | None = "md",
    tags: tuple[str, ...] = (),
    updated_at: datetime | None = None,
) -> SearchableDocument:
    return SearchableDocument(
        id=id,
        collection_id=collection_id,
        name=name,
        content=content,
        file_type=file_type,
        tags=tags,
        updated_at=updated_at or BASE_TIME,
    )


@pytest.fixture
def sample_documents() -> list[SearchableDocument]:
    return [
        make_document(
            "d1",
            "Quarterly revenue report",
            "Revenue grew 12% in the third quarter. The revenue growth was driven by subscriptions.",
            file_type="pdf",
            tags=("finance",),
            updated_at=BASE_TIME - timedelta(days=1),
        ),
        make_document(
            "d2",
            "Revenue spreadsheet",
            "Monthly revenue figures by region and product line.",
            file_type="xlsx",
            tags=("finance", "data"),
            updated_at=BASE_TIME - timedelta(days=3),
        ),
        make_document(
            "d3",
            "Onboarding guide",
            "Welcome to the team. This guide covers laptops, accounts and the first week.",
            file_type="md",
            updated_at=BASE_TIME - timedelta(days=40),
        ),
        make_document(
            "d4",
            "Prompt library",
            "A collection of prompt templates for summarizing meeting notes.",
            collection_id="kb2",
            file_type="txt",
            updated_at=BASE_TIME - timedelta(days=2),
        ),
        make_document(
            "d5",
            "Scanned receipt",
            "",
            file_type="png",
            updated_at=BASE_TIME,
        ),
    ]


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncGenerator[DocumentStore]:
    store = DocumentStore(tmp_path / "test_search.db")
    await store.connect()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def seeded_store(store: DocumentStore, sample_documents: list[SearchableDocument]) -> DocumentStore:
    for document in sample_documents:
        await store.upsert(document)
    return store
