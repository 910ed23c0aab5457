from datetime import timedelta

import pytest

from kbsearch.search.file_types import FILE_TYPE_CATEGORIES
from kbsearch.search.store import DocumentStore
from kbsearch.search.types import CandidateFilter, MatchSource
from tests.conftest import BASE_TIME, make_document


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_upsert_and_get(self, store: DocumentStore):
        doc = make_document("d1", "Notes", "some content", tags=("a", "b"), file_type=".MD")
        await store.upsert(doc)

        loaded = await store.get("d1")
        assert loaded is not None
        assert loaded.name == "Notes"
        assert loaded.tags == ("a", "b")
        assert loaded.file_type == "md"
        assert loaded.updated_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_upsert_replaces_and_reindexes(self, store: DocumentStore):
        await store.upsert(make_document("d1", "Draft", "obsolete wording"))
        await store.upsert(make_document("d1", "Final", "polished wording"))

        assert await store.count() == 1
        assert await store.lexical_search("obsolete") == []
        hits = await store.lexical_search("polished")
        assert [h.document_id for h in hits] == ["d1"]

    @pytest.mark.asyncio
    async def test_delete(self, seeded_store: DocumentStore):
        assert await seeded_store.delete("d1") is True
        assert await seeded_store.delete("d1") is False
        assert await seeded_store.get("d1") is None
        assert await seeded_store.lexical_search("subscriptions") == []

    @pytest.mark.asyncio
    async def test_delete_scoped_to_collection(self, seeded_store: DocumentStore):
        assert await seeded_store.delete("d4", collection_id="kb1") is False
        assert await seeded_store.delete("d4", collection_id="kb2") is True

    @pytest.mark.asyncio
    async def test_clear_collection(self, seeded_store: DocumentStore):
        removed = await seeded_store.clear_collection("kb1")
        assert removed == 4
        assert await seeded_store.get_stats() == {"kb2": 1}

    @pytest.mark.asyncio
    async def test_rebuild_keeps_search_working(self, seeded_store: DocumentStore):
        await seeded_store.rebuild()
        hits = await seeded_store.lexical_search("onboarding")
        assert [h.document_id for h in hits] == ["d3"]

    @pytest.mark.asyncio
    async def test_counts(self, seeded_store: DocumentStore):
        assert await seeded_store.count() == 5
        assert await seeded_store.count("kb2") == 1
        assert await seeded_store.get_stats() == {"kb1": 4, "kb2": 1}


class TestLexicalSearch:
    @pytest.mark.asyncio
    async def test_scores_normalized(self, seeded_store: DocumentStore):
        hits = await seeded_store.lexical_search("revenue")

        assert {h.document_id for h in hits} == {"d1", "d2"}
        assert hits[0].score == pytest.approx(1.0)
        assert all(0.0 < h.score <= 1.0 for h in hits)
        assert all(h.source == MatchSource.LEXICAL for h in hits)

    @pytest.mark.asyncio
    async def test_snippet_and_highlights_attached(self, seeded_store: DocumentStore):
        hits = await seeded_store.lexical_search("subscriptions")

        assert hits[0].snippet and "subscriptions" in hits[0].snippet
        assert [h.text for h in hits[0].highlights] == ["subscriptions"]

    @pytest.mark.asyncio
    async def test_collection_filter(self, seeded_store: DocumentStore):
        assert await seeded_store.lexical_search("prompt", collection_id="kb1") == []
        hits = await seeded_store.lexical_search("prompt", collection_id="kb2")
        assert [h.document_id for h in hits] == ["d4"]

    @pytest.mark.asyncio
    async def test_name_matches(self, seeded_store: DocumentStore):
        hits = await seeded_store.lexical_search("receipt")
        assert [h.document_id for h in hits] == ["d5"]

    @pytest.mark.asyncio
    async def test_fts_syntax_is_quoted(self, seeded_store: DocumentStore):
        assert await seeded_store.lexical_search('revenue" OR (NEAR') is not None
        assert isinstance(await seeded_store.lexical_search("AND OR NOT"), list)
        assert await seeded_store.lexical_search("zebra*") == []

    @pytest.mark.asyncio
    async def test_blank_query(self, seeded_store: DocumentStore):
        assert await seeded_store.lexical_search("   ") == []

    @pytest.mark.asyncio
    async def test_offset(self, seeded_store: DocumentStore):
        everything = await seeded_store.lexical_search("revenue", limit=10)
        second = await seeded_store.lexical_search("revenue", limit=1, offset=1)
        assert [h.document_id for h in second] == [everything[1].document_id]


class TestSuggestNames:
    @pytest.mark.asyncio
    async def test_prefix(self, seeded_store: DocumentStore):
        assert await seeded_store.suggest_names("onboa") == ["Onboarding guide"]

    @pytest.mark.asyncio
    async def test_multi_word_prefix(self, seeded_store: DocumentStore):
        assert await seeded_store.suggest_names("revenue spre") == ["Revenue spreadsheet"]

    @pytest.mark.asyncio
    async def test_collection_and_limit(self, seeded_store: DocumentStore):
        assert await seeded_store.suggest_names("prompt", collection_id="kb1") == []
        assert len(await seeded_store.suggest_names("rev", limit=1)) == 1


class TestFetchCandidates:
    @pytest.mark.asyncio
    async def test_excludes_empty_content_newest_first(self, seeded_store: DocumentStore):
        candidates = await seeded_store.fetch_candidates("kb1")
        assert [c.id for c in candidates] == ["d1", "d2", "d3"]

    @pytest.mark.asyncio
    async def test_file_type_filter(self, seeded_store: DocumentStore):
        f = CandidateFilter(file_types=FILE_TYPE_CATEGORIES["spreadsheet"])
        candidates = await seeded_store.fetch_candidates("kb1", f)
        assert [c.id for c in candidates] == ["d2"]

    @pytest.mark.asyncio
    async def test_since_filter(self, seeded_store: DocumentStore):
        f = CandidateFilter(since=BASE_TIME - timedelta(days=2))
        candidates = await seeded_store.fetch_candidates(None, f)
        assert [c.id for c in candidates] == ["d1", "d4"]

    @pytest.mark.asyncio
    async def test_limit(self, seeded_store: DocumentStore):
        candidates = await seeded_store.fetch_candidates(None, limit=2)
        assert len(candidates) == 2

    @pytest.mark.asyncio
    async def test_date_range_and_tags(self, seeded_store: DocumentStore):
        f = CandidateFilter(
            since=BASE_TIME - timedelta(days=5),
            until=BASE_TIME - timedelta(days=2),
            tags=frozenset({"finance"}),
        )
        candidates = await seeded_store.fetch_candidates(None, f)
        assert [c.id for c in candidates] == ["d2"]

    @pytest.mark.asyncio
    async def test_empty_file_type_set_matches_nothing(self, seeded_store: DocumentStore):
        f = CandidateFilter(file_types=frozenset())
        assert await seeded_store.fetch_candidates("kb1", f) == []


class TestLexicalFilters:
    @pytest.mark.asyncio
    async def test_file_types(self, seeded_store: DocumentStore):
        f = CandidateFilter(file_types=frozenset({"xlsx"}))
        hits = await seeded_store.lexical_search("revenue", candidate_filter=f)
        assert [h.document_id for h in hits] == ["d2"]
        assert hits[0].score == 1.0

    @pytest.mark.asyncio
    async def test_all_tags_required_case_insensitive(self, seeded_store: DocumentStore):
        finance = await seeded_store.lexical_search(
            "revenue", candidate_filter=CandidateFilter(tags=frozenset({"Finance"}))
        )
        both = await seeded_store.lexical_search(
            "revenue", candidate_filter=CandidateFilter(tags=frozenset({"finance", "DATA"}))
        )

        assert {h.document_id for h in finance} == {"d1", "d2"}
        assert [h.document_id for h in both] == ["d2"]

    @pytest.mark.asyncio
    async def test_date_range(self, seeded_store: DocumentStore):
        recent = CandidateFilter(since=BASE_TIME - timedelta(days=2))
        older = CandidateFilter(until=BASE_TIME - timedelta(days=2))

        assert [h.document_id for h in await seeded_store.lexical_search("revenue", candidate_filter=recent)] == ["d1"]
        assert [h.document_id for h in await seeded_store.lexical_search("revenue", candidate_filter=older)] == ["d2"]

    @pytest.mark.asyncio
    async def test_untagged_documents_excluded_by_tag_filter(self, seeded_store: DocumentStore):
        f = CandidateFilter(tags=frozenset({"finance"}))
        assert await seeded_store.lexical_search("onboarding", candidate_filter=f) == []


class TestCandidateFilter:
    def test_explicit_fields_win(self):
        explicit = CandidateFilter(file_types=frozenset({"pdf"}), tags=frozenset({"finance"}))
        intent = CandidateFilter(file_types=frozenset({"xlsx"}), since=BASE_TIME)

        combined = explicit.fill_from(intent)

        assert combined.file_types == frozenset({"pdf"})
        assert combined.since == BASE_TIME
        assert combined.tags == frozenset({"finance"})

    def test_explicit_date_bound_replaces_intent_window(self):
        explicit = CandidateFilter(until=BASE_TIME - timedelta(days=30))
        intent = CandidateFilter(since=BASE_TIME - timedelta(days=7))

        combined = explicit.fill_from(intent)

        assert combined.since is None
        assert combined.until == BASE_TIME - timedelta(days=30)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            CandidateFilter(since=BASE_TIME, until=BASE_TIME - timedelta(days=1))

    def test_is_empty(self):
        assert CandidateFilter().is_empty
        assert not CandidateFilter(file_types=frozenset()).is_empty
