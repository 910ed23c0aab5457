from datetime import timedelta

import pytest

from kbsearch.search.file_types import TypePreferences
from kbsearch.search.fusion import fuse, fuse_and_rank, paginate, rank
from kbsearch.search.types import HighlightSpan, MatchResult, MatchSource, Weights
from tests.conftest import BASE_TIME, make_document


def lex(doc_id: str, score: float, **kwargs) -> MatchResult:
    return MatchResult(
        document=kwargs.pop("document", None) or make_document(doc_id, f"doc {doc_id}"),
        score=score,
        source=MatchSource.LEXICAL,
        **kwargs,
    )


def sem(doc_id: str, score: float, **kwargs) -> MatchResult:
    return MatchResult(
        document=kwargs.pop("document", None) or make_document(doc_id, f"doc {doc_id}"),
        score=score,
        source=MatchSource.SEMANTIC,
        **kwargs,
    )


class TestFuse:
    def test_weighted_combination(self):
        fused = fuse([lex("d1", 0.9)], [sem("d1", 0.4), sem("d2", 0.8)], Weights(0.6, 0.4))
        by_id = {r.document_id: r for r in fused}

        assert by_id["d1"].hybrid_score == pytest.approx(0.70)
        assert by_id["d2"].hybrid_score == pytest.approx(0.32)
        assert by_id["d1"].sources == {MatchSource.LEXICAL, MatchSource.SEMANTIC}
        assert by_id["d2"].sources == {MatchSource.SEMANTIC}
        assert by_id["d2"].lexical_score == 0.0

    def test_ranked_order(self):
        ranked = fuse_and_rank([lex("d1", 0.9)], [sem("d1", 0.4), sem("d2", 0.8)], Weights(0.6, 0.4), "q")
        assert [r.document_id for r in ranked] == ["d1", "d2"]

    def test_no_duplicate_ids(self):
        lexical = [lex("a", 0.9), lex("b", 0.5), lex("a", 0.3)]
        semantic = [sem("b", 0.7), sem("c", 0.2), sem("c", 0.6)]

        fused = fuse(lexical, semantic, Weights())
        ids = [r.document_id for r in fused]

        assert len(ids) == len(set(ids))
        assert set(ids) == {"a", "b", "c"}

    def test_duplicate_within_source_keeps_best_score(self):
        fused = fuse([lex("a", 0.3), lex("a", 0.9)], [], Weights(1.0, 0.0))
        assert fused[0].lexical_score == 0.9
        assert fused[0].hybrid_score == pytest.approx(0.9)

    def test_both_empty(self):
        assert fuse([], [], Weights()) == []
        assert fuse_and_rank([], [], Weights(), "anything") == []

    def test_one_side_empty(self):
        fused = fuse([lex("a", 1.0)], [], Weights(0.6, 0.4))
        assert fused[0].hybrid_score == pytest.approx(0.6)
        assert fused[0].semantic_score == 0.0

    def test_reason_comes_from_semantic(self):
        fused = fuse([lex("a", 0.5)], [sem("a", 0.5, reason="covers the topic")], Weights())
        assert fused[0].reason == "covers the topic"

    def test_longer_snippet_wins(self):
        fused = fuse(
            [lex("a", 0.5, snippet="short")],
            [sem("a", 0.5, snippet="a considerably longer snippet")],
            Weights(),
        )
        assert fused[0].snippet == "a considerably longer snippet"

    def test_highlights_merged_across_sources(self):
        fused = fuse(
            [lex("a", 0.5, highlights=[HighlightSpan(0, 5, "hello"), HighlightSpan(10, 12, "ab")])],
            [sem("a", 0.5, highlights=[HighlightSpan(3, 8, "lo wo")])],
            Weights(),
        )
        spans = [(h.start, h.end) for h in fused[0].highlights]
        assert spans == [(0, 8), (10, 12)]

    def test_merged_highlight_text_comes_from_content(self):
        document = make_document("a", "doc a", "hello world ab")
        fused = fuse(
            [lex("a", 0.5, document=document, highlights=[HighlightSpan(0, 5)])],
            [sem("a", 0.5, document=document, highlights=[HighlightSpan(3, 8)])],
            Weights(),
        )
        assert fused[0].highlights == [HighlightSpan(0, 8, "hello wo")]


class TestRank:
    def test_type_preference_breaks_score_ties(self):
        sheet = make_document("sheet", "numbers", file_type="xlsx")
        pdf = make_document("pdf", "numbers", file_type="pdf")

        ranked = fuse_and_rank(
            [lex("pdf", 0.5, document=pdf), lex("sheet", 0.5, document=sheet)],
            [],
            Weights(1.0, 0.0),
            "excel numbers",
        )
        assert [r.document_id for r in ranked] == ["sheet", "pdf"]

    def test_default_preference_is_documents(self):
        png = make_document("img", "notes", file_type="png")
        md = make_document("md", "notes", file_type="md")

        ranked = fuse_and_rank([lex("img", 0.5, document=png), lex("md", 0.5, document=md)], [], Weights(), "notes")
        assert [r.document_id for r in ranked] == ["md", "img"]

    def test_recency_breaks_remaining_ties(self):
        old = make_document("old", "n", file_type="md", updated_at=BASE_TIME - timedelta(days=5))
        new = make_document("new", "n", file_type="md", updated_at=BASE_TIME)

        ranked = fuse_and_rank([lex("old", 0.5, document=old), lex("new", 0.5, document=new)], [], Weights(), "n")
        assert [r.document_id for r in ranked] == ["new", "old"]

    def test_score_dominates_tie_breaks(self):
        preferred_new = make_document("a", "x", file_type="md", updated_at=BASE_TIME)
        other_old = make_document("b", "x", file_type="png", updated_at=BASE_TIME - timedelta(days=30))

        ranked = fuse_and_rank(
            [lex("a", 0.4, document=preferred_new), lex("b", 0.41, document=other_old)],
            [],
            Weights(1.0, 0.0),
            "x",
        )
        assert [r.document_id for r in ranked] == ["b", "a"]

    def test_custom_preferences(self):
        from kbsearch.search.file_types import PreferenceRule

        preferences = TypePreferences(rules=(PreferenceRule(("clip",), "video"),))
        mp4 = make_document("v", "x", file_type="mp4")
        md = make_document("m", "x", file_type="md")

        fused = fuse([lex("m", 0.5, document=md), lex("v", 0.5, document=mp4)], [], Weights())
        ranked = rank(fused, "clip of the launch", preferences)
        assert [r.document_id for r in ranked] == ["v", "m"]

    def test_raising_semantic_weight_favours_semantic_heavy_result(self):
        lexical = [lex("lexical_heavy", 0.9), lex("semantic_heavy", 0.2)]
        semantic = [sem("lexical_heavy", 0.2), sem("semantic_heavy", 0.9)]

        def position(weights: Weights) -> int:
            ranked = fuse_and_rank(lexical, semantic, weights, "q")
            return [r.document_id for r in ranked].index("semantic_heavy")

        positions = [position(Weights(0.6, w)) for w in (0.0, 0.3, 0.6, 0.9, 1.5)]
        assert positions == sorted(positions, reverse=True)
        assert positions[-1] == 0


class TestPaginate:
    def test_window(self):
        results = fuse([lex(str(i), 1 - i / 10) for i in range(6)], [], Weights())
        ranked = rank(results, "q")

        page = paginate(ranked, offset=2, limit=2)
        assert [r.document_id for r in page] == ["2", "3"]

    def test_offset_past_end(self):
        ranked = fuse_and_rank([lex("a", 1.0)], [], Weights(), "q", offset=5, limit=10)
        assert ranked == []

    def test_page_never_repeats_ids(self):
        lexical = [lex(str(i), (i % 4) / 4) for i in range(12)]
        semantic = [sem(str(i), (i % 3) / 3) for i in range(6, 18)]

        first = fuse_and_rank(lexical, semantic, Weights(), "q", offset=0, limit=5)
        second = fuse_and_rank(lexical, semantic, Weights(), "q", offset=5, limit=5)

        ids = [r.document_id for r in first + second]
        assert len(ids) == len(set(ids)) == 10


class TestWeights:
    @pytest.mark.parametrize(
        ("lexical", "semantic"),
        [(float("nan"), 0.4), (0.6, float("inf")), (-0.1, 0.4)],
    )
    def test_rejects_non_finite_and_negative(self, lexical: float, semantic: float):
        with pytest.raises(ValueError):
            Weights(lexical, semantic)

    def test_zero_weights_allowed(self):
        assert Weights(0.0, 0.0).lexical == 0.0
