"""Tests for reciprocal rank fusion and the hybrid searcher."""

from __future__ import annotations

import asyncio

import pytest

from docsearch.config import SearchConfig
from docsearch.errors import ConfigurationError, SearchUnavailableError
from docsearch.retrieval.hybrid import HybridSearcher, reciprocal_rank_fusion
from docsearch.retrieval.keyword import KeywordSearcher
from docsearch.retrieval.vector import VectorSearcher
from docsearch.schemas import Document, ResultKind, SearchResult
from docsearch.storage.memory import InMemoryStore
from tests.fakes import embedded_doc, make_embedder


def _hit(item_id: str, similarity: float = 0.5, kind: ResultKind = ResultKind.DOCUMENT) -> SearchResult:
    return SearchResult(
        kind=kind,
        id=item_id,
        document_id=item_id.split(":")[0],
        title=item_id,
        content="",
        similarity=similarity,
    )


class _StubSearcher:
    def __init__(self, results=None, error: BaseException | None = None) -> None:
        self.results = results or []
        self.error = error
        self.calls: list[dict] = []

    async def search(self, query, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return list(self.results)


# ---------------------------------------------------------------------------
# reciprocal_rank_fusion
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("weight", [0.01, 0.3, 0.5, 0.7, 0.99])
def test_item_first_in_both_lists_beats_item_first_in_one(weight: float) -> None:
    fused = reciprocal_rank_fusion(
        [_hit("both"), _hit("vector-only")],
        [_hit("both"), _hit("keyword-only")],
        vector_weight=weight,
    )

    assert fused[0].id == "both"


def test_top_result_is_normalised_to_one() -> None:
    fused = reciprocal_rank_fusion(
        [_hit("a"), _hit("b"), _hit("c")],
        [_hit("c"), _hit("a")],
        vector_weight=0.7,
    )

    assert fused[0].similarity == 1.0
    assert all(0.0 < r.similarity <= 1.0 for r in fused)
    assert [r.similarity for r in fused] == sorted((r.similarity for r in fused), reverse=True)


def test_fused_scores_follow_rrf_formula() -> None:
    fused = reciprocal_rank_fusion([_hit("a"), _hit("b")], [_hit("b")], vector_weight=0.7, k=60)

    score_a = 0.7 / 61
    score_b = 0.7 / 62 + 0.3 / 61
    assert [r.id for r in fused] == ["b", "a"]
    assert fused[1].similarity == pytest.approx(score_a / score_b)


def test_same_id_different_kind_are_distinct_entries() -> None:
    fused = reciprocal_rank_fusion(
        [_hit("x", kind=ResultKind.CHUNK)],
        [_hit("x", kind=ResultKind.DOCUMENT)],
        vector_weight=0.5,
    )

    assert sorted(r.kind.value for r in fused) == ["chunk", "document"]


def test_ties_keep_first_seen_order() -> None:
    fused = reciprocal_rank_fusion([_hit("v1")], [_hit("k1")], vector_weight=0.5)

    assert [r.id for r in fused] == ["v1", "k1"]
    assert fused[1].similarity == pytest.approx(1.0)


def test_limit_and_empty_inputs() -> None:
    assert reciprocal_rank_fusion([], [], vector_weight=0.7) == []
    fused = reciprocal_rank_fusion([_hit(str(i)) for i in range(10)], [], vector_weight=0.7, limit=4)
    assert [r.id for r in fused] == ["0", "1", "2", "3"]


def test_fusion_does_not_mutate_inputs() -> None:
    vector = [_hit("a", similarity=0.42)]

    reciprocal_rank_fusion(vector, [], vector_weight=0.7)

    assert vector[0].similarity == 0.42


@pytest.mark.parametrize("weight", [-0.1, 1.5])
def test_weight_outside_unit_interval_is_rejected(weight: float) -> None:
    with pytest.raises(ValueError):
        reciprocal_rank_fusion([_hit("a")], [], vector_weight=weight)


# ---------------------------------------------------------------------------
# HybridSearcher
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_vector_failure_degrades_to_keyword_results() -> None:
    vector = _StubSearcher(error=ConfigurationError("no key"))
    keyword = _StubSearcher([_hit("k1"), _hit("k2")])

    results = await HybridSearcher(vector, keyword).search("budget")

    assert [r.id for r in results] == ["k1", "k2"]
    assert results[0].similarity == 1.0


@pytest.mark.asyncio
async def test_keyword_failure_degrades_to_vector_results() -> None:
    vector = _StubSearcher([_hit("v1")])
    keyword = _StubSearcher(error=RuntimeError("store hiccup"))

    results = await HybridSearcher(vector, keyword).search("budget")

    assert [r.id for r in results] == ["v1"]


@pytest.mark.asyncio
async def test_both_branches_failing_raises_search_unavailable() -> None:
    vector_error = ConfigurationError("no key")
    searcher = HybridSearcher(
        _StubSearcher(error=vector_error),
        _StubSearcher(error=RuntimeError("store down")),
    )

    with pytest.raises(SearchUnavailableError) as exc_info:
        await searcher.search("budget")

    assert exc_info.value.__cause__ is vector_error


@pytest.mark.asyncio
async def test_cancellation_is_not_isolated() -> None:
    searcher = HybridSearcher(
        _StubSearcher(error=asyncio.CancelledError()),
        _StubSearcher([_hit("k1")]),
    )

    with pytest.raises(asyncio.CancelledError):
        await searcher.search("budget")


@pytest.mark.asyncio
async def test_each_branch_asked_for_twice_the_limit() -> None:
    vector, keyword = _StubSearcher(), _StubSearcher()

    await HybridSearcher(vector, keyword, SearchConfig()).search("q", limit=4, scope_id="s1")

    assert vector.calls[0]["limit"] == 8
    assert keyword.calls[0]["limit"] == 8
    assert vector.calls[0]["scope_id"] == keyword.calls[0]["scope_id"] == "s1"


@pytest.mark.asyncio
async def test_invalid_weight_rejected_before_searching() -> None:
    vector, keyword = _StubSearcher(), _StubSearcher()

    with pytest.raises(ValueError):
        await HybridSearcher(vector, keyword).search("q", vector_weight=2.0)
    assert vector.calls == [] and keyword.calls == []


@pytest.mark.asyncio
async def test_end_to_end_with_real_searchers(budget_doc: Document) -> None:
    store = InMemoryStore([
        embedded_doc("semantic-match", [1.0, 0.0], title="Spending outlook"),
        budget_doc,
    ])
    embedder, _ = make_embedder(lambda text: [1.0, 0.0])
    searcher = HybridSearcher(
        VectorSearcher(store, embedder),
        KeywordSearcher(store),
    )

    results = await searcher.search("marketing budget")

    assert {r.id for r in results} == {"semantic-match", "q3-budget"}
    assert results[0].id == "semantic-match"
    assert results[0].similarity == 1.0
    assert results[1].similarity == pytest.approx(0.3 / 0.7)
