"""
Hybrid Search
--------------
Runs vector and keyword search concurrently and fuses the two rankings
with weighted Reciprocal Rank Fusion.

RRF only looks at ranks, never at raw scores, so it is robust to the scale
mismatch between cosine similarity and the keyword score:

    score(r) = w / (k + rank_vector(r)) + (1 - w) / (k + rank_keyword(r))

with 1-based ranks and an absent rank contributing nothing.  Fused scores
are divided by the top score, so they are relative to the best hit of this
query and are not comparable with raw cosine similarities.

A failing branch contributes no candidates; the search only fails when
both branches do.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from loguru import logger

from docsearch.config import SearchConfig
from docsearch.errors import SearchUnavailableError
from docsearch.retrieval.keyword import KeywordSearcher
from docsearch.retrieval.vector import VectorSearcher
from docsearch.schemas import ResultKind, SearchResult


def _check_weight(vector_weight: float) -> None:
    if not 0.0 <= vector_weight <= 1.0:
        raise ValueError(f"vector_weight must be within [0, 1], got {vector_weight}")


def reciprocal_rank_fusion(
    vector_results: Sequence[SearchResult],
    keyword_results: Sequence[SearchResult],
    *,
    vector_weight: float = 0.7,
    k: int = 60,
    limit: Optional[int] = None,
) -> list[SearchResult]:
    """
    Fuse two ranked lists into one.

    Args:
        vector_results: Vector hits, best first.
        keyword_results: Keyword hits, best first.
        vector_weight: Weight of the vector ranking; keyword gets 1 - w.
        k: RRF damping constant.
        limit: Maximum number of fused results (None keeps all).

    Returns:
        Results keyed by (kind, id), sorted by fused score with the top
        result at exactly 1.0.  Ties keep first-seen order.
    """
    _check_weight(vector_weight)

    scores: dict[tuple[ResultKind, str], float] = {}
    hits: dict[tuple[ResultKind, str], SearchResult] = {}

    for rank, result in enumerate(vector_results, start=1):
        scores[result.key] = scores.get(result.key, 0.0) + vector_weight / (k + rank)
        hits.setdefault(result.key, result)

    for rank, result in enumerate(keyword_results, start=1):
        scores[result.key] = scores.get(result.key, 0.0) + (1.0 - vector_weight) / (k + rank)
        hits.setdefault(result.key, result)

    fused = sorted(scores.items(), key=lambda x: x[1], reverse=True)
    if limit is not None:
        fused = fused[:limit]
    if not fused:
        return []

    top = fused[0][1]
    return [
        hits[key].model_copy(update={"similarity": score / top if top > 0 else 0.0})
        for key, score in fused
    ]


class HybridSearcher:
    """Vector + keyword search fused with weighted RRF."""

    def __init__(
        self,
        vector: VectorSearcher,
        keyword: KeywordSearcher,
        config: SearchConfig | None = None,
    ) -> None:
        self.vector = vector
        self.keyword = keyword
        self.config = config or SearchConfig()

    async def search(
        self,
        query: str,
        *,
        scope_id: Optional[str] = None,
        limit: Optional[int] = None,
        vector_weight: Optional[float] = None,
        min_similarity: Optional[float] = None,
        include_chunks: Optional[bool] = None,
    ) -> list[SearchResult]:
        limit = limit or self.config.limit
        weight = self.config.vector_weight if vector_weight is None else vector_weight
        _check_weight(weight)

        candidates = limit * self.config.candidate_multiplier
        logger.debug(f"[HybridSearch] Query: {query[:80]!r} | {candidates} candidates per branch")

        vector_out, keyword_out = await asyncio.gather(
            self.vector.search(
                query,
                scope_id=scope_id,
                limit=candidates,
                min_similarity=min_similarity,
                include_chunks=include_chunks,
            ),
            self.keyword.search(query, scope_id=scope_id, limit=candidates),
            return_exceptions=True,
        )

        # Cancellation and other non-Exception signals are never isolated
        for outcome in (vector_out, keyword_out):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        if isinstance(vector_out, Exception) and isinstance(keyword_out, Exception):
            logger.error(
                f"[HybridSearch] Both branches failed: vector={vector_out!r} keyword={keyword_out!r}"
            )
            raise SearchUnavailableError(
                f"Vector and keyword search both failed for {query[:80]!r}"
            ) from vector_out

        if isinstance(vector_out, Exception):
            logger.warning(f"[HybridSearch] Vector branch failed, keyword only: {vector_out!r}")
            vector_out = []
        if isinstance(keyword_out, Exception):
            logger.warning(f"[HybridSearch] Keyword branch failed, vector only: {keyword_out!r}")
            keyword_out = []

        results = reciprocal_rank_fusion(
            vector_out,
            keyword_out,
            vector_weight=weight,
            k=self.config.rrf_k,
            limit=limit,
        )
        logger.info(
            f"[HybridSearch] {len(vector_out)} vector + {len(keyword_out)} keyword "
            f"-> {len(results)} fused"
        )
        return results
