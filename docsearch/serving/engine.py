"""
Search Engine
--------------
Single entry point used by the CLI and the HTTP API.

    SearchRequest
        |
        v
    mode dispatch --> VectorSearcher   (query embedding -> cosine over docs + chunks)
                 \--> KeywordSearcher  (field-weighted term match)
                  \-> HybridSearcher   (both, concurrently -> weighted RRF)
        |
        v
    SearchResponse (results + mode + latency)

Every component is built from one EngineConfig by from_config().  When no
embedding API key is configured the engine still starts: vector mode fails
with ConfigurationError and hybrid mode degrades to keyword results.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from docsearch.chunking.chunker import ParagraphChunker
from docsearch.config import EngineConfig
from docsearch.embedding.codec import parse_embedding
from docsearch.embedding.embedder import Embedder
from docsearch.embedding.pipeline import DocumentIndexer
from docsearch.errors import ConfigurationError
from docsearch.retrieval.hybrid import HybridSearcher
from docsearch.retrieval.keyword import KeywordSearcher
from docsearch.retrieval.similar import SimilarDocumentFinder
from docsearch.retrieval.vector import VectorSearcher
from docsearch.schemas import Availability, Document, SearchMode, SearchResult
from docsearch.storage.base import DocumentStore, IndexWriter


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------

@dataclass
class SearchRequest:
    query: str
    scope_id: Optional[str] = None
    limit: Optional[int] = None
    mode: SearchMode = SearchMode.HYBRID
    min_similarity: Optional[float] = None
    include_chunks: Optional[bool] = None
    vector_weight: Optional[float] = None


@dataclass
class SearchResponse:
    """Ranked results of one query.  Latency is in milliseconds."""

    query: str
    mode: SearchMode
    results: list[SearchResult] = field(default_factory=list)
    latency_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "mode": self.mode.value,
            "results": [r.model_dump(mode="json") for r in self.results],
            "count": len(self.results),
            "latency_ms": round(self.latency_ms, 1),
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class SearchEngine:
    """
    Facade over vector, keyword, hybrid and similar-document search.

    Usage:
        engine = SearchEngine.from_config(load_config(), InMemoryStore.load(path))
        response = await engine.search(SearchRequest("Q3 budget plan"))
        for hit in response.results:
            print(hit.title, hit.similarity)
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder | None,
        config: EngineConfig | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config or EngineConfig()

        search_cfg = self.config.search
        self.keyword = KeywordSearcher(store, search_cfg)
        self.vector = VectorSearcher(store, embedder, search_cfg)
        self.hybrid = HybridSearcher(self.vector, self.keyword, search_cfg)
        self.similar = SimilarDocumentFinder(store, self.keyword, search_cfg)
        self.chunker = ParagraphChunker(self.config.chunking)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        store: DocumentStore,
        *,
        api_key: Optional[str] = None,
    ) -> "SearchEngine":
        try:
            embedder: Embedder | None = Embedder(config.embedding, api_key=api_key)
        except ConfigurationError as exc:
            logger.warning(f"[Engine] {exc} | semantic search disabled")
            embedder = None

        logger.info(
            f"[Engine] Ready | embedder={'on' if embedder else 'off'} "
            f"model={config.embedding.model}"
        )
        return cls(store, embedder, config)

    def indexer(self) -> DocumentIndexer:
        """Indexer writing into this engine's store."""
        if self.embedder is None:
            raise ConfigurationError(
                f"{self.config.embedding.api_key_env} not set - indexing needs embeddings"
            )
        if not isinstance(self.store, IndexWriter):
            raise ConfigurationError("The configured store is read-only")
        return DocumentIndexer(self.store, self.embedder, self.chunker, self.config.indexing)

    async def pending_documents(self, limit: Optional[int] = None) -> list[Document]:
        """Documents whose embedding is missing or stale (no embedder needed)."""
        if not isinstance(self.store, IndexWriter):
            raise ConfigurationError("The configured store is read-only")
        return await self.store.list_documents_needing_embedding(limit)

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Run one query in the requested mode."""
        started = time.perf_counter()
        logger.debug(f"[Engine] {request.mode.value} | query={request.query[:80]!r}")

        if request.mode == SearchMode.VECTOR:
            results = await self.vector.search(
                request.query,
                scope_id=request.scope_id,
                limit=request.limit,
                min_similarity=request.min_similarity,
                include_chunks=request.include_chunks,
            )
        elif request.mode == SearchMode.KEYWORD:
            results = await self.keyword.search(
                request.query, scope_id=request.scope_id, limit=request.limit
            )
        else:
            results = await self.hybrid.search(
                request.query,
                scope_id=request.scope_id,
                limit=request.limit,
                vector_weight=request.vector_weight,
                min_similarity=request.min_similarity,
                include_chunks=request.include_chunks,
            )

        latency_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[Engine] {request.mode.value} search | {len(results)} result(s) | {latency_ms:.1f} ms"
        )
        return SearchResponse(
            query=request.query, mode=request.mode, results=results, latency_ms=latency_ms
        )

    async def find_similar(
        self,
        document_id: str,
        *,
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        scope_id: Optional[str] = None,
    ) -> list[SearchResult]:
        return await self.similar.find_similar(
            document_id, limit=limit, min_similarity=min_similarity, scope_id=scope_id
        )

    async def availability(self, scope_id: Optional[str] = None) -> Availability:
        """Embedded vs total active documents in scope (readable embeddings only)."""
        docs = await self.store.list_active_documents(scope_id)
        embedded = sum(1 for d in docs if parse_embedding(d.embedding) is not None)
        return Availability(
            available=embedded > 0,
            embedded_count=embedded,
            total_count=len(docs),
        )
