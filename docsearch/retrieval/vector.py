"""
Vector Search
--------------
Embeds the query once and scores every embedded document and chunk in
scope by cosine similarity.

Document-level and chunk-level hits are merged into one list in which each
document appears at most once: whichever of its hits (the document vector
or one of its chunks) is most similar represents it.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from loguru import logger

from docsearch.chunking.schemas import Chunk
from docsearch.config import SearchConfig
from docsearch.embedding.codec import parse_embedding
from docsearch.embedding.embedder import Embedder
from docsearch.embedding.similarity import cosine_similarity
from docsearch.errors import ConfigurationError
from docsearch.schemas import Document, ResultKind, SearchResult
from docsearch.storage.base import DocumentStore
from docsearch.utils.helpers import make_excerpt


def document_hit(doc: Document, similarity: float, excerpt_chars: int = 300) -> SearchResult:
    return SearchResult(
        kind=ResultKind.DOCUMENT,
        id=doc.id,
        document_id=doc.id,
        title=doc.title,
        content=make_excerpt(doc.summary, doc.text, excerpt_chars),
        similarity=similarity,
        extra={
            "key_points": doc.key_points,
            "applicable_when": doc.applicable_when,
        },
    )


def chunk_hit(chunk: Chunk, similarity: float) -> SearchResult:
    return SearchResult(
        kind=ResultKind.CHUNK,
        id=chunk.id,
        document_id=chunk.doc_id,
        title=chunk.doc_title or f"Chunk from {chunk.doc_id}",
        content=chunk.content,
        similarity=similarity,
        section=chunk.metadata.section,
        headings=list(chunk.metadata.headings),
        chunk_index=chunk.chunk_index,
    )


def dedupe_by_document(results: Sequence[SearchResult]) -> list[SearchResult]:
    """
    Keep one hit per parent document, the most similar one.

    Output is ordered by similarity, descending.
    """
    best: dict[str, SearchResult] = {}
    for result in results:
        current = best.get(result.document_id)
        if current is None or result.similarity > current.similarity:
            best[result.document_id] = result
    return sorted(best.values(), key=lambda r: r.similarity, reverse=True)


class VectorSearcher:
    """Cosine-similarity search over stored document and chunk embeddings."""

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder | None,
        config: SearchConfig | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config or SearchConfig()

    async def search(
        self,
        query: str,
        *,
        scope_id: Optional[str] = None,
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        include_chunks: Optional[bool] = None,
    ) -> list[SearchResult]:
        """Ranked hits with raw cosine similarity in `similarity`."""
        if self.embedder is None:
            raise ConfigurationError("Vector search requires an embedding client")

        limit = limit or self.config.limit
        threshold = self.config.min_similarity if min_similarity is None else min_similarity
        with_chunks = self.config.include_chunks if include_chunks is None else include_chunks

        query_embedding = await self.embedder.embed(query)
        query_vec = query_embedding.vector

        if with_chunks:
            docs, chunks = await asyncio.gather(
                self.store.list_active_documents(scope_id),
                self.store.list_chunks_with_embeddings(scope_id),
            )
        else:
            docs, chunks = await self.store.list_active_documents(scope_id), []

        results = self.score_documents(query_vec, docs, threshold)
        if with_chunks:
            chunk_limit = limit * self.config.chunk_fetch_multiplier
            results.extend(self.score_chunks(query_vec, chunks, threshold)[:chunk_limit])

        final = dedupe_by_document(results)[:limit]
        logger.debug(
            f"[VectorSearch] {len(docs)} docs, {len(chunks)} chunks scored | "
            f"{len(final)} result(s) >= {threshold}"
        )
        return final

    def score_documents(
        self, query_vec: list[float], docs: Sequence[Document], threshold: float
    ) -> list[SearchResult]:
        results: list[SearchResult] = []
        for doc in docs:
            vector = parse_embedding(doc.embedding)
            if vector is None:
                continue
            similarity = cosine_similarity(query_vec, vector)
            if similarity < threshold:
                continue
            results.append(document_hit(doc, similarity, self.config.excerpt_chars))
        return sorted(results, key=lambda r: r.similarity, reverse=True)

    @staticmethod
    def score_chunks(
        query_vec: list[float], chunks: Sequence[Chunk], threshold: float
    ) -> list[SearchResult]:
        results: list[SearchResult] = []
        for chunk in chunks:
            vector = parse_embedding(chunk.embedding)
            if vector is None:
                continue
            similarity = cosine_similarity(query_vec, vector)
            if similarity < threshold:
                continue
            results.append(chunk_hit(chunk, similarity))
        return sorted(results, key=lambda r: r.similarity, reverse=True)
