"""
Similar documents for a given document.

The stored vector of the source document is compared directly with every
other active document, so no embedding call is made.  Documents that were
never embedded (or whose stored vector is unreadable) fall back to keyword
search seeded with their title and summary.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger

from docsearch.config import SearchConfig
from docsearch.embedding.codec import parse_embedding
from docsearch.embedding.similarity import cosine_similarity
from docsearch.errors import DocumentNotFoundError
from docsearch.retrieval.keyword import KeywordSearcher
from docsearch.retrieval.vector import document_hit
from docsearch.schemas import SearchResult
from docsearch.storage.base import DocumentStore


class SimilarDocumentFinder:
    def __init__(
        self,
        store: DocumentStore,
        keyword: KeywordSearcher,
        config: SearchConfig | None = None,
    ) -> None:
        self.store = store
        self.keyword = keyword
        self.config = config or SearchConfig()

    async def find_similar(
        self,
        document_id: str,
        *,
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
        scope_id: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Documents most similar to `document_id`, best first.

        The source document itself is never part of the result.

        Raises:
            DocumentNotFoundError: when no document has that id.
        """
        limit = limit or self.config.similar_limit
        threshold = (
            self.config.similar_min_similarity if min_similarity is None else min_similarity
        )

        source = await self.store.get_document(document_id)
        if source is None:
            raise DocumentNotFoundError(document_id)

        source_vec = parse_embedding(source.embedding)
        if source_vec is None:
            if source.embedding:
                logger.warning(f"[Similar] Unreadable embedding on {document_id}, using keywords")
            seed = f"{source.title} {source.summary or ''}"
            return await self.keyword.search(
                seed, scope_id=scope_id, limit=limit, exclude_ids=frozenset({document_id})
            )

        docs = await self.store.list_active_documents(scope_id)
        results: list[SearchResult] = []
        for doc in docs:
            if doc.id == document_id:
                continue
            vector = parse_embedding(doc.embedding)
            if vector is None:
                continue
            similarity = cosine_similarity(source_vec, vector)
            if similarity < threshold:
                continue
            results.append(document_hit(doc, similarity, self.config.excerpt_chars))

        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug(f"[Similar] {document_id} | {len(results)} match(es) >= {threshold}")
        return results[:limit]
