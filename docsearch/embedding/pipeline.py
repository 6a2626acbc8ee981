"""
Document Indexer
-----------------
Populates stored embeddings out of band:
  1. Build the document embedding text (structured fields + head of body)
     and embed it
  2. Long documents are also chunked and every chunk is batch-embedded
  3. The chunk set is replaced (emptied for short documents), then the
     vector is written back with the model name and checksum

Embedding calls are retried here (tenacity, exponential backoff) on
EmbeddingProviderError.  A document that still fails is reported in its
IndexResult and the run moves on to the next document.
"""
from __future__ import annotations

import asyncio
import time
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docsearch.chunking.chunker import ParagraphChunker
from docsearch.chunking.schemas import Chunk
from docsearch.config import IndexingConfig
from docsearch.embedding.codec import serialize_embedding
from docsearch.embedding.embedder import Embedder, Embedding
from docsearch.errors import DocSearchError, DocumentNotFoundError, EmbeddingProviderError
from docsearch.schemas import Document
from docsearch.storage.base import IndexWriter


class IndexResult(BaseModel):
    document_id: str
    embedded: bool = False
    skipped: bool = False
    chunks: int = 0
    tokens_used: int = 0
    error: Optional[str] = None


class IndexRunSummary(BaseModel):
    processed: int = 0
    embedded: int = 0
    skipped: int = 0
    failed: int = 0
    chunks: int = 0
    tokens_used: int = 0
    elapsed_s: float = 0.0
    failures: list[IndexResult] = Field(default_factory=list)


def document_embedding_text(doc: Document, max_body_chars: int = 3000) -> str:
    """Title, summary, key points, applicability, tags, then the body head."""
    return doc.embedding_text(max_body_chars)


class DocumentIndexer:
    def __init__(
        self,
        store: IndexWriter,
        embedder: Embedder,
        chunker: ParagraphChunker | None = None,
        config: IndexingConfig | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or ParagraphChunker()
        self.config = config or IndexingConfig()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(EmbeddingProviderError),
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(
                multiplier=1,
                min=self.config.retry_min_wait_s,
                max=self.config.retry_max_wait_s,
            ),
            before_sleep=lambda state: logger.warning(
                f"[Indexer] Embedding attempt {state.attempt_number} failed, retrying: "
                f"{state.outcome.exception()}"
            ),
            reraise=True,
        )

    async def _embed_one(self, text: str) -> Embedding:
        async for attempt in self._retrying():
            with attempt:
                return await self.embedder.embed(text)
        raise AssertionError("unreachable")

    async def _embed_many(self, texts: list[str]) -> list[Embedding]:
        async for attempt in self._retrying():
            with attempt:
                return await self.embedder.embed_batch(texts)
        raise AssertionError("unreachable")

    async def index_document(self, doc: Document) -> IndexResult:
        """
        Embed one document (and its chunks when it is long enough).

        The chunk set is replaced before the document vector and checksum
        are written, so a failure anywhere leaves the document pending.
        A document that no longer needs chunking has its old chunks removed.
        """
        result = IndexResult(document_id=doc.id)

        text = document_embedding_text(doc, self.config.max_body_chars)
        if len(text.strip()) < self.config.min_text_length:
            logger.debug(f"[Indexer] {doc.id} | no content to embed, skipped")
            result.skipped = True
            return result

        try:
            embedding = await self._embed_one(text)
            tokens_used = embedding.tokens_used

            embedded_chunks: list[Chunk] = []
            if self.chunker.needs_chunking(doc):
                chunks = self.chunker.chunk(doc)
                embeddings = await self._embed_many([c.content for c in chunks])
                embedded_chunks = [
                    chunk.model_copy(update={"embedding": serialize_embedding(emb.vector)})
                    for chunk, emb in zip(chunks, embeddings)
                ]
                tokens_used += sum(e.tokens_used for e in embeddings)

            await self.store.replace_chunks(doc.id, embedded_chunks)
            await self.store.update_document_embedding(
                doc.id,
                serialize_embedding(embedding.vector),
                embedding.model,
                doc.checksum,
            )
        except DocSearchError as exc:
            logger.error(f"[Indexer] {doc.id} failed: {exc}")
            result.error = str(exc)
            return result

        result.embedded = True
        result.chunks = len(embedded_chunks)
        result.tokens_used = tokens_used
        logger.info(
            f"[Indexer] {doc.id} | embedded"
            + (f" + {result.chunks} chunk(s)" if result.chunks else "")
            + f" | {result.tokens_used} tokens"
        )
        return result

    async def index_by_id(self, document_id: str) -> IndexResult:
        """Index one document now, whether or not it is pending."""
        doc = await self.store.get_document(document_id)
        if doc is None:
            raise DocumentNotFoundError(document_id)
        return await self.index_document(doc)

    async def index_pending(self, limit: Optional[int] = None) -> IndexRunSummary:
        """Index every document whose stored embedding is missing or stale."""
        started = time.perf_counter()
        pending = await self.store.list_documents_needing_embedding(limit)
        logger.info(f"[Indexer] {len(pending)} document(s) need embedding")

        summary = IndexRunSummary()
        for i, doc in enumerate(pending):
            result = await self.index_document(doc)
            summary.processed += 1
            summary.chunks += result.chunks
            summary.tokens_used += result.tokens_used
            if result.error:
                summary.failed += 1
                summary.failures.append(result)
            elif result.skipped:
                summary.skipped += 1
            else:
                summary.embedded += 1

            if i < len(pending) - 1 and self.config.document_delay_s > 0:
                await asyncio.sleep(self.config.document_delay_s)

        summary.elapsed_s = round(time.perf_counter() - started, 3)
        logger.info(
            f"[Indexer] Run complete | embedded={summary.embedded} "
            f"skipped={summary.skipped} failed={summary.failed} chunks={summary.chunks}"
        )
        return summary
