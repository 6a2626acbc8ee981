"""
Store interfaces consumed by the engine.

The search path only ever reads (DocumentStore).  The indexer writes
embeddings back through IndexWriter, which is a separate protocol so a
read-only replica can serve queries.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from docsearch.chunking.schemas import Chunk
from docsearch.schemas import Document


@runtime_checkable
class DocumentStore(Protocol):
    """Already-committed reads of documents and chunks."""

    async def list_active_documents(self, scope_id: Optional[str] = None) -> list[Document]:
        """Active documents, optionally restricted to one scope."""
        ...

    async def list_chunks_with_embeddings(self, scope_id: Optional[str] = None) -> list[Chunk]:
        """Chunks that carry an embedding, for active documents in scope."""
        ...

    async def get_document(self, document_id: str) -> Optional[Document]:
        """One document by id, or None."""
        ...


@runtime_checkable
class IndexWriter(Protocol):
    """Write-back used by the out-of-band indexer."""

    async def get_document(self, document_id: str) -> Optional[Document]:
        ...

    async def list_documents_needing_embedding(self, limit: Optional[int] = None) -> list[Document]:
        ...

    async def update_document_embedding(
        self, document_id: str, embedding: str, model: str, checksum: str
    ) -> None:
        ...

    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        ...
