"""
In-memory reference store.

Keeps documents and chunks in dicts and persists them as a single JSON
file (orjson).  Documents can also be imported from a directory of
per-document JSON files, the way the ingestion layer drops them.

Reads return deep copies so callers can never mutate stored state.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from loguru import logger
from pydantic import ValidationError

from docsearch.chunking.schemas import Chunk
from docsearch.errors import DocumentNotFoundError
from docsearch.schemas import Document
from docsearch.utils.helpers import load_json, save_json


class InMemoryStore:
    """Implements both DocumentStore and IndexWriter."""

    def __init__(
        self,
        documents: Iterable[Document] = (),
        chunks: Iterable[Chunk] = (),
    ) -> None:
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, list[Chunk]] = {}
        for doc in documents:
            self.upsert_document(doc)
        for chunk in chunks:
            self._chunks.setdefault(chunk.doc_id, []).append(chunk)
        for doc_chunks in self._chunks.values():
            doc_chunks.sort(key=lambda c: c.chunk_index)

    # --- Sync helpers (ingestion side) ----------------------------------------

    def upsert_document(self, document: Document) -> None:
        """
        Insert or replace a document.

        The stored embedding survives an update only while the text it was
        computed from is unchanged.
        """
        existing = self._documents.get(document.id)
        if existing is not None and document.embedding is None and existing.embedding:
            if existing.embedded_checksum == document.checksum:
                document = document.model_copy(
                    update={
                        "embedding": existing.embedding,
                        "embedding_model": existing.embedding_model,
                        "embedded_checksum": existing.embedded_checksum,
                    }
                )
        self._documents[document.id] = document

    @property
    def document_count(self) -> int:
        return len(self._documents)

    def chunks_for(self, document_id: str) -> list[Chunk]:
        return [c.model_copy(deep=True) for c in self._chunks.get(document_id, [])]

    # --- DocumentStore ----------------------------------------------------------

    async def list_active_documents(self, scope_id: Optional[str] = None) -> list[Document]:
        return [
            doc.model_copy(deep=True)
            for doc in self._documents.values()
            if doc.is_active and (scope_id is None or doc.scope_id == scope_id)
        ]

    async def list_chunks_with_embeddings(self, scope_id: Optional[str] = None) -> list[Chunk]:
        results: list[Chunk] = []
        for doc_id, doc_chunks in self._chunks.items():
            doc = self._documents.get(doc_id)
            if doc is None or not doc.is_active:
                continue
            if scope_id is not None and doc.scope_id != scope_id:
                continue
            results.extend(c.model_copy(deep=True) for c in doc_chunks if c.embedding)
        return results

    async def get_document(self, document_id: str) -> Optional[Document]:
        doc = self._documents.get(document_id)
        return doc.model_copy(deep=True) if doc is not None else None

    # --- IndexWriter -------------------------------------------------------------

    async def list_documents_needing_embedding(self, limit: Optional[int] = None) -> list[Document]:
        pending = [
            doc.model_copy(deep=True)
            for doc in self._documents.values()
            if doc.is_active and doc.needs_embedding
        ]
        return pending if limit is None else pending[:limit]

    async def update_document_embedding(
        self, document_id: str, embedding: str, model: str, checksum: str
    ) -> None:
        doc = self._documents.get(document_id)
        if doc is None:
            raise DocumentNotFoundError(document_id)
        self._documents[document_id] = doc.model_copy(
            update={
                "embedding": embedding,
                "embedding_model": model,
                "embedded_checksum": checksum,
            }
        )

    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        if document_id not in self._documents:
            raise DocumentNotFoundError(document_id)
        self._chunks[document_id] = sorted(
            (c.model_copy(deep=True) for c in chunks), key=lambda c: c.chunk_index
        )

    # --- Persistence ---------------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Persist all documents and chunks to one JSON file."""
        data = {
            "documents": [
                doc.model_dump(mode="json", exclude={"checksum"})
                for doc in self._documents.values()
            ],
            "chunks": [
                chunk.model_dump(mode="json")
                for doc_chunks in self._chunks.values()
                for chunk in doc_chunks
            ],
        }
        save_json(data, path)
        logger.info(
            f"[Store] Saved {len(data['documents'])} documents, "
            f"{len(data['chunks'])} chunks -> {path}"
        )

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryStore":
        """Load a store file written by save(); a missing file gives an empty store."""
        p = Path(path)
        if not p.exists():
            logger.info(f"[Store] No store file at {p}, starting empty")
            return cls()

        raw = load_json(p)
        documents = [Document.model_validate(d) for d in raw.get("documents", [])]
        chunks = [Chunk.model_validate(c) for c in raw.get("chunks", [])]
        logger.info(f"[Store] Loaded {len(documents)} documents, {len(chunks)} chunks from {p}")
        return cls(documents, chunks)

    def import_directory(self, docs_dir: str | Path) -> int:
        """Upsert every *.json document file in `docs_dir`. Returns the count imported."""
        p = Path(docs_dir)
        if not p.exists():
            raise FileNotFoundError(f"Documents directory not found: {p}")

        imported = 0
        for json_file in sorted(p.glob("*.json")):
            try:
                doc = Document.model_validate(load_json(json_file))
            except (ValidationError, ValueError) as exc:
                logger.warning(f"[Store] Skipping {json_file.name}: {exc}")
                continue
            self.upsert_document(doc)
            imported += 1

        logger.info(f"[Store] Imported {imported} documents from {p}")
        return imported
