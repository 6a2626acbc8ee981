"""
Core Pydantic schemas for the retrieval engine.

Documents come from the external editing layer; the engine reads them,
derives their plain text, and returns SearchResults that are built per
query and never persisted.
"""
from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from docsearch.utils.helpers import flatten_blocks

# Body text included in the document-level embedding input
MAX_EMBEDDING_BODY_CHARS = 3000


# --- Enumerations ------------------------------------------------------------

class DocumentStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class ResultKind(str, Enum):
    DOCUMENT = "document"
    CHUNK = "chunk"


class SearchMode(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


# --- Documents ----------------------------------------------------------------

class Document(BaseModel):
    """
    An identifiable content unit.

    `body` is the flattened plain text when the editing layer precomputed
    it; otherwise the text is derived from the block-structured `content`.
    `embedding` holds the serialized vector (see embedding.codec) and
    `embedded_checksum` the checksum of the text it was computed from.
    """

    id: str
    title: str
    summary: Optional[str] = None
    key_points: list[str] = Field(default_factory=list)
    applicable_when: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    body: Optional[str] = None
    content: Optional[list[Any]] = None
    status: DocumentStatus = DocumentStatus.ACTIVE
    scope_id: Optional[str] = None

    # Populated by the indexer
    embedding: Optional[str] = None
    embedding_model: Optional[str] = None
    embedded_checksum: Optional[str] = None

    @property
    def text(self) -> str:
        """Flattened plain text of the document."""
        if self.body:
            return self.body
        if self.content:
            return flatten_blocks(self.content)
        return ""

    def embedding_text(self, max_body_chars: Optional[int] = MAX_EMBEDDING_BODY_CHARS) -> str:
        """
        Text sent to the embedding provider for the document-level vector.

        Structured fields come first so short documents are still
        represented by their summary and key points.  `max_body_chars=None`
        keeps the whole body.
        """
        parts: list[str] = [self.title]
        if self.summary:
            parts.append(self.summary)
        if self.key_points:
            parts.append("Key points: " + ". ".join(self.key_points))
        if self.applicable_when:
            parts.append("Applicable when: " + self.applicable_when)
        if self.tags:
            parts.append("Tags: " + ", ".join(self.tags))

        body = self.text
        if body:
            if max_body_chars is not None and len(body) > max_body_chars:
                body = body[:max_body_chars] + "..."
            parts.append(body)
        return "\n\n".join(parts)

    @computed_field
    @property
    def checksum(self) -> str:
        """
        SHA-256 of the embedding text with the whole body.

        Not affected by the body cap on the vector input: an edit anywhere
        in the body marks the stored embedding stale.
        """
        return hashlib.sha256(self.embedding_text(None).encode("utf-8")).hexdigest()

    @property
    def needs_embedding(self) -> bool:
        return self.embedding is None or self.embedded_checksum != self.checksum

    @property
    def is_active(self) -> bool:
        return self.status == DocumentStatus.ACTIVE


# --- Search results -----------------------------------------------------------

class SearchResult(BaseModel):
    """
    One ranked hit.

    The scale of `similarity` depends on the stage that produced it: raw
    cosine for vector search, a normalised keyword score for keyword search,
    and a score relative to the top hit for hybrid search. Fusion and
    deduplication only look at the fixed fields; `extra` is for display.
    """

    kind: ResultKind
    id: str
    document_id: str                     # Parent document (== id for document hits)
    title: str
    content: str
    similarity: float

    section: Optional[str] = None
    headings: list[str] = Field(default_factory=list)
    chunk_index: Optional[int] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[ResultKind, str]:
        return (self.kind, self.id)


class Availability(BaseModel):
    """Whether semantic search is worth offering for the active corpus."""

    available: bool
    embedded_count: int
    total_count: int
