"""
Chunk schema - the atomic unit that gets embedded and searched.

A Chunk traces back to its parent Document so every chunk-level search
hit can be deduplicated against, and cited as, its document.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ChunkMetadata(BaseModel):
    """Structural context of a chunk inside its document."""

    section: Optional[str] = None        # Most recent heading before the chunk
    headings: list[str] = Field(default_factory=list)  # Heading trail, outermost first
    is_code_block: bool = False


class Chunk(BaseModel):
    """
    A contiguous slice of one Document's text.

    Offsets index into the document's flattened text. Consecutive chunks
    overlap on purpose, so `start_offset` of chunk n+1 is usually smaller
    than `end_offset` of chunk n.
    """

    # Identity
    doc_id: str                          # Parent Document.id
    chunk_index: int                     # Position within the document

    # Content
    content: str
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    # Provenance (copied from parent doc for zero-join retrieval)
    doc_title: str = ""
    scope_id: Optional[str] = None

    # Serialized vector, populated by the indexer
    embedding: Optional[str] = None

    @property
    def id(self) -> str:
        return f"{self.doc_id}:{self.chunk_index}"

    @model_validator(mode="after")
    def _check_offsets(self) -> "Chunk":
        if self.end_offset < self.start_offset:
            raise ValueError(
                f"end_offset ({self.end_offset}) < start_offset ({self.start_offset})"
            )
        return self
