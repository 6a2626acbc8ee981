"""
Typed error family for the retrieval engine.

Every failure the engine raises on purpose derives from DocSearchError so
the CLI and the HTTP layer can map them to exit codes / status codes
without catching provider or numpy internals.
"""
from __future__ import annotations


class DocSearchError(Exception):
    """Base class for engine errors."""


class ConfigurationError(DocSearchError):
    """Missing credentials or invalid configuration. Never retried."""


class EmbeddingProviderError(DocSearchError):
    """The embedding provider failed or returned a malformed payload."""

    def __init__(self, message: str, batch_index: int = 0, batch_size: int = 1) -> None:
        super().__init__(f"{message} (batch {batch_index}, size {batch_size})")
        self.batch_index = batch_index
        self.batch_size = batch_size


class DimensionMismatchError(DocSearchError):
    """Two embeddings of different length were compared (mixed models in the corpus)."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Embedding dimension mismatch: {left} vs {right}")
        self.left = left
        self.right = right


class DocumentNotFoundError(DocSearchError):
    """The requested document does not exist in the store."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class SearchUnavailableError(DocSearchError):
    """Every branch of a hybrid search failed."""
