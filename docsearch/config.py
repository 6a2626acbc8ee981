"""
Engine configuration.

Every tunable constant (chunk sizes, batch size, RRF damping, thresholds)
lives in one of these models and is handed to the component constructors,
so tests can build components with tiny thresholds.

Values come from config/config.yaml when present; secrets come from the
environment (.env is loaded by the CLI / server entry points).
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator

DEFAULT_CONFIG_PATH = "config/config.yaml"


class ChunkingConfig(BaseModel):
    target_size: int = Field(1000, gt=0)     # Characters per chunk before a flush
    overlap: int = Field(200, ge=0)          # Tail carried into the next chunk
    min_size: int = Field(100, ge=0)         # Shorter documents stay whole
    max_size: int = Field(2000, gt=0)        # Hard ceiling, forces a split
    chunking_factor: float = 1.5             # Chunk only texts longer than target * factor

    @model_validator(mode="after")
    def _check_sizes(self) -> "ChunkingConfig":
        if self.max_size < self.target_size:
            raise ValueError("max_size must be >= target_size")
        return self


class EmbeddingConfig(BaseModel):
    model: str = "text-embedding-3-small"
    dimensions: Optional[int] = None         # Expected vector size, checked on every response
    max_input_tokens: int = 8191
    chars_per_token: int = 4
    batch_size: int = Field(20, gt=0)        # Provider-imposed ceiling per request
    batch_delay_s: float = Field(0.1, ge=0)  # Pause between consecutive batches
    api_key_env: str = "OPENAI_API_KEY"
    base_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DOCSEARCH_EMBEDDING_BASE_URL") or None
    )
    cost_per_million_tokens: float = 0.020

    @property
    def max_input_chars(self) -> int:
        return self.max_input_tokens * self.chars_per_token


class SearchConfig(BaseModel):
    limit: int = Field(10, gt=0)
    min_similarity: float = 0.3
    include_chunks: bool = True
    chunk_fetch_multiplier: int = 2          # Chunks are deduplicated against documents
    vector_weight: float = Field(0.7, ge=0.0, le=1.0)
    rrf_k: int = Field(60, gt=0)             # RRF damping constant
    candidate_multiplier: int = 2            # Candidates per branch in hybrid mode
    excerpt_chars: int = 300
    similar_limit: int = 5
    similar_min_similarity: float = 0.5


class IndexingConfig(BaseModel):
    max_body_chars: int = 3000               # Body included in the document vector input
    min_text_length: int = 10
    max_retries: int = Field(3, ge=1)        # Attempts per embedding call
    retry_min_wait_s: float = 2.0            # Exponential backoff bounds
    retry_max_wait_s: float = 10.0
    document_delay_s: float = 0.2            # Pause between documents in a run


class StorageConfig(BaseModel):
    store_path: str = "data/store.json"
    docs_dir: str = "data/docs"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/docsearch.log"  # None disables the file sink


class EngineConfig(BaseModel):
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> EngineConfig:
    """
    Load EngineConfig from YAML.

    A missing file at the default location yields the defaults; a missing
    file that was asked for explicitly is an error.
    """
    config_path = Path(path or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return EngineConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return EngineConfig.model_validate(raw)
