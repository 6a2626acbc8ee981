from __future__ import annotations

import pytest

from docsearch.config import EmbeddingConfig, EngineConfig, IndexingConfig
from docsearch.schemas import Document


@pytest.fixture()
def budget_doc() -> Document:
    return Document(
        id="q3-budget",
        title="Q3 budget plan",
        summary="Covers marketing and ops spend",
        tags=["finance", "planning"],
    )


@pytest.fixture()
def unrelated_doc() -> Document:
    return Document(
        id="onboarding",
        title="Engineer onboarding checklist",
        summary="Laptop setup and access requests",
        tags=["people"],
    )


@pytest.fixture()
def test_config(tmp_path) -> EngineConfig:
    """Engine config with no waits and logging kept off disk."""
    config = EngineConfig(
        embedding=EmbeddingConfig(batch_delay_s=0.0),
        indexing=IndexingConfig(document_delay_s=0.0, retry_min_wait_s=0.0, retry_max_wait_s=0.0),
    )
    config.storage.store_path = str(tmp_path / "store.json")
    config.storage.docs_dir = str(tmp_path / "docs")
    config.logging.file = None
    return config
