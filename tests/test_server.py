"""Tests for the HTTP API (FastAPI TestClient)."""

from __future__ import annotations

import sys
from pathlib import Path

import orjson
import pytest
import yaml
from fastapi.testclient import TestClient
from loguru import logger

import docsearch.serving.engine as engine_module
from app.server import UNAVAILABLE_NOTICE, app
from docsearch.schemas import Document
from docsearch.storage.memory import InMemoryStore
from tests.fakes import embedded_doc, make_embedder


@pytest.fixture(autouse=True)
def _restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


def _write_config(tmp_path: Path, monkeypatch) -> Path:
    store_path = tmp_path / "store.json"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump({
            "logging": {"level": "ERROR", "file": None},
            "storage": {"store_path": str(store_path)},
        })
    )
    monkeypatch.setenv("DOCSEARCH_CONFIG", str(config_path))
    return store_path


@pytest.fixture()
def keyword_only_client(tmp_path: Path, monkeypatch, budget_doc: Document):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    store_path = _write_config(tmp_path, monkeypatch)
    InMemoryStore([budget_doc]).save(store_path)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def semantic_client(tmp_path: Path, monkeypatch, budget_doc: Document):
    monkeypatch.setattr(
        engine_module,
        "Embedder",
        lambda config, api_key=None: make_embedder(lambda text: [1.0, 0.0])[0],
    )
    store_path = _write_config(tmp_path, monkeypatch)
    InMemoryStore([
        budget_doc,
        embedded_doc("outlook", [1.0, 0.0], title="Spending outlook"),
        embedded_doc("forecast", [0.95, 0.1], title="Spend forecast"),
    ]).save(store_path)
    with TestClient(app) as client:
        yield client


def test_health_reports_availability(keyword_only_client) -> None:
    response = keyword_only_client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["embedded_count"] == 0
    assert body["total_count"] == 1
    assert body["embedder_configured"] is False


def test_search_degrades_to_keyword_mode(keyword_only_client) -> None:
    response = keyword_only_client.post("/api/search", json={"query": "marketing budget"})

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "keyword"
    assert body["degraded"] is True
    assert body["notice"] == UNAVAILABLE_NOTICE
    assert [r["id"] for r in body["results"]] == ["q3-budget"]


def test_hybrid_search(semantic_client) -> None:
    response = semantic_client.post(
        "/api/search", json={"query": "marketing budget", "mode": "hybrid", "limit": 5}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["degraded"] is False
    assert body["results"][0]["id"] == "outlook"
    assert body["results"][0]["similarity"] == 1.0
    assert "q3-budget" in {r["id"] for r in body["results"]}


def test_empty_query_is_rejected(semantic_client) -> None:
    response = semantic_client.post("/api/search", json={"query": "   "})

    assert response.status_code == 422


def test_invalid_weight_is_rejected(semantic_client) -> None:
    response = semantic_client.post("/api/search", json={"query": "q", "vector_weight": 1.5})

    assert response.status_code == 422


def test_similar_docs(semantic_client) -> None:
    response = semantic_client.get("/api/docs/outlook/similar", params={"limit": 3})

    assert response.status_code == 200
    body = response.json()
    assert body["document_id"] == "outlook"
    assert [r["id"] for r in body["results"]] == ["forecast"]


def test_similar_unknown_document_is_404(semantic_client) -> None:
    response = semantic_client.get("/api/docs/missing/similar")

    assert response.status_code == 404


def test_pending_embeddings_lists_missing_and_stale(semantic_client) -> None:
    response = semantic_client.get("/api/embeddings/pending")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    stale = {d["id"]: d["stale"] for d in body["docs"]}
    assert stale == {"q3-budget": False, "outlook": True, "forecast": True}


def test_index_one_document_and_persist(semantic_client, tmp_path: Path) -> None:
    response = semantic_client.post("/api/embeddings/q3-budget")

    assert response.status_code == 200
    assert response.json()["embedded"] is True

    pending = semantic_client.get("/api/embeddings/pending").json()
    assert "q3-budget" not in {d["id"] for d in pending["docs"]}

    saved = orjson.loads((tmp_path / "store.json").read_bytes())
    stored = next(d for d in saved["documents"] if d["id"] == "q3-budget")
    assert stored["embedding"] is not None
    assert stored["embedded_checksum"] is not None


def test_index_unknown_document_is_404(semantic_client) -> None:
    response = semantic_client.post("/api/embeddings/missing")

    assert response.status_code == 404


def test_index_without_embedder_is_503(keyword_only_client) -> None:
    response = keyword_only_client.post("/api/embeddings/q3-budget")

    assert response.status_code == 503
