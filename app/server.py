"""
docsearch - Web API Server
---------------------------
FastAPI server that wraps the SearchEngine.

Endpoints:
  GET  /api/health               -> embedded vs total documents, semantic availability
  POST /api/search               -> vector / keyword / hybrid search
  GET  /api/docs/{doc_id}/similar -> documents similar to one document
  GET  /api/embeddings/pending     -> documents whose embedding is missing or stale
  POST /api/embeddings/{doc_id}    -> embed one document now

Run from the project root:
    uvicorn app.server:app --reload --port 8000

The store file and config/config.yaml are resolved relative to CWD.
DOCSEARCH_CONFIG points at a different config file.
"""
from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from docsearch.config import load_config
from docsearch.embedding.pipeline import IndexResult
from docsearch.errors import ConfigurationError, DocumentNotFoundError, SearchUnavailableError
from docsearch.schemas import SearchMode, SearchResult
from docsearch.serving.engine import SearchEngine, SearchRequest
from docsearch.storage.memory import InMemoryStore
from docsearch.utils.logger import setup_logger

load_dotenv()

UNAVAILABLE_NOTICE = "semantic search unavailable, showing keyword results"

# ---------------------------------------------------------------------------
# Engine singleton
# ---------------------------------------------------------------------------

_engine: Optional[SearchEngine] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine once at startup; drop it on shutdown."""
    global _engine
    cfg = load_config(os.getenv("DOCSEARCH_CONFIG"))
    setup_logger(cfg.logging.level, cfg.logging.file)

    logger.info(f"[Server] Loading store from {cfg.storage.store_path}...")
    store = InMemoryStore.load(cfg.storage.store_path)
    _engine = SearchEngine.from_config(cfg, store)
    logger.info(f"[Server] Engine ready | {store.document_count} documents")
    yield
    _engine = None
    logger.info("[Server] Engine unloaded.")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="docsearch API",
    description="Hybrid semantic search (vector + keyword, RRF fusion)",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class SearchBody(BaseModel):
    query: str
    mode: SearchMode = SearchMode.HYBRID
    scope_id: Optional[str] = None
    limit: Optional[int] = Field(None, gt=0, le=100)
    min_similarity: Optional[float] = None
    include_chunks: Optional[bool] = None
    vector_weight: Optional[float] = Field(None, ge=0.0, le=1.0)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Query cannot be empty")
        return v


class SearchResponseModel(BaseModel):
    query: str
    mode: SearchMode
    results: list[SearchResult]
    count: int
    latency_ms: float
    degraded: bool = False
    notice: Optional[str] = None


class SimilarResponseModel(BaseModel):
    document_id: str
    results: list[SearchResult]
    count: int


class PendingDoc(BaseModel):
    id: str
    title: str
    stale: bool                         # False when never embedded


class PendingResponseModel(BaseModel):
    count: int
    docs: list[PendingDoc]


class HealthResponse(BaseModel):
    status: str
    available: bool
    embedded_count: int
    total_count: int
    embedder_configured: bool
    model: str


def _require_engine() -> SearchEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="Engine not ready")
    return _engine


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/api/health", response_model=HealthResponse)
async def health(scope_id: Optional[str] = Query(None)):
    """Return how much of the corpus is embedded."""
    engine = _require_engine()
    availability = await engine.availability(scope_id)
    return HealthResponse(
        status="ok",
        available=availability.available,
        embedded_count=availability.embedded_count,
        total_count=availability.total_count,
        embedder_configured=engine.embedder is not None,
        model=engine.config.embedding.model,
    )


@app.post("/api/search", response_model=SearchResponseModel)
async def search(body: SearchBody):
    """
    Run one search.

    When no document in scope is embedded, vector and hybrid requests are
    answered in keyword mode and flagged as degraded.
    """
    engine = _require_engine()
    logger.info(f"[API] Search | mode={body.mode.value} | query={body.query[:80]!r}")

    mode = body.mode
    degraded = False
    if mode != SearchMode.KEYWORD:
        availability = await engine.availability(body.scope_id)
        if not availability.available:
            mode, degraded = SearchMode.KEYWORD, True

    request = SearchRequest(
        query=body.query,
        scope_id=body.scope_id,
        limit=body.limit,
        mode=mode,
        min_similarity=body.min_similarity,
        include_chunks=body.include_chunks,
        vector_weight=body.vector_weight,
    )
    try:
        response = await engine.search(request)
    except (ConfigurationError, SearchUnavailableError) as exc:
        logger.error(f"[API] Search failed: {exc}")
        raise HTTPException(status_code=503, detail=str(exc))

    return SearchResponseModel(
        query=response.query,
        mode=response.mode,
        results=response.results,
        count=len(response.results),
        latency_ms=round(response.latency_ms, 1),
        degraded=degraded,
        notice=UNAVAILABLE_NOTICE if degraded else None,
    )


@app.get("/api/docs/{doc_id}/similar", response_model=SimilarResponseModel)
async def similar_docs(
    doc_id: str,
    limit: Optional[int] = Query(None, gt=0, le=50),
    min_similarity: Optional[float] = Query(None),
    scope_id: Optional[str] = Query(None),
):
    engine = _require_engine()
    try:
        results = await engine.find_similar(
            doc_id, limit=limit, min_similarity=min_similarity, scope_id=scope_id
        )
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return SimilarResponseModel(document_id=doc_id, results=results, count=len(results))


@app.get("/api/embeddings/pending", response_model=PendingResponseModel)
async def pending_embeddings(limit: int = Query(50, gt=0, le=500)):
    """Documents whose embedding is missing or stale."""
    engine = _require_engine()
    try:
        docs = await engine.pending_documents(limit)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return PendingResponseModel(
        count=len(docs),
        docs=[PendingDoc(id=d.id, title=d.title, stale=d.embedding is not None) for d in docs],
    )


@app.post("/api/embeddings/{doc_id}", response_model=IndexResult)
async def embed_document(doc_id: str):
    """
    Embed one document now, pending or not.

    Returns 404 for an unknown id, 503 without an embedder and 502 when
    the provider keeps failing.  A successful run is persisted to the
    configured store file.
    """
    engine = _require_engine()
    try:
        indexer = engine.indexer()
        result = await indexer.index_by_id(doc_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    if result.error:
        logger.error(f"[API] Indexing {doc_id} failed: {result.error}")
        raise HTTPException(status_code=502, detail=result.error)

    if isinstance(engine.store, InMemoryStore):
        engine.store.save(engine.config.storage.store_path)
    logger.info(f"[API] Indexed {doc_id} | chunks={result.chunks}")
    return result
