"""Tests for vector search over document and chunk embeddings."""

from __future__ import annotations

import pytest

from docsearch.chunking.schemas import Chunk, ChunkMetadata
from docsearch.config import SearchConfig
from docsearch.embedding.codec import serialize_embedding
from docsearch.errors import ConfigurationError
from docsearch.retrieval.vector import VectorSearcher
from docsearch.schemas import Document, ResultKind
from docsearch.storage.memory import InMemoryStore
from tests.fakes import embedded_doc, make_embedder

QUERY_VEC = [1.0, 0.0, 0.0]


def _chunk(doc_id: str, index: int, vector: list[float], **fields) -> Chunk:
    return Chunk(
        doc_id=doc_id,
        chunk_index=index,
        content=f"chunk {index} of {doc_id}",
        start_offset=index * 100,
        end_offset=index * 100 + 120,
        embedding=serialize_embedding(vector),
        **fields,
    )


def _searcher(store: InMemoryStore, **config) -> VectorSearcher:
    embedder, _ = make_embedder(lambda text: QUERY_VEC)
    return VectorSearcher(store, embedder, SearchConfig(**config))


@pytest.mark.asyncio
async def test_documents_ranked_by_cosine_and_thresholded() -> None:
    store = InMemoryStore([
        embedded_doc("close", [0.9, 0.1, 0.0], summary="close summary"),
        embedded_doc("far", [0.0, 1.0, 0.0]),
        embedded_doc("closest", [1.0, 0.0, 0.0]),
        Document(id="plain", title="Never embedded"),
    ])

    results = await _searcher(store).search("anything")

    assert [r.id for r in results] == ["closest", "close"]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].content == "close summary"


@pytest.mark.asyncio
async def test_query_is_embedded_once() -> None:
    embedder, fake = make_embedder(lambda text: QUERY_VEC)
    store = InMemoryStore([embedded_doc("a", QUERY_VEC)], [_chunk("a", 0, QUERY_VEC)])

    await VectorSearcher(store, embedder).search("one query")

    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_chunk_hit_replaces_weaker_document_hit() -> None:
    store = InMemoryStore(
        [embedded_doc("handbook", [0.5, 0.5, 0.0], title="Handbook")],
        [
            _chunk(
                "handbook",
                3,
                [1.0, 0.05, 0.0],
                doc_title="Handbook",
                metadata=ChunkMetadata(section="Leave", headings=["HR", "Leave"]),
            )
        ],
    )

    results = await _searcher(store).search("vacation policy")

    assert len(results) == 1
    hit = results[0]
    assert hit.kind == ResultKind.CHUNK
    assert hit.id == "handbook:3"
    assert hit.document_id == "handbook"
    assert hit.section == "Leave"
    assert hit.headings == ["HR", "Leave"]
    assert hit.chunk_index == 3


@pytest.mark.asyncio
async def test_document_hit_kept_when_stronger_than_its_chunks() -> None:
    store = InMemoryStore(
        [embedded_doc("guide", [1.0, 0.0, 0.0])],
        [_chunk("guide", 0, [0.6, 0.4, 0.0]), _chunk("guide", 1, [0.7, 0.3, 0.0])],
    )

    results = await _searcher(store).search("guide")

    assert [(r.kind, r.id) for r in results] == [(ResultKind.DOCUMENT, "guide")]


@pytest.mark.asyncio
async def test_chunk_title_falls_back_to_document_id() -> None:
    store = InMemoryStore(
        [Document(id="notes", title="Notes")],
        [_chunk("notes", 0, [1.0, 0.0, 0.0])],
    )

    results = await _searcher(store).search("notes")

    assert results[0].title == "Chunk from notes"


@pytest.mark.asyncio
async def test_include_chunks_false_ignores_chunks() -> None:
    store = InMemoryStore(
        [embedded_doc("d", [0.4, 0.6, 0.0])],
        [_chunk("d", 0, [1.0, 0.0, 0.0])],
    )

    results = await _searcher(store).search("q", include_chunks=False)

    assert [r.kind for r in results] == [ResultKind.DOCUMENT]


@pytest.mark.asyncio
async def test_malformed_embeddings_are_skipped() -> None:
    broken = Document(id="broken", title="Broken", embedding="not json")
    store = InMemoryStore([broken, embedded_doc("ok", QUERY_VEC)])

    results = await _searcher(store).search("q")

    assert [r.id for r in results] == ["ok"]


@pytest.mark.asyncio
async def test_results_truncated_to_limit() -> None:
    docs = [embedded_doc(f"d{i}", [1.0, i / 10, 0.0]) for i in range(6)]
    store = InMemoryStore(docs)

    results = await _searcher(store).search("q", limit=3)

    assert [r.id for r in results] == ["d0", "d1", "d2"]


@pytest.mark.asyncio
async def test_scope_filter_applies_to_documents_and_chunks() -> None:
    store = InMemoryStore(
        [
            embedded_doc("mine", [0.8, 0.2, 0.0], scope_id="s1"),
            Document(id="theirs", title="Theirs", scope_id="s2"),
        ],
        [_chunk("theirs", 0, QUERY_VEC)],
    )

    results = await _searcher(store).search("q", scope_id="s1")

    assert [r.document_id for r in results] == ["mine"]


@pytest.mark.asyncio
async def test_missing_embedder_is_configuration_error() -> None:
    searcher = VectorSearcher(InMemoryStore(), None)

    with pytest.raises(ConfigurationError):
        await searcher.search("q")
