"""
Keyword Scorer
---------------
Field-weighted term matching over the structured parts of a document.

Each query term that occurs (case-insensitive substring) in a field adds
that field's weight:

    title 5 | summary 4 | key points 3 | tags 2 | body 1

The sum is divided by the best attainable score (terms x 15) so every
document lands in [0, 1].  No index is built; documents are scored on the
fly, which is fine for the corpus sizes this engine targets.
"""
from __future__ import annotations

import re
from typing import Optional

from loguru import logger

from docsearch.config import SearchConfig
from docsearch.schemas import Document, ResultKind, SearchResult
from docsearch.storage.base import DocumentStore
from docsearch.utils.helpers import make_excerpt

MIN_TERM_LENGTH = 3

FIELD_WEIGHTS: dict[str, int] = {
    "title": 5,
    "summary": 4,
    "key_points": 3,
    "tags": 2,
    "body": 1,
}
MAX_TERM_WEIGHT = sum(FIELD_WEIGHTS.values())

STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need", "to", "of",
    "in", "for", "on", "with", "at", "by", "from", "as", "into", "through",
    "during", "before", "after", "above", "below", "between", "under",
    "again", "further", "then", "once", "here", "there", "when", "where",
    "why", "how", "all", "each", "few", "more", "most", "other", "some",
    "such", "no", "nor", "not", "only", "own", "same", "so", "than", "too",
    "very", "just", "and", "but", "if", "or", "because", "until", "while",
    "this", "that", "these", "those", "what", "which", "who", "whom",
    "i", "me", "my", "you", "your", "he", "she", "it", "we", "they",
    "help", "want", "please", "tell",
})

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> set[str]:
    """Lowercase salient terms of `text` (stop words and short terms dropped)."""
    normalised = _NON_WORD.sub(" ", text.lower())
    return {
        term
        for term in normalised.split()
        if len(term) >= MIN_TERM_LENGTH and term not in STOP_WORDS
    }


def _field_texts(doc: Document) -> dict[str, str]:
    return {
        "title": doc.title.lower(),
        "summary": (doc.summary or "").lower(),
        "key_points": " ".join(doc.key_points).lower(),
        "tags": " ".join(doc.tags).lower(),
        "body": doc.text.lower(),
    }


def score_document(doc: Document, terms: set[str]) -> float:
    """Normalised field-weighted keyword score of `doc` for `terms`."""
    if not terms:
        return 0.0

    fields = _field_texts(doc)
    raw = 0
    for term in terms:
        for field, weight in FIELD_WEIGHTS.items():
            if term in fields[field]:
                raw += weight
    return min(raw / (len(terms) * MAX_TERM_WEIGHT), 1.0)


class KeywordSearcher:
    """Ranks active documents in scope by score_document()."""

    def __init__(self, store: DocumentStore, config: SearchConfig | None = None) -> None:
        self.store = store
        self.config = config or SearchConfig()

    async def search(
        self,
        query: str,
        *,
        scope_id: Optional[str] = None,
        limit: Optional[int] = None,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[SearchResult]:
        limit = limit or self.config.limit
        terms = extract_keywords(query)
        if not terms:
            logger.debug(f"[KeywordSearch] No usable terms in {query[:80]!r}")
            return []

        docs = await self.store.list_active_documents(scope_id)
        results: list[SearchResult] = []
        for doc in docs:
            if doc.id in exclude_ids:
                continue
            score = score_document(doc, terms)
            if score <= 0:
                continue
            results.append(
                SearchResult(
                    kind=ResultKind.DOCUMENT,
                    id=doc.id,
                    document_id=doc.id,
                    title=doc.title,
                    content=make_excerpt(doc.summary, doc.text, self.config.excerpt_chars),
                    similarity=score,
                    extra={
                        "key_points": doc.key_points,
                        "applicable_when": doc.applicable_when,
                    },
                )
            )

        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug(
            f"[KeywordSearch] {len(terms)} term(s) | {len(results)} match(es) "
            f"of {len(docs)} document(s)"
        )
        return results[:limit]
