"""
OpenAI Embedding Client
------------------------
Wraps an OpenAI-compatible embeddings endpoint (text-embedding-3-small by
default) with:
  - Input truncation to the model's context budget (~4 chars per token)
  - Sequential batching (20 texts per call) with a pause between calls
  - Order restoration by the provider-returned `index`
  - Vector size check when `dimensions` is configured
  - Token usage accounting

Failures are raised as EmbeddingProviderError tagged with the batch that
failed.  Nothing here retries; retry policy belongs to the caller (see
embedding.pipeline).
"""
from __future__ import annotations

import asyncio
import math
import os
import time
from numbers import Real
from typing import Any, Optional

import openai
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel

from docsearch.config import EmbeddingConfig
from docsearch.errors import ConfigurationError, EmbeddingProviderError


class Embedding(BaseModel):
    """One vector plus what it cost to produce."""

    vector: list[float]
    model: str
    tokens_used: int = 0

    @property
    def dimensions(self) -> int:
        return len(self.vector)


class Embedder:
    """
    Async embedding client.

    Pass `client` to inject a pre-built (or fake) AsyncOpenAI-compatible
    object; otherwise the API key is read from the environment variable
    named by `config.api_key_env` and a missing key fails immediately.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        *,
        api_key: Optional[str] = None,
        client: Any | None = None,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self.model = self.config.model
        self.batch_size = self.config.batch_size
        self.total_tokens_used: int = 0
        self.total_api_calls: int = 0

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv(self.config.api_key_env)
            if not resolved_key:
                raise ConfigurationError(
                    f"{self.config.api_key_env} not set - required for embeddings. "
                    "Provide api_key or set the environment variable."
                )
            self._client = AsyncOpenAI(api_key=resolved_key, base_url=self.config.base_url)

    def truncate(self, text: str) -> str:
        """Cut `text` to the provider's input budget."""
        limit = self.config.max_input_chars
        return text[:limit] if len(text) > limit else text

    async def embed(self, text: str) -> Embedding:
        """Embed a single text."""
        vectors, tokens = await self._request([self.truncate(text)], batch_index=0)
        self.total_tokens_used += tokens
        return Embedding(vector=vectors[0], model=self.model, tokens_used=tokens)

    async def embed_batch(self, texts: list[str]) -> list[Embedding]:
        """
        Embed many texts, one request per batch, strictly in sequence.

        The returned list lines up with `texts` regardless of the order the
        provider returned items in.
        """
        if not texts:
            return []

        results: list[Embedding] = []
        for start in range(0, len(texts), self.batch_size):
            batch_index = start // self.batch_size
            batch = [self.truncate(t) for t in texts[start: start + self.batch_size]]

            vectors, tokens = await self._request(batch, batch_index=batch_index)
            self.total_tokens_used += tokens
            per_item = math.ceil(tokens / len(batch))
            results.extend(
                Embedding(vector=vec, model=self.model, tokens_used=per_item)
                for vec in vectors
            )

            logger.debug(
                f"[Embedder] Batch {batch_index + 1} | "
                f"{len(batch)} texts | {tokens} tokens | "
                f"Running total: {self.total_tokens_used} tokens"
            )

            # Rate limiting between consecutive batches
            if start + self.batch_size < len(texts) and self.config.batch_delay_s > 0:
                await asyncio.sleep(self.config.batch_delay_s)

        return results

    async def _request(
        self, inputs: list[str], *, batch_index: int
    ) -> tuple[list[list[float]], int]:
        """Call the embeddings endpoint once and validate the payload."""
        size = len(inputs)
        payload: str | list[str] = inputs[0] if size == 1 else inputs
        start = time.perf_counter()
        try:
            response = await self._client.embeddings.create(model=self.model, input=payload)
        except openai.OpenAIError as exc:
            logger.error(
                f"[Embedder] Provider call failed | batch={batch_index} size={size}: {exc}"
            )
            raise EmbeddingProviderError(
                f"Embedding API error: {exc}", batch_index=batch_index, batch_size=size
            ) from exc
        elapsed = time.perf_counter() - start
        self.total_api_calls += 1

        vectors = self._parse_response(
            response, size=size, batch_index=batch_index, dimensions=self.config.dimensions
        )
        usage = getattr(response, "usage", None)
        tokens = int(getattr(usage, "total_tokens", 0) or 0)
        logger.debug(f"[Embedder] API call: {size} texts, {tokens} tokens, {elapsed:.2f}s")
        return vectors, tokens

    @staticmethod
    def _parse_response(
        response: Any, *, size: int, batch_index: int, dimensions: Optional[int] = None
    ) -> list[list[float]]:
        data = getattr(response, "data", None)
        if not isinstance(data, list) or len(data) != size:
            raise EmbeddingProviderError(
                "Invalid embedding response structure", batch_index=batch_index, batch_size=size
            )

        try:
            ordered = sorted(data, key=lambda item: item.index)
        except (AttributeError, TypeError) as exc:
            raise EmbeddingProviderError(
                "Embedding response items lack an index", batch_index=batch_index, batch_size=size
            ) from exc

        vectors: list[list[float]] = []
        for item in ordered:
            vector = getattr(item, "embedding", None)
            if (
                not isinstance(vector, list)
                or not vector
                or not all(isinstance(v, Real) and not isinstance(v, bool) for v in vector)
            ):
                raise EmbeddingProviderError(
                    "Embedding response item is not a numeric vector",
                    batch_index=batch_index,
                    batch_size=size,
                )
            if dimensions is not None and len(vector) != dimensions:
                raise EmbeddingProviderError(
                    f"Expected {dimensions}-dimensional vectors, got {len(vector)}",
                    batch_index=batch_index,
                    batch_size=size,
                )
            vectors.append([float(v) for v in vector])
        return vectors

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "total_api_calls": self.total_api_calls,
            "total_tokens_used": self.total_tokens_used,
            "estimated_cost_usd": round(
                self.total_tokens_used / 1_000_000 * self.config.cost_per_million_tokens, 6
            ),
        }
