"""Tests for cosine similarity."""

from __future__ import annotations

import random

import pytest

from docsearch.embedding.similarity import cosine_similarity
from docsearch.errors import DimensionMismatchError


def test_random_vectors_stay_within_bounds() -> None:
    rng = random.Random(7)
    for _ in range(200):
        a = [rng.uniform(-1, 1) for _ in range(16)]
        b = [rng.uniform(-1, 1) for _ in range(16)]
        assert -1.0 <= cosine_similarity(a, b) <= 1.0


def test_vector_with_itself_is_one() -> None:
    v = [0.3, -1.2, 4.5, 0.01]

    assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_opposite_and_orthogonal_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 2.0]) == pytest.approx(0.0)


def test_scale_does_not_matter() -> None:
    assert cosine_similarity([1.0, 2.0, 3.0], [10.0, 20.0, 30.0]) == pytest.approx(1.0)


def test_zero_vector_gives_exactly_zero() -> None:
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError) as exc_info:
        cosine_similarity([1.0] * 5, [1.0] * 7)

    assert (exc_info.value.left, exc_info.value.right) == (5, 7)
