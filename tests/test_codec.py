"""Tests for embedding (de)serialisation."""

from __future__ import annotations

import pytest

from docsearch.embedding.codec import parse_embedding, serialize_embedding


def test_round_trip_preserves_values() -> None:
    vector = [0.1, -0.25, 3.0, 1e-7, 0.0]

    assert parse_embedding(serialize_embedding(vector)) == vector


def test_integers_are_stored_as_floats() -> None:
    assert parse_embedding(serialize_embedding([1, 2, 3])) == [1.0, 2.0, 3.0]


def test_bytes_input_is_accepted() -> None:
    assert parse_embedding(b"[0.5, 0.5]") == [0.5, 0.5]


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not json",
        '{"vector": [1, 2]}',
        "[]",
        '[1, "two", 3]',
        "[true, false]",
        "[[1.0], [2.0]]",
        "42",
    ],
)
def test_unusable_values_parse_to_none(raw) -> None:
    assert parse_embedding(raw) is None
