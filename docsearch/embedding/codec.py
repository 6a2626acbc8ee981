"""
Embedding codec - vectors are stored as JSON arrays of floats.

parse_embedding() never raises: an absent value and a corrupted one both
come back as None, which every caller treats as "not embedded".
"""
from __future__ import annotations

from numbers import Real
from typing import Optional, Sequence

import orjson


def serialize_embedding(vector: Sequence[float]) -> str:
    """Serialise a vector for storage."""
    return orjson.dumps([float(v) for v in vector]).decode("utf-8")


def parse_embedding(raw: Optional[str | bytes]) -> Optional[list[float]]:
    """Deserialise a stored vector, or None if it is missing or unusable."""
    if not raw:
        return None
    try:
        parsed = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(parsed, list) or not parsed:
        return None
    if not all(isinstance(v, Real) and not isinstance(v, bool) for v in parsed):
        return None
    return [float(v) for v in parsed]
