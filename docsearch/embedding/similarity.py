"""Cosine similarity between embedding vectors. Pure and stateless."""
from __future__ import annotations

from typing import Sequence

import numpy as np

from docsearch.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between `a` and `b`, in [-1, 1].

    Vectors of different length come from different models and must never
    be compared; that raises DimensionMismatchError. A zero vector has no
    direction, so its similarity to anything is 0.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / magnitude, -1.0, 1.0))
