"""Vector validation shared by providers and the indexer."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from skusync.exceptions import EmbeddingDimensionError, InvalidVectorError

VECTOR_DECIMALS = 10


def assert_embedding_vector(vector: Any, expected_dim: int) -> None:
    """Raise unless *vector* is a sequence of *expected_dim* finite numbers."""
    if isinstance(vector, (str, bytes, dict)) or not hasattr(vector, "__len__"):
        msg = "Embedding provider returned non-array vector"
        raise InvalidVectorError(msg)
    if len(vector) != expected_dim:
        msg = f"Embedding vector length mismatch: expected {expected_dim}, got {len(vector)}"
        raise EmbeddingDimensionError(msg)
    for i, value in enumerate(vector):
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = math.nan
        if not math.isfinite(number):
            msg = f"Embedding vector has non-finite value at index {i}"
            raise InvalidVectorError(msg)


def to_vector(vector: Sequence[Any]) -> list[float]:
    """Return *vector* as plain floats rounded to :data:`VECTOR_DECIMALS` places."""
    if len(vector) == 0:
        msg = "Cannot store an empty embedding vector"
        raise InvalidVectorError(msg)
    out: list[float] = []
    for i, value in enumerate(vector):
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = math.nan
        if not math.isfinite(number):
            msg = f"Embedding vector has non-finite value at index {i}"
            raise InvalidVectorError(msg)
        out.append(round(number, VECTOR_DECIMALS))
    return out
