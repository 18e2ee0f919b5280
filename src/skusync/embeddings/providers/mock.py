"""MockEmbedding — deterministic, offline provider for development and tests."""

from __future__ import annotations

import hashlib

import numpy as np

from skusync.embeddings.vectors import VECTOR_DECIMALS

_INT32_MAX = 2147483647


def generate_mock_embedding(text: str, dimension: int) -> list[float]:
    """Return a unit vector seeded by the SHA-256 of *text*.

    Successive digests of ``"{text}:{round}"`` are read as big-endian signed
    32-bit integers until *dimension* values are available.
    """
    seed = "" if text is None else str(text)
    needed = dimension * 4
    buf = bytearray()
    round_ = 0
    while len(buf) < needed:
        buf += hashlib.sha256(f"{seed}:{round_}".encode()).digest()
        round_ += 1

    values = np.frombuffer(bytes(buf[:needed]), dtype=">i4").astype(np.float64) / _INT32_MAX
    magnitude = float(np.linalg.norm(values)) or 1.0
    return np.round(values / magnitude, VECTOR_DECIMALS).tolist()


class MockEmbedding:
    """Hash-seeded embeddings: identical text always maps to the identical vector."""

    name = "mock"

    def __init__(self, *, model: str = "mock-embedding-model", dimension: int = 1536) -> None:
        self._model = model
        self._dimension = dimension

    async def embed(self, text: str) -> list[float]:
        return generate_mock_embedding(text, self._dimension)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension
