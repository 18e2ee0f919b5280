"""EmbeddingProvider protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Async protocol for text-to-vector embedding.

    Implementations return exactly :attr:`dimension` floats per call or
    raise.  They never pad or truncate a vector to make it fit.
    """

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string into a vector."""
        ...

    @property
    def name(self) -> str:
        """Provider identifier recorded on each stored row (e.g. ``openai``)."""
        ...

    @property
    def model(self) -> str:
        """Name of the embedding model."""
        ...

    @property
    def dimension(self) -> int:
        """Number of dimensions in the embedding vectors."""
        ...
