"""Embedding providers — implementations and the settings-driven factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from skusync.embeddings.providers.local import LocalHTTPEmbedding
from skusync.embeddings.providers.mock import MockEmbedding, generate_mock_embedding

if TYPE_CHECKING:
    from skusync.embeddings.protocols import EmbeddingProvider
    from skusync.settings import EmbeddingSettings

__all__ = [
    "LocalHTTPEmbedding",
    "MockEmbedding",
    "create_embedding_provider",
    "generate_mock_embedding",
]

# Optional providers are import-guarded, available only when deps are installed.
try:
    from skusync.embeddings.providers.openai import OpenAIEmbedding

    __all__.append("OpenAIEmbedding")
except ImportError:  # pragma: no cover
    pass


def create_embedding_provider(settings: EmbeddingSettings) -> EmbeddingProvider:
    """Build the provider named by ``settings.provider``."""
    if settings.provider == "openai":
        from skusync.embeddings.providers.openai import OpenAIEmbedding

        return OpenAIEmbedding(
            api_key=settings.openai_api_key,
            model=settings.model,
            dimension=settings.dimension,
            base_url=settings.openai_base_url,
            timeout=settings.timeout_seconds,
        )
    if settings.provider == "local":
        return LocalHTTPEmbedding(
            url=settings.local_url,
            model=settings.model,
            dimension=settings.dimension,
            timeout=settings.timeout_seconds,
        )
    return MockEmbedding(model=settings.model, dimension=settings.dimension)
