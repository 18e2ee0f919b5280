"""Embedding providers and the SKU text composer."""

from skusync.embeddings.protocols import EmbeddingProvider
from skusync.embeddings.providers import (
    LocalHTTPEmbedding,
    MockEmbedding,
    create_embedding_provider,
)
from skusync.embeddings.text import build_sku_metadata, build_sku_text, infer_language

__all__ = [
    "EmbeddingProvider",
    "LocalHTTPEmbedding",
    "MockEmbedding",
    "build_sku_metadata",
    "build_sku_text",
    "create_embedding_provider",
    "infer_language",
]
