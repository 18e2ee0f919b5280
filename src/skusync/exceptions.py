"""Custom exception hierarchy for skusync."""


class SkuSyncError(Exception):
    """Base exception for all skusync errors."""


class ProviderConfigurationError(SkuSyncError):
    """Raised when an embedding provider cannot be built from its settings."""


class EmbeddingProviderError(SkuSyncError):
    """Raised when an embedding provider call fails or returns garbage."""


class EmbeddingDimensionError(EmbeddingProviderError):
    """Raised when a vector does not have the provider's declared dimension."""


class InvalidVectorError(EmbeddingProviderError):
    """Raised when a vector is empty or holds non-finite values."""


class InvalidRequestError(SkuSyncError, ValueError):
    """Raised when sync job parameters fail validation."""


class UnsupportedDialectError(SkuSyncError):
    """Raised when a database dialect has no lock or upsert implementation."""
