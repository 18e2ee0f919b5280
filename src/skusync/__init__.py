"""skusync: keep a vector index of catalog SKU text in sync with the catalog.

Dry-run planning, idempotent upserts, and single-flight background jobs.
"""

__version__ = "0.1.0"

from skusync.db import create_engine, init_schema
from skusync.embeddings import (
    EmbeddingProvider,
    LocalHTTPEmbedding,
    MockEmbedding,
    build_sku_metadata,
    build_sku_text,
    create_embedding_provider,
)
from skusync.events import EventBus, JobEvent, JobEventType
from skusync.exceptions import (
    EmbeddingDimensionError,
    EmbeddingProviderError,
    InvalidRequestError,
    InvalidVectorError,
    ProviderConfigurationError,
    SkuSyncError,
    UnsupportedDialectError,
)
from skusync.models import (
    Item,
    JobStatus,
    Sku,
    SkuEmbedding,
    SyncJob,
    SyncJobItem,
    SyncMode,
)
from skusync.settings import EmbeddingSettings
from skusync.sync import (
    CreateJobResult,
    JobDetail,
    SkuEmbeddingIndexer,
    SyncFilters,
    SyncJobRunner,
    SyncJobStore,
    SyncOptions,
    SyncSummary,
)

__all__ = [
    "CreateJobResult",
    "EmbeddingDimensionError",
    "EmbeddingProvider",
    "EmbeddingProviderError",
    "EmbeddingSettings",
    "EventBus",
    "InvalidRequestError",
    "InvalidVectorError",
    "Item",
    "JobDetail",
    "JobEvent",
    "JobEventType",
    "JobStatus",
    "LocalHTTPEmbedding",
    "MockEmbedding",
    "ProviderConfigurationError",
    "Sku",
    "SkuEmbedding",
    "SkuEmbeddingIndexer",
    "SkuSyncError",
    "SyncFilters",
    "SyncJob",
    "SyncJobItem",
    "SyncJobRunner",
    "SyncJobStore",
    "SyncMode",
    "SyncOptions",
    "SyncSummary",
    "UnsupportedDialectError",
    "build_sku_metadata",
    "build_sku_text",
    "create_embedding_provider",
    "create_engine",
    "init_schema",
]
