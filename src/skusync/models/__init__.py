"""SQLModel database models for skusync."""

from skusync.models.catalog import Item, Sku
from skusync.models.embeddings import SkuEmbedding
from skusync.models.jobs import (
    ACTIVE_STATUSES,
    PERSISTED_ACTIONS,
    TERMINAL_STATUSES,
    ItemAction,
    JobStatus,
    SyncJob,
    SyncJobItem,
    SyncLock,
    SyncMode,
)

__all__ = [
    "ACTIVE_STATUSES",
    "PERSISTED_ACTIONS",
    "TERMINAL_STATUSES",
    "Item",
    "ItemAction",
    "JobStatus",
    "Sku",
    "SkuEmbedding",
    "SyncJob",
    "SyncJobItem",
    "SyncLock",
    "SyncMode",
]
