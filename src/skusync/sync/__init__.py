"""Sync layer: indexer, job store, locks, and the background job runner."""

from skusync.sync.indexer import SkuEmbeddingIndexer, clamp_batch_size, compute_content_hash
from skusync.sync.locks import AdvisoryLocks, AppLocks, JobLocks, TableLocks, locks_for
from skusync.sync.params import (
    parse_sync_job_request,
    summary_to_job_counts,
    truncate_error_message,
)
from skusync.sync.runner import SyncJobRunner
from skusync.sync.store import SyncJobStore
from skusync.sync.types import (
    CreateJobResult,
    EmbeddingRecord,
    ItemOutcome,
    JobCounts,
    JobDetail,
    SyncFilters,
    SyncOptions,
    SyncSummary,
)

__all__ = [
    "AdvisoryLocks",
    "AppLocks",
    "CreateJobResult",
    "EmbeddingRecord",
    "ItemOutcome",
    "JobCounts",
    "JobDetail",
    "JobLocks",
    "SkuEmbeddingIndexer",
    "SyncFilters",
    "SyncJobRunner",
    "SyncJobStore",
    "SyncOptions",
    "SyncSummary",
    "TableLocks",
    "clamp_batch_size",
    "compute_content_hash",
    "locks_for",
    "parse_sync_job_request",
    "summary_to_job_counts",
    "truncate_error_message",
]
