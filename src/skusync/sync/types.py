"""Sync layer data types: options, per-row outcomes, summaries, and job results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from skusync.models.jobs import SyncJob, SyncJobItem

    ItemCallback = Callable[["ItemOutcome"], Awaitable[None] | None]
    ProgressCallback = Callable[["SyncSummary"], Awaitable[None] | None]
    CancelCallback = Callable[[], Awaitable[bool] | bool]


# ------------------------------------------------------------------
# Options
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SyncFilters:
    """Catalog filters applied to the batch scan.

    Attributes:
        company_code: Exact company code.
        product_kind: Exact product kind.
        status: Exact SKU status.
        category_name: Case-insensitive substring of the category.
        supplier_code: Case-insensitive substring of the supplier code.
        keyword: Case-insensitive substring of display name, generic name,
            or company code.
    """

    company_code: str | None = None
    product_kind: str | None = None
    status: str | None = None
    category_name: str | None = None
    supplier_code: str | None = None
    keyword: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Return only the filters that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass(frozen=True, slots=True)
class SyncOptions:
    """Parameters of one indexer run.

    Callbacks may be plain functions or coroutine functions.
    """

    execute: bool = False
    only_stale: bool = True
    updated_since: datetime | None = None
    limit: int | None = None
    batch_size: int = 100
    rate_limit_ms: int = 0
    after_sku_id: int = 0
    filters: SyncFilters = field(default_factory=SyncFilters)
    on_item: ItemCallback | None = None
    on_progress: ProgressCallback | None = None
    should_cancel: CancelCallback | None = None

    @property
    def mode(self) -> str:
        return "execute" if self.execute else "dry_run"


# ------------------------------------------------------------------
# Records and outcomes
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExistingEmbedding:
    """Snapshot of the stored embedding row, pre-loaded with the batch."""

    content_hash: str | None
    embedding_model: str | None
    embedding_provider: str | None
    source_updated_at: datetime | None


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """A freshly computed embedding for one SKU, ready to be written."""

    sku_id: int
    source_updated_at: datetime | None
    text_for_embedding: str
    metadata: dict[str, Any]
    content_hash: str
    embedding_provider: str
    embedding_model: str
    embedding_dim: int
    embedding_vector: list[float]

    def to_row(self, updated_at: datetime) -> dict[str, Any]:
        """Column values for the ``sku_embeddings`` upsert."""
        return {
            "sku_id": self.sku_id,
            "embedding": self.embedding_vector,
            "embedding_dim": self.embedding_dim,
            "embedding_model": self.embedding_model,
            "embedding_provider": self.embedding_provider,
            "text_for_embedding": self.text_for_embedding,
            "content_hash": self.content_hash,
            "metadata_json": self.metadata,
            "source_updated_at": self.source_updated_at,
            "updated_at": updated_at,
        }


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    """What happened to a single catalog row.

    Attributes:
        sku_id: The row's id.
        action: ``insert``, ``update``, ``skip`` or ``error``.
        reason: Why a row was skipped (``empty_text`` or ``unchanged``).
        content_hash_before: Hash of the stored row before this run, if any.
        content_hash_after: Hash of the freshly composed text, if computed.
        error_message: Raw error text for ``error`` outcomes.
    """

    sku_id: int
    action: str
    reason: str | None = None
    content_hash_before: str | None = None
    content_hash_after: str | None = None
    error_message: str | None = None


# ------------------------------------------------------------------
# Summary
# ------------------------------------------------------------------


@dataclass(slots=True)
class SyncSummary:
    """Running and final counters of an indexer run.

    ``planned`` is the number of dry-run inserts plus updates, split into
    ``planned_inserts`` and ``planned_updates``.  ``inserted``/``updated``
    only move in execute mode.  ``processed`` always equals
    ``planned + inserted + updated + unchanged + skipped + errors``.
    """

    mode: str
    only_stale: bool
    processed: int = 0
    planned: int = 0
    planned_inserts: int = 0
    planned_updates: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: int = 0
    batches: int = 0
    last_sku_id: int | None = None
    canceled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ------------------------------------------------------------------
# Job results
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CreateJobResult:
    """Result of a job creation attempt.

    Attributes:
        conflict: True when another job is active (nothing was written).
        job: The new ``queued`` job when ``conflict`` is False.
        active_job_id: Id of the job that blocked creation, when known.
        active_status: Status of that job, when known.
    """

    conflict: bool
    job: SyncJob | None = None
    active_job_id: int | None = None
    active_status: str | None = None


@dataclass(frozen=True, slots=True)
class JobDetail:
    """A job with its most recent audit items (newest first)."""

    job: SyncJob
    items: list[SyncJobItem] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class JobCounts:
    """Counter columns of a job row."""

    processed_count: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    error_count: int = 0

    @classmethod
    def from_summary(cls, summary: SyncSummary) -> JobCounts:
        """Fold a summary into job counters.

        Dry-run planned inserts/updates count as inserts/updates, and
        unchanged rows are folded into ``skipped_count``.
        """
        return cls(
            processed_count=summary.processed,
            inserted_count=summary.inserted + summary.planned_inserts,
            updated_count=summary.updated + summary.planned_updates,
            skipped_count=summary.skipped + summary.unchanged,
            error_count=summary.errors,
        )

    @classmethod
    def from_job(cls, job: SyncJob) -> JobCounts:
        return cls(
            processed_count=job.processed_count,
            inserted_count=job.inserted_count,
            updated_count=job.updated_count,
            skipped_count=job.skipped_count,
            error_count=job.error_count,
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
