"""Sync job ledger, per-item audit trail, and named lock rows."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel


class SyncMode(Enum):
    """Whether a job only plans writes or performs them."""

    DRY_RUN = "dry_run"
    EXECUTE = "execute"


class JobStatus(Enum):
    """Lifecycle states of a sync job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


ACTIVE_STATUSES: tuple[str, ...] = (JobStatus.QUEUED.value, JobStatus.RUNNING.value)
"""Statuses that count towards the one-active-job limit."""

TERMINAL_STATUSES: tuple[str, ...] = (
    JobStatus.SUCCEEDED.value,
    JobStatus.FAILED.value,
    JobStatus.CANCELED.value,
)


class ItemAction(Enum):
    """Per-row outcome of a sync pass. ``SKIP`` is never persisted."""

    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"
    ERROR = "error"


PERSISTED_ACTIONS: tuple[str, ...] = (
    ItemAction.INSERT.value,
    ItemAction.UPDATE.value,
    ItemAction.ERROR.value,
)


class SyncJob(SQLModel, table=True):
    """One requested sync run and its running counters."""

    __tablename__ = "embedding_sync_jobs"

    job_id: int | None = Field(default=None, primary_key=True)
    mode: str = Field(default=SyncMode.DRY_RUN.value)
    status: str = Field(default=JobStatus.QUEUED.value, index=True)
    requested_by: str = Field(default="")
    request_ip: str | None = Field(default=None)
    params: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    processed_count: int = Field(default=0)
    inserted_count: int = Field(default=0)
    updated_count: int = Field(default=0)
    skipped_count: int = Field(default=0)
    error_count: int = Field(default=0)
    error_summary: str | None = Field(default=None)
    cancel_requested: bool = Field(default=False)
    started_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    finished_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class SyncJobItem(SQLModel, table=True):
    """Append-only audit row for an insert, update, or error within a job."""

    __tablename__ = "embedding_sync_job_items"

    id: int | None = Field(default=None, primary_key=True)
    job_id: int = Field(foreign_key="embedding_sync_jobs.job_id", index=True)
    sku_id: int | None = Field(default=None)
    action: str = Field(default=ItemAction.INSERT.value)
    content_hash_before: str | None = Field(default=None)
    content_hash_after: str | None = Field(default=None)
    error_message: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class SyncLock(SQLModel, table=True):
    """A named lock row, used where the database has no native named locks."""

    __tablename__ = "embedding_sync_locks"

    name: str = Field(primary_key=True)
    holder: str = Field(default="")
    acquired_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
