"""SyncJobStore — durable CRUD for sync jobs and their audit items.

The store is stateless apart from the dialect's lock strategy; sessions
are passed per call.  Every write method commits its own work so progress
survives a crash of the worker.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, func, literal, update
from sqlmodel import select

from skusync.models.jobs import (
    ACTIVE_STATUSES,
    PERSISTED_ACTIONS,
    JobStatus,
    SyncJob,
    SyncJobItem,
    SyncMode,
)
from skusync.sync.locks import locks_for
from skusync.sync.params import (
    DEFAULT_ITEMS_LIMIT,
    DEFAULT_LIST_LIMIT,
    parse_items_limit,
    parse_job_id,
    parse_list_limit,
)
from skusync.sync.types import CreateJobResult, JobCounts, JobDetail

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from skusync.sync.locks import JobLocks

logger = logging.getLogger(__name__)

_TIMESTAMP = DateTime(timezone=True)


def _now() -> datetime:
    return datetime.now(UTC)


class SyncJobStore:
    """Persistence for ``embedding_sync_jobs`` and ``embedding_sync_job_items``."""

    def __init__(self, dialect: str = "sqlite", locks: JobLocks | None = None) -> None:
        self.dialect = dialect
        self.locks = locks if locks is not None else locks_for(dialect)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_job(
        self,
        session: AsyncSession,
        *,
        mode: str,
        requested_by: str,
        request_ip: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> CreateJobResult:
        """Insert a ``queued`` job unless another job is queued or running.

        The creation lock is taken first, so the active-job check and the
        insert form one critical section across processes.  A busy lock or
        an active job both yield a conflict and write nothing.
        """
        if mode not in (SyncMode.DRY_RUN.value, SyncMode.EXECUTE.value):
            msg = f"Unknown sync mode: {mode!r}"
            raise ValueError(msg)

        try:
            if not await self.locks.try_lock_create(session):
                await session.rollback()
                logger.info("Sync job creation lock is busy")
                return CreateJobResult(conflict=True)

            result = await session.execute(
                select(SyncJob)
                .where(SyncJob.status.in_(ACTIVE_STATUSES))  # type: ignore[attr-defined]
                .order_by(SyncJob.job_id.desc())  # type: ignore[union-attr]
                .limit(1)
            )
            active = result.scalar_one_or_none()
            if active is not None:
                active_id, active_status = active.job_id, active.status
                await session.rollback()
                return CreateJobResult(
                    conflict=True,
                    active_job_id=active_id,
                    active_status=active_status,
                )

            now = _now()
            job = SyncJob(
                mode=mode,
                status=JobStatus.QUEUED.value,
                requested_by=requested_by,
                request_ip=request_ip,
                params=dict(params or {}),
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            await session.flush()
            await self.locks.release_create(session)
            await session.commit()
            await session.refresh(job)
        except Exception:
            await session.rollback()
            raise

        logger.info("Created sync job %d (%s) for %s", job.job_id, mode, requested_by)
        return CreateJobResult(conflict=False, job=job)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_jobs(self, session: AsyncSession, limit: Any = DEFAULT_LIST_LIMIT) -> list[SyncJob]:
        """Most recent jobs first."""
        result = await session.execute(
            select(SyncJob)
            .order_by(SyncJob.job_id.desc())  # type: ignore[union-attr]
            .limit(parse_list_limit(limit))
        )
        return list(result.scalars().all())

    async def get_job(self, session: AsyncSession, job_id: int) -> SyncJob | None:
        """Load a job, refreshing any copy already in the session."""
        result = await session.execute(
            select(SyncJob)
            .where(SyncJob.job_id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_job_detail(
        self,
        session: AsyncSession,
        job_id: int,
        items_limit: Any = DEFAULT_ITEMS_LIMIT,
    ) -> JobDetail | None:
        """Return the job and its newest audit items, or None if missing."""
        job_id = parse_job_id(job_id)
        limit = parse_items_limit(items_limit)
        job = await self.get_job(session, job_id)
        if job is None:
            return None
        result = await session.execute(
            select(SyncJobItem)
            .where(SyncJobItem.job_id == job_id)
            .order_by(SyncJobItem.id.desc())  # type: ignore[union-attr]
            .limit(limit)
        )
        return JobDetail(job=job, items=list(result.scalars().all()))

    async def is_cancel_requested(self, session: AsyncSession, job_id: int) -> bool:
        """Read the current ``cancel_requested`` flag straight from the table."""
        result = await session.execute(
            select(SyncJob.cancel_requested).where(SyncJob.job_id == job_id)
        )
        return bool(result.scalar_one_or_none())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def cancel_job(self, session: AsyncSession, job_id: int) -> SyncJob | None:
        """Flag an active job for cancellation.

        Terminal jobs are returned unchanged.  Returns None if the job does
        not exist.

        Raises:
            InvalidRequestError: When *job_id* is not a positive integer.
        """
        job_id = parse_job_id(job_id)
        await session.execute(
            update(SyncJob)
            .where(
                SyncJob.job_id == job_id,  # type: ignore[arg-type]
                SyncJob.status.in_(ACTIVE_STATUSES),  # type: ignore[attr-defined]
            )
            .values(cancel_requested=True, updated_at=_now())
        )
        await session.commit()
        job = await self.get_job(session, job_id)
        if job is not None and job.cancel_requested:
            logger.info("Cancel requested for sync job %d", job_id)
        return job

    async def _update_job(self, session: AsyncSession, job_id: int, **values: Any) -> None:
        values.setdefault("updated_at", _now())
        await session.execute(
            update(SyncJob).where(SyncJob.job_id == job_id).values(**values)  # type: ignore[arg-type]
        )
        await session.commit()

    async def mark_canceled(self, session: AsyncSession, job_id: int) -> None:
        """Cancel a job that never started (``started_at`` is stamped if unset)."""
        now = _now()
        await self._update_job(
            session,
            job_id,
            status=JobStatus.CANCELED.value,
            started_at=func.coalesce(SyncJob.started_at, literal(now, _TIMESTAMP)),
            finished_at=now,
            updated_at=now,
        )

    async def mark_running(self, session: AsyncSession, job_id: int) -> None:
        now = _now()
        await self._update_job(
            session,
            job_id,
            status=JobStatus.RUNNING.value,
            started_at=func.coalesce(SyncJob.started_at, literal(now, _TIMESTAMP)),
            updated_at=now,
        )

    async def update_counts(self, session: AsyncSession, job_id: int, counts: JobCounts) -> None:
        """Persist running counters."""
        await self._update_job(session, job_id, **counts.to_dict())

    async def insert_items(
        self,
        session: AsyncSession,
        job_id: int,
        items: Iterable[dict[str, Any]],
    ) -> int:
        """Append audit rows; skips are never stored. Returns the number written."""
        now = _now()
        rows = [
            SyncJobItem(
                job_id=job_id,
                sku_id=item.get("sku_id"),
                action=item["action"],
                content_hash_before=item.get("content_hash_before"),
                content_hash_after=item.get("content_hash_after"),
                error_message=item.get("error_message"),
                created_at=now,
            )
            for item in items
            if item.get("action") in PERSISTED_ACTIONS
        ]
        if not rows:
            return 0
        session.add_all(rows)
        await session.commit()
        return len(rows)

    async def finish_job(
        self,
        session: AsyncSession,
        job_id: int,
        *,
        canceled: bool,
        counts: JobCounts,
    ) -> str:
        """Move a running job to ``succeeded`` or ``canceled``. Returns the new status."""
        status = JobStatus.CANCELED.value if canceled else JobStatus.SUCCEEDED.value
        await self._update_job(
            session,
            job_id,
            status=status,
            finished_at=_now(),
            error_summary=None,
            **counts.to_dict(),
        )
        return status

    async def fail_job(self, session: AsyncSession, job_id: int, error_summary: str | None) -> None:
        """Mark a job ``failed``. Call after rolling back the failed work."""
        await self._update_job(
            session,
            job_id,
            status=JobStatus.FAILED.value,
            finished_at=_now(),
            error_summary=error_summary,
        )
