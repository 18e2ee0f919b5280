"""SyncJobRunner — single-flight background execution of sync jobs.

Jobs are created through :meth:`SyncJobRunner.create_job` (or
:meth:`SyncJobRunner.submit`), queued in-process with :meth:`enqueue`, and
drained one at a time by a single asyncio task.  Each job runs over its own
database connection so the session-scoped run lock is held from the first
status change to the terminal one.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from skusync.dialect import get_dialect
from skusync.embeddings.providers import create_embedding_provider
from skusync.events import EventBus, JobEvent, JobEventType
from skusync.models.jobs import PERSISTED_ACTIONS, ItemAction
from skusync.settings import EmbeddingSettings
from skusync.sync.indexer import SkuEmbeddingIndexer
from skusync.sync.params import (
    DEFAULT_ITEMS_LIMIT,
    DEFAULT_LIST_LIMIT,
    job_params_for,
    options_from_params,
    parse_sync_job_request,
    truncate_error_message,
)
from skusync.sync.store import SyncJobStore
from skusync.sync.types import JobCounts

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncEngine

    from skusync.embeddings.protocols import EmbeddingProvider
    from skusync.models.jobs import SyncJob
    from skusync.sync.locks import JobLocks
    from skusync.sync.types import CreateJobResult, ItemOutcome, JobDetail, SyncSummary

logger = logging.getLogger(__name__)

DEFAULT_ITEM_FLUSH_SIZE = 100
DEFAULT_PROGRESS_EVERY = 25


class SyncJobRunner:
    """Creates, queues, and executes embedding sync jobs.

    Args:
        engine: Async engine of the catalog database.
        embedding_provider: Provider used by every job.  When omitted, one
            is built from *settings* (or the environment) when the first job
            runs; a construction failure fails that job.
        settings: Embedding settings used to build the provider.
        dialect: Overrides the dialect detected from *engine*.
        locks: Overrides the dialect's lock strategy.
        event_bus: Receives :class:`~skusync.events.JobEvent` notifications.
        item_flush_size: Audit items buffered before each insert.
        progress_every: Rows between two persisted counter updates.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        embedding_provider: EmbeddingProvider | None = None,
        *,
        settings: EmbeddingSettings | None = None,
        dialect: str | None = None,
        locks: JobLocks | None = None,
        event_bus: EventBus | None = None,
        item_flush_size: int = DEFAULT_ITEM_FLUSH_SIZE,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
    ) -> None:
        self._engine = engine
        self.dialect = dialect or get_dialect(engine)
        self.store = SyncJobStore(self.dialect, locks)
        self.indexer = SkuEmbeddingIndexer(self.dialect)
        self.event_bus = event_bus or EventBus()
        self.item_flush_size = max(1, item_flush_size)
        self.progress_every = max(1, progress_every)

        self._provider = embedding_provider
        self._owns_provider = embedding_provider is None
        self._settings = settings
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

        self._queue: deque[int] = deque()
        self._pending: set[int] = set()
        self._drain_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Provider
    # ------------------------------------------------------------------

    def _resolved_settings(self) -> EmbeddingSettings:
        if self._settings is None:
            self._settings = EmbeddingSettings.from_env()
        return self._settings

    def _get_provider(self) -> EmbeddingProvider:
        if self._provider is None:
            self._provider = create_embedding_provider(self._resolved_settings())
        return self._provider

    def target_identity(self) -> dict[str, Any]:
        """Provider name, model and dimension that new jobs will target."""
        if self._provider is not None:
            return {
                "provider": self._provider.name,
                "model": self._provider.model,
                "dimension": self._provider.dimension,
            }
        settings = self._resolved_settings()
        return {
            "provider": settings.provider,
            "model": settings.model,
            "dimension": settings.dimension,
        }

    # ------------------------------------------------------------------
    # Job API
    # ------------------------------------------------------------------

    async def create_job(
        self,
        mode: str,
        requested_by: str,
        request_ip: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> CreateJobResult:
        """Insert a queued job unless another one is queued or running."""
        async with self._session_factory() as session:
            return await self.store.create_job(
                session,
                mode=mode,
                requested_by=requested_by,
                request_ip=request_ip,
                params=params,
            )

    async def submit(
        self,
        body: Mapping[str, Any] | None,
        requested_by: str,
        request_ip: str | None = None,
    ) -> CreateJobResult:
        """Validate a request body, create its job, and queue it.

        Raises:
            InvalidRequestError: If *body* fails validation.
        """
        request = parse_sync_job_request(body)
        params = job_params_for(request, **self.target_identity())
        result = await self.create_job(request["mode"], requested_by, request_ip, params)
        if not result.conflict and result.job is not None and result.job.job_id is not None:
            self.enqueue(result.job.job_id)
        return result

    async def list_jobs(self, limit: Any = DEFAULT_LIST_LIMIT) -> list[SyncJob]:
        async with self._session_factory() as session:
            return await self.store.list_jobs(session, limit)

    async def get_job_detail(
        self, job_id: int, items_limit: Any = DEFAULT_ITEMS_LIMIT
    ) -> JobDetail | None:
        async with self._session_factory() as session:
            return await self.store.get_job_detail(session, job_id, items_limit)

    async def cancel_job(self, job_id: int) -> SyncJob | None:
        async with self._session_factory() as session:
            return await self.store.cancel_job(session, job_id)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(self, job_id: Any) -> None:
        """Queue *job_id* for execution and start the drain loop if idle.

        Non-positive or non-integer ids and ids already waiting are ignored.
        Must be called from a running event loop.
        """
        try:
            normalized = int(job_id)
        except (TypeError, ValueError):
            return
        if isinstance(job_id, bool) or normalized <= 0 or normalized in self._pending:
            return
        self._pending.add(normalized)
        self._queue.append(normalized)
        self._kick()

    def _kick(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue:
            job_id = self._queue.popleft()
            self._pending.discard(job_id)
            try:
                await self.run_job(job_id)
            except Exception:
                logger.exception("Sync job %d could not be processed", job_id)

    @property
    def is_idle(self) -> bool:
        return self._drain_task is None or self._drain_task.done()

    @property
    def queued_job_ids(self) -> list[int]:
        return list(self._queue)

    async def wait_idle(self) -> None:
        """Wait until the queue is drained."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.wait({self._drain_task})

    async def close(self) -> None:
        """Drain the queue and close a provider this runner built itself."""
        await self.wait_idle()
        if self._owns_provider and self._provider is not None:
            close = getattr(self._provider, "close", None)
            if close is not None:
                await close()
            self._provider = None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_job(self, job_id: int) -> None:
        """Execute one job under the run lock.

        Busy lock → the job is left untouched.  Jobs that are missing or no
        longer active are ignored.
        """
        async with self._engine.connect() as conn:
            session = AsyncSession(bind=conn, expire_on_commit=False)
            try:
                locked = await self.store.locks.try_lock_run(session)
                await session.commit()
                if not locked:
                    logger.info("Sync job %d skipped: run lock is busy", job_id)
                    return
                try:
                    await self._execute(session, job_id)
                finally:
                    await session.rollback()
                    await self.store.locks.unlock_run(session)
                    await session.commit()
            finally:
                await session.close()

    async def _execute(self, session: AsyncSession, job_id: int) -> None:
        job = await self.store.get_job(session, job_id)
        if job is None or not job.is_active:
            await session.commit()
            return
        # Row-level rollbacks inside the indexer expire ORM state; keep plain values
        mode = job.mode
        params = dict(job.params or {})
        start_counts = JobCounts.from_job(job)

        if job.cancel_requested:
            await self.store.mark_canceled(session, job_id)
            logger.info("Sync job %d canceled before start", job_id)
            await self._emit(JobEventType.JOB_CANCELED, job_id, mode, start_counts)
            return

        await self.store.mark_running(session, job_id)
        logger.info("Sync job %d started (%s)", job_id, mode)
        await self._emit(JobEventType.JOB_STARTED, job_id, mode, start_counts)

        try:
            summary = await self._run_indexer(session, job_id, mode, params)
        except Exception as e:
            await session.rollback()
            error_summary = truncate_error_message(str(e) or type(e).__name__)
            logger.error("Sync job %d failed: %s", job_id, e, exc_info=True)
            await self.store.fail_job(session, job_id, error_summary)
            failed = await self.store.get_job(session, job_id)
            await self._emit(
                JobEventType.JOB_FAILED,
                job_id,
                mode,
                JobCounts.from_job(failed) if failed is not None else start_counts,
                error_summary=error_summary,
            )
            return

        counts = JobCounts.from_summary(summary)
        status = await self.store.finish_job(
            session, job_id, canceled=summary.canceled, counts=counts
        )
        logger.info(
            "Sync job %d %s: processed=%d inserted=%d updated=%d skipped=%d errors=%d",
            job_id,
            status,
            counts.processed_count,
            counts.inserted_count,
            counts.updated_count,
            counts.skipped_count,
            counts.error_count,
        )
        await self._emit(
            JobEventType.JOB_CANCELED if summary.canceled else JobEventType.JOB_SUCCEEDED,
            job_id,
            mode,
            counts,
        )

    async def _run_indexer(
        self,
        session: AsyncSession,
        job_id: int,
        mode: str,
        params: dict[str, Any],
    ) -> SyncSummary:
        provider = self._get_provider()
        self._check_target(job_id, params, provider)

        buffer: list[dict[str, Any]] = []
        since_progress = 0

        async def flush() -> None:
            if buffer:
                pending = list(buffer)
                buffer.clear()
                await self.store.insert_items(session, job_id, pending)

        async def should_cancel() -> bool:
            requested = await self.store.is_cancel_requested(session, job_id)
            # End the read so no transaction stays open across provider calls
            await session.commit()
            return requested

        async def on_item(outcome: ItemOutcome) -> None:
            if outcome.action not in PERSISTED_ACTIONS:
                return
            is_error = outcome.action == ItemAction.ERROR.value
            buffer.append(
                {
                    "sku_id": outcome.sku_id,
                    "action": outcome.action,
                    "content_hash_before": outcome.content_hash_before,
                    "content_hash_after": outcome.content_hash_after,
                    "error_message": truncate_error_message(outcome.error_message)
                    if is_error
                    else None,
                }
            )
            if len(buffer) >= self.item_flush_size:
                await flush()

        async def on_progress(summary: SyncSummary) -> None:
            nonlocal since_progress
            since_progress += 1
            if since_progress < self.progress_every:
                return
            since_progress = 0
            await self.store.locks.touch_run(session)
            await self.store.update_counts(session, job_id, JobCounts.from_summary(summary))

        options = options_from_params(
            mode,
            params,
            on_item=on_item,
            on_progress=on_progress,
            should_cancel=should_cancel,
        )
        summary = await self.indexer.run(session, provider, options)
        await flush()
        return summary

    def _check_target(
        self,
        job_id: int,
        params: Mapping[str, Any],
        provider: EmbeddingProvider,
    ) -> None:
        expected = (params.get("embedding_provider"), params.get("embedding_model"))
        if expected == (None, None):
            return
        if expected != (provider.name, provider.model):
            logger.warning(
                "Sync job %d targets %s/%s but the runner uses %s/%s",
                job_id,
                expected[0],
                expected[1],
                provider.name,
                provider.model,
            )

    async def _emit(
        self,
        event_type: JobEventType,
        job_id: int,
        mode: str,
        counts: JobCounts,
        *,
        error_summary: str | None = None,
    ) -> None:
        await self.event_bus.emit(
            JobEvent(
                event_type=event_type,
                job_id=job_id,
                mode=mode,
                counts=counts.to_dict(),
                error_summary=error_summary,
            )
        )
