"""Named database locks guarding job creation and job execution.

Two locks keep sync jobs single-flight across processes:

- the *create* lock is transaction-scoped: held from the "is anything
  active?" check until the new job row is committed;
- the *run* lock is session-scoped: held by the worker for the whole
  execution of one job, across many commits.

Each dialect gets the strongest primitive it offers:

- PostgreSQL: ``pg_try_advisory_xact_lock`` / ``pg_try_advisory_lock``
- MSSQL: ``sp_getapplock`` with Transaction / Session owners
- anything else (SQLite): rows in ``embedding_sync_locks``
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import delete, or_, text, update

from skusync.dialect import insert_for
from skusync.exceptions import UnsupportedDialectError
from skusync.models.jobs import SyncLock

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

JOB_CREATE_LOCK_KEY = 770031
JOB_RUN_LOCK_KEY = 770032

CREATE_LOCK_NAME = "embedding_sync_create"
RUN_LOCK_NAME = "embedding_sync_run"

DEFAULT_LEASE = timedelta(hours=1)


@runtime_checkable
class JobLocks(Protocol):
    """The two named locks used by the job store and runner.

    Callers own the transaction: ``try_lock_create`` must be the first
    statement of the creating transaction, and the run-lock methods are
    followed by a commit.
    """

    async def try_lock_create(self, session: AsyncSession) -> bool: ...

    async def release_create(self, session: AsyncSession) -> None: ...

    async def try_lock_run(self, session: AsyncSession) -> bool: ...

    async def touch_run(self, session: AsyncSession) -> None: ...

    async def unlock_run(self, session: AsyncSession) -> None: ...


# ------------------------------------------------------------------
# PostgreSQL
# ------------------------------------------------------------------


class AdvisoryLocks:
    """PostgreSQL advisory locks keyed by fixed integers."""

    def __init__(
        self,
        create_key: int = JOB_CREATE_LOCK_KEY,
        run_key: int = JOB_RUN_LOCK_KEY,
    ) -> None:
        self.create_key = create_key
        self.run_key = run_key

    async def try_lock_create(self, session: AsyncSession) -> bool:
        result = await session.execute(
            text("SELECT pg_try_advisory_xact_lock(:key)"), {"key": self.create_key}
        )
        return bool(result.scalar())

    async def release_create(self, session: AsyncSession) -> None:
        # Released by the transaction's commit or rollback
        return None

    async def try_lock_run(self, session: AsyncSession) -> bool:
        result = await session.execute(
            text("SELECT pg_try_advisory_lock(:key)"), {"key": self.run_key}
        )
        return bool(result.scalar())

    async def touch_run(self, session: AsyncSession) -> None:
        return None

    async def unlock_run(self, session: AsyncSession) -> None:
        await session.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": self.run_key})


# ------------------------------------------------------------------
# MSSQL
# ------------------------------------------------------------------


class AppLocks:
    """MSSQL application locks via ``sp_getapplock``."""

    def __init__(
        self,
        create_resource: str = CREATE_LOCK_NAME,
        run_resource: str = RUN_LOCK_NAME,
    ) -> None:
        self.create_resource = create_resource
        self.run_resource = run_resource

    async def _getapplock(self, session: AsyncSession, resource: str, owner: str) -> bool:
        result = await session.execute(
            text(
                "DECLARE @result int; "
                "EXEC @result = sp_getapplock @Resource = :resource, "
                "@LockMode = 'Exclusive', @LockOwner = :owner, @LockTimeout = 0; "
                "SELECT @result"
            ),
            {"resource": resource, "owner": owner},
        )
        code = result.scalar()
        return code is not None and int(code) >= 0

    async def try_lock_create(self, session: AsyncSession) -> bool:
        return await self._getapplock(session, self.create_resource, "Transaction")

    async def release_create(self, session: AsyncSession) -> None:
        return None

    async def try_lock_run(self, session: AsyncSession) -> bool:
        return await self._getapplock(session, self.run_resource, "Session")

    async def touch_run(self, session: AsyncSession) -> None:
        return None

    async def unlock_run(self, session: AsyncSession) -> None:
        await session.execute(
            text("EXEC sp_releaseapplock @Resource = :resource, @LockOwner = 'Session'"),
            {"resource": self.run_resource},
        )


# ------------------------------------------------------------------
# Lock table
# ------------------------------------------------------------------


class TableLocks:
    """Named locks stored as rows of ``embedding_sync_locks``.

    The create lock is a row inserted inside the creating transaction and
    deleted before it commits, so concurrent creators serialize on the
    row's write lock.  The run lock is a lease: a row claimed by *holder*
    and refreshed on every :meth:`touch_run`; a lease older than *lease*
    is considered abandoned and may be taken over.
    """

    def __init__(
        self,
        dialect: str = "sqlite",
        *,
        holder: str | None = None,
        lease: timedelta = DEFAULT_LEASE,
    ) -> None:
        self.dialect = dialect
        self.holder = holder or uuid.uuid4().hex
        self.lease = lease

    async def try_lock_create(self, session: AsyncSession) -> bool:
        stmt = (
            insert_for(self.dialect)(SyncLock)
            .values(name=CREATE_LOCK_NAME, holder=self.holder, acquired_at=datetime.now(UTC))
            .on_conflict_do_nothing(index_elements=["name"])
            .returning(SyncLock.name)
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def release_create(self, session: AsyncSession) -> None:
        await session.execute(
            delete(SyncLock).where(
                SyncLock.name == CREATE_LOCK_NAME,  # type: ignore[arg-type]
                SyncLock.holder == self.holder,  # type: ignore[arg-type]
            )
        )

    async def try_lock_run(self, session: AsyncSession) -> bool:
        now = datetime.now(UTC)
        stmt = insert_for(self.dialect)(SyncLock).values(
            name=RUN_LOCK_NAME, holder=self.holder, acquired_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={"holder": stmt.excluded.holder, "acquired_at": stmt.excluded.acquired_at},
            where=or_(
                SyncLock.holder == self.holder,  # type: ignore[arg-type]
                SyncLock.acquired_at < now - self.lease,  # type: ignore[arg-type, operator]
            ),
        ).returning(SyncLock.holder)
        row = (await session.execute(stmt)).first()
        acquired = row is not None and row[0] == self.holder
        if acquired:
            logger.debug("Run lock acquired by %s", self.holder)
        return acquired

    async def touch_run(self, session: AsyncSession) -> None:
        await session.execute(
            update(SyncLock)
            .where(
                SyncLock.name == RUN_LOCK_NAME,  # type: ignore[arg-type]
                SyncLock.holder == self.holder,  # type: ignore[arg-type]
            )
            .values(acquired_at=datetime.now(UTC))
        )

    async def unlock_run(self, session: AsyncSession) -> None:
        await session.execute(
            delete(SyncLock).where(
                SyncLock.name == RUN_LOCK_NAME,  # type: ignore[arg-type]
                SyncLock.holder == self.holder,  # type: ignore[arg-type]
            )
        )


def locks_for(dialect: str) -> JobLocks:
    """Return the lock strategy for *dialect*."""
    if dialect == "postgresql":
        return AdvisoryLocks()
    if dialect == "mssql":
        return AppLocks()
    if dialect == "sqlite":
        return TableLocks(dialect)
    msg = f"No job lock strategy for dialect {dialect!r}"
    raise UnsupportedDialectError(msg)
