"""Dialect-aware SQL helpers: dialect detection and the conditional embedding upsert."""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import literal_column, or_, select, text

from skusync.exceptions import UnsupportedDialectError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


CHANGE_KEYS: tuple[str, ...] = (
    "content_hash",
    "embedding_model",
    "embedding_provider",
    "source_updated_at",
)
"""Columns whose difference makes a stored embedding worth rewriting."""

_JSON_COLUMNS = ("embedding", "metadata_json")


class UpsertOutcome(Enum):
    """What a conditional upsert did to the stored row."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite', 'postgresql', or 'mssql'."""
    # AsyncEngine wraps a sync engine
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    if name == "sqlite":
        return "sqlite"
    if name in ("postgresql", "postgres"):
        return "postgresql"
    if name in ("mssql", "pyodbc"):
        return "mssql"
    return name


def insert_for(dialect: str) -> Callable[..., Any]:
    """Return the ``insert()`` construct that supports ``ON CONFLICT`` for *dialect*."""
    if dialect == "postgresql":
        from sqlalchemy.dialects import postgresql as pg_dialect

        return pg_dialect.insert
    if dialect == "sqlite":
        from sqlalchemy.dialects import sqlite as sqlite_dialect

        return sqlite_dialect.insert
    msg = f"No ON CONFLICT insert available for dialect {dialect!r}"
    raise UnsupportedDialectError(msg)


async def upsert_embedding(
    session: AsyncSession,
    dialect: str,
    values: dict[str, Any],
    model: type | None = None,
) -> UpsertOutcome:
    """Write an embedding row only if it differs from the stored one.

    *values* is keyed by column name and must contain ``sku_id`` plus every
    column in :data:`CHANGE_KEYS`.  An existing row is overwritten only when
    at least one change key is distinct from the new value.

    - PostgreSQL: INSERT ... ON CONFLICT DO UPDATE ... WHERE, ``xmax = 0``
      tells a fresh insert from an update
    - SQLite: the same statement, preceded by a read of the existing row
    - MSSQL: MERGE INTO ... WITH (HOLDLOCK) with ``OUTPUT $action``
    """
    if model is None:
        from skusync.models.embeddings import SkuEmbedding

        model = SkuEmbedding

    if dialect == "mssql":
        return await _upsert_mssql(session, values, model)
    if dialect in ("sqlite", "postgresql"):
        return await _upsert_sqlite_pg(session, dialect, values, model)
    msg = f"Conditional upsert is not implemented for dialect {dialect!r}"
    raise UnsupportedDialectError(msg)


async def _upsert_sqlite_pg(
    session: AsyncSession,
    dialect: str,
    values: dict[str, Any],
    model: type,
) -> UpsertOutcome:
    """SQLite / PostgreSQL upsert using INSERT ... ON CONFLICT DO UPDATE ... WHERE."""
    table = model.__table__  # type: ignore[attr-defined]

    existed: bool | None = None
    if dialect == "sqlite":
        found = await session.execute(
            select(table.c.sku_id).where(table.c.sku_id == values["sku_id"])
        )
        existed = found.first() is not None

    stmt = insert_for(dialect)(table).values(**values)
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=["sku_id"],
        set_={k: excluded[k] for k in values if k != "sku_id"},
        where=or_(*(table.c[k].is_distinct_from(excluded[k]) for k in CHANGE_KEYS)),
    )

    if dialect == "postgresql":
        stmt = stmt.returning(literal_column("(xmax = 0)").label("inserted"))
        row = (await session.execute(stmt)).first()
        if row is None:
            return UpsertOutcome.UNCHANGED
        return UpsertOutcome.INSERTED if row[0] else UpsertOutcome.UPDATED

    row = (await session.execute(stmt.returning(table.c.sku_id))).first()
    if row is None:
        return UpsertOutcome.UNCHANGED
    return UpsertOutcome.UPDATED if existed else UpsertOutcome.INSERTED


async def _upsert_mssql(
    session: AsyncSession,
    values: dict[str, Any],
    model: type,
) -> UpsertOutcome:
    """MSSQL conditional upsert using MERGE INTO ... WITH (HOLDLOCK)."""
    table_name: str = getattr(model, "__tablename__", "sku_embeddings")
    params = {
        k: json.dumps(v) if k in _JSON_COLUMNS and not isinstance(v, str) else v
        for k, v in values.items()
    }
    columns = list(params)
    source_cols = ", ".join(f":{k} AS {k}" for k in columns)
    insert_cols = ", ".join(columns)
    insert_vals = ", ".join(f"source.{k}" for k in columns)
    update_set = ", ".join(f"target.{k} = source.{k}" for k in columns if k != "sku_id")
    guard = " OR ".join(
        f"(target.{k} <> source.{k}"
        f" OR (target.{k} IS NULL AND source.{k} IS NOT NULL)"
        f" OR (target.{k} IS NOT NULL AND source.{k} IS NULL))"
        for k in CHANGE_KEYS
    )

    merge_sql = f"""
        MERGE INTO {table_name} WITH (HOLDLOCK) AS target
        USING (SELECT {source_cols}) AS source
        ON target.sku_id = source.sku_id
        WHEN MATCHED AND ({guard}) THEN
            UPDATE SET {update_set}
        WHEN NOT MATCHED THEN
            INSERT ({insert_cols})
            VALUES ({insert_vals})
        OUTPUT $action;
    """

    result = await session.execute(text(merge_sql), params)
    row = result.first()
    if row is None:
        return UpsertOutcome.UNCHANGED
    return UpsertOutcome.INSERTED if row[0] == "INSERT" else UpsertOutcome.UPDATED
