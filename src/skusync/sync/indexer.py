"""SkuEmbeddingIndexer — plans and executes SKU embedding synchronization.

The indexer walks the catalog in ascending ``sku_id`` order, batch by batch,
composing each row's text, calling the embedding provider, and either
classifying the would-be write (dry run) or performing a conditional upsert
(execute).  Per-row failures are isolated; everything else propagates.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_
from sqlmodel import select

from skusync.dialect import UpsertOutcome, upsert_embedding
from skusync.embeddings.text import build_sku_metadata, build_sku_text
from skusync.embeddings.vectors import assert_embedding_vector, to_vector
from skusync.models.catalog import Item, Sku
from skusync.models.embeddings import SkuEmbedding
from skusync.models.jobs import ItemAction
from skusync.sync.types import (
    EmbeddingRecord,
    ExistingEmbedding,
    ItemOutcome,
    SyncFilters,
    SyncOptions,
    SyncSummary,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from skusync.embeddings.protocols import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
MAX_BATCH_SIZE = 500

REASON_EMPTY_TEXT = "empty_text"
REASON_UNCHANGED = "unchanged"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def clamp_batch_size(value: Any) -> int:
    """Clamp *value* to ``[1, MAX_BATCH_SIZE]``; invalid or non-positive → default."""
    if value is None or isinstance(value, bool):
        return DEFAULT_BATCH_SIZE
    try:
        size = int(value)
    except (TypeError, ValueError):
        return DEFAULT_BATCH_SIZE
    if size <= 0:
        return DEFAULT_BATCH_SIZE
    return min(size, MAX_BATCH_SIZE)


def compute_content_hash(text: str) -> str:
    """SHA-256 hex digest of *text*."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_embedding_record(
    row: Mapping[str, Any],
    text: str,
    vector: list[float],
    provider: EmbeddingProvider,
) -> EmbeddingRecord:
    """Validate *vector* against the provider and bundle it with *row*'s identity."""
    assert_embedding_vector(vector, provider.dimension)
    return EmbeddingRecord(
        sku_id=int(row["sku_id"]),
        source_updated_at=row.get("sku_updated_at"),
        text_for_embedding=text,
        metadata=build_sku_metadata(row),
        content_hash=compute_content_hash(text),
        embedding_provider=provider.name,
        embedding_model=provider.model,
        embedding_dim=provider.dimension,
        embedding_vector=to_vector(vector),
    )


def classify_planned(record: EmbeddingRecord, existing: ExistingEmbedding | None) -> str:
    """Classify a dry-run write the way the conditional upsert would.

    Returns ``insert`` when nothing is stored, ``update`` when any of the
    change keys differ, otherwise ``skip``.
    """
    if existing is None:
        return ItemAction.INSERT.value
    if (
        existing.content_hash != record.content_hash
        or existing.embedding_model != record.embedding_model
        or existing.embedding_provider != record.embedding_provider
        or existing.source_updated_at != record.source_updated_at
    ):
        return ItemAction.UPDATE.value
    return ItemAction.SKIP.value


def _existing_from_row(row: Mapping[str, Any]) -> ExistingEmbedding | None:
    if row.get("embedding_sku_id") is None:
        return None
    return ExistingEmbedding(
        content_hash=row.get("existing_content_hash"),
        embedding_model=row.get("existing_embedding_model"),
        embedding_provider=row.get("existing_embedding_provider"),
        source_updated_at=row.get("embedding_source_updated_at"),
    )


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


# ------------------------------------------------------------------
# Indexer
# ------------------------------------------------------------------


class SkuEmbeddingIndexer:
    """Synchronizes ``sku_embeddings`` with the ``skus`` catalog.

    Stateless apart from the dialect; the session and provider are passed
    per call, so one instance can serve many runs.
    """

    def __init__(self, dialect: str = "sqlite") -> None:
        self.dialect = dialect

    # ------------------------------------------------------------------
    # Batch scan
    # ------------------------------------------------------------------

    def _batch_query(
        self,
        provider: EmbeddingProvider,
        *,
        after_sku_id: int,
        batch_size: int,
        only_stale: bool,
        updated_since: datetime | None,
        filters: SyncFilters,
    ) -> Any:
        query = (
            select(  # type: ignore[call-overload]
                Sku.sku_id,
                Sku.uom,
                Sku.uom_th,
                Sku.qty_in_base,
                Sku.pack_level,
                Sku.display_name,
                Sku.status,
                Sku.company_code,
                Sku.category_name,
                Sku.supplier_code,
                Sku.avg_cost,
                Sku.generic_name,
                Sku.strength_text,
                Sku.form,
                Sku.route,
                Sku.product_kind,
                Sku.updated_at.label("sku_updated_at"),  # type: ignore[attr-defined]
                Item.display_name.label("item_display_name"),  # type: ignore[union-attr]
                Item.generic_name.label("item_generic_name"),  # type: ignore[attr-defined]
                SkuEmbedding.sku_id.label("embedding_sku_id"),  # type: ignore[attr-defined]
                SkuEmbedding.content_hash.label("existing_content_hash"),  # type: ignore[attr-defined]
                SkuEmbedding.embedding_model.label("existing_embedding_model"),  # type: ignore[attr-defined]
                SkuEmbedding.embedding_provider.label("existing_embedding_provider"),  # type: ignore[attr-defined]
                SkuEmbedding.source_updated_at.label("embedding_source_updated_at"),  # type: ignore[union-attr]
            )
            .select_from(Sku)
            .outerjoin(Item, Item.item_id == Sku.item_id)  # type: ignore[arg-type]
            .outerjoin(SkuEmbedding, SkuEmbedding.sku_id == Sku.sku_id)  # type: ignore[arg-type]
            .where(Sku.sku_id > after_sku_id)  # type: ignore[operator]
        )

        if updated_since is not None:
            query = query.where(Sku.updated_at >= updated_since)  # type: ignore[operator]

        if filters.company_code:
            query = query.where(Sku.company_code == filters.company_code)
        if filters.product_kind:
            query = query.where(Sku.product_kind == filters.product_kind)
        if filters.status:
            query = query.where(Sku.status == filters.status)
        if filters.category_name:
            query = query.where(Sku.category_name.ilike(f"%{filters.category_name}%"))  # type: ignore[union-attr]
        if filters.supplier_code:
            query = query.where(Sku.supplier_code.ilike(f"%{filters.supplier_code}%"))  # type: ignore[union-attr]
        if filters.keyword:
            pattern = f"%{filters.keyword}%"
            query = query.where(
                or_(
                    Sku.display_name.ilike(pattern),  # type: ignore[union-attr]
                    Sku.generic_name.ilike(pattern),  # type: ignore[union-attr]
                    Sku.company_code.ilike(pattern),  # type: ignore[union-attr]
                )
            )

        if only_stale:
            query = query.where(
                or_(
                    SkuEmbedding.sku_id.is_(None),  # type: ignore[attr-defined]
                    SkuEmbedding.source_updated_at.is_(None),  # type: ignore[union-attr]
                    SkuEmbedding.source_updated_at < Sku.updated_at,  # type: ignore[operator]
                    SkuEmbedding.embedding_model != provider.model,
                    SkuEmbedding.embedding_provider != provider.name,
                )
            )

        return query.order_by(Sku.sku_id).limit(batch_size)  # type: ignore[arg-type]

    async def fetch_batch(
        self,
        session: AsyncSession,
        provider: EmbeddingProvider,
        *,
        after_sku_id: int = 0,
        batch_size: int = DEFAULT_BATCH_SIZE,
        only_stale: bool = True,
        updated_since: datetime | None = None,
        filters: SyncFilters | None = None,
    ) -> list[dict[str, Any]]:
        """Return the next batch of catalog rows after *after_sku_id*.

        Each row carries the SKU columns, the joined item's display and
        generic names, and a snapshot of the stored embedding (if any).
        """
        query = self._batch_query(
            provider,
            after_sku_id=after_sku_id,
            batch_size=batch_size,
            only_stale=only_stale,
            updated_since=updated_since,
            filters=filters or SyncFilters(),
        )
        result = await session.execute(query)
        return [dict(row) for row in result.mappings().all()]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        session: AsyncSession,
        provider: EmbeddingProvider,
        options: SyncOptions | None = None,
    ) -> SyncSummary:
        """Run one synchronization pass and return its summary.

        Rows are visited in ascending ``sku_id`` order starting after
        ``options.after_sku_id``.  In execute mode every successful write is
        committed on its own, so a canceled or crashed run keeps its
        progress.  Cancellation is checked before every batch and row.
        """
        options = options or SyncOptions()
        batch_size = clamp_batch_size(options.batch_size)
        limit = options.limit if options.limit is not None and options.limit > 0 else None
        rate_limit_s = max(0, int(options.rate_limit_ms or 0)) / 1000

        summary = SyncSummary(mode=options.mode, only_stale=options.only_stale)
        cursor = int(options.after_sku_id or 0)

        while True:
            remaining = None if limit is None else limit - summary.processed
            if remaining is not None and remaining <= 0:
                break
            if await self._cancel_requested(options):
                summary.canceled = True
                break

            rows = await self.fetch_batch(
                session,
                provider,
                after_sku_id=cursor,
                batch_size=batch_size if remaining is None else min(batch_size, remaining),
                only_stale=options.only_stale,
                updated_since=options.updated_since,
                filters=options.filters,
            )
            # Release the read transaction before provider calls
            await session.commit()
            if not rows:
                break
            summary.batches += 1

            for row in rows:
                if await self._cancel_requested(options):
                    summary.canceled = True
                    break

                outcome, called_provider = await self._process_row(
                    session, provider, row, execute=options.execute
                )
                cursor = outcome.sku_id
                self._tally(summary, outcome, execute=options.execute)
                summary.last_sku_id = cursor

                if options.on_item is not None:
                    await _maybe_await(options.on_item(outcome))
                if options.on_progress is not None:
                    await _maybe_await(options.on_progress(summary))

                if called_provider and rate_limit_s > 0:
                    await asyncio.sleep(rate_limit_s)

            if summary.canceled:
                break

        logger.info(
            "Embedding sync %s finished: processed=%d planned=%d inserted=%d updated=%d "
            "unchanged=%d skipped=%d errors=%d canceled=%s",
            summary.mode,
            summary.processed,
            summary.planned,
            summary.inserted,
            summary.updated,
            summary.unchanged,
            summary.skipped,
            summary.errors,
            summary.canceled,
        )
        return summary

    async def _cancel_requested(self, options: SyncOptions) -> bool:
        if options.should_cancel is None:
            return False
        return bool(await _maybe_await(options.should_cancel()))

    async def _process_row(
        self,
        session: AsyncSession,
        provider: EmbeddingProvider,
        row: dict[str, Any],
        *,
        execute: bool,
    ) -> tuple[ItemOutcome, bool]:
        """Handle one row. Returns the outcome and whether the provider was called."""
        sku_id = int(row["sku_id"])
        existing = _existing_from_row(row)
        hash_before = existing.content_hash if existing else None

        text = build_sku_text(row)
        if not text:
            logger.debug("sku %d: empty text, skipped", sku_id)
            return (
                ItemOutcome(
                    sku_id=sku_id,
                    action=ItemAction.SKIP.value,
                    reason=REASON_EMPTY_TEXT,
                    content_hash_before=hash_before,
                ),
                False,
            )

        hash_after: str | None = None
        try:
            vector = await provider.embed(text)
            record = build_embedding_record(row, text, vector, provider)
            hash_after = record.content_hash

            if execute:
                result = await upsert_embedding(
                    session, self.dialect, record.to_row(datetime.now(UTC))
                )
                await session.commit()
                action = {
                    UpsertOutcome.INSERTED: ItemAction.INSERT.value,
                    UpsertOutcome.UPDATED: ItemAction.UPDATE.value,
                    UpsertOutcome.UNCHANGED: ItemAction.SKIP.value,
                }[result]
            else:
                action = classify_planned(record, existing)
        except Exception as e:
            await session.rollback()
            logger.warning("sku %d: embedding sync failed: %s", sku_id, e)
            return (
                ItemOutcome(
                    sku_id=sku_id,
                    action=ItemAction.ERROR.value,
                    content_hash_before=hash_before,
                    content_hash_after=hash_after,
                    error_message=str(e) or type(e).__name__,
                ),
                True,
            )

        logger.debug("sku %d: text_len=%d action=%s", sku_id, len(text), action)
        return (
            ItemOutcome(
                sku_id=sku_id,
                action=action,
                reason=REASON_UNCHANGED if action == ItemAction.SKIP.value else None,
                content_hash_before=hash_before,
                content_hash_after=hash_after,
            ),
            True,
        )

    @staticmethod
    def _tally(summary: SyncSummary, outcome: ItemOutcome, *, execute: bool) -> None:
        summary.processed += 1
        action = outcome.action
        if action == ItemAction.ERROR.value:
            summary.errors += 1
        elif action == ItemAction.SKIP.value:
            if outcome.reason == REASON_UNCHANGED:
                summary.unchanged += 1
            else:
                summary.skipped += 1
        elif execute:
            if action == ItemAction.INSERT.value:
                summary.inserted += 1
            else:
                summary.updated += 1
        else:
            summary.planned += 1
            if action == ItemAction.INSERT.value:
                summary.planned_inserts += 1
            else:
                summary.planned_updates += 1
