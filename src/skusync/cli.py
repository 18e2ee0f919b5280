"""``skusync`` command: run one embedding sync pass against a database."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

from skusync.db import create_engine, init_schema, make_session_factory
from skusync.dialect import get_dialect
from skusync.embeddings.providers import create_embedding_provider
from skusync.exceptions import SkuSyncError
from skusync.settings import EmbeddingSettings, database_url_from_env
from skusync.sync.indexer import DEFAULT_BATCH_SIZE, SkuEmbeddingIndexer
from skusync.sync.params import normalize_sync_filters, parse_datetime
from skusync.sync.types import SyncOptions

if TYPE_CHECKING:
    from collections.abc import Sequence

    from skusync.embeddings.protocols import EmbeddingProvider
    from skusync.sync.types import SyncSummary

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        parsed = 0
    if parsed <= 0:
        msg = f"expected a positive integer, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return parsed


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        parsed = -1
    if parsed < 0:
        msg = f"expected a non-negative integer, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return parsed


def _iso_datetime(value: str) -> Any:
    parsed = parse_datetime(value)
    if parsed is None:
        msg = "--since must be a valid ISO date/time"
        raise argparse.ArgumentTypeError(msg)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skusync",
        description=(
            "Synchronize SKU embeddings. Dry run by default; "
            "use --execute to write embeddings via upsert."
        ),
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run", dest="execute", action="store_false", help="plan only (default)"
    )
    mode.add_argument(
        "--execute", dest="execute", action="store_true", help="write embeddings via upsert"
    )
    parser.set_defaults(execute=False)

    parser.add_argument(
        "--since", type=_iso_datetime, help="only process SKUs updated since this timestamp"
    )
    parser.add_argument("--limit", type=_positive_int, help="max SKUs to process")
    parser.add_argument(
        "--batch-size",
        type=_positive_int,
        default=DEFAULT_BATCH_SIZE,
        help="batch size (default 100, max 500)",
    )
    parser.add_argument(
        "--rate-limit-ms", type=_non_negative_int, default=0, help="delay between provider calls"
    )
    parser.add_argument(
        "--all",
        dest="only_stale",
        action="store_false",
        help="re-embed every SKU, not only stale ones",
    )
    parser.add_argument("--after-sku-id", type=_non_negative_int, default=0, help="resume cursor")

    provider = parser.add_argument_group("embedding provider")
    provider.add_argument("--provider", help="EMBEDDING_PROVIDER override (openai|local|mock)")
    provider.add_argument("--model", help="EMBEDDING_MODEL override")
    provider.add_argument("--dim", type=_positive_int, help="EMBEDDING_DIM override")

    filters = parser.add_argument_group("catalog filters")
    filters.add_argument("--company-code")
    filters.add_argument("--product-kind")
    filters.add_argument("--status")
    filters.add_argument("--category")
    filters.add_argument("--supplier-code")
    filters.add_argument("--keyword")

    parser.add_argument("--db-url", help="database URL (or set DATABASE_URL)")
    parser.add_argument(
        "--init-schema", action="store_true", help="create missing tables before syncing"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log every row")
    return parser


def format_summary(summary: SyncSummary, provider: EmbeddingProvider) -> list[str]:
    lines = [
        f"Mode: {summary.mode.upper()}",
        f"Provider: {provider.name}",
        f"Model: {provider.model}",
        f"Dimension: {provider.dimension}",
        f"Only stale: {'yes' if summary.only_stale else 'no'}",
        f"Processed: {summary.processed}",
        f"Planned: {summary.planned}",
        f"Inserted: {summary.inserted}",
        f"Updated: {summary.updated}",
        f"Unchanged: {summary.unchanged}",
        f"Skipped: {summary.skipped}",
        f"Errors: {summary.errors}",
        f"Batches: {summary.batches}",
    ]
    if summary.last_sku_id is not None:
        lines.append(f"Last SKU ID: {summary.last_sku_id}")
    if summary.canceled:
        lines.append("Canceled: yes")
    return lines


async def run_sync(
    args: argparse.Namespace,
    *,
    provider: EmbeddingProvider | None = None,
) -> SyncSummary:
    """Run one pass with the options in *args* and print the summary."""
    db_url = args.db_url or database_url_from_env()
    if not db_url:
        msg = "Missing database URL. Use --db-url or set DATABASE_URL"
        raise SkuSyncError(msg)

    owns_provider = provider is None
    if provider is None:
        settings = EmbeddingSettings.resolve(
            provider=args.provider, model=args.model, dimension=args.dim
        )
        provider = create_embedding_provider(settings)

    engine = create_engine(db_url)
    try:
        if args.init_schema:
            await init_schema(engine)
        options = SyncOptions(
            execute=args.execute,
            only_stale=args.only_stale,
            updated_since=args.since,
            limit=args.limit,
            batch_size=args.batch_size,
            rate_limit_ms=args.rate_limit_ms,
            after_sku_id=args.after_sku_id,
            filters=normalize_sync_filters(
                {
                    "company_code": args.company_code,
                    "product_kind": args.product_kind,
                    "status": args.status,
                    "category_name": args.category,
                    "supplier_code": args.supplier_code,
                    "keyword": args.keyword,
                }
            ),
        )
        indexer = SkuEmbeddingIndexer(get_dialect(engine))
        async with make_session_factory(engine)() as session:
            summary = await indexer.run(session, provider, options)
    finally:
        await engine.dispose()
        close = getattr(provider, "close", None)
        if owns_provider and close is not None:
            await close()

    for line in format_summary(summary, provider):
        print(line)
    return summary


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(run_sync(args))
    except SkuSyncError as e:
        logger.error("Sync failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
