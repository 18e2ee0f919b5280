"""Tests for the ``skusync`` command."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from skusync.cli import build_parser, format_summary, main, run_sync
from skusync.db import normalize_database_url
from skusync.embeddings.providers.mock import MockEmbedding
from skusync.exceptions import SkuSyncError
from skusync.sync.types import SyncSummary


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.execute is False
        assert args.only_stale is True
        assert args.batch_size == 100
        assert args.rate_limit_ms == 0
        assert args.after_sku_id == 0
        assert args.limit is None
        assert args.since is None

    def test_execute_and_filters(self):
        args = build_parser().parse_args(
            [
                "--execute",
                "--all",
                "--since",
                "2024-01-01T00:00:00Z",
                "--limit",
                "10",
                "--company-code",
                "C1",
                "--keyword",
                "para",
            ]
        )
        assert args.execute is True
        assert args.only_stale is False
        assert args.since == datetime(2024, 1, 1, tzinfo=UTC)
        assert args.limit == 10
        assert args.company_code == "C1"
        assert args.keyword == "para"

    def test_dry_run_and_execute_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--dry-run", "--execute"])

    @pytest.mark.parametrize(
        "argv",
        [["--limit", "0"], ["--batch-size", "x"], ["--rate-limit-ms", "-1"], ["--since", "soon"]],
    )
    def test_invalid_values(self, argv):
        with pytest.raises(SystemExit):
            build_parser().parse_args(argv)


class TestFormatSummary:
    def test_lines(self):
        summary = SyncSummary(
            mode="dry_run", only_stale=True, processed=3, planned=2, unchanged=1, last_sku_id=9
        )
        lines = format_summary(summary, MockEmbedding(model="m", dimension=4))
        assert lines[0] == "Mode: DRY_RUN"
        assert "Provider: mock" in lines
        assert "Dimension: 4" in lines
        assert "Processed: 3" in lines
        assert "Planned: 2" in lines
        assert lines[-1] == "Last SKU ID: 9"

    def test_canceled_line(self):
        summary = SyncSummary(mode="execute", only_stale=False, canceled=True)
        lines = format_summary(summary, MockEmbedding(dimension=4))
        assert "Only stale: no" in lines
        assert "Canceled: yes" in lines
        assert not any(line.startswith("Last SKU ID") for line in lines)


class TestNormalizeDatabaseUrl:
    def test_rewrites(self):
        assert normalize_database_url("postgresql://u@h/db") == "postgresql+asyncpg://u@h/db"
        assert normalize_database_url("postgres://u@h/db") == "postgresql+asyncpg://u@h/db"
        assert normalize_database_url("sqlite:///x.db") == "sqlite+aiosqlite:///x.db"

    def test_async_urls_untouched(self):
        assert normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


class TestRunSync:
    async def test_missing_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        args = build_parser().parse_args([])
        with pytest.raises(SkuSyncError, match="DATABASE_URL"):
            await run_sync(args)

    async def test_execute_against_catalog(
        self, engine, db_url, provider, five_skus, count_embeddings, capsys
    ):
        args = build_parser().parse_args(["--execute", "--db-url", db_url, "--batch-size", "2"])

        summary = await run_sync(args, provider=provider)

        assert summary.inserted == 5
        assert summary.batches == 3
        assert await count_embeddings() == 5
        out = capsys.readouterr().out
        assert "Mode: EXECUTE" in out
        assert "Inserted: 5" in out

    async def test_filters_applied(self, engine, db_url, provider, five_skus):
        args = build_parser().parse_args(["--db-url", db_url, "--company-code", "C0003"])
        summary = await run_sync(args, provider=provider)
        assert summary.processed == 1
        assert summary.last_sku_id == 3


class TestMain:
    def test_missing_database_url_exits_1(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert main([]) == 1

    def test_unsupported_provider_exits_1(self, monkeypatch, tmp_path):
        monkeypatch.delenv("EMBEDDING_PROVIDER", raising=False)
        url = f"sqlite:///{tmp_path / 'cli.db'}"
        assert main(["--db-url", url, "--provider", "cohere"]) == 1

    def test_mock_run_on_empty_database(self, monkeypatch, tmp_path, capsys):
        for name in ("EMBEDDING_MODEL", "EMBEDDING_DIM", "DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)
        url = f"sqlite:///{tmp_path / 'cli.db'}"

        code = main(["--db-url", url, "--init-schema", "--provider", "mock", "--dim", "8"])

        assert code == 0
        out = capsys.readouterr().out
        assert "Mode: DRY_RUN" in out
        assert "Processed: 0" in out
