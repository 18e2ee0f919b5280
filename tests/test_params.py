"""Tests for sync/params.py: request validation, stored params, error text."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from skusync.exceptions import InvalidRequestError
from skusync.sync.params import (
    DEFAULT_SYNC_LIMIT,
    MAX_ERROR_MESSAGE_CHARS,
    MAX_SYNC_LIMIT,
    job_params_for,
    normalize_sync_filters,
    options_from_params,
    parse_bool,
    parse_datetime,
    parse_items_limit,
    parse_job_id,
    parse_list_limit,
    parse_mode,
    parse_positive_int,
    parse_sync_job_request,
    summary_to_job_counts,
    truncate_error_message,
)
from skusync.sync.types import SyncFilters, SyncSummary

# ==================================================================
# Scalars
# ==================================================================


class TestParsePositiveInt:
    def test_missing_uses_default(self):
        assert parse_positive_int(None, 7) == 7
        assert parse_positive_int("", 7) == 7

    def test_caps_at_maximum(self):
        assert parse_positive_int("9999", 10, 500) == 500

    @pytest.mark.parametrize("value", [0, -1, "abc", "1.5", 2.5, True])
    def test_invalid(self, value):
        assert parse_positive_int(value, 10) is None

    def test_integral_float(self):
        assert parse_positive_int(4.0, 10) == 4


class TestParseBool:
    @pytest.mark.parametrize("value", [True, "1", "true", "YES", " on "])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", [False, "0", "false", "No", "off"])
    def test_false(self, value):
        assert parse_bool(value, default=True) is False

    def test_unknown_uses_default(self):
        assert parse_bool("maybe", default=True) is True
        assert parse_bool(None) is False


class TestParseDatetime:
    def test_z_suffix(self):
        assert parse_datetime("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=UTC)

    def test_naive_is_utc(self):
        assert parse_datetime("2024-05-01") == datetime(2024, 5, 1, tzinfo=UTC)

    def test_offset_converted(self):
        parsed = parse_datetime("2024-05-01T17:00:00+07:00")
        assert parsed == datetime(2024, 5, 1, 10, tzinfo=UTC)
        assert parsed.tzinfo is UTC

    def test_datetime_passthrough(self):
        value = datetime(2024, 1, 1, tzinfo=timezone(timedelta(hours=2)))
        assert parse_datetime(value) == value

    def test_invalid(self):
        assert parse_datetime("yesterday") is None
        assert parse_datetime("") is None


class TestParseMode:
    def test_explicit(self):
        assert parse_mode("EXECUTE") == "execute"
        assert parse_mode("dry_run") == "dry_run"

    def test_legacy_execute_flag(self):
        assert parse_mode(None, True) == "execute"
        assert parse_mode(None, False) == "dry_run"
        assert parse_mode(None) == "dry_run"

    def test_mode_wins_over_flag(self):
        assert parse_mode("dry_run", True) == "dry_run"

    def test_invalid(self):
        with pytest.raises(InvalidRequestError):
            parse_mode("apply")
        with pytest.raises(InvalidRequestError):
            parse_mode(None, "yes")


# ==================================================================
# Request bodies
# ==================================================================


class TestNormalizeSyncFilters:
    def test_snake_and_camel(self):
        filters = normalize_sync_filters(
            {
                "companyCode": " C1 ",
                "product_type": "medicine",
                "category": "Analgesics",
                "supplierCode": "SUP",
                "q": "para",
                "status": "",
            }
        )
        assert filters == SyncFilters(
            company_code="C1",
            product_kind="medicine",
            category_name="Analgesics",
            supplier_code="SUP",
            keyword="para",
        )

    def test_non_mapping(self):
        assert normalize_sync_filters(None).is_empty
        assert normalize_sync_filters(["x"]).is_empty

    def test_passthrough(self):
        filters = SyncFilters(status="active")
        assert normalize_sync_filters(filters) is filters


class TestParseSyncJobRequest:
    def test_defaults(self):
        assert parse_sync_job_request({}) == {
            "mode": "dry_run",
            "only_stale": True,
            "limit": DEFAULT_SYNC_LIMIT,
            "batch_size": 100,
            "updated_since": None,
            "rate_limit_ms": 0,
            "filters": {},
        }

    def test_full_body(self):
        params = parse_sync_job_request(
            {
                "mode": "execute",
                "onlyStale": "false",
                "limit": 50,
                "batchSize": "20",
                "since": "2024-02-03T04:05:06Z",
                "rateLimitMs": 250,
                "filters": {"companyCode": "C1"},
            }
        )
        assert params == {
            "mode": "execute",
            "only_stale": False,
            "limit": 50,
            "batch_size": 20,
            "updated_since": "2024-02-03T04:05:06+00:00",
            "rate_limit_ms": 250,
            "filters": {"company_code": "C1"},
        }

    def test_caps(self):
        params = parse_sync_job_request({"limit": 10**6, "batch_size": 10**6, "rate_limit_ms": 10**6})
        assert params["limit"] == MAX_SYNC_LIMIT
        assert params["batch_size"] == 500
        assert params["rate_limit_ms"] == 2000

    @pytest.mark.parametrize(
        ("body", "match"),
        [
            ({"mode": "apply"}, "mode"),
            ({"limit": 0}, "limit"),
            ({"limit": "ten"}, "limit"),
            ({"batch_size": -2}, "batch_size"),
            ({"rate_limit_ms": -1}, "rate_limit_ms"),
            ({"rate_limit_ms": "fast"}, "rate_limit_ms"),
            ({"since": "not-a-date"}, "since"),
        ],
    )
    def test_invalid(self, body, match):
        with pytest.raises(InvalidRequestError, match=match):
            parse_sync_job_request(body)

    def test_none_body(self):
        assert parse_sync_job_request(None)["mode"] == "dry_run"


class TestJobParams:
    def test_stamps_target_identity(self):
        request = parse_sync_job_request({})
        params = job_params_for(request, provider="mock", model="m", dimension=8)
        assert params["embedding_provider"] == "mock"
        assert params["embedding_model"] == "m"
        assert params["embedding_dim"] == 8
        assert "embedding_provider" not in request


class TestListLimits:
    def test_list_limit(self):
        assert parse_list_limit(None) == 50
        assert parse_list_limit("1000") == 200
        with pytest.raises(InvalidRequestError):
            parse_list_limit("0")

    def test_items_limit(self):
        assert parse_items_limit(None) == 200
        assert parse_items_limit(9999) == 500
        with pytest.raises(InvalidRequestError):
            parse_items_limit("x")

    def test_job_id(self):
        assert parse_job_id(7) == 7
        assert parse_job_id(" 12 ") == 12

    @pytest.mark.parametrize("value", [None, "", 0, -1, "x", 1.5, True])
    def test_invalid_job_id(self, value):
        with pytest.raises(InvalidRequestError, match="job_id must be a positive integer"):
            parse_job_id(value)


# ==================================================================
# Stored params -> options
# ==================================================================


class TestOptionsFromParams:
    def test_round_trip_of_request(self):
        params = parse_sync_job_request(
            {
                "mode": "execute",
                "only_stale": False,
                "limit": 30,
                "batch_size": 10,
                "since": "2024-01-01",
                "rate_limit_ms": 5,
                "filters": {"status": "active"},
            }
        )
        options = options_from_params(params["mode"], params)
        assert options.execute is True
        assert options.only_stale is False
        assert options.limit == 30
        assert options.batch_size == 10
        assert options.updated_since == datetime(2024, 1, 1, tzinfo=UTC)
        assert options.rate_limit_ms == 5
        assert options.filters == SyncFilters(status="active")

    def test_lenient_fallbacks(self):
        options = options_from_params(
            "dry_run",
            {"limit": "bad", "batch_size": -1, "rate_limit_ms": "x", "updated_since": "?"},
        )
        assert options.execute is False
        assert options.limit == DEFAULT_SYNC_LIMIT
        assert options.batch_size == 100
        assert options.rate_limit_ms == 0
        assert options.updated_since is None

    def test_callbacks_passed_through(self):
        def on_item(outcome):
            return None

        options = options_from_params("dry_run", None, on_item=on_item)
        assert options.on_item is on_item


# ==================================================================
# Results and errors
# ==================================================================


class TestSummaryToJobCounts:
    def test_dry_run_folded(self):
        summary = SyncSummary(
            mode="dry_run",
            only_stale=True,
            processed=6,
            planned=3,
            planned_inserts=2,
            planned_updates=1,
            unchanged=1,
            skipped=1,
            errors=1,
        )
        assert summary_to_job_counts(summary) == {
            "processed_count": 6,
            "inserted_count": 2,
            "updated_count": 1,
            "skipped_count": 2,
            "error_count": 1,
        }


class TestTruncateErrorMessage:
    def test_blank(self):
        assert truncate_error_message(None) is None
        assert truncate_error_message("   ") is None

    def test_redacts_credentials(self):
        text = truncate_error_message(
            "connect failed password=hunter2, token: abc123; secret=s3 "
            "Authorization: Bearer eyJhbGciOi.x-y_z"
        )
        assert "hunter2" not in text
        assert "abc123" not in text
        assert "s3" not in text
        assert "eyJhbGciOi" not in text
        assert "password=[redacted]" in text
        assert "token: [redacted]" in text
        assert "Bearer [redacted]" in text

    def test_truncates(self):
        text = truncate_error_message("x" * 2000)
        assert len(text) == MAX_ERROR_MESSAGE_CHARS
        assert text.endswith("...[truncated]")

    def test_short_untouched(self):
        assert truncate_error_message("boom") == "boom"
