"""Normalization of sync job requests, stored job params, and error text."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from skusync.exceptions import InvalidRequestError
from skusync.models.jobs import SyncMode
from skusync.sync.indexer import DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE
from skusync.sync.types import JobCounts, SyncFilters, SyncOptions

if TYPE_CHECKING:
    from collections.abc import Mapping

    from skusync.sync.types import SyncSummary

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
DEFAULT_ITEMS_LIMIT = 200
MAX_ITEMS_LIMIT = 500
DEFAULT_SYNC_LIMIT = 200
MAX_SYNC_LIMIT = 5000
MAX_RATE_LIMIT_MS = 2000
MAX_ERROR_MESSAGE_CHARS = 500

_TRUNCATED_MARKER = "...[truncated]"

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(password\s*[:=]\s*)[^\s,;]+", re.IGNORECASE), r"\1[redacted]"),
    (re.compile(r"(token\s*[:=]\s*)[^\s,;]+", re.IGNORECASE), r"\1[redacted]"),
    (re.compile(r"(secret\s*[:=]\s*)[^\s,;]+", re.IGNORECASE), r"\1[redacted]"),
    (re.compile(r"\bBearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), "Bearer [redacted]"),
)

# filter name -> accepted request keys
_FILTER_KEYS: dict[str, tuple[str, ...]] = {
    "company_code": ("company_code", "companyCode"),
    "product_kind": ("product_kind", "productKind", "product_type", "productType"),
    "status": ("status",),
    "category_name": ("category_name", "categoryName", "category"),
    "supplier_code": ("supplier_code", "supplierCode"),
    "keyword": ("keyword", "q"),
}


# ------------------------------------------------------------------
# Scalar parsers
# ------------------------------------------------------------------


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _first_present(body: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = body.get(key)
        if value is not None:
            return value
    return None


def parse_positive_int(value: Any, default: int | None, maximum: int | None = None) -> int | None:
    """Parse a positive integer, capping at *maximum*.

    Missing or blank input yields *default*; anything that is not a positive
    integer yields ``None``.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    if parsed <= 0:
        return None
    if maximum is not None and parsed > maximum:
        return maximum
    return parsed


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret 1/0, true/false, yes/no and on/off; anything else → *default*."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    word = _text(value).lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return default


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 date/time; naive values are taken as UTC.

    Returns ``None`` for blank or unparseable input.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = _text(value)
        if not raw:
            return None
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_mode(mode: Any, execute: Any = None) -> str:
    """Resolve ``mode`` (or the legacy boolean ``execute``) to a mode value."""
    word = _text(mode).lower()
    if word:
        if word in (SyncMode.DRY_RUN.value, SyncMode.EXECUTE.value):
            return word
        msg = "mode must be dry_run or execute"
        raise InvalidRequestError(msg)
    if execute is True:
        return SyncMode.EXECUTE.value
    if execute is None or execute is False:
        return SyncMode.DRY_RUN.value
    msg = "mode must be dry_run or execute"
    raise InvalidRequestError(msg)


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


def normalize_sync_filters(raw: Any) -> SyncFilters:
    """Build :class:`SyncFilters` from a snake_case or camelCase mapping."""
    if isinstance(raw, SyncFilters):
        return raw
    if not isinstance(raw, dict):
        return SyncFilters()
    values: dict[str, str | None] = {}
    for name, keys in _FILTER_KEYS.items():
        value = _text(_first_present(raw, *keys))
        values[name] = value or None
    return SyncFilters(**values)


def parse_sync_job_request(body: Mapping[str, Any] | None) -> dict[str, Any]:
    """Validate a sync job request and return normalized job params.

    Raises:
        InvalidRequestError: When any value is out of range or malformed.
    """
    body = body or {}
    mode = parse_mode(body.get("mode"), body.get("execute"))

    limit = parse_positive_int(body.get("limit"), DEFAULT_SYNC_LIMIT, MAX_SYNC_LIMIT)
    if limit is None:
        msg = f"limit must be a positive integer (max {MAX_SYNC_LIMIT})"
        raise InvalidRequestError(msg)

    batch_size = parse_positive_int(
        _first_present(body, "batch_size", "batchSize"), DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE
    )
    if batch_size is None:
        msg = "batch_size must be a positive integer"
        raise InvalidRequestError(msg)

    rate_limit_ms = 0
    raw_rate = _first_present(body, "rate_limit_ms", "rateLimitMs")
    if raw_rate is not None:
        try:
            parsed_rate = int(str(raw_rate).strip())
        except ValueError:
            parsed_rate = -1
        if isinstance(raw_rate, bool) or parsed_rate < 0:
            msg = "rate_limit_ms must be a non-negative integer"
            raise InvalidRequestError(msg)
        rate_limit_ms = min(parsed_rate, MAX_RATE_LIMIT_MS)

    since_raw = _text(_first_present(body, "since", "updated_since", "updatedSince"))
    updated_since = parse_datetime(since_raw) if since_raw else None
    if since_raw and updated_since is None:
        msg = "since must be a valid ISO date/time"
        raise InvalidRequestError(msg)

    return {
        "mode": mode,
        "only_stale": parse_bool(_first_present(body, "only_stale", "onlyStale"), True),
        "limit": limit,
        "batch_size": batch_size,
        "updated_since": updated_since.isoformat() if updated_since else None,
        "rate_limit_ms": rate_limit_ms,
        "filters": normalize_sync_filters(body.get("filters") or {}).to_dict(),
    }


def job_params_for(
    request: Mapping[str, Any],
    *,
    provider: str,
    model: str,
    dimension: int,
) -> dict[str, Any]:
    """Stamp normalized request params with the target provider identity."""
    params = dict(request)
    params.update(
        {
            "embedding_provider": provider,
            "embedding_model": model,
            "embedding_dim": dimension,
        }
    )
    return params


def parse_list_limit(value: Any) -> int:
    limit = parse_positive_int(value, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
    if limit is None:
        msg = f"limit must be a positive integer (max {MAX_LIST_LIMIT})"
        raise InvalidRequestError(msg)
    return limit


def parse_items_limit(value: Any) -> int:
    limit = parse_positive_int(value, DEFAULT_ITEMS_LIMIT, MAX_ITEMS_LIMIT)
    if limit is None:
        msg = f"items_limit must be a positive integer (max {MAX_ITEMS_LIMIT})"
        raise InvalidRequestError(msg)
    return limit


def parse_job_id(value: Any) -> int:
    job_id = parse_positive_int(value, None)
    if job_id is None:
        msg = "job_id must be a positive integer"
        raise InvalidRequestError(msg)
    return job_id


# ------------------------------------------------------------------
# Stored params -> indexer options
# ------------------------------------------------------------------


def options_from_params(mode: str, params: Mapping[str, Any] | None, **callbacks: Any) -> SyncOptions:
    """Rebuild indexer options from a job's stored params.

    Stored params are re-validated leniently: anything invalid falls back to
    its default instead of failing the job.
    """
    params = params or {}
    rate_limit = parse_positive_int(
        _first_present(params, "rate_limit_ms", "rateLimitMs"), 0, MAX_RATE_LIMIT_MS
    )
    return SyncOptions(
        execute=mode == SyncMode.EXECUTE.value,
        only_stale=parse_bool(_first_present(params, "only_stale", "onlyStale"), True),
        updated_since=parse_datetime(
            _first_present(params, "updated_since", "updatedSince", "since")
        ),
        limit=parse_positive_int(params.get("limit"), DEFAULT_SYNC_LIMIT, MAX_SYNC_LIMIT)
        or DEFAULT_SYNC_LIMIT,
        batch_size=parse_positive_int(
            _first_present(params, "batch_size", "batchSize"), DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE
        )
        or DEFAULT_BATCH_SIZE,
        rate_limit_ms=rate_limit or 0,
        filters=normalize_sync_filters(params.get("filters") or {}),
        **callbacks,
    )


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


def summary_to_job_counts(summary: SyncSummary) -> dict[str, int]:
    """Map a summary onto the job counter columns."""
    return JobCounts.from_summary(summary).to_dict()


def truncate_error_message(message: Any) -> str | None:
    """Redact credentials in *message* and cap it at 500 characters."""
    text = _text(message)
    if not text:
        return None
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    if len(text) <= MAX_ERROR_MESSAGE_CHARS:
        return text
    return text[: MAX_ERROR_MESSAGE_CHARS - len(_TRUNCATED_MARKER)] + _TRUNCATED_MARKER
