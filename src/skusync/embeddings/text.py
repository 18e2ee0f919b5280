"""Compose the text and metadata embedded for a catalog SKU row.

Both builders are pure and deterministic: the same row always yields the
same text, so the SHA-256 of the text is a reliable change detector.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")

# (label, keys tried in order)
_TEXT_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Display Name", ("display_name",)),
    ("Generic Name", ("generic_name", "item_generic_name")),
    ("Strength", ("strength_text",)),
    ("Form", ("form",)),
    ("Route", ("route",)),
    ("Category", ("category_name",)),
    ("Supplier Code", ("supplier_code",)),
    ("Product Type", ("product_kind",)),
    ("Pack Level", ("pack_level",)),
    ("UOM", ("uom",)),
)


def normalize_text(value: Any) -> str:
    """Collapse runs of whitespace and strip; ``None`` becomes ``""``."""
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()


def normalize_nullable_text(value: Any) -> str | None:
    normalized = normalize_text(value)
    return normalized or None


def infer_language(text: str) -> str:
    """Return ``th``, ``en``, ``th-en`` or ``unknown`` from the scripts present."""
    value = normalize_text(text)
    has_thai = False
    has_latin = False
    for ch in value:
        if "\u0e00" <= ch <= "\u0e7f":
            has_thai = True
        elif "A" <= ch <= "Z" or "a" <= ch <= "z":
            has_latin = True
        if has_thai and has_latin:
            return "th-en"
    if has_thai:
        return "th"
    if has_latin:
        return "en"
    return "unknown"


def _first(row: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = normalize_nullable_text(row.get(key))
        if value:
            return value
    return None


def _qty_in_base(value: Any) -> int | float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        qty = float(value)
    except (TypeError, ValueError):
        return None
    if qty != qty or qty <= 0 or qty == float("inf"):
        return None
    return int(qty) if qty.is_integer() else qty


def build_sku_text(row: Mapping[str, Any]) -> str:
    """Build the labelled, newline-separated text embedded for *row*.

    Blank fields are omitted, so a row with nothing descriptive yields ``""``.
    """
    lines: list[str] = []
    for label, keys in _TEXT_FIELDS:
        value = _first(row, keys)
        if value:
            lines.append(f"{label}: {value}")

    qty = _qty_in_base(row.get("qty_in_base"))
    if qty is not None:
        lines.append(f"Quantity In Base: {qty}")

    company_code = _first(row, ("company_code",))
    if company_code:
        lines.append(f"Company Code: {company_code}")
    item_display_name = _first(row, ("item_display_name",))
    if item_display_name:
        lines.append(f"Item Display Name: {item_display_name}")

    return "\n".join(lines)


def build_sku_metadata(row: Mapping[str, Any]) -> dict[str, Any]:
    """Build the small filterable metadata object stored beside the vector."""
    base_text = " ".join(
        normalize_text(row.get(key))
        for key in ("display_name", "generic_name", "item_display_name")
    )
    metadata = {
        "source": "skus",
        "lang": infer_language(base_text),
        "company_code": row.get("company_code"),
        "product_type": row.get("product_kind"),
        "level": row.get("pack_level"),
        "category_name": row.get("category_name"),
        "supplier_code": row.get("supplier_code"),
        "uom": row.get("uom"),
    }
    out: dict[str, Any] = {}
    for key, value in metadata.items():
        if isinstance(value, str):
            value = normalize_nullable_text(value)
        if value is not None:
            out[key] = value
    return out
