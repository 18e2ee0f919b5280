"""Catalog tables read by the embedding indexer.

Only the columns that the text composer and the batch scan need are
modelled here; the admin application owns the rest of the schema.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric
from sqlmodel import Field, SQLModel


class Item(SQLModel, table=True):
    """A generic product (active ingredient, strength, form, route)."""

    __tablename__ = "items"

    item_id: int | None = Field(default=None, primary_key=True)
    generic_name: str = Field(default="")
    strength: str | None = Field(default=None)
    form: str | None = Field(default=None)
    route: str | None = Field(default=None)
    display_name: str | None = Field(default=None)
    category_name: str | None = Field(default=None)
    supplier_code: str | None = Field(default=None)
    product_kind: str | None = Field(default=None)
    is_active: bool = Field(default=True)


class Sku(SQLModel, table=True):
    """A sellable pack of an item. One embedding row is kept per SKU."""

    __tablename__ = "skus"

    sku_id: int | None = Field(default=None, primary_key=True)
    item_id: int | None = Field(default=None, foreign_key="items.item_id", index=True)
    uom: str | None = Field(default=None)
    uom_th: str | None = Field(default=None)
    qty_in_base: int = Field(default=1)
    pack_level: str | None = Field(default=None)
    display_name: str | None = Field(default=None)
    status: str | None = Field(default=None)
    company_code: str | None = Field(default=None, index=True)
    category_name: str | None = Field(default=None, index=True)
    supplier_code: str | None = Field(default=None, index=True)
    avg_cost: Decimal | None = Field(default=None, sa_type=Numeric(12, 2))
    generic_name: str | None = Field(default=None)
    strength_text: str | None = Field(default=None)
    form: str | None = Field(default=None)
    route: str | None = Field(default=None)
    product_kind: str | None = Field(default=None)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
