"""SKU embedding model: one vector row per catalog SKU."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel


class SkuEmbedding(SQLModel, table=True):
    """The persisted embedding of a SKU's composed text.

    ``content_hash``, ``embedding_model``, ``embedding_provider`` and
    ``source_updated_at`` form the change-detection key: a row is only
    rewritten when one of them differs from the freshly computed record.
    The vector itself is stored as a JSON array of floats.
    """

    __tablename__ = "sku_embeddings"

    id: int | None = Field(default=None, primary_key=True)
    sku_id: int = Field(foreign_key="skus.sku_id", unique=True, index=True)
    embedding: list[float] = Field(default_factory=list, sa_type=JSON)
    embedding_dim: int = Field(default=0)
    embedding_model: str = Field(default="")
    embedding_provider: str = Field(default="")
    text_for_embedding: str = Field(default="")
    content_hash: str = Field(default="")
    metadata_json: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    source_updated_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
