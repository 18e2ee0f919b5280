"""Shared fixtures for skusync tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import func
from sqlmodel import select

from skusync.db import create_engine, init_schema, make_session_factory
from skusync.embeddings.providers.mock import generate_mock_embedding
from skusync.exceptions import EmbeddingProviderError
from skusync.models import Item, Sku, SkuEmbedding

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


class FakeEmbeddingProvider:
    """Deterministic provider that can be told to fail on chosen texts.

    Args:
        fail_on: Substrings; a text containing one raises EmbeddingProviderError.
        wrong_dim_on: Substrings; a text containing one gets a vector that is
            one element too long.
        hook: Awaited with the call number before each embedding.
    """

    name = "fake"

    def __init__(
        self,
        *,
        model: str = "fake-model",
        dimension: int = 8,
        fail_on: tuple[str, ...] = (),
        wrong_dim_on: tuple[str, ...] = (),
        hook: Callable[[int], Awaitable[None]] | None = None,
    ) -> None:
        self._model = model
        self._dimension = dimension
        self.fail_on = fail_on
        self.wrong_dim_on = wrong_dim_on
        self.hook = hook
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.hook is not None:
            await self.hook(len(self.calls))
        for marker in self.fail_on:
            if marker in text:
                msg = f"provider rejected text containing {marker!r}"
                raise EmbeddingProviderError(msg)
        for marker in self.wrong_dim_on:
            if marker in text:
                return generate_mock_embedding(text, self._dimension + 1)
        return generate_mock_embedding(text, self._dimension)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension


def make_sku(sku_id: int, **overrides: Any) -> Sku:
    """A SKU with enough descriptive fields to produce non-empty text."""
    values: dict[str, Any] = {
        "sku_id": sku_id,
        "display_name": f"Paracetamol 500mg tablet #{sku_id}",
        "generic_name": "paracetamol",
        "strength_text": "500 mg",
        "form": "tablet",
        "route": "oral",
        "category_name": "Analgesics",
        "supplier_code": "SUP-01",
        "product_kind": "medicine",
        "pack_level": "box",
        "uom": "BOX",
        "qty_in_base": 10,
        "company_code": f"C{sku_id:04d}",
        "status": "active",
        "updated_at": datetime(2024, 1, 1, tzinfo=UTC),
    }
    values.update(overrides)
    return Sku(**values)


@pytest.fixture
def db_url(tmp_path) -> str:
    """File-backed SQLite URL; separate connections really run concurrently."""
    return f"sqlite+aiosqlite:///{tmp_path / 'skusync.db'}"


@pytest.fixture
async def engine(db_url: str) -> AsyncIterator[AsyncEngine]:
    """Async SQLite engine with all tables created."""
    eng = create_engine(db_url)
    await init_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as s:
        yield s


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_provider_cls() -> type[FakeEmbeddingProvider]:
    return FakeEmbeddingProvider


@pytest.fixture
def add_catalog(session_factory: async_sessionmaker[AsyncSession]):
    """Insert SKUs (and optional items) in one committed transaction."""

    async def _add(*skus: Sku, items: tuple[Item, ...] = ()) -> None:
        async with session_factory() as s:
            s.add_all([*items, *skus])
            await s.commit()

    return _add


@pytest.fixture
async def five_skus(add_catalog) -> list[int]:
    """SKUs 1..5 with descriptive text."""
    await add_catalog(*(make_sku(i) for i in range(1, 6)))
    return [1, 2, 3, 4, 5]


@pytest.fixture
def count_embeddings(session_factory: async_sessionmaker[AsyncSession]):
    async def _count() -> int:
        async with session_factory() as s:
            result = await s.execute(select(func.count()).select_from(SkuEmbedding))
            return int(result.scalar_one())

    return _count


@pytest.fixture
def load_embedding(session_factory: async_sessionmaker[AsyncSession]):
    async def _load(sku_id: int) -> SkuEmbedding | None:
        async with session_factory() as s:
            result = await s.execute(select(SkuEmbedding).where(SkuEmbedding.sku_id == sku_id))
            return result.scalar_one_or_none()

    return _load


@pytest.fixture
def sku_factory() -> Callable[..., Sku]:
    return make_sku
