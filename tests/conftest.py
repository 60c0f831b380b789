"""Shared pytest fixtures for consolidation engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from entity_consolidation.models import Base, Entity, EntityKind, EntityStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh SQLite database file per test, with all tables created."""
    engine = create_async_engine(sqlite_url(tmp_path / "registry.db"), echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# Type aliases for factory fixtures
MakeEntity = Callable[..., Entity]
Seed = Callable[..., Awaitable[list[Any]]]
Snapshot = Callable[[], Awaitable[dict[str, list[tuple[Any, ...]]]]]


@pytest.fixture
def make_entity() -> MakeEntity:
    """Factory fixture for creating (unsaved) Entity instances."""

    def _make(
        *,
        entity_id: int | None = None,
        display_name: str = "",
        tax_id: str | None = None,
        kind: EntityKind = EntityKind.INDIVIDUAL,
        status: EntityStatus = EntityStatus.ACTIVE,
        **profile: Any,
    ) -> Entity:
        return Entity(
            entity_id=entity_id,
            kind=kind,
            display_name=display_name,
            tax_id=tax_id,
            status=status,
            profile=profile,
        )

    return _make


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seed:
    """Persist objects in one committed transaction and return them."""

    async def _seed(*objects: Any) -> list[Any]:
        async with session_factory() as session:
            async with session.begin():
                session.add_all(objects)
        return list(objects)

    return _seed


@pytest.fixture
def snapshot(session_factory: async_sessionmaker[AsyncSession]) -> Snapshot:
    """Dump every table, rows sorted, for before/after comparisons."""

    async def _snapshot() -> dict[str, list[tuple[Any, ...]]]:
        state: dict[str, list[tuple[Any, ...]]] = {}
        async with session_factory() as session:
            for table in Base.metadata.sorted_tables:
                rows = (await session.execute(select(table))).all()
                state[table.name] = sorted((tuple(row) for row in rows), key=repr)
        return state

    return _snapshot
