"""Tests for the registry repository and dependent-relation repointers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entity_consolidation.models import Dossier, EntityKind, EntityStatus, HouseholdRelation
from entity_consolidation.services.registry import EntityRepository, is_empty_value
from entity_consolidation.services.repointing import ColumnRepointer, HouseholdRepointer

if TYPE_CHECKING:
    from conftest import MakeEntity, Seed


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, True), ("", True), ("  ", True), ([], True), ({}, True), ("x", False), (0, False)],
)
def test_is_empty_value(value: object, expected: bool) -> None:
    assert is_empty_value(value) is expected


class TestEntityRepository:
    async def test_list_active_ascending(
        self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession
    ) -> None:
        await seed(
            make_entity(entity_id=3, display_name="C"),
            make_entity(entity_id=1, display_name="A"),
            make_entity(entity_id=2, display_name="B", status=EntityStatus.RETIRED),
        )

        entities = await EntityRepository(db_session).list_active()

        assert [entity.entity_id for entity in entities] == [1, 3]

    async def test_get(self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession) -> None:
        await seed(make_entity(entity_id=1, display_name="Ana"))
        repo = EntityRepository(db_session)

        entity = await repo.get(1)

        assert entity is not None and entity.display_name == "Ana"
        assert await repo.get(2) is None

    async def test_lock_members_skips_missing(
        self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession
    ) -> None:
        await seed(make_entity(entity_id=1), make_entity(entity_id=2))

        members = await EntityRepository(db_session).lock_members([2, 1, 9])

        assert sorted(members) == [1, 2]

    async def test_write_fields_splits_core_and_profile(
        self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession
    ) -> None:
        await seed(make_entity(entity_id=1, display_name="Ana", tax_id="111", stale="x"))
        repo = EntityRepository(db_session)
        entity = await repo.get(1)
        assert entity is not None

        repo.write_fields(
            entity,
            {"kind": "organization", "display_name": "Ana Lda", "tax_id": "", "email": "a@b.pt"},
        )

        assert entity.kind == EntityKind.ORGANIZATION
        assert entity.display_name == "Ana Lda"
        assert entity.tax_id is None
        assert entity.profile == {"email": "a@b.pt"}

    async def test_fingerprint_tracks_changes(
        self,
        make_entity: MakeEntity,
        seed: Seed,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        async def fingerprint():
            async with session_factory() as session:
                return await EntityRepository(session).fingerprint()

        empty = await fingerprint()
        assert empty[:3] == (0, 0, 0)

        await seed(make_entity(entity_id=1, display_name="Ana"))
        created = await fingerprint()
        assert created != empty
        assert await fingerprint() == created

        async with session_factory() as session:
            async with session.begin():
                repo = EntityRepository(session)
                entity = await repo.get(1)
                assert entity is not None
                repo.retire(entity)

        assert (await fingerprint())[0] == 0


class TestRepointers:
    def test_column_repointer_needs_columns(self) -> None:
        with pytest.raises(ValueError, match="at least one column"):
            ColumnRepointer("dossiers", Dossier)

    async def test_repoint_is_idempotent(
        self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession
    ) -> None:
        await seed(make_entity(entity_id=1), make_entity(entity_id=2))
        await seed(Dossier(entity_id=2, title="a"), Dossier(entity_id=2, title="b"))
        repointer = ColumnRepointer("dossiers", Dossier, "entity_id")

        first = await repointer.repoint(db_session, [2], 1)
        second = await repointer.repoint(db_session, [2], 1)

        assert (first, second) == (2, 0)
        assert await repointer.repoint(db_session, [], 1) == 0

    async def test_household_both_sides(
        self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession
    ) -> None:
        await seed(make_entity(entity_id=1), make_entity(entity_id=2), make_entity(entity_id=3))
        await seed(
            HouseholdRelation(entity_id=2, related_entity_id=3, relation_type="child"),
            HouseholdRelation(entity_id=3, related_entity_id=2, relation_type="parent"),
            HouseholdRelation(entity_id=2, related_entity_id=1, relation_type="spouse"),
        )

        moved = await HouseholdRepointer().repoint(db_session, [2], 1)

        rows = (
            await db_session.execute(
                select(
                    HouseholdRelation.entity_id,
                    HouseholdRelation.related_entity_id,
                    HouseholdRelation.relation_type,
                )
            )
        ).all()
        assert moved == 3
        assert sorted(tuple(row) for row in rows) == [(1, 3, "child"), (3, 1, "parent")]

    async def test_household_duplicates_collapsed(
        self, make_entity: MakeEntity, seed: Seed, db_session: AsyncSession
    ) -> None:
        await seed(
            make_entity(entity_id=1),
            make_entity(entity_id=2),
            make_entity(entity_id=3),
            make_entity(entity_id=4),
        )
        await seed(
            HouseholdRelation(entity_id=1, related_entity_id=3, relation_type="sibling"),
            HouseholdRelation(entity_id=2, related_entity_id=3, relation_type="sibling"),
            HouseholdRelation(entity_id=3, related_entity_id=1, relation_type="sibling"),
            HouseholdRelation(entity_id=3, related_entity_id=2, relation_type="sibling"),
            HouseholdRelation(entity_id=2, related_entity_id=3, relation_type="cousin"),
            HouseholdRelation(entity_id=2, related_entity_id=4, relation_type="sibling"),
            HouseholdRelation(entity_id=4, related_entity_id=3, relation_type="sibling"),
            HouseholdRelation(entity_id=4, related_entity_id=3, relation_type="sibling"),
        )

        await HouseholdRepointer().repoint(db_session, [2], 1)

        rows = (
            await db_session.execute(
                select(
                    HouseholdRelation.entity_id,
                    HouseholdRelation.related_entity_id,
                    HouseholdRelation.relation_type,
                )
            )
        ).all()
        assert sorted(tuple(row) for row in rows) == [
            (1, 3, "cousin"),
            (1, 3, "sibling"),
            (1, 4, "sibling"),
            (3, 1, "sibling"),
            (4, 3, "sibling"),
            (4, 3, "sibling"),
        ]
