"""Repointing of dependent records from retired ids to the survivor.

Each dependent relation type implements one capability, `repoint`. The merge
orchestrator calls every registered repointer once per merge and never
special-cases a relation type, so supporting a new one means registering a
new repointer.

Repointing is idempotent: a second call with the same arguments finds nothing
left to move.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from entity_consolidation.models.contact import EntityContact
from entity_consolidation.models.relations import (
    Document,
    Dossier,
    FinancialTransaction,
    HistoryEntry,
    HouseholdRelation,
    Process,
    Task,
)

logger = logging.getLogger(__name__)


class RelationRepointer(Protocol):
    """Moves every reference to `from_ids` onto `to_id` for one relation type."""

    name: str

    async def repoint(self, session: AsyncSession, from_ids: Sequence[int], to_id: int) -> int:
        """Return the number of references moved."""
        ...


class ColumnRepointer:
    """Repoints one or more entity-id columns of a mapped table with bulk UPDATEs."""

    def __init__(self, name: str, model: type[Any], *columns: str) -> None:
        if not columns:
            msg = f"Repointer {name!r} needs at least one column"
            raise ValueError(msg)
        self.name = name
        self._model = model
        self._columns = columns

    async def repoint(self, session: AsyncSession, from_ids: Sequence[int], to_id: int) -> int:
        if not from_ids:
            return 0

        moved = 0
        for column in self._columns:
            stmt = (
                update(self._model)
                .where(getattr(self._model, column).in_(list(from_ids)))
                .values({column: to_id})
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            moved += result.rowcount or 0  # type: ignore[attr-defined]
        return moved

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, columns={list(self._columns)})"


class HouseholdRepointer(ColumnRepointer):
    """Repoints both sides of household relations.

    A relation between two members of the same group becomes the survivor
    related to itself; those rows are removed. When the survivor and a
    retired member both held the same relation, only the oldest row is kept.
    """

    def __init__(self) -> None:
        super().__init__("household_relations", HouseholdRelation, "entity_id", "related_entity_id")

    async def repoint(self, session: AsyncSession, from_ids: Sequence[int], to_id: int) -> int:
        moved = await super().repoint(session, from_ids, to_id)

        stmt = (
            delete(HouseholdRelation)
            .where(HouseholdRelation.entity_id == to_id)
            .where(HouseholdRelation.related_entity_id == to_id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        removed = result.rowcount or 0  # type: ignore[attr-defined]
        if removed:
            logger.info("Removed %d self-referencing household relation(s) on %d", removed, to_id)

        removed = await self._remove_duplicates(session, to_id)
        if removed:
            logger.info("Removed %d duplicate household relation(s) on %d", removed, to_id)
        return moved

    async def _remove_duplicates(self, session: AsyncSession, entity_id: int) -> int:
        """Keep the lowest relation_id per (entity_id, related_entity_id, relation_type)."""
        kept = aliased(HouseholdRelation)
        keep_ids = (
            select(func.min(kept.relation_id))
            .where(or_(kept.entity_id == entity_id, kept.related_entity_id == entity_id))
            .group_by(kept.entity_id, kept.related_entity_id, kept.relation_type)
        )
        stmt = (
            delete(HouseholdRelation)
            .where(
                or_(
                    HouseholdRelation.entity_id == entity_id,
                    HouseholdRelation.related_entity_id == entity_id,
                )
            )
            .where(HouseholdRelation.relation_id.not_in(keep_ids))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]


def default_repointers() -> list[RelationRepointer]:
    """Repointers for every dependent relation in the case-management system."""
    return [
        ColumnRepointer("dossiers", Dossier, "entity_id"),
        ColumnRepointer("processes", Process, "entity_id"),
        ColumnRepointer("tasks", Task, "entity_id"),
        HouseholdRepointer(),
        ColumnRepointer("financial_transactions", FinancialTransaction, "entity_id"),
        ColumnRepointer("documents", Document, "entity_id"),
        ColumnRepointer("history_entries", HistoryEntry, "entity_id"),
        ColumnRepointer("contacts", EntityContact, "entity_id"),
    ]
