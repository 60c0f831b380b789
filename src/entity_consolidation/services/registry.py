"""Narrow repository onto the entity registry.

The registry itself (create/update/delete of entities) belongs to another
subsystem. The engine reads active entities, writes consolidated fields onto a
survivor and retires the other group members, nothing else.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from entity_consolidation.models.entity import Entity
from entity_consolidation.models.enums import EntityKind, EntityStatus

RegistryFingerprint = tuple[int, int, int, str]
"""(active count, max active id, sum of versions, newest updated_at)."""


def is_empty_value(value: object) -> bool:
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return not value
    return False


class EntityRepository:
    """Registry access for detection and merge.

    Usage:
        async with session_factory() as session:
            repo = EntityRepository(session)
            entities = await repo.list_active()
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_active(self) -> list[Entity]:
        """All active entities, ascending by id."""
        stmt = (
            select(Entity)
            .where(Entity.status == EntityStatus.ACTIVE)
            .order_by(Entity.entity_id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get(self, entity_id: int) -> Entity | None:
        return await self._session.get(Entity, entity_id)

    async def lock_members(self, entity_ids: Iterable[int]) -> dict[int, Entity]:
        """Load group members for a merge, ascending by id.

        Uses SELECT ... FOR UPDATE so rows stay locked for the rest of the
        transaction on databases that support row locks (a no-op on SQLite).
        """
        ids = sorted(set(entity_ids))
        stmt = (
            select(Entity)
            .where(Entity.entity_id.in_(ids))
            .order_by(Entity.entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return {entity.entity_id: entity for entity in result.scalars().all()}

    async def fingerprint(self) -> RegistryFingerprint:
        """Summary of the active set that changes on any create, update or retire."""
        stmt = select(
            func.count(Entity.entity_id),
            func.coalesce(func.max(Entity.entity_id), 0),
            func.coalesce(func.sum(Entity.version), 0),
            func.max(Entity.updated_at),
        ).where(Entity.status == EntityStatus.ACTIVE)
        count, max_id, version_sum, updated = (await self._session.execute(stmt)).one()
        return int(count), int(max_id), int(version_sum), str(updated)

    def write_fields(self, entity: Entity, fields: Mapping[str, Any]) -> None:
        """Replace the entity's field set with a consolidated one."""
        profile: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "kind":
                if not is_empty_value(value):
                    entity.kind = EntityKind(value)
            elif name == "display_name":
                entity.display_name = "" if value is None else str(value)
            elif name == "tax_id":
                entity.tax_id = None if is_empty_value(value) else str(value)
            else:
                profile[name] = value
        entity.profile = profile

    def retire(self, entity: Entity) -> None:
        entity.status = EntityStatus.RETIRED
