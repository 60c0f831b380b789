"""Merge audit log and stale-id redirection.

MergeOperation and RetiredEntity rows are written once, inside the merge
transaction, and never modified afterwards. Resolution therefore walks the
chain hop by hop instead of compressing paths.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entity_consolidation.errors import NotFoundError
from entity_consolidation.models.entity import Entity
from entity_consolidation.models.merge_operation import MergeOperation
from entity_consolidation.models.retired_entity import RetiredEntity

logger = logging.getLogger(__name__)


class AuditLog:
    """Writes merge records and resolves retired ids to their survivors.

    Usage:
        async with session_factory() as session:
            audit = AuditLog(session)
            current_id = await audit.resolve(stale_id)
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def record_merge(
        self,
        *,
        survivor_id: int,
        member_ids: Sequence[int],
        retired_ids: Sequence[int],
        field_resolutions: Mapping[str, Any],
        actor: str,
        reason: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> MergeOperation:
        operation = MergeOperation(
            merge_id=uuid4(),
            survivor_id=survivor_id,
            member_ids=sorted(member_ids),
            retired_ids=sorted(retired_ids),
            field_resolutions=dict(field_resolutions),
            actor=actor,
            reason=reason,
            details=dict(details or {}),
        )
        self._session.add(operation)
        return operation

    def record_retirement(self, entity_id: int, survivor_id: int, merge_id: UUID) -> RetiredEntity:
        retired = RetiredEntity(entity_id=entity_id, survivor_id=survivor_id, merge_id=merge_id)
        self._session.add(retired)
        return retired

    async def resolve(self, entity_id: int) -> int:
        """Follow retirement records until reaching an active entity.

        Raises:
            NotFoundError: unknown id, a missing link in the chain, or a cycle.
        """
        current_id = entity_id
        visited: list[int] = []

        while True:
            if current_id in visited:
                logger.warning("Redirect cycle for %d: %s", entity_id, visited)
                raise NotFoundError(
                    f"Redirect chain for entity {entity_id} loops back to {current_id}",
                    entity_id=entity_id,
                )
            visited.append(current_id)

            entity = await self._session.get(Entity, current_id)
            if entity is None:
                raise NotFoundError(
                    _missing_message(entity_id, current_id),
                    entity_id=entity_id,
                )
            if entity.is_active:
                if len(visited) > 1:
                    logger.debug("Resolved %d -> %d in %d hop(s)", entity_id, current_id, len(visited) - 1)
                return current_id

            retired = await self._session.get(RetiredEntity, current_id)
            operation = (
                await self._session.get(MergeOperation, retired.merge_id) if retired else None
            )
            if operation is None:
                raise NotFoundError(
                    f"Entity {current_id} is retired but has no merge record",
                    entity_id=entity_id,
                )
            current_id = operation.survivor_id

    async def history(self, entity_id: int, *, limit: int = 100) -> list[MergeOperation]:
        """Merges the entity took part in, as survivor or as a retired member, newest first."""
        retired = await self._session.get(RetiredEntity, entity_id)

        condition = MergeOperation.survivor_id == entity_id
        if retired is not None:
            condition = condition | (MergeOperation.merge_id == retired.merge_id)

        stmt = (
            select(MergeOperation)
            .where(condition)
            .order_by(MergeOperation.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


def _missing_message(requested_id: int, current_id: int) -> str:
    if requested_id == current_id:
        return f"Entity {requested_id} not found"
    return f"Redirect chain for entity {requested_id} ends at missing entity {current_id}"
