"""Merge orchestration: consolidate a duplicate group into one survivor.

A merge is one database transaction:
1. Lock every member id (ascending) and load the rows
2. Validate: all members exist and are still active
3. Compute the consolidated field set
4. Write it onto the survivor
5. Repoint every dependent relation from retired ids to the survivor
6. Retire the other members and write the audit record

Any failure in 3-6 rolls the whole transaction back, leaving storage exactly
as it was before the call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from entity_consolidation.config import settings
from entity_consolidation.errors import (
    ConcurrencyError,
    ConsolidationError,
    NotFoundError,
    PartialDependencyFailure,
    StaleGroupError,
    ValidationError,
)
from entity_consolidation.models.contact import EntityContact
from entity_consolidation.models.entity import CORE_FIELDS, Entity
from entity_consolidation.models.enums import ResolutionRule
from entity_consolidation.services.audit import AuditLog
from entity_consolidation.services.locks import EntityLockTable
from entity_consolidation.services.registry import EntityRepository, is_empty_value
from entity_consolidation.services.repointing import RelationRepointer, default_repointers

logger = logging.getLogger(__name__)

CONCATENATION_SEPARATOR = "\n---\n"


@dataclass
class FieldResolution:
    """How one field of the survivor was decided."""

    value: Any
    source: int | list[int] | None
    rule: ResolutionRule

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "rule": self.rule.value}


@dataclass
class ConsolidationPlan:
    """Consolidated field set plus the extra contacts to keep."""

    fields: dict[str, Any]
    resolutions: dict[str, FieldResolution]
    extra_contacts: list[tuple[str, str]] = field(default_factory=list)
    """(contact_type, value) pairs for multi-value fields."""


def plan_consolidation(
    members: Mapping[int, Entity],
    survivor_id: int,
    field_overrides: Mapping[str, int] | None = None,
    *,
    multi_value_fields: Iterable[str] = (),
    concatenated_fields: Iterable[str] = (),
) -> ConsolidationPlan:
    """Decide the survivor's value for every field present on any member.

    Policy per field:
    - override: the value held by the member named in `field_overrides`
    - concatenated fields: distinct non-empty values, survivor first then
      ascending id, joined with CONCATENATION_SEPARATOR
    - otherwise the survivor's non-empty value, else the first non-empty
      value among the other members by ascending id

    For multi-value fields every other distinct non-empty value becomes an
    extra contact.
    """
    overrides = dict(field_overrides or {})
    multi_value = set(multi_value_fields)
    concatenated = set(concatenated_fields)

    values = {entity_id: members[entity_id].field_values() for entity_id in sorted(members)}
    order = [survivor_id, *(entity_id for entity_id in sorted(members) if entity_id != survivor_id)]

    present: set[str] = set(overrides)
    for field_values in values.values():
        present.update(field_values)
    field_names = [name for name in CORE_FIELDS if name in present]
    field_names += sorted(present - set(CORE_FIELDS))

    plan = ConsolidationPlan(fields={}, resolutions={})

    for name in field_names:
        if name in overrides:
            source = overrides[name]
            resolution = FieldResolution(values[source].get(name), source, ResolutionRule.OVERRIDE)
        elif name in concatenated:
            resolution = _concatenate(name, values, order)
        else:
            resolution = _first_non_empty(name, values, order, survivor_id)

        plan.fields[name] = resolution.value
        plan.resolutions[name] = resolution

        if name in multi_value:
            seen = {str(resolution.value).strip()} if not is_empty_value(resolution.value) else set()
            for entity_id in order:
                value = values[entity_id].get(name)
                if is_empty_value(value):
                    continue
                text = str(value).strip()
                if text not in seen:
                    seen.add(text)
                    plan.extra_contacts.append((name, text))

    return plan


def _first_non_empty(
    name: str,
    values: Mapping[int, dict[str, Any]],
    order: Sequence[int],
    survivor_id: int,
) -> FieldResolution:
    for entity_id in order:
        value = values[entity_id].get(name)
        if not is_empty_value(value):
            rule = ResolutionRule.SURVIVOR if entity_id == survivor_id else ResolutionRule.FALLBACK
            return FieldResolution(value, entity_id, rule)
    return FieldResolution(values[survivor_id].get(name), None, ResolutionRule.EMPTY)


def _concatenate(
    name: str,
    values: Mapping[int, dict[str, Any]],
    order: Sequence[int],
) -> FieldResolution:
    parts: list[str] = []
    sources: list[int] = []
    for entity_id in order:
        value = values[entity_id].get(name)
        if is_empty_value(value):
            continue
        text = str(value).strip()
        if text not in parts:
            parts.append(text)
            sources.append(entity_id)
    if not parts:
        return FieldResolution(None, None, ResolutionRule.EMPTY)
    return FieldResolution(CONCATENATION_SEPARATOR.join(parts), sources, ResolutionRule.CONCATENATED)


class MergeOrchestrator:
    """Executes merges as single atomic transactions.

    The orchestrator owns the transaction boundary, so it takes a session
    factory rather than a session.

    Usage:
        orchestrator = MergeOrchestrator(session_factory)
        survivor = await orchestrator.merge({1, 2}, survivor_id=1)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        repointers: Sequence[RelationRepointer] | None = None,
        lock_table: EntityLockTable | None = None,
        lock_timeout: float | None = None,
        multi_value_fields: Iterable[str] | None = None,
        concatenated_fields: Iterable[str] | None = None,
        default_actor: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repointers = list(repointers) if repointers is not None else default_repointers()
        self._locks = lock_table or EntityLockTable()
        self._lock_timeout = (
            settings.merge_lock_timeout_seconds if lock_timeout is None else lock_timeout
        )
        self._multi_value_fields = tuple(
            settings.multi_value_fields if multi_value_fields is None else multi_value_fields
        )
        self._concatenated_fields = tuple(
            settings.concatenated_fields if concatenated_fields is None else concatenated_fields
        )
        self._default_actor = default_actor or settings.default_actor

    async def merge(
        self,
        group_members: Iterable[int],
        survivor_id: int,
        field_overrides: Mapping[str, int] | None = None,
        *,
        actor: str | None = None,
        reason: str | None = None,
    ) -> Entity:
        """Merge `group_members` into `survivor_id`.

        Returns:
            The consolidated survivor.

        Raises:
            ValidationError: fewer than two members, survivor or override
                source outside the group.
            NotFoundError: a member id does not exist.
            StaleGroupError: a member is already retired.
            ConcurrencyError: another merge holds a member, or a row changed
                underneath this transaction.
            PartialDependencyFailure: a repointer failed (rolled back).
        """
        member_ids = _validate_request(group_members, survivor_id, field_overrides)
        overrides = dict(field_overrides or {})

        async with self._locks.acquire(member_ids, timeout=self._lock_timeout):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        survivor, operation_id = await self._merge_locked(
                            session,
                            member_ids,
                            survivor_id,
                            overrides,
                            actor=actor or self._default_actor,
                            reason=reason,
                        )
            except StaleDataError as exc:
                logger.warning("Merge into %d hit a concurrent update: %s", survivor_id, exc)
                raise ConcurrencyError(
                    f"An entity in group {member_ids} was modified concurrently",
                    member_ids=member_ids,
                ) from exc

        logger.info(
            "Merged %s into %d (merge %s)",
            [entity_id for entity_id in member_ids if entity_id != survivor_id],
            survivor_id,
            operation_id,
        )
        return survivor

    async def _merge_locked(
        self,
        session: AsyncSession,
        member_ids: list[int],
        survivor_id: int,
        overrides: dict[str, int],
        *,
        actor: str,
        reason: str | None,
    ) -> tuple[Entity, Any]:
        repo = EntityRepository(session)
        audit = AuditLog(session)

        members = await repo.lock_members(member_ids)
        missing = [entity_id for entity_id in member_ids if entity_id not in members]
        if missing:
            raise NotFoundError(f"Entities not found: {missing}", entity_id=missing[0])

        retired_already = [entity_id for entity_id in member_ids if not members[entity_id].is_active]
        if retired_already:
            logger.warning("Stale merge group %s: %s already retired", member_ids, retired_already)
            raise StaleGroupError(
                f"Entities already retired: {retired_already}; recompute the group",
                retired_ids=retired_already,
            )

        retired_ids = [entity_id for entity_id in member_ids if entity_id != survivor_id]
        survivor = members[survivor_id]

        plan = plan_consolidation(
            members,
            survivor_id,
            overrides,
            multi_value_fields=self._multi_value_fields,
            concatenated_fields=self._concatenated_fields,
        )
        repo.write_fields(survivor, plan.fields)
        await session.flush()

        repoint_counts: dict[str, int] = {}
        for repointer in self._repointers:
            try:
                repoint_counts[repointer.name] = await repointer.repoint(
                    session, retired_ids, survivor_id
                )
            except ConsolidationError:
                raise
            except Exception as exc:
                logger.warning("Repointing %s failed during merge into %d", repointer.name, survivor_id)
                raise PartialDependencyFailure(
                    f"Repointing {repointer.name} failed: {exc}",
                    collaborator=repointer.name,
                ) from exc
            logger.debug("Repointed %d %s reference(s)", repoint_counts[repointer.name], repointer.name)

        contacts_added = await self._add_extra_contacts(session, survivor_id, plan.extra_contacts)

        operation = audit.record_merge(
            survivor_id=survivor_id,
            member_ids=member_ids,
            retired_ids=retired_ids,
            field_resolutions={name: res.to_dict() for name, res in plan.resolutions.items()},
            actor=actor,
            reason=reason,
            details={"repointed": repoint_counts, "contacts_added": contacts_added},
        )
        await session.flush()

        for entity_id in retired_ids:
            repo.retire(members[entity_id])
            audit.record_retirement(entity_id, survivor_id, operation.merge_id)
        await session.flush()

        await session.refresh(survivor)
        return survivor, operation.merge_id

    async def _add_extra_contacts(
        self,
        session: AsyncSession,
        survivor_id: int,
        contacts: list[tuple[str, str]],
    ) -> list[dict[str, str]]:
        """Attach contacts the survivor does not already have."""
        if not contacts:
            return []

        stmt = select(EntityContact.contact_type, EntityContact.value).where(
            EntityContact.entity_id == survivor_id
        )
        existing = {(row[0], row[1]) for row in (await session.execute(stmt)).all()}

        added: list[dict[str, str]] = []
        for contact_type, value in contacts:
            if (contact_type, value) in existing:
                continue
            existing.add((contact_type, value))
            session.add(EntityContact(entity_id=survivor_id, contact_type=contact_type, value=value))
            added.append({"type": contact_type, "value": value})
        return added


def _validate_request(
    group_members: Iterable[int],
    survivor_id: int,
    field_overrides: Mapping[str, int] | None,
) -> list[int]:
    member_ids = sorted(set(group_members))
    if len(member_ids) < 2:
        raise ValidationError(
            f"A merge needs at least two distinct members, got {member_ids}",
            member_ids=member_ids,
        )
    if survivor_id not in member_ids:
        raise ValidationError(
            f"Survivor {survivor_id} is not a member of group {member_ids}",
            member_ids=member_ids,
            survivor_id=survivor_id,
        )
    for name, source in (field_overrides or {}).items():
        if source not in member_ids:
            raise ValidationError(
                f"Override for field {name!r} names entity {source}, which is not in the group",
                field=name,
                source=source,
            )
    return member_ids
