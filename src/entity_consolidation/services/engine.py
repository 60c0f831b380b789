"""ConsolidationEngine: the single entry point for detection, merge and resolve.

The engine owns a session factory, the per-entity lock table and a cache of
fuzzy results. Cached groups are keyed by threshold and stamped with a
registry fingerprint; any entity create, update or retire changes the
fingerprint, so a stale cache entry is never served.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entity_consolidation.config import settings
from entity_consolidation.detection.clustering import FuzzyClusterBuilder, validate_threshold
from entity_consolidation.detection.exact import find_exact_groups
from entity_consolidation.detection.groups import DuplicateGroup
from entity_consolidation.detection.similarity import NameScorer, NameSimilarityScorer
from entity_consolidation.errors import DetectionTimeoutError
from entity_consolidation.models.entity import Entity
from entity_consolidation.models.merge_operation import MergeOperation
from entity_consolidation.services.audit import AuditLog
from entity_consolidation.services.locks import EntityLockTable
from entity_consolidation.services.merge import MergeOrchestrator
from entity_consolidation.services.registry import EntityRepository, RegistryFingerprint
from entity_consolidation.services.repointing import RelationRepointer

logger = logging.getLogger(__name__)


class ConsolidationEngine:
    """Detects duplicate groups and consolidates them.

    Usage:
        engine = ConsolidationEngine(async_session_factory)
        groups = await engine.find_fuzzy_groups(threshold=85)
        survivor = await engine.merge(groups[0].members, survivor_id=groups[0].members[0])
        current_id = await engine.resolve(stale_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        repointers: Sequence[RelationRepointer] | None = None,
        lock_table: EntityLockTable | None = None,
        scorer: NameScorer | None = None,
        lock_timeout: float | None = None,
        detection_timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = lock_table or EntityLockTable()
        self._detection_timeout = (
            settings.detection_timeout_seconds if detection_timeout is None else detection_timeout
        )
        self._clusters = FuzzyClusterBuilder(
            scorer or NameSimilarityScorer(settings.fuzzy_metric),
            blocking=settings.fuzzy_blocking,
            yield_every=settings.fuzzy_yield_every,
        )
        self._orchestrator = MergeOrchestrator(
            session_factory,
            repointers=repointers,
            lock_table=self._locks,
            lock_timeout=lock_timeout,
        )
        self._fuzzy_cache: dict[int, tuple[RegistryFingerprint, list[DuplicateGroup]]] = {}

    async def find_exact_groups(self) -> list[DuplicateGroup]:
        """Groups of active entities sharing a normalized tax identifier."""
        try:
            async with asyncio.timeout(self._detection_timeout):
                async with self._session_factory() as session:
                    entities = await EntityRepository(session).list_active()
                return find_exact_groups(entities)
        except TimeoutError as exc:
            raise self._timeout_error("exact") from exc

    async def find_fuzzy_groups(self, threshold: int | None = None) -> list[DuplicateGroup]:
        """Groups of active entities with similar names, at `threshold` (50-100)."""
        if threshold is None:
            threshold = settings.default_fuzzy_threshold
        validate_threshold(threshold)

        try:
            async with asyncio.timeout(self._detection_timeout):
                return await self._fuzzy_groups(threshold)
        except TimeoutError as exc:
            raise self._timeout_error("fuzzy") from exc

    async def _fuzzy_groups(self, threshold: int) -> list[DuplicateGroup]:
        async with self._session_factory() as session:
            repo = EntityRepository(session)
            fingerprint = await repo.fingerprint()

            cached = self._fuzzy_cache.get(threshold)
            if cached is not None and cached[0] == fingerprint:
                logger.debug("Fuzzy cache hit at threshold %d", threshold)
                return list(cached[1])

            entities: list[Entity] = await repo.list_active()

        groups = await self._clusters.build(entities, threshold)
        self._fuzzy_cache[threshold] = (fingerprint, groups)
        return list(groups)

    def invalidate_cache(self) -> None:
        self._fuzzy_cache.clear()

    async def merge(
        self,
        group_members: Iterable[int],
        survivor_id: int,
        field_overrides: Mapping[str, int] | None = None,
        *,
        actor: str | None = None,
        reason: str | None = None,
    ) -> Entity:
        """Atomically merge a group into `survivor_id`. See MergeOrchestrator.merge."""
        survivor = await self._orchestrator.merge(
            group_members,
            survivor_id,
            field_overrides,
            actor=actor,
            reason=reason,
        )
        self.invalidate_cache()
        return survivor

    async def resolve(self, entity_id: int) -> int:
        """Current surviving id for any id ever issued."""
        async with self._session_factory() as session:
            return await AuditLog(session).resolve(entity_id)

    async def merge_history(self, entity_id: int, *, limit: int = 100) -> list[MergeOperation]:
        async with self._session_factory() as session:
            return await AuditLog(session).history(entity_id, limit=limit)

    def _timeout_error(self, detection: str) -> DetectionTimeoutError:
        logger.warning(
            "%s detection exceeded %.1fs", detection.capitalize(), self._detection_timeout
        )
        return DetectionTimeoutError(
            f"{detection.capitalize()} detection did not finish within {self._detection_timeout}s",
            detection=detection,
            timeout_seconds=self._detection_timeout,
        )
