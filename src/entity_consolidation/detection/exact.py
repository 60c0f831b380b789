"""Exact-key duplicate detection on normalized tax identifiers."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from entity_consolidation.detection.groups import DuplicateGroup
from entity_consolidation.detection.normalizer import normalize_identifier
from entity_consolidation.models.entity import Entity
from entity_consolidation.models.enums import GroupKind

logger = logging.getLogger(__name__)

EXACT_SCORE = 100


def find_exact_groups(entities: Iterable[Entity]) -> list[DuplicateGroup]:
    """Partition active entities by normalized tax id.

    Keys that normalize to "" and keys held by a single entity are dropped.
    Groups are ordered by their smallest member id and members ascend, so
    repeated calls on unchanged data return identical results. Each entity
    has one key, so no entity appears in two groups.
    """
    buckets: dict[str, list[int]] = defaultdict(list)
    for entity in entities:
        if not entity.is_active:
            continue
        key = normalize_identifier(entity.tax_id)
        if key:
            buckets[key].append(entity.entity_id)

    groups = [
        DuplicateGroup(
            kind=GroupKind.EXACT,
            members=tuple(sorted(ids)),
            score=EXACT_SCORE,
            key=key,
        )
        for key, ids in buckets.items()
        if len(ids) >= 2
    ]
    groups.sort(key=lambda group: group.members)

    logger.debug("Exact-key detection: %d keys, %d groups", len(buckets), len(groups))
    return groups
