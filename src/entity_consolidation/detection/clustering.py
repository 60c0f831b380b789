"""Fuzzy duplicate clustering over a name-similarity graph.

Every candidate pair of active entities with non-empty normalized names is
scored; pairs at or above the threshold become edges, and each connected
component with two or more members is reported as one group.

Components are transitive: A~B and B~C put A and C in the same group even when
A and C are not similar to each other. The reported group score is the
minimum edge weight inside the component, a conservative bound on how alike
the group is.

With blocking "none" (the default) every pair is compared. The other
strategies only score pairs that share a bucket key; they are faster but can
miss a match whose tokens differ in their first characters.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import defaultdict
from collections.abc import Iterator, Sequence

from entity_consolidation.detection.groups import DuplicateGroup
from entity_consolidation.detection.normalizer import blocking_keys, normalize_name
from entity_consolidation.detection.similarity import NameScorer, NameSimilarityScorer
from entity_consolidation.errors import ValidationError
from entity_consolidation.models.entity import Entity
from entity_consolidation.models.enums import GroupKind

logger = logging.getLogger(__name__)

MIN_THRESHOLD = 50
MAX_THRESHOLD = 100


def validate_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValidationError(f"Threshold must be an integer, got {threshold!r}", threshold=threshold)
    if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
        raise ValidationError(
            f"Threshold must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}, got {threshold}",
            threshold=threshold,
        )
    return threshold


class _UnionFind:
    """Union-Find with path compression."""

    def __init__(self) -> None:
        self._parent: dict[int, int] = {}

    def find(self, item: int) -> int:
        if item not in self._parent:
            self._parent[item] = item
            return item
        if self._parent[item] != item:
            self._parent[item] = self.find(self._parent[item])
        return self._parent[item]

    def union(self, left: int, right: int) -> None:
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left == root_right:
            return
        # Smaller id becomes the root so roots are stable across runs
        if root_right < root_left:
            root_left, root_right = root_right, root_left
        self._parent[root_right] = root_left

    def groups(self) -> dict[int, list[int]]:
        grouped: dict[int, list[int]] = defaultdict(list)
        for item in list(self._parent):
            grouped[self.find(item)].append(item)
        return grouped


class FuzzyClusterBuilder:
    """Builds fuzzy duplicate groups at a caller-supplied threshold.

    The build is cooperative: it yields to the event loop every
    `yield_every` comparisons, so cancelling the awaiting task (or an
    enclosing asyncio.timeout) stops it between comparisons. It has no side
    effects, so a cancelled build leaves nothing behind.

    Usage:
        builder = FuzzyClusterBuilder()
        groups = await builder.build(entities, threshold=85)
    """

    def __init__(
        self,
        scorer: NameScorer | None = None,
        *,
        blocking: str = "none",
        yield_every: int = 500,
    ) -> None:
        self._scorer = scorer or NameSimilarityScorer()
        self._blocking = blocking
        self._yield_every = max(1, yield_every)

    async def build(self, entities: Sequence[Entity], threshold: int) -> list[DuplicateGroup]:
        validate_threshold(threshold)

        names: dict[int, str] = {}
        for entity in entities:
            if not entity.is_active:
                continue
            name = normalize_name(entity.display_name)
            if name:
                names[entity.entity_id] = name

        uf = _UnionFind()
        edges: list[tuple[int, int, int]] = []
        comparisons = 0

        for left_id, right_id in self._candidate_pairs(names):
            comparisons += 1
            if comparisons % self._yield_every == 0:
                await asyncio.sleep(0)

            score = self._scorer(names[left_id], names[right_id])
            if score >= threshold:
                uf.union(left_id, right_id)
                edges.append((left_id, right_id, score))

        min_scores: dict[int, int] = {}
        for left_id, _, score in edges:
            root = uf.find(left_id)
            min_scores[root] = min(score, min_scores.get(root, score))

        groups = [
            DuplicateGroup(
                kind=GroupKind.FUZZY,
                members=tuple(sorted(members)),
                score=min_scores[root],
            )
            for root, members in uf.groups().items()
            if len(members) >= 2
        ]
        groups.sort(key=lambda group: group.members)

        logger.info(
            "Fuzzy detection at threshold %d: %d names, %d comparisons, %d edges, %d groups",
            threshold,
            len(names),
            comparisons,
            len(edges),
            len(groups),
        )
        return groups

    def _candidate_pairs(self, names: dict[int, str]) -> Iterator[tuple[int, int]]:
        """Yield each unordered pair (low id, high id) at most once."""
        if self._blocking == "none":
            yield from itertools.combinations(sorted(names), 2)
            return

        buckets: dict[str, list[int]] = defaultdict(list)
        for entity_id in sorted(names):
            for key in blocking_keys(names[entity_id], self._blocking):
                buckets[key].append(entity_id)

        seen: set[tuple[int, int]] = set()
        for key in sorted(buckets):
            for pair in itertools.combinations(buckets[key], 2):
                if pair not in seen:
                    seen.add(pair)
                    yield pair
