"""Duplicate group result type."""

from __future__ import annotations

from dataclasses import dataclass

from entity_consolidation.models.enums import GroupKind


@dataclass(frozen=True)
class DuplicateGroup:
    """A set of entities believed to be the same real-world party.

    Transient: computed on demand and never persisted.
    """

    kind: GroupKind
    members: tuple[int, ...]
    """Entity ids, ascending. Always at least two."""

    score: int
    """100 for exact groups; minimum edge weight inside the component for fuzzy groups."""

    key: str | None = None
    """Normalized tax identifier shared by an exact group."""

    @property
    def size(self) -> int:
        return len(self.members)
