"""Enumerations for the registry data model."""

from enum import Enum


class EntityKind(str, Enum):
    """Legal nature of a registry entity."""

    INDIVIDUAL = "individual"
    ORGANIZATION = "organization"


class EntityStatus(str, Enum):
    """Lifecycle status of an Entity.

    The registry creates, updates and deletes ACTIVE entities. The engine only
    ever moves an entity from ACTIVE to RETIRED, as a side effect of a merge.
    """

    ACTIVE = "active"
    RETIRED = "retired"


class GroupKind(str, Enum):
    """How a duplicate group was detected."""

    EXACT = "exact"  # Shared normalized tax identifier
    FUZZY = "fuzzy"  # Connected by name similarity edges


class ResolutionRule(str, Enum):
    """Which rule picked the consolidated value of a field."""

    OVERRIDE = "override"  # Caller chose the source explicitly
    SURVIVOR = "survivor"  # Survivor already had a non-empty value
    FALLBACK = "fallback"  # First non-empty value among the others, ascending id
    CONCATENATED = "concatenated"  # Distinct values from all members joined
    EMPTY = "empty"  # No member had a value
