"""Database models for the entity registry and merge audit trail."""

from entity_consolidation.models.base import Base
from entity_consolidation.models.contact import EntityContact
from entity_consolidation.models.entity import CORE_FIELDS, Entity
from entity_consolidation.models.enums import (
    EntityKind,
    EntityStatus,
    GroupKind,
    ResolutionRule,
)
from entity_consolidation.models.merge_operation import MergeOperation
from entity_consolidation.models.relations import (
    Document,
    Dossier,
    FinancialTransaction,
    HistoryEntry,
    HouseholdRelation,
    Process,
    Task,
)
from entity_consolidation.models.retired_entity import RetiredEntity

__all__ = [
    "Base",
    "CORE_FIELDS",
    "Document",
    "Dossier",
    "Entity",
    "EntityContact",
    "EntityKind",
    "EntityStatus",
    "FinancialTransaction",
    "GroupKind",
    "HistoryEntry",
    "HouseholdRelation",
    "MergeOperation",
    "Process",
    "ResolutionRule",
    "RetiredEntity",
    "Task",
]
