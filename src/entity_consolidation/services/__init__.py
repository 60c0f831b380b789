"""Business logic services for the consolidation engine."""

from entity_consolidation.services.audit import AuditLog
from entity_consolidation.services.engine import ConsolidationEngine
from entity_consolidation.services.locks import EntityLockTable
from entity_consolidation.services.merge import (
    ConsolidationPlan,
    FieldResolution,
    MergeOrchestrator,
    plan_consolidation,
)
from entity_consolidation.services.registry import EntityRepository
from entity_consolidation.services.repointing import (
    ColumnRepointer,
    HouseholdRepointer,
    RelationRepointer,
    default_repointers,
)

__all__ = [
    "AuditLog",
    "ColumnRepointer",
    "ConsolidationEngine",
    "ConsolidationPlan",
    "default_repointers",
    "EntityLockTable",
    "EntityRepository",
    "FieldResolution",
    "HouseholdRepointer",
    "MergeOrchestrator",
    "plan_consolidation",
    "RelationRepointer",
]
