"""Pydantic schemas for the HTTP API.

Request bodies are validated here; domain validation (survivor in group,
override sources in group) happens in the merge orchestrator so every
surface reports it the same way.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from entity_consolidation.models.enums import EntityKind, EntityStatus, GroupKind


class DuplicateGroupOut(BaseModel):
    """A candidate set of entities that refer to the same party."""

    model_config = ConfigDict(from_attributes=True)

    kind: GroupKind
    members: list[int] = Field(description="Entity ids, ascending")
    score: int = Field(ge=0, le=100, description="100 for exact groups, minimum edge for fuzzy")
    key: str | None = Field(default=None, description="Normalized tax id for exact groups")


class MergeRequest(BaseModel):
    """Consolidate `group_members` into `survivor_id`."""

    group_members: list[int] = Field(min_length=1)
    survivor_id: int
    field_overrides: dict[str, int] = Field(
        default_factory=dict,
        description="Field name -> id of the member whose value wins",
    )
    actor: str | None = Field(default=None, max_length=128)
    reason: str | None = None


class EntityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_id: int
    kind: EntityKind
    display_name: str
    tax_id: str | None
    profile: dict[str, Any]
    status: EntityStatus
    version: int


class ResolveOut(BaseModel):
    requested_id: int
    entity_id: int
    redirected: bool


class MergeOperationOut(BaseModel):
    """One row of the merge audit log."""

    model_config = ConfigDict(from_attributes=True)

    merge_id: UUID
    survivor_id: int
    member_ids: list[int]
    retired_ids: list[int]
    field_resolutions: dict[str, Any]
    actor: str
    reason: str | None
    details: dict[str, Any]
    created_at: datetime
