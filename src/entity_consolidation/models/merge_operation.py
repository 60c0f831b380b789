"""MergeOperation model: the audit record of a completed merge."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from entity_consolidation.models.base import Base


class MergeOperation(Base):
    """One row per successful merge. Immutable once written, never deleted.

    Failed merges leave no row: the record is written in the same transaction
    as the consolidation itself.
    """

    __tablename__ = "merge_operations"

    merge_id: Mapped[UUID] = mapped_column(primary_key=True)
    survivor_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), index=True)

    member_ids: Mapped[list[int]] = mapped_column(default=list)
    """Every id in the merged group, ascending."""

    retired_ids: Mapped[list[int]] = mapped_column(default=list)
    """Group members other than the survivor, ascending."""

    field_resolutions: Mapped[dict[str, Any]] = mapped_column(default=dict)
    """Per field: {"source": id | [ids] | None, "rule": ResolutionRule}."""

    actor: Mapped[str] = mapped_column(String(128))
    reason: Mapped[str | None] = mapped_column(String(1024))

    details: Mapped[dict[str, Any]] = mapped_column(default=dict)
    """Repoint counts per collaborator, contacts preserved, etc."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
