"""RetiredEntity model: permanent redirect from a merged-away id."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from entity_consolidation.models.base import Base

_EntityIdType = BigInteger().with_variant(Integer, "sqlite")


class RetiredEntity(Base):
    """Records that an entity was retired by a merge and who survived it.

    Rows are written once, inside the merge transaction, and never updated or
    deleted. A survivor may itself be retired later, so resolving an old id can
    take several hops.
    """

    __tablename__ = "retired_entities"

    entity_id: Mapped[int] = mapped_column(
        _EntityIdType, ForeignKey("entities.entity_id"), primary_key=True
    )
    survivor_id: Mapped[int] = mapped_column(_EntityIdType, index=True)
    merge_id: Mapped[UUID] = mapped_column(ForeignKey("merge_operations.merge_id"), index=True)
    retired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
