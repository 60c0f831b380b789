"""Entity model for customer registry records."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entity_consolidation.models.base import Base
from entity_consolidation.models.enums import EntityKind, EntityStatus

if TYPE_CHECKING:
    from entity_consolidation.models.contact import EntityContact

# Columns that live on the row itself; everything else is in `profile`.
CORE_FIELDS = ("kind", "display_name", "tax_id")


class Entity(Base):
    """A customer record: an individual or an organization.

    `entity_id` is stable and never reused. `tax_id` is stored raw; uniqueness
    only holds after normalization and only among active entities, which is
    exactly what the exact-key detector checks.
    """

    __tablename__ = "entities"

    entity_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    kind: Mapped[EntityKind] = mapped_column(default=EntityKind.INDIVIDUAL)
    display_name: Mapped[str] = mapped_column(String(512), default="")
    tax_id: Mapped[str | None] = mapped_column(String(64), index=True)
    profile: Mapped[dict[str, Any]] = mapped_column(default=dict)
    """Opaque profile fields (contacts, addresses, credentials, flags...)."""

    status: Mapped[EntityStatus] = mapped_column(default=EntityStatus.ACTIVE, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    """Optimistic lock counter, bumped by SQLAlchemy on every UPDATE."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    contacts: Mapped[list[EntityContact]] = relationship(back_populates="entity")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE

    def field_values(self) -> dict[str, Any]:
        """Flatten core columns and profile into one field map."""
        values: dict[str, Any] = {
            "kind": self.kind.value if self.kind is not None else None,
            "display_name": self.display_name,
            "tax_id": self.tax_id,
        }
        for key, value in (self.profile or {}).items():
            if key not in values:
                values[key] = value
        return values
