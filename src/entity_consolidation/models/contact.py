"""EntityContact model for additional e-mails and phone numbers."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entity_consolidation.models.base import Base

if TYPE_CHECKING:
    from entity_consolidation.models.entity import Entity


class EntityContact(Base):
    """An extra contact value attached to an entity.

    Merges keep the chosen contact in the entity profile and store every other
    distinct value from the group here so nothing is dropped.
    """

    __tablename__ = "entity_contacts"

    contact_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    contact_type: Mapped[str] = mapped_column(String(32))
    value: Mapped[str] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    entity: Mapped[Entity] = relationship(back_populates="contacts")
