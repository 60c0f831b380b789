"""Dependent records that reference registry entities by id.

These tables belong to other parts of the case-management system (case
files, legal processes, tasks, household, finance, documents, history). The
engine does not own their content; it only repoints their entity references
during a merge.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from entity_consolidation.models.base import Base

_PkType = BigInteger().with_variant(Integer, "sqlite")


class Dossier(Base):
    """A case file opened for an entity."""

    __tablename__ = "dossiers"

    dossier_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="")


class Process(Base):
    """A legal or tax process handled for an entity."""

    __tablename__ = "processes"

    process_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(32), default="open")


class Task(Base):
    __tablename__ = "tasks"

    task_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="")


class HouseholdRelation(Base):
    """Family link between two entities (spouse, child, parent, sibling)."""

    __tablename__ = "household_relations"

    relation_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    related_entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    relation_type: Mapped[str] = mapped_column(String(32))


class FinancialTransaction(Base):
    __tablename__ = "financial_transactions"

    transaction_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    description: Mapped[str] = mapped_column(String(255), default="")


class Document(Base):
    """An uploaded document filed under an entity."""

    __tablename__ = "documents"

    document_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    filename: Mapped[str] = mapped_column(String(512), default="")


class HistoryEntry(Base):
    """Activity/history log line about an entity."""

    __tablename__ = "history_entries"

    entry_id: Mapped[int] = mapped_column(_PkType, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(ForeignKey("entities.entity_id"), index=True)
    action: Mapped[str] = mapped_column(String(64))
    details: Mapped[dict[str, Any]] = mapped_column(default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
