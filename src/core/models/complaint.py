"""Complaint ("doléance") models for citizen-reported issues."""

from __future__ import annotations

import enum
import secrets
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Index, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base


class ComplaintStatus(enum.StrEnum):
    """Complaint lifecycle states."""

    RECEIVED = "reçue"
    QUALIFIED = "qualifiée"
    ASSIGNED = "assignée"
    PLANNED = "planifiée"
    IN_PROGRESS = "en_cours"
    RESOLVED = "résolue"
    CLOSED = "clôturée"
    REJECTED = "rejetée"


class ComplaintUrgency(enum.StrEnum):
    """How urgently a complaint should be handled."""

    LOW = "basse"
    NORMAL = "normale"
    HIGH = "élevée"
    CRITICAL = "critique"


class NoteVisibility(enum.StrEnum):
    """Who may read a complaint note."""

    INTERNAL = "interne"
    PUBLIC = "publique"


def generate_tracking_number(now: datetime) -> str:
    """Build the public tracking number handed to the citizen (DOL-2026-3FA9C1)."""
    return f"DOL-{now.year}-{secrets.token_hex(3).upper()}"


class Complaint(Base):
    """A citizen complaint tracked from reception to closure."""

    __tablename__ = "complaints"
    __table_args__ = (
        Index("ix_complaints_status", "status"),
        Index("ix_complaints_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tracking_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    urgency: Mapped[ComplaintUrgency] = mapped_column(
        Enum(ComplaintUrgency, values_callable=lambda e: [x.value for x in e]),
        default=ComplaintUrgency.NORMAL,
        nullable=False,
        server_default="normale",
    )
    status: Mapped[ComplaintStatus] = mapped_column(
        Enum(ComplaintStatus, values_callable=lambda e: [x.value for x in e]),
        default=ComplaintStatus.RECEIVED,
        nullable=False,
        server_default="reçue",
    )
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Citizen contact details are never stored for anonymous complaints
    citizen_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    citizen_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    citizen_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    citizen_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    resolution_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    linked_intervention_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("interventions.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Complaint(id={self.id}, tracking_number={self.tracking_number}, status={self.status})>"


class ComplaintAssignment(Base):
    """An agent in charge of a complaint."""

    __tablename__ = "complaint_assignments"
    __table_args__ = (UniqueConstraint("complaint_id", "agent_id", name="uq_complaint_assignments_agent"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    complaint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[str] = mapped_column(String(255), nullable=False)
    assigned_by: Mapped[str] = mapped_column(String(255), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ComplaintNote(Base):
    """A comment on a complaint: internal for agents, or a public answer to the citizen."""

    __tablename__ = "complaint_notes"
    __table_args__ = (Index("ix_complaint_notes_complaint", "complaint_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    complaint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False
    )
    visibility: Mapped[NoteVisibility] = mapped_column(
        Enum(NoteVisibility, values_callable=lambda e: [x.value for x in e]), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<ComplaintNote(complaint_id={self.complaint_id}, visibility={self.visibility})>"
