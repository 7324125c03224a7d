"""Intervention models for public-works jobs."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Float, Index, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base


class InterventionStatus(enum.StrEnum):
    """Intervention lifecycle states."""

    CREATED = "créée"
    PLANNED = "planifiée"
    IN_PROGRESS = "en_cours"
    COMPLETED = "terminée"
    VALIDATED = "validée"
    CANCELLED = "annulée"


class InterventionPriority(enum.StrEnum):
    """Scheduling priority of an intervention."""

    LOW = "basse"
    NORMAL = "normale"
    HIGH = "haute"
    URGENT = "urgente"


class Intervention(Base):
    """A public-works intervention, costed and validated on completion."""

    __tablename__ = "interventions"
    __table_args__ = (
        Index("ix_interventions_status", "status"),
        Index("ix_interventions_priority", "priority"),
        Index("ix_interventions_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    intervention_type: Mapped[str] = mapped_column(String(128), nullable=False)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[InterventionStatus] = mapped_column(
        Enum(InterventionStatus, values_callable=lambda e: [x.value for x in e]),
        default=InterventionStatus.CREATED,
        nullable=False,
        server_default="créée",
    )
    priority: Mapped[InterventionPriority] = mapped_column(
        Enum(InterventionPriority, values_callable=lambda e: [x.value for x in e]),
        default=InterventionPriority.NORMAL,
        nullable=False,
        server_default="normale",
    )
    planned_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    final_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Intervention(id={self.id}, status={self.status})>"
