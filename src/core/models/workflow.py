"""Workflow models: status history and ledger attestations.

Both tables are shared by every record kind and keyed by
``(record_kind, record_id)``. Rows are append-only; they are removed
only when the owning record is deleted.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, Index, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base


class RecordKind(enum.StrEnum):
    """Kinds of records driven by the status machine."""

    COMPLAINT = "complaint"
    INTERVENTION = "intervention"


class StatusHistoryEntry(Base):
    """One applied status transition (or the creation of a record)."""

    __tablename__ = "status_history"
    __table_args__ = (
        Index("ix_status_history_record", "record_kind", "record_id"),
        Index("ix_status_history_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    record_kind: Mapped[RecordKind] = mapped_column(
        Enum(RecordKind, values_callable=lambda e: [x.value for x in e]), nullable=False
    )
    record_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    new_status: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StatusHistoryEntry(record_id={self.record_id}, "
            f"{self.previous_status} -> {self.new_status})>"
        )


class AttestationRecord(Base):
    """Ledger receipt for one distinct content snapshot of a record."""

    __tablename__ = "attestations"
    __table_args__ = (
        UniqueConstraint("record_id", "content_hash", name="uq_attestations_record_hash"),
        Index("ix_attestations_record", "record_kind", "record_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    record_kind: Mapped[RecordKind] = mapped_column(
        Enum(RecordKind, values_callable=lambda e: [x.value for x in e]), nullable=False
    )
    record_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    external_tx_id: Mapped[str] = mapped_column(String(128), nullable=False)
    block_ref: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    external_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<AttestationRecord(record_id={self.record_id}, tx={self.external_tx_id})>"
