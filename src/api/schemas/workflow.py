"""Pydantic schemas shared by the status workflow endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.core.models import RecordKind


class TransitionRequest(BaseModel):
    """Request to move a record to a new status."""

    status: str = Field(..., min_length=1, max_length=64)
    actor_id: str = Field(..., min_length=1, max_length=255)
    comment: str | None = None


class AttestRequest(BaseModel):
    """Request to attest a record's current content on the ledger."""

    actor_id: str = Field(..., min_length=1, max_length=255)


class HistoryEntryResponse(BaseModel):
    """A single status history entry."""

    id: UUID
    record_kind: RecordKind
    record_id: UUID
    previous_status: str | None = None
    new_status: str
    actor_id: str
    comment: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AttestationResponse(BaseModel):
    """A stored ledger receipt."""

    id: UUID
    record_kind: RecordKind
    record_id: UUID
    content_hash: str
    external_tx_id: str
    block_ref: int | None = None
    external_timestamp: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class TransitionResponse(BaseModel):
    """Outcome of a transition or attestation request."""

    status: str
    record_status: str
    history: HistoryEntryResponse | None = None
    attestation: AttestationResponse | None = None

    @classmethod
    def from_result(cls, result: Any) -> TransitionResponse:
        """Build from a ``TransitionResult`` or an ``AttestationResult``."""
        history = getattr(result, "history", None)
        return cls(
            status=result.outcome.value,
            record_status=str(result.record.status),
            history=HistoryEntryResponse.model_validate(history) if history is not None else None,
            attestation=(
                AttestationResponse.model_validate(result.attestation) if result.attestation is not None else None
            ),
        )


class VerificationResponse(BaseModel):
    """Whether the latest attestation of a record is on the ledger."""

    record_id: UUID
    attested: bool
    content_hash: str | None = None
    external_tx_id: str | None = None
    on_ledger: bool = False
    ledger_timestamp: datetime | None = None
    current_content_matches: bool = False
