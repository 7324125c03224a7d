"""Pydantic schemas for intervention endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.models import InterventionPriority, InterventionStatus
from src.workflow.policy import INTERVENTION_POLICY


class InterventionCreate(BaseModel):
    """Schema for scheduling an intervention."""

    title: str = Field(..., min_length=1, max_length=512)
    description: str = Field(..., min_length=1)
    intervention_type: str = Field(..., min_length=1, max_length=128)
    address: str | None = Field(default=None, max_length=512)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    status: InterventionStatus = InterventionStatus.CREATED
    priority: InterventionPriority = InterventionPriority.NORMAL
    planned_date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    estimated_cost: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    created_by: str = Field(..., min_length=1, max_length=255)

    @field_validator("status")
    @classmethod
    def reject_attested_initial_status(cls, v: InterventionStatus) -> InterventionStatus:
        """An intervention cannot be born validated: that status needs a ledger attestation."""
        if INTERVENTION_POLICY.is_attested(v):
            raise ValueError(f"An intervention cannot be created in status {v.value}")
        return v

    @model_validator(mode="after")
    def check_dates(self) -> InterventionCreate:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class InterventionUpdate(BaseModel):
    """Schema for editing an intervention's business fields. Status is changed via /status."""

    title: str | None = Field(default=None, min_length=1, max_length=512)
    description: str | None = Field(default=None, min_length=1)
    intervention_type: str | None = Field(default=None, min_length=1, max_length=128)
    address: str | None = Field(default=None, max_length=512)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    priority: InterventionPriority | None = None
    planned_date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    estimated_cost: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)


class FinalizeInterventionRequest(BaseModel):
    """Request to set the final cost and validate an intervention."""

    actor_id: str = Field(..., min_length=1, max_length=255)
    final_cost: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    comment: str | None = None


class InterventionResponse(BaseModel):
    """Response schema for an intervention."""

    id: UUID
    title: str
    description: str
    intervention_type: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    status: InterventionStatus
    priority: InterventionPriority
    planned_date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    estimated_cost: Decimal | None = None
    final_cost: Decimal | None = None
    created_by: str
    created_at: datetime
    validated_at: datetime | None = None

    model_config = {"from_attributes": True}
