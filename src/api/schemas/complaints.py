"""Pydantic schemas for complaint ("doléance") endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from src.core.models import ComplaintStatus, ComplaintUrgency, NoteVisibility
from src.api.schemas.workflow import AttestationResponse, HistoryEntryResponse


class CitizenContact(BaseModel):
    """Who filed the complaint. Contact fields are dropped when anonymous."""

    anonymous: bool = False
    name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def require_name_unless_anonymous(self) -> CitizenContact:
        if not self.anonymous and not self.name:
            raise ValueError("name is required for a non-anonymous complaint")
        return self


class Location(BaseModel):
    """Where the issue is."""

    address: str | None = Field(default=None, max_length=512)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class ComplaintCreate(BaseModel):
    """Schema for filing a complaint."""

    title: str = Field(..., min_length=1, max_length=512)
    description: str = Field(..., min_length=1)
    category: str | None = Field(default=None, max_length=255)
    urgency: ComplaintUrgency = ComplaintUrgency.NORMAL
    location: Location = Field(default_factory=Location)
    citizen: CitizenContact = Field(default_factory=lambda: CitizenContact(anonymous=True))


class ComplaintUpdate(BaseModel):
    """Schema for editing a complaint's business fields. Status is changed via /status."""

    title: str | None = Field(default=None, min_length=1, max_length=512)
    description: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, max_length=255)
    urgency: ComplaintUrgency | None = None
    address: str | None = Field(default=None, max_length=512)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class ResolveComplaintRequest(BaseModel):
    """Request to resolve a complaint, recording what it cost."""

    actor_id: str = Field(..., min_length=1, max_length=255)
    resolution_cost: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    comment: str | None = None


class AssignComplaintRequest(BaseModel):
    """Request to replace the agents in charge of a complaint."""

    agent_ids: list[str] = Field(..., min_length=1)
    actor_id: str = Field(..., min_length=1, max_length=255)
    comment: str | None = None


class NoteCreate(BaseModel):
    """An internal comment or a public response to the citizen."""

    text: str = Field(..., min_length=1)
    author_id: str = Field(..., min_length=1, max_length=255)


class NoteResponse(BaseModel):
    id: UUID
    complaint_id: UUID
    visibility: NoteVisibility
    text: str
    author_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LinkInterventionRequest(BaseModel):
    """Request to link a complaint to the intervention that addresses it."""

    intervention_id: UUID
    actor_id: str = Field(..., min_length=1, max_length=255)


class PublicResponse(BaseModel):
    """The municipality's latest answer, as shown to the citizen."""

    text: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ComplaintResponse(BaseModel):
    """Response schema for a complaint."""

    id: UUID
    tracking_number: str
    title: str
    description: str
    category: str | None = None
    urgency: ComplaintUrgency
    status: ComplaintStatus
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    citizen_anonymous: bool
    citizen_name: str | None = None
    citizen_email: str | None = None
    citizen_phone: str | None = None
    resolution_cost: Decimal | None = None
    linked_intervention_id: UUID | None = None
    created_at: datetime
    resolved_at: datetime | None = None
    closed_at: datetime | None = None

    model_config = {"from_attributes": True}


class ComplaintTrackingResponse(BaseModel):
    """What a citizen sees when following up on a complaint."""

    tracking_number: str
    title: str
    status: ComplaintStatus
    created_at: datetime
    resolved_at: datetime | None = None
    latest_attestation: AttestationResponse | None = None
    public_response: PublicResponse | None = None


class ComplaintAssignmentResponse(BaseModel):
    """Agents in charge of a complaint after an assignment."""

    record_id: UUID
    record_status: ComplaintStatus
    agent_ids: list[str]
    history: HistoryEntryResponse | None = None


class AgentAssignmentResponse(BaseModel):
    agent_id: str
    assigned_by: str
    assigned_at: datetime

    model_config = {"from_attributes": True}
