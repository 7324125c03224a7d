"""Complaint ("doléance") API endpoints.

Citizens file and track complaints; agents move them through the
workflow. Entering ``résolue`` or ``clôturée`` writes the complaint's
content hash to the ledger before the change is committed.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from src.api.deps import (
    get_complaint_ledger,
    get_complaint_machine,
    get_complaint_service,
)
from src.api.schemas.complaints import (
    AgentAssignmentResponse,
    AssignComplaintRequest,
    ComplaintAssignmentResponse,
    ComplaintCreate,
    ComplaintResponse,
    ComplaintTrackingResponse,
    ComplaintUpdate,
    LinkInterventionRequest,
    NoteCreate,
    NoteResponse,
    PublicResponse,
    ResolveComplaintRequest,
)
from src.api.schemas.workflow import (
    AttestationResponse,
    AttestRequest,
    HistoryEntryResponse,
    TransitionRequest,
    TransitionResponse,
    VerificationResponse,
)
from src.api.services.records import ComplaintService
from src.core.models import ComplaintStatus, ComplaintUrgency, NoteVisibility
from src.integrations.ledger import LedgerClient
from src.workflow.machine import StatusMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/complaints", tags=["complaints"])


@router.post("", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
async def create_complaint(
    body: ComplaintCreate,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """File a new complaint. It starts in status ``reçue`` with a tracking number."""
    return await service.create(
        title=body.title,
        description=body.description,
        category=body.category,
        urgency=body.urgency,
        address=body.location.address,
        latitude=body.location.latitude,
        longitude=body.location.longitude,
        citizen_anonymous=body.citizen.anonymous,
        citizen_name=body.citizen.name,
        citizen_email=body.citizen.email,
        citizen_phone=body.citizen.phone,
    )


@router.get("", response_model=list[ComplaintResponse])
async def list_complaints(
    status_filter: list[ComplaintStatus] | None = Query(default=None, alias="status"),
    category: str | None = None,
    urgency: ComplaintUrgency | None = None,
    q: str | None = Query(default=None, max_length=255),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """List complaints, newest first."""
    return await service.list_records(
        statuses=status_filter,
        category=category,
        urgency=urgency,
        text=q,
        limit=limit,
        offset=offset,
    )


@router.get("/track/{tracking_number}", response_model=ComplaintTrackingResponse)
async def track_complaint(
    tracking_number: str,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """Public follow-up of a complaint by its tracking number."""
    tracking = await service.get_by_tracking_number(tracking_number)
    complaint, latest, answer = tracking.complaint, tracking.latest_attestation, tracking.public_response
    return ComplaintTrackingResponse(
        tracking_number=complaint.tracking_number,
        title=complaint.title,
        status=complaint.status,
        created_at=complaint.created_at,
        resolved_at=complaint.resolved_at,
        latest_attestation=AttestationResponse.model_validate(latest) if latest is not None else None,
        public_response=PublicResponse.model_validate(answer) if answer is not None else None,
    )


@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    return await service.get(complaint_id)


@router.patch("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: UUID,
    body: ComplaintUpdate,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """Update a complaint's business fields. Use ``/status`` to change its status."""
    return await service.update(complaint_id, body.model_dump(exclude_unset=True))


@router.delete("/{complaint_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_complaint(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service),
) -> Response:
    await service.delete(complaint_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{complaint_id}/status", response_model=TransitionResponse)
async def change_complaint_status(
    complaint_id: UUID,
    body: TransitionRequest,
    machine: StatusMachine = Depends(get_complaint_machine),
) -> Any:
    """Move a complaint to a new status.

    Entering an attested status writes the complaint's hash to the ledger;
    if the ledger fails, nothing changes and the response is 502.
    """
    result = await machine.transition(complaint_id, body.status, body.actor_id, body.comment)
    return TransitionResponse.from_result(result)


@router.post("/{complaint_id}/resolve", response_model=TransitionResponse)
async def resolve_complaint(
    complaint_id: UUID,
    body: ResolveComplaintRequest,
    service: ComplaintService = Depends(get_complaint_service),
    machine: StatusMachine = Depends(get_complaint_machine),
) -> Any:
    """Record the resolution cost and move the complaint to ``résolue``."""
    result = await service.resolve(
        machine,
        complaint_id,
        actor_id=body.actor_id,
        resolution_cost=body.resolution_cost,
        comment=body.comment,
    )
    return TransitionResponse.from_result(result)


@router.post("/{complaint_id}/assign", response_model=ComplaintAssignmentResponse)
async def assign_complaint(
    complaint_id: UUID,
    body: AssignComplaintRequest,
    service: ComplaintService = Depends(get_complaint_service),
    machine: StatusMachine = Depends(get_complaint_machine),
) -> Any:
    """Replace the agents in charge of a complaint.

    A complaint still ``reçue`` or ``qualifiée`` moves to ``assignée``.
    """
    result = await service.assign(
        machine,
        complaint_id,
        agent_ids=body.agent_ids,
        actor_id=body.actor_id,
        comment=body.comment,
    )
    return ComplaintAssignmentResponse(
        record_id=result.record.id,
        record_status=result.record.status,
        agent_ids=result.agent_ids,
        history=HistoryEntryResponse.model_validate(result.history) if result.history is not None else None,
    )


@router.get("/{complaint_id}/assignments", response_model=list[AgentAssignmentResponse])
async def list_complaint_assignments(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    return await service.assignments(complaint_id)


@router.post("/{complaint_id}/comments", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_complaint_comment(
    complaint_id: UUID,
    body: NoteCreate,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """Add an internal comment, visible to agents only."""
    return await service.add_note(
        complaint_id, text=body.text, author_id=body.author_id, visibility=NoteVisibility.INTERNAL
    )


@router.post("/{complaint_id}/public-responses", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def add_complaint_public_response(
    complaint_id: UUID,
    body: NoteCreate,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """Answer the citizen. The latest answer is shown on the tracking page."""
    return await service.add_note(
        complaint_id, text=body.text, author_id=body.author_id, visibility=NoteVisibility.PUBLIC
    )


@router.get("/{complaint_id}/notes", response_model=list[NoteResponse])
async def list_complaint_notes(
    complaint_id: UUID,
    visibility: NoteVisibility | None = None,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    return await service.notes(complaint_id, visibility)


@router.post("/{complaint_id}/link-intervention", response_model=ComplaintResponse)
async def link_complaint_to_intervention(
    complaint_id: UUID,
    body: LinkInterventionRequest,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    """Link the complaint to the intervention that addresses it."""
    return await service.link_intervention(complaint_id, body.intervention_id, actor_id=body.actor_id)


@router.post("/{complaint_id}/attest", response_model=TransitionResponse)
async def attest_complaint(
    complaint_id: UUID,
    body: AttestRequest,
    machine: StatusMachine = Depends(get_complaint_machine),
) -> Any:
    """Attest the complaint's current content without changing its status."""
    result = await machine.attest(complaint_id, body.actor_id)
    return TransitionResponse.from_result(result)


@router.get("/{complaint_id}/history", response_model=list[HistoryEntryResponse])
async def get_complaint_history(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    return await service.history(complaint_id)


@router.get("/{complaint_id}/attestations", response_model=list[AttestationResponse])
async def list_complaint_attestations(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service),
) -> Any:
    return await service.attestations(complaint_id)


@router.get("/{complaint_id}/attestations/verify", response_model=VerificationResponse)
async def verify_complaint_attestation(
    complaint_id: UUID,
    service: ComplaintService = Depends(get_complaint_service),
    ledger: LedgerClient = Depends(get_complaint_ledger),
) -> Any:
    """Ask the ledger whether the latest attestation is recorded, and whether it still matches."""
    report = await service.verify_latest(complaint_id, ledger)
    return VerificationResponse(**vars(report))
