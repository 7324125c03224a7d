"""Public-works intervention API endpoints.

Validating an intervention requires its final cost and writes the
intervention's content hash to the ledger.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from src.api.deps import (
    get_intervention_ledger,
    get_intervention_machine,
    get_intervention_service,
)
from src.api.schemas.interventions import (
    FinalizeInterventionRequest,
    InterventionCreate,
    InterventionResponse,
    InterventionUpdate,
)
from src.api.schemas.workflow import (
    AttestationResponse,
    AttestRequest,
    HistoryEntryResponse,
    TransitionRequest,
    TransitionResponse,
    VerificationResponse,
)
from src.api.services.records import InterventionService
from src.core.models import InterventionPriority, InterventionStatus
from src.integrations.ledger import LedgerClient
from src.workflow.machine import StatusMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/interventions", tags=["interventions"])


@router.post("", response_model=InterventionResponse, status_code=status.HTTP_201_CREATED)
async def create_intervention(
    body: InterventionCreate,
    service: InterventionService = Depends(get_intervention_service),
) -> Any:
    """Schedule an intervention."""
    return await service.create(**body.model_dump())


@router.get("", response_model=list[InterventionResponse])
async def list_interventions(
    status_filter: list[InterventionStatus] | None = Query(default=None, alias="status"),
    priority: InterventionPriority | None = None,
    intervention_type: str | None = None,
    q: str | None = Query(default=None, max_length=255),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: InterventionService = Depends(get_intervention_service),
) -> Any:
    return await service.list_records(
        statuses=status_filter,
        priority=priority,
        intervention_type=intervention_type,
        text=q,
        limit=limit,
        offset=offset,
    )


@router.get("/{intervention_id}", response_model=InterventionResponse)
async def get_intervention(
    intervention_id: UUID,
    service: InterventionService = Depends(get_intervention_service),
) -> Any:
    return await service.get(intervention_id)


@router.patch("/{intervention_id}", response_model=InterventionResponse)
async def update_intervention(
    intervention_id: UUID,
    body: InterventionUpdate,
    service: InterventionService = Depends(get_intervention_service),
) -> Any:
    return await service.update(intervention_id, body.model_dump(exclude_unset=True))


@router.delete("/{intervention_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_intervention(
    intervention_id: UUID,
    service: InterventionService = Depends(get_intervention_service),
) -> Response:
    await service.delete(intervention_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{intervention_id}/status", response_model=TransitionResponse)
async def change_intervention_status(
    intervention_id: UUID,
    body: TransitionRequest,
    machine: StatusMachine = Depends(get_intervention_machine),
) -> Any:
    """Move an intervention to a new status. ``validée`` requires a final cost."""
    result = await machine.transition(intervention_id, body.status, body.actor_id, body.comment)
    return TransitionResponse.from_result(result)


@router.post("/{intervention_id}/finalize", response_model=TransitionResponse)
async def finalize_intervention(
    intervention_id: UUID,
    body: FinalizeInterventionRequest,
    service: InterventionService = Depends(get_intervention_service),
    machine: StatusMachine = Depends(get_intervention_machine),
) -> Any:
    """Set the final cost and validate the intervention.

    On an intervention that is already ``validée`` only the cost changes:
    the outcome is ``cost_updated``, no history entry is written and nothing
    is attested. Call ``/attest`` to attest the new cost.
    """
    result = await service.finalize(
        machine,
        intervention_id,
        actor_id=body.actor_id,
        final_cost=body.final_cost,
        comment=body.comment,
    )
    return TransitionResponse.from_result(result)


@router.post("/{intervention_id}/attest", response_model=TransitionResponse)
async def attest_intervention(
    intervention_id: UUID,
    body: AttestRequest,
    machine: StatusMachine = Depends(get_intervention_machine),
) -> Any:
    """Attest a completed or validated intervention without changing its status."""
    result = await machine.attest(intervention_id, body.actor_id)
    return TransitionResponse.from_result(result)


@router.get("/{intervention_id}/history", response_model=list[HistoryEntryResponse])
async def get_intervention_history(
    intervention_id: UUID,
    service: InterventionService = Depends(get_intervention_service),
) -> Any:
    return await service.history(intervention_id)


@router.get("/{intervention_id}/attestations", response_model=list[AttestationResponse])
async def list_intervention_attestations(
    intervention_id: UUID,
    service: InterventionService = Depends(get_intervention_service),
) -> Any:
    return await service.attestations(intervention_id)


@router.get("/{intervention_id}/attestations/verify", response_model=VerificationResponse)
async def verify_intervention_attestation(
    intervention_id: UUID,
    service: InterventionService = Depends(get_intervention_service),
    ledger: LedgerClient = Depends(get_intervention_ledger),
) -> Any:
    report = await service.verify_latest(intervention_id, ledger)
    return VerificationResponse(**vars(report))
