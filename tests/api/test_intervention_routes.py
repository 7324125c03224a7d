"""Tests for intervention API routes."""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.api.deps import get_intervention_machine, get_intervention_service
from src.core.models import InterventionPriority, InterventionStatus, RecordKind
from src.workflow.errors import AttestationFailed, LedgerRejected, PreconditionError
from src.workflow.machine import AttestationResult, TransitionOutcome, TransitionResult


@pytest.fixture
def mock_service() -> MagicMock:
    service = MagicMock()
    for name in (
        "create",
        "get",
        "list_records",
        "update",
        "delete",
        "history",
        "attestations",
        "verify_latest",
        "finalize",
    ):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture
def mock_machine() -> MagicMock:
    machine = MagicMock()
    machine.transition = AsyncMock()
    machine.attest = AsyncMock()
    return machine


@pytest.fixture
def app_with_mocks(test_app, mock_service, mock_machine):
    test_app.dependency_overrides[get_intervention_service] = lambda: mock_service
    test_app.dependency_overrides[get_intervention_machine] = lambda: mock_machine
    yield test_app
    test_app.dependency_overrides.clear()


class TestCreateIntervention:
    """Tests for POST /api/v1/interventions."""

    @pytest.mark.asyncio
    async def test_create(self, client, app_with_mocks, mock_service, intervention_factory):
        intervention = intervention_factory(status=InterventionStatus.CREATED)
        mock_service.create.return_value = intervention

        response = await client.post(
            "/api/v1/interventions",
            json={
                "title": intervention.title,
                "description": intervention.description,
                "intervention_type": "voirie",
                "priority": "haute",
                "estimated_cost": "1200.00",
                "created_by": "agent-7",
            },
        )

        assert response.status_code == 201
        assert response.json()["status"] == "créée"
        kwargs = mock_service.create.call_args.kwargs
        assert kwargs["priority"] is InterventionPriority.HIGH
        assert kwargs["status"] is InterventionStatus.CREATED
        assert kwargs["estimated_cost"] == Decimal("1200.00")

    @pytest.mark.asyncio
    async def test_cannot_create_validated(self, client, app_with_mocks, mock_service):
        response = await client.post(
            "/api/v1/interventions",
            json={
                "title": "t",
                "description": "d",
                "intervention_type": "voirie",
                "status": "validée",
                "created_by": "agent-7",
            },
        )
        assert response.status_code == 422
        mock_service.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, client, app_with_mocks, mock_service):
        response = await client.post(
            "/api/v1/interventions",
            json={
                "title": "t",
                "description": "d",
                "intervention_type": "voirie",
                "created_by": "agent-7",
                "start_date": "2026-05-02T08:00:00Z",
                "end_date": "2026-05-01T08:00:00Z",
            },
        )
        assert response.status_code == 422


class TestInterventionStatus:
    @pytest.mark.asyncio
    async def test_missing_final_cost(self, client, app_with_mocks, mock_machine):
        mock_machine.transition.side_effect = PreconditionError("final_cost", "final cost required")

        response = await client.post(
            f"/api/v1/interventions/{uuid.uuid4()}/status",
            json={"status": "validée", "actor_id": "agent-7"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "PreconditionError"
        assert body["field"] == "final_cost"
        assert body["detail"] == "final cost required"

    @pytest.mark.asyncio
    async def test_ledger_rejected(self, client, app_with_mocks, mock_machine):
        mock_machine.transition.side_effect = AttestationFailed(LedgerRejected("bad contract"))

        response = await client.post(
            f"/api/v1/interventions/{uuid.uuid4()}/status",
            json={"status": "validée", "actor_id": "agent-7"},
        )

        assert response.status_code == 502
        assert "bad contract" in response.json()["detail"]


class TestFinalizeIntervention:
    @pytest.mark.asyncio
    async def test_finalize(
        self, client, app_with_mocks, mock_service, mock_machine, intervention_factory, attestation_factory
    ):
        intervention = intervention_factory(status=InterventionStatus.VALIDATED, final_cost=Decimal("980.50"))
        attestation = attestation_factory(intervention, RecordKind.INTERVENTION)
        mock_service.finalize.return_value = TransitionResult(
            TransitionOutcome.APPLIED, intervention, None, attestation
        )

        response = await client.post(
            f"/api/v1/interventions/{intervention.id}/finalize",
            json={"actor_id": "agent-7", "final_cost": "980.50"},
        )

        assert response.status_code == 200
        assert response.json()["record_status"] == "validée"
        call = mock_service.finalize.call_args
        assert call.args == (mock_machine, intervention.id)
        assert call.kwargs["final_cost"] == Decimal("980.50")

    @pytest.mark.asyncio
    async def test_finalize_already_validated_reports_cost_update(
        self, client, app_with_mocks, mock_service, intervention_factory
    ):
        intervention = intervention_factory(status=InterventionStatus.VALIDATED, final_cost=Decimal("1010.00"))
        mock_service.finalize.return_value = TransitionResult(TransitionOutcome.COST_UPDATED, intervention, None, None)

        response = await client.post(
            f"/api/v1/interventions/{intervention.id}/finalize",
            json={"actor_id": "agent-7", "final_cost": "1010.00"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cost_updated"
        assert data["record_status"] == "validée"
        assert data["history"] is None
        assert data["attestation"] is None

    @pytest.mark.asyncio
    async def test_finalize_requires_cost(self, client, app_with_mocks, mock_service):
        response = await client.post(
            f"/api/v1/interventions/{uuid.uuid4()}/finalize",
            json={"actor_id": "agent-7"},
        )
        assert response.status_code == 422
        mock_service.finalize.assert_not_awaited()


class TestAttestIntervention:
    @pytest.mark.asyncio
    async def test_attest_already_attested(
        self, client, app_with_mocks, mock_machine, intervention_factory, attestation_factory
    ):
        intervention = intervention_factory(status=InterventionStatus.COMPLETED)
        attestation = attestation_factory(intervention, RecordKind.INTERVENTION)
        mock_machine.attest.return_value = AttestationResult(
            TransitionOutcome.ALREADY_ATTESTED, intervention, attestation
        )

        response = await client.post(f"/api/v1/interventions/{intervention.id}/attest", json={"actor_id": "agent-7"})

        assert response.status_code == 200
        assert response.json()["status"] == "already_attested"
        assert response.json()["attestation"]["external_tx_id"] == attestation.external_tx_id

    @pytest.mark.asyncio
    async def test_attest_wrong_status(self, client, app_with_mocks, mock_machine):
        mock_machine.attest.side_effect = PreconditionError("status", "Cannot attest a intervention in status créée")

        response = await client.post(f"/api/v1/interventions/{uuid.uuid4()}/attest", json={"actor_id": "agent-7"})

        assert response.status_code == 422
        assert response.json()["field"] == "status"

    @pytest.mark.asyncio
    async def test_list_attestations(
        self, client, app_with_mocks, mock_service, intervention_factory, attestation_factory
    ):
        intervention = intervention_factory()
        mock_service.attestations.return_value = [
            attestation_factory(intervention, RecordKind.INTERVENTION, "0x01"),
            attestation_factory(intervention, RecordKind.INTERVENTION, "0x02"),
        ]

        response = await client.get(f"/api/v1/interventions/{intervention.id}/attestations")

        assert response.status_code == 200
        assert [a["content_hash"] for a in response.json()] == ["0x01", "0x02"]
