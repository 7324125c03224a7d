"""Tests for complaint API routes."""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.api.deps import get_complaint_machine, get_complaint_service
from src.api.services.records import AssignmentResult, ComplaintTracking, VerificationReport
from src.core.models import ComplaintNote, ComplaintStatus, NoteVisibility, RecordKind
from src.workflow.errors import (
    AttestationFailed,
    InvalidStatus,
    InvalidTransition,
    LedgerUnavailable,
    NoOpTransition,
    NotFound,
)
from src.workflow.machine import AttestationResult, TransitionOutcome, TransitionResult


@pytest.fixture
def mock_service() -> MagicMock:
    service = MagicMock()
    for name in (
        "create",
        "get",
        "get_by_tracking_number",
        "list_records",
        "update",
        "delete",
        "history",
        "attestations",
        "verify_latest",
        "resolve",
        "assign",
        "assignments",
        "add_note",
        "notes",
        "link_intervention",
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
    """Route the complaint dependencies to mocks."""
    test_app.dependency_overrides[get_complaint_service] = lambda: mock_service
    test_app.dependency_overrides[get_complaint_machine] = lambda: mock_machine
    yield test_app
    test_app.dependency_overrides.clear()


class TestCreateComplaint:
    """Tests for POST /api/v1/complaints."""

    @pytest.mark.asyncio
    async def test_create_anonymous(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory()
        mock_service.create.return_value = complaint

        response = await client.post(
            "/api/v1/complaints",
            json={
                "title": complaint.title,
                "description": complaint.description,
                "location": {"address": "12 rue des Lilas"},
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["tracking_number"] == "DOL-2026-3FA9C1"
        assert data["status"] == "reçue"
        kwargs = mock_service.create.call_args.kwargs
        assert kwargs["citizen_anonymous"] is True
        assert kwargs["address"] == "12 rue des Lilas"

    @pytest.mark.asyncio
    async def test_create_named_requires_name(self, client, app_with_mocks, mock_service):
        response = await client.post(
            "/api/v1/complaints",
            json={"title": "t", "description": "d", "citizen": {"anonymous": False, "email": "a@b.fr"}},
        )
        assert response.status_code == 422
        mock_service.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_rejects_bad_email(self, client, app_with_mocks, mock_service):
        response = await client.post(
            "/api/v1/complaints",
            json={"title": "t", "description": "d", "citizen": {"name": "Camille", "email": "not-an-email"}},
        )
        assert response.status_code == 422


class TestReadComplaints:
    @pytest.mark.asyncio
    async def test_get(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory()
        mock_service.get.return_value = complaint

        response = await client.get(f"/api/v1/complaints/{complaint.id}")

        assert response.status_code == 200
        assert response.json()["id"] == str(complaint.id)

    @pytest.mark.asyncio
    async def test_get_not_found(self, client, app_with_mocks, mock_service):
        record_id = uuid.uuid4()
        mock_service.get.side_effect = NotFound("complaint", record_id)

        response = await client.get(f"/api/v1/complaints/{record_id}")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "NotFound"
        assert body["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_list_passes_filters(self, client, app_with_mocks, mock_service, complaint_factory):
        mock_service.list_records.return_value = [complaint_factory(), complaint_factory()]

        response = await client.get(
            "/api/v1/complaints",
            params=[("status", "reçue"), ("status", "qualifiée"), ("q", "lilas"), ("limit", "5")],
        )

        assert response.status_code == 200
        assert len(response.json()) == 2
        kwargs = mock_service.list_records.call_args.kwargs
        assert kwargs["statuses"] == [ComplaintStatus.RECEIVED, ComplaintStatus.QUALIFIED]
        assert kwargs["text"] == "lilas"
        assert kwargs["limit"] == 5

    @pytest.mark.asyncio
    async def test_track(self, client, app_with_mocks, mock_service, complaint_factory, attestation_factory):
        complaint = complaint_factory(status=ComplaintStatus.RESOLVED)
        attestation = attestation_factory(complaint, RecordKind.COMPLAINT)
        answer = ComplaintNote(
            id=uuid.uuid4(),
            complaint_id=complaint.id,
            visibility=NoteVisibility.PUBLIC,
            text="Le trou a été rebouché",
            author_id="agent-7",
            created_at=complaint.created_at,
        )
        mock_service.get_by_tracking_number.return_value = ComplaintTracking(complaint, attestation, answer)

        response = await client.get("/api/v1/complaints/track/DOL-2026-3FA9C1")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "résolue"
        assert data["latest_attestation"]["external_tx_id"] == attestation.external_tx_id
        assert data["public_response"]["text"] == "Le trou a été rebouché"
        assert "author_id" not in data["public_response"]
        assert "citizen_email" not in data

    @pytest.mark.asyncio
    async def test_track_without_response(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory()
        mock_service.get_by_tracking_number.return_value = ComplaintTracking(complaint, None, None)

        response = await client.get("/api/v1/complaints/track/DOL-2026-3FA9C1")

        assert response.status_code == 200
        assert response.json()["public_response"] is None
        assert response.json()["latest_attestation"] is None

    @pytest.mark.asyncio
    async def test_history(self, client, app_with_mocks, mock_service, complaint_factory, history_factory):
        complaint = complaint_factory()
        mock_service.history.return_value = [history_factory(complaint, RecordKind.COMPLAINT, None, "reçue")]

        response = await client.get(f"/api/v1/complaints/{complaint.id}/history")

        assert response.status_code == 200
        assert response.json()[0]["previous_status"] is None
        assert response.json()[0]["new_status"] == "reçue"


class TestUpdateDeleteComplaint:
    @pytest.mark.asyncio
    async def test_patch_ignores_status(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory(title="Nouveau titre")
        mock_service.update.return_value = complaint

        response = await client.patch(
            f"/api/v1/complaints/{complaint.id}",
            json={"title": "Nouveau titre", "status": "clôturée"},
        )

        assert response.status_code == 200
        changes = mock_service.update.call_args.args[1]
        assert changes == {"title": "Nouveau titre"}

    @pytest.mark.asyncio
    async def test_delete(self, client, app_with_mocks, mock_service):
        record_id = uuid.uuid4()
        response = await client.delete(f"/api/v1/complaints/{record_id}")
        assert response.status_code == 204
        mock_service.delete.assert_awaited_once_with(record_id)


class TestComplaintStatus:
    """Tests for POST /api/v1/complaints/{id}/status."""

    @pytest.mark.asyncio
    async def test_applied(self, client, app_with_mocks, mock_machine, complaint_factory, history_factory):
        complaint = complaint_factory(status=ComplaintStatus.QUALIFIED)
        history = history_factory(complaint, RecordKind.COMPLAINT, "reçue", "qualifiée")
        mock_machine.transition.return_value = TransitionResult(TransitionOutcome.APPLIED, complaint, history, None)

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/status",
            json={"status": "qualifiée", "actor_id": "agent-7", "comment": "ok"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "applied"
        assert data["record_status"] == "qualifiée"
        assert data["history"]["new_status"] == "qualifiée"
        assert data["attestation"] is None
        mock_machine.transition.assert_awaited_once_with(complaint.id, "qualifiée", "agent-7", "ok")

    @pytest.mark.asyncio
    async def test_already_attested(
        self, client, app_with_mocks, mock_machine, complaint_factory, attestation_factory
    ):
        complaint = complaint_factory(status=ComplaintStatus.RESOLVED)
        attestation = attestation_factory(complaint, RecordKind.COMPLAINT)
        mock_machine.transition.return_value = TransitionResult(
            TransitionOutcome.ALREADY_ATTESTED, complaint, None, attestation
        )

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/status",
            json={"status": "résolue", "actor_id": "agent-7"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "already_attested"
        assert response.json()["attestation"]["content_hash"] == attestation.content_hash

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (NoOpTransition("reçue"), 409),
            (InvalidTransition("clôturée", "reçue"), 409),
            (InvalidStatus("complaint", "archivée"), 422),
            (AttestationFailed(LedgerUnavailable("timeout")), 502),
        ],
    )
    @pytest.mark.asyncio
    async def test_errors(self, client, app_with_mocks, mock_machine, error, status_code):
        mock_machine.transition.side_effect = error

        response = await client.post(
            f"/api/v1/complaints/{uuid.uuid4()}/status",
            json={"status": "résolue", "actor_id": "agent-7"},
        )

        assert response.status_code == status_code
        assert response.json()["error"] == type(error).__name__

    @pytest.mark.asyncio
    async def test_actor_required(self, client, app_with_mocks, mock_machine):
        response = await client.post(f"/api/v1/complaints/{uuid.uuid4()}/status", json={"status": "résolue"})
        assert response.status_code == 422
        mock_machine.transition.assert_not_awaited()


class TestResolveAndAttest:
    @pytest.mark.asyncio
    async def test_resolve(
        self, client, app_with_mocks, mock_service, mock_machine, complaint_factory, attestation_factory
    ):
        complaint = complaint_factory(status=ComplaintStatus.RESOLVED, resolution_cost=Decimal("45.00"))
        attestation = attestation_factory(complaint, RecordKind.COMPLAINT)
        mock_service.resolve.return_value = TransitionResult(TransitionOutcome.APPLIED, complaint, None, attestation)

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/resolve",
            json={"actor_id": "agent-7", "resolution_cost": "45.00"},
        )

        assert response.status_code == 200
        assert response.json()["record_status"] == "résolue"
        args = mock_service.resolve.call_args
        assert args.args == (mock_machine, complaint.id)
        assert args.kwargs["resolution_cost"] == Decimal("45.00")

    @pytest.mark.asyncio
    async def test_resolve_rejects_negative_cost(self, client, app_with_mocks, mock_service):
        response = await client.post(
            f"/api/v1/complaints/{uuid.uuid4()}/resolve",
            json={"actor_id": "agent-7", "resolution_cost": "-1"},
        )
        assert response.status_code == 422
        mock_service.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_attest(self, client, app_with_mocks, mock_machine, complaint_factory, attestation_factory):
        complaint = complaint_factory(status=ComplaintStatus.ASSIGNED)
        attestation = attestation_factory(complaint, RecordKind.COMPLAINT)
        mock_machine.attest.return_value = AttestationResult(TransitionOutcome.APPLIED, complaint, attestation)

        response = await client.post(f"/api/v1/complaints/{complaint.id}/attest", json={"actor_id": "agent-7"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "applied"
        assert data["history"] is None
        assert data["attestation"]["block_ref"] == 42

    @pytest.mark.asyncio
    async def test_verify(self, client, app_with_mocks, mock_service, memory_ledger):
        record_id = uuid.uuid4()
        mock_service.verify_latest.return_value = VerificationReport(
            record_id=record_id,
            attested=True,
            content_hash="0x01",
            external_tx_id="0x02",
            on_ledger=True,
            current_content_matches=False,
        )

        response = await client.get(f"/api/v1/complaints/{record_id}/attestations/verify")

        assert response.status_code == 200
        data = response.json()
        assert data["on_ledger"] is True
        assert data["current_content_matches"] is False
        assert mock_service.verify_latest.call_args.args == (record_id, memory_ledger)

    @pytest.mark.asyncio
    async def test_verify_ledger_down(self, client, app_with_mocks, mock_service):
        mock_service.verify_latest.side_effect = LedgerUnavailable("offline")

        response = await client.get(f"/api/v1/complaints/{uuid.uuid4()}/attestations/verify")

        assert response.status_code == 502
        assert response.json()["error"] == "LedgerUnavailable"


class TestComplaintFollowUp:
    @pytest.mark.asyncio
    async def test_assign(self, client, app_with_mocks, mock_service, mock_machine, complaint_factory, history_factory):
        complaint = complaint_factory(status=ComplaintStatus.ASSIGNED)
        history = history_factory(complaint, RecordKind.COMPLAINT, "reçue", "assignée")
        mock_service.assign.return_value = AssignmentResult(complaint, ["agent-3", "agent-9"], history)

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/assign",
            json={"agent_ids": ["agent-3", "agent-9"], "actor_id": "chef-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["record_status"] == "assignée"
        assert data["agent_ids"] == ["agent-3", "agent-9"]
        assert data["history"]["new_status"] == "assignée"
        call = mock_service.assign.call_args
        assert call.args == (mock_machine, complaint.id)
        assert call.kwargs["agent_ids"] == ["agent-3", "agent-9"]

    @pytest.mark.asyncio
    async def test_assign_requires_an_agent(self, client, app_with_mocks, mock_service):
        response = await client.post(
            f"/api/v1/complaints/{uuid.uuid4()}/assign",
            json={"agent_ids": [], "actor_id": "chef-1"},
        )
        assert response.status_code == 422
        mock_service.assign.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_internal_comment(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory()
        mock_service.add_note.return_value = ComplaintNote(
            id=uuid.uuid4(),
            complaint_id=complaint.id,
            visibility=NoteVisibility.INTERNAL,
            text="Voir avec la voirie",
            author_id="agent-7",
            created_at=complaint.created_at,
        )

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/comments",
            json={"text": "Voir avec la voirie", "author_id": "agent-7"},
        )

        assert response.status_code == 201
        assert response.json()["visibility"] == "interne"
        assert mock_service.add_note.call_args.kwargs["visibility"] is NoteVisibility.INTERNAL

    @pytest.mark.asyncio
    async def test_public_response(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory()
        mock_service.add_note.return_value = ComplaintNote(
            id=uuid.uuid4(),
            complaint_id=complaint.id,
            visibility=NoteVisibility.PUBLIC,
            text="Intervention prévue lundi",
            author_id="agent-7",
            created_at=complaint.created_at,
        )

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/public-responses",
            json={"text": "Intervention prévue lundi", "author_id": "agent-7"},
        )

        assert response.status_code == 201
        assert response.json()["visibility"] == "publique"
        assert mock_service.add_note.call_args.kwargs["visibility"] is NoteVisibility.PUBLIC

    @pytest.mark.asyncio
    async def test_list_notes_by_visibility(self, client, app_with_mocks, mock_service):
        record_id = uuid.uuid4()
        mock_service.notes.return_value = []

        response = await client.get(f"/api/v1/complaints/{record_id}/notes", params={"visibility": "publique"})

        assert response.status_code == 200
        assert mock_service.notes.call_args.args == (record_id, NoteVisibility.PUBLIC)

    @pytest.mark.asyncio
    async def test_link_intervention(self, client, app_with_mocks, mock_service, complaint_factory):
        intervention_id = uuid.uuid4()
        complaint = complaint_factory(linked_intervention_id=intervention_id)
        mock_service.link_intervention.return_value = complaint

        response = await client.post(
            f"/api/v1/complaints/{complaint.id}/link-intervention",
            json={"intervention_id": str(intervention_id), "actor_id": "agent-7"},
        )

        assert response.status_code == 200
        assert response.json()["linked_intervention_id"] == str(intervention_id)
        call = mock_service.link_intervention.call_args
        assert call.args == (complaint.id, intervention_id)
        assert call.kwargs["actor_id"] == "agent-7"

    @pytest.mark.asyncio
    async def test_link_unknown_intervention(self, client, app_with_mocks, mock_service):
        intervention_id = uuid.uuid4()
        mock_service.link_intervention.side_effect = NotFound("intervention", intervention_id)

        response = await client.post(
            f"/api/v1/complaints/{uuid.uuid4()}/link-intervention",
            json={"intervention_id": str(intervention_id), "actor_id": "agent-7"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_patch_cannot_link(self, client, app_with_mocks, mock_service, complaint_factory):
        complaint = complaint_factory()
        mock_service.update.return_value = complaint

        response = await client.patch(
            f"/api/v1/complaints/{complaint.id}",
            json={"linked_intervention_id": str(uuid.uuid4())},
        )

        assert response.status_code == 200
        assert mock_service.update.call_args.args[1] == {}
