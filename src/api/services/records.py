"""Record services for complaints and interventions.

CRUD around the records driven by the status machine: creation (with
the initial history entry), lookup, filtered listing, business-field
updates, cascading deletion, the audit listings, and complaint follow-up
(assigned agents, notes, intervention links). Status changes never happen
here directly; they go through ``StatusMachine``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import (
    AttestationRecord,
    Complaint,
    ComplaintAssignment,
    ComplaintNote,
    ComplaintStatus,
    ComplaintUrgency,
    Intervention,
    InterventionPriority,
    InterventionStatus,
    NoteVisibility,
    StatusHistoryEntry,
)
from src.core.models.complaint import generate_tracking_number
from src.integrations.ledger import LedgerClient
from src.workflow.errors import NotFound
from src.workflow.machine import StatusMachine, TransitionOutcome, TransitionResult
from src.workflow.policy import COMPLAINT_POLICY, INTERVENTION_POLICY, RecordPolicy
from src.workflow.store import AttestationStore

logger = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    """Ledger check of a record's latest attestation."""

    record_id: uuid.UUID
    attested: bool
    content_hash: str | None = None
    external_tx_id: str | None = None
    on_ledger: bool = False
    ledger_timestamp: datetime | None = None
    current_content_matches: bool = False


@dataclass
class ComplaintTracking:
    """What the public tracking lookup exposes about a complaint."""

    complaint: Complaint
    latest_attestation: AttestationRecord | None
    public_response: ComplaintNote | None


@dataclass
class AssignmentResult:
    """Agents now in charge of a complaint, and the status change it caused, if any."""

    record: Complaint
    agent_ids: list[str]
    history: StatusHistoryEntry | None


class RecordService:
    """Operations shared by every record kind."""

    policy: RecordPolicy

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._store = AttestationStore(session)

    @property
    def model(self) -> Any:
        return self.policy.model

    async def get(self, record_id: uuid.UUID, *, for_update: bool = False) -> Any:
        """Fetch a record.

        With ``for_update`` the row is locked until the transaction ends and
        the returned object reflects the row as of the lock.

        Raises:
            NotFound: If the record does not exist.
        """
        query = select(self.model).where(self.model.id == record_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(query)
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFound(self.policy.kind.value, record_id)
        return record

    async def update(self, record_id: uuid.UUID, changes: dict[str, Any]) -> Any:
        """Apply business-field changes. ``status`` is never accepted here."""
        changes.pop("status", None)
        record = await self.get(record_id)
        for name, value in changes.items():
            setattr(record, name, value)
        record.updated_at = datetime.now(UTC)
        await self._session.commit()
        logger.info("%s %s updated: %s", self.policy.kind.value, record_id, sorted(changes))
        return record

    async def delete(self, record_id: uuid.UUID) -> None:
        """Delete a record with its history and attestations."""
        record = await self.get(record_id)
        await self._session.execute(delete(StatusHistoryEntry).where(StatusHistoryEntry.record_id == record_id))
        await self._store.delete_for(record_id)
        await self._delete_children(record_id)
        await self._session.delete(record)
        await self._session.commit()
        logger.info("%s %s deleted", self.policy.kind.value, record_id)

    async def history(self, record_id: uuid.UUID) -> list[StatusHistoryEntry]:
        """Status history of a record, oldest first."""
        await self.get(record_id)
        result = await self._session.execute(
            select(StatusHistoryEntry)
            .where(StatusHistoryEntry.record_id == record_id)
            .order_by(StatusHistoryEntry.created_at, StatusHistoryEntry.id)
        )
        return list(result.scalars().all())

    async def attestations(self, record_id: uuid.UUID) -> list[AttestationRecord]:
        """Ledger attestations of a record, oldest first."""
        await self.get(record_id)
        return await self._store.list_for(record_id)

    async def verify_latest(self, record_id: uuid.UUID, ledger: LedgerClient) -> VerificationReport:
        """Check that the latest attestation is on the ledger and still matches the record.

        Raises:
            LedgerError: If the ledger cannot be queried.
        """
        record = await self.get(record_id)
        latest = await self._store.latest_for(record_id)
        if latest is None:
            return VerificationReport(record_id=record_id, attested=False)

        verification = await ledger.verify(str(record_id), latest.content_hash)
        current_hash = self.policy.content_hash(self.policy.snapshot(record))
        return VerificationReport(
            record_id=record_id,
            attested=True,
            content_hash=latest.content_hash,
            external_tx_id=latest.external_tx_id,
            on_ledger=verification.exists,
            ledger_timestamp=verification.external_timestamp,
            current_content_matches=current_hash == latest.content_hash,
        )

    async def _delete_children(self, record_id: uuid.UUID) -> None:
        """Remove kind-specific rows owned by the record."""

    def _creation_entry(self, record: Any, actor_id: str, comment: str, now: datetime) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            record_kind=self.policy.kind,
            record_id=record.id,
            previous_status=None,
            new_status=record.status.value,
            actor_id=actor_id,
            comment=comment,
            created_at=now,
        )

    @staticmethod
    def _search(query: Select[Any], text: str | None, *columns: Any) -> Select[Any]:
        if not text:
            return query
        pattern = f"%{text}%"
        return query.where(or_(*(column.ilike(pattern) for column in columns)))


# Statuses from which assigning agents moves a complaint to ``assignée``
_ASSIGNABLE_STATUSES = frozenset({ComplaintStatus.RECEIVED, ComplaintStatus.QUALIFIED})


class ComplaintService(RecordService):
    """Citizen complaints ("doléances")."""

    policy = COMPLAINT_POLICY

    async def create(
        self,
        *,
        title: str,
        description: str,
        category: str | None = None,
        urgency: ComplaintUrgency = ComplaintUrgency.NORMAL,
        address: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        citizen_anonymous: bool = True,
        citizen_name: str | None = None,
        citizen_email: str | None = None,
        citizen_phone: str | None = None,
    ) -> Complaint:
        """File a new complaint in status ``reçue``.

        Contact details are discarded for anonymous complaints.
        """
        now = datetime.now(UTC)
        complaint = Complaint(
            id=uuid.uuid4(),
            tracking_number=generate_tracking_number(now),
            title=title,
            description=description,
            category=category,
            urgency=urgency,
            status=ComplaintStatus.RECEIVED,
            address=address,
            latitude=latitude,
            longitude=longitude,
            citizen_anonymous=citizen_anonymous,
            citizen_name=None if citizen_anonymous else citizen_name,
            citizen_email=None if citizen_anonymous else citizen_email,
            citizen_phone=None if citizen_anonymous else citizen_phone,
            created_at=now,
            updated_at=now,
        )
        self._session.add(complaint)
        self._session.add(self._creation_entry(complaint, "citizen", "Complaint filed by citizen", now))
        await self._session.commit()

        logger.info("Complaint %s filed as %s", complaint.id, complaint.tracking_number)
        return complaint

    async def get_by_tracking_number(self, tracking_number: str) -> ComplaintTracking:
        """Public lookup: the complaint, its latest attestation and latest public response."""
        result = await self._session.execute(
            select(Complaint).where(Complaint.tracking_number == tracking_number)
        )
        complaint = result.scalar_one_or_none()
        if complaint is None:
            raise NotFound("complaint", tracking_number)

        response = await self._session.execute(
            select(ComplaintNote)
            .where(
                ComplaintNote.complaint_id == complaint.id,
                ComplaintNote.visibility == NoteVisibility.PUBLIC,
            )
            .order_by(ComplaintNote.created_at.desc())
            .limit(1)
        )
        return ComplaintTracking(
            complaint=complaint,
            latest_attestation=await self._store.latest_for(complaint.id),
            public_response=response.scalar_one_or_none(),
        )

    async def list_records(
        self,
        *,
        statuses: list[ComplaintStatus] | None = None,
        category: str | None = None,
        urgency: ComplaintUrgency | None = None,
        text: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Complaint]:
        """List complaints, newest first."""
        query = select(Complaint)
        if statuses:
            query = query.where(Complaint.status.in_(statuses))
        if category is not None:
            query = query.where(Complaint.category == category)
        if urgency is not None:
            query = query.where(Complaint.urgency == urgency)
        query = self._search(query, text, Complaint.title, Complaint.description, Complaint.address)
        query = query.order_by(Complaint.created_at.desc()).offset(offset).limit(limit)

        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def resolve(
        self,
        machine: StatusMachine,
        record_id: uuid.UUID,
        *,
        actor_id: str,
        resolution_cost: Decimal | None,
        comment: str | None = None,
    ) -> TransitionResult:
        """Record the resolution cost and move the complaint to ``résolue``.

        The cost is set on the row the machine has locked, so it commits or
        rolls back with the transition.
        """
        return await machine.transition(
            record_id,
            ComplaintStatus.RESOLVED,
            actor_id,
            comment or f"Complaint resolved by {actor_id}",
            changes={"resolution_cost": resolution_cost},
        )

    async def assign(
        self,
        machine: StatusMachine,
        record_id: uuid.UUID,
        *,
        agent_ids: list[str],
        actor_id: str,
        comment: str | None = None,
    ) -> AssignmentResult:
        """Replace the agents in charge of a complaint.

        A complaint still ``reçue`` or ``qualifiée`` moves to ``assignée``
        in the same transaction; later statuses are left alone.
        """
        complaint = await self.get(record_id, for_update=True)
        now = datetime.now(UTC)
        agents = list(dict.fromkeys(agent_ids))

        await self._session.execute(delete(ComplaintAssignment).where(ComplaintAssignment.complaint_id == record_id))
        for agent_id in agents:
            self._session.add(
                ComplaintAssignment(complaint_id=record_id, agent_id=agent_id, assigned_by=actor_id, assigned_at=now)
            )

        if complaint.status in _ASSIGNABLE_STATUSES:
            result = await machine.transition(
                record_id,
                ComplaintStatus.ASSIGNED,
                actor_id,
                comment or f"Assigned by {actor_id}",
            )
            logger.info("Complaint %s assigned to %s by %s", record_id, agents, actor_id)
            return AssignmentResult(record=result.record, agent_ids=agents, history=result.history)

        complaint.updated_at = now
        await self._session.commit()
        logger.info("Complaint %s reassigned to %s by %s in status %s", record_id, agents, actor_id, complaint.status)
        return AssignmentResult(record=complaint, agent_ids=agents, history=None)

    async def assignments(self, record_id: uuid.UUID) -> list[ComplaintAssignment]:
        """Agents currently in charge of a complaint."""
        await self.get(record_id)
        result = await self._session.execute(
            select(ComplaintAssignment)
            .where(ComplaintAssignment.complaint_id == record_id)
            .order_by(ComplaintAssignment.assigned_at, ComplaintAssignment.agent_id)
        )
        return list(result.scalars().all())

    async def add_note(
        self,
        record_id: uuid.UUID,
        *,
        text: str,
        author_id: str,
        visibility: NoteVisibility,
    ) -> ComplaintNote:
        """Add an internal comment, or a public response shown on the tracking page."""
        await self.get(record_id)
        note = ComplaintNote(
            id=uuid.uuid4(),
            complaint_id=record_id,
            visibility=visibility,
            text=text,
            author_id=author_id,
            created_at=datetime.now(UTC),
        )
        self._session.add(note)
        await self._session.commit()
        logger.info("Complaint %s: %s note added by %s", record_id, visibility.value, author_id)
        return note

    async def notes(self, record_id: uuid.UUID, visibility: NoteVisibility | None = None) -> list[ComplaintNote]:
        """Notes of a complaint, oldest first."""
        await self.get(record_id)
        query = select(ComplaintNote).where(ComplaintNote.complaint_id == record_id)
        if visibility is not None:
            query = query.where(ComplaintNote.visibility == visibility)
        result = await self._session.execute(query.order_by(ComplaintNote.created_at, ComplaintNote.id))
        return list(result.scalars().all())

    async def link_intervention(
        self,
        record_id: uuid.UUID,
        intervention_id: uuid.UUID,
        *,
        actor_id: str,
    ) -> Complaint:
        """Link a complaint to the intervention that addresses it, leaving an internal note.

        Raises:
            NotFound: If the complaint or the intervention does not exist.
        """
        complaint = await self.get(record_id)
        found = await self._session.execute(select(Intervention.id).where(Intervention.id == intervention_id))
        if found.scalar_one_or_none() is None:
            raise NotFound("intervention", intervention_id)

        now = datetime.now(UTC)
        complaint.linked_intervention_id = intervention_id
        complaint.updated_at = now
        self._session.add(
            ComplaintNote(
                id=uuid.uuid4(),
                complaint_id=record_id,
                visibility=NoteVisibility.INTERNAL,
                text=f"Linked to intervention {intervention_id} by {actor_id}",
                author_id=actor_id,
                created_at=now,
            )
        )
        await self._session.commit()
        logger.info("Complaint %s linked to intervention %s by %s", record_id, intervention_id, actor_id)
        return complaint

    async def _delete_children(self, record_id: uuid.UUID) -> None:
        await self._session.execute(delete(ComplaintNote).where(ComplaintNote.complaint_id == record_id))
        await self._session.execute(delete(ComplaintAssignment).where(ComplaintAssignment.complaint_id == record_id))


class InterventionService(RecordService):
    """Public-works interventions."""

    policy = INTERVENTION_POLICY

    async def create(
        self,
        *,
        title: str,
        description: str,
        intervention_type: str,
        created_by: str,
        status: InterventionStatus = InterventionStatus.CREATED,
        priority: InterventionPriority = InterventionPriority.NORMAL,
        address: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        planned_date: datetime | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        estimated_cost: Decimal | None = None,
    ) -> Intervention:
        """Create an intervention in a non-attested initial status."""
        if self.policy.is_attested(status):
            raise ValueError(f"An intervention cannot be created in status {status.value}")
        now = datetime.now(UTC)
        intervention = Intervention(
            id=uuid.uuid4(),
            title=title,
            description=description,
            intervention_type=intervention_type,
            created_by=created_by,
            status=status,
            priority=priority,
            address=address,
            latitude=latitude,
            longitude=longitude,
            planned_date=planned_date,
            start_date=start_date,
            end_date=end_date,
            estimated_cost=estimated_cost,
            created_at=now,
            updated_at=now,
        )
        self._session.add(intervention)
        self._session.add(self._creation_entry(intervention, created_by, "Intervention created", now))
        await self._session.commit()

        logger.info("Intervention %s created in status %s", intervention.id, status.value)
        return intervention

    async def list_records(
        self,
        *,
        statuses: list[InterventionStatus] | None = None,
        priority: InterventionPriority | None = None,
        intervention_type: str | None = None,
        text: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Intervention]:
        """List interventions, newest first."""
        query = select(Intervention)
        if statuses:
            query = query.where(Intervention.status.in_(statuses))
        if priority is not None:
            query = query.where(Intervention.priority == priority)
        if intervention_type is not None:
            query = query.where(Intervention.intervention_type == intervention_type)
        query = self._search(query, text, Intervention.title, Intervention.description, Intervention.address)
        query = query.order_by(Intervention.created_at.desc()).offset(offset).limit(limit)

        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def finalize(
        self,
        machine: StatusMachine,
        record_id: uuid.UUID,
        *,
        actor_id: str,
        final_cost: Decimal,
        comment: str | None = None,
    ) -> TransitionResult:
        """Set the final cost and validate the intervention.

        The status is read under the row lock. An intervention that is
        already validated only gets its cost updated, with outcome
        ``cost_updated``; the new content is attested through ``attest``.
        """
        intervention = await self.get(record_id, for_update=True)

        if intervention.status == InterventionStatus.VALIDATED:
            intervention.final_cost = final_cost
            intervention.updated_at = datetime.now(UTC)
            await self._session.commit()
            logger.info(
                "Intervention %s already validated; final cost updated by %s, not attested",
                record_id,
                actor_id,
            )
            return TransitionResult(
                outcome=TransitionOutcome.COST_UPDATED,
                record=intervention,
                history=None,
                attestation=None,
            )

        return await machine.transition(
            record_id,
            InterventionStatus.VALIDATED,
            actor_id,
            comment or f"Intervention validated by {actor_id}",
            changes={"final_cost": final_cost},
        )


__all__ = [
    "AssignmentResult",
    "ComplaintService",
    "ComplaintTracking",
    "InterventionService",
    "RecordService",
    "VerificationReport",
]
