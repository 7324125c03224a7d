"""Per-record-kind workflow policies.

A ``RecordPolicy`` tells the generic status machine everything that
differs between complaints and interventions: the status set, which
transitions are allowed, which statuses require a ledger attestation,
the business preconditions of each target status, and which fields make
up the attested content.

Both kinds follow the same shape: statuses advance along an ordered
chain (skipping ahead is allowed, going back is not), and one absorbing
status is reachable from every non-terminal one.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.models import (
    Complaint,
    ComplaintStatus,
    Intervention,
    InterventionStatus,
    RecordKind,
)
from src.workflow.errors import InvalidStatus, PreconditionError
from src.workflow.hashing import canonical_value, content_hash, snapshot


@dataclass(frozen=True)
class Precondition:
    """A field that must be set before a record may enter a status."""

    field: str
    message: str

    def is_met(self, record: Any) -> bool:
        return getattr(record, self.field, None) is not None


def forward_transitions(
    order: Sequence[enum.StrEnum],
    absorbing: enum.StrEnum,
    terminal: Sequence[enum.StrEnum] = (),
) -> dict[enum.StrEnum, frozenset[enum.StrEnum]]:
    """Build a transition table for an ordered status chain.

    Every status may move to any later status in ``order`` and to
    ``absorbing``. Statuses in ``terminal`` and ``absorbing`` itself
    allow no further transition.
    """
    table: dict[enum.StrEnum, frozenset[enum.StrEnum]] = {}
    for index, status in enumerate(order):
        if status in terminal:
            table[status] = frozenset()
            continue
        table[status] = frozenset(order[index + 1 :]) | {absorbing}
    table[absorbing] = frozenset()
    return table


@dataclass(frozen=True)
class RecordPolicy:
    """Workflow rules for one record kind."""

    kind: RecordKind
    model: type[Any]
    status_enum: type[enum.StrEnum]
    transitions: Mapping[enum.StrEnum, frozenset[enum.StrEnum]]
    attested_statuses: frozenset[enum.StrEnum]
    attestable_fields: tuple[str, ...]
    preconditions: Mapping[enum.StrEnum, tuple[Precondition, ...]] = field(default_factory=dict)
    # Empty means a manual attestation is allowed in any status
    on_demand_statuses: frozenset[enum.StrEnum] = frozenset()
    status_timestamps: Mapping[enum.StrEnum, str] = field(default_factory=dict)
    metadata_fields: tuple[str, ...] = ("status",)

    def parse_status(self, value: str | enum.StrEnum) -> enum.StrEnum:
        """Coerce a raw status value into this kind's status enum.

        Raises:
            InvalidStatus: If the value is not one of this kind's statuses.
        """
        try:
            return self.status_enum(value)
        except ValueError as exc:
            raise InvalidStatus(self.kind.value, str(value)) from exc

    def is_attested(self, status: enum.StrEnum) -> bool:
        return status in self.attested_statuses

    def allowed_targets(self, status: enum.StrEnum) -> frozenset[enum.StrEnum]:
        return self.transitions.get(status, frozenset())

    def check_preconditions(self, record: Any, target: enum.StrEnum) -> None:
        """Raise on the first unmet precondition for entering ``target``."""
        for precondition in self.preconditions.get(target, ()):
            if not precondition.is_met(record):
                raise PreconditionError(precondition.field, precondition.message)

    def snapshot(self, record: Any, status: enum.StrEnum | None = None) -> dict[str, Any]:
        """Attestable fields of ``record``, optionally as they will be in ``status``."""
        fields = snapshot(record, self.attestable_fields)
        if status is not None:
            fields["status"] = status
        return fields

    def content_hash(self, fields: Mapping[str, Any]) -> str:
        return content_hash(fields, self.attestable_fields)

    def ledger_metadata(self, fields: Mapping[str, Any], changed_at: datetime) -> dict[str, Any]:
        """Metadata submitted to the ledger alongside the content hash."""
        metadata: dict[str, Any] = {"record_kind": self.kind.value}
        for name in self.metadata_fields:
            metadata[name] = canonical_value(name, fields.get(name))
        metadata["status_changed_at"] = canonical_value("status_changed_at", changed_at)
        return metadata


COMPLAINT_POLICY = RecordPolicy(
    kind=RecordKind.COMPLAINT,
    model=Complaint,
    status_enum=ComplaintStatus,
    transitions=forward_transitions(
        order=[
            ComplaintStatus.RECEIVED,
            ComplaintStatus.QUALIFIED,
            ComplaintStatus.ASSIGNED,
            ComplaintStatus.PLANNED,
            ComplaintStatus.IN_PROGRESS,
            ComplaintStatus.RESOLVED,
            ComplaintStatus.CLOSED,
        ],
        absorbing=ComplaintStatus.REJECTED,
        terminal=[ComplaintStatus.CLOSED],
    ),
    attested_statuses=frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED}),
    attestable_fields=(
        "id",
        "tracking_number",
        "title",
        "description",
        "status",
        "created_at",
        "resolution_cost",
    ),
    status_timestamps={
        ComplaintStatus.RESOLVED: "resolved_at",
        ComplaintStatus.CLOSED: "closed_at",
    },
)

INTERVENTION_POLICY = RecordPolicy(
    kind=RecordKind.INTERVENTION,
    model=Intervention,
    status_enum=InterventionStatus,
    transitions=forward_transitions(
        order=[
            InterventionStatus.CREATED,
            InterventionStatus.PLANNED,
            InterventionStatus.IN_PROGRESS,
            InterventionStatus.COMPLETED,
            InterventionStatus.VALIDATED,
        ],
        absorbing=InterventionStatus.CANCELLED,
        terminal=[InterventionStatus.VALIDATED],
    ),
    attested_statuses=frozenset({InterventionStatus.VALIDATED}),
    attestable_fields=(
        "id",
        "title",
        "description",
        "status",
        "created_at",
        "end_date",
        "final_cost",
    ),
    preconditions={
        InterventionStatus.VALIDATED: (Precondition("final_cost", "final cost required"),),
    },
    on_demand_statuses=frozenset({InterventionStatus.COMPLETED, InterventionStatus.VALIDATED}),
    status_timestamps={InterventionStatus.VALIDATED: "validated_at"},
    metadata_fields=("status", "final_cost"),
)

POLICIES: dict[RecordKind, RecordPolicy] = {
    RecordKind.COMPLAINT: COMPLAINT_POLICY,
    RecordKind.INTERVENTION: INTERVENTION_POLICY,
}
