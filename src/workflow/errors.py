"""Error taxonomy for status transitions and attestation.

Routes translate these into HTTP responses; nothing here is retried
internally.
"""

from __future__ import annotations

import uuid


class WorkflowError(Exception):
    """Base class for status workflow failures."""


class NotFound(WorkflowError):
    """The record does not exist."""

    def __init__(self, kind: str, record_id: uuid.UUID | str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} {record_id} not found")


class InvalidStatus(WorkflowError):
    """The requested status is not part of the record kind's status set."""

    def __init__(self, kind: str, status: str) -> None:
        self.kind = kind
        self.status = status
        super().__init__(f"Unknown {kind} status: {status!r}")


class NoOpTransition(WorkflowError):
    """The record already has the requested status."""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"Record already has status {status!r}")


class InvalidTransition(WorkflowError):
    """The transition is not allowed from the current status."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status} → {to_status}")


class PreconditionError(WorkflowError):
    """A business rule for the target status is unmet."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class EncodingError(WorkflowError):
    """An attestable field cannot be canonically serialised."""


class LedgerError(Exception):
    """Base class for ledger client failures."""


class LedgerUnavailable(LedgerError):
    """The ledger could not be reached or did not answer in time."""


class LedgerRejected(LedgerError):
    """The ledger refused the submission or answered with garbage."""


class AttestationFailed(WorkflowError):
    """The ledger write failed; the whole transition was rolled back."""

    def __init__(self, cause: LedgerError) -> None:
        self.cause = cause
        super().__init__(f"Ledger attestation failed: {cause}")


class AttestationConflict(WorkflowError):
    """A concurrent writer stored the same (record, content hash) first."""

    def __init__(self, record_id: uuid.UUID, content_hash: str) -> None:
        self.record_id = record_id
        self.content_hash = content_hash
        super().__init__(f"Attestation {content_hash} for record {record_id} was stored concurrently")
