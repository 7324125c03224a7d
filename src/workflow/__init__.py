"""Status workflow for municipal records.

Provides content hashing, per-kind workflow policies, the attestation
store, and the status machine that ties them to a ledger client.
"""

from __future__ import annotations

from src.workflow.errors import (
    AttestationConflict,
    AttestationFailed,
    EncodingError,
    InvalidStatus,
    InvalidTransition,
    LedgerError,
    LedgerRejected,
    LedgerUnavailable,
    NoOpTransition,
    NotFound,
    PreconditionError,
    WorkflowError,
)
from src.workflow.hashing import canonical_payload, content_hash
from src.workflow.machine import AttestationResult, StatusMachine, TransitionOutcome, TransitionResult
from src.workflow.policy import COMPLAINT_POLICY, INTERVENTION_POLICY, POLICIES, RecordPolicy
from src.workflow.store import AttestationStore

__all__ = [
    "COMPLAINT_POLICY",
    "INTERVENTION_POLICY",
    "POLICIES",
    "AttestationConflict",
    "AttestationFailed",
    "AttestationResult",
    "AttestationStore",
    "EncodingError",
    "InvalidStatus",
    "InvalidTransition",
    "LedgerError",
    "LedgerRejected",
    "LedgerUnavailable",
    "NoOpTransition",
    "NotFound",
    "PreconditionError",
    "RecordPolicy",
    "StatusMachine",
    "TransitionOutcome",
    "TransitionResult",
    "WorkflowError",
    "canonical_payload",
    "content_hash",
]
