"""SQLAlchemy models for the Municipal Registry.

This package re-exports all models and enums from domain-specific modules
so that code can use ``from src.core.models import X``.
"""

from src.core.models.complaint import (
    Complaint,
    ComplaintAssignment,
    ComplaintNote,
    ComplaintStatus,
    ComplaintUrgency,
    NoteVisibility,
)
from src.core.models.intervention import Intervention, InterventionPriority, InterventionStatus
from src.core.models.workflow import AttestationRecord, RecordKind, StatusHistoryEntry

__all__ = [
    "AttestationRecord",
    "Complaint",
    "ComplaintAssignment",
    "ComplaintNote",
    "ComplaintStatus",
    "ComplaintUrgency",
    "Intervention",
    "InterventionPriority",
    "InterventionStatus",
    "NoteVisibility",
    "RecordKind",
    "StatusHistoryEntry",
]
