"""Shared FastAPI dependencies.

Provides the database session, the per-kind ledger clients, and the
services and status machines built on top of them.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.services.records import ComplaintService, InterventionService
from src.core.models import RecordKind
from src.integrations.ledger import LedgerClient
from src.workflow.machine import StatusMachine
from src.workflow.policy import COMPLAINT_POLICY, INTERVENTION_POLICY


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state via FastAPI dependency injection.

    The session is scoped to the request lifecycle.
    """
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


def _ledger_for(request: Request, kind: RecordKind) -> LedgerClient:
    return request.app.state.ledger_clients[kind]


def get_complaint_ledger(request: Request) -> LedgerClient:
    return _ledger_for(request, RecordKind.COMPLAINT)


def get_intervention_ledger(request: Request) -> LedgerClient:
    return _ledger_for(request, RecordKind.INTERVENTION)


def get_complaint_service(session: AsyncSession = Depends(get_session)) -> ComplaintService:
    return ComplaintService(session)


def get_intervention_service(session: AsyncSession = Depends(get_session)) -> InterventionService:
    return InterventionService(session)


def get_complaint_machine(
    session: AsyncSession = Depends(get_session),
    ledger: LedgerClient = Depends(get_complaint_ledger),
) -> StatusMachine:
    return StatusMachine(session, COMPLAINT_POLICY, ledger)


def get_intervention_machine(
    session: AsyncSession = Depends(get_session),
    ledger: LedgerClient = Depends(get_intervention_ledger),
) -> StatusMachine:
    return StatusMachine(session, INTERVENTION_POLICY, ledger)
