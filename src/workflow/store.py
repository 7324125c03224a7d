"""Attestation store backed by the ``attestations`` table.

Writes happen inside the caller's transaction: ``save`` only flushes,
so the attestation commits or rolls back together with the status
change that produced it.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import AttestationRecord
from src.workflow.errors import AttestationConflict

logger = logging.getLogger(__name__)


class AttestationStore:
    """Query and persist ledger receipts per record."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find(self, record_id: uuid.UUID, content_hash: str) -> AttestationRecord | None:
        """Return the attestation of this exact content snapshot, if any."""
        result = await self._session.execute(
            select(AttestationRecord).where(
                AttestationRecord.record_id == record_id,
                AttestationRecord.content_hash == content_hash,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, attestation: AttestationRecord) -> AttestationRecord:
        """Stage an attestation in the current transaction.

        Raises:
            AttestationConflict: If the (record, hash) pair already exists.
        """
        self._session.add(attestation)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            logger.warning(
                "Attestation %s for record %s already stored", attestation.content_hash, attestation.record_id
            )
            raise AttestationConflict(attestation.record_id, attestation.content_hash) from exc
        return attestation

    async def list_for(self, record_id: uuid.UUID) -> list[AttestationRecord]:
        """All attestations of a record, oldest first."""
        result = await self._session.execute(
            select(AttestationRecord)
            .where(AttestationRecord.record_id == record_id)
            .order_by(AttestationRecord.created_at, AttestationRecord.id)
        )
        return list(result.scalars().all())

    async def latest_for(self, record_id: uuid.UUID) -> AttestationRecord | None:
        """The most recent attestation of a record."""
        result = await self._session.execute(
            select(AttestationRecord)
            .where(AttestationRecord.record_id == record_id)
            .order_by(AttestationRecord.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def delete_for(self, record_id: uuid.UUID) -> None:
        """Drop every attestation of a record. Only used when the record itself is deleted."""
        await self._session.execute(delete(AttestationRecord).where(AttestationRecord.record_id == record_id))
