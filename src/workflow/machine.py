"""Generic status machine with ledger attestation.

One ``StatusMachine`` drives any record kind through its statuses
according to a ``RecordPolicy``. Entering an attested status hashes the
record as it will look after the change and writes that hash to the
ledger; the new status, the history entry and the attestation commit
together or not at all.

Transitions are serialised per record by a row lock taken when the
record is loaded, held until commit or rollback, across the ledger call.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import AttestationRecord, StatusHistoryEntry
from src.workflow.errors import (
    AttestationFailed,
    InvalidTransition,
    LedgerError,
    NoOpTransition,
    NotFound,
    PreconditionError,
)
from src.workflow.policy import RecordPolicy
from src.workflow.store import AttestationStore

if TYPE_CHECKING:
    from src.integrations.ledger import LedgerClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransitionOutcome(enum.StrEnum):
    """How a transition or attestation request was satisfied.

    ``COST_UPDATED`` is returned when finalizing an intervention that was
    already validated: the cost changed, the status did not, and nothing
    was attested.
    """

    APPLIED = "applied"
    ALREADY_ATTESTED = "already_attested"
    COST_UPDATED = "cost_updated"


@dataclass
class TransitionResult:
    """Result of ``StatusMachine.transition``."""

    outcome: TransitionOutcome
    record: Any
    history: StatusHistoryEntry | None
    attestation: AttestationRecord | None


@dataclass
class AttestationResult:
    """Result of ``StatusMachine.attest``."""

    outcome: TransitionOutcome
    record: Any
    attestation: AttestationRecord


def utc_now() -> datetime:
    return datetime.now(UTC)


class StatusMachine:
    """Applies status transitions and ledger attestations for one record kind."""

    def __init__(
        self,
        session: AsyncSession,
        policy: RecordPolicy,
        ledger: LedgerClient,
        *,
        store: AttestationStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._policy = policy
        self._ledger = ledger
        self._store = store or AttestationStore(session)
        self._clock = clock or utc_now

    @property
    def policy(self) -> RecordPolicy:
        return self._policy

    async def transition(
        self,
        record_id: uuid.UUID,
        new_status: str,
        actor_id: str,
        comment: str | None = None,
        *,
        changes: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        """Move a record to ``new_status``.

        Args:
            record_id: The record to transition.
            new_status: Target status value.
            actor_id: Identity of the person making the change.
            comment: Optional free-text note stored in the history.
            changes: Field values set on the locked record once the move is
                known to be allowed, before preconditions and hashing.

        Returns:
            TransitionResult with outcome ``applied``, or ``already_attested``
            when the attested content was already on the ledger.

        Raises:
            NotFound: Record does not exist.
            InvalidStatus: ``new_status`` is not a status of this kind.
            NoOpTransition: The record already has ``new_status``.
            InvalidTransition: ``new_status`` is not reachable from the current status.
            PreconditionError: A business rule of ``new_status`` is unmet.
            AttestationFailed: The ledger call failed; nothing was persisted.
        """
        try:
            record = await self._load_for_update(record_id)
            target = self._policy.parse_status(new_status)
            current = self._policy.parse_status(record.status)

            if target == current:
                prior = await self._prior_attestation(record, target)
                if prior is None:
                    raise NoOpTransition(target.value)
                logger.info(
                    "%s %s already attested in status %s (tx %s)",
                    self._policy.kind.value,
                    record_id,
                    target.value,
                    prior.external_tx_id,
                )
                await self._session.commit()
                return TransitionResult(TransitionOutcome.ALREADY_ATTESTED, record, None, prior)

            if target not in self._policy.allowed_targets(current):
                raise InvalidTransition(current.value, target.value)
            for name, value in (changes or {}).items():
                setattr(record, name, value)
            self._policy.check_preconditions(record, target)

            return await self._run_to_completion(self._apply(record, current, target, actor_id, comment))
        except BaseException:
            await self._session.rollback()
            raise

    async def attest(self, record_id: uuid.UUID, actor_id: str) -> AttestationResult:
        """Attest the record's current content without changing its status.

        Raises:
            NotFound: Record does not exist.
            PreconditionError: The current status does not allow attestation,
                or one of its preconditions is unmet.
            AttestationFailed: The ledger call failed; nothing was persisted.
        """
        try:
            record = await self._load_for_update(record_id)
            status = self._policy.parse_status(record.status)
            on_demand = self._policy.on_demand_statuses
            if on_demand and status not in on_demand:
                raise PreconditionError(
                    "status",
                    f"Cannot attest a {self._policy.kind.value} in status {status.value}",
                )
            self._policy.check_preconditions(record, status)

            fields = self._policy.snapshot(record)
            content_hash = self._policy.content_hash(fields)
            prior = await self._store.find(record.id, content_hash)
            if prior is not None:
                logger.info(
                    "%s %s content %s already attested (tx %s)",
                    self._policy.kind.value,
                    record_id,
                    content_hash,
                    prior.external_tx_id,
                )
                await self._session.commit()
                return AttestationResult(TransitionOutcome.ALREADY_ATTESTED, record, prior)

            return await self._run_to_completion(self._record_attestation(record, fields, content_hash, actor_id))
        except BaseException:
            await self._session.rollback()
            raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_for_update(self, record_id: uuid.UUID) -> Any:
        model = self._policy.model
        # populate_existing: a copy already in the session may predate the lock
        result = await self._session.execute(
            select(model)
            .where(model.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFound(self._policy.kind.value, record_id)
        return record

    async def _prior_attestation(self, record: Any, status: enum.StrEnum) -> AttestationRecord | None:
        if not self._policy.is_attested(status):
            return None
        content_hash = self._policy.content_hash(self._policy.snapshot(record))
        return await self._store.find(record.id, content_hash)

    async def _run_to_completion(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run the ledger-and-commit section so that cancelling the caller cannot interrupt it.

        A dispatched ledger write cannot be taken back, so the database must
        end up matching whatever the ledger answered.
        """
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait({task})
            raise

    async def _submit(self, record_id: uuid.UUID, content_hash: str, metadata: dict[str, Any]) -> AttestationRecord:
        """Write the hash to the ledger and build the (unsaved) attestation row."""
        try:
            receipt = await self._ledger.submit(str(record_id), content_hash, metadata)
        except LedgerError as exc:
            logger.warning(
                "Ledger attestation of %s %s failed: %s", self._policy.kind.value, record_id, exc
            )
            raise AttestationFailed(exc) from exc
        return AttestationRecord(
            record_kind=self._policy.kind,
            record_id=record_id,
            content_hash=content_hash,
            external_tx_id=receipt.tx_id,
            block_ref=receipt.block_ref,
            external_timestamp=receipt.external_timestamp,
            created_at=self._clock(),
        )

    async def _apply(
        self,
        record: Any,
        current: enum.StrEnum,
        target: enum.StrEnum,
        actor_id: str,
        comment: str | None,
    ) -> TransitionResult:
        now = self._clock()
        outcome = TransitionOutcome.APPLIED
        attestation: AttestationRecord | None = None
        fresh = False

        if self._policy.is_attested(target):
            # Hash the record as it will look once the new status is applied
            fields = self._policy.snapshot(record, target)
            content_hash = self._policy.content_hash(fields)
            attestation = await self._store.find(record.id, content_hash)
            if attestation is not None:
                outcome = TransitionOutcome.ALREADY_ATTESTED
            else:
                metadata = self._policy.ledger_metadata(fields, now)
                attestation = await self._submit(record.id, content_hash, metadata)
                fresh = True

        # Nothing on the record changes before the ledger has answered
        record.status = target
        stamp = self._policy.status_timestamps.get(target)
        if stamp:
            setattr(record, stamp, now)

        history = StatusHistoryEntry(
            record_kind=self._policy.kind,
            record_id=record.id,
            previous_status=current.value,
            new_status=target.value,
            actor_id=actor_id,
            comment=comment,
            created_at=now,
        )
        self._session.add(history)
        if fresh and attestation is not None:
            await self._store.save(attestation)
        await self._session.commit()

        logger.info(
            "%s %s: %s -> %s by %s (%s)",
            self._policy.kind.value,
            record.id,
            current.value,
            target.value,
            actor_id,
            outcome.value,
        )
        return TransitionResult(outcome, record, history, attestation)

    async def _record_attestation(
        self,
        record: Any,
        fields: dict[str, Any],
        content_hash: str,
        actor_id: str,
    ) -> AttestationResult:
        now = self._clock()
        metadata = self._policy.ledger_metadata(fields, now)
        attestation = await self._submit(record.id, content_hash, metadata)
        await self._store.save(attestation)
        await self._session.commit()
        logger.info(
            "%s %s attested on demand by %s (tx %s)",
            self._policy.kind.value,
            record.id,
            actor_id,
            attestation.external_tx_id,
        )
        return AttestationResult(TransitionOutcome.APPLIED, record, attestation)
