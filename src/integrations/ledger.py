"""Ledger clients for proof-of-record attestation.

The status machine only needs ``submit`` (write a content hash for an
entity and get a receipt back) and ``verify`` (ask whether a hash is
recorded). Two implementations are provided:

- ``HttpLedgerClient`` talks to a ledger gateway over HTTP. The gateway
  owns the chain specifics (wallet, contract ABI, confirmations).
- ``InMemoryLedgerClient`` keeps receipts in process memory, for local
  development and tests.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from src.core.config import Settings
from src.core.models import RecordKind
from src.workflow.errors import LedgerError, LedgerRejected, LedgerUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerReceipt:
    """Proof that a hash was written to the ledger."""

    tx_id: str
    block_ref: int | None
    external_timestamp: datetime


@dataclass(frozen=True)
class LedgerVerification:
    """Whether a hash is recorded for an entity, and since when."""

    exists: bool
    external_timestamp: datetime | None = None


class LedgerClient(Protocol):
    """Interface consumed by the status machine."""

    async def submit(self, entity_id: str, content_hash: str, metadata: dict[str, Any]) -> LedgerReceipt: ...

    async def verify(self, entity_id: str, content_hash: str) -> LedgerVerification: ...


def _parse_timestamp(value: Any) -> datetime:
    """Accept unix seconds or an ISO-8601 string."""
    if isinstance(value, bool):
        raise LedgerRejected(f"Invalid ledger timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise LedgerRejected(f"Invalid ledger timestamp: {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise LedgerRejected(f"Invalid ledger timestamp: {value!r}")


class HttpLedgerClient:
    """Async client for a ledger gateway REST API."""

    def __init__(
        self,
        base_url: str,
        contract: str,
        *,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.contract = contract
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an HTTP request to the gateway and map failures to ledger errors."""
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, json=json, params=params, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise LedgerUnavailable(f"Ledger request timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            if code >= 500:
                raise LedgerUnavailable(f"Ledger gateway error {code}") from exc
            raise LedgerRejected(f"Ledger refused request ({code}): {exc.response.text[:200]}") from exc
        except httpx.HTTPError as exc:
            raise LedgerUnavailable(f"Ledger unreachable: {exc}") from exc
        except ValueError as exc:
            raise LedgerRejected("Ledger answered with a non-JSON body") from exc

    async def submit(self, entity_id: str, content_hash: str, metadata: dict[str, Any]) -> LedgerReceipt:
        """Write a content hash for an entity and wait for the receipt."""
        body = {
            "contract": self.contract,
            "entity_id": entity_id,
            "document_hash": content_hash,
            "timestamp": int(datetime.now(UTC).timestamp()),
            "metadata": metadata,
        }
        data = await self._request("POST", "/documents", json=body)
        if not isinstance(data, dict) or not data.get("transaction_hash"):
            raise LedgerRejected("Ledger receipt is missing transaction_hash")

        block_number = data.get("block_number")
        receipt = LedgerReceipt(
            tx_id=str(data["transaction_hash"]),
            block_ref=int(block_number) if block_number is not None else None,
            external_timestamp=_parse_timestamp(data.get("timestamp", body["timestamp"])),
        )
        logger.info("Ledger accepted %s for entity %s in tx %s", content_hash, entity_id, receipt.tx_id)
        return receipt

    async def verify(self, entity_id: str, content_hash: str) -> LedgerVerification:
        """Ask the gateway whether a hash is recorded for an entity."""
        data = await self._request(
            "GET", f"/documents/{entity_id}/{content_hash}", params={"contract": self.contract}
        )
        if not isinstance(data, dict):
            raise LedgerRejected("Ledger verification answer is not an object")
        timestamp = data.get("timestamp") or 0
        return LedgerVerification(
            exists=bool(data.get("exists")),
            external_timestamp=_parse_timestamp(timestamp) if timestamp else None,
        )

    async def verify_connectivity(self) -> bool:
        """Check if the ledger gateway is reachable."""
        try:
            await self._request("GET", "/health")
            return True
        except LedgerError:
            logger.warning("Ledger gateway connectivity check failed")
            return False


class InMemoryLedgerClient:
    """Process-local ledger. Receipts are lost on restart.

    Set ``fail_with`` to an exception instance to make the next
    submissions raise it.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._entries: dict[tuple[str, str], LedgerReceipt] = {}
        self._block = 0
        self.submissions: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_with: LedgerError | None = None

    async def submit(self, entity_id: str, content_hash: str, metadata: dict[str, Any]) -> LedgerReceipt:
        if self.fail_with is not None:
            raise self.fail_with
        self.submissions.append((entity_id, content_hash, metadata))
        self._block += 1
        digest = hashlib.sha256(f"{entity_id}:{content_hash}:{self._block}".encode()).hexdigest()
        receipt = LedgerReceipt(tx_id=f"0x{digest}", block_ref=self._block, external_timestamp=self._clock())
        self._entries[(entity_id, content_hash)] = receipt
        return receipt

    async def verify(self, entity_id: str, content_hash: str) -> LedgerVerification:
        receipt = self._entries.get((entity_id, content_hash))
        if receipt is None:
            return LedgerVerification(exists=False)
        return LedgerVerification(exists=True, external_timestamp=receipt.external_timestamp)

    async def verify_connectivity(self) -> bool:
        return True


def create_ledger_clients(settings: Settings) -> dict[RecordKind, LedgerClient]:
    """Build one ledger client per record kind from settings.

    The memory backend shares a single instance so both kinds see the
    same ledger.
    """
    if settings.ledger_backend == "memory":
        memory = InMemoryLedgerClient()
        return {kind: memory for kind in RecordKind}

    api_key = settings.ledger_api_key.get_secret_value() or None
    contracts = {
        RecordKind.COMPLAINT: settings.ledger_complaints_contract,
        RecordKind.INTERVENTION: settings.ledger_interventions_contract,
    }
    return {
        kind: HttpLedgerClient(
            settings.ledger_url,
            contract,
            api_key=api_key,
            timeout=settings.ledger_timeout_seconds,
        )
        for kind, contract in contracts.items()
    }
