"""Content hashing for ledger attestation.

A record's attestable fields are serialised into a canonical byte string
and digested with SHA-256. The canonical form is a JSON array of
``[name, value]`` pairs in a fixed field order, so the digest does not
depend on how the input mapping was built. Missing fields and ``None``
both encode as JSON ``null``.
"""

from __future__ import annotations

import enum
import hashlib
import json
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from src.workflow.errors import EncodingError

HASH_PREFIX = "0x"


def _canonical_number(value: Decimal | int | float) -> str:
    """Render a number so that 12.5, Decimal("12.50") and Decimal("12.5") agree."""
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
        if not number.is_finite():
            raise InvalidOperation
    except InvalidOperation as exc:
        raise EncodingError(f"Cannot encode non-finite number {value!r}") from exc
    if number == 0:
        return "0"
    return format(number.normalize(), "f")


def canonical_value(name: str, value: Any) -> str | bool | None:
    """Encode a single attestable value.

    Raises:
        EncodingError: If the value has no canonical encoding.
    """
    if value is None:
        return None
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return value
    if isinstance(value, enum.Enum):
        return canonical_value(name, value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (Decimal, int, float)):
        return _canonical_number(value)
    raise EncodingError(f"Field {name!r} has non-serializable type {type(value).__name__}")


def canonical_payload(fields: Mapping[str, Any], field_order: Sequence[str]) -> bytes:
    """Serialise the attestable subset of a record in a fixed order.

    Args:
        fields: Field values keyed by name. Extra keys are ignored.
        field_order: The attestable field names, in hashing order.

    Returns:
        UTF-8 encoded canonical JSON.
    """
    pairs = [[name, canonical_value(name, fields.get(name))] for name in field_order]
    return json.dumps(pairs, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def content_hash(fields: Mapping[str, Any], field_order: Sequence[str]) -> str:
    """Compute the 0x-prefixed SHA-256 digest of a record's attestable content."""
    return HASH_PREFIX + hashlib.sha256(canonical_payload(fields, field_order)).hexdigest()


def snapshot(record: Any, field_order: Sequence[str]) -> dict[str, Any]:
    """Read the attestable fields off an ORM object (absent attributes become None)."""
    return {name: getattr(record, name, None) for name in field_order}
