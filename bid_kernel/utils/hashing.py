"""
Canonical JSON and SHA-256 helpers for the audit chain.

Payloads are stored as JSON and hashed from their canonical text, so the
hash computed at write time must be reproducible from the stored column.
``to_json_safe`` is applied before both storing and hashing.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"


def _encode_value(value: Any) -> Any:
    # 140 and 140.000000000 must hash the same after a Numeric round-trip
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Cannot encode {type(value).__name__} in an audit payload")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, domain values rendered as strings."""
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), default=_encode_value,
    )


def to_json_safe(data: dict) -> dict:
    """Plain-JSON copy of ``data``, identical to what the JSON column returns."""
    return json.loads(canonicalize_json(data))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Link hash of one audit event: its identity, payload and predecessor."""
    return _sha256(
        "|".join((
            entity_type,
            str(entity_id),
            action,
            payload_hash,
            prev_hash or GENESIS_MARKER,
        ))
    )
