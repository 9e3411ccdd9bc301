"""
Hashing for the custody audit chain.

An event hash must come out the same on every run and platform, so payloads
are first rendered as canonical JSON (sorted keys, compact separators, dates
as ISO strings) and then digested with SHA-256.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any

GENESIS = "GENESIS"


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, tuple):
        return list(value)
    raise TypeError(f"cannot hash value of type {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """SHA-256 of the canonical form of ``payload``."""
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    *,
    seq: int,
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Chain hash of one audit event.

    Covers the position in the chain, the subject, the action, who acted,
    the payload digest and the predecessor's hash.  Changing any of them,
    or removing an earlier event, changes every later hash.
    """
    return _sha256("|".join((
        str(seq),
        entity_type,
        entity_id,
        action,
        actor_id,
        payload_hash,
        prev_hash or GENESIS,
    )))
