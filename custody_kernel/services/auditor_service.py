"""
AuditorService -- the hash-chained custody audit trail.

Every custody transition appends one ``AuditEvent``.  Each event carries
the next number from the ``audit_event`` sequence, a digest of its payload
and the hash of the event before it, so editing, reordering or deleting
any stored event breaks every hash after it.

Architecture position:
    Kernel > Services.  Called by the store, the ledger, the lifecycle
    engine, the gate verifier, the return handler and the deployment
    service, always inside the orchestrator's unit of work.  Flush-only.

Invariants enforced:
    - ``seq`` is allocated by SequenceService, never computed as max+1.
    - ``hash = H(seq | entity_type | entity_id | action | actor_id |
      payload_hash | prev_hash)``.
    - Events are append-only (db/immutability.py).

Failure modes:
    - AuditChainBrokenError from ``validate_chain`` at the first event
      whose link, payload digest or own hash does not check out.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock, SystemClock
from custody_kernel.domain.identifiers import AUDIT_EVENT, IdGenerator, UUIDIdGenerator
from custody_kernel.exceptions import AuditChainBrokenError
from custody_kernel.logging_config import get_logger
from custody_kernel.models.audit_event import AuditAction, AuditEvent
from custody_kernel.services.sequence_service import SequenceService
from custody_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")

# Actor recorded for changes with no interactive actor (bootstrap, imports).
SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """History of one entity, oldest event first."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)


def _expected_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        seq=event.seq,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        action=event.action,
        actor_id=event.actor_id,
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
    )


class AuditorService:

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDIdGenerator()
        self._sequences = SequenceService(session)

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        actor_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append one event to the chain and flush it.

        The payload is stored in its canonical JSON form (dates and enums
        as strings) so that the stored value re-hashes to ``payload_hash``.
        """
        stored_payload = json.loads(canonicalize_json(payload or {}))
        event = AuditEvent(
            id=self._ids.next_id(AUDIT_EVENT),
            seq=self._sequences.next_value(SequenceService.AUDIT_EVENT),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=stored_payload,
            payload_hash=hash_payload(stored_payload),
            prev_hash=self._chain_head(),
        )
        event.hash = _expected_hash(event)
        self._session.add(event)
        self._session.flush()

        logger.debug(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action.value,
                "seq": event.seq,
            },
        )
        return event

    def _broken(self, event: AuditEvent, check: str, expected: str | None, found: str | None):
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": event.id, "seq": event.seq, "failed_check": check},
        )
        return AuditChainBrokenError(event.id, str(expected), str(found))

    def validate_chain(self) -> bool:
        """Walk the chain in ``seq`` order and recompute every link.

        Raises:
            AuditChainBrokenError: at the first event that does not verify.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous: str | None = None
        for event in events:
            if event.prev_hash != previous:
                raise self._broken(event, "prev_hash", previous, event.prev_hash)
            digest = hash_payload(event.payload or {})
            if digest != event.payload_hash:
                raise self._broken(event, "payload_hash", event.payload_hash, digest)
            expected = _expected_hash(event)
            if expected != event.hash:
                raise self._broken(event, "hash", expected, event.hash)
            previous = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: str) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
