"""
Module: custody_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (db/immutability.py).
    - Hash chain integrity: hash = H(seq | entity_type | entity_id | action |
      actor_id | payload_hash | prev_hash).  Validated by AuditorService.
    - ``seq`` is strictly increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the audit trail.  Every custody transition (submit,
    decide, cancel, gate verify/deny, checkout, return, deployment,
    ledger move, user/asset/settings change) produces one row.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from custody_kernel.db.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions.

    Adding a member requires a recording call in the service that performs
    the action.
    """

    # Request lifecycle
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_CANCELLED = "request_cancelled"
    REQUEST_CHECKED_OUT = "request_checked_out"
    REQUEST_RETURNED = "request_returned"
    REQUEST_REVIEWED = "request_reviewed"

    # Gate
    GATE_VERIFIED = "gate_verified"
    GATE_EXIT_DENIED = "gate_exit_denied"
    GATE_ISSUE_CLEARED = "gate_issue_cleared"

    # Ledger
    ASSET_RESERVED = "asset_reserved"
    ASSET_RELEASED = "asset_released"
    ASSET_DEPLOYED = "asset_deployed"
    ASSET_MAINTENANCE_STARTED = "asset_maintenance_started"
    ASSET_MAINTENANCE_CLEARED = "asset_maintenance_cleared"

    # Deployments
    DEPLOYMENT_CREATED = "deployment_created"

    # Reference data
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_ROLE_CHANGED = "user_role_changed"
    USER_ACTIVATION_CHANGED = "user_activation_changed"
    ASSET_CREATED = "asset_created"
    ASSET_UPDATED = "asset_updated"
    SETTINGS_UPDATED = "settings_updated"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is unique and strictly increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT check hash correctness at INSERT time;
          that is AuditorService's job.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "Request", "Asset", "Deployment", "User", "Settings"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
