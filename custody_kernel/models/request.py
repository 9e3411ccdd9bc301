"""
Module: custody_kernel.models.request
Responsibility: ORM persistence for custody requests and their ordered items.

Architecture position: Kernel > Models.  May import from db/, domain/ and
    exceptions.

Invariants enforced:
    - ``status`` and ``gate_state`` limited to their enum values (check
      constraints); the services enforce which transitions are legal.
    - ``gate_pass_code`` is indexed so gate lookups never scan the table.
      It is not UNIQUE: codes are unique only among open requests, and a
      returned request keeps its historical code.
    - UNIQUE(request_id, asset_id): a request names each asset once.
    - Request items are append-only: no UPDATE, no DELETE (see
      db/immutability.py).

Audit relevance:
    Requests are never deleted.  Every column that a transition stamps
    (decided/approved/cancelled/gate/return) is write-once by convention
    of the services and recorded in the audit chain.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from custody_kernel.db.base import Base
from custody_kernel.domain.dtos import Evidence, RequestRecord
from custody_kernel.domain.lifecycle import GateState, RequestStatus


def _evidence(reference: str | None, content_type: str | None) -> Evidence | None:
    if reference is None:
        return None
    return Evidence(reference=reference, content_type=content_type or "")


class CustodyRequest(Base):
    """The primary workflow entity: a user's request to take assets out."""

    __tablename__ = "requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'CHECKED_OUT', "
            "'RETURNED', 'CANCELLED')",
            name="ck_requests_valid_status",
        ),
        CheckConstraint(
            "gate_state IN ('UNVERIFIED', 'VERIFIED', 'ISSUE_REPORTED')",
            name="ck_requests_valid_gate_state",
        ),
        Index("ix_requests_gate_pass_code", "gate_pass_code"),
        Index("ix_requests_status", "status"),
        Index("ix_requests_user_id", "user_id", "request_date"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RequestStatus.PENDING.value,
    )
    request_date: Mapped[datetime] = mapped_column(nullable=False)
    return_date: Mapped[date] = mapped_column(Date, nullable=False)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)

    # Evidence
    checkout_evidence_ref: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    checkout_evidence_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    return_evidence_ref: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    return_evidence_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    missing_items_report: Mapped[str | None] = mapped_column(Text, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reviewed_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Decision
    decided_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cancellation
    cancellation_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Gate
    gate_pass_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    gate_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GateState.UNVERIFIED.value,
    )
    gate_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gate_verified_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )
    gate_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    gate_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    gate_issue_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )
    gate_issue_at: Mapped[datetime | None] = mapped_column(nullable=True)
    gate_issue_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    checked_out_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )
    checked_out_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Return
    actual_return_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list["RequestItem"]] = relationship(
        "RequestItem",
        back_populates="request",
        order_by="RequestItem.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<CustodyRequest {self.id} status={self.status} gate={self.gate_state}>"

    @property
    def item_ids(self) -> tuple[str, ...]:
        return tuple(item.asset_id for item in self.items)

    def to_dto(self) -> RequestRecord:
        """Convert ORM model to frozen domain DTO."""
        return RequestRecord(
            id=self.id,
            user_id=self.user_id,
            item_ids=self.item_ids,
            status=RequestStatus(self.status),
            request_date=self.request_date,
            return_date=self.return_date,
            purpose=self.purpose,
            checkout_evidence=_evidence(self.checkout_evidence_ref, self.checkout_evidence_type),
            return_evidence=_evidence(self.return_evidence_ref, self.return_evidence_type),
            missing_items_report=self.missing_items_report,
            needs_review=self.needs_review,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            cancellation_note=self.cancellation_note,
            cancelled_at=self.cancelled_at,
            gate_pass_code=self.gate_pass_code,
            gate_state=GateState(self.gate_state),
            gate_verified=self.gate_verified,
            gate_verified_by=self.gate_verified_by,
            gate_verified_at=self.gate_verified_at,
            gate_comment=self.gate_comment,
            gate_issue_by=self.gate_issue_by,
            gate_issue_at=self.gate_issue_at,
            gate_issue_comment=self.gate_issue_comment,
            checked_out_by=self.checked_out_by,
            checked_out_at=self.checked_out_at,
            actual_return_at=self.actual_return_at,
        )


class RequestItem(Base):
    """One asset named by a request, in submission order. Append-only."""

    __tablename__ = "request_items"

    __table_args__ = (
        UniqueConstraint("request_id", "asset_id", name="uq_request_items_asset"),
        Index("ix_request_items_asset_id", "asset_id"),
    )

    request_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("requests.id"), nullable=False,
    )
    asset_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("assets.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    request: Mapped["CustodyRequest"] = relationship(
        "CustodyRequest", back_populates="items",
    )

    def __repr__(self) -> str:
        return f"<RequestItem {self.request_id}#{self.position} asset={self.asset_id}>"

