"""
GateVerifier -- redeems gate passes at the security gate.

Responsibility:
    Resolves a presented string (decoded QR payload or typed text) to a
    request, marks an exit-eligible request verified exactly once, records
    denials, and lets an admin clear a reported issue.

Architecture position:
    Kernel > Services.  Reserves the request's assets through AssetLedger
    on verification: an asset is IN_USE from the moment it leaves the
    building.

Gate sub-machine (inside APPROVED / CHECKED_OUT):
    UNVERIFIED -> VERIFIED                      (terminal)
    UNVERIFIED -> ISSUE_REPORTED -> UNVERIFIED  (retryable)
    ``verify`` from ISSUE_REPORTED walks through UNVERIFIED.

Invariants enforced:
    - ``gate_verified`` flips false -> true at most once; a second verify
      raises AlreadyVerifiedError and leaves ``gate_verified_at`` unchanged.
    - A denial never changes request status, and is stored in its own
      columns so it never overwrites verification data.
"""

from sqlalchemy import case, select
from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock
from custody_kernel.domain.dtos import RequestRecord
from custody_kernel.domain.lifecycle import (
    EXIT_ELIGIBLE_STATUSES,
    OPEN_REQUEST_STATUSES,
    GateState,
    RequestStatus,
    Severity,
    UserRole,
    gate_path,
)
from custody_kernel.exceptions import (
    AlreadyVerifiedError,
    InvalidStateError,
    NotApprovedError,
    RequestNotFoundError,
    ValidationError,
)
from custody_kernel.logging_config import get_logger
from custody_kernel.models.audit_event import AuditAction
from custody_kernel.models.request import CustodyRequest
from custody_kernel.services.asset_ledger import AssetLedger
from custody_kernel.services.auditor_service import AuditorService
from custody_kernel.services.base import BaseService
from custody_kernel.services.notification_service import NotificationService
from custody_kernel.services.request_lookup import load_request

logger = get_logger("services.gate_verifier")


class GateVerifier(BaseService):
    """Resolves presented gate-pass codes and records the guard's verdict."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledger: AssetLedger,
        notifier: NotificationService,
        auditor: AuditorService,
    ):
        super().__init__(session)
        self._clock = clock
        self._ledger = ledger
        self._notifier = notifier
        self._auditor = auditor

    def resolve(self, code: str) -> RequestRecord:
        """
        Find the request a presented string refers to.

        Matches ``gate_pass_code`` first (case-insensitive, open requests
        preferred), then falls back to the raw request id.  The code column
        is indexed, so this never scans the table.
        """
        presented = (code or "").strip()
        if not presented:
            raise RequestNotFoundError(presented)

        open_values = [s.value for s in OPEN_REQUEST_STATUSES]
        request = self.session.execute(
            select(CustodyRequest)
            .where(CustodyRequest.gate_pass_code == presented.upper())
            .order_by(
                case((CustodyRequest.status.in_(open_values), 0), else_=1),
                CustodyRequest.request_date.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        if request is None:
            request = self.session.get(CustodyRequest, presented)
        if request is None:
            raise RequestNotFoundError(presented)
        return request.to_dto()

    def _load_eligible(self, request_id: str, action: str) -> CustodyRequest:
        request = load_request(self.session, request_id)
        if RequestStatus(request.status) not in EXIT_ELIGIBLE_STATUSES:
            raise NotApprovedError(request.id, request.status, action)
        if request.gate_verified:
            raise AlreadyVerifiedError(request.id, request.gate_verified_by)
        return request

    def verify(self, request_id: str, guard_id: str, comment: str = "") -> RequestRecord:
        """Authorize exit: mark the pass verified and reserve the assets."""
        guard = self._require_actor(guard_id, "verify", {UserRole.GUARD})
        request = self._load_eligible(request_id, "verify")

        path = gate_path(GateState(request.gate_state), GateState.VERIFIED)
        if not path:
            raise InvalidStateError(request.id, request.gate_state, "verify")

        cleaned = (comment or "").strip() or None
        request.gate_state = GateState.VERIFIED.value
        request.gate_verified = True
        request.gate_verified_by = guard.id
        request.gate_verified_at = self._clock.now()
        request.gate_comment = cleaned
        self.session.flush()

        self._ledger.reserve(list(request.item_ids), guard.id, request.id)

        self._auditor.record(
            "Request", request.id, AuditAction.GATE_VERIFIED, guard.id,
            {"comment": cleaned, "path": [step.value for step in path]},
        )
        self._notifier.notify(
            request.user_id,
            f"Exit authorized for request {request.id}.",
            Severity.SUCCESS,
            request.id,
        )
        self._notifier.notify_admins(
            f"Request {request.id} verified at the gate by {guard.name}.",
            Severity.INFO,
            request.id,
        )
        logger.info(
            "gate_exit_verified",
            extra={"request_id": request.id, "guard_id": guard.id},
        )
        return request.to_dto()

    def deny_exit(self, request_id: str, guard_id: str, comment: str) -> RequestRecord:
        """Report an issue at the gate.  Status is unchanged; retryable."""
        guard = self._require_actor(guard_id, "deny_exit", {UserRole.GUARD})
        request = self._load_eligible(request_id, "deny_exit")

        cleaned = (comment or "").strip()
        if not cleaned:
            raise ValidationError("comment", "a denial comment is required")
        path = gate_path(GateState(request.gate_state), GateState.ISSUE_REPORTED)
        if not path:
            raise InvalidStateError(request.id, request.gate_state, "deny_exit")

        request.gate_state = GateState.ISSUE_REPORTED.value
        request.gate_issue_by = guard.id
        request.gate_issue_at = self._clock.now()
        request.gate_issue_comment = cleaned
        self.session.flush()

        self._auditor.record(
            "Request", request.id, AuditAction.GATE_EXIT_DENIED, guard.id,
            {"comment": cleaned},
        )
        message = f"Exit denied for request {request.id}: {cleaned}"
        self._notifier.notify(request.user_id, message, Severity.WARNING, request.id)
        self._notifier.notify_admins(message, Severity.WARNING, request.id)
        logger.warning(
            "gate_exit_denied",
            extra={"request_id": request.id, "guard_id": guard.id},
        )
        return request.to_dto()

    def clear_gate_issue(self, request_id: str, admin_id: str, note: str) -> RequestRecord:
        """ISSUE_REPORTED -> UNVERIFIED, by an administrator."""
        admin = self._require_actor(admin_id, "clear_gate_issue", {UserRole.ADMIN})
        request = load_request(self.session, request_id)
        if request.gate_state != GateState.ISSUE_REPORTED.value:
            raise InvalidStateError(request.id, request.gate_state, "clear_gate_issue")

        cleaned = (note or "").strip()
        if not cleaned:
            raise ValidationError("note", "a note is required")

        request.gate_state = GateState.UNVERIFIED.value
        self.session.flush()

        self._auditor.record(
            "Request", request.id, AuditAction.GATE_ISSUE_CLEARED, admin.id,
            {"note": cleaned},
        )
        self._notifier.notify(
            request.user_id,
            f"Gate issue on request {request.id} cleared: {cleaned}",
            Severity.INFO,
            request.id,
        )
        logger.info("gate_issue_cleared", extra={"request_id": request.id})
        return request.to_dto()
