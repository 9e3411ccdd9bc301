"""
ReturnHandler -- closes out a gate-verified request.

Responsibility:
    Moves an APPROVED or CHECKED_OUT request that has passed the gate to
    RETURNED, records return evidence and any missing/damaged items
    report, and releases every referenced asset back to AVAILABLE.

Architecture position:
    Kernel > Services.  Reached through RequestLifecycleEngine.submit_return;
    asset status is written by AssetLedger.release.

Invariants enforced:
    - A return requires ``gate_verified``: assets that never left the
      building cannot come back.
    - A non-empty report sets ``needs_review`` and warns the admin audience.
    - When an actor is named, it must be the requester or an ADMIN.
"""

from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock
from custody_kernel.domain.dtos import Evidence, RequestRecord
from custody_kernel.domain.lifecycle import Severity, UserRole
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import InvalidStateError, NotOwnerError, ValidationError
from custody_kernel.logging_config import get_logger
from custody_kernel.models.audit_event import AuditAction
from custody_kernel.services.asset_ledger import AssetLedger
from custody_kernel.services.auditor_service import AuditorService
from custody_kernel.services.base import BaseService
from custody_kernel.services.notification_service import NotificationService
from custody_kernel.services.request_lookup import load_request, transition_for

logger = get_logger("services.return_handler")


class ReturnHandler(BaseService):
    """Closes out a gate-verified request and releases its assets."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledger: AssetLedger,
        notifier: NotificationService,
        auditor: AuditorService,
        policy: CustodyPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._ledger = ledger
        self._notifier = notifier
        self._auditor = auditor
        self._policy = policy or CustodyPolicy()

    def submit_return(
        self,
        request_id: str,
        evidence: Evidence | None = None,
        missing_items_report: str | None = None,
        actor_id: str | None = None,
    ) -> RequestRecord:
        """
        Record the return of a verified request.

        Postconditions: status is RETURNED and every referenced asset is
            AVAILABLE.

        Raises:
            InvalidStateError: Status is not APPROVED/CHECKED_OUT, or the
                gate pass was never verified.
            NotOwnerError: ``actor_id`` is neither the requester nor an admin.
            ValidationError: Evidence is required by policy but missing.
        """
        request = load_request(self.session, request_id)
        if actor_id is not None:
            actor = self._require_actor(actor_id, "return")
            if actor.id != request.user_id and actor.role != UserRole.ADMIN.value:
                raise NotOwnerError(actor.id, request.id, "return")

        transition = transition_for(request, "return")
        if not request.gate_verified:
            raise InvalidStateError(request.id, request.status, "return")
        if evidence is None and self._policy.require_return_evidence:
            raise ValidationError("return_evidence", "evidence is required")

        report = (missing_items_report or "").strip() or None
        request.status = transition.to_state.value
        request.actual_return_at = self._clock.now()
        if evidence is not None:
            request.return_evidence_ref = evidence.reference
            request.return_evidence_type = evidence.content_type
        request.missing_items_report = report
        request.needs_review = report is not None
        self.session.flush()

        returned_by = actor_id or request.user_id
        self._ledger.release(list(request.item_ids), returned_by, request.id)

        self._auditor.record(
            "Request", request.id, AuditAction.REQUEST_RETURNED, returned_by,
            {
                "has_evidence": evidence is not None,
                "missing_items_report": report,
            },
        )
        self._notifier.notify(
            request.user_id,
            f"Return of request {request.id} recorded.",
            Severity.SUCCESS,
            request.id,
        )
        if report is not None:
            self._notifier.notify_admins(
                f"Request {request.id} returned with missing or damaged items: {report}",
                Severity.WARNING,
                request.id,
            )
        logger.info(
            "request_returned",
            extra={"request_id": request.id, "needs_review": request.needs_review},
        )
        return request.to_dto()
