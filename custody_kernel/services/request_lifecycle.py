"""
RequestLifecycleEngine -- the custody request state machine.

Responsibility:
    Validates and applies request transitions (submit, decide, cancel,
    confirm checkout, acknowledge review, return), stamps every transition
    from the injected clock, mints gate passes on approval, and emits
    notification and audit side effects.

Architecture position:
    Kernel > Services.  Role and state rules come from ``REQUEST_WORKFLOW``
    in domain/lifecycle.py; asset status changes are delegated to
    AssetLedger (through GateVerifier and ReturnHandler).

Invariants enforced:
    - Only edges of ``REQUEST_TRANSITIONS`` are applied; terminal statuses
      never change again.  CANCELLED is reachable only from PENDING.
    - Leaving PENDING by admin action stamps ``decided_by``/``decided_at``
      and sets exactly one of {approved_by + approved_at, rejection_reason}.
    - ``gate_pass_code`` is set iff the request has reached APPROVED.
    - Submission dedupes asset ids (order kept) and refuses assets that are
      not AVAILABLE or are attached to another open request.  Submission
      does NOT reserve assets: the reservation is soft until gate exit.
    - A rejected transition raises before anything is flushed for it.

Failure modes:
    - ValidationError, AssetNotFoundError, AssetUnavailableError on submit.
    - RequestNotFoundError, InvalidStateError, NotAuthorizedError,
      NotOwnerError, InactiveUserError on transitions.
    - GatePassExhaustedError when no free code can be minted.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock
from custody_kernel.domain.dtos import Evidence, RequestRecord
from custody_kernel.domain.identifiers import REQUEST, IdGenerator
from custody_kernel.domain.lifecycle import (
    REQUEST_WORKFLOW,
    AssetStatus,
    Decision,
    GateState,
    RequestStatus,
    Severity,
    UserRole,
)
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import (
    AssetNotFoundError,
    AssetUnavailableError,
    InvalidStateError,
    NotOwnerError,
    ValidationError,
)
from custody_kernel.logging_config import get_logger
from custody_kernel.models.asset import Asset
from custody_kernel.models.audit_event import AuditAction
from custody_kernel.models.request import CustodyRequest, RequestItem
from custody_kernel.models.user import User
from custody_kernel.selectors.request_selector import RequestSelector
from custody_kernel.services.auditor_service import AuditorService
from custody_kernel.services.base import BaseService
from custody_kernel.services.gate_pass_service import GatePassMinter
from custody_kernel.services.notification_service import NotificationService
from custody_kernel.services.request_lookup import load_request, transition_for
from custody_kernel.services.return_handler import ReturnHandler

logger = get_logger("services.request_lifecycle")


class RequestLifecycleEngine(BaseService):
    """
    Applies request transitions within the caller's transaction.

    Every public method returns the post-transition RequestRecord.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ids: IdGenerator,
        minter: GatePassMinter,
        notifier: NotificationService,
        auditor: AuditorService,
        returns: ReturnHandler,
        policy: CustodyPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._ids = ids
        self._minter = minter
        self._notifier = notifier
        self._auditor = auditor
        self._returns = returns
        self._policy = policy or CustodyPolicy()

    def _authorize(self, actor_id: str, action: str, request: CustodyRequest | None = None) -> User:
        actor = self._require_actor(actor_id, action, REQUEST_WORKFLOW.roles_for(action))
        if (
            request is not None
            and REQUEST_WORKFLOW.is_owner_only(action)
            and actor.id != request.user_id
        ):
            raise NotOwnerError(actor.id, request.id, action)
        return actor

    # Submission

    def submit(
        self,
        requester_id: str,
        asset_ids: list[str],
        purpose: str,
        return_date: date,
        evidence: Evidence | None = None,
    ) -> RequestRecord:
        """
        Create a PENDING request for ``asset_ids``.

        Postconditions: asset status is unchanged.
        """
        requester = self._require_actor(requester_id, "submit")

        purpose = (purpose or "").strip()
        if not purpose:
            raise ValidationError("purpose", "must not be empty")
        item_ids = list(dict.fromkeys(asset_ids or []))
        if not item_ids:
            raise ValidationError("asset_ids", "at least one asset is required")
        now = self._clock.now()
        if return_date < now.date():
            raise ValidationError("return_date", f"{return_date} is in the past")
        if evidence is None and self._policy.require_checkout_evidence:
            raise ValidationError("checkout_evidence", "evidence is required")

        assets = {
            asset.id: asset
            for asset in self.session.execute(
                select(Asset).where(Asset.id.in_(item_ids))
            ).scalars()
        }
        holders = RequestSelector(self.session).open_holders(item_ids)
        for asset_id in item_ids:
            asset = assets.get(asset_id)
            if asset is None:
                raise AssetNotFoundError(asset_id)
            if asset.status != AssetStatus.AVAILABLE.value:
                raise AssetUnavailableError(asset_id, asset.status)
            if asset_id in holders:
                raise AssetUnavailableError(
                    asset_id, asset.status, f"attached to open request {holders[asset_id]}",
                )

        request = CustodyRequest(
            id=self._ids.next_id(REQUEST),
            user_id=requester.id,
            status=RequestStatus.PENDING.value,
            request_date=now,
            return_date=return_date,
            purpose=purpose,
            checkout_evidence_ref=evidence.reference if evidence else None,
            checkout_evidence_type=evidence.content_type if evidence else None,
            gate_state=GateState.UNVERIFIED.value,
            gate_verified=False,
            needs_review=False,
        )
        request.items = [
            RequestItem(id=f"{request.id}:{position}", asset_id=asset_id, position=position)
            for position, asset_id in enumerate(item_ids)
        ]
        self.session.add(request)
        self.session.flush()

        # Point-in-time copy of who asked for what; reads always re-join live rows.
        self._auditor.record(
            "Request", request.id, AuditAction.REQUEST_SUBMITTED, requester.id,
            {
                "requester": {
                    "name": requester.name,
                    "email": requester.email,
                    "phone_number": requester.phone_number,
                },
                "items": [
                    {"id": a, "serial_number": assets[a].serial_number}
                    for a in item_ids
                ],
                "purpose": purpose,
                "return_date": return_date,
            },
        )
        self._notifier.notify(
            requester.id,
            f"Request {request.id} submitted for {len(item_ids)} item(s).",
            Severity.INFO,
            request.id,
        )
        logger.info(
            "request_submitted",
            extra={"request_id": request.id, "item_count": len(item_ids)},
        )
        return request.to_dto()

    # Admin decision

    def decide(
        self,
        request_id: str,
        actor_id: str,
        outcome: Decision | str,
        reason: str | None = None,
    ) -> RequestRecord:
        """Approve (minting a gate pass) or reject a PENDING request."""
        decision = Decision(outcome)
        action = "approve" if decision is Decision.APPROVE else "reject"
        actor = self._authorize(actor_id, action)
        request = load_request(self.session, request_id)
        transition = transition_for(request, action)

        cleaned_reason = (reason or "").strip()
        if decision is Decision.REJECT and not cleaned_reason:
            raise ValidationError("reason", "a rejection reason is required")

        now = self._clock.now()
        request.decided_by = actor.id
        request.decided_at = now

        if decision is Decision.APPROVE:
            code = self._minter.mint()
            request.approved_by = actor.id
            request.approved_at = now
            request.gate_pass_code = code
            request.gate_state = GateState.UNVERIFIED.value
            request.gate_verified = False
            request.status = transition.to_state.value
            self.session.flush()

            self._auditor.record(
                "Request", request.id, AuditAction.REQUEST_APPROVED, actor.id,
                {"gate_pass_code": code},
            )
            self._notifier.notify(
                request.user_id,
                f"Request {request.id} approved. Your gate pass is {code}.",
                Severity.SUCCESS,
                request.id,
            )
            logger.info(
                "request_approved",
                extra={"request_id": request.id, "gate_pass_code": code},
            )
        else:
            request.rejection_reason = cleaned_reason
            request.status = transition.to_state.value
            self.session.flush()

            self._auditor.record(
                "Request", request.id, AuditAction.REQUEST_REJECTED, actor.id,
                {"reason": cleaned_reason},
            )
            self._notifier.notify(
                request.user_id,
                f"Request {request.id} rejected: {cleaned_reason}",
                Severity.WARNING,
                request.id,
            )
            logger.info("request_rejected", extra={"request_id": request.id})

        return request.to_dto()

    # Requester actions

    def cancel(self, request_id: str, requester_id: str, note: str) -> RequestRecord:
        """Withdraw a PENDING request.  Owner only."""
        request = load_request(self.session, request_id)
        self._authorize(requester_id, "cancel", request)
        transition = transition_for(request, "cancel")

        cleaned = (note or "").strip()
        if not cleaned:
            raise ValidationError("note", "a cancellation note is required")

        request.status = transition.to_state.value
        request.cancellation_note = cleaned
        request.cancelled_at = self._clock.now()
        self.session.flush()

        self._auditor.record(
            "Request", request.id, AuditAction.REQUEST_CANCELLED, requester_id,
            {"note": cleaned},
        )
        self._notifier.notify(
            request.user_id,
            f"Request {request.id} cancelled.",
            Severity.INFO,
            request.id,
        )
        logger.info("request_cancelled", extra={"request_id": request.id})
        return request.to_dto()

    def submit_return(
        self,
        request_id: str,
        evidence: Evidence | None = None,
        missing_items_report: str | None = None,
        actor_id: str | None = None,
    ) -> RequestRecord:
        return self._returns.submit_return(
            request_id,
            evidence=evidence,
            missing_items_report=missing_items_report,
            actor_id=actor_id,
        )

    # Exit confirmation and review

    def confirm_checkout(self, request_id: str, actor_id: str) -> RequestRecord:
        """APPROVED + gate verified -> CHECKED_OUT."""
        actor = self._authorize(actor_id, "confirm_checkout")
        request = load_request(self.session, request_id)
        transition = transition_for(request, "confirm_checkout")
        if not request.gate_verified:
            raise InvalidStateError(request.id, request.status, "confirm_checkout")

        request.status = transition.to_state.value
        request.checked_out_by = actor.id
        request.checked_out_at = self._clock.now()
        self.session.flush()

        self._auditor.record(
            "Request", request.id, AuditAction.REQUEST_CHECKED_OUT, actor.id, {},
        )
        self._notifier.notify(
            request.user_id,
            f"Request {request.id} checked out.",
            Severity.INFO,
            request.id,
        )
        logger.info("request_checked_out", extra={"request_id": request.id})
        return request.to_dto()

    def acknowledge_review(self, request_id: str, admin_id: str) -> RequestRecord:
        """Clear the review flag raised by a missing/damaged items report."""
        actor = self._require_actor(admin_id, "acknowledge_review", {UserRole.ADMIN})
        request = load_request(self.session, request_id)
        if not request.needs_review:
            raise InvalidStateError(request.id, request.status, "acknowledge_review")

        request.needs_review = False
        request.reviewed_by = actor.id
        request.reviewed_at = self._clock.now()
        self.session.flush()

        self._auditor.record(
            "Request", request.id, AuditAction.REQUEST_REVIEWED, actor.id, {},
        )
        logger.info("request_review_acknowledged", extra={"request_id": request.id})
        return request.to_dto()
