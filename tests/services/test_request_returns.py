"""Tests for returns, checkout confirmation and review acknowledgement."""

import pytest

from custody_kernel.domain.dtos import Evidence
from custody_kernel.domain.lifecycle import AssetStatus, RequestStatus, Severity
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import (
    InvalidStateError,
    NotAuthorizedError,
    NotOwnerError,
    ValidationError,
)
from tests.conftest import START_TIME

RETURN_PHOTO = Evidence("evidence://photos/return-1.jpg", "image/jpeg")


class TestSubmitReturn:

    def test_return_releases_assets(self, orchestrator, seed, verified, clock):
        view = verified(asset_ids=seed.asset_ids(0, 2))
        clock.advance(3600)

        returned = orchestrator.submit_return(view.id, RETURN_PHOTO)

        assert returned.status is RequestStatus.RETURNED
        assert returned.request.return_evidence == RETURN_PHOTO
        assert returned.request.actual_return_at > START_TIME
        assert not returned.request.needs_review
        assert [a.status for a in returned.items] == [AssetStatus.AVAILABLE] * 2

    def test_return_without_gate_verification_fails(self, orchestrator, seed, approved):
        view = approved()
        with pytest.raises(InvalidStateError):
            orchestrator.submit_return(view.id)
        assert orchestrator.get_request(view.id).status is RequestStatus.APPROVED

    def test_pending_request_cannot_be_returned(self, orchestrator, submit):
        view = submit()
        with pytest.raises(InvalidStateError):
            orchestrator.submit_return(view.id)

    def test_returned_is_terminal(self, orchestrator, verified):
        view = verified()
        orchestrator.submit_return(view.id)
        with pytest.raises(InvalidStateError):
            orchestrator.submit_return(view.id)

    def test_missing_items_report_flags_review(self, orchestrator, seed, verified, sink):
        view = verified()
        returned = orchestrator.submit_return(
            view.id, missing_items_report="Charger missing",
        )

        assert returned.request.needs_review
        assert returned.request.missing_items_report == "Charger missing"
        warnings = [
            n for n in sink.delivered
            if n.user_id == seed.admin.id and n.severity is Severity.WARNING
        ]
        assert len(warnings) == 1
        assert "Charger missing" in warnings[0].message

    def test_blank_report_does_not_flag_review(self, orchestrator, verified):
        view = verified()
        returned = orchestrator.submit_return(view.id, missing_items_report="   ")
        assert not returned.request.needs_review
        assert returned.request.missing_items_report is None

    def test_admin_may_return_on_behalf(self, orchestrator, seed, verified):
        view = verified()
        returned = orchestrator.submit_return(view.id, actor_id=seed.admin.id)
        assert returned.status is RequestStatus.RETURNED

    def test_other_user_may_not_return(self, orchestrator, seed, verified):
        view = verified()
        with pytest.raises(NotOwnerError):
            orchestrator.submit_return(view.id, actor_id=seed.bob.id)

    def test_evidence_required_by_policy(self, make_orchestrator, seed, verified):
        view = verified()
        strict = make_orchestrator(policy=CustodyPolicy(require_return_evidence=True))
        with pytest.raises(ValidationError):
            strict.submit_return(view.id)
        assert strict.submit_return(view.id, RETURN_PHOTO).status is RequestStatus.RETURNED

    def test_requester_is_told(self, orchestrator, seed, verified, sink):
        view = verified()
        orchestrator.submit_return(view.id)
        assert f"Return of request {view.id} recorded." in sink.messages_for(seed.alice.id)


class TestConfirmCheckout:

    def test_guard_confirms_checkout(self, orchestrator, seed, verified):
        view = verified()
        checked_out = orchestrator.confirm_checkout(view.id, seed.guard.id)

        assert checked_out.status is RequestStatus.CHECKED_OUT
        assert checked_out.request.checked_out_by == seed.guard.id
        assert checked_out.request.checked_out_at == START_TIME
        assert checked_out.items[0].status is AssetStatus.IN_USE

    def test_requires_gate_verification(self, orchestrator, seed, approved):
        view = approved()
        with pytest.raises(InvalidStateError):
            orchestrator.confirm_checkout(view.id, seed.admin.id)

    def test_requester_may_not_confirm(self, orchestrator, seed, verified):
        view = verified()
        with pytest.raises(NotAuthorizedError):
            orchestrator.confirm_checkout(view.id, seed.alice.id)

    def test_checked_out_request_returns(self, orchestrator, seed, verified):
        view = verified()
        orchestrator.confirm_checkout(view.id, seed.admin.id)
        returned = orchestrator.submit_return(view.id, actor_id=seed.alice.id)
        assert returned.status is RequestStatus.RETURNED
        assert returned.items[0].status is AssetStatus.AVAILABLE


class TestAcknowledgeReview:

    def test_admin_clears_review_flag(self, orchestrator, seed, verified):
        view = verified()
        orchestrator.submit_return(view.id, missing_items_report="Lens cap lost")
        reviewed = orchestrator.acknowledge_review(view.id, seed.admin.id)

        assert not reviewed.request.needs_review
        assert reviewed.request.reviewed_by == seed.admin.id
        assert reviewed.request.missing_items_report == "Lens cap lost"

    def test_nothing_to_review(self, orchestrator, seed, verified):
        view = verified()
        orchestrator.submit_return(view.id)
        with pytest.raises(InvalidStateError):
            orchestrator.acknowledge_review(view.id, seed.admin.id)

    def test_only_admins_acknowledge(self, orchestrator, seed, verified):
        view = verified()
        orchestrator.submit_return(view.id, missing_items_report="Lens cap lost")
        with pytest.raises(NotAuthorizedError):
            orchestrator.acknowledge_review(view.id, seed.guard.id)
