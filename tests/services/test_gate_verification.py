"""Tests for gate-pass resolution, exit verification and denials."""

import pytest

from custody_kernel.domain.identifiers import ScriptedCodeSource
from custody_kernel.domain.lifecycle import (
    AssetStatus,
    Decision,
    GateState,
    RequestStatus,
    Severity,
)
from custody_kernel.exceptions import (
    AlreadyVerifiedError,
    InvalidStateError,
    NotApprovedError,
    NotAuthorizedError,
    RequestNotFoundError,
    ValidationError,
)
from tests.conftest import START_TIME


class TestResolve:

    def test_resolves_gate_pass_code(self, orchestrator, approved):
        view = approved()
        assert orchestrator.resolve("GP-1000").id == view.id

    def test_code_match_is_case_insensitive_and_trimmed(self, orchestrator, approved):
        view = approved()
        assert orchestrator.resolve("  gp-1000 ").id == view.id

    def test_falls_back_to_request_id(self, orchestrator, submit):
        view = submit()
        assert orchestrator.resolve(view.id).id == view.id

    @pytest.mark.parametrize("code", ["", "   ", "GP-9999"])
    def test_unknown_code(self, orchestrator, seed, code):
        with pytest.raises(RequestNotFoundError):
            orchestrator.resolve(code)

    def test_prefers_open_request_holding_a_reused_code(
        self, make_orchestrator, seed, verified,
    ):
        first = verified()
        orchestrator = make_orchestrator(code_source=ScriptedCodeSource([1000]))
        orchestrator.submit_return(first.id, actor_id=seed.alice.id)

        second = orchestrator.submit_request(
            seed.bob.id, seed.asset_ids(0), "Second trip", first.request.return_date,
        )
        second = orchestrator.decide(second.id, seed.admin.id, Decision.APPROVE)

        assert second.request.gate_pass_code == first.request.gate_pass_code
        assert orchestrator.resolve("GP-1000").id == second.id


class TestVerify:

    def test_verification_reserves_assets(self, orchestrator, seed, approved):
        view = approved(asset_ids=seed.asset_ids(0, 1))
        verified = orchestrator.verify(view.id, seed.guard.id, "Bag checked")

        assert verified.status is RequestStatus.APPROVED
        assert verified.request.gate_verified
        assert verified.request.gate_state is GateState.VERIFIED
        assert verified.request.gate_verified_by == seed.guard.id
        assert verified.request.gate_verified_at == START_TIME
        assert verified.request.gate_comment == "Bag checked"
        assert [a.status for a in verified.items] == [AssetStatus.IN_USE] * 2

    def test_verify_by_code(self, orchestrator, seed, approved):
        view = approved()
        verified = orchestrator.verify_code("gp-1000", seed.guard.id)
        assert verified.id == view.id
        assert verified.request.gate_comment is None

    def test_second_verification_fails_and_keeps_timestamp(
        self, orchestrator, seed, clock, verified,
    ):
        view = verified()
        clock.advance(300)

        with pytest.raises(AlreadyVerifiedError) as exc_info:
            orchestrator.verify(view.id, seed.guard.id)
        assert exc_info.value.verified_by == seed.guard.id
        assert orchestrator.get_request(view.id).request.gate_verified_at == START_TIME

    def test_pending_request_is_not_approved(self, orchestrator, seed, submit):
        view = submit()
        with pytest.raises(NotApprovedError):
            orchestrator.verify(view.id, seed.guard.id)

    def test_rejected_request_is_not_approved(self, orchestrator, seed, submit):
        view = submit()
        orchestrator.decide(view.id, seed.admin.id, Decision.REJECT, "budget")
        with pytest.raises(NotApprovedError):
            orchestrator.verify(view.id, seed.guard.id)

    @pytest.mark.parametrize("actor", ["admin", "alice"])
    def test_only_guards_verify(self, orchestrator, seed, approved, actor):
        view = approved()
        with pytest.raises(NotAuthorizedError):
            orchestrator.verify(view.id, getattr(seed, actor).id)
        assert not orchestrator.get_request(view.id).request.gate_verified

    def test_unknown_request(self, orchestrator, seed):
        with pytest.raises(RequestNotFoundError):
            orchestrator.verify("req-404", seed.guard.id)

    def test_notifies_requester_and_admins(self, orchestrator, seed, verified, sink):
        view = verified()
        alice_latest = [n for n in sink.delivered if n.user_id == seed.alice.id][-1]
        assert alice_latest.severity is Severity.SUCCESS
        assert alice_latest.message == f"Exit authorized for request {view.id}."
        assert any(view.id in m for m in sink.messages_for(seed.admin.id))

    def test_records_audit_event(self, orchestrator, verified):
        view = verified()
        trace = orchestrator.get_audit_trace("Request", view.id)
        actions = [entry.action for entry in trace.entries]
        assert actions[-1] == "gate_verified"


class TestDenyExit:

    def test_denial_keeps_status_and_assets(self, orchestrator, seed, approved):
        view = approved()
        denied = orchestrator.deny_exit(view.id, seed.guard.id, "Serial mismatch")

        assert denied.status is RequestStatus.APPROVED
        assert denied.request.gate_state is GateState.ISSUE_REPORTED
        assert denied.request.gate_issue_comment == "Serial mismatch"
        assert denied.request.gate_issue_by == seed.guard.id
        assert not denied.request.gate_verified
        assert orchestrator.get_asset(seed.assets[0].id).status is AssetStatus.AVAILABLE

    def test_requires_comment(self, orchestrator, seed, approved):
        view = approved()
        with pytest.raises(ValidationError):
            orchestrator.deny_exit(view.id, seed.guard.id, "  ")

    def test_cannot_deny_twice(self, orchestrator, seed, approved, sink):
        view = approved()
        orchestrator.deny_exit(view.id, seed.guard.id, "Serial mismatch")
        warnings_before = len(sink.messages_for(seed.admin.id))
        with pytest.raises(InvalidStateError):
            orchestrator.deny_exit(view.id, seed.guard.id, "Still wrong")

        kept = orchestrator.get_request(view.id).request
        assert kept.gate_state is GateState.ISSUE_REPORTED
        assert kept.gate_issue_comment == "Serial mismatch"
        assert len(sink.messages_for(seed.admin.id)) == warnings_before

    def test_cannot_deny_after_verification(self, orchestrator, seed, verified):
        view = verified()
        with pytest.raises(AlreadyVerifiedError):
            orchestrator.deny_exit(view.id, seed.guard.id, "Changed mind")

    def test_warns_requester_and_admins(self, orchestrator, seed, approved, sink):
        view = approved()
        orchestrator.deny_exit(view.id, seed.guard.id, "Serial mismatch")
        expected = f"Exit denied for request {view.id}: Serial mismatch"
        assert expected in sink.messages_for(seed.alice.id)
        assert expected in sink.messages_for(seed.admin.id)

    def test_verify_after_denial_walks_through_unverified(self, orchestrator, seed, approved):
        view = approved()
        orchestrator.deny_exit(view.id, seed.guard.id, "Serial mismatch")
        verified = orchestrator.verify(view.id, seed.guard.id, "Resolved on the phone")

        assert verified.request.gate_state is GateState.VERIFIED
        # Denial data is kept alongside the verification.
        assert verified.request.gate_issue_comment == "Serial mismatch"
        trace = orchestrator.get_audit_trace("Request", view.id)
        assert trace.entries[-1].payload["path"] == ["UNVERIFIED", "VERIFIED"]


class TestClearGateIssue:

    def test_admin_clears_issue(self, orchestrator, seed, approved):
        view = approved()
        orchestrator.deny_exit(view.id, seed.guard.id, "Serial mismatch")
        cleared = orchestrator.clear_gate_issue(view.id, seed.admin.id, "Serial confirmed")

        assert cleared.request.gate_state is GateState.UNVERIFIED
        assert cleared.status is RequestStatus.APPROVED

    def test_requires_reported_issue(self, orchestrator, seed, approved):
        view = approved()
        with pytest.raises(InvalidStateError):
            orchestrator.clear_gate_issue(view.id, seed.admin.id, "nothing to clear")

    def test_only_admins_clear(self, orchestrator, seed, approved):
        view = approved()
        orchestrator.deny_exit(view.id, seed.guard.id, "Serial mismatch")
        with pytest.raises(NotAuthorizedError):
            orchestrator.clear_gate_issue(view.id, seed.guard.id, "fine")
