"""
End-to-end custody scenarios through the orchestrator.

Each test walks the lifecycle the way the admin console, the guard
terminal and the requester would, then checks the store afterwards:
request status, asset ledger, audit chain and notifications.
"""

from custody_ingestion.services.import_service import ImportService
from custody_kernel.domain.dtos import Evidence
from custody_kernel.domain.lifecycle import AssetStatus, Decision, RequestStatus
from tests.conftest import RETURN_DATE


class TestRejectThenApproveScenario:

    def test_reject_one_request_and_return_another(self, orchestrator, seed):
        a1, a2 = seed.asset_ids(0, 1)

        first = orchestrator.submit_request(seed.alice.id, [a1], "Site survey", RETURN_DATE)
        assert first.status is RequestStatus.PENDING
        assert orchestrator.get_asset(a1).status is AssetStatus.AVAILABLE

        rejected = orchestrator.decide(first.id, seed.admin.id, Decision.REJECT, "budget")
        assert rejected.status is RequestStatus.REJECTED
        assert rejected.request.rejection_reason == "budget"
        assert orchestrator.get_asset(a1).status is AssetStatus.AVAILABLE

        second = orchestrator.submit_request(seed.alice.id, [a2], "Client demo", RETURN_DATE)
        approved = orchestrator.decide(second.id, seed.admin.id, Decision.APPROVE)
        assert approved.status is RequestStatus.APPROVED
        assert approved.request.gate_pass_code

        verified = orchestrator.verify_code(approved.request.gate_pass_code, seed.guard.id)
        assert verified.request.gate_verified
        assert orchestrator.get_asset(a2).status is AssetStatus.IN_USE

        returned = orchestrator.submit_return(
            second.id, Evidence("evidence://photos/return.jpg", "image/jpeg"),
            actor_id=seed.alice.id,
        )
        assert returned.status is RequestStatus.RETURNED
        assert orchestrator.get_asset(a2).status is AssetStatus.AVAILABLE

        assert orchestrator.ledger_mismatches() == []
        assert orchestrator.validate_audit_chain()


class TestRoundTrip:

    def test_status_path_and_single_verification(self, orchestrator, seed, submit):
        view = submit(asset_ids=seed.asset_ids(0, 2))
        orchestrator.decide(view.id, seed.admin.id, Decision.APPROVE)
        orchestrator.verify(view.id, seed.guard.id, "Checked both items")
        orchestrator.submit_return(view.id)

        trace = orchestrator.get_audit_trace("Request", view.id)
        statuses = [RequestStatus.PENDING]
        for action in trace.actions:
            if action.value == "request_approved":
                statuses.append(RequestStatus.APPROVED)
            elif action.value == "request_returned":
                statuses.append(RequestStatus.RETURNED)
        assert statuses == [RequestStatus.PENDING, RequestStatus.APPROVED, RequestStatus.RETURNED]
        assert [a.value for a in trace.actions].count("gate_verified") == 1

        final = orchestrator.get_request(view.id)
        assert final.request.gate_verified
        assert all(a.status is AssetStatus.AVAILABLE for a in final.items)

    def test_asset_can_go_out_again_after_return(self, orchestrator, seed, verified):
        first = verified()
        orchestrator.submit_return(first.id)

        again = orchestrator.submit_request(seed.bob.id, seed.asset_ids(0), "Second trip", RETURN_DATE)
        again = orchestrator.decide(again.id, seed.admin.id, Decision.APPROVE)
        again = orchestrator.verify(again.id, seed.guard.id)
        assert again.items[0].status is AssetStatus.IN_USE


class TestGateIssueScenario:

    def test_denied_then_cleared_then_verified(self, orchestrator, seed, approved, sink):
        view = approved()
        orchestrator.deny_exit(view.id, seed.guard.id, "Serial label missing")
        orchestrator.clear_gate_issue(view.id, seed.admin.id, "Label replaced")
        verified = orchestrator.verify(view.id, seed.guard.id)

        assert verified.request.gate_verified
        assert verified.status is RequestStatus.APPROVED
        alice_messages = sink.messages_for(seed.alice.id)
        assert any("Serial label missing" in m for m in alice_messages)
        assert alice_messages[-1] == f"Exit authorized for request {view.id}."


class TestImportedFleetScenario:

    def test_imported_staff_and_assets_run_the_lifecycle(self, orchestrator, clock):
        importer = ImportService(orchestrator, clock=clock)
        importer.import_users_csv(
            "Name,Email,Role,Department,Phone\n"
            "Ada Admin,ada@example.com,ADMIN,IT,\n"
            "Gus Gate,gus@example.com,GUARD,Security,\n"
            "Una User,una@example.com,USER,Field,+1-555-0142\n"
        )
        importer.import_assets_csv(
            "Name,Category,SerialNumber,Description\n"
            "Leica TS16,Survey,LC-001,Total station\n"
        )
        admin = orchestrator.login("ada@example.com")
        guard = orchestrator.login("gus@example.com")
        user = orchestrator.login("una@example.com")
        asset = orchestrator.find_asset_by_serial("LC-001")

        view = orchestrator.submit_request(user.id, [asset.id], "Boundary survey", RETURN_DATE)
        view = orchestrator.decide(view.id, admin.id, Decision.APPROVE)
        # Guard sees the requester's current phone number on the pass.
        scanned = orchestrator.resolve(view.request.gate_pass_code)
        assert scanned.user.phone_number == "+1-555-0142"

        orchestrator.verify(view.id, guard.id)
        orchestrator.confirm_checkout(view.id, guard.id)
        returned = orchestrator.submit_return(view.id, missing_items_report="Tripod leg bent")
        assert returned.request.needs_review
        orchestrator.acknowledge_review(view.id, admin.id)

        assert orchestrator.get_request(view.id).status is RequestStatus.RETURNED
        assert orchestrator.validate_audit_chain()
