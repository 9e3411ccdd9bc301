"""
Read-time projection of requests.

Verifies:
- Views carry the live requester and asset rows, not a copy
- Listing filters and ordering
- Dangling references surface as ConsistencyError
"""

import pytest

from custody_kernel.domain.lifecycle import AssetStatus, Decision, RequestStatus
from custody_kernel.exceptions import ConsistencyError, RequestNotFoundError


def _delete_behind_the_orm(engine, table, row_id):
    """Delete a row with foreign keys switched off, as a corrupt import would."""
    raw = engine.raw_connection()
    try:
        cursor = raw.cursor()
        cursor.execute("PRAGMA foreign_keys=OFF")
        cursor.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    finally:
        raw.close()


class TestLiveJoin:

    def test_profile_edit_is_visible_on_existing_request(self, orchestrator, seed, approved):
        view = approved()
        orchestrator.update_user(seed.alice.id, phone_number="+1-555-0999")

        guard_view = orchestrator.resolve(view.request.gate_pass_code)
        assert guard_view.user.phone_number == "+1-555-0999"

    def test_asset_edit_is_visible_on_existing_request(self, orchestrator, seed, submit):
        view = submit()
        orchestrator.update_asset(seed.assets[0].id, name="ThinkPad T14 Gen 3")
        assert orchestrator.get_request(view.id).items[0].name == "ThinkPad T14 Gen 3"

    def test_asset_status_follows_ledger(self, orchestrator, seed, approved):
        view = approved()
        assert orchestrator.get_request(view.id).items[0].status is AssetStatus.AVAILABLE
        orchestrator.verify(view.id, seed.guard.id)
        assert orchestrator.get_request(view.id).items[0].status is AssetStatus.IN_USE

    def test_unknown_request(self, orchestrator):
        with pytest.raises(RequestNotFoundError):
            orchestrator.get_request("req-404")


class TestListing:

    def test_filters(self, orchestrator, seed, submit):
        first = submit(user=seed.alice, asset_ids=seed.asset_ids(0))
        second = submit(user=seed.bob, asset_ids=seed.asset_ids(1))
        orchestrator.decide(second.id, seed.admin.id, Decision.APPROVE)

        assert [v.id for v in orchestrator.list_requests(RequestStatus.PENDING)] == [first.id]
        assert [v.id for v in orchestrator.list_requests(user_id=seed.bob.id)] == [second.id]
        assert orchestrator.list_requests(RequestStatus.RETURNED) == []

    def test_newest_first(self, orchestrator, seed, submit, clock):
        first = submit(asset_ids=seed.asset_ids(0))
        clock.advance(60)
        second = submit(asset_ids=seed.asset_ids(1))
        assert [v.id for v in orchestrator.list_requests()] == [second.id, first.id]


class TestDanglingReferences:

    def test_missing_requester(self, orchestrator, engine, seed, submit):
        view = submit(user=seed.bob)
        _delete_behind_the_orm(engine, "users", seed.bob.id)

        with pytest.raises(ConsistencyError) as exc_info:
            orchestrator.get_request(view.id)
        assert exc_info.value.entity_id == view.id
        assert seed.bob.id in exc_info.value.detail

    def test_missing_asset(self, orchestrator, engine, seed, submit, captured_logs):
        view = submit(asset_ids=seed.asset_ids(2))
        _delete_behind_the_orm(engine, "assets", seed.assets[2].id)

        with pytest.raises(ConsistencyError):
            orchestrator.list_requests()
        assert any(r["message"] == "dangling_asset_reference" for r in captured_logs())
