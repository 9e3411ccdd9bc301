"""Ledger sweep: stored asset status against open custody references."""

from sqlalchemy import update

from custody_kernel.domain.lifecycle import AssetStatus
from custody_kernel.models.asset import Asset


def _force_status(session_factory, asset_id, status):
    with session_factory() as session:
        session.execute(update(Asset).where(Asset.id == asset_id).values(status=status.value))
        session.commit()


class TestLedgerMismatches:

    def test_clean_store(self, orchestrator, seed, verified):
        verified()
        orchestrator.mark_maintenance(seed.admin.id, seed.assets[3].id)
        assert orchestrator.ledger_mismatches() == []

    def test_in_use_without_a_holder(self, orchestrator, session_factory, seed):
        _force_status(session_factory, seed.assets[2].id, AssetStatus.IN_USE)

        [mismatch] = orchestrator.ledger_mismatches()
        assert mismatch.asset_id == seed.assets[2].id
        assert mismatch.stored_status is AssetStatus.IN_USE
        assert mismatch.expected_status is AssetStatus.AVAILABLE

    def test_available_while_verified_request_holds_it(
        self, orchestrator, session_factory, seed, verified,
    ):
        view = verified()
        _force_status(session_factory, seed.assets[0].id, AssetStatus.AVAILABLE)

        [mismatch] = orchestrator.ledger_mismatches()
        assert mismatch.expected_status is AssetStatus.IN_USE
        assert view.id in mismatch.detail
