"""
Concurrency tests over a file-backed SQLite database.

Verifies:
- Two admins deciding one request: exactly one decision lands
- Two guards scanning one pass: exactly one verification lands
- Concurrent approvals never hand out the same open gate-pass code
- Orchestrators with separate lock registries are still serialized by
  the database
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

from custody_kernel.domain.identifiers import RandomCodeSource
from custody_kernel.domain.lifecycle import AssetStatus, Decision, RequestStatus
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import (
    AlreadyVerifiedError,
    CustodyKernelError,
    InvalidStateError,
)
from tests.conftest import RETURN_DATE


def _race(callables):
    """Run callables together; return (results, errors)."""
    barrier = Barrier(len(callables))

    def run(fn):
        barrier.wait(timeout=10)
        try:
            return fn(), None
        except CustodyKernelError as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(callables)) as pool:
        outcomes = list(pool.map(run, callables))
    results = [r for r, e in outcomes if e is None]
    errors = [e for r, e in outcomes if e is not None]
    return results, errors


class TestSingleOrchestrator:

    def test_approve_and_reject_race(self, orchestrator, seed, submit):
        view = submit()
        results, errors = _race([
            lambda: orchestrator.decide(view.id, seed.admin.id, Decision.APPROVE),
            lambda: orchestrator.decide(view.id, seed.admin.id, Decision.REJECT, "dup"),
        ])

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidStateError)
        final = orchestrator.get_request(view.id)
        assert final.status is results[0].status

    def test_double_scan_race(self, orchestrator, seed, approved):
        view = approved(asset_ids=seed.asset_ids(0, 1))
        second_guard = orchestrator.create_user("Gia Gate", "gia@example.com", "GUARD")

        results, errors = _race([
            lambda: orchestrator.verify(view.id, seed.guard.id, "north gate"),
            lambda: orchestrator.verify(view.id, second_guard.id, "south gate"),
        ])

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyVerifiedError)
        assert all(
            orchestrator.get_asset(a).status is AssetStatus.IN_USE
            for a in seed.asset_ids(0, 1)
        )
        assert orchestrator.ledger_mismatches() == []

    def test_concurrent_approvals_get_distinct_codes(self, make_orchestrator, seed):
        # 2-digit codes and a seeded source make collisions near certain.
        policy = CustodyPolicy(gate_pass_digits=2, max_mint_attempts=2000, lock_timeout_seconds=20.0)
        orchestrator = make_orchestrator(policy=policy, code_source=RandomCodeSource(seed=7))
        serials = [f"SN-BULK-{n:02d}" for n in range(20)]
        assets = [orchestrator.add_asset("Tablet", s, "Tablet") for s in serials]
        pending = [
            orchestrator.submit_request(seed.alice.id, [a.id], "Field batch", RETURN_DATE)
            for a in assets
        ]

        results, errors = _race([
            (lambda rid=v.id: orchestrator.decide(rid, seed.admin.id, Decision.APPROVE))
            for v in pending
        ])

        assert errors == []
        codes = [v.request.gate_pass_code for v in results]
        assert len(set(codes)) == len(codes) == 20
        assert all(v.status is RequestStatus.APPROVED for v in results)


class TestSeparateOrchestrators:

    def test_database_serializes_decisions(self, make_orchestrator, seed, submit):
        view = submit()
        first, second = make_orchestrator(), make_orchestrator()

        results, errors = _race([
            lambda: first.decide(view.id, seed.admin.id, Decision.APPROVE),
            lambda: second.decide(view.id, seed.admin.id, Decision.REJECT, "dup"),
        ])

        assert len(results) == 1
        assert [type(e) for e in errors] == [InvalidStateError]

    def test_audit_chain_survives_parallel_writers(self, make_orchestrator, seed):
        rounds = 5
        writers = [make_orchestrator() for _ in range(4)]

        def work(orch, n):
            return orch.update_user(seed.alice.id, phone_number=f"+1-555-{n:04d}")

        results, errors = _race([
            (lambda o=o, n=n: [work(o, n * 10 + i) for i in range(rounds)])
            for n, o in enumerate(writers)
        ])

        assert errors == []
        assert writers[0].validate_audit_chain() is True
