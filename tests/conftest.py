"""
Pytest fixtures for the custody kernel test suite.

Provides:
- A file-backed SQLite database per test (under ``tmp_path``), so threads
  get real, separate connections
- Deterministic clock, id generator and gate-pass code source
- A seeded orchestrator: one admin, two users, one guard, five assets
- Log capture as parsed JSON dicts
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from custody_kernel.db.engine import build_engine, create_tables
from custody_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from custody_kernel.domain.clock import DeterministicClock
from custody_kernel.domain.dtos import AssetRecord, Evidence, RequestView, UserRecord
from custody_kernel.domain.identifiers import ScriptedCodeSource, SequentialIdGenerator
from custody_kernel.domain.lifecycle import Decision, UserRole
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from custody_kernel.services.custody_orchestrator import CustodyOrchestrator
from custody_kernel.services.locks import KeyedLockRegistry

START_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
RETURN_DATE = date(2024, 1, 15)
PHOTO = Evidence(reference="evidence://photos/checkout-1.jpg", content_type="image/jpeg")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture custody_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "request_approved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("custody_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'custody.db'}"


@pytest.fixture
def engine(db_url):
    eng = build_engine(db_url)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture(autouse=True)
def _immutability_listeners():
    register_immutability_listeners()
    yield
    # A test may have unregistered them; leave them installed for the next one.
    register_immutability_listeners()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A bare session for service-level tests.  Rolled back afterwards."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Deterministic providers
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture
def ids() -> SequentialIdGenerator:
    return SequentialIdGenerator()


@pytest.fixture
def code_source() -> ScriptedCodeSource:
    """Codes GP-1000, GP-1001, ... in order."""
    return ScriptedCodeSource(list(range(1000, 1200)))


@pytest.fixture
def policy() -> CustodyPolicy:
    return CustodyPolicy(lock_timeout_seconds=5.0)


# =============================================================================
# Orchestrator and seed data
# =============================================================================


class RecordingSink:
    """NotificationSink that keeps everything delivered to it."""

    def __init__(self):
        self.delivered = []

    def deliver(self, notification) -> None:
        self.delivered.append(notification)

    def messages_for(self, user_id: str) -> list[str]:
        return [n.message for n in self.delivered if n.user_id == user_id]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_orchestrator(session_factory, clock, ids, code_source, policy, sink):
    """Build another orchestrator over the same database.

    Keyword overrides replace any constructor argument; by default every
    orchestrator gets its own lock registry.
    """

    def _make(**overrides) -> CustodyOrchestrator:
        kwargs = dict(
            clock=clock,
            ids=ids,
            code_source=code_source,
            policy=policy,
            locks=KeyedLockRegistry(policy.lock_timeout_seconds),
            sinks=[sink],
        )
        kwargs.update(overrides)
        return CustodyOrchestrator(session_factory, **kwargs)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator) -> CustodyOrchestrator:
    return make_orchestrator()


@dataclass
class Seed:
    admin: UserRecord
    alice: UserRecord
    bob: UserRecord
    guard: UserRecord
    assets: list[AssetRecord]

    def asset_ids(self, *positions: int) -> list[str]:
        return [self.assets[p].id for p in positions]


@pytest.fixture
def seed(orchestrator) -> Seed:
    """u-1 admin, u-2 alice, u-3 bob, u-4 guard; assets a-1 .. a-5."""
    admin = orchestrator.create_user(
        "Ada Admin", "admin@example.com", UserRole.ADMIN, "IT", "+1-555-0100",
    )
    alice = orchestrator.create_user(
        "Alice Field", "alice@example.com", UserRole.USER, "Field Ops", "+1-555-0101",
    )
    bob = orchestrator.create_user(
        "Bob Survey", "bob@example.com", UserRole.USER, "Survey", "+1-555-0102",
    )
    guard = orchestrator.create_user(
        "Gus Gate", "guard@example.com", UserRole.GUARD, "Security", "+1-555-0103",
    )
    assets = [
        orchestrator.add_asset("ThinkPad T14", "SN-LAP-001", "Laptop"),
        orchestrator.add_asset("ThinkPad T14", "SN-LAP-002", "Laptop"),
        orchestrator.add_asset("Canon R6", "SN-CAM-001", "Camera"),
        orchestrator.add_asset("Cisco 2960", "SN-NET-001", "Network"),
        orchestrator.add_asset("DJI Mavic 3", "SN-DRN-001", "Drone"),
    ]
    return Seed(admin=admin, alice=alice, bob=bob, guard=guard, assets=assets)


@pytest.fixture
def submit(orchestrator, seed):
    """Submit a request as alice (by default) for asset a-1."""

    def _submit(
        user: UserRecord | None = None,
        asset_ids: list[str] | None = None,
        purpose: str = "Client site survey",
        return_date: date = RETURN_DATE,
        evidence: Evidence | None = None,
    ) -> RequestView:
        return orchestrator.submit_request(
            (user or seed.alice).id,
            asset_ids if asset_ids is not None else seed.asset_ids(0),
            purpose,
            return_date,
            evidence,
        )

    return _submit


@pytest.fixture
def approved(orchestrator, seed, submit):
    """Submit then approve; returns the approved view."""

    def _approved(**submit_kwargs) -> RequestView:
        view = submit(**submit_kwargs)
        return orchestrator.decide(view.id, seed.admin.id, Decision.APPROVE)

    return _approved


@pytest.fixture
def verified(orchestrator, seed, approved):
    """Submit, approve and verify at the gate; returns the verified view."""

    def _verified(**submit_kwargs) -> RequestView:
        view = approved(**submit_kwargs)
        return orchestrator.verify(view.id, seed.guard.id, "Bag checked")

    return _verified
