"""
CustodyOrchestrator -- the kernel's public entry point.

Responsibility:
    Owns every transaction and every lock.  Each public method is one unit
    of work: acquire the entity locks it needs, open a session, build the
    flush-only services over it, run the operation, commit, and return
    frozen DTOs.  Any exception rolls the whole unit back and is re-raised
    unchanged, so a rejected transition leaves no partial writes.

Architecture position:
    Kernel > Services -- the outermost kernel component.  Callers (admin
    console, user portal, guard terminal, CSV import) talk only to this
    class.

Locking (acquired in sorted order BEFORE the transaction opens):
    request:<id>     decide, cancel, submit_return, verify, deny_exit,
                     confirm_checkout, clear_gate_issue, acknowledge_review
    gate-pass:mint   decide (global code minting)
    asset:<id>       every asset touched by a ledger write (verify,
                     submit_return, create_deployment, maintenance)
    Submission takes no asset locks: reservation stays soft until gate
    exit, and the submit-time open-request check is the only guard
    against double booking.

Logging:
    Every unit binds ``correlation_id``, ``operation``, ``actor_id`` and
    ``request_id`` into LogContext.  Rejections log a warning with the
    error code; completions log the duration.

Notification delivery:
    Notifications created by a unit are handed to each registered
    NotificationSink only after the commit succeeds.
"""

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TypeVar
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from custody_kernel.db.engine import session_scope
from custody_kernel.domain.clock import Clock, SystemClock
from custody_kernel.domain.dtos import (
    AssetRecord,
    AssetTemplate,
    DeploymentRecord,
    Evidence,
    LedgerMismatch,
    NotificationRecord,
    RequestView,
    SystemSettings,
    UserRecord,
)
from custody_kernel.domain.identifiers import (
    CodeSource,
    IdGenerator,
    RandomCodeSource,
    UUIDIdGenerator,
)
from custody_kernel.domain.lifecycle import (
    AssetStatus,
    Decision,
    RequestStatus,
    UserRole,
)
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import CustodyKernelError, RequestNotFoundError
from custody_kernel.logging_config import LogContext, get_logger
from custody_kernel.models.request import CustodyRequest, RequestItem
from custody_kernel.selectors.catalog_selector import CatalogSelector
from custody_kernel.selectors.ledger_selector import LedgerSelector
from custody_kernel.selectors.request_selector import RequestSelector
from custody_kernel.services.asset_ledger import AssetLedger
from custody_kernel.services.auditor_service import AuditorService, AuditTrace
from custody_kernel.services.auth_service import AuthService
from custody_kernel.services.deployment_service import DeploymentService
from custody_kernel.services.entity_store import EntityStore
from custody_kernel.services.gate_pass_service import GatePassMinter
from custody_kernel.services.gate_verifier import GateVerifier
from custody_kernel.services.locks import (
    MINT_LOCK_KEY,
    KeyedLockRegistry,
    asset_key,
    request_key,
)
from custody_kernel.services.notification_service import (
    NotificationService,
    NotificationSink,
)
from custody_kernel.services.request_lifecycle import RequestLifecycleEngine
from custody_kernel.services.return_handler import ReturnHandler

logger = get_logger("services.orchestrator")

T = TypeVar("T")


@dataclass
class UnitOfWork:
    """Services wired over one session.  Lives for one transaction."""

    session: Session
    auditor: AuditorService
    notifier: NotificationService
    store: EntityStore
    ledger: AssetLedger
    verifier: GateVerifier
    returns: ReturnHandler
    lifecycle: RequestLifecycleEngine
    deployments: DeploymentService
    auth: AuthService
    requests: RequestSelector
    catalog: CatalogSelector


class CustodyOrchestrator:
    """
    Transactional facade over the custody kernel.

    Every method returns frozen DTOs; request transitions return the
    post-transition RequestView, joined with live user and asset rows.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        code_source: CodeSource | None = None,
        policy: CustodyPolicy | None = None,
        locks: KeyedLockRegistry | None = None,
        sinks: Iterable[NotificationSink] = (),
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDIdGenerator()
        self._code_source = code_source or RandomCodeSource()
        self._policy = policy or CustodyPolicy()
        self._locks = locks or KeyedLockRegistry(self._policy.lock_timeout_seconds)
        self._sinks = list(sinks)

    @property
    def policy(self) -> CustodyPolicy:
        return self._policy

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _build(self, session: Session) -> UnitOfWork:
        auditor = AuditorService(session, self._clock, self._ids)
        notifier = NotificationService(session, self._clock, self._ids)
        ledger = AssetLedger(session, auditor, self._policy)
        returns = ReturnHandler(session, self._clock, ledger, notifier, auditor, self._policy)
        minter = GatePassMinter(session, self._policy, self._code_source)
        return UnitOfWork(
            session=session,
            auditor=auditor,
            notifier=notifier,
            store=EntityStore(session, self._clock, self._ids, auditor),
            ledger=ledger,
            verifier=GateVerifier(session, self._clock, ledger, notifier, auditor),
            returns=returns,
            lifecycle=RequestLifecycleEngine(
                session, self._clock, self._ids, minter, notifier, auditor,
                returns, self._policy,
            ),
            deployments=DeploymentService(
                session, self._clock, self._ids, ledger, notifier, auditor,
            ),
            auth=AuthService(session),
            requests=RequestSelector(session),
            catalog=CatalogSelector(session),
        )

    def _run(
        self,
        operation: str,
        work: Callable[[UnitOfWork], T],
        *,
        actor_id: str | None = None,
        request_id: str | None = None,
        lock_keys: Sequence[str] = (),
    ) -> T:
        with LogContext.bind(
            correlation_id=uuid4().hex,
            operation=operation,
            actor_id=actor_id,
            request_id=request_id,
        ):
            t0 = time.monotonic()
            try:
                with self._locks.hold(*lock_keys):
                    with session_scope(self._session_factory) as session:
                        uow = self._build(session)
                        result = work(uow)
            except CustodyKernelError as exc:
                logger.warning(
                    "custody_operation_rejected",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                raise

            self._deliver(uow.notifier.emitted)
            logger.debug(
                "custody_operation_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            )
            return result

    def _read(self, operation: str, work: Callable[[UnitOfWork], T]) -> T:
        return self._run(operation, work)

    def _deliver(self, notifications: list[NotificationRecord]) -> None:
        for notification in notifications:
            for sink in self._sinks:
                try:
                    sink.deliver(notification)
                except Exception:
                    # Already committed; a failing channel must not undo it.
                    logger.error(
                        "notification_delivery_failed",
                        extra={"notification_id": notification.id},
                        exc_info=True,
                    )

    def _request_asset_ids(self, request_id: str) -> list[str]:
        """Asset ids of a request (items are immutable, so safe to read unlocked)."""

        def work(uow: UnitOfWork) -> list[str]:
            if uow.session.get(CustodyRequest, request_id) is None:
                raise RequestNotFoundError(request_id)
            return list(
                uow.session.execute(
                    select(RequestItem.asset_id)
                    .where(RequestItem.request_id == request_id)
                    .order_by(RequestItem.position)
                ).scalars()
            )

        return self._read("load_request_items", work)

    def _request_with_assets_keys(self, request_id: str) -> list[str]:
        return [request_key(request_id)] + [
            asset_key(a) for a in self._request_asset_ids(request_id)
        ]

    # ------------------------------------------------------------------
    # Users and authentication
    # ------------------------------------------------------------------

    def login(self, email: str) -> UserRecord:
        return self._run("login", lambda uow: uow.auth.login(email))

    def create_user(
        self,
        name: str,
        email: str,
        role: UserRole | str = UserRole.USER,
        department: str | None = None,
        phone_number: str | None = None,
        actor_id: str | None = None,
    ) -> UserRecord:
        return self._run(
            "create_user",
            lambda uow: uow.store.create_user(
                name, email, role, department, phone_number, actor_id,
            ),
            actor_id=actor_id,
        )

    def update_user(self, user_id: str, **fields: str | None) -> UserRecord:
        return self._run(
            "update_user", lambda uow: uow.store.update_user(user_id, **fields),
            actor_id=user_id,
        )

    def set_user_role(self, actor_id: str, user_id: str, role: UserRole | str) -> UserRecord:
        return self._run(
            "set_user_role", lambda uow: uow.store.set_user_role(actor_id, user_id, role),
            actor_id=actor_id,
        )

    def set_user_active(self, actor_id: str, user_id: str, active: bool) -> UserRecord:
        return self._run(
            "set_user_active",
            lambda uow: uow.store.set_user_active(actor_id, user_id, active),
            actor_id=actor_id,
        )

    def get_user(self, user_id: str) -> UserRecord:
        return self._read("get_user", lambda uow: uow.catalog.get_user(user_id))

    def list_users(self, role: UserRole | None = None) -> list[UserRecord]:
        return self._read("list_users", lambda uow: uow.catalog.list_users(role))

    def find_user_by_email(self, email: str) -> UserRecord | None:
        return self._read(
            "find_user_by_email", lambda uow: uow.catalog.find_user_by_email(email),
        )

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def add_asset(
        self,
        name: str,
        serial_number: str,
        category: str,
        description: str = "",
        image_url: str | None = None,
    ) -> AssetRecord:
        return self._run(
            "add_asset",
            lambda uow: uow.store.add_asset(
                name, serial_number, category, description, image_url,
            ),
        )

    def bulk_add_assets(
        self, template: AssetTemplate, serial_numbers: Iterable[str],
    ) -> list[AssetRecord]:
        serials = list(serial_numbers)
        return self._run(
            "bulk_add_assets", lambda uow: uow.store.bulk_add_assets(template, serials),
        )

    def update_asset(self, asset_id: str, **fields: str | None) -> AssetRecord:
        return self._run(
            "update_asset", lambda uow: uow.store.update_asset(asset_id, **fields),
            lock_keys=[asset_key(asset_id)],
        )

    def get_asset(self, asset_id: str) -> AssetRecord:
        return self._read("get_asset", lambda uow: uow.catalog.get_asset(asset_id))

    def list_assets(self, status: AssetStatus | None = None) -> list[AssetRecord]:
        return self._read("list_assets", lambda uow: uow.catalog.list_assets(status))

    def find_asset_by_serial(self, serial_number: str) -> AssetRecord | None:
        return self._read(
            "find_asset_by_serial",
            lambda uow: uow.catalog.find_asset_by_serial(serial_number),
        )

    def deployable_assets(self, serial_numbers: Iterable[str]) -> list[AssetRecord]:
        """AVAILABLE assets among ``serial_numbers`` that no open request names."""
        serials = list(serial_numbers)

        def work(uow: UnitOfWork) -> list[AssetRecord]:
            found = [uow.catalog.find_asset_by_serial(s) for s in serials]
            candidates = [
                a for a in found if a is not None and a.status is AssetStatus.AVAILABLE
            ]
            held = uow.requests.open_holders(a.id for a in candidates)
            return [a for a in candidates if a.id not in held]

        return self._read("deployable_assets", work)

    def mark_maintenance(self, actor_id: str, asset_id: str) -> AssetRecord:
        return self._run(
            "mark_maintenance",
            lambda uow: uow.ledger.mark_maintenance(asset_id, actor_id),
            actor_id=actor_id,
            lock_keys=[asset_key(asset_id)],
        )

    def clear_maintenance(self, actor_id: str, asset_id: str) -> AssetRecord:
        return self._run(
            "clear_maintenance",
            lambda uow: uow.ledger.clear_maintenance(asset_id, actor_id),
            actor_id=actor_id,
            lock_keys=[asset_key(asset_id)],
        )

    def ledger_mismatches(self) -> list[LedgerMismatch]:
        return self._read(
            "ledger_mismatches", lambda uow: LedgerSelector(uow.session).mismatches(),
        )

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def submit_request(
        self,
        requester_id: str,
        asset_ids: Sequence[str],
        purpose: str,
        return_date: date,
        evidence: Evidence | None = None,
    ) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            record = uow.lifecycle.submit(
                requester_id, list(asset_ids), purpose, return_date, evidence,
            )
            return uow.requests.get_view(record.id)

        return self._run("submit_request", work, actor_id=requester_id)

    def decide(
        self,
        request_id: str,
        actor_id: str,
        outcome: Decision | str,
        reason: str | None = None,
    ) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            uow.lifecycle.decide(request_id, actor_id, outcome, reason)
            return uow.requests.get_view(request_id)

        return self._run(
            "decide", work,
            actor_id=actor_id,
            request_id=request_id,
            lock_keys=[request_key(request_id), MINT_LOCK_KEY],
        )

    def approve(self, request_id: str, actor_id: str) -> RequestView:
        return self.decide(request_id, actor_id, Decision.APPROVE)

    def reject(self, request_id: str, actor_id: str, reason: str) -> RequestView:
        return self.decide(request_id, actor_id, Decision.REJECT, reason)

    def cancel(self, request_id: str, requester_id: str, note: str) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            uow.lifecycle.cancel(request_id, requester_id, note)
            return uow.requests.get_view(request_id)

        return self._run(
            "cancel", work,
            actor_id=requester_id,
            request_id=request_id,
            lock_keys=[request_key(request_id)],
        )

    def submit_return(
        self,
        request_id: str,
        evidence: Evidence | None = None,
        missing_items_report: str | None = None,
        actor_id: str | None = None,
    ) -> RequestView:
        lock_keys = self._request_with_assets_keys(request_id)

        def work(uow: UnitOfWork) -> RequestView:
            uow.lifecycle.submit_return(
                request_id,
                evidence=evidence,
                missing_items_report=missing_items_report,
                actor_id=actor_id,
            )
            return uow.requests.get_view(request_id)

        return self._run(
            "submit_return", work,
            actor_id=actor_id,
            request_id=request_id,
            lock_keys=lock_keys,
        )

    def confirm_checkout(self, request_id: str, actor_id: str) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            uow.lifecycle.confirm_checkout(request_id, actor_id)
            return uow.requests.get_view(request_id)

        return self._run(
            "confirm_checkout", work,
            actor_id=actor_id,
            request_id=request_id,
            lock_keys=[request_key(request_id)],
        )

    def acknowledge_review(self, request_id: str, admin_id: str) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            uow.lifecycle.acknowledge_review(request_id, admin_id)
            return uow.requests.get_view(request_id)

        return self._run(
            "acknowledge_review", work,
            actor_id=admin_id,
            request_id=request_id,
            lock_keys=[request_key(request_id)],
        )

    def get_request(self, request_id: str) -> RequestView:
        return self._read("get_request", lambda uow: uow.requests.get_view(request_id))

    def list_requests(
        self,
        status: RequestStatus | None = None,
        user_id: str | None = None,
    ) -> list[RequestView]:
        return self._read(
            "list_requests", lambda uow: uow.requests.list_views(status, user_id),
        )

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def resolve(self, code: str) -> RequestView:
        """Look up a scanned or typed gate-pass code (or raw request id)."""

        def work(uow: UnitOfWork) -> RequestView:
            record = uow.verifier.resolve(code)
            return uow.requests.get_view(record.id)

        return self._read("resolve_gate_pass", work)

    def verify(self, request_id: str, guard_id: str, comment: str = "") -> RequestView:
        lock_keys = self._request_with_assets_keys(request_id)

        def work(uow: UnitOfWork) -> RequestView:
            uow.verifier.verify(request_id, guard_id, comment)
            return uow.requests.get_view(request_id)

        return self._run(
            "verify", work,
            actor_id=guard_id,
            request_id=request_id,
            lock_keys=lock_keys,
        )

    def verify_code(self, code: str, guard_id: str, comment: str = "") -> RequestView:
        """Resolve a presented code and verify the request it names."""
        return self.verify(self.resolve(code).id, guard_id, comment)

    def deny_exit(self, request_id: str, guard_id: str, comment: str) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            uow.verifier.deny_exit(request_id, guard_id, comment)
            return uow.requests.get_view(request_id)

        return self._run(
            "deny_exit", work,
            actor_id=guard_id,
            request_id=request_id,
            lock_keys=[request_key(request_id)],
        )

    def clear_gate_issue(self, request_id: str, admin_id: str, note: str) -> RequestView:
        def work(uow: UnitOfWork) -> RequestView:
            uow.verifier.clear_gate_issue(request_id, admin_id, note)
            return uow.requests.get_view(request_id)

        return self._run(
            "clear_gate_issue", work,
            actor_id=admin_id,
            request_id=request_id,
            lock_keys=[request_key(request_id)],
        )

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    def create_deployment(
        self,
        actor_id: str,
        client_name: str,
        location: str,
        contact_person: str,
        contact_number: str,
        contact_designation: str,
        asset_ids: Sequence[str],
        deployment_date: date,
        notes: str | None = None,
    ) -> DeploymentRecord:
        ids = list(asset_ids)
        return self._run(
            "create_deployment",
            lambda uow: uow.deployments.create_deployment(
                actor_id, client_name, location, contact_person, contact_number,
                contact_designation, ids, deployment_date, notes,
            ),
            actor_id=actor_id,
            lock_keys=[asset_key(a) for a in ids],
        )

    def get_deployment(self, deployment_id: str) -> DeploymentRecord:
        return self._read(
            "get_deployment", lambda uow: uow.catalog.get_deployment(deployment_id),
        )

    def list_deployments(self) -> list[DeploymentRecord]:
        return self._read("list_deployments", lambda uow: uow.catalog.list_deployments())

    # ------------------------------------------------------------------
    # Notifications and settings
    # ------------------------------------------------------------------

    def list_notifications(
        self, user_id: str, unread_only: bool = False,
    ) -> list[NotificationRecord]:
        return self._read(
            "list_notifications",
            lambda uow: uow.catalog.list_notifications(user_id, unread_only),
        )

    def mark_notification_read(self, notification_id: str) -> NotificationRecord:
        return self._run(
            "mark_notification_read",
            lambda uow: uow.notifier.mark_read(notification_id),
        )

    def get_settings(self) -> SystemSettings:
        return self._read("get_settings", lambda uow: uow.catalog.get_settings())

    def update_settings(self, actor_id: str, **values: str) -> SystemSettings:
        return self._run(
            "update_settings",
            lambda uow: uow.store.update_settings(actor_id, **values),
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def validate_audit_chain(self) -> bool:
        return self._read("validate_audit_chain", lambda uow: uow.auditor.validate_chain())

    def get_audit_trace(self, entity_type: str, entity_id: str) -> AuditTrace:
        return self._read(
            "get_audit_trace",
            lambda uow: uow.auditor.get_trace(entity_type, entity_id),
        )
