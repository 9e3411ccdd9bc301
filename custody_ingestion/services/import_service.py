"""
Import service: parse -> check -> create.

Bulk-loads users, assets and deployments from CSV text.  Rows are created
one at a time through CustodyOrchestrator, each in its own transaction:
a bad row never rolls back the rows before it, and every created row
carries the same audit trail as one entered interactively.

Row outcomes:
    created  -- the row produced a user, asset or deployment.
    skipped  -- the row was incomplete or names something that already
                exists (duplicate email or serial) or nothing deployable.
    errors   -- the kernel rejected the row (validation, availability);
                the error code and message are kept per line.

Authorization failures are not row outcomes: they abort the import.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from uuid import uuid4

from custody_ingestion.adapters.csv_adapter import CsvSourceAdapter, SourceRow
from custody_kernel.domain.clock import Clock, SystemClock
from custody_kernel.domain.lifecycle import UserRole
from custody_kernel.exceptions import (
    AssetUnavailableError,
    CustodyKernelError,
    ValidationError,
)
from custody_kernel.logging_config import LogContext, get_logger
from custody_kernel.services.custody_orchestrator import CustodyOrchestrator

logger = get_logger("ingestion.import_service")

USER_COLUMNS = ("name", "email", "role", "department", "phone")
ASSET_COLUMNS = ("name", "category", "serial_number", "description")
DEPLOYMENT_COLUMNS = (
    "client_name",
    "location",
    "contact_person",
    "contact_number",
    "contact_designation",
    "deployment_date",
    "asset_serials",
)

DEFAULT_DEPARTMENT = "General"
DEFAULT_LOCATION = "Remote"
NOT_AVAILABLE = "N/A"

# Rejections that belong to one row; anything else aborts the import.
_ROW_ERRORS = (ValidationError, AssetUnavailableError)


@dataclass(frozen=True)
class ImportRowError:
    line: int
    code: str
    message: str


@dataclass
class ImportReport:
    """Per-import tally.  ``created_ids`` lists new entity ids in file order."""

    created: int = 0
    skipped: int = 0
    errors: list[ImportRowError] = field(default_factory=list)
    created_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_created(self, entity_id: str) -> None:
        self.created += 1
        self.created_ids.append(entity_id)

    def add_error(self, row: SourceRow, exc: CustodyKernelError) -> None:
        self.errors.append(ImportRowError(row.line, exc.code, str(exc)))


def _parse_role(raw: str) -> UserRole:
    try:
        return UserRole(raw.strip().upper())
    except ValueError:
        return UserRole.USER


class ImportService:
    """CSV import front end over a CustodyOrchestrator."""

    def __init__(
        self,
        orchestrator: CustodyOrchestrator,
        clock: Clock | None = None,
        adapter: CsvSourceAdapter | None = None,
    ):
        self._orchestrator = orchestrator
        self._clock = clock or SystemClock()
        self._adapter = adapter or CsvSourceAdapter()

    def _finish(self, kind: str, report: ImportReport) -> ImportReport:
        logger.info(
            "csv_import_completed",
            extra={
                "import_kind": kind,
                "created_count": report.created,
                "skipped_count": report.skipped,
                "error_count": len(report.errors),
            },
        )
        return report

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def import_users_csv(self, text: str, actor_id: str | None = None) -> ImportReport:
        """
        Columns: Name,Email,Role,Department,Phone.

        The header row is optional (recognized by a cell containing
        "email").  Unknown roles become USER; existing emails are skipped.
        """
        report = ImportReport()
        rows = self._adapter.read(
            text, {"columns": USER_COLUMNS, "has_header": "auto", "header_marker": "email"},
        )
        with LogContext.bind(correlation_id=uuid4().hex, operation="import_users_csv"):
            for row in rows:
                name, email = row.get("name"), row.get("email")
                if not name or not email:
                    report.skipped += 1
                    continue
                if self._orchestrator.find_user_by_email(email) is not None:
                    report.skipped += 1
                    continue
                try:
                    user = self._orchestrator.create_user(
                        name,
                        email,
                        role=_parse_role(row.get("role")),
                        department=row.get("department") or DEFAULT_DEPARTMENT,
                        phone_number=row.get("phone"),
                        actor_id=actor_id,
                    )
                except _ROW_ERRORS as exc:
                    report.add_error(row, exc)
                    continue
                report.add_created(user.id)
            return self._finish("users", report)

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def import_assets_csv(self, text: str) -> ImportReport:
        """Columns: Name,Category,SerialNumber,Description (header required)."""
        report = ImportReport()
        rows = self._adapter.read(text, {"columns": ASSET_COLUMNS, "has_header": True})
        with LogContext.bind(correlation_id=uuid4().hex, operation="import_assets_csv"):
            for row in rows:
                name = row.get("name")
                category = row.get("category")
                serial = row.get("serial_number")
                if not name or not category or not serial:
                    report.skipped += 1
                    continue
                if self._orchestrator.find_asset_by_serial(serial) is not None:
                    report.skipped += 1
                    continue
                try:
                    asset = self._orchestrator.add_asset(
                        name, serial, category, row.get("description"),
                    )
                except _ROW_ERRORS as exc:
                    report.add_error(row, exc)
                    continue
                report.add_created(asset.id)
            return self._finish("assets", report)

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    def import_deployments_csv(self, text: str, actor_id: str) -> ImportReport:
        """
        Columns: ClientName,Location,ContactName,ContactNumber,Designation,
        Date,AssetSerials (``;``-separated), header required.

        Only assets deployable right now are taken; a row naming none is
        skipped.  Missing location defaults to "Remote", missing contact
        fields to "N/A", a missing date to today.
        """
        report = ImportReport()
        rows = self._adapter.read(text, {"columns": DEPLOYMENT_COLUMNS, "has_header": True})
        with LogContext.bind(
            correlation_id=uuid4().hex,
            operation="import_deployments_csv",
            actor_id=actor_id,
        ):
            for row in rows:
                client = row.get("client_name")
                serials = [s.strip() for s in row.get("asset_serials").split(";") if s.strip()]
                if not client or not serials:
                    report.skipped += 1
                    continue
                try:
                    deployment_date = self._parse_date(row.get("deployment_date"))
                except ValidationError as exc:
                    report.add_error(row, exc)
                    continue
                assets = self._orchestrator.deployable_assets(serials)
                if not assets:
                    report.skipped += 1
                    continue
                try:
                    deployment = self._orchestrator.create_deployment(
                        actor_id,
                        client,
                        row.get("location") or DEFAULT_LOCATION,
                        row.get("contact_person") or NOT_AVAILABLE,
                        row.get("contact_number") or NOT_AVAILABLE,
                        row.get("contact_designation") or NOT_AVAILABLE,
                        [a.id for a in assets],
                        deployment_date,
                    )
                except _ROW_ERRORS as exc:
                    report.add_error(row, exc)
                    continue
                report.add_created(deployment.id)
            return self._finish("deployments", report)

    def _parse_date(self, raw: str) -> date:
        if not raw:
            return self._clock.now().date()
        try:
            # Accept full ISO timestamps; only the date part is kept.
            return date.fromisoformat(raw[:10])
        except ValueError:
            raise ValidationError("deployment_date", f"not an ISO date: {raw!r}") from None
