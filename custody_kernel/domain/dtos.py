"""
Data Transfer Objects for the custody kernel.

These are immutable snapshots handed across the service boundary.  Services
and selectors never return ORM instances; callers receive these records and
cannot mutate the store through them.

``RequestView`` is the read-time projection of a request: its ``user`` and
``items`` are joined from the live User and Asset rows at query time and are
never stored on the request itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from custody_kernel.domain.lifecycle import (
    AssetStatus,
    GateState,
    RequestStatus,
    Severity,
    UserRole,
)


@dataclass(frozen=True)
class Evidence:
    """Opaque reference to an uploaded photo or document.

    The kernel stores the reference and content type only; it never
    interprets the bytes behind it.
    """

    reference: str
    content_type: str


@dataclass(frozen=True)
class UserRecord:
    id: str
    name: str
    email: str
    role: UserRole
    is_active: bool
    department: str | None = None
    phone_number: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class AssetRecord:
    id: str
    name: str
    serial_number: str
    category: str
    status: AssetStatus
    description: str = ""
    image_url: str | None = None


@dataclass(frozen=True)
class AssetTemplate:
    """Shared model/category fields for bulk asset creation."""

    name: str
    category: str
    description: str = ""
    image_url: str | None = None


@dataclass(frozen=True)
class RequestRecord:
    """Stored state of a custody request."""

    id: str
    user_id: str
    item_ids: tuple[str, ...]
    status: RequestStatus
    request_date: datetime
    return_date: date
    purpose: str
    checkout_evidence: Evidence | None = None
    return_evidence: Evidence | None = None
    missing_items_report: str | None = None
    needs_review: bool = False
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    cancellation_note: str | None = None
    cancelled_at: datetime | None = None
    gate_pass_code: str | None = None
    gate_state: GateState = GateState.UNVERIFIED
    gate_verified: bool = False
    gate_verified_by: str | None = None
    gate_verified_at: datetime | None = None
    gate_comment: str | None = None
    gate_issue_by: str | None = None
    gate_issue_at: datetime | None = None
    gate_issue_comment: str | None = None
    checked_out_by: str | None = None
    checked_out_at: datetime | None = None
    actual_return_at: datetime | None = None


@dataclass(frozen=True)
class RequestView:
    """A request joined with its live requester and assets."""

    request: RequestRecord
    user: UserRecord
    items: tuple[AssetRecord, ...]

    @property
    def id(self) -> str:
        return self.request.id

    @property
    def status(self) -> RequestStatus:
        return self.request.status


@dataclass(frozen=True)
class DeploymentRecord:
    id: str
    client_name: str
    location: str
    contact_person: str
    contact_number: str
    contact_designation: str
    item_ids: tuple[str, ...]
    deployment_date: date
    deployed_by: str
    created_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class NotificationRecord:
    id: str
    user_id: str
    message: str
    severity: Severity
    read: bool
    created_at: datetime
    request_id: str | None = None


@dataclass(frozen=True)
class SystemSettings:
    """Runtime settings editable by administrators."""

    admin_contact_number: str


@dataclass(frozen=True)
class LedgerMismatch:
    """An asset whose stored status disagrees with its open references."""

    asset_id: str
    stored_status: AssetStatus
    expected_status: AssetStatus
    detail: str
