"""
EntityStore -- creation and editing of users, assets and settings.

Responsibility:
    The write surface for reference data.  Every creation path
    (interactive, bulk, CSV import) goes through here, so the same
    uniqueness rules apply everywhere.

Architecture position:
    Kernel > Services.  Requests, deployments and asset status are written
    by their own services; this one never touches ``Asset.status``.

Invariants enforced:
    - Email addresses are unique, compared case-insensitively.
    - Serial numbers are unique across the store and within a batch;
      a bulk add is all-or-nothing.
    - Users and assets are never deleted.

Failure modes:
    - DuplicateEmailError / DuplicateSerialError on uniqueness violations.
    - ValidationError for empty required fields or non-editable fields.
    - NotAuthorizedError / InactiveUserError for role and settings changes
      by a non-admin or deactivated actor.
"""

from collections.abc import Iterable
from dataclasses import fields as dataclass_fields

from sqlalchemy import select
from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock
from custody_kernel.domain.dtos import (
    AssetRecord,
    AssetTemplate,
    SystemSettings,
    UserRecord,
)
from custody_kernel.domain.identifiers import ASSET, USER, IdGenerator
from custody_kernel.domain.lifecycle import AssetStatus, UserRole
from custody_kernel.exceptions import (
    AssetNotFoundError,
    DuplicateEmailError,
    DuplicateSerialError,
    ValidationError,
)
from custody_kernel.logging_config import get_logger
from custody_kernel.models.asset import Asset
from custody_kernel.models.audit_event import AuditAction
from custody_kernel.models.settings import SystemSetting
from custody_kernel.models.user import User
from custody_kernel.selectors.catalog_selector import CatalogSelector
from custody_kernel.services.auditor_service import SYSTEM_ACTOR, AuditorService
from custody_kernel.services.base import BaseService

logger = get_logger("services.entity_store")

USER_EDITABLE_FIELDS = frozenset({"name", "email", "department", "phone_number", "avatar_url"})
ASSET_EDITABLE_FIELDS = frozenset({"name", "category", "description", "image_url"})
SETTINGS_FIELDS = frozenset(f.name for f in dataclass_fields(SystemSettings))


def _required(field: str, value: str | None) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field, "must not be empty")
    return cleaned


class EntityStore(BaseService):
    """Creates and edits users, assets and settings; flush-only."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ids: IdGenerator,
        auditor: AuditorService,
    ):
        super().__init__(session)
        self._clock = clock
        self._ids = ids
        self._auditor = auditor

    # Users

    def _check_email_free(self, email: str, exclude_user_id: str | None = None) -> str:
        normalized = email.lower()
        existing = self.session.execute(
            select(User).where(User.email_normalized == normalized)
        ).scalar_one_or_none()
        if existing is not None and existing.id != exclude_user_id:
            raise DuplicateEmailError(email)
        return normalized

    def create_user(
        self,
        name: str,
        email: str,
        role: UserRole | str = UserRole.USER,
        department: str | None = None,
        phone_number: str | None = None,
        actor_id: str | None = None,
    ) -> UserRecord:
        """
        Register a new, active user.

        When ``actor_id`` is given it must be an active ADMIN; bootstrap
        and imports create users without one.
        """
        if actor_id is not None:
            self._require_actor(actor_id, "create_user", {UserRole.ADMIN})
        name = _required("name", name)
        email = _required("email", email)
        normalized = self._check_email_free(email)

        user = User(
            id=self._ids.next_id(USER),
            name=name,
            email=email,
            email_normalized=normalized,
            role=UserRole(role).value,
            is_active=True,
            department=department,
            phone_number=phone_number,
        )
        self.session.add(user)
        self.session.flush()

        self._auditor.record(
            "User", user.id, AuditAction.USER_CREATED, actor_id or SYSTEM_ACTOR,
            {"email": email, "role": user.role},
        )
        logger.info("user_created", extra={"user_id": user.id, "role": user.role})
        return user.to_dto()

    def update_user(self, user_id: str, **fields: str | None) -> UserRecord:
        """Edit profile fields (name, email, department, phone, avatar)."""
        unknown = set(fields) - USER_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                ",".join(sorted(unknown)), "not an editable user field",
            )
        user = self._get_user(user_id)

        if "name" in fields:
            user.name = _required("name", fields["name"])
        if "email" in fields:
            email = _required("email", fields["email"])
            user.email_normalized = self._check_email_free(email, exclude_user_id=user.id)
            user.email = email
        for key in ("department", "phone_number", "avatar_url"):
            if key in fields:
                setattr(user, key, fields[key])
        self.session.flush()

        self._auditor.record(
            "User", user.id, AuditAction.USER_UPDATED, user.id,
            {"fields": sorted(fields)},
        )
        return user.to_dto()

    def set_user_role(self, actor_id: str, user_id: str, role: UserRole | str) -> UserRecord:
        self._require_actor(actor_id, "set_user_role", {UserRole.ADMIN})
        user = self._get_user(user_id)
        previous = user.role
        user.role = UserRole(role).value
        self.session.flush()

        self._auditor.record(
            "User", user.id, AuditAction.USER_ROLE_CHANGED, actor_id,
            {"from": previous, "to": user.role},
        )
        logger.info(
            "user_role_changed",
            extra={"user_id": user.id, "from_role": previous, "to_role": user.role},
        )
        return user.to_dto()

    def set_user_active(self, actor_id: str, user_id: str, active: bool) -> UserRecord:
        self._require_actor(actor_id, "set_user_active", {UserRole.ADMIN})
        user = self._get_user(user_id)
        user.is_active = bool(active)
        self.session.flush()

        self._auditor.record(
            "User", user.id, AuditAction.USER_ACTIVATION_CHANGED, actor_id,
            {"is_active": user.is_active},
        )
        logger.info(
            "user_activation_changed",
            extra={"user_id": user.id, "is_active": user.is_active},
        )
        return user.to_dto()

    # Assets

    def _check_serials_free(self, serial_numbers: list[str]) -> None:
        seen: set[str] = set()
        for serial in serial_numbers:
            if serial in seen:
                raise DuplicateSerialError(serial)
            seen.add(serial)
        taken = self.session.execute(
            select(Asset.serial_number).where(Asset.serial_number.in_(serial_numbers))
        ).scalars().first()
        if taken is not None:
            raise DuplicateSerialError(taken)

    def add_asset(
        self,
        name: str,
        serial_number: str,
        category: str,
        description: str = "",
        image_url: str | None = None,
    ) -> AssetRecord:
        template = AssetTemplate(
            name=name, category=category, description=description, image_url=image_url,
        )
        return self.bulk_add_assets(template, [serial_number])[0]

    def bulk_add_assets(
        self, template: AssetTemplate, serial_numbers: Iterable[str],
    ) -> list[AssetRecord]:
        """
        Create one AVAILABLE asset per serial under a shared template.

        All-or-nothing: any duplicate serial (in the store or the batch)
        fails the whole batch before anything is added.
        """
        name = _required("name", template.name)
        category = _required("category", template.category)
        serials = [_required("serial_number", s) for s in serial_numbers]
        if not serials:
            raise ValidationError("serial_numbers", "at least one serial is required")
        self._check_serials_free(serials)

        assets = [
            Asset(
                id=self._ids.next_id(ASSET),
                name=name,
                serial_number=serial,
                category=category,
                status=AssetStatus.AVAILABLE.value,
                description=template.description or "",
                image_url=template.image_url,
            )
            for serial in serials
        ]
        self.session.add_all(assets)
        self.session.flush()

        for asset in assets:
            self._auditor.record(
                "Asset", asset.id, AuditAction.ASSET_CREATED, SYSTEM_ACTOR,
                {"serial_number": asset.serial_number, "category": category},
            )
        logger.info(
            "assets_created",
            extra={"asset_count": len(assets), "category": category},
        )
        return [asset.to_dto() for asset in assets]

    def update_asset(self, asset_id: str, **fields: str | None) -> AssetRecord:
        """Edit descriptive fields.  ``status`` belongs to the ledger."""
        if "status" in fields:
            raise ValidationError("status", "asset status is written only by the ledger")
        unknown = set(fields) - ASSET_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                ",".join(sorted(unknown)), "not an editable asset field",
            )
        asset = self.session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)

        for key in ("name", "category"):
            if key in fields:
                setattr(asset, key, _required(key, fields[key]))
        if "description" in fields:
            asset.description = fields["description"] or ""
        if "image_url" in fields:
            asset.image_url = fields["image_url"]
        self.session.flush()

        self._auditor.record(
            "Asset", asset.id, AuditAction.ASSET_UPDATED, SYSTEM_ACTOR,
            {"fields": sorted(fields)},
        )
        return asset.to_dto()

    # Settings

    def update_settings(self, actor_id: str, **values: str) -> SystemSettings:
        self._require_actor(actor_id, "update_settings", {UserRole.ADMIN})
        unknown = set(values) - SETTINGS_FIELDS
        if unknown:
            raise ValidationError(",".join(sorted(unknown)), "unknown setting")

        now = self._clock.now()
        for key, value in values.items():
            cleaned = _required(key, value)
            row = self.session.get(SystemSetting, key)
            if row is None:
                row = SystemSetting(id=key, value=cleaned)
                self.session.add(row)
            else:
                row.value = cleaned
            row.updated_at = now
            row.updated_by = actor_id
        self.session.flush()

        self._auditor.record(
            "Settings", "system", AuditAction.SETTINGS_UPDATED, actor_id, dict(values),
        )
        return CatalogSelector(self.session).get_settings()
