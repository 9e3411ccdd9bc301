"""
Module: custody_kernel.selectors.catalog_selector
Responsibility: Read-only listings of users, assets, deployments,
    notifications and system settings.
Architecture position: Kernel > Selectors.
"""

from sqlalchemy import func, select

from custody_kernel.domain.dtos import (
    AssetRecord,
    DeploymentRecord,
    NotificationRecord,
    SystemSettings,
    UserRecord,
)
from custody_kernel.domain.lifecycle import AssetStatus, UserRole
from custody_kernel.exceptions import (
    AssetNotFoundError,
    DeploymentNotFoundError,
    UserNotFoundError,
)
from custody_kernel.models.asset import Asset
from custody_kernel.models.deployment import Deployment
from custody_kernel.models.notification import Notification
from custody_kernel.models.settings import SystemSetting
from custody_kernel.models.user import User
from custody_kernel.selectors.base import BaseSelector

DEFAULT_SETTINGS = SystemSettings(admin_contact_number="+1-555-0199")


class CatalogSelector(BaseSelector):

    # Users

    def get_user(self, user_id: str) -> UserRecord:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user.to_dto()

    def find_user_by_email(self, email: str) -> UserRecord | None:
        user = self.session.execute(
            select(User).where(User.email_normalized == email.strip().lower())
        ).scalar_one_or_none()
        return user.to_dto() if user else None

    def list_users(self, role: UserRole | None = None) -> list[UserRecord]:
        query = select(User).order_by(func.lower(User.name), User.id)
        if role is not None:
            query = query.where(User.role == UserRole(role).value)
        return [u.to_dto() for u in self.session.execute(query).scalars()]

    # Assets

    def get_asset(self, asset_id: str) -> AssetRecord:
        asset = self.session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset.to_dto()

    def find_asset_by_serial(self, serial_number: str) -> AssetRecord | None:
        asset = self.session.execute(
            select(Asset).where(Asset.serial_number == serial_number.strip())
        ).scalar_one_or_none()
        return asset.to_dto() if asset else None

    def list_assets(self, status: AssetStatus | None = None) -> list[AssetRecord]:
        query = select(Asset).order_by(Asset.name, Asset.serial_number)
        if status is not None:
            query = query.where(Asset.status == AssetStatus(status).value)
        return [a.to_dto() for a in self.session.execute(query).scalars()]

    # Deployments

    def get_deployment(self, deployment_id: str) -> DeploymentRecord:
        deployment = self.session.get(Deployment, deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        return deployment.to_dto()

    def list_deployments(self) -> list[DeploymentRecord]:
        query = select(Deployment).order_by(
            Deployment.created_at.desc(), Deployment.id.desc(),
        )
        return [d.to_dto() for d in self.session.execute(query).scalars()]

    # Notifications

    def list_notifications(
        self, user_id: str, unread_only: bool = False,
    ) -> list[NotificationRecord]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
        return [n.to_dto() for n in self.session.execute(query).scalars()]

    # Settings

    def get_settings(self) -> SystemSettings:
        stored = {
            row.id: row.value
            for row in self.session.execute(select(SystemSetting)).scalars()
        }
        return SystemSettings(
            admin_contact_number=stored.get(
                "admin_contact_number", DEFAULT_SETTINGS.admin_contact_number,
            ),
        )
