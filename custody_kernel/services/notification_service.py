"""
NotificationService -- per-user notification side effects.

Responsibility:
    Stores ``(user_id, message, severity)`` notifications emitted by
    request, gate and deployment transitions, resolves the admin audience,
    and marks notifications read.

Architecture position:
    Kernel > Services.  Delivery to a UI, e-mail or push channel is
    external: CustodyOrchestrator hands the records emitted by a unit of
    work to every registered ``NotificationSink`` after commit, so a
    rolled-back transition never notifies anyone.

Invariants enforced:
    - Notifications are append-only; only ``read`` may change
      (db/immutability.py).
    - The admin audience is every active ADMIN user at emit time.
"""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock
from custody_kernel.domain.dtos import NotificationRecord
from custody_kernel.domain.identifiers import NOTIFICATION, IdGenerator
from custody_kernel.domain.lifecycle import Severity, UserRole
from custody_kernel.exceptions import NotificationNotFoundError
from custody_kernel.logging_config import get_logger
from custody_kernel.models.notification import Notification
from custody_kernel.models.user import User
from custody_kernel.services.base import BaseService

logger = get_logger("services.notifications")


class NotificationSink(Protocol):
    """External delivery channel for committed notifications."""

    def deliver(self, notification: NotificationRecord) -> None:
        ...


class NotificationService(BaseService):
    """
    Creates notification rows within the caller's transaction.

    ``emitted`` accumulates every record created through this instance,
    in order, for post-commit delivery.
    """

    def __init__(self, session: Session, clock: Clock, ids: IdGenerator):
        super().__init__(session)
        self._clock = clock
        self._ids = ids
        self.emitted: list[NotificationRecord] = []

    def notify(
        self,
        user_id: str,
        message: str,
        severity: Severity = Severity.INFO,
        request_id: str | None = None,
    ) -> NotificationRecord:
        notification = Notification(
            id=self._ids.next_id(NOTIFICATION),
            user_id=user_id,
            message=message,
            severity=Severity(severity).value,
            read=False,
            created_at=self._clock.now(),
            request_id=request_id,
        )
        self.session.add(notification)
        self.session.flush()

        record = notification.to_dto()
        self.emitted.append(record)
        logger.debug(
            "notification_created",
            extra={
                "notification_id": record.id,
                "recipient_id": user_id,
                "severity": record.severity.value,
            },
        )
        return record

    def admin_ids(self) -> list[str]:
        return list(
            self.session.execute(
                select(User.id)
                .where(User.role == UserRole.ADMIN.value, User.is_active.is_(True))
                .order_by(User.id)
            ).scalars()
        )

    def notify_admins(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        request_id: str | None = None,
    ) -> list[NotificationRecord]:
        """Notify every active administrator."""
        return [
            self.notify(admin_id, message, severity, request_id)
            for admin_id in self.admin_ids()
        ]

    def mark_read(self, notification_id: str) -> NotificationRecord:
        notification = self.session.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        if not notification.read:
            notification.read = True
            self.session.flush()
        return notification.to_dto()
