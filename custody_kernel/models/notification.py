"""
Module: custody_kernel.models.notification
Responsibility: ORM persistence for per-user notifications.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Only ``read`` may change after insert; message, severity and
      recipient are fixed (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from custody_kernel.db.base import Base
from custody_kernel.domain.dtos import NotificationRecord
from custody_kernel.domain.lifecycle import Severity


class Notification(Base):
    """A message addressed to one user."""

    __tablename__ = "notifications"

    __table_args__ = (
        CheckConstraint(
            "severity IN ('INFO', 'SUCCESS', 'WARNING')",
            name="ck_notifications_valid_severity",
        ),
        Index("ix_notifications_user_id", "user_id", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    request_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("requests.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Notification {self.id} to={self.user_id} read={self.read}>"

    def to_dto(self) -> NotificationRecord:
        return NotificationRecord(
            id=self.id,
            user_id=self.user_id,
            message=self.message,
            severity=Severity(self.severity),
            read=self.read,
            created_at=self.created_at,
            request_id=self.request_id,
        )
