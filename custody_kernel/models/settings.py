"""
Module: custody_kernel.models.settings
Responsibility: Key/value rows for administrator-editable system settings.
Architecture position: Kernel > Models.  May import from db/base.py only.

The primary key is the setting key itself (e.g. ``admin_contact_number``).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from custody_kernel.db.base import Base


class SystemSetting(Base):
    __tablename__ = "system_settings"

    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<SystemSetting {self.id}={self.value!r}>"
