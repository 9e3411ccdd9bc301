"""
Module: custody_kernel.models.user
Responsibility: ORM persistence for users (identity, role, contact fields).
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - ``email_normalized`` is UNIQUE, so two users can never share an email
      regardless of case.
    - ``role`` is one of ADMIN/USER/GUARD (check constraint).
    - Users are never hard-deleted; ``is_active`` gates login and actions.
"""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from custody_kernel.db.base import Base
from custody_kernel.domain.dtos import UserRecord
from custody_kernel.domain.lifecycle import UserRole


class User(Base):
    """A person who requests, approves or guards assets."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('ADMIN', 'USER', 'GUARD')",
            name="ck_users_valid_role",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    email_normalized: Mapped[str] = mapped_column(
        String(320), nullable=False, unique=True,
    )
    role: Mapped[str] = mapped_column(String(10), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} role={self.role}>"

    def to_dto(self) -> UserRecord:
        return UserRecord(
            id=self.id,
            name=self.name,
            email=self.email,
            role=UserRole(self.role),
            is_active=self.is_active,
            department=self.department,
            phone_number=self.phone_number,
            avatar_url=self.avatar_url,
        )
