"""
Module: custody_kernel.models.asset
Responsibility: ORM persistence for physical assets.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - ``serial_number`` is UNIQUE.
    - ``status`` is one of the AssetStatus values (check constraint).
    - Assets are never deleted, so historical requests always resolve.

Non-goals:
    - The model does not guard who writes ``status``; AssetLedger is the
      only service that does.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from custody_kernel.db.base import Base
from custody_kernel.domain.dtos import AssetRecord
from custody_kernel.domain.lifecycle import AssetStatus


class Asset(Base):
    """A physical unit identified by a system id and a serial number."""

    __tablename__ = "assets"

    __table_args__ = (
        CheckConstraint(
            "status IN ('AVAILABLE', 'IN_USE', 'MAINTENANCE', 'DEPLOYED')",
            name="ck_assets_valid_status",
        ),
        Index("ix_assets_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssetStatus.AVAILABLE.value,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<Asset {self.id} {self.serial_number} status={self.status}>"

    def to_dto(self) -> AssetRecord:
        return AssetRecord(
            id=self.id,
            name=self.name,
            serial_number=self.serial_number,
            category=self.category,
            status=AssetStatus(self.status),
            description=self.description or "",
            image_url=self.image_url,
        )
