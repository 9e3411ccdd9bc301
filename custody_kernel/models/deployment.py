"""
Module: custody_kernel.models.deployment
Responsibility: ORM persistence for permanent client deployments.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Deployments and their items are immutable once flushed: a deployment
      is a permanent record of assets leaving custody (db/immutability.py).
    - An asset appears in at most one deployment (UNIQUE asset_id on
      deployment_items); DEPLOYED has no outgoing ledger transition.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from custody_kernel.db.base import Base
from custody_kernel.domain.dtos import DeploymentRecord


class Deployment(Base):
    """Assets handed permanently to a client site."""

    __tablename__ = "deployments"

    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str] = mapped_column(String(500), nullable=False)
    contact_person: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_number: Mapped[str] = mapped_column(String(50), nullable=False)
    contact_designation: Mapped[str] = mapped_column(String(200), nullable=False)
    deployment_date: Mapped[date] = mapped_column(Date, nullable=False)
    deployed_by: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["DeploymentItem"]] = relationship(
        "DeploymentItem",
        back_populates="deployment",
        order_by="DeploymentItem.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Deployment {self.id} client={self.client_name!r}>"

    def to_dto(self) -> DeploymentRecord:
        return DeploymentRecord(
            id=self.id,
            client_name=self.client_name,
            location=self.location,
            contact_person=self.contact_person,
            contact_number=self.contact_number,
            contact_designation=self.contact_designation,
            item_ids=tuple(item.asset_id for item in self.items),
            deployment_date=self.deployment_date,
            deployed_by=self.deployed_by,
            created_at=self.created_at,
            notes=self.notes,
        )


class DeploymentItem(Base):
    __tablename__ = "deployment_items"

    __table_args__ = (
        UniqueConstraint("asset_id", name="uq_deployment_items_asset"),
    )

    deployment_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("deployments.id"), nullable=False,
    )
    asset_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("assets.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    deployment: Mapped["Deployment"] = relationship(
        "Deployment", back_populates="items",
    )
