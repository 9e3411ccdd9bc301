"""
AssetLedger -- the single writer of ``Asset.status``.

Responsibility:
    Moves assets between AVAILABLE, IN_USE, MAINTENANCE and DEPLOYED along
    ``ASSET_TRANSITIONS`` and checks the ledger rule after every write.

Architecture position:
    Kernel > Services.  Called by GateVerifier (reserve on physical exit),
    ReturnHandler (release), DeploymentService (deploy) and the
    orchestrator's maintenance operations.  Nothing else writes asset
    status.

Invariants enforced:
    - Every move follows ``ASSET_TRANSITIONS``; DEPLOYED is permanent.
    - Deploy and maintenance refuse assets attached to an open request.
    - With ``policy.verify_ledger_on_write``, the touched assets are
      re-derived through LedgerSelector after the write; any disagreement
      is logged at CRITICAL and raised as ConsistencyError, which rolls
      the whole unit of work back.

Failure modes:
    - AssetNotFoundError for an unknown id.
    - AssetUnavailableError for an illegal move.
    - ConsistencyError for a post-write ledger mismatch.
"""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from custody_kernel.domain.dtos import AssetRecord
from custody_kernel.domain.lifecycle import ASSET_TRANSITIONS, AssetStatus, UserRole
from custody_kernel.domain.policy import CustodyPolicy
from custody_kernel.exceptions import (
    AssetNotFoundError,
    AssetUnavailableError,
    ConsistencyError,
)
from custody_kernel.logging_config import get_logger
from custody_kernel.models.asset import Asset
from custody_kernel.models.audit_event import AuditAction
from custody_kernel.selectors.ledger_selector import LedgerSelector
from custody_kernel.selectors.request_selector import RequestSelector
from custody_kernel.services.auditor_service import AuditorService
from custody_kernel.services.base import BaseService

logger = get_logger("services.asset_ledger")


class AssetLedger(BaseService):
    """Applies asset status transitions; flush-only."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        policy: CustodyPolicy | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._policy = policy or CustodyPolicy()

    def _load(self, asset_ids: Sequence[str]) -> list[Asset]:
        """Lock and return assets in the given order."""
        ids = list(dict.fromkeys(asset_ids))
        rows = {
            asset.id: asset
            for asset in self.session.execute(
                select(Asset)
                .where(Asset.id.in_(ids))
                .order_by(Asset.id)
                .with_for_update()
            ).scalars()
        }
        missing = [asset_id for asset_id in ids if asset_id not in rows]
        if missing:
            raise AssetNotFoundError(missing[0])
        return [rows[asset_id] for asset_id in ids]

    def _ensure_not_held(self, assets: list[Asset]) -> None:
        holders = RequestSelector(self.session).open_holders(a.id for a in assets)
        for asset in assets:
            holder = holders.get(asset.id)
            if holder is not None:
                raise AssetUnavailableError(
                    asset.id, asset.status, f"attached to open request {holder}",
                )

    def _check_moves(
        self,
        asset_ids: Sequence[str],
        target: AssetStatus,
        check_open_requests: bool = False,
        source: AssetStatus | None = None,
    ) -> list[Asset]:
        assets = self._load(asset_ids)
        for asset in assets:
            current = AssetStatus(asset.status)
            if source is not None and current is not source:
                raise AssetUnavailableError(
                    asset.id, current.value, f"expected {source.value}",
                )
            if target not in ASSET_TRANSITIONS[current]:
                raise AssetUnavailableError(
                    asset.id, current.value, f"cannot move to {target.value}",
                )
        if check_open_requests:
            self._ensure_not_held(assets)
        return assets

    def _move(
        self,
        asset_ids: Sequence[str],
        target: AssetStatus,
        action: AuditAction,
        actor_id: str,
        reference: dict[str, str],
        check_open_requests: bool = False,
        source: AssetStatus | None = None,
    ) -> list[Asset]:
        assets = self._check_moves(asset_ids, target, check_open_requests, source)

        for asset in assets:
            previous = asset.status
            asset.status = target.value
            self._auditor.record(
                "Asset", asset.id, action, actor_id,
                {"from": previous, "to": target.value, **reference},
            )
        self.session.flush()

        logger.info(
            "ledger_assets_moved",
            extra={
                "to_status": target.value,
                "asset_ids": [a.id for a in assets],
                **reference,
            },
        )
        if self._policy.verify_ledger_on_write:
            self.verify([a.id for a in assets])
        return assets

    def reserve(self, asset_ids: Sequence[str], actor_id: str, request_id: str) -> None:
        """AVAILABLE -> IN_USE, when a verified request takes assets out."""
        self._move(
            asset_ids, AssetStatus.IN_USE, AuditAction.ASSET_RESERVED, actor_id,
            {"request_id": request_id},
        )

    def release(self, asset_ids: Sequence[str], actor_id: str, request_id: str) -> None:
        """IN_USE -> AVAILABLE, on return."""
        self._move(
            asset_ids, AssetStatus.AVAILABLE, AuditAction.ASSET_RELEASED, actor_id,
            {"request_id": request_id},
            source=AssetStatus.IN_USE,
        )

    def check_deployable(self, asset_ids: Sequence[str]) -> None:
        """Raise unless every asset could move to DEPLOYED right now."""
        self._check_moves(asset_ids, AssetStatus.DEPLOYED, check_open_requests=True)

    def deploy(self, asset_ids: Sequence[str], actor_id: str, deployment_id: str) -> None:
        """AVAILABLE -> DEPLOYED, permanently."""
        self._move(
            asset_ids, AssetStatus.DEPLOYED, AuditAction.ASSET_DEPLOYED, actor_id,
            {"deployment_id": deployment_id},
            check_open_requests=True,
        )

    def mark_maintenance(self, asset_id: str, actor_id: str) -> AssetRecord:
        """AVAILABLE -> MAINTENANCE.  ADMIN only."""
        self._require_actor(actor_id, "mark_maintenance", {UserRole.ADMIN})
        return self._move(
            [asset_id], AssetStatus.MAINTENANCE, AuditAction.ASSET_MAINTENANCE_STARTED,
            actor_id, {}, check_open_requests=True,
        )[0].to_dto()

    def clear_maintenance(self, asset_id: str, actor_id: str) -> AssetRecord:
        """MAINTENANCE -> AVAILABLE.  ADMIN only."""
        self._require_actor(actor_id, "clear_maintenance", {UserRole.ADMIN})
        return self._move(
            [asset_id], AssetStatus.AVAILABLE, AuditAction.ASSET_MAINTENANCE_CLEARED,
            actor_id, {}, source=AssetStatus.MAINTENANCE,
        )[0].to_dto()

    def verify(self, asset_ids: Sequence[str] | None = None) -> None:
        """
        Re-derive the ledger for ``asset_ids`` (all assets when None).

        Raises:
            ConsistencyError: On the first mismatch found.
        """
        mismatches = LedgerSelector(self.session).mismatches(asset_ids)
        if not mismatches:
            return
        for mismatch in mismatches:
            logger.critical(
                "ledger_invariant_violated",
                extra={
                    "asset_id": mismatch.asset_id,
                    "stored_status": mismatch.stored_status.value,
                    "expected_status": mismatch.expected_status.value,
                    "detail": mismatch.detail,
                },
            )
        first = mismatches[0]
        raise ConsistencyError(
            "Asset",
            first.asset_id,
            f"status {first.stored_status.value}, expected "
            f"{first.expected_status.value} ({first.detail})",
        )
