"""
Module: custody_kernel.selectors.ledger_selector
Responsibility: Derives the expected physical status of each asset from the
    requests and deployments that reference it, and reports disagreements
    with the stored status.
Architecture position: Kernel > Selectors.  Used by AssetLedger after every
    write and by operators for a full sweep.

Ledger rule (per asset):
    - referenced by a gate-verified request in APPROVED/CHECKED_OUT
      -> IN_USE (exactly one such request is allowed);
    - otherwise referenced by a deployment -> DEPLOYED;
    - otherwise MAINTENANCE if stored so, else AVAILABLE.

An asset becomes IN_USE only after it has physically left the building,
not on admin approval.
"""

from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import select

from custody_kernel.domain.dtos import LedgerMismatch
from custody_kernel.domain.lifecycle import EXIT_ELIGIBLE_STATUSES, AssetStatus
from custody_kernel.models.asset import Asset
from custody_kernel.models.deployment import DeploymentItem
from custody_kernel.models.request import CustodyRequest, RequestItem
from custody_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector):

    def mismatches(self, asset_ids: Iterable[str] | None = None) -> list[LedgerMismatch]:
        """Assets whose stored status disagrees with their references."""
        asset_query = select(Asset).order_by(Asset.id)
        verified_query = (
            select(RequestItem.asset_id, CustodyRequest.id)
            .join(CustodyRequest, CustodyRequest.id == RequestItem.request_id)
            .where(
                CustodyRequest.status.in_([s.value for s in EXIT_ELIGIBLE_STATUSES]),
                CustodyRequest.gate_verified.is_(True),
            )
        )
        deployed_query = select(DeploymentItem.asset_id)

        if asset_ids is not None:
            ids = list(asset_ids)
            if not ids:
                return []
            asset_query = asset_query.where(Asset.id.in_(ids))
            verified_query = verified_query.where(RequestItem.asset_id.in_(ids))
            deployed_query = deployed_query.where(DeploymentItem.asset_id.in_(ids))

        holders: dict[str, list[str]] = defaultdict(list)
        for asset_id, request_id in self.session.execute(verified_query).all():
            holders[asset_id].append(request_id)
        deployed = set(self.session.execute(deployed_query).scalars())

        result = []
        for asset in self.session.execute(asset_query).scalars():
            stored = AssetStatus(asset.status)
            held_by = sorted(holders.get(asset.id, ()))

            if len(held_by) > 1:
                result.append(LedgerMismatch(
                    asset_id=asset.id,
                    stored_status=stored,
                    expected_status=AssetStatus.IN_USE,
                    detail=f"held by several verified requests: {', '.join(held_by)}",
                ))
                continue

            if held_by:
                expected = AssetStatus.IN_USE
                detail = f"held by verified request {held_by[0]}"
            elif asset.id in deployed:
                expected = AssetStatus.DEPLOYED
                detail = "referenced by a deployment"
            elif stored is AssetStatus.MAINTENANCE:
                expected = AssetStatus.MAINTENANCE
                detail = "in maintenance"
            else:
                expected = AssetStatus.AVAILABLE
                detail = "no open custody reference"

            if stored is not expected:
                result.append(LedgerMismatch(
                    asset_id=asset.id,
                    stored_status=stored,
                    expected_status=expected,
                    detail=detail,
                ))
        return result
