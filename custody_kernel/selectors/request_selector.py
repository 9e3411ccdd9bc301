"""
Module: custody_kernel.selectors.request_selector
Responsibility: Read-time projection of requests joined with their live
    requester and assets.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - ``RequestView.user`` and ``RequestView.items`` are recomputed from the
      current User and Asset rows on every read.  Nothing about the
      requester or assets is cached on the request, so a phone-number edit
      or CSV re-import is visible to the guard immediately.
    - A request whose requester or asset row is missing is store
      corruption: it raises ConsistencyError and is never patched over.

Failure modes:
    - RequestNotFoundError for an unknown request id.
    - ConsistencyError for a dangling user or asset reference.
"""

from collections.abc import Iterable, Sequence

from sqlalchemy import select

from custody_kernel.domain.dtos import AssetRecord, RequestView, UserRecord
from custody_kernel.domain.lifecycle import OPEN_REQUEST_STATUSES, RequestStatus
from custody_kernel.exceptions import ConsistencyError, RequestNotFoundError
from custody_kernel.logging_config import get_logger
from custody_kernel.models.asset import Asset
from custody_kernel.models.request import CustodyRequest, RequestItem
from custody_kernel.models.user import User
from custody_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.request")

_OPEN_VALUES = tuple(s.value for s in OPEN_REQUEST_STATUSES)


class RequestSelector(BaseSelector):
    """Queries over requests.  Every view is joined at read time."""

    def _join(self, requests: Sequence[CustodyRequest]) -> list[RequestView]:
        user_ids = {r.user_id for r in requests}
        asset_ids = {asset_id for r in requests for asset_id in r.item_ids}

        users: dict[str, UserRecord] = {}
        if user_ids:
            for user in self.session.execute(
                select(User).where(User.id.in_(user_ids))
            ).scalars():
                users[user.id] = user.to_dto()

        assets: dict[str, AssetRecord] = {}
        if asset_ids:
            for asset in self.session.execute(
                select(Asset).where(Asset.id.in_(asset_ids))
            ).scalars():
                assets[asset.id] = asset.to_dto()

        views = []
        for request in requests:
            user = users.get(request.user_id)
            if user is None:
                logger.critical(
                    "dangling_requester",
                    extra={"request_id": request.id, "user_id": request.user_id},
                )
                raise ConsistencyError(
                    "Request", request.id, f"requester {request.user_id} does not exist",
                )
            items = []
            for asset_id in request.item_ids:
                asset = assets.get(asset_id)
                if asset is None:
                    logger.critical(
                        "dangling_asset_reference",
                        extra={"request_id": request.id, "asset_id": asset_id},
                    )
                    raise ConsistencyError(
                        "Request", request.id, f"asset {asset_id} does not exist",
                    )
                items.append(asset)
            views.append(
                RequestView(request=request.to_dto(), user=user, items=tuple(items))
            )
        return views

    def get_view(self, request_id: str) -> RequestView:
        request = self.session.get(CustodyRequest, request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return self._join([request])[0]

    def list_views(
        self,
        status: RequestStatus | None = None,
        user_id: str | None = None,
    ) -> list[RequestView]:
        """Requests newest first, optionally filtered by status and requester."""
        query = select(CustodyRequest)
        if status is not None:
            query = query.where(CustodyRequest.status == RequestStatus(status).value)
        if user_id is not None:
            query = query.where(CustodyRequest.user_id == user_id)
        query = query.order_by(
            CustodyRequest.request_date.desc(), CustodyRequest.id.desc(),
        )
        return self._join(self.session.execute(query).scalars().all())

    def open_holders(self, asset_ids: Iterable[str]) -> dict[str, str]:
        """Map each asset id to the open request that references it, if any."""
        ids = list(asset_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(RequestItem.asset_id, RequestItem.request_id)
            .join(CustodyRequest, CustodyRequest.id == RequestItem.request_id)
            .where(
                RequestItem.asset_id.in_(ids),
                CustodyRequest.status.in_(_OPEN_VALUES),
            )
            .order_by(RequestItem.request_id)
        ).all()
        holders: dict[str, str] = {}
        for asset_id, request_id in rows:
            holders.setdefault(asset_id, request_id)
        return holders

    def open_gate_codes(self) -> set[str]:
        """Gate-pass codes held by non-terminal requests."""
        return set(
            self.session.execute(
                select(CustodyRequest.gate_pass_code).where(
                    CustodyRequest.status.in_(_OPEN_VALUES),
                    CustodyRequest.gate_pass_code.is_not(None),
                )
            ).scalars()
        )
