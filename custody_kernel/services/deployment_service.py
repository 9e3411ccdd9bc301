"""
DeploymentService -- permanent hand-over of assets to a client site.

Responsibility:
    Creates an immutable Deployment with its ordered items and moves every
    asset to DEPLOYED through AssetLedger.deploy.

Architecture position:
    Kernel > Services.  Not part of the request state machine.

Invariants enforced:
    - ADMIN only.
    - Every asset must be AVAILABLE and not attached to an open request.
    - Deployment rows are immutable once flushed (db/immutability.py).
"""

from datetime import date

from sqlalchemy.orm import Session

from custody_kernel.domain.clock import Clock
from custody_kernel.domain.dtos import DeploymentRecord
from custody_kernel.domain.identifiers import DEPLOYMENT, IdGenerator
from custody_kernel.domain.lifecycle import Severity, UserRole
from custody_kernel.exceptions import ValidationError
from custody_kernel.logging_config import get_logger
from custody_kernel.models.audit_event import AuditAction
from custody_kernel.models.deployment import Deployment, DeploymentItem
from custody_kernel.services.asset_ledger import AssetLedger
from custody_kernel.services.auditor_service import AuditorService
from custody_kernel.services.base import BaseService
from custody_kernel.services.notification_service import NotificationService

logger = get_logger("services.deployment")


class DeploymentService(BaseService):

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ids: IdGenerator,
        ledger: AssetLedger,
        notifier: NotificationService,
        auditor: AuditorService,
    ):
        super().__init__(session)
        self._clock = clock
        self._ids = ids
        self._ledger = ledger
        self._notifier = notifier
        self._auditor = auditor

    def create_deployment(
        self,
        actor_id: str,
        client_name: str,
        location: str,
        contact_person: str,
        contact_number: str,
        contact_designation: str,
        asset_ids: list[str],
        deployment_date: date,
        notes: str | None = None,
    ) -> DeploymentRecord:
        actor = self._require_actor(actor_id, "create_deployment", {UserRole.ADMIN})

        client_name = (client_name or "").strip()
        if not client_name:
            raise ValidationError("client_name", "must not be empty")
        item_ids = list(dict.fromkeys(asset_ids or []))
        if not item_ids:
            raise ValidationError("asset_ids", "at least one asset is required")
        self._ledger.check_deployable(item_ids)

        deployment = Deployment(
            id=self._ids.next_id(DEPLOYMENT),
            client_name=client_name,
            location=(location or "").strip(),
            contact_person=(contact_person or "").strip(),
            contact_number=(contact_number or "").strip(),
            contact_designation=(contact_designation or "").strip(),
            deployment_date=deployment_date,
            deployed_by=actor.id,
            created_at=self._clock.now(),
            notes=notes,
        )
        deployment.items = [
            DeploymentItem(
                id=f"{deployment.id}:{position}", asset_id=asset_id, position=position,
            )
            for position, asset_id in enumerate(item_ids)
        ]
        self.session.add(deployment)
        self.session.flush()

        self._ledger.deploy(item_ids, actor.id, deployment.id)

        self._auditor.record(
            "Deployment", deployment.id, AuditAction.DEPLOYMENT_CREATED, actor.id,
            {
                "client_name": client_name,
                "location": deployment.location,
                "asset_ids": item_ids,
                "deployment_date": deployment_date,
            },
        )
        self._notifier.notify(
            actor.id,
            f"Deployed {len(item_ids)} asset(s) to {client_name}.",
            Severity.SUCCESS,
        )
        logger.info(
            "deployment_created",
            extra={"deployment_id": deployment.id, "asset_count": len(item_ids)},
        )
        return deployment.to_dto()
