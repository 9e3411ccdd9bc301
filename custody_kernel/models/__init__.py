"""ORM models for the custody kernel."""

from custody_kernel.models.asset import Asset
from custody_kernel.models.audit_event import AuditAction, AuditEvent
from custody_kernel.models.deployment import Deployment, DeploymentItem
from custody_kernel.models.notification import Notification
from custody_kernel.models.request import CustodyRequest, RequestItem
from custody_kernel.models.sequence_counter import SequenceCounter
from custody_kernel.models.settings import SystemSetting
from custody_kernel.models.user import User

__all__ = [
    "Asset",
    "AuditAction",
    "AuditEvent",
    "CustodyRequest",
    "Deployment",
    "DeploymentItem",
    "Notification",
    "RequestItem",
    "SequenceCounter",
    "SystemSetting",
    "User",
]
