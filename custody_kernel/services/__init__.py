"""Services for the custody kernel (write side)."""

from custody_kernel.services.asset_ledger import AssetLedger
from custody_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from custody_kernel.services.auth_service import AuthService
from custody_kernel.services.custody_orchestrator import CustodyOrchestrator, UnitOfWork
from custody_kernel.services.deployment_service import DeploymentService
from custody_kernel.services.entity_store import EntityStore
from custody_kernel.services.gate_pass_service import GatePassMinter
from custody_kernel.services.gate_verifier import GateVerifier
from custody_kernel.services.locks import KeyedLockRegistry
from custody_kernel.services.notification_service import (
    NotificationService,
    NotificationSink,
)
from custody_kernel.services.request_lifecycle import RequestLifecycleEngine
from custody_kernel.services.return_handler import ReturnHandler
from custody_kernel.services.sequence_service import SequenceService

__all__ = [
    "AssetLedger",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "AuthService",
    "CustodyOrchestrator",
    "DeploymentService",
    "EntityStore",
    "GatePassMinter",
    "GateVerifier",
    "KeyedLockRegistry",
    "NotificationService",
    "NotificationSink",
    "RequestLifecycleEngine",
    "ReturnHandler",
    "SequenceService",
    "UnitOfWork",
]
