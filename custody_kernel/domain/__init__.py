"""
Pure domain layer.

This module contains value objects and rules with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time
- I/O

All domain objects are immutable and deterministic.
"""

from custody_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from custody_kernel.domain.dtos import (
    AssetRecord,
    AssetTemplate,
    DeploymentRecord,
    Evidence,
    LedgerMismatch,
    NotificationRecord,
    RequestRecord,
    RequestView,
    SystemSettings,
    UserRecord,
)
from custody_kernel.domain.identifiers import (
    CodeSource,
    IdGenerator,
    RandomCodeSource,
    ScriptedCodeSource,
    SequentialIdGenerator,
    UUIDIdGenerator,
)
from custody_kernel.domain.lifecycle import (
    EXIT_ELIGIBLE_STATUSES,
    OPEN_REQUEST_STATUSES,
    REQUEST_TRANSITIONS,
    REQUEST_WORKFLOW,
    TERMINAL_REQUEST_STATUSES,
    AssetStatus,
    Decision,
    GateState,
    RequestStatus,
    Severity,
    UserRole,
)
from custody_kernel.domain.policy import CustodyPolicy

__all__ = [
    "AssetRecord",
    "AssetStatus",
    "AssetTemplate",
    "Clock",
    "CodeSource",
    "CustodyPolicy",
    "Decision",
    "DeploymentRecord",
    "DeterministicClock",
    "EXIT_ELIGIBLE_STATUSES",
    "Evidence",
    "GateState",
    "IdGenerator",
    "LedgerMismatch",
    "NotificationRecord",
    "OPEN_REQUEST_STATUSES",
    "REQUEST_TRANSITIONS",
    "REQUEST_WORKFLOW",
    "RandomCodeSource",
    "RequestRecord",
    "RequestStatus",
    "RequestView",
    "ScriptedCodeSource",
    "SequentialIdGenerator",
    "Severity",
    "SystemClock",
    "SystemSettings",
    "TERMINAL_REQUEST_STATUSES",
    "UUIDIdGenerator",
    "UserRecord",
    "UserRole",
]
