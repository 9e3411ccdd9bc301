"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | When Immutable          | Why
-----------------|-------------------------|-------------------------------------
AuditEvent       | ALWAYS                  | The audit trail is the evidence
RequestItem      | ALWAYS                  | Items are fixed at submission
Deployment       | ALWAYS                  | Deployment is permanent
DeploymentItem   | ALWAYS                  | Part of the deployment record
Notification     | All fields but ``read`` | Messages are delivered, not edited

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL is
sent.  The listeners below raise ImmutabilityViolationError there, so the
transaction aborts and nothing reaches the database.

===============================================================================
USAGE
===============================================================================

    from custody_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY, e.g. to tamper with the audit chain):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from custody_kernel.exceptions import ImmutabilityViolationError
from custody_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

NOTIFICATION_MUTABLE_FIELDS = frozenset({"read"})


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_event_update(mapper, connection, target):
    _block("AuditEvent", target, "UPDATE", "Audit events are immutable and cannot be modified")


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


def _check_request_item_update(mapper, connection, target):
    _block("RequestItem", target, "UPDATE", "Request items are fixed at submission")


def _check_request_item_delete(mapper, connection, target):
    _block("RequestItem", target, "DELETE", "Request items are fixed at submission")


def _check_deployment_update(mapper, connection, target):
    _block(type(target).__name__, target, "UPDATE", "Deployments are permanent records")


def _check_deployment_delete(mapper, connection, target):
    _block(type(target).__name__, target, "DELETE", "Deployments are permanent records")


def _check_notification_update(mapper, connection, target):
    """Allow toggling ``read``; block every other column change."""
    changed = [
        attr.key
        for attr in mapper.column_attrs
        if attr.key not in NOTIFICATION_MUTABLE_FIELDS
        and get_history(target, attr.key).has_changes()
    ]
    if changed:
        _block(
            "Notification",
            target,
            "UPDATE",
            f"Only 'read' may change; attempted {sorted(changed)}",
        )


def _check_notification_delete(mapper, connection, target):
    _block("Notification", target, "DELETE", "Notifications cannot be deleted")


def _listeners():
    from custody_kernel.models.audit_event import AuditEvent
    from custody_kernel.models.deployment import Deployment, DeploymentItem
    from custody_kernel.models.notification import Notification
    from custody_kernel.models.request import RequestItem

    return (
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (RequestItem, "before_update", _check_request_item_update),
        (RequestItem, "before_delete", _check_request_item_delete),
        (Deployment, "before_update", _check_deployment_update),
        (Deployment, "before_delete", _check_deployment_delete),
        (DeploymentItem, "before_update", _check_deployment_update),
        (DeploymentItem, "before_delete", _check_deployment_delete),
        (Notification, "before_update", _check_notification_update),
        (Notification, "before_delete", _check_notification_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability listeners.  Safe to call more than once.

    Call after models are importable and before any database work.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only for tests that must violate immutability on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
