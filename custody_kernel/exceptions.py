"""
Typed Exception Hierarchy for the Custody Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (admin consoles, guard terminals, import jobs) must react to a
rejected transition precisely.  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        desk.verify(request_id, guard_id, "ok")
    except Exception as e:
        if "already" in str(e):
            ...

Example - RIGHT way:
    try:
        desk.verify(request_id, guard_id, "ok")
    except AlreadyVerifiedError as e:
        log.warning("duplicate scan", extra={"request_id": e.request_id})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CustodyKernelError:

    CustodyKernelError (base)
    |
    +-- NotFoundError
    |   +-- UserNotFoundError
    |   +-- AssetNotFoundError
    |   +-- RequestNotFoundError
    |   +-- DeploymentNotFoundError
    |   +-- NotificationNotFoundError
    |
    +-- InvalidStateError
    |   +-- NotApprovedError
    |
    +-- NotAuthorizedError
    |   +-- NotOwnerError
    |   +-- InactiveUserError
    |
    +-- AssetUnavailableError
    +-- AlreadyVerifiedError
    |
    +-- ValidationError
    |   +-- DuplicateEmailError
    |   +-- DuplicateSerialError
    |
    +-- ConsistencyError
    |
    +-- ConcurrencyError
    |   +-- LockTimeoutError
    |   +-- GatePassExhaustedError
    |
    +-- ImmutabilityViolationError
    +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lookup          | USER_NOT_FOUND              | Unknown user id or email
                | ASSET_NOT_FOUND             | Unknown asset id
                | REQUEST_NOT_FOUND           | Unknown request id / gate code
                | DEPLOYMENT_NOT_FOUND        | Unknown deployment id
                | NOTIFICATION_NOT_FOUND      | Unknown notification id
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Transition not allowed from status
                | NOT_APPROVED                | Gate action on a non-exit-eligible request
                | ALREADY_VERIFIED            | Second gate verification
----------------|-----------------------------|-----------------------------------------
Authorization   | NOT_AUTHORIZED              | Actor lacks the required role
                | NOT_OWNER                   | Actor does not own the request
                | INACTIVE_USER               | Actor account is deactivated
----------------|-----------------------------|-----------------------------------------
Availability    | ASSET_UNAVAILABLE           | Asset not AVAILABLE / on an open request
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Empty purpose/reason/note/evidence
                | DUPLICATE_EMAIL             | Email already registered
                | DUPLICATE_SERIAL            | Serial number already registered
----------------|-----------------------------|-----------------------------------------
Consistency     | CONSISTENCY_VIOLATION       | Dangling reference or ledger mismatch
----------------|-----------------------------|-----------------------------------------
Concurrency     | LOCK_TIMEOUT                | Entity lock not acquired in time
                | GATE_PASS_EXHAUSTED         | No free gate-pass code found
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
"""


class CustodyKernelError(Exception):
    """
    Base exception for all custody kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CUSTODY_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(CustodyKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class UserNotFoundError(NotFoundError):
    """User with given id (or email) was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User", user_id)


class AssetNotFoundError(NotFoundError):
    """Asset with given id was not found."""

    code: str = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__("Asset", asset_id)


class RequestNotFoundError(NotFoundError):
    """Request with given id or gate-pass code was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__("Request", request_id)


class DeploymentNotFoundError(NotFoundError):
    """Deployment with given id was not found."""

    code: str = "DEPLOYMENT_NOT_FOUND"

    def __init__(self, deployment_id: str):
        self.deployment_id = deployment_id
        super().__init__("Deployment", deployment_id)


class NotificationNotFoundError(NotFoundError):
    """Notification with given id was not found."""

    code: str = "NOTIFICATION_NOT_FOUND"

    def __init__(self, notification_id: str):
        self.notification_id = notification_id
        super().__init__("Notification", notification_id)


# State machine exceptions


class InvalidStateError(CustodyKernelError):
    """A transition was attempted from a status that does not permit it."""

    code: str = "INVALID_STATE"

    def __init__(self, request_id: str, current_status: str, action: str):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} request {request_id} in status {current_status}"
        )


class NotApprovedError(InvalidStateError):
    """Gate action on a request that is not APPROVED or CHECKED_OUT."""

    code: str = "NOT_APPROVED"


class AlreadyVerifiedError(CustodyKernelError):
    """
    Gate pass was already verified.

    Verification is idempotent in effect but not in return value: a second
    scan is reported so that a double exit is never logged silently.
    """

    code: str = "ALREADY_VERIFIED"

    def __init__(self, request_id: str, verified_by: str | None):
        self.request_id = request_id
        self.verified_by = verified_by
        super().__init__(
            f"Gate pass for request {request_id} already verified by {verified_by}"
        )


# Authorization exceptions


class NotAuthorizedError(CustodyKernelError):
    """Actor does not hold a role that permits the action."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, action: str, reason: str = ""):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"User {actor_id} may not {action}{detail}")


class NotOwnerError(NotAuthorizedError):
    """Actor is not the owner of the request."""

    code: str = "NOT_OWNER"

    def __init__(self, actor_id: str, request_id: str, action: str):
        self.request_id = request_id
        super().__init__(actor_id, action, f"request {request_id} belongs to another user")


class InactiveUserError(NotAuthorizedError):
    """Actor account is deactivated."""

    code: str = "INACTIVE_USER"

    def __init__(self, user_id: str, action: str = "act"):
        super().__init__(user_id, action, "account deactivated")


# Availability exceptions


class AssetUnavailableError(CustodyKernelError):
    """Asset cannot be requested, deployed or moved in its current state."""

    code: str = "ASSET_UNAVAILABLE"

    def __init__(self, asset_id: str, status: str, reason: str = ""):
        self.asset_id = asset_id
        self.status = status
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Asset {asset_id} is unavailable: status {status}{detail}")


# Validation exceptions


class ValidationError(CustodyKernelError):
    """Input failed validation (empty purpose, reason, note or evidence)."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class DuplicateEmailError(ValidationError):
    """Email already belongs to another user."""

    code: str = "DUPLICATE_EMAIL"

    def __init__(self, email: str):
        self.email = email
        super().__init__("email", f"already in use: {email}")


class DuplicateSerialError(ValidationError):
    """Serial number already registered (or repeated within a batch)."""

    code: str = "DUPLICATE_SERIAL"

    def __init__(self, serial_number: str):
        self.serial_number = serial_number
        super().__init__("serial_number", f"already registered: {serial_number}")


# Consistency exceptions


class ConsistencyError(CustodyKernelError):
    """
    Store corruption detected.

    Raised for a dangling foreign key on read or an asset status that
    disagrees with the requests referencing it.  This is the only fatal
    condition; it is never patched over at read time.
    """

    code: str = "CONSISTENCY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, detail: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(f"Consistency violation on {entity_type} {entity_id}: {detail}")


# Concurrency exceptions


class ConcurrencyError(CustodyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class LockTimeoutError(ConcurrencyError):
    """An entity lock could not be acquired within the configured timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, lock_key: str, timeout_seconds: float):
        self.lock_key = lock_key
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timed out after {timeout_seconds}s waiting for lock {lock_key}")


class GatePassExhaustedError(ConcurrencyError):
    """No unused gate-pass code could be drawn."""

    code: str = "GATE_PASS_EXHAUSTED"

    def __init__(self, attempts: int, open_codes: int):
        self.attempts = attempts
        self.open_codes = open_codes
        super().__init__(
            f"No free gate-pass code after {attempts} attempts "
            f"({open_codes} codes currently open)"
        )


# Immutability / audit exceptions


class ImmutabilityViolationError(CustodyKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(CustodyKernelError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
