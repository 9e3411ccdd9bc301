"""
Custody lifecycle types (``custody_kernel.domain.lifecycle``).

Responsibility
--------------
Closed enumerations and transition tables for every state machine in the
kernel: the request lifecycle, the gate-verification sub-machine nested
inside APPROVED/CHECKED_OUT, and the physical asset status written by the
ledger.  Also the declarative ``REQUEST_WORKFLOW`` naming which role may
fire each transition.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``REQUEST_TRANSITIONS`` defines the only valid request status changes.
  REJECTED, RETURNED and CANCELLED have no outgoing edges; CANCELLED is
  reachable only from PENDING.
* ``GATE_TRANSITIONS``: UNVERIFIED -> VERIFIED is terminal for the
  sub-machine; UNVERIFIED -> ISSUE_REPORTED -> UNVERIFIED is retryable.
* ``ASSET_TRANSITIONS``: DEPLOYED is permanent.
* Every table covers every member of its enum (checked at import).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UserRole(str, Enum):
    """Roles an actor can hold."""

    ADMIN = "ADMIN"
    USER = "USER"
    GUARD = "GUARD"


class AssetStatus(str, Enum):
    """Physical custody state of an asset.  Written only by the ledger."""

    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    DEPLOYED = "DEPLOYED"


class RequestStatus(str, Enum):
    """Request lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CHECKED_OUT = "CHECKED_OUT"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"


class GateState(str, Enum):
    """Gate verification sub-state of an exit-eligible request."""

    UNVERIFIED = "UNVERIFIED"
    VERIFIED = "VERIFIED"
    ISSUE_REPORTED = "ISSUE_REPORTED"


class Decision(str, Enum):
    """Outcomes an administrator can record on a pending request."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class Severity(str, Enum):
    """Notification severity."""

    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"


# =========================================================================
# Request lifecycle
# =========================================================================


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.APPROVED: frozenset({
        RequestStatus.CHECKED_OUT,
        RequestStatus.RETURNED,
    }),
    RequestStatus.CHECKED_OUT: frozenset({
        RequestStatus.RETURNED,
    }),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.RETURNED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.REJECTED,
    RequestStatus.RETURNED,
    RequestStatus.CANCELLED,
})

OPEN_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset(
    set(RequestStatus) - TERMINAL_REQUEST_STATUSES
)

# Statuses in which the holder may pass the gate and later return assets.
EXIT_ELIGIBLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.CHECKED_OUT,
})


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """True iff ``current -> target`` is an edge of the request lifecycle."""
    return target in REQUEST_TRANSITIONS[current]


# =========================================================================
# Gate verification sub-machine
# =========================================================================


GATE_TRANSITIONS: dict[GateState, frozenset[GateState]] = {
    GateState.UNVERIFIED: frozenset({
        GateState.VERIFIED,
        GateState.ISSUE_REPORTED,
    }),
    GateState.ISSUE_REPORTED: frozenset({
        GateState.UNVERIFIED,
    }),
    GateState.VERIFIED: frozenset(),
}


def gate_path(current: GateState, target: GateState) -> tuple[GateState, ...]:
    """
    Steps needed to reach ``target`` from ``current``.

    A reported issue is retried by passing back through UNVERIFIED, so
    ``ISSUE_REPORTED -> VERIFIED`` yields ``(UNVERIFIED, VERIFIED)``.
    Returns an empty tuple when ``target`` is unreachable.
    """
    if target in GATE_TRANSITIONS[current]:
        return (target,)
    if current is GateState.ISSUE_REPORTED and target is GateState.VERIFIED:
        return (GateState.UNVERIFIED, target)
    return ()


# =========================================================================
# Asset ledger
# =========================================================================


ASSET_TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.AVAILABLE: frozenset({
        AssetStatus.IN_USE,
        AssetStatus.MAINTENANCE,
        AssetStatus.DEPLOYED,
    }),
    AssetStatus.IN_USE: frozenset({AssetStatus.AVAILABLE}),
    AssetStatus.MAINTENANCE: frozenset({AssetStatus.AVAILABLE}),
    AssetStatus.DEPLOYED: frozenset(),
}


# =========================================================================
# Declarative workflow
# =========================================================================


@dataclass(frozen=True)
class Transition:
    """A valid state transition in the request workflow.

    Contract: frozen.  ``roles`` lists the roles allowed to fire it;
    ``owner_only`` further restricts it to the request's requester.
    """
    from_state: RequestStatus
    to_state: RequestStatus
    action: str
    roles: frozenset[UserRole]
    owner_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Guarantees: ``transitions`` reference only statuses present in
    ``REQUEST_TRANSITIONS``.
    """
    name: str
    initial_state: RequestStatus
    transitions: tuple[Transition, ...]

    def transition_for(self, action: str, from_state: RequestStatus) -> Transition | None:
        for transition in self.transitions:
            if transition.action == action and transition.from_state == from_state:
                return transition
        return None

    def sources_for(self, action: str) -> frozenset[RequestStatus]:
        return frozenset(t.from_state for t in self.transitions if t.action == action)

    def roles_for(self, action: str) -> frozenset[UserRole]:
        """Union of roles allowed to fire ``action`` from any state."""
        roles: frozenset[UserRole] = frozenset()
        for transition in self.transitions:
            if transition.action == action:
                roles = roles | transition.roles
        return roles

    def is_owner_only(self, action: str) -> bool:
        return any(t.owner_only for t in self.transitions if t.action == action)


_ANY_ROLE = frozenset(UserRole)

REQUEST_WORKFLOW = Workflow(
    name="asset_custody_request",
    initial_state=RequestStatus.PENDING,
    transitions=(
        Transition(RequestStatus.PENDING, RequestStatus.APPROVED, "approve",
                   frozenset({UserRole.ADMIN})),
        Transition(RequestStatus.PENDING, RequestStatus.REJECTED, "reject",
                   frozenset({UserRole.ADMIN})),
        Transition(RequestStatus.PENDING, RequestStatus.CANCELLED, "cancel",
                   _ANY_ROLE, owner_only=True),
        Transition(RequestStatus.APPROVED, RequestStatus.CHECKED_OUT, "confirm_checkout",
                   frozenset({UserRole.GUARD, UserRole.ADMIN})),
        Transition(RequestStatus.APPROVED, RequestStatus.RETURNED, "return",
                   _ANY_ROLE),
        Transition(RequestStatus.CHECKED_OUT, RequestStatus.RETURNED, "return",
                   _ANY_ROLE),
    ),
)


def _check_exhaustive() -> None:
    for table, enum_type in (
        (REQUEST_TRANSITIONS, RequestStatus),
        (GATE_TRANSITIONS, GateState),
        (ASSET_TRANSITIONS, AssetStatus),
    ):
        missing = set(enum_type) - set(table)
        if missing:
            raise AssertionError(f"{enum_type.__name__} table missing {sorted(missing)}")
    for transition in REQUEST_WORKFLOW.transitions:
        if not can_transition(transition.from_state, transition.to_state):
            raise AssertionError(f"Workflow edge not in lifecycle: {transition}")


_check_exhaustive()
