"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer, plus the actor checks that every
    role-gated operation starts with.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  CustodyOrchestrator (or the
    test harness) owns commit/rollback.

Failure modes:
    - UserNotFoundError for an unknown actor id.
    - InactiveUserError for a deactivated actor.
    - NotAuthorizedError when the actor's role is not in the allowed set.
"""

from abc import ABC
from collections.abc import Iterable

from sqlalchemy.orm import Session

from custody_kernel.domain.lifecycle import UserRole
from custody_kernel.exceptions import (
    InactiveUserError,
    NotAuthorizedError,
    UserNotFoundError,
)
from custody_kernel.models.user import User


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide list/report queries; those belong in
          ``custody_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _get_user(self, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _require_actor(
        self,
        actor_id: str,
        action: str,
        roles: Iterable[UserRole] | None = None,
    ) -> User:
        """
        Load an active actor, optionally restricted to ``roles``.

        Postconditions: the returned user exists, is active, and holds one
            of ``roles`` when given.
        """
        actor = self._get_user(actor_id)
        if not actor.is_active:
            raise InactiveUserError(actor_id, action)
        if roles is not None:
            allowed = frozenset(roles)
            if UserRole(actor.role) not in allowed:
                raise NotAuthorizedError(
                    actor_id,
                    action,
                    f"requires {'/'.join(sorted(r.value for r in allowed))}",
                )
        return actor
