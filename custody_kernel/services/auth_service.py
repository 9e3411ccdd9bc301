"""
AuthService -- resolves a login to an active user.

Identity is established outside the kernel; there are no passwords here.
"""

from sqlalchemy import select

from custody_kernel.domain.dtos import UserRecord
from custody_kernel.exceptions import InactiveUserError, UserNotFoundError
from custody_kernel.logging_config import get_logger
from custody_kernel.models.user import User
from custody_kernel.services.base import BaseService

logger = get_logger("services.auth")


class AuthService(BaseService):

    def login(self, email: str) -> UserRecord:
        """
        Raises:
            UserNotFoundError: No user has this email (case-insensitive).
            InactiveUserError: The account is deactivated.
        """
        normalized = (email or "").strip().lower()
        user = self.session.execute(
            select(User).where(User.email_normalized == normalized)
        ).scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(email)
        if not user.is_active:
            logger.warning("login_refused_inactive", extra={"user_id": user.id})
            raise InactiveUserError(user.id, "login")
        logger.info("login_succeeded", extra={"user_id": user.id})
        return user.to_dto()
