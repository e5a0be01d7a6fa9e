"""Explicit per-user session context."""
import logging
from typing import Optional

from phrasecards.errors import ValidationError

logger = logging.getLogger(__name__)


class SessionContext:
    """The signed-in user a tracker and controller work for.

    A context is opened for exactly one user at a time and closed on sign-out.
    Services hold the context they were constructed with instead of reaching
    for a process-wide current user.
    """

    def __init__(self):
        self._user_id: Optional[str] = None
        self._email: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def email(self) -> Optional[str]:
        return self._email

    @property
    def is_open(self) -> bool:
        return self._user_id is not None

    def open(self, user_id: str, email: Optional[str] = None) -> None:
        """Bind the context to a user."""
        if not user_id:
            raise ValidationError("Cannot open a session without a user id")
        if self.is_open and self._user_id != user_id:
            raise ValidationError(f"Session is already open for user {self._user_id}")
        self._user_id = user_id
        self._email = email
        logger.info("Session opened for user %s", user_id)

    def close(self) -> None:
        """Release the user; further operations are rejected."""
        if self.is_open:
            logger.info("Session closed for user %s", self._user_id)
        self._user_id = None
        self._email = None

    def require_open(self) -> str:
        """Return the user id or raise when no user is bound."""
        if self._user_id is None:
            raise ValidationError("No open session")
        return self._user_id
