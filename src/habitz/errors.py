"""Domain error hierarchy.

Every error carries a developer-facing ``message`` and a ``user_message``
safe to show in the app. Only a duplicate check-in gets a specific user
message; everything else degrades to the generic retry prompt.
"""

from __future__ import annotations

from typing import Any

GENERIC_USER_MESSAGE = "Something went wrong. Please try again."
DUPLICATE_CHECK_IN_MESSAGE = "You have already checked in today."


class HabitzError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or GENERIC_USER_MESSAGE
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {"detail": self.user_message, "error": self.__class__.__name__}


class ValidationError(HabitzError):
    """Malformed input: missing activity type, bad date range, bad bet."""

    status_code = 400


class DuplicateCheckInError(HabitzError):
    """A check-in of this type already exists for the user today."""

    status_code = 409

    def __init__(self, user_id: str, checkin_type: str) -> None:
        super().__init__(
            f"User {user_id} already has a {checkin_type} check-in today",
            user_message=DUPLICATE_CHECK_IN_MESSAGE,
            context={"user_id": user_id, "type": checkin_type},
        )


class NotFoundError(HabitzError):
    """Referenced entity absent."""

    status_code = 404


class PermissionDeniedError(HabitzError):
    """The caller is not allowed to act on this entity."""

    status_code = 403


class ConflictError(HabitzError):
    """A concurrent state transition lost the race."""

    status_code = 409


class ExternalServiceError(HabitzError):
    """Store or network failure. Safe to retry."""

    status_code = 503
    retryable = True

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context={"operation": operation})
        self.operation = operation
        self.cause = cause
