"""
Ember — Matching error taxonomy.

Business-rule errors carry a stable ``code`` plus a user-facing ``message``
and optional ``details`` so the API layer can render them without knowing the
individual exception types.  ``InternalError`` wraps persistence failures and
is surfaced generically.
"""

from __future__ import annotations

from typing import Any


class MatchingError(Exception):
    """Base exception for all matching-core errors."""

    code: str = "MATCHING_ERROR"
    default_message: str = "Matching operation failed."

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = {k: str(v) for k, v in self.details.items()}
        return payload


class DuplicateActionError(MatchingError):
    """The sender has already acted on the receiver."""

    code = "DUPLICATE_ACTION"
    default_message = "You have already acted on this user."


class NothingToUndoError(MatchingError):
    code = "NOTHING_TO_UNDO"
    default_message = "No actions to undo."


class UndoWindowExpiredError(MatchingError):
    code = "UNDO_WINDOW_EXPIRED"
    default_message = "The last action is too old to be undone."


class NotFoundError(MatchingError):
    code = "NOT_FOUND"
    default_message = "Resource not found."


class InvalidFilterError(MatchingError):
    code = "INVALID_FILTER"
    default_message = "Discovery filters are invalid."


class InvalidActionError(MatchingError):
    code = "INVALID_ACTION"
    default_message = "This action is not allowed."


class ProfileIncompleteError(MatchingError):
    """The requester cannot use discovery until the profile is complete."""

    code = "PROFILE_INCOMPLETE"
    default_message = "Please complete your profile to use discovery."


class InternalError(MatchingError):
    """A persistence or transaction failure."""

    code = "INTERNAL_ERROR"
    default_message = "An internal error occurred. Please try again."
