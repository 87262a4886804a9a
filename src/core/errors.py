"""Domain errors raised by the core and its adapters."""

from __future__ import annotations


class InvalidStatusError(ValueError):
    """Raised when a conversation status is not one of the recognized values."""

    def __init__(self, status: object) -> None:
        super().__init__(f"Invalid conversation status: {status!r}")
        self.status = status


class ActiveConversationExistsError(Exception):
    """Raised by a store enforcing one active conversation per user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} already has an active conversation")
        self.user_id = user_id


class SessionStateError(RuntimeError):
    """Raised on an illegal transport session transition."""
