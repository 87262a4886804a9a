"""Transport session lifecycle and reconnection bookkeeping.

Both values are owned by whoever runs the transport and passed explicitly;
nothing here is module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.errors import SessionStateError

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    QR_PENDING = "QR_PENDING"
    READY = "READY"
    DESTROYED = "DESTROYED"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.UNINITIALIZED: frozenset({SessionState.INITIALIZING, SessionState.DESTROYED}),
    SessionState.INITIALIZING: frozenset(
        {SessionState.QR_PENDING, SessionState.READY, SessionState.DESTROYED}
    ),
    SessionState.QR_PENDING: frozenset(
        {SessionState.QR_PENDING, SessionState.READY, SessionState.DESTROYED}
    ),
    # READY -> INITIALIZING covers a reconnect after the transport dropped.
    SessionState.READY: frozenset({SessionState.INITIALIZING, SessionState.DESTROYED}),
    SessionState.DESTROYED: frozenset(),
}


class SessionLifecycle:
    """Explicit state machine for a transport session."""

    def __init__(self) -> None:
        self._state = SessionState.UNINITIALIZED
        self.qr_url: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    def transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise SessionStateError(f"Cannot move session from {self._state.value} to {target.value}")
        LOGGER.debug("Session %s -> %s", self._state.value, target.value)
        self._state = target
        if target is not SessionState.QR_PENDING:
            self.qr_url = None

    def qr_pending(self, url: str) -> None:
        self.transition(SessionState.QR_PENDING)
        self.qr_url = url


@dataclass
class ConnectionSupervisor:
    """Reconnect attempt counter with capped exponential backoff."""

    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 60.0
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def record_failure(self) -> None:
        self.attempts += 1

    def next_delay(self) -> float:
        if self.attempts <= 0:
            return 0.0
        return min(self.base_delay * (2 ** (self.attempts - 1)), self.max_delay)

    def reset(self) -> None:
        self.attempts = 0
