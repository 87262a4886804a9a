"""Telegram session adapter.

Owns one Telethon client and drives it through the explicit session
lifecycle: connect, authorize (possibly via QR), run, reconnect, destroy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.lifecycle import ConnectionSupervisor, SessionLifecycle, SessionState
from get_session import QrCallback, authorize

LOGGER = logging.getLogger(__name__)

Authorizer = Callable[..., Awaitable[None]]


class TelegramSession:
    """Explicitly owned transport handle for the whole process."""

    def __init__(
        self,
        client,
        supervisor: Optional[ConnectionSupervisor] = None,
        authorizer: Authorizer = authorize,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._supervisor = supervisor or ConnectionSupervisor()
        self._authorizer = authorizer
        self._sleep = sleep
        self.lifecycle = SessionLifecycle()

    @property
    def client(self):
        return self._client

    @property
    def state(self) -> SessionState:
        return self.lifecycle.state

    def _on_qr(self, url: str) -> None:
        self.lifecycle.qr_pending(url)
        LOGGER.info("QR code generated, waiting for scan")

    async def start(self, on_qr: Optional[QrCallback] = None) -> None:
        """Connect and authorize; the session is READY when this returns."""

        self.lifecycle.transition(SessionState.INITIALIZING)

        def _qr(url: str) -> None:
            self._on_qr(url)
            if on_qr is not None:
                on_qr(url)

        try:
            await self._client.connect()
            await self._authorizer(self._client, on_qr=_qr)
            if not await self._client.is_user_authorized():
                raise RuntimeError("Telegram authorization did not complete")
        except BaseException:
            await self.destroy()
            raise

        self.lifecycle.transition(SessionState.READY)
        self._supervisor.reset()
        me = await self._client.get_me()
        LOGGER.info("Client connected as %s", getattr(me, "username", None) or getattr(me, "id", "?"))

    async def run(self) -> None:
        """Run until destroyed, reconnecting under the supervisor's budget."""

        while True:
            await self._client.run_until_disconnected()
            if self.lifecycle.state is SessionState.DESTROYED:
                return
            LOGGER.warning("Client disconnected, reconnecting")
            self.lifecycle.transition(SessionState.INITIALIZING)
            await self._reconnect()

    async def _reconnect(self) -> None:
        while True:
            if self._supervisor.exhausted:
                LOGGER.error("Giving up after %s reconnect attempts", self._supervisor.attempts)
                await self.destroy()
                raise ConnectionError("Telegram reconnect attempts exhausted")
            self._supervisor.record_failure()
            delay = self._supervisor.next_delay()
            LOGGER.info("Reconnect attempt %s in %.1fs", self._supervisor.attempts, delay)
            await self._sleep(delay)
            try:
                await self._client.connect()
            except OSError as exc:
                LOGGER.warning("Reconnect attempt %s failed: %s", self._supervisor.attempts, exc)
                continue
            self.lifecycle.transition(SessionState.READY)
            self._supervisor.reset()
            return

    async def destroy(self) -> None:
        if self.lifecycle.state is SessionState.DESTROYED:
            return
        self.lifecycle.transition(SessionState.DESTROYED)
        try:
            await self._client.disconnect()
        except Exception:
            LOGGER.exception("Error while disconnecting client")
        LOGGER.info("Session destroyed")
