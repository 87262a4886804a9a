"""Sequential campaign message dispatcher.

Sends a campaign's templates one at a time, in order, through a Messenger
and records each successful send on the conversation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from core.campaigns import MessageTemplate
from core.models import DispatchResult
from core.ports import ConversationStore, Messenger

LOGGER = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class SequentialDispatcher:
    """MessageDispatcher adapter that never reorders and never aborts on a failed send.

    Storage errors while recording a send propagate to the caller.
    """

    def __init__(
        self,
        messenger: Messenger,
        store: ConversationStore,
        send_timeout: Optional[float] = 30.0,
        default_delay: float = 0.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._messenger = messenger
        self._store = store
        self._send_timeout = send_timeout
        self._default_delay = default_delay
        self._sleep = sleep

    async def send(
        self,
        recipient_id: str,
        conversation_id: int,
        templates: Sequence[MessageTemplate],
        variables: Mapping[str, Any],
    ) -> DispatchResult:
        sent = 0
        failed = 0
        total = len(templates)

        for position, template in enumerate(templates, start=1):
            if position > 1:
                delay = template.delay_seconds
                if delay is None:
                    delay = self._default_delay
                if delay > 0:
                    await self._sleep(delay)

            text = template.render(variables)
            try:
                await asyncio.wait_for(
                    self._messenger.send_text(recipient_id, text), timeout=self._send_timeout
                )
            except asyncio.TimeoutError:
                failed += 1
                LOGGER.error(
                    "Message %s/%s to %s timed out (conversation %s)",
                    position,
                    total,
                    recipient_id,
                    conversation_id,
                )
                continue
            except Exception:
                failed += 1
                LOGGER.exception(
                    "Message %s/%s to %s failed (conversation %s)",
                    position,
                    total,
                    recipient_id,
                    conversation_id,
                )
                continue

            sent += 1
            LOGGER.info("Message %s/%s sent to %s", position, total, recipient_id)
            self._store.increment_messages_sent(conversation_id)

        return DispatchResult(sent=sent, failed=failed, total=total)
