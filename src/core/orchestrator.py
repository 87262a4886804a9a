"""Core conversation orchestration pipeline.

This module is integration-agnostic. It only relies on ports for storage,
rate limiting, campaign resolution and delivery, so a different transport
can feed it without changes here.

The pipeline enforces a strict order per inbound event:
1) Drop events from the bot itself or from group chats
2) Drop blank text
3) Skip users that already have an active conversation
4) Rate limit check (optional reply on deny)
5) Campaign match
6) Record rate limit usage
7) Create the conversation
8) Load templates, failing the conversation when there are none
9) Sequential dispatch
10) Reconcile the dispatch outcome into the conversation status
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from core.errors import ActiveConversationExistsError
from core.models import ConversationStatus, DispatchResult, InboundEvent
from core.ports import CampaignResolver, ConversationStore, MessageDispatcher, Messenger, RateLimiter
from core.replies import rate_limit_message

LOGGER = logging.getLogger(__name__)

NO_MESSAGES_REASON = "Sin mensajes configurados"
ALL_FAILED_REASON = "Todos los mensajes fallaron"
PARTIAL_REASON = "Envío parcial"
DISPATCH_TIMEOUT_REASON = "Tiempo de envío agotado"


@dataclass(frozen=True)
class ReconcileOutcome:
    """Terminal status chosen for a conversation after dispatch."""

    status: ConversationStatus
    reason: Optional[str] = None


ReconcilePolicy = Callable[[DispatchResult], ReconcileOutcome]


def reconcile_lenient(result: DispatchResult) -> ReconcileOutcome:
    """Default policy: a partially delivered conversation still completes."""

    if result.sent == result.total:
        return ReconcileOutcome(ConversationStatus.COMPLETED)
    if result.failed == result.total:
        return ReconcileOutcome(ConversationStatus.FAILED, ALL_FAILED_REASON)
    return ReconcileOutcome(ConversationStatus.COMPLETED)


def reconcile_strict(result: DispatchResult) -> ReconcileOutcome:
    """Any failed message fails the conversation."""

    if result.sent == result.total:
        return ReconcileOutcome(ConversationStatus.COMPLETED)
    if result.failed == result.total:
        return ReconcileOutcome(ConversationStatus.FAILED, ALL_FAILED_REASON)
    return ReconcileOutcome(ConversationStatus.FAILED, PARTIAL_REASON)


RECONCILE_POLICIES: dict[str, ReconcilePolicy] = {
    "lenient": reconcile_lenient,
    "strict": reconcile_strict,
}


class ConversationOrchestrator:
    """Turns one inbound message into at most one resolved conversation."""

    def __init__(
        self,
        store: ConversationStore,
        rate_limiter: RateLimiter,
        campaigns: CampaignResolver,
        dispatcher: MessageDispatcher,
        messenger: Optional[Messenger] = None,
        reconcile: ReconcilePolicy = reconcile_lenient,
        rate_limit_timeout: Optional[float] = 5.0,
        dispatch_timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._campaigns = campaigns
        self._dispatcher = dispatcher
        self._messenger = messenger
        self._reconcile = reconcile
        self._rate_limit_timeout = rate_limit_timeout
        self._dispatch_timeout = dispatch_timeout

    async def handle(self, event: InboundEvent) -> Optional[int]:
        """Process one inbound event.

        Returns the id of the conversation created for it, if any. Errors are
        logged and swallowed so one bad event never stops the consumer loop.
        """

        try:
            return await self._process(event)
        except Exception:
            LOGGER.exception("Error while processing message from %s", event.sender_id)
            return None

    async def _process(self, event: InboundEvent) -> Optional[int]:
        if event.is_from_bot or event.is_group_origin:
            return None

        text = event.text or ""
        if not text.strip():
            return None

        user_id = event.sender_id
        LOGGER.info("Message received from %s (%s): %r", user_id, event.sender_display_name, text)

        active = self._store.get_active_conversation(user_id)
        if active is not None:
            LOGGER.info("User %s has active conversation %s, ignoring message", user_id, active.id)
            return None

        try:
            decision = await asyncio.wait_for(
                self._rate_limiter.check(user_id), timeout=self._rate_limit_timeout
            )
        except asyncio.TimeoutError:
            LOGGER.error("Rate limit check timed out for %s, dropping message", user_id)
            return None
        if not decision.allowed:
            LOGGER.warning("Rate limit exceeded for %s: %s", user_id, decision.reason)
            await self._reply_rate_limited(user_id, decision.reason)
            return None

        match = self._campaigns.resolve(text)
        if match is None:
            LOGGER.info("No campaign matched message from %s", user_id)
            return None
        LOGGER.info(
            "Campaign %r (%s) matched for %s via %s %r",
            match.campaign_name,
            match.campaign_id,
            user_id,
            match.match_type.value,
            match.matched_keyword,
        )

        await asyncio.wait_for(
            self._rate_limiter.record_usage(user_id), timeout=self._rate_limit_timeout
        )

        try:
            conversation_id = self._store.create_conversation(
                user_id=user_id,
                user_name=event.sender_display_name,
                campaign_id=match.campaign_id,
                trigger_message=text,
                matched_keyword=match.matched_keyword,
                match_type=match.match_type,
            )
        except ActiveConversationExistsError:
            LOGGER.info("Concurrent conversation already active for %s, ignoring message", user_id)
            return None
        LOGGER.info("Conversation %s created for %s", conversation_id, user_id)

        templates = list(self._campaigns.templates_for(match.campaign_id))
        if not templates:
            LOGGER.warning("Campaign %s has no messages configured", match.campaign_id)
            self._store.fail_conversation(conversation_id, NO_MESSAGES_REASON)
            return conversation_id

        variables = {
            "name": event.sender_display_name,
            "user_id": user_id,
            "campaign": match.campaign_name,
            # Spanish aliases used by existing campaign templates.
            "nombre": event.sender_display_name,
            "telefono": user_id,
        }
        LOGGER.info("Sending %s messages to %s", len(templates), user_id)
        try:
            result = await asyncio.wait_for(
                self._dispatcher.send(user_id, conversation_id, templates, variables),
                timeout=self._dispatch_timeout,
            )
        except asyncio.TimeoutError:
            self._apply_timeout(conversation_id, len(templates))
            return conversation_id

        self._apply(conversation_id, result)
        return conversation_id

    def _apply_timeout(self, conversation_id: int, total: int) -> None:
        """Reconcile a timed out dispatch from the sends recorded so far.

        Unsent messages count as failed; with nothing sent the conversation
        fails with the timeout reason.
        """

        conversation = self._store.get_conversation(conversation_id)
        sent = conversation.messages_sent if conversation is not None else 0
        LOGGER.error(
            "Dispatch timed out for conversation %s: %s/%s sent", conversation_id, sent, total
        )
        if sent == 0:
            self._store.fail_conversation(conversation_id, DISPATCH_TIMEOUT_REASON)
            return
        self._apply(conversation_id, DispatchResult(sent=sent, failed=total - sent, total=total))

    def _apply(self, conversation_id: int, result: DispatchResult) -> None:
        outcome = self._reconcile(result)
        if outcome.status is ConversationStatus.COMPLETED:
            self._store.complete_conversation(conversation_id)
        elif outcome.status is ConversationStatus.FAILED:
            self._store.fail_conversation(conversation_id, outcome.reason)
        else:
            self._store.update_status(conversation_id, outcome.status)

        if result.sent == result.total:
            LOGGER.info(
                "Conversation %s completed: %s/%s sent", conversation_id, result.sent, result.total
            )
        else:
            LOGGER.warning(
                "Conversation %s ended %s: %s/%s sent, %s failed",
                conversation_id,
                outcome.status.value,
                result.sent,
                result.total,
                result.failed,
            )

    async def _reply_rate_limited(self, user_id: str, reason: Optional[str]) -> None:
        reply = rate_limit_message(reason)
        if reply is None or self._messenger is None:
            return
        try:
            await self._messenger.send_text(user_id, reply)
        except Exception:
            LOGGER.exception("Failed to send rate limit reply to %s", user_id)
