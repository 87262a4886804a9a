"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, rate limiting, campaign
resolution and delivery so that the core can be reused with different
backends and transports.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from core.campaigns import MessageTemplate
from core.models import (
    CampaignMatch,
    Conversation,
    ConversationStatus,
    DispatchResult,
    MatchType,
    RateDecision,
    UserStats,
)


class ConversationStore(Protocol):
    """Persistence boundary for conversation records.

    Every operation commits before returning; storage errors propagate.
    """

    def create_conversation(
        self,
        user_id: str,
        user_name: str,
        campaign_id: int,
        trigger_message: str,
        matched_keyword: str,
        match_type: MatchType,
    ) -> int:
        ...

    def get_active_conversation(self, user_id: str) -> Optional[Conversation]:
        ...

    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        ...

    def increment_messages_sent(self, conversation_id: int) -> None:
        ...

    def update_status(self, conversation_id: int, status: Union[ConversationStatus, str]) -> None:
        ...

    def complete_conversation(self, conversation_id: int) -> None:
        ...

    def fail_conversation(self, conversation_id: int, reason: Optional[str] = None) -> None:
        ...

    def get_user_stats(self, user_id: str) -> UserStats:
        ...

    def cancel_stale_conversations(self, max_age: timedelta) -> int:
        ...


class RateLimiter(Protocol):
    """Allow/deny decisions per user plus usage recording."""

    async def check(self, user_id: str) -> RateDecision:
        ...

    async def record_usage(self, user_id: str) -> None:
        ...


class CampaignResolver(Protocol):
    def resolve(self, text: str) -> Optional[CampaignMatch]:
        ...

    def templates_for(self, campaign_id: int) -> Sequence[MessageTemplate]:
        ...


class Messenger(Protocol):
    """Outbound transport handle."""

    async def send_text(self, recipient_id: str, text: str) -> None:
        ...


class MessageDispatcher(Protocol):
    """Sends a campaign's templates to one recipient, in order."""

    async def send(
        self,
        recipient_id: str,
        conversation_id: int,
        templates: Sequence[MessageTemplate],
        variables: Mapping[str, Any],
    ) -> DispatchResult:
        ...
