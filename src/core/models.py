"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ConversationStatus(str, Enum):
    """Lifecycle status of a conversation."""

    INITIATED = "INITIATED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ConversationStatus.COMPLETED, ConversationStatus.FAILED, ConversationStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset({ConversationStatus.INITIATED, ConversationStatus.IN_PROGRESS})


class MatchType(str, Enum):
    """How an inbound message matched a campaign, in descending priority."""

    EXACT = "EXACT"
    KEYWORD = "KEYWORD"
    SYNONYM = "SYNONYM"


@dataclass(frozen=True)
class InboundEvent:
    """Minimal inbound message used by the orchestration pipeline."""

    is_from_bot: bool
    is_group_origin: bool
    sender_id: str
    text: str
    sender_display_name: str


@dataclass(frozen=True)
class KeywordMatch:
    matched: str
    match_type: MatchType


@dataclass(frozen=True)
class CampaignMatch:
    """Best campaign for a message, as returned by the campaign resolver."""

    campaign_id: int
    campaign_name: str
    matched_keyword: str
    match_type: MatchType


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class DispatchResult:
    """Aggregate outcome of one sequential dispatch."""

    sent: int
    failed: int
    total: int


@dataclass(frozen=True)
class Conversation:
    """Persisted conversation record."""

    id: int
    user_id: str
    user_name: str
    campaign_id: int
    trigger_message: str
    matched_keyword: str
    match_type: MatchType
    status: ConversationStatus
    messages_sent: int
    started_at: str
    ended_at: Optional[str]
    last_message_sent_at: Optional[str]
    updated_at: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    campaign_name: Optional[str] = None


@dataclass(frozen=True)
class UserStats:
    total_conversations: int
    completed: int
    failed: int
    last_started_at: Optional[str]
