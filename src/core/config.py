"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting settings for the SQLite rate limiter."""

    enabled: bool = True
    max_per_hour: int = 3
    max_per_day: int = 10
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class DispatchConfig:
    """Sequential dispatch settings.

    - send_timeout_seconds bounds every single transport call
    - timeout_seconds bounds the whole sequence for one conversation
    - partial_policy is "lenient" or "strict"
    """

    send_timeout_seconds: float = 30.0
    timeout_seconds: Optional[float] = 300.0
    default_delay_seconds: float = 1.5
    partial_policy: str = "lenient"


@dataclass(frozen=True)
class ConversationConfig:
    enforce_single_active: bool = False
    stale_after_minutes: int = 0
    workers: int = 4
    queue_size: int = 100


@dataclass(frozen=True)
class ReconnectConfig:
    max_attempts: int = 5
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 60.0
