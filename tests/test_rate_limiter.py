from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from adapters.sqlite_rate_limiter import (
    BLOCKED_PERMANENT,
    BLOCKED_TEMPORARY,
    RATE_LIMIT_DAY,
    RATE_LIMIT_HOUR,
    AllowAllRateLimiter,
    SQLiteRateLimiter,
)
from core.config import RateLimitConfig
from core.replies import rate_limit_message


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _limiter(tmp_path, clock: FakeClock, per_hour: int = 2, per_day: int = 3) -> SQLiteRateLimiter:
    limiter = SQLiteRateLimiter(
        str(tmp_path / "limits.db"),
        RateLimitConfig(max_per_hour=per_hour, max_per_day=per_day),
        clock=clock,
    )
    limiter.init_db()
    return limiter


def test_allows_until_hourly_limit(tmp_path) -> None:
    clock = FakeClock()
    limiter = _limiter(tmp_path, clock)

    assert asyncio.run(limiter.check("u1")).allowed
    asyncio.run(limiter.record_usage("u1"))
    assert asyncio.run(limiter.check("u1")).allowed
    asyncio.run(limiter.record_usage("u1"))

    decision = asyncio.run(limiter.check("u1"))
    assert not decision.allowed
    assert decision.reason == RATE_LIMIT_HOUR
    assert asyncio.run(limiter.check("u2")).allowed


def test_daily_limit_after_hour_window_slides(tmp_path) -> None:
    clock = FakeClock()
    limiter = _limiter(tmp_path, clock)

    limiter.record_usage_sync("u1")
    limiter.record_usage_sync("u1")
    clock.now += timedelta(hours=2)
    assert limiter.check_sync("u1").allowed
    limiter.record_usage_sync("u1")

    decision = limiter.check_sync("u1")
    assert not decision.allowed
    assert decision.reason == RATE_LIMIT_DAY

    clock.now += timedelta(days=1, hours=1)
    assert limiter.check_sync("u1").allowed


def test_blocks_take_precedence(tmp_path) -> None:
    clock = FakeClock()
    limiter = _limiter(tmp_path, clock)

    limiter.block("u1")
    assert limiter.check_sync("u1").reason == BLOCKED_PERMANENT

    limiter.block("u1", until=clock.now + timedelta(minutes=10), reason="spam")
    assert limiter.check_sync("u1").reason == BLOCKED_TEMPORARY

    clock.now += timedelta(minutes=11)
    assert limiter.check_sync("u1").allowed

    limiter.block("u1")
    limiter.unblock("u1")
    assert limiter.check_sync("u1").allowed


def test_cleanup_usage_removes_old_rows(tmp_path) -> None:
    clock = FakeClock()
    limiter = _limiter(tmp_path, clock)
    limiter.record_usage_sync("u1")
    clock.now += timedelta(days=3)
    limiter.record_usage_sync("u1")

    assert limiter.cleanup_usage() == 1


def test_allow_all_limiter() -> None:
    limiter = AllowAllRateLimiter()
    assert asyncio.run(limiter.check("u1")).allowed
    assert asyncio.run(limiter.record_usage("u1")) is None


def test_every_deny_reason_has_a_reply() -> None:
    for reason in (RATE_LIMIT_HOUR, RATE_LIMIT_DAY, BLOCKED_TEMPORARY, BLOCKED_PERMANENT):
        assert rate_limit_message(reason)
    assert rate_limit_message("SOMETHING_ELSE") is None
    assert rate_limit_message(None) is None
