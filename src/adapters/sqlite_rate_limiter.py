"""SQLite rate limiter adapter.

Sliding hour/day windows over an append-only usage log, plus a block list.
Blocking calls run on a worker thread so callers can bound them with a
timeout.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.config import RateLimitConfig
from core.models import RateDecision

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_HOUR = "RATE_LIMIT_HOUR"
RATE_LIMIT_DAY = "RATE_LIMIT_DAY"
BLOCKED_TEMPORARY = "BLOCKED_TEMPORARY"
BLOCKED_PERMANENT = "BLOCKED_PERMANENT"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteRateLimiter:
    """Thin SQLite wrapper that satisfies the RateLimiter contract."""

    def __init__(
        self,
        db_path: str,
        config: RateLimitConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._db_path = db_path
        self._config = config
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _stamp(self, value: datetime) -> str:
        return value.isoformat(timespec="microseconds")

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - rate_limit_usage: one row per campaign match consumed by a user
        - rate_limit_blocks: users denied outright, permanently or until a time
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rate_limit_usage (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    used_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_rate_limit_usage_user
                ON rate_limit_usage (user_id, used_at)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rate_limit_blocks (
                    user_id TEXT PRIMARY KEY,
                    permanent INTEGER NOT NULL DEFAULT 0,
                    blocked_until TIMESTAMP,
                    reason TEXT
                )
                """
            )

    async def check(self, user_id: str) -> RateDecision:
        return await asyncio.to_thread(self.check_sync, user_id)

    async def record_usage(self, user_id: str) -> None:
        await asyncio.to_thread(self.record_usage_sync, user_id)

    def check_sync(self, user_id: str) -> RateDecision:
        """Evaluate blocks first, then the hourly and daily windows."""

        now = self._clock()
        with self._connect() as conn:
            block = conn.execute(
                "SELECT permanent, blocked_until FROM rate_limit_blocks WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            if block is not None:
                if block["permanent"]:
                    return RateDecision(False, BLOCKED_PERMANENT)
                if block["blocked_until"] and block["blocked_until"] > self._stamp(now):
                    return RateDecision(False, BLOCKED_TEMPORARY)

            row = conn.execute(
                """
                SELECT
                    COALESCE(SUM(CASE WHEN used_at > ? THEN 1 ELSE 0 END), 0) AS last_hour,
                    COUNT(*) AS last_day
                FROM rate_limit_usage
                WHERE user_id = ? AND used_at > ?
                """,
                (
                    self._stamp(now - timedelta(hours=1)),
                    user_id,
                    self._stamp(now - timedelta(days=1)),
                ),
            ).fetchone()

        if int(row["last_hour"]) >= self._config.max_per_hour:
            return RateDecision(False, RATE_LIMIT_HOUR)
        if int(row["last_day"]) >= self._config.max_per_day:
            return RateDecision(False, RATE_LIMIT_DAY)
        return RateDecision(True)

    def record_usage_sync(self, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO rate_limit_usage (user_id, used_at) VALUES (?, ?)",
                (user_id, self._stamp(self._clock())),
            )

    def block(self, user_id: str, until: Optional[datetime] = None, reason: Optional[str] = None) -> None:
        """Block a user; without ``until`` the block is permanent."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO rate_limit_blocks (user_id, permanent, blocked_until, reason)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    permanent = excluded.permanent,
                    blocked_until = excluded.blocked_until,
                    reason = excluded.reason
                """,
                (user_id, 1 if until is None else 0, self._stamp(until) if until else None, reason),
            )
        LOGGER.info("Blocked %s until %s", user_id, until or "forever")

    def unblock(self, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM rate_limit_blocks WHERE user_id = ?", (user_id,))

    def cleanup_usage(self, older_than: timedelta = timedelta(days=2)) -> int:
        """Delete usage rows outside every window and return the number removed."""

        cutoff = self._stamp(self._clock() - older_than)
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM rate_limit_usage WHERE used_at < ?", (cutoff,))
            return cur.rowcount


class AllowAllRateLimiter:
    """Rate limiter used when rate limiting is disabled."""

    async def check(self, user_id: str) -> RateDecision:
        return RateDecision(True)

    async def record_usage(self, user_id: str) -> None:
        return None
