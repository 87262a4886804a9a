"""SQLite storage adapter.

Implements the core ConversationStore port using a simple SQLite database.
Each method opens its own connection and commits before returning.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, Union

from core.campaigns import Campaign
from core.errors import ActiveConversationExistsError, InvalidStatusError
from core.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Conversation,
    ConversationStatus,
    MatchType,
    UserStats,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_TERMINAL_SQL = ", ".join(f"'{status.value}'" for status in sorted(TERMINAL_STATUSES))
_ACTIVE_SQL = ", ".join(f"'{status.value}'" for status in sorted(ACTIVE_STATUSES))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_status(status: Union[ConversationStatus, str]) -> ConversationStatus:
    try:
        return ConversationStatus(status)
    except (ValueError, TypeError):
        raise InvalidStatusError(status) from None


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the ConversationStore contract."""

    def __init__(
        self,
        db_path: str,
        enforce_single_active: bool = False,
        clock: Clock = _utc_now,
    ) -> None:
        self._db_path = db_path
        self._enforce_single_active = enforce_single_active
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _now(self) -> str:
        return self._clock().isoformat(timespec="microseconds")

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - campaigns: id/name of every configured campaign, for joins
        - conversations: one row per campaign interaction with one user
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS campaigns (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL
                )
                """
            )
            # conversations is never pruned; terminal rows are the audit trail.
            # Fields:
            # - status: INITIATED, IN_PROGRESS, COMPLETED, FAILED, CANCELLED
            # - ended_at: set only while status is terminal
            # - metadata: JSON object, failure_reason lives here
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    user_name TEXT,
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    trigger_message TEXT NOT NULL,
                    matched_keyword TEXT,
                    match_type TEXT,
                    status TEXT NOT NULL DEFAULT 'INITIATED',
                    messages_sent INTEGER NOT NULL DEFAULT 0,
                    started_at TIMESTAMP NOT NULL,
                    ended_at TIMESTAMP,
                    last_message_sent_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    metadata TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_conversations_user_status
                ON conversations (user_id, status, started_at)
                """
            )
            if self._enforce_single_active:
                conn.execute(
                    f"""
                    CREATE UNIQUE INDEX IF NOT EXISTS uq_conversations_active_user
                    ON conversations (user_id)
                    WHERE status IN ({_ACTIVE_SQL})
                    """
                )

    def sync_campaigns(self, campaigns: Iterable[Campaign]) -> None:
        """Upsert campaign names so conversations can join on them."""

        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO campaigns (id, name) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name
                """,
                [(campaign.id, campaign.name) for campaign in campaigns],
            )

    def create_conversation(
        self,
        user_id: str,
        user_name: str,
        campaign_id: int,
        trigger_message: str,
        matched_keyword: str,
        match_type: MatchType,
    ) -> int:
        """Insert a new INITIATED conversation and return its id."""

        now = self._now()
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO conversations (
                        user_id,
                        user_name,
                        campaign_id,
                        trigger_message,
                        matched_keyword,
                        match_type,
                        status,
                        started_at,
                        updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        user_name,
                        campaign_id,
                        trigger_message,
                        matched_keyword,
                        MatchType(match_type).value,
                        ConversationStatus.INITIATED.value,
                        now,
                        now,
                    ),
                )
                conversation_id = int(cur.lastrowid)
        except sqlite3.IntegrityError:
            if self._enforce_single_active:
                raise ActiveConversationExistsError(user_id) from None
            raise
        LOGGER.info(
            "Conversation %s created for %s (campaign %s)", conversation_id, user_id, campaign_id
        )
        return conversation_id

    def get_active_conversation(self, user_id: str) -> Optional[Conversation]:
        """Return the most recent INITIATED/IN_PROGRESS conversation of a user."""

        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT conv.*, NULL AS campaign_name
                FROM conversations conv
                WHERE conv.user_id = ? AND conv.status IN ({_ACTIVE_SQL})
                ORDER BY conv.started_at DESC, conv.id DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        """Return a conversation joined with its campaign name."""

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT conv.*, camp.name AS campaign_name
                FROM conversations conv
                LEFT JOIN campaigns camp ON camp.id = conv.campaign_id
                WHERE conv.id = ?
                """,
                (conversation_id,),
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    def increment_messages_sent(self, conversation_id: int) -> None:
        """Atomically bump the sent counter and move to IN_PROGRESS unless terminal."""

        now = self._now()
        with self._connect() as conn:
            conn.execute(
                f"""
                UPDATE conversations
                SET messages_sent = messages_sent + 1,
                    last_message_sent_at = ?,
                    status = CASE
                        WHEN status IN ({_TERMINAL_SQL}) THEN status
                        ELSE 'IN_PROGRESS'
                    END,
                    updated_at = ?
                WHERE id = ?
                """,
                (now, now, conversation_id),
            )
        LOGGER.debug("Messages sent counter incremented for conversation %s", conversation_id)

    def update_status(self, conversation_id: int, status: Union[ConversationStatus, str]) -> None:
        """Set a status, stamping ended_at on terminal ones and clearing it otherwise."""

        target = _coerce_status(status)
        now = self._now()
        ended_at = now if target.is_terminal else None
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE conversations
                SET status = ?, ended_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (target.value, ended_at, now, conversation_id),
            )
        LOGGER.info("Conversation %s status -> %s", conversation_id, target.value)

    def complete_conversation(self, conversation_id: int) -> None:
        self.update_status(conversation_id, ConversationStatus.COMPLETED)

    def fail_conversation(self, conversation_id: int, reason: Optional[str] = None) -> None:
        """Mark FAILED and merge failure_reason into the metadata JSON."""

        now = self._now()
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE conversations
                SET status = 'FAILED',
                    ended_at = ?,
                    updated_at = ?,
                    metadata = json_set(COALESCE(metadata, '{}'), '$.failure_reason', ?)
                WHERE id = ?
                """,
                (now, now, reason, conversation_id),
            )
        LOGGER.error("Conversation %s failed: %s", conversation_id, reason)

    def get_user_stats(self, user_id: str) -> UserStats:
        """Aggregate conversation counts for a user."""

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_conversations,
                    COALESCE(SUM(CASE WHEN status = 'COMPLETED' THEN 1 ELSE 0 END), 0) AS completed,
                    COALESCE(SUM(CASE WHEN status = 'FAILED' THEN 1 ELSE 0 END), 0) AS failed,
                    MAX(started_at) AS last_started_at
                FROM conversations
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        return UserStats(
            total_conversations=int(row["total_conversations"]),
            completed=int(row["completed"]),
            failed=int(row["failed"]),
            last_started_at=row["last_started_at"],
        )

    def cancel_stale_conversations(self, max_age: timedelta) -> int:
        """Cancel active conversations untouched for longer than max_age."""

        now = self._clock()
        cutoff = (now - max_age).isoformat(timespec="microseconds")
        stamp = now.isoformat(timespec="microseconds")
        with self._connect() as conn:
            cur = conn.execute(
                f"""
                UPDATE conversations
                SET status = 'CANCELLED', ended_at = ?, updated_at = ?
                WHERE status IN ({_ACTIVE_SQL}) AND COALESCE(updated_at, started_at) < ?
                """,
                (stamp, stamp, cutoff),
            )
            return cur.rowcount

    def list_conversations(self, limit: int = 500) -> list[Conversation]:
        """Return the newest conversations first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT conv.*, camp.name AS campaign_name
                FROM conversations conv
                LEFT JOIN campaigns camp ON camp.id = conv.campaign_id
                ORDER BY conv.started_at DESC, conv.id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._row_to_conversation(row) for row in rows]

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        metadata: dict[str, Any] = {}
        if row["metadata"]:
            try:
                loaded = json.loads(row["metadata"])
            except ValueError:
                loaded = {}
            if isinstance(loaded, dict):
                metadata = loaded
        return Conversation(
            id=int(row["id"]),
            user_id=row["user_id"],
            user_name=row["user_name"] or "",
            campaign_id=int(row["campaign_id"]),
            trigger_message=row["trigger_message"],
            matched_keyword=row["matched_keyword"] or "",
            match_type=MatchType(row["match_type"]),
            status=ConversationStatus(row["status"]),
            messages_sent=int(row["messages_sent"]),
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            last_message_sent_at=row["last_message_sent_at"],
            updated_at=row["updated_at"],
            metadata=metadata,
            campaign_name=row["campaign_name"],
        )
