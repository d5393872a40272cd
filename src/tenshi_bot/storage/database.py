"""SQLite storage for usage counters, auth tokens and channel flags."""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Generator, Protocol

from tenshi_bot.errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthToken:
    """A user's linked-account credential."""

    user_id: str
    token: str
    app_id: str
    issued_at: datetime
    last_used_at: datetime | None = None


@dataclass(frozen=True)
class UsageRecord:
    """Anonymous usage counter for a user."""

    user_id: str
    message_count: int
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None


class Persistence(Protocol):
    """Storage operations the message pipeline depends on."""

    async def get_usage_count(self, user_id: str) -> int: ...

    async def increment_usage_count(self, user_id: str) -> int: ...

    async def reset_usage_count(self, user_id: str) -> None: ...

    async def get_auth_token(self, user_id: str) -> AuthToken | None: ...

    async def store_auth_token(self, user_id: str, token: str, app_id: str) -> None: ...

    async def revoke_auth_token(self, user_id: str) -> bool: ...

    async def touch_auth_token_last_used(self, user_id: str) -> None: ...

    async def is_user_blacklisted(self, user_id: str) -> bool: ...

    async def is_channel_blacklisted(self, channel_id: str) -> bool: ...

    async def is_channel_active(self, channel_id: str) -> bool: ...


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class BotDatabase:
    """SQLite-backed implementation of Persistence.

    Every statement runs synchronously under one lock, so a read-modify
    sequence inside a single method is atomic with respect to other
    coroutines and threads.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = Lock()
        self._ensure_schema()
        logger.info(f"BotDatabase initialized at {self.db_path}")

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS blacklisted_users (
                user_id TEXT PRIMARY KEY,
                blacklisted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS blacklisted_channels (
                channel_id TEXT PRIMARY KEY,
                blacklisted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS active_channels (
                channel_id TEXT PRIMARY KEY,
                activated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS user_usage (
                user_id TEXT PRIMARY KEY,
                message_count INTEGER NOT NULL DEFAULT 0,
                first_seen_at TIMESTAMP,
                last_seen_at TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS user_auth (
                user_id TEXT PRIMARY KEY,
                auth_token TEXT NOT NULL,
                app_id TEXT NOT NULL,
                issued_at TIMESTAMP NOT NULL,
                last_used_at TIMESTAMP
            );
        """)
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run statements atomically, mapping driver errors to PersistenceError."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                logger.error(f"Database error: {e}")
                raise PersistenceError(str(e)) from e

    def _exists(self, table: str, column: str, value: str) -> bool:
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT 1 FROM {table} WHERE {column} = ?", (value,)
            ).fetchone()
        return row is not None

    # Usage counters

    async def get_usage_record(self, user_id: str) -> UsageRecord:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT message_count, first_seen_at, last_seen_at FROM user_usage WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return UsageRecord(user_id=user_id, message_count=0)
        return UsageRecord(
            user_id=user_id,
            message_count=row["message_count"],
            first_seen_at=_parse_ts(row["first_seen_at"]),
            last_seen_at=_parse_ts(row["last_seen_at"]),
        )

    async def get_usage_count(self, user_id: str) -> int:
        record = await self.get_usage_record(user_id)
        return record.message_count

    async def increment_usage_count(self, user_id: str) -> int:
        """Atomically add one to a user's count and return the new value."""
        now = datetime.now().isoformat()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_usage (user_id, message_count, first_seen_at, last_seen_at)
                VALUES (?, 1, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    message_count = message_count + 1,
                    last_seen_at = excluded.last_seen_at
                """,
                (user_id, now, now),
            )
            row = conn.execute(
                "SELECT message_count FROM user_usage WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row["message_count"]

    async def reset_usage_count(self, user_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE user_usage SET message_count = 0 WHERE user_id = ?", (user_id,)
            )

    # Auth tokens

    async def get_auth_token(self, user_id: str) -> AuthToken | None:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT auth_token, app_id, issued_at, last_used_at
                FROM user_auth WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return AuthToken(
            user_id=user_id,
            token=row["auth_token"],
            app_id=row["app_id"],
            issued_at=datetime.fromisoformat(row["issued_at"]),
            last_used_at=_parse_ts(row["last_used_at"]),
        )

    async def store_auth_token(self, user_id: str, token: str, app_id: str) -> None:
        now = datetime.now().isoformat()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_auth (user_id, auth_token, app_id, issued_at, last_used_at)
                VALUES (?, ?, ?, ?, NULL)
                ON CONFLICT(user_id) DO UPDATE SET
                    auth_token = excluded.auth_token,
                    app_id = excluded.app_id,
                    issued_at = excluded.issued_at,
                    last_used_at = NULL
                """,
                (user_id, token, app_id, now),
            )

    async def revoke_auth_token(self, user_id: str) -> bool:
        """Delete a user's token. Returns True if one existed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM user_auth WHERE user_id = ?", (user_id,))
        return cursor.rowcount > 0

    async def touch_auth_token_last_used(self, user_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE user_auth SET last_used_at = ? WHERE user_id = ?",
                (datetime.now().isoformat(), user_id),
            )

    # Blacklists and active channels

    async def is_user_blacklisted(self, user_id: str) -> bool:
        return self._exists("blacklisted_users", "user_id", user_id)

    async def is_channel_blacklisted(self, channel_id: str) -> bool:
        return self._exists("blacklisted_channels", "channel_id", channel_id)

    async def is_channel_active(self, channel_id: str) -> bool:
        return self._exists("active_channels", "channel_id", channel_id)

    async def blacklist_user(self, user_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO blacklisted_users (user_id) VALUES (?)", (user_id,)
            )

    async def whitelist_user(self, user_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM blacklisted_users WHERE user_id = ?", (user_id,))
        return cursor.rowcount > 0

    async def blacklist_channel(self, channel_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO blacklisted_channels (channel_id) VALUES (?)",
                (channel_id,),
            )

    async def whitelist_channel(self, channel_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM blacklisted_channels WHERE channel_id = ?", (channel_id,)
            )
        return cursor.rowcount > 0

    async def activate_channel(self, channel_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO active_channels (channel_id) VALUES (?)", (channel_id,)
            )

    async def deactivate_channel(self, channel_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM active_channels WHERE channel_id = ?", (channel_id,))
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
