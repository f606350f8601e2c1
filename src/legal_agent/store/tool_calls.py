"""Tool-call persistence with per-conversation and per-user counters.

Records are addressed by (uid, conversation id, tool-call id) and carry the
query text that produced them as a `key`. Lookups through `retrieve` only
succeed when the supplied key matches, which keeps one search's output from
being served for another. Two fallbacks exist:

- records written on the legacy conversation-only path (no user scope) are
  consulted when the user-scoped record is missing; the key check still applies;
- `latest` returns the newest record of a conversation without any key check,
  for callers that have no tool-call id at all.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from legal_agent.types import ToolCallRecord


@dataclass(slots=True)
class ConversationStats:
    tool_calls: int = 0
    tokens: int = 0


@dataclass(slots=True)
class UserStats:
    total_tool_calls: int = 0
    total_tokens: int = 0
    daily_tool_calls: dict[str, int] | None = None


class ToolCallStore(Protocol):
    """Persistence contract used by the search chain and the analyze tool."""

    def save(
        self,
        *,
        uid: str,
        conversation_id: str,
        tool_call_id: str,
        key: str,
        content: str,
        tokens_used: int = 0,
        kind: str = "law_extract",
    ) -> ToolCallRecord:
        """Write a record and bump conversation/user counters atomically."""

    def retrieve(
        self, *, uid: str, conversation_id: str, tool_call_id: str, key: str
    ) -> str | None:
        """Return stored content when the key matches, else None."""

    def latest(self, *, uid: str, conversation_id: str) -> ToolCallRecord | None:
        """Return the newest record in the conversation, ignoring keys."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _day_key(moment: datetime) -> str:
    return moment.strftime("%Y%m%d")


class InMemoryToolCallStore:
    """Thread-safe in-memory store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._records: dict[tuple[str | None, str, str], ToolCallRecord] = {}
        self._conversations: dict[tuple[str, str], ConversationStats] = {}
        self._users: dict[str, UserStats] = {}
        self._lock = threading.Lock()

    def save(
        self,
        *,
        uid: str,
        conversation_id: str,
        tool_call_id: str,
        key: str,
        content: str,
        tokens_used: int = 0,
        kind: str = "law_extract",
    ) -> ToolCallRecord:
        now = _utc_now()
        record = ToolCallRecord(
            uid=uid,
            conversation_id=conversation_id,
            tool_call_id=tool_call_id,
            key=key,
            content=content,
            created_at=now.isoformat(),
            tokens_used=tokens_used,
            kind=kind,
        )
        with self._lock:
            self._records[(uid, conversation_id, tool_call_id)] = record
            convo = self._conversations.setdefault((uid, conversation_id), ConversationStats())
            convo.tool_calls += 1
            convo.tokens += tokens_used
            user = self._users.setdefault(uid, UserStats(daily_tool_calls={}))
            user.total_tool_calls += 1
            user.total_tokens += tokens_used
            daily = user.daily_tool_calls
            daily[_day_key(now)] = daily.get(_day_key(now), 0) + 1
        return record

    def save_unscoped(
        self, *, conversation_id: str, tool_call_id: str, key: str, content: str
    ) -> ToolCallRecord:
        """Write on the legacy conversation-only path.

        Such records are only read back by `retrieve` when no user-scoped record
        exists; the service itself never writes them.
        """
        record = ToolCallRecord(
            uid=None,
            conversation_id=conversation_id,
            tool_call_id=tool_call_id,
            key=key,
            content=content,
            created_at=_utc_now().isoformat(),
        )
        with self._lock:
            self._records[(None, conversation_id, tool_call_id)] = record
        return record

    def get(self, *, uid: str, conversation_id: str, tool_call_id: str) -> ToolCallRecord | None:
        with self._lock:
            record = self._records.get((uid, conversation_id, tool_call_id))
            if record is None:
                record = self._records.get((None, conversation_id, tool_call_id))
        return record

    def retrieve(
        self, *, uid: str, conversation_id: str, tool_call_id: str, key: str
    ) -> str | None:
        record = self.get(uid=uid, conversation_id=conversation_id, tool_call_id=tool_call_id)
        if record is None or record.key != key:
            return None
        return record.content

    def latest(self, *, uid: str, conversation_id: str) -> ToolCallRecord | None:
        with self._lock:
            candidates = [
                record
                for (owner, convo, _), record in self._records.items()
                if owner == uid and convo == conversation_id
            ]
        if not candidates:
            return None
        # Insertion order breaks ties between records created in the same instant.
        return max(enumerate(candidates), key=lambda item: (item[1].created_at, item[0]))[1]

    def conversation_stats(self, *, uid: str, conversation_id: str) -> ConversationStats:
        with self._lock:
            stats = self._conversations.get((uid, conversation_id), ConversationStats())
            return replace(stats)

    def user_stats(self, *, uid: str) -> UserStats:
        with self._lock:
            stats = self._users.get(uid)
            if stats is None:
                return UserStats(daily_tool_calls={})
            return replace(stats, daily_tool_calls=dict(stats.daily_tool_calls or {}))


class SqliteToolCallStore:
    """SQLite-backed store; counters are updated in the same transaction as the record."""

    def __init__(self, sqlite_path: str | Path) -> None:
        self.db_file = Path(sqlite_path)
        _ensure_tables(self.db_file)

    def save(
        self,
        *,
        uid: str,
        conversation_id: str,
        tool_call_id: str,
        key: str,
        content: str,
        tokens_used: int = 0,
        kind: str = "law_extract",
    ) -> ToolCallRecord:
        now = _utc_now()
        created_at = now.isoformat()
        with sqlite3.connect(self.db_file) as conn:
            conn.execute(
                "INSERT INTO tool_calls(uid, conversation_id, tool_call_id, key, content, created_at, tokens_used, kind) "
                "VALUES(?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(uid, conversation_id, tool_call_id) DO UPDATE SET "
                "key=excluded.key, content=excluded.content, created_at=excluded.created_at, "
                "tokens_used=excluded.tokens_used, kind=excluded.kind",
                (uid, conversation_id, tool_call_id, key, content, created_at, tokens_used, kind),
            )
            conn.execute(
                "INSERT INTO conversation_counters(uid, conversation_id, tool_calls, tokens) VALUES(?, ?, 1, ?) "
                "ON CONFLICT(uid, conversation_id) DO UPDATE SET "
                "tool_calls=tool_calls + 1, tokens=tokens + excluded.tokens",
                (uid, conversation_id, tokens_used),
            )
            conn.execute(
                "INSERT INTO user_counters(uid, total_tool_calls, total_tokens) VALUES(?, 1, ?) "
                "ON CONFLICT(uid) DO UPDATE SET "
                "total_tool_calls=total_tool_calls + 1, total_tokens=total_tokens + excluded.total_tokens",
                (uid, tokens_used),
            )
            conn.execute(
                "INSERT INTO user_daily_tool_calls(uid, day, tool_calls) VALUES(?, ?, 1) "
                "ON CONFLICT(uid, day) DO UPDATE SET tool_calls=tool_calls + 1",
                (uid, _day_key(now)),
            )
            conn.commit()
        return ToolCallRecord(
            uid=uid,
            conversation_id=conversation_id,
            tool_call_id=tool_call_id,
            key=key,
            content=content,
            created_at=created_at,
            tokens_used=tokens_used,
            kind=kind,
        )

    def save_unscoped(
        self, *, conversation_id: str, tool_call_id: str, key: str, content: str
    ) -> ToolCallRecord:
        """Write on the legacy conversation-only path.

        Such records are only read back by `retrieve` when no user-scoped record
        exists; the service itself never writes them.
        """
        created_at = _utc_now().isoformat()
        with sqlite3.connect(self.db_file) as conn:
            conn.execute(
                "INSERT INTO unscoped_tool_calls(conversation_id, tool_call_id, key, content, created_at) "
                "VALUES(?, ?, ?, ?, ?) "
                "ON CONFLICT(conversation_id, tool_call_id) DO UPDATE SET "
                "key=excluded.key, content=excluded.content, created_at=excluded.created_at",
                (conversation_id, tool_call_id, key, content, created_at),
            )
            conn.commit()
        return ToolCallRecord(
            uid=None,
            conversation_id=conversation_id,
            tool_call_id=tool_call_id,
            key=key,
            content=content,
            created_at=created_at,
        )

    def get(self, *, uid: str, conversation_id: str, tool_call_id: str) -> ToolCallRecord | None:
        with sqlite3.connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT uid, conversation_id, tool_call_id, key, content, created_at, tokens_used, kind "
                "FROM tool_calls WHERE uid = ? AND conversation_id = ? AND tool_call_id = ?",
                (uid, conversation_id, tool_call_id),
            ).fetchone()
            if row is None:
                row = conn.execute(
                    "SELECT NULL, conversation_id, tool_call_id, key, content, created_at, 0, 'law_extract' "
                    "FROM unscoped_tool_calls WHERE conversation_id = ? AND tool_call_id = ?",
                    (conversation_id, tool_call_id),
                ).fetchone()
        return _row_to_record(row) if row else None

    def retrieve(
        self, *, uid: str, conversation_id: str, tool_call_id: str, key: str
    ) -> str | None:
        record = self.get(uid=uid, conversation_id=conversation_id, tool_call_id=tool_call_id)
        if record is None or record.key != key:
            return None
        return record.content

    def latest(self, *, uid: str, conversation_id: str) -> ToolCallRecord | None:
        with sqlite3.connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT uid, conversation_id, tool_call_id, key, content, created_at, tokens_used, kind "
                "FROM tool_calls WHERE uid = ? AND conversation_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (uid, conversation_id),
            ).fetchone()
        return _row_to_record(row) if row else None

    def conversation_stats(self, *, uid: str, conversation_id: str) -> ConversationStats:
        with sqlite3.connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT tool_calls, tokens FROM conversation_counters WHERE uid = ? AND conversation_id = ?",
                (uid, conversation_id),
            ).fetchone()
        if row is None:
            return ConversationStats()
        return ConversationStats(tool_calls=row[0], tokens=row[1])

    def user_stats(self, *, uid: str) -> UserStats:
        with sqlite3.connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT total_tool_calls, total_tokens FROM user_counters WHERE uid = ?", (uid,)
            ).fetchone()
            daily_rows = conn.execute(
                "SELECT day, tool_calls FROM user_daily_tool_calls WHERE uid = ? ORDER BY day", (uid,)
            ).fetchall()
        daily = {day: count for day, count in daily_rows}
        if row is None:
            return UserStats(daily_tool_calls=daily)
        return UserStats(total_tool_calls=row[0], total_tokens=row[1], daily_tool_calls=daily)


def _row_to_record(row: tuple) -> ToolCallRecord:
    uid, conversation_id, tool_call_id, key, content, created_at, tokens_used, kind = row
    return ToolCallRecord(
        uid=uid,
        conversation_id=conversation_id,
        tool_call_id=tool_call_id,
        key=key,
        content=content,
        created_at=created_at,
        tokens_used=int(tokens_used or 0),
        kind=kind,
    )


def _ensure_tables(db_path: Path) -> None:
    if db_path.parent != Path("."):
        db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tool_calls (
                uid TEXT NOT NULL,
                conversation_id TEXT NOT NULL,
                tool_call_id TEXT NOT NULL,
                key TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                tokens_used INTEGER NOT NULL DEFAULT 0,
                kind TEXT NOT NULL DEFAULT 'law_extract',
                PRIMARY KEY (uid, conversation_id, tool_call_id)
            );
            CREATE TABLE IF NOT EXISTS unscoped_tool_calls (
                conversation_id TEXT NOT NULL,
                tool_call_id TEXT NOT NULL,
                key TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (conversation_id, tool_call_id)
            );
            CREATE TABLE IF NOT EXISTS conversation_counters (
                uid TEXT NOT NULL,
                conversation_id TEXT NOT NULL,
                tool_calls INTEGER NOT NULL DEFAULT 0,
                tokens INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (uid, conversation_id)
            );
            CREATE TABLE IF NOT EXISTS user_counters (
                uid TEXT PRIMARY KEY,
                total_tool_calls INTEGER NOT NULL DEFAULT 0,
                total_tokens INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS user_daily_tool_calls (
                uid TEXT NOT NULL,
                day TEXT NOT NULL,
                tool_calls INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (uid, day)
            );
            """
        )
        conn.commit()
