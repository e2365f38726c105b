"""SQLite persistence layer for Slack Punch.

One row per chat user, keyed by the Slack user id. The shared admin
credential lives in the row keyed ``admin``.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import NotFoundError
from .models import ADMIN_USER_ID, Credential, Reminder, User

Connection = sqlite3.Connection
Row = sqlite3.Row


def _dump_time(value: time) -> str:
    return value.strftime("%H:%M")


def _load_time(value: Optional[str], default: time) -> time:
    if not value:
        return default
    return datetime.strptime(value, "%H:%M").time()


def _dump_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _load_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def user_to_row(user: User) -> Dict[str, Any]:
    return {
        "user_id": user.user_id,
        "channel_id": user.channel_id,
        "employee_id": user.employee_id,
        "access_token": user.credential.access_token,
        "refresh_token": user.credential.refresh_token,
        "token_type": user.credential.token_type,
        "token_expiry": _dump_datetime(user.credential.expiry),
        "reminder_enabled": int(user.reminder.enabled),
        "reminder_am": _dump_time(user.reminder.am),
        "reminder_pm": _dump_time(user.reminder.pm),
        "last_used_at": _dump_datetime(user.last_used_at),
    }


def row_to_user(row: Row) -> User:
    defaults = Reminder()
    return User(
        user_id=row["user_id"],
        channel_id=row["channel_id"] or "",
        employee_id=row["employee_id"] or "",
        credential=Credential(
            access_token=row["access_token"] or "",
            refresh_token=row["refresh_token"] or "",
            token_type=row["token_type"] or "Bearer",
            expiry=_load_datetime(row["token_expiry"]),
        ),
        reminder=Reminder(
            enabled=bool(row["reminder_enabled"]),
            am=_load_time(row["reminder_am"], defaults.am),
            pm=_load_time(row["reminder_pm"], defaults.pm),
        ),
        last_used_at=_load_datetime(row["last_used_at"]),
    )


class Database:
    """Lightweight wrapper around SQLite operations."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    channel_id TEXT,
                    employee_id TEXT,
                    access_token TEXT,
                    refresh_token TEXT,
                    token_type TEXT,
                    token_expiry TEXT,
                    reminder_enabled INTEGER NOT NULL DEFAULT 1,
                    reminder_am TEXT,
                    reminder_pm TEXT,
                    last_used_at TEXT
                )
                """
            )
            conn.commit()

    # region Users
    def load(self, user_id: str) -> User:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,))
            row = cursor.fetchone()
        if row is None:
            raise NotFoundError(user_id)
        return row_to_user(row)

    def load_admin(self) -> User:
        return self.load(ADMIN_USER_ID)

    def save(self, user: User) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO users (
                    user_id, channel_id, employee_id, access_token, refresh_token,
                    token_type, token_expiry, reminder_enabled, reminder_am,
                    reminder_pm, last_used_at
                )
                VALUES (
                    :user_id, :channel_id, :employee_id, :access_token, :refresh_token,
                    :token_type, :token_expiry, :reminder_enabled, :reminder_am,
                    :reminder_pm, :last_used_at
                )
                ON CONFLICT(user_id) DO UPDATE SET
                    channel_id=excluded.channel_id,
                    employee_id=excluded.employee_id,
                    access_token=excluded.access_token,
                    refresh_token=excluded.refresh_token,
                    token_type=excluded.token_type,
                    token_expiry=excluded.token_expiry,
                    reminder_enabled=excluded.reminder_enabled,
                    reminder_am=excluded.reminder_am,
                    reminder_pm=excluded.reminder_pm,
                    last_used_at=excluded.last_used_at
                """,
                user_to_row(user),
            )
            conn.commit()

    def delete(self, user_id: str) -> None:
        with self.connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
            conn.commit()
            deleted = cursor.rowcount
        if not deleted:
            raise NotFoundError(user_id)

    def list_users(self, *, include_admin: bool = False) -> List[User]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM users ORDER BY user_id")
            rows = cursor.fetchall()
        users = [row_to_user(row) for row in rows]
        if include_admin:
            return users
        return [user for user in users if not user.is_admin]

    # endregion


__all__ = ["Database", "user_to_row", "row_to_user"]
