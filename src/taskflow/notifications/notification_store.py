# src/taskflow/notifications/notification_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.clock import SystemClock
from ..core.ports import Clock
from .notification_models import (
    Notification,
    NotificationPayload,
    NotificationStats,
    NotificationType,
)

logger = logging.getLogger(__name__)


def _from_ts(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value or 0.0), tz=timezone.utc)


class NotificationStore:
    """
    SQLite notification store.

    Rows are never edited apart from the `read` flag (and updated_at along
    with it). The (task_id, type, created_at) index serves the rule
    engine's dedup lookups.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(
        self,
        db_path: str | Path = "notifications.sqlite3",
        *,
        clock: Clock | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock: Clock = clock or SystemClock()
        self._ensure_schema()
        logger.info("NotificationStore ready db=%s", self._db_path)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT,
                    type TEXT NOT NULL DEFAULT 'INFO',
                    read INTEGER NOT NULL DEFAULT 0,
                    task_id INTEGER,
                    project_id INTEGER,
                    action_url TEXT,
                    metadata TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_user_read "
                "ON notifications(user_id, read)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_dedup "
                "ON notifications(task_id, type, created_at)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _meta_to_str(meta: dict[str, Any] | None) -> str | None:
        if not meta:
            return None
        try:
            return json.dumps(meta, ensure_ascii=False)
        except Exception:
            logger.exception("Failed to JSON-encode notification metadata; storing NULL.")
            return None

    @staticmethod
    def _str_to_meta(s: str | None) -> dict[str, Any] | None:
        if not s:
            return None
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else None
        except Exception:
            return None

    def _row_to_notification(self, row: sqlite3.Row) -> Notification:
        return Notification(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row["title"]),
            message=row["message"],
            type=NotificationType.parse(row["type"]),
            read=bool(row["read"]),
            task_id=int(row["task_id"]) if row["task_id"] is not None else None,
            project_id=int(row["project_id"]) if row["project_id"] is not None else None,
            action_url=row["action_url"],
            metadata=self._str_to_meta(row["metadata"]),
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    # ---- rule engine API ----

    def create_notification(self, payload: NotificationPayload) -> Notification:
        if not payload.user_id:
            raise ValueError("notification user_id is required")
        if not payload.title or not payload.title.strip():
            raise ValueError("notification title is required")

        ntype = NotificationType.parse(payload.type)
        now = self._clock.now().timestamp()

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO notifications(
                    user_id, title, message, type, read,
                    task_id, project_id, action_url, metadata,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payload.user_id,
                    payload.title,
                    payload.message,
                    ntype.value,
                    payload.task_id,
                    payload.project_id,
                    payload.action_url,
                    self._meta_to_str(payload.metadata),
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for notifications insert")
        finally:
            conn.close()

        return Notification(
            id=int(rowid),
            user_id=payload.user_id,
            title=payload.title,
            message=payload.message,
            type=ntype,
            read=False,
            task_id=payload.task_id,
            project_id=payload.project_id,
            action_url=payload.action_url,
            metadata=dict(payload.metadata) if payload.metadata else None,
            created_at=_from_ts(now),
            updated_at=_from_ts(now),
        )

    def find_recent_notifications(
        self,
        *,
        task_id: int,
        type: NotificationType,
        since: datetime,
    ) -> list[Notification]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM notifications
                WHERE task_id = ?
                  AND type = ?
                  AND created_at >= ?
                ORDER BY created_at DESC
                """,
                (int(task_id), NotificationType.parse(type).value, since.timestamp()),
            )
            return [self._row_to_notification(r) for r in cur.fetchall()]
        finally:
            conn.close()

    # ---- user-facing API ----

    def get_notification(self, notification_id: int) -> Notification | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM notifications WHERE id = ?", (int(notification_id),))
            row = cur.fetchone()
            return self._row_to_notification(row) if row else None
        finally:
            conn.close()

    def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM notifications
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                    LIMIT ?
                """,
                (user_id, int(limit)),
            )
            return [self._row_to_notification(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def count_unread(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0",
                (user_id,),
            )
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def mark_read(self, notification_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE notifications SET read = 1, updated_at = ? WHERE id = ?",
                (self._clock.now().timestamp(), int(notification_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def mark_all_read(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE notifications SET read = 1, updated_at = ? WHERE user_id = ? AND read = 0",
                (self._clock.now().timestamp(), user_id),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def delete_notification(self, notification_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM notifications WHERE id = ?", (int(notification_id),))
            conn.commit()
        finally:
            conn.close()

    def delete_read(self, user_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM notifications WHERE user_id = ? AND read = 1", (user_id,))
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def delete_read_older_than(self, cutoff: datetime) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "DELETE FROM notifications WHERE read = 1 AND created_at < ?",
                (cutoff.timestamp(),),
            )
            conn.commit()
            removed = int(cur.rowcount)
        finally:
            conn.close()
        if removed:
            logger.info("Removed %d read notifications older than %s", removed, cutoff)
        return removed

    def stats(self, user_id: str) -> NotificationStats:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT type, COUNT(*) AS n, SUM(CASE WHEN read = 0 THEN 1 ELSE 0 END) AS unread
                FROM notifications
                WHERE user_id = ?
                GROUP BY type
                """,
                (user_id,),
            )
            by_type: dict[NotificationType, int] = {}
            total = unread = 0
            for row in cur.fetchall():
                n = int(row["n"])
                by_type[NotificationType.parse(row["type"])] = n
                total += n
                unread += int(row["unread"] or 0)
            return NotificationStats(total=total, unread=unread, by_type=by_type)
        finally:
            conn.close()
