# src/taskflow/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.clock import SystemClock
from ..core.ports import Clock
from .task_models import (
    Activity,
    Comment,
    Project,
    Task,
    TaskFilter,
    TaskPriority,
    TaskStatus,
    check_clear_fields,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200

_TASK_SELECT = """
    SELECT t.*,
           p.name AS p_name,
           p.user_id AS p_user_id,
           p.description AS p_description,
           p.color AS p_color,
           p.created_at AS p_created_at,
           p.updated_at AS p_updated_at
    FROM tasks t
    LEFT JOIN projects p ON p.id = t.project_id
"""


def _to_ts(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _from_ts(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value or 0.0), tz=timezone.utc)


class TaskStore:
    """
    SQLite store for tasks, projects, comments and the activity log.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Timestamps are stored as epoch seconds and returned as UTC datetimes.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, clock: Clock | None = None) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock: Clock = clock or SystemClock()
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _now_ts(self) -> float:
        return self._clock.now().timestamp()

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    color TEXT,
                    user_id TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'TODO',
                    priority TEXT NOT NULL DEFAULT 'MEDIUM',
                    due_at REAL,
                    user_id TEXT NOT NULL,
                    project_id INTEGER,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS comments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    author_id TEXT NOT NULL,
                    author_name TEXT,
                    content TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    task_id INTEGER,
                    metadata TEXT,
                    created_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("description", "TEXT")
            add_col("due_at", "REAL")
            add_col("project_id", "INTEGER")
            add_col("ai_suggestions", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_due_status ON tasks(status, due_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_comments_task ON comments(task_id)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_activities_user ON activities(user_id, created_at)"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _json_to_str(value: dict[str, Any] | None) -> str | None:
        if value is None:
            return None
        try:
            return json.dumps(value, ensure_ascii=False)
        except Exception:
            logger.exception("Failed to JSON-encode a JSON column value; storing NULL.")
            return None

    @staticmethod
    def _str_to_json(s: str | None) -> dict[str, Any] | None:
        if not s:
            return None
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else None
        except Exception:
            return None

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=int(row["id"]),
            name=str(row["name"] or ""),
            user_id=str(row["user_id"]),
            description=row["description"],
            color=row["color"],
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        project = None
        if row["project_id"] is not None and row["p_name"] is not None:
            project = Project(
                id=int(row["project_id"]),
                name=str(row["p_name"]),
                user_id=str(row["p_user_id"]),
                description=row["p_description"],
                color=row["p_color"],
                created_at=_from_ts(row["p_created_at"]),
                updated_at=_from_ts(row["p_updated_at"]),
            )

        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            status=TaskStatus.parse(row["status"]),
            priority=TaskPriority.parse(row["priority"]),
            due_at=_from_ts(row["due_at"]) if row["due_at"] is not None else None,
            user_id=str(row["user_id"]),
            project=project,
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
            ai_suggestions=self._str_to_json(row["ai_suggestions"]),
        )

    @staticmethod
    def _row_to_comment(row: sqlite3.Row) -> Comment:
        return Comment(
            id=int(row["id"]),
            task_id=int(row["task_id"]),
            author_id=str(row["author_id"]),
            author_name=row["author_name"],
            content=str(row["content"]),
            created_at=_from_ts(row["created_at"]),
        )

    # ---- tasks ----

    def count_tasks(self, user_id: str | None = None) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            if user_id is None:
                cur.execute("SELECT COUNT(*) FROM tasks")
            else:
                cur.execute("SELECT COUNT(*) FROM tasks WHERE user_id = ?", (user_id,))
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(_TASK_SELECT + " WHERE t.id = ?", (int(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def find_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """
        Return tasks matching the filter, oldest first.

        Rows come back in insertion order so callers that depend on
        "input order" (groupings, stable sorts) get a deterministic one.
        """
        f = task_filter or TaskFilter()
        where: list[str] = []
        params: list[Any] = []

        if f.user_id is not None:
            where.append("t.user_id = ?")
            params.append(f.user_id)
        if f.status is not None:
            where.append("t.status = ?")
            params.append(f.status.value)
        if f.status_not is not None:
            where.append("t.status <> ?")
            params.append(f.status_not.value)
        if f.project_id is not None:
            where.append("t.project_id = ?")
            params.append(int(f.project_id))
        if f.due_gte is not None:
            where.append("t.due_at >= ?")
            params.append(_to_ts(f.due_gte))
        if f.due_lte is not None:
            where.append("t.due_at <= ?")
            params.append(_to_ts(f.due_lte))
        if f.due_lt is not None:
            where.append("t.due_at < ?")
            params.append(_to_ts(f.due_lt))

        sql = _TASK_SELECT
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY t.created_at ASC, t.id ASC"

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def add_task(
        self,
        *,
        user_id: str,
        title: str,
        description: str | None = None,
        status: TaskStatus = TaskStatus.TODO,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_at: datetime | None = None,
        project_id: int | None = None,
        ai_suggestions: dict[str, Any] | None = None,
    ) -> Task:
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required")
        if not title or not title.strip():
            raise ValueError("title is required")

        status = TaskStatus.parse(status)
        priority = TaskPriority.parse(priority)
        now = self._now_ts()

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    title, description, status, priority, due_at,
                    user_id, project_id, created_at, updated_at, ai_suggestions
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title.strip(),
                    description,
                    status.value,
                    priority.value,
                    _to_ts(due_at),
                    user_id,
                    project_id,
                    now,
                    now,
                    self._json_to_str(ai_suggestions),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
        finally:
            conn.close()

        logger.debug(
            "Task added id=%s user=%s status=%s priority=%s due_at=%s",
            task_id,
            user_id,
            status.value,
            priority.value,
            due_at,
        )
        task = self.get_task(task_id)
        if task is None:
            raise RuntimeError(f"Task {task_id} vanished right after insert")
        return task

    def update_task_fields(
        self,
        task_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        due_at: datetime | None = None,
        project_id: int | None = None,
        ai_suggestions: dict[str, Any] | None = None,
        clear: Iterable[str] = (),
    ) -> Task | None:
        """
        Update the given fields; None leaves a column unchanged.

        Nullable columns named in `clear` (description, due_at, project_id)
        are set to NULL. Clearing and setting the same field is an error.
        """
        fields: list[str] = []
        params: list[Any] = []

        if title is not None:
            if not title.strip():
                raise ValueError("title must not be blank")
            fields.append("title = ?")
            params.append(title.strip())

        if description is not None:
            fields.append("description = ?")
            params.append(description)

        if status is not None:
            fields.append("status = ?")
            params.append(TaskStatus.parse(status).value)

        if priority is not None:
            fields.append("priority = ?")
            params.append(TaskPriority.parse(priority).value)

        if due_at is not None:
            fields.append("due_at = ?")
            params.append(_to_ts(due_at))

        if project_id is not None:
            fields.append("project_id = ?")
            params.append(int(project_id))

        if ai_suggestions is not None:
            fields.append("ai_suggestions = ?")
            params.append(self._json_to_str(ai_suggestions))

        given = {"description": description, "due_at": due_at, "project_id": project_id}
        for name in sorted(check_clear_fields(clear)):
            if given[name] is not None:
                raise ValueError(f"Cannot both set and clear {name}")
            fields.append(f"{name} = NULL")

        if fields:
            fields.append("updated_at = ?")
            params.append(self._now_ts())
            params.append(int(task_id))

            sql = f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?"

            conn = self._get_conn()
            try:
                conn.execute(sql, params)
                conn.commit()
            finally:
                conn.close()

        return self.get_task(task_id)

    def delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM comments WHERE task_id = ?", (int(task_id),))
            cur.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    # ---- projects ----

    def add_project(
        self,
        *,
        user_id: str,
        name: str,
        description: str | None = None,
        color: str | None = None,
    ) -> Project:
        if not name or not name.strip():
            raise ValueError("project name is required")

        now = self._now_ts()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO projects(name, description, color, user_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name.strip(), description, color, user_id, now, now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for projects insert")
            project_id = int(rowid)
        finally:
            conn.close()

        logger.debug("Project added id=%s user=%s", project_id, user_id)
        project = self.get_project(project_id)
        if project is None:
            raise RuntimeError(f"Project {project_id} vanished right after insert")
        return project

    def get_project(self, project_id: int) -> Project | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM projects WHERE id = ?", (int(project_id),))
            row = cur.fetchone()
            return self._row_to_project(row) if row else None
        finally:
            conn.close()

    def update_project(
        self,
        project_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
    ) -> Project | None:
        fields: list[str] = []
        params: list[Any] = []

        if name is not None:
            if not name.strip():
                raise ValueError("project name must not be blank")
            fields.append("name = ?")
            params.append(name.strip())
        if description is not None:
            fields.append("description = ?")
            params.append(description)
        if color is not None:
            fields.append("color = ?")
            params.append(color)

        if fields:
            fields.append("updated_at = ?")
            params.append(self._now_ts())
            params.append(int(project_id))

            conn = self._get_conn()
            try:
                conn.execute(f"UPDATE projects SET {', '.join(fields)} WHERE id = ?", params)
                conn.commit()
            finally:
                conn.close()

        return self.get_project(project_id)

    def list_projects(self, user_id: str) -> list[Project]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM projects WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
            return [self._row_to_project(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def delete_project(self, project_id: int) -> bool:
        """Delete a project. Its tasks are kept and detached (project_id = NULL)."""
        now = self._now_ts()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE tasks SET project_id = NULL, updated_at = ? WHERE project_id = ?",
                (now, int(project_id)),
            )
            detached = cur.rowcount
            cur.execute("DELETE FROM projects WHERE id = ?", (int(project_id),))
            deleted = cur.rowcount == 1
            conn.commit()
        finally:
            conn.close()

        logger.debug("Project deleted id=%s deleted=%s detached_tasks=%s", project_id, deleted, detached)
        return deleted

    # ---- activity log ----

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> Activity:
        return Activity(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            action=str(row["action"]),
            task_id=int(row["task_id"]) if row["task_id"] is not None else None,
            metadata=TaskStore._str_to_json(row["metadata"]),
            created_at=_from_ts(row["created_at"]),
        )

    def add_activity(
        self,
        *,
        user_id: str,
        action: str,
        task_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Activity:
        if not action or not action.strip():
            raise ValueError("activity action is required")

        now = self._now_ts()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO activities(user_id, action, task_id, metadata, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, action.strip(), task_id, self._json_to_str(metadata), now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for activities insert")
            return Activity(
                id=int(rowid),
                user_id=user_id,
                action=action.strip(),
                task_id=task_id,
                metadata=metadata,
                created_at=_from_ts(now),
            )
        finally:
            conn.close()

    def list_activities(
        self,
        user_id: str,
        *,
        task_id: int | None = None,
        limit: int = 20,
    ) -> list[Activity]:
        """Newest first."""
        sql = "SELECT * FROM activities WHERE user_id = ?"
        params: list[Any] = [user_id]
        if task_id is not None:
            sql += " AND task_id = ?"
            params.append(int(task_id))
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(int(limit))

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            return [self._row_to_activity(r) for r in cur.fetchall()]
        finally:
            conn.close()

    # ---- comments ----

    def add_comment(
        self,
        *,
        task_id: int,
        author_id: str,
        content: str,
        author_name: str | None = None,
    ) -> Comment:
        if not content or not content.strip():
            raise ValueError("comment content is required")

        now = self._now_ts()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO comments(task_id, author_id, author_name, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (int(task_id), author_id, author_name, content.strip(), now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for comments insert")
            return Comment(
                id=int(rowid),
                task_id=int(task_id),
                author_id=author_id,
                author_name=author_name,
                content=content.strip(),
                created_at=_from_ts(now),
            )
        finally:
            conn.close()

    def list_comments(self, task_id: int) -> list[Comment]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM comments WHERE task_id = ? ORDER BY created_at ASC, id ASC",
                (int(task_id),),
            )
            return [self._row_to_comment(r) for r in cur.fetchall()]
        finally:
            conn.close()
