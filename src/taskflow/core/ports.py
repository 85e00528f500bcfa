# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The rule engine and the action helpers depend on Protocols instead of
concrete implementations. This keeps storage/LLM providers swappable and
makes testing with in-memory fakes easy.
"""

from datetime import datetime
from typing import Any, Iterable, Protocol

from ..notifications.notification_models import (
    Notification,
    NotificationPayload,
    NotificationStats,
    NotificationType,
)
from ..tasks.task_models import (
    Activity,
    Comment,
    Project,
    Task,
    TaskFilter,
    TaskPriority,
    TaskStatus,
)


class Clock(Protocol):
    """Time source. Must return timezone-aware datetimes."""

    def now(self) -> datetime: ...


class TaskRepo(Protocol):
    # Read API (classifier views, sweeps)
    def find_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]: ...
    def get_task(self, task_id: int) -> Task | None: ...
    def count_tasks(self, user_id: str | None = None) -> int: ...

    # Task mutations
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
    ) -> Task: ...

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
    ) -> Task | None: ...

    def delete_task(self, task_id: int) -> bool: ...

    # Projects
    def add_project(
            self,
            *,
            user_id: str,
            name: str,
            description: str | None = None,
            color: str | None = None,
    ) -> Project: ...

    def get_project(self, project_id: int) -> Project | None: ...

    def update_project(
            self,
            project_id: int,
            *,
            name: str | None = None,
            description: str | None = None,
            color: str | None = None,
    ) -> Project | None: ...

    def list_projects(self, user_id: str) -> list[Project]: ...
    def delete_project(self, project_id: int) -> bool: ...

    # Comments
    def add_comment(
            self,
            *,
            task_id: int,
            author_id: str,
            content: str,
            author_name: str | None = None,
    ) -> Comment: ...

    def list_comments(self, task_id: int) -> list[Comment]: ...

    # Activity log
    def add_activity(
            self,
            *,
            user_id: str,
            action: str,
            task_id: int | None = None,
            metadata: dict[str, Any] | None = None,
    ) -> Activity: ...

    def list_activities(
            self,
            user_id: str,
            *,
            task_id: int | None = None,
            limit: int = 20,
    ) -> list[Activity]: ...


class NotificationRepo(Protocol):
    # Rule engine API
    def find_recent_notifications(
            self,
            *,
            task_id: int,
            type: NotificationType,
            since: datetime,
    ) -> list[Notification]: ...

    def create_notification(self, payload: NotificationPayload) -> Notification: ...

    # User-facing API
    def get_notification(self, notification_id: int) -> Notification | None: ...
    def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]: ...
    def count_unread(self, user_id: str) -> int: ...
    def mark_read(self, notification_id: int) -> None: ...
    def mark_all_read(self, user_id: str) -> int: ...
    def delete_notification(self, notification_id: int) -> None: ...
    def delete_read(self, user_id: str) -> int: ...
    def delete_read_older_than(self, cutoff: datetime) -> int: ...
    def stats(self, user_id: str) -> NotificationStats: ...


class TaskAnalyzer(Protocol):
    """Produces structured suggestions for tasks and project plans (LLM-backed or offline)."""

    def analyze_task(self, title: str, description: str | None = None) -> dict[str, Any]: ...

    def daily_recommendations(self, tasks: Iterable[Task]) -> list[str]: ...

    def plan_project(self, name: str, description: str | None = None) -> dict[str, Any]: ...
