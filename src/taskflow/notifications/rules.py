# src/taskflow/notifications/rules.py

from __future__ import annotations

"""
Notification rule engine.

One place that decides, per task lifecycle event:
- whether a notification should be issued,
- whether an equivalent one was already issued recently (dedup),
- what the notification says and where it links to.

Event-triggered rules (task created, status changed, comment added,
project updated) fire at most once per call. Sweep rules (due soon,
overdue) are meant to run periodically over all open tasks with a due
date and are idempotent within their dedup window.

The engine propagates storage errors. Callers that trigger it as a side
effect of a user action must catch and log them (see tasks/task_api.py).

Known race: two sweeps running concurrently can both see "no recent
notification" before either inserts, producing a duplicate. Preventing
that needs a uniqueness constraint or lock in the storage layer.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from ..core.ports import Clock, NotificationRepo, TaskRepo
from ..tasks.classifier import start_of_day
from ..tasks.task_models import Project, Task, TaskFilter, TaskStatus
from .notification_models import Notification, NotificationPayload, NotificationType

logger = logging.getLogger(__name__)

COMMENT_PREVIEW_UNITS = 100
DUE_SOON_DEDUP = timedelta(hours=24)


class TaskEvent(StrEnum):
    TASK_CREATED = "task_created"
    STATUS_CHANGED = "status_changed"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    COMMENT_ADDED = "comment_added"
    PROJECT_UPDATED = "project_updated"


@dataclass(slots=True, frozen=True)
class SweepResult:
    due_soon: int
    overdue: int


def task_url(task_id: int) -> str:
    return f"/dashboard/tasks/{task_id}"


def project_url(project_id: int) -> str:
    return f"/dashboard/projects/{project_id}"


def comment_preview(content: str, limit: int = COMMENT_PREVIEW_UNITS) -> str:
    """
    First `limit` UTF-16 code units of content, plus "..." if it was longer.

    Lengths are measured in UTF-16 units (not code points) so the cut
    matches what browser clients display. A surrogate pair split by the
    cut is dropped rather than emitted half-way. Lone surrogates in the
    input (text that is not valid Unicode) count as one unit each and are
    left out of the preview.
    """
    encoded = content.encode("utf-16-le", errors="surrogatepass")
    head = encoded[: limit * 2].decode("utf-16-le", errors="ignore")
    if len(encoded) <= limit * 2:
        return head
    return head + "..."


class NotificationRuleEngine:
    def __init__(
        self,
        tasks: TaskRepo,
        notifications: NotificationRepo,
        clock: Clock,
        *,
        due_soon_window: timedelta = timedelta(hours=24),
        guard_repeat_completion: bool = True,
    ) -> None:
        self._tasks = tasks
        self._notifications = notifications
        self._clock = clock
        self._due_soon_window = due_soon_window
        self._guard_repeat_completion = guard_repeat_completion

        self._rules: dict[TaskEvent, Callable[..., Notification | None]] = {
            TaskEvent.TASK_CREATED: self.on_task_created,
            TaskEvent.STATUS_CHANGED: self.on_status_changed,
            TaskEvent.DUE_SOON: self.check_due_soon,
            TaskEvent.OVERDUE: self.check_overdue,
            TaskEvent.COMMENT_ADDED: self.on_comment_added,
            TaskEvent.PROJECT_UPDATED: self.on_project_updated,
        }

    def dispatch(self, event: TaskEvent | str, **kwargs: Any) -> Notification | None:
        try:
            key = TaskEvent(event)
        except ValueError:
            raise ValueError(f"Unknown task event: {event!r}") from None
        return self._rules[key](**kwargs)

    # ---- helpers ----

    def _emit(
        self,
        task: Task,
        *,
        type: NotificationType,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        payload = NotificationPayload(
            user_id=task.user_id,
            title=title,
            type=type,
            message=message,
            task_id=task.id,
            project_id=task.project_id,
            action_url=task_url(task.id),
            metadata=metadata,
        )
        notification = self._notifications.create_notification(payload)
        logger.debug(
            "Notification issued id=%s type=%s task_id=%s user=%s",
            notification.id,
            type.value,
            task.id,
            task.user_id,
        )
        return notification

    def _recently_notified(self, task: Task, type: NotificationType, since: datetime) -> bool:
        existing = self._notifications.find_recent_notifications(
            task_id=task.id, type=type, since=since
        )
        # Any match (even an unexpected count) counts as already notified.
        return len(existing) > 0

    # ---- event-triggered rules ----

    def on_task_created(self, task: Task) -> Notification:
        where = f" in {task.project.name}" if task.project is not None else ""
        return self._emit(
            task,
            type=NotificationType.TASK_ASSIGNED,
            title="New task created",
            message=f'Task "{task.title}" has been created{where}',
        )

    def on_status_changed(
        self,
        task: Task,
        old_status: TaskStatus | str,
        new_status: TaskStatus | str,
    ) -> Notification | None:
        # Raw names ("DONE", "in_progress") arrive here via dispatch().
        old_status = TaskStatus.parse(old_status)
        new_status = TaskStatus.parse(new_status)
        metadata = {"old_status": old_status.value, "new_status": new_status.value}

        if new_status == TaskStatus.DONE:
            if self._guard_repeat_completion and old_status == TaskStatus.DONE:
                return None
            return self._emit(
                task,
                type=NotificationType.TASK_COMPLETED,
                title="Task completed!",
                message=f'Congratulations! You completed "{task.title}"',
                metadata=metadata,
            )

        if new_status == TaskStatus.IN_PROGRESS and old_status == TaskStatus.TODO:
            return self._emit(
                task,
                type=NotificationType.INFO,
                title="Task in progress",
                message=f'You started working on "{task.title}"',
                metadata=metadata,
            )

        return None

    def on_comment_added(
        self,
        task: Task,
        author_id: str,
        content: str,
        author_name: str | None = None,
    ) -> Notification | None:
        # Authors are not notified about their own comments.
        if author_id == task.user_id:
            return None

        who = author_name or "Someone"
        return self._emit(
            task,
            type=NotificationType.COMMENT_ADDED,
            title="New comment on your task",
            message=f'{who} commented on "{task.title}": {comment_preview(content)}',
            metadata={"comment_author_id": author_id, "comment_author": author_name},
        )

    def on_project_updated(self, project: Project, message: str) -> Notification:
        payload = NotificationPayload(
            user_id=project.user_id,
            title="Project update",
            type=NotificationType.PROJECT_UPDATE,
            message=message,
            project_id=project.id,
            action_url=project_url(project.id),
        )
        return self._notifications.create_notification(payload)

    # ---- sweep rules (per task) ----

    def check_due_soon(self, task: Task, now: datetime | None = None) -> Notification | None:
        now = now or self._clock.now()
        if task.status == TaskStatus.DONE or task.due_at is None:
            return None
        if not (now <= task.due_at <= now + self._due_soon_window):
            return None
        if self._recently_notified(task, NotificationType.TASK_DUE_SOON, now - DUE_SOON_DEDUP):
            return None

        return self._emit(
            task,
            type=NotificationType.TASK_DUE_SOON,
            title="Task due soon",
            message=f"\"{task.title}\" is due soon. Don't forget to complete it!",
        )

    def check_overdue(self, task: Task, now: datetime | None = None) -> Notification | None:
        now = now or self._clock.now()
        if task.status == TaskStatus.DONE or task.due_at is None:
            return None
        if not task.due_at < now:
            return None
        if self._recently_notified(task, NotificationType.TASK_OVERDUE, start_of_day(now)):
            return None

        return self._emit(
            task,
            type=NotificationType.TASK_OVERDUE,
            title="Task overdue!",
            message=f'"{task.title}" is overdue. Please complete it as soon as possible.',
        )

    # ---- sweeps ----

    def _sweep(
        self,
        name: str,
        task_filter: TaskFilter,
        rule: Callable[[Task, datetime], Notification | None],
        now: datetime,
    ) -> list[Notification]:
        tasks = self._tasks.find_tasks(task_filter)
        issued: list[Notification] = []

        for task in tasks:
            try:
                n = rule(task, now)
            except Exception:
                logger.exception("%s sweep failed for task_id=%s", name, task.id)
                continue
            if n is not None:
                issued.append(n)

        logger.info("%s sweep: candidates=%d issued=%d", name, len(tasks), len(issued))
        return issued

    def sweep_due_soon(self) -> list[Notification]:
        now = self._clock.now()
        task_filter = TaskFilter(
            status_not=TaskStatus.DONE,
            due_gte=now,
            due_lte=now + self._due_soon_window,
        )
        return self._sweep("due-soon", task_filter, self.check_due_soon, now)

    def sweep_overdue(self) -> list[Notification]:
        now = self._clock.now()
        task_filter = TaskFilter(status_not=TaskStatus.DONE, due_lt=now)
        return self._sweep("overdue", task_filter, self.check_overdue, now)

    def run_sweeps(self) -> SweepResult:
        due_soon = self.sweep_due_soon()
        overdue = self.sweep_overdue()
        return SweepResult(due_soon=len(due_soon), overdue=len(overdue))
