# src/taskflow/tasks/task_api.py

from __future__ import annotations

"""
Task/project/comment actions used by the console and any other front end.

Each mutation persists first, then asks the rule engine for notifications
and writes the activity log. Failures of those two side effects are logged
and swallowed here: a task update or a posted comment must succeed even
when the notification or the activity entry cannot be stored.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..core.state import AppState
from ..notifications.rules import TaskEvent
from .classifier import TaskAnalytics, filter_tasks, generate_task_analytics, sort_tasks
from .task_models import (
    Activity,
    Comment,
    Project,
    ProjectDetail,
    Task,
    TaskFilter,
    TaskPriority,
    TaskStatus,
    check_clear_fields,
)
from .task_store import MAX_TITLE_LENGTH

logger = logging.getLogger(__name__)


def _notify(state: AppState, event: TaskEvent, **kwargs: Any) -> None:
    """Best-effort notification: never raises."""
    try:
        state.rules.dispatch(event, **kwargs)
    except Exception:
        logger.exception("Failed to create notification for event=%s", event.value)


def _record_activity(state: AppState, action: str, task: Task, **extra: Any) -> None:
    """Best-effort activity entry for a task mutation."""
    metadata = {"task_id": task.id, "task_preview": task.title, **extra}
    try:
        state.task_store.add_activity(
            user_id=task.user_id, action=action, task_id=task.id, metadata=metadata
        )
    except Exception:
        logger.exception("Failed to record activity action=%r task_id=%s", action, task.id)


def _validate_title(title: str) -> str:
    clean = (title or "").strip()
    if not clean:
        raise ValueError("Title is required")
    if len(clean) > MAX_TITLE_LENGTH:
        raise ValueError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return clean


def _owned_task(state: AppState, task_id: int, user_id: str) -> Task:
    task = state.task_store.get_task(task_id)
    if task is None or task.user_id != user_id:
        raise LookupError("Task not found or unauthorized")
    return task


def _owned_project(state: AppState, project_id: int, user_id: str) -> Project:
    project = state.task_store.get_project(project_id)
    if project is None or project.user_id != user_id:
        raise LookupError("Project not found or unauthorized")
    return project


def _analyze(state: AppState, title: str, description: str | None) -> dict[str, Any] | None:
    if state.analyzer is None or not getattr(state.settings, "ai_task_analysis", False):
        return None
    try:
        return state.analyzer.analyze_task(title, description)
    except Exception:
        # Task creation continues without suggestions.
        logger.exception("AI task analysis failed title=%r", title)
        return None


# ---- tasks ----


def create_task(
    state: AppState,
    *,
    user_id: str,
    title: str,
    description: str | None = None,
    priority: TaskPriority | str = TaskPriority.MEDIUM,
    status: TaskStatus | str = TaskStatus.TODO,
    project_id: int | None = None,
    due_at: datetime | None = None,
) -> Task:
    clean_title = _validate_title(title)
    priority = TaskPriority.parse(priority)
    status = TaskStatus.parse(status)
    if project_id is not None:
        _owned_project(state, project_id, user_id)

    suggestions = _analyze(state, clean_title, description)

    task = state.task_store.add_task(
        user_id=user_id,
        title=clean_title,
        description=description,
        status=status,
        priority=priority,
        due_at=due_at,
        project_id=project_id,
        ai_suggestions=suggestions,
    )
    logger.info("Task created id=%s user=%s", task.id, user_id)

    _notify(state, TaskEvent.TASK_CREATED, task=task)
    return task


def update_task_status(
    state: AppState,
    task_id: int,
    *,
    user_id: str,
    status: TaskStatus | str,
) -> Task:
    return update_task(state, task_id, user_id=user_id, status=status)


def update_task(
    state: AppState,
    task_id: int,
    *,
    user_id: str,
    title: str | None = None,
    description: str | None = None,
    priority: TaskPriority | str | None = None,
    status: TaskStatus | str | None = None,
    project_id: int | None = None,
    due_at: datetime | None = None,
    clear: Iterable[str] = (),
) -> Task:
    """
    Update selected fields of a task owned by user_id.

    None means "leave unchanged". To remove a due date, description or
    project pass its field name in `clear` ("due_at", "description",
    "project_id").

    When `status` is given the rule engine sees the transition (old -> new),
    including a same-status save; whether that notifies is the engine's call.
    """
    clear = check_clear_fields(clear)
    before = _owned_task(state, task_id, user_id)

    new_status = TaskStatus.parse(status) if status is not None else None
    new_priority = TaskPriority.parse(priority) if priority is not None else None
    if project_id is not None:
        _owned_project(state, project_id, user_id)

    new_title = _validate_title(title) if title is not None else None
    updated = state.task_store.update_task_fields(
        task_id,
        title=new_title,
        description=description,
        status=new_status,
        priority=new_priority,
        project_id=project_id,
        due_at=due_at,
        clear=clear,
    )
    if updated is None:
        raise LookupError("Task not found or unauthorized")

    only_status = not clear and all(
        v is None for v in (new_title, description, new_priority, project_id, due_at)
    )
    if new_status is not None and only_status:
        _record_activity(state, "task status updated", updated, status=new_status.value)
    else:
        _record_activity(state, "task updated", updated)

    if new_status is not None:
        logger.info("Task %s status %s -> %s", task_id, before.status.value, new_status.value)
        _notify(
            state,
            TaskEvent.STATUS_CHANGED,
            task=updated,
            old_status=before.status,
            new_status=new_status,
        )
    return updated


def delete_task(state: AppState, task_id: int, *, user_id: str) -> None:
    task = _owned_task(state, task_id, user_id)
    state.task_store.delete_task(task_id)
    logger.info("Task deleted id=%s user=%s", task_id, user_id)
    _record_activity(state, "task deleted", task)


def get_activity(
    state: AppState,
    user_id: str,
    *,
    task_id: int | None = None,
    limit: int = 20,
) -> list[Activity]:
    """Recent activity of a user, newest first; optionally for one task."""
    if limit < 1:
        raise ValueError("limit must be positive")
    return state.task_store.list_activities(user_id, task_id=task_id, limit=limit)


def list_tasks(state: AppState, user_id: str) -> list[Task]:
    """All tasks of a user in canonical order."""
    return sort_tasks(state.task_store.find_tasks(TaskFilter(user_id=user_id)))


def search_tasks(state: AppState, user_id: str, query: str) -> list[Task]:
    return filter_tasks(list_tasks(state, user_id), query)


def get_dashboard(state: AppState, user_id: str) -> TaskAnalytics:
    # Storage errors propagate: there are no meaningful statistics without task data.
    tasks = state.task_store.find_tasks(TaskFilter(user_id=user_id))
    return generate_task_analytics(tasks, state.clock.now())


# ---- comments ----


def add_comment(
    state: AppState,
    task_id: int,
    *,
    author_id: str,
    content: str,
    author_name: str | None = None,
) -> Comment:
    if not content or not content.strip():
        raise ValueError("Comment content is required")

    task = state.task_store.get_task(task_id)
    if task is None:
        raise LookupError("Task not found")

    comment = state.task_store.add_comment(
        task_id=task_id,
        author_id=author_id,
        content=content,
        author_name=author_name,
    )

    _notify(
        state,
        TaskEvent.COMMENT_ADDED,
        task=task,
        author_id=author_id,
        content=comment.content,
        author_name=author_name,
    )
    return comment


def list_comments(state: AppState, task_id: int) -> list[Comment]:
    return state.task_store.list_comments(task_id)


# ---- projects ----


def create_project(
    state: AppState,
    *,
    user_id: str,
    name: str,
    description: str | None = None,
    color: str | None = None,
) -> Project:
    return state.task_store.add_project(
        user_id=user_id, name=name, description=description, color=color
    )


def update_project(
    state: AppState,
    project_id: int,
    *,
    user_id: str,
    name: str | None = None,
    description: str | None = None,
    color: str | None = None,
) -> Project:
    _owned_project(state, project_id, user_id)
    project = state.task_store.update_project(
        project_id, name=name, description=description, color=color
    )
    if project is None:
        raise LookupError("Project not found or unauthorized")

    _notify(
        state,
        TaskEvent.PROJECT_UPDATED,
        project=project,
        message=f'Project "{project.name}" has been updated',
    )
    return project


def list_projects(state: AppState, user_id: str) -> list[ProjectDetail]:
    """Projects of a user, newest first, each with its tasks in canonical order."""
    by_project: dict[int, list[Task]] = {}
    for task in state.task_store.find_tasks(TaskFilter(user_id=user_id)):
        if task.project_id is not None:
            by_project.setdefault(task.project_id, []).append(task)
    return [
        ProjectDetail(project=p, tasks=sort_tasks(by_project.get(p.id, [])))
        for p in state.task_store.list_projects(user_id)
    ]


def get_project(state: AppState, project_id: int, *, user_id: str) -> ProjectDetail:
    project = _owned_project(state, project_id, user_id)
    tasks = state.task_store.find_tasks(TaskFilter(user_id=user_id, project_id=project_id))
    return ProjectDetail(project=project, tasks=sort_tasks(tasks))


def delete_project(state: AppState, project_id: int, *, user_id: str) -> None:
    """Delete a project owned by user_id; its tasks stay, without a project."""
    _owned_project(state, project_id, user_id)
    state.task_store.delete_project(project_id)
    logger.info("Project deleted id=%s user=%s", project_id, user_id)


def generate_project_plan(state: AppState, project_id: int, *, user_id: str) -> dict[str, Any]:
    """
    Ask the analyzer to break a project into phases of tasks.

    Returns {"phases": [{"name": ..., "tasks": [...]}, ...]}; nothing is stored.
    Analyzer failures propagate as RuntimeError.
    """
    project = _owned_project(state, project_id, user_id)
    if state.analyzer is None:
        raise RuntimeError("No task analyzer configured.")
    plan = state.analyzer.plan_project(project.name, project.description)
    logger.info("Project plan generated project_id=%s phases=%d", project_id, len(plan["phases"]))
    return plan
