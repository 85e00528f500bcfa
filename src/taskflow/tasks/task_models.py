# src/taskflow/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


def _parse_enum(cls, raw: Any, what: str):
    if isinstance(raw, cls):
        return raw
    if isinstance(raw, str):
        try:
            return cls(raw.strip().upper())
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in cls)
    raise ValueError(f"Invalid {what} {raw!r}; expected one of: {allowed}")


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Declaration order is the progression order used for sorting
    (TODO -> IN_PROGRESS -> REVIEW -> DONE). It is not an enforced
    state machine: any status may be set directly.
    """

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"

    @property
    def order(self) -> int:
        return _STATUS_ORDER[self]

    @classmethod
    def parse(cls, raw: Any) -> TaskStatus:
        return _parse_enum(cls, raw, "task status")


class TaskPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def score(self) -> int:
        return _PRIORITY_SCORE[self]

    @classmethod
    def parse(cls, raw: Any) -> TaskPriority:
        return _parse_enum(cls, raw, "task priority")


class Urgency(StrEnum):
    """Derived classification; unlike priority it factors in the due date."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_STATUS_ORDER = {s: i for i, s in enumerate(TaskStatus)}
_PRIORITY_SCORE = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}


@dataclass(slots=True, frozen=True)
class Project:
    id: int
    name: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    color: str | None = None


@dataclass(slots=True)
class Task:
    id: int
    title: str
    status: TaskStatus
    priority: TaskPriority
    user_id: str
    created_at: datetime
    updated_at: datetime

    description: str | None = None
    due_at: datetime | None = None
    project: Project | None = None
    ai_suggestions: dict[str, Any] | None = None

    @property
    def project_id(self) -> int | None:
        return self.project.id if self.project is not None else None


@dataclass(slots=True, frozen=True)
class Comment:
    id: int
    task_id: int
    author_id: str
    content: str
    created_at: datetime
    author_name: str | None = None


@dataclass(slots=True, frozen=True)
class TaskFilter:
    """
    Query filter for TaskRepo.find_tasks.

    All conditions are ANDed; None means "no constraint".
    Due-date bounds never match tasks without a due date.
    """

    user_id: str | None = None
    status: TaskStatus | None = None
    status_not: TaskStatus | None = None
    project_id: int | None = None
    due_gte: datetime | None = None
    due_lte: datetime | None = None
    due_lt: datetime | None = None

    def matches(self, task: Task) -> bool:
        if self.user_id is not None and task.user_id != self.user_id:
            return False
        if self.status is not None and task.status != self.status:
            return False
        if self.status_not is not None and task.status == self.status_not:
            return False
        if self.project_id is not None and task.project_id != self.project_id:
            return False
        if self.due_gte is not None or self.due_lte is not None or self.due_lt is not None:
            if task.due_at is None:
                return False
            if self.due_gte is not None and task.due_at < self.due_gte:
                return False
            if self.due_lte is not None and task.due_at > self.due_lte:
                return False
            if self.due_lt is not None and task.due_at >= self.due_lt:
                return False
        return True


# Nullable task columns that update_task_fields(clear=...) may reset to NULL.
CLEARABLE_TASK_FIELDS = frozenset({"description", "due_at", "project_id"})


def check_clear_fields(clear: Iterable[str]) -> frozenset[str]:
    names = frozenset(clear)
    unknown = sorted(names - CLEARABLE_TASK_FIELDS)
    if unknown:
        allowed = ", ".join(sorted(CLEARABLE_TASK_FIELDS))
        raise ValueError(f"Cannot clear task field(s) {', '.join(unknown)}; clearable: {allowed}")
    return names


@dataclass(slots=True, frozen=True)
class ProjectDetail:
    """A project with its tasks in canonical order."""

    project: Project
    tasks: list[Task]

    @property
    def task_count(self) -> int:
        return len(self.tasks)


@dataclass(slots=True, frozen=True)
class Activity:
    """
    Audit entry for a task mutation ("task updated", "task deleted", ...).

    task_id is kept after the task itself is deleted.
    """

    id: int
    user_id: str
    action: str
    created_at: datetime
    task_id: int | None = None
    metadata: dict[str, Any] | None = None
