# src/taskflow/tasks/classifier.py

from __future__ import annotations

"""
Task classification and statistics.

Pure functions over a collection of Task records:
- counts and groupings by status / priority,
- date-relative views (overdue, due today, upcoming),
- urgency classification and the canonical task order,
- a combined analytics summary for dashboards.

Nothing here performs I/O or mutates its inputs. Every date-relative
function takes `now` explicitly; "day" boundaries are midnight in now's
timezone.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from .task_models import Task, TaskPriority, TaskStatus, Urgency

DEFAULT_UPCOMING_DAYS = 7


@dataclass(slots=True, frozen=True)
class TaskStats:
    """
    Status counts.

    REVIEW tasks are part of `total` but have no bucket of their own,
    so todo + in_progress + done may be less than total.
    """

    total: int
    todo: int
    in_progress: int
    done: int


@dataclass(slots=True, frozen=True)
class TaskAnalytics:
    stats: TaskStats
    overdue: int
    due_today: int
    upcoming: int
    completion_rate: int
    high_priority_count: int
    # total / 7: a display heuristic, not a real creation rate.
    average_tasks_per_day: float


@dataclass(slots=True, frozen=True)
class DayProductivity:
    day: date
    label: str
    completed: int
    total: int


def start_of_day(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)


def _local_date(ts: datetime, now: datetime) -> date:
    return ts.astimezone(now.tzinfo).date() if now.tzinfo is not None else ts.date()


def days_until(due_at: datetime, now: datetime) -> int:
    """Calendar-day difference (due date minus today) in now's timezone."""
    return (_local_date(due_at, now) - now.date()).days


def priority_score(priority: TaskPriority) -> int:
    return priority.score


def compute_stats(tasks: Iterable[Task]) -> TaskStats:
    total = todo = in_progress = done = 0
    for task in tasks:
        total += 1
        if task.status == TaskStatus.TODO:
            todo += 1
        elif task.status == TaskStatus.IN_PROGRESS:
            in_progress += 1
        elif task.status == TaskStatus.DONE:
            done += 1
    return TaskStats(total=total, todo=todo, in_progress=in_progress, done=done)


def group_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, list[Task]]:
    groups: dict[TaskStatus, list[Task]] = {s: [] for s in TaskStatus}
    for task in tasks:
        groups[task.status].append(task)
    return groups


def group_by_priority(tasks: Iterable[Task]) -> dict[TaskPriority, list[Task]]:
    groups: dict[TaskPriority, list[Task]] = {p: [] for p in TaskPriority}
    for task in tasks:
        groups[task.priority].append(task)
    return groups


def get_overdue_tasks(tasks: Iterable[Task], now: datetime) -> list[Task]:
    return [
        t
        for t in tasks
        if t.due_at is not None and t.status != TaskStatus.DONE and t.due_at < now
    ]


def get_tasks_due_today(tasks: Iterable[Task], now: datetime) -> list[Task]:
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    return [
        t
        for t in tasks
        if t.due_at is not None and t.status != TaskStatus.DONE and today <= t.due_at < tomorrow
    ]


def get_upcoming_tasks(
    tasks: Iterable[Task],
    now: datetime,
    window_days: int = DEFAULT_UPCOMING_DAYS,
) -> list[Task]:
    horizon = now + timedelta(days=window_days)
    out = [
        t
        for t in tasks
        if t.due_at is not None and t.status != TaskStatus.DONE and now <= t.due_at <= horizon
    ]
    out.sort(key=lambda t: t.due_at)  # type: ignore[arg-type, return-value]
    return out


def get_completion_rate(tasks: Sequence[Task]) -> int:
    """Percentage of DONE tasks, rounded half up; 0 for an empty collection."""
    total = len(tasks)
    if total == 0:
        return 0
    done = sum(1 for t in tasks if t.status == TaskStatus.DONE)
    # Integer half-up rounding of 100 * done / total.
    return (200 * done + total) // (2 * total)


def _sort_key(task: Task) -> tuple[int, int, int, float, float]:
    due_missing = 1 if task.due_at is None else 0
    due_ts = task.due_at.timestamp() if task.due_at is not None else 0.0
    return (
        task.status.order,
        -task.priority.score,
        due_missing,
        due_ts,
        -task.created_at.timestamp(),
    )


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    """
    Canonical task order:
    1. status progression (TODO, IN_PROGRESS, REVIEW, DONE)
    2. priority, most severe first
    3. due date ascending, tasks with a due date before tasks without
    4. newest created first

    sorted() is stable, so fully tied tasks keep their input order.
    """
    return sorted(tasks, key=_sort_key)


def get_task_urgency(task: Task, now: datetime) -> Urgency:
    if task.due_at is None:
        return Urgency.HIGH if task.priority == TaskPriority.URGENT else Urgency.LOW

    days = days_until(task.due_at, now)

    if days <= 0:
        # Overdue or due today.
        return Urgency.CRITICAL
    if days <= 2 and task.priority in (TaskPriority.HIGH, TaskPriority.URGENT):
        return Urgency.HIGH
    if days <= 7:
        return Urgency.MEDIUM
    return Urgency.LOW


def filter_tasks(tasks: Iterable[Task], query: str) -> list[Task]:
    """Case-insensitive search over title, description, priority and project name."""
    if not query or not query.strip():
        return list(tasks)

    q = query.lower()
    out: list[Task] = []
    for t in tasks:
        fields = [t.title, t.description or "", t.priority.value]
        if t.project is not None:
            fields.append(t.project.name)
        if any(q in f.lower() for f in fields):
            out.append(t)
    return out


def generate_task_analytics(tasks: Sequence[Task], now: datetime) -> TaskAnalytics:
    stats = compute_stats(tasks)
    by_priority = group_by_priority(tasks)
    total = len(tasks)

    return TaskAnalytics(
        stats=stats,
        overdue=len(get_overdue_tasks(tasks, now)),
        due_today=len(get_tasks_due_today(tasks, now)),
        upcoming=len(get_upcoming_tasks(tasks, now)),
        completion_rate=get_completion_rate(tasks),
        high_priority_count=len(by_priority[TaskPriority.HIGH]) + len(by_priority[TaskPriority.URGENT]),
        average_tasks_per_day=round(total / 7, 1) if total else 0.0,
    )


def calculate_weekly_productivity(tasks: Sequence[Task], now: datetime) -> list[DayProductivity]:
    """
    Per-day figures for the Monday-start week containing `now`.

    completed: DONE tasks last updated on that day.
    total: tasks created on or before the end of that day.
    """
    week_start = start_of_day(now) - timedelta(days=now.weekday())
    out: list[DayProductivity] = []

    for i in range(7):
        day_start = week_start + timedelta(days=i)
        day_end = day_start + timedelta(days=1)

        completed = sum(
            1
            for t in tasks
            if t.status == TaskStatus.DONE and day_start <= t.updated_at < day_end
        )
        total = sum(1 for t in tasks if t.created_at < day_end)

        out.append(
            DayProductivity(
                day=day_start.date(),
                label=day_start.strftime("%a"),
                completed=completed,
                total=total,
            )
        )
    return out


def format_due_date(due_at: datetime | None, now: datetime) -> str:
    if due_at is None:
        return "No due date"

    days = days_until(due_at, now)
    if days < 0:
        n = abs(days)
        return f"Overdue by {n} day{'s' if n != 1 else ''}"
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    if days <= 7:
        return f"Due in {days} days"

    local = due_at.astimezone(now.tzinfo) if now.tzinfo is not None else due_at
    return f"{local.strftime('%b')} {local.day}, {local.year}"
