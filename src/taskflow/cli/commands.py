# src/taskflow/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime, time
from typing import cast

from ..core.state import AppState
from ..llm.client import friendly_llm_error_message
from ..notifications import notification_api
from ..notifications.sweeper import run_sweeps_once
from ..tasks import task_api
from ..tasks.classifier import (
    format_due_date,
    get_overdue_tasks,
    get_task_urgency,
    get_tasks_due_today,
    get_upcoming_tasks,
)
from ..tasks.task_models import Task, TaskFilter, TaskPriority, TaskStatus

CommandEmitter = Callable[[str], None]
CommandHandler3 = Callable[[AppState, list[str], str | None], str]
CommandHandler4 = Callable[[AppState, list[str], str | None, CommandEmitter | None], str]
CommandHandler = CommandHandler3 | CommandHandler4

logger = logging.getLogger(__name__)

MAX_UPCOMING_DAYS = 3650


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 4

        try:
            if nparams >= 4:
                h4 = cast(CommandHandler4, handler)
                return h4(state, args, user_id, emit)

            h3 = cast(CommandHandler3, handler)
            return h3(state, args, user_id)
        except (ValueError, LookupError) as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _user(state: AppState, user_id: str | None) -> str:
    return user_id or str(getattr(state.settings, "default_user_id", "local"))


def _parse_id(raw: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError:
        raise ValueError(f"Not an id: {raw!r}") from None


def _parse_due(raw: str, state: AppState) -> datetime:
    """YYYY-MM-DD (end of that day) or YYYY-MM-DDTHH:MM, in the clock's timezone."""
    now = state.clock.now()
    try:
        if "T" in raw:
            due = datetime.fromisoformat(raw)
        else:
            due = datetime.combine(datetime.fromisoformat(raw).date(), time(23, 59))
    except ValueError:
        raise ValueError(f"Bad due date {raw!r}; use YYYY-MM-DD or YYYY-MM-DDTHH:MM") from None
    if due.tzinfo is None:
        due = due.replace(tzinfo=now.tzinfo)
    return due


def _format_task(task: Task, now: datetime) -> str:
    urgency = get_task_urgency(task, now).value
    project = f" [{task.project.name}]" if task.project is not None else ""
    return (
        f"#{task.id} {task.status.value:<11} {task.priority.value:<6} "
        f"({urgency}) {task.title}{project} - {format_due_date(task.due_at, now)}"
    )


def _format_list(title: str, tasks: list[Task], now: datetime) -> str:
    if not tasks:
        return f"{title}: none."
    lines = [f"{title} ({len(tasks)}):"]
    lines.extend(f"  {_format_task(t, now)}" for t in tasks)
    return "\n".join(lines)


def _user_tasks(state: AppState, user_id: str) -> list[Task]:
    return state.task_store.find_tasks(TaskFilter(user_id=user_id))


def cmd_help(state: AppState, args: list[str], user_id: str | None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], user_id: str | None) -> str:
    s = state.settings
    uid = _user(state, user_id)
    ai = "ON" if getattr(s, "ai_task_analysis", False) else "OFF"
    sweeper = "ON" if getattr(s, "sweeper_enabled", False) else "OFF"
    return (
        "Status:\n"
        f"  User: {uid}\n"
        f"  Tasks: {state.task_store.count_tasks(uid)}\n"
        f"  Unread notifications: {notification_api.get_unread_count(state, uid)}\n"
        f"  Sweeper: {sweeper} (every {getattr(s, 'sweep_interval_seconds', 0):.0f}s)\n"
        f"  AI task analysis: {ai}"
    )


def cmd_tasks(state: AppState, args: list[str], user_id: str | None) -> str:
    uid = _user(state, user_id)
    return _format_list("Tasks", task_api.list_tasks(state, uid), state.clock.now())


def cmd_add(state: AppState, args: list[str], user_id: str | None) -> str:
    """
    /add [!PRIORITY] [@DUE] [+PROJECT_ID] title words...
    """
    priority = TaskPriority.MEDIUM
    due_at = None
    project_id = None
    words: list[str] = []

    for a in args:
        if a.startswith("!") and len(a) > 1:
            priority = TaskPriority.parse(a[1:])
        elif a.startswith("@") and len(a) > 1:
            due_at = _parse_due(a[1:], state)
        elif a.startswith("+") and len(a) > 1:
            project_id = _parse_id(a[1:])
        else:
            words.append(a)

    if not words:
        return "Usage: /add [!PRIORITY] [@YYYY-MM-DD[THH:MM]] [+PROJECT_ID] title"

    task = task_api.create_task(
        state,
        user_id=_user(state, user_id),
        title=" ".join(words),
        priority=priority,
        due_at=due_at,
        project_id=project_id,
    )
    return f"Created {_format_task(task, state.clock.now())}"


def cmd_set(state: AppState, args: list[str], user_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /set <task_id> <TODO|IN_PROGRESS|REVIEW|DONE>"
    task = task_api.update_task_status(
        state,
        _parse_id(args[0]),
        user_id=_user(state, user_id),
        status=TaskStatus.parse(args[1]),
    )
    return f"Updated {_format_task(task, state.clock.now())}"


def cmd_due(state: AppState, args: list[str], user_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /due <task_id> <YYYY-MM-DD[THH:MM]|none>"
    task_id = _parse_id(args[0])
    uid = _user(state, user_id)
    if args[1].lower() == "none":
        task = task_api.update_task(state, task_id, user_id=uid, clear=["due_at"])
    else:
        task = task_api.update_task(state, task_id, user_id=uid, due_at=_parse_due(args[1], state))
    return f"Updated {_format_task(task, state.clock.now())}"


def cmd_comment(state: AppState, args: list[str], user_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /comment <task_id> text..."
    uid = _user(state, user_id)
    comment = task_api.add_comment(
        state,
        _parse_id(args[0]),
        author_id=uid,
        author_name=uid,
        content=" ".join(args[1:]),
    )
    return f"Comment #{comment.id} added to task #{comment.task_id}."


def cmd_stats(state: AppState, args: list[str], user_id: str | None) -> str:
    a = task_api.get_dashboard(state, _user(state, user_id))
    return (
        "Dashboard:\n"
        f"  Total: {a.stats.total} (todo {a.stats.todo}, in progress {a.stats.in_progress}, done {a.stats.done})\n"
        f"  Completion rate: {a.completion_rate}%\n"
        f"  Overdue: {a.overdue}  Due today: {a.due_today}  Upcoming: {a.upcoming}\n"
        f"  High priority: {a.high_priority_count}\n"
        f"  Avg tasks/day: {a.average_tasks_per_day:.1f}"
    )


def cmd_overdue(state: AppState, args: list[str], user_id: str | None) -> str:
    now = state.clock.now()
    tasks = get_overdue_tasks(_user_tasks(state, _user(state, user_id)), now)
    return _format_list("Overdue", tasks, now)


def cmd_today(state: AppState, args: list[str], user_id: str | None) -> str:
    now = state.clock.now()
    tasks = get_tasks_due_today(_user_tasks(state, _user(state, user_id)), now)
    return _format_list("Due today", tasks, now)


def cmd_upcoming(state: AppState, args: list[str], user_id: str | None) -> str:
    now = state.clock.now()
    default_days = int(getattr(state.settings, "upcoming_window_days", 7))
    days = int(args[0]) if args and args[0].isdigit() else default_days
    if days > MAX_UPCOMING_DAYS:
        raise ValueError(f"Upcoming window must be at most {MAX_UPCOMING_DAYS} days")
    tasks = get_upcoming_tasks(_user_tasks(state, _user(state, user_id)), now, window_days=days)
    return _format_list(f"Upcoming ({days}d)", tasks, now)


def cmd_search(state: AppState, args: list[str], user_id: str | None) -> str:
    if not args:
        return "Usage: /search query"
    query = " ".join(args)
    tasks = task_api.search_tasks(state, _user(state, user_id), query)
    return _format_list(f"Matches for {query!r}", tasks, state.clock.now())


def cmd_projects(state: AppState, args: list[str], user_id: str | None) -> str:
    details = task_api.list_projects(state, _user(state, user_id))
    if not details:
        return "No projects."
    lines = [f"Projects ({len(details)}):"]
    for d in details:
        done = sum(1 for t in d.tasks if t.status == TaskStatus.DONE)
        lines.append(f"  +{d.project.id} {d.project.name} - {d.task_count} task(s), {done} done")
    return "\n".join(lines)


def cmd_project(state: AppState, args: list[str], user_id: str | None) -> str:
    if not args:
        return "Usage: /project <project_id>"
    detail = task_api.get_project(state, _parse_id(args[0]), user_id=_user(state, user_id))
    head = f"Project +{detail.project.id} {detail.project.name}"
    if detail.project.description:
        head += f": {detail.project.description}"
    return head + "\n" + _format_list("Tasks", detail.tasks, state.clock.now())


def cmd_newproject(state: AppState, args: list[str], user_id: str | None) -> str:
    if not args:
        return "Usage: /newproject name"
    project = task_api.create_project(state, user_id=_user(state, user_id), name=" ".join(args))
    return f"Created project +{project.id} {project.name}"


def cmd_rmproject(state: AppState, args: list[str], user_id: str | None) -> str:
    if not args:
        return "Usage: /rmproject <project_id>"
    project_id = _parse_id(args[0])
    task_api.delete_project(state, project_id, user_id=_user(state, user_id))
    return f"Deleted project +{project_id}; its tasks were kept."


def cmd_activity(state: AppState, args: list[str], user_id: str | None) -> str:
    task_id = _parse_id(args[0]) if args else None
    items = task_api.get_activity(state, _user(state, user_id), task_id=task_id)
    if not items:
        return "No activity."
    now = state.clock.now()
    lines = ["Recent activity:"]
    for a in items:
        preview = (a.metadata or {}).get("task_preview", "")
        when = a.created_at.astimezone(now.tzinfo).strftime("%Y-%m-%d %H:%M")
        lines.append(f"  {when} {a.action} #{a.task_id} {preview}".rstrip())
    return "\n".join(lines)


def cmd_notif(state: AppState, args: list[str], user_id: str | None) -> str:
    uid = _user(state, user_id)
    show_all = bool(args) and args[0].lower() == "all"
    items = notification_api.get_notifications(state, uid)
    if not show_all:
        items = [n for n in items if not n.read]
    if not items:
        return "No notifications." if show_all else "No unread notifications."

    lines = ["Notifications:"]
    for n in items:
        mark = " " if n.read else "*"
        msg = f" - {n.message}" if n.message else ""
        lines.append(f" {mark}#{n.id} [{n.type.value}] {n.title}{msg}")
    return "\n".join(lines)


def cmd_read(state: AppState, args: list[str], user_id: str | None) -> str:
    if not args:
        return "Usage: /read <notification_id|all>"
    uid = _user(state, user_id)
    if args[0].lower() == "all":
        n = notification_api.mark_all_as_read(state, uid)
        return f"Marked {n} notification(s) as read."
    notification_api.mark_notification_as_read(state, uid, _parse_id(args[0]))
    return "Marked as read."


def cmd_sweep(state: AppState, args: list[str], user_id: str | None) -> str:
    result = run_sweeps_once(state.rules, state.lock)
    return f"Sweep done: {result.due_soon} due-soon, {result.overdue} overdue notification(s)."


def cmd_plan(
    state: AppState,
    args: list[str],
    user_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    if state.analyzer is None:
        return "No task analyzer configured."

    if emit:
        with contextlib.suppress(Exception):
            emit("[AI] Asking for today's focus...")

    tasks = task_api.list_tasks(state, _user(state, user_id))
    try:
        lines = state.analyzer.daily_recommendations(tasks)
    except RuntimeError as e:
        logger.info("Daily recommendations failed: %s", e)
        return f"[AI] {friendly_llm_error_message(e)}"
    if not lines:
        return "Nothing to recommend."
    return "Focus today:\n" + "\n".join(f"  {line}" for line in lines)


def cmd_projplan(
    state: AppState,
    args: list[str],
    user_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    if not args:
        return "Usage: /projplan <project_id>"
    if state.analyzer is None:
        return "No task analyzer configured."
    project_id = _parse_id(args[0])

    if emit:
        with contextlib.suppress(Exception):
            emit("[AI] Drafting a project plan...")

    try:
        plan = task_api.generate_project_plan(state, project_id, user_id=_user(state, user_id))
    except RuntimeError as e:
        logger.info("Project plan failed project_id=%s: %s", project_id, e)
        return f"[AI] {friendly_llm_error_message(e)}"

    lines = [f"Plan for project +{project_id}:"]
    for i, phase in enumerate(plan["phases"], start=1):
        if not isinstance(phase, dict):
            continue
        lines.append(f"  {i}. {phase.get('name') or 'Phase'}")
        lines.extend(f"     - {task}" for task in phase.get("tasks") or [])
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show current user, counters and switches.")
registry.register("tasks", cmd_tasks, help_text="List tasks in canonical order.", aliases=["ls"])
registry.register(
    "add", cmd_add, help_text="Create a task: /add [!PRIORITY] [@DUE] [+PROJECT_ID] title."
)
registry.register("set", cmd_set, help_text="Change status: /set <id> <STATUS>.")
registry.register("due", cmd_due, help_text="Set or remove a due date: /due <id> <DATE|none>.")
registry.register("comment", cmd_comment, help_text="Comment on a task: /comment <id> text.")
registry.register("stats", cmd_stats, help_text="Dashboard analytics.")
registry.register("overdue", cmd_overdue, help_text="List overdue tasks.")
registry.register("today", cmd_today, help_text="List tasks due today.")
registry.register("upcoming", cmd_upcoming, help_text="List upcoming tasks: /upcoming [days].")
registry.register("search", cmd_search, help_text="Search tasks: /search query.")
registry.register("projects", cmd_projects, help_text="List projects with task counts.")
registry.register("project", cmd_project, help_text="Show a project and its tasks: /project <id>.")
registry.register("newproject", cmd_newproject, help_text="Create a project: /newproject name.")
registry.register("rmproject", cmd_rmproject, help_text="Delete a project, keeping its tasks: /rmproject <id>.")
registry.register("activity", cmd_activity, help_text="Recent task activity: /activity [task_id].")
registry.register("notif", cmd_notif, help_text="Show notifications: /notif [all].")
registry.register("read", cmd_read, help_text="Mark notifications read: /read <id|all>.")
registry.register("sweep", cmd_sweep, help_text="Run due-soon/overdue sweeps now.")
registry.register("plan", cmd_plan, help_text="AI recommendations for today.")
registry.register("projplan", cmd_projplan, help_text="AI phase plan for a project: /projplan <id>.")
