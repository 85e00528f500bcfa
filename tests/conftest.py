# tests/conftest.py

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskflow.core.state import AppState
from taskflow.notifications.notification_store import NotificationStore
from taskflow.notifications.rules import NotificationRuleEngine
from taskflow.tasks.task_store import TaskStore

from .fakes import FixedClock, InMemoryNotificationRepo, InMemoryTaskRepo


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the action helpers.

    A SimpleNamespace rather than the real config keeps tests isolated from
    the environment and .env files.
    """
    return SimpleNamespace(
        app_name="taskflow-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        notifications_db_path=tmp_path / "notifications.sqlite3",
        default_user_id="u1",
        sweeper_enabled=False,
        sweep_interval_seconds=3600.0,
        due_soon_hours=24,
        upcoming_window_days=7,
        notification_retention_days=30,
        guard_repeat_completion=True,
        ai_task_analysis=False,
        llm_models=["test-model"],
    )


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def task_repo(clock: FixedClock) -> InMemoryTaskRepo:
    return InMemoryTaskRepo(clock=clock)


@pytest.fixture()
def notification_repo(clock: FixedClock) -> InMemoryNotificationRepo:
    return InMemoryNotificationRepo(clock)


@pytest.fixture()
def engine(
    task_repo: InMemoryTaskRepo,
    notification_repo: InMemoryNotificationRepo,
    clock: FixedClock,
) -> NotificationRuleEngine:
    return NotificationRuleEngine(task_repo, notification_repo, clock)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    clock: FixedClock,
    task_repo: InMemoryTaskRepo,
    notification_repo: InMemoryNotificationRepo,
    engine: NotificationRuleEngine,
) -> AppState:
    """AppState wired with in-memory fakes."""
    return AppState(
        settings=settings,
        clock=clock,
        task_store=task_repo,
        notification_store=notification_repo,
        rules=engine,
    )


@pytest.fixture()
def sqlite_state(settings: SimpleNamespace, clock: FixedClock) -> AppState:
    """
    AppState wired with the real SQLite stores (per-test files).

    Used where store behavior (filters, timestamps, dedup queries) is part
    of what is being tested.
    """
    task_store = TaskStore(settings.tasks_db_path, clock=clock)
    notification_store = NotificationStore(settings.notifications_db_path, clock=clock)
    rules = NotificationRuleEngine(
        task_store,
        notification_store,
        clock,
        due_soon_window=timedelta(hours=settings.due_soon_hours),
    )
    return AppState(
        settings=settings,
        clock=clock,
        task_store=task_store,
        notification_store=notification_store,
        rules=rules,
    )
