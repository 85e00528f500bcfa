# src/taskflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (clock/stores/rules/analyzer).
"""

from __future__ import annotations

import logging
from datetime import timedelta

from ..config import get_settings
from ..core.clock import SystemClock
from ..core.ports import TaskAnalyzer
from ..core.state import AppState
from ..llm.client import OpenAITaskAnalyzer
from ..llm.offline import OfflineTaskAnalyzer
from ..notifications.notification_store import NotificationStore
from ..notifications.rules import NotificationRuleEngine
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.notifications_db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_analyzer(settings) -> TaskAnalyzer:
    try:
        return OpenAITaskAnalyzer(settings)
    except Exception as e:
        # Fallback for demos / local runs without external services.
        logger.info("AI analyzer unavailable (%s); using offline analyzer.", e)
        return OfflineTaskAnalyzer()


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    clock = SystemClock.from_name(getattr(settings, "timezone", None))
    task_store = TaskStore(settings.tasks_db_path, clock=clock)
    notification_store = NotificationStore(settings.notifications_db_path, clock=clock)

    rules = NotificationRuleEngine(
        task_store,
        notification_store,
        clock,
        due_soon_window=timedelta(hours=max(1, int(settings.due_soon_hours))),
        guard_repeat_completion=bool(settings.guard_repeat_completion),
    )

    return AppState(
        settings=settings,
        clock=clock,
        task_store=task_store,
        notification_store=notification_store,
        rules=rules,
        analyzer=_build_analyzer(settings),
    )
