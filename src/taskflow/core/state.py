# src/taskflow/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from ..notifications.rules import NotificationRuleEngine
from .ports import Clock, NotificationRepo, TaskAnalyzer, TaskRepo


@dataclass
class AppState:
    """
    Everything the action helpers and commands need, wired once in bootstrap.

    Stores and the clock are protocol-typed so tests can pass in-memory fakes.
    """

    settings: object
    clock: Clock
    task_store: TaskRepo
    notification_store: NotificationRepo
    rules: NotificationRuleEngine

    analyzer: TaskAnalyzer | None = None

    # Serializes console commands against the background sweeper.
    lock: threading.RLock = field(default_factory=threading.RLock)
