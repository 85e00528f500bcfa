# src/taskflow/notifications/notification_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class NotificationType(StrEnum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_DUE_SOON = "TASK_DUE_SOON"
    TASK_OVERDUE = "TASK_OVERDUE"
    COMMENT_ADDED = "COMMENT_ADDED"
    PROJECT_UPDATE = "PROJECT_UPDATE"
    SYSTEM = "SYSTEM"

    @classmethod
    def parse(cls, raw: Any) -> NotificationType:
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            try:
                return cls(raw.strip().upper())
            except ValueError:
                pass
        allowed = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid notification type {raw!r}; expected one of: {allowed}")


@dataclass(slots=True, frozen=True)
class NotificationPayload:
    """Unsaved notification, as built by the rule engine."""

    user_id: str
    title: str
    type: NotificationType = NotificationType.INFO
    message: str | None = None
    task_id: int | None = None
    project_id: int | None = None
    action_url: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True, frozen=True)
class Notification:
    """
    Stored notification.

    Immutable: the only change a notification ever sees is its read flag
    (done by the store) or deletion.
    """

    id: int
    user_id: str
    title: str
    type: NotificationType
    created_at: datetime
    updated_at: datetime
    read: bool = False
    message: str | None = None
    task_id: int | None = None
    project_id: int | None = None
    action_url: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class NotificationStats:
    total: int
    unread: int
    by_type: dict[NotificationType, int] = field(default_factory=dict)
