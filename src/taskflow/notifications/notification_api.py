# src/taskflow/notifications/notification_api.py

from __future__ import annotations

import logging
from datetime import timedelta

from ..core.state import AppState
from .notification_models import Notification, NotificationStats

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def _owned(state: AppState, notification_id: int, user_id: str) -> Notification:
    n = state.notification_store.get_notification(notification_id)
    if n is None or n.user_id != user_id:
        raise LookupError("Notification not found or unauthorized")
    return n


def get_notifications(state: AppState, user_id: str, limit: int = 50) -> list[Notification]:
    """Newest first."""
    return state.notification_store.list_notifications(user_id, limit=limit)


def get_unread_count(state: AppState, user_id: str) -> int:
    return state.notification_store.count_unread(user_id)


def mark_notification_as_read(state: AppState, user_id: str, notification_id: int) -> None:
    _owned(state, notification_id, user_id)
    state.notification_store.mark_read(notification_id)


def mark_all_as_read(state: AppState, user_id: str) -> int:
    return state.notification_store.mark_all_read(user_id)


def delete_notification(state: AppState, user_id: str, notification_id: int) -> None:
    _owned(state, notification_id, user_id)
    state.notification_store.delete_notification(notification_id)


def delete_read_notifications(state: AppState, user_id: str) -> int:
    return state.notification_store.delete_read(user_id)


def get_notification_stats(state: AppState, user_id: str) -> NotificationStats:
    return state.notification_store.stats(user_id)


def cleanup_old_notifications(state: AppState, days_old: int | None = None) -> int:
    """Delete read notifications older than `days_old` days (all users)."""
    if days_old is None:
        days_old = int(getattr(state.settings, "notification_retention_days", DEFAULT_RETENTION_DAYS))
    cutoff = state.clock.now() - timedelta(days=max(0, days_old))
    return state.notification_store.delete_read_older_than(cutoff)
