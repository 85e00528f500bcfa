"""
Notification subsystem.

Components:
- notification_models.py: data structures (Notification, NotificationType, payload)
- notification_store.py: SQLite-backed storage
- rules.py: rule engine deciding what to notify and when (with dedup)
- sweeper.py: polling loop running the due-soon/overdue sweeps
- notification_api.py: user-facing read/mark/delete helpers
"""
