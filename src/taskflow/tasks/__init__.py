"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Project, Comment, enums, TaskFilter)
- task_store.py: SQLite-backed storage + query/update helpers
- classifier.py: pure statistics, groupings, urgency and canonical order
- task_api.py: task/project/comment actions used by the rest of the app
"""
