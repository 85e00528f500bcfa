# src/taskflow/llm/offline.py

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..tasks.classifier import sort_tasks
from ..tasks.task_models import Task, TaskStatus


class OfflineTaskAnalyzer:
    """
    Offline deterministic analyzer used when no external API is configured.

    Behavior:
    - analyze_task -> a fixed-shape analysis derived from the title only
    - daily_recommendations -> the first three open tasks in canonical order
    - plan_project -> a generic three-phase plan named after the project
    """

    def analyze_task(self, title: str, description: str | None = None) -> dict[str, Any]:
        return {
            "priority": "medium",
            "estimatedTime": "unknown",
            "subtasks": [],
            "tips": [f"Break \"{title.strip()}\" into smaller steps."],
            "category": "general",
            "offline": True,
        }

    def daily_recommendations(self, tasks: Iterable[Task]) -> list[str]:
        open_tasks = [t for t in tasks if t.status != TaskStatus.DONE]
        return [
            f"{i}. {t.title} ({t.priority.value})"
            for i, t in enumerate(sort_tasks(open_tasks)[:3], start=1)
        ]

    def plan_project(self, name: str, description: str | None = None) -> dict[str, Any]:
        clean = name.strip()
        return {
            "phases": [
                {"name": "Planning", "tasks": [f"Define the scope of {clean}", "List milestones"]},
                {"name": "Execution", "tasks": [f"Work through the {clean} milestones"]},
                {"name": "Review", "tasks": ["Check the results", "Write down lessons learned"]},
            ],
            "offline": True,
        }
