# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest

from taskflow.tasks.task_models import TaskFilter, TaskPriority, TaskStatus
from taskflow.tasks.task_store import TaskStore

from .fakes import T0, FixedClock


def test_task_add_get_update_delete(tmp_path: Path) -> None:
    clock = FixedClock()
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=clock)

    project = store.add_project(user_id="u1", name="Launch", color="#ff0000")
    task = store.add_task(
        user_id="u1",
        title="  Write post  ",
        priority=TaskPriority.HIGH,
        due_at=T0 + timedelta(days=1),
        project_id=project.id,
        ai_suggestions={"subtasks": ["outline", "draft"]},
    )

    assert task.id > 0
    assert task.title == "Write post"
    assert task.status == TaskStatus.TODO
    assert task.due_at == T0 + timedelta(days=1)
    assert task.created_at == T0
    assert task.project is not None
    assert task.project.name == "Launch"
    assert task.project_id == project.id
    assert task.ai_suggestions == {"subtasks": ["outline", "draft"]}

    clock.advance(hours=1)
    updated = store.update_task_fields(task.id, status=TaskStatus.DONE, description="shipped")
    assert updated is not None
    assert updated.status == TaskStatus.DONE
    assert updated.description == "shipped"
    assert updated.title == "Write post"
    assert updated.created_at == T0
    assert updated.updated_at == T0 + timedelta(hours=1)

    assert store.delete_task(task.id) is True
    assert store.get_task(task.id) is None
    assert store.delete_task(task.id) is False


def test_update_missing_task_returns_none(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())
    assert store.update_task_fields(42, title="nope") is None


def test_update_can_clear_nullable_fields(tmp_path: Path) -> None:
    clock = FixedClock()
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=clock)
    project = store.add_project(user_id="u1", name="Launch")
    task = store.add_task(
        user_id="u1",
        title="Write post",
        description="draft",
        due_at=T0 + timedelta(days=1),
        project_id=project.id,
    )

    clock.advance(minutes=5)
    cleared = store.update_task_fields(task.id, clear=("due_at", "project_id"))
    assert cleared is not None
    assert cleared.due_at is None
    assert cleared.project is None
    assert cleared.description == "draft"
    assert cleared.updated_at == T0 + timedelta(minutes=5)

    cleared = store.update_task_fields(task.id, title="Publish post", clear=["description"])
    assert cleared.title == "Publish post"
    assert cleared.description is None

    # Cleared tasks no longer match due-date filters.
    assert store.find_tasks(TaskFilter(due_lt=T0 + timedelta(days=30))) == []


def test_update_rejects_bad_clear_requests(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())
    task = store.add_task(user_id="u1", title="ok", due_at=T0)

    with pytest.raises(ValueError, match="Cannot clear task field"):
        store.update_task_fields(task.id, clear=["title"])
    with pytest.raises(ValueError, match="both set and clear due_at"):
        store.update_task_fields(task.id, due_at=T0 + timedelta(days=1), clear=["due_at"])
    assert store.get_task(task.id).due_at == T0


def test_delete_project_detaches_its_tasks(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())
    launch = store.add_project(user_id="u1", name="Launch")
    other = store.add_project(user_id="u1", name="Other")
    a = store.add_task(user_id="u1", title="a", project_id=launch.id)
    b = store.add_task(user_id="u1", title="b", project_id=other.id)

    assert store.delete_project(launch.id) is True
    assert store.get_project(launch.id) is None
    assert store.get_task(a.id).project is None
    assert store.get_task(b.id).project_id == other.id
    assert [p.name for p in store.list_projects("u1")] == ["Other"]
    assert store.delete_project(launch.id) is False


def test_activity_log(tmp_path: Path) -> None:
    clock = FixedClock()
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=clock)

    first = store.add_activity(user_id="u1", action="task updated", task_id=1, metadata={"task_preview": "a"})
    clock.advance(minutes=1)
    store.add_activity(user_id="u1", action="task deleted", task_id=2)
    store.add_activity(user_id="u2", action="task updated", task_id=3)

    assert first.created_at == T0
    items = store.list_activities("u1")
    assert [(a.action, a.task_id) for a in items] == [("task deleted", 2), ("task updated", 1)]
    assert items[1].metadata == {"task_preview": "a"}
    assert items[0].metadata is None
    assert [a.task_id for a in store.list_activities("u1", task_id=1)] == [1]
    assert len(store.list_activities("u1", limit=1)) == 1

    with pytest.raises(ValueError):
        store.add_activity(user_id="u1", action=" ")


def test_blank_values_are_rejected(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())
    with pytest.raises(ValueError):
        store.add_task(user_id="u1", title="   ")
    with pytest.raises(ValueError):
        store.add_project(user_id="u1", name="")

    task = store.add_task(user_id="u1", title="ok")
    with pytest.raises(ValueError):
        store.update_task_fields(task.id, title=" ")
    with pytest.raises(ValueError):
        store.add_comment(task_id=task.id, author_id="u1", content="\n")


def test_find_tasks_filters(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())

    soon = store.add_task(user_id="u1", title="soon", due_at=T0 + timedelta(hours=3))
    late = store.add_task(user_id="u1", title="late", due_at=T0 - timedelta(hours=3))
    done = store.add_task(
        user_id="u1", title="done", status=TaskStatus.DONE, due_at=T0 - timedelta(hours=1)
    )
    undated = store.add_task(user_id="u1", title="undated")
    other = store.add_task(user_id="u2", title="other", due_at=T0 + timedelta(hours=1))

    def ids(f: TaskFilter) -> list[int]:
        return [t.id for t in store.find_tasks(f)]

    assert ids(TaskFilter()) == [soon.id, late.id, done.id, undated.id, other.id]
    assert ids(TaskFilter(user_id="u2")) == [other.id]
    assert ids(TaskFilter(status=TaskStatus.DONE)) == [done.id]
    assert ids(TaskFilter(status_not=TaskStatus.DONE, due_lt=T0)) == [late.id]
    assert ids(
        TaskFilter(status_not=TaskStatus.DONE, due_gte=T0, due_lte=T0 + timedelta(hours=24))
    ) == [soon.id, other.id]
    assert undated.id not in ids(TaskFilter(due_gte=T0 - timedelta(days=365)))


def test_find_tasks_by_project(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())
    p = store.add_project(user_id="u1", name="P")
    inside = store.add_task(user_id="u1", title="in", project_id=p.id)
    store.add_task(user_id="u1", title="out")

    assert [t.id for t in store.find_tasks(TaskFilter(project_id=p.id))] == [inside.id]


def test_count_tasks(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=FixedClock())
    store.add_task(user_id="u1", title="a")
    store.add_task(user_id="u1", title="b")
    store.add_task(user_id="u2", title="c")

    assert store.count_tasks() == 3
    assert store.count_tasks("u1") == 2
    assert store.count_tasks("nobody") == 0


def test_projects_and_comments(tmp_path: Path) -> None:
    clock = FixedClock()
    store = TaskStore(tmp_path / "tasks.sqlite3", clock=clock)

    first = store.add_project(user_id="u1", name="First")
    clock.advance(minutes=1)
    second = store.add_project(user_id="u1", name="Second", description="d")
    store.add_project(user_id="u2", name="Theirs")

    assert [p.id for p in store.list_projects("u1")] == [second.id, first.id]

    renamed = store.update_project(first.id, name="First v2")
    assert renamed is not None
    assert renamed.name == "First v2"
    assert renamed.updated_at == clock.now()

    task = store.add_task(user_id="u1", title="t", project_id=first.id)
    assert store.get_task(task.id).project.name == "First v2"

    c1 = store.add_comment(task_id=task.id, author_id="u2", author_name="Bob", content=" hi ")
    clock.advance(seconds=5)
    c2 = store.add_comment(task_id=task.id, author_id="u1", content="hello")
    assert c1.content == "hi"
    assert [c.id for c in store.list_comments(task.id)] == [c1.id, c2.id]
    assert store.list_comments(task.id)[0].author_name == "Bob"

    store.delete_task(task.id)
    assert store.list_comments(task.id) == []


def test_store_reopens_existing_db(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    task = TaskStore(db, clock=FixedClock()).add_task(user_id="u1", title="persist me")

    again = TaskStore(db, clock=FixedClock())
    assert again.get_task(task.id).title == "persist me"


def test_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    conn = sqlite3.connect(db)
    conn.execute(
        """
        CREATE TABLE tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'TODO',
            priority TEXT NOT NULL DEFAULT 'MEDIUM',
            user_id TEXT NOT NULL,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """
    )
    conn.execute(
        "INSERT INTO tasks(title, status, priority, user_id, created_at, updated_at) "
        "VALUES ('legacy', 'REVIEW', 'LOW', 'u1', 0, 0)"
    )
    conn.commit()
    conn.close()

    store = TaskStore(db, clock=FixedClock())

    legacy = store.get_task(1)
    assert legacy is not None
    assert legacy.status == TaskStatus.REVIEW
    assert legacy.due_at is None
    assert legacy.ai_suggestions is None

    fresh = store.add_task(user_id="u1", title="new", ai_suggestions={"tips": ["x"]})
    assert fresh.ai_suggestions == {"tips": ["x"]}
