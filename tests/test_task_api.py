# tests/test_task_api.py

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from taskflow.notifications.notification_models import NotificationType
from taskflow.notifications.rules import NotificationRuleEngine
from taskflow.tasks import task_api
from taskflow.tasks.task_models import TaskPriority, TaskStatus

from .fakes import T0, FailingNotificationRepo, FakeTaskAnalyzer


@pytest.fixture()
def failing_rules(state, task_repo, clock) -> FailingNotificationRepo:
    """Swap in a notification repo whose writes always fail."""
    repo = FailingNotificationRepo(clock)
    state.rules = NotificationRuleEngine(task_repo, repo, clock)
    return repo


def test_create_task_persists_and_notifies(state, task_repo, notification_repo) -> None:
    task = task_api.create_task(
        state,
        user_id="u1",
        title="  Write launch post  ",
        priority="high",
        due_at=T0 + timedelta(days=2),
    )

    assert task.title == "Write launch post"
    assert task.priority == TaskPriority.HIGH
    assert task.status == TaskStatus.TODO
    assert task_repo.get_task(task.id) == task

    assert [n.type for n in notification_repo.items] == [NotificationType.TASK_ASSIGNED]
    assert notification_repo.items[0].message == 'Task "Write launch post" has been created'


def test_create_task_in_project(state, task_repo, notification_repo) -> None:
    project = task_api.create_project(state, user_id="u1", name="Launch")
    task = task_api.create_task(state, user_id="u1", title="Draft", project_id=project.id)

    assert task.project_id == project.id
    assert notification_repo.items[0].message == 'Task "Draft" has been created in Launch'
    assert notification_repo.items[0].project_id == project.id


def test_create_task_validation(state) -> None:
    with pytest.raises(ValueError, match="Title is required"):
        task_api.create_task(state, user_id="u1", title="   ")
    with pytest.raises(ValueError, match="at most 200"):
        task_api.create_task(state, user_id="u1", title="x" * 201)
    with pytest.raises(ValueError, match="Invalid task priority"):
        task_api.create_task(state, user_id="u1", title="ok", priority="SOON")
    with pytest.raises(ValueError, match="Invalid task status"):
        task_api.create_task(state, user_id="u1", title="ok", status="BLOCKED")


def test_create_task_rejects_foreign_project(state) -> None:
    other = task_api.create_project(state, user_id="u2", name="Theirs")
    with pytest.raises(LookupError):
        task_api.create_task(state, user_id="u1", title="Sneaky", project_id=other.id)
    with pytest.raises(LookupError):
        task_api.create_task(state, user_id="u1", title="Ghost", project_id=999)


def test_create_task_succeeds_when_notification_fails(state, task_repo, failing_rules, caplog) -> None:
    with caplog.at_level(logging.ERROR, logger="taskflow.tasks.task_api"):
        task = task_api.create_task(state, user_id="u1", title="Still saved")

    assert task_repo.get_task(task.id) is not None
    assert failing_rules.attempts == 1
    assert "Failed to create notification for event=task_created" in caplog.text


def test_status_updates_notify(state, notification_repo) -> None:
    task = task_api.create_task(state, user_id="u1", title="Ship")

    task_api.update_task_status(state, task.id, user_id="u1", status=TaskStatus.IN_PROGRESS)
    done = task_api.update_task_status(state, task.id, user_id="u1", status="done")

    assert done.status == TaskStatus.DONE
    types = [n.type for n in notification_repo.items]
    assert types == [
        NotificationType.TASK_ASSIGNED,
        NotificationType.INFO,
        NotificationType.TASK_COMPLETED,
    ]
    assert notification_repo.items[-1].metadata == {"old_status": "IN_PROGRESS", "new_status": "DONE"}


def test_saving_done_task_again_does_not_refire_completion(state, notification_repo) -> None:
    task = task_api.create_task(state, user_id="u1", title="Ship")
    task_api.update_task_status(state, task.id, user_id="u1", status=TaskStatus.DONE)
    task_api.update_task(state, task.id, user_id="u1", status=TaskStatus.DONE, description="notes")

    assert len(notification_repo.of_type(NotificationType.TASK_COMPLETED)) == 1


def test_update_without_status_does_not_notify(state, notification_repo) -> None:
    task = task_api.create_task(state, user_id="u1", title="Ship")
    updated = task_api.update_task(state, task.id, user_id="u1", title="Ship v2", priority="urgent")

    assert updated.title == "Ship v2"
    assert updated.priority == TaskPriority.URGENT
    assert len(notification_repo.items) == 1


def test_status_update_survives_notification_failure(state, task_repo, failing_rules) -> None:
    task = task_repo.add_task(user_id="u1", title="Ship")
    updated = task_api.update_task_status(state, task.id, user_id="u1", status=TaskStatus.DONE)

    assert updated.status == TaskStatus.DONE
    assert task_repo.get_task(task.id).status == TaskStatus.DONE
    assert failing_rules.attempts == 1


def test_update_checks_ownership(state, task_repo) -> None:
    task = task_repo.add_task(user_id="u2", title="Not yours")

    with pytest.raises(LookupError, match="Task not found or unauthorized"):
        task_api.update_task_status(state, task.id, user_id="u1", status=TaskStatus.DONE)
    with pytest.raises(LookupError):
        task_api.update_task_status(state, 404, user_id="u1", status=TaskStatus.DONE)
    with pytest.raises(LookupError):
        task_api.delete_task(state, task.id, user_id="u1")

    assert task_repo.get_task(task.id).status == TaskStatus.TODO


def test_delete_task(state, task_repo) -> None:
    task = task_repo.add_task(user_id="u1", title="Temp")
    task_api.delete_task(state, task.id, user_id="u1")
    assert task_repo.get_task(task.id) is None


def test_update_clears_due_date_description_and_project(state, task_repo) -> None:
    project = task_api.create_project(state, user_id="u1", name="Launch")
    task = task_api.create_task(
        state,
        user_id="u1",
        title="Ship",
        description="notes",
        project_id=project.id,
        due_at=T0 + timedelta(days=1),
    )

    # None still means "unchanged".
    same = task_api.update_task(state, task.id, user_id="u1", due_at=None, description=None)
    assert same.due_at == T0 + timedelta(days=1)
    assert same.description == "notes"

    cleared = task_api.update_task(
        state, task.id, user_id="u1", clear=["due_at", "description", "project_id"]
    )
    assert cleared.due_at is None
    assert cleared.description is None
    assert cleared.project is None
    assert task_repo.get_task(task.id).due_at is None


def test_update_rejects_unknown_or_conflicting_clear(state, task_repo) -> None:
    task = task_repo.add_task(user_id="u1", title="Ship", due_at=T0)

    with pytest.raises(ValueError, match="Cannot clear task field"):
        task_api.update_task(state, task.id, user_id="u1", clear=["status"])
    with pytest.raises(ValueError, match="both set and clear"):
        task_api.update_task(state, task.id, user_id="u1", due_at=T0, clear=["due_at"])
    assert task_repo.get_task(task.id).due_at == T0


def test_clear_through_sqlite_store(sqlite_state) -> None:
    task = task_api.create_task(sqlite_state, user_id="u1", title="Ship", due_at=T0 + timedelta(hours=3))

    cleared = task_api.update_task(sqlite_state, task.id, user_id="u1", clear=["due_at"])

    assert cleared.due_at is None
    assert sqlite_state.task_store.get_task(task.id).due_at is None


def test_mutations_write_activity_log(state, task_repo) -> None:
    task = task_repo.add_task(user_id="u1", title="Ship")

    task_api.update_task_status(state, task.id, user_id="u1", status="in_progress")
    task_api.update_task(state, task.id, user_id="u1", title="Ship v2")
    task_api.delete_task(state, task.id, user_id="u1")

    items = task_api.get_activity(state, "u1")
    assert [a.action for a in items] == ["task deleted", "task updated", "task status updated"]
    assert items[2].metadata == {"task_id": task.id, "task_preview": "Ship", "status": "IN_PROGRESS"}
    assert items[1].metadata == {"task_id": task.id, "task_preview": "Ship v2"}
    assert all(a.task_id == task.id for a in items)
    assert task_api.get_activity(state, "u2") == []

    with pytest.raises(ValueError):
        task_api.get_activity(state, "u1", limit=0)


def test_activity_failure_does_not_block_update(state, task_repo, caplog) -> None:
    task = task_repo.add_task(user_id="u1", title="Ship")

    def boom(**kwargs):
        raise RuntimeError("activity table is locked")

    task_repo.add_activity = boom
    with caplog.at_level(logging.ERROR, logger="taskflow.tasks.task_api"):
        updated = task_api.update_task_status(state, task.id, user_id="u1", status=TaskStatus.DONE)

    assert updated.status == TaskStatus.DONE
    assert "Failed to record activity" in caplog.text


def test_list_and_get_projects(state, task_repo, clock) -> None:
    launch = task_api.create_project(state, user_id="u1", name="Launch", description="v1 release")
    clock.advance(minutes=1)
    empty = task_api.create_project(state, user_id="u1", name="Empty")
    task_api.create_project(state, user_id="u2", name="Foreign")
    task_repo.add_task(user_id="u1", title="Low", priority=TaskPriority.LOW, project_id=launch.id)
    task_repo.add_task(user_id="u1", title="Urgent", priority=TaskPriority.URGENT, project_id=launch.id)
    task_repo.add_task(user_id="u1", title="Loose")

    details = task_api.list_projects(state, "u1")
    assert {d.project.name: d.task_count for d in details} == {"Launch": 2, "Empty": 0}

    detail = task_api.get_project(state, launch.id, user_id="u1")
    assert detail.project.description == "v1 release"
    assert [t.title for t in detail.tasks] == ["Urgent", "Low"]
    assert task_api.get_project(state, empty.id, user_id="u1").tasks == []

    with pytest.raises(LookupError, match="Project not found or unauthorized"):
        task_api.get_project(state, launch.id, user_id="u2")


def test_delete_project_keeps_tasks(state, task_repo) -> None:
    project = task_api.create_project(state, user_id="u1", name="Launch")
    task = task_repo.add_task(user_id="u1", title="Ship", project_id=project.id)

    with pytest.raises(LookupError):
        task_api.delete_project(state, project.id, user_id="u2")
    task_api.delete_project(state, project.id, user_id="u1")

    assert task_repo.get_project(project.id) is None
    assert task_repo.get_task(task.id).project is None
    with pytest.raises(LookupError):
        task_api.get_project(state, project.id, user_id="u1")


def test_generate_project_plan(state) -> None:
    project = task_api.create_project(state, user_id="u1", name="Launch", description="v1 release")

    with pytest.raises(RuntimeError, match="No task analyzer configured"):
        task_api.generate_project_plan(state, project.id, user_id="u1")

    analyzer = FakeTaskAnalyzer()
    state.analyzer = analyzer
    plan = task_api.generate_project_plan(state, project.id, user_id="u1")

    assert plan == {"phases": [{"name": "Kickoff", "tasks": ["Scope Launch"]}]}
    assert analyzer.calls == [("Launch", "v1 release")]
    with pytest.raises(LookupError):
        task_api.generate_project_plan(state, project.id, user_id="u2")

    state.analyzer = FakeTaskAnalyzer(fail=True)
    with pytest.raises(RuntimeError, match="rate-limited"):
        task_api.generate_project_plan(state, project.id, user_id="u1")


def test_comment_notifies_task_owner(state, task_repo, notification_repo) -> None:
    task = task_repo.add_task(user_id="u1", title="Review PR")

    comment = task_api.add_comment(state, task.id, author_id="u2", author_name="Bob", content="  LGTM  ")

    assert comment.content == "LGTM"
    assert task_api.list_comments(state, task.id) == [comment]
    n = notification_repo.of_type(NotificationType.COMMENT_ADDED)[0]
    assert n.user_id == "u1"
    assert n.message == 'Bob commented on "Review PR": LGTM'


def test_own_comment_is_stored_without_notification(state, task_repo, notification_repo) -> None:
    task = task_repo.add_task(user_id="u1", title="Review PR")
    task_api.add_comment(state, task.id, author_id="u1", content="reminder")

    assert len(task_api.list_comments(state, task.id)) == 1
    assert notification_repo.items == []


def test_comment_validation(state, task_repo) -> None:
    task = task_repo.add_task(user_id="u1", title="Review PR")
    with pytest.raises(ValueError, match="Comment content is required"):
        task_api.add_comment(state, task.id, author_id="u2", content="  ")
    with pytest.raises(LookupError, match="Task not found"):
        task_api.add_comment(state, 999, author_id="u2", content="hello")


def test_comment_survives_notification_failure(state, task_repo, failing_rules, caplog) -> None:
    task = task_repo.add_task(user_id="u1", title="Review PR")

    with caplog.at_level(logging.ERROR, logger="taskflow.tasks.task_api"):
        comment = task_api.add_comment(state, task.id, author_id="u2", content="hello")

    assert task_api.list_comments(state, task.id) == [comment]
    assert "event=comment_added" in caplog.text


def test_update_project_notifies(state, notification_repo) -> None:
    project = task_api.create_project(state, user_id="u1", name="Launch")
    updated = task_api.update_project(state, project.id, user_id="u1", name="Launch v2")

    assert updated.name == "Launch v2"
    n = notification_repo.of_type(NotificationType.PROJECT_UPDATE)[0]
    assert n.message == 'Project "Launch v2" has been updated'
    assert n.action_url == f"/dashboard/projects/{project.id}"

    with pytest.raises(LookupError):
        task_api.update_project(state, project.id, user_id="u2", name="Hijack")


def test_list_and_search_are_scoped_to_user(state, task_repo) -> None:
    task_repo.add_task(user_id="u1", title="Low chore", priority=TaskPriority.LOW)
    task_repo.add_task(user_id="u1", title="Urgent fix", priority=TaskPriority.URGENT)
    task_repo.add_task(user_id="u2", title="Urgent other")

    assert [t.title for t in task_api.list_tasks(state, "u1")] == ["Urgent fix", "Low chore"]
    assert [t.title for t in task_api.search_tasks(state, "u1", "urgent")] == ["Urgent fix"]


def test_dashboard(state, task_repo) -> None:
    task_repo.add_task(user_id="u1", title="Late", due_at=T0 - timedelta(days=1))
    task_repo.add_task(user_id="u1", title="Done", status=TaskStatus.DONE)
    task_repo.add_task(user_id="u2", title="Other")

    a = task_api.get_dashboard(state, "u1")

    assert a.stats.total == 2
    assert a.overdue == 1
    assert a.completion_rate == 50


def test_ai_analysis_attached_when_enabled(state, settings) -> None:
    settings.ai_task_analysis = True
    analyzer = FakeTaskAnalyzer({"priority": "high", "subtasks": ["outline"]})
    state.analyzer = analyzer

    task = task_api.create_task(state, user_id="u1", title="Plan offsite", description="Q3")

    assert analyzer.calls == [("Plan offsite", "Q3")]
    assert task.ai_suggestions == {"priority": "high", "subtasks": ["outline"]}


def test_ai_analysis_skipped_when_disabled(state) -> None:
    analyzer = FakeTaskAnalyzer()
    state.analyzer = analyzer

    task = task_api.create_task(state, user_id="u1", title="Plan offsite")

    assert analyzer.calls == []
    assert task.ai_suggestions is None


def test_ai_analysis_failure_does_not_block_creation(state, settings, caplog) -> None:
    settings.ai_task_analysis = True
    state.analyzer = FakeTaskAnalyzer(fail=True)

    with caplog.at_level(logging.ERROR, logger="taskflow.tasks.task_api"):
        task = task_api.create_task(state, user_id="u1", title="Plan offsite")

    assert task.ai_suggestions is None
    assert "AI task analysis failed" in caplog.text
