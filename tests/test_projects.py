"""Tests for users, projects and notifications."""

import pytest

from taskboard.core import automations as automations_mod
from taskboard.core import notifications as notifications_mod
from taskboard.core import projects as projects_mod
from taskboard.core import tasks as tasks_mod
from taskboard.core import users as users_mod


class TestUsers:
    def test_create_and_get(self, db):
        users_mod.create_user(db, "alice", "Alice", "alice@example.com")
        user = users_mod.get_user(db, "alice")
        assert user.display_name == "Alice"
        assert user.badges == []

    def test_duplicate(self, db):
        users_mod.create_user(db, "alice", "Alice", "alice@example.com")
        with pytest.raises(ValueError, match="already exists"):
            users_mod.create_user(db, "alice", "Alice", "other@example.com")

    def test_grant_badge_once(self, seeded):
        assert users_mod.grant_badge(seeded, "bob", "Finisher", "board") is True
        assert users_mod.grant_badge(seeded, "bob", "Finisher", "board") is False
        user = users_mod.get_user(seeded, "bob")
        assert [(b.name, b.project_id) for b in user.badges] == [("Finisher", "board")]


class TestProjects:
    def test_defaults(self, db):
        users_mod.create_user(db, "alice", "Alice", "alice@example.com")
        project = projects_mod.create_project(db, "alice", "My Project")
        assert project.id == "my-project"
        assert project.task_statuses == ["To Do", "In Progress", "Done"]
        assert project.members == ["alice"]

    def test_unknown_owner(self, db):
        with pytest.raises(ValueError, match="User not found"):
            projects_mod.create_project(db, "ghost", "Haunted")

    @pytest.mark.parametrize("statuses", [[], ["A", "A"], ["A", ""]])
    def test_invalid_statuses(self, seeded, statuses):
        with pytest.raises(ValueError):
            projects_mod.create_project(seeded, "alice", "Bad", task_statuses=statuses)

    def test_membership(self, seeded):
        assert projects_mod.is_owner(seeded, "board", "alice")
        assert not projects_mod.is_owner(seeded, "board", "bob")
        assert projects_mod.is_member(seeded, "board", "bob")
        projects_mod.remove_member(seeded, "board", "bob")
        assert not projects_mod.is_member(seeded, "board", "bob")

    def test_owner_cannot_be_removed(self, seeded):
        with pytest.raises(ValueError):
            projects_mod.remove_member(seeded, "board", "alice")

    def test_list_for_user(self, seeded):
        users_mod.create_user(seeded, "dave", "Dave", "dave@example.com")
        projects_mod.create_project(seeded, "dave", "Solo", project_id="solo")
        assert [p.id for p in projects_mod.list_projects(seeded, user_id="bob")] == ["board"]
        assert [p.id for p in projects_mod.list_projects(seeded, user_id="dave")] == ["solo"]

    def test_update_statuses(self, seeded):
        project = projects_mod.update_task_statuses(seeded, "board", ["Backlog", "Done"])
        assert project.task_statuses == ["Backlog", "Done"]
        task = tasks_mod.create_task(seeded, "New", "board", "alice")
        assert task.status == "Backlog"

    def test_delete_cascades(self, seeded):
        tasks_mod.create_task(seeded, "Ship", "board", "alice", assignee_id="bob")
        automations_mod.create_automation(
            seeded, "board", "Rule", {"type": "task_assignment"},
            {"type": "send_notification", "parameters": {"notificationMessage": "hi"}},
            created_by="alice",
        )
        users_mod.grant_badge(seeded, "bob", "Finisher", "board")

        assert projects_mod.delete_project(seeded, "board") is True
        assert projects_mod.get_project(seeded, "board") is None
        assert tasks_mod.get_task(seeded, "ship") is None
        assert automations_mod.list_project_automations(seeded, "board") == []
        assert len(users_mod.list_badges(seeded, "bob")) == 1


class TestNotifications:
    def test_create_and_list(self, seeded):
        notifications_mod.create_notification(seeded, "bob", "alice", "task_assignment", "first")
        notifications_mod.create_notification(seeded, "bob", "alice", "task_assignment", "second")
        messages = [n.message for n in notifications_mod.list_notifications(seeded, "bob")]
        assert messages == ["second", "first"]

    def test_invalid_type(self, seeded):
        with pytest.raises(ValueError):
            notifications_mod.create_notification(seeded, "bob", "alice", "carrier_pigeon", "hi")

    def test_mark_read_only_by_recipient(self, seeded):
        note = notifications_mod.create_notification(seeded, "bob", "alice", "task_assignment", "hi")
        assert notifications_mod.mark_read(seeded, note.id, "carol") is None
        assert notifications_mod.mark_read(seeded, note.id, "bob").read is True
        assert notifications_mod.list_notifications(seeded, "bob", unread_only=True) == []

    def test_mark_all_read(self, seeded):
        for i in range(3):
            notifications_mod.create_notification(seeded, "bob", "alice", "task_assignment", f"n{i}")
        assert notifications_mod.mark_all_read(seeded, "bob") == 3
        assert notifications_mod.mark_all_read(seeded, "bob") == 0

    def test_assignment_notice(self, seeded):
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice")
        note = notifications_mod.notify_task_assignment(seeded, task, "bob", "alice")
        assert note.type == "task_assignment"
        assert '"Ship"' in note.message and "Alice" in note.message

    def test_self_assignment_is_silent(self, seeded):
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice")
        assert notifications_mod.notify_task_assignment(seeded, task, "alice", "alice") is None

    def test_status_notice(self, seeded):
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice", assignee_id="bob", status="Done")
        note = notifications_mod.notify_status_update(seeded, task, "alice", "To Do")
        assert note.recipient_id == "bob"
        assert '"To Do"' in note.message and '"Done"' in note.message

    def test_status_notice_skipped_for_own_change(self, seeded):
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice", assignee_id="bob")
        assert notifications_mod.notify_status_update(seeded, task, "bob", "To Do") is None
