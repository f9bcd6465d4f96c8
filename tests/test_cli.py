"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from taskboard.cli import main
from taskboard.core import users as users_mod
from taskboard.db.engine import init_db


@pytest.fixture
def cli_env():
    """Set up a temp environment for CLI testing."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"

        db = init_db(db_path)
        users_mod.create_user(db, "alice", "Alice", "alice@example.com")
        users_mod.create_user(db, "bob", "Bob", "bob@example.com")
        db.close()

        env = {
            "TB_DB_PATH": str(db_path),
            "TB_USER": "alice",
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        runner = CliRunner()
        runner.invoke(main, ["project", "create", "Board"])
        runner.invoke(main, ["project", "add-member", "board", "bob"])
        yield runner, db_path

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


class TestUserCommands:
    def test_add_and_list(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["user", "add", "carol", "--name", "Carol", "--email", "carol@example.com"])
        assert result.exit_code == 0
        assert "Created user: carol" in result.output

        result = runner.invoke(main, ["user", "list"])
        assert "carol: Carol <carol@example.com>" in result.output

    def test_duplicate(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["user", "add", "alice", "--email", "x@example.com"])
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_no_badges(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["user", "badges", "bob"])
        assert "No badges yet." in result.output


class TestProjectCommands:
    def test_show(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "show", "board"])
        assert result.exit_code == 0
        assert "Statuses: To Do, In Progress, Done" in result.output
        assert "Members: alice, bob" in result.output

    def test_create_with_defaults(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "create", "Side", "--defaults"])
        assert result.exit_code == 0
        assert "Default automations: 3" in result.output

    def test_custom_statuses(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "create", "Kanban", "--statuses", "Backlog, Doing, Done"])
        assert "Statuses: Backlog, Doing, Done" in result.output

    def test_list_requires_actor(self, cli_env):
        runner, _ = cli_env
        os.environ.pop("TB_USER")
        try:
            result = runner.invoke(main, ["project", "list"])
        finally:
            os.environ["TB_USER"] = "alice"
        assert result.exit_code != 0
        assert "No acting user" in result.output

    def test_statuses_owner_only(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "statuses", "board", "A,B", "--as", "bob"])
        assert result.exit_code != 0
        result = runner.invoke(main, ["project", "statuses", "board", "A,B"])
        assert "Statuses for board: A, B" in result.output

    def test_update_owner_only(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "update", "board", "--name", "Roadmap", "--as", "bob"])
        assert result.exit_code != 0
        assert "Only the project owner" in result.output
        result = runner.invoke(main, ["project", "update", "board", "--name", "Roadmap", "-d", "Q3"])
        assert result.exit_code == 0
        result = runner.invoke(main, ["project", "show", "board"])
        assert "Name: Roadmap" in result.output
        assert "Description: Q3" in result.output

    def test_remove_member_owner_only(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "remove-member", "board", "bob", "--as", "bob"])
        assert result.exit_code != 0
        result = runner.invoke(main, ["project", "remove-member", "board", "bob"])
        assert result.exit_code == 0
        assert "Members of board: alice" in result.output

    def test_cannot_remove_owner(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "remove-member", "board", "alice"])
        assert result.exit_code != 0
        assert "Project owner cannot be removed" in result.output


class TestInvitationCommands:
    def test_invite_and_accept(self, cli_env):
        runner, db_path = cli_env
        db = init_db(db_path)
        users_mod.create_user(db, "carol", "Carol", "carol@example.com")
        db.close()

        result = runner.invoke(main, ["project", "invite", "board", "carol"])
        assert result.exit_code == 0
        assert "Invited carol to board (invitation #1)" in result.output

        result = runner.invoke(main, ["invitation", "list", "--as", "carol"])
        assert "#1 board (from alice)" in result.output

        assert runner.invoke(main, ["invitation", "accept", "1", "--as", "bob"]).exit_code != 0
        result = runner.invoke(main, ["invitation", "accept", "1", "--as", "carol"])
        assert result.exit_code == 0
        assert "Invitation #1 accepted" in result.output
        assert "Members: alice, bob, carol" in runner.invoke(main, ["project", "show", "board"]).output

        result = runner.invoke(main, ["invitation", "reject", "1", "--as", "carol"])
        assert result.exit_code != 0
        assert "already been accepted" in result.output

    def test_invite_member(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["project", "invite", "board", "bob"])
        assert result.exit_code != 0
        assert "already a member" in result.output


class TestTaskCommands:
    def test_add_and_list(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["task", "add", "Ship it", "--project", "board", "--due", "2024-01-15"])
        assert result.exit_code == 0
        assert "Created task: ship-it" in result.output
        assert "Due: 2024-01-15" in result.output

        result = runner.invoke(main, ["task", "list", "--project", "board"])
        assert "[To Do] ship-it: Ship it" in result.output

    def test_list_json(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["task", "add", "Ship", "--project", "board"])
        result = runner.invoke(main, ["task", "list", "--project", "board", "--json"])
        data = json.loads(result.output)
        assert data[0]["id"] == "ship"

    def test_invalid_status(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["task", "add", "Ship", "--project", "board", "--status", "Nope"])
        assert result.exit_code != 0
        assert "Invalid status" in result.output

    def test_update_runs_automations(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, [
            "automation", "add", "board", "Start on assign",
            "--trigger", "task_assignment",
            "--action", "change_task_status", "--status", "In Progress",
        ])
        runner.invoke(main, ["task", "add", "Ship", "--project", "board"])

        result = runner.invoke(main, ["task", "update", "ship", "--assignee", "bob"])
        assert result.exit_code == 0
        assert "Status: In Progress" in result.output

        result = runner.invoke(main, ["task", "show", "ship"])
        assert "automation_status_changed" in result.output

    def test_unassign(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["task", "add", "Ship", "--project", "board", "--assignee", "bob"])
        result = runner.invoke(main, ["task", "update", "ship", "--unassign"])
        assert "Assignee" not in result.output

    def test_update_missing(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["task", "update", "nope", "--status", "Done"])
        assert result.exit_code != 0


class TestAutomationCommands:
    def test_add_list_toggle_delete(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, [
            "automation", "add", "board", "Finish badge",
            "--trigger", "task_status_change", "--to-status", "Done",
            "--action", "assign_badge", "--badge", "Finisher",
        ])
        assert result.exit_code == 0
        assert "Created automation #1: Finish badge" in result.output

        result = runner.invoke(main, ["automation", "list", "board"])
        assert "#1 [on] Finish badge: task_status_change -> assign_badge" in result.output

        assert "disabled" in runner.invoke(main, ["automation", "disable", "1"]).output
        result = runner.invoke(main, ["automation", "list", "board"])
        assert "#1 [off]" in result.output

        result = runner.invoke(main, ["automation", "delete", "1"])
        assert "Deleted automation #1" in result.output

    def test_owner_only(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, [
            "automation", "add", "board", "Sneaky",
            "--trigger", "task_assignment",
            "--action", "send_notification", "--message", "hi",
            "--as", "bob",
        ])
        assert result.exit_code != 0
        assert "Only project owners" in result.output

    def test_show_json(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, [
            "automation", "add", "board", "Overdue",
            "--trigger", "task_due_date_passed",
            "--action", "send_notification", "--message", "{task.title} is late",
        ])
        data = json.loads(runner.invoke(main, ["automation", "show", "1"]).output)
        assert data["action"] == {"type": "send_notification", "parameters": {"notificationMessage": "{task.title} is late"}}


class TestSweepAndNotifications:
    def test_sweep_notifies_assignee(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, [
            "automation", "add", "board", "Overdue",
            "--trigger", "task_due_date_passed",
            "--action", "send_notification", "--message", "{task.title} is late",
        ])
        runner.invoke(main, ["task", "add", "Ship", "--project", "board", "--assignee", "bob", "--due", "2000-01-01"])

        result = runner.invoke(main, ["sweep"])
        assert "Dispatched 1 overdue task(s)" in result.output

        result = runner.invoke(main, ["notification", "list", "--as", "bob"])
        assert "[automation_triggered] Ship is late" in result.output

        result = runner.invoke(main, ["notification", "read-all", "--as", "bob"])
        assert "Marked 1 notification(s) as read" in result.output
        result = runner.invoke(main, ["notification", "list", "--unread", "--as", "bob"])
        assert "No notifications." in result.output
