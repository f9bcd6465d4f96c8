"""Tests for trigger matching."""

import itertools

import pytest

from taskboard.core import automations as automations_mod
from taskboard.core import projects as projects_mod
from taskboard.core import tasks as tasks_mod
from taskboard.core.events import AssignmentChanged, DueDatePassed, StatusChanged
from taskboard.core.matcher import match_automations, trigger_matches
from taskboard.db.models import (
    AssignmentTrigger,
    DueDatePassedTrigger,
    StatusChangeTrigger,
    Task,
)

STATUSES = ["To Do", "In Progress", "Done"]


@pytest.fixture
def task():
    return Task(id="t1", project_id="board", title="Ship", status="Done", created_by="alice")


class TestTriggerMatches:
    @pytest.mark.parametrize("a,b", list(itertools.permutations(STATUSES, 2)))
    def test_status_transitions(self, task, a, b):
        event = StatusChanged(task=task, from_status=a, to_status=b)
        assert trigger_matches(StatusChangeTrigger(from_status=a, to_status=b), event)
        assert trigger_matches(StatusChangeTrigger(), event)
        assert trigger_matches(StatusChangeTrigger(to_status=b), event)
        assert trigger_matches(StatusChangeTrigger(from_status=a), event)
        for c in STATUSES:
            if c != b:
                assert not trigger_matches(StatusChangeTrigger(from_status=a, to_status=c), event)

    def test_assignment_any_user(self, task):
        event = AssignmentChanged(task=task, assignee_id="bob")
        assert trigger_matches(AssignmentTrigger(), event)

    def test_assignment_specific_user(self, task):
        event = AssignmentChanged(task=task, assignee_id="bob")
        assert trigger_matches(AssignmentTrigger(user_id="bob"), event)
        assert not trigger_matches(AssignmentTrigger(user_id="carol"), event)

    def test_due_date_always_matches(self, task):
        assert trigger_matches(DueDatePassedTrigger(), DueDatePassed(task=task))

    def test_kinds_never_cross_match(self, task):
        status_event = StatusChanged(task=task, from_status="To Do", to_status="Done")
        assign_event = AssignmentChanged(task=task, assignee_id="bob")
        due_event = DueDatePassed(task=task)
        assert not trigger_matches(AssignmentTrigger(), status_event)
        assert not trigger_matches(DueDatePassedTrigger(), status_event)
        assert not trigger_matches(StatusChangeTrigger(), assign_event)
        assert not trigger_matches(StatusChangeTrigger(), due_event)
        assert not trigger_matches(AssignmentTrigger(), due_event)


class TestMatchAutomations:
    def _add(self, db, name, trigger, active=True, project_id="board"):
        return automations_mod.create_automation(
            db, project_id, name, trigger,
            {"type": "send_notification", "parameters": {"notificationMessage": name}},
            created_by="alice", active=active,
        )

    def test_returns_all_matches_in_store_order(self, seeded):
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice")
        first = self._add(seeded, "any", {"type": "task_status_change"})
        second = self._add(seeded, "to done", {"type": "task_status_change", "conditions": {"toStatus": "Done"}})
        self._add(seeded, "to progress", {"type": "task_status_change", "conditions": {"toStatus": "In Progress"}})
        self._add(seeded, "assign", {"type": "task_assignment"})

        event = StatusChanged(task=task, from_status="To Do", to_status="Done")
        assert [a.id for a in match_automations(seeded, event)] == [first.id, second.id]

    def test_inactive_never_matches(self, seeded):
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice")
        self._add(seeded, "off", {"type": "task_status_change"}, active=False)
        self._add(seeded, "off due", {"type": "task_due_date_passed"}, active=False)

        assert match_automations(seeded, StatusChanged(task=task, from_status="To Do", to_status="Done")) == []
        assert match_automations(seeded, DueDatePassed(task=task)) == []

    def test_scoped_to_task_project(self, seeded):
        projects_mod.create_project(seeded, "alice", "Other", project_id="other")
        self._add(seeded, "elsewhere", {"type": "task_status_change"}, project_id="other")
        task = tasks_mod.create_task(seeded, "Ship", "board", "alice")

        assert match_automations(seeded, StatusChanged(task=task, from_status="To Do", to_status="Done")) == []
