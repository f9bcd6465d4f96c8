"""Tests for lifecycle event detection."""

from dataclasses import replace

import pytest

from taskboard.core.events import AssignmentChanged, StatusChanged, detect_events
from taskboard.db.models import Task


@pytest.fixture
def task():
    return Task(id="t1", project_id="board", title="Ship", status="To Do", created_by="alice")


class TestDetectEvents:
    def test_no_change(self, task):
        assert detect_events(task, task) == []

    def test_status_change(self, task):
        updated = replace(task, status="Done")
        events = detect_events(task, updated)
        assert events == [StatusChanged(task=updated, from_status="To Do", to_status="Done")]

    def test_assign_from_unassigned(self, task):
        updated = replace(task, assignee_id="bob")
        events = detect_events(task, updated)
        assert events == [AssignmentChanged(task=updated, assignee_id="bob")]

    def test_reassign_to_other_user(self, task):
        previous = replace(task, assignee_id="bob")
        updated = replace(task, assignee_id="carol")
        assert detect_events(previous, updated) == [AssignmentChanged(task=updated, assignee_id="carol")]

    def test_same_assignee_fires_nothing(self, task):
        previous = replace(task, assignee_id="bob")
        assert detect_events(previous, replace(previous)) == []

    def test_unassign_fires_nothing(self, task):
        previous = replace(task, assignee_id="bob")
        assert detect_events(previous, replace(previous, assignee_id=None)) == []

    def test_status_and_assignment_together(self, task):
        updated = replace(task, status="In Progress", assignee_id="bob")
        events = detect_events(task, updated)
        assert [type(e) for e in events] == [StatusChanged, AssignmentChanged]

    def test_other_fields_ignored(self, task):
        assert detect_events(task, replace(task, title="Ship it", description="now")) == []

    def test_trigger_types(self, task):
        assert StatusChanged.trigger_type == "task_status_change"
        assert AssignmentChanged.trigger_type == "task_assignment"
