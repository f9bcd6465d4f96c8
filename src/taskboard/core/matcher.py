"""Select the automations an event should fire."""

import sqlite3

from taskboard.core.automations import find_automations
from taskboard.core.events import AssignmentChanged, DueDatePassed, Event, StatusChanged
from taskboard.db.models import (
    AssignmentTrigger,
    Automation,
    DueDatePassedTrigger,
    StatusChangeTrigger,
    Trigger,
)


def trigger_matches(trigger: Trigger, event: Event) -> bool:
    """Whether a trigger's conditions accept an event. Kinds never cross-match."""
    if isinstance(event, StatusChanged) and isinstance(trigger, StatusChangeTrigger):
        return (
            (trigger.from_status is None or trigger.from_status == event.from_status)
            and (trigger.to_status is None or trigger.to_status == event.to_status)
        )
    if isinstance(event, AssignmentChanged) and isinstance(trigger, AssignmentTrigger):
        return trigger.user_id is None or trigger.user_id == event.assignee_id
    if isinstance(event, DueDatePassed) and isinstance(trigger, DueDatePassedTrigger):
        # The sweep has already filtered to overdue, non-terminal tasks.
        return True
    return False


def match_automations(db: sqlite3.Connection, event: Event) -> list[Automation]:
    """Active automations of the task's project whose trigger accepts the event.

    Every match is returned in store order; there is no first-match-wins.
    """
    candidates = find_automations(db, event.task.project_id, event.trigger_type, active_only=True)
    return [
        a for a in candidates
        if a.active and a.project_id == event.task.project_id and trigger_matches(a.trigger, event)
    ]
