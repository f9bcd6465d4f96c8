"""Task lifecycle events derived from task mutations."""

from dataclasses import dataclass
from typing import ClassVar, Union

from taskboard.db.models import Task


@dataclass(frozen=True)
class StatusChanged:
    trigger_type: ClassVar[str] = "task_status_change"
    task: Task
    from_status: str
    to_status: str


@dataclass(frozen=True)
class AssignmentChanged:
    trigger_type: ClassVar[str] = "task_assignment"
    task: Task
    assignee_id: str


@dataclass(frozen=True)
class DueDatePassed:
    trigger_type: ClassVar[str] = "task_due_date_passed"
    task: Task


Event = Union[StatusChanged, AssignmentChanged, DueDatePassed]


def detect_events(previous: Task, updated: Task) -> list[Event]:
    """Diff two states of the same task into lifecycle events.

    A status difference yields StatusChanged. A new or different assignee
    yields AssignmentChanged; unassigning and re-assigning the same user yield
    nothing.
    """
    events: list[Event] = []

    if previous.status != updated.status:
        events.append(StatusChanged(
            task=updated,
            from_status=previous.status,
            to_status=updated.status,
        ))

    if updated.assignee_id and updated.assignee_id != previous.assignee_id:
        events.append(AssignmentChanged(task=updated, assignee_id=updated.assignee_id))

    return events
