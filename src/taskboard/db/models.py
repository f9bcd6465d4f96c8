"""Data models for taskboard."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Union

DEFAULT_TASK_STATUSES = ["To Do", "In Progress", "Done"]
TERMINAL_STATUS = "Done"


@dataclass
class User:
    id: str
    display_name: str
    email: str
    created_at: datetime | None = None
    badges: list["Badge"] = field(default_factory=list)


@dataclass
class Badge:
    name: str
    project_id: str
    earned_at: datetime | None = None


@dataclass
class Project:
    id: str
    name: str
    owner_id: str
    description: str = ""
    task_statuses: list[str] = field(default_factory=lambda: list(DEFAULT_TASK_STATUSES))
    members: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Task:
    id: str
    project_id: str
    title: str
    status: str
    created_by: str
    description: str = ""
    assignee_id: str | None = None
    due_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TaskEvent:
    id: int | None = None
    task_id: str = ""
    event_type: str = ""
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime | None = None


# ── Triggers ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StatusChangeTrigger:
    """Fires on a status transition; an absent end matches any status."""

    type: ClassVar[str] = "task_status_change"
    from_status: str | None = None
    to_status: str | None = None


@dataclass(frozen=True)
class AssignmentTrigger:
    """Fires when a task is newly assigned or reassigned."""

    type: ClassVar[str] = "task_assignment"
    user_id: str | None = None


@dataclass(frozen=True)
class DueDatePassedTrigger:
    type: ClassVar[str] = "task_due_date_passed"


Trigger = Union[StatusChangeTrigger, AssignmentTrigger, DueDatePassedTrigger]

TRIGGER_TYPES = (
    StatusChangeTrigger.type,
    AssignmentTrigger.type,
    DueDatePassedTrigger.type,
)


# ── Actions ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AssignBadgeAction:
    type: ClassVar[str] = "assign_badge"
    badge_name: str = ""


@dataclass(frozen=True)
class ChangeTaskStatusAction:
    type: ClassVar[str] = "change_task_status"
    status: str = ""


@dataclass(frozen=True)
class SendNotificationAction:
    type: ClassVar[str] = "send_notification"
    notification_message: str = ""


Action = Union[AssignBadgeAction, ChangeTaskStatusAction, SendNotificationAction]

ACTION_TYPES = (
    AssignBadgeAction.type,
    ChangeTaskStatusAction.type,
    SendNotificationAction.type,
)


@dataclass
class Automation:
    id: int | None
    project_id: str
    name: str
    trigger: Trigger
    action: Action
    created_by: str
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Invitation:
    id: int | None
    project_id: str
    sender_id: str
    recipient_id: str
    status: str = "pending"
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Notification:
    id: int | None = None
    recipient_id: str = ""
    sender_id: str = ""
    type: str = ""
    message: str = ""
    read: bool = False
    task_id: str | None = None
    project_id: str | None = None
    invitation_id: int | None = None
    automation_id: int | None = None
    created_at: datetime | None = None
