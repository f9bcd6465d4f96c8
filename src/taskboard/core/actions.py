"""Apply an automation's action to a task.

Status changes made here use ``tasks.set_status_internal``, which the event
detector never sees, so an action can never fire further automations. This
module must not import the pipeline in ``taskboard.core.engine``.
"""

import logging
import sqlite3

from taskboard.core import notifications as notifications_mod
from taskboard.core import tasks as tasks_mod
from taskboard.core import users as users_mod
from taskboard.db.models import (
    AssignBadgeAction,
    Automation,
    ChangeTaskStatusAction,
    SendNotificationAction,
    Task,
)

logger = logging.getLogger(__name__)

DUE_DATE_FORMAT = "%Y-%m-%d"


def render_message(template: str, task: Task) -> str:
    """Fill the first occurrence of each task placeholder in a template.

    ``{task.dueDate}`` is only replaced when the task has a due date. Unknown
    placeholders are left as written.
    """
    message = template.replace("{task.title}", task.title, 1)
    message = message.replace("{task.status}", task.status, 1)
    if task.due_date:
        message = message.replace("{task.dueDate}", task.due_date.strftime(DUE_DATE_FORMAT), 1)
    return message


def execute_action(
    db: sqlite3.Connection,
    automation: Automation,
    task_id: str,
    triggering_user_id: str | None,
) -> bool:
    """Run one automation's action against the current state of a task.

    Returns True if the action had an effect. Intentional no-ops and lookup
    misses return False; store failures propagate to the caller.
    """
    task = tasks_mod.get_task(db, task_id)
    if not task:
        logger.warning(
            "Skipping automation %s (%s): task %s no longer exists",
            automation.id, automation.name, task_id,
        )
        return False

    action = automation.action
    if isinstance(action, AssignBadgeAction):
        applied = _assign_badge(db, task, action)
    elif isinstance(action, ChangeTaskStatusAction):
        applied = _change_status(db, task, action)
    elif isinstance(action, SendNotificationAction):
        applied = _send_notification(db, automation, task, action, triggering_user_id)
    else:
        raise TypeError(f"Unsupported action: {action!r}")

    logger.info("Executed automation %r for task %s", automation.name, task.id)
    return applied


def _assign_badge(db: sqlite3.Connection, task: Task, action: AssignBadgeAction) -> bool:
    if not task.assignee_id:
        return False
    if not users_mod.get_user(db, task.assignee_id):
        logger.warning("User %s not found, badge %r not granted", task.assignee_id, action.badge_name)
        return False
    granted = users_mod.grant_badge(db, task.assignee_id, action.badge_name, task.project_id)
    if granted:
        logger.info("Badge %r assigned to user %s", action.badge_name, task.assignee_id)
    return granted


def _change_status(db: sqlite3.Connection, task: Task, action: ChangeTaskStatusAction) -> bool:
    # The target was checked against the project's statuses when the rule was
    # saved and is not checked again.
    return tasks_mod.set_status_internal(db, task.id, action.status) is not None


def _send_notification(
    db: sqlite3.Connection,
    automation: Automation,
    task: Task,
    action: SendNotificationAction,
    triggering_user_id: str | None,
) -> bool:
    if not task.assignee_id or not action.notification_message:
        return False
    notifications_mod.create_notification(
        db,
        recipient_id=task.assignee_id,
        sender_id=triggering_user_id or task.created_by,
        type="automation_triggered",
        message=render_message(action.notification_message, task),
        task_id=task.id,
        project_id=task.project_id,
        automation_id=automation.id,
    )
    return True
