"""Stock automations installed on request for a project."""

import logging
import sqlite3

from taskboard.core import automations as automations_mod
from taskboard.core import projects as projects_mod
from taskboard.db.models import Automation

logger = logging.getLogger(__name__)

DEFAULT_AUTOMATIONS = [
    {
        "name": "Assign badge on task completion",
        "trigger": {"type": "task_status_change", "conditions": {"toStatus": "Done"}},
        "action": {"type": "assign_badge", "parameters": {"badgeName": "Task Completer"}},
    },
    {
        "name": "Move task to In Progress when assigned",
        "trigger": {"type": "task_assignment"},
        "action": {"type": "change_task_status", "parameters": {"status": "In Progress"}},
    },
    {
        "name": "Send notification when task is overdue",
        "trigger": {"type": "task_due_date_passed"},
        "action": {
            "type": "send_notification",
            "parameters": {
                "notificationMessage": (
                    'Task "{task.title}" is overdue! '
                    "Please update its status or adjust the due date."
                ),
            },
        },
    },
]


def setup_default_automations(
    db: sqlite3.Connection,
    project_id: str,
    owner_id: str,
) -> list[Automation]:
    """Create the stock automations for a project.

    Rules that name a status the project does not have are skipped.
    """
    project = projects_mod.get_project(db, project_id)
    if not project:
        raise ValueError(f"Project not found: {project_id}")

    logger.info("Setting up default automations for project %s", project_id)
    created = []
    for rule in DEFAULT_AUTOMATIONS:
        try:
            automation = automations_mod.create_automation(
                db,
                project_id,
                rule["name"],
                rule["trigger"],
                rule["action"],
                created_by=owner_id,
            )
        except automations_mod.AutomationValidationError as e:
            logger.warning("Skipping default automation %r: %s", rule["name"], e)
            continue
        created.append(automation)
    return created
