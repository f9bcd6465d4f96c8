"""Automation pipeline: task mutations and overdue sweeps in, actions out.

Nothing here raises to the caller. A failing action is logged and the rest of
the matched automations and events still run.
"""

import logging
import sqlite3
from datetime import datetime

from taskboard.core import tasks as tasks_mod
from taskboard.core.actions import execute_action
from taskboard.core.events import DueDatePassed, Event, detect_events
from taskboard.core.matcher import match_automations
from taskboard.db.models import Task

logger = logging.getLogger(__name__)


def update_task_as_user(
    db: sqlite3.Connection,
    task_id: str,
    acting_user_id: str,
    **changes,
) -> tuple[Task, Task] | None:
    """Write user-requested task changes, then run the automations they trigger.

    Returns (previous, updated) as persisted by the user's write; automation
    effects are visible through a fresh read. Validation errors from the write
    propagate; automation errors do not.
    """
    result = tasks_mod.update_task(db, task_id, **changes)
    if result is None:
        return None
    previous, updated = result
    on_task_updated(db, previous, updated, acting_user_id)
    return previous, updated


def on_task_updated(
    db: sqlite3.Connection,
    previous: Task,
    updated: Task,
    acting_user_id: str | None,
):
    """Detect lifecycle events between two task states and dispatch them."""
    try:
        events = detect_events(previous, updated)
    except Exception:
        logger.exception("Error detecting events for task %s", updated.id)
        return
    for event in events:
        _dispatch(db, event, acting_user_id)


def dispatch_due_date(db: sqlite3.Connection, task: Task):
    """Feed one overdue task into the pipeline with no triggering user."""
    _dispatch(db, DueDatePassed(task=task), None)


def run_due_date_sweep(db: sqlite3.Connection, now: datetime | None = None) -> int:
    """Dispatch a DueDatePassed event for every overdue task.

    Tasks that stay overdue are dispatched again on the next sweep.
    Returns the number of tasks dispatched.
    """
    try:
        overdue = tasks_mod.find_overdue_tasks(db, now)
    except Exception:
        logger.exception("Error scanning for overdue tasks")
        return 0
    for task in overdue:
        dispatch_due_date(db, task)
    return len(overdue)


def _dispatch(db: sqlite3.Connection, event: Event, triggering_user_id: str | None):
    try:
        automations = match_automations(db, event)
    except Exception:
        logger.exception(
            "Error matching %s automations for task %s", event.trigger_type, event.task.id
        )
        return

    for automation in automations:
        try:
            execute_action(db, automation, event.task.id, triggering_user_id)
        except Exception:
            logger.exception(
                "Error executing automation %s (%s) for task %s",
                automation.id, automation.name, event.task.id,
            )
            db.rollback()
