"""Notification records: creation, listing and read state."""

import logging
import sqlite3
from datetime import datetime

from taskboard.db.models import Notification, Task

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "task_assignment",
    "task_status_update",
    "project_invitation",
    "automation_triggered",
)


def create_notification(
    db: sqlite3.Connection,
    recipient_id: str,
    sender_id: str,
    type: str,
    message: str,
    task_id: str | None = None,
    project_id: str | None = None,
    invitation_id: int | None = None,
    automation_id: int | None = None,
) -> Notification:
    """Persist a new unread notification."""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type: {type}")
    if not message:
        raise ValueError("Notification message is required")

    cur = db.execute(
        """INSERT INTO notifications
           (recipient_id, sender_id, type, message, task_id, project_id, invitation_id, automation_id)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (recipient_id, sender_id, type, message, task_id, project_id, invitation_id, automation_id),
    )
    db.commit()
    logger.info("Notification sent to user %s: %s", recipient_id, message)
    return get_notification(db, cur.lastrowid)


def get_notification(db: sqlite3.Connection, notification_id: int) -> Notification | None:
    row = db.execute(
        "SELECT * FROM notifications WHERE id = ?", (notification_id,)
    ).fetchone()
    if not row:
        return None
    return _row_to_notification(row)


def list_notifications(
    db: sqlite3.Connection,
    user_id: str,
    unread_only: bool = False,
    limit: int | None = 20,
) -> list[Notification]:
    """List a user's notifications, newest first."""
    query = "SELECT * FROM notifications WHERE recipient_id = ?"
    params: list = [user_id]
    if unread_only:
        query += " AND read = 0"
    query += " ORDER BY created_at DESC, id DESC"
    if limit:
        query += " LIMIT ?"
        params.append(limit)
    rows = db.execute(query, params).fetchall()
    return [_row_to_notification(r) for r in rows]


def mark_read(
    db: sqlite3.Connection,
    notification_id: int,
    user_id: str,
) -> Notification | None:
    """Mark one notification as read. Only the recipient may do so."""
    row = db.execute(
        "SELECT id FROM notifications WHERE id = ? AND recipient_id = ?",
        (notification_id, user_id),
    ).fetchone()
    if not row:
        return None
    db.execute("UPDATE notifications SET read = 1 WHERE id = ?", (notification_id,))
    db.commit()
    return get_notification(db, notification_id)


def mark_all_read(db: sqlite3.Connection, user_id: str) -> int:
    """Mark every unread notification for a user as read. Returns how many changed."""
    result = db.execute(
        "UPDATE notifications SET read = 1 WHERE recipient_id = ? AND read = 0",
        (user_id,),
    )
    db.commit()
    return result.rowcount


# ── Collaborator notifications ───────────────────────────────────────────────


def notify_task_assignment(
    db: sqlite3.Connection,
    task: Task,
    assignee_id: str,
    assigner_id: str,
) -> Notification | None:
    """Tell a user they were assigned to a task, unless they assigned themselves."""
    if assignee_id == assigner_id:
        return None

    project = db.execute(
        "SELECT name FROM projects WHERE id = ?", (task.project_id,)
    ).fetchone()
    assigner = db.execute(
        "SELECT display_name, email FROM users WHERE id = ?", (assigner_id,)
    ).fetchone()
    if not project or not assigner:
        logger.warning("Task project or assigner not found for task %s", task.id)
        return None

    message = (
        f'You have been assigned to task "{task.title}" in project "{project["name"]}" '
        f"by {assigner['display_name'] or assigner['email']}"
    )
    return create_notification(
        db,
        recipient_id=assignee_id,
        sender_id=assigner_id,
        type="task_assignment",
        message=message,
        task_id=task.id,
        project_id=task.project_id,
    )


def notify_status_update(
    db: sqlite3.Connection,
    task: Task,
    updater_id: str,
    previous_status: str,
) -> Notification | None:
    """Tell the assignee their task moved, unless they moved it themselves."""
    if not task.assignee_id or task.assignee_id == updater_id:
        return None

    updater = db.execute(
        "SELECT display_name, email FROM users WHERE id = ?", (updater_id,)
    ).fetchone()
    if not updater:
        logger.warning("Updater not found: %s", updater_id)
        return None

    message = (
        f'Your task "{task.title}" has been moved from "{previous_status}" to "{task.status}" '
        f"by {updater['display_name'] or updater['email']}"
    )
    return create_notification(
        db,
        recipient_id=task.assignee_id,
        sender_id=updater_id,
        type="task_status_update",
        message=message,
        task_id=task.id,
        project_id=task.project_id,
    )


def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        recipient_id=row["recipient_id"],
        sender_id=row["sender_id"],
        type=row["type"],
        message=row["message"],
        read=bool(row["read"]),
        task_id=row["task_id"],
        project_id=row["project_id"],
        invitation_id=row["invitation_id"],
        automation_id=row["automation_id"],
        created_at=_parse_dt(row["created_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
