"""Task management operations.

Two write paths exist. ``update_task`` is the plain persistence write used on
behalf of a user; the automation pipeline is fed from it by
``taskboard.core.engine.update_task_as_user``. ``set_status_internal`` is the
write used by automation actions and is never observed by the event detector.
"""

import json
import re
import sqlite3
from datetime import date, datetime, timezone

from taskboard.db.models import TERMINAL_STATUS, Task, TaskEvent

UPDATABLE_FIELDS = ("title", "description", "status", "assignee_id", "due_date")


def slugify(title: str) -> str:
    """Convert a title to a URL-friendly slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60]


def _unique_id(db: sqlite3.Connection, base_slug: str) -> str:
    """Generate a unique task ID from a slug, appending a number if needed."""
    base_slug = base_slug or "task"
    existing = db.execute(
        "SELECT id FROM tasks WHERE id = ?", (base_slug,)
    ).fetchone()
    if not existing:
        return base_slug

    i = 2
    while True:
        candidate = f"{base_slug}-{i}"
        existing = db.execute(
            "SELECT id FROM tasks WHERE id = ?", (candidate,)
        ).fetchone()
        if not existing:
            return candidate
        i += 1


def normalize_due_date(value) -> datetime | None:
    """Coerce a date, datetime or ISO string to a naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Invalid due date: {value!r}") from None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.replace(microsecond=0)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise ValueError(f"Invalid due date: {value!r}")


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form due dates are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def create_task(
    db: sqlite3.Connection,
    title: str,
    project_id: str,
    created_by: str,
    description: str = "",
    status: str | None = None,
    assignee_id: str | None = None,
    due_date=None,
) -> Task:
    """Create a new task. Status defaults to the project's first status."""
    if not title or not title.strip():
        raise ValueError("Task title is required")
    statuses = _project_statuses(db, project_id)
    if statuses is None:
        raise ValueError(f"Project not found: {project_id}")
    if status is None:
        status = statuses[0]
    elif status not in statuses:
        raise ValueError(f"Invalid status. Valid statuses are: {', '.join(statuses)}")

    due = normalize_due_date(due_date)
    task_id = _unique_id(db, slugify(title))

    db.execute(
        """INSERT INTO tasks (id, project_id, title, description, status, assignee_id, due_date, created_by)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (task_id, project_id, title, description, status, assignee_id, _format_dt(due), created_by),
    )
    _log_event(db, task_id, "created", None, status)
    db.commit()
    return get_task(db, task_id)


def get_task(db: sqlite3.Connection, task_id: str) -> Task | None:
    """Get a task by ID."""
    row = db.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if not row:
        return None
    return _row_to_task(row)


def list_tasks(
    db: sqlite3.Connection,
    project_id: str,
    status: str | None = None,
    assignee_id: str | None = None,
) -> list[Task]:
    """List tasks with optional filters."""
    query = "SELECT * FROM tasks WHERE project_id = ?"
    params: list = [project_id]

    if status:
        query += " AND status = ?"
        params.append(status)

    if assignee_id:
        query += " AND assignee_id = ?"
        params.append(assignee_id)

    query += " ORDER BY created_at ASC, rowid ASC"
    rows = db.execute(query, params).fetchall()
    return [_row_to_task(r) for r in rows]


def update_task(
    db: sqlite3.Connection,
    task_id: str,
    **changes,
) -> tuple[Task, Task] | None:
    """Apply field changes to a task. Returns (previous, updated).

    A key that is present is written, so ``assignee_id=None`` unassigns.
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    previous = get_task(db, task_id)
    if not previous:
        return None

    updates: dict = {}
    if "title" in changes:
        if not changes["title"]:
            raise ValueError("Task title is required")
        updates["title"] = changes["title"]
    if "description" in changes:
        updates["description"] = changes["description"] or ""
    if "status" in changes:
        statuses = _project_statuses(db, previous.project_id) or []
        if changes["status"] not in statuses:
            raise ValueError(f"Invalid status. Valid statuses are: {', '.join(statuses)}")
        updates["status"] = changes["status"]
    if "assignee_id" in changes:
        assignee = changes["assignee_id"] or None
        if assignee and not db.execute("SELECT id FROM users WHERE id = ?", (assignee,)).fetchone():
            raise ValueError(f"User not found: {assignee}")
        updates["assignee_id"] = assignee
    if "due_date" in changes:
        updates["due_date"] = _format_dt(normalize_due_date(changes["due_date"]))

    if not updates:
        return previous, previous

    set_parts = [f"{k} = ?" for k in updates]
    set_parts.append("updated_at = datetime('now')")
    db.execute(
        f"UPDATE tasks SET {', '.join(set_parts)} WHERE id = ?",
        list(updates.values()) + [task_id],
    )

    if "status" in updates and updates["status"] != previous.status:
        _log_event(db, task_id, "status_changed", previous.status, updates["status"])
    if "assignee_id" in updates and updates["assignee_id"] != previous.assignee_id:
        _log_event(db, task_id, "assignee_changed", previous.assignee_id, updates["assignee_id"])
    if "due_date" in updates and updates["due_date"] != _format_dt(previous.due_date):
        _log_event(db, task_id, "due_date_changed", _format_dt(previous.due_date), updates["due_date"])
    db.commit()
    return previous, get_task(db, task_id)


def set_status_internal(
    db: sqlite3.Connection,
    task_id: str,
    status: str,
) -> Task | None:
    """Write a task's status directly, without validation or event detection."""
    task = get_task(db, task_id)
    if not task:
        return None
    db.execute(
        "UPDATE tasks SET status = ?, updated_at = datetime('now') WHERE id = ?",
        (status, task_id),
    )
    _log_event(db, task_id, "automation_status_changed", task.status, status)
    db.commit()
    return get_task(db, task_id)


def find_overdue_tasks(db: sqlite3.Connection, now: datetime | None = None) -> list[Task]:
    """Tasks whose due date is strictly before ``now`` and whose status is not terminal."""
    now = normalize_due_date(now) if now is not None else utcnow()
    rows = db.execute(
        "SELECT * FROM tasks WHERE due_date IS NOT NULL AND status != ? ORDER BY due_date, id",
        (TERMINAL_STATUS,),
    ).fetchall()
    tasks = [_row_to_task(r) for r in rows]
    return [t for t in tasks if t.due_date < now]


def delete_task(db: sqlite3.Connection, task_id: str) -> bool:
    """Delete a task and its history."""
    if not get_task(db, task_id):
        return False
    db.execute("DELETE FROM task_events WHERE task_id = ?", (task_id,))
    db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    db.commit()
    return True


def get_task_events(db: sqlite3.Connection, task_id: str) -> list[TaskEvent]:
    """Get the event history for a task."""
    rows = db.execute(
        "SELECT * FROM task_events WHERE task_id = ? ORDER BY created_at, id",
        (task_id,),
    ).fetchall()
    return [
        TaskEvent(
            id=r["id"],
            task_id=r["task_id"],
            event_type=r["event_type"],
            old_value=r["old_value"],
            new_value=r["new_value"],
            created_at=_parse_dt(r["created_at"]),
        )
        for r in rows
    ]


def _project_statuses(db: sqlite3.Connection, project_id: str) -> list[str] | None:
    row = db.execute(
        "SELECT task_statuses FROM projects WHERE id = ?", (project_id,)
    ).fetchone()
    if not row:
        return None
    return json.loads(row["task_statuses"])


def _log_event(
    db: sqlite3.Connection,
    task_id: str,
    event_type: str,
    old_value: str | None,
    new_value: str | None,
):
    db.execute(
        "INSERT INTO task_events (task_id, event_type, old_value, new_value) VALUES (?, ?, ?, ?)",
        (task_id, event_type, old_value, new_value),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        project_id=row["project_id"],
        title=row["title"],
        description=row["description"] or "",
        status=row["status"],
        assignee_id=row["assignee_id"],
        due_date=_parse_dt(row["due_date"]),
        created_by=row["created_by"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _format_dt(val: datetime | None) -> str | None:
    if val is None:
        return None
    return val.isoformat(timespec="seconds")


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
