"""Project management operations."""

import json
import sqlite3
from datetime import datetime

from taskboard.core.tasks import slugify
from taskboard.db.models import DEFAULT_TASK_STATUSES, Project


def _unique_id(db: sqlite3.Connection, base_slug: str) -> str:
    """Generate a unique project ID from a slug, appending a number if needed."""
    base_slug = base_slug or "project"
    candidate = base_slug
    i = 2
    while db.execute("SELECT id FROM projects WHERE id = ?", (candidate,)).fetchone():
        candidate = f"{base_slug}-{i}"
        i += 1
    return candidate


def create_project(
    db: sqlite3.Connection,
    owner_id: str,
    name: str,
    description: str = "",
    task_statuses: list[str] | None = None,
    project_id: str | None = None,
) -> Project:
    """Create a new project. The owner is also recorded as a member."""
    statuses = _validate_statuses(task_statuses if task_statuses is not None else DEFAULT_TASK_STATUSES)
    if not db.execute("SELECT id FROM users WHERE id = ?", (owner_id,)).fetchone():
        raise ValueError(f"User not found: {owner_id}")

    project_id = project_id or _unique_id(db, slugify(name))
    db.execute(
        """INSERT INTO projects (id, name, description, owner_id, task_statuses)
           VALUES (?, ?, ?, ?, ?)""",
        (project_id, name, description, owner_id, json.dumps(statuses)),
    )
    db.execute(
        "INSERT INTO project_members (project_id, user_id) VALUES (?, ?)",
        (project_id, owner_id),
    )
    db.commit()
    return get_project(db, project_id)


def get_project(db: sqlite3.Connection, project_id: str) -> Project | None:
    """Get a project by ID with its member list."""
    row = db.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
    if not row:
        return None
    project = _row_to_project(row)
    members = db.execute(
        "SELECT user_id FROM project_members WHERE project_id = ? ORDER BY user_id",
        (project_id,),
    ).fetchall()
    project.members = [m["user_id"] for m in members]
    return project


def list_projects(db: sqlite3.Connection, user_id: str | None = None) -> list[Project]:
    """List projects, optionally only those the user owns or belongs to."""
    if user_id is None:
        rows = db.execute("SELECT * FROM projects ORDER BY created_at DESC, id").fetchall()
    else:
        rows = db.execute(
            """SELECT p.* FROM projects p
               JOIN project_members m ON m.project_id = p.id
               WHERE m.user_id = ?
               ORDER BY p.created_at DESC, p.id""",
            (user_id,),
        ).fetchall()
    return [_row_to_project(r) for r in rows]


def update_project(
    db: sqlite3.Connection,
    project_id: str,
    **kwargs,
) -> Project | None:
    """Update project fields."""
    allowed = {"name", "description"}
    updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
    if not updates:
        return get_project(db, project_id)

    set_clause = ", ".join(f"{k} = ?" for k in updates)
    values = list(updates.values()) + [project_id]
    db.execute(
        f"UPDATE projects SET {set_clause}, updated_at = datetime('now') WHERE id = ?",
        values,
    )
    db.commit()
    return get_project(db, project_id)


def update_task_statuses(
    db: sqlite3.Connection,
    project_id: str,
    statuses: list[str],
) -> Project | None:
    """Replace a project's ordered status list.

    Automations that reference a removed status are left as they are.
    """
    statuses = _validate_statuses(statuses)
    if not get_project(db, project_id):
        return None
    db.execute(
        "UPDATE projects SET task_statuses = ?, updated_at = datetime('now') WHERE id = ?",
        (json.dumps(statuses), project_id),
    )
    db.commit()
    return get_project(db, project_id)


def add_member(db: sqlite3.Connection, project_id: str, user_id: str) -> Project | None:
    """Add a user to a project's members."""
    project = get_project(db, project_id)
    if not project:
        return None
    if not db.execute("SELECT id FROM users WHERE id = ?", (user_id,)).fetchone():
        raise ValueError(f"User not found: {user_id}")
    if user_id in project.members:
        return project
    db.execute(
        "INSERT INTO project_members (project_id, user_id) VALUES (?, ?)",
        (project_id, user_id),
    )
    db.commit()
    return get_project(db, project_id)


def remove_member(db: sqlite3.Connection, project_id: str, user_id: str) -> Project | None:
    """Remove a member. The owner cannot be removed."""
    project = get_project(db, project_id)
    if not project:
        return None
    if project.owner_id == user_id:
        raise ValueError("Project owner cannot be removed")
    db.execute(
        "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
        (project_id, user_id),
    )
    db.commit()
    return get_project(db, project_id)


def is_owner(db: sqlite3.Connection, project_id: str, user_id: str) -> bool:
    row = db.execute(
        "SELECT 1 FROM projects WHERE id = ? AND owner_id = ?", (project_id, user_id)
    ).fetchone()
    return row is not None


def is_member(db: sqlite3.Connection, project_id: str, user_id: str) -> bool:
    row = db.execute(
        "SELECT 1 FROM project_members WHERE project_id = ? AND user_id = ?",
        (project_id, user_id),
    ).fetchone()
    return row is not None


def delete_project(db: sqlite3.Connection, project_id: str) -> bool:
    """Delete a project with its tasks, automations, invitations and notifications."""
    if not get_project(db, project_id):
        return False
    # Badges keep their project reference; they belong to the user.
    db.execute("DELETE FROM notifications WHERE project_id = ?", (project_id,))
    db.execute("DELETE FROM invitations WHERE project_id = ?", (project_id,))
    db.execute("DELETE FROM automations WHERE project_id = ?", (project_id,))
    db.execute("DELETE FROM tasks WHERE project_id = ?", (project_id,))
    db.execute("DELETE FROM project_members WHERE project_id = ?", (project_id,))
    db.execute("DELETE FROM projects WHERE id = ?", (project_id,))
    db.commit()
    return True


def _validate_statuses(statuses: list[str]) -> list[str]:
    if not isinstance(statuses, list) or not statuses:
        raise ValueError("Statuses must be a non-empty list")
    cleaned = []
    for status in statuses:
        if not isinstance(status, str) or not status.strip():
            raise ValueError("Statuses must be non-empty strings")
        if status in cleaned:
            raise ValueError(f"Duplicate status: {status}")
        cleaned.append(status)
    return cleaned


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        owner_id=row["owner_id"],
        description=row["description"] or "",
        task_statuses=json.loads(row["task_statuses"]),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
