"""User records and the per-user badge collection."""

import sqlite3
from datetime import datetime

from taskboard.db.models import Badge, User


def create_user(
    db: sqlite3.Connection,
    user_id: str,
    display_name: str,
    email: str,
) -> User:
    """Create a new user."""
    if get_user(db, user_id):
        raise ValueError(f"User already exists: {user_id}")
    db.execute(
        "INSERT INTO users (id, display_name, email) VALUES (?, ?, ?)",
        (user_id, display_name, email),
    )
    db.commit()
    return get_user(db, user_id)


def get_user(db: sqlite3.Connection, user_id: str) -> User | None:
    """Get a user by ID with their badges."""
    row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        return None
    user = _row_to_user(row)
    user.badges = list_badges(db, user_id)
    return user


def list_users(db: sqlite3.Connection) -> list[User]:
    """List all users."""
    rows = db.execute("SELECT * FROM users ORDER BY created_at, id").fetchall()
    return [_row_to_user(r) for r in rows]


def list_badges(db: sqlite3.Connection, user_id: str) -> list[Badge]:
    """List the badges a user has earned, oldest first."""
    rows = db.execute(
        "SELECT * FROM user_badges WHERE user_id = ? ORDER BY earned_at, id",
        (user_id,),
    ).fetchall()
    return [
        Badge(
            name=r["name"],
            project_id=r["project_id"],
            earned_at=_parse_dt(r["earned_at"]),
        )
        for r in rows
    ]


def grant_badge(
    db: sqlite3.Connection,
    user_id: str,
    badge_name: str,
    project_id: str,
    earned_at: datetime | None = None,
) -> bool:
    """Add a badge unless the user already holds one with the same name for the project.

    Returns True if a badge was added.
    """
    existing = db.execute(
        "SELECT id FROM user_badges WHERE user_id = ? AND name = ? AND project_id = ?",
        (user_id, badge_name, project_id),
    ).fetchone()
    if existing:
        return False

    if earned_at is None:
        db.execute(
            "INSERT INTO user_badges (user_id, name, project_id) VALUES (?, ?, ?)",
            (user_id, badge_name, project_id),
        )
    else:
        db.execute(
            "INSERT INTO user_badges (user_id, name, project_id, earned_at) VALUES (?, ?, ?, ?)",
            (user_id, badge_name, project_id, earned_at.isoformat(sep=" ", timespec="seconds")),
        )
    db.commit()
    return True


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        display_name=row["display_name"],
        email=row["email"],
        created_at=_parse_dt(row["created_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
