"""Project invitations: a member invites a user, the user accepts or rejects."""

import logging
import sqlite3
from datetime import datetime

from taskboard.core import notifications as notifications_mod
from taskboard.core import projects as projects_mod
from taskboard.db.models import Invitation

logger = logging.getLogger(__name__)


def invite(
    db: sqlite3.Connection,
    project_id: str,
    sender_id: str,
    recipient_id: str,
) -> Invitation:
    """Invite a user to a project and notify them.

    Any member may invite. Inviting an existing member, or a user who already
    has a pending invitation to the project, is rejected.
    """
    project = projects_mod.get_project(db, project_id)
    if not project:
        raise ValueError(f"Project not found: {project_id}")
    if sender_id not in project.members:
        raise PermissionError("Not authorized to invite users to this project")
    recipient = db.execute(
        "SELECT id FROM users WHERE id = ?", (recipient_id,)
    ).fetchone()
    if not recipient:
        raise ValueError(f"User not found: {recipient_id}")
    if recipient_id in project.members:
        raise ValueError("User is already a member of this project")
    pending = db.execute(
        """SELECT id FROM invitations
           WHERE project_id = ? AND recipient_id = ? AND status = 'pending'""",
        (project_id, recipient_id),
    ).fetchone()
    if pending:
        raise ValueError("User already has a pending invitation to this project")

    cur = db.execute(
        "INSERT INTO invitations (project_id, sender_id, recipient_id) VALUES (?, ?, ?)",
        (project_id, sender_id, recipient_id),
    )
    db.commit()
    invitation = get_invitation(db, cur.lastrowid)

    sender = db.execute(
        "SELECT display_name, email FROM users WHERE id = ?", (sender_id,)
    ).fetchone()
    notifications_mod.create_notification(
        db,
        recipient_id=recipient_id,
        sender_id=sender_id,
        type="project_invitation",
        message=(
            f'{sender["display_name"] or sender["email"]} invited you to join '
            f'project "{project.name}"'
        ),
        project_id=project_id,
        invitation_id=invitation.id,
    )
    logger.info("User %s invited %s to project %s", sender_id, recipient_id, project_id)
    return invitation


def get_invitation(db: sqlite3.Connection, invitation_id: int) -> Invitation | None:
    row = db.execute(
        "SELECT * FROM invitations WHERE id = ?", (invitation_id,)
    ).fetchone()
    if not row:
        return None
    return _row_to_invitation(row)


def list_pending(db: sqlite3.Connection, user_id: str) -> list[Invitation]:
    """Pending invitations addressed to a user, oldest first."""
    rows = db.execute(
        """SELECT * FROM invitations
           WHERE recipient_id = ? AND status = 'pending'
           ORDER BY created_at, id""",
        (user_id,),
    ).fetchall()
    return [_row_to_invitation(r) for r in rows]


def accept(db: sqlite3.Connection, invitation_id: int, user_id: str) -> Invitation | None:
    """Accept an invitation and join the project."""
    invitation = _decide(db, invitation_id, user_id, "accepted")
    if invitation:
        projects_mod.add_member(db, invitation.project_id, user_id)
    return invitation


def reject(db: sqlite3.Connection, invitation_id: int, user_id: str) -> Invitation | None:
    """Reject an invitation."""
    return _decide(db, invitation_id, user_id, "rejected")


def _decide(
    db: sqlite3.Connection,
    invitation_id: int,
    user_id: str,
    status: str,
) -> Invitation | None:
    invitation = get_invitation(db, invitation_id)
    if not invitation:
        return None
    if invitation.recipient_id != user_id:
        raise PermissionError("Not authorized to answer this invitation")
    if invitation.status != "pending":
        raise ValueError(f"Invitation has already been {invitation.status}")
    db.execute(
        "UPDATE invitations SET status = ?, updated_at = datetime('now') WHERE id = ?",
        (status, invitation_id),
    )
    db.commit()
    logger.info("Invitation %s %s by %s", invitation_id, status, user_id)
    return get_invitation(db, invitation_id)


def _row_to_invitation(row: sqlite3.Row) -> Invitation:
    return Invitation(
        id=row["id"],
        project_id=row["project_id"],
        sender_id=row["sender_id"],
        recipient_id=row["recipient_id"],
        status=row["status"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
