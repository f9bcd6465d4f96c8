"""Automation rule storage and validation.

Triggers and actions are closed sets. Their JSON documents use the same shape
the API accepts::

    {"type": "task_status_change", "conditions": {"fromStatus": ..., "toStatus": ...}}
    {"type": "send_notification", "parameters": {"notificationMessage": ...}}

Anything else is rejected here, before it can reach the matcher.
"""

import json
import sqlite3
from datetime import datetime

from taskboard.core import projects as projects_mod
from taskboard.db.models import (
    ACTION_TYPES,
    TRIGGER_TYPES,
    Action,
    AssignBadgeAction,
    AssignmentTrigger,
    Automation,
    ChangeTaskStatusAction,
    DueDatePassedTrigger,
    SendNotificationAction,
    StatusChangeTrigger,
    Trigger,
)


class AutomationValidationError(ValueError):
    """Raised when a trigger, action or name is malformed."""


class NotAuthorizedError(PermissionError):
    """Raised when a non-owner tries to change a project's automations."""


# ── Parsing ──────────────────────────────────────────────────────────────────


def parse_trigger(data) -> Trigger:
    """Build a trigger from its document form."""
    if isinstance(data, (StatusChangeTrigger, AssignmentTrigger, DueDatePassedTrigger)):
        return data
    if not isinstance(data, dict):
        raise AutomationValidationError("Trigger must be an object")

    trigger_type = data.get("type")
    if trigger_type not in TRIGGER_TYPES:
        raise AutomationValidationError(
            f"Invalid trigger type. Valid: {', '.join(TRIGGER_TYPES)}"
        )
    conditions = data.get("conditions") or {}
    if not isinstance(conditions, dict):
        raise AutomationValidationError("Trigger conditions must be an object")

    if trigger_type == StatusChangeTrigger.type:
        return StatusChangeTrigger(
            from_status=_optional_str(conditions, "fromStatus"),
            to_status=_optional_str(conditions, "toStatus"),
        )
    if trigger_type == AssignmentTrigger.type:
        return AssignmentTrigger(user_id=_optional_str(conditions, "userId"))
    return DueDatePassedTrigger()


def parse_action(data) -> Action:
    """Build an action from its document form."""
    if isinstance(data, (AssignBadgeAction, ChangeTaskStatusAction, SendNotificationAction)):
        return data
    if not isinstance(data, dict):
        raise AutomationValidationError("Action must be an object")

    action_type = data.get("type")
    if action_type not in ACTION_TYPES:
        raise AutomationValidationError(
            f"Invalid action type. Valid: {', '.join(ACTION_TYPES)}"
        )
    params = data.get("parameters") or {}
    if not isinstance(params, dict):
        raise AutomationValidationError("Action parameters must be an object")

    if action_type == AssignBadgeAction.type:
        badge_name = _optional_str(params, "badgeName")
        if not badge_name:
            raise AutomationValidationError("assign_badge requires a badgeName")
        return AssignBadgeAction(badge_name=badge_name)
    if action_type == ChangeTaskStatusAction.type:
        status = _optional_str(params, "status")
        if not status:
            raise AutomationValidationError("change_task_status requires a status")
        return ChangeTaskStatusAction(status=status)
    # An empty template is allowed; the executor skips it.
    return SendNotificationAction(
        notification_message=_optional_str(params, "notificationMessage") or ""
    )


def trigger_to_dict(trigger: Trigger) -> dict:
    conditions: dict = {}
    if isinstance(trigger, StatusChangeTrigger):
        if trigger.from_status is not None:
            conditions["fromStatus"] = trigger.from_status
        if trigger.to_status is not None:
            conditions["toStatus"] = trigger.to_status
    elif isinstance(trigger, AssignmentTrigger):
        if trigger.user_id is not None:
            conditions["userId"] = trigger.user_id
    return {"type": trigger.type, "conditions": conditions}


def action_to_dict(action: Action) -> dict:
    if isinstance(action, AssignBadgeAction):
        params = {"badgeName": action.badge_name}
    elif isinstance(action, ChangeTaskStatusAction):
        params = {"status": action.status}
    else:
        params = {"notificationMessage": action.notification_message}
    return {"type": action.type, "parameters": params}


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise AutomationValidationError(f"{key} must be a string")
    return value


def _check_statuses(trigger: Trigger | None, action: Action | None, statuses: list[str]):
    valid = ", ".join(statuses)
    if isinstance(trigger, StatusChangeTrigger):
        if trigger.from_status is not None and trigger.from_status not in statuses:
            raise AutomationValidationError(f"Invalid fromStatus. Valid: {valid}")
        if trigger.to_status is not None and trigger.to_status not in statuses:
            raise AutomationValidationError(f"Invalid toStatus. Valid: {valid}")
    if isinstance(action, ChangeTaskStatusAction) and action.status not in statuses:
        raise AutomationValidationError(f"Invalid status. Valid: {valid}")


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_automation(
    db: sqlite3.Connection,
    project_id: str,
    name: str,
    trigger,
    action,
    created_by: str,
    active: bool = True,
) -> Automation:
    """Create an automation. Only the project owner may do so."""
    project = projects_mod.get_project(db, project_id)
    if not project:
        raise AutomationValidationError(f"Project not found: {project_id}")
    if project.owner_id != created_by:
        raise NotAuthorizedError("Only project owners can create automations")
    if not isinstance(name, str) or not name.strip():
        raise AutomationValidationError("Automation name is required")

    trigger = parse_trigger(trigger)
    action = parse_action(action)
    _check_statuses(trigger, action, project.task_statuses)

    cur = db.execute(
        """INSERT INTO automations
           (project_id, name, active, trigger_type, trigger_conditions,
            action_type, action_params, created_by)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            project_id,
            name.strip(),
            int(bool(active)),
            trigger.type,
            json.dumps(trigger_to_dict(trigger)["conditions"]),
            action.type,
            json.dumps(action_to_dict(action)["parameters"]),
            created_by,
        ),
    )
    db.commit()
    return get_automation(db, cur.lastrowid)


def get_automation(db: sqlite3.Connection, automation_id: int) -> Automation | None:
    """Get an automation by ID."""
    row = db.execute(
        "SELECT * FROM automations WHERE id = ?", (automation_id,)
    ).fetchone()
    if not row:
        return None
    return _row_to_automation(row)


def list_project_automations(db: sqlite3.Connection, project_id: str) -> list[Automation]:
    """All automations of a project, newest first."""
    rows = db.execute(
        "SELECT * FROM automations WHERE project_id = ? ORDER BY created_at DESC, id DESC",
        (project_id,),
    ).fetchall()
    return [_row_to_automation(r) for r in rows]


def find_automations(
    db: sqlite3.Connection,
    project_id: str,
    trigger_type: str,
    active_only: bool = True,
) -> list[Automation]:
    """Automations of a project with the given trigger type, in store order."""
    query = "SELECT * FROM automations WHERE project_id = ? AND trigger_type = ?"
    params: list = [project_id, trigger_type]
    if active_only:
        query += " AND active = 1"
    query += " ORDER BY id"
    rows = db.execute(query, params).fetchall()
    return [_row_to_automation(r) for r in rows]


def update_automation(
    db: sqlite3.Connection,
    automation_id: int,
    user_id: str,
    name: str | None = None,
    trigger=None,
    action=None,
    active: bool | None = None,
) -> Automation | None:
    """Update an automation's name, trigger, action or active flag.

    The project reference never changes.
    """
    automation = get_automation(db, automation_id)
    if not automation:
        return None
    project = projects_mod.get_project(db, automation.project_id)
    if not project:
        return None
    if project.owner_id != user_id:
        raise NotAuthorizedError("Only project owners can update automations")

    updates: dict = {}
    if name is not None:
        if not isinstance(name, str) or not name.strip():
            raise AutomationValidationError("Automation name is required")
        updates["name"] = name.strip()

    new_trigger = parse_trigger(trigger) if trigger is not None else None
    new_action = parse_action(action) if action is not None else None
    # Only newly supplied halves are checked against the current status set.
    _check_statuses(new_trigger, new_action, project.task_statuses)
    if new_trigger is not None:
        updates["trigger_type"] = new_trigger.type
        updates["trigger_conditions"] = json.dumps(trigger_to_dict(new_trigger)["conditions"])
    if new_action is not None:
        updates["action_type"] = new_action.type
        updates["action_params"] = json.dumps(action_to_dict(new_action)["parameters"])
    if active is not None:
        updates["active"] = int(bool(active))

    if not updates:
        return automation

    set_clause = ", ".join(f"{k} = ?" for k in updates)
    db.execute(
        f"UPDATE automations SET {set_clause}, updated_at = datetime('now') WHERE id = ?",
        list(updates.values()) + [automation_id],
    )
    db.commit()
    return get_automation(db, automation_id)


def delete_automation(db: sqlite3.Connection, automation_id: int, user_id: str) -> bool:
    """Delete an automation. Only the project owner may do so."""
    automation = get_automation(db, automation_id)
    if not automation:
        return False
    if not projects_mod.is_owner(db, automation.project_id, user_id):
        raise NotAuthorizedError("Only project owners can delete automations")
    db.execute("DELETE FROM automations WHERE id = ?", (automation_id,))
    db.commit()
    return True


def automation_to_dict(automation: Automation) -> dict:
    return {
        "id": automation.id,
        "project_id": automation.project_id,
        "name": automation.name,
        "active": automation.active,
        "trigger": trigger_to_dict(automation.trigger),
        "action": action_to_dict(automation.action),
        "created_by": automation.created_by,
        "created_at": automation.created_at.isoformat() if automation.created_at else None,
        "updated_at": automation.updated_at.isoformat() if automation.updated_at else None,
    }


def _row_to_automation(row: sqlite3.Row) -> Automation:
    trigger = parse_trigger({
        "type": row["trigger_type"],
        "conditions": json.loads(row["trigger_conditions"] or "{}"),
    })
    # Stored documents were validated on write; build the action without
    # re-running the create-time requirements.
    params = json.loads(row["action_params"] or "{}")
    if row["action_type"] == AssignBadgeAction.type:
        action = AssignBadgeAction(badge_name=params.get("badgeName") or "")
    elif row["action_type"] == ChangeTaskStatusAction.type:
        action = ChangeTaskStatusAction(status=params.get("status") or "")
    else:
        action = SendNotificationAction(
            notification_message=params.get("notificationMessage") or ""
        )
    return Automation(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        active=bool(row["active"]),
        trigger=trigger,
        action=action,
        created_by=row["created_by"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
