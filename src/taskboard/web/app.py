"""REST API for taskboard."""

import contextlib
import json
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from taskboard.config import get_config
from taskboard.core import automations as automations_mod
from taskboard.core import defaults as defaults_mod
from taskboard.core import engine as engine_mod
from taskboard.core import invitations as invitations_mod
from taskboard.core import notifications as notifications_mod
from taskboard.core import projects as projects_mod
from taskboard.core import tasks as tasks_mod
from taskboard.core import users as users_mod
from taskboard.core.scheduler import DueDateScheduler
from taskboard.db.engine import init_db

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-User-Id"


def _get_db():
    config = get_config()
    return init_db(config.db_path)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _actor(request: Request, db) -> str | None:
    """The verified user making the request, or None."""
    user_id = request.headers.get(ACTOR_HEADER)
    if not user_id or not users_mod.get_user(db, user_id):
        return None
    return user_id


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValueError("Request body must be JSON") from None
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


# ── Users ─────────────────────────────────────────────────────────────────────


async def api_list_users(request: Request):
    db = _get_db()
    try:
        return JSONResponse([_user_dict(u) for u in users_mod.list_users(db)])
    finally:
        db.close()


async def api_create_user(request: Request):
    db = _get_db()
    try:
        body = await _json_body(request)
        user_id = body.get("id") or tasks_mod.slugify(body.get("display_name", ""))
        if not user_id or not body.get("email"):
            return _error("id (or display_name) and email are required", 400)
        user = users_mod.create_user(
            db, user_id, body.get("display_name") or user_id, body["email"]
        )
        return JSONResponse(_user_dict(user), status_code=201)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_user_badges(request: Request):
    user_id = request.path_params["user_id"]
    db = _get_db()
    try:
        user = users_mod.get_user(db, user_id)
        if not user:
            return _error("User not found", 404)
        return JSONResponse([_badge_dict(b) for b in user.badges])
    finally:
        db.close()


# ── Projects ──────────────────────────────────────────────────────────────────


async def api_list_projects(request: Request):
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        projects = projects_mod.list_projects(db, user_id=actor)
        return JSONResponse([_project_dict(p) for p in projects])
    finally:
        db.close()


async def api_create_project(request: Request):
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        body = await _json_body(request)
        if not body.get("name"):
            return _error("Project name is required", 400)
        project = projects_mod.create_project(
            db,
            actor,
            body["name"],
            description=body.get("description", ""),
            task_statuses=body.get("task_statuses"),
        )
        if body.get("default_automations"):
            defaults_mod.setup_default_automations(db, project.id, actor)
        return JSONResponse(_project_dict(project), status_code=201)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_get_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        project = projects_mod.get_project(db, project_id)
        if not project:
            return _error("Project not found", 404)
        if actor not in project.members:
            return _error("Not authorized", 403)
        return JSONResponse(_project_dict(project))
    finally:
        db.close()


async def api_delete_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        project = projects_mod.get_project(db, project_id)
        if not project:
            return _error("Project not found", 404)
        if project.owner_id != actor:
            return _error("Only the project owner can delete this project", 403)
        projects_mod.delete_project(db, project_id)
        return JSONResponse({"deleted": project_id})
    finally:
        db.close()


async def api_update_statuses(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        project = projects_mod.get_project(db, project_id)
        if not project:
            return _error("Project not found", 404)
        if project.owner_id != actor:
            return _error("Only the project owner can update task statuses", 403)
        body = await _json_body(request)
        project = projects_mod.update_task_statuses(db, project_id, body.get("task_statuses"))
        return JSONResponse(_project_dict(project))
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_add_member(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not projects_mod.get_project(db, project_id):
            return _error("Project not found", 404)
        if not projects_mod.is_member(db, project_id, actor):
            return _error("Not authorized", 403)
        body = await _json_body(request)
        project = projects_mod.add_member(db, project_id, body.get("user_id", ""))
        return JSONResponse(_project_dict(project))
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_update_project(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        project = projects_mod.get_project(db, project_id)
        if not project:
            return _error("Project not found", 404)
        if project.owner_id != actor:
            return _error("Only the project owner can update project details", 403)
        body = await _json_body(request)
        if "name" in body and not body["name"]:
            return _error("Project name is required", 400)
        project = projects_mod.update_project(
            db, project_id, name=body.get("name"), description=body.get("description")
        )
        return JSONResponse(_project_dict(project))
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_remove_member(request: Request):
    project_id = request.path_params["project_id"]
    user_id = request.path_params["user_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        project = projects_mod.get_project(db, project_id)
        if not project:
            return _error("Project not found", 404)
        if project.owner_id != actor:
            return _error("Only the project owner can remove members", 403)
        project = projects_mod.remove_member(db, project_id, user_id)
        return JSONResponse(_project_dict(project))
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


# ── Invitations ───────────────────────────────────────────────────────────────


async def api_invite(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not projects_mod.get_project(db, project_id):
            return _error("Project not found", 404)
        body = await _json_body(request)
        invitation = invitations_mod.invite(db, project_id, actor, body.get("user_id", ""))
        return JSONResponse(_invitation_dict(invitation), status_code=201)
    except PermissionError as e:
        return _error(str(e), 403)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_pending_invitations(request: Request):
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        invitations = invitations_mod.list_pending(db, actor)
        return JSONResponse([_invitation_dict(i) for i in invitations])
    finally:
        db.close()


async def _answer_invitation(request: Request, answer):
    invitation_id = request.path_params["invitation_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        invitation = answer(db, invitation_id, actor)
        if not invitation:
            return _error("Invitation not found", 404)
        return JSONResponse(_invitation_dict(invitation))
    except PermissionError as e:
        return _error(str(e), 403)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_accept_invitation(request: Request):
    return await _answer_invitation(request, invitations_mod.accept)


async def api_reject_invitation(request: Request):
    return await _answer_invitation(request, invitations_mod.reject)


# ── Tasks ─────────────────────────────────────────────────────────────────────


async def api_project_tasks(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not projects_mod.get_project(db, project_id):
            return _error("Project not found", 404)
        if not projects_mod.is_member(db, project_id, actor):
            return _error("Not authorized", 403)
        tasks = tasks_mod.list_tasks(
            db,
            project_id,
            status=request.query_params.get("status"),
            assignee_id=request.query_params.get("assignee"),
        )
        return JSONResponse([_task_dict(t) for t in tasks])
    finally:
        db.close()


async def api_create_task(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not projects_mod.get_project(db, project_id):
            return _error("Project not found", 404)
        if not projects_mod.is_member(db, project_id, actor):
            return _error("Not authorized to create tasks in this project", 403)
        body = await _json_body(request)
        task = tasks_mod.create_task(
            db,
            body.get("title", ""),
            project_id,
            actor,
            description=body.get("description", ""),
            status=body.get("status"),
            assignee_id=body.get("assignee_id"),
            due_date=body.get("due_date"),
        )
        return JSONResponse(_task_dict(task), status_code=201)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        task = tasks_mod.get_task(db, task_id)
        if not task:
            return _error("Task not found", 404)
        if not projects_mod.is_member(db, task.project_id, actor):
            return _error("Not authorized to view this task", 403)
        td = _task_dict(task)
        td["events"] = [_event_dict(e) for e in tasks_mod.get_task_events(db, task_id)]
        return JSONResponse(td)
    finally:
        db.close()


async def api_update_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        task = tasks_mod.get_task(db, task_id)
        if not task:
            return _error("Task not found", 404)
        if not projects_mod.is_member(db, task.project_id, actor):
            return _error("Not authorized to update this task", 403)
        body = await _json_body(request)
        changes = {k: body[k] for k in tasks_mod.UPDATABLE_FIELDS if k in body}
        result = engine_mod.update_task_as_user(db, task_id, actor, **changes)
        if result is None:
            return _error("Task not found", 404)
        previous, updated = result
        _notify_collaborators(db, previous, updated, actor)
        # Automations may have moved the task after the user's write.
        return JSONResponse(_task_dict(tasks_mod.get_task(db, task_id)))
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_delete_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        task = tasks_mod.get_task(db, task_id)
        if not task:
            return _error("Task not found", 404)
        if task.created_by != actor and not projects_mod.is_owner(db, task.project_id, actor):
            return _error("Not authorized to delete this task", 403)
        tasks_mod.delete_task(db, task_id)
        return JSONResponse({"deleted": task_id})
    finally:
        db.close()


def _notify_collaborators(db, previous, updated, actor):
    """Assignment and status-change notices for the people involved."""
    try:
        if updated.assignee_id and updated.assignee_id != previous.assignee_id:
            notifications_mod.notify_task_assignment(db, updated, updated.assignee_id, actor)
        if updated.status != previous.status:
            notifications_mod.notify_status_update(db, updated, actor, previous.status)
    except Exception:
        # Notices never fail the update itself.
        logger.exception("Error sending task notifications for %s", updated.id)


# ── Automations ───────────────────────────────────────────────────────────────


async def api_project_automations(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not projects_mod.get_project(db, project_id):
            return _error("Project not found", 404)
        if not projects_mod.is_member(db, project_id, actor):
            return _error("Not authorized", 403)
        automations = automations_mod.list_project_automations(db, project_id)
        return JSONResponse([automations_mod.automation_to_dict(a) for a in automations])
    finally:
        db.close()


async def api_create_automation(request: Request):
    project_id = request.path_params["project_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not projects_mod.get_project(db, project_id):
            return _error("Project not found", 404)
        body = await _json_body(request)
        automation = automations_mod.create_automation(
            db,
            project_id,
            body.get("name", ""),
            body.get("trigger"),
            body.get("action"),
            created_by=actor,
            active=body.get("active", True),
        )
        return JSONResponse(automations_mod.automation_to_dict(automation), status_code=201)
    except automations_mod.NotAuthorizedError as e:
        return _error(str(e), 403)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_get_automation(request: Request):
    automation_id = request.path_params["automation_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        automation = automations_mod.get_automation(db, automation_id)
        if not automation:
            return _error("Automation not found", 404)
        if not projects_mod.is_member(db, automation.project_id, actor):
            return _error("Not authorized to view this automation", 403)
        return JSONResponse(automations_mod.automation_to_dict(automation))
    finally:
        db.close()


async def api_update_automation(request: Request):
    automation_id = request.path_params["automation_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        body = await _json_body(request)
        automation = automations_mod.update_automation(
            db,
            automation_id,
            actor,
            name=body.get("name"),
            trigger=body.get("trigger"),
            action=body.get("action"),
            active=body.get("active"),
        )
        if not automation:
            return _error("Automation not found", 404)
        return JSONResponse(automations_mod.automation_to_dict(automation))
    except automations_mod.NotAuthorizedError as e:
        return _error(str(e), 403)
    except ValueError as e:
        return _error(str(e), 400)
    finally:
        db.close()


async def api_delete_automation(request: Request):
    automation_id = request.path_params["automation_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        if not automations_mod.delete_automation(db, automation_id, actor):
            return _error("Automation not found", 404)
        return JSONResponse({"deleted": automation_id})
    except automations_mod.NotAuthorizedError as e:
        return _error(str(e), 403)
    finally:
        db.close()


# ── Notifications ─────────────────────────────────────────────────────────────


async def api_list_notifications(request: Request):
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        unread_only = request.query_params.get("unread") in ("1", "true")
        notifications = notifications_mod.list_notifications(db, actor, unread_only=unread_only)
        return JSONResponse([_notification_dict(n) for n in notifications])
    finally:
        db.close()


async def api_mark_notification_read(request: Request):
    notification_id = request.path_params["notification_id"]
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        notification = notifications_mod.mark_read(db, notification_id, actor)
        if not notification:
            return _error("Notification not found or not authorized", 404)
        return JSONResponse(_notification_dict(notification))
    finally:
        db.close()


async def api_mark_all_read(request: Request):
    db = _get_db()
    try:
        actor = _actor(request, db)
        if not actor:
            return _error("Authentication required", 401)
        count = notifications_mod.mark_all_read(db, actor)
        return JSONResponse({"marked_read": count})
    finally:
        db.close()


# ── Sweep ─────────────────────────────────────────────────────────────────────


async def api_sweep(request: Request):
    db = _get_db()
    try:
        if not _actor(request, db):
            return _error("Authentication required", 401)
        dispatched = engine_mod.run_due_date_sweep(db)
        return JSONResponse({"dispatched": dispatched})
    finally:
        db.close()


# ── Serialization ─────────────────────────────────────────────────────────────


def _iso(dt) -> str | None:
    return dt.isoformat() if dt else None


def _user_dict(u) -> dict:
    return {
        "id": u.id,
        "display_name": u.display_name,
        "email": u.email,
        "created_at": _iso(u.created_at),
    }


def _badge_dict(b) -> dict:
    return {"name": b.name, "project_id": b.project_id, "earned_at": _iso(b.earned_at)}


def _project_dict(p) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "owner_id": p.owner_id,
        "task_statuses": p.task_statuses,
        "members": p.members,
        "created_at": _iso(p.created_at),
    }


def _task_dict(t) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "status": t.status,
        "project_id": t.project_id,
        "assignee_id": t.assignee_id,
        "due_date": _iso(t.due_date),
        "created_by": t.created_by,
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


def _event_dict(e) -> dict:
    return {
        "id": e.id,
        "event_type": e.event_type,
        "old_value": e.old_value,
        "new_value": e.new_value,
        "created_at": _iso(e.created_at),
    }


def _invitation_dict(i) -> dict:
    return {
        "id": i.id,
        "project_id": i.project_id,
        "sender_id": i.sender_id,
        "recipient_id": i.recipient_id,
        "status": i.status,
        "created_at": _iso(i.created_at),
    }


def _notification_dict(n) -> dict:
    return {
        "id": n.id,
        "recipient_id": n.recipient_id,
        "sender_id": n.sender_id,
        "type": n.type,
        "message": n.message,
        "read": n.read,
        "task_id": n.task_id,
        "project_id": n.project_id,
        "invitation_id": n.invitation_id,
        "automation_id": n.automation_id,
        "created_at": _iso(n.created_at),
    }


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(start_scheduler: bool = False) -> Starlette:
    routes = [
        Route("/api/users", api_list_users, methods=["GET"]),
        Route("/api/users", api_create_user, methods=["POST"]),
        Route("/api/users/{user_id}/badges", api_user_badges, methods=["GET"]),
        Route("/api/projects", api_list_projects, methods=["GET"]),
        Route("/api/projects", api_create_project, methods=["POST"]),
        Route("/api/projects/{project_id}", api_get_project, methods=["GET"]),
        Route("/api/projects/{project_id}", api_update_project, methods=["PUT"]),
        Route("/api/projects/{project_id}", api_delete_project, methods=["DELETE"]),
        Route("/api/projects/{project_id}/statuses", api_update_statuses, methods=["PUT"]),
        Route("/api/projects/{project_id}/members", api_add_member, methods=["POST"]),
        Route("/api/projects/{project_id}/members/{user_id}", api_remove_member, methods=["DELETE"]),
        Route("/api/projects/{project_id}/invitations", api_invite, methods=["POST"]),
        Route("/api/projects/{project_id}/tasks", api_project_tasks, methods=["GET"]),
        Route("/api/projects/{project_id}/tasks", api_create_task, methods=["POST"]),
        Route("/api/projects/{project_id}/automations", api_project_automations, methods=["GET"]),
        Route("/api/projects/{project_id}/automations", api_create_automation, methods=["POST"]),
        Route("/api/tasks/{task_id}", api_get_task, methods=["GET"]),
        Route("/api/tasks/{task_id}", api_update_task, methods=["PATCH"]),
        Route("/api/tasks/{task_id}", api_delete_task, methods=["DELETE"]),
        Route("/api/automations/{automation_id:int}", api_get_automation, methods=["GET"]),
        Route("/api/automations/{automation_id:int}", api_update_automation, methods=["PUT"]),
        Route("/api/automations/{automation_id:int}", api_delete_automation, methods=["DELETE"]),
        Route("/api/invitations/pending", api_pending_invitations, methods=["GET"]),
        Route("/api/invitations/{invitation_id:int}/accept", api_accept_invitation, methods=["PUT"]),
        Route("/api/invitations/{invitation_id:int}/reject", api_reject_invitation, methods=["PUT"]),
        Route("/api/notifications", api_list_notifications, methods=["GET"]),
        Route("/api/notifications/read-all", api_mark_all_read, methods=["PUT"]),
        Route("/api/notifications/{notification_id:int}/read", api_mark_notification_read, methods=["PUT"]),
        Route("/api/sweep", api_sweep, methods=["POST"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(app):
        scheduler = None
        if start_scheduler:
            config = get_config()
            scheduler = DueDateScheduler(config.db_path, interval=config.sweep_interval)
            scheduler.start()
        app.state.scheduler = scheduler
        try:
            yield
        finally:
            if scheduler:
                scheduler.stop()

    return Starlette(routes=routes, lifespan=lifespan)


def run_server(host: str = "127.0.0.1", port: int = 8787, start_scheduler: bool = True):
    app = create_app(start_scheduler=start_scheduler)
    uvicorn.run(app, host=host, port=port)
