"""CLI entry point for taskboard."""

import json
import logging
import sys

import click

from taskboard.config import get_config
from taskboard.core import automations as automations_mod
from taskboard.core import defaults as defaults_mod
from taskboard.core import engine as engine_mod
from taskboard.core import invitations as invitations_mod
from taskboard.core import notifications as notifications_mod
from taskboard.core import projects as projects_mod
from taskboard.core import tasks as tasks_mod
from taskboard.core import users as users_mod
from taskboard.db.engine import get_db


def _get_db():
    config = get_config()
    return get_db(config.db_path)


def _fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _actor(as_user: str | None) -> str:
    actor = as_user or get_config().default_user
    if not actor:
        _fail("No acting user. Pass --as or set TB_USER.")
    return actor


as_option = click.option("--as", "as_user", default=None, help="Acting user ID (default: $TB_USER)")


@click.group()
def main():
    """tb - Taskboard CLI"""
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── User Commands ─────────────────────────────────────────────────────────────


@main.group("user")
def user_group():
    """Manage users."""
    pass


@user_group.command("add")
@click.argument("user_id")
@click.option("--name", default=None, help="Display name")
@click.option("--email", required=True, help="Email address")
def user_add(user_id, name, email):
    """Create a user."""
    with _get_db() as db:
        try:
            user = users_mod.create_user(db, user_id, name or user_id, email)
        except ValueError as e:
            _fail(str(e))
        click.echo(f"Created user: {user.id} ({user.display_name})")


@user_group.command("list")
def user_list():
    """List users."""
    with _get_db() as db:
        users = users_mod.list_users(db)
        if not users:
            click.echo("No users found.")
            return
        for u in users:
            click.echo(f"  {u.id}: {u.display_name} <{u.email}>")


@user_group.command("badges")
@click.argument("user_id")
def user_badges(user_id):
    """Show the badges a user has earned."""
    with _get_db() as db:
        user = users_mod.get_user(db, user_id)
        if not user:
            _fail(f"User not found: {user_id}")
        if not user.badges:
            click.echo("No badges yet.")
            return
        for b in user.badges:
            click.echo(f"  {b.name} [{b.project_id}] earned {b.earned_at}")


# ── Project Commands ──────────────────────────────────────────────────────────


@main.group("project")
def project_group():
    """Manage projects."""
    pass


@project_group.command("create")
@click.argument("name")
@click.option("--description", "-d", default="", help="Project description")
@click.option("--statuses", default=None, help="Comma-separated ordered task statuses")
@click.option("--defaults/--no-defaults", default=False, help="Install the stock automations")
@as_option
def project_create(name, description, statuses, defaults, as_user):
    """Create a project owned by the acting user."""
    actor = _actor(as_user)
    status_list = [s.strip() for s in statuses.split(",")] if statuses else None
    with _get_db() as db:
        try:
            project = projects_mod.create_project(
                db, actor, name, description=description, task_statuses=status_list
            )
        except ValueError as e:
            _fail(str(e))
        click.echo(f"Project created: {project.id} ({project.name})")
        click.echo(f"  Statuses: {', '.join(project.task_statuses)}")
        if defaults:
            created = defaults_mod.setup_default_automations(db, project.id, actor)
            click.echo(f"  Default automations: {len(created)}")


@project_group.command("list")
@as_option
def project_list(as_user):
    """List projects the acting user belongs to."""
    actor = _actor(as_user)
    with _get_db() as db:
        projects = projects_mod.list_projects(db, user_id=actor)
        if not projects:
            click.echo("No projects found.")
            return
        for p in projects:
            role = "owner" if p.owner_id == actor else "member"
            click.echo(f"  {p.id}: {p.name} ({role})")


@project_group.command("show")
@click.argument("project_id")
def project_show(project_id):
    """Show project details."""
    with _get_db() as db:
        project = projects_mod.get_project(db, project_id)
        if not project:
            _fail(f"Project not found: {project_id}")
        click.echo(f"Project: {project.id}")
        click.echo(f"  Name: {project.name}")
        click.echo(f"  Owner: {project.owner_id}")
        click.echo(f"  Members: {', '.join(project.members)}")
        click.echo(f"  Statuses: {', '.join(project.task_statuses)}")
        if project.description:
            click.echo(f"  Description: {project.description}")


@project_group.command("statuses")
@click.argument("project_id")
@click.argument("statuses")
@as_option
def project_statuses(project_id, statuses, as_user):
    """Replace a project's comma-separated status list (owner only)."""
    actor = _actor(as_user)
    with _get_db() as db:
        if not projects_mod.get_project(db, project_id):
            _fail(f"Project not found: {project_id}")
        if not projects_mod.is_owner(db, project_id, actor):
            _fail("Only the project owner can update task statuses")
        try:
            project = projects_mod.update_task_statuses(
                db, project_id, [s.strip() for s in statuses.split(",")]
            )
        except ValueError as e:
            _fail(str(e))
        click.echo(f"Statuses for {project.id}: {', '.join(project.task_statuses)}")


@project_group.command("add-member")
@click.argument("project_id")
@click.argument("user_id")
def project_add_member(project_id, user_id):
    """Add a user to a project."""
    with _get_db() as db:
        try:
            project = projects_mod.add_member(db, project_id, user_id)
        except ValueError as e:
            _fail(str(e))
        if not project:
            _fail(f"Project not found: {project_id}")
        click.echo(f"Members of {project.id}: {', '.join(project.members)}")


@project_group.command("delete")
@click.argument("project_id")
@as_option
def project_delete(project_id, as_user):
    """Delete a project with its tasks and automations (owner only)."""
    actor = _actor(as_user)
    with _get_db() as db:
        if not projects_mod.get_project(db, project_id):
            _fail(f"Project not found: {project_id}")
        if not projects_mod.is_owner(db, project_id, actor):
            _fail("Only the project owner can delete this project")
        projects_mod.delete_project(db, project_id)
        click.echo(f"Deleted project: {project_id}")


@project_group.command("update")
@click.argument("project_id")
@click.option("--name", default=None, help="New project name")
@click.option("--description", "-d", default=None, help="New description")
@as_option
def project_update(project_id, name, description, as_user):
    """Rename a project or change its description (owner only)."""
    actor = _actor(as_user)
    with _get_db() as db:
        if not projects_mod.get_project(db, project_id):
            _fail(f"Project not found: {project_id}")
        if not projects_mod.is_owner(db, project_id, actor):
            _fail("Only the project owner can update project details")
        if name is not None and not name:
            _fail("Project name is required")
        project = projects_mod.update_project(db, project_id, name=name, description=description)
        click.echo(f"Updated project: {project.id} ({project.name})")


@project_group.command("remove-member")
@click.argument("project_id")
@click.argument("user_id")
@as_option
def project_remove_member(project_id, user_id, as_user):
    """Remove a member from a project (owner only)."""
    actor = _actor(as_user)
    with _get_db() as db:
        if not projects_mod.get_project(db, project_id):
            _fail(f"Project not found: {project_id}")
        if not projects_mod.is_owner(db, project_id, actor):
            _fail("Only the project owner can remove members")
        try:
            project = projects_mod.remove_member(db, project_id, user_id)
        except ValueError as e:
            _fail(str(e))
        click.echo(f"Members of {project.id}: {', '.join(project.members)}")


@project_group.command("invite")
@click.argument("project_id")
@click.argument("user_id")
@as_option
def project_invite(project_id, user_id, as_user):
    """Invite a user to join a project."""
    actor = _actor(as_user)
    with _get_db() as db:
        try:
            invitation = invitations_mod.invite(db, project_id, actor, user_id)
        except (PermissionError, ValueError) as e:
            _fail(str(e))
        click.echo(f"Invited {user_id} to {project_id} (invitation #{invitation.id})")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("add")
@click.argument("title")
@click.option("--project", required=True, help="Project ID")
@click.option("--description", "-d", default="", help="Task description")
@click.option("--status", default=None, help="Initial status (default: project's first)")
@click.option("--assignee", default=None, help="Assignee user ID")
@click.option("--due", default=None, help="Due date (YYYY-MM-DD or ISO datetime)")
@as_option
def task_add(title, project, description, status, assignee, due, as_user):
    """Create a new task."""
    actor = _actor(as_user)
    with _get_db() as db:
        try:
            task = tasks_mod.create_task(
                db, title, project, actor,
                description=description, status=status, assignee_id=assignee, due_date=due,
            )
        except ValueError as e:
            _fail(str(e))
        click.echo(f"Created task: {task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Status: {task.status}")
        if task.assignee_id:
            click.echo(f"  Assignee: {task.assignee_id}")
        if task.due_date:
            click.echo(f"  Due: {task.due_date.date().isoformat()}")


@task_group.command("list")
@click.option("--project", required=True, help="Project ID")
@click.option("--status", default=None, help="Filter by status")
@click.option("--assignee", default=None, help="Filter by assignee")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(project, status, assignee, json_output):
    """List tasks."""
    with _get_db() as db:
        tasks = tasks_mod.list_tasks(db, project, status=status, assignee_id=assignee)

        if json_output:
            click.echo(json.dumps([_task_dict(t) for t in tasks], indent=2))
            return

        if not tasks:
            click.echo("No tasks found.")
            return

        for task in tasks:
            who = f" @{task.assignee_id}" if task.assignee_id else ""
            due = f" due {task.due_date.date().isoformat()}" if task.due_date else ""
            click.echo(f"  [{task.status}] {task.id}: {task.title}{who}{due}")


@task_group.command("show")
@click.argument("task_id")
def task_show(task_id):
    """Show task details."""
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            _fail(f"Task not found: {task_id}")

        click.echo(f"Task: {task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Status: {task.status}")
        click.echo(f"  Project: {task.project_id}")
        if task.description:
            click.echo(f"  Description: {task.description}")
        if task.assignee_id:
            click.echo(f"  Assignee: {task.assignee_id}")
        if task.due_date:
            click.echo(f"  Due: {task.due_date.isoformat()}")

        events = tasks_mod.get_task_events(db, task_id)
        if events:
            click.echo(f"  History:")
            for e in events:
                click.echo(f"    [{e.created_at}] {e.event_type}: {e.old_value} -> {e.new_value}")


@task_group.command("update")
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("--description", "-d", default=None)
@click.option("--status", default=None)
@click.option("--assignee", default=None, help="Assign to a user")
@click.option("--unassign", is_flag=True, help="Remove the assignee")
@click.option("--due", default=None, help="Due date (YYYY-MM-DD or ISO datetime)")
@as_option
def task_update(task_id, title, description, status, assignee, unassign, due, as_user):
    """Update a task and run the automations it triggers."""
    actor = _actor(as_user)
    changes = {}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    if status is not None:
        changes["status"] = status
    if assignee is not None:
        changes["assignee_id"] = assignee
    elif unassign:
        changes["assignee_id"] = None
    if due is not None:
        changes["due_date"] = due

    with _get_db() as db:
        try:
            result = engine_mod.update_task_as_user(db, task_id, actor, **changes)
        except ValueError as e:
            _fail(str(e))
        if not result:
            _fail(f"Task not found: {task_id}")
        task = tasks_mod.get_task(db, task_id)
        click.echo(f"Updated task: {task.id}")
        click.echo(f"  Status: {task.status}")
        if task.assignee_id:
            click.echo(f"  Assignee: {task.assignee_id}")


@task_group.command("delete")
@click.argument("task_id")
def task_delete(task_id):
    """Delete a task."""
    with _get_db() as db:
        if not tasks_mod.delete_task(db, task_id):
            _fail(f"Task not found: {task_id}")
        click.echo(f"Deleted task: {task_id}")


# ── Automation Commands ───────────────────────────────────────────────────────


@main.group("automation")
def automation_group():
    """Manage project automations."""
    pass


@automation_group.command("add")
@click.argument("project_id")
@click.argument("name")
@click.option(
    "--trigger", "trigger_type", required=True,
    type=click.Choice(["task_status_change", "task_assignment", "task_due_date_passed"]),
)
@click.option("--from-status", default=None, help="task_status_change: previous status")
@click.option("--to-status", default=None, help="task_status_change: new status")
@click.option("--user", "trigger_user", default=None, help="task_assignment: assignee")
@click.option(
    "--action", "action_type", required=True,
    type=click.Choice(["assign_badge", "change_task_status", "send_notification"]),
)
@click.option("--badge", default=None, help="assign_badge: badge name")
@click.option("--status", default=None, help="change_task_status: target status")
@click.option("--message", default=None, help="send_notification: message template")
@click.option("--inactive", is_flag=True, help="Create the automation disabled")
@as_option
def automation_add(
    project_id, name, trigger_type, from_status, to_status, trigger_user,
    action_type, badge, status, message, inactive, as_user,
):
    """Create an automation (project owner only)."""
    actor = _actor(as_user)
    conditions = {"fromStatus": from_status, "toStatus": to_status, "userId": trigger_user}
    parameters = {"badgeName": badge, "status": status, "notificationMessage": message}
    trigger = {"type": trigger_type, "conditions": {k: v for k, v in conditions.items() if v}}
    action = {"type": action_type, "parameters": {k: v for k, v in parameters.items() if v}}

    with _get_db() as db:
        try:
            automation = automations_mod.create_automation(
                db, project_id, name, trigger, action, created_by=actor, active=not inactive
            )
        except (ValueError, PermissionError) as e:
            _fail(str(e))
        click.echo(f"Created automation #{automation.id}: {automation.name}")


@automation_group.command("list")
@click.argument("project_id")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def automation_list(project_id, json_output):
    """List a project's automations."""
    with _get_db() as db:
        automations = automations_mod.list_project_automations(db, project_id)
        if json_output:
            click.echo(json.dumps(
                [automations_mod.automation_to_dict(a) for a in automations], indent=2
            ))
            return
        if not automations:
            click.echo("No automations found.")
            return
        for a in automations:
            state = "on" if a.active else "off"
            click.echo(f"  #{a.id} [{state}] {a.name}: {a.trigger.type} -> {a.action.type}")


@automation_group.command("show")
@click.argument("automation_id", type=int)
def automation_show(automation_id):
    """Show an automation."""
    with _get_db() as db:
        automation = automations_mod.get_automation(db, automation_id)
        if not automation:
            _fail(f"Automation not found: {automation_id}")
        click.echo(json.dumps(automations_mod.automation_to_dict(automation), indent=2))


def _set_active(automation_id: int, active: bool, as_user: str | None):
    actor = _actor(as_user)
    with _get_db() as db:
        try:
            automation = automations_mod.update_automation(db, automation_id, actor, active=active)
        except PermissionError as e:
            _fail(str(e))
        if not automation:
            _fail(f"Automation not found: {automation_id}")
        click.echo(f"Automation #{automation.id} {'enabled' if active else 'disabled'}")


@automation_group.command("enable")
@click.argument("automation_id", type=int)
@as_option
def automation_enable(automation_id, as_user):
    """Enable an automation."""
    _set_active(automation_id, True, as_user)


@automation_group.command("disable")
@click.argument("automation_id", type=int)
@as_option
def automation_disable(automation_id, as_user):
    """Disable an automation."""
    _set_active(automation_id, False, as_user)


@automation_group.command("delete")
@click.argument("automation_id", type=int)
@as_option
def automation_delete(automation_id, as_user):
    """Delete an automation."""
    actor = _actor(as_user)
    with _get_db() as db:
        try:
            deleted = automations_mod.delete_automation(db, automation_id, actor)
        except PermissionError as e:
            _fail(str(e))
        if not deleted:
            _fail(f"Automation not found: {automation_id}")
        click.echo(f"Deleted automation #{automation_id}")


@automation_group.command("defaults")
@click.argument("project_id")
@as_option
def automation_defaults(project_id, as_user):
    """Install the stock automations on a project."""
    actor = _actor(as_user)
    with _get_db() as db:
        try:
            created = defaults_mod.setup_default_automations(db, project_id, actor)
        except (ValueError, PermissionError) as e:
            _fail(str(e))
        for a in created:
            click.echo(f"  Created #{a.id}: {a.name}")


# ── Invitation Commands ───────────────────────────────────────────────────────


@main.group("invitation")
def invitation_group():
    """Answer project invitations."""
    pass


@invitation_group.command("list")
@as_option
def invitation_list(as_user):
    """List the acting user's pending invitations."""
    actor = _actor(as_user)
    with _get_db() as db:
        invitations = invitations_mod.list_pending(db, actor)
        if not invitations:
            click.echo("No pending invitations.")
            return
        for i in invitations:
            click.echo(f"  #{i.id} {i.project_id} (from {i.sender_id})")


def _answer(invitation_id, as_user, answer):
    actor = _actor(as_user)
    with _get_db() as db:
        try:
            invitation = answer(db, invitation_id, actor)
        except (PermissionError, ValueError) as e:
            _fail(str(e))
        if not invitation:
            _fail(f"Invitation not found: {invitation_id}")
        click.echo(f"Invitation #{invitation.id} {invitation.status}")


@invitation_group.command("accept")
@click.argument("invitation_id", type=int)
@as_option
def invitation_accept(invitation_id, as_user):
    """Accept an invitation and join the project."""
    _answer(invitation_id, as_user, invitations_mod.accept)


@invitation_group.command("reject")
@click.argument("invitation_id", type=int)
@as_option
def invitation_reject(invitation_id, as_user):
    """Reject an invitation."""
    _answer(invitation_id, as_user, invitations_mod.reject)


# ── Notification Commands ─────────────────────────────────────────────────────


@main.group("notification")
def notification_group():
    """Read notifications."""
    pass


@notification_group.command("list")
@click.option("--unread", is_flag=True, help="Only unread notifications")
@as_option
def notification_list(unread, as_user):
    """List the acting user's notifications."""
    actor = _actor(as_user)
    with _get_db() as db:
        notifications = notifications_mod.list_notifications(db, actor, unread_only=unread)
        if not notifications:
            click.echo("No notifications.")
            return
        for n in notifications:
            mark = " " if n.read else "*"
            click.echo(f"  {mark} #{n.id} [{n.type}] {n.message}")


@notification_group.command("read")
@click.argument("notification_id", type=int)
@as_option
def notification_read(notification_id, as_user):
    """Mark a notification as read."""
    actor = _actor(as_user)
    with _get_db() as db:
        if not notifications_mod.mark_read(db, notification_id, actor):
            _fail("Notification not found or not authorized")
        click.echo(f"Marked #{notification_id} as read")


@notification_group.command("read-all")
@as_option
def notification_read_all(as_user):
    """Mark all notifications as read."""
    actor = _actor(as_user)
    with _get_db() as db:
        count = notifications_mod.mark_all_read(db, actor)
        click.echo(f"Marked {count} notification(s) as read")


# ── Scheduling Commands ───────────────────────────────────────────────────────


@main.command("sweep")
def sweep_command():
    """Run one due-date sweep now."""
    with _get_db() as db:
        dispatched = engine_mod.run_due_date_sweep(db)
        click.echo(f"Dispatched {dispatched} overdue task(s)")


@main.command("scheduler")
@click.option("--interval", type=float, default=None, help="Seconds between sweeps")
def scheduler_command(interval):
    """Run the due-date scheduler in the foreground."""
    import time

    from taskboard.core.scheduler import DueDateScheduler

    config = get_config()
    scheduler = DueDateScheduler(config.db_path, interval=interval or config.sweep_interval)
    scheduler.start()
    click.echo(f"Scheduler running every {scheduler.interval}s (Ctrl-C to stop)")
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


@main.command("serve")
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to listen on")
@click.option("--scheduler/--no-scheduler", default=True, help="Run the due-date scheduler")
def serve_command(host, port, scheduler):
    """Launch the REST API."""
    from taskboard.web.app import run_server

    config = get_config()
    host = host or config.host
    port = port or config.port
    click.echo(f"Starting API at http://{host}:{port}")
    run_server(host=host, port=port, start_scheduler=scheduler)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _task_dict(task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "project": task.project_id,
        "description": task.description,
        "assignee": task.assignee_id,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "created_by": task.created_by,
    }


if __name__ == "__main__":
    main()
