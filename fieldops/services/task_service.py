"""
Task service — task administration, work queues and task-side stock use.

Guarded status changes live in ``task_lifecycle``; deliveries and checklist
evidence in ``delivery_service`` and ``checklist_service``. This module holds
the privileged administration operations (create, edit, status override,
delete) plus the executor's "my tasks" view.

Every mutation recomputes the owning project(s) before the single commit.
"""

import logging

from sqlalchemy import or_

from fieldops.core.exceptions import ForbiddenError, ValidationError
from fieldops.models import db
from fieldops.models.auth import User
from fieldops.models.project import Project, ProjectResponsible
from fieldops.models.task import ACTIVE_TASK_STATUSES, TASK_STATUSES, Task, TaskMember
from fieldops.services import checklist_service, project_status, stock_ledger, task_lifecycle
from fieldops.services.authorization_policy import can_allocate_stock, can_manage_tasks
from fieldops.services.helpers.queries import get_entity, get_entity_or_none
from fieldops.utils.helpers import parse_date_input, parse_float, parse_int

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 120


def _require_manager(actor, action):
    if not can_manage_tasks(actor):
        raise ForbiddenError("Only directors, GMs or supervisors can manage tasks", action=action)


def _clean_name(raw):
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("name is required", details={"name": "required"})
    name = raw.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f"name must be ≤ {NAME_MAX_LENGTH} characters",
                              details={"name": "too long"})
    return name


def _require_project(project_id):
    project = get_entity_or_none(Project, project_id)
    if project is None:
        raise ValidationError("Project not found", details={"project_id": project_id})
    return project


def _require_user(user_id, field):
    user = get_entity_or_none(User, user_id)
    if user is None:
        raise ValidationError("User not found", details={field: user_id})
    return user


def _member_ids(raw):
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("member_ids must be an array", details={"member_ids": "expected array"})
    ids = [parse_int(v, "member_ids") for v in raw]
    for uid in ids:
        _require_user(uid, "member_ids")
    return list(dict.fromkeys(ids))


def _replace_members(task, user_ids):
    wanted = set(user_ids)
    for member in list(task.members):
        if member.user_id not in wanted:
            task.members.remove(member)
    existing = task.member_ids
    for uid in user_ids:
        if uid not in existing:
            task.members.append(TaskMember(user_id=uid))


def _insumos(raw):
    value = parse_float(raw, "insumos_value")
    if value is not None and value < 0:
        raise ValidationError("insumos_value must not be negative", details={"insumos_value": value})
    return value


# ── Create / update ──────────────────────────────────────────────────────────

def create_task(actor, data: dict) -> Task:
    _require_manager(actor, "create_task")

    project_id = parse_int(data.get("project_id"), "project_id", required=True)
    executor_id = parse_int(data.get("executor_id"), "executor_id", required=True)
    _require_project(project_id)
    _require_user(executor_id, "executor_id")
    approver_id = parse_int(data.get("approver_id"), "approver_id")
    if approver_id is not None:
        _require_user(approver_id, "approver_id")

    task = Task(
        project_id=project_id,
        executor_id=executor_id,
        approver_id=approver_id,
        name=_clean_name(data.get("name")),
        description=data.get("description"),
        start_date=parse_date_input(data.get("start_date"), "start_date"),
        end_date=parse_date_input(data.get("end_date"), "end_date"),
        insumos_value=_insumos(data.get("insumos_value")) or 0.0,
    )
    db.session.add(task)
    _replace_members(task, _member_ids(data.get("member_ids")))
    db.session.flush()

    checklist_service.apply_checklist(task, data.get("checklist"))

    result = project_status.recompute(project_id)
    db.session.commit()

    logger.info(
        "Task %s created in project %s by user %s", task.id, project_id, actor.id,
        extra={"event_type": "task_created", "task_id": task.id,
               "project_id": project_id, "actor_id": actor.id},
    )
    project_status.notify_if_finalized(result)
    return task


def update_task(task_id: int, actor, data: dict) -> Task:
    """Partial update. A ``status`` key is a privileged override."""
    _require_manager(actor, "update_task")
    task = get_entity(Task, task_id)
    old_project_id = task.project_id

    if "name" in data:
        task.name = _clean_name(data["name"])
    if "description" in data:
        task.description = data["description"]
    if "insumos_value" in data:
        task.insumos_value = _insumos(data["insumos_value"]) or 0.0
    if data.get("start_date"):
        task.start_date = parse_date_input(data["start_date"], "start_date")
    if data.get("end_date"):
        task.end_date = parse_date_input(data["end_date"], "end_date")

    if "executor_id" in data:
        executor_id = parse_int(data["executor_id"], "executor_id")
        if not executor_id:
            raise ValidationError("executor is required", details={"executor_id": "required"})
        task.executor_id = _require_user(executor_id, "executor_id").id
    if "approver_id" in data:
        approver_id = parse_int(data["approver_id"], "approver_id")
        task.approver_id = _require_user(approver_id, "approver_id").id if approver_id else None
    if "project_id" in data:
        project_id = parse_int(data["project_id"], "project_id")
        if not project_id:
            raise ValidationError("project is required", details={"project_id": "required"})
        task.project_id = _require_project(project_id).id
    if "member_ids" in data:
        _replace_members(task, _member_ids(data["member_ids"]))
    if "checklist" in data:
        checklist_service.apply_checklist(task, data["checklist"] or None)
    if "status" in data:
        task_lifecycle.override_status(task, data["status"], actor_id=actor.id)

    results = [project_status.recompute(task.project_id)]
    if old_project_id != task.project_id:
        results.append(project_status.recompute(old_project_id))
    db.session.commit()

    logger.info(
        "Task %s updated by user %s (fields: %s)", task.id, actor.id, sorted(data),
        extra={"event_type": "task_updated", "task_id": task.id,
               "project_id": task.project_id, "actor_id": actor.id},
    )
    for result in results:
        project_status.notify_if_finalized(result)
    return task


def change_task_status(task_id: int, actor, status: str, started: bool | None = None) -> Task:
    """Privileged status override (administrative escape hatch)."""
    _require_manager(actor, "change_task_status")
    task = get_entity(Task, task_id)
    if started is not None and not isinstance(started, bool):
        raise ValidationError("started must be a boolean", details={"started": started})
    task_lifecycle.override_status(task, status, actor_id=actor.id, started=started)

    result = project_status.recompute(task.project_id)
    db.session.commit()
    project_status.notify_if_finalized(result)
    return task


def delete_task(task_id: int, actor) -> project_status.RecomputeResult:
    """Delete a task, give its stock back and recompute its project."""
    _require_manager(actor, "delete_task")
    task = get_entity(Task, task_id)
    project_id = task.project_id

    released = stock_ledger.release_for_task(task.id)
    db.session.delete(task)
    db.session.flush()

    result = project_status.recompute(project_id)
    db.session.commit()

    logger.info(
        "Task %s deleted by user %s (stock released: %s)", task_id, actor.id, released,
        extra={"event_type": "task_deleted", "task_id": task_id,
               "project_id": project_id, "actor_id": actor.id},
    )
    return result


# ── Queries ──────────────────────────────────────────────────────────────────

def get_task(task_id: int) -> Task:
    return get_entity(Task, task_id)


def list_my_tasks(actor, status: str | None = None, project_id: int | None = None) -> dict:
    """Work queue for ``actor``.

    Returns ``{"projects": [(project, progress_pct), ...], "tasks": [...]}``:
    projects the actor is responsible for, and active tasks the actor
    executes or that belong to those projects. A ``project_id`` filter
    replaces the ownership filter.
    """
    projects = (
        Project.query.join(ProjectResponsible, ProjectResponsible.project_id == Project.id)
        .filter(ProjectResponsible.user_id == actor.id)
        .order_by(Project.id)
        .all()
    )

    q = Task.query.filter(Task.status.in_(ACTIVE_TASK_STATUSES))
    if project_id is not None:
        q = q.filter(Task.project_id == project_id)
    else:
        owned = [Task.executor_id == actor.id]
        if projects:
            owned.append(Task.project_id.in_([p.id for p in projects]))
        q = q.filter(or_(*owned))

    if status:
        status = status.strip().upper()
        if status not in TASK_STATUSES:
            raise ValidationError(f"Invalid task status: {status!r}",
                                  details={"status": sorted(TASK_STATUSES)})
        q = q.filter(Task.status == status)

    tasks = q.order_by(Task.start_date.is_(None), Task.start_date, Task.id).all()
    return {
        "projects": [(p, project_status.project_progress(p)) for p in projects],
        "tasks": tasks,
    }


# ── Stock ────────────────────────────────────────────────────────────────────

def allocate_stock(task_id: int, actor, stock_item_id, quantity):
    task = get_entity(Task, task_id)
    if not can_allocate_stock(actor, task):
        raise ForbiddenError("Not allowed to allocate stock for this task", action="allocate_stock")
    allocation = stock_ledger.allocate(
        parse_int(stock_item_id, "stock_item_id", required=True),
        quantity,
        task_id=task.id,
        project_id=task.project_id,
    )
    db.session.commit()
    return allocation


def release_stock(task_id: int, actor, allocation_id: int) -> int:
    task = get_entity(Task, task_id)
    if not can_allocate_stock(actor, task):
        raise ForbiddenError("Not allowed to release stock for this task", action="release_stock")
    released = stock_ledger.release(allocation_id, task_id=task.id)
    db.session.commit()
    return released
