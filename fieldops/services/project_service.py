"""
Project service — project creation, listing and responsibles.

Derived fields (``status``, ``insumos_value``) are never written here; see
``project_status``.
"""

import logging

from fieldops.core.exceptions import ForbiddenError, ValidationError
from fieldops.models import db
from fieldops.models.auth import User
from fieldops.models.project import PROJECT_STATUSES, Project, ProjectResponsible
from fieldops.services.authorization_policy import can_manage_tasks
from fieldops.services.helpers.queries import get_entity, get_entity_or_none
from fieldops.services.project_status import project_progress
from fieldops.utils.helpers import parse_float, parse_int

logger = logging.getLogger(__name__)


def _user_ids(raw, field):
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{field} must be an array", details={field: "expected array"})
    ids = []
    for value in raw:
        uid = parse_int(value, field)
        if uid is None or uid < 1:
            raise ValidationError(f"Invalid user id: {value!r}", details={field: value})
        if get_entity_or_none(User, uid) is None:
            raise ValidationError(f"User {uid} not found", details={field: uid})
        ids.append(uid)
    return list(dict.fromkeys(ids))


def create_project(actor, data: dict) -> Project:
    if not can_manage_tasks(actor):
        raise ForbiddenError("Only directors, GMs or supervisors can create projects",
                             action="create_project")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", details={"name": "required"})

    supervisor_id = parse_int(data.get("supervisor_id"), "supervisor_id")
    if supervisor_id is not None and get_entity_or_none(User, supervisor_id) is None:
        raise ValidationError("Supervisor not found", details={"supervisor_id": supervisor_id})

    project = Project(
        name=name.strip(),
        summary=data.get("summary"),
        objective=data.get("objective"),
        total_value=parse_float(data.get("total_value"), "total_value") or 0.0,
        insumos_value=0.0,
        supervisor_id=supervisor_id,
    )
    for uid in _user_ids(data.get("responsible_ids"), "responsible_ids"):
        project.responsibles.append(ProjectResponsible(user_id=uid))
    db.session.add(project)
    db.session.commit()

    logger.info(
        "Project %s created by user %s", project.id, actor.id,
        extra={"event_type": "project_created", "project_id": project.id, "actor_id": actor.id},
    )
    return project


def list_projects(status: str | None = None, search: str | None = None):
    """Projects with their progress percentage, newest first."""
    q = Project.query
    if status:
        status = status.strip().upper()
        if status not in PROJECT_STATUSES:
            raise ValidationError(f"Invalid project status: {status!r}",
                                  details={"status": sorted(PROJECT_STATUSES)})
        q = q.filter(Project.status == status)
    if search:
        q = q.filter(Project.name.ilike(f"%{search.strip()}%"))
    projects = q.order_by(Project.created_at.desc(), Project.id.desc()).all()
    return [(p, project_progress(p)) for p in projects]


def get_project(project_id: int) -> Project:
    return get_entity(Project, project_id)


def update_responsibles(project_id: int, actor, responsible_ids) -> Project:
    """Replace the project's responsibles wholesale (empty list clears them)."""
    if not can_manage_tasks(actor):
        raise ForbiddenError("Only directors, GMs or supervisors can change responsibles",
                             action="update_responsibles")
    project = get_entity(Project, project_id)
    ids = _user_ids(responsible_ids or [], "responsible_ids")

    wanted = set(ids)
    for link in list(project.responsibles):
        if link.user_id not in wanted:
            project.responsibles.remove(link)
    current = project.responsible_ids
    for uid in ids:
        if uid not in current:
            project.responsibles.append(ProjectResponsible(user_id=uid))
    db.session.commit()

    logger.info(
        "Project %s responsibles set to %s by user %s", project.id, ids, actor.id,
        extra={"event_type": "project_responsibles_updated", "project_id": project.id,
               "actor_id": actor.id},
    )
    return project
