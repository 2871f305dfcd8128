"""
Task-engine authorization policy.

Pure predicates answering "may this actor do X to this task". They read the
actor's role and relationships (executor, team member, project supervisor)
and never raise; callers turn a ``False`` into ``UnauthorizedError`` or
``ForbiddenError``.

Role strings live only in ``Role`` and ``ROLE_CAPABILITIES`` below.

Usage:
    from fieldops.services.authorization_policy import can_review_checklist_item

    if not can_review_checklist_item(actor, task, task.project):
        raise ForbiddenError(...)
"""

import enum

from fieldops.models.auth import Role


class Capability(str, enum.Enum):
    REVIEW = "review"              # review checklist items and task deliveries
    MANAGE_TASKS = "manage_tasks"  # create / edit / delete tasks, status override
    FINALIZE_PROJECT = "finalize_project"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.DIRETOR: frozenset({Capability.REVIEW, Capability.MANAGE_TASKS, Capability.FINALIZE_PROJECT}),
    Role.GM: frozenset({Capability.REVIEW, Capability.MANAGE_TASKS, Capability.FINALIZE_PROJECT}),
    Role.SUPERVISOR: frozenset({Capability.REVIEW, Capability.MANAGE_TASKS, Capability.FINALIZE_PROJECT}),
    Role.COMPRADOR: frozenset(),
    Role.EXECUTOR: frozenset(),
    Role.COLABORADOR: frozenset(),
}


def has_capability(actor, capability: Capability) -> bool:
    """True when the actor's role grants ``capability``."""
    if actor is None:
        return False
    role = Role.parse(getattr(actor, "role", None))
    if role is None:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def _is_bound_to_task(actor, task) -> bool:
    if actor is None or task is None:
        return False
    if task.executor_id == actor.id:
        return True
    return actor.id in task.member_ids


def _is_project_supervisor(actor, project) -> bool:
    return (
        actor is not None
        and project is not None
        and project.supervisor_id is not None
        and project.supervisor_id == actor.id
    )


# ── Checklist ────────────────────────────────────────────────────────────────

def can_mutate_checklist(actor, task) -> bool:
    """Executor or team member of the task."""
    return _is_bound_to_task(actor, task)


def can_review_checklist_item(actor, task, project) -> bool:
    """DIRETOR / GM / SUPERVISOR role, or the project's own supervisor."""
    if actor is None:
        return False
    return has_capability(actor, Capability.REVIEW) or _is_project_supervisor(actor, project)


# ── Task deliveries ──────────────────────────────────────────────────────────

def can_submit_delivery(actor, task) -> bool:
    return _is_bound_to_task(actor, task)


def can_review_delivery(actor, task, project) -> bool:
    return can_review_checklist_item(actor, task, project)


# ── Administration ───────────────────────────────────────────────────────────

def can_manage_tasks(actor) -> bool:
    """Privileged task administration: create, edit, delete, status override."""
    return has_capability(actor, Capability.MANAGE_TASKS)


def can_finalize_project(actor, project) -> bool:
    return has_capability(actor, Capability.FINALIZE_PROJECT) or _is_project_supervisor(actor, project)


def can_allocate_stock(actor, task) -> bool:
    """Task administrators, plus the people doing the work."""
    return can_manage_tasks(actor) or _is_bound_to_task(actor, task)
