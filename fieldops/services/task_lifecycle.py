"""
Task lifecycle — the guarded task status state machine.

5 transitions:
    start             PENDENTE                          → EM_ANDAMENTO   (checklist progress)
    reset             EM_ANDAMENTO                      → PENDENTE       (checklist progress)
    submit_delivery   PENDENTE | EM_ANDAMENTO | REPROVADA → EM_ANALISE
    approve_delivery  EM_ANALISE                        → APROVADA
    reject_delivery   EM_ANALISE                        → REPROVADA

Any other status change goes through ``override_status``, the privileged
administrative escape hatch. It is logged as a bypass and is not part of the
guarded workflow.

Callers run ``project_status.recompute`` after a transition, inside the same
unit of work.

Usage:
    from fieldops.services.task_lifecycle import transition

    transition(task, "submit_delivery", actor_id=user.id)
"""

import logging

from fieldops.core.exceptions import ConflictError, ValidationError
from fieldops.models.task import (
    TASK_APPROVED,
    TASK_IN_PROGRESS,
    TASK_IN_REVIEW,
    TASK_PENDING,
    TASK_REJECTED,
    TASK_STATUSES,
)

logger = logging.getLogger(__name__)


TASK_TRANSITIONS = {
    "start": {"from": [TASK_PENDING], "to": TASK_IN_PROGRESS},
    "reset": {"from": [TASK_IN_PROGRESS], "to": TASK_PENDING},
    "submit_delivery": {"from": [TASK_IN_PROGRESS, TASK_PENDING, TASK_REJECTED], "to": TASK_IN_REVIEW},
    "approve_delivery": {"from": [TASK_IN_REVIEW], "to": TASK_APPROVED},
    "reject_delivery": {"from": [TASK_IN_REVIEW], "to": TASK_REJECTED},
}

DELIVERABLE_STATUSES = frozenset(TASK_TRANSITIONS["submit_delivery"]["from"])
CHECKLIST_DRIVEN_STATUSES = frozenset({TASK_PENDING, TASK_IN_PROGRESS})


class TaskTransitionError(ConflictError):
    """Raised when a task transition is not allowed from the current status."""

    def __init__(self, task_id: int, action: str, current: str, reason: str | None = None):
        msg = f"Cannot '{action}' task {task_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, resource="Task", current_status=current)
        self.task_id = task_id
        self.action = action


def validate_transition(task, action: str) -> dict:
    """Validate whether an action is valid for the task's current status."""
    rule = TASK_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": task.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if task.status not in rule["from"]:
        return {"valid": False, "from": task.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{task.status}'"}

    return {"valid": True, "from": task.status, "to": rule["to"], "reason": None}


def transition(task, action: str, *, actor_id: int | None = None, reason: str | None = None) -> dict:
    """Apply a guarded transition in place. Raises TaskTransitionError."""
    check = validate_transition(task, action)
    if not check["valid"]:
        raise TaskTransitionError(task.id, action, task.status, reason or check["reason"])

    task.status = check["to"]
    logger.info(
        "Task %s: %s → %s (%s)", task.id, check["from"], check["to"], action,
        extra={"event_type": f"task_{action}", "task_id": task.id,
               "project_id": task.project_id, "actor_id": actor_id},
    )
    return check


def sync_checklist_progress(task, items, *, actor_id: int | None = None) -> str:
    """PENDENTE ↔ EM_ANDAMENTO from checklist state; other statuses untouched."""
    if task.status not in CHECKLIST_DRIVEN_STATUSES:
        return task.status
    wanted = TASK_IN_PROGRESS if any(item.concluido for item in items) else TASK_PENDING
    if wanted != task.status:
        transition(task, "start" if wanted == TASK_IN_PROGRESS else "reset", actor_id=actor_id)
    return task.status


def override_status(task, status: str, *, actor_id: int, started: bool | None = None) -> None:
    """Privileged direct status write, bypassing the transition table."""
    status = (status or "").strip().upper()
    if status not in TASK_STATUSES:
        raise ValidationError(
            f"Invalid task status: {status!r}",
            details={"status": sorted(TASK_STATUSES)},
        )
    previous = task.status
    task.status = status
    if started is not None:
        task.started = bool(started)
    logger.warning(
        "Task %s status overridden by user %s: %s → %s (administrative bypass)",
        task.id, actor_id, previous, status,
        extra={"event_type": "task_status_override", "task_id": task.id,
               "project_id": task.project_id, "actor_id": actor_id},
    )
