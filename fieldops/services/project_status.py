"""
Project status aggregator.

A project's ``status`` and ``insumos_value`` are derived from its tasks:

    insumos_value = Σ task.insumos_value
    status        = FINALIZADO  if ≥1 task and every task is aggregate-complete
                    EM_ANDAMENTO otherwise

A task is aggregate-complete when its status is EM_ANALISE or APROVADA, or
when its checklist is non-empty and every item is concluded.

``recompute`` is a pure function of the current task rows: it re-reads them
on every call, writes only what changed and can be repeated safely. It runs
inside the caller's unit of work (flush, no commit) so a failed recompute
rolls the triggering mutation back with it.

A project with no tasks keeps its status and only has ``insumos_value``
reset to 0. Deleting the last task of a finished project therefore leaves
it FINALIZADO.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from fieldops.core.exceptions import ForbiddenError
from fieldops.models import db
from fieldops.models.checklist import is_checklist_complete
from fieldops.models.project import (
    PROJECT_STATUS_FINISHED,
    PROJECT_STATUS_IN_PROGRESS,
    Project,
)
from fieldops.models.task import ITEM_APPROVED, TASK_APPROVED, TASK_IN_REVIEW, WHOLE_ITEM, Task
from fieldops.services.authorization_policy import can_finalize_project
from fieldops.services.helpers.queries import get_entity
from fieldops.services.notification import NotificationService
from fieldops.services.side_effects import best_effort

logger = logging.getLogger(__name__)

COMPLETE_TASK_STATUSES = frozenset({TASK_IN_REVIEW, TASK_APPROVED})


@dataclass(frozen=True)
class RecomputeResult:
    project_id: int
    previous_status: str
    status: str
    previous_insumos_value: float
    insumos_value: float
    task_count: int

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.status

    @property
    def insumos_changed(self) -> bool:
        return self.previous_insumos_value != self.insumos_value

    @property
    def changed(self) -> bool:
        return self.status_changed or self.insumos_changed

    @property
    def became_finalized(self) -> bool:
        return self.status_changed and self.status == PROJECT_STATUS_FINISHED

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "previous_status": self.previous_status,
            "status": self.status,
            "previous_insumos_value": self.previous_insumos_value,
            "insumos_value": self.insumos_value,
            "task_count": self.task_count,
            "changed": self.changed,
        }


def is_task_complete(task) -> bool:
    """Aggregate completion of one task."""
    if task.status in COMPLETE_TASK_STATUSES:
        return True
    return is_checklist_complete(task.checklist)


def _load_tasks(project_id):
    return (
        Task.query.filter_by(project_id=project_id)
        .order_by(Task.id)
        .populate_existing()
        .all()
    )


def recompute(project_id: int) -> RecomputeResult:
    """Re-derive ``insumos_value`` and ``status`` for one project (flush only)."""
    project = get_entity(Project, project_id)
    db.session.flush()
    tasks = _load_tasks(project_id)

    previous_status = project.status
    previous_insumos = project.insumos_value or 0.0
    insumos = float(sum(t.insumos_value or 0.0 for t in tasks))

    if not tasks:
        new_status = previous_status
    elif all(is_task_complete(t) for t in tasks):
        new_status = PROJECT_STATUS_FINISHED
    else:
        new_status = PROJECT_STATUS_IN_PROGRESS

    if insumos != previous_insumos:
        project.insumos_value = insumos
    if new_status != previous_status:
        project.status = new_status
        if new_status == PROJECT_STATUS_FINISHED and project.finalized_at is None:
            project.finalized_at = datetime.now(timezone.utc)
    db.session.flush()

    result = RecomputeResult(
        project_id=project_id,
        previous_status=previous_status,
        status=new_status,
        previous_insumos_value=previous_insumos,
        insumos_value=insumos,
        task_count=len(tasks),
    )
    if result.changed:
        logger.info(
            "Project %s recomputed: status %s → %s, insumos %.2f → %.2f",
            project_id, previous_status, new_status, previous_insumos, insumos,
            extra={"event_type": "project_recomputed", "project_id": project_id},
        )
    return result


def notify_if_finalized(result: RecomputeResult | None) -> None:
    """Post-commit: tell supervisor and responsibles a project just finished."""
    if result is None or not result.became_finalized:
        return
    with best_effort("notify project finalized", project_id=result.project_id):
        NotificationService.notify_project_finalized(db.session.get(Project, result.project_id))


def _all_items_approved(task) -> bool:
    items = task.checklist
    if not items:
        return False
    approved = sum(
        1 for record in task.checklist_deliveries
        if record.status == ITEM_APPROVED and record.subitem_index == WHOLE_ITEM
    )
    return approved == len(items)


def project_progress(project) -> int:
    """Rounded percentage of finished tasks (0 with no tasks).

    For progress a task is also finished when every checklist item has an
    APROVADO delivery, even if a later replace cleared some ``concluido``
    flags. ``recompute`` does not use this rule.
    """
    tasks = list(project.tasks)
    if not tasks:
        return 0
    done = sum(1 for t in tasks if is_task_complete(t) or _all_items_approved(t))
    # half-up, so 12.5 shows as 13
    return int(done * 100 / len(tasks) + 0.5)


def recompute_project(project_id: int) -> RecomputeResult:
    """Standalone recompute: run, commit, notify."""
    result = recompute(project_id)
    db.session.commit()
    notify_if_finalized(result)
    return result


def finalize_project(project_id: int, actor) -> Project:
    """Explicit administrative sign-off, independent of task state."""
    project = get_entity(Project, project_id)
    if not can_finalize_project(actor, project):
        raise ForbiddenError("Only directors, GMs or supervisors can finalize a project",
                             action="finalize_project")
    project.status = PROJECT_STATUS_FINISHED
    project.finalized_at = datetime.now(timezone.utc)
    db.session.commit()

    logger.info(
        "Project %s finalized by user %s", project_id, actor.id,
        extra={"event_type": "project_finalized", "project_id": project_id, "actor_id": actor.id},
    )
    with best_effort("notify project finalized", project_id=project_id):
        NotificationService.notify_project_finalized(project)
    return project
