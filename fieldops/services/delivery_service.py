"""
Delivery service — task-level "submit for review" flow.

A delivery ("entrega") carries evidence for the whole task. At most one
delivery per task is EM_ANALISE: submission is only allowed while the task is
in a deliverable status, and submission moves the task to EM_ANALISE.

    submit   task PENDENTE | EM_ANDAMENTO | REPROVADA → EM_ANALISE, new delivery
    update   edit the pending delivery; no status change
    approve  pending delivery → APROVADA, task → APROVADA
    reject   pending delivery → RECUSADA, task → REPROVADA

Delivery row, task status and project recompute are committed together.
Notifications follow, best-effort.
"""

import logging
from datetime import date, datetime, timezone

from flask import current_app

from fieldops.core.exceptions import (
    ConflictError,
    ForbiddenError,
    UnauthorizedError,
    ValidationError,
)
from fieldops.models import db
from fieldops.models.task import (
    DELIVERY_APPROVED,
    DELIVERY_IN_REVIEW,
    DELIVERY_REFUSED,
    TASK_IN_REVIEW,
    Task,
    TaskDelivery,
)
from fieldops.services import project_status, task_lifecycle
from fieldops.services.authorization_policy import can_review_delivery, can_submit_delivery
from fieldops.services.helpers.queries import get_entity
from fieldops.services.notification import NotificationService
from fieldops.services.side_effects import best_effort

logger = logging.getLogger(__name__)


def _clean_description(description):
    text = (description or "").strip()
    minimum = current_app.config.get("MIN_DELIVERY_DESCRIPTION", 5)
    if len(text) < minimum:
        raise ValidationError(
            f"Delivery description is required and must be at least {minimum} characters",
            details={"description": f"min {minimum} characters"},
        )
    return text


def _clean_image(image):
    if isinstance(image, str) and image.strip():
        return image.strip()
    return None


def _pending_delivery(task):
    return (
        TaskDelivery.query.filter_by(task_id=task.id, status=DELIVERY_IN_REVIEW)
        .order_by(TaskDelivery.submitted_at.desc(), TaskDelivery.id.desc())
        .with_for_update()
        .first()
    )


def submit_delivery(task_id: int, actor, description: str, image: str | None = None) -> Task:
    task = get_entity(Task, task_id)
    if not can_submit_delivery(actor, task):
        raise UnauthorizedError("Only the task executor or team members can deliver the task")
    if task.status not in task_lifecycle.DELIVERABLE_STATUSES:
        raise task_lifecycle.TaskTransitionError(
            task.id, "submit_delivery", task.status,
            "the task is not available for delivery in its current status",
        )
    text = _clean_description(description)

    delivery = TaskDelivery(
        task_id=task.id,
        status=DELIVERY_IN_REVIEW,
        description=text,
        image_url=_clean_image(image),
        submitted_by_id=actor.id,
        submitted_at=datetime.now(timezone.utc),
    )
    db.session.add(delivery)

    task_lifecycle.transition(task, "submit_delivery", actor_id=actor.id)
    task.started = True
    if task.end_date is None:
        task.end_date = date.today()

    result = project_status.recompute(task.project_id)
    db.session.commit()

    with best_effort("notify delivery submitted", task_id=task.id):
        NotificationService.notify_delivery_submitted(task, delivery)
    project_status.notify_if_finalized(result)
    return task


def update_delivery(task_id: int, delivery_id: int, actor, description: str,
                    image: str | None = None) -> TaskDelivery:
    """Edit the pending delivery. Image is kept when none is provided."""
    task = get_entity(Task, task_id)
    delivery = get_entity(TaskDelivery, delivery_id, task_id=task.id)
    if not can_submit_delivery(actor, task):
        raise UnauthorizedError("Only the task executor or team members can edit the delivery")
    if delivery.status != DELIVERY_IN_REVIEW:
        raise ConflictError(
            "Only deliveries under review can be edited",
            resource="TaskDelivery", current_status=delivery.status,
        )
    if task.status != TASK_IN_REVIEW:
        raise ConflictError(
            "The task is no longer under review",
            resource="Task", current_status=task.status,
        )

    delivery.description = _clean_description(description)
    new_image = _clean_image(image)
    if new_image is not None:
        delivery.image_url = new_image
    db.session.commit()

    logger.info(
        "Delivery %s of task %s updated by user %s", delivery.id, task.id, actor.id,
        extra={"event_type": "delivery_updated", "task_id": task.id, "actor_id": actor.id},
    )
    return delivery


def _review(task_id, reviewer, *, approve: bool, comment):
    task = get_entity(Task, task_id)
    if not can_review_delivery(reviewer, task, task.project):
        raise ForbiddenError("Only supervisors or directors can review deliveries",
                             action="review_delivery")

    delivery = _pending_delivery(task)
    if delivery is None:
        raise ConflictError(
            "There is no delivery pending review for this task",
            resource="Task", current_status=task.status,
        )

    action = "approve_delivery" if approve else "reject_delivery"
    task_lifecycle.transition(task, action, actor_id=reviewer.id)

    delivery.status = DELIVERY_APPROVED if approve else DELIVERY_REFUSED
    delivery.comment = (comment or "").strip() or None
    delivery.reviewed_by_id = reviewer.id
    delivery.reviewed_at = datetime.now(timezone.utc)

    result = project_status.recompute(task.project_id)
    db.session.commit()

    with best_effort("notify delivery reviewed", task_id=task.id):
        NotificationService.notify_delivery_reviewed(task, delivery)
    project_status.notify_if_finalized(result)
    return task


def approve_delivery(task_id: int, reviewer, comment: str | None = None) -> Task:
    return _review(task_id, reviewer, approve=True, comment=comment)


def reject_delivery(task_id: int, reviewer, reason: str | None = None) -> Task:
    return _review(task_id, reviewer, approve=False, comment=reason)
