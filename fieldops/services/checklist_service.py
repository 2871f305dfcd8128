"""
Checklist service — checklist replacement and per-item evidence review.

Each checklist entry (item, or sub-item one level down) has at most one
``ChecklistItemDelivery`` row, keyed by (task, checklist_index,
subitem_index). Its state machine:

    (no row) ──submit──▶ EM_ANALISE ──review──▶ APROVADO | REPROVADO
                              ▲                          │
                              └────────resubmit──────────┘

Approving sets the entry's ``concluido`` flag in the checklist JSON.
Replacing the checklist sets ``concluido`` from the payload. The two paths
are independent: a replace may clear the flag of an approved item and the
delivery row keeps its APROVADO status.

Every operation recomputes the project status inside the same transaction,
commits once, then sends notifications best-effort.

Usage:
    from fieldops.services import checklist_service

    checklist_service.submit_item(task_id, 0, actor, {"description": "done work"})
    checklist_service.review_item(task_id, 0, reviewer, "APROVADO")
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from fieldops.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from fieldops.models import db
from fieldops.models.checklist import (
    CHECKLIST_SCHEMA_VERSION,
    assign_uids,
    parse_checklist,
)
from fieldops.models.task import (
    ITEM_APPROVED,
    ITEM_IN_REVIEW,
    ITEM_REVIEW_DECISIONS,
    WHOLE_ITEM,
    ChecklistItemDelivery,
    Task,
)
from fieldops.services import project_status, task_lifecycle
from fieldops.services.authorization_policy import (
    can_mutate_checklist,
    can_review_checklist_item,
)
from fieldops.services.helpers.queries import get_entity, get_entity_for_update
from fieldops.services.notification import NotificationService
from fieldops.services.side_effects import best_effort

logger = logging.getLogger(__name__)


def _min_description():
    return current_app.config.get("MIN_DELIVERY_DESCRIPTION", 5)


def _require_mutator(actor, task):
    if not can_mutate_checklist(actor, task):
        raise UnauthorizedError("Only the task executor or team members can change its checklist")


def _check_subitem_index(subitem_index):
    # Negative values would alias the whole-item key.
    if subitem_index is not None and subitem_index < 0:
        raise ValidationError(
            "subitem_index must be zero or positive",
            details={"subitem_index": subitem_index},
        )


def _locate(items, index, subitem_index):
    """Return (entry, parent_item) for a checklist key or raise NotFoundError."""
    if index is None or not 0 <= index < len(items):
        raise NotFoundError(resource="ChecklistItem", resource_id=index)
    item = items[index]
    if subitem_index is None:
        return item, item
    if not 0 <= subitem_index < len(item.subitens):
        raise NotFoundError(resource="ChecklistSubItem", resource_id=f"{index}.{subitem_index}")
    return item.subitens[subitem_index], item


def _clean_urls(many, single):
    """List form wins when non-empty; otherwise fall back to the single field."""
    if isinstance(many, list) and many:
        return [u.strip() for u in many if isinstance(u, str) and u.strip()]
    if isinstance(single, str) and single.strip():
        return [single.strip()]
    return []


def _persist_legacy_checklist(task, items):
    # Uids minted while reading a legacy row must be stored before a
    # delivery row starts referencing them.
    if task.checklist_version != CHECKLIST_SCHEMA_VERSION:
        task.set_checklist(items)


# ── Replace ──────────────────────────────────────────────────────────────────

def replace_checklist(task_id: int, actor, raw_items) -> Task:
    """Wholesale checklist replacement by the executor or a team member.

    PENDENTE / EM_ANDAMENTO tasks move to EM_ANDAMENTO when any item is
    concluded and back to PENDENTE when none is. Other statuses are left
    alone. Item deliveries follow their item by uid; deliveries whose item
    was removed are deleted.
    """
    task = get_entity(Task, task_id)
    _require_mutator(actor, task)

    new_items = apply_checklist(task, raw_items)

    previous_status = task.status
    task_lifecycle.sync_checklist_progress(task, new_items, actor_id=actor.id)

    result = project_status.recompute(task.project_id)
    db.session.commit()

    logger.info(
        "Checklist replaced on task %s (%d items, status %s → %s)",
        task.id, len(new_items), previous_status, task.status,
        extra={"event_type": "checklist_replaced", "task_id": task.id,
               "project_id": task.project_id, "actor_id": actor.id},
    )
    project_status.notify_if_finalized(result)
    return task


def apply_checklist(task, raw_items):
    """Parse, bind uids, move item deliveries and store. No status change, no commit."""
    new_items = parse_checklist(raw_items)
    old_items = task.checklist
    assign_uids(new_items, old_items)

    _remap_item_deliveries(task, old_items, new_items)
    task.set_checklist(new_items)
    return new_items


def _entry_uid(items, index, subitem_index):
    if not 0 <= index < len(items):
        return None
    item = items[index]
    if subitem_index == WHOLE_ITEM:
        return item.uid
    if 0 <= subitem_index < len(item.subitens):
        return item.subitens[subitem_index].uid
    return None


def _remap_item_deliveries(task, old_items, new_items):
    """Move delivery rows to the new index of their entry, drop orphans."""
    records = ChecklistItemDelivery.query.filter_by(task_id=task.id).all()
    if not records:
        return

    positions = {}
    for i, item in enumerate(new_items):
        positions[item.uid] = (i, WHOLE_ITEM)
        for j, sub in enumerate(item.subitens):
            positions.setdefault(sub.uid, (i, j))

    moves = []
    for record in records:
        uid = record.item_uid or _entry_uid(old_items, record.checklist_index, record.subitem_index)
        target = positions.get(uid)
        if target is None or (target[1] == WHOLE_ITEM) != (record.subitem_index == WHOLE_ITEM):
            logger.info(
                "Dropping checklist delivery %s: entry [%s/%s] removed from task %s",
                record.id, record.checklist_index, record.subitem_index, task.id,
                extra={"event_type": "checklist_delivery_dropped", "task_id": task.id},
            )
            db.session.delete(record)
            continue
        record.item_uid = uid
        if target != (record.checklist_index, record.subitem_index):
            moves.append((record, target))
    db.session.flush()

    # Two phases so swapped rows never collide on the unique key.
    for n, (record, _) in enumerate(moves):
        record.checklist_index = -(n + 2)
    db.session.flush()
    for record, (index, subitem_index) in moves:
        record.checklist_index = index
        record.subitem_index = subitem_index
    db.session.flush()


# ── Submit ───────────────────────────────────────────────────────────────────

def submit_item(task_id: int, index: int, actor, evidence: dict,
                subitem_index: int | None = None) -> ChecklistItemDelivery:
    """Create or overwrite the delivery for one checklist entry.

    Resubmission resets the row to EM_ANALISE and clears the previous review.
    """
    _check_subitem_index(subitem_index)
    task = get_entity(Task, task_id)
    _require_mutator(actor, task)

    items = task.checklist
    entry, _ = _locate(items, index, subitem_index)

    evidence = evidence or {}
    description = (evidence.get("description") or "").strip()
    minimum = _min_description()
    if len(description) < minimum:
        raise ValidationError(
            f"Description is required and must be at least {minimum} characters",
            details={"description": f"min {minimum} characters"},
        )

    images = _clean_urls(evidence.get("images"), evidence.get("image"))
    documents = _clean_urls(evidence.get("documents"), evidence.get("document"))
    key_sub = WHOLE_ITEM if subitem_index is None else subitem_index

    _persist_legacy_checklist(task, items)

    record = ChecklistItemDelivery.query.filter_by(
        task_id=task.id, checklist_index=index, subitem_index=key_sub,
    ).first()
    if record is None:
        record = ChecklistItemDelivery(task_id=task.id, checklist_index=index, subitem_index=key_sub)
        db.session.add(record)

    record.item_uid = entry.uid
    record.status = ITEM_IN_REVIEW
    record.description = description
    record.image_urls = images or None
    record.document_urls = documents or None
    record.image_url = images[0] if images else None
    record.document_url = documents[0] if documents else None
    record.submitted_by_id = actor.id
    record.submitted_at = datetime.now(timezone.utc)
    record.comment = None
    record.reviewed_by_id = None
    record.reviewed_at = None

    result = project_status.recompute(task.project_id)
    db.session.commit()

    logger.info(
        "Checklist entry [%s/%s] of task %s submitted by user %s",
        index, subitem_index, task.id, actor.id,
        extra={"event_type": "checklist_item_submitted", "task_id": task.id,
               "project_id": task.project_id, "actor_id": actor.id},
    )
    with best_effort("notify checklist item submitted", task_id=task.id):
        NotificationService.notify_item_submitted(task, record, entry.texto)
    project_status.notify_if_finalized(result)
    return record


# ── Review ───────────────────────────────────────────────────────────────────

def review_item(task_id: int, index: int, reviewer, decision: str, comment: str | None = None,
                subitem_index: int | None = None) -> ChecklistItemDelivery:
    """Approve or reject a submitted checklist entry. A row is reviewed once."""
    task = get_entity(Task, task_id)
    if not can_review_checklist_item(reviewer, task, task.project):
        raise ForbiddenError("Only supervisors or directors can review checklist deliveries",
                             action="review_checklist_item")

    decision = (decision or "").strip().upper()
    if decision not in ITEM_REVIEW_DECISIONS:
        raise ValidationError(
            "status must be APROVADO or REPROVADO",
            details={"status": sorted(ITEM_REVIEW_DECISIONS)},
        )

    _check_subitem_index(subitem_index)
    items = task.checklist
    entry, _ = _locate(items, index, subitem_index)

    key_sub = WHOLE_ITEM if subitem_index is None else subitem_index
    found = ChecklistItemDelivery.query.filter_by(
        task_id=task.id, checklist_index=index, subitem_index=key_sub,
    ).first()
    if found is None:
        raise NotFoundError(resource="ChecklistItemDelivery", resource_id=f"{task.id}:{index}:{key_sub}")
    record = get_entity_for_update(ChecklistItemDelivery, found.id)
    if record.status != ITEM_IN_REVIEW:
        raise ConflictError(
            "This checklist delivery has already been reviewed",
            resource="ChecklistItemDelivery", current_status=record.status,
        )

    record.status = decision
    record.comment = (comment or "").strip() or None
    record.reviewed_by_id = reviewer.id
    record.reviewed_at = datetime.now(timezone.utc)

    if decision == ITEM_APPROVED:
        entry.concluido = True
        task.set_checklist(items)

    result = project_status.recompute(task.project_id)
    db.session.commit()

    logger.info(
        "Checklist entry [%s/%s] of task %s reviewed: %s by user %s",
        index, subitem_index, task.id, decision, reviewer.id,
        extra={"event_type": "checklist_item_reviewed", "task_id": task.id,
               "project_id": task.project_id, "actor_id": reviewer.id},
    )
    with best_effort("notify checklist item reviewed", task_id=task.id):
        NotificationService.notify_item_reviewed(task, record, entry.texto)
    project_status.notify_if_finalized(result)
    return record


def list_item_deliveries(task_id: int) -> list[ChecklistItemDelivery]:
    task = get_entity(Task, task_id)
    return (
        ChecklistItemDelivery.query.filter_by(task_id=task.id)
        .order_by(ChecklistItemDelivery.checklist_index, ChecklistItemDelivery.subitem_index)
        .all()
    )
