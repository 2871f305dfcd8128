"""
Stock ledger — the quantity contract the task engine consumes.

Item and purchase-order administration happen elsewhere. The task engine
only reserves quantities (``allocate``), gives them back (``release``,
``release_for_task``) and asks what is left (``available_quantity``).

Ledger functions flush but never commit; the calling operation owns the
transaction.
"""

import logging

from sqlalchemy import func, select

from fieldops.core.exceptions import ConflictError, ValidationError
from fieldops.models import db
from fieldops.models.stock import StockAllocation, StockItem
from fieldops.services.helpers.queries import get_entity

logger = logging.getLogger(__name__)


def allocated_quantity(stock_item_id: int) -> int:
    stmt = select(func.coalesce(func.sum(StockAllocation.quantity), 0)).where(
        StockAllocation.stock_item_id == stock_item_id
    )
    return int(db.session.execute(stmt).scalar_one())


def available_quantity(stock_item_id: int) -> int:
    """Item quantity on hand minus everything already allocated."""
    item = get_entity(StockItem, stock_item_id)
    return (item.quantity or 0) - allocated_quantity(stock_item_id)


def allocate(
    stock_item_id: int,
    quantity,
    *,
    task_id: int | None = None,
    project_id: int | None = None,
    user_id: int | None = None,
) -> StockAllocation:
    """Reserve ``quantity`` of a stock item for a project/task or a user.

    An allocation already held by the same target is increased instead of
    duplicated.

    Raises:
        ValidationError: non-positive quantity, or no target given.
        NotFoundError: unknown stock item.
        ConflictError: not enough quantity available.
    """
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer", details={"quantity": quantity})
    if quantity <= 0:
        raise ValidationError("quantity must be positive", details={"quantity": quantity})
    if project_id is None and task_id is None and user_id is None:
        raise ValidationError(
            "An allocation needs a project, task or user target",
            details={"target": "project_id, task_id or user_id is required"},
        )

    item = get_entity(StockItem, stock_item_id)
    available = (item.quantity or 0) - allocated_quantity(stock_item_id)
    if quantity > available:
        raise ConflictError(
            f"Insufficient stock for '{item.name}': requested {quantity}, available {available}",
            resource="StockItem",
        )

    allocation = StockAllocation.query.filter_by(
        stock_item_id=stock_item_id,
        project_id=project_id,
        task_id=task_id,
        user_id=user_id,
    ).first()
    if allocation:
        allocation.quantity += quantity
    else:
        allocation = StockAllocation(
            stock_item_id=stock_item_id,
            project_id=project_id,
            task_id=task_id,
            user_id=user_id,
            quantity=quantity,
        )
        db.session.add(allocation)
    db.session.flush()

    logger.info(
        "Stock allocated: item=%s qty=%s task=%s project=%s user=%s",
        stock_item_id, quantity, task_id, project_id, user_id,
        extra={"event_type": "stock_allocated", "task_id": task_id, "project_id": project_id},
    )
    return allocation


def release(allocation_id: int, *, task_id: int | None = None) -> int:
    """Delete an allocation; returns the quantity given back."""
    allocation = get_entity(StockAllocation, allocation_id, task_id=task_id)
    quantity = allocation.quantity
    db.session.delete(allocation)
    db.session.flush()
    logger.info(
        "Stock released: allocation=%s qty=%s", allocation_id, quantity,
        extra={"event_type": "stock_released", "task_id": allocation.task_id},
    )
    return quantity


def release_for_task(task_id: int) -> int:
    """Release every allocation held by a task; returns the total quantity."""
    allocations = StockAllocation.query.filter_by(task_id=task_id).all()
    total = 0
    for allocation in allocations:
        total += allocation.quantity
        db.session.delete(allocation)
    db.session.flush()
    if allocations:
        logger.info(
            "Stock released for task %s: %d allocation(s), qty=%s",
            task_id, len(allocations), total,
            extra={"event_type": "stock_released", "task_id": task_id},
        )
    return total
