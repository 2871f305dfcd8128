"""
Lookup helpers shared by the task-engine services.

Every get-by-id in the services goes through ``get_entity`` so a missing row
surfaces as ``NotFoundError`` (HTTP 404) instead of an ``AttributeError`` on
``None`` further down.

Usage:
    task = get_entity(Task, task_id)

    # Child rows are scoped by their parent column
    delivery = get_entity(TaskDelivery, delivery_id, task_id=task.id)

    # Read-then-write guards lock the row where the backend supports it
    record = get_entity_for_update(ChecklistItemDelivery, record_id)
"""

import logging

from sqlalchemy import select

from fieldops.core.exceptions import NotFoundError
from fieldops.models import db

logger = logging.getLogger(__name__)


def _scoped_select(model, pk, scope: dict):
    stmt = select(model).where(model.id == pk)
    for field, value in scope.items():
        if value is None:
            continue
        if not hasattr(model, field):
            raise ValueError(f"{model.__name__} has no scope column {field!r}")
        stmt = stmt.where(getattr(model, field) == value)
    return stmt


def get_entity(model, pk, **scope):
    """Fetch one row by PK, optionally constrained by parent columns.

    Raises:
        NotFoundError: the row does not exist or belongs to another parent.
        ValueError: a scope keyword names a column the model lacks.
    """
    result = db.session.execute(_scoped_select(model, pk, scope)).scalar_one_or_none()
    if result is None:
        logger.debug("get_entity: %s id=%s not found in scope %s", model.__name__, pk, scope)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_entity_or_none(model, pk, **scope):
    """Same as get_entity but returns None instead of raising NotFoundError."""
    if pk is None:
        return None
    return db.session.execute(_scoped_select(model, pk, scope)).scalar_one_or_none()


def get_entity_for_update(model, pk, **scope):
    """get_entity with a row lock (``SELECT ... FOR UPDATE``; a no-op on SQLite)."""
    stmt = _scoped_select(model, pk, scope).with_for_update()
    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result
