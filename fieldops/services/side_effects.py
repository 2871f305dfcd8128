"""
Side-effect classification for task-engine operations.

Every step that follows a state change is either:

    must-succeed  runs inside the unit of work (aggregator recompute). A
                  failure propagates and the whole operation rolls back.
    best-effort   runs after commit (notifications). A failure is logged and
                  swallowed; the committed main flow is unaffected.

Usage:
    with best_effort("notify supervisor", task_id=task.id):
        NotificationService.create(...)
"""

import logging
from contextlib import contextmanager

from fieldops.models import db

logger = logging.getLogger(__name__)


@contextmanager
def best_effort(step: str, **context):
    """Run a post-commit step; log and discard any failure."""
    try:
        yield
    except Exception:
        db.session.rollback()
        logger.warning(
            "Best-effort step '%s' failed — main flow unaffected",
            step,
            exc_info=True,
            extra={"event_type": "side_effect_failed", **context},
        )
