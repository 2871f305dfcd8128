"""
Actor context middleware — resolves the acting user for each API request.

Authentication happens upstream (gateway / identity service); it forwards
the authenticated user id in the ``X-User-Id`` header. This middleware loads
that user into ``g.current_user`` (None when absent, unknown or inactive).

Routes that need an actor use ``@require_actor``, which answers 401 when
``g.current_user`` is None.

Usage:
    @task_bp.route("/tasks/<int:task_id>/deliver", methods=["POST"])
    @require_actor
    def deliver(task_id):
        actor = g.current_user
"""

import functools
import logging

from flask import g, request

from fieldops.models import db
from fieldops.models.auth import User
from fieldops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-User-Id"

# Paths that never need an actor
SKIP_PREFIXES = (
    "/api/v1/health",
)


def _resolve_actor():
    raw = request.headers.get(ACTOR_HEADER, "").strip()
    if not raw:
        return None
    try:
        user_id = int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s header: %r", ACTOR_HEADER, raw)
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        logger.info("Actor %s unknown or inactive", user_id,
                    extra={"event_type": "actor_rejected", "actor_id": user_id})
        return None
    return user


def init_actor_context(app):
    """Register the actor-resolution before_request hook."""

    @app.before_request
    def _actor_context():
        g.current_user = None
        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in SKIP_PREFIXES:
            if path.startswith(prefix):
                return
        g.current_user = _resolve_actor()


def require_actor(f):
    """Decorator: 401 unless an actor was resolved for this request."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated
