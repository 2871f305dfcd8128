"""
Health endpoints for the task engine.

    GET /api/v1/health/ready  — process is up (no dependency checks)
    GET /api/v1/health/live   — database round trip plus engine settings
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from fieldops.models import db
from fieldops.models.checklist import CHECKLIST_SCHEMA_VERSION

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _database_check():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        db.session.rollback()
        logger.error("Health database check failed: %s", exc,
                     extra={"event_type": "health_database_failed"})
        return False, {"status": "error", "detail": str(exc)}
    elapsed_ms = (time.perf_counter() - started) * 1000
    return True, {"status": "ok", "latency_ms": round(elapsed_ms, 1)}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    db_ok, database = _database_check()
    cfg = current_app.config
    engine = {
        "checklist_schema_version": CHECKLIST_SCHEMA_VERSION,
        "notifications_enabled": bool(cfg.get("NOTIFICATIONS_ENABLED", True)),
        "min_delivery_description": cfg.get("MIN_DELIVERY_DESCRIPTION", 5),
        "rate_limit_storage": cfg.get("RATELIMIT_STORAGE_URI", "memory://"),
    }
    return jsonify({
        "status": "healthy" if db_ok else "degraded",
        "checks": {"database": database, "engine": engine},
    }), 200 if db_ok else 503
