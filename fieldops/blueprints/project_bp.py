"""
Project blueprint.

Endpoints (under /api/v1):
    POST /projects                         create (privileged)
    GET  /projects?status=&search=         list with progress
    GET  /projects/<id>                    detail with tasks
    PUT  /projects/<id>/responsibles       replace responsibles (privileged)
    POST /projects/<id>/finalize           explicit sign-off
    POST /projects/<id>/recompute          re-derive status and insumos
"""

from flask import Blueprint, g, jsonify, request

from fieldops.core.exceptions import ValidationError
from fieldops.middleware.actor_context import require_actor
from fieldops.services import project_service, project_status
from fieldops.utils.errors import register_error_handlers

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["POST"])
@require_actor
def create_project():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    project = project_service.create_project(g.current_user, data)
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects", methods=["GET"])
@require_actor
def list_projects():
    rows = project_service.list_projects(
        status=request.args.get("status"), search=request.args.get("search"),
    )
    items = [{**p.to_dict(), "progress": progress} for p, progress in rows]
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_actor
def get_project(project_id):
    project = project_service.get_project(project_id)
    data = project.to_dict(include_tasks=True)
    data["progress"] = project_status.project_progress(project)
    return jsonify(data), 200


@project_bp.route("/projects/<int:project_id>/responsibles", methods=["PUT"])
@require_actor
def update_responsibles(project_id):
    data = request.get_json(silent=True) or {}
    project = project_service.update_responsibles(
        project_id, g.current_user, data.get("responsible_ids"),
    )
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/finalize", methods=["POST"])
@require_actor
def finalize(project_id):
    project = project_status.finalize_project(project_id, g.current_user)
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>/recompute", methods=["POST"])
@require_actor
def recompute(project_id):
    result = project_status.recompute_project(project_id)
    return jsonify(result.to_dict()), 200
