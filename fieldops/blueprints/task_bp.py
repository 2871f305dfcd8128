"""
Task blueprint — task administration, deliveries and checklist review.

Endpoints (all under /api/v1, actor from the X-User-Id header):
    GET    /tasks/my                                    executor's work queue
    POST   /tasks                                       create (privileged)
    GET    /tasks/<id>                                  detail with deliveries
    PATCH  /tasks/<id>                                  edit (privileged)
    DELETE /tasks/<id>                                  delete (privileged)
    PATCH  /tasks/<id>/status                           status override (privileged)
    POST   /tasks/<id>/deliver                          submit delivery
    PATCH  /tasks/<id>/deliver/<delivery_id>            edit pending delivery
    POST   /tasks/<id>/approve                          approve pending delivery
    POST   /tasks/<id>/reject                           reject pending delivery
    PATCH  /tasks/<id>/checklist                        replace checklist
    POST   /tasks/<id>/checklist/<index>/submit         submit item evidence
    PATCH  /tasks/<id>/checklist/<index>/review         review item evidence
    GET    /tasks/<id>/checklist/deliveries             item deliveries
    POST   /tasks/<id>/stock                            allocate stock
    DELETE /tasks/<id>/stock/<allocation_id>            release stock

``?subitem_index=N`` on submit / review targets a sub-item.
"""

from flask import Blueprint, g, jsonify, request

from fieldops.core.exceptions import ValidationError
from fieldops.middleware.actor_context import require_actor
from fieldops.services import checklist_service, delivery_service, task_service
from fieldops.utils.errors import register_error_handlers
from fieldops.utils.helpers import parse_int

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")
register_error_handlers(task_bp)


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _subitem_index():
    return parse_int(request.args.get("subitem_index"), "subitem_index")


# ═══════════════════════════════════════════════════════════════════════════
#  TASKS
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/tasks/my", methods=["GET"])
@require_actor
def my_tasks():
    result = task_service.list_my_tasks(
        g.current_user,
        status=request.args.get("status"),
        project_id=parse_int(request.args.get("project_id"), "project_id"),
    )
    return jsonify({
        "projects": [{**p.to_dict(), "progress": progress} for p, progress in result["projects"]],
        "tasks": [t.to_dict(include_deliveries=True) for t in result["tasks"]],
    }), 200


@task_bp.route("/tasks", methods=["POST"])
@require_actor
def create_task():
    task = task_service.create_task(g.current_user, _payload())
    return jsonify(task.to_dict()), 201


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_actor
def get_task(task_id):
    return jsonify(task_service.get_task(task_id).to_dict(include_deliveries=True)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PATCH", "PUT"])
@require_actor
def update_task(task_id):
    task = task_service.update_task(task_id, g.current_user, _payload())
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_actor
def delete_task(task_id):
    result = task_service.delete_task(task_id, g.current_user)
    return jsonify({"deleted": True, "id": task_id, "project": result.to_dict()}), 200


@task_bp.route("/tasks/<int:task_id>/status", methods=["PATCH"])
@require_actor
def change_status(task_id):
    data = _payload()
    if not data.get("status"):
        raise ValidationError("status is required", details={"status": "required"})
    task = task_service.change_task_status(
        task_id, g.current_user, data["status"], started=data.get("started"),
    )
    return jsonify(task.to_dict()), 200


# ═══════════════════════════════════════════════════════════════════════════
#  TASK DELIVERIES
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/tasks/<int:task_id>/deliver", methods=["POST"])
@require_actor
def deliver(task_id):
    data = _payload()
    task = delivery_service.submit_delivery(
        task_id, g.current_user, data.get("description"), image=data.get("image"),
    )
    return jsonify(task.to_dict(include_deliveries=True)), 201


@task_bp.route("/tasks/<int:task_id>/deliver/<int:delivery_id>", methods=["PATCH"])
@require_actor
def update_delivery(task_id, delivery_id):
    data = _payload()
    delivery = delivery_service.update_delivery(
        task_id, delivery_id, g.current_user, data.get("description"), image=data.get("image"),
    )
    return jsonify(delivery.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/approve", methods=["POST"])
@require_actor
def approve(task_id):
    task = delivery_service.approve_delivery(task_id, g.current_user, _payload().get("comment"))
    return jsonify(task.to_dict(include_deliveries=True)), 200


@task_bp.route("/tasks/<int:task_id>/reject", methods=["POST"])
@require_actor
def reject(task_id):
    task = delivery_service.reject_delivery(task_id, g.current_user, _payload().get("reason"))
    return jsonify(task.to_dict(include_deliveries=True)), 200


# ═══════════════════════════════════════════════════════════════════════════
#  CHECKLIST
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/tasks/<int:task_id>/checklist", methods=["PATCH"])
@require_actor
def replace_checklist(task_id):
    data = _payload()
    if "checklist" not in data:
        raise ValidationError("checklist is required", details={"checklist": "required"})
    task = checklist_service.replace_checklist(task_id, g.current_user, data["checklist"])
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/checklist/<int:index>/submit", methods=["POST"])
@require_actor
def submit_checklist_item(task_id, index):
    record = checklist_service.submit_item(
        task_id, index, g.current_user, _payload(), subitem_index=_subitem_index(),
    )
    return jsonify(record.to_dict()), 201


@task_bp.route("/tasks/<int:task_id>/checklist/<int:index>/review", methods=["PATCH"])
@require_actor
def review_checklist_item(task_id, index):
    data = _payload()
    record = checklist_service.review_item(
        task_id, index, g.current_user, data.get("status"),
        comment=data.get("comment"), subitem_index=_subitem_index(),
    )
    return jsonify(record.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>/checklist/deliveries", methods=["GET"])
@require_actor
def list_checklist_deliveries(task_id):
    records = checklist_service.list_item_deliveries(task_id)
    return jsonify({"items": [r.to_dict() for r in records], "total": len(records)}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  TASK STOCK
# ═══════════════════════════════════════════════════════════════════════════

@task_bp.route("/tasks/<int:task_id>/stock", methods=["POST"])
@require_actor
def allocate_stock(task_id):
    data = _payload()
    allocation = task_service.allocate_stock(
        task_id, g.current_user, data.get("stock_item_id"), data.get("quantity"),
    )
    return jsonify(allocation.to_dict()), 201


@task_bp.route("/tasks/<int:task_id>/stock/<int:allocation_id>", methods=["DELETE"])
@require_actor
def release_stock(task_id, allocation_id):
    released = task_service.release_stock(task_id, g.current_user, allocation_id)
    return jsonify({"released": released, "allocation_id": allocation_id}), 200
