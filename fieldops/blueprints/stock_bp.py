"""
Stock blueprint — read-only view of the ledger the task engine uses.

Endpoints (under /api/v1):
    GET /stock/<id>/available
"""

from flask import Blueprint, jsonify

from fieldops.middleware.actor_context import require_actor
from fieldops.models.stock import StockItem
from fieldops.services import stock_ledger
from fieldops.services.helpers.queries import get_entity
from fieldops.utils.errors import register_error_handlers

stock_bp = Blueprint("stock_bp", __name__, url_prefix="/api/v1")
register_error_handlers(stock_bp)


@stock_bp.route("/stock/<int:stock_item_id>/available", methods=["GET"])
@require_actor
def available(stock_item_id):
    item = get_entity(StockItem, stock_item_id)
    allocated = stock_ledger.allocated_quantity(item.id)
    return jsonify({
        **item.to_dict(),
        "allocated": allocated,
        "available": (item.quantity or 0) - allocated,
    }), 200
