# Overview: Flask API routes for the stock ledger.

from flask import Blueprint, request, jsonify, current_app

from ..services import stock_service
from ..validation import ValidationError, NotFoundError


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
def list_stock_route():
    """Every stock row, including zero and negative quantities."""
    return jsonify([item.to_dict() for item in stock_service.list_all()]), 200


@stock_bp.post("/<string:item_id>")
def set_stock_route(item_id: str):
    """
    Administrative correction: overwrite the quantity on hand.

    Request body: {"quantity": 120}
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    quantity = payload.get("quantity", payload.get("quantidade"))
    if quantity is None:
        return jsonify({"error": "quantity is required"}), 400

    try:
        item = stock_service.set_absolute(item_id, quantity)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update stock item")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Stock updated", "item": item.to_dict()}), 200
