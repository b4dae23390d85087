# backend/cascos/routes/system.py
"""
System endpoints: health check, classifier catalog and the shared UI login.
"""

import time
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import StockItem, Customer, LoanRecord
from ..services import auth_service
from ..services.catalog_service import catalog_summary, stock_item_ids
from ..time_utils import now_str

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and that the stock catalog is seeded.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        stock_rows = db.session.query(StockItem).count()
        customer_count = db.session.query(Customer).count()
        loan_count = db.session.query(LoanRecord).count()

        elapsed_ms = (time.time() - start_time) * 1000
        expected = len(stock_item_ids())

        return {
            "status": "healthy" if stock_rows >= expected else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stock_items": stock_rows,
                "stock_items_expected": expected,
                "customers": customer_count,
                "loans": loan_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health_route():
    database = check_database_health()
    status_code = 503 if database["status"] == "unhealthy" else 200
    return jsonify({
        "status": database["status"],
        "time": now_str(),
        "timezone": current_app.config.get("TIMEZONE"),
        "checks": {"database": database},
    }), status_code


@system_bp.get("/catalog")
def catalog_route():
    """Brand/type labels the classifier knows, grouped by stock bucket."""
    return jsonify(catalog_summary()), 200


@system_bp.post("/login")
def login_route():
    """
    Shared credential check for the browser UI.

    Request body: {"username": "...", "password": "..."}
    (legacy keys "usuario"/"senha" accepted)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    username = data.get("username", data.get("usuario"))
    password = data.get("password", data.get("senha"))

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    try:
        user = auth_service.authenticate(username, password)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    if user is None:
        return jsonify({"error": "Invalid credentials"}), 401
    return jsonify({"success": True, "user": user.to_dict()}), 200
