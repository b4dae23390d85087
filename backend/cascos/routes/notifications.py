# Overview: Overdue-loan notifications polled by the front end.

from flask import Blueprint, jsonify

from ..services import loan_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
def list_notifications_route():
    """
    Loans past their due date with containers still out, oldest due first.

    Delivery is pull-only; there is no push channel.
    """
    rows = loan_service.list_overdue_loans()
    items = []
    for loan in rows:
        item = loan.to_dict(include_customer=True)
        item["message"] = (
            f"{item.get('customer_name')}: {loan.pending_casco} casco(s) and "
            f"{loan.pending_caixa} caixa(s) overdue since {loan.due_timestamp}"
        )
        items.append(item)
    return jsonify({"count": len(items), "items": items}), 200
