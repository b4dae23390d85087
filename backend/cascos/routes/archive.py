# Overview: Read-only routes over the archive store and the loan edit audit trail.

from flask import Blueprint, request, jsonify

from ..services import archive_service


archive_bp = Blueprint("archive", __name__, url_prefix="/api")


def _limit() -> int:
    limit = request.args.get("limit", default=500, type=int)
    return max(1, min(limit, 5000))


@archive_bp.get("/deleted-loans")
def list_deleted_loans_route():
    rows = archive_service.list_archived_loans(limit=_limit())
    return jsonify([r.to_dict() for r in rows]), 200


@archive_bp.get("/deleted-customers")
def list_deleted_customers_route():
    rows = archive_service.list_archived_customers(limit=_limit())
    return jsonify([r.to_dict() for r in rows]), 200


@archive_bp.get("/loan-edits")
def list_loan_edits_route():
    loan_id = request.args.get("loan_id", type=int)
    rows = archive_service.list_loan_edits(loan_id=loan_id, limit=_limit())
    return jsonify([r.to_dict() for r in rows]), 200
