# Overview: Flask API routes for loan operations; parses input and returns JSON responses.

# backend/cascos/routes/loans.py
"""
Loan ledger API routes.

DESIGN:
- Create loans (stock is debited per classified bucket)
- Register partial/full returns (stock credited back)
- Edit loans in place (justification + editor required; stock reconciled; audit row)
- Soft-delete loans (justification required; pending stock credited; row archived)

Time semantics:
- Dates are accepted as ISO-8601 or pt-BR strings and stored as
  "YYYY-MM-DD HH:MM:SS" in the configured civil timezone.
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import LoanRecord
from ..services import loan_service, archive_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_quantities,
    ValidationError,
    NotFoundError,
    PersistenceError,
)


loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")

# camelCase names used by the original browser front end
LOAN_ALIASES = {
    "cliente_id": "customer_id",
    "vendedor": "salesperson",
    "marcaCasco": "casco_brand",
    "tamanhoCasco": "casco_size",
    "qtdCasco": "casco_qty",
    "tipoCaixa": "caixa_type",
    "qtdCaixa": "caixa_qty",
    "dataEmprestimo": "loan_timestamp",
    "dataDevolucao": "due_timestamp",
}

LOAN_TIMESTAMP_FIELDS = {"loan_timestamp", "due_timestamp"}

LOAN_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "salesperson",
        "casco_brand",
        "casco_size",
        "casco_qty",
        "caixa_type",
        "caixa_qty",
        "loan_timestamp",
        "due_timestamp",
    },
    required_on_create={"customer_id"},
    allow_null_fields={"casco_qty", "caixa_qty", "loan_timestamp"},
    field_aliases=LOAN_ALIASES,
    timestamp_fields=LOAN_TIMESTAMP_FIELDS,
)

# Blank fields the client does send still count as edits (e.g. clearing due_timestamp)
LOAN_EDIT_POLICY = ModelValidationPolicy(
    writable_fields=set(loan_service.EDITABLE_FIELDS),
    allow_null_fields={"casco_qty", "caixa_qty", "loan_timestamp"},
    field_aliases=LOAN_ALIASES,
    timestamp_fields=LOAN_TIMESTAMP_FIELDS,
)

RETURN_ALIASES = {
    "qtdCascoDev": "casco_returned_delta",
    "qtdCaixaDev": "caixa_returned_delta",
}


@loans_bp.get("")
def list_loans_route():
    """All loan rows, newest first, with customer name/address."""
    limit = request.args.get("limit", type=int)
    if limit is not None:
        limit = max(1, min(limit, 5000))
    rows = loan_service.list_loans(limit=limit)
    return jsonify([r.to_dict(include_customer=True) for r in rows]), 200


@loans_bp.get("/today")
def list_today_loans_route():
    rows = loan_service.list_loans_for_day()
    return jsonify([r.to_dict(include_customer=True) for r in rows]), 200


@loans_bp.post("")
def create_loan_route():
    """
    Register a new loan.

    Request body:
    {
        "customer_id": 1,
        "casco_brand": "Brahma", "casco_size": "600ml", "casco_qty": 5,
        "caixa_type": "Ambev Azul", "caixa_qty": 2,
        "salesperson": "Carlos",           (optional)
        "loan_timestamp": "2024-05-01",    (optional, default now)
        "due_timestamp": "15/05/2024"      (optional)
    }

    Returns:
        201: loan created
        400: invalid input or unknown customer
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=LoanRecord, payload=payload, policy=LOAN_CREATE_POLICY, partial=False)
        enforce_rules_quantities(patch, ("casco_qty", "caixa_qty"))
        loan = loan_service.create_loan(**patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        current_app.logger.exception("Failed to create loan")
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to create loan")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(loan.to_dict()), 201


@loans_bp.post("/<int:loan_id>/return")
def register_return_route(loan_id: int):
    """
    Register a (partial) return.

    Request body: {"casco_returned_delta": 3, "caixa_returned_delta": 0}
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    data = {RETURN_ALIASES.get(k, k): v for k, v in payload.items()}

    try:
        loan = loan_service.register_return(
            loan_id,
            casco_returned_delta=data.get("casco_returned_delta") or 0,
            caixa_returned_delta=data.get("caixa_returned_delta") or 0,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to register return")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Return registered", "loan": loan.to_dict()}), 200


@loans_bp.put("/<int:loan_id>")
def edit_loan_route(loan_id: int):
    """
    Edit a loan in place.

    Request body: editable loan fields plus
    {"justification": "...", "edited_by": "..."} (both required)

    The response flags audit_recorded=false when the audit row could not be
    written; the edit itself is kept in that case.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    justification = payload.get("justification", payload.get("justificativa"))
    edited_by = payload.get("edited_by", payload.get("alterado_por"))
    fields = {
        k: v for k, v in payload.items()
        if k not in ("justification", "justificativa", "edited_by", "alterado_por")
    }

    try:
        patch = validate_payload(model=LoanRecord, payload=fields, policy=LOAN_EDIT_POLICY, partial=True)
        enforce_rules_quantities(patch, ("casco_qty", "caixa_qty"))
        result = loan_service.edit_loan(
            loan_id,
            patch,
            justification=justification,
            edited_by=edited_by,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to edit loan")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "message": "Loan updated",
        "loan": result.loan.to_dict(),
        "audit_recorded": result.audit_recorded,
    }), 200


@loans_bp.delete("/<int:loan_id>")
def delete_loan_route(loan_id: int):
    """
    Soft-delete a loan.

    Request body: {"justification": "..."} (required)
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    justification = payload.get("justification", payload.get("justificativa"))
    try:
        archived = loan_service.delete_loan(loan_id, justification)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        current_app.logger.exception("Failed to archive loan %s", loan_id)
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to delete loan")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Loan deleted and archived", "archive": archived.to_dict()}), 200


@loans_bp.get("/<int:loan_id>/edits")
def list_loan_edits_route(loan_id: int):
    rows = archive_service.list_loan_edits(loan_id=loan_id)
    return jsonify([r.to_dict() for r in rows]), 200
