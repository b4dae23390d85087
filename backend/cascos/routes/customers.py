# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import Customer
from ..services import customer_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
)


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

# Older front-end builds post the Portuguese column names
CUSTOMER_ALIASES = {
    "nome": "name",
    "tipo": "category",
    "endereco": "address",
    "numero": "address_number",
    "telefone": "phone",
}

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "address", "address_number", "phone"},
    required_on_create={"name", "category", "address", "address_number"},
    field_aliases=CUSTOMER_ALIASES,
)


@customers_bp.get("")
def list_customers_route():
    """List customers with their derived outstanding balance."""
    return jsonify(customer_service.list_customers()), 200


@customers_bp.post("")
def create_customer_route():
    """
    Register a customer.

    Request body:
    {"name": "Bar do João", "category": "bar", "address": "Rua X", "address_number": "10", "phone": null}

    Returns:
        201: customer created (name upper-cased)
        400: missing/invalid fields
        409: name already exists
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(**patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(customer.to_dict(outstanding_balance=0)), 201


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        return jsonify(customer_service.customer_detail(customer_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        customer = customer_service.update_customer(customer_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500

    balance = customer_service.outstanding_balance(customer.id)
    return jsonify(customer.to_dict(outstanding_balance=balance)), 200


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    """
    Archive and delete a customer together with all of its loan rows.

    Request body: {"justification": "..."} (required)
    Pending containers are returned to stock before deletion.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    justification = payload.get("justification", payload.get("justificativa"))
    try:
        archived = customer_service.delete_customer(customer_id, justification)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        current_app.logger.exception("Failed to archive customer %s", customer_id)
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Customer deleted and archived", "archive": archived.to_dict()}), 200
