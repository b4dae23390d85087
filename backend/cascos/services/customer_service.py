# Overview: Customer registry; derived outstanding balances and archive-then-cascade delete.

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, LoanRecord, ArchivedCustomer
from ..validation import ConflictError, NotFoundError, ValidationError, require_text
from . import archive_service, stock_service
from .concurrency import lock_for_update, run_with_retry


EDITABLE_FIELDS = ("name", "category", "address", "address_number", "phone")


def _pending_expr():
    return (
        (LoanRecord.casco_qty - LoanRecord.casco_returned_qty)
        + (LoanRecord.caixa_qty - LoanRecord.caixa_returned_qty)
    )


def outstanding_balances(customer_ids: Optional[list[int]] = None) -> dict[int, int]:
    """
    Sum of pending quantities per customer, recomputed from loan rows.

    Customers without loan rows are absent from the result (balance 0).
    """
    q = db.session.query(
        LoanRecord.customer_id,
        func.coalesce(func.sum(_pending_expr()), 0),
    ).group_by(LoanRecord.customer_id)
    if customer_ids is not None:
        q = q.filter(LoanRecord.customer_id.in_(customer_ids))
    return {customer_id: int(total) for customer_id, total in q.all()}


def outstanding_balance(customer_id: int) -> int:
    return outstanding_balances([customer_id]).get(customer_id, 0)


def list_customers() -> list[dict]:
    customers = db.session.query(Customer).order_by(Customer.name).all()
    balances = outstanding_balances()
    return [c.to_dict(outstanding_balance=balances.get(c.id, 0)) for c in customers]


def get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    q = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        q = lock_for_update(q)
    customer = q.first()
    if customer is None:
        raise NotFoundError(f"customer {customer_id} not found")
    return customer


def customer_detail(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    data = customer.to_dict(outstanding_balance=outstanding_balance(customer_id))
    data["loans"] = [loan.to_dict() for loan in customer.loans]
    return data


def _ensure_name_available(name: str, *, exclude_id: Optional[int] = None) -> None:
    q = db.session.query(Customer.id).filter(Customer.name == name.strip().upper())
    if exclude_id is not None:
        q = q.filter(Customer.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"customer name {name.strip().upper()!r} already exists")


def _flush_unique():
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError("customer name already exists") from exc


def create_customer(
    *,
    name: str,
    category: str,
    address: str,
    address_number: str,
    phone: Optional[str] = None,
) -> Customer:
    name = require_text(name, "name")
    category = require_text(category, "category")
    address = require_text(address, "address")
    address_number = require_text(address_number, "address_number")

    def _op():
        _ensure_name_available(name)
        customer = Customer(
            name=name,
            category=category,
            address=address,
            address_number=address_number,
            phone=(phone or None),
        )
        db.session.add(customer)
        _flush_unique()
        db.session.commit()
        current_app.logger.info("Customer %s created (id=%s)", customer.name, customer.id)
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, patch: dict) -> Customer:
    """Apply a partial update. Required text fields may not be blanked."""
    unknown = set(patch) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not editable: {', '.join(sorted(unknown))}")
    for field in ("name", "category", "address", "address_number"):
        if field in patch:
            patch[field] = require_text(patch[field], field)

    def _op():
        customer = get_customer(customer_id, lock=True)
        if "name" in patch:
            _ensure_name_available(patch["name"], exclude_id=customer.id)
        for field, value in patch.items():
            setattr(customer, field, value)
        _flush_unique()
        db.session.commit()
        current_app.logger.info("Customer %s updated", customer_id)
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int, justification: str) -> ArchivedCustomer:
    """
    Archive a customer with its full loan history, then delete it.

    Every loan row's pending quantity goes back to stock first. The archive
    write must succeed before anything is deleted; the customer delete
    cascades to its loan rows.
    """
    justification = require_text(justification, "justification")

    def _op():
        customer = get_customer(customer_id, lock=True)
        loans = list(customer.loans)

        for loan in loans:
            stock_service.credit_pending(loan)

        snapshot = {
            "customer": customer.to_row(),
            "loans": [loan.to_row() for loan in loans],
        }
        archived = archive_service.archive_customer(snapshot, justification)

        db.session.delete(customer)
        db.session.commit()
        current_app.logger.info(
            "Customer %s deleted with %d loan row(s); archived as %s",
            customer_id, len(loans), archived.id,
        )
        return archived

    return run_with_retry(_op)
