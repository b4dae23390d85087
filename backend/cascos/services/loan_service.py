# Overview: Loan ledger; keeps loan rows, returned counters and stock counters consistent.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Customer, LoanRecord, LoanEditAudit, ArchivedLoan
from ..time_utils import normalize_timestamp, now_str, day_bounds
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    require_text,
    MAX_QUANTITY,
)
from . import archive_service, stock_service
from .catalog_service import BOTTLE, CRATE, classify
from .concurrency import lock_for_update, run_with_retry
"""
Loan ledger invariants (authoritative)

Quantities:
- 0 <= casco_returned_qty <= casco_qty and 0 <= caixa_returned_qty <= caixa_qty
  at every committed state. Violating requests are rejected before any
  mutation (stock included).

Stock coupling (sign convention: lending removes from stock):
- create: stock -= qty per axis
- return: stock += returned delta per axis, using the brand/type stored on the row
- edit:   label changed -> old bucket += old qty, new bucket -= new qty
          label same    -> bucket -= (new qty - old qty)
- delete: stock += pending (qty - returned) per axis
- Labels the classifier does not know never touch stock.

Units of work:
- Each operation is one transaction (run_with_retry) with the loan row
  locked FOR UPDATE; stock deltas and the loan mutation commit together.
- Edit audit rows are best-effort (savepoint); delete archives are mandatory.
"""


EDITABLE_FIELDS = frozenset({
    "salesperson",
    "casco_brand",
    "casco_size",
    "casco_qty",
    "caixa_type",
    "caixa_qty",
    "loan_timestamp",
    "due_timestamp",
})


@dataclass(frozen=True)
class LoanEditResult:
    loan: LoanRecord
    audit: Optional[LoanEditAudit]

    @property
    def audit_recorded(self) -> bool:
        return self.audit is not None


def _quantity(field: str, value) -> int:
    if value is None:
        return 0
    qty = coerce_int(field, value)
    if qty < 0:
        raise ValidationError(f"{field} must be >= 0")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def _label(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def get_loan(loan_id: int, *, lock: bool = False) -> LoanRecord:
    q = db.session.query(LoanRecord).filter_by(id=loan_id)
    if lock:
        q = lock_for_update(q)
    loan = q.first()
    if loan is None:
        raise NotFoundError(f"loan {loan_id} not found")
    return loan


# =============================================================================
# CREATE
# =============================================================================

def create_loan(
    *,
    customer_id: int,
    salesperson: Optional[str] = None,
    casco_brand: Optional[str] = None,
    casco_size: Optional[str] = None,
    casco_qty=0,
    caixa_type: Optional[str] = None,
    caixa_qty=0,
    loan_timestamp=None,
    due_timestamp=None,
) -> LoanRecord:
    """
    Register a loan and take the lent containers out of stock.

    A loan may carry only bottles, only crates, or both. loan_timestamp
    defaults to now when absent or unparseable; due_timestamp is optional.
    """
    casco_qty = _quantity("casco_qty", casco_qty)
    caixa_qty = _quantity("caixa_qty", caixa_qty)
    casco_brand = _label(casco_brand)
    caixa_type = _label(caixa_type)

    def _op():
        if customer_id is None or db.session.get(Customer, customer_id) is None:
            raise ValidationError(f"customer {customer_id} does not exist")

        if casco_qty > 0:
            stock_service.adjust(classify(BOTTLE, casco_brand), -casco_qty)
        if caixa_qty > 0:
            stock_service.adjust(classify(CRATE, caixa_type), -caixa_qty)

        loan = LoanRecord(
            customer_id=customer_id,
            loan_timestamp=normalize_timestamp(loan_timestamp),
            due_timestamp=normalize_timestamp(due_timestamp, default_now=False),
            salesperson=_label(salesperson),
            casco_brand=casco_brand,
            casco_size=_label(casco_size),
            casco_qty=casco_qty,
            casco_returned_qty=0,
            caixa_type=caixa_type,
            caixa_qty=caixa_qty,
            caixa_returned_qty=0,
        )
        db.session.add(loan)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"customer {customer_id} does not exist") from exc

        db.session.commit()
        current_app.logger.info(
            "Loan %s created for customer %s (casco=%d %s, caixa=%d %s)",
            loan.id, customer_id, casco_qty, casco_brand, caixa_qty, caixa_type,
        )
        return loan

    return run_with_retry(_op)


# =============================================================================
# RETURN
# =============================================================================

def register_return(loan_id: int, casco_returned_delta=0, caixa_returned_delta=0) -> LoanRecord:
    """
    Record a partial or full return and put the containers back in stock.

    Rejects deltas that would push a returned counter above its loaned
    quantity.
    """
    casco_delta = _quantity("casco_returned_delta", casco_returned_delta)
    caixa_delta = _quantity("caixa_returned_delta", caixa_returned_delta)

    def _op():
        loan = get_loan(loan_id, lock=True)

        if loan.casco_returned_qty + casco_delta > loan.casco_qty:
            raise ValidationError(
                f"cannot return {casco_delta} casco(s): only {loan.pending_casco} pending"
            )
        if loan.caixa_returned_qty + caixa_delta > loan.caixa_qty:
            raise ValidationError(
                f"cannot return {caixa_delta} caixa(s): only {loan.pending_caixa} pending"
            )

        if casco_delta > 0:
            stock_service.adjust(classify(BOTTLE, loan.casco_brand), casco_delta)
        if caixa_delta > 0:
            stock_service.adjust(classify(CRATE, loan.caixa_type), caixa_delta)

        loan.casco_returned_qty += casco_delta
        loan.caixa_returned_qty += caixa_delta
        db.session.commit()
        current_app.logger.info(
            "Return on loan %s: casco +%d, caixa +%d", loan_id, casco_delta, caixa_delta
        )
        return loan

    return run_with_retry(_op)


# =============================================================================
# EDIT
# =============================================================================

def _reconcile_axis(category: str, old_label, old_qty: int, new_label, new_qty: int) -> None:
    if old_label != new_label:
        stock_service.adjust(classify(category, old_label), old_qty)
        stock_service.adjust(classify(category, new_label), -new_qty)
    else:
        stock_service.adjust(classify(category, new_label), -(new_qty - old_qty))


def edit_loan(
    loan_id: int,
    changes: dict,
    *,
    justification: str,
    edited_by: str,
) -> LoanEditResult:
    """
    Edit a loan in place, reconcile stock and append an audit row.

    Fields absent from changes keep their current value. The edit may never
    make a returned counter exceed its loaned quantity.
    """
    justification = require_text(justification, "justification")
    edited_by = require_text(edited_by, "edited_by")

    changes = dict(changes or {})
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not editable: {', '.join(sorted(unknown))}")

    def _op():
        loan = get_loan(loan_id, lock=True)

        new_casco_qty = _quantity("casco_qty", changes["casco_qty"]) if "casco_qty" in changes else loan.casco_qty
        new_caixa_qty = _quantity("caixa_qty", changes["caixa_qty"]) if "caixa_qty" in changes else loan.caixa_qty
        new_casco_brand = _label(changes["casco_brand"]) if "casco_brand" in changes else loan.casco_brand
        new_caixa_type = _label(changes["caixa_type"]) if "caixa_type" in changes else loan.caixa_type

        if new_casco_qty < loan.casco_returned_qty:
            raise ValidationError(
                f"casco_qty ({new_casco_qty}) cannot be less than already returned ({loan.casco_returned_qty})"
            )
        if new_caixa_qty < loan.caixa_returned_qty:
            raise ValidationError(
                f"caixa_qty ({new_caixa_qty}) cannot be less than already returned ({loan.caixa_returned_qty})"
            )

        before = loan.to_dict()

        _reconcile_axis(BOTTLE, loan.casco_brand, loan.casco_qty, new_casco_brand, new_casco_qty)
        _reconcile_axis(CRATE, loan.caixa_type, loan.caixa_qty, new_caixa_type, new_caixa_qty)

        loan.casco_brand = new_casco_brand
        loan.casco_qty = new_casco_qty
        loan.caixa_type = new_caixa_type
        loan.caixa_qty = new_caixa_qty
        if "casco_size" in changes:
            loan.casco_size = _label(changes["casco_size"])
        if "salesperson" in changes:
            loan.salesperson = _label(changes["salesperson"])
        if "loan_timestamp" in changes:
            loan.loan_timestamp = (
                normalize_timestamp(changes["loan_timestamp"], default_now=False)
                or loan.loan_timestamp
            )
        if "due_timestamp" in changes:
            loan.due_timestamp = normalize_timestamp(changes["due_timestamp"], default_now=False)

        edited_at = now_str()
        loan.edited_by = edited_by
        loan.edit_justification = justification
        loan.edit_timestamp = edited_at
        db.session.flush()

        audit = archive_service.record_loan_edit(
            loan_id=loan.id,
            before=before,
            after=loan.to_dict(),
            justification=justification,
            edited_by=edited_by,
            edited_at=edited_at,
        )

        db.session.commit()
        current_app.logger.info(
            "Loan %s edited by %s (audit %s)",
            loan_id, edited_by, audit.id if audit is not None else "NOT RECORDED",
        )
        return LoanEditResult(loan=loan, audit=audit)

    return run_with_retry(_op)


# =============================================================================
# DELETE
# =============================================================================

def delete_loan(loan_id: int, justification: str) -> ArchivedLoan:
    """
    Soft-delete a loan: pending quantities back to stock, snapshot archived,
    row removed. The archive must be written before the row goes away.
    """
    justification = require_text(justification, "justification")

    def _op():
        loan = get_loan(loan_id, lock=True)

        stock_service.credit_pending(loan)
        archived = archive_service.archive_loan(loan.to_row(), justification)

        db.session.delete(loan)
        db.session.commit()
        current_app.logger.info("Loan %s deleted; archived as %s", loan_id, archived.id)
        return archived

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_loans(limit: Optional[int] = None) -> list[LoanRecord]:
    q = (
        db.session.query(LoanRecord)
        .options(joinedload(LoanRecord.customer))
        .order_by(LoanRecord.loan_timestamp.desc(), LoanRecord.id.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def list_loans_for_day(day: Optional[date] = None) -> list[LoanRecord]:
    start, end = day_bounds(day)
    return (
        db.session.query(LoanRecord)
        .options(joinedload(LoanRecord.customer))
        .filter(LoanRecord.loan_timestamp >= start, LoanRecord.loan_timestamp < end)
        .order_by(LoanRecord.loan_timestamp.desc(), LoanRecord.id.desc())
        .all()
    )


def list_loans_for_customer(customer_id: int) -> list[LoanRecord]:
    return (
        db.session.query(LoanRecord)
        .filter_by(customer_id=customer_id)
        .order_by(LoanRecord.loan_timestamp.desc(), LoanRecord.id.desc())
        .all()
    )


def list_overdue_loans(now: Optional[str] = None) -> list[LoanRecord]:
    """Loans past their due timestamp that still have containers out, oldest due first."""
    now = now or now_str()
    pending = (
        (LoanRecord.casco_qty - LoanRecord.casco_returned_qty)
        + (LoanRecord.caixa_qty - LoanRecord.caixa_returned_qty)
    )
    return (
        db.session.query(LoanRecord)
        .options(joinedload(LoanRecord.customer))
        .filter(
            LoanRecord.due_timestamp.isnot(None),
            LoanRecord.due_timestamp < now,
            pending > 0,
        )
        .order_by(LoanRecord.due_timestamp.asc(), LoanRecord.id.asc())
        .all()
    )
