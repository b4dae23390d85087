# Overview: Edit audit trail and archive store for deleted loans/customers.

from __future__ import annotations

import json
from typing import Any, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LoanEditAudit, ArchivedLoan, ArchivedCustomer
from ..time_utils import now_str
from ..validation import PersistenceError
"""
Write-path asymmetry (kept for compatibility with existing data):
- Archive writes are a PRECONDITION of destructive deletes. A failure raises
  PersistenceError and the caller's whole unit of work rolls back.
- Edit audit writes are best-effort. They run inside a SAVEPOINT; a failure
  is logged and the edit itself still commits.

All three tables are append-only (ORM listeners in models/audit.py).
"""


def _dump(snapshot: Any) -> str:
    return json.dumps(snapshot, ensure_ascii=False, default=str)


def _new_edit_audit(**fields) -> LoanEditAudit:
    return LoanEditAudit(**fields)


def _new_archived_loan(**fields) -> ArchivedLoan:
    return ArchivedLoan(**fields)


def _new_archived_customer(**fields) -> ArchivedCustomer:
    return ArchivedCustomer(**fields)


def record_loan_edit(
    *,
    loan_id: int,
    before: dict,
    after: dict,
    justification: str,
    edited_by: str,
    edited_at: Optional[str] = None,
) -> Optional[LoanEditAudit]:
    """
    Append one audit row for a loan edit. Returns None when the write failed.

    Callers must flush their own changes first; only the audit insert lives
    in the savepoint.
    """
    try:
        with db.session.begin_nested():
            entry = _new_edit_audit(
                loan_record_id=loan_id,
                before_snapshot=_dump(before),
                after_snapshot=_dump(after),
                justification=justification,
                edited_by=edited_by,
                edited_at=edited_at or now_str(),
            )
            db.session.add(entry)
        return entry
    except SQLAlchemyError:
        current_app.logger.exception("Failed to write edit audit for loan %s; edit kept", loan_id)
        return None


def archive_loan(snapshot: dict, justification: str) -> ArchivedLoan:
    try:
        row = _new_archived_loan(
            original_data=_dump(snapshot),
            justification=justification,
            archived_at=now_str(),
        )
        db.session.add(row)
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError("failed to archive loan record; nothing was deleted") from exc
    return row


def archive_customer(snapshot: dict, justification: str) -> ArchivedCustomer:
    try:
        row = _new_archived_customer(
            original_data=_dump(snapshot),
            justification=justification,
            archived_at=now_str(),
        )
        db.session.add(row)
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError("failed to archive customer; nothing was deleted") from exc
    return row


def list_archived_loans(limit: int = 500) -> list[ArchivedLoan]:
    return (
        db.session.query(ArchivedLoan)
        .order_by(ArchivedLoan.id.desc())
        .limit(limit)
        .all()
    )


def list_archived_customers(limit: int = 500) -> list[ArchivedCustomer]:
    return (
        db.session.query(ArchivedCustomer)
        .order_by(ArchivedCustomer.id.desc())
        .limit(limit)
        .all()
    )


def list_loan_edits(loan_id: Optional[int] = None, limit: int = 500) -> list[LoanEditAudit]:
    q = db.session.query(LoanEditAudit)
    if loan_id is not None:
        q = q.filter(LoanEditAudit.loan_record_id == loan_id)
    return q.order_by(LoanEditAudit.id.desc()).limit(limit).all()
