from __future__ import annotations

import json

from sqlalchemy import event

from ..extensions import db
from ..validation import ImmutableRecordError


def _load(raw: str | None):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # Rows written by older deployments may hold non-JSON text; surface as-is
        return raw


class LoanEditAudit(db.Model):
    """
    Append-only log of loan edits with full before/after row snapshots.

    loan_record_id is deliberately not a foreign key: the audit row must
    outlive the loan when it is later deleted.
    """
    __tablename__ = "historico_edicoes"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    loan_record_id = db.Column("historico_id", db.Integer, nullable=False, index=True)
    before_snapshot = db.Column("dados_antes", db.Text, nullable=False)
    after_snapshot = db.Column("dados_depois", db.Text, nullable=False)
    justification = db.Column("justificativa", db.Text, nullable=False)
    edited_by = db.Column("alterado_por", db.String(128), nullable=False)
    edited_at = db.Column("data_alteracao", db.String(19), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "loan_record_id": self.loan_record_id,
            "before": _load(self.before_snapshot),
            "after": _load(self.after_snapshot),
            "justification": self.justification,
            "edited_by": self.edited_by,
            "edited_at": self.edited_at,
        }


class ArchivedLoan(db.Model):
    """Snapshot of a deleted loan row, written before the row is removed."""
    __tablename__ = "registros_apagados"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_data = db.Column("dados_originais", db.Text, nullable=False)
    justification = db.Column("justificativa", db.Text, nullable=False)
    archived_at = db.Column("data_apagado", db.String(19), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_data": _load(self.original_data),
            "justification": self.justification,
            "archived_at": self.archived_at,
        }


class ArchivedCustomer(db.Model):
    """Snapshot of a deleted customer together with every loan row it owned."""
    __tablename__ = "clientes_apagados"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_data = db.Column("dados_cliente", db.Text, nullable=False)
    justification = db.Column("justificativa", db.Text, nullable=False)
    archived_at = db.Column("data_apagado", db.String(19), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_data": _load(self.original_data),
            "justification": self.justification,
            "archived_at": self.archived_at,
        }


# =============================================================================
# ORM-level append-only protection
# =============================================================================

def _prevent_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} rows are append-only - cannot modify id={target.id}"
    )


def _prevent_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} rows are append-only - cannot delete id={target.id}"
    )


for _model in (LoanEditAudit, ArchivedLoan, ArchivedCustomer):
    event.listen(_model, "before_update", _prevent_update)
    event.listen(_model, "before_delete", _prevent_delete)
