from __future__ import annotations

from ..extensions import db


class LoanRecord(db.Model):
    """
    One loan transaction ("historico" row): bottles and/or crates lent to a customer.

    INVARIANTS (also enforced as CHECK constraints):
    - all quantities are non-negative
    - casco_returned_qty <= casco_qty
    - caixa_returned_qty <= caixa_qty

    Quantity fields drive the shared stock counters; only loan_service may
    change them, always in the same transaction as the matching stock delta.

    Timestamps are canonical civil strings ("YYYY-MM-DD HH:MM:SS"), see time_utils.
    """
    __tablename__ = "historico"
    __table_args__ = (
        db.CheckConstraint("qtd_casco >= 0", name="ck_historico_qtd_casco_nonneg"),
        db.CheckConstraint("qtd_caixa >= 0", name="ck_historico_qtd_caixa_nonneg"),
        db.CheckConstraint(
            "qtd_casco_devolvido >= 0 AND qtd_casco_devolvido <= qtd_casco",
            name="ck_historico_casco_returned_range",
        ),
        db.CheckConstraint(
            "qtd_caixa_devolvido >= 0 AND qtd_caixa_devolvido <= qtd_caixa",
            name="ck_historico_caixa_returned_range",
        ),
        db.Index("ix_historico_loan_timestamp", "data_emprestimo"),
        db.Index("ix_historico_due_timestamp", "data_devolucao"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        "cliente_id",
        db.Integer,
        db.ForeignKey("clientes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    loan_timestamp = db.Column("data_emprestimo", db.String(19), nullable=False)
    due_timestamp = db.Column("data_devolucao", db.String(19), nullable=True)
    salesperson = db.Column("vendedor", db.String(128), nullable=True)

    casco_brand = db.Column("marca_casco", db.String(64), nullable=True)
    casco_size = db.Column("tamanho_casco", db.String(32), nullable=True)
    casco_qty = db.Column("qtd_casco", db.Integer, nullable=False, default=0)
    casco_returned_qty = db.Column("qtd_casco_devolvido", db.Integer, nullable=False, default=0)

    caixa_type = db.Column("tipo_caixa", db.String(64), nullable=True)
    caixa_qty = db.Column("qtd_caixa", db.Integer, nullable=False, default=0)
    caixa_returned_qty = db.Column("qtd_caixa_devolvido", db.Integer, nullable=False, default=0)

    edited_by = db.Column("alterado_por", db.String(128), nullable=True)
    edit_justification = db.Column("justificativa_alteracao", db.Text, nullable=True)
    edit_timestamp = db.Column("data_alteracao", db.String(19), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", back_populates="loans")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def pending_casco(self) -> int:
        return (self.casco_qty or 0) - (self.casco_returned_qty or 0)

    @property
    def pending_caixa(self) -> int:
        return (self.caixa_qty or 0) - (self.caixa_returned_qty or 0)

    @property
    def pending_total(self) -> int:
        return self.pending_casco + self.pending_caixa

    def __repr__(self) -> str:
        return (
            f"<LoanRecord id={self.id} customer_id={self.customer_id} "
            f"casco={self.casco_returned_qty}/{self.casco_qty} caixa={self.caixa_returned_qty}/{self.caixa_qty}>"
        )

    def to_row(self) -> dict:
        """Stored row keyed by column name, as archived on delete."""
        return {column.name: getattr(self, attr) for attr, column in self.__mapper__.columns.items()}

    def to_dict(self, include_customer: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "loan_timestamp": self.loan_timestamp,
            "due_timestamp": self.due_timestamp,
            "salesperson": self.salesperson,
            "casco_brand": self.casco_brand,
            "casco_size": self.casco_size,
            "casco_qty": self.casco_qty,
            "casco_returned_qty": self.casco_returned_qty,
            "caixa_type": self.caixa_type,
            "caixa_qty": self.caixa_qty,
            "caixa_returned_qty": self.caixa_returned_qty,
            "edited_by": self.edited_by,
            "edit_justification": self.edit_justification,
            "edit_timestamp": self.edit_timestamp,
            "pending_casco": self.pending_casco,
            "pending_caixa": self.pending_caixa,
        }
        if include_customer and self.customer is not None:
            data["customer_name"] = self.customer.name
            data["customer_address"] = self.customer.address
            data["customer_number"] = self.customer.address_number
        return data
