from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db


class Customer(db.Model):
    """
    Customer master data (bars, restaurants, private clients).

    Outstanding balance is NOT stored: it is derived on every read from the
    customer's loan rows (see customer_service.outstanding_balances).

    Names are unique and stored upper-cased so "João" and "JOÃO" collide.
    """
    __tablename__ = "clientes"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column("nome", db.String(255), nullable=False, unique=True)
    category = db.Column("tipo", db.String(64), nullable=False)
    address = db.Column("endereco", db.String(255), nullable=False)
    address_number = db.Column("numero", db.String(32), nullable=False)
    phone = db.Column("telefone", db.String(32), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    loans = db.relationship(
        "LoanRecord",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LoanRecord.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @validates("name")
    def _normalize_name(self, key, value):
        return value.strip().upper() if isinstance(value, str) else value

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_row(self) -> dict:
        return {column.name: getattr(self, attr) for attr, column in self.__mapper__.columns.items()}

    def to_dict(self, outstanding_balance: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "address": self.address,
            "address_number": self.address_number,
            "phone": self.phone,
        }
        if outstanding_balance is not None:
            data["outstanding_balance"] = outstanding_balance
        return data
