from __future__ import annotations

from ..extensions import db


class User(db.Model):
    """Shared UI credential. Gates the browser front end only, not the JSON API."""
    __tablename__ = "usuarios"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column("nome", db.String(128), nullable=False, unique=True)
    password_hash = db.Column("senha_hash", db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}
