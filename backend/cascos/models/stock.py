from __future__ import annotations

from ..extensions import db


class StockItem(db.Model):
    """
    Quantity on hand for one SKU group (e.g. every AMBEV 600ml bottle).

    Rows are seeded from catalog_service.STOCK_CATALOG and never created or
    destroyed afterwards. Quantity may go negative: that is how over-lending
    shows up, not an error.
    """
    __tablename__ = "estoque"

    item_id = db.Column("id", db.String(64), primary_key=True)
    display_name = db.Column("nome", db.String(255), nullable=False)
    quantity = db.Column("quantidade", db.Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<StockItem {self.item_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "display_name": self.display_name,
            "quantity": self.quantity,
        }
