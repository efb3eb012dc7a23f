from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_RECEIVED = "Received"
MOVEMENT_SOLD = "Sold"
MOVEMENT_RETURNED = "Returned"
MOVEMENT_DAMAGED = "Damaged"
MOVEMENT_ADJUSTMENT = "Adjustment"
MOVEMENT_TRANSFERRED = "Transferred"
MOVEMENT_STOCK_COUNT = "StockCount"

MOVEMENT_TYPES = [
    MOVEMENT_RECEIVED,
    MOVEMENT_SOLD,
    MOVEMENT_RETURNED,
    MOVEMENT_DAMAGED,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFERRED,
    MOVEMENT_STOCK_COUNT,
]

INBOUND_MOVEMENT_TYPES = {MOVEMENT_RECEIVED, MOVEMENT_RETURNED, MOVEMENT_ADJUSTMENT}
OUTBOUND_MOVEMENT_TYPES = {MOVEMENT_SOLD, MOVEMENT_DAMAGED, MOVEMENT_TRANSFERRED}


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity is always positive; the direction is carried by movement_type
    (StockCount may go either way, see inventory_service). new_stock of the
    latest row for a product equals Product.current_stock.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_product_type", "product_id", "movement_type"),
        db.Index("ix_movements_product_timestamp", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    barcode = db.Column(db.String(32), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    # Sale number, VOID-<sale number>, REFUND-<sale number>, PO number...
    reference = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(128), nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))
    performed_by = db.relationship("User")

    @property
    def stock_delta(self) -> int:
        return self.new_stock - self.previous_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "barcode": self.barcode,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reference": self.reference,
            "notes": self.notes,
            "location": self.location,
            "performed_by_user_id": self.performed_by_user_id,
            "timestamp": to_utc_z(self.timestamp),
        }
