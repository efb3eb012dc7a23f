from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SALE_STATUS_COMPLETED = "Completed"
SALE_STATUS_REFUNDED = "Refunded"
SALE_STATUS_PARTIALLY_REFUNDED = "Partially Refunded"
SALE_STATUS_VOIDED = "Voided"

SALE_STATUSES = [
    SALE_STATUS_COMPLETED,
    SALE_STATUS_REFUNDED,
    SALE_STATUS_PARTIALLY_REFUNDED,
    SALE_STATUS_VOIDED,
]

PAYMENT_METHODS = [
    "Cash",
    "EFTPOS",
    "Credit Card",
    "Debit Card",
    "Gift Card",
    "Store Credit",
    "Other",
]

PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_VOIDED = "VOIDED"


class Sale(db.Model):
    """
    Completed checkout document.

    Totals are derived from items at creation time and stored; items are
    immutable afterwards except for refunded_quantity. Status moves forward
    only (see sales_service).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # S + YY + MM + DD + 4-digit daily sequence, e.g. S2303010001
    sale_number = db.Column(db.String(16), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    register_number = db.Column(db.String(32), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_total_cents = db.Column(db.Integer, nullable=False)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    change_due_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default=SALE_STATUS_COMPLETED, index=True)
    notes = db.Column(db.Text, nullable=True)

    receipt_email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.line_number",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "SalePayment",
        backref="sale",
        lazy=True,
        order_by="SalePayment.id",
        cascade="all, delete-orphan",
    )
    refunds = db.relationship(
        "SaleRefund",
        backref="sale",
        lazy=True,
        order_by="SaleRefund.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def active_payments(self) -> list["SalePayment"]:
        return [p for p in self.payments if p.status == PAYMENT_STATUS_COMPLETED]

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_id": self.customer_id,
            "cashier_id": self.cashier_id,
            "register_number": self.register_number,
            "subtotal_cents": self.subtotal_cents,
            "tax_total_cents": self.tax_total_cents,
            "discount_total_cents": self.discount_total_cents,
            "total_cents": self.total_cents,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_due_cents": self.change_due_cents,
            "status": self.status,
            "notes": self.notes,
            "receipt_email": self.receipt_email,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [p.to_dict() for p in self.active_payments]
            data["refunds"] = [r.to_dict() for r in self.refunds]
        return data


class SaleItem(db.Model):
    """Line item snapshot of a product at checkout time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_items_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    barcode = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Per-unit discount
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Float, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    refunded_quantity = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    @property
    def refundable_quantity(self) -> int:
        return self.quantity - (self.refunded_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "barcode": self.barcode,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_rate": self.tax_rate,
            "tax_cents": self.tax_cents,
            "subtotal_cents": self.subtotal_cents,
            "line_total_cents": self.line_total_cents,
            "refunded_quantity": self.refunded_quantity,
        }


class SalePayment(db.Model):
    """
    Tender applied to a sale.

    Gateway voids flip status to VOIDED instead of deleting the row so the
    card transaction stays traceable.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=True)

    # EFTPOS integration
    transaction_id = db.Column(db.String(64), nullable=True, index=True)
    auth_code = db.Column(db.String(32), nullable=True)
    card_type = db.Column(db.String(32), nullable=True)
    last_four_digits = db.Column(db.String(4), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "transaction_id": self.transaction_id,
            "auth_code": self.auth_code,
            "card_type": self.card_type,
            "last_four_digits": self.last_four_digits,
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class SaleRefund(db.Model):
    """
    Refund record appended to a sale.

    Inventory refunds carry items; gateway refunds carry the original and
    refund transaction ids and no items.
    """
    __tablename__ = "sale_refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    original_transaction_id = db.Column(db.String(64), nullable=True)
    refund_transaction_id = db.Column(db.String(64), nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.relationship(
        "SaleRefundItem",
        backref="refund",
        lazy=True,
        order_by="SaleRefundItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "reason": self.reason,
            "payment_method": self.payment_method,
            "original_transaction_id": self.original_transaction_id,
            "refund_transaction_id": self.refund_transaction_id,
            "processed_by_user_id": self.processed_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class SaleRefundItem(db.Model):
    __tablename__ = "sale_refund_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("sale_refunds.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "amount_cents": self.amount_cents,
            "tax_cents": self.tax_cents,
        }
