# Overview: Inventory movement recorder; the only code path that changes Product.current_stock.

"""
Inventory invariants (authoritative)

Stock model:
- Product.current_stock is a counter; every change to it appends exactly one
  InventoryMovement row in the same DB transaction, capturing previous and
  new stock.
- For every product: current_stock == opening stock + sum(inbound) - sum(outbound).

Movement direction:
- Inbound (add):      Received, Returned, Adjustment
- Outbound (subtract): Sold, Damaged, Transferred
- StockCount:         sets stock to the counted quantity; the row stores
                      |counted - previous| as quantity, new_stock carries
                      the direction.
- Outbound movements never take stock below zero (InsufficientStockError).

Transactions:
- record_movement() only flushes; the caller owns the commit. Sale, void and
  refund compose several calls into one unit of work.
"""

from __future__ import annotations

from datetime import datetime

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryMovement, Product
from ..models.inventory import (
    INBOUND_MOVEMENT_TYPES,
    OUTBOUND_MOVEMENT_TYPES,
    MOVEMENT_STOCK_COUNT,
    MOVEMENT_TYPES,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


def _validate_quantity(movement_type: str, quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Validation failed", fields={"quantity": "quantity must be an integer"})
    # A stock count may confirm an empty shelf
    minimum = 0 if movement_type == MOVEMENT_STOCK_COUNT else 1
    if quantity < minimum:
        raise ValidationError(
            "Validation failed",
            fields={"quantity": f"quantity must be >= {minimum}"},
        )
    return quantity


def compute_new_stock(previous_stock: int, movement_type: str, quantity: int) -> int:
    """
    Apply the sign convention of movement_type to previous_stock.

    Raises InsufficientStockError for outbound movements larger than the
    stock on hand. Product name is filled in by the caller.
    """
    if movement_type in INBOUND_MOVEMENT_TYPES:
        return previous_stock + quantity
    if movement_type in OUTBOUND_MOVEMENT_TYPES:
        if previous_stock < quantity:
            raise InsufficientStockError("", available=previous_stock, requested=quantity)
        return previous_stock - quantity
    if movement_type == MOVEMENT_STOCK_COUNT:
        return quantity
    raise ValidationError("Invalid movement type", fields={"movement_type": "Invalid movement type"})


def get_product_for_update(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def record_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    performed_by_user_id: int,
    reference: str | None = None,
    notes: str | None = None,
    location: str | None = None,
    timestamp: datetime | None = None,
) -> InventoryMovement:
    """
    Change product stock and append the matching movement row.

    The product should have been loaded with get_product_for_update() in
    the caller's transaction. Nothing is committed here.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("Invalid movement type", fields={"movement_type": "Invalid movement type"})
    quantity = _validate_quantity(movement_type, quantity)

    previous_stock = product.current_stock or 0
    try:
        new_stock = compute_new_stock(previous_stock, movement_type, quantity)
    except InsufficientStockError:
        raise InsufficientStockError(product.name, available=previous_stock, requested=quantity)

    if movement_type == MOVEMENT_STOCK_COUNT:
        quantity = abs(new_stock - previous_stock)

    movement = InventoryMovement(
        product_id=product.id,
        barcode=product.barcode,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference=reference,
        notes=notes,
        location=location,
        performed_by_user_id=performed_by_user_id,
        timestamp=timestamp or utcnow(),
    )
    product.current_stock = new_stock
    db.session.add(movement)
    db.session.flush()
    return movement


def record_movement_by_barcode(
    barcode: str,
    movement_type: str,
    quantity: int,
    *,
    performed_by_user_id: int,
    notes: str | None = None,
    location: str | None = None,
    reference: str | None = None,
) -> tuple[Product, InventoryMovement]:
    """Standalone movement (receiving, damage write-off...) committed on its own."""
    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(barcode=barcode)
        ).first()
        if product is None:
            raise NotFoundError("Product not found")
        movement = record_movement(
            product,
            movement_type,
            quantity,
            performed_by_user_id=performed_by_user_id,
            reference=reference,
            notes=notes,
            location=location,
        )
        db.session.commit()
        return product, movement

    return run_with_retry(_op)


def set_stock(
    product_id: int,
    counted: int,
    *,
    performed_by_user_id: int,
    notes: str | None = None,
) -> tuple[Product, InventoryMovement]:
    """
    Direct stock overwrite (admin count). Always paired with a StockCount
    movement so the ledger still explains current_stock.
    """
    def _op():
        product = get_product_for_update(product_id)
        movement = record_movement(
            product,
            MOVEMENT_STOCK_COUNT,
            counted,
            performed_by_user_id=performed_by_user_id,
            notes=notes or "Stock adjustment by administrator",
        )
        db.session.commit()
        return product, movement

    return run_with_retry(_op)


def list_movements(
    product_id: int,
    *,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[InventoryMovement], int]:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    query = db.session.query(InventoryMovement).filter(InventoryMovement.product_id == product_id)
    if movement_type:
        query = query.filter(InventoryMovement.movement_type == movement_type)
    if start is not None:
        query = query.filter(InventoryMovement.timestamp >= start)
    if end is not None:
        query = query.filter(InventoryMovement.timestamp <= end)

    total = query.count()
    rows = (
        query.order_by(InventoryMovement.timestamp.desc(), InventoryMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
