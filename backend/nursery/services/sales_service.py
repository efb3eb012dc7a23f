# Overview: Sale ledger: create, void, refund and read completed sales.

"""
Sale Ledger

Each write operation is one unit of work run through run_with_retry():
sale row, line items, stock movements and customer stats commit together
or not at all. Product rows are loaded FOR UPDATE (sorted by id) and carry
a version column, so a concurrent stock change is either blocked or
surfaces as StaleDataError and the whole unit is retried.

Totals are always derived server-side from line items:

    line subtotal = unit price * qty
    line discount = per-unit discount * qty
    line tax      = (subtotal - discount) * tax rate, half-up to the cent
    line total    = subtotal - discount + tax
    sale total    = subtotal + tax total - discount total

Status transitions (forward only):

    Completed          -> Voided | Partially Refunded | Refunded
    Partially Refunded -> Voided | Refunded
    Voided, Refunded   -> terminal
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConflictError,
    InsufficientStockError,
    InvalidRefundQuantity,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem, SalePayment, SaleRefund, SaleRefundItem
from ..models.inventory import MOVEMENT_RETURNED, MOVEMENT_SOLD
from ..models.sales import (
    SALE_STATUS_COMPLETED,
    SALE_STATUS_PARTIALLY_REFUNDED,
    SALE_STATUS_REFUNDED,
    SALE_STATUS_VOIDED,
)
from ..time_utils import utcnow
from ..validation import RefundRequest, SaleRequest
from . import customers_service
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import record_movement
from .pagination import paginate


# Client-supplied totals may differ from the derived ones by at most this
TOTALS_TOLERANCE_CENTS = 1
MAX_DAILY_SEQUENCE = 9999


def compute_tax_cents(amount_cents: int, tax_rate: float) -> int:
    """Tax on amount_cents at tax_rate percent, rounded half-up to the cent."""
    tax = Decimal(amount_cents) * Decimal(str(tax_rate)) / Decimal(100)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sale_number_prefix(now: datetime) -> str:
    return now.strftime("S%y%m%d")


def next_sale_number(now: datetime) -> str:
    """
    Next S + YYMMDD + NNNN for the day of `now`.

    The unique constraint on sale_number is the backstop for two writers
    picking the same number; create_sale retries on that collision.
    """
    prefix = sale_number_prefix(now)
    last = (
        db.session.query(Sale.sale_number)
        .filter(Sale.sale_number.like(f"{prefix}%"))
        .order_by(Sale.sale_number.desc())
        .first()
    )
    sequence = int(last[0][-4:]) + 1 if last else 1
    if sequence > MAX_DAILY_SEQUENCE:
        raise ConflictError("Daily sale number sequence exhausted")
    return f"{prefix}{sequence:04d}"


def _lock_products(product_ids) -> dict[int, Product]:
    products = {}
    for product_id in sorted(set(product_ids)):
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        products[product_id] = product
    return products


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def _check_client_total(errors: dict, key: str, supplied: int | None, derived: int) -> None:
    if supplied is not None and abs(supplied - derived) > TOTALS_TOLERANCE_CENTS:
        errors[key] = f"{key} {supplied} does not match calculated {derived}"


def create_sale(sale_request: SaleRequest, *, cashier_id: int) -> Sale:
    """
    Validate stock, derive totals, persist the sale, decrement stock with
    Sold movements and update customer stats, atomically.

    Raises InsufficientStockError before anything is written when any
    product (quantities aggregated per product) is short.
    """
    if not sale_request.items:
        raise ValidationError("Validation failed", fields={"items": "items must be a non-empty list"})

    register_number = sale_request.register_number or current_app.config.get("REGISTER_NUMBER", "REG-01")

    def _op():
        now = utcnow()
        products = _lock_products(item.product_id for item in sale_request.items)

        errors: dict[str, str] = {}
        requested: dict[int, int] = {}
        for i, item in enumerate(sale_request.items):
            product = products[item.product_id]
            if not product.is_active:
                errors[f"items[{i}].product_id"] = f"Product {product.name} is not active"
            unit_price = product.selling_price_cents if item.unit_price_cents is None else item.unit_price_cents
            if item.discount_cents > unit_price:
                errors[f"items[{i}].discount_cents"] = "discount_cents cannot exceed the unit price"
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
        if errors:
            raise ValidationError("Validation failed", fields=errors)

        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.current_stock < quantity:
                raise InsufficientStockError(product.name, available=product.current_stock, requested=quantity)

        customer = None
        if sale_request.customer_id is not None:
            customer = lock_for_update(
                db.session.query(Customer).filter_by(id=sale_request.customer_id)
            ).first()
            if customer is None:
                raise NotFoundError("Customer not found")

        items = []
        for line_number, item in enumerate(sale_request.items, start=1):
            product = products[item.product_id]
            unit_price = product.selling_price_cents if item.unit_price_cents is None else item.unit_price_cents
            subtotal = unit_price * item.quantity
            discount = item.discount_cents * item.quantity
            tax = compute_tax_cents(subtotal - discount, product.tax_rate)
            items.append(SaleItem(
                line_number=line_number,
                product_id=product.id,
                barcode=product.barcode,
                name=product.name,
                category=product.category,
                quantity=item.quantity,
                unit_price_cents=unit_price,
                discount_cents=item.discount_cents,
                tax_rate=product.tax_rate,
                tax_cents=tax,
                subtotal_cents=subtotal,
                line_total_cents=subtotal - discount + tax,
                refunded_quantity=0,
            ))

        subtotal_cents = sum(i.subtotal_cents for i in items)
        tax_total_cents = sum(i.tax_cents for i in items)
        discount_total_cents = sum(i.discount_cents * i.quantity for i in items)
        total_cents = subtotal_cents + tax_total_cents - discount_total_cents

        errors = {}
        _check_client_total(errors, "subtotal_cents", sale_request.subtotal_cents, subtotal_cents)
        _check_client_total(errors, "total_cents", sale_request.total_cents, total_cents)
        if errors:
            raise ValidationError("Totals do not match line items", fields=errors)

        tendered = sale_request.amount_tendered_cents
        sale = Sale(
            sale_number=next_sale_number(now),
            customer_id=customer.id if customer else None,
            cashier_id=cashier_id,
            register_number=register_number,
            subtotal_cents=subtotal_cents,
            tax_total_cents=tax_total_cents,
            discount_total_cents=discount_total_cents,
            total_cents=total_cents,
            amount_tendered_cents=tendered,
            change_due_cents=max(tendered - total_cents, 0) if tendered is not None else 0,
            status=SALE_STATUS_COMPLETED,
            notes=sale_request.notes,
            receipt_email=sale_request.receipt_email,
            created_at=now,
        )
        sale.items = items
        sale.payments = [
            SalePayment(
                method=p.method,
                amount_cents=p.amount_cents,
                reference=p.reference,
                transaction_id=p.transaction_id,
                card_type=p.card_type,
                last_four_digits=p.last_four_digits,
                created_at=now,
            )
            for p in sale_request.payments
        ]
        db.session.add(sale)
        db.session.flush()

        if customer is not None:
            customers_service.apply_purchase(customer, total_cents)

        for item in items:
            record_movement(
                products[item.product_id],
                MOVEMENT_SOLD,
                item.quantity,
                performed_by_user_id=cashier_id,
                reference=sale.sale_number,
                timestamp=now,
            )

        db.session.commit()
        return sale

    try:
        return run_with_retry(_op, retry_on=(IntegrityError,))
    except IntegrityError:
        raise ConflictError("Could not allocate a unique sale number, please retry")


def void_sale(sale_id: int, *, user_id: int, reason: str | None = None) -> Sale:
    """
    Void a Completed or Partially Refunded sale.

    Every line's not-yet-refunded quantity goes back to stock with a
    Returned movement referencing VOID-<sale number>.
    """
    def _op():
        now = utcnow()
        sale = _lock_sale(sale_id)

        if sale.status == SALE_STATUS_VOIDED:
            raise InvalidStateError("Sale is already voided")
        if sale.status == SALE_STATUS_REFUNDED:
            raise InvalidStateError("Cannot void a refunded sale")

        outstanding = [item for item in sale.items if item.refundable_quantity > 0]
        products = _lock_products(item.product_id for item in outstanding)
        for item in outstanding:
            record_movement(
                products[item.product_id],
                MOVEMENT_RETURNED,
                item.refundable_quantity,
                performed_by_user_id=user_id,
                reference=f"VOID-{sale.sale_number}",
                notes=reason,
                timestamp=now,
            )

        void_note = f"VOID: {reason}" if reason else "VOID"
        sale.notes = f"{sale.notes}\n{void_note}" if sale.notes else void_note
        sale.status = SALE_STATUS_VOIDED
        sale.voided_by_user_id = user_id
        sale.voided_at = now

        db.session.commit()
        return sale

    return run_with_retry(_op)


def _allocate_refund(sale: Sale, product_id: int, quantity: int) -> list[tuple[SaleItem, int]]:
    """Spread a product's refund quantity over its sale lines, in line order."""
    lines = [item for item in sale.items if item.product_id == product_id]
    if not lines:
        raise ValidationError(
            "Validation failed",
            fields={"items": f"Product {product_id} was not part of this sale"},
        )

    refundable = sum(item.refundable_quantity for item in lines)
    if quantity > refundable:
        raise InvalidRefundQuantity(
            f"Refund quantity for {lines[0].name} exceeds refundable quantity",
            fields={f"items.{product_id}": f"requested {quantity}, refundable {refundable}"},
        )

    allocation = []
    remaining = quantity
    for item in lines:
        if remaining == 0:
            break
        take = min(item.refundable_quantity, remaining)
        if take > 0:
            allocation.append((item, take))
            remaining -= take
    return allocation


def refund_sale(sale_id: int, refund_request: RefundRequest, *, user_id: int) -> Sale:
    """
    Refund part or all of a sale's items.

    Independent of card refunds: a sale already marked Refunded by a
    payment refund still accepts item refunds up to each line's
    refundable quantity, and keeps its Refunded status.

    Refund amount per line = unit price * qty, tax at the line's original
    rate. Stock comes back with Returned movements referencing
    REFUND-<sale number>.
    """
    if not refund_request.items:
        raise ValidationError("Validation failed", fields={"items": "items must be a non-empty list"})

    requested: dict[int, int] = {}
    for item in refund_request.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    def _op():
        now = utcnow()
        sale = _lock_sale(sale_id)

        if sale.status == SALE_STATUS_VOIDED:
            raise InvalidStateError("Cannot refund a voided sale")

        allocations = []
        for product_id, quantity in requested.items():
            allocations.extend(_allocate_refund(sale, product_id, quantity))

        products = _lock_products(product_id for product_id in requested)

        refund = SaleRefund(
            reason=refund_request.reason,
            payment_method=refund_request.payment_method,
            processed_by_user_id=user_id,
            created_at=now,
        )
        for sale_item, quantity in allocations:
            amount = sale_item.unit_price_cents * quantity
            tax = compute_tax_cents(amount, sale_item.tax_rate)
            refund.items.append(SaleRefundItem(
                sale_item_id=sale_item.id,
                product_id=sale_item.product_id,
                quantity=quantity,
                amount_cents=amount,
                tax_cents=tax,
            ))
            sale_item.refunded_quantity = (sale_item.refunded_quantity or 0) + quantity

        refund.amount_cents = sum(i.amount_cents for i in refund.items)
        refund.tax_cents = sum(i.tax_cents for i in refund.items)
        refund.total_cents = refund.amount_cents + refund.tax_cents
        sale.refunds.append(refund)

        if all(item.refundable_quantity == 0 for item in sale.items):
            sale.status = SALE_STATUS_REFUNDED
        elif sale.status != SALE_STATUS_REFUNDED:
            sale.status = SALE_STATUS_PARTIALLY_REFUNDED

        for product_id, quantity in requested.items():
            record_movement(
                products[product_id],
                MOVEMENT_RETURNED,
                quantity,
                performed_by_user_id=user_id,
                reference=f"REFUND-{sale.sale_number}",
                notes=refund_request.reason,
                timestamp=now,
            )

        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def get_sale_by_number(sale_number: str) -> Sale:
    sale = db.session.query(Sale).filter_by(sale_number=sale_number).first()
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    cashier_id: int | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    if status:
        query = query.filter(Sale.status == status)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Sale.sale_number.ilike(pattern), Sale.notes.ilike(pattern)))

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page, lambda s: s.to_dict(include_lines=False))
