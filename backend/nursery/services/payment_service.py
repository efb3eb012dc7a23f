# Overview: Gateway-driven EFTPOS payment, void and refund against recorded sales.

"""
Payment-driven paths

These calls talk to the terminal first and only then record the outcome on
the sale, so a retried DB write never repeats a card charge. They never
touch inventory; an item refund is a separate call into sales_service.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale, SalePayment, SaleRefund
from ..models.sales import (
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_VOIDED,
    SALE_STATUS_PARTIALLY_REFUNDED,
    SALE_STATUS_REFUNDED,
    SALE_STATUS_VOIDED,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .payment_gateways import GatewayResult, PaymentGateway


# A transaction with less than this left to refund counts as fully refunded
FULL_REFUND_TOLERANCE_CENTS = 1


def get_gateway() -> PaymentGateway:
    return current_app.extensions["payment_gateway"]


def _sale_by_number(sale_number: str, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(sale_number=sale_number)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def _active_payment(sale: Sale, transaction_id: str) -> SalePayment:
    for payment in sale.payments:
        if payment.transaction_id == transaction_id and payment.status == PAYMENT_STATUS_COMPLETED:
            return payment
    raise NotFoundError("Transaction not found for this sale")


def refundable_amount(sale: Sale, payment: SalePayment) -> int:
    """Payment amount less every earlier card refund against the same transaction."""
    refunded = sum(
        r.total_cents for r in sale.refunds
        if r.original_transaction_id == payment.transaction_id
    )
    return payment.amount_cents - refunded


def _require_positive_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Validation failed", fields={"amount_cents": "amount_cents must be a positive integer"})
    return amount_cents


def process_eftpos_payment(
    sale_number: str,
    amount_cents: int,
    gateway: PaymentGateway,
) -> tuple[Sale, GatewayResult]:
    amount_cents = _require_positive_amount(amount_cents)

    sale = _sale_by_number(sale_number)
    if sale.status == SALE_STATUS_VOIDED:
        raise InvalidStateError("Cannot take payment for a voided sale")

    result = gateway.process_payment(amount_cents, sale.sale_number)

    def _op():
        locked = _sale_by_number(sale_number, lock=True)
        locked.payments.append(SalePayment(
            method="EFTPOS",
            amount_cents=result.amount_cents,
            reference=result.reference,
            transaction_id=result.transaction_id,
            auth_code=result.auth_code,
            card_type=result.card_type,
            last_four_digits=result.last_four_digits,
            status=PAYMENT_STATUS_COMPLETED,
            created_at=utcnow(),
        ))
        db.session.commit()
        return locked

    return run_with_retry(_op), result


def void_payment(
    sale_number: str,
    transaction_id: str,
    *,
    user_id: int,
    gateway: PaymentGateway,
) -> tuple[Sale, SalePayment]:
    """Void a card transaction; the sale's own status is left alone."""
    if not transaction_id:
        raise ValidationError("Validation failed", fields={"transaction_id": "transaction_id is required"})

    sale = _sale_by_number(sale_number)
    _active_payment(sale, transaction_id)

    gateway.void_transaction(transaction_id)

    def _op():
        locked = _sale_by_number(sale_number, lock=True)
        payment = _active_payment(locked, transaction_id)
        payment.status = PAYMENT_STATUS_VOIDED
        payment.voided_at = utcnow()
        payment.voided_by_user_id = user_id
        db.session.commit()
        return locked, payment

    return run_with_retry(_op)


def refund_payment(
    sale_number: str,
    transaction_id: str,
    amount_cents: int,
    *,
    user_id: int,
    gateway: PaymentGateway,
) -> tuple[Sale, SaleRefund]:
    """
    Refund money back to the card, capped at what is still refundable on
    the transaction. Full when that remainder reaches zero, partial
    otherwise. Item refunds on the same sale are separate and do not block
    this call.
    """
    if not transaction_id:
        raise ValidationError("Validation failed", fields={"transaction_id": "transaction_id is required"})
    amount_cents = _require_positive_amount(amount_cents)

    sale = _sale_by_number(sale_number)
    if sale.status == SALE_STATUS_VOIDED:
        raise InvalidStateError("Cannot refund a voided sale")

    payment = _active_payment(sale, transaction_id)
    remaining = refundable_amount(sale, payment)
    if amount_cents > remaining:
        raise ValidationError(
            "Refund amount cannot exceed the amount still refundable on this transaction",
            fields={"amount_cents": f"must be <= {remaining}"},
        )
    full_refund = remaining - amount_cents < FULL_REFUND_TOLERANCE_CENTS

    result = gateway.refund_transaction(transaction_id, amount_cents, f"REFUND-{sale.sale_number}")

    def _op():
        locked = _sale_by_number(sale_number, lock=True)
        refund = SaleRefund(
            amount_cents=amount_cents,
            tax_cents=0,
            total_cents=amount_cents,
            reason="EFTPOS refund",
            payment_method="EFTPOS",
            original_transaction_id=transaction_id,
            refund_transaction_id=result.transaction_id,
            processed_by_user_id=user_id,
            created_at=utcnow(),
        )
        locked.refunds.append(refund)
        if full_refund:
            locked.status = SALE_STATUS_REFUNDED
        elif locked.status != SALE_STATUS_REFUNDED:
            locked.status = SALE_STATUS_PARTIALLY_REFUNDED
        db.session.commit()
        return locked, refund

    return run_with_retry(_op)
