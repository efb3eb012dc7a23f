# Overview: Nursery barcodes: check digit, generation, lookup and POS scan.

"""
Internal barcode format: 299 CCC PPPP K (11 digits)

    299   fixed prefix for in-store labels
    CCC   category code (CATEGORY_CODES, 999 for anything else)
    PPPP  per-category sequence, next = highest existing + 1
    K     check digit, weights 3,1,3,1,... from the first digit
"""

from __future__ import annotations

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product


BARCODE_PREFIX = "299"
FALLBACK_CATEGORY_CODE = "999"

CATEGORY_CODES = {
    "Trees": "100",
    "Shrubs": "200",
    "Flowers": "300",
    "Herbs": "400",
    "Vegetables": "500",
    "Indoor Plants": "600",
    "Seeds": "700",
    "Tools": "800",
    "Fertilizers": "900",
    "Pots": "950",
}


def compute_check_digit(digits: str) -> int:
    if not digits or not digits.isdigit():
        raise ValueError("digits must be a non-empty numeric string")
    total = sum(int(d) * (3 if i % 2 == 0 else 1) for i, d in enumerate(digits))
    return (10 - total % 10) % 10


def is_valid_barcode(barcode: str) -> bool:
    """True for a well-formed 11-digit internal barcode."""
    if not barcode or len(barcode) != 11 or not barcode.isdigit():
        return False
    return compute_check_digit(barcode[:10]) == int(barcode[10])


def category_code(category: str) -> str:
    return CATEGORY_CODES.get(category, FALLBACK_CATEGORY_CODE)


def generate_barcode(category: str) -> str:
    if not category or not str(category).strip():
        raise ValidationError("Category is required", fields={"category": "category is required"})

    prefix = f"{BARCODE_PREFIX}{category_code(category)}"
    existing = (
        db.session.query(Product.barcode)
        .filter(Product.barcode.like(f"{prefix}%"))
        .all()
    )
    sequences = [
        int(b[6:10]) for (b,) in existing
        if len(b) == 11 and b.isdigit()
    ]
    next_sequence = max(sequences, default=0) + 1
    if next_sequence > 9999:
        raise ConflictError(f"Barcode sequence exhausted for category {category}")

    without_check = f"{prefix}{next_sequence:04d}"
    return f"{without_check}{compute_check_digit(without_check)}"


def get_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter_by(barcode=barcode).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def scan(barcode: str, quantity=1) -> dict:
    """
    Resolve a scanned barcode into a POS cart line.

    Stock is only checked here, never reserved; the sale ledger checks
    again under lock when the sale is created.
    """
    if not barcode:
        raise ValidationError("Barcode is required", fields={"barcode": "barcode is required"})
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Validation failed", fields={"quantity": "quantity must be a positive integer"})

    product = get_by_barcode(barcode)
    if not product.is_active:
        raise ValidationError(f"Product {product.name} is not active")
    if product.current_stock < quantity:
        raise InsufficientStockError(product.name, available=product.current_stock, requested=quantity)

    return {
        "product_id": product.id,
        "barcode": product.barcode,
        "name": product.name,
        "price_cents": product.selling_price_cents,
        "tax_rate": product.tax_rate,
        "quantity": quantity,
        "stock": product.current_stock,
        "category": product.category,
    }
