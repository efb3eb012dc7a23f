# Overview: Product catalog: list/search, create with opening stock, update, delete, statistics.

"""
Products Service

current_stock is never patched here. Opening stock on create goes through
the movement recorder as a Received movement; later changes go through
inventory_service (movements, stock counts) or the sale ledger.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, HasDependentsError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryMovement, Product, SaleItem, Supplier
from ..models.inventory import MOVEMENT_RECEIVED
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from .concurrency import run_with_retry
from .inventory_service import record_movement
from .pagination import paginate


PRODUCT_FIELDS = {
    "barcode",
    "name",
    "category",
    "subcategory",
    "description",
    "supplier_id",
    "cost_price_cents",
    "selling_price_cents",
    "tax_rate",
    "minimum_stock",
    "location",
    "plant_details",
    "images",
    "is_active",
}

CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"current_stock"},
    required_on_create={"barcode", "name", "category", "cost_price_cents", "selling_price_cents"},
)
UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_FIELDS)

SORTABLE_FIELDS = {
    "name": Product.name,
    "barcode": Product.barcode,
    "category": Product.category,
    "selling_price_cents": Product.selling_price_cents,
    "current_stock": Product.current_stock,
    "created_at": Product.created_at,
}


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_products(
    *,
    category: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    low_stock: bool = False,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int | None = None,
    per_page: int | None = None,
    include_supplier: bool = False,
) -> dict:
    query = db.session.query(Product)

    if category:
        query = query.filter(Product.category == category)
    if active is not None:
        query = query.filter(Product.is_active.is_(active))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.description.ilike(pattern),
            Product.plant_details["scientific_name"].as_string().ilike(pattern),
        ))
    if low_stock:
        query = query.filter(Product.current_stock <= Product.minimum_stock)

    column = SORTABLE_FIELDS.get(sort_by, Product.name)
    ordering = column.desc() if sort_order == "desc" else column.asc()
    query = query.order_by(ordering, Product.id.asc())

    return paginate(query, page, per_page, lambda p: p.to_dict(include_supplier=include_supplier))


def list_categories() -> list[str]:
    rows = db.session.query(Product.category).distinct().order_by(Product.category.asc()).all()
    return [c for (c,) in rows]


def _require_supplier(supplier_id) -> None:
    if supplier_id is None:
        return
    if db.session.get(Supplier, supplier_id) is None:
        raise ValidationError("Validation failed", fields={"supplier_id": "Supplier not found"})


def create_product(payload: dict, *, performed_by_user_id: int) -> Product:
    """
    Validate and insert a product. A positive current_stock in the payload
    becomes the opening Received movement.
    """
    patch = validate_payload(model=Product, payload=payload, policy=CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    _require_supplier(patch.get("supplier_id"))

    if db.session.query(Product.id).filter_by(barcode=patch["barcode"]).first():
        raise ConflictError("Product with this barcode already exists")

    opening_stock = patch.pop("current_stock", None) or 0
    patch.setdefault("tax_rate", current_app.config.get("DEFAULT_TAX_RATE", 15.0))
    patch.setdefault("minimum_stock", current_app.config.get("DEFAULT_MINIMUM_STOCK", 5))

    def _op():
        product = Product(current_stock=0, **patch)
        db.session.add(product)
        db.session.flush()

        if opening_stock > 0:
            record_movement(
                product,
                MOVEMENT_RECEIVED,
                opening_stock,
                performed_by_user_id=performed_by_user_id,
                reference="OPENING",
                notes="Opening stock",
                location=product.location,
            )
        db.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise ConflictError("Product with this barcode already exists")


def update_product(product_id: int, payload: dict) -> Product:
    if isinstance(payload, dict) and "current_stock" in payload:
        raise ValidationError(
            "Validation failed",
            fields={"current_stock": "Stock changes must be recorded as inventory movements"},
        )

    patch = validate_payload(model=Product, payload=payload, policy=UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    product = get_product(product_id)

    if "barcode" in patch and patch["barcode"] != product.barcode:
        clash = db.session.query(Product.id).filter(
            Product.barcode == patch["barcode"],
            Product.id != product.id,
        ).first()
        if clash:
            raise ConflictError("Barcode already in use by another product")

    if "supplier_id" in patch:
        _require_supplier(patch["supplier_id"])

    if patch.get("plant_details") is not None:
        patch["plant_details"] = {**(product.plant_details or {}), **patch["plant_details"]}

    for key, value in patch.items():
        setattr(product, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Barcode already in use by another product")
    return product


def delete_product(product_id: int) -> None:
    """
    Hard delete only for products that never carried stock or sold.
    Anything with history must be deactivated instead.
    """
    product = get_product(product_id)

    if product.current_stock > 0:
        raise HasDependentsError("Cannot delete product with existing inventory. Deactivate it instead.")

    has_history = (
        db.session.query(InventoryMovement.id).filter_by(product_id=product.id).first()
        or db.session.query(SaleItem.id).filter_by(product_id=product.id).first()
    )
    if has_history:
        raise HasDependentsError("Cannot delete product with movement or sales history. Deactivate it instead.")

    db.session.delete(product)
    db.session.commit()


def get_stats_overview() -> dict:
    total = db.session.query(func.count(Product.id)).scalar() or 0
    active_q = db.session.query(Product).filter(Product.is_active.is_(True))

    low_stock = active_q.filter(Product.current_stock <= Product.minimum_stock).count()
    out_of_stock = active_q.filter(Product.current_stock == 0).count()

    breakdown = (
        db.session.query(Product.category, func.count(Product.id))
        .filter(Product.is_active.is_(True))
        .group_by(Product.category)
        .order_by(func.count(Product.id).desc())
        .all()
    )

    cost_value, retail_value = db.session.query(
        func.coalesce(func.sum(Product.cost_price_cents * Product.current_stock), 0),
        func.coalesce(func.sum(Product.selling_price_cents * Product.current_stock), 0),
    ).filter(Product.is_active.is_(True)).one()

    return {
        "total_products": total,
        "active_products": active_q.count(),
        "low_stock_products": low_stock,
        "out_of_stock_products": out_of_stock,
        "category_breakdown": [{"category": c, "count": n} for c, n in breakdown],
        "inventory_value": {
            "cost_value_cents": int(cost_value),
            "retail_value_cents": int(retail_value),
        },
    }
