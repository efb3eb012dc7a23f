# Overview: Supplier master data CRUD.

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, HasDependentsError, NotFoundError
from ..extensions import db
from ..models import Product, Supplier
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_supplier
from .pagination import paginate


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "contact_person",
        "email",
        "phone",
        "address",
        "tax_id",
        "website",
        "notes",
        "is_active",
        "lead_time_days",
        "payment_terms",
    },
    required_on_create={"name"},
)

SORTABLE_FIELDS = {
    "name": Supplier.name,
    "created_at": Supplier.created_at,
    "lead_time_days": Supplier.lead_time_days,
}


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier not found")
    return supplier


def list_suppliers(
    *,
    active: bool | None = None,
    search: str | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Supplier)
    if active is not None:
        query = query.filter(Supplier.is_active.is_(active))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Supplier.name.ilike(pattern),
            Supplier.contact_person.ilike(pattern),
            Supplier.email.ilike(pattern),
            Supplier.phone.ilike(pattern),
        ))

    column = SORTABLE_FIELDS.get(sort_by, Supplier.name)
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc(), Supplier.id.asc())
    return paginate(query, page, per_page)


def list_supplier_products(supplier_id: int) -> list[Product]:
    supplier = get_supplier(supplier_id)
    return (
        db.session.query(Product)
        .filter(Product.supplier_id == supplier.id)
        .order_by(Product.name.asc())
        .all()
    )


def _check_email_unique(email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    query = db.session.query(Supplier.id).filter(Supplier.email == email)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise ConflictError("Supplier with this email already exists")


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    enforce_rules_supplier(patch)
    _check_email_unique(patch.get("email"))

    supplier = Supplier(**patch)
    db.session.add(supplier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Supplier with this email already exists")
    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    enforce_rules_supplier(patch)

    supplier = get_supplier(supplier_id)
    if "email" in patch and patch["email"] != supplier.email:
        _check_email_unique(patch["email"], exclude_id=supplier.id)

    for key, value in patch.items():
        setattr(supplier, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Supplier with this email already exists")
    return supplier


def delete_supplier(supplier_id: int) -> None:
    supplier = get_supplier(supplier_id)

    if db.session.query(Product.id).filter(Product.supplier_id == supplier.id).first():
        raise HasDependentsError("Cannot delete supplier with associated products. Deactivate it instead.")

    db.session.delete(supplier)
    db.session.commit()
