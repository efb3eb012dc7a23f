# Overview: Customer master data CRUD and purchase statistics (loyalty, membership tier).

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, HasDependentsError, NotFoundError
from ..extensions import db
from ..models import Customer, Sale
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_customer
from .pagination import paginate


# Cumulative spend (cents) -> tier, highest first
MEMBERSHIP_TIERS = [
    (500_000, "Platinum"),
    (250_000, "Gold"),
    (100_000, "Silver"),
    (50_000, "Bronze"),
]

CUSTOMER_FIELDS = {
    "name",
    "email",
    "phone",
    "address",
    "notes",
    "is_commercial",
    "commercial_details",
    "is_active",
}

CREATE_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_FIELDS,
    required_on_create={"name"},
)
# Staff may correct loyalty data by hand
UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=CUSTOMER_FIELDS | {"membership_level", "loyalty_points"},
)

SORTABLE_FIELDS = {
    "name": Customer.name,
    "created_at": Customer.created_at,
    "total_spent_cents": Customer.total_spent_cents,
    "loyalty_points": Customer.loyalty_points,
}


def membership_level_for(total_spent_cents: int) -> str | None:
    """Tier earned by cumulative spend, None below the first threshold."""
    for threshold, level in MEMBERSHIP_TIERS:
        if total_spent_cents >= threshold:
            return level
    return None


def apply_purchase(customer: Customer, sale_total_cents: int) -> None:
    """
    Fold a completed sale into the customer's stats.

    One loyalty point per whole dollar of the sale. Caller commits.
    """
    customer.total_spent_cents = (customer.total_spent_cents or 0) + sale_total_cents
    customer.loyalty_points = (customer.loyalty_points or 0) + max(sale_total_cents, 0) // 100

    level = membership_level_for(customer.total_spent_cents)
    if level is not None:
        customer.membership_level = level


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(
    *,
    active: bool | None = None,
    commercial: bool | None = None,
    membership_level: str | None = None,
    search: str | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Customer)
    if active is not None:
        query = query.filter(Customer.is_active.is_(active))
    if commercial is not None:
        query = query.filter(Customer.is_commercial.is_(commercial))
    if membership_level:
        query = query.filter(Customer.membership_level == membership_level)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.address["city"].as_string().ilike(pattern),
            Customer.commercial_details["company_name"].as_string().ilike(pattern),
        ))

    column = SORTABLE_FIELDS.get(sort_by, Customer.name)
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc(), Customer.id.asc())
    return paginate(query, page, per_page)


def list_customer_sales(customer_id: int, limit: int = 50) -> list[Sale]:
    customer = get_customer(customer_id)
    return (
        db.session.query(Sale)
        .filter(Sale.customer_id == customer.id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )


def _check_email_unique(email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    query = db.session.query(Customer.id).filter(Customer.email == email)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError("Customer with this email already exists")


def _default_country(patch: dict) -> None:
    address = patch.get("address")
    if isinstance(address, dict):
        address.setdefault("country", "New Zealand")


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CREATE_POLICY, partial=False)
    enforce_rules_customer(patch)
    _check_email_unique(patch.get("email"))
    _default_country(patch)

    customer = Customer(**patch)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Customer with this email already exists")
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=UPDATE_POLICY, partial=True)
    enforce_rules_customer(patch)

    customer = get_customer(customer_id)
    if "email" in patch and patch["email"] != customer.email:
        _check_email_unique(patch["email"], exclude_id=customer.id)
    _default_country(patch)

    for key, value in patch.items():
        setattr(customer, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Customer with this email already exists")
    return customer


def delete_customer(customer_id: int) -> None:
    customer = get_customer(customer_id)

    if db.session.query(Sale.id).filter(Sale.customer_id == customer.id).first():
        raise HasDependentsError("Cannot delete customer with sales history. Deactivate it instead.")

    db.session.delete(customer)
    db.session.commit()
