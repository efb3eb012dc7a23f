from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_CATEGORIES = [
    "Trees",
    "Shrubs",
    "Flowers",
    "Herbs",
    "Vegetables",
    "Indoor Plants",
    "Seeds",
    "Tools",
    "Fertilizers",
    "Pots",
]

CARE_LEVELS = ["Easy", "Moderate", "Difficult"]
SUN_REQUIREMENTS = ["Full Sun", "Partial Sun", "Shade"]
WATERING_NEEDS = ["Low", "Medium", "High"]

MEMBERSHIP_LEVELS = ["Regular", "Bronze", "Silver", "Gold", "Platinum"]


class Product(db.Model):
    """
    Product master data.

    current_stock is a counter maintained by the inventory movement
    recorder; every change to it is paired with an InventoryMovement row.
    Route handlers never write it directly.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    barcode = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    subcategory = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    # Percentage, e.g. 15 for NZ GST
    tax_rate = db.Column(db.Float, nullable=False, default=15.0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=5)
    location = db.Column(db.String(128), nullable=True)

    # scientific_name, growth_habit, care_level, sun_requirement, watering_needs,
    # seasonality, is_perennial, mature_height, mature_width, bloom_time, hardiness_zone
    plant_details = db.Column(db.JSON, nullable=True)
    images = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def needs_reorder(self) -> bool:
        return self.current_stock <= self.minimum_stock

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self, include_supplier: bool = False) -> dict:
        data = {
            "id": self.id,
            "barcode": self.barcode,
            "name": self.name,
            "category": self.category,
            "subcategory": self.subcategory,
            "description": self.description,
            "supplier_id": self.supplier_id,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "tax_rate": self.tax_rate,
            "current_stock": self.current_stock,
            "minimum_stock": self.minimum_stock,
            "needs_reorder": self.needs_reorder(),
            "location": self.location,
            "plant_details": self.plant_details,
            "images": self.images or [],
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_supplier:
            data["supplier"] = (
                {
                    "id": self.supplier.id,
                    "name": self.supplier.name,
                    "contact_person": self.supplier.contact_person,
                }
                if self.supplier
                else None
            )
        return data


class Supplier(db.Model):
    """
    Supplier master data.

    products_supplied is derived from Product.supplier_id, so the
    back-reference can never drift from the product side.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_suppliers_email"),
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.JSON, nullable=True)
    tax_id = db.Column(db.String(64), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Average lead time in days
    lead_time_days = db.Column(db.Integer, nullable=False, default=7)
    payment_terms = db.Column(db.String(64), nullable=False, default="Net 30")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "tax_id": self.tax_id,
            "website": self.website,
            "notes": self.notes,
            "is_active": self.is_active,
            "products_supplied": [p.id for p in self.products],
            "lead_time_days": self.lead_time_days,
            "payment_terms": self.payment_terms,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Customer(db.Model):
    """
    Customer master data for tracking purchases and loyalty.

    Denormalized aggregates (total_spent_cents, loyalty_points,
    membership_level) are updated when sales are completed.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        db.Index("ix_customers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    membership_level = db.Column(db.String(16), nullable=False, default="Regular", index=True)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)

    is_commercial = db.Column(db.Boolean, nullable=False, default=False)
    # company_name, tax_id, account_number, discount
    commercial_details = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "notes": self.notes,
            "membership_level": self.membership_level,
            "loyalty_points": self.loyalty_points,
            "total_spent_cents": self.total_spent_cents,
            "is_commercial": self.is_commercial,
            "commercial_details": self.commercial_details,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
