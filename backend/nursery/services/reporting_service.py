# Overview: Read-only sales and inventory reports folded in memory from raw records.

"""
Reports recompute from Sale / InventoryMovement / Product rows on every
request. Revenue counts Completed and Partially Refunded sales at their
original totals; refunds are not netted out. Day boundaries are UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy.orm import selectinload

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryMovement, Product, Sale
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_PARTIALLY_REFUNDED
from ..time_utils import day_bounds, parse_iso_date, parse_iso_datetime, to_utc_z, utcnow


REVENUE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_PARTIALLY_REFUNDED)
PERIODS = ("day", "week", "month", "year", "custom")

TOP_PRODUCTS_LIMIT = 10
TOP_MOVERS_LIMIT = 20
LATEST_MOVEMENTS_LIMIT = 100


def _parse_dt(value: str | None, field: str) -> datetime | None:
    try:
        return parse_iso_datetime(value) if value else None
    except ValueError:
        raise ValidationError("Validation failed", fields={field: f"{field} must be an ISO-8601 date or datetime"})


def _revenue_sales(start: datetime, end: datetime) -> list[Sale]:
    return (
        db.session.query(Sale)
        .options(selectinload(Sale.items), selectinload(Sale.payments))
        .filter(
            Sale.created_at >= start,
            Sale.created_at <= end,
            Sale.status.in_(REVENUE_STATUSES),
        )
        .order_by(Sale.created_at.asc())
        .all()
    )


def _summary(sales: list[Sale]) -> dict:
    revenue = sum(s.total_cents for s in sales)
    tax = sum(s.tax_total_cents for s in sales)
    return {
        "total_sales": len(sales),
        "total_revenue_cents": revenue,
        "total_tax_cents": tax,
        "net_revenue_cents": revenue - tax,
    }


def daily_sales_report(day: date | None = None) -> dict:
    day = day or utcnow().date()
    start, end = day_bounds(day)
    sales = _revenue_sales(start, end)

    hourly = [{"hour": h, "count": 0, "revenue_cents": 0} for h in range(24)]
    payment_methods: dict[str, int] = {}
    products: dict[int, dict] = {}

    for sale in sales:
        bucket = hourly[sale.created_at.hour]
        bucket["count"] += 1
        bucket["revenue_cents"] += sale.total_cents

        for payment in sale.active_payments:
            payment_methods[payment.method] = payment_methods.get(payment.method, 0) + payment.amount_cents

        for item in sale.items:
            row = products.setdefault(item.product_id, {
                "product_id": item.product_id,
                "name": item.name,
                "barcode": item.barcode,
                "quantity": 0,
                "revenue_cents": 0,
            })
            row["quantity"] += item.quantity
            row["revenue_cents"] += item.line_total_cents

    top_products = sorted(products.values(), key=lambda r: r["revenue_cents"], reverse=True)

    return {
        "date": day.isoformat(),
        "summary": _summary(sales),
        "hourly_breakdown": hourly,
        "payment_methods": payment_methods,
        "top_products": top_products[:TOP_PRODUCTS_LIMIT],
    }


def period_range(period: str, *, now: datetime | None = None, start: str | None = None, end: str | None = None) -> tuple[datetime, datetime]:
    """
    Resolve a named period into [start, end]. Weeks start on Sunday.
    custom requires start and end dates; end covers its whole day.
    """
    now = now or utcnow()
    today = datetime.combine(now.date(), datetime.min.time())

    if period == "day":
        return today, now
    if period == "week":
        # Monday is 0; back up to the preceding Sunday
        days_since_sunday = (now.weekday() + 1) % 7
        return today - timedelta(days=days_since_sunday), now
    if period == "month":
        return today.replace(day=1), now
    if period == "year":
        return today.replace(month=1, day=1), now
    if period == "custom":
        try:
            start_day = parse_iso_date(start)
            end_day = parse_iso_date(end)
        except ValueError:
            start_day = end_day = None
        if start_day is None or end_day is None:
            raise ValidationError(
                "Custom period requires start_date and end_date",
                fields={"start_date": "required ISO date", "end_date": "required ISO date"},
            )
        if end_day < start_day:
            raise ValidationError("end_date must not be before start_date")
        return day_bounds(start_day)[0], day_bounds(end_day)[1]

    raise ValidationError("Invalid period specified", fields={"period": f"period must be one of {', '.join(PERIODS)}"})


def period_sales_report(period: str, *, start: str | None = None, end: str | None = None, now: datetime | None = None) -> dict:
    start_dt, end_dt = period_range(period, now=now, start=start, end=end)
    sales = _revenue_sales(start_dt, end_dt)

    by_date: dict[str, dict] = {}
    by_category: dict[str, dict] = {}
    for sale in sales:
        key = sale.created_at.date().isoformat()
        row = by_date.setdefault(key, {"date": key, "count": 0, "revenue_cents": 0, "tax_cents": 0})
        row["count"] += 1
        row["revenue_cents"] += sale.total_cents
        row["tax_cents"] += sale.tax_total_cents

        for item in sale.items:
            category = item.category or "Uncategorized"
            cat = by_category.setdefault(category, {"category": category, "count": 0, "revenue_cents": 0})
            cat["count"] += item.quantity
            cat["revenue_cents"] += item.line_total_cents

    summary = _summary(sales)
    summary["average_sale_value_cents"] = (
        round(summary["total_revenue_cents"] / len(sales)) if sales else 0
    )

    return {
        "period": period,
        "date_range": {"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)},
        "summary": summary,
        "daily_breakdown": sorted(by_date.values(), key=lambda r: r["date"]),
        "category_breakdown": sorted(by_category.values(), key=lambda r: r["revenue_cents"], reverse=True),
    }


def inventory_movements_report(
    *,
    start: str | None = None,
    end: str | None = None,
    product_id: int | None = None,
    category: str | None = None,
    movement_type: str | None = None,
) -> dict:
    query = (
        db.session.query(InventoryMovement)
        .options(selectinload(InventoryMovement.product), selectinload(InventoryMovement.performed_by))
    )

    start_dt = _parse_dt(start, "start_date")
    end_dt = _parse_dt(end, "end_date")
    if start_dt is not None:
        query = query.filter(InventoryMovement.timestamp >= start_dt)
    if end_dt is not None:
        query = query.filter(InventoryMovement.timestamp <= end_dt)
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    elif category:
        query = query.join(Product, InventoryMovement.product_id == Product.id).filter(Product.category == category)
    if movement_type:
        query = query.filter(InventoryMovement.movement_type == movement_type)

    movements = query.order_by(InventoryMovement.timestamp.desc(), InventoryMovement.id.desc()).all()

    by_type: dict[str, dict] = {}
    by_product: dict[int, dict] = {}
    for m in movements:
        t = by_type.setdefault(m.movement_type, {"type": m.movement_type, "count": 0, "total_quantity": 0})
        t["count"] += 1
        t["total_quantity"] += m.quantity

        p = by_product.setdefault(m.product_id, {
            "product_id": m.product_id,
            "name": m.product.name,
            "barcode": m.product.barcode,
            "category": m.product.category,
            "in_quantity": 0,
            "out_quantity": 0,
            "net_movement": 0,
        })
        delta = m.stock_delta
        if delta >= 0:
            p["in_quantity"] += delta
        else:
            p["out_quantity"] += -delta
        p["net_movement"] += delta

    top_movers = sorted(by_product.values(), key=lambda r: abs(r["net_movement"]), reverse=True)

    latest = []
    for m in movements[:LATEST_MOVEMENTS_LIMIT]:
        row = m.to_dict()
        row["product"] = {
            "id": m.product.id,
            "name": m.product.name,
            "barcode": m.product.barcode,
            "category": m.product.category,
        }
        row["performed_by"] = m.performed_by.name if m.performed_by else "Unknown"
        latest.append(row)

    return {
        "date_range": {
            "start": to_utc_z(start_dt) if start_dt else "All time",
            "end": to_utc_z(end_dt) if end_dt else "All time",
        },
        "summary": {"total_movements": len(movements), "by_type": list(by_type.values())},
        "top_moving_products": top_movers[:TOP_MOVERS_LIMIT],
        "movements": latest,
    }


def low_stock_report(*, threshold: int | None = None, category: str | None = None) -> dict:
    """
    Active products at or below threshold, or their own minimum_stock
    when no threshold is given.
    """
    query = db.session.query(Product).filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if threshold is not None:
        query = query.filter(Product.current_stock <= threshold)
    else:
        query = query.filter(Product.current_stock <= Product.minimum_stock)

    products = query.order_by(Product.category.asc(), Product.current_stock.asc(), Product.name.asc()).all()

    by_category: dict[str, dict] = {}
    rows = []
    for p in products:
        row = {
            "id": p.id,
            "name": p.name,
            "barcode": p.barcode,
            "category": p.category,
            "current_stock": p.current_stock,
            "minimum_stock": p.minimum_stock,
            "needs_reorder": p.needs_reorder(),
        }
        rows.append(row)
        group = by_category.setdefault(p.category, {"category": p.category, "count": 0, "products": []})
        group["count"] += 1
        group["products"].append(row)

    return {
        "total_low_stock": len(products),
        "by_category": list(by_category.values()),
        "products": rows,
    }
