"""
Reporting tests.

Verifies:
- Daily and period sales reports count Completed / Partially Refunded sales only
- Period resolution (week starts Sunday, custom needs both dates)
- Inventory movement and low-stock reports
"""

from datetime import datetime

import pytest

from conftest import sale_payload

from nursery.errors import ValidationError
from nursery.services import reporting_service, sales_service
from nursery.time_utils import utcnow
from nursery.validation import parse_sale_request


@pytest.fixture
def todays_sales(db_session, make_product, cashier_user, manager_user):
    fern = make_product(name="Tree Fern", category="Trees", selling_price_cents=10000)
    basil = make_product(name="Basil", category="Herbs", selling_price_cents=500)

    kept = sales_service.create_sale(
        parse_sale_request(sale_payload((fern, 1), (basil, 2), payments=[{"method": "Cash", "amount_cents": 12650}])),
        cashier_id=cashier_user.id,
    )
    voided = sales_service.create_sale(parse_sale_request(sale_payload((fern, 1))), cashier_id=cashier_user.id)
    sales_service.void_sale(voided.id, user_id=manager_user.id)
    return kept


class TestPeriodRange:

    def test_week_starts_sunday(self):
        # Wednesday 2024-05-15
        now = datetime(2024, 5, 15, 13, 30)
        start, end = reporting_service.period_range("week", now=now)
        assert start == datetime(2024, 5, 12)
        assert end == now

    def test_sunday_is_its_own_week(self):
        now = datetime(2024, 5, 12, 9, 0)
        start, _ = reporting_service.period_range("week", now=now)
        assert start == datetime(2024, 5, 12)

    def test_month_and_year(self):
        now = datetime(2024, 5, 15, 13, 30)
        assert reporting_service.period_range("month", now=now)[0] == datetime(2024, 5, 1)
        assert reporting_service.period_range("year", now=now)[0] == datetime(2024, 1, 1)

    def test_custom_covers_whole_end_day(self):
        start, end = reporting_service.period_range("custom", start="2024-05-01", end="2024-05-03")
        assert start == datetime(2024, 5, 1)
        assert end.date().isoformat() == "2024-05-03"
        assert end.hour == 23

    def test_custom_requires_dates(self):
        with pytest.raises(ValidationError) as exc:
            reporting_service.period_range("custom", start="2024-05-01")
        assert exc.value.message == "Custom period requires start_date and end_date"

    def test_invalid_period(self):
        with pytest.raises(ValidationError) as exc:
            reporting_service.period_range("fortnight")
        assert exc.value.message == "Invalid period specified"


class TestSalesReports:

    def test_daily(self, client, manager_headers, todays_sales):
        resp = client.get(f"/api/reports/sales/daily?date={utcnow().date().isoformat()}", headers=manager_headers)
        assert resp.status_code == 200
        report = resp.json
        assert report["summary"]["total_sales"] == 1
        assert report["summary"]["total_revenue_cents"] == 12650
        assert report["summary"]["total_tax_cents"] == 1650
        assert report["summary"]["net_revenue_cents"] == 11000
        assert report["payment_methods"] == {"Cash": 12650}
        assert report["top_products"][0]["name"] == "Tree Fern"
        assert sum(h["count"] for h in report["hourly_breakdown"]) == 1

    def test_daily_bad_date(self, client, manager_headers):
        resp = client.get("/api/reports/sales/daily?date=15/05/2024", headers=manager_headers)
        assert resp.status_code == 400

    def test_period(self, client, manager_headers, todays_sales):
        resp = client.get("/api/reports/sales/month", headers=manager_headers)
        assert resp.status_code == 200
        report = resp.json
        assert report["summary"]["average_sale_value_cents"] == 12650
        assert len(report["daily_breakdown"]) == 1
        categories = {c["category"]: c for c in report["category_breakdown"]}
        assert categories["Herbs"]["count"] == 2
        assert categories["Trees"]["revenue_cents"] == 11500

    def test_invalid_period_route(self, client, manager_headers):
        resp = client.get("/api/reports/sales/fortnight", headers=manager_headers)
        assert resp.status_code == 400

    def test_cashier_denied(self, client, cashier_headers):
        assert client.get("/api/reports/sales/daily", headers=cashier_headers).status_code == 403


class TestInventoryReports:

    def test_movements(self, client, inventory_headers, todays_sales):
        resp = client.get("/api/reports/inventory/movements", headers=inventory_headers)
        assert resp.status_code == 200
        report = resp.json
        by_type = {t["type"]: t for t in report["summary"]["by_type"]}
        assert by_type["Sold"]["count"] == 3
        assert by_type["Returned"]["total_quantity"] == 1
        assert report["movements"][0]["performed_by"]

        resp = client.get("/api/reports/inventory/movements?category=Herbs&movement_type=Sold", headers=inventory_headers)
        assert resp.json["summary"]["total_movements"] == 1
        assert resp.json["top_moving_products"][0]["out_quantity"] == 2

    def test_bad_date(self, client, inventory_headers):
        resp = client.get("/api/reports/inventory/movements?start_date=soon", headers=inventory_headers)
        assert resp.status_code == 400

    def test_low_stock(self, client, inventory_headers, make_product):
        make_product(name="Seedling Tray", category="Seeds", current_stock=3)
        make_product(name="Compost", category="Fertilizers", current_stock=30)

        resp = client.get("/api/reports/inventory/low-stock", headers=inventory_headers)
        assert resp.json["total_low_stock"] == 1
        assert resp.json["products"][0]["name"] == "Seedling Tray"

        resp = client.get("/api/reports/inventory/low-stock?threshold=40", headers=inventory_headers)
        assert resp.json["total_low_stock"] == 2
        assert {c["category"] for c in resp.json["by_category"]} == {"Seeds", "Fertilizers"}
