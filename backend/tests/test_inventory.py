"""
Inventory movement tests.

Verifies:
- Sign convention per movement type
- current_stock always equals the last movement's new_stock
- StockCount overwrite and its stored quantity
- Outbound movements never take stock below zero
"""

import pytest

from nursery.errors import InsufficientStockError, ValidationError
from nursery.extensions import db
from nursery.models import InventoryMovement
from nursery.services import inventory_service


def _ledger_total(product) -> int:
    rows = (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product.id)
        .order_by(InventoryMovement.id.asc())
        .all()
    )
    stock = 0
    for row in rows:
        assert row.previous_stock == stock
        stock = row.new_stock
    return stock


class TestComputeNewStock:

    @pytest.mark.parametrize("movement_type,expected", [
        ("Received", 15),
        ("Returned", 15),
        ("Adjustment", 15),
        ("Sold", 5),
        ("Damaged", 5),
        ("Transferred", 5),
        ("StockCount", 5),
    ])
    def test_direction(self, movement_type, expected):
        assert inventory_service.compute_new_stock(10, movement_type, 5) == expected

    def test_outbound_below_zero(self):
        with pytest.raises(InsufficientStockError):
            inventory_service.compute_new_stock(3, "Sold", 4)


class TestRecordMovement:

    def test_opening_stock_is_received_movement(self, db_session, product):
        movement = product.movements.one()
        assert movement.movement_type == "Received"
        assert movement.reference == "OPENING"
        assert movement.previous_stock == 0
        assert movement.new_stock == 50

    def test_ledger_explains_stock(self, db_session, product, inventory_user):
        for movement_type, qty in [("Received", 10), ("Damaged", 3), ("Transferred", 7), ("Returned", 1)]:
            inventory_service.record_movement_by_barcode(
                product.barcode, movement_type, qty, performed_by_user_id=inventory_user.id,
            )
        assert product.current_stock == 51
        assert _ledger_total(product) == product.current_stock

    def test_zero_quantity_rejected(self, db_session, product, inventory_user):
        with pytest.raises(ValidationError):
            inventory_service.record_movement_by_barcode(
                product.barcode, "Received", 0, performed_by_user_id=inventory_user.id,
            )

    def test_failed_movement_leaves_nothing(self, db_session, product, inventory_user):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.record_movement_by_barcode(
                product.barcode, "Damaged", 51, performed_by_user_id=inventory_user.id,
            )
        assert exc.value.product_name == product.name
        assert product.current_stock == 50
        assert product.movements.count() == 1


class TestStockCount:

    def test_set_stock_down(self, db_session, product, admin_user):
        _, movement = inventory_service.set_stock(product.id, 42, performed_by_user_id=admin_user.id)
        assert product.current_stock == 42
        assert movement.movement_type == "StockCount"
        assert movement.quantity == 8
        assert movement.stock_delta == -8
        assert movement.notes == "Stock adjustment by administrator"

    def test_set_stock_to_zero(self, db_session, product, admin_user):
        inventory_service.set_stock(product.id, 0, performed_by_user_id=admin_user.id)
        assert product.current_stock == 0
        assert _ledger_total(product) == 0

    def test_negative_count_rejected(self, client, admin_headers, product):
        resp = client.put(f"/api/products/{product.id}/stock", json={"current_stock": -1}, headers=admin_headers)
        assert resp.status_code == 400

    def test_stock_route(self, client, manager_headers, product):
        resp = client.put(
            f"/api/products/{product.id}/stock",
            json={"current_stock": 60, "notes": "Spring count"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["product"]["current_stock"] == 60
        assert resp.json["movement"]["notes"] == "Spring count"

    def test_inventory_role_cannot_overwrite(self, client, inventory_headers, product):
        resp = client.put(f"/api/products/{product.id}/stock", json={"current_stock": 1}, headers=inventory_headers)
        assert resp.status_code == 403


class TestMovementHistory:

    def test_list_newest_first(self, client, cashier_headers, product, inventory_user):
        inventory_service.record_movement_by_barcode(
            product.barcode, "Received", 5, performed_by_user_id=inventory_user.id, reference="PO-1",
        )
        resp = client.get(f"/api/products/{product.id}/movements", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["total"] == 2
        assert resp.json["items"][0]["reference"] == "PO-1"

    def test_filter_by_type(self, client, cashier_headers, product):
        resp = client.get(
            f"/api/products/{product.id}/movements?movement_type=Sold",
            headers=cashier_headers,
        )
        assert resp.status_code == 200
        assert resp.json["total"] == 0

    def test_unknown_product(self, client, cashier_headers):
        resp = client.get("/api/products/999999/movements", headers=cashier_headers)
        assert resp.status_code == 404
