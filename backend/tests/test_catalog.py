"""
Catalog tests: products, suppliers, customers.

Verifies:
- Create/update validation and uniqueness conflicts
- current_stock cannot be patched directly
- Deletes blocked by stock, history, products or sales
- Listing filters, search and pagination
"""

from conftest import sale_payload

from nursery.services import customers_service, sales_service
from nursery.validation import parse_sale_request


def _product_body(**overrides):
    body = {
        "barcode": "29920000010",
        "name": "Lavender 'Hidcote'",
        "category": "Shrubs",
        "cost_price_cents": 450,
        "selling_price_cents": 1299,
        "plant_details": {"scientific_name": "Lavandula angustifolia", "care_level": "Easy"},
    }
    body.update(overrides)
    return body


class TestProducts:

    def test_create_with_defaults(self, client, inventory_headers):
        resp = client.post("/api/products", json=_product_body(current_stock=12), headers=inventory_headers)
        assert resp.status_code == 201
        product = resp.json["product"]
        assert product["tax_rate"] == 15.0
        assert product["minimum_stock"] == 5
        assert product["current_stock"] == 12
        assert product["needs_reorder"] is False

    def test_create_requires_fields(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "Nameless"}, headers=admin_headers)
        assert resp.status_code == 400
        assert {"barcode", "category", "cost_price_cents", "selling_price_cents"} <= set(resp.json["fields"])

    def test_create_rejects_bad_enums(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json=_product_body(category="Rocks", plant_details={"care_level": "Impossible"}),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "category" in resp.json["fields"]
        assert "plant_details.care_level" in resp.json["fields"]

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json=_product_body(selling_price_cents=-1), headers=admin_headers)
        assert resp.status_code == 400

    def test_duplicate_barcode(self, client, admin_headers, product):
        resp = client.post("/api/products", json=_product_body(barcode=product.barcode), headers=admin_headers)
        assert resp.status_code == 409

    def test_cashier_cannot_create(self, client, cashier_headers):
        resp = client.post("/api/products", json=_product_body(), headers=cashier_headers)
        assert resp.status_code == 403

    def test_update_merges_plant_details(self, client, manager_headers, make_product):
        plant = make_product(plant_details={"scientific_name": "Hebe", "care_level": "Easy"})
        resp = client.put(
            f"/api/products/{plant.id}",
            json={"plant_details": {"sun_requirement": "Shade"}, "selling_price_cents": 1500},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        details = resp.json["product"]["plant_details"]
        assert details == {"scientific_name": "Hebe", "care_level": "Easy", "sun_requirement": "Shade"}
        assert resp.json["product"]["selling_price_cents"] == 1500

    def test_update_cannot_touch_stock(self, client, manager_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"current_stock": 999}, headers=manager_headers)
        assert resp.status_code == 400
        assert "current_stock" in resp.json["fields"]
        assert product.current_stock == 50

    def test_update_barcode_conflict(self, client, manager_headers, make_product):
        first = make_product()
        second = make_product()
        resp = client.put(f"/api/products/{second.id}", json={"barcode": first.barcode}, headers=manager_headers)
        assert resp.status_code == 409

    def test_delete_blocked_by_stock(self, client, admin_headers, product):
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_blocked_by_history(self, client, admin_headers, make_product, admin_user):
        from nursery.services import inventory_service
        plant = make_product(current_stock=3)
        inventory_service.set_stock(plant.id, 0, performed_by_user_id=admin_user.id)

        resp = client.delete(f"/api/products/{plant.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_unused_product(self, client, admin_headers, make_product):
        plant = make_product(current_stock=0)
        resp = client.delete(f"/api/products/{plant.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/products/{plant.id}", headers=admin_headers).status_code == 404

    def test_manager_cannot_delete(self, client, manager_headers, make_product):
        plant = make_product(current_stock=0)
        assert client.delete(f"/api/products/{plant.id}", headers=manager_headers).status_code == 403

    def test_list_search_and_filters(self, client, cashier_headers, make_product):
        make_product(name="Kowhai", category="Trees", plant_details={"scientific_name": "Sophora microphylla"})
        make_product(name="Basil", category="Herbs", current_stock=2)
        make_product(name="Old Rake", category="Tools", is_active=False)

        resp = client.get("/api/products?search=sophora", headers=cashier_headers)
        assert [p["name"] for p in resp.json["items"]] == ["Kowhai"]

        resp = client.get("/api/products?low_stock=true", headers=cashier_headers)
        assert [p["name"] for p in resp.json["items"]] == ["Basil"]

        resp = client.get("/api/products?active=false", headers=cashier_headers)
        assert [p["name"] for p in resp.json["items"]] == ["Old Rake"]

        resp = client.get("/api/products?sort_by=name&sort_order=desc&page=1&per_page=2", headers=cashier_headers)
        assert [p["name"] for p in resp.json["items"]] == ["Old Rake", "Kowhai"]
        assert resp.json["pagination"]["total_pages"] == 2

    def test_categories(self, client, cashier_headers, make_product):
        make_product(category="Trees")
        make_product(category="Herbs")
        resp = client.get("/api/products/categories", headers=cashier_headers)
        assert resp.json["categories"] == ["Herbs", "Trees"]

    def test_stats_overview(self, client, manager_headers, make_product):
        make_product(category="Trees", current_stock=0)
        make_product(category="Trees", current_stock=20, cost_price_cents=100, selling_price_cents=300)
        resp = client.get("/api/products/stats/overview", headers=manager_headers)
        assert resp.status_code == 200
        stats = resp.json
        assert stats["total_products"] == 2
        assert stats["out_of_stock_products"] == 1
        assert stats["low_stock_products"] == 1
        assert stats["inventory_value"] == {"cost_value_cents": 2000, "retail_value_cents": 6000}


class TestSuppliers:

    def test_crud(self, client, manager_headers, admin_headers):
        resp = client.post(
            "/api/suppliers",
            json={"name": "Kiwi Growers", "email": "Orders@KiwiGrowers.example", "lead_time_days": 5},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        supplier = resp.json["supplier"]
        assert supplier["email"] == "orders@kiwigrowers.example"
        assert supplier["payment_terms"] == "Net 30"

        resp = client.put(f"/api/suppliers/{supplier['id']}", json={"phone": "09 555 0101"}, headers=manager_headers)
        assert resp.json["supplier"]["phone"] == "09 555 0101"

        resp = client.delete(f"/api/suppliers/{supplier['id']}", headers=admin_headers)
        assert resp.status_code == 200

    def test_duplicate_email(self, client, manager_headers):
        body = {"name": "A", "email": "a@example.com"}
        assert client.post("/api/suppliers", json=body, headers=manager_headers).status_code == 201
        resp = client.post("/api/suppliers", json={"name": "B", "email": "A@example.com"}, headers=manager_headers)
        assert resp.status_code == 409

    def test_delete_blocked_by_products(self, client, manager_headers, admin_headers, make_product):
        supplier_id = client.post("/api/suppliers", json={"name": "Pots R Us"}, headers=manager_headers).json["supplier"]["id"]
        make_product(supplier_id=supplier_id, category="Pots")

        resp = client.delete(f"/api/suppliers/{supplier_id}", headers=admin_headers)
        assert resp.status_code == 409

        resp = client.get(f"/api/suppliers/{supplier_id}/products", headers=manager_headers)
        assert resp.json["count"] == 1

        resp = client.get(f"/api/suppliers/{supplier_id}", headers=manager_headers)
        assert len(resp.json["supplier"]["products_supplied"]) == 1

    def test_unknown_supplier_on_product(self, client, admin_headers):
        resp = client.post("/api/products", json=_product_body(supplier_id=999999), headers=admin_headers)
        assert resp.status_code == 400
        assert "supplier_id" in resp.json["fields"]

    def test_cashier_cannot_create(self, client, cashier_headers):
        assert client.post("/api/suppliers", json={"name": "X"}, headers=cashier_headers).status_code == 403


class TestCustomers:

    def test_create_defaults_country(self, client, cashier_headers):
        resp = client.post(
            "/api/customers",
            json={"name": "Hemi Parata", "email": "hemi@example.com", "address": {"city": "Hamilton"}},
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        customer = resp.json["customer"]
        assert customer["address"]["country"] == "New Zealand"
        assert customer["membership_level"] == "Regular"
        assert customer["loyalty_points"] == 0

    def test_invalid_email(self, client, cashier_headers):
        resp = client.post("/api/customers", json={"name": "X", "email": "not-an-email"}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_duplicate_email(self, client, cashier_headers, customer):
        resp = client.post("/api/customers", json={"name": "Other", "email": customer.email}, headers=cashier_headers)
        assert resp.status_code == 409

    def test_search(self, client, cashier_headers, customer):
        resp = client.get("/api/customers?search=auckland", headers=cashier_headers)
        assert [c["id"] for c in resp.json["items"]] == [customer.id]

    def test_membership_tiers(self):
        assert customers_service.membership_level_for(49_999) is None
        assert customers_service.membership_level_for(50_000) == "Bronze"
        assert customers_service.membership_level_for(100_000) == "Silver"
        assert customers_service.membership_level_for(250_000) == "Gold"
        assert customers_service.membership_level_for(500_000) == "Platinum"

    def test_sales_history_and_delete_blocked(self, client, cashier_headers, admin_headers, customer, product, cashier_user):
        sales_service.create_sale(
            parse_sale_request(sale_payload((product, 1), customer_id=customer.id)),
            cashier_id=cashier_user.id,
        )

        resp = client.get(f"/api/customers/{customer.id}/sales", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1

        resp = client.delete(f"/api/customers/{customer.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_customer(self, client, admin_headers, cashier_headers, customer):
        assert client.delete(f"/api/customers/{customer.id}", headers=cashier_headers).status_code == 403
        assert client.delete(f"/api/customers/{customer.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/customers/{customer.id}", headers=admin_headers).status_code == 404
