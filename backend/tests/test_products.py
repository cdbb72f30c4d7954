"""
Product API tests: CRUD, validation, pagination, search and barcode lookup.
"""

from retailpos.extensions import db
from retailpos.models import Product


def _make_products(n: int, prefix: str = "Item"):
    for i in range(n):
        db.session.add(Product(
            barcode=f"BC{i:05d}",
            name=f"{prefix} {i:02d}",
            sale_price_cents=100 + i,
            stock_quantity=5,
        ))
    db.session.commit()


class TestProductCrud:

    def test_create_product(self, client, admin_headers, category, unit):
        resp = client.post("/api/products", json={
            "barcode": "4006381333931",
            "sku": "PEN-01",
            "name": "Ballpoint Pen",
            "category_id": category.id,
            "unit_id": unit.id,
            "stock_quantity": 40,
            "cost_price_cents": 30,
            "sale_price_cents": 99,
        }, headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["barcode"] == "4006381333931"
        assert body["stock_quantity"] == 40
        assert body["is_active"] is True

    def test_create_requires_barcode(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "No Barcode", "sale_price_cents": 100},
                           headers=admin_headers)
        assert resp.status_code == 400
        assert "barcode" in resp.get_json()["error"]

    def test_blank_barcode_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={"barcode": "  ", "name": "X", "sale_price_cents": 100},
                           headers=admin_headers)
        assert resp.status_code == 400

    def test_duplicate_barcode_is_409(self, client, admin_headers, product):
        resp = client.post("/api/products", json={
            "barcode": product.barcode, "name": "Copy", "sale_price_cents": 100,
        }, headers=admin_headers)
        assert resp.status_code == 409

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={
            "barcode": "X1", "name": "X", "sale_price_cents": -1,
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_float_price_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={
            "barcode": "X1", "name": "X", "sale_price_cents": 12.5,
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_category_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={
            "barcode": "X1", "name": "X", "sale_price_cents": 100, "category_id": 999,
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={
            "barcode": "X1", "name": "X", "sale_price_cents": 100, "id": 7,
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_fractional_stock_allowed(self, client, admin_headers, kg_unit):
        resp = client.post("/api/products", json={
            "barcode": "PLU-4011", "name": "Bananas", "unit_id": kg_unit.id,
            "stock_quantity": "12.5", "sale_price_cents": 199,
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.get_json()["stock_quantity"] == 12.5

    def test_update_product(self, client, admin_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"sale_price_cents": 275},
                          headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale_price_cents"] == 275

    def test_update_to_duplicate_barcode_is_409(self, client, admin_headers, product, second_product):
        resp = client.put(f"/api/products/{second_product.id}", json={"barcode": product.barcode},
                          headers=admin_headers)
        assert resp.status_code == 409

    def test_update_missing_is_404(self, client, admin_headers):
        resp = client.put("/api/products/999", json={"name": "Ghost"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_delete_is_soft(self, client, admin_headers, product):
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["is_active"] is False

        db.session.expire_all()
        assert db.session.get(Product, product.id) is not None

    def test_sub_admin_can_manage_products(self, client, sub_admin_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"name": "Cola Zero"},
                          headers=sub_admin_headers)
        assert resp.status_code == 200


class TestProductListing:

    def test_pagination_meta(self, client, cashier_headers):
        _make_products(25)
        resp = client.get("/api/products?page=2&limit=10", headers=cashier_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["data"]) == 10
        assert body["pagination"] == {"total": 25, "page": 2, "limit": 10, "totalPages": 3}

    def test_default_and_max_limit(self, client, cashier_headers):
        _make_products(25)
        body = client.get("/api/products", headers=cashier_headers).get_json()
        assert body["pagination"]["limit"] == 20
        assert len(body["data"]) == 20

        body = client.get("/api/products?limit=1000", headers=cashier_headers).get_json()
        assert body["pagination"]["limit"] == 100

    def test_page_is_floored_at_one(self, client, cashier_headers):
        _make_products(3)
        body = client.get("/api/products?page=-4", headers=cashier_headers).get_json()
        assert body["pagination"]["page"] == 1
        assert len(body["data"]) == 3

    def test_search_name_and_barcode(self, client, cashier_headers, product, second_product):
        body = client.get("/api/products?search=cola", headers=cashier_headers).get_json()
        assert [p["id"] for p in body["data"]] == [product.id]

        body = client.get("/api/products?search=0024", headers=cashier_headers).get_json()
        assert [p["id"] for p in body["data"]] == [second_product.id]

    def test_filter_by_category(self, client, cashier_headers, product, second_product, category):
        body = client.get(f"/api/products?category_id={category.id}", headers=cashier_headers).get_json()
        assert [p["id"] for p in body["data"]] == [product.id]

    def test_bad_filter_gives_empty_page(self, client, cashier_headers, product):
        resp = client.get("/api/products?category_id=abc", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"] == []
        assert resp.get_json()["pagination"]["total"] == 0

    def test_empty_catalog(self, client, cashier_headers):
        body = client.get("/api/products", headers=cashier_headers).get_json()
        assert body["pagination"]["total"] == 0
        assert body["pagination"]["totalPages"] == 0


class TestBarcodeLookup:

    def test_exact_match(self, client, cashier_headers, product):
        resp = client.get(f"/api/products/barcode/{product.barcode}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.get_json()["id"] == product.id

    def test_partial_barcode_not_found(self, client, cashier_headers, product):
        resp = client.get("/api/products/barcode/50000", headers=cashier_headers)
        assert resp.status_code == 404

    def test_inactive_product_not_found(self, client, cashier_headers, product):
        product.is_active = False
        db.session.commit()
        resp = client.get(f"/api/products/barcode/{product.barcode}", headers=cashier_headers)
        assert resp.status_code == 404
