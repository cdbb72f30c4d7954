"""
Checkout tests.

Verifies:
- Server-side totals (discounts, half-up tax rounding, weighed quantities)
- Client-supplied totals must agree with the server
- Tender rules: underpayment, change due, non-cash over-tender
- Stock decrements atomically with the sale; the negative-stock policy
- Document numbers and cash session attachment
- A failure while writing persists nothing
- Cancelling restores stock
"""

import re
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from retailpos.extensions import db
from retailpos.models import Product, Sale, SaleLine, SalePayment
from retailpos.services import sales_service

from conftest import cash_sale_payload


def _stock(product_id: int) -> Decimal:
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity


def _sale_count() -> int:
    return db.session.query(Sale).count()


class TestTotals:

    def test_simple_cash_sale(self, client, cashier_headers, product):
        resp = client.post("/api/sales", json=cash_sale_payload(product.id, qty=2, amount_cents=500),
                           headers=cashier_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        sale = body["sale"]
        assert body["saleId"] == sale["id"]
        assert sale["status"] == "completed"
        assert sale["subtotal_cents"] == 500
        assert sale["grand_total_cents"] == 500
        assert sale["paid_total_cents"] == 500
        assert sale["change_due_cents"] == 0
        assert sale["lines"][0]["product_name"] == "Cola 330ml"
        assert sale["lines"][0]["unit_price_cents"] == 250
        assert sale["payments"][0]["method"] == "cash"

    def test_line_discount_and_tax(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, qty=2, amount_cents=495, discount_cents=50, tax_rate_bps=1000)
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["lines"][0]["line_total_cents"] == 450
        assert sale["subtotal_cents"] == 450
        assert sale["tax_total_cents"] == 45
        assert sale["grand_total_cents"] == 495

    def test_tax_rounds_half_up(self, client, cashier_headers):
        payload = {
            "lines": [{"product_name": "Service fee", "qty": 1, "unit_price_cents": 125, "tax_rate_bps": 1000}],
            "payments": [{"method": "cash", "amount_cents": 138}],
        }
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["tax_total_cents"] == 13
        assert resp.get_json()["sale"]["grand_total_cents"] == 138

    def test_sale_level_discount(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, qty=4, amount_cents=900)
        payload["sale"]["discount_total_cents"] = 100
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["grand_total_cents"] == 900

    def test_sale_discount_above_subtotal_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["sale"]["discount_total_cents"] = 251
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_line_discount_above_gross_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, discount_cents=251)
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_weighed_quantity(self, client, cashier_headers, weighed_product):
        payload = cash_sale_payload(weighed_product.id, qty=1.5, amount_cents=450)
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        line = resp.get_json()["sale"]["lines"][0]
        assert line["qty"] == 1.5
        assert line["line_total_cents"] == 450
        assert _stock(weighed_product.id) == Decimal("18.5")

    def test_fractional_cents_round_half_up(self, client, cashier_headers):
        payload = {
            "lines": [{"product_name": "Loose nails", "qty": "0.335", "unit_price_cents": 100}],
            "payments": [{"method": "cash", "amount_cents": 34}],
        }
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["grand_total_cents"] == 34

    def test_client_total_mismatch_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["sale"]["grand_total_cents"] = 999
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 400
        assert "grand_total_cents" in resp.get_json()["error"]
        assert _sale_count() == 0

    def test_matching_client_totals_accepted(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, line_total_cents=250)
        payload["sale"].update({"subtotal_cents": 250, "tax_total_cents": 0, "grand_total_cents": 250})
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 201


class TestLineValidation:

    def test_empty_lines_rejected(self, client, cashier_headers):
        resp = client.post("/api/sales", json={"lines": [], "payments": []}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_zero_qty_rejected(self, client, cashier_headers, product):
        resp = client.post("/api/sales", json=cash_sale_payload(product.id, qty=0), headers=cashier_headers)
        assert resp.status_code == 400

    def test_unknown_product_rejected(self, client, cashier_headers):
        resp = client.post("/api/sales", json=cash_sale_payload(999), headers=cashier_headers)
        assert resp.status_code == 400

    def test_inactive_product_rejected(self, client, cashier_headers, product):
        product.is_active = False
        db.session.commit()
        resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
        assert resp.status_code == 400

    def test_invalid_tax_rate_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, tax_rate_bps=10001)
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_unknown_sale_type_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["sale"]["type"] = "quote"
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_custom_line_needs_price(self, client, cashier_headers):
        payload = {"lines": [{"product_name": "Gift wrap", "qty": 1}], "payments": []}
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_quantity_beyond_column_range_rejected(self, client, cashier_headers, product):
        for qty in ("1e30", 1_000_000_000):
            resp = client.post("/api/sales", json=cash_sale_payload(product.id, qty=qty), headers=cashier_headers)
            assert resp.status_code == 400, qty
        assert _sale_count() == 0
        assert _stock(product.id) == 100

    def test_cent_amounts_capped(self, client, cashier_headers, product):
        huge = 10**20
        custom = {
            "lines": [{"product_name": "Gift wrap", "qty": 1, "unit_price_cents": huge}],
            "payments": [{"method": "cash", "amount_cents": huge}],
        }
        resp = client.post("/api/sales", json=custom, headers=cashier_headers)
        assert resp.status_code == 400
        assert "unit_price_cents cannot exceed" in resp.get_json()["error"]

        overpaid = cash_sale_payload(product.id, amount_cents=huge)
        assert client.post("/api/sales", json=overpaid, headers=cashier_headers).status_code == 400

        discounted = cash_sale_payload(product.id, discount_cents=huge)
        assert client.post("/api/sales", json=discounted, headers=cashier_headers).status_code == 400
        assert _sale_count() == 0

    def test_custom_line_name_fallback(self, client, cashier_headers, product):
        payload = {
            "lines": [{"qty": 1, "unit_price_cents": 99}],
            "payments": [{"method": "cash", "amount_cents": 99}],
        }
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        line = resp.get_json()["sale"]["lines"][0]
        assert line["product_id"] is None
        assert line["product_name"] == "Unknown Product"
        assert _stock(product.id) == 100

    def test_price_override_and_name_snapshot(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, amount_cents=200, unit_price_cents=200)
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        sale_id = resp.get_json()["saleId"]

        product.name = "Cola Classic 330ml"
        db.session.commit()

        line = db.session.query(SaleLine).filter_by(sale_id=sale_id).one()
        assert line.product_name == "Cola 330ml"
        assert line.unit_price_cents == 200


class TestTender:

    def test_underpayment_rejected(self, client, cashier_headers, product):
        resp = client.post("/api/sales", json=cash_sale_payload(product.id, amount_cents=200),
                           headers=cashier_headers)
        assert resp.status_code == 400
        assert "Insufficient payment" in resp.get_json()["error"]

    def test_underpayment_allowed_by_config(self, app, client, cashier_headers, product):
        app.config["POS_ALLOW_UNDERPAYMENT"] = True
        resp = client.post("/api/sales", json=cash_sale_payload(product.id, amount_cents=200),
                           headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["change_due_cents"] == 0

    def test_cash_change_due(self, client, cashier_headers, product):
        resp = client.post("/api/sales", json=cash_sale_payload(product.id, amount_cents=1000),
                           headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["change_due_cents"] == 750

    def test_split_tender(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["payments"] = [
            {"method": "card", "amount_cents": 200, "reference": "AUTH-42"},
            {"method": "cash", "amount_cents": 100},
        ]
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["paid_total_cents"] == 300
        assert sale["change_due_cents"] == 50
        assert sale["payments"][0]["reference"] == "AUTH-42"

    def test_non_cash_over_tender_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["payments"] = [{"method": "card", "amount_cents": 300}]
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_unknown_method_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["payments"] = [{"method": "bitcoin", "amount_cents": 250}]
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_float_amount_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id, amount_cents=250.5)
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400


class TestStock:

    def test_stock_decremented(self, client, cashier_headers, product):
        client.post("/api/sales", json=cash_sale_payload(product.id, qty=3, amount_cents=750),
                    headers=cashier_headers)
        assert _stock(product.id) == 97

    def test_negative_stock_allowed_by_default(self, client, cashier_headers, second_product):
        resp = client.post("/api/sales", json=cash_sale_payload(second_product.id, qty=11, amount_cents=1320),
                           headers=cashier_headers)
        assert resp.status_code == 201
        assert _stock(second_product.id) == -1

    def test_stock_floor_enforced_when_configured(self, app, client, cashier_headers, product, second_product):
        app.config["POS_ALLOW_NEGATIVE_STOCK"] = False
        payload = cash_sale_payload(product.id, amount_cents=250 + 1320)
        payload["lines"].append({"product_id": second_product.id, "qty": 11})

        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 409
        assert "Insufficient stock" in resp.get_json()["error"]

        # The first line's decrement was rolled back along with the sale
        assert _stock(product.id) == 100
        assert _stock(second_product.id) == 10
        assert _sale_count() == 0

    def test_stock_floor_allows_selling_out(self, app, client, cashier_headers, second_product):
        app.config["POS_ALLOW_NEGATIVE_STOCK"] = False
        resp = client.post("/api/sales", json=cash_sale_payload(second_product.id, qty=10, amount_cents=1200),
                           headers=cashier_headers)
        assert resp.status_code == 201
        assert _stock(second_product.id) == 0

    def test_write_failure_persists_nothing(self, client, cashier_headers, product, monkeypatch):
        def failing_delta(*args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(sales_service, "apply_stock_delta", failing_delta)

        resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "Checkout failed"
        assert _sale_count() == 0
        assert db.session.query(SaleLine).count() == 0
        assert db.session.query(SalePayment).count() == 0
        assert _stock(product.id) == 100


    def test_non_database_write_failure_rolls_back(self, client, cashier_headers, product, monkeypatch):
        def overflowing_delta(*args, **kwargs):
            raise OverflowError("Python int too large to convert to SQLite INTEGER")

        monkeypatch.setattr(sales_service, "apply_stock_delta", overflowing_delta)

        resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "Checkout failed"
        assert _sale_count() == 0
        assert _stock(product.id) == 100

class TestDocumentNumbers:

    def test_receipt_number_format(self, client, cashier_headers, product):
        resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
        number = resp.get_json()["sale"]["document_number"]
        assert re.match(r"^WS-\d{14}-[0-9A-F]{6}$", number)

    def test_invoice_number_format(self, client, cashier_headers, product, customer):
        payload = cash_sale_payload(product.id)
        payload["sale"] = {"type": "invoice", "customer_id": customer.id}
        resp = client.post("/api/sales", json=payload, headers=cashier_headers)
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert re.match(r"^INV-\d{14}-[0-9A-F]{6}$", sale["document_number"])
        assert sale["customer_id"] == customer.id

    def test_unknown_customer_rejected(self, client, cashier_headers, product):
        payload = cash_sale_payload(product.id)
        payload["sale"]["customer_id"] = 999
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400

    def test_numbers_are_unique(self, client, cashier_headers, product):
        numbers = set()
        for _ in range(5):
            resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
            numbers.add(resp.get_json()["sale"]["document_number"])
        assert len(numbers) == 5


class TestCashSessionAttachment:

    def test_sale_without_session(self, client, cashier_headers, product):
        resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
        assert resp.get_json()["sale"]["cash_session_id"] is None

    def test_attaches_open_session(self, client, cashier_headers, product):
        session_id = client.post("/api/sessions/open", json={}, headers=cashier_headers).get_json()["session"]["id"]
        resp = client.post("/api/sales", json=cash_sale_payload(product.id), headers=cashier_headers)
        assert resp.get_json()["sale"]["cash_session_id"] == session_id

    def test_closed_session_rejected(self, client, cashier_headers, product):
        session_id = client.post("/api/sessions/open", json={}, headers=cashier_headers).get_json()["session"]["id"]
        client.post(f"/api/sessions/{session_id}/close", json={}, headers=cashier_headers)

        payload = cash_sale_payload(product.id)
        payload["sale"]["cash_session_id"] = session_id
        assert client.post("/api/sales", json=payload, headers=cashier_headers).status_code == 400


class TestCancel:

    def test_cancel_restores_stock(self, client, cashier_headers, sub_admin_headers, product):
        sale_id = client.post("/api/sales", json=cash_sale_payload(product.id, qty=4, amount_cents=1000),
                              headers=cashier_headers).get_json()["saleId"]
        assert _stock(product.id) == 96

        resp = client.post(f"/api/sales/{sale_id}/cancel", json={"reason": "Customer changed mind"},
                           headers=sub_admin_headers)
        assert resp.status_code == 200
        sale = resp.get_json()["sale"]
        assert sale["status"] == "cancelled"
        assert sale["cancel_reason"] == "Customer changed mind"
        assert sale["cancelled_at"] is not None
        assert _stock(product.id) == 100

    def test_cancel_twice_is_409(self, client, cashier_headers, sub_admin_headers, product):
        sale_id = client.post("/api/sales", json=cash_sale_payload(product.id),
                              headers=cashier_headers).get_json()["saleId"]
        client.post(f"/api/sales/{sale_id}/cancel", json={}, headers=sub_admin_headers)

        resp = client.post(f"/api/sales/{sale_id}/cancel", json={}, headers=sub_admin_headers)
        assert resp.status_code == 409
        assert _stock(product.id) == 100

    def test_cancel_missing_is_404(self, client, sub_admin_headers):
        assert client.post("/api/sales/999/cancel", json={}, headers=sub_admin_headers).status_code == 404
