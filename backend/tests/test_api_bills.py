"""
HTTP-level tests for the bill and payment flows.
"""

import pytest


def _bill_body(customer, product, quantity=1, **extra):
    total = product.price_cents * quantity
    body = {
        "customer_id": customer.id,
        "items": [{"product_id": product.id, "quantity": quantity, "price_cents": product.price_cents}],
        "subtotal_cents": total,
        "total_cents": total,
        "payment_method": "cash",
    }
    body.update(extra)
    return body


class TestBillEndpoints:

    def test_create_get_and_delete(self, client, operator_headers, customer, bulb):
        resp = client.post("/api/bills", json=_bill_body(customer, bulb, quantity=2), headers=operator_headers)
        assert resp.status_code == 201
        bill = resp.get_json()
        assert bill["bill_number"] == "BILL-1001"
        assert bill["customer"] == {"id": customer.id, "name": "Ravi Kumar", "phone": "9000000001"}
        assert bill["items"][0]["product"]["sku"] == "LED-9W"

        product = client.get(f"/api/products/{bulb.id}", headers=operator_headers).get_json()
        assert product["quantity"] == 48

        resp = client.get(f"/api/bills/{bill['id']}", headers=operator_headers)
        assert resp.status_code == 200
        assert resp.get_json()["due_amount_cents"] == 200_00

        resp = client.delete(f"/api/bills/{bill['id']}", headers=operator_headers)
        assert resp.status_code == 200
        assert resp.get_json()["bill"]["bill_number"] == "BILL-1001"

        product = client.get(f"/api/products/{bulb.id}", headers=operator_headers).get_json()
        assert product["quantity"] == 50
        assert client.get(f"/api/bills/{bill['id']}", headers=operator_headers).status_code == 404

    @pytest.mark.parametrize("bill_id", ["abc", "0", "-3", "1.5"])
    def test_malformed_id_is_400(self, client, operator_headers, bill_id):
        resp = client.get(f"/api/bills/{bill_id}", headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid bill id"

    def test_insufficient_stock_details(self, client, operator_headers, customer, switch):
        resp = client.post("/api/bills", json=_bill_body(customer, switch, quantity=99), headers=operator_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["details"]["items"][0]["reason"] == "insufficient_stock"

    def test_pay_bill(self, client, operator_headers, customer, bulb):
        bill = client.post("/api/bills", json=_bill_body(customer, bulb), headers=operator_headers).get_json()

        resp = client.put(f"/api/bills/{bill['id']}/payment",
                          json={"paid_amount_cents": 150_00, "payment_method": "cash"},
                          headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"due_amount_cents": 100_00}

        resp = client.put(f"/api/bills/{bill['id']}/payment",
                          json={"paid_amount_cents": 100_00, "payment_method": "UPI"},
                          headers=operator_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "paid"
        assert resp.get_json()["payments"][0]["method"] == "upi"

    def test_list_with_filters(self, client, operator_headers, customer, bulb):
        client.post("/api/bills", json=_bill_body(customer, bulb, bill_date="2026-02-01T10:00:00Z"),
                    headers=operator_headers)
        client.post("/api/bills", json=_bill_body(customer, bulb, payment_status="paid",
                                                  bill_date="2026-02-02T10:00:00Z"),
                    headers=operator_headers)

        resp = client.get("/api/bills?start_date=2026-02-01&end_date=2026-02-01", headers=operator_headers)
        assert [b["bill_number"] for b in resp.get_json()] == ["BILL-1001"]

        resp = client.get("/api/bills?payment_status=paid", headers=operator_headers)
        assert [b["bill_number"] for b in resp.get_json()] == ["BILL-1002"]

        resp = client.get("/api/bills?sort=bill_date:asc", headers=operator_headers)
        assert [b["bill_number"] for b in resp.get_json()] == ["BILL-1001", "BILL-1002"]

    def test_summaries(self, client, operator_headers):
        assert client.get("/api/bills/summary/today", headers=operator_headers).get_json()["count"] == 0
        assert len(client.get("/api/bills/summary/weekly", headers=operator_headers).get_json()) == 7


class TestCustomerPaymentEndpoints:

    def test_payment_is_applied_fifo(self, client, operator_headers, customer, bulb):
        client.post("/api/bills", json=_bill_body(customer, bulb, bill_date="2024-01-01T09:00:00Z"),
                    headers=operator_headers)
        client.post("/api/bills", json=_bill_body(customer, bulb, bill_date="2024-01-02T09:00:00Z"),
                    headers=operator_headers)

        resp = client.post(f"/api/customers/{customer.id}/payment",
                           json={"amount_cents": 150_00, "payment_method": "cash"},
                           headers=operator_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["customer"]["total_due_cents"] == 50_00
        assert [(a["bill_number"], a["applied_cents"]) for a in body["allocations"]] == [
            ("BILL-1001", 100_00),
            ("BILL-1002", 50_00),
        ]
        assert body["payment"]["payment_number"].startswith("PAY")

        resp = client.get(f"/api/payments/{body['payment']['id']}", headers=operator_headers)
        assert resp.status_code == 200

        resp = client.get(f"/api/customers/{customer.id}/ledger", headers=operator_headers)
        assert resp.get_json()["transactions"][0]["balance_cents"] == 50_00

    def test_overpayment_is_400(self, client, operator_headers, customer, bulb):
        client.post("/api/bills", json=_bill_body(customer, bulb), headers=operator_headers)
        resp = client.post(f"/api/customers/{customer.id}/payment",
                           json={"amount_cents": 100_01, "payment_method": "cash"},
                           headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"total_due_cents": 100_00}

        assert client.get(f"/api/customers/{customer.id}/payments", headers=operator_headers).get_json() == []

    def test_missing_fields(self, client, operator_headers, customer):
        resp = client.post(f"/api/customers/{customer.id}/payment", json={}, headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"]["missing"] == ["amount_cents", "payment_method"]

    def test_bill_with_allocated_payment_cannot_be_deleted(self, client, operator_headers, customer, bulb):
        bill = client.post("/api/bills", json=_bill_body(customer, bulb), headers=operator_headers).get_json()
        payment = client.post(f"/api/customers/{customer.id}/payment",
                              json={"amount_cents": 30_00, "payment_method": "cash"},
                              headers=operator_headers).get_json()["payment"]

        resp = client.delete(f"/api/bills/{bill['id']}", headers=operator_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"payment_numbers": [payment["payment_number"]]}
        assert client.get(f"/api/bills/{bill['id']}", headers=operator_headers).status_code == 200

    def test_delete_customer_with_dues(self, client, admin_headers, customer, bulb):
        client.post("/api/bills", json=_bill_body(customer, bulb), headers=admin_headers)
        resp = client.delete(f"/api/customers/{customer.id}", headers=admin_headers)
        assert resp.status_code == 400
        assert len(resp.get_json()["details"]["unpaid_bills"]) == 1

    def test_audit_trail(self, client, admin_headers, customer, bulb):
        bill = client.post("/api/bills", json=_bill_body(customer, bulb), headers=admin_headers).get_json()

        resp = client.get(f"/api/audit-events?bill_id={bill['id']}", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["items"][0]["event_type"] == "bill.created"


class TestApiShape:

    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert "message" in resp.get_json()

    def test_cors_for_dashboard_origin(self, client):
        resp = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        resp = client.get("/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
