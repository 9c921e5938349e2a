"""
Authentication and authorization tests.

Verifies:
- Unauthenticated requests return 401
- Operators are denied super admin operations (403)
- Login, logout and password change manage bearer sessions
"""

import pytest

from shopledger.services import session_service

from conftest import TEST_PASSWORD, auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/profile"),
            ("GET", "/api/users"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers/1/payment"),
            ("GET", "/api/payments/1"),
            ("GET", "/api/bills"),
            ("POST", "/api/bills"),
            ("GET", "/api/bills/summary/today"),
            ("GET", "/api/expenses"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/reports/profit-loss"),
            ("GET", "/api/audit-events"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["message"] == "No token, authorization denied"

    def test_garbage_token(self, client):
        resp = client.get("/api/bills", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Token is not valid"

    def test_health_is_public(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"


# =============================================================================
# OPERATOR DENIED SUPER ADMIN OPERATIONS: 403
# =============================================================================


class TestOperatorDeniedAdminOperations:
    """Operator role cannot perform privileged operations."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("DELETE", "/api/customers/1"),
            ("DELETE", "/api/expenses/1"),
            ("GET", "/api/audit-events"),
        ],
    )
    def test_forbidden(self, client, operator_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=operator_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["message"] == "Access denied. Super Admin only."

    def test_operator_can_record_sales(self, client, operator_headers, customer, bulb):
        resp = client.post("/api/bills", json={
            "customer_id": customer.id,
            "items": [{"product_id": bulb.id, "quantity": 1, "price_cents": 100_00}],
            "subtotal_cents": 100_00,
            "total_cents": 100_00,
            "payment_method": "cash",
        }, headers=operator_headers)
        assert resp.status_code == 201

    def test_super_admin_can_manage_users(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "name": "Asha",
            "email": "Asha@Shop.test",
            "password": "counter123",
            "role": "sub_admin",
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.get_json()["email"] == "asha@shop.test"

        resp = client.get("/api/users?role=sub_admin", headers=admin_headers)
        assert [u["name"] for u in resp.get_json()] == ["Asha"]


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_login_and_profile(self, client, operator):
        resp = client.post("/api/auth/login", json={"email": "STAFF@shop.test", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["id"] == operator.id
        assert body["expires_at"].endswith("Z")

        resp = client.get("/api/auth/profile", headers=auth_headers(body["token"]))
        assert resp.status_code == 200
        assert resp.get_json()["email"] == "staff@shop.test"

    @pytest.mark.parametrize("password", ["wrong-pass1", ""])
    def test_bad_credentials(self, client, operator, password):
        resp = client.post("/api/auth/login", json={"email": "staff@shop.test", "password": password})
        assert resp.status_code in (400, 401)

    def test_deactivated_account_cannot_log_in(self, client, db_session, operator):
        operator.is_active = False
        db_session.commit()

        resp = client.post("/api/auth/login", json={"email": "staff@shop.test", "password": TEST_PASSWORD})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Account is deactivated"

    def test_logout_revokes_token(self, client, operator):
        _, token = session_service.create_session(operator.id)
        headers = auth_headers(token)

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/profile", headers=headers).status_code == 401

    def test_change_password_signs_out_other_sessions(self, client, operator):
        _, current = session_service.create_session(operator.id)
        _, other = session_service.create_session(operator.id)

        resp = client.put("/api/auth/change-password", json={
            "current_password": TEST_PASSWORD,
            "new_password": "newPassw0rd",
        }, headers=auth_headers(current))
        assert resp.status_code == 200

        assert client.get("/api/auth/profile", headers=auth_headers(current)).status_code == 200
        assert client.get("/api/auth/profile", headers=auth_headers(other)).status_code == 401

    def test_change_password_rejects_wrong_current(self, client, operator_headers):
        resp = client.put("/api/auth/change-password", json={
            "current_password": "nope12345",
            "new_password": "newPassw0rd",
        }, headers=operator_headers)
        assert resp.status_code == 401

    def test_weak_new_password(self, client, operator_headers):
        resp = client.put("/api/auth/change-password", json={
            "current_password": TEST_PASSWORD,
            "new_password": "short",
        }, headers=operator_headers)
        assert resp.status_code == 400
