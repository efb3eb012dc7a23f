"""
Authentication and authorization tests.

Verifies:
- Login / me / logout flow with bearer tokens
- Expired, revoked and deactivated sessions are rejected (401)
- Role checks return 403 with the required roles
- Staff user administration
"""

from datetime import timedelta

import pytest

from conftest import TEST_PASSWORD, auth_headers

from nursery.errors import ValidationError
from nursery.models import SessionToken
from nursery.services import auth_service, session_service
from nursery.services.auth_service import PasswordValidationError


class TestPasswords:

    @pytest.mark.parametrize("password", ["Sh0rt!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self, password_hash):
        assert auth_service.verify_password(TEST_PASSWORD, password_hash)
        assert not auth_service.verify_password("Wr0ngPass!", password_hash)
        assert not auth_service.verify_password(TEST_PASSWORD, "not-a-bcrypt-hash")


class TestLogin:

    def test_login_me_logout(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"email": "CASHIER@nursery.test", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        token = resp.json["token"]
        assert len(token) == 64
        assert resp.json["user"]["role"] == "cashier"

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json["user"]["email"] == "cashier@nursery.test"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_token_stored_hashed(self, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        assert session.token_hash != token
        assert session.token_hash == session_service.hash_token(token)

    def test_wrong_password(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"email": cashier_user.email, "password": "Wr0ngPass!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client):
        assert client.post("/api/auth/login", json={"email": "x@y.z"}).status_code == 400

    def test_inactive_user_cannot_login(self, client, make_user):
        user = make_user("cashier", email="gone@nursery.test", is_active=False)
        resp = client.post("/api/auth/login", json={"email": user.email, "password": TEST_PASSWORD})
        assert resp.status_code == 401

    def test_expired_session(self, client, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        session.expires_at = session.created_at - timedelta(minutes=1)
        db_session.commit()
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_deactivated_user_session_revoked(self, client, db_session, cashier_user):
        _, token = session_service.create_session(cashier_user.id)
        cashier_user.is_active = False
        db_session.commit()

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 401
        assert db_session.query(SessionToken).filter_by(user_id=cashier_user.id, is_revoked=False).count() == 0


class TestAuthorization:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/barcode/29910000015"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("POST", "/api/payments/eftpos"),
            ("GET", "/api/customers"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/users"),
            ("GET", "/api/reports/sales/daily"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("nope"))
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"

    def test_forbidden_lists_required_roles(self, client, inventory_headers):
        resp = client.post("/api/sales", json={"items": []}, headers=inventory_headers)
        assert resp.status_code == 403
        assert resp.json["required_roles"] == ["admin", "manager", "cashier"]


class TestUserAdmin:

    def test_create_and_login(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "Aroha", "email": "aroha@nursery.test", "password": "Gr33nThumb!", "role": "inventory"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert "password_hash" not in resp.json["user"]

        resp = client.post("/api/auth/login", json={"email": "aroha@nursery.test", "password": "Gr33nThumb!"})
        assert resp.status_code == 200

    def test_duplicate_email(self, client, admin_headers, cashier_user):
        resp = client.post(
            "/api/users",
            json={"name": "Dup", "email": cashier_user.email, "password": "Gr33nThumb!"},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_weak_password(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "Weak", "email": "weak@nursery.test", "password": "password"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "password" in resp.json["fields"]

    def test_invalid_role(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("Role", "role@nursery.test", "Gr33nThumb!", role="owner")

    def test_manager_can_list_not_create(self, client, manager_headers):
        assert client.get("/api/users", headers=manager_headers).status_code == 200
        resp = client.post("/api/users", json={"name": "X"}, headers=manager_headers)
        assert resp.status_code == 403

    def test_deactivate_revokes_sessions(self, client, admin_headers, cashier_user, cashier_headers):
        resp = client.put(f"/api/users/{cashier_user.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401

    def test_cannot_delete_self(self, client, admin_headers, admin_user):
        resp = client.delete(f"/api/users/{admin_user.id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_delete_user_with_history(self, client, admin_headers, inventory_user, product):
        from nursery.services import inventory_service
        inventory_service.record_movement_by_barcode(
            product.barcode, "Received", 1, performed_by_user_id=inventory_user.id,
        )
        resp = client.delete(f"/api/users/{inventory_user.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_user(self, client, admin_headers, cashier_user, cashier_headers):
        resp = client.delete(f"/api/users/{cashier_user.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/users/{cashier_user.id}", headers=admin_headers).status_code == 404


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["payment_provider"] == "mock"
        assert resp.json["checks"]["database"]["status"] == "healthy"
