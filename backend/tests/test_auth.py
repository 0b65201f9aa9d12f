"""
Authentication tests: registration, login, profile and session lifecycle.
"""

from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import SessionToken, User
from storefront.services import session_service
from storefront.services.auth_service import hash_password, verify_password
from storefront.time_utils import utcnow


PASSWORD = "Password123"


def get_auth_token(client, email, password):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    return resp.get_json()["token"] if resp.status_code == 200 else None


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


class TestRegister:

    def test_register_creates_customer(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "name": "Aminata",
            "email": "Aminata@Mail.TEST",
            "password": PASSWORD,
            "phone": "770001122",
            "role": "admin",
        })
        assert resp.status_code == 201, resp.get_json()
        user = resp.get_json()["user"]
        assert user["role"] == "customer"
        assert user["email"] == "aminata@mail.test"
        assert "password_hash" not in user

    def test_duplicate_email(self, client, customer_user):
        resp = client.post("/api/auth/register", json={
            "name": "Again", "email": "CUSTOMER@shop.test", "password": PASSWORD,
        })
        assert resp.status_code == 409

    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_password(self, client, db_session, password):
        resp = client.post("/api/auth/register", json={"name": "Weak", "email": "weak@mail.test", "password": password})
        assert resp.status_code == 400
        assert db.session.query(User).count() == 0

    @pytest.mark.parametrize("payload", [
        {"name": "A", "email": "a@mail.test"},
        {"name": "Valid Name", "email": "not-an-email"},
        {"name": "Valid Name"},
    ])
    def test_invalid_profile(self, client, db_session, payload):
        resp = client.post("/api/auth/register", json={**payload, "password": PASSWORD})
        assert resp.status_code == 400


class TestLogin:

    def test_login_returns_token(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": " STAFF@shop.test ", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["token"]) == 64
        assert body["user"]["role"] == "staff"
        assert db.session.get(User, staff_user.id).last_login_at is not None

        # Only the hash is stored
        stored = db.session.query(SessionToken).filter_by(user_id=staff_user.id).one()
        assert stored.token_hash == session_service.hash_token(body["token"])
        assert stored.token_hash != body["token"]

    def test_wrong_password(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": staff_user.email, "password": "Wrong12345"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid credentials"

    def test_unknown_email(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "ghost@shop.test", "password": PASSWORD})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@shop.test"}).status_code == 400

    def test_deactivated_user(self, client, staff_user, staff_headers):
        staff_user.is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=staff_headers).status_code == 401
        assert get_auth_token(client, staff_user.email, PASSWORD) is None


class TestProfile:

    def test_me(self, client, customer_user, customer_headers):
        resp = client.get("/api/auth/me", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == customer_user.id

    def test_update_name_and_phone(self, client, customer_user, customer_headers):
        resp = client.patch("/api/auth/me", json={"name": " Awa Ndiaye ", "phone": ""}, headers=customer_headers)
        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert user["name"] == "Awa Ndiaye"
        assert user["phone"] is None

    def test_role_and_email_are_ignored(self, client, customer_user, customer_headers):
        client.patch("/api/auth/me", json={"role": "admin", "email": "boss@shop.test"}, headers=customer_headers)
        user = db.session.get(User, customer_user.id)
        assert user.role == "customer"
        assert user.email == "customer@shop.test"

    def test_short_name_rejected(self, client, customer_headers):
        assert client.patch("/api/auth/me", json={"name": "A"}, headers=customer_headers).status_code == 400


class TestSessions:

    def test_idle_session_is_revoked(self, client, staff_user):
        token = get_auth_token(client, staff_user.email, PASSWORD)
        stored = db.session.query(SessionToken).filter_by(user_id=staff_user.id).one()
        stored.last_used_at = utcnow() - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db.session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        stored = db.session.query(SessionToken).filter_by(user_id=staff_user.id).one()
        assert stored.is_revoked is True
        assert stored.revoked_reason == "Idle timeout"

    def test_expired_session(self, client, staff_user):
        token = get_auth_token(client, staff_user.email, PASSWORD)
        stored = db.session.query(SessionToken).filter_by(user_id=staff_user.id).one()
        stored.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_revoke_all_user_sessions(self, client, staff_user):
        first = get_auth_token(client, staff_user.email, PASSWORD)
        second = get_auth_token(client, staff_user.email, PASSWORD)
        assert session_service.revoke_all_user_sessions(staff_user.id) == 2
        assert client.get("/api/auth/me", headers=auth_headers(first)).status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers(second)).status_code == 401


class TestPasswordHashing:

    def test_hash_roundtrip(self, app):
        hashed = hash_password(PASSWORD)
        assert hashed.startswith("$2")
        assert verify_password(PASSWORD, hashed)
        assert not verify_password("Password124", hashed)

    def test_malformed_hash(self):
        assert verify_password(PASSWORD, "not-a-bcrypt-hash") is False
