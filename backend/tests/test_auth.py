"""
Authentication and role tests.

Verifies:
- Login issues a bearer token and reports admin rights
- AuthContext is resolved from the token on each request
- Logout revokes the token
- Role grant/revoke is audited and self-revoke is refused
"""

from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import SessionToken
from storefront.services import auth_service, session_service
from storefront.services.auth_service import PasswordValidationError, UserError
from storefront.time_utils import utcnow

from helpers import activity_actions, auth_headers


# =============================================================================
# PASSWORDS AND USERS
# =============================================================================


class TestUsers:
    @pytest.mark.parametrize("password", ["short1", "onlyletters", "12345678"])
    def test_weak_passwords_rejected(self, db_session, password):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user("weak@lorcana.test", password)

    def test_duplicate_email_rejected(self, db_session, customer_user):
        with pytest.raises(UserError):
            auth_service.create_user("BUYER@lorcana.test", "Password123")

    def test_password_is_hashed(self, db_session, customer_user):
        assert customer_user.password_hash != "Password123"
        assert auth_service.verify_password("Password123", customer_user.password_hash)

    def test_authenticate_normalizes_email(self, db_session, customer_user):
        assert auth_service.authenticate("  Buyer@Lorcana.test ", "Password123").id == customer_user.id
        assert auth_service.authenticate("buyer@lorcana.test", "wrong") is None


# =============================================================================
# LOGIN / VERIFY / LOGOUT
# =============================================================================


class TestLoginFlow:
    def test_login_and_verify(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"email": "admin@lorcana.test", "password": "Password123"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["isAdmin"] is True
        assert body["user"]["roles"] == ["admin"]

        verify = client.get("/api/auth/verify", headers=auth_headers(body["token"]))
        assert verify.status_code == 200
        assert verify.get_json() == {"userId": admin_user.id, "email": "admin@lorcana.test", "isAdmin": True}

    def test_customer_is_not_admin(self, client, customer_user):
        resp = client.post("/api/auth/login", json={"email": "buyer@lorcana.test", "password": "Password123"})
        assert resp.get_json()["isAdmin"] is False

    def test_wrong_password(self, client, customer_user):
        resp = client.post("/api/auth/login", json={"email": "buyer@lorcana.test", "password": "Nope12345"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "buyer@lorcana.test"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, customer_headers):
        assert client.post("/api/auth/logout", headers=customer_headers).status_code == 200

        resp = client.get("/api/auth/verify", headers=customer_headers)
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_expired_token(self, client, customer_user):
        session, token = session_service.create_session(customer_user.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

        assert client.get("/api/auth/verify", headers=auth_headers(token)).status_code == 401

    def test_no_token(self, client, db_session):
        resp = client.get("/api/auth/verify")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Authentication required"

    def test_only_token_hash_stored(self, client, customer_user):
        _, token = session_service.create_session(customer_user.id)
        stored = db.session.query(SessionToken).filter_by(user_id=customer_user.id).one()
        assert stored.token_hash == session_service.hash_token(token)
        assert stored.token_hash != token


# =============================================================================
# ROLES
# =============================================================================


class TestRoles:
    def test_grant_and_revoke(self, client, admin_headers, customer_user):
        uid = customer_user.id

        granted = client.post(f"/api/admin/users/{uid}/role", headers=admin_headers)
        assert granted.status_code == 200
        assert granted.get_json()["user"]["roles"] == ["admin"]
        assert auth_service.is_admin(uid)

        revoked = client.delete(f"/api/admin/users/{uid}/role", headers=admin_headers)
        assert revoked.status_code == 200
        assert revoked.get_json()["user"]["roles"] == []
        assert not auth_service.is_admin(uid)

        assert activity_actions(str(uid)) == ["role_granted", "role_revoked"]

    def test_admin_cannot_revoke_self(self, client, admin_user, admin_headers):
        resp = client.delete(f"/api/admin/users/{admin_user.id}/role", headers=admin_headers)
        assert resp.status_code == 400
        assert auth_service.is_admin(admin_user.id)

    def test_unknown_user(self, client, admin_headers):
        assert client.post("/api/admin/users/9999/role", headers=admin_headers).status_code == 404

    def test_list_users(self, client, admin_headers, customer_user):
        resp = client.get("/api/admin/users", headers=admin_headers)
        emails = [u["email"] for u in resp.get_json()["users"]]
        assert emails == ["admin@lorcana.test", "buyer@lorcana.test"]

    def test_revoked_admin_loses_access_on_next_request(self, client, admin_headers, customer_user):
        auth_service.grant_admin(customer_user.id, "cli")
        _, token = session_service.create_session(customer_user.id)
        assert client.get("/api/admin/users", headers=auth_headers(token)).status_code == 200

        auth_service.revoke_admin(customer_user.id, "cli")

        assert client.get("/api/admin/users", headers=auth_headers(token)).status_code == 403
