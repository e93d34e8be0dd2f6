"""
Authentication flow tests.

Covers registration per role, login/logout, email verification,
login throttling, password change and parent-managed child settings.
"""

import pytest

from youfin.extensions import db
from youfin.models import User, SessionToken, SecurityEvent
from youfin.services import auth_service, session_service
from conftest import PASSWORD, child_birth_date, business_payload, get_auth_token, auth_headers


def register_payload(**overrides) -> dict:
    payload = {
        "firstName": "Ana",
        "lastName": "Hoxha",
        "email": "ana@youfin.test",
        "password": PASSWORD,
        "role": "parent",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# REGISTRATION
# =============================================================================


class TestRegister:

    def test_register_parent_returns_token_and_cookie(self, client, db_session):
        resp = client.post("/api/auth/register", json=register_payload())
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        assert body["token"]
        assert body["user"]["email"] == "ana@youfin.test"
        assert body["user"]["role"] == "parent"
        assert body["user"]["isVerified"] is True
        assert "password" not in body["user"]
        assert "token=" in resp.headers.get("Set-Cookie", "")
        assert "HttpOnly" in resp.headers.get("Set-Cookie", "")

    def test_register_generates_username(self, client, db_session):
        resp = client.post("/api/auth/register", json=register_payload())
        username = resp.get_json()["user"]["username"]
        assert username.startswith("anahoxha")
        assert username[len("anahoxha"):].isdigit()

    def test_register_duplicate_email(self, client, parent):
        resp = client.post("/api/auth/register", json=register_payload(email="PARENT@youfin.test"))
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Email is already registered"
        assert db.session.query(User).filter_by(email="parent@youfin.test").count() == 1

    def test_register_weak_password(self, client, db_session):
        resp = client.post("/api/auth/register", json=register_payload(password="password"))
        assert resp.status_code == 400
        assert db.session.query(User).count() == 0

    def test_register_password_confirmation_mismatch(self, client, db_session):
        resp = client.post(
            "/api/auth/register",
            json=register_payload(confirmPassword="Different123!"),
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Passwords don't match"

    def test_register_invalid_role(self, client, db_session):
        resp = client.post("/api/auth/register", json=register_payload(role="admin"))
        assert resp.status_code == 400

    def test_register_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "x@youfin.test"})
        assert resp.status_code == 400
        assert "Missing required fields" in resp.get_json()["message"]

    def test_register_business(self, client, db_session):
        payload = register_payload(email="shop@youfin.test", role="business", **business_payload())
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 201
        user = resp.get_json()["user"]
        assert user["businessName"] == "Corner Shop"
        assert user["businessType"] == "retail"
        assert user["address"]["city"] == "Tirana"

    def test_register_business_missing_info(self, client, db_session):
        payload = register_payload(email="shop@youfin.test", role="business", businessName="Shop")
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide all required business information"

    def test_register_business_description_too_long(self, client, db_session):
        payload = register_payload(
            email="shop@youfin.test", role="business", **business_payload(description="x" * 501)
        )
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400

    def test_register_child(self, client, parent):
        payload = register_payload(
            email="kid@youfin.test",
            role="child",
            parentId=parent.id,
            dateOfBirth=child_birth_date(12),
        )
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 201
        user = resp.get_json()["user"]
        assert user["parentId"] == parent.id
        assert user["allowance"]["amount"] == 0
        db.session.refresh(parent)
        assert [c.email for c in parent.children] == ["kid@youfin.test"]

    def test_register_child_invalid_parent(self, client, db_session):
        payload = register_payload(
            email="kid@youfin.test", role="child", parentId=9999, dateOfBirth=child_birth_date(12)
        )
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid parent ID"

    def test_register_child_with_child_as_parent(self, client, child):
        payload = register_payload(
            email="kid2@youfin.test", role="child", parentId=child.id, dateOfBirth=child_birth_date(8)
        )
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid parent ID"

    def test_register_child_missing_info(self, client, parent):
        payload = register_payload(email="kid@youfin.test", role="child", parentId=parent.id)
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide all required child information"

    @pytest.mark.parametrize("age", [5, 18])
    def test_register_child_age_out_of_range(self, client, parent, age):
        payload = register_payload(
            email="kid@youfin.test", role="child", parentId=parent.id, dateOfBirth=child_birth_date(age)
        )
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        db.session.refresh(parent)
        assert list(parent.children) == []

    def test_register_unverified_when_auto_verify_off(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "AUTO_VERIFY_ACCOUNTS", False)
        resp = client.post("/api/auth/register", json=register_payload())
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["user"]["isVerified"] is False
        assert "check your email" in body["message"]


# =============================================================================
# EMAIL VERIFICATION
# =============================================================================


class TestVerifyEmail:

    def test_verify_email_token(self, app, client, db_session, monkeypatch):
        sent = {}

        def fake_send(email, token):
            sent["token"] = token
            return {"success": True}

        monkeypatch.setitem(app.config, "AUTO_VERIFY_ACCOUNTS", False)
        monkeypatch.setattr(auth_service.email_service, "send_verification_email", fake_send)

        client.post("/api/auth/register", json=register_payload())

        resp = client.post("/api/auth/login", json={"email": "ana@youfin.test", "password": PASSWORD})
        assert resp.status_code == 401
        assert "verify your email" in resp.get_json()["message"]

        resp = client.get(f"/api/auth/verify-email/{sent['token']}")
        assert resp.status_code == 200

        resp = client.post("/api/auth/login", json={"email": "ana@youfin.test", "password": PASSWORD})
        assert resp.status_code == 200

    def test_verify_email_invalid_token(self, client, db_session):
        resp = client.get("/api/auth/verify-email/not-a-token")
        assert resp.status_code == 400


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_success(self, client, parent):
        resp = client.post("/api/auth/login", json={"email": "parent@youfin.test", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["token"]
        assert body["user"]["id"] == parent.id
        assert body["session"]["userId"] == parent.id
        db.session.refresh(parent)
        assert parent.last_login_at is not None

    def test_login_email_case_insensitive(self, client, parent):
        resp = client.post("/api/auth/login", json={"email": "Parent@YouFin.test", "password": PASSWORD})
        assert resp.status_code == 200

    def test_login_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "parent@youfin.test"})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide email and password"

    @pytest.mark.parametrize("email,password", [
        (123, PASSWORD),
        (["parent@youfin.test"], PASSWORD),
        ({"email": "parent@youfin.test"}, PASSWORD),
        ("parent@youfin.test", 12345678),
        ("   ", PASSWORD),
    ])
    def test_login_rejects_non_text_credentials(self, client, parent, email, password):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide email and password"
        assert db.session.query(SecurityEvent).count() == 0

    def test_login_wrong_password(self, client, parent):
        resp = client.post("/api/auth/login", json={"email": "parent@youfin.test", "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid credentials"

    def test_login_unknown_email(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "nobody@youfin.test", "password": PASSWORD})
        assert resp.status_code == 401

    def test_lockout_after_repeated_failures(self, client, parent):
        last = None
        for _ in range(10):
            last = client.post(
                "/api/auth/login", json={"email": "parent@youfin.test", "password": "Wrong123!"}
            )
        assert last.status_code == 429
        assert last.get_json()["locked"] is True

        resp = client.post("/api/auth/login", json={"email": "parent@youfin.test", "password": PASSWORD})
        assert resp.status_code == 429

        status = client.get("/api/auth/lockout-status/parent@youfin.test").get_json()
        assert status["locked"] is True
        assert status["failedAttempts"] == 10

    def test_warning_when_few_attempts_remain(self, client, parent):
        resp = None
        for _ in range(7):
            resp = client.post(
                "/api/auth/login", json={"email": "parent@youfin.test", "password": "Wrong123!"}
            )
        assert resp.status_code == 401
        assert resp.get_json()["warning"] == "3 attempts remaining before account lockout"

    def test_cookie_authenticates_follow_up_requests(self, client, parent):
        client.post("/api/auth/login", json={"email": "parent@youfin.test", "password": PASSWORD})
        resp = client.get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == parent.id

    def test_logout_revokes_session(self, client, parent_headers):
        resp = client.post("/api/auth/logout", headers=parent_headers)
        assert resp.status_code == 200

        resp = client.get("/api/auth/me", headers=parent_headers)
        assert resp.status_code == 401

    def test_logout_without_token(self, client, db_session):
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200


# =============================================================================
# CURRENT USER
# =============================================================================


class TestMe:

    def test_parent_sees_children(self, client, parent_headers, child):
        resp = client.get("/api/auth/me", headers=parent_headers)
        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert [c["id"] for c in user["children"]] == [child.id]

    def test_child_sees_parent_summary(self, client, child_headers, parent):
        resp = client.get("/api/auth/me", headers=child_headers)
        user = resp.get_json()["user"]
        assert user["parent"]["id"] == parent.id
        assert "children" not in user

    def test_children_endpoint(self, client, parent_headers, child):
        resp = client.get("/api/auth/children", headers=parent_headers)
        assert resp.status_code == 200
        assert [c["email"] for c in resp.get_json()["children"]] == ["child@youfin.test"]


class TestCheckEmail:

    def test_existing_email(self, client, parent):
        resp = client.post("/api/auth/check-email", json={"email": "parent@youfin.test"})
        assert resp.get_json()["exists"] is True

    def test_unknown_email(self, client, db_session):
        resp = client.post("/api/auth/check-email", json={"email": "nobody@youfin.test"})
        assert resp.get_json()["exists"] is False

    def test_missing_email(self, client, db_session):
        resp = client.post("/api/auth/check-email", json={})
        assert resp.status_code == 400

    @pytest.mark.parametrize("email", [123, ["parent@youfin.test"], {"a": 1}, True])
    def test_non_text_email(self, client, parent, email):
        resp = client.post("/api/auth/check-email", json={"email": email})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide an email"


# =============================================================================
# PASSWORD CHANGE
# =============================================================================


class TestUpdatePassword:

    def test_update_password_rotates_sessions(self, client, parent, parent_headers):
        resp = client.patch(
            "/api/auth/update-password",
            json={"currentPassword": PASSWORD, "newPassword": "NewPassword456!"},
            headers=parent_headers,
        )
        assert resp.status_code == 200
        new_token = resp.get_json()["token"]

        assert client.get("/api/auth/me", headers=parent_headers).status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers(new_token)).status_code == 200

        assert get_auth_token(client, parent.email) is None
        assert get_auth_token(client, parent.email, "NewPassword456!")

    def test_wrong_current_password(self, client, parent_headers):
        resp = client.patch(
            "/api/auth/update-password",
            json={"currentPassword": "Wrong123!", "newPassword": "NewPassword456!"},
            headers=parent_headers,
        )
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Current password is incorrect"

    def test_weak_new_password(self, client, parent_headers):
        resp = client.patch(
            "/api/auth/update-password",
            json={"currentPassword": PASSWORD, "newPassword": "short"},
            headers=parent_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# ALLOWANCE AND SPENDING LIMITS
# =============================================================================


class TestChildSettings:

    def test_update_allowance(self, client, parent_headers, child):
        resp = client.patch(
            "/api/auth/update-allowance",
            json={"childId": child.id, "amount": 15.5, "frequency": "weekly"},
            headers=parent_headers,
        )
        assert resp.status_code == 200
        allowance = resp.get_json()["child"]["allowance"]
        assert allowance["amount"] == 15.5
        assert allowance["frequency"] == "weekly"
        assert allowance["lastPaid"] is not None

    def test_update_allowance_rejects_negative(self, client, parent_headers, child):
        resp = client.patch(
            "/api/auth/update-allowance",
            json={"childId": child.id, "amount": -1, "frequency": "weekly"},
            headers=parent_headers,
        )
        assert resp.status_code == 400

    def test_update_allowance_unknown_child(self, client, parent_headers):
        resp = client.patch(
            "/api/auth/update-allowance",
            json={"childId": 9999, "amount": 10},
            headers=parent_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Child not found"

    def test_update_spending_limits(self, client, parent_headers, child):
        resp = client.patch(
            "/api/auth/update-spending-limits",
            json={"childId": child.id, "daily": 5, "weekly": 25, "monthly": 80},
            headers=parent_headers,
        )
        assert resp.status_code == 200
        limits = resp.get_json()["child"]["spendingLimit"]
        assert limits == {"daily": 5.0, "weekly": 25.0, "monthly": 80.0}


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_login_stores_only_token_hash(self, client, parent):
        token = get_auth_token(client, parent.email)
        stored = db.session.query(SessionToken).filter_by(user_id=parent.id).all()
        assert stored
        assert all(s.token_hash != token for s in stored)
        assert any(s.token_hash == session_service.hash_token(token) for s in stored)
