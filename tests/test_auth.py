# tests/test_auth.py

"""
Tests for authentication endpoints.
"""

from fastapi.testclient import TestClient
from unittest.mock import Mock

from core.roles import Role
from dependencies.auth import CurrentUser


def signed_in(access_token="test-token", user_id="user-1"):
    session = Mock(access_token=access_token, refresh_token="refresh", expires_in=3600)
    return Mock(session=session, user=Mock(id=user_id))


def test_login_success(client: TestClient, use_supabase):
    """Login returns the token, role landing page and a session cookie."""
    fake = use_supabase("routers.auth")
    fake.client.auth.sign_in_with_password.return_value = signed_in()
    fake.set("users", [{"role": "PARTNER_STAFF"}])

    response = client.post(
        "/api/auth/login",
        json={"email": "Staff@Example.com", "password": "password123"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["access_token"] == "test-token"
    assert data["role"] == "PARTNER_STAFF"
    assert data["redirect_to"] == "/partner"
    assert "sb-access-token=test-token" in response.headers["set-cookie"]

    credentials = fake.client.auth.sign_in_with_password.call_args[0][0]
    assert credentials["email"] == "staff@example.com"


def test_login_without_role_row_defaults_to_user(client: TestClient, use_supabase):
    fake = use_supabase("routers.auth")
    fake.client.auth.sign_in_with_password.return_value = signed_in()
    fake.set("users", [])

    response = client.post(
        "/api/auth/login",
        json={"email": "new@example.com", "password": "password123"},
    )

    assert response.status_code == 200
    assert response.json()["role"] == "USER"
    assert response.json()["redirect_to"] == "/dashboard"


def test_login_invalid_credentials(client: TestClient, use_supabase):
    """Test login with invalid credentials."""
    fake = use_supabase("routers.auth")
    fake.client.auth.sign_in_with_password.side_effect = Exception("Invalid credentials")

    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": "wrongpassword"},
    )

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid email or password"}


def test_login_rate_limited(client: TestClient, use_supabase):
    fake = use_supabase("routers.auth")
    fake.client.auth.sign_in_with_password.side_effect = Exception("Invalid credentials")

    for _ in range(10):
        client.post("/api/auth/login", json={"email": "a@example.com", "password": "x"})

    response = client.post("/api/auth/login", json={"email": "a@example.com", "password": "x"})
    assert response.status_code == 429


def test_login_missing_password_is_400(client: TestClient):
    response = client.post("/api/auth/login", json={"email": "a@example.com"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: password"


def test_me_requires_session(client: TestClient):
    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_me_returns_current_user(client: TestClient, login_as):
    login_as(CurrentUser(id="driver-1", email="d@example.com", role=Role.DRIVER))

    response = client.get("/api/auth/me")

    assert response.status_code == 200
    assert response.json()["user"]["role"] == "DRIVER"


def test_register_partner_rejects_existing_email(client: TestClient, use_supabase):
    fake = use_supabase("routers.auth")
    fake.set("users", [{"id": "existing"}])

    response = client.post(
        "/api/auth/register/partner",
        json={
            "name": "Fleet Owner",
            "email": "owner@example.com",
            "password": "secret123",
            "phone": "07000000000",
            "companyName": "Fleet Ltd",
        },
    )

    assert response.status_code == 400
    assert "already been registered" in response.json()["error"]
    fake.client.auth.admin.create_user.assert_not_called()


DRIVER_SIGNUP = {
    "name": "Dee Driver",
    "email": "dee@example.com",
    "password": "secret123",
    "phone": "07000 000000",
}


def test_register_driver_refuses_partner_email(client: TestClient, use_supabase):
    fake = use_supabase("routers.auth")
    fake.set("users", [{"id": "partner-1", "role": "PARTNER"}])

    response = client.post("/api/auth/register/driver", json=DRIVER_SIGNUP)

    assert response.status_code == 400
    assert "already been registered" in response.json()["error"]
    assert "drivers" not in fake.tables
    fake.client.auth.admin.create_user.assert_not_called()


def test_register_driver_reuses_driver_profile(client: TestClient, use_supabase):
    fake = use_supabase("routers.auth")
    fake.set("users", [{"id": "driver-1", "role": "driver"}])
    drivers = fake.set("drivers", [])

    response = client.post("/api/auth/register/driver", json=DRIVER_SIGNUP)

    assert response.status_code == 200
    assert response.json()["userId"] == "driver-1"
    assert drivers.insert.call_args[0][0]["user_id"] == "driver-1"
    fake.client.auth.admin.create_user.assert_not_called()


def test_register_driver_missing_fields(client: TestClient):
    response = client.post(
        "/api/auth/register/driver",
        json={"email": "d@example.com", "password": "secret123"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: name, phone"
