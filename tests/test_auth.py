"""Tests for registration, login and token handling."""
from __future__ import annotations

from itsdangerous import URLSafeTimedSerializer

from conftest import auth_header


def _register(client, **overrides):
    payload = {
        "name": "Jane Client",
        "email": "jane@example.com",
        "phone": "15551234567",
        "password": "Secret123!",
    }
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


def test_register_returns_token_and_user(client) -> None:
    response = _register(client)

    assert response.status_code == 201
    body = response.get_json()
    assert body["token"]
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["role"] == "user"


def test_register_duplicate_email_conflict(client) -> None:
    _register(client)

    response = _register(client, phone="15557654321")

    assert response.status_code == 409
    assert response.get_json()["error"] == "conflict"


def test_register_short_password_400(client) -> None:
    response = _register(client, password="123")

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_register_invalid_email_400(client) -> None:
    response = _register(client, email="not-an-email")

    assert response.status_code == 400


def test_login_success(client) -> None:
    _register(client)

    response = client.post("/auth/login", json={"email": "jane@example.com", "password": "Secret123!"})

    assert response.status_code == 200
    body = response.get_json()
    assert "token" in body and body["token"]
    assert body["user"]["name"] == "Jane Client"


def test_login_invalid_password(client) -> None:
    _register(client)

    response = client.post("/auth/login", json={"email": "jane@example.com", "password": "BadPass"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_me_requires_token(client) -> None:
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_me_rejects_token_signed_with_other_key(client, create_user) -> None:
    user_id, _ = create_user()
    forged = URLSafeTimedSerializer("someone-else", salt="auth-token").dumps({"user_id": user_id})

    response = client.get("/auth/me", headers=auth_header(forged))

    assert response.status_code == 401


def test_me_returns_current_user(client, create_user) -> None:
    user_id, token = create_user(email="me@example.com")

    response = client.get("/auth/me", headers=auth_header(token))

    assert response.status_code == 200
    assert response.get_json()["user"]["id"] == user_id


def test_change_password(client) -> None:
    token = _register(client).get_json()["token"]

    response = client.put(
        "/auth/password",
        json={"current_password": "Secret123!", "new_password": "NewSecret456"},
        headers=auth_header(token),
    )
    assert response.status_code == 200

    login = client.post("/auth/login", json={"email": "jane@example.com", "password": "NewSecret456"})
    assert login.status_code == 200


def test_user_profile_is_private(client, create_user) -> None:
    owner_id, _ = create_user()
    _, other_token = create_user()

    response = client.get(f"/users/{owner_id}", headers=auth_header(other_token))

    assert response.status_code == 403


def test_admin_can_view_any_profile(client, create_user, admin_token) -> None:
    owner_id, _ = create_user()

    response = client.get(f"/users/{owner_id}", headers=auth_header(admin_token))

    assert response.status_code == 200
    assert response.get_json()["user"]["id"] == owner_id
