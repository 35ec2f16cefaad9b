"""Integration tests for /api/auth."""

import uuid

import pytest
from fastapi.testclient import TestClient

from dailyflow.core.security import create_access_token
from tests.fakes import register_user

pytestmark = pytest.mark.integration

BASE = "/api/auth"


def test_register_returns_token_and_user(client_with_test_db: TestClient) -> None:
    response = client_with_test_db.post(
        f"{BASE}/register",
        json={"full_name": "Ada Lovelace", "email": "Ada@Example.com", "password": "secret123"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["user"]["email"] == "ada@example.com"
    assert data["user"]["full_name"] == "Ada Lovelace"
    assert "password_hash" not in data["user"]


def test_register_duplicate_email(client_with_test_db: TestClient) -> None:
    register_user(client_with_test_db)
    response = client_with_test_db.post(
        f"{BASE}/register",
        json={"full_name": "Other", "email": "ada@example.com", "password": "secret123"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "User with this email already exists"


def test_register_rejects_short_password(client_with_test_db: TestClient) -> None:
    response = client_with_test_db.post(
        f"{BASE}/register",
        json={"full_name": "Ada", "email": "ada@example.com", "password": "123"},
    )
    assert response.status_code == 422


def test_login_round_trip(client_with_test_db: TestClient) -> None:
    register_user(client_with_test_db)
    response = client_with_test_db.post(
        f"{BASE}/login", json={"email": "ada@example.com", "password": "secret123"}
    )
    assert response.status_code == 200
    token = response.json()["access_token"]

    tasks = client_with_test_db.get(
        "/api/tasks/", headers={"Authorization": f"Bearer {token}"}
    )
    assert tasks.status_code == 200


def test_login_wrong_password(client_with_test_db: TestClient) -> None:
    register_user(client_with_test_db)
    response = client_with_test_db.post(
        f"{BASE}/login", json={"email": "ada@example.com", "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_login_opens_reminder_session(client_with_test_db: TestClient) -> None:
    headers = register_user(client_with_test_db)
    client_with_test_db.post(f"{BASE}/logout", headers=headers)
    registry = client_with_test_db.app.state.reminders
    assert len(registry) == 0

    response = client_with_test_db.post(
        f"{BASE}/login", json={"email": "ada@example.com", "password": "secret123"}
    )
    user_id = response.json()["user"]["id"]
    assert uuid.UUID(user_id) in registry


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer not-a-token"},
        {"Authorization": "Basic abc"},
    ],
)
def test_protected_routes_require_valid_token(
    client_with_test_db: TestClient, headers: dict[str, str]
) -> None:
    response = client_with_test_db.get("/api/tasks/", headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


def test_expired_token_is_rejected(client_with_test_db: TestClient) -> None:
    headers = register_user(client_with_test_db)
    user_id = client_with_test_db.get("/api/notifications/push", headers=headers).json()["user_id"]

    expired = create_access_token(uuid.UUID(user_id), expires_minutes=-1)
    response = client_with_test_db.get(
        "/api/tasks/", headers={"Authorization": f"Bearer {expired}"}
    )
    assert response.status_code == 401


def test_logout_closes_reminder_session(
    client_with_test_db: TestClient, auth_headers: dict[str, str]
) -> None:
    registry = client_with_test_db.app.state.reminders
    assert len(registry) == 1

    response = client_with_test_db.post(f"{BASE}/logout", headers=auth_headers)

    assert response.status_code == 204
    assert len(registry) == 0
