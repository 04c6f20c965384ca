"""Tests for authentication endpoints."""

import pytest
from fastapi import Request, status

from app.api.deps import get_current_user
from app.core.rate_limit import get_user_identifier
from tests.conftest import TEST_PASSWORD


class TestAuthEndpoints:
    """Test authentication flow."""

    @pytest.fixture
    def credentials(self):
        return {"email": "admin@test.com", "password": TEST_PASSWORD, "name": "Test Admin"}

    def test_first_user_is_admin(self, client, credentials):
        """The first account gets the ADMIN role."""
        response = client.post("/api/auth/register", json=credentials)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["token"]
        assert data["tokenType"] == "bearer"
        assert data["user"]["email"] == "admin@test.com"
        assert data["user"]["role"] == "ADMIN"
        assert "auth_token" in response.cookies

    def test_later_users_are_viewers(self, client, admin_user):
        response = client.post(
            "/api/auth/register",
            json={"email": "second@test.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["user"]["role"] == "VIEWER"

    def test_register_duplicate_email(self, client, credentials):
        """Test that duplicate email registration fails."""
        client.post("/api/auth/register", json=credentials)

        response = client.post("/api/auth/register", json={**credentials, "email": "ADMIN@test.com"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "CONFLICT"

    @pytest.mark.parametrize("email", ["not-an-email", "missing@tld", "two@@test.com"])
    def test_register_invalid_email(self, client, email):
        response = client.post("/api/auth/register", json={"email": email, "password": TEST_PASSWORD})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_register_email_lowercased(self, client):
        response = client.post("/api/auth/register", json={"email": "Mixed.Case@Test.com", "password": TEST_PASSWORD})

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["user"]["email"] == "mixed.case@test.com"

    def test_register_weak_password(self, client):
        response = client.post(
            "/api/auth/register",
            json={"email": "weak@test.com", "password": "alllowercase1"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "uppercase" in response.json()["detail"]

    def test_login_success(self, client, admin_user):
        """Login returns a token and sets the auth cookie."""
        response = client.post(
            "/api/auth/login",
            json={"email": "admin@test.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["token"]
        assert data["user"]["role"] == "ADMIN"
        assert "auth_token" in response.cookies

    def test_cookie_authenticates(self, client, admin_user):
        """Browsers authenticate with the cookie alone."""
        client.post("/api/auth/login", json={"email": "admin@test.com", "password": TEST_PASSWORD})

        response = client.get("/api/auth/me")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "admin@test.com"

    def test_login_invalid_credentials(self, client, admin_user):
        """Test login with wrong password."""
        response = client.post(
            "/api/auth/login",
            json={"email": "admin@test.com", "password": "WrongPassword1"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "INVALID_CREDENTIALS"

    def test_login_nonexistent_user(self, client):
        """Test login for user that doesn't exist."""
        response = client.post(
            "/api/auth/login",
            json={"email": "nobody@test.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_get_current_user(self, client, admin_user):
        """Test getting current user info."""
        response = client.get("/api/auth/me", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == admin_user["id"]
        assert data["name"] == "Test Admin"

    def test_get_current_user_unauthorized(self, client):
        """Requests without a session get a machine-readable 401."""
        response = client.get("/api/auth/me")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_invalid_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_logout_clears_cookie(self, client, admin_user):
        client.post("/api/auth/login", json={"email": "admin@test.com", "password": TEST_PASSWORD})

        response = client.post("/api/auth/logout")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert client.get("/api/auth/me").status_code == status.HTTP_401_UNAUTHORIZED

    def test_update_profile(self, client, admin_user):
        response = client.patch(
            "/api/auth/me",
            json={"name": "<b>New Name</b>", "currentPassword": TEST_PASSWORD, "newPassword": "Different456"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "New Name"

        login = client.post("/api/auth/login", json={"email": "admin@test.com", "password": "Different456"})
        assert login.status_code == status.HTTP_200_OK

    def test_change_password_requires_current(self, client, admin_user):
        response = client.patch(
            "/api/auth/me",
            json={"currentPassword": "WrongPassword1", "newPassword": "Different456"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestUserAdministration:
    """Admin management of roles and accounts."""

    def test_list_users(self, client, admin_user, viewer_user):
        response = client.get("/api/auth/users", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert [u["email"] for u in data["users"]] == ["admin@test.com", "viewer@test.com"]

    def test_change_role(self, client, admin_user, viewer_user):
        response = client.patch(
            f"/api/auth/users/{viewer_user['id']}/role",
            json={"role": "EDITOR"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["role"] == "EDITOR"

        # Existing tokens pick up the new role
        created = client.post("/api/dashboards", json={"name": "Now allowed"}, headers=viewer_user["headers"])
        assert created.status_code == status.HTTP_201_CREATED

    def test_cannot_change_own_role(self, client, admin_user):
        response = client.patch(
            f"/api/auth/users/{admin_user['id']}/role",
            json={"role": "VIEWER"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_invalid_role(self, client, admin_user, viewer_user):
        response = client.patch(
            f"/api/auth/users/{viewer_user['id']}/role",
            json={"role": "SUPERUSER"},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_delete_user(self, client, admin_user, viewer_user, dashboard):
        client.post(
            f"/api/dashboards/{dashboard['id']}/access",
            json={"userId": viewer_user["id"]},
            headers=admin_user["headers"],
        )

        response = client.delete(f"/api/auth/users/{viewer_user['id']}", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_204_NO_CONTENT
        access = client.get(f"/api/dashboards/{dashboard['id']}/access", headers=admin_user["headers"]).json()
        assert access["accessList"] == []
        assert client.get("/api/auth/me", headers=viewer_user["headers"]).status_code == 401

    def test_delete_user_owning_resources(self, client, admin_user, editor_user):
        client.post("/api/dashboards", json={"name": "Owned"}, headers=editor_user["headers"])

        response = client.delete(f"/api/auth/users/{editor_user['id']}", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_409_CONFLICT


class TestRateLimitKeys:
    """Authenticated routes are limited per user, anonymous ones per IP."""

    @staticmethod
    def make_request():
        return Request({"type": "http", "method": "POST", "path": "/", "headers": [], "client": ("10.0.0.7", 5000)})

    def test_authenticated_request_keyed_by_user(self, db_session, admin_user):
        request = self.make_request()

        user = get_current_user(request, admin_user["token"], db_session)

        assert get_user_identifier(request) == f"user:{user.id}"

    def test_anonymous_request_keyed_by_ip(self):
        assert get_user_identifier(self.make_request()) == "10.0.0.7"
