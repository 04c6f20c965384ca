"""Pytest configuration and fixtures."""

import base64
import os

# Set test environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-32chars")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("SHARE_LINK_SECRET", "test-share-link-secret")
os.environ.setdefault(
    "ENCRYPTION_KEY", base64.urlsafe_b64encode(b"checkin-test-encryption-key-32b!").decode()
)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.api.deps import get_db
from main import app

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "Password123"


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database override."""
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register_user(client, email: str, name: str | None = None) -> dict:
    """Register through the API and return the user's id and auth headers."""
    response = client.post(
        "/api/auth/register",
        json={"email": email, "password": TEST_PASSWORD, "name": name},
    )
    assert response.status_code == 201, response.text
    # Requests authenticate with explicit headers only
    client.cookies.clear()
    data = response.json()
    return {
        "id": data["user"]["id"],
        "email": email,
        "role": data["user"]["role"],
        "token": data["token"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


@pytest.fixture
def admin_user(client):
    """The first registered account, which is always ADMIN."""
    return register_user(client, "admin@test.com", "Test Admin")


@pytest.fixture
def make_user(client, admin_user):
    """Factory registering a user and promoting them to ``role``."""

    def factory(email: str, role: str = "VIEWER", name: str | None = None) -> dict:
        user = register_user(client, email, name)
        if role != "VIEWER":
            response = client.patch(
                f"/api/auth/users/{user['id']}/role",
                json={"role": role},
                headers=admin_user["headers"],
            )
            assert response.status_code == 200, response.text
            user["role"] = role
        return user

    return factory


@pytest.fixture
def editor_user(make_user):
    return make_user("editor@test.com", "EDITOR", "Test Editor")


@pytest.fixture
def viewer_user(make_user):
    return make_user("viewer@test.com", name="Test Viewer")


@pytest.fixture
def manual_integration(client, admin_user):
    """MANUAL integration with Revenue and Employees fields, keyed by variable name."""
    response = client.post(
        "/api/integrations",
        json={
            "name": "Finance",
            "type": "MANUAL",
            "fields": [{"name": "Revenue"}, {"name": "Employees"}],
        },
        headers=admin_user["headers"],
    )
    assert response.status_code == 201, response.text
    integration = response.json()

    fields = client.get(
        "/api/data-fields",
        params={"integrationId": integration["id"]},
        headers=admin_user["headers"],
    ).json()["dataFields"]
    integration["fields"] = {f["variableName"]: f for f in fields}
    return integration


@pytest.fixture
def submit_values(client, admin_user):
    """Enter values into a manual integration: submit(integration, timestamp=None, revenue=1, ...)."""

    def submit(integration: dict, timestamp: str | None = None, **values) -> dict:
        payload = {
            "values": [
                {
                    "dataFieldId": integration["fields"][name]["id"],
                    "value": value,
                    "timestamp": timestamp,
                }
                for name, value in values.items()
            ]
        }
        response = client.post(
            f"/api/integrations/{integration['id']}/data",
            json=payload,
            headers=admin_user["headers"],
        )
        assert response.status_code == 200, response.text
        return response.json()

    return submit


@pytest.fixture
def revenue_kpi(client, admin_user, manual_integration, submit_values):
    """Revenue per employee with a target of 10,000 and 110,000 / 10 entered."""
    submit_values(manual_integration, revenue=110000, employees=10)
    response = client.post(
        "/api/kpis",
        json={
            "name": "Revenue per Employee",
            "formula": "revenue / employees",
            "sources": [
                {"dataFieldId": manual_integration["fields"]["revenue"]["id"]},
                {"dataFieldId": manual_integration["fields"]["employees"]["id"]},
            ],
            "targetValue": 10000,
            "targetDirection": "increase",
        },
        headers=admin_user["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def dashboard(client, admin_user):
    response = client.post(
        "/api/dashboards",
        json={"name": "Company Overview"},
        headers=admin_user["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()
