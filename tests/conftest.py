import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import JsonStore
from main import create_app

ADMIN_PASSWORD = "correct horse"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        SESSION_SECRET="test-session-secret",
        DATA_DIR=str(tmp_path / "data"),
        UPLOADS_DIR=str(tmp_path / "uploads"),
        LOGIN_FAILURE_DELAY=0,
        ENVIRONMENT="development",
    )


@pytest.fixture
def store(tmp_path):
    store = JsonStore(tmp_path / "data")
    store.ensure_document()
    return store


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin(client):
    response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def western_star():
    return {
        "year": 2025,
        "make": "WESTERN STAR",
        "model": "49X",
        "stockNumber": "WC2899",
        "condition": "New",
        "price": "$189,500",
        "specifications": {"engine": {"make": "Detroit", "horsepower": "505"}},
    }
