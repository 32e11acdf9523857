# File: tests/conftest.py

import os

# Must be set before sparkle_api is imported: settings are read at import time.
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret-0123456789abcdef0123"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-0123456789abcdef012"
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef012"
os.environ["BCRYPT_SALT_ROUNDS"] = "4"
os.environ["LOG_FORMAT"] = "pretty"
os.environ.pop("REDIS_URL", None)
os.environ.pop("MAINTENANCE_MODE", None)

import fakeredis
import pytest
from fastapi.testclient import TestClient

from sparkle_api.core.redis import set_redis
from sparkle_api.db.init_db import init_db
from sparkle_api.db.session import SessionLocal
from sparkle_api.db.utils import clean_database
from sparkle_api.main import app

PASSWORD = "Sparkle#2024"


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    init_db()
    yield


@pytest.fixture(autouse=True)
def fake_redis():
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    set_redis(client)
    yield client
    set_redis(None)


@pytest.fixture
def no_redis():
    set_redis(None)
    yield


@pytest.fixture(autouse=True)
def clean_db():
    yield
    clean_database()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def register(client):
    """POST /auth/register and return the response."""

    def _register(email="stardust@sparkle.io", username="stardust", password=PASSWORD, headers=None):
        return client.post(
            "/api/v1/auth/register",
            json={"email": email, "username": username, "password": password},
            headers=headers,
        )

    return _register


@pytest.fixture
def registered(register):
    resp = register()
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def auth_headers():
    def _headers(result: dict) -> dict:
        return {
            "Authorization": f"Bearer {result['tokens']['access_token']}",
            "X-CSRF-Token": result["csrf_token"],
        }

    return _headers
