# File: tests/test_api.py

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

import sparkle_api.main as main_module
from sparkle_api.core.config import Features, Settings
from sparkle_api.db import utils
from sparkle_api.models.post import STATUS_PUBLISHED, Post
from sparkle_api.models.user import User


@pytest.fixture
def published(db):
    author = User(email="nova@sparkle.io", username="nova", hashed_password="x")
    db.add(author)
    db.commit()

    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    db.add_all(
        Post(
            title=f"Constellation notes {i}",
            slug=f"constellation-{i}",
            content_text="Stars and sparkles",
            author_id=author.id,
            status=STATUS_PUBLISHED,
            created_at=base + timedelta(hours=i),
        )
        for i in range(3)
    )
    db.commit()
    return author


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_database_health(client):
    resp = client.get("/api/v1/health/db")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["details"]["connected"] is True


def test_database_health_unavailable(client, monkeypatch, tmp_path):
    monkeypatch.setattr(utils, "engine", create_engine(f"sqlite:///{tmp_path}/nope/db.sqlite"))
    resp = client.get("/api/v1/health/db")
    assert resp.status_code == 503
    assert resp.json()["status"] == "unhealthy"


def test_list_posts(client, published):
    resp = client.get("/api/v1/posts", params={"limit": 2})
    assert resp.status_code == 200
    body = resp.json()
    assert [p["slug"] for p in body["data"]] == ["constellation-2", "constellation-1"]
    assert body["meta"]["total"] == 3
    assert body["meta"]["has_next_page"] is True


def test_list_posts_by_author(client, published):
    resp = client.get("/api/v1/posts", params={"author_id": "someone-else"})
    assert resp.json()["data"] == []


def test_search_posts(client, published):
    resp = client.get("/api/v1/posts/search", params={"q": "sparkles", "limit": 10})
    assert resp.status_code == 200
    assert len(resp.json()) == 3
    assert resp.json()[0]["rank"] == 0.0


def test_search_requires_query(client):
    assert client.get("/api/v1/posts/search").status_code == 422


def test_api_rate_limit(client, fake_redis):
    fake_redis.set("ratelimit:api:testclient", 100)
    resp = client.get("/api/v1/posts")
    assert resp.status_code == 429
    assert resp.json()["code"] == "RATE_LIMITED"


def test_maintenance_mode(client, monkeypatch):
    monkeypatch.setattr(main_module, "features", Features(Settings(_env_file=None, MAINTENANCE_MODE=True)))

    resp = client.get("/api/v1/posts")
    assert resp.status_code == 503
    assert resp.json()["code"] == "MAINTENANCE"

    assert client.get("/healthz").status_code == 200
    assert client.get("/api/v1/health/db").status_code == 200


def test_maintenance_response_carries_cors_headers(client, monkeypatch):
    monkeypatch.setattr(main_module, "features", Features(Settings(_env_file=None, MAINTENANCE_MODE=True)))
    origin = main_module.settings.cors_origins[0]

    resp = client.get("/api/v1/posts", headers={"Origin": origin})
    assert resp.status_code == 503
    assert resp.headers["access-control-allow-origin"] == origin


def test_unhandled_errors_are_500(monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr("sparkle_api.api.v1.routes_posts.paginate", explode)
    resp = TestClient(main_module.app, raise_server_exceptions=False).get("/api/v1/posts")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error_type"] == "RuntimeError"
    assert "error_id" in body


def test_search_percent_is_not_a_wildcard(client, published):
    resp = client.get("/api/v1/posts/search", params={"q": "%"})
    assert resp.status_code == 200
    assert resp.json() == []


def test_list_posts_without_trailing_slash_does_not_redirect(client, published):
    resp = client.get("/api/v1/posts", follow_redirects=False)
    assert resp.status_code == 200
    assert resp.json()["meta"]["total"] == 3
