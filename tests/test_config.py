# File: tests/test_config.py

from datetime import timedelta

import pytest
from pydantic import ValidationError

from sparkle_api.core import config as config_module
from sparkle_api.core.config import (
    Features,
    Settings,
    get_api_url,
    get_public_url,
    get_websocket_url,
    is_production,
    is_test,
    parse_duration,
)
from sparkle_api.core.exceptions import ConfigurationError


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_settings_come_from_environment():
    s = make_settings()
    assert s.environment == "test"
    assert s.bcrypt_salt_rounds == 4
    assert s.redis_url is None
    assert is_test(s)
    assert not is_production(s)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgres://u:p@db:5432/sparkle", "postgresql+psycopg://u:p@db:5432/sparkle"),
        ("postgresql://u:p@db/sparkle", "postgresql+psycopg://u:p@db/sparkle"),
        ("postgresql+asyncpg://u:p@db/sparkle", "postgresql+asyncpg://u:p@db/sparkle"),
        ("sqlite:///./dev.db", "sqlite:///./dev.db"),
    ],
)
def test_database_url_is_normalised(url, expected):
    assert make_settings(DATABASE_URL=url).database_url == expected


def test_database_url_must_be_postgres():
    with pytest.raises(ValidationError) as exc:
        make_settings(DATABASE_URL="mysql://u:p@db/sparkle")
    assert "PostgreSQL" in str(exc.value)


def test_redis_url_scheme_is_checked():
    assert make_settings(REDIS_URL="rediss://cache:6380/0").redis_url == "rediss://cache:6380/0"
    assert make_settings(REDIS_URL="").redis_url is None
    with pytest.raises(ValidationError):
        make_settings(REDIS_URL="http://cache:6379")


def test_secrets_must_be_long_enough():
    with pytest.raises(ValidationError):
        make_settings(JWT_ACCESS_SECRET="too-short")
    with pytest.raises(ValidationError):
        make_settings(ENCRYPTION_KEY="also-too-short")


def test_bcrypt_rounds_bounds():
    with pytest.raises(ValidationError):
        make_settings(BCRYPT_SALT_ROUNDS=3)
    with pytest.raises(ValidationError):
        make_settings(BCRYPT_SALT_ROUNDS=32)


def test_invalid_jwt_expiry():
    with pytest.raises(ValidationError):
        make_settings(JWT_ACCESS_EXPIRY="fortnight")


@pytest.mark.parametrize(
    "value, expected",
    [
        ("15m", timedelta(minutes=15)),
        ("7d", timedelta(days=7)),
        ("2w", timedelta(weeks=2)),
        ("12h", timedelta(hours=12)),
        ("3600", timedelta(hours=1)),
        ("500ms", timedelta(milliseconds=500)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("-5m")


def test_millisecond_fields_have_second_views():
    s = make_settings(SESSION_TIMEOUT=3_600_000, LOCKOUT_DURATION=60_000, RATE_LIMIT_WINDOW=30_000)
    assert s.session_timeout_seconds == 3600
    assert s.lockout_duration_seconds == 60
    assert s.rate_limit_window_seconds == 30
    assert s.auth_config.session_timeout == timedelta(hours=1)
    assert s.auth_config.lockout_duration == timedelta(minutes=1)


def test_auth_config_view():
    jwt_config = make_settings().auth_config.jwt
    assert jwt_config.access_expiry == timedelta(minutes=15)
    assert jwt_config.refresh_expiry == timedelta(days=7)
    assert jwt_config.issuer == "sparkle-universe"
    assert jwt_config.audience == "sparkle-universe-app"


def test_oauth_clients_enabled_only_with_both_credentials():
    oauth = make_settings(GOOGLE_CLIENT_ID="id", GOOGLE_CLIENT_SECRET="secret", GITHUB_CLIENT_ID="id").auth_config.oauth
    assert oauth["google"].enabled
    assert not oauth["github"].enabled


def test_database_config_splits_replicas():
    db = make_settings(READ_REPLICA_URLS="postgresql://r1/db, postgresql://r2/db,").database_config
    assert db.read_replica_urls == ["postgresql://r1/db", "postgresql://r2/db"]
    assert db.pool_size == 10


def test_email_config_auth_requires_user_and_password():
    assert make_settings(SMTP_USER="mailer").email_config.smtp.auth is None

    email = make_settings(
        SMTP_HOST="smtp.sparkle.io",
        SMTP_USER="mailer",
        SMTP_PASS="hunter2",
        EMAIL_FROM="hello@sparkle.io",
    ).email_config
    assert email.smtp.auth.user == "mailer"
    assert email.sender == "hello@sparkle.io"


def test_cors_origins_default_to_app_url():
    assert make_settings(APP_URL="https://sparkle.io/").cors_origins == ["https://sparkle.io"]
    assert make_settings(BACKEND_CORS_ORIGINS="https://a.io, https://b.io").cors_origins == [
        "https://a.io",
        "https://b.io",
    ]


def test_public_and_websocket_urls():
    local = make_settings(APP_URL="http://localhost:3000")
    assert get_public_url(local) == "http://localhost:3000"
    assert get_api_url(local) == "http://localhost:3000/api"
    assert get_websocket_url(local) == "ws://localhost:3000"

    deployed = make_settings(VERCEL_URL="sparkle-git-main.vercel.app")
    assert get_public_url(deployed) == "https://sparkle-git-main.vercel.app"
    assert get_websocket_url(deployed) == "wss://sparkle-git-main.vercel.app"

    explicit = make_settings(PUBLIC_API_URL="https://api.sparkle.io/", PUBLIC_WS_URL="wss://ws.sparkle.io")
    assert get_api_url(explicit) == "https://api.sparkle.io"
    assert get_websocket_url(explicit) == "wss://ws.sparkle.io"


def test_features():
    flags = Features(make_settings(ENABLE_BLOCKCHAIN=True, MAINTENANCE_MODE=True))
    assert flags.blockchain()
    assert flags.maintenance()
    assert flags.ai()
    assert not flags.premium()


def test_get_settings_raises_configuration_error(monkeypatch):
    monkeypatch.delenv("JWT_REFRESH_SECRET")
    config_module.get_settings.cache_clear()
    try:
        with pytest.raises(ConfigurationError) as exc:
            config_module.get_settings()
        assert "JWT_REFRESH_SECRET" in str(exc.value)
    finally:
        config_module.get_settings.cache_clear()
