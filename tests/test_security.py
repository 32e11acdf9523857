# File: tests/test_security.py

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from sparkle_api.core import security
from sparkle_api.core.config import settings
from sparkle_api.core.exceptions import AuthError

USER = SimpleNamespace(id="user-1", email="nova@sparkle.io", username="nova", role="CREATOR")


def expired_access_token():
    now = datetime.now(timezone.utc)
    payload = {
        "sub": USER.id,
        "email": USER.email,
        "username": USER.username,
        "role": USER.role,
        "sessionId": "s1",
        "iat": now - timedelta(hours=1),
        "exp": now - timedelta(seconds=10),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(payload, settings.jwt_access_secret, algorithm=security.ALGORITHM)


# ---------- PASSWORDS ----------

def test_hash_and_verify_password():
    hashed = security.hash_password("Sparkle#2024")
    assert hashed.startswith("$2b$04$")
    assert security.verify_password("Sparkle#2024", hashed)
    assert not security.verify_password("Sparkle#2025", hashed)


def test_hash_password_enforces_policy():
    with pytest.raises(AuthError) as exc:
        security.hash_password("alllowercase1!")
    assert exc.value.code == "INVALID_PASSWORD"
    assert exc.value.status_code == 400
    assert "uppercase" in exc.value.message


def test_verify_password_against_garbage_hash():
    assert security.verify_password("Sparkle#2024", "not-a-bcrypt-hash") is False


def test_only_first_72_bytes_count():
    base = "Aa1!" + "x" * 68
    hashed = security.hash_password(base + "tail-one")
    assert security.verify_password(base + "tail-two", hashed)


def test_generate_secure_password():
    password = security.generate_secure_password()
    assert len(password) == 16
    assert set(password) <= set(security.SECURE_PASSWORD_CHARSET)


def test_generate_random_string_is_hex():
    value = security.generate_random_string(16)
    assert len(value) == 32
    int(value, 16)


# ---------- TOKENS ----------

def test_generate_and_verify_tokens():
    pair = security.generate_tokens(USER, "session-1")
    assert pair.token_type == "Bearer"
    assert pair.expires_in == 15 * 60

    access = security.verify_access_token(pair.access_token)
    assert access.sub == "user-1"
    assert access.role == "CREATOR"
    assert access.session_id == "session-1"
    assert access.iss == settings.jwt_issuer

    refresh = security.verify_refresh_token(pair.refresh_token)
    assert refresh.sub == "user-1"
    assert refresh.session_id == "session-1"


def test_tokens_are_unique_per_issue():
    first = security.generate_tokens(USER, "session-1")
    second = security.generate_tokens(USER, "session-1")
    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token


def test_expired_access_token():
    with pytest.raises(AuthError) as exc:
        security.verify_access_token(expired_access_token())
    assert exc.value.code == "TOKEN_EXPIRED"


def test_access_and_refresh_secrets_are_not_interchangeable():
    pair = security.generate_tokens(USER, "session-1")
    with pytest.raises(AuthError) as exc:
        security.verify_access_token(pair.refresh_token)
    assert exc.value.code == "INVALID_TOKEN"
    with pytest.raises(AuthError) as exc:
        security.verify_refresh_token(pair.access_token)
    assert exc.value.code == "INVALID_REFRESH_TOKEN"


def test_wrong_audience_is_rejected():
    token = jwt.encode(
        {"sub": "x", "sessionId": "s", "iss": settings.jwt_issuer, "aud": "someone-else"},
        settings.jwt_refresh_secret,
        algorithm=security.ALGORITHM,
    )
    with pytest.raises(AuthError) as exc:
        security.verify_refresh_token(token)
    assert exc.value.code == "INVALID_REFRESH_TOKEN"


def test_revoked_token(fake_redis):
    pair = security.generate_tokens(USER, "session-1")
    security.revoke_token(pair.access_token)

    ttl = fake_redis.ttl(f"revoked:{pair.access_token}")
    assert 0 < ttl <= 15 * 60
    assert security.is_token_revoked(pair.access_token)

    # revocation is only checked when asked for
    security.verify_access_token(pair.access_token)
    with pytest.raises(AuthError) as exc:
        security.verify_access_token(pair.access_token, check_revoked=True)
    assert exc.value.code == "TOKEN_REVOKED"


def test_revoking_an_expired_token_is_a_noop(fake_redis):
    token = expired_access_token()
    security.revoke_token(token)
    assert not fake_redis.exists(f"revoked:{token}")


def test_session_check(fake_redis):
    pair = security.generate_tokens(USER, "session-1")
    with pytest.raises(AuthError) as exc:
        security.verify_access_token(pair.access_token, check_session=True)
    assert exc.value.code == "SESSION_NOT_FOUND"

    fake_redis.set("session:session-1", "{}")
    assert security.verify_access_token(pair.access_token, check_session=True).sub == "user-1"


def test_redis_checks_are_skipped_without_redis(no_redis):
    pair = security.generate_tokens(USER, "session-1")
    security.revoke_token(pair.access_token)
    payload = security.verify_access_token(pair.access_token, check_revoked=True, check_session=True)
    assert payload.session_id == "session-1"


# ---------- CSRF ----------

def test_csrf_token_round_trip():
    token = security.generate_csrf_token()
    security.store_csrf_token("session-1", token)

    assert security.verify_csrf_token("session-1", token)
    assert not security.verify_csrf_token("session-1", "nope")
    assert not security.verify_csrf_token("session-1", None)
    assert not security.verify_csrf_token("session-2", token)

    security.discard_csrf_token("session-1")
    assert not security.verify_csrf_token("session-1", token)


def test_csrf_without_redis_passes(no_redis):
    assert security.verify_csrf_token("session-1", None)


def test_csrf_rejects_non_ascii_token():
    security.store_csrf_token("session-1", security.generate_csrf_token())
    assert not security.verify_csrf_token("session-1", "\xe9t\xe9")
