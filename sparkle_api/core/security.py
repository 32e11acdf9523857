# File: sparkle_api/core/security.py

"""
Security primitives for the Sparkle Universe API.

  - bcrypt hashing (policy in ``sparkle_api.core.validation``) and random passwords
  - HS256 access / refresh token pairs (PyJWT), verification and revocation
  - CSRF tokens bound to a session

Redis-backed checks (revocation, session existence, CSRF) are skipped when
Redis is not configured.
"""

import hmac
import secrets
import string
from datetime import datetime, timezone
from typing import Optional

import bcrypt
import jwt

from sparkle_api.core.config import settings
from sparkle_api.core.exceptions import AuthError
from sparkle_api.core.logging_config import get_logger
from sparkle_api.core.redis import get_redis
from sparkle_api.core.validation import validate_password
from sparkle_api.schemas.auth import RefreshPayload, TokenPair, TokenPayload

logger = get_logger(__name__)

ALGORITHM = "HS256"

SECURE_PASSWORD_LENGTH = 16
SECURE_PASSWORD_CHARSET = string.ascii_letters + string.digits + "!@#$%^&*()"

# bcrypt only looks at the first 72 bytes of a secret.
_BCRYPT_MAX_BYTES = 72


# ---------- PASSWORDS ----------

def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    try:
        validate_password(password)
    except ValueError as exc:
        raise AuthError(str(exc), "INVALID_PASSWORD", 400) from exc

    salt = bcrypt.gensalt(rounds=settings.bcrypt_salt_rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed_password.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


def generate_secure_password() -> str:
    return "".join(secrets.choice(SECURE_PASSWORD_CHARSET) for _ in range(SECURE_PASSWORD_LENGTH))


def generate_random_string(length: int = 32) -> str:
    """``length`` random bytes, hex encoded (so ``2 * length`` characters)."""
    return secrets.token_hex(length)


# ---------- TOKENS ----------

def generate_tokens(user, session_id: str) -> TokenPair:
    """
    Issue an access / refresh token pair for ``user`` bound to ``session_id``.

    ``user`` only needs ``id``, ``email``, ``username`` and ``role`` attributes.
    """
    jwt_config = settings.auth_config.jwt
    now = datetime.now(timezone.utc)

    access_payload = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "role": user.role,
        "sessionId": session_id,
        "iat": now,
        "jti": secrets.token_hex(8),
        "exp": now + jwt_config.access_expiry,
        "iss": jwt_config.issuer,
        "aud": jwt_config.audience,
    }
    refresh_payload = {
        "sub": str(user.id),
        "sessionId": session_id,
        "iat": now,
        "jti": secrets.token_hex(8),
        "exp": now + jwt_config.refresh_expiry,
        "iss": jwt_config.issuer,
        "aud": jwt_config.audience,
    }

    return TokenPair(
        access_token=jwt.encode(access_payload, jwt_config.access_secret, algorithm=ALGORITHM),
        refresh_token=jwt.encode(refresh_payload, jwt_config.refresh_secret, algorithm=ALGORITHM),
        expires_in=int(jwt_config.access_expiry.total_seconds()),
    )


def _decode(token: str, secret: str) -> dict:
    jwt_config = settings.auth_config.jwt
    return jwt.decode(
        token,
        secret,
        algorithms=[ALGORITHM],
        issuer=jwt_config.issuer,
        audience=jwt_config.audience,
    )


def is_token_revoked(token: str) -> bool:
    redis = get_redis()
    if redis is None:
        return False
    return bool(redis.exists(f"revoked:{token}"))


def verify_access_token(
    token: str,
    *,
    check_revoked: bool = False,
    check_session: bool = False,
) -> TokenPayload:
    try:
        payload = TokenPayload.model_validate(_decode(token, settings.jwt_access_secret))
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token has expired", "TOKEN_EXPIRED", 401) from exc
    except (jwt.InvalidTokenError, ValueError) as exc:
        raise AuthError("Invalid token", "INVALID_TOKEN", 401) from exc

    redis = get_redis()
    if check_revoked and redis is not None and redis.exists(f"revoked:{token}"):
        raise AuthError("Token has been revoked", "TOKEN_REVOKED", 401)
    if check_session and redis is not None and not redis.exists(f"session:{payload.session_id}"):
        raise AuthError("Session not found", "SESSION_NOT_FOUND", 401)

    return payload


def verify_refresh_token(token: str, *, check_revoked: bool = False) -> RefreshPayload:
    try:
        payload = RefreshPayload.model_validate(_decode(token, settings.jwt_refresh_secret))
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Refresh token has expired", "REFRESH_TOKEN_EXPIRED", 401) from exc
    except (jwt.InvalidTokenError, ValueError) as exc:
        raise AuthError("Invalid refresh token", "INVALID_REFRESH_TOKEN", 401) from exc

    if check_revoked and is_token_revoked(token):
        raise AuthError("Token has been revoked", "TOKEN_REVOKED", 401)

    return payload


def revoke_token(token: str) -> None:
    """Blacklist ``token`` until it would have expired anyway."""
    redis = get_redis()
    if redis is None:
        logger.warning("Redis not configured, cannot revoke token")
        return

    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return
    exp = claims.get("exp")
    if not exp:
        return

    ttl = int(exp - datetime.now(timezone.utc).timestamp())
    if ttl > 0:
        redis.setex(f"revoked:{token}", ttl, "1")


# ---------- CSRF ----------

def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def store_csrf_token(session_id: str, token: str) -> None:
    redis = get_redis()
    if redis is not None:
        redis.setex(f"csrf:{session_id}", settings.session_timeout_seconds, token)


def discard_csrf_token(session_id: str) -> None:
    redis = get_redis()
    if redis is not None:
        redis.delete(f"csrf:{session_id}")


def verify_csrf_token(session_id: str, token: Optional[str]) -> bool:
    redis = get_redis()
    if redis is None:
        # nothing to compare against
        return True
    stored = redis.get(f"csrf:{session_id}")
    if stored is None or token is None:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), token.encode("utf-8"))
