# File: sparkle_api/services/token_store.py

"""
Single-use tokens kept in Redis: OAuth state, password reset, email
verification. Every ``verify_*`` call consumes the token it accepts and
returns None when Redis is not configured.
"""

import hashlib
import json
import secrets
from typing import Any, Optional

from sparkle_api.core.redis import get_redis

OAUTH_STATE_TTL = 10 * 60
RESET_TOKEN_TTL = 60 * 60
VERIFICATION_TOKEN_TTL = 24 * 60 * 60


def _pop(key: str) -> Optional[str]:
    redis = get_redis()
    if redis is None:
        return None
    pipe = redis.pipeline()
    pipe.get(key)
    pipe.delete(key)
    value, _ = pipe.execute()
    return value


# ---------- OAUTH STATE ----------

def generate_oauth_state() -> str:
    return secrets.token_hex(32)


def store_oauth_state(state: str, data: Any, ttl: int = OAUTH_STATE_TTL) -> None:
    redis = get_redis()
    if redis is not None:
        redis.setex(f"oauth_state:{state}", ttl, json.dumps(data))


def verify_oauth_state(state: str) -> Optional[Any]:
    raw = _pop(f"oauth_state:{state}")
    return json.loads(raw) if raw is not None else None


# ---------- PASSWORD RESET ----------

def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def store_reset_token(user_id: str, token: str, ttl: int = RESET_TOKEN_TTL) -> None:
    # keyed by digest; the raw token never reaches Redis
    redis = get_redis()
    if redis is not None:
        redis.setex(f"reset_token:{hash_reset_token(token)}", ttl, user_id)


def verify_reset_token(token: str) -> Optional[str]:
    return _pop(f"reset_token:{hash_reset_token(token)}")


# ---------- EMAIL VERIFICATION ----------

def generate_verification_token() -> str:
    return secrets.token_hex(32)


def store_verification_token(user_id: str, token: str, ttl: int = VERIFICATION_TOKEN_TTL) -> None:
    redis = get_redis()
    if redis is not None:
        redis.setex(f"verify_email:{token}", ttl, user_id)


def verify_email_token(token: str) -> Optional[str]:
    return _pop(f"verify_email:{token}")
