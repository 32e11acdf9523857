# File: sparkle_api/services/session_service.py

"""
Session store.

Sessions live in Redis as ``session:{id}`` JSON blobs that expire after
SESSION_TIMEOUT of inactivity. Each user's session ids are also indexed in
the sorted set ``user_sessions:{user_id}`` (scored by creation time) so the
device cap and "log out everywhere" never need a keyspace scan.
"""

import json
import secrets
import time
from typing import Any, Optional

from sparkle_api.core.config import settings
from sparkle_api.core.logging_config import get_logger
from sparkle_api.core.redis import get_redis

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _session_key(session_id: str) -> str:
    return f"session:{session_id}"


def _index_key(user_id: str) -> str:
    return f"user_sessions:{user_id}"


def generate_session_id() -> str:
    return secrets.token_hex(32)


def create_session(
    user_id: str,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    location: Optional[str] = None,
    device_info: Optional[dict[str, Any]] = None,
) -> str:
    """
    Start a session for ``user_id`` and return its id.

    Without Redis the id is still returned but nothing is stored.
    """
    session_id = generate_session_id()
    redis = get_redis()
    if redis is None:
        return session_id

    now = _now_ms()
    data: dict[str, Any] = {"userId": user_id, "createdAt": now, "lastActivity": now}
    for key, value in (
        ("ipAddress", ip_address),
        ("userAgent", user_agent),
        ("location", location),
        ("deviceInfo", device_info),
    ):
        if value is not None:
            data[key] = value

    ttl = settings.session_timeout_seconds
    pipe = redis.pipeline()
    pipe.setex(_session_key(session_id), ttl, json.dumps(data))
    pipe.zadd(_index_key(user_id), {session_id: time.time()})
    pipe.expire(_index_key(user_id), ttl)
    pipe.execute()

    _enforce_device_limit(user_id)
    return session_id


def _enforce_device_limit(user_id: str) -> None:
    redis = get_redis()
    limit = settings.max_devices_per_user
    index = _index_key(user_id)

    excess = redis.zcard(index) - limit
    if excess <= 0:
        return
    oldest = redis.zrange(index, 0, excess - 1)
    for session_id in oldest:
        redis.delete(_session_key(session_id))
    redis.zrem(index, *oldest)
    logger.info("Evicted %d session(s) for user %s over the %d device limit", len(oldest), user_id, limit)


def get_session(session_id: str) -> Optional[dict[str, Any]]:
    redis = get_redis()
    if redis is None:
        return None
    raw = redis.get(_session_key(session_id))
    return json.loads(raw) if raw else None


def update_session_activity(session_id: str) -> None:
    redis = get_redis()
    if redis is None:
        return

    session = get_session(session_id)
    if session is None:
        return
    session["lastActivity"] = _now_ms()
    ttl = settings.session_timeout_seconds
    redis.setex(_session_key(session_id), ttl, json.dumps(session))
    redis.expire(_index_key(session["userId"]), ttl)


def destroy_session(session_id: str) -> None:
    redis = get_redis()
    if redis is None:
        return

    session = get_session(session_id)
    redis.delete(_session_key(session_id))
    if session is not None:
        redis.zrem(_index_key(session["userId"]), session_id)


def list_user_sessions(user_id: str) -> list[dict[str, Any]]:
    """Live sessions for ``user_id``, oldest first, each with its ``id``."""
    redis = get_redis()
    if redis is None:
        return []

    sessions = []
    stale = []
    for session_id in redis.zrange(_index_key(user_id), 0, -1):
        session = get_session(session_id)
        if session is None:
            stale.append(session_id)
            continue
        sessions.append({"id": session_id, **session})
    if stale:
        redis.zrem(_index_key(user_id), *stale)
    return sessions


def destroy_all_user_sessions(user_id: str) -> int:
    """Delete every session of ``user_id``; returns how many were still live."""
    redis = get_redis()
    if redis is None:
        return 0

    index = _index_key(user_id)
    session_ids = redis.zrange(index, 0, -1)
    removed = 0
    if session_ids:
        removed = redis.delete(*(_session_key(s) for s in session_ids))
    redis.delete(index)
    logger.info("Destroyed %d session(s) for user %s", removed, user_id)
    return removed
