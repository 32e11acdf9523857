# File: sparkle_api/core/redis.py

"""
Shared Redis client.

Redis is optional. When ``REDIS_URL`` is unset ``get_redis()`` returns
``None`` and every caller falls back to its no-Redis behaviour.
"""

from typing import Optional

import redis
from redis.backoff import ConstantBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from sparkle_api.core.config import settings
from sparkle_api.core.logging_config import get_logger

logger = get_logger(__name__)

_client: Optional[redis.Redis] = None
_configured = False


def create_redis_client(url: str, max_retries: int = 3, retry_delay_ms: int = 1000) -> redis.Redis:
    retry = Retry(ConstantBackoff(retry_delay_ms / 1000), max_retries)
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )


def get_redis() -> Optional[redis.Redis]:
    global _client, _configured
    if not _configured:
        config = settings.redis_config
        if config.url:
            _client = create_redis_client(config.url, config.max_retries, config.retry_delay_ms)
            logger.info("Redis client created for %s", config.url.split("@")[-1])
        else:
            logger.warning("REDIS_URL not set; sessions, revocation and rate limits are disabled")
        _configured = True
    return _client


def set_redis(client: Optional[redis.Redis]) -> None:
    """Install ``client`` as the shared Redis connection (``None`` disables Redis)."""
    global _client, _configured
    _client = client
    _configured = True


def close_redis() -> None:
    global _client, _configured
    if _client is not None:
        _client.close()
    _client = None
    _configured = False
