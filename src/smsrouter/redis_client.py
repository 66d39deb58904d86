"""Redis client factory.

Returns None when Redis is disabled or unreachable so callers can fall back
to in-memory state.
"""

import logging
import os

import redis

logger = logging.getLogger(__name__)


def get_redis_client(
    host: str | None = None,
    port: int | None = None,
    db: int = 0,
) -> redis.Redis | None:
    """Get a Redis client or None if Redis is disabled or unreachable.

    Args:
        host: Redis host (default: from REDIS_HOST env or "localhost")
        port: Redis port (default: from REDIS_PORT env or 6379)
        db: Redis database number (default: 0)
    """
    if os.environ.get("REDIS_ENABLED", "true").lower() == "false":
        logger.info("Redis is disabled via REDIS_ENABLED environment variable")
        return None

    host = host or os.environ.get("REDIS_HOST", "localhost")
    port = port or int(os.environ.get("REDIS_PORT", "6379"))

    try:
        client = redis.Redis(
            host=host,
            port=port,
            db=db,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        logger.info("Connected to Redis at %s:%s (db=%s)", host, port, db)
        return client
    except redis.RedisError as e:
        logger.warning("Could not connect to Redis at %s:%s: %s", host, port, e)
        return None
