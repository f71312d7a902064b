"""JSON result cache in Redis with per-entry TTL."""

from __future__ import annotations

import json
import logging
from typing import Any

import redis

from spiralengine.config.settings import REDIS_URL

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def cache_get(key: str, r: redis.Redis | None = None) -> Any | None:
    r = r or _get_redis()
    raw = r.get(f"{CACHE_PREFIX}{key}")
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding unreadable cache entry %s", key)
        r.delete(f"{CACHE_PREFIX}{key}")
        return None


def cache_set(key: str, value: Any, ttl: int, r: redis.Redis | None = None) -> None:
    r = r or _get_redis()
    r.setex(f"{CACHE_PREFIX}{key}", ttl, json.dumps(value, default=str))
    logger.debug("Cached %s for %ds", key, ttl)


def cache_delete(key: str, r: redis.Redis | None = None) -> None:
    r = r or _get_redis()
    r.delete(f"{CACHE_PREFIX}{key}")
