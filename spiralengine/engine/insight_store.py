"""Saved insight reports, newest first, one capped Redis list per user."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import redis

from spiralengine.config.settings import INSIGHT_HISTORY_MAX, REDIS_URL

INSIGHTS_PREFIX = "user_insights:"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def save_insights(
    user_id: str,
    insight_type: str,
    data: dict[str, Any],
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> dict[str, Any]:
    r = r or _get_redis()
    now = now or datetime.now(timezone.utc)
    record = {
        "user_id": user_id,
        "insight_type": insight_type,
        "data": data,
        "created_at": now.isoformat(),
    }
    key = f"{INSIGHTS_PREFIX}{user_id}"
    r.lpush(key, json.dumps(record, default=str))
    r.ltrim(key, 0, INSIGHT_HISTORY_MAX - 1)
    return record


def get_user_insights(
    user_id: str,
    insight_type: str | None = None,
    limit: int = 10,
    r: redis.Redis | None = None,
) -> list[dict[str, Any]]:
    r = r or _get_redis()
    records = []
    for raw in r.lrange(f"{INSIGHTS_PREFIX}{user_id}", 0, -1):
        record = json.loads(raw)
        if insight_type and record["insight_type"] != insight_type:
            continue
        records.append(record)
        if len(records) >= limit:
            break
    return records
