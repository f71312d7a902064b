"""Redis persistence for episodes.

Episodes are hashes under ``episode:{id}``; each user has a sorted set of
episode ids scored by epoch seconds, so every range query is a ZRANGEBYSCORE.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

import redis

from spiralengine.config.settings import REDIS_URL
from spiralengine.models.episode import USER_EPISODES_PREFIX, USERS_KEY, Episode

logger = logging.getLogger(__name__)


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def store_episode(episode: Episode, r: redis.Redis | None = None) -> Episode:
    r = r or _get_redis()
    episode.to_redis(r)
    logger.debug("Stored episode %s for user %s (%s)", episode.episode_id, episode.user_id, episode.widget_id)
    return episode


def store_episodes(episodes: Iterable[Episode], r: redis.Redis | None = None) -> int:
    r = r or _get_redis()
    count = 0
    for episode in episodes:
        episode.to_redis(r)
        count += 1
    logger.info("Stored %d episodes", count)
    return count


def get_episode(episode_id: str, r: redis.Redis | None = None) -> Episode | None:
    r = r or _get_redis()
    return Episode.from_redis(r, episode_id)


def delete_episode(episode_id: str, r: redis.Redis | None = None) -> bool:
    r = r or _get_redis()
    episode = Episode.from_redis(r, episode_id)
    if episode is None:
        return False
    episode.delete_from_redis(r)
    return True


def get_user_episodes(
    user_id: str,
    since: datetime | None = None,
    until: datetime | None = None,
    widgets: Iterable[str] | None = None,
    r: redis.Redis | None = None,
) -> list[Episode]:
    """Episodes of a user in [since, until], oldest first, optionally filtered by widget."""
    r = r or _get_redis()
    low = since.timestamp() if since else "-inf"
    high = until.timestamp() if until else "+inf"
    ids = r.zrangebyscore(f"{USER_EPISODES_PREFIX}{user_id}", low, high)

    wanted = set(widgets) if widgets else None
    episodes = []
    for episode_id in ids:
        episode = Episode.from_redis(r, episode_id)
        if episode is None:
            continue
        if wanted and episode.widget_id not in wanted:
            continue
        episodes.append(episode)
    episodes.sort(key=lambda ep: ep.epoch)
    return episodes


def get_recent_episodes(
    user_id: str,
    days: int,
    now: datetime | None = None,
    limit: int | None = None,
    r: redis.Redis | None = None,
) -> list[Episode]:
    """Episodes from the last `days` days, oldest first. `limit` keeps the newest."""
    now = now or datetime.now(timezone.utc)
    episodes = get_user_episodes(user_id, since=now - timedelta(days=days), until=now, r=r)
    if limit is not None and len(episodes) > limit:
        episodes = episodes[-limit:]
    return episodes


def count_user_episodes(user_id: str, r: redis.Redis | None = None) -> int:
    r = r or _get_redis()
    return r.zcard(f"{USER_EPISODES_PREFIX}{user_id}")


def count_widget_episodes(user_id: str, widget_id: str, r: redis.Redis | None = None) -> int:
    return len(get_user_episodes(user_id, widgets=[widget_id], r=r))


def first_episode(user_id: str, r: redis.Redis | None = None) -> Episode | None:
    r = r or _get_redis()
    ids = r.zrange(f"{USER_EPISODES_PREFIX}{user_id}", 0, 0)
    return Episode.from_redis(r, ids[0]) if ids else None


def list_users(r: redis.Redis | None = None) -> list[str]:
    r = r or _get_redis()
    return sorted(r.smembers(USERS_KEY))


def has_recent_activity(
    user_id: str,
    days: int,
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> bool:
    r = r or _get_redis()
    now = now or datetime.now(timezone.utc)
    since = (now - timedelta(days=days)).timestamp()
    return r.zcount(f"{USER_EPISODES_PREFIX}{user_id}", since, "+inf") > 0
