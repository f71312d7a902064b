"""Shared test fixtures for the spiralengine test suite."""

import pytest
import fakeredis
from datetime import datetime, timedelta, timezone

from spiralengine.models.episode import Episode, Widget


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


# ── Time ────────────────────────────────────────────────────────────────

@pytest.fixture
def frozen_now():
    """Return a fixed 'now' datetime for deterministic tests.

    Default: 2026-02-15T12:00:00Z (noon UTC on a Sunday).
    """
    return datetime(2026, 2, 15, 12, 0, 0, tzinfo=timezone.utc)


# ── Episode Factories ───────────────────────────────────────────────────

@pytest.fixture
def make_episode(frozen_now):
    """Factory fixture that creates Episode instances with sensible defaults.

    `hours_ago` / `days_ago` place the episode relative to frozen_now.

    Usage:
        ep = make_episode(widget_id=Widget.COPING_LOGGER, severity=3, days_ago=2)
    """
    _counter = 0

    def _factory(days_ago=0, hours_ago=0, at=None, **overrides):
        nonlocal _counter
        _counter += 1
        when = at or frozen_now - timedelta(days=days_ago, hours=hours_ago)
        defaults = {
            "episode_id": f"ep-{_counter:04d}",
            "user_id": "user-1",
            "widget_id": Widget.MOOD_TRACKER,
            "severity": 5,
            "created_at": when.isoformat(),
            "data": {},
        }
        defaults.update(overrides)
        return Episode(**defaults)

    return _factory


@pytest.fixture
def month_history(make_episode):
    """Thirty days of mixed episodes for user-1, oldest first.

    One mood check-in per day at 09:00 (severity 4..6), a trigger every third
    day at 18:00 (severity 7), a coping skill every other day at 20:00
    (severity 3) and a sleep entry every day at 07:00. Nothing is logged after
    noon on the last day, so the history ends before frozen_now. 83 episodes.
    """
    episodes = []
    for days_ago in range(29, -1, -1):
        day = datetime(2026, 2, 15, tzinfo=timezone.utc) - timedelta(days=days_ago)
        episodes.append(make_episode(
            at=day.replace(hour=7),
            widget_id=Widget.SLEEP_TRACKER,
            severity=4,
            data={"quality": 6, "duration": 7, "bedtime": "23:00"},
        ))
        episodes.append(make_episode(
            at=day.replace(hour=9),
            widget_id=Widget.MOOD_TRACKER,
            severity=4 + days_ago % 3,
            data={"mood": ["calm", "anxious", "sad"][days_ago % 3]},
        ))
        if days_ago % 3 == 0 and days_ago > 0:
            episodes.append(make_episode(
                at=day.replace(hour=18),
                widget_id=Widget.TRIGGER_TRACKER,
                severity=7,
                data={"trigger_category": "work" if days_ago % 2 else "social"},
            ))
        if days_ago % 2 == 0 and days_ago > 0:
            episodes.append(make_episode(
                at=day.replace(hour=20),
                widget_id=Widget.COPING_LOGGER,
                severity=3,
                data={"skill_category": "breathing", "effectiveness": 7},
            ))
    return episodes


@pytest.fixture
def stored_history(month_history, r):
    """Seed Redis with month_history and return it."""
    for ep in month_history:
        ep.to_redis(r)
    return month_history
