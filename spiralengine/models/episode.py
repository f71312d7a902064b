"""Episode model for the pattern engine.

An episode is one widget log entry (mood check-in, trigger, coping skill,
sleep record, ...) with a 1-10 severity. Episodes live in Redis hashes and are
indexed per user in a sorted set scored by their timestamp.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone

import redis

EPISODE_PREFIX = "episode:"
USER_EPISODES_PREFIX = "user_episodes:"
USERS_KEY = "episode:users"


class Widget:
    MOOD_TRACKER = "mood-tracker"
    TRIGGER_TRACKER = "trigger-tracker"
    COPING_LOGGER = "coping-logger"
    SLEEP_TRACKER = "sleep-tracker"
    JOURNAL_ENTRY = "journal-entry"
    DAILY_CHECKIN = "daily-checkin"
    THOUGHT_CHALLENGER = "thought-challenger"
    MEDICATION_TRACKER = "medication-tracker"
    GOAL_SETTING = "goal-setting"


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO 8601 or SQL-style timestamp. Naive values are read as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Unparseable timestamp: {value!r}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class Episode:
    user_id: str
    widget_id: str
    severity: int = 5               # 1-10
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    data: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    episode_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self) -> None:
        self.severity = max(1, min(10, int(self.severity)))
        if isinstance(self.created_at, datetime):
            self.created_at = parse_timestamp(self.created_at).isoformat()

    @property
    def timestamp(self) -> datetime:
        return parse_timestamp(self.created_at)

    @property
    def epoch(self) -> float:
        return self.timestamp.timestamp()

    @property
    def day(self) -> str:
        return self.timestamp.strftime("%Y-%m-%d")

    @property
    def hour(self) -> int:
        return self.timestamp.hour

    def to_dict(self) -> dict:
        d = asdict(self)
        d["data"] = json.dumps(d["data"])
        d["metadata"] = json.dumps(d["metadata"])
        d["severity"] = int(self.severity)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Episode:
        data = dict(data)
        for json_field in ("data", "metadata"):
            value = data.get(json_field)
            if isinstance(value, str):
                data[json_field] = json.loads(value) if value else {}
            elif value is None:
                data[json_field] = {}
        if "severity" in data:
            data["severity"] = int(float(data["severity"]))
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_redis(self, r: redis.Redis) -> None:
        """Persist the episode hash and index it under its user."""
        r.hset(f"{EPISODE_PREFIX}{self.episode_id}", mapping=self.to_dict())
        r.zadd(f"{USER_EPISODES_PREFIX}{self.user_id}", {self.episode_id: self.epoch})
        r.sadd(USERS_KEY, self.user_id)

    @classmethod
    def from_redis(cls, r: redis.Redis, episode_id: str) -> Episode | None:
        raw = r.hgetall(f"{EPISODE_PREFIX}{episode_id}")
        if not raw:
            return None
        decoded = {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in raw.items()
        }
        return cls.from_dict(decoded)

    def delete_from_redis(self, r: redis.Redis) -> None:
        r.delete(f"{EPISODE_PREFIX}{self.episode_id}")
        r.zrem(f"{USER_EPISODES_PREFIX}{self.user_id}", self.episode_id)
        if r.zcard(f"{USER_EPISODES_PREFIX}{self.user_id}") == 0:
            r.srem(USERS_KEY, self.user_id)
