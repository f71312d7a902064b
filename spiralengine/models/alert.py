"""Predictive alert model.

Alerts are stored as Redis hashes and indexed per user in a sorted set scored
by creation time. An alert is active until it is dismissed, snoozed or past
its expiry.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone

import redis

from spiralengine.models.episode import parse_timestamp

ALERT_PREFIX = "alert:"
USER_ALERTS_PREFIX = "user_alerts:"


class AlertStatus:
    ACTIVE = "active"
    DISMISSED = "dismissed"
    SNOOZED = "snoozed"


class AlertPriority:
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK = {
    AlertPriority.CRITICAL: 3,
    AlertPriority.HIGH: 2,
    AlertPriority.MEDIUM: 1,
    AlertPriority.LOW: 0,
}


def _new_alert_id() -> str:
    return "alert_" + secrets.token_hex(6)


@dataclass
class Alert:
    user_id: str
    alert_type: str
    title: str
    message: str
    priority: str = AlertPriority.MEDIUM
    confidence: float = 0.0
    prediction_data: dict = field(default_factory=dict)
    recommendations: list = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    expires_at: str = ""
    status: str = AlertStatus.ACTIVE
    dismissed_at: str = ""
    snoozed_until: str = ""
    alert_id: str = field(default_factory=_new_alert_id)

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        if self.status != AlertStatus.ACTIVE:
            return False
        return not self.expires_at or parse_timestamp(self.expires_at) > now

    def to_dict(self) -> dict:
        d = asdict(self)
        d["prediction_data"] = json.dumps(d["prediction_data"], default=str)
        d["recommendations"] = json.dumps(d["recommendations"])
        d["confidence"] = float(self.confidence)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Alert:
        data = dict(data)
        if isinstance(data.get("prediction_data"), str):
            data["prediction_data"] = json.loads(data["prediction_data"] or "{}")
        if isinstance(data.get("recommendations"), str):
            data["recommendations"] = json.loads(data["recommendations"] or "[]")
        if "confidence" in data:
            data["confidence"] = float(data["confidence"])
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_redis(self, r: redis.Redis) -> None:
        r.hset(f"{ALERT_PREFIX}{self.alert_id}", mapping=self.to_dict())
        created = parse_timestamp(self.created_at).timestamp()
        r.zadd(f"{USER_ALERTS_PREFIX}{self.user_id}", {self.alert_id: created})

    @classmethod
    def from_redis(cls, r: redis.Redis, alert_id: str) -> Alert | None:
        raw = r.hgetall(f"{ALERT_PREFIX}{alert_id}")
        if not raw:
            return None
        decoded = {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in raw.items()
        }
        return cls.from_dict(decoded)

    def delete_from_redis(self, r: redis.Redis) -> None:
        r.delete(f"{ALERT_PREFIX}{self.alert_id}")
        r.zrem(f"{USER_ALERTS_PREFIX}{self.user_id}", self.alert_id)
