"""Redis persistence for predictive alerts.

Covers the alert lifecycle (active, dismissed, snoozed), per-type suppression,
per-user notification settings, the alert log and the notification queue.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import redis

from spiralengine.config.settings import (
    ALERT_LOG_MAX,
    DEFAULT_SNOOZE_HOURS,
    DISMISS_SUPPRESSION_HOURS,
    REDIS_URL,
)
from spiralengine.models.alert import (
    PRIORITY_RANK,
    USER_ALERTS_PREFIX,
    Alert,
    AlertStatus,
)
from spiralengine.models.episode import parse_timestamp

logger = logging.getLogger(__name__)

SETTINGS_PREFIX = "alert_settings:"
LOG_PREFIX = "alert_log:"
NOTIFICATIONS_PREFIX = "notifications:"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

def store_alert(alert: Alert, r: redis.Redis | None = None) -> Alert:
    r = r or _get_redis()
    alert.to_redis(r)
    return alert


def get_alert(alert_id: str, r: redis.Redis | None = None) -> Alert | None:
    r = r or _get_redis()
    return Alert.from_redis(r, alert_id)


def get_user_alerts(user_id: str, r: redis.Redis | None = None) -> list[Alert]:
    """All alerts of a user, newest first."""
    r = r or _get_redis()
    alerts = []
    for alert_id in r.zrevrange(f"{USER_ALERTS_PREFIX}{user_id}", 0, -1):
        alert = Alert.from_redis(r, alert_id)
        if alert is not None:
            alerts.append(alert)
    return alerts


def get_active_alerts(
    user_id: str,
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> list[Alert]:
    """Unexpired active alerts, highest priority first, then newest first."""
    now = now or datetime.now(timezone.utc)
    active = [a for a in get_user_alerts(user_id, r=r) if a.is_active(now)]
    active.sort(
        key=lambda a: (PRIORITY_RANK.get(a.priority, 0), parse_timestamp(a.created_at)),
        reverse=True,
    )
    return active


def _owned_alert(user_id: str, alert_id: str, r: redis.Redis) -> Alert | None:
    alert = Alert.from_redis(r, alert_id)
    if alert is None or alert.user_id != user_id:
        return None
    return alert


def dismiss_alert(
    user_id: str,
    alert_id: str,
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> bool:
    r = r or _get_redis()
    now = now or datetime.now(timezone.utc)
    alert = _owned_alert(user_id, alert_id, r)
    if alert is None:
        return False
    alert.status = AlertStatus.DISMISSED
    alert.dismissed_at = now.isoformat()
    alert.to_redis(r)
    logger.info("Alert %s dismissed by %s", alert_id, user_id)
    return True


def snooze_alert(
    user_id: str,
    alert_id: str,
    hours: int = DEFAULT_SNOOZE_HOURS,
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> bool:
    r = r or _get_redis()
    now = now or datetime.now(timezone.utc)
    alert = _owned_alert(user_id, alert_id, r)
    if alert is None:
        return False
    alert.status = AlertStatus.SNOOZED
    alert.snoozed_until = (now + timedelta(hours=hours)).isoformat()
    alert.to_redis(r)
    logger.info("Alert %s snoozed for %dh by %s", alert_id, hours, user_id)
    return True


def is_alert_suppressed(
    user_id: str,
    alert_type: str,
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> bool:
    """A type is suppressed while snoozed, or for a day after a dismissal."""
    now = now or datetime.now(timezone.utc)
    dismiss_window = now - timedelta(hours=DISMISS_SUPPRESSION_HOURS)
    for alert in get_user_alerts(user_id, r=r):
        if alert.alert_type != alert_type:
            continue
        if (
            alert.status == AlertStatus.SNOOZED
            and alert.snoozed_until
            and parse_timestamp(alert.snoozed_until) > now
        ):
            return True
        if (
            alert.status == AlertStatus.DISMISSED
            and alert.dismissed_at
            and parse_timestamp(alert.dismissed_at) > dismiss_window
        ):
            return True
    return False


# ---------------------------------------------------------------------------
# Notification settings
# ---------------------------------------------------------------------------

def get_alert_settings(user_id: str, r: redis.Redis | None = None) -> dict[str, bool]:
    r = r or _get_redis()
    raw = r.hgetall(f"{SETTINGS_PREFIX}{user_id}")
    return {alert_type: value == "1" for alert_type, value in raw.items()}


def set_alert_setting(
    user_id: str,
    alert_type: str,
    enabled: bool,
    r: redis.Redis | None = None,
) -> None:
    r = r or _get_redis()
    r.hset(f"{SETTINGS_PREFIX}{user_id}", alert_type, "1" if enabled else "0")


def should_notify(user_id: str, alert_type: str, r: redis.Redis | None = None) -> bool:
    return get_alert_settings(user_id, r=r).get(alert_type, True)


# ---------------------------------------------------------------------------
# Log and notification queue
# ---------------------------------------------------------------------------

def log_alert(
    alert: Alert,
    notification_sent: bool,
    extra: dict[str, Any] | None = None,
    r: redis.Redis | None = None,
) -> dict[str, Any]:
    r = r or _get_redis()
    entry = {
        "alert_id": alert.alert_id,
        "user_id": alert.user_id,
        "type": alert.alert_type,
        "priority": alert.priority,
        "confidence": alert.confidence,
        "notification_sent": notification_sent,
        "created_at": alert.created_at,
    }
    if extra:
        entry.update(extra)
    key = f"{LOG_PREFIX}{alert.user_id}"
    r.rpush(key, json.dumps(entry, default=str))
    r.ltrim(key, -ALERT_LOG_MAX, -1)
    return entry


def get_alert_log(user_id: str, r: redis.Redis | None = None) -> list[dict[str, Any]]:
    r = r or _get_redis()
    return [json.loads(raw) for raw in r.lrange(f"{LOG_PREFIX}{user_id}", 0, -1)]


def queue_notification(
    alert: Alert,
    immediate: bool = False,
    now: datetime | None = None,
    r: redis.Redis | None = None,
) -> dict[str, Any]:
    r = r or _get_redis()
    now = now or datetime.now(timezone.utc)
    payload = {
        "alert_id": alert.alert_id,
        "type": alert.alert_type,
        "title": alert.title,
        "message": alert.message,
        "priority": alert.priority,
        "immediate": immediate,
        "queued_at": now.isoformat(),
    }
    r.rpush(f"{NOTIFICATIONS_PREFIX}{alert.user_id}", json.dumps(payload))
    return payload


def pop_notifications(user_id: str, r: redis.Redis | None = None) -> list[dict[str, Any]]:
    """Drain the user's notification queue."""
    r = r or _get_redis()
    key = f"{NOTIFICATIONS_PREFIX}{user_id}"
    pipe = r.pipeline()
    pipe.lrange(key, 0, -1)
    pipe.delete(key)
    raw, _ = pipe.execute()
    return [json.loads(item) for item in raw]
