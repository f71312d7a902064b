"""Tests for the Episode and Alert models and their Redis persistence."""

import json
import pytest
from datetime import datetime, timedelta, timezone

from spiralengine.models.alert import (
    ALERT_PREFIX,
    USER_ALERTS_PREFIX,
    Alert,
    AlertPriority,
    AlertStatus,
)
from spiralengine.models.episode import (
    EPISODE_PREFIX,
    USER_EPISODES_PREFIX,
    USERS_KEY,
    Episode,
    Widget,
    parse_timestamp,
)


# ═══════════════════════════════════════════════════════════════════════════
# Episode
# ═══════════════════════════════════════════════════════════════════════════


class TestEpisodeDefaults:
    def test_defaults(self):
        ep = Episode(user_id="u1", widget_id=Widget.MOOD_TRACKER)
        assert ep.severity == 5
        assert ep.data == {}
        assert ep.metadata == {}
        assert len(ep.episode_id) == 12

    def test_severity_is_clamped(self):
        assert Episode(user_id="u1", widget_id="x", severity=14).severity == 10
        assert Episode(user_id="u1", widget_id="x", severity=0).severity == 1

    def test_datetime_created_at_is_normalized(self):
        ep = Episode(user_id="u1", widget_id="x", created_at=datetime(2026, 2, 15, 9, 30))
        assert ep.created_at == "2026-02-15T09:30:00+00:00"

    def test_derived_time_fields(self, make_episode, frozen_now):
        ep = make_episode(at=frozen_now)
        assert ep.timestamp == frozen_now
        assert ep.epoch == frozen_now.timestamp()
        assert ep.day == "2026-02-15"
        assert ep.hour == 12


class TestParseTimestamp:
    def test_zulu_suffix(self):
        assert parse_timestamp("2026-02-15T12:00:00Z") == datetime(2026, 2, 15, 12, tzinfo=timezone.utc)

    def test_sql_style_is_utc(self):
        assert parse_timestamp("2026-02-15 12:00:00").tzinfo == timezone.utc

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday-ish")


class TestEpisodeSerialization:
    def test_to_dict_encodes_json_fields(self, make_episode):
        ep = make_episode(data={"mood": "calm"}, metadata={"location": "home"})
        d = ep.to_dict()
        assert json.loads(d["data"]) == {"mood": "calm"}
        assert json.loads(d["metadata"]) == {"location": "home"}

    def test_from_dict_accepts_string_severity(self):
        ep = Episode.from_dict({"user_id": "u1", "widget_id": "x", "severity": "7.0", "data": ""})
        assert ep.severity == 7
        assert ep.data == {}

    def test_from_dict_ignores_unknown_fields(self):
        ep = Episode.from_dict({"user_id": "u1", "widget_id": "x", "legacy_flag": "1"})
        assert ep.user_id == "u1"


class TestEpisodeRedis:
    def test_round_trip(self, r, make_episode):
        ep = make_episode(data={"quality": 6})
        ep.to_redis(r)
        loaded = Episode.from_redis(r, ep.episode_id)
        assert loaded == ep

    def test_indexes(self, r, make_episode):
        ep = make_episode()
        ep.to_redis(r)
        assert r.exists(f"{EPISODE_PREFIX}{ep.episode_id}")
        assert r.zscore(f"{USER_EPISODES_PREFIX}user-1", ep.episode_id) == ep.epoch
        assert r.sismember(USERS_KEY, "user-1")

    def test_missing(self, r):
        assert Episode.from_redis(r, "nope") is None

    def test_delete(self, r, make_episode):
        ep = make_episode()
        ep.to_redis(r)
        ep.delete_from_redis(r)
        assert not r.exists(f"{EPISODE_PREFIX}{ep.episode_id}")
        assert r.zcard(f"{USER_EPISODES_PREFIX}user-1") == 0
        assert not r.sismember(USERS_KEY, "user-1")

    def test_delete_keeps_user_with_remaining_episodes(self, r, make_episode):
        first, second = make_episode(hours_ago=2), make_episode(hours_ago=1)
        first.to_redis(r)
        second.to_redis(r)
        first.delete_from_redis(r)
        assert r.zrange(f"{USER_EPISODES_PREFIX}user-1", 0, -1) == [second.episode_id]
        assert r.sismember(USERS_KEY, "user-1")


# ═══════════════════════════════════════════════════════════════════════════
# Alert
# ═══════════════════════════════════════════════════════════════════════════


class TestAlert:
    def _alert(self, frozen_now, **overrides):
        defaults = {
            "user_id": "user-1",
            "alert_type": "escalation",
            "title": "Severity Escalation Warning",
            "message": "Your episode severity has been increasing.",
            "priority": AlertPriority.HIGH,
            "confidence": 0.8,
            "created_at": frozen_now.isoformat(),
            "expires_at": (frozen_now + timedelta(hours=48)).isoformat(),
        }
        defaults.update(overrides)
        return Alert(**defaults)

    def test_default_id_and_status(self, frozen_now):
        alert = self._alert(frozen_now)
        assert alert.alert_id.startswith("alert_")
        assert alert.status == AlertStatus.ACTIVE

    def test_is_active_until_expiry(self, frozen_now):
        alert = self._alert(frozen_now)
        assert alert.is_active(frozen_now)
        assert not alert.is_active(frozen_now + timedelta(hours=49))

    def test_dismissed_is_inactive(self, frozen_now):
        assert not self._alert(frozen_now, status=AlertStatus.DISMISSED).is_active(frozen_now)

    def test_no_expiry_stays_active(self, frozen_now):
        assert self._alert(frozen_now, expires_at="").is_active(frozen_now + timedelta(days=365))

    def test_redis_round_trip(self, r, frozen_now):
        alert = self._alert(
            frozen_now,
            prediction_data={"slope": 0.8, "expected_severity": 8},
            recommendations=["Take a break"],
        )
        alert.to_redis(r)
        loaded = Alert.from_redis(r, alert.alert_id)
        assert loaded == alert
        assert r.zscore(f"{USER_ALERTS_PREFIX}user-1", alert.alert_id) == frozen_now.timestamp()

    def test_delete(self, r, frozen_now):
        alert = self._alert(frozen_now)
        alert.to_redis(r)
        alert.delete_from_redis(r)
        assert not r.exists(f"{ALERT_PREFIX}{alert.alert_id}")
        assert Alert.from_redis(r, alert.alert_id) is None
