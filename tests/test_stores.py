"""Tests for the Redis stores: episodes, alerts, result cache, saved insights."""

import pytest
from datetime import timedelta

from spiralengine.engine import alert_store, episode_store, insight_store
from spiralengine.engine.result_cache import CACHE_PREFIX, cache_delete, cache_get, cache_set
from spiralengine.models.alert import Alert, AlertPriority, AlertStatus
from spiralengine.models.episode import Widget


# ═══════════════════════════════════════════════════════════════════════════
# Episode store
# ═══════════════════════════════════════════════════════════════════════════


class TestEpisodeStore:
    def test_store_and_get(self, r, make_episode):
        ep = episode_store.store_episode(make_episode(), r=r)
        assert episode_store.get_episode(ep.episode_id, r=r) == ep

    def test_user_episodes_sorted_ascending(self, r, make_episode):
        newer = make_episode(days_ago=1)
        older = make_episode(days_ago=5)
        episode_store.store_episodes([newer, older], r=r)
        assert episode_store.get_user_episodes("user-1", r=r) == [older, newer]

    def test_range_and_widget_filter(self, r, make_episode, frozen_now):
        eps = [
            make_episode(days_ago=10),
            make_episode(days_ago=2, widget_id=Widget.COPING_LOGGER),
            make_episode(days_ago=1),
        ]
        episode_store.store_episodes(eps, r=r)
        recent = episode_store.get_user_episodes("user-1", since=frozen_now - timedelta(days=3), r=r)
        assert recent == eps[1:]
        coping = episode_store.get_user_episodes("user-1", widgets=[Widget.COPING_LOGGER], r=r)
        assert coping == [eps[1]]

    def test_recent_episodes_limit_keeps_newest(self, r, make_episode, frozen_now):
        eps = [make_episode(hours_ago=h) for h in (5, 4, 3, 2, 1)]
        episode_store.store_episodes(eps, r=r)
        recent = episode_store.get_recent_episodes("user-1", days=1, now=frozen_now, limit=2, r=r)
        assert recent == eps[-2:]

    def test_counts(self, r, make_episode):
        episode_store.store_episodes([
            make_episode(hours_ago=2),
            make_episode(hours_ago=1, widget_id=Widget.JOURNAL_ENTRY),
        ], r=r)
        assert episode_store.count_user_episodes("user-1", r=r) == 2
        assert episode_store.count_widget_episodes("user-1", Widget.JOURNAL_ENTRY, r=r) == 1

    def test_first_episode(self, r, make_episode):
        first = make_episode(days_ago=9)
        episode_store.store_episodes([make_episode(days_ago=1), first], r=r)
        assert episode_store.first_episode("user-1", r=r) == first
        assert episode_store.first_episode("ghost", r=r) is None

    def test_list_users_and_activity(self, r, make_episode, frozen_now):
        episode_store.store_episodes([
            make_episode(user_id="b", days_ago=1),
            make_episode(user_id="a", days_ago=20),
        ], r=r)
        assert episode_store.list_users(r=r) == ["a", "b"]
        assert episode_store.has_recent_activity("b", 7, now=frozen_now, r=r)
        assert not episode_store.has_recent_activity("a", 7, now=frozen_now, r=r)

    def test_delete(self, r, make_episode):
        ep = episode_store.store_episode(make_episode(), r=r)
        assert episode_store.delete_episode(ep.episode_id, r=r)
        assert not episode_store.delete_episode(ep.episode_id, r=r)
        assert episode_store.count_user_episodes("user-1", r=r) == 0
        assert episode_store.list_users(r=r) == []


# ═══════════════════════════════════════════════════════════════════════════
# Alert store
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def make_alert(frozen_now):
    def _factory(hours_ago=0, **overrides):
        created = frozen_now - timedelta(hours=hours_ago)
        defaults = {
            "user_id": "user-1",
            "alert_type": "escalation",
            "title": "Severity Escalation Warning",
            "message": "Rising severity",
            "priority": AlertPriority.MEDIUM,
            "confidence": 0.75,
            "created_at": created.isoformat(),
            "expires_at": (created + timedelta(hours=48)).isoformat(),
        }
        defaults.update(overrides)
        return Alert(**defaults)

    return _factory


class TestAlertStore:
    def test_user_alerts_newest_first(self, r, make_alert):
        old = alert_store.store_alert(make_alert(hours_ago=5), r=r)
        new = alert_store.store_alert(make_alert(hours_ago=1), r=r)
        assert [a.alert_id for a in alert_store.get_user_alerts("user-1", r=r)] == [new.alert_id, old.alert_id]

    def test_active_sorted_by_priority_then_recency(self, r, make_alert, frozen_now):
        low_new = alert_store.store_alert(make_alert(hours_ago=1, priority=AlertPriority.LOW), r=r)
        critical = alert_store.store_alert(make_alert(hours_ago=3, priority=AlertPriority.CRITICAL), r=r)
        medium_old = alert_store.store_alert(make_alert(hours_ago=4), r=r)
        medium_new = alert_store.store_alert(make_alert(hours_ago=2), r=r)
        expired = alert_store.store_alert(make_alert(hours_ago=60), r=r)

        active = alert_store.get_active_alerts("user-1", now=frozen_now, r=r)
        assert [a.alert_id for a in active] == [
            critical.alert_id, medium_new.alert_id, medium_old.alert_id, low_new.alert_id,
        ]
        assert expired.alert_id not in {a.alert_id for a in active}

    def test_dismiss_requires_ownership(self, r, make_alert, frozen_now):
        alert = alert_store.store_alert(make_alert(), r=r)
        assert not alert_store.dismiss_alert("intruder", alert.alert_id, now=frozen_now, r=r)
        assert alert_store.dismiss_alert("user-1", alert.alert_id, now=frozen_now, r=r)
        stored = alert_store.get_alert(alert.alert_id, r=r)
        assert stored.status == AlertStatus.DISMISSED
        assert stored.dismissed_at == frozen_now.isoformat()

    def test_dismiss_missing(self, r, frozen_now):
        assert not alert_store.dismiss_alert("user-1", "alert_missing", now=frozen_now, r=r)

    def test_snooze(self, r, make_alert, frozen_now):
        alert = alert_store.store_alert(make_alert(), r=r)
        assert alert_store.snooze_alert("user-1", alert.alert_id, hours=12, now=frozen_now, r=r)
        stored = alert_store.get_alert(alert.alert_id, r=r)
        assert stored.status == AlertStatus.SNOOZED
        assert stored.snoozed_until == (frozen_now + timedelta(hours=12)).isoformat()

    def test_suppression_after_dismiss(self, r, make_alert, frozen_now):
        alert = alert_store.store_alert(make_alert(), r=r)
        alert_store.dismiss_alert("user-1", alert.alert_id, now=frozen_now, r=r)
        assert alert_store.is_alert_suppressed("user-1", "escalation", now=frozen_now + timedelta(hours=23), r=r)
        assert not alert_store.is_alert_suppressed("user-1", "escalation", now=frozen_now + timedelta(hours=25), r=r)
        assert not alert_store.is_alert_suppressed("user-1", "crisis_risk", now=frozen_now, r=r)

    def test_suppression_while_snoozed(self, r, make_alert, frozen_now):
        alert = alert_store.store_alert(make_alert(), r=r)
        alert_store.snooze_alert("user-1", alert.alert_id, hours=6, now=frozen_now, r=r)
        assert alert_store.is_alert_suppressed("user-1", "escalation", now=frozen_now + timedelta(hours=5), r=r)
        assert not alert_store.is_alert_suppressed("user-1", "escalation", now=frozen_now + timedelta(hours=7), r=r)

    def test_settings_default_on(self, r):
        assert alert_store.should_notify("user-1", "escalation", r=r)
        alert_store.set_alert_setting("user-1", "escalation", False, r=r)
        assert not alert_store.should_notify("user-1", "escalation", r=r)
        assert alert_store.get_alert_settings("user-1", r=r) == {"escalation": False}

    def test_log(self, r, make_alert):
        alert = make_alert()
        alert_store.log_alert(alert, notification_sent=True, extra={"ai_recommendations": ["Rest"]}, r=r)
        log = alert_store.get_alert_log("user-1", r=r)
        assert len(log) == 1
        assert log[0]["alert_id"] == alert.alert_id
        assert log[0]["notification_sent"] is True
        assert log[0]["ai_recommendations"] == ["Rest"]

    def test_notification_queue_drains(self, r, make_alert, frozen_now):
        alert = make_alert()
        alert_store.queue_notification(alert, immediate=True, now=frozen_now, r=r)
        queued = alert_store.pop_notifications("user-1", r=r)
        assert len(queued) == 1
        assert queued[0]["immediate"] is True
        assert queued[0]["queued_at"] == frozen_now.isoformat()
        assert alert_store.pop_notifications("user-1", r=r) == []


# ═══════════════════════════════════════════════════════════════════════════
# Result cache and saved insights
# ═══════════════════════════════════════════════════════════════════════════


class TestResultCache:
    def test_set_get_delete(self, r):
        cache_set("patterns:user-1", {"score": 70}, 60, r=r)
        assert cache_get("patterns:user-1", r=r) == {"score": 70}
        assert 0 < r.ttl(f"{CACHE_PREFIX}patterns:user-1") <= 60
        cache_delete("patterns:user-1", r=r)
        assert cache_get("patterns:user-1", r=r) is None

    def test_int_keys_become_strings(self, r):
        cache_set("dist", {5: 2}, 60, r=r)
        assert cache_get("dist", r=r) == {"5": 2}

    def test_unreadable_entry_is_discarded(self, r):
        r.set(f"{CACHE_PREFIX}broken", "{not json")
        assert cache_get("broken", r=r) is None
        assert not r.exists(f"{CACHE_PREFIX}broken")


class TestInsightStore:
    def test_newest_first_and_type_filter(self, r, frozen_now):
        insight_store.save_insights("user-1", "daily", {"n": 1}, now=frozen_now, r=r)
        insight_store.save_insights("user-1", "weekly", {"n": 2}, now=frozen_now, r=r)
        insight_store.save_insights("user-1", "daily", {"n": 3}, now=frozen_now, r=r)

        records = insight_store.get_user_insights("user-1", r=r)
        assert [rec["data"]["n"] for rec in records] == [3, 2, 1]
        daily = insight_store.get_user_insights("user-1", "daily", limit=1, r=r)
        assert [rec["data"]["n"] for rec in daily] == [3]
        assert records[0]["created_at"] == frozen_now.isoformat()
