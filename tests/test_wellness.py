"""Tests for widget signal extraction: sleep, medication, coping, mood, crisis text."""

import pytest
from datetime import timedelta

from spiralengine.engine.wellness import (
    average_sleep_quality,
    coping_effectiveness_by_skill,
    coping_improvement,
    contains_crisis_indicators,
    dominant_mood,
    episodes_between,
    identify_sleep_pattern,
    is_sleep_related,
    longest_streak,
    medication_adherence,
    mood_stability,
    most_effective_skill,
    number,
    sleep_quality_trend,
)
from spiralengine.models.episode import Widget


class TestHelpers:
    def test_number(self):
        assert number("7") == 7.0
        assert number(3) == 3.0
        assert number(True) is None
        assert number("often") is None
        assert number(None) is None

    def test_longest_streak(self):
        days = ["2026-02-01", "2026-02-02", "2026-02-03", "2026-02-05", "2026-02-02"]
        assert longest_streak(days) == 3
        assert longest_streak([]) == 0

    def test_episodes_between(self, make_episode, frozen_now):
        old = make_episode(days_ago=3)
        recent = make_episode(days_ago=1)
        assert episodes_between([old, recent], frozen_now - timedelta(days=2)) == [recent]
        assert episodes_between([old, recent], frozen_now - timedelta(days=5), frozen_now - timedelta(days=2)) == [old]


# ═══════════════════════════════════════════════════════════════════════════
# Sleep
# ═══════════════════════════════════════════════════════════════════════════


class TestSleep:
    def test_is_sleep_related(self, make_episode):
        assert is_sleep_related(make_episode(widget_id=Widget.SLEEP_TRACKER))
        assert is_sleep_related(make_episode(data={"tags": ["sleep", "tired"]}))
        assert not is_sleep_related(make_episode())

    def test_average_quality_default(self, make_episode):
        assert average_sleep_quality([make_episode()]) == 5.0

    def test_average_quality(self, make_episode):
        eps = [
            make_episode(widget_id=Widget.SLEEP_TRACKER, data={"quality": 4}),
            make_episode(widget_id=Widget.SLEEP_TRACKER, data={"quality": "8"}),
        ]
        assert average_sleep_quality(eps) == pytest.approx(6.0)

    def test_bedtimes_across_midnight_are_regular(self, make_episode):
        """23:30 and 00:30 are one hour apart, not 23."""
        eps = [
            make_episode(widget_id=Widget.SLEEP_TRACKER, data={"bedtime": "23:30", "duration": 7}),
            make_episode(widget_id=Widget.SLEEP_TRACKER, data={"bedtime": "00:30", "duration": 7}),
        ]
        assert identify_sleep_pattern(eps) == "regular"

    def test_irregular_schedule(self, make_episode):
        eps = [
            make_episode(widget_id=Widget.SLEEP_TRACKER, data={"bedtime": "21:00"}),
            make_episode(widget_id=Widget.SLEEP_TRACKER, data={"bedtime": "02:00"}),
        ]
        assert identify_sleep_pattern(eps) == "irregular_schedule"

    def test_insufficient_duration(self, make_episode):
        eps = [make_episode(widget_id=Widget.SLEEP_TRACKER, data={"bedtime": "23:00", "duration": 5})]
        assert identify_sleep_pattern(eps) == "insufficient_duration"

    def test_unknown_without_bedtimes(self, make_episode):
        assert identify_sleep_pattern([make_episode(widget_id=Widget.SLEEP_TRACKER)]) == "unknown"

    def test_quality_trend_without_sleep(self, make_episode):
        assert sleep_quality_trend([make_episode()]) == {"confidence": 0.0, "trend": "unknown"}

    def test_quality_trend_needs_three(self, make_episode):
        eps = [make_episode(widget_id=Widget.SLEEP_TRACKER, data={"quality": 5}) for _ in range(2)]
        assert sleep_quality_trend(eps)["trend"] == "insufficient_data"

    def test_quality_declining(self, make_episode):
        """Qualities 8..4 fit y = 9 - x."""
        eps = [
            make_episode(hours_ago=5 - i, widget_id=Widget.SLEEP_TRACKER, data={"quality": q})
            for i, q in enumerate([8, 7, 6, 5, 4])
        ]
        result = sleep_quality_trend(eps)
        assert result["trend"] == "declining"
        assert result["confidence"] == pytest.approx(0.7)
        assert result["expected_quality"] == 3


# ═══════════════════════════════════════════════════════════════════════════
# Medication and coping
# ═══════════════════════════════════════════════════════════════════════════


class TestMedication:
    def test_no_data(self, make_episode):
        assert medication_adherence([make_episode()]) == {
            "rate": 1.0, "missed_doses": 0, "pattern": "no_data",
        }

    def test_counts_distinct_days(self, make_episode):
        eps = [make_episode(days_ago=d, widget_id=Widget.MEDICATION_TRACKER) for d in range(7)]
        eps.append(make_episode(days_ago=0, hours_ago=1, widget_id=Widget.MEDICATION_TRACKER))
        result = medication_adherence(eps, expected_days=14)
        assert result["rate"] == pytest.approx(0.5)
        assert result["missed_doses"] == 7
        assert result["pattern"] == "inconsistent"

    def test_poor_adherence(self, make_episode):
        eps = [make_episode(days_ago=d, widget_id=Widget.MEDICATION_TRACKER) for d in range(3)]
        assert medication_adherence(eps)["pattern"] == "poor_adherence"


class TestCoping:
    def _coping(self, make_episode, skill, effectiveness, hours_ago=1):
        return make_episode(
            hours_ago=hours_ago,
            widget_id=Widget.COPING_LOGGER,
            data={"skill_category": skill, "effectiveness": effectiveness},
        )

    def test_effectiveness_by_skill(self, make_episode):
        eps = [
            self._coping(make_episode, "breathing", 6),
            self._coping(make_episode, "breathing", 8),
            self._coping(make_episode, "walking", 5),
        ]
        skills = coping_effectiveness_by_skill(eps)
        assert skills["breathing"] == {"uses": 2, "avg_effectiveness": 7.0}
        assert skills["walking"] == {"uses": 1, "avg_effectiveness": 5.0}
        assert most_effective_skill(eps) == {"skill": "breathing", "effectiveness": 7.0}

    def test_most_effective_none(self, make_episode):
        assert most_effective_skill([make_episode()]) is None

    def test_improvement_needs_ten(self, make_episode):
        eps = [self._coping(make_episode, "breathing", 5) for _ in range(9)]
        assert coping_improvement(eps) == "insufficient_data"

    def test_significant_improvement(self, make_episode):
        eps = [self._coping(make_episode, "breathing", 4, hours_ago=20 - i) for i in range(5)]
        eps += [self._coping(make_episode, "breathing", 7, hours_ago=10 - i) for i in range(5)]
        assert coping_improvement(eps) == "significant_improvement"


# ═══════════════════════════════════════════════════════════════════════════
# Mood and crisis text
# ═══════════════════════════════════════════════════════════════════════════


class TestMood:
    def test_dominant_mood(self):
        assert dominant_mood(["sad", "calm", "sad"]) == "sad"
        assert dominant_mood([]) == "unknown"

    def test_stability(self):
        assert mood_stability(["calm"]) == "insufficient_data"
        assert mood_stability(["calm"] * 10) == "stable"
        assert mood_stability(["calm", "sad", "calm", "sad"]) == "moderate"
        assert mood_stability(["calm", "sad"]) == "variable"


class TestCrisisText:
    def test_detects_phrase_with_curly_apostrophe(self):
        assert contains_crisis_indicators({"text": "I can’t go on like this"})

    def test_ignores_ordinary_text(self):
        assert not contains_crisis_indicators({"text": "A good day at the park"})

    def test_only_text_fields_are_scanned(self):
        assert not contains_crisis_indicators({"mood": "suicidal"})
        assert contains_crisis_indicators({"automatic_thought": "Everyone would be better off dead"})
