"""Tests for time bucketing, peak times, clustering and cycle detection."""

import pytest
from datetime import datetime, timezone

from spiralengine.engine.temporal import (
    check_weekly_cycle,
    cycle_confidence,
    cycle_strength,
    daily_distribution,
    detect_cycles,
    episode_clustering,
    episodes_per_day,
    hour_range,
    hourly_distribution,
    next_cycle_occurrence,
    peak_times,
    period_label,
    severity_distribution,
    time_period,
    total_days,
    week_key,
    weekday_index,
)


def _at(day, hour, minute=0):
    return datetime(2026, 2, day, hour, minute, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Calendar helpers
# ═══════════════════════════════════════════════════════════════════════════


class TestCalendar:
    def test_weekday_index_sunday_first(self, frozen_now):
        assert weekday_index(frozen_now) == 0
        assert weekday_index(_at(16, 9)) == 1

    def test_week_key_uses_iso_year(self):
        """2027-01-01 falls in ISO week 53 of 2026."""
        assert week_key(datetime(2027, 1, 1, tzinfo=timezone.utc)) == "2026-53"
        assert week_key(datetime(2026, 1, 1, tzinfo=timezone.utc)) == "2026-01"

    @pytest.mark.parametrize("hour,period", [
        (3, "late_night"),
        (4, "early_morning"),
        (8, "morning"),
        (12, "afternoon"),
        (17, "evening"),
        (21, "night"),
        (23, "night"),
    ])
    def test_time_period(self, hour, period):
        assert time_period(hour) == period

    def test_labels(self):
        assert period_label("late_night") == "Late Night"
        assert hour_range(9) == "09:00-10:00"


# ═══════════════════════════════════════════════════════════════════════════
# Distributions
# ═══════════════════════════════════════════════════════════════════════════


class TestDistributions:
    def test_severity_distribution_covers_all_levels(self, make_episode):
        eps = [make_episode(severity=5), make_episode(severity=5), make_episode(severity=7)]
        dist = severity_distribution(eps)
        assert sorted(dist) == list(range(1, 11))
        assert dist[5] == {"count": 2, "percentage": 66.7}
        assert dist[1]["count"] == 0

    def test_hours_read_in_own_offset(self, make_episode):
        ep = make_episode(created_at="2026-02-15T09:00:00+05:00")
        hours = hourly_distribution([ep])
        assert hours[9] == 1
        assert sum(hours) == 1

    def test_naive_timestamp_is_utc(self, make_episode):
        ep = make_episode(created_at="2026-02-15 22:15:00")
        assert ep.hour == 22
        assert ep.timestamp.tzinfo is not None

    def test_daily_distribution(self, make_episode, frozen_now):
        dist = daily_distribution([make_episode(at=frozen_now)])
        assert dist["Sunday"] == 1
        assert list(dist)[0] == "Sunday"

    def test_episodes_per_day(self, make_episode):
        eps = [make_episode(at=_at(14, 9)), make_episode(at=_at(14, 10)), make_episode(at=_at(15, 9))]
        per_day = episodes_per_day(eps)
        assert per_day["average"] == 1.5
        assert per_day["max"] == 2
        assert per_day["min"] == 1

    def test_total_days_counts_both_ends(self, make_episode):
        assert total_days([make_episode()]) == 1
        assert total_days([make_episode(at=_at(13, 12)), make_episode(at=_at(15, 12))]) == 3
        assert total_days([]) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Clustering and peaks
# ═══════════════════════════════════════════════════════════════════════════


class TestClusteringAndPeaks:
    def test_episode_clustering(self, make_episode):
        """Gaps of 30 and 50 minutes chain into one cluster; 15:00 stands alone."""
        eps = [
            make_episode(at=_at(15, 10, 0)),
            make_episode(at=_at(15, 10, 30)),
            make_episode(at=_at(15, 11, 20)),
            make_episode(at=_at(15, 15, 0)),
        ]
        result = episode_clustering(eps)
        assert result["cluster_count"] == 1
        assert result["clusters"][0]["size"] == 3
        assert result["clusters"][0]["duration_minutes"] == 80
        assert result["clustering_rate"] == 50.0

    def test_no_clusters(self, make_episode):
        result = episode_clustering([make_episode(at=_at(14, 9)), make_episode(at=_at(15, 9))])
        assert result["cluster_count"] == 0

    def test_peak_times_empty(self):
        assert peak_times([]) == {}

    def test_peak_times(self, make_episode):
        eps = [
            make_episode(at=_at(8, 9)),
            make_episode(at=_at(15, 9)),
            make_episode(at=_at(1, 9)),
            make_episode(at=_at(16, 20)),
        ]
        peaks = peak_times(eps)
        assert peaks["hour"] == {"value": 9, "label": "09:00-10:00", "episode_count": 3}
        assert peaks["day_of_week"] == {"value": 0, "label": "Sunday", "episode_count": 3}
        assert peaks["time_period"]["value"] == "morning"
        assert peaks["time_period"]["label"] == "Morning"


# ═══════════════════════════════════════════════════════════════════════════
# Cycles
# ═══════════════════════════════════════════════════════════════════════════


class TestCycles:
    def test_detect_cycles_needs_fourteen(self, make_episode):
        eps = [make_episode(hours_ago=i) for i in range(13, 0, -1)]
        assert detect_cycles(eps) == {"message": "Not enough data for cycle detection"}

    def test_constant_series_has_no_cycles(self, make_episode):
        eps = [make_episode(hours_ago=i, severity=5) for i in range(20, 0, -1)]
        result = detect_cycles(eps)
        assert result["detected_cycles"] == []
        assert "weekly" in result

    def test_weekly_cycle(self, make_episode):
        eps = [
            make_episode(at=_at(1, 9), severity=9),
            make_episode(at=_at(2, 9), severity=1),
            make_episode(at=_at(8, 9), severity=9),
            make_episode(at=_at(9, 9), severity=1),
        ]
        weekly = check_weekly_cycle(eps)
        assert weekly["has_weekly_pattern"] is True
        assert weekly["pattern"]["Sunday"] == 9
        assert weekly["pattern"]["Monday"] == 1

    def test_next_cycle_occurrence(self, make_episode, frozen_now):
        """Daily means 3, 9, 3 → threshold 6 → peak on the 12th, next on the 19th."""
        eps = [
            make_episode(at=_at(10, 9), severity=3),
            make_episode(at=_at(12, 9), severity=9),
            make_episode(at=_at(13, 9), severity=3),
        ]
        projected = next_cycle_occurrence(eps, 7, frozen_now)
        assert projected == {
            "last_peak": "2026-02-12",
            "next_occurrence": "2026-02-19",
            "days_until": 3,
        }

    def test_next_cycle_occurrence_empty(self, frozen_now):
        assert next_cycle_occurrence([], 7, frozen_now) == {
            "last_peak": None,
            "next_occurrence": None,
            "days_until": None,
        }

    def test_next_cycle_occurrence_without_peak(self, make_episode, frozen_now):
        """A flat history below the high-severity line has no peak to project from."""
        eps = [make_episode(at=_at(d, 9), severity=4) for d in (10, 11, 12)]
        assert next_cycle_occurrence(eps, 7, frozen_now)["days_until"] is None

    def test_next_cycle_occurrence_uses_unrounded_means(self, make_episode, frozen_now):
        """Daily means 3.125, 1.25 and 2 put the threshold at exactly 3.125.

        Rounded to 3.12, the 10th would fall just short of it.
        """
        eps = (
            [make_episode(at=_at(10, h), severity=3) for h in range(8, 15)]
            + [make_episode(at=_at(10, 15), severity=4)]
            + [make_episode(at=_at(11, h), severity=1) for h in range(8, 11)]
            + [make_episode(at=_at(11, 11), severity=2)]
            + [make_episode(at=_at(12, 9), severity=2)]
        )
        assert next_cycle_occurrence(eps, 7, frozen_now) == {
            "last_peak": "2026-02-10",
            "next_occurrence": "2026-02-17",
            "days_until": 1,
        }

    def test_cycle_strength(self):
        """A weekly shape rising by one each week correlates perfectly at lag 7."""
        weekly = [1, 1, 1, 6, 1, 1, 1]
        values = [weekly[i % 7] + i // 7 for i in range(28)]
        assert cycle_strength(values, 7) == pytest.approx(1.0)
        assert cycle_strength(values[:13], 7) == 0.0
        assert cycle_strength([weekly[i % 7] for i in range(28)], 7) == 0.0

    def test_cycle_confidence(self):
        assert cycle_confidence(1.0, 28) == "low"
        assert cycle_confidence(0.7, 100) == "moderate"
        assert cycle_confidence(0.9, 100) == "high"
        assert cycle_confidence(0.9, 250) == "high"

    def test_detect_weekly_cycle(self, make_episode):
        weekly = [1, 1, 1, 6, 1, 1, 1]
        eps = [make_episode(hours_ago=28 - i, severity=weekly[i % 7] + i // 7) for i in range(28)]
        detected = detect_cycles(eps)["detected_cycles"]
        assert {"length_days": 7, "strength": 1.0, "confidence": "low"} in detected
