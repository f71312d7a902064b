"""Time-bucketed views of an episode history and cycle detection.

Every function expects episodes sorted oldest first. Hours and days are read
in each episode's own UTC offset.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from spiralengine.config.settings import (
    CLUSTER_GAP_SECONDS,
    CYCLE_STRENGTH_THRESHOLD,
    HIGH_SEVERITY_THRESHOLD,
    MAX_CYCLE_LENGTH,
)
from spiralengine.engine.stats import correlation, mean, percentage, std_dev
from spiralengine.models.episode import Episode

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Half-open hour ranges [start, end)
TIME_PERIODS = {
    "early_morning": (4, 8),
    "morning": (8, 12),
    "afternoon": (12, 17),
    "evening": (17, 21),
    "night": (21, 24),
    "late_night": (0, 4),
}

MIN_CYCLE_EPISODES = 14


def weekday_index(dt: datetime) -> int:
    """Day of week with Sunday as 0."""
    return (dt.weekday() + 1) % 7


def week_key(dt: datetime) -> str:
    year, week, _ = dt.isocalendar()
    return f"{year}-{week:02d}"


def time_period(hour: int) -> str:
    for name, (start, end) in TIME_PERIODS.items():
        if start <= hour < end:
            return name
    return "late_night"


def period_label(period: str) -> str:
    return period.replace("_", " ").title()


def hour_range(hour: int) -> str:
    return f"{hour:02d}:00-{hour + 1:02d}:00"


# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------

def severity_distribution(episodes: Sequence[Episode]) -> dict[int, dict[str, Any]]:
    counts = Counter(ep.severity for ep in episodes)
    total = len(episodes)
    return {
        level: {"count": counts.get(level, 0), "percentage": percentage(counts.get(level, 0), total)}
        for level in range(1, 11)
    }


def hourly_distribution(episodes: Sequence[Episode]) -> list[int]:
    hours = [0] * 24
    for ep in episodes:
        hours[ep.hour] += 1
    return hours


def daily_distribution(episodes: Sequence[Episode]) -> dict[str, int]:
    days = {name: 0 for name in DAY_NAMES}
    for ep in episodes:
        days[DAY_NAMES[weekday_index(ep.timestamp)]] += 1
    return days


def weekly_distribution(episodes: Sequence[Episode]) -> dict[str, int]:
    weeks: dict[str, int] = {}
    for ep in episodes:
        key = week_key(ep.timestamp)
        weeks[key] = weeks.get(key, 0) + 1
    return weeks


def episodes_per_day(episodes: Sequence[Episode]) -> dict[str, Any]:
    by_date = dict(Counter(ep.day for ep in episodes))
    counts = list(by_date.values())
    return {
        "average": round(mean(counts), 2),
        "max": max(counts) if counts else 0,
        "min": min(counts) if counts else 0,
        "by_date": by_date,
    }


def most_active_time(episodes: Sequence[Episode]) -> dict[str, Any]:
    hours = hourly_distribution(episodes)
    peak = hours.index(max(hours))
    return {
        "hour": peak,
        "time_range": hour_range(peak),
        "count": hours[peak],
        "distribution": hours,
    }


def widget_usage(episodes: Sequence[Episode]) -> dict[str, int]:
    return dict(Counter(ep.widget_id for ep in episodes).most_common())


def total_days(episodes: Sequence[Episode]) -> int:
    """Days spanned by the history, counting both ends."""
    if not episodes:
        return 1
    epochs = [ep.epoch for ep in episodes]
    return max(1, math.floor((max(epochs) - min(epochs)) / 86400) + 1)


def widget_frequencies(episodes: Sequence[Episode]) -> dict[str, dict[str, float]]:
    days = total_days(episodes)
    weeks = max(1.0, days / 7)
    total = len(episodes)
    return {
        widget: {
            "total": count,
            "per_day": round(count / days, 2),
            "per_week": round(count / weeks, 2),
            "percentage": percentage(count, total),
        }
        for widget, count in widget_usage(episodes).items()
    }


# ---------------------------------------------------------------------------
# Temporal patterns
# ---------------------------------------------------------------------------

def daily_patterns(episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
    days: dict[str, dict[str, Any]] = {}
    for ep in episodes:
        bucket = days.setdefault(ep.day, {"count": 0, "total_severity": 0, "episodes": []})
        bucket["count"] += 1
        bucket["total_severity"] += ep.severity
        bucket["episodes"].append(ep.episode_id)
    for bucket in days.values():
        bucket["avg_severity"] = round(bucket["total_severity"] / bucket["count"], 2)
    return days


def weekly_patterns(episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
    weeks: dict[str, dict[str, Any]] = {}
    for ep in episodes:
        bucket = weeks.setdefault(
            week_key(ep.timestamp),
            {"count": 0, "total_severity": 0, "high_severity_count": 0},
        )
        bucket["count"] += 1
        bucket["total_severity"] += ep.severity
        if ep.severity >= HIGH_SEVERITY_THRESHOLD:
            bucket["high_severity_count"] += 1
    for bucket in weeks.values():
        bucket["avg_severity"] = round(bucket["total_severity"] / bucket["count"], 2)
        bucket["high_severity_rate"] = percentage(bucket["high_severity_count"], bucket["count"])
    return weeks


def time_of_day_patterns(episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
    total = len(episodes)
    patterns = {}
    for name, (start, end) in TIME_PERIODS.items():
        matching = [ep.severity for ep in episodes if start <= ep.hour < end]
        patterns[name] = {
            "start": start,
            "end": end,
            "count": len(matching),
            "percentage": percentage(len(matching), total),
            "avg_severity": round(mean(matching), 2),
        }
    return patterns


def _describe_cluster(cluster: list[Episode]) -> dict[str, Any]:
    severities = [ep.severity for ep in cluster]
    widgets = list(dict.fromkeys(ep.widget_id for ep in cluster))
    return {
        "size": len(cluster),
        "duration_minutes": round((cluster[-1].epoch - cluster[0].epoch) / 60),
        "avg_severity": round(mean(severities), 2),
        "max_severity": max(severities),
        "start_time": cluster[0].created_at,
        "widgets_used": widgets,
    }


def episode_clustering(
    episodes: Sequence[Episode],
    gap_seconds: int = CLUSTER_GAP_SECONDS,
) -> dict[str, Any]:
    """Group episodes logged within gap_seconds of the previous one."""
    clusters: list[dict[str, Any]] = []
    current: list[Episode] = []
    for ep in episodes:
        if current and ep.epoch - current[-1].epoch <= gap_seconds:
            current.append(ep)
            continue
        if len(current) >= 2:
            clusters.append(_describe_cluster(current))
        current = [ep]
    if len(current) >= 2:
        clusters.append(_describe_cluster(current))

    rate = round(len(clusters) * 2 / len(episodes) * 100, 1) if episodes else 0.0
    return {
        "clusters": clusters,
        "cluster_count": len(clusters),
        "clustering_rate": rate,
    }


def peak_times(episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
    if not episodes:
        return {}

    hours = hourly_distribution(episodes)
    peak_hour = hours.index(max(hours))

    days = daily_distribution(episodes)
    peak_day = max(DAY_NAMES, key=lambda name: days[name])

    periods = time_of_day_patterns(episodes)
    peak_period = max(periods, key=lambda name: periods[name]["count"])

    return {
        "hour": {
            "value": peak_hour,
            "label": hour_range(peak_hour),
            "episode_count": hours[peak_hour],
        },
        "day_of_week": {
            "value": DAY_NAMES.index(peak_day),
            "label": peak_day,
            "episode_count": days[peak_day],
        },
        "time_period": {
            "value": peak_period,
            "label": period_label(peak_period),
            "episode_count": periods[peak_period]["count"],
        },
    }


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------

def check_weekly_cycle(episodes: Sequence[Episode]) -> dict[str, Any]:
    by_day: dict[int, list[int]] = {i: [] for i in range(7)}
    for ep in episodes:
        by_day[weekday_index(ep.timestamp)].append(ep.severity)
    averages = [mean(by_day[i]) for i in range(7)]
    variation = std_dev(averages)
    return {
        "has_weekly_pattern": variation > 1,
        "variation": round(variation, 2),
        "pattern": {DAY_NAMES[i]: round(averages[i], 2) for i in range(7)},
    }


def cycle_strength(values: Sequence[float], length: int) -> float:
    """Mean lag correlation between each value and the one `length` steps later."""
    n = len(values)
    if length < 1 or n < 2 * length:
        return 0.0

    correlations = []
    for offset in range(length):
        xs, ys = [], []
        for i in range(offset, n - length, length):
            xs.append(values[i])
            ys.append(values[i + length])
        if len(xs) >= 2:
            correlations.append(correlation(xs, ys))
    return mean(correlations)


def cycle_confidence(strength: float, sample_size: int) -> str:
    score = strength * min(1.0, sample_size / 100)
    if score > 0.8:
        return "high"
    if score > 0.6:
        return "moderate"
    return "low"


def detect_cycles(
    episodes: Sequence[Episode],
    threshold: float = CYCLE_STRENGTH_THRESHOLD,
    max_length: int = MAX_CYCLE_LENGTH,
) -> dict[str, Any]:
    values = [ep.severity for ep in episodes]
    n = len(values)
    if n < MIN_CYCLE_EPISODES:
        return {"message": "Not enough data for cycle detection"}

    detected = []
    for length in range(3, min(max_length, n // 2) + 1):
        strength = cycle_strength(values, length)
        if strength > threshold:
            detected.append({
                "length_days": length,
                "strength": round(strength, 2),
                "confidence": cycle_confidence(strength, n),
            })

    return {
        "weekly": check_weekly_cycle(episodes),
        "detected_cycles": detected,
    }


def next_cycle_occurrence(
    episodes: Sequence[Episode],
    cycle_length: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Project the next peak of a cycle from the most recent peak day.

    All three keys are None when no peak day can be found.
    """
    now = now or datetime.now(timezone.utc)
    daily = {
        day: bucket["total_severity"] / bucket["count"]
        for day, bucket in daily_patterns(episodes).items()
    }
    no_peak = {"last_peak": None, "next_occurrence": None, "days_until": None}
    if not daily:
        return no_peak

    threshold = mean(list(daily.values())) + 1
    peak_day = None
    for day, avg in daily.items():
        if avg >= threshold:
            peak_day = day
    if peak_day is None:
        high = [ep for ep in episodes if ep.severity >= HIGH_SEVERITY_THRESHOLD]
        if not high:
            return no_peak
        peak_day = high[-1].day

    peak = datetime.strptime(peak_day, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    next_peak = peak + timedelta(days=cycle_length)
    days_until = max(0, math.floor((next_peak - now).total_seconds() / 86400))
    return {
        "last_peak": peak_day,
        "next_occurrence": next_peak.strftime("%Y-%m-%d"),
        "days_until": days_until,
    }
