"""Severity and frequency trend estimation.

Two families live here: the descriptive trends used in pattern reports
(moving averages, first-vs-last week) and the regression trends used by the
predictive alert models.
"""

from __future__ import annotations

from typing import Any, Sequence

from spiralengine.engine.stats import (
    clamp,
    half_split_change,
    linear_regression,
    mean,
    moving_averages,
)
from spiralengine.engine.temporal import weekly_distribution
from spiralengine.models.episode import Episode, Widget


# ═══════════════════════════════════════════════════════════════════════════
# Descriptive trends
# ═══════════════════════════════════════════════════════════════════════════

def severity_trend(episodes: Sequence[Episode]) -> dict[str, Any]:
    """Compare the first and last thirds of the severity moving average."""
    values = [ep.severity for ep in episodes]
    n = len(values)
    if n < 2:
        return {"trend": "insufficient_data"}

    window = max(1, min(7, n // 3))
    averages = moving_averages(values, window)
    size = max(1, len(averages) // 3)
    change = mean(averages[-size:]) - mean(averages[:size])

    if change < -0.5:
        trend = "improving"
    elif change > 0.5:
        trend = "worsening"
    else:
        trend = "stable"

    return {
        "trend": trend,
        "change": round(change, 2),
        "moving_averages": [round(v, 2) for v in averages],
    }


def frequency_trend(episodes: Sequence[Episode]) -> dict[str, Any]:
    weekly = weekly_distribution(episodes)
    counts = list(weekly.values())
    if len(counts) < 2:
        return {"trend": "insufficient_data"}

    change = counts[-1] - counts[0]
    if change < -2:
        trend = "decreasing"
    elif change > 2:
        trend = "increasing"
    else:
        trend = "stable"

    return {
        "trend": trend,
        "first_week_count": counts[0],
        "last_week_count": counts[-1],
        "weekly_counts": weekly,
    }


def improvement_score(episodes: Sequence[Episode]) -> int:
    """0-100 score; 50 is neutral."""
    score = 50

    severity = severity_trend(episodes)["trend"]
    if severity == "improving":
        score += 20
    elif severity == "worsening":
        score -= 20

    frequency = frequency_trend(episodes)["trend"]
    if frequency == "decreasing":
        score += 15
    elif frequency == "increasing":
        score -= 15

    coping = sum(1 for ep in episodes if ep.widget_id == Widget.COPING_LOGGER)
    if episodes and coping / len(episodes) > 0.3:
        score += 15

    return int(clamp(score, 0, 100))


def half_split_trend(values: Sequence[float], tolerance: float = 0.5) -> str:
    """Direction of a severity-like series where lower is better."""
    change = half_split_change(values)
    if change < -tolerance:
        return "improving"
    if change > tolerance:
        return "worsening"
    return "stable"


# ═══════════════════════════════════════════════════════════════════════════
# Regression trends (prediction models)
# ═══════════════════════════════════════════════════════════════════════════

def regression_severity_trend(
    episodes: Sequence[Episode],
    window_size: int = 7,
    min_data_points: int = 14,
) -> dict[str, Any]:
    """Fit a line through the last window_size severities and project one step."""
    if len(episodes) < min_data_points:
        return {"prediction": "insufficient_data"}

    values = [ep.severity for ep in episodes][-window_size:]
    n = len(values)
    fit = linear_regression(list(range(1, n + 1)), values)
    slope = fit["slope"]
    expected = int(clamp(round(fit["intercept"] + slope * (n + 1)), 1, 10))

    if slope > 0.5:
        prediction = "escalating"
        confidence = min(0.9, 0.5 + abs(slope) * 0.2)
    elif slope < -0.5:
        prediction = "improving"
        confidence = min(0.9, 0.5 + abs(slope) * 0.2)
    else:
        prediction = "stable"
        confidence = 0.5

    return {
        "prediction": prediction,
        "confidence": confidence,
        "slope": round(slope, 4),
        "expected_severity": expected,
        "r_squared": round(fit["r_squared"], 4),
    }


def regression_frequency_trend(episodes: Sequence[Episode]) -> dict[str, Any]:
    """Fit a line through the last four weekly episode counts."""
    counts = list(weekly_distribution(episodes).values())
    if len(counts) < 4:
        return {"prediction": "insufficient_data"}

    recent = counts[-4:]
    fit = linear_regression([1, 2, 3, 4], recent)
    slope = fit["slope"]

    if slope > 0.5:
        prediction = "increasing"
        confidence = min(0.85, 0.5 + abs(slope) * 0.15)
    elif slope < -0.5:
        prediction = "decreasing"
        confidence = min(0.85, 0.5 + abs(slope) * 0.15)
    else:
        prediction = "stable"
        confidence = 0.5

    return {
        "prediction": prediction,
        "confidence": confidence,
        "slope": round(slope, 4),
        "expected_episodes": max(0, round(fit["intercept"] + slope * 5)),
        "current_rate": recent[-1],
    }
