"""Widget-specific signal extraction: sleep, medication, coping, mood, crisis text.

Pure functions over episode lists, shared by the insight generator and the
predictive alert models.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Sequence

from spiralengine.engine.stats import clamp, linear_regression, mean, std_dev
from spiralengine.models.episode import Episode, Widget, parse_timestamp

# Phrases that warrant a crisis check when they appear in free text.
CRISIS_PHRASES = (
    "kill myself",
    "end my life",
    "ending my life",
    "suicide",
    "suicidal",
    "want to die",
    "better off dead",
    "no reason to live",
    "hurt myself",
    "self harm",
    "self-harm",
    "can't go on",
    "cannot go on",
)

TEXT_FIELDS = ("text", "content", "entry", "thought", "automatic_thought", "notes")

CRISIS_TEXT_WIDGETS = {Widget.JOURNAL_ENTRY, Widget.THOUGHT_CHALLENGER}


def number(value: Any) -> float | None:
    """Numeric value of a widget field, None when missing or malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def by_widget(episodes: Iterable[Episode], *widgets: str) -> list[Episode]:
    return [ep for ep in episodes if ep.widget_id in widgets]


def longest_streak(days: Iterable[str]) -> int:
    """Longest run of consecutive calendar days in a set of YYYY-MM-DD strings."""
    ordered = sorted({date.fromisoformat(d) for d in days})
    best = current = 0
    previous = None
    for day in ordered:
        current = current + 1 if previous and day - previous == timedelta(days=1) else 1
        best = max(best, current)
        previous = day
    return best


# ---------------------------------------------------------------------------
# Sleep
# ---------------------------------------------------------------------------

def is_sleep_related(episode: Episode) -> bool:
    if episode.widget_id == Widget.SLEEP_TRACKER:
        return True
    tags = episode.data.get("tags") or []
    return isinstance(tags, (list, tuple)) and "sleep" in tags


def sleep_qualities(episodes: Iterable[Episode]) -> list[float]:
    qualities = []
    for ep in episodes:
        if not is_sleep_related(ep):
            continue
        quality = number(ep.data.get("quality"))
        if quality is not None:
            qualities.append(quality)
    return qualities


def average_sleep_quality(episodes: Iterable[Episode], default: float = 5.0) -> float:
    qualities = sleep_qualities(episodes)
    return mean(qualities) if qualities else default


def _bedtime_seconds(value: Any) -> int | None:
    """Seconds after noon so that 23:30 and 00:30 sit an hour apart."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        if "T" in text or "-" in text:
            moment = parse_timestamp(text)
            hours, minutes, seconds = moment.hour, moment.minute, moment.second
        else:
            parts = [int(p) for p in text.split(":")]
            hours, minutes = parts[0], parts[1] if len(parts) > 1 else 0
            seconds = parts[2] if len(parts) > 2 else 0
    except (ValueError, IndexError):
        return None
    of_day = hours * 3600 + minutes * 60 + seconds
    return of_day - 43200 if of_day >= 43200 else of_day + 43200


def identify_sleep_pattern(episodes: Iterable[Episode]) -> str:
    bedtimes, durations = [], []
    for ep in episodes:
        bedtime = _bedtime_seconds(ep.data.get("bedtime"))
        if bedtime is not None:
            bedtimes.append(bedtime)
        duration = number(ep.data.get("duration"))
        if duration is not None:
            durations.append(duration)

    if not bedtimes:
        return "unknown"
    if len(bedtimes) >= 2 and std_dev(bedtimes) > 3600:
        return "irregular_schedule"
    if durations and mean(durations) < 6:
        return "insufficient_duration"
    return "regular"


def sleep_quality_trend(episodes: Sequence[Episode]) -> dict[str, Any]:
    sleep = [ep for ep in episodes if is_sleep_related(ep)]
    if not sleep:
        return {"confidence": 0.0, "trend": "unknown"}

    qualities = sleep_qualities(sleep)
    if len(qualities) < 3:
        return {"confidence": 0.0, "trend": "insufficient_data"}

    n = len(qualities)
    fit = linear_regression(list(range(1, n + 1)), qualities)
    slope = fit["slope"]
    if slope < -0.3:
        trend = "declining"
        confidence = min(0.85, 0.5 + abs(slope) * 0.2)
    elif slope > 0.3:
        trend = "improving"
        confidence = min(0.85, 0.5 + abs(slope) * 0.2)
    else:
        trend = "stable"
        confidence = 0.5

    return {
        "confidence": confidence,
        "trend": trend,
        "pattern": identify_sleep_pattern(sleep),
        "expected_quality": int(clamp(round(fit["intercept"] + slope * (n + 1)), 1, 10)),
    }


# ---------------------------------------------------------------------------
# Medication
# ---------------------------------------------------------------------------

def medication_adherence(episodes: Iterable[Episode], expected_days: int = 14) -> dict[str, Any]:
    logged_days = {ep.day for ep in episodes if ep.widget_id == Widget.MEDICATION_TRACKER}
    if not logged_days:
        return {"rate": 1.0, "missed_doses": 0, "pattern": "no_data"}

    rate = len(logged_days) / expected_days
    if rate < 0.5:
        pattern = "poor_adherence"
    elif rate < 0.8:
        pattern = "inconsistent"
    else:
        pattern = "regular"

    return {
        "rate": rate,
        "missed_doses": max(0, expected_days - len(logged_days)),
        "pattern": pattern,
    }


# ---------------------------------------------------------------------------
# Coping skills
# ---------------------------------------------------------------------------

def coping_effectiveness_by_skill(episodes: Iterable[Episode]) -> dict[str, dict[str, float]]:
    scores: dict[str, list[float]] = defaultdict(list)
    for ep in by_widget(episodes, Widget.COPING_LOGGER):
        skill = ep.data.get("skill_category")
        effectiveness = number(ep.data.get("effectiveness"))
        if skill and effectiveness is not None:
            scores[skill].append(effectiveness)
    return {
        skill: {"uses": len(values), "avg_effectiveness": round(mean(values), 2)}
        for skill, values in scores.items()
    }


def most_effective_skill(episodes: Iterable[Episode]) -> dict[str, Any] | None:
    skills = coping_effectiveness_by_skill(episodes)
    if not skills:
        return None
    best = max(skills, key=lambda s: skills[s]["avg_effectiveness"])
    return {"skill": best, "effectiveness": skills[best]["avg_effectiveness"]}


def effectiveness_scores(episodes: Iterable[Episode]) -> list[float]:
    scores = [number(ep.data.get("effectiveness")) for ep in episodes]
    return [s for s in scores if s is not None]


def coping_improvement(coping_episodes: Sequence[Episode]) -> str:
    if len(coping_episodes) < 10:
        return "insufficient_data"

    mid = len(coping_episodes) // 2
    first = effectiveness_scores(coping_episodes[:mid])
    second = effectiveness_scores(coping_episodes[mid:])
    if not first or not second:
        return "no_effectiveness_data"

    change = mean(second) - mean(first)
    if change > 1:
        return "significant_improvement"
    if change > 0:
        return "moderate_improvement"
    if change < -1:
        return "declining"
    return "stable"


# ---------------------------------------------------------------------------
# Mood
# ---------------------------------------------------------------------------

def dominant_mood(moods: Sequence[str]) -> str:
    if not moods:
        return "unknown"
    return Counter(moods).most_common(1)[0][0]


def mood_stability(moods: Sequence[str]) -> str:
    if len(moods) < 2:
        return "insufficient_data"
    ratio = len(set(moods)) / len(moods)
    if ratio <= 0.3:
        return "stable"
    if ratio <= 0.6:
        return "moderate"
    return "variable"


# ---------------------------------------------------------------------------
# Crisis text
# ---------------------------------------------------------------------------

def contains_crisis_indicators(data: dict[str, Any]) -> bool:
    """True when any free-text field of a widget payload contains a crisis phrase."""
    for key in TEXT_FIELDS:
        value = data.get(key)
        if isinstance(value, str):
            text = value.lower().replace("’", "'")
            if any(phrase in text for phrase in CRISIS_PHRASES):
                return True
    return False


def episodes_between(
    episodes: Iterable[Episode],
    start: datetime,
    end: datetime | None = None,
) -> list[Episode]:
    return [ep for ep in episodes if ep.timestamp >= start and (end is None or ep.timestamp < end)]
