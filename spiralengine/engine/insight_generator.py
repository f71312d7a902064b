"""Insight reports built from a user's episode history.

Five report types share one pipeline: gather the period's episodes, check the
type's minimum, build the type-specific sections, cache the result.

    Type        | Period | Min episodes | Cache TTL
    daily       | 1d     | 1            | 1h
    weekly      | 7d     | 5            | 6h
    monthly     | 30d    | 20           | 12h
    milestone   | 365d   | 50           | 24h
    predictive  | 60d    | 30           | 6h
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import redis

from spiralengine.ai.service import AIService
from spiralengine.config.rules import insight_types
from spiralengine.config.settings import HIGH_SEVERITY_THRESHOLD
from spiralengine.engine import episode_store, insight_store
from spiralengine.engine.pattern_analyzer import MILESTONES, PatternAnalyzer
from spiralengine.engine.result_cache import cache_get, cache_set
from spiralengine.engine.stats import clamp, mean, percentage
from spiralengine.engine.temporal import (
    daily_patterns,
    next_cycle_occurrence,
    time_period,
    weekly_patterns,
    widget_usage,
)
from spiralengine.engine.trends import (
    half_split_trend,
    improvement_score,
    regression_frequency_trend,
    regression_severity_trend,
)
from spiralengine.engine.wellness import (
    by_widget,
    coping_effectiveness_by_skill,
    coping_improvement,
    dominant_mood,
    effectiveness_scores,
    episodes_between,
    identify_sleep_pattern,
    is_sleep_related,
    longest_streak,
    medication_adherence,
    mood_stability,
    most_effective_skill,
    number,
    sleep_qualities,
    sleep_quality_trend,
)
from spiralengine.models.episode import Episode, Widget, parse_timestamp

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Message tables
# ═══════════════════════════════════════════════════════════════════════════

ENCOURAGEMENTS = {
    "difficult": [
        "Tough days don't last forever. You've got this.",
        "It's okay to have hard days. Tomorrow is a fresh start.",
        "You're stronger than you know. Keep going.",
    ],
    "positive": [
        "Great job today! Keep up the positive momentum.",
        "You're making excellent progress. Celebrate the small wins!",
        "Your dedication to self-care is inspiring!",
    ],
    "neutral": [
        "You're doing great by tracking your mental health.",
        "Every small step counts on your journey.",
        "Remember to be kind to yourself today.",
    ],
}

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

GRADE_BANDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))

ACTIVE_GOAL_STATUSES = ("active", "paused")

RISK_MEASURES = {
    "rising_severity": "Plan daily check-ins and a short coping practice each evening",
    "frequent_high_severity": "Agree on a support plan with someone you trust",
    "increasing_frequency": "Schedule breaks on your busiest days",
    "episode_clustering": "When one episode starts, pause for a grounding exercise before continuing",
    "poor_sleep": "Protect a consistent bedtime for the next two weeks",
    "cycle_peak": "Lighten your schedule around the expected peak",
}


def _grade(score: float) -> str:
    for floor, letter in GRADE_BANDS:
        if score >= floor:
            return letter
    return "F"


def _severities(episodes: Sequence[Episode]) -> list[int]:
    return [ep.severity for ep in episodes]


def period_stats(episodes: Sequence[Episode]) -> dict[str, Any]:
    severities = _severities(episodes)
    usage = widget_usage(episodes)
    return {
        "total_episodes": len(episodes),
        "avg_severity": round(mean(severities), 2),
        "max_severity": max(severities) if severities else 0,
        "min_severity": min(severities) if severities else 0,
        "widget_usage": usage,
        "most_used_widget": next(iter(usage), None),
    }


def prioritize_recommendations(recommendations: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(recommendations, key=lambda rec: PRIORITY_ORDER.get(rec.get("priority"), 3))


def contextual_recommendations(context: dict[str, Any]) -> list[dict[str, str]]:
    recommendations = []
    hour = context.get("time_of_day")
    if hour is not None:
        if hour >= 22 or hour <= 6:
            recommendations.append({
                "type": "sleep",
                "priority": "high",
                "message": "Consider a sleep hygiene routine for better rest",
                "context": "nighttime",
            })
        elif 6 < hour <= 9:
            recommendations.append({
                "type": "morning_routine",
                "priority": "medium",
                "message": "Start your day with a mindfulness practice",
                "context": "morning",
            })
    if context.get("current_severity", 0) >= 7:
        recommendations.append({
            "type": "crisis_support",
            "priority": "high",
            "message": "Consider reaching out to your support network",
            "context": "high_severity",
        })
    return recommendations


@dataclass
class InsightGenerator:
    r: redis.Redis | None = None
    pattern_analyzer: PatternAnalyzer | None = None
    ai_service: AIService | None = None
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if self.pattern_analyzer is None:
            self.pattern_analyzer = PatternAnalyzer(r=self.r, ai_service=self.ai_service)

    # ═══════════════════════════════════════════════════════════════════════
    # Pipeline
    # ═══════════════════════════════════════════════════════════════════════

    def generate_insights(
        self,
        user_id: str,
        insight_type: str = "daily",
        days: int | None = None,
        use_ai: bool = True,
        force_refresh: bool = False,
        milestone: int | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        types = insight_types()
        if insight_type not in types:
            return {"error": "Invalid insight type"}

        now = now or datetime.now(timezone.utc)
        key = self.cache_key(user_id, insight_type, now)
        if not force_refresh:
            cached = cache_get(key, r=self.r)
            if cached is not None:
                logger.debug("Serving cached %s insights for %s", insight_type, user_id)
                return cached

        insights = self.generate_fresh_insights(user_id, insight_type, days, use_ai, milestone, now)
        if "error" not in insights:
            cache_set(key, insights, types[insight_type]["cache_ttl"], r=self.r)
            logger.info("Generated %s insights for user %s", insight_type, user_id)
        return insights

    def cache_key(self, user_id: str, insight_type: str, now: datetime) -> str:
        key = f"insights:{user_id}:{insight_type}:{now:%Y-%m-%d}"
        if insight_type == "weekly":
            key += f":W{now.isocalendar()[1]:02d}"
        elif insight_type == "monthly":
            key += f":M{now:%m}"
        return key

    def generate_fresh_insights(
        self,
        user_id: str,
        insight_type: str,
        days: int | None,
        use_ai: bool,
        milestone: int | None,
        now: datetime,
    ) -> dict[str, Any]:
        config = insight_types()[insight_type]
        period = days or config["data_period_days"]
        data = self.gather_insight_data(user_id, period, now)

        if data["episode_count"] < config["min_episodes"]:
            return {"error": f"Need at least {config['min_episodes']} episodes for {config['name']}"}

        if insight_type == "daily":
            return self.generate_daily_insights(data, use_ai)
        if insight_type == "weekly":
            return self.generate_weekly_insights(data, use_ai)
        if insight_type == "monthly":
            return self.generate_monthly_insights(data, use_ai)
        if insight_type == "milestone":
            return self.generate_milestone_insights(data, use_ai, milestone)
        return self.generate_predictive_insights(data, use_ai)

    def gather_insight_data(self, user_id: str, period_days: int, now: datetime) -> dict[str, Any]:
        episodes = episode_store.get_user_episodes(
            user_id, since=now - timedelta(days=period_days), until=now, r=self.r,
        )
        first = episode_store.first_episode(user_id, r=self.r)
        return {
            "user_id": user_id,
            "now": now,
            "period_days": period_days,
            "episodes": episodes,
            "episode_count": len(episodes),
            "user_profile": {
                "user_id": user_id,
                "total_episodes": episode_store.count_user_episodes(user_id, r=self.r),
                "first_episode_at": first.created_at if first else None,
            },
            "goals": self.get_active_goals(user_id),
            "stats": period_stats(episodes),
        }

    def get_active_goals(self, user_id: str) -> list[Episode]:
        goals = episode_store.get_user_episodes(user_id, widgets=[Widget.GOAL_SETTING], r=self.r)
        return [ep for ep in goals if ep.data.get("status") in ACTIVE_GOAL_STATUSES]

    def _ai_insights(self, data: dict[str, Any], focus_areas: list[str]) -> dict[str, Any] | None:
        if self.ai_service is None:
            return None
        result = self.ai_service.generate_insights(
            data["user_id"],
            {"focus_areas": focus_areas, "days": data["period_days"]},
            episodes=data["episodes"],
            now=data["now"],
        )
        return None if "error" in result else result.get("data")

    def _patterns(self, data: dict[str, Any], include_ai: bool = False) -> dict[str, Any] | None:
        results = self.pattern_analyzer.analyze_episodes(
            data["user_id"], data["episodes"], days=data["period_days"], include_ai=include_ai,
        )
        return None if "error" in results else results

    # ═══════════════════════════════════════════════════════════════════════
    # Daily
    # ═══════════════════════════════════════════════════════════════════════

    def generate_daily_insights(self, data: dict[str, Any], use_ai: bool = True) -> dict[str, Any]:
        now = data["now"]
        today = [ep for ep in data["episodes"] if ep.day == now.strftime("%Y-%m-%d")]
        coping = by_widget(today, Widget.COPING_LOGGER)

        report: dict[str, Any] = {
            "summary": self.daily_summary(today),
            "mood_analysis": self.analyze_daily_mood(today),
            "notable_events": self.identify_notable_events(data["user_id"], today),
        }
        if coping:
            report["coping_effectiveness"] = self.analyze_coping_effectiveness(
                coping, data["stats"]["avg_severity"],
            )
        if use_ai:
            ai = self._ai_insights(data, ["daily_patterns", "mood", "coping"])
            if ai:
                report["ai_insights"] = ai
        report["recommendations"] = self.daily_recommendations(data, has_coping=bool(coping))
        report["encouragement"] = self.encouragement(data["stats"]["avg_severity"] or 5)

        return {
            "type": "daily",
            "date": now.strftime("%Y-%m-%d"),
            "user_id": data["user_id"],
            "data": report,
        }

    def daily_summary(self, today: Sequence[Episode]) -> dict[str, Any]:
        severities = _severities(today)
        return {
            "episode_count": len(today),
            "widgets_used": list(dict.fromkeys(ep.widget_id for ep in today)),
            "avg_severity": round(mean(severities), 2),
            "highest_severity": max(severities) if severities else 0,
            "lowest_severity": min(severities) if severities else 0,
        }

    def analyze_daily_mood(self, today: Sequence[Episode]) -> dict[str, Any]:
        mood_episodes = by_widget(today, Widget.MOOD_TRACKER)
        if not mood_episodes:
            return {"message": "No mood data for today"}
        moods = [ep.data["mood"] for ep in mood_episodes if ep.data.get("mood")]
        return {
            "moods_logged": moods,
            "dominant_mood": dominant_mood(moods),
            "mood_stability": mood_stability(moods),
        }

    def identify_notable_events(self, user_id: str, today: Sequence[Episode]) -> list[dict[str, Any]]:
        notable = []
        high = [ep for ep in today if ep.severity >= 8]
        if high:
            notable.append({
                "type": "high_severity",
                "count": len(high),
                "message": f"{len(high)} high severity episode(s) today",
            })
        for widget in dict.fromkeys(ep.widget_id for ep in today):
            if episode_store.count_widget_episodes(user_id, widget, r=self.r) == 1:
                notable.append({
                    "type": "new_widget",
                    "widget": widget,
                    "message": f"First time using {widget}",
                })
        return notable

    def analyze_coping_effectiveness(
        self,
        coping: Sequence[Episode],
        avg_severity: float,
    ) -> dict[str, Any]:
        scores = effectiveness_scores(coping)
        skills = [ep.data["skill_category"] for ep in coping if ep.data.get("skill_category")]
        return {
            "skills_used": list(dict.fromkeys(skills)),
            "avg_effectiveness": round(mean(scores), 2),
            "most_effective": most_effective_skill(coping),
            "recommendation": self.recommend_coping_skill(avg_severity),
        }

    def recommend_coping_skill(self, avg_severity: float) -> str:
        if avg_severity >= 7:
            return "Try grounding techniques or deep breathing exercises"
        if avg_severity >= 5:
            return "Consider mindfulness or progressive muscle relaxation"
        return "Maintain your routine with regular self-care activities"

    def daily_recommendations(self, data: dict[str, Any], has_coping: bool) -> list[dict[str, str]]:
        recommendations = []
        if data["stats"]["avg_severity"] > 6:
            recommendations.append({
                "type": "self_care",
                "priority": "high",
                "message": "Consider taking extra time for self-care activities today",
            })
        if data["now"].hour >= 20 and self.has_late_night_pattern(data["episodes"]):
            recommendations.append({
                "type": "sleep",
                "priority": "medium",
                "message": "Try to establish a calming bedtime routine tonight",
            })
        if not has_coping:
            recommendations.append({
                "type": "coping",
                "priority": "medium",
                "message": "Try logging a coping skill today to track what helps",
            })
        return recommendations

    def has_late_night_pattern(self, episodes: Sequence[Episode]) -> bool:
        if not episodes:
            return False
        late = sum(1 for ep in episodes if ep.hour >= 22 or ep.hour <= 2)
        return late / len(episodes) > 0.3

    def encouragement(self, avg_severity: float) -> str:
        if avg_severity >= 7:
            category = "difficult"
        elif avg_severity <= 4:
            category = "positive"
        else:
            category = "neutral"
        return self.rng.choice(ENCOURAGEMENTS[category])

    # ═══════════════════════════════════════════════════════════════════════
    # Weekly
    # ═══════════════════════════════════════════════════════════════════════

    def generate_weekly_insights(self, data: dict[str, Any], use_ai: bool = True) -> dict[str, Any]:
        now = data["now"]
        patterns = self._patterns(data)
        sleep = [ep for ep in data["episodes"] if is_sleep_related(ep)]

        report: dict[str, Any] = {"overview": self.weekly_overview(data)}
        if patterns:
            report["patterns"] = self.summarize_patterns(patterns)
        report["progress"] = self.weekly_progress(data)
        report["triggers"] = self.weekly_triggers(data["episodes"])
        if sleep:
            report["sleep_analysis"] = self.sleep_analysis(sleep)
        if use_ai:
            ai = self._ai_insights(data, ["weekly_patterns", "progress", "triggers"])
            if ai:
                report["ai_insights"] = ai
        report["week_ahead"] = self.plan_week_ahead(patterns, data)
        report["achievements"] = self.weekly_achievements(data, report["progress"])

        year, week, _ = now.isocalendar()
        return {
            "type": "weekly",
            "week": f"{year}-{week:02d}",
            "user_id": data["user_id"],
            "data": report,
        }

    def weekly_overview(self, data: dict[str, Any]) -> dict[str, Any]:
        now = data["now"]
        week_start = (now - timedelta(days=now.weekday())).replace(
            hour=0, minute=0, second=0, microsecond=0,
        )
        week = [ep for ep in data["episodes"] if ep.timestamp >= week_start]
        days = daily_patterns(week)
        severities = _severities(week)

        most_active = None
        if days:
            busiest = max(days, key=lambda d: days[d]["count"])
            most_active = {
                "day": datetime.strptime(busiest, "%Y-%m-%d").strftime("%A"),
                "episodes": days[busiest]["count"],
            }

        averages = [d["avg_severity"] for d in days.values()]
        return {
            "episode_count": len(week),
            "days_logged": len(days),
            "most_active_day": most_active,
            "severity_stats": {
                "average": round(mean(severities), 2),
                "highest": max(severities) if severities else 0,
                "lowest": min(severities) if severities else 0,
                "trend": half_split_trend(averages) if len(averages) >= 3 else "insufficient_data",
            },
        }

    def summarize_patterns(self, patterns: dict[str, Any]) -> dict[str, Any]:
        families = patterns.get("patterns", {})
        peak = families.get("temporal", {}).get("peak_times", {}).get("time_period", {})
        triggers = families.get("trigger", {}).get("common_triggers", {})
        return {
            "key_patterns": {
                "peak_activity": peak.get("label"),
                "top_triggers": list(triggers)[:3],
            },
            "severity_trend": patterns.get("statistical", {}).get("trends", {}).get("severity", {}).get("trend"),
            "key_findings": patterns.get("summary", {}).get("key_findings", []),
        }

    def weekly_progress(self, data: dict[str, Any]) -> dict[str, Any]:
        now = data["now"]
        this_week = episodes_between(data["episodes"], now - timedelta(days=7))
        last_week = episode_store.get_user_episodes(
            data["user_id"], since=now - timedelta(days=14), until=now - timedelta(days=7), r=self.r,
        )

        change = len(this_week) - len(last_week)
        this_avg = mean(_severities(this_week))
        last_avg = mean(_severities(last_week))
        improved = bool(last_week) and bool(this_week) and this_avg < last_avg

        coping = by_widget(this_week, Widget.COPING_LOGGER)
        effectiveness = mean(effectiveness_scores(coping))
        goals = self.goal_progress(data["goals"])

        score = 50
        if change < -2:
            score += 10
        elif change > 2:
            score -= 10
        if improved:
            score += 20
        if len(coping) >= 5:
            score += 10
        if effectiveness >= 7:
            score += 10
        if goals.get("milestones_completed", 0) > 0:
            score += 10

        return {
            "episodes_trend": {
                "this_week": len(this_week),
                "last_week": len(last_week),
                "change": change,
                "percentage_change": percentage(change, len(last_week)),
            },
            "severity_trend": {
                "this_week": round(this_avg, 2),
                "last_week": round(last_avg, 2),
                "change": round(this_avg - last_avg, 2),
                "improved": improved,
            },
            "coping_usage": {
                "skills_used_count": len(coping),
                "avg_effectiveness": round(effectiveness, 2),
                "improvement": coping_improvement(coping),
            },
            "goal_progress": goals,
            "overall_score": int(clamp(score, 0, 100)),
        }

    def goal_progress(self, goals: Sequence[Episode]) -> dict[str, Any]:
        if not goals:
            return {"message": "No active goals"}
        milestones = [m for goal in goals for m in goal.data.get("milestones") or [] if isinstance(m, dict)]
        return {
            "active_goals": sum(1 for goal in goals if goal.data.get("status") == "active"),
            "milestones_completed": sum(1 for m in milestones if m.get("completed")),
            "milestones_total": len(milestones),
            "goals_by_status": dict(Counter(goal.data.get("status") for goal in goals)),
        }

    def weekly_triggers(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        triggers = by_widget(episodes, Widget.TRIGGER_TRACKER)
        if not triggers:
            return {"message": "No triggers logged this week"}

        categories = Counter(ep.data.get("trigger_category") or "uncategorized" for ep in triggers)
        intensity: dict[str, list[int]] = {}
        for ep in triggers:
            intensity.setdefault(ep.data.get("trigger_category") or "uncategorized", []).append(ep.severity)
        return {
            "total": len(triggers),
            "top_triggers": [
                {"trigger": name, "count": count} for name, count in categories.most_common(3)
            ],
            "avg_severity": round(mean(_severities(triggers)), 2),
            "most_intense": max(intensity, key=lambda name: mean(intensity[name])),
        }

    def sleep_analysis(self, sleep: Sequence[Episode]) -> dict[str, Any]:
        qualities = sleep_qualities(sleep)
        durations = [d for d in (number(ep.data.get("duration")) for ep in sleep) if d is not None]
        return {
            "entries": len(sleep),
            "avg_quality": round(mean(qualities), 2) if qualities else None,
            "avg_duration": round(mean(durations), 2) if durations else None,
            "pattern": identify_sleep_pattern(sleep),
            "trend": sleep_quality_trend(sleep)["trend"],
        }

    def plan_week_ahead(self, patterns: dict[str, Any] | None, data: dict[str, Any]) -> dict[str, Any]:
        plan: dict[str, Any] = {"watch_for": [], "focus_areas": []}
        if patterns:
            peak = patterns["patterns"].get("temporal", {}).get("peak_times")
            if peak:
                plan["watch_for"].append(f"Higher activity on {peak['day_of_week']['label']}s")
                plan["watch_for"].append(
                    f"Episodes tend to cluster in the {peak['time_period']['label'].lower()}"
                )
            plan["focus_areas"] = [rec["type"] for rec in patterns["summary"]["recommendations"]]

        coping = by_widget(data["episodes"], Widget.COPING_LOGGER)
        if len(coping) < 3:
            plan["suggested_goal"] = "Log at least three coping skills this week"
        elif data["stats"]["avg_severity"] > 6:
            plan["suggested_goal"] = "Schedule one restorative activity every day"
        else:
            plan["suggested_goal"] = "Keep your daily check-in streak going"
        return plan

    def weekly_achievements(self, data: dict[str, Any], progress: dict[str, Any]) -> list[dict[str, str]]:
        episodes = data["episodes"]
        achievements = []

        days_logged = len({ep.day for ep in episodes})
        if days_logged >= 5:
            achievements.append({"type": "consistency", "message": f"Logged on {days_logged} days this week"})

        coping = progress["coping_usage"]["skills_used_count"]
        if coping >= 3:
            achievements.append({"type": "coping_practice", "message": f"Used coping skills {coping} times"})

        severity = progress["severity_trend"]
        if severity["improved"]:
            achievements.append({
                "type": "improvement",
                "message": f"Average severity dropped from {severity['last_week']} to {severity['this_week']}",
            })

        if episodes and not any(ep.severity >= 8 for ep in episodes):
            achievements.append({"type": "steady_week", "message": "No high-severity episodes this week"})

        if progress["goal_progress"].get("milestones_completed", 0) > 0:
            achievements.append({"type": "goals", "message": "Completed goal milestones"})

        return achievements

    # ═══════════════════════════════════════════════════════════════════════
    # Monthly
    # ═══════════════════════════════════════════════════════════════════════

    def generate_monthly_insights(self, data: dict[str, Any], use_ai: bool = True) -> dict[str, Any]:
        episodes = data["episodes"]
        patterns = self._patterns(data, include_ai=use_ai)

        report: dict[str, Any] = {}
        if patterns:
            report["comprehensive_patterns"] = patterns
        report["comparison"] = self.compare_to_previous_period(data)
        report["goal_progress"] = self.goal_progress(data["goals"])
        if by_widget(episodes, Widget.MEDICATION_TRACKER):
            report["medication_analysis"] = self.medication_analysis(episodes, data["period_days"])
        report["trigger_deep_dive"] = self.trigger_deep_dive(episodes)
        report["skill_development"] = self.skill_development(episodes)
        if use_ai:
            ai = self._ai_insights(data, ["monthly_review", "patterns", "progress", "triggers"])
            if ai:
                report["ai_comprehensive"] = ai
        report["next_month_plan"] = self.next_month_plan(patterns, data)
        report["report_card"] = self.report_card(data)

        return {
            "type": "monthly",
            "month": data["now"].strftime("%Y-%m"),
            "user_id": data["user_id"],
            "data": report,
        }

    def _period_snapshot(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        severities = _severities(episodes)
        high = sum(1 for s in severities if s >= HIGH_SEVERITY_THRESHOLD)
        return {
            "episode_count": len(episodes),
            "avg_severity": round(mean(severities), 2),
            "high_severity_rate": percentage(high, len(episodes)),
        }

    def compare_to_previous_period(self, data: dict[str, Any]) -> dict[str, Any]:
        now, period = data["now"], data["period_days"]
        previous = episode_store.get_user_episodes(
            data["user_id"],
            since=now - timedelta(days=2 * period),
            until=now - timedelta(days=period),
            r=self.r,
        )
        current = self._period_snapshot(data["episodes"])
        if not previous:
            return {"current": current, "previous": None, "message": "No data for the previous period"}

        before = self._period_snapshot(previous)
        severity_change = round(current["avg_severity"] - before["avg_severity"], 2)
        if severity_change < -0.5:
            direction = "improving"
        elif severity_change > 0.5:
            direction = "worsening"
        else:
            direction = "stable"
        return {
            "current": current,
            "previous": before,
            "changes": {
                "episode_count": current["episode_count"] - before["episode_count"],
                "avg_severity": severity_change,
                "high_severity_rate": round(current["high_severity_rate"] - before["high_severity_rate"], 1),
            },
            "direction": direction,
        }

    def medication_analysis(self, episodes: Sequence[Episode], period_days: int) -> dict[str, Any]:
        adherence = medication_adherence(episodes, expected_days=period_days)
        medication_days = {ep.day for ep in by_widget(episodes, Widget.MEDICATION_TRACKER)}
        on_days = [ep.severity for ep in episodes if ep.day in medication_days]
        off_days = [ep.severity for ep in episodes if ep.day not in medication_days]
        return {
            "adherence_rate": round(adherence["rate"], 2),
            "pattern": adherence["pattern"],
            "missed_days": adherence["missed_doses"],
            "avg_severity_on_medication_days": round(mean(on_days), 2),
            "avg_severity_other_days": round(mean(off_days), 2) if off_days else None,
        }

    def trigger_deep_dive(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        triggers = by_widget(episodes, Widget.TRIGGER_TRACKER)
        if not triggers:
            return {"message": "No trigger data available"}

        midpoint = episodes[0].epoch + (episodes[-1].epoch - episodes[0].epoch) / 2
        grouped: dict[str, list[Episode]] = {}
        for ep in triggers:
            grouped.setdefault(ep.data.get("trigger_category") or "uncategorized", []).append(ep)

        report = {}
        for category, items in sorted(grouped.items(), key=lambda item: -len(item[1])):
            early = sum(1 for ep in items if ep.epoch < midpoint)
            late = len(items) - early
            if late > early:
                trend = "increasing"
            elif late < early:
                trend = "decreasing"
            else:
                trend = "stable"
            peak_hour = Counter(ep.hour for ep in items).most_common(1)[0][0]
            report[category] = {
                "count": len(items),
                "avg_severity": round(mean(_severities(items)), 2),
                "peak_period": time_period(peak_hour),
                "trend": trend,
            }
        return report

    def skill_development(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        coping = by_widget(episodes, Widget.COPING_LOGGER)
        if not coping:
            return {"message": "No coping skills logged this period"}
        skills = coping_effectiveness_by_skill(coping)
        return {
            "total_uses": len(coping),
            "distinct_skills": len(skills),
            "skills": skills,
            "most_effective": most_effective_skill(coping),
            "improvement": coping_improvement(coping),
        }

    def next_month_plan(self, patterns: dict[str, Any] | None, data: dict[str, Any]) -> dict[str, Any]:
        episodes = data["episodes"]
        focus = []
        if patterns:
            summary = patterns["summary"]
            focus = summary["areas_of_concern"] + [rec["message"] for rec in summary["recommendations"]]

        goals = []
        coping_share = percentage(len(by_widget(episodes, Widget.COPING_LOGGER)), len(episodes))
        if coping_share < 20:
            goals.append("Log a coping skill at least three times a week")
        if patterns and patterns["statistical"]["trends"]["severity"]["trend"] == "worsening":
            goals.append("Add a daily check-in to catch rising severity early")
        if len({ep.day for ep in episodes}) < data["period_days"] / 2:
            goals.append("Aim to log something on most days")
        if not goals:
            goals.append("Maintain your current routine")

        return {"focus_areas": focus[:3], "goals": goals}

    def report_card(self, data: dict[str, Any]) -> dict[str, Any]:
        episodes = data["episodes"]
        consistency = min(100.0, percentage(len({ep.day for ep in episodes}), data["period_days"]))
        severity = (10 - data["stats"]["avg_severity"]) / 9 * 100
        coping_share = len(by_widget(episodes, Widget.COPING_LOGGER)) / len(episodes) if episodes else 0
        coping = min(100.0, coping_share / 0.3 * 100)
        overall = mean([consistency, severity, coping])

        return {
            name: {"score": round(score, 1), "grade": _grade(score)}
            for name, score in (
                ("consistency", consistency),
                ("severity", severity),
                ("coping", coping),
                ("overall", overall),
            )
        }

    # ═══════════════════════════════════════════════════════════════════════
    # Milestone
    # ═══════════════════════════════════════════════════════════════════════

    def generate_milestone_insights(
        self,
        data: dict[str, Any],
        use_ai: bool = True,
        milestone: int | None = None,
    ) -> dict[str, Any]:
        total = data["user_profile"]["total_episodes"]
        milestone = milestone or self.detect_milestone(total)
        episodes = data["episodes"]
        mastery = self.skill_mastery(episodes)

        report: dict[str, Any] = {
            "journey_overview": self.journey_overview(data),
            "achievements": self.compile_major_achievements(data),
            "transformation": self.transformation(episodes),
            "skill_mastery": mastery,
            "resilience": self.resilience(episodes),
        }
        if use_ai:
            ai = self._ai_insights(data, ["journey", "progress", "strengths"])
            if ai:
                report["ai_reflection"] = ai
        report["future_roadmap"] = self.future_roadmap(total, mastery)
        report["celebration"] = self.celebration(milestone)

        return {
            "type": "milestone",
            "milestone": milestone,
            "user_id": data["user_id"],
            "data": report,
        }

    def detect_milestone(self, total: int) -> int | None:
        reached = [m for m in MILESTONES if total >= m]
        return reached[-1] if reached else None

    def journey_overview(self, data: dict[str, Any]) -> dict[str, Any]:
        episodes = data["episodes"]
        first_at = data["user_profile"]["first_episode_at"]
        days_on_journey = (data["now"] - parse_timestamp(first_at)).days + 1 if first_at else None
        days = {ep.day for ep in episodes}
        return {
            "started_at": first_at,
            "days_on_journey": days_on_journey,
            "total_episodes": data["user_profile"]["total_episodes"],
            "days_logged": len(days),
            "widgets_explored": len({ep.widget_id for ep in episodes}),
            "longest_streak": longest_streak(days),
        }

    def compile_major_achievements(self, data: dict[str, Any]) -> list[dict[str, Any]]:
        episodes = data["episodes"]
        total = data["user_profile"]["total_episodes"]
        achievements: list[dict[str, Any]] = [
            {"type": "milestone", "message": f"Logged {m} episodes"} for m in MILESTONES if total >= m
        ]

        streak = longest_streak({ep.day for ep in episodes})
        if streak >= 7:
            achievements.append({"type": "streak", "message": f"{streak}-day tracking streak"})

        skills = coping_effectiveness_by_skill(episodes)
        if len(skills) >= 5:
            achievements.append({"type": "skills", "message": f"Practiced {len(skills)} different coping skills"})

        weeks = {w: b for w, b in weekly_patterns(episodes).items() if b["count"] >= 3}
        if weeks:
            best = min(weeks, key=lambda w: weeks[w]["avg_severity"])
            achievements.append({
                "type": "best_week",
                "message": f"Calmest week: {best}",
                "week": best,
                "avg_severity": weeks[best]["avg_severity"],
            })
        return achievements

    def transformation(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        if len(episodes) < 10:
            return {"message": "Not enough history to measure change"}

        window = 30 * 86400
        start, end = episodes[0].epoch, episodes[-1].epoch
        early = [ep for ep in episodes if ep.epoch - start <= window]
        late = [ep for ep in episodes if end - ep.epoch <= window]
        if end - start <= window:
            return {"message": "Not enough history to measure change"}

        before, after = self._period_snapshot(early), self._period_snapshot(late)
        change = round(after["avg_severity"] - before["avg_severity"], 2)
        if change < -0.5:
            direction = "improved"
        elif change > 0.5:
            direction = "declined"
        else:
            direction = "steady"
        return {
            "first_30_days": before,
            "last_30_days": after,
            "severity_change": change,
            "direction": direction,
        }

    def skill_mastery(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        skills = coping_effectiveness_by_skill(episodes)
        for stats in skills.values():
            if stats["uses"] >= 10 and stats["avg_effectiveness"] >= 7:
                stats["level"] = "mastered"
            elif stats["uses"] >= 5:
                stats["level"] = "developing"
            else:
                stats["level"] = "learning"
        return {
            "skills": skills,
            "mastered_count": sum(1 for s in skills.values() if s["level"] == "mastered"),
        }

    def resilience(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        """0-100 blend of recovery speed, coping practice and overall improvement."""
        recovery = self.pattern_analyzer.analyze_severity_patterns(episodes)["recovery_patterns"]
        if recovery["recoveries"]:
            recovery_score = clamp(100 - recovery["avg_recovery_hours"], 0, 100)
        else:
            recovery_score = 50.0 if recovery["unrecovered"] else 100.0

        coping_share = len(by_widget(episodes, Widget.COPING_LOGGER)) / len(episodes) if episodes else 0
        coping_score = min(100.0, coping_share / 0.3 * 100)
        improvement = improvement_score(episodes)
        score = round(mean([recovery_score, coping_score, improvement]))

        if score >= 75:
            level = "strong"
        elif score >= 50:
            level = "growing"
        else:
            level = "building"
        return {
            "score": score,
            "level": level,
            "components": {
                "recovery": round(recovery_score, 1),
                "coping": round(coping_score, 1),
                "improvement": improvement,
            },
        }

    def future_roadmap(self, total: int, mastery: dict[str, Any]) -> dict[str, Any]:
        next_milestone = next((m for m in MILESTONES if m > total), None)
        learning = [name for name, s in mastery["skills"].items() if s["level"] != "mastered"]
        return {
            "next_milestone": next_milestone,
            "episodes_to_go": next_milestone - total if next_milestone else 0,
            "skills_to_strengthen": learning[:2],
            "suggestion": (
                f"Keep practicing {learning[0]}" if learning else "Explore a new coping skill"
            ),
        }

    def celebration(self, milestone: int | None) -> dict[str, str]:
        if not milestone:
            return {"title": "Keep Going", "message": "Every entry builds a clearer picture of your wellbeing."}
        return {
            "title": f"{milestone} Episodes!",
            "message": f"You've logged {milestone} episodes. That's real commitment to understanding yourself.",
        }

    # ═══════════════════════════════════════════════════════════════════════
    # Predictive
    # ═══════════════════════════════════════════════════════════════════════

    def generate_predictive_insights(self, data: dict[str, Any], use_ai: bool = True) -> dict[str, Any]:
        patterns = self._patterns(data)

        report: dict[str, Any] = {
            "pattern_predictions": self.pattern_predictions(patterns, data),
            "risk_assessment": self.assess_future_risks(patterns, data),
            "opportunities": self.growth_opportunities(data),
            "seasonal": self.seasonal_patterns(data["user_id"], data["now"]),
            "goal_predictions": self.goal_predictions(data["goals"]),
        }
        if use_ai and self.ai_service is not None:
            ai = self.ai_service.get_recommendations(
                data["user_id"], "predictive", episodes=data["episodes"], now=data["now"],
            )
            if "error" not in ai:
                report["ai_predictions"] = ai.get("data")
        report["early_warnings"] = self.early_warnings(patterns, data)
        report["preventive_measures"] = self.preventive_measures(
            report["risk_assessment"], report["early_warnings"],
        )
        report["confidence"] = self.prediction_confidence(data)

        return {
            "type": "predictive",
            "generated_at": data["now"].isoformat(),
            "user_id": data["user_id"],
            "data": report,
        }

    def _upcoming_cycles(self, patterns: dict[str, Any] | None, data: dict[str, Any]) -> list[dict[str, Any]]:
        if not patterns:
            return []
        cycles = patterns["patterns"].get("temporal", {}).get("cycles", {}).get("detected_cycles", [])
        upcoming = []
        for cycle in cycles:
            projected = next_cycle_occurrence(data["episodes"], cycle["length_days"], data["now"])
            if projected["days_until"] is not None:
                upcoming.append({**projected, "cycle_length": cycle["length_days"], "strength": cycle["strength"]})
        return upcoming

    def pattern_predictions(self, patterns: dict[str, Any] | None, data: dict[str, Any]) -> dict[str, Any]:
        predictions: dict[str, Any] = {
            "severity_outlook": regression_severity_trend(data["episodes"]),
            "frequency_outlook": regression_frequency_trend(data["episodes"]),
            "upcoming_cycles": self._upcoming_cycles(patterns, data),
        }
        peak = patterns["patterns"].get("temporal", {}).get("peak_times") if patterns else None
        if peak:
            predictions["likely_peak"] = {
                "day": peak["day_of_week"]["label"],
                "period": peak["time_period"]["label"],
            }
        return predictions

    def assess_future_risks(self, patterns: dict[str, Any] | None, data: dict[str, Any]) -> dict[str, Any]:
        risks = []
        if patterns:
            statistical = patterns["statistical"]
            if statistical["trends"]["severity"]["trend"] == "worsening":
                risks.append({"risk": "rising_severity", "level": "high"})
            if statistical["frequencies"]["high_severity_rate"] > 30:
                risks.append({"risk": "frequent_high_severity", "level": "high"})
            if statistical["trends"]["frequency"]["trend"] == "increasing":
                risks.append({"risk": "increasing_frequency", "level": "medium"})
            clustering = patterns["patterns"].get("temporal", {}).get("episode_clustering", {})
            if clustering.get("clustering_rate", 0) > 30:
                risks.append({"risk": "episode_clustering", "level": "medium"})

        qualities = sleep_qualities(data["episodes"])
        if qualities and mean(qualities) < 5:
            risks.append({"risk": "poor_sleep", "level": "medium"})

        levels = {risk["level"] for risk in risks}
        overall = "high" if "high" in levels else "medium" if levels else "low"
        return {"overall_risk": overall, "risks": risks}

    def growth_opportunities(self, data: dict[str, Any]) -> list[dict[str, str]]:
        episodes = data["episodes"]
        widgets = {ep.widget_id for ep in episodes}
        opportunities = []

        coping_share = percentage(len(by_widget(episodes, Widget.COPING_LOGGER)), len(episodes))
        if coping_share < 20:
            opportunities.append({
                "area": "coping",
                "message": "Logging coping skills more often will show which ones help most",
            })
        if not any(is_sleep_related(ep) for ep in episodes):
            opportunities.append({
                "area": "sleep_tracking",
                "message": "Track sleep to uncover how rest affects your episodes",
            })
        if Widget.JOURNAL_ENTRY not in widgets:
            opportunities.append({
                "area": "journaling",
                "message": "A short journal entry can help you process difficult days",
            })
        if not data["goals"]:
            opportunities.append({
                "area": "goal_setting",
                "message": "Set a small wellness goal to build momentum",
            })
        if Widget.TRIGGER_TRACKER not in widgets:
            opportunities.append({
                "area": "trigger_awareness",
                "message": "Tracking triggers helps you prepare for difficult situations",
            })
        return opportunities

    def seasonal_patterns(self, user_id: str, now: datetime) -> dict[str, Any]:
        year = episode_store.get_user_episodes(user_id, since=now - timedelta(days=365), until=now, r=self.r)
        by_month: dict[str, list[int]] = {}
        for ep in year:
            by_month.setdefault(ep.timestamp.strftime("%B"), []).append(ep.severity)
        if len(by_month) < 2:
            return {"message": "Not enough history for seasonal patterns"}

        averages = {month: round(mean(values), 2) for month, values in by_month.items()}
        return {
            "monthly_averages": averages,
            "hardest_month": max(averages, key=averages.get),
            "easiest_month": min(averages, key=averages.get),
        }

    def goal_predictions(self, goals: Sequence[Episode]) -> list[dict[str, Any]]:
        predictions = []
        for goal in goals:
            milestones = [m for m in goal.data.get("milestones") or [] if isinstance(m, dict)]
            if milestones:
                rate = sum(1 for m in milestones if m.get("completed")) / len(milestones)
                outlook = "on_track" if rate >= 0.7 else "possible" if rate >= 0.3 else "at_risk"
            else:
                rate, outlook = None, "unknown"
            predictions.append({
                "goal": goal.data.get("title", goal.episode_id),
                "status": goal.data.get("status"),
                "completion_rate": round(rate, 2) if rate is not None else None,
                "outlook": outlook,
            })
        return predictions

    def early_warnings(self, patterns: dict[str, Any] | None, data: dict[str, Any]) -> list[dict[str, str]]:
        warnings = []
        if patterns:
            trends = patterns["statistical"]["trends"]
            if trends["severity"]["trend"] == "worsening":
                warnings.append({"signal": "rising_severity", "message": "Severity has been rising over recent weeks"})
            if trends["frequency"]["trend"] == "increasing":
                warnings.append({"signal": "increasing_frequency", "message": "You're logging more episodes than before"})

        if regression_severity_trend(data["episodes"])["prediction"] == "escalating":
            warnings.append({"signal": "recent_escalation", "message": "Recent entries show an upward severity trend"})

        for cycle in self._upcoming_cycles(patterns, data):
            if cycle["days_until"] <= 3:
                warnings.append({
                    "signal": "cycle_peak",
                    "message": f"A recurring cycle may peak around {cycle['next_occurrence']}",
                })
        return warnings

    def preventive_measures(self, risks: dict[str, Any], warnings: list[dict[str, str]]) -> list[str]:
        keys = [risk["risk"] for risk in risks["risks"]] + [w["signal"] for w in warnings]
        measures = list(dict.fromkeys(RISK_MEASURES[key] for key in keys if key in RISK_MEASURES))
        return measures or ["Keep up your regular check-ins"]

    def prediction_confidence(self, data: dict[str, Any]) -> dict[str, Any]:
        days_logged = len({ep.day for ep in data["episodes"]})
        score = min(1.0, data["episode_count"] / 60) * 0.6 + min(1.0, days_logged / 30) * 0.4
        level = "high" if score >= 0.75 else "moderate" if score >= 0.5 else "low"
        return {"score": round(score, 2), "level": level, "based_on_episodes": data["episode_count"]}

    # ═══════════════════════════════════════════════════════════════════════
    # Saved insights and recommendations
    # ═══════════════════════════════════════════════════════════════════════

    def save_insights(self, insights: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
        return insight_store.save_insights(
            insights["user_id"], insights["type"], insights["data"], now=now, r=self.r,
        )

    def get_user_insights(
        self,
        user_id: str,
        insight_type: str | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        return insight_store.get_user_insights(user_id, insight_type, limit, r=self.r)

    def get_insight_recommendations(
        self,
        user_id: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        recent = self.get_user_insights(user_id, limit=5)
        if not recent:
            return {
                "message": "Start tracking to receive personalized recommendations",
                "actions": [{"type": "start_tracking", "message": "Log your first episode to begin"}],
            }

        collected = contextual_recommendations(context or {})
        seen = {(rec["type"], rec["message"]) for rec in collected}
        for record in recent:
            for rec in record["data"].get("recommendations", []):
                key = (rec.get("type"), rec.get("message"))
                if key not in seen:
                    seen.add(key)
                    collected.append(rec)

        return {
            "recommendations": prioritize_recommendations(collected)[:5],
            "generated_at": now.isoformat(),
        }
