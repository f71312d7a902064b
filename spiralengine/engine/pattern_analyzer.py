"""Pattern analysis over a user's episode history.

Produces a statistical block (basic stats, distributions, trends,
frequencies), one report per pattern family and a human-readable summary.
Results are cached in Redis so the alert engine can reuse them.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Sequence

import redis

from spiralengine.ai.service import AIService
from spiralengine.config.settings import (
    HIGH_SEVERITY_THRESHOLD,
    PATTERN_ANALYSIS_DAYS,
    PATTERN_CACHE_TTL,
    PATTERN_MIN_EPISODES,
)
from spiralengine.engine import episode_store
from spiralengine.engine.result_cache import cache_get, cache_set
from spiralengine.engine.stats import (
    correlation,
    mean,
    median,
    mode,
    percentage,
    std_dev,
)
from spiralengine.engine.temporal import (
    daily_distribution,
    daily_patterns,
    detect_cycles,
    episode_clustering,
    episodes_per_day,
    hourly_distribution,
    most_active_time,
    peak_times,
    severity_distribution,
    time_of_day_patterns,
    time_period,
    total_days,
    weekly_distribution,
    weekly_patterns,
    widget_frequencies,
    widget_usage,
)
from spiralengine.engine.trends import frequency_trend, improvement_score, severity_trend
from spiralengine.engine.wellness import by_widget, longest_streak, number
from spiralengine.models.episode import Episode, Widget

logger = logging.getLogger(__name__)

PATTERN_TYPES = ("temporal", "trigger", "severity", "widget", "improvement", "correlation")

MILESTONES = (10, 25, 50, 100, 250, 500, 1000)

RECOVERY_SEVERITY = 4
SEQUENCE_WINDOW_SECONDS = 86400


def _trigger_category(episode: Episode) -> str:
    return episode.data.get("trigger_category") or "uncategorized"


def _top_pairs(pairs: Iterable[tuple[str, str]], limit: int = 5) -> list[dict[str, Any]]:
    return [
        {"sequence": [first, second], "count": count}
        for (first, second), count in Counter(pairs).most_common(limit)
    ]


def _runs(values: Sequence[int], joins: Callable[[int, int], bool]) -> list[tuple[int, int]]:
    """(start, end) index pairs of maximal runs where joins(prev, cur) holds."""
    runs = []
    start = 0
    for i in range(1, len(values) + 1):
        if i < len(values) and joins(values[i - 1], values[i]):
            continue
        runs.append((start, i - 1))
        start = i
    return runs


@dataclass
class PatternAnalyzer:
    r: redis.Redis | None = None
    ai_service: AIService | None = None
    min_episodes: int = PATTERN_MIN_EPISODES
    cache_ttl: int = PATTERN_CACHE_TTL

    # ═══════════════════════════════════════════════════════════════════════
    # Entry points
    # ═══════════════════════════════════════════════════════════════════════

    def analyze_user_patterns(
        self,
        user_id: str,
        days: int = PATTERN_ANALYSIS_DAYS,
        min_episodes: int | None = None,
        pattern_types: Sequence[str] = PATTERN_TYPES,
        include_ai: bool = True,
        include_statistical: bool = True,
        widgets: Sequence[str] | None = None,
        now: datetime | None = None,
        cache: bool = True,
    ) -> dict[str, Any]:
        """Load the last `days` of episodes and analyze them."""
        now = now or datetime.now(timezone.utc)
        episodes = episode_store.get_user_episodes(
            user_id,
            since=now - timedelta(days=days),
            until=now,
            widgets=widgets,
            r=self.r,
        )
        results = self.analyze_episodes(
            user_id,
            episodes,
            days=days,
            min_episodes=min_episodes,
            pattern_types=pattern_types,
            include_ai=include_ai,
            include_statistical=include_statistical,
        )
        if cache and "error" not in results:
            self.cache_results(user_id, results)
        return results

    def analyze_episodes(
        self,
        user_id: str,
        episodes: Sequence[Episode],
        days: int = PATTERN_ANALYSIS_DAYS,
        min_episodes: int | None = None,
        pattern_types: Sequence[str] = PATTERN_TYPES,
        include_ai: bool = True,
        include_statistical: bool = True,
    ) -> dict[str, Any]:
        required = self.min_episodes if min_episodes is None else min_episodes
        episodes = sorted(episodes, key=lambda ep: ep.epoch)
        if len(episodes) < required:
            return {
                "error": "Not enough episodes for pattern analysis",
                "required": required,
                "found": len(episodes),
            }

        logger.info("Analyzing %d episodes for user %s (%d days)", len(episodes), user_id, days)
        results: dict[str, Any] = {
            "user_id": user_id,
            "period": {
                "start": f"{days} days ago",
                "end": "today",
                "days": days,
                "episode_count": len(episodes),
            },
            "patterns": {},
        }

        if include_statistical:
            results["statistical"] = self.statistical_analysis(episodes)

        handlers = self._pattern_handlers()
        for pattern_type in pattern_types:
            handler = handlers.get(pattern_type)
            if handler is None:
                logger.warning("Skipping unknown pattern type %r", pattern_type)
                continue
            results["patterns"][pattern_type] = handler(episodes)

        if include_ai and self.ai_service is not None:
            ai_results = self.ai_analysis(episodes, days)
            if "error" not in ai_results:
                results["ai_analysis"] = ai_results

        results["summary"] = self.generate_summary(results, episodes)
        return results

    def _pattern_handlers(self) -> dict[str, Callable[[Sequence[Episode]], dict[str, Any]]]:
        return {
            "temporal": self.analyze_temporal_patterns,
            "trigger": self.analyze_trigger_patterns,
            "severity": self.analyze_severity_patterns,
            "widget": self.analyze_widget_patterns,
            "improvement": self.analyze_improvement_patterns,
            "correlation": self.analyze_correlation_patterns,
        }

    # ═══════════════════════════════════════════════════════════════════════
    # Statistical block
    # ═══════════════════════════════════════════════════════════════════════

    def statistical_analysis(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        return {
            "basic": self.basic_stats(episodes),
            "distributions": self.distributions(episodes),
            "trends": {
                "severity": severity_trend(episodes),
                "frequency": frequency_trend(episodes),
                "improvement": improvement_score(episodes),
            },
            "frequencies": self.frequencies(episodes),
        }

    def basic_stats(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        severities = [ep.severity for ep in episodes]
        return {
            "total_episodes": len(episodes),
            "severity": {
                "mean": round(mean(severities), 2),
                "median": median(severities),
                "mode": mode(severities),
                "min": min(severities) if severities else 0,
                "max": max(severities) if severities else 0,
                "std_dev": round(std_dev(severities), 2),
            },
            "episodes_per_day": episodes_per_day(episodes),
            "most_active_time": most_active_time(episodes),
            "widget_usage": widget_usage(episodes),
        }

    def distributions(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        return {
            "severity": severity_distribution(episodes),
            "hourly": hourly_distribution(episodes),
            "daily": daily_distribution(episodes),
            "weekly": weekly_distribution(episodes),
        }

    def frequencies(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        days = total_days(episodes)
        n = len(episodes)
        high = sum(1 for ep in episodes if ep.severity >= HIGH_SEVERITY_THRESHOLD)
        return {
            "total_days": days,
            "episodes_per_day": round(n / days, 2),
            "episodes_per_week": round(n / max(1.0, days / 7), 2),
            "high_severity_rate": percentage(high, n),
            "widget_frequencies": widget_frequencies(episodes),
        }

    # ═══════════════════════════════════════════════════════════════════════
    # Pattern families
    # ═══════════════════════════════════════════════════════════════════════

    def analyze_temporal_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        return {
            "daily": daily_patterns(episodes),
            "weekly": weekly_patterns(episodes),
            "time_of_day": time_of_day_patterns(episodes),
            "episode_clustering": episode_clustering(episodes),
            "peak_times": peak_times(episodes),
            "cycles": detect_cycles(episodes),
        }

    # ── Triggers ──────────────────────────────────────────────────────────

    def analyze_trigger_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        triggers = by_widget(episodes, Widget.TRIGGER_TRACKER)
        if not triggers:
            return {"message": "No trigger data available"}

        return {
            "common_triggers": self._common_triggers(triggers),
            "trigger_severity": self._trigger_severity(triggers),
            "trigger_sequences": self._trigger_sequences(triggers),
            "trigger_timing": self._trigger_timing(triggers),
            "coping_effectiveness": self._trigger_coping(triggers),
        }

    def _common_triggers(self, triggers: Sequence[Episode]) -> dict[str, dict[str, Any]]:
        counts = Counter(_trigger_category(ep) for ep in triggers)
        return {
            category: {"count": count, "percentage": percentage(count, len(triggers))}
            for category, count in counts.most_common()
        }

    def _trigger_severity(self, triggers: Sequence[Episode]) -> dict[str, dict[str, Any]]:
        grouped: dict[str, list[int]] = defaultdict(list)
        for ep in triggers:
            grouped[_trigger_category(ep)].append(ep.severity)
        report = {
            category: {
                "count": len(values),
                "avg_severity": round(mean(values), 2),
                "max_severity": max(values),
            }
            for category, values in grouped.items()
        }
        return dict(sorted(report.items(), key=lambda item: item[1]["avg_severity"], reverse=True))

    def _trigger_sequences(self, triggers: Sequence[Episode]) -> list[dict[str, Any]]:
        pairs = [
            (_trigger_category(prev), _trigger_category(cur))
            for prev, cur in zip(triggers, triggers[1:])
            if cur.epoch - prev.epoch <= SEQUENCE_WINDOW_SECONDS
        ]
        return _top_pairs(pairs)

    def _trigger_timing(self, triggers: Sequence[Episode]) -> list[dict[str, Any]]:
        by_hour: dict[int, list[str]] = defaultdict(list)
        for ep in triggers:
            by_hour[ep.hour].append(_trigger_category(ep))
        busy = sorted(
            (hour for hour, cats in by_hour.items() if len(cats) >= 2),
            key=lambda hour: (-len(by_hour[hour]), hour),
        )
        return [
            {
                "peak_hour": hour,
                "count": len(by_hour[hour]),
                "associated_triggers": [cat for cat, _ in Counter(by_hour[hour]).most_common()],
            }
            for hour in busy[:3]
        ]

    def _trigger_coping(self, triggers: Sequence[Episode]) -> dict[str, Any]:
        scores: dict[str, list[float]] = defaultdict(list)
        for ep in triggers:
            strategy = ep.data.get("coping_strategy")
            effectiveness = number(ep.data.get("effectiveness"))
            if strategy and effectiveness is not None:
                scores[strategy].append(effectiveness)
        if not scores:
            return {"message": "No coping data recorded with triggers"}

        strategies = {
            name: {"uses": len(values), "avg_effectiveness": round(mean(values), 2)}
            for name, values in scores.items()
        }
        best = max(strategies, key=lambda name: strategies[name]["avg_effectiveness"])
        return {"strategies": strategies, "best_strategy": best}

    # ── Severity ──────────────────────────────────────────────────────────

    def analyze_severity_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        return {
            "severity_trends": severity_trend(episodes),
            "severity_triggers": self._severity_triggers(episodes),
            "recovery_patterns": self._recovery_patterns(episodes),
            "escalation_patterns": self._escalation_patterns(episodes),
            "stability_periods": self._stability_periods(episodes),
        }

    def _severity_triggers(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        high = [ep for ep in episodes if ep.severity >= HIGH_SEVERITY_THRESHOLD]
        by_trigger = Counter(
            ep.data["trigger_category"] for ep in high if ep.data.get("trigger_category")
        )
        return {
            "high_severity_count": len(high),
            "by_trigger": dict(by_trigger.most_common()),
            "by_widget": dict(Counter(ep.widget_id for ep in high).most_common()),
        }

    def _recovery_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        hours: list[float] = []
        unrecovered = 0
        for i, ep in enumerate(episodes):
            if ep.severity < HIGH_SEVERITY_THRESHOLD:
                continue
            recovery = next(
                (later for later in episodes[i + 1:] if later.severity <= RECOVERY_SEVERITY),
                None,
            )
            if recovery is None:
                unrecovered += 1
            else:
                hours.append((recovery.epoch - ep.epoch) / 3600)
        return {
            "recoveries": len(hours),
            "unrecovered": unrecovered,
            "avg_recovery_hours": round(mean(hours), 1),
            "fastest_hours": round(min(hours), 1) if hours else None,
            "slowest_hours": round(max(hours), 1) if hours else None,
        }

    def _escalation_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        values = [ep.severity for ep in episodes]
        runs = [
            (start, end)
            for start, end in _runs(values, lambda prev, cur: cur > prev)
            if end - start + 1 >= 3
        ]
        lengths = [end - start + 1 for start, end in runs]
        rises = [values[end] - values[start] for start, end in runs]
        return {
            "escalation_count": len(runs),
            "avg_length": round(mean(lengths), 2),
            "avg_rise": round(mean(rises), 2),
            "longest": max(lengths) if lengths else 0,
        }

    def _stability_periods(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        values = [ep.severity for ep in episodes]
        periods = [
            {
                "start": episodes[start].created_at,
                "end": episodes[end].created_at,
                "length": end - start + 1,
                "avg_severity": round(mean(values[start:end + 1]), 2),
            }
            for start, end in _runs(values, lambda prev, cur: abs(cur - prev) <= 1)
            if end - start + 1 >= 3
        ]
        return {
            "period_count": len(periods),
            "periods": periods,
            "longest": max((p["length"] for p in periods), default=0),
        }

    # ── Widgets ───────────────────────────────────────────────────────────

    def analyze_widget_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        return {
            "usage_frequency": widget_frequencies(episodes),
            "widget_sequences": self._widget_sequences(episodes),
            "widget_effectiveness": self._widget_effectiveness(episodes),
            "preferred_widgets": list(widget_usage(episodes))[:3],
            "widget_timing": self._widget_timing(episodes),
        }

    def _widget_sequences(self, episodes: Sequence[Episode]) -> list[dict[str, Any]]:
        pairs = [
            (prev.widget_id, cur.widget_id)
            for prev, cur in zip(episodes, episodes[1:])
            if prev.day == cur.day and prev.widget_id != cur.widget_id
        ]
        return _top_pairs(pairs)

    def _widget_effectiveness(self, episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
        """Mean severity change of the episode that follows each widget use."""
        changes: dict[str, list[int]] = defaultdict(list)
        for prev, cur in zip(episodes, episodes[1:]):
            if cur.epoch - prev.epoch <= SEQUENCE_WINDOW_SECONDS:
                changes[prev.widget_id].append(cur.severity - prev.severity)
        return {
            widget: {"samples": len(values), "avg_severity_change": round(mean(values), 2)}
            for widget, values in changes.items()
        }

    def _widget_timing(self, episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
        hours: dict[str, list[int]] = defaultdict(list)
        for ep in episodes:
            hours[ep.widget_id].append(ep.hour)
        timing = {}
        for widget, values in hours.items():
            peak = Counter(values).most_common(1)[0][0]
            timing[widget] = {"peak_hour": peak, "time_period": time_period(peak)}
        return timing

    # ── Improvement ───────────────────────────────────────────────────────

    def analyze_improvement_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        weekly = weekly_patterns(episodes)
        improvements, setbacks = [], []
        previous = None
        for week, bucket in weekly.items():
            if previous is not None:
                change = round(bucket["avg_severity"] - previous, 2)
                entry = {"week": week, "avg_severity": bucket["avg_severity"], "change": change}
                if change <= -0.5:
                    improvements.append(entry)
                elif change >= 1:
                    setbacks.append(entry)
            previous = bucket["avg_severity"]

        return {
            "overall_trend": improvement_score(episodes),
            "improvement_periods": improvements,
            "success_factors": self._success_factors(episodes),
            "setback_patterns": {"setback_count": len(setbacks), "setbacks": setbacks},
            "milestone_progress": self._milestone_progress(episodes),
        }

    def _success_factors(self, episodes: Sequence[Episode]) -> list[dict[str, Any]]:
        """Widgets whose days of use have a lower average severity than other days."""
        days = daily_patterns(episodes)
        widgets_by_day: dict[str, set[str]] = defaultdict(set)
        for ep in episodes:
            widgets_by_day[ep.day].add(ep.widget_id)

        factors = []
        for widget in widget_usage(episodes):
            with_use = [days[d]["avg_severity"] for d in days if widget in widgets_by_day[d]]
            without = [days[d]["avg_severity"] for d in days if widget not in widgets_by_day[d]]
            if not with_use or not without:
                continue
            difference = mean(with_use) - mean(without)
            if difference <= -0.5:
                factors.append({
                    "widget": widget,
                    "with_avg": round(mean(with_use), 2),
                    "without_avg": round(mean(without), 2),
                    "difference": round(difference, 2),
                })
        factors.sort(key=lambda f: f["difference"])
        return factors

    def _milestone_progress(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        total = len(episodes)
        next_milestone = next((m for m in MILESTONES if m > total), None)
        days = {ep.day for ep in episodes}
        return {
            "total_episodes": total,
            "milestones_reached": [m for m in MILESTONES if total >= m],
            "next_milestone": next_milestone,
            "progress_to_next": percentage(total, next_milestone) if next_milestone else 100.0,
            "days_tracked": len(days),
            "longest_streak": longest_streak(days),
        }

    # ── Correlations ──────────────────────────────────────────────────────

    def analyze_correlation_patterns(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        return {
            "trigger_severity": self._trigger_severity_correlation(episodes),
            "time_severity": self._time_severity_correlation(episodes),
            "widget_outcomes": self._widget_outcomes(episodes),
            "environmental": self._environmental(episodes),
            "behavioral": self._behavioral(episodes),
        }

    def _trigger_severity_correlation(self, episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
        overall = mean([ep.severity for ep in episodes])
        grouped: dict[str, list[int]] = defaultdict(list)
        for ep in by_widget(episodes, Widget.TRIGGER_TRACKER):
            grouped[_trigger_category(ep)].append(ep.severity)
        return {
            category: {
                "count": len(values),
                "avg_severity": round(mean(values), 2),
                "difference": round(mean(values) - overall, 2),
            }
            for category, values in grouped.items()
        }

    def _time_severity_correlation(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        periods = time_of_day_patterns(episodes)
        active = {name: p for name, p in periods.items() if p["count"]}
        worst = max(active, key=lambda name: active[name]["avg_severity"]) if active else None
        return {
            "hour_correlation": round(
                correlation([ep.hour for ep in episodes], [ep.severity for ep in episodes]), 2
            ),
            "highest_severity_period": worst,
        }

    def _widget_outcomes(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        pairs = [
            (number(ep.data.get("effectiveness")), ep.severity)
            for ep in by_widget(episodes, Widget.COPING_LOGGER)
        ]
        pairs = [(e, s) for e, s in pairs if e is not None]
        return {
            "effectiveness_vs_severity": round(
                correlation([e for e, _ in pairs], [s for _, s in pairs]), 2
            ),
            "samples": len(pairs),
        }

    def _environmental(self, episodes: Sequence[Episode]) -> dict[str, dict[str, Any]]:
        report: dict[str, dict[str, Any]] = {}
        for factor in ("location", "weather"):
            grouped: dict[str, list[int]] = defaultdict(list)
            for ep in episodes:
                value = ep.metadata.get(factor)
                if value:
                    grouped[str(value)].append(ep.severity)
            report[factor] = {
                value: {"count": len(sev), "avg_severity": round(mean(sev), 2)}
                for value, sev in grouped.items()
            }
        return report

    def _behavioral(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        days = daily_patterns(episodes)
        counts = [d["count"] for d in days.values()]
        averages = [d["avg_severity"] for d in days.values()]

        sleep_pairs = []
        for ep in by_widget(episodes, Widget.SLEEP_TRACKER):
            quality = number(ep.data.get("quality"))
            next_day = (ep.timestamp + timedelta(days=1)).strftime("%Y-%m-%d")
            if quality is not None and next_day in days:
                sleep_pairs.append((quality, days[next_day]["avg_severity"]))

        return {
            "frequency_severity": round(correlation(counts, averages), 2),
            "days": len(days),
            "sleep_next_day_severity": round(
                correlation([q for q, _ in sleep_pairs], [s for _, s in sleep_pairs]), 2
            ),
            "sleep_samples": len(sleep_pairs),
        }

    # ═══════════════════════════════════════════════════════════════════════
    # AI and summary
    # ═══════════════════════════════════════════════════════════════════════

    def ai_analysis(self, episodes: Sequence[Episode], days: int) -> dict[str, Any]:
        return self.ai_service.analyze_patterns(
            episodes,
            {
                "type": "pattern_analysis",
                "timeframe": f"{days}_days",
                "include_predictions": True,
                "include_recommendations": True,
            },
        )

    def generate_summary(self, results: dict[str, Any], episodes: Sequence[Episode]) -> dict[str, Any]:
        summary: dict[str, list] = {
            "key_findings": [],
            "recommendations": [],
            "areas_of_concern": [],
            "positive_trends": [],
        }

        statistical = results.get("statistical")
        basic = statistical["basic"] if statistical else self.basic_stats(episodes)
        trend = statistical["trends"]["severity"] if statistical else severity_trend(episodes)

        if basic["severity"]["mean"] > 7:
            summary["areas_of_concern"].append("High average severity indicates significant distress")
        if basic["episodes_per_day"]["average"] > 3:
            summary["areas_of_concern"].append(
                "High episode frequency may indicate need for additional support"
            )
        if trend["trend"] == "worsening":
            summary["areas_of_concern"].append("Severity levels are increasing over time")
        elif trend["trend"] == "improving":
            summary["positive_trends"].append("Severity levels are showing improvement")

        for pattern_type, data in results["patterns"].items():
            finding = self.summarize_pattern(pattern_type, data)
            if finding:
                summary["key_findings"].append(finding)

        summary["recommendations"] = self.generate_recommendations(basic, episodes)
        return summary

    def summarize_pattern(self, pattern_type: str, data: dict[str, Any]) -> str:
        if pattern_type == "temporal":
            period = data.get("peak_times", {}).get("time_period")
            return f"Peak activity occurs during {period['label']}" if period else ""
        if pattern_type == "trigger":
            common = data.get("common_triggers")
            if not common:
                return ""
            name, info = next(iter(common.items()))
            return f"Most common trigger: {name} ({info['percentage']}% of episodes)"
        if pattern_type == "improvement":
            return f"Overall improvement score: {data['overall_trend']}/100"
        return ""

    def generate_recommendations(
        self,
        basic: dict[str, Any],
        episodes: Sequence[Episode],
    ) -> list[dict[str, str]]:
        recommendations = []

        peak_hour = basic["most_active_time"]["hour"]
        if peak_hour >= 22 or peak_hour <= 2:
            recommendations.append({
                "type": "sleep",
                "priority": "high",
                "message": "Episodes frequently occur late at night. "
                           "Consider establishing a calming bedtime routine.",
            })

        if basic["severity"]["mean"] > 6:
            recommendations.append({
                "type": "support",
                "priority": "high",
                "message": "High severity levels suggest professional support could be beneficial.",
            })

        coping_rate = percentage(len(by_widget(episodes, Widget.COPING_LOGGER)), len(episodes))
        if coping_rate < 20:
            recommendations.append({
                "type": "coping",
                "priority": "medium",
                "message": "Try using the Coping Skills Logger more frequently "
                           "to track what helps you feel better.",
            })

        return recommendations

    # ═══════════════════════════════════════════════════════════════════════
    # Cache
    # ═══════════════════════════════════════════════════════════════════════

    def cache_results(self, user_id: str, results: dict[str, Any]) -> None:
        cache_set(f"patterns:{user_id}", results, self.cache_ttl, r=self.r)
        logger.info("Cached pattern results for user %s", user_id)

    def get_cached_results(self, user_id: str) -> dict[str, Any] | None:
        return cache_get(f"patterns:{user_id}", r=self.r)
