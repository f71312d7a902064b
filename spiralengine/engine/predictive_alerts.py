"""Predictive alert engine.

Two paths produce alerts:

* real time: every new episode is checked against the last week of history
  for severity escalation, cycle recurrence, crisis risk and sleep disruption;
* scheduled: for every recently active user, the time-series,
  pattern-matching, behavioral and (optionally) AI models each predict alert
  types, and their predictions are combined into one confidence per type.

A prediction whose confidence reaches its alert type's threshold becomes an
Alert unless that type is snoozed or was recently dismissed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import redis

from spiralengine.ai.service import AIService
from spiralengine.config.rules import (
    alert_types,
    data_requirement,
    load_rules,
    model_weight,
    prediction_models,
)
from spiralengine.config.settings import (
    ACTIVE_USER_DAYS,
    ALERT_HISTORY_DAYS,
    DEFAULT_SNOOZE_HOURS,
    HIGH_SEVERITY_THRESHOLD,
    PATTERN_ANALYSIS_DAYS,
    PREDICTION_LOOKBACK_DAYS,
    PREDICTION_MIN_EPISODES,
)
from spiralengine.engine import alert_store, episode_store
from spiralengine.engine.pattern_analyzer import PatternAnalyzer
from spiralengine.engine.stats import acceleration, mean, std_dev
from spiralengine.engine.temporal import next_cycle_occurrence, widget_usage
from spiralengine.engine.trends import regression_frequency_trend, regression_severity_trend
from spiralengine.engine.wellness import (
    CRISIS_TEXT_WIDGETS,
    average_sleep_quality,
    by_widget,
    contains_crisis_indicators,
    episodes_between,
    identify_sleep_pattern,
    is_sleep_related,
    medication_adherence,
    sleep_quality_trend,
)
from spiralengine.models.alert import Alert, AlertPriority
from spiralengine.models.episode import Episode, Widget

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Alert content
# ═══════════════════════════════════════════════════════════════════════════

ALERT_RECOMMENDATIONS = {
    "escalation": [
        {"action": "Schedule self-care time", "urgency": "high"},
        {"action": "Review and practice coping skills", "urgency": "high"},
    ],
    "pattern_recurrence": [
        {"action": "Prepare for the pattern by planning ahead", "urgency": "medium"},
        {"action": "Identify what helped last time", "urgency": "medium"},
    ],
    "crisis_risk": [
        {"action": "Contact your support person", "urgency": "critical"},
        {"action": "Use crisis resources if needed", "urgency": "critical"},
    ],
    "sleep_disruption": [
        {"action": "Establish a bedtime routine", "urgency": "medium"},
        {"action": "Limit screen time before bed", "urgency": "low"},
    ],
}

DEFAULT_RECOMMENDATIONS = [{"action": "Take preventive action", "urgency": "medium"}]

SOCIAL_WIDGETS = (Widget.JOURNAL_ENTRY, Widget.DAILY_CHECKIN)
SOCIAL_BASELINE_SHARE = 0.3
TARGET_SLEEP_QUALITY = 7.0


def format_trigger_time(hour: int) -> str:
    hour = int(hour) % 24
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"


def generate_alert_message(alert_type: str, prediction: dict[str, Any]) -> str:
    confidence = prediction.get("confidence", 0)
    if alert_type == "escalation":
        timeframe = str(prediction.get("timeframe", "48_hours")).replace("_", " ")
        return (
            "We've detected a pattern that suggests your episodes may increase in severity "
            f"over the next {timeframe}. Current confidence: {round(confidence * 100)}%"
        )
    if alert_type == "pattern_recurrence":
        days = prediction.get("days_until", 1)
        description = prediction.get("pattern_description", "increased episodes")
        return (
            f"Based on your patterns, a recurring cycle is expected in {days} days. "
            f"This typically involves {description}."
        )
    if alert_type == "trigger_exposure":
        when = format_trigger_time(prediction.get("expected_time", 12))
        return f"You may encounter common triggers around {when}. Consider preparing coping strategies."
    if alert_type == "wellness_decline":
        return "Your overall wellness indicators suggest you may benefit from additional self-care activities."
    if alert_type == "crisis_risk":
        return (
            "Your recent patterns indicate elevated risk. Please reach out to your support "
            "network or use crisis resources if needed."
        )
    if alert_type == "medication_adherence":
        rate = prediction.get("adherence_rate", 0.5)
        return (
            f"Medication adherence has dropped to {round(rate * 100)}%. "
            "Consistent medication use is important for stability."
        )
    if alert_type == "social_isolation":
        return (
            "You've been less socially active lately. Connection with others can "
            "significantly help your wellbeing."
        )
    if alert_type == "sleep_disruption":
        return "Your sleep patterns show disruption. Quality sleep is crucial for mental health."
    return "We've detected a pattern that may need your attention."


def alert_recommendations(alert_type: str) -> list[dict[str, str]]:
    return [dict(r) for r in ALERT_RECOMMENDATIONS.get(alert_type, DEFAULT_RECOMMENDATIONS)]


def expiry_hours(alert_type: str) -> int:
    default = load_rules()["default_expiry_hours"]
    return int(alert_types().get(alert_type, {}).get("expiry_hours", default))


# ═══════════════════════════════════════════════════════════════════════════
# Model helpers
# ═══════════════════════════════════════════════════════════════════════════

def calculate_baseline(episodes: Sequence[Episode], period_days: int = 30) -> dict[str, Any]:
    """Severity and frequency baseline from the first `period_days` of history."""
    if not episodes:
        return {}
    start = episodes[0].epoch
    window = [ep for ep in episodes if ep.epoch - start <= period_days * 86400]
    severities = [ep.severity for ep in window]
    return {
        "avg_severity": mean(severities),
        "severity_std": std_dev(severities),
        "episode_frequency": len(window) / period_days,
        "common_widgets": widget_usage(window),
    }


def calculate_behavioral_deviations(
    recent: Sequence[Episode],
    baseline: dict[str, Any],
    window_days: int = 14,
) -> dict[str, float]:
    deviations: dict[str, float] = {}
    if not recent:
        return deviations

    current = mean([ep.severity for ep in recent])
    if baseline.get("severity_std", 0) > 0:
        deviations["severity"] = (current - baseline["avg_severity"]) / baseline["severity_std"]

    base_frequency = baseline.get("episode_frequency", 0)
    if base_frequency > 0:
        deviations["frequency"] = (len(recent) / window_days - base_frequency) / base_frequency

    social_share = len(by_widget(recent, *SOCIAL_WIDGETS)) / len(recent)
    deviations["social_engagement"] = (social_share - SOCIAL_BASELINE_SHARE) / SOCIAL_BASELINE_SHARE

    if any(is_sleep_related(ep) for ep in recent):
        deviations["sleep_quality"] = (
            average_sleep_quality(recent) - TARGET_SLEEP_QUALITY
        ) / TARGET_SLEEP_QUALITY

    return deviations


def merge_predictions(entries: Sequence[tuple[str, dict[str, Any]]]) -> dict[str, Any]:
    """Weighted-mean confidence across models predicting the same alert type."""
    total_weight = sum(model_weight(model) for model, _ in entries)
    weighted = sum(model_weight(model) * p.get("confidence", 0) for model, p in entries)
    timeframe = next((p["timeframe"] for _, p in entries if p.get("timeframe")), None)
    return {
        "confidence": round(weighted / total_weight, 4) if total_weight else 0.0,
        "models_agree": len(entries),
        "predictions": {model: p for model, p in entries},
        "timeframe": timeframe,
    }


def combine_predictions(model_predictions: dict[str, dict[str, dict[str, Any]]]) -> dict[str, dict[str, Any]]:
    grouped: dict[str, list[tuple[str, dict[str, Any]]]] = defaultdict(list)
    for model, predictions in model_predictions.items():
        for alert_type, prediction in predictions.items():
            grouped[alert_type].append((model, prediction))

    combined = {}
    for alert_type, entries in grouped.items():
        combined[alert_type] = entries[0][1] if len(entries) == 1 else merge_predictions(entries)
    return combined


# ═══════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class PredictiveAlerts:
    r: redis.Redis | None = None
    pattern_analyzer: PatternAnalyzer | None = None
    ai_service: AIService | None = None
    use_ai: bool = False
    notifier: Callable[[Alert, bool], None] | None = None

    def __post_init__(self) -> None:
        if self.pattern_analyzer is None:
            self.pattern_analyzer = PatternAnalyzer(r=self.r, ai_service=self.ai_service)

    # ── Real-time path ────────────────────────────────────────────────────

    def analyze_for_alerts(self, episode: Episode, now: datetime | None = None) -> list[Alert]:
        """Check a freshly logged episode for alert conditions."""
        now = now or datetime.now(timezone.utc)
        history = self.get_recent_history(episode, now)
        predictions = self.generate_real_time_predictions(episode, history, now)
        return self.check_alert_conditions(episode.user_id, predictions, now)

    def get_recent_history(self, episode: Episode, now: datetime) -> list[Episode]:
        recent = episode_store.get_recent_episodes(
            episode.user_id, days=ALERT_HISTORY_DAYS, now=now, r=self.r,
        )
        history = [ep for ep in recent if ep.episode_id != episode.episode_id]
        history.append(episode)
        history.sort(key=lambda ep: ep.epoch)
        return history

    def generate_real_time_predictions(
        self,
        episode: Episode,
        history: Sequence[Episode],
        now: datetime,
    ) -> dict[str, dict[str, Any]]:
        predictions: dict[str, dict[str, Any]] = {}

        if len(history) >= data_requirement("escalation"):
            predictions["escalation"] = self.predict_severity_escalation(history)

        if len(history) >= data_requirement("pattern_recurrence"):
            patterns = self.pattern_analyzer.get_cached_results(episode.user_id)
            if patterns:
                predictions["pattern_recurrence"] = self.predict_pattern_recurrence(history, patterns, now)

        if episode.severity >= HIGH_SEVERITY_THRESHOLD and len(history) >= data_requirement("crisis_risk"):
            predictions["crisis_risk"] = self.assess_crisis_risk(episode, history)

        if is_sleep_related(episode) and len(history) >= data_requirement("sleep_disruption"):
            predictions["sleep_disruption"] = self.predict_sleep_disruption(history)

        return predictions

    def predict_severity_escalation(self, history: Sequence[Episode]) -> dict[str, Any]:
        window = prediction_models()["time_series"]["window_size"]
        trend = regression_severity_trend(
            history, window_size=window, min_data_points=data_requirement("escalation"),
        )
        accel = acceleration([ep.severity for ep in history][-window:])

        confidence = 0.5
        if trend["prediction"] == "escalating":
            confidence = trend["confidence"]
            if accel > 0.1:
                confidence = min(0.95, confidence + 0.2)

        return {
            "confidence": round(confidence, 4),
            "trend": trend["prediction"],
            "expected_severity": trend.get("expected_severity"),
            "acceleration": round(accel, 4),
            "timeframe": "48_hours",
        }

    def predict_pattern_recurrence(
        self,
        history: Sequence[Episode],
        patterns: dict[str, Any],
        now: datetime,
    ) -> dict[str, Any]:
        cycles = (
            patterns.get("patterns", {}).get("temporal", {}).get("cycles", {}).get("detected_cycles", [])
        )
        best: dict[str, Any] = {"confidence": 0.0}
        for cycle in cycles:
            upcoming = next_cycle_occurrence(history, cycle["length_days"], now)
            if upcoming["days_until"] is None:
                continue
            confidence = cycle["strength"] if upcoming["days_until"] <= 3 else cycle["strength"] * 0.5
            if confidence > best["confidence"]:
                best = {
                    "confidence": confidence,
                    "pattern_type": "cyclical",
                    "cycle_length": cycle["length_days"],
                    "next_occurrence": upcoming["next_occurrence"],
                    "days_until": upcoming["days_until"],
                }
        return best

    def assess_crisis_risk(self, episode: Episode, history: Sequence[Episode]) -> dict[str, Any]:
        max_factors = 8
        factors = 0

        if episode.severity >= 8:
            factors += 2

        recent_high = sum(1 for ep in history if ep.severity >= 8)
        if recent_high >= 3:
            factors += 2

        last_three = [ep.severity for ep in history[-3:]]
        escalating = len(last_three) == 3 and last_three[0] < last_three[1] < last_three[2]
        if escalating:
            factors += 1

        if episode.widget_id in CRISIS_TEXT_WIDGETS and contains_crisis_indicators(episode.data):
            factors += 3

        confidence = factors / max_factors
        if confidence >= 0.8:
            risk_level = "critical"
        elif confidence >= 0.6:
            risk_level = "high"
        else:
            risk_level = "moderate"

        return {
            "confidence": confidence,
            "risk_level": risk_level,
            "factors": factors,
            "assessment_factors": {
                "current_severity": episode.severity,
                "recent_high_episodes": recent_high,
                "escalating": escalating,
            },
        }

    def predict_sleep_disruption(self, history: Sequence[Episode]) -> dict[str, Any]:
        sleep = [ep for ep in history if is_sleep_related(ep)]
        if not sleep:
            return {"confidence": 0.0}

        trend = sleep_quality_trend(sleep)
        confidence = trend["confidence"]
        if trend["trend"] == "improving":
            confidence = round(1 - confidence, 4)

        return {
            "confidence": confidence,
            "trend": trend["trend"],
            "pattern": trend.get("pattern", identify_sleep_pattern(sleep)),
            "expected_quality": trend.get("expected_quality"),
        }

    # ── Alert creation and delivery ───────────────────────────────────────

    def check_alert_conditions(
        self,
        user_id: str,
        predictions: dict[str, dict[str, Any]],
        now: datetime | None = None,
    ) -> list[Alert]:
        now = now or datetime.now(timezone.utc)
        types = alert_types()
        alerts = []
        for alert_type, prediction in predictions.items():
            config = types.get(alert_type)
            if config is None:
                logger.debug("No alert type configured for prediction %r", alert_type)
                continue
            if prediction.get("confidence", 0) < config["threshold"]:
                continue
            alert = self.trigger_alert(user_id, alert_type, prediction, now)
            if alert is not None:
                alerts.append(alert)
        return alerts

    def trigger_alert(
        self,
        user_id: str,
        alert_type: str,
        prediction: dict[str, Any],
        now: datetime | None = None,
    ) -> Alert | None:
        now = now or datetime.now(timezone.utc)
        if alert_store.is_alert_suppressed(user_id, alert_type, now=now, r=self.r):
            logger.debug("Alert type %s suppressed for user %s", alert_type, user_id)
            return None

        config = alert_types()[alert_type]
        alert = Alert(
            user_id=user_id,
            alert_type=alert_type,
            title=config["name"],
            message=generate_alert_message(alert_type, prediction),
            priority=config["priority"],
            confidence=round(float(prediction.get("confidence", 0)), 4),
            prediction_data=prediction,
            recommendations=alert_recommendations(alert_type),
            created_at=now.isoformat(),
            expires_at=(now + timedelta(hours=expiry_hours(alert_type))).isoformat(),
        )
        alert_store.store_alert(alert, r=self.r)
        logger.info(
            "Alert %s (%s, %.2f) raised for user %s",
            alert.alert_id, alert_type, alert.confidence, user_id,
        )
        self.handle_alert(alert, now)
        return alert

    def handle_alert(self, alert: Alert, now: datetime | None = None) -> bool:
        """Deliver an alert and log it. Returns whether a notification was sent."""
        now = now or datetime.now(timezone.utc)
        if alert.priority == AlertPriority.CRITICAL:
            self._notify(alert, immediate=True, now=now)
            sent = True
        elif alert_store.should_notify(alert.user_id, alert.alert_type, r=self.r):
            self._notify(alert, immediate=False, now=now)
            sent = True
        else:
            sent = False

        extra: dict[str, Any] = {}
        if alert.priority in (AlertPriority.CRITICAL, AlertPriority.HIGH) and self.ai_service is not None:
            support = self.ai_service.get_recommendations(
                alert.user_id,
                context="crisis",
                extra={"alert_type": alert.alert_type, "alert_confidence": alert.confidence},
                now=now,
            )
            if "error" not in support:
                extra["support_recommendations"] = support.get("data", {})

        alert_store.log_alert(alert, sent, extra=extra, r=self.r)
        return sent

    def _notify(self, alert: Alert, immediate: bool, now: datetime) -> None:
        alert_store.queue_notification(alert, immediate=immediate, now=now, r=self.r)
        if self.notifier is not None:
            self.notifier(alert, immediate)

    # ── Scheduled path ────────────────────────────────────────────────────

    def run_scheduled_predictions(self, now: datetime | None = None) -> dict[str, list[Alert]]:
        now = now or datetime.now(timezone.utc)
        users = self.get_eligible_users(now)
        results = {user_id: self.run_user_predictions(user_id, now) for user_id in users}
        logger.info(
            "Scheduled predictions: %d users, %d alerts",
            len(results), sum(len(alerts) for alerts in results.values()),
        )
        return results

    def get_eligible_users(self, now: datetime | None = None) -> list[str]:
        return [
            user_id
            for user_id in episode_store.list_users(r=self.r)
            if episode_store.has_recent_activity(user_id, ACTIVE_USER_DAYS, now=now, r=self.r)
        ]

    def gather_prediction_data(self, user_id: str, now: datetime) -> dict[str, Any]:
        episodes = episode_store.get_recent_episodes(
            user_id, days=PREDICTION_LOOKBACK_DAYS, now=now, r=self.r,
        )
        patterns = self.pattern_analyzer.get_cached_results(user_id)
        if patterns is None and episodes:
            analyzed = self.pattern_analyzer.analyze_user_patterns(
                user_id, days=PATTERN_ANALYSIS_DAYS, include_ai=False, now=now,
            )
            patterns = None if "error" in analyzed else analyzed

        baseline_days = prediction_models()["behavioral"]["baseline_period_days"]
        return {
            "user_id": user_id,
            "episodes": episodes,
            "patterns": patterns,
            "baseline": calculate_baseline(episodes, baseline_days),
            "now": now,
        }

    def run_user_predictions(self, user_id: str, now: datetime | None = None) -> list[Alert]:
        now = now or datetime.now(timezone.utc)
        data = self.gather_prediction_data(user_id, now)
        if len(data["episodes"]) < PREDICTION_MIN_EPISODES:
            logger.debug("User %s has too little history for predictions", user_id)
            return []

        model_predictions = {
            "time_series": self.time_series_predictions(data),
            "pattern_matching": self.pattern_matching_predictions(data),
            "behavioral": self.behavioral_predictions(data),
        }
        if self.use_ai and self.ai_service is not None:
            model_predictions["ai"] = self.ai_predictions(data)

        combined = combine_predictions(model_predictions)
        return self.check_alert_conditions(user_id, combined, now)

    # ── Prediction models ─────────────────────────────────────────────────

    def time_series_predictions(self, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        config = prediction_models()["time_series"]
        episodes = data["episodes"]
        predictions = {}

        severity = regression_severity_trend(
            episodes, window_size=config["window_size"], min_data_points=config["min_data_points"],
        )
        if severity["prediction"] == "escalating":
            predictions["escalation"] = {
                "confidence": severity["confidence"],
                "timeframe": "48_hours",
                "expected_severity": severity["expected_severity"],
                "trend_data": severity,
            }

        frequency = regression_frequency_trend(episodes)
        if frequency["prediction"] == "increasing":
            predictions["wellness_decline"] = {
                "confidence": frequency["confidence"],
                "timeframe": "7_days",
                "expected_episodes": frequency["expected_episodes"],
                "trend_data": frequency,
            }

        return predictions

    def pattern_matching_predictions(self, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        patterns = data.get("patterns")
        if not patterns:
            return {}

        now = data["now"]
        families = patterns.get("patterns", {})
        predictions: dict[str, dict[str, Any]] = {}

        cycles = families.get("temporal", {}).get("cycles", {}).get("detected_cycles", [])
        for cycle in cycles:
            if cycle["confidence"] != "high":
                continue
            upcoming = next_cycle_occurrence(data["episodes"], cycle["length_days"], now)
            if upcoming["days_until"] is None or upcoming["days_until"] > 3:
                continue
            current = predictions.get("pattern_recurrence", {}).get("confidence", 0)
            if cycle["strength"] > current:
                predictions["pattern_recurrence"] = {
                    "confidence": cycle["strength"],
                    "pattern_type": "cyclical",
                    "cycle_length": cycle["length_days"],
                    "next_occurrence": upcoming["next_occurrence"],
                    "days_until": upcoming["days_until"],
                }

        for timing in families.get("trigger", {}).get("trigger_timing", []):
            hours_ahead = (timing["peak_hour"] - now.hour) % 24
            if 1 <= hours_ahead <= 3:
                predictions["trigger_exposure"] = {
                    "confidence": 0.75,
                    "trigger_type": "temporal",
                    "expected_time": timing["peak_hour"],
                    "common_triggers": timing["associated_triggers"],
                }
                break

        return predictions

    def behavioral_predictions(self, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        config = prediction_models()["behavioral"]
        episodes = data["episodes"]
        now = data["now"]
        recent = episodes[-config["recent_episodes"]:]
        deviations = calculate_behavioral_deviations(recent, data["baseline"], config["recent_episodes"])
        predictions: dict[str, dict[str, Any]] = {}

        social = deviations.get("social_engagement")
        if social is not None and social < config["social_deviation_threshold"]:
            predictions["social_isolation"] = {
                "confidence": min(0.85, 0.5 + abs(social) * 0.3),
                "deviation": round(social, 4),
                "baseline_comparison": "significantly_lower",
                "recommendation": "increase_social_activities",
            }

        sleep = deviations.get("sleep_quality")
        if sleep is not None and sleep < config["sleep_deviation_threshold"]:
            predictions["sleep_disruption"] = {
                "confidence": min(0.8, 0.5 + abs(sleep) * 0.5),
                "deviation": round(sleep, 4),
                "pattern": identify_sleep_pattern([ep for ep in recent if is_sleep_related(ep)]),
            }

        lookback = now - timedelta(days=config["medication_lookback_days"])
        if by_widget(episodes_between(episodes, lookback), Widget.MEDICATION_TRACKER):
            window = config["medication_window_days"]
            adherence = medication_adherence(
                episodes_between(episodes, now - timedelta(days=window)), expected_days=window,
            )
            if adherence["rate"] < 0.8:
                predictions["medication_adherence"] = {
                    "confidence": round(0.9 - adherence["rate"], 4),
                    "adherence_rate": adherence["rate"],
                    "missed_doses": adherence["missed_doses"],
                    "pattern": adherence["pattern"],
                }

        return predictions

    def ai_predictions(self, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        result = self.ai_service.analyze_patterns(
            data["episodes"],
            {
                "type": "predictive_analysis",
                "models": list(prediction_models()),
                "timeframe": "7_days",
                "include_confidence": True,
            },
        )
        if "error" in result:
            return {}

        predictions = {}
        for prediction in result.get("data", {}).get("predictions", []):
            alert_type = prediction.get("type")
            confidence = prediction.get("confidence", 0)
            if alert_type and confidence >= 0.5 and prediction.get("timeframe"):
                predictions[alert_type] = {
                    "confidence": confidence,
                    "timeframe": prediction["timeframe"],
                    "details": prediction.get("details", {}),
                    "ai_reasoning": prediction.get("reasoning", ""),
                }
        return predictions

    # ── Alert lifecycle ───────────────────────────────────────────────────

    def get_active_alerts(self, user_id: str, now: datetime | None = None) -> list[Alert]:
        return alert_store.get_active_alerts(user_id, now=now, r=self.r)

    def dismiss_alert(self, user_id: str, alert_id: str, now: datetime | None = None) -> bool:
        return alert_store.dismiss_alert(user_id, alert_id, now=now, r=self.r)

    def snooze_alert(
        self,
        user_id: str,
        alert_id: str,
        hours: int = DEFAULT_SNOOZE_HOURS,
        now: datetime | None = None,
    ) -> bool:
        return alert_store.snooze_alert(user_id, alert_id, hours=hours, now=now, r=self.r)
