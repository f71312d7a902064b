"""Deterministic stand-in for an AI analysis provider.

Answers every analysis type the engine requests with structured template
data, so the pattern, insight and alert pipelines can be exercised end to end
without a network call. Seeded randomness drives response shuffling and
simulated failures.
"""

from __future__ import annotations

import copy
import logging
import random
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Response templates
# ═══════════════════════════════════════════════════════════════════════════

EPISODE_ANALYSIS = {
    "severity_assessment": {
        "suggested_severity": 6,
        "severity_rationale": "Based on the content and context, this appears to be a moderate episode.",
    },
    "patterns": ["Time-based pattern detected", "Stress-related trigger identified"],
    "triggers": ["Work stress", "Sleep disruption"],
    "insights": [
        "Your episodes tend to occur more frequently during weekday mornings",
        "There appears to be a correlation between work deadlines and episode severity",
    ],
    "coping_suggestions": [
        "Try the 5-4-3-2-1 grounding technique when you feel an episode starting",
        "Consider scheduling brief breaks during high-stress work periods",
    ],
    "professional_support_recommended": False,
    "encouragement": "You're doing great by tracking your episodes. This awareness is a powerful tool for improvement.",
}

PATTERN_ANALYSIS = {
    "recurring_patterns": [
        {
            "pattern": "Morning anxiety spike",
            "frequency": "4-5 times per week",
            "triggers": ["Work anticipation", "Morning routine rush"],
            "impact": "Moderate increase in severity",
        },
        {
            "pattern": "Weekend recovery",
            "frequency": "Weekly",
            "triggers": ["Reduced obligations"],
            "impact": "Significant severity decrease",
        },
    ],
    "correlations": [
        {
            "factor1": "Sleep quality",
            "factor2": "Episode severity",
            "correlation_strength": "strong",
            "description": "Poor sleep quality strongly correlates with increased episode severity the following day",
        },
    ],
    "trends": {
        "severity_trend": "improving",
        "frequency_trend": "stable",
        "description": "Overall severity showing gradual improvement while frequency remains consistent",
    },
    "key_insights": [
        "Your coping strategies are becoming more effective over time",
        "Maintaining consistent sleep schedule could further reduce episode severity",
    ],
    "recommendations": [
        "Prioritize sleep hygiene to leverage the strong sleep-severity correlation",
        "Continue using successful coping strategies, especially grounding techniques",
    ],
}

RECOMMENDATIONS = {
    "immediate_actions": [
        {
            "action": "Take 5 deep breaths",
            "rationale": "Activates parasympathetic nervous system for immediate calming",
            "how_to": "Breathe in for 4 counts, hold for 4, out for 6",
        },
        {
            "action": "Step outside for fresh air",
            "rationale": "Change of environment can interrupt negative thought patterns",
            "how_to": "Take a 5-minute walk or simply stand outside",
        },
    ],
    "coping_strategies": [
        {
            "strategy": "Progressive Muscle Relaxation",
            "when_to_use": "When feeling physical tension or anxiety",
            "expected_benefit": "Reduces physical symptoms of stress",
        },
        {
            "strategy": "Mindful journaling",
            "when_to_use": "End of day reflection",
            "expected_benefit": "Processes emotions and identifies patterns",
        },
    ],
    "lifestyle_suggestions": [
        "Establish a consistent sleep schedule",
        "Incorporate 20 minutes of daily physical activity",
    ],
    "skill_building": [
        {
            "skill": "Emotion regulation",
            "importance": "Core skill for managing episode intensity",
            "resources": "DBT workbooks or online courses",
        },
    ],
    "professional_resources": [
        "Consider CBT therapy for long-term pattern change",
        "Explore mindfulness-based stress reduction programs",
    ],
}

CONTEXT_RECOMMENDATIONS = {
    "coping_skills": [
        "Practice your most effective skill daily, even on good days",
        "Pair breathing exercises with your existing morning routine",
    ],
    "goals": [
        "Break your active goal into one small step for this week",
        "Review goal progress every Sunday evening",
    ],
    "predictive": [
        "Plan a lighter schedule around your predicted high-risk days",
        "Prepare a coping plan before the next expected pattern recurrence",
    ],
    "crisis": [
        "Reach out to someone you trust today",
        "Keep crisis line numbers somewhere easy to find",
    ],
}

PREDICTIVE_ANALYSIS = {
    "predictions": [
        {
            "type": "escalation",
            "confidence": 0.72,
            "timeframe": "48_hours",
            "details": {"expected_severity": 7, "contributing_factors": ["sleep disruption", "work stress"]},
            "reasoning": "Recent severity scores show an upward trend combined with reduced sleep quality.",
        },
        {
            "type": "pattern_recurrence",
            "confidence": 0.68,
            "timeframe": "7_days",
            "details": {"pattern": "weekly stress cycle", "expected_day": "Monday"},
            "reasoning": "A weekly cycle peaking at the start of the work week has repeated for several weeks.",
        },
    ],
    "risk_assessment": {
        "overall_risk": "moderate",
        "primary_concerns": ["Increasing severity", "Sleep quality decline"],
    },
    "preventive_measures": [
        "Schedule extra self-care before Monday",
        "Protect a consistent bedtime this week",
    ],
}


class MockProvider:
    """AI provider that answers from templates instead of a model."""

    def __init__(
        self,
        model: str = "mock-advanced",
        error_rate: float = 0.0,
        seed: int | None = 42,
        randomize_responses: bool = True,
    ) -> None:
        self.model = model
        self.error_rate = error_rate
        self.randomize_responses = randomize_responses
        self._rng = random.Random(seed)

    def analyze(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        if self.error_rate > 0 and self._rng.random() < self.error_rate:
            logger.debug("Mock provider simulating an API error")
            return {"error": "Simulated API error for testing"}

        analysis_type = params.get("type", "general")
        handlers = {
            "episode_analysis": self._episode_analysis,
            "pattern_analysis": self._pattern_analysis,
            "insight_generation": self._insight_generation,
            "recommendations": self._recommendations,
            "predictive_analysis": self._predictive_analysis,
        }
        handler = handlers.get(analysis_type, self._generic)
        data = handler(content, params)

        prompt_tokens = len(str(content)) // 4
        completion_tokens = len(str(data)) // 4
        return {
            "type": analysis_type,
            "data": data,
            "format": "structured",
            "model": self.model,
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # ── Handlers ──────────────────────────────────────────────────────────

    def _episode_analysis(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        data = copy.deepcopy(EPISODE_ANALYSIS)
        severity = content.get("severity")
        if isinstance(severity, (int, float)):
            data["severity_assessment"]["suggested_severity"] = int(severity)
            data["professional_support_recommended"] = severity >= 8
        if not params.get("include_recommendations", True):
            data.pop("coping_suggestions")
        if self.randomize_responses:
            self._rng.shuffle(data["insights"])
        return data

    def _pattern_analysis(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        data = copy.deepcopy(PATTERN_ANALYSIS)
        count = int(content.get("episode_count", 0))
        days = content.get("timespan", {}).get("days", 0)
        data["key_insights"].append(f"Analysis based on {days} days of data")
        if count < 20:
            data["trends"]["description"] = (
                "Limited data available; trends will become clearer as you log more episodes"
            )
        if not params.get("include_predictions", True):
            data.pop("trends")
        return data

    def _insight_generation(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        stats = content.get("stats", {})
        total = stats.get("total_episodes", 0)
        focus_areas = params.get("focus_areas", [])

        personalized = [
            f"You have logged {total} episodes, building a clear picture of your patterns",
            "Your most consistent tracking happens on weekdays",
        ]
        if "triggers" in focus_areas:
            personalized.append("Work stress remains your primary trigger")

        return {
            "strengths": [
                "Consistent self-monitoring",
                "Willingness to try new coping strategies",
            ],
            "progress_highlights": [
                f"Average severity of {stats.get('average_severity', 0)} this period",
                f"Most used tool: {stats.get('most_used_widget') or 'none yet'}",
            ],
            "growth_opportunities": [
                "Explore additional coping skills for high-severity moments",
                "Track sleep alongside mood to uncover connections",
            ],
            "personalized_insights": personalized,
            "wellbeing_summary": "Your tracking shows steady engagement with your mental health journey.",
            "next_steps": [
                "Continue daily check-ins",
                "Try one new coping skill this week",
            ],
        }

    def _recommendations(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        data = copy.deepcopy(RECOMMENDATIONS)
        context = params.get("context", "general")
        if context in CONTEXT_RECOMMENDATIONS:
            data["context_specific"] = list(CONTEXT_RECOMMENDATIONS[context])
        limit = int(params.get("max_recommendations", 5))
        data["immediate_actions"] = data["immediate_actions"][:limit]
        if not params.get("include_rationale", True):
            for action in data["immediate_actions"]:
                action.pop("rationale", None)
        data["context"] = context
        return data

    def _predictive_analysis(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        data = copy.deepcopy(PREDICTIVE_ANALYSIS)
        if not params.get("include_confidence", True):
            for prediction in data["predictions"]:
                prediction.pop("confidence")
        return data

    def _generic(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        return {
            "summary": "Analysis complete",
            "content_keys": sorted(content.keys()),
        }
