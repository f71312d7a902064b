"""AI analysis service.

Wraps an opaque provider exposing ``analyze(content, params) -> dict`` and
prepares episode content for it. The service is the error boundary: callers
always receive a dict, carrying an ``error`` key when the provider is
unavailable or fails.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, Sequence

import redis

from spiralengine.ai.mock_provider import MockProvider
from spiralengine.config.settings import (
    AI_CACHE_RESULTS,
    AI_CACHE_TTL,
    AI_ENABLED,
    AI_MOCK_ERROR_RATE,
    AI_MOCK_SEED,
    AI_PRIVACY_MODE,
)
from spiralengine.engine import episode_store
from spiralengine.engine.result_cache import cache_get, cache_set
from spiralengine.engine.stats import mean
from spiralengine.engine.wellness import by_widget
from spiralengine.models.episode import Episode, Widget

logger = logging.getLogger(__name__)

UNAVAILABLE = {"error": "AI service is not available"}

# Fields removed from widget payloads before they leave the engine
PERSONAL_FIELDS = ("name", "email", "phone", "address")


class AIProvider(Protocol):
    def analyze(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        ...


def get_provider(name: str) -> AIProvider:
    """Build a provider by name."""
    if name == "mock":
        return MockProvider(error_rate=AI_MOCK_ERROR_RATE, seed=AI_MOCK_SEED)
    raise ValueError(f"Unknown AI provider: {name!r}")


def anonymize(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in PERSONAL_FIELDS}


@dataclass
class AIService:
    provider: AIProvider | None = None
    enabled: bool = AI_ENABLED
    privacy_mode: bool = AI_PRIVACY_MODE
    cache_results: bool = AI_CACHE_RESULTS
    cache_ttl: int = AI_CACHE_TTL
    r: redis.Redis | None = None

    @property
    def available(self) -> bool:
        return self.enabled and self.provider is not None

    # ── Content preparation ───────────────────────────────────────────────

    def prepare_episode(self, episode: Episode) -> dict[str, Any]:
        ts = episode.timestamp
        data = anonymize(episode.data) if self.privacy_mode else dict(episode.data)
        return {
            "widget_type": episode.widget_id,
            "severity": episode.severity,
            "data": data,
            "timestamp": episode.created_at,
            "context": {
                "time_of_day": ts.strftime("%H:%M"),
                "day_of_week": ts.strftime("%A"),
            },
        }

    def _call(self, content: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
        if not self.available:
            return dict(UNAVAILABLE)
        try:
            result = self.provider.analyze(content, params)
        except Exception as exc:
            logger.warning("AI provider failed on %s: %s", params.get("type"), exc)
            return {"error": str(exc)}
        if not isinstance(result, dict):
            return {"error": "AI provider returned an invalid response"}
        if "error" in result:
            logger.info("AI provider returned an error for %s: %s", params.get("type"), result["error"])
        return result

    # ── Operations ────────────────────────────────────────────────────────

    def analyze_episode(
        self,
        episode: Episode,
        params: dict[str, Any] | None = None,
        history: Sequence[Episode] = (),
    ) -> dict[str, Any]:
        """Analyze one episode; `history` supplies the 24h activity context."""
        if not self.available:
            return dict(UNAVAILABLE)

        content = self.prepare_episode(episode)
        window_start = episode.timestamp - timedelta(hours=24)
        content["context"]["recent_episodes"] = sum(
            1 for ep in history
            if ep.episode_id != episode.episode_id and window_start <= ep.timestamp <= episode.timestamp
        )
        params = {
            "type": "episode_analysis",
            "include_patterns": True,
            "include_insights": True,
            "include_recommendations": True,
            **(params or {}),
        }

        cache_key = None
        if self.cache_results:
            digest = hashlib.md5(
                json.dumps([content, params], sort_keys=True, default=str).encode()
            ).hexdigest()
            cache_key = f"ai:{digest}"
            cached = cache_get(cache_key, r=self.r)
            if cached is not None:
                return cached

        result = self._call(content, params)
        if cache_key and "error" not in result:
            cache_set(cache_key, result, self.cache_ttl, r=self.r)
        return result

    def analyze_patterns(
        self,
        episodes: Sequence[Episode],
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self.available:
            return dict(UNAVAILABLE)
        if not episodes:
            return {"error": "No episodes to analyze"}

        ordered = sorted(episodes, key=lambda ep: ep.epoch)
        start, end = ordered[0].timestamp, ordered[-1].timestamp
        content = {
            "episode_count": len(ordered),
            "timespan": {
                "days": int((end - start).total_seconds() // 86400),
                "start": ordered[0].created_at,
                "end": ordered[-1].created_at,
            },
            "episodes": [self.prepare_episode(ep) for ep in ordered],
        }
        params = {
            "type": "pattern_analysis",
            "timeframe": "30_days",
            "min_occurrences": 3,
            "include_correlations": True,
            "include_predictions": True,
            **(params or {}),
        }
        return self._call(content, params)

    def _user_stats(self, episodes: Sequence[Episode]) -> dict[str, Any]:
        widgets = Counter(ep.widget_id for ep in episodes)
        return {
            "total_episodes": len(episodes),
            "average_severity": round(mean([ep.severity for ep in episodes]), 2),
            "most_used_widget": widgets.most_common(1)[0][0] if widgets else None,
        }

    def generate_insights(
        self,
        user_id: str,
        params: dict[str, Any] | None = None,
        episodes: Sequence[Episode] | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Ask the provider for narrative insights over a user's recent episodes."""
        if not self.available:
            return dict(UNAVAILABLE)

        params = dict(params or {})
        if episodes is None:
            episodes = episode_store.get_recent_episodes(
                user_id, days=int(params.get("days", 30)), now=now, limit=100, r=self.r,
            )
        if not episodes:
            return {"error": "Not enough data for insight generation"}

        content = {
            "user_profile": {"user_id": user_id},
            "episodes": [self.prepare_episode(ep) for ep in episodes],
            "stats": self._user_stats(episodes),
        }
        params = {
            "type": "insight_generation",
            "focus_areas": ["patterns", "progress", "triggers"],
            "comprehensive": True,
            **params,
        }
        return self._call(content, params)

    def get_recommendations(
        self,
        user_id: str,
        context: str = "general",
        episodes: Sequence[Episode] | None = None,
        extra: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        if not self.available:
            return dict(UNAVAILABLE)

        now = now or datetime.now(timezone.utc)
        if episodes is None:
            episodes = episode_store.get_recent_episodes(user_id, days=7, now=now, r=self.r)

        content: dict[str, Any] = {
            "recent_episodes": [self.prepare_episode(ep) for ep in episodes],
            "stats": self._user_stats(episodes),
            "context": context,
        }
        if context == "coping_skills":
            content["coping_skills"] = [
                ep.data.get("skill_category") for ep in by_widget(episodes, Widget.COPING_LOGGER)
            ]
        elif context == "goals":
            content["goals"] = [
                ep.data.get("title") for ep in by_widget(episodes, Widget.GOAL_SETTING)
            ]
        elif context == "triggers":
            content["triggers"] = [
                ep.data.get("trigger_category") for ep in by_widget(episodes, Widget.TRIGGER_TRACKER)
            ]
        if extra:
            content.update(extra)

        params = {
            "type": "recommendations",
            "context": context,
            "max_recommendations": 5,
            "include_rationale": True,
        }
        return self._call(content, params)

