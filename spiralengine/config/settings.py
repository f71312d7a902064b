"""Engine-wide configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Redis
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

# Directory for episode imports and exports
DATA_DIR: Path = Path(
    os.getenv("DATA_DIR", str(Path(__file__).resolve().parent.parent.parent / "data"))
)

# Alert types, insight types and prediction model tables
RULES_FILE: Path = Path(
    os.getenv("RULES_FILE", str(Path(__file__).resolve().parent / "engine_rules.yaml"))
)

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ── Pattern Analysis ─────────────────────────────────────────────────────

PATTERN_MIN_EPISODES: int = int(os.getenv("PATTERN_MIN_EPISODES", "5"))
PATTERN_ANALYSIS_DAYS: int = int(os.getenv("PATTERN_ANALYSIS_DAYS", "30"))
PATTERN_CACHE_TTL: int = int(os.getenv("PATTERN_CACHE_TTL", "3600"))  # 1 hour
HIGH_SEVERITY_THRESHOLD: int = int(os.getenv("HIGH_SEVERITY_THRESHOLD", "7"))
CLUSTER_GAP_SECONDS: int = int(os.getenv("CLUSTER_GAP_SECONDS", "3600"))
CYCLE_STRENGTH_THRESHOLD: float = float(os.getenv("CYCLE_STRENGTH_THRESHOLD", "0.6"))
MAX_CYCLE_LENGTH: int = int(os.getenv("MAX_CYCLE_LENGTH", "30"))

# ── Insights ─────────────────────────────────────────────────────────────

INSIGHT_HISTORY_MAX: int = int(os.getenv("INSIGHT_HISTORY_MAX", "100"))

# ── Predictive Alerts ────────────────────────────────────────────────────

ALERT_HISTORY_DAYS: int = int(os.getenv("ALERT_HISTORY_DAYS", "7"))
PREDICTION_LOOKBACK_DAYS: int = int(os.getenv("PREDICTION_LOOKBACK_DAYS", "90"))
PREDICTION_MIN_EPISODES: int = int(os.getenv("PREDICTION_MIN_EPISODES", "10"))
ACTIVE_USER_DAYS: int = int(os.getenv("ACTIVE_USER_DAYS", "7"))
DISMISS_SUPPRESSION_HOURS: int = int(os.getenv("DISMISS_SUPPRESSION_HOURS", "24"))
DEFAULT_SNOOZE_HOURS: int = int(os.getenv("DEFAULT_SNOOZE_HOURS", "24"))
ALERT_LOG_MAX: int = int(os.getenv("ALERT_LOG_MAX", "500"))

# ── AI Service ───────────────────────────────────────────────────────────

AI_ENABLED: bool = os.getenv("AI_ENABLED", "true").lower() in ("1", "true", "yes")
AI_PROVIDER: str = os.getenv("AI_PROVIDER", "mock")
AI_PRIVACY_MODE: bool = os.getenv("AI_PRIVACY_MODE", "true").lower() in ("1", "true", "yes")
AI_CACHE_RESULTS: bool = os.getenv("AI_CACHE_RESULTS", "true").lower() in ("1", "true", "yes")
AI_CACHE_TTL: int = int(os.getenv("AI_CACHE_TTL", "3600"))
AI_MOCK_ERROR_RATE: float = float(os.getenv("AI_MOCK_ERROR_RATE", "0"))
AI_MOCK_SEED: int = int(os.getenv("AI_MOCK_SEED", "42"))
