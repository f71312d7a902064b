"""Rule tables (alert types, prediction models, insight types) read from YAML."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from spiralengine.config.settings import RULES_FILE


@lru_cache(maxsize=4)
def load_rules(path: Path = RULES_FILE) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f)


def alert_types() -> dict[str, dict[str, Any]]:
    return load_rules()["alert_types"]


def prediction_models() -> dict[str, dict[str, Any]]:
    return load_rules()["prediction_models"]


def model_weight(model: str) -> float:
    weights = load_rules()["model_weights"]
    return float(weights.get(model, weights["default"]))


def data_requirement(prediction_type: str) -> int:
    requirements = load_rules()["data_requirements"]
    return int(requirements.get(prediction_type, requirements["default"]))


def insight_types() -> dict[str, dict[str, Any]]:
    return load_rules()["insight_types"]
