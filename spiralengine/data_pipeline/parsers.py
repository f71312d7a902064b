"""
Parsers for episode import and export files.

CSV exports carry one episode per row; JSON exports are either a bare list of
episode dicts or the versioned ``{"episodes": [...]}`` payload written by
``export_episodes_json``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import pandas as pd

from spiralengine.config.settings import DATA_DIR
from spiralengine.models.episode import Episode, parse_timestamp

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

REQUIRED_COLUMNS = ("user_id", "widget_id", "severity", "created_at")
JSON_COLUMNS = ("data", "metadata")


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def parse_episodes_csv(path: Path | str, user_id: str | None = None) -> list[Episode]:
    """Parse an episode CSV export.

    Columns: user_id, widget_id, severity, created_at and optionally data,
    metadata (JSON cells) and episode_id. `user_id` overrides the column.
    """
    path = _resolve(path)
    df = pd.read_csv(path, dtype=str).fillna("")

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns and not (c == "user_id" and user_id)]
    if missing:
        raise ValueError(f"{path.name}: missing columns {', '.join(missing)}")

    episodes = []
    for index, row in df.iterrows():
        if not row.get("widget_id", "").strip():
            continue
        record: dict[str, Any] = {
            "user_id": user_id or row["user_id"],
            "widget_id": row["widget_id"].strip(),
            "severity": row["severity"] or 5,
            "created_at": row["created_at"],
        }
        for column in JSON_COLUMNS:
            record[column] = _json_cell(row.get(column, ""), path, index, column)
        if row.get("episode_id"):
            record["episode_id"] = row["episode_id"]
        episodes.append(_build_episode(record, path))

    logger.info("Parsed %d episodes from %s", len(episodes), path.name)
    return episodes


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def parse_episodes_json(path: Path | str, user_id: str | None = None) -> list[Episode]:
    path = _resolve(path)
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    items = raw.get("episodes", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ValueError(f"{path.name}: expected a list of episodes")

    episodes = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"{path.name}: episode entries must be objects")
        record = dict(item)
        if user_id:
            record["user_id"] = user_id
        elif isinstance(raw, dict) and "user_id" not in record and raw.get("user_id"):
            record["user_id"] = raw["user_id"]
        episodes.append(_build_episode(record, path))

    logger.info("Parsed %d episodes from %s", len(episodes), path.name)
    return episodes


def load_episodes(path: Path | str, user_id: str | None = None) -> list[Episode]:
    """Parse an import file, dispatching on its suffix."""
    path = _resolve(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return parse_episodes_csv(path, user_id)
    if suffix == ".json":
        return parse_episodes_json(path, user_id)
    raise ValueError(f"Unsupported episode file type: {suffix or path.name}")


def export_episodes_json(
    episodes: Iterable[Episode],
    path: Path | str,
    user_id: str | None = None,
) -> dict[str, Any]:
    """Write a versioned export that ``parse_episodes_json`` reads back."""
    items = []
    for ep in sorted(episodes, key=lambda e: e.epoch):
        items.append({
            "episode_id": ep.episode_id,
            "user_id": ep.user_id,
            "widget_id": ep.widget_id,
            "severity": ep.severity,
            "created_at": ep.created_at,
            "data": ep.data,
            "metadata": ep.metadata,
        })
    payload = {
        "version": EXPORT_VERSION,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "user_id": user_id,
        "episode_count": len(items),
        "episodes": items,
    }

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    logger.info("Exported %d episodes to %s", len(items), path)
    return payload


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve(path: Path | str) -> Path:
    path = Path(path)
    if not path.is_absolute() and not path.exists():
        candidate = DATA_DIR / path
        if candidate.exists():
            return candidate
    return path


def _json_cell(value: str, path: Path, index: Any, column: str) -> dict[str, Any]:
    if not value.strip():
        return {}
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path.name} row {index}: invalid JSON in {column}") from exc
    return decoded if isinstance(decoded, dict) else {"value": decoded}


def _build_episode(record: dict[str, Any], path: Path) -> Episode:
    if not record.get("user_id"):
        raise ValueError(f"{path.name}: episode without user_id")
    try:
        record["created_at"] = parse_timestamp(record.get("created_at") or "").isoformat()
    except ValueError as exc:
        raise ValueError(f"{path.name}: {exc}") from exc
    return Episode.from_dict(record)
