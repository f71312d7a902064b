"""Tests for the episode import/export parsers."""

import json

import pytest

from spiralengine.data_pipeline.parsers import (
    EXPORT_VERSION,
    export_episodes_json,
    load_episodes,
    parse_episodes_csv,
    parse_episodes_json,
)
from spiralengine.models.episode import Widget


CSV_TEXT = """episode_id,user_id,widget_id,severity,created_at,data,metadata
e1,u1,mood-tracker,6,2026-02-10 09:00:00,"{""mood"": ""anxious""}",
e2,u1,coping-logger,,2026-02-10T20:00:00Z,"{""skill_category"": ""breathing"", ""effectiveness"": 7}","{""location"": ""home""}"
,u1,,3,2026-02-11 09:00:00,,
e3,u1,sleep-tracker,4,2026-02-11T07:00:00+00:00,[1],
"""


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "episodes.csv"
    path.write_text(CSV_TEXT)
    return path


# ═══════════════════════════════════════════════════════════════════════════
# CSV
# ═══════════════════════════════════════════════════════════════════════════


class TestParseCsv:
    def test_rows(self, csv_file):
        episodes = parse_episodes_csv(csv_file)
        assert [ep.episode_id for ep in episodes] == ["e1", "e2", "e3"]

        mood, coping, sleep = episodes
        assert mood.widget_id == Widget.MOOD_TRACKER
        assert mood.severity == 6
        assert mood.created_at == "2026-02-10T09:00:00+00:00"
        assert mood.data == {"mood": "anxious"}
        assert coping.severity == 5
        assert coping.metadata == {"location": "home"}
        assert sleep.data == {"value": [1]}

    def test_user_override(self, csv_file):
        assert {ep.user_id for ep in parse_episodes_csv(csv_file, user_id="u9")} == {"u9"}

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("widget_id,severity\nmood-tracker,5\n")
        with pytest.raises(ValueError, match="missing columns user_id, created_at"):
            parse_episodes_csv(path)

    def test_user_column_optional_with_override(self, tmp_path):
        path = tmp_path / "anon.csv"
        path.write_text("widget_id,severity,created_at\nmood-tracker,5,2026-02-10 09:00:00\n")
        assert parse_episodes_csv(path, user_id="u2")[0].user_id == "u2"

    def test_invalid_json_cell(self, tmp_path):
        path = tmp_path / "broken.csv"
        path.write_text('user_id,widget_id,severity,created_at,data\nu1,mood-tracker,5,2026-02-10,"{oops"\n')
        with pytest.raises(ValueError, match="invalid JSON in data"):
            parse_episodes_csv(path)

    def test_bad_timestamp(self, tmp_path):
        path = tmp_path / "when.csv"
        path.write_text("user_id,widget_id,severity,created_at\nu1,mood-tracker,5,last tuesday\n")
        with pytest.raises(ValueError):
            parse_episodes_csv(path)


# ═══════════════════════════════════════════════════════════════════════════
# JSON
# ═══════════════════════════════════════════════════════════════════════════


class TestParseJson:
    def test_bare_list(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([
            {"user_id": "u1", "widget_id": "journal-entry", "severity": 7,
             "created_at": "2026-02-10T21:00:00Z", "data": {"text": "Long day"}},
        ]))
        (ep,) = parse_episodes_json(path)
        assert ep.widget_id == Widget.JOURNAL_ENTRY
        assert ep.data == {"text": "Long day"}
        assert ep.created_at == "2026-02-10T21:00:00+00:00"

    def test_payload_user_is_inherited(self, tmp_path):
        path = tmp_path / "payload.json"
        path.write_text(json.dumps({
            "user_id": "u3",
            "episodes": [{"widget_id": "mood-tracker", "created_at": "2026-02-10T09:00:00Z"}],
        }))
        assert parse_episodes_json(path)[0].user_id == "u3"

    def test_episode_without_user(self, tmp_path):
        path = tmp_path / "orphan.json"
        path.write_text(json.dumps([{"widget_id": "mood-tracker", "created_at": "2026-02-10T09:00:00Z"}]))
        with pytest.raises(ValueError, match="without user_id"):
            parse_episodes_json(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "odd.json"
        path.write_text(json.dumps({"episodes": {"widget_id": "mood-tracker"}}))
        with pytest.raises(ValueError, match="expected a list"):
            parse_episodes_json(path)

    def test_entries_must_be_objects(self, tmp_path):
        path = tmp_path / "numbers.json"
        path.write_text(json.dumps([1, 2]))
        with pytest.raises(ValueError, match="numbers.json: episode entries must be objects"):
            parse_episodes_json(path)


class TestLoadAndExport:
    def test_dispatch_on_suffix(self, csv_file):
        assert len(load_episodes(csv_file)) == 3

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "episodes.xlsx"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported episode file type: .xlsx"):
            load_episodes(path)

    def test_export_is_read_back(self, tmp_path, month_history):
        path = tmp_path / "out" / "export.json"
        payload = export_episodes_json(reversed(month_history), path, user_id="user-1")
        assert payload["version"] == EXPORT_VERSION
        assert payload["episode_count"] == 83
        assert payload["episodes"][0]["episode_id"] == month_history[0].episode_id

        assert load_episodes(path) == month_history
