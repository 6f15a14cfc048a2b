"""CLI offline smoke tests against a temporary SQLite database."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from weather_ask import cli


def _set_env(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LLM_API_KEY", "vn-test-key-123456789")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'db' / 'weather.db'}")
    monkeypatch.setenv("JOURNAL_DIR", str(tmp_path / "journal"))
    monkeypatch.setenv("RAW_PAYLOAD_DIR", str(tmp_path / "raw"))


def _write_items(tmp_path: Path) -> Path:
    items = [
        {
            "guid": "feed-1",
            "published_at": "2025-02-12T06:30:00Z",
            "date_label": "Today",
            "min_temp": 3,
            "max_temp": 8,
            "wind_speed": 12,
            "wind_direction": "SW",
            "description": "Bright spells",
            "rainfall": "0",
            "visibility": "Good",
        },
        {
            "guid": "feed-1",
            "published_at": "2025-02-12T06:30:00Z",
            "date_label": "Thursday, 13 February 2025",
            "min_temp": 5,
            "max_temp": 10,
            "description": "Rain",
            "rainfall": "5-10",
        },
        {"guid": "feed-1", "date_label": "sometime"},
    ]
    target = tmp_path / "items.json"
    target.write_text(json.dumps(items), encoding="utf-8")
    return target


class _FakeLLMClient:
    intent: Any = {"query_type": "forecast_for_date", "target_date": "2025-02-13"}

    def __init__(self, config: Any, api_key: str | None, logger: Any) -> None:
        self.api_key = api_key

    def __enter__(self) -> _FakeLLMClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def request_intent(self, system_prompt: str, user_prompt: str) -> Any:
        return self.intent

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        return "Wet on Thursday."


def test_load_then_list(monkeypatch: Any, tmp_path: Path, capsys: Any) -> None:
    _set_env(monkeypatch, tmp_path)
    items_file = _write_items(tmp_path)

    assert cli.main(["load", str(items_file)]) == 0
    assert "items=3 inserted=2 duplicates=0 skipped=1" in capsys.readouterr().out

    assert cli.main(["load", str(items_file)]) == 0
    assert "inserted=0 duplicates=2" in capsys.readouterr().out

    assert cli.main(["forecasts", "--date", "2025-02-13"]) == 0
    output = capsys.readouterr().out
    assert "Issuances for 2025-02-13" in output
    assert "latest_published_at=2025-02-12T06:30:00.000Z" in output

    journal_files = list((tmp_path / "journal").glob("*.jsonl"))
    assert journal_files
    event_types = [
        json.loads(line)["event_type"]
        for line in journal_files[0].read_text(encoding="utf-8").strip().splitlines()
    ]
    assert "startup" in event_types
    assert "forecasts_loaded" in event_types


def test_ask_prints_answer(monkeypatch: Any, tmp_path: Path, capsys: Any) -> None:
    _set_env(monkeypatch, tmp_path)
    assert cli.main(["load", str(_write_items(tmp_path))]) == 0
    capsys.readouterr()

    monkeypatch.setattr(cli, "LLMClient", _FakeLLMClient)
    assert cli.main(["ask", "Will it rain on Thursday?", "--json"]) == 0
    output = capsys.readouterr().out
    assert '"success": true' in output
    assert '"query_type": "forecast_for_date"' in output
    assert "Wet on Thursday." in output


def test_ask_failure_exit_code(monkeypatch: Any, tmp_path: Path, capsys: Any) -> None:
    _set_env(monkeypatch, tmp_path)

    class _Unanswerable(_FakeLLMClient):
        intent = {"error": "unanswerable", "reason": "Not about weather"}

    monkeypatch.setattr(cli, "LLMClient", _Unanswerable)
    assert cli.main(["ask", "What's the capital of France?"]) == 1
    assert "unanswerable:" in capsys.readouterr().out


def test_config_error_exit_code(monkeypatch: Any, tmp_path: Path) -> None:
    _set_env(monkeypatch, tmp_path)
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "0")
    assert cli.main(["forecasts"]) == 2


def test_unknown_command_exits() -> None:
    with pytest.raises(SystemExit):
        cli.main(["delete-everything"])
