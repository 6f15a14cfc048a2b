"""Settings, redaction, journal and log formatting."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from weather_ask.config import Settings, load_settings
from weather_ask.exceptions import ConfigError, JournalError
from weather_ask.journal import AskJournal, question_fingerprint
from weather_ask.log_setup import JsonConsoleFormatter
from weather_ask.redaction import REDACTED, sanitize_for_logging, sanitize_text


class TestSettings:
    def test_defaults(self, monkeypatch: Any, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        settings = Settings()
        assert settings.llm_model == "zai-org-glm-4.6"
        assert settings.llm_timeout_seconds == 15.0
        assert settings.llm_max_retries == 1
        assert settings.rate_limit_max_requests == 5
        assert settings.rate_limit_window_seconds == 86400
        assert settings.max_citations == 10

    def test_frozen_component_configs(self, monkeypatch: Any, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "3.5")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "9")
        settings = Settings()
        llm = settings.llm_config()
        assert llm.timeout_seconds == 3.5
        assert llm.temperature_structured == pytest.approx(0.1)
        assert settings.rate_limit_config().max_requests == 9
        with pytest.raises(Exception):
            llm.timeout_seconds = 1.0  # type: ignore[misc]

    def test_blank_api_key_is_unset(self, monkeypatch: Any, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LLM_API_KEY", "  ")
        assert Settings().llm_api_key is None

    def test_safe_summary_hides_key(self, monkeypatch: Any, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LLM_API_KEY", "vn-secret-value-123456")
        summary = Settings().safe_summary()
        assert "vn-secret-value-123456" not in json.dumps(summary)
        assert summary["llm_api_key_set"] is True

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("LLM_TIMEOUT_SECONDS", "0"),
            ("MAX_CITATIONS", "51"),
            ("RATE_LIMIT_WINDOW_SECONDS", "-1"),
            ("LLM_API_URL", "ftp://example.com"),
            ("APP_ENV", "qa"),
        ],
    )
    def test_invalid_values_raise_config_error(
        self, monkeypatch: Any, tmp_path: Path, name: str, value: str
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            load_settings()

    def test_load_settings_creates_dirs(self, monkeypatch: Any, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("JOURNAL_DIR", str(tmp_path / "j"))
        monkeypatch.setenv("RAW_PAYLOAD_DIR", str(tmp_path / "r"))
        load_settings()
        assert (tmp_path / "j").is_dir()
        assert (tmp_path / "r").is_dir()


class TestRedaction:
    def test_bearer_and_keys(self) -> None:
        text = "Authorization: Bearer abc.def-123 and key vn-ABCDEFGHIJKLMNOP"
        sanitized = sanitize_text(text)
        assert "abc.def-123" not in sanitized
        assert "vn-ABCDEFGHIJKLMNOP" not in sanitized

    def test_database_credentials(self) -> None:
        sanitized = sanitize_text("postgresql+psycopg://user:hunter2@db:5432/weather")
        assert "hunter2" not in sanitized

    def test_nested_values(self) -> None:
        payload = {"headers": {"Authorization": "Bearer x"}, "items": ["api_key=zzz", 3]}
        sanitized = sanitize_for_logging(payload)
        assert sanitized["headers"]["Authorization"] == REDACTED
        assert "zzz" not in sanitized["items"][0]
        assert sanitized["items"][1] == 3


class TestJournal:
    def test_events_appended_as_jsonl(self, tmp_path: Path) -> None:
        journal = AskJournal(tmp_path / "j", tmp_path / "r", "sess")
        journal.write_event("ask_outcome", {"success": True})
        journal.write_event("ask_outcome", {"success": False, "api_key": "vn-secret"})
        lines = journal.events_path.read_text(encoding="utf-8").strip().splitlines()
        records = [json.loads(line) for line in lines]
        assert [r["session_id"] for r in records] == ["sess", "sess"]
        assert records[1]["payload"]["api_key"] == REDACTED

    def test_raw_snapshot_written(self, tmp_path: Path) -> None:
        journal = AskJournal(tmp_path / "j", tmp_path / "r", "sess")
        path = journal.write_raw_snapshot("invalid intent!", {"query_type": "nope"})
        assert path.parent == tmp_path / "r"
        assert path.name.endswith("_sess_invalid_intent_.json")
        assert json.loads(path.read_text(encoding="utf-8")) == {"query_type": "nope"}

    def test_unserializable_payload_raises(self, tmp_path: Path) -> None:
        journal = AskJournal(tmp_path / "j", tmp_path / "r", "sess")
        with pytest.raises(JournalError):
            journal.write_event("ask_outcome", {"value": object()})

    def test_fingerprint_normalizes_whitespace_and_case(self) -> None:
        assert question_fingerprint("Will it  RAIN?") == question_fingerprint("will it rain?")
        assert len(question_fingerprint("x")) == 16


def test_json_formatter_includes_extras() -> None:
    record = logging.LogRecord(
        "weather_ask", logging.INFO, __file__, 1, "Query %s returned %d rows", ("count", 2), None
    )
    record.params = ["2025-01-01"]
    event = json.loads(JsonConsoleFormatter().format(record))
    assert event["message"] == "Query count returned 2 rows"
    assert event["level"] == "INFO"
    assert event["extra"] == {"params": ["2025-01-01"]}
