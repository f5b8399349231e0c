"""Tests for the JSONL event journal."""

import json
from datetime import datetime
from unittest.mock import patch

from roomwatch.events import configure, get_log_file, log_event


def read_entries(log_dir):
    log_files = list(log_dir.glob("*.jsonl"))
    assert len(log_files) == 1
    with open(log_files[0]) as f:
        return [json.loads(line) for line in f]


class TestGetLogFile:
    """Test get_log_file function."""

    def test_returns_dated_path(self, tmp_path):
        """Returns path in LOG_DIR with date format."""
        with patch("roomwatch.events.LOG_DIR", tmp_path):
            log_file = get_log_file()
        assert log_file.parent == tmp_path
        assert log_file.suffix == ".jsonl"
        assert datetime.now().strftime("%Y-%m-%d") in log_file.name

    def test_configure_moves_journal(self, tmp_path):
        with patch("roomwatch.events.LOG_DIR", tmp_path):
            configure(tmp_path / "elsewhere")
            assert get_log_file().parent == tmp_path / "elsewhere"


class TestLogEvent:
    """Test log_event function."""

    def test_creates_log_entry(self, tmp_path):
        """Creates log entry with correct schema."""
        with patch("roomwatch.events.LOG_DIR", tmp_path):
            log_event("bot", "dispatch", message_id="m1", result="ok")

        entry = read_entries(tmp_path)[0]
        assert entry["handle"] == "bot"
        assert entry["event"] == "dispatch"
        assert entry["message_id"] == "m1"
        assert entry["result"] == "ok"
        assert entry["error"] is None
        assert "ts" in entry
        assert len(entry["run_id"]) == 8

    def test_logs_error(self, tmp_path):
        with patch("roomwatch.events.LOG_DIR", tmp_path):
            log_event("bot", "fetch_error", result="fail", error="Network error")

        entry = read_entries(tmp_path)[0]
        assert entry["result"] == "fail"
        assert entry["error"] == "Network error"

    def test_logs_extra_fields(self, tmp_path):
        with patch("roomwatch.events.LOG_DIR", tmp_path):
            log_event("bot", "dispatch", "m1", extra={"target": "claude"})

        assert read_entries(tmp_path)[0]["target"] == "claude"

    def test_appends_to_existing_file(self, tmp_path):
        with patch("roomwatch.events.LOG_DIR", tmp_path):
            log_event("bot", "startup")
            log_event("bot", "shutdown")

        entries = read_entries(tmp_path)
        assert [e["event"] for e in entries] == ["startup", "shutdown"]
        assert entries[0]["run_id"] == entries[1]["run_id"]

    def test_creates_log_dir(self, tmp_path):
        log_dir = tmp_path / "nested" / "logs"
        with patch("roomwatch.events.LOG_DIR", log_dir):
            log_event("bot", "startup")
        assert log_dir.exists()

    def test_write_failure_does_not_raise(self, tmp_path):
        """The journal is best effort; a broken log dir is only a warning."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with patch("roomwatch.events.LOG_DIR", blocker / "logs"):
            log_event("bot", "startup")
