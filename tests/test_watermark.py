"""Tests for durable watermark storage."""

import json
import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from roomwatch.exceptions import PersistenceError
from roomwatch.models import Watermark
from roomwatch.watermark import WatermarkStore


class TestLoad:
    """Test WatermarkStore.load."""

    def test_missing_file_is_empty(self, store):
        """No file yet means no watermark."""
        watermark = store.load("bot")
        assert watermark == Watermark()
        assert watermark.is_empty

    def test_roundtrip(self, store):
        """A saved id is loaded back."""
        seen_at = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        store.save("bot", "m1", seen_at)

        watermark = store.load("bot")
        assert watermark.last_seen_id == "m1"
        assert watermark.last_seen_at == seen_at

    def test_scoped_per_handle(self, store):
        """Handles don't share watermarks."""
        store.save("bot", "m1")
        assert store.load("other").is_empty
        assert store.load("bot").last_seen_id == "m1"

    def test_ignores_unknown_fields(self, store, state_dir):
        """Readers tolerate extra fields written by newer versions."""
        state_dir.mkdir(parents=True)
        store.path_for("bot").write_text(json.dumps({
            "lastSeenId": "m7",
            "cursor": {"v": 2},
            "somethingElse": True,
        }))
        assert store.load("bot").last_seen_id == "m7"

    def test_accepts_legacy_key(self, store, state_dir):
        """Files written with lastSeenMessageId are still understood."""
        state_dir.mkdir(parents=True)
        store.path_for("bot").write_text(json.dumps({"lastSeenMessageId": "m3"}))
        assert store.load("bot").last_seen_id == "m3"

    def test_corrupt_file_starts_fresh(self, store, state_dir):
        """Unparseable file is treated as no watermark."""
        state_dir.mkdir(parents=True)
        store.path_for("bot").write_text("{not json")
        assert store.load("bot").is_empty

    def test_non_object_starts_fresh(self, store, state_dir):
        state_dir.mkdir(parents=True)
        store.path_for("bot").write_text("[1, 2]")
        assert store.load("bot").is_empty

    def test_bad_timestamp_keeps_id(self, store, state_dir):
        """A garbled lastSeenAt doesn't lose the id."""
        state_dir.mkdir(parents=True)
        store.path_for("bot").write_text(json.dumps({"lastSeenId": "m1", "lastSeenAt": "yesterday"}))
        watermark = store.load("bot")
        assert watermark.last_seen_id == "m1"
        assert watermark.last_seen_at is None

    def test_numeric_id_loaded_as_string(self, store, state_dir):
        state_dir.mkdir(parents=True)
        store.path_for("bot").write_text(json.dumps({"lastSeenId": 42}))
        assert store.load("bot").last_seen_id == "42"


class TestSave:
    """Test WatermarkStore.save."""

    def test_creates_state_dir(self, store, state_dir):
        """Missing directory is created."""
        store.save("bot", "m1")
        assert state_dir.is_dir()
        assert store.path_for("bot").exists()

    def test_file_format(self, store):
        """Saved file is a JSON object with lastSeenId."""
        store.save("bot", "m1")
        data = json.loads(store.path_for("bot").read_text())
        assert data["lastSeenId"] == "m1"
        assert data["handle"] == "bot"
        assert "updatedAt" in data

    def test_overwrites(self, store):
        store.save("bot", "m1")
        store.save("bot", "m2")
        assert store.load("bot").last_seen_id == "m2"

    def test_returns_new_watermark(self, store):
        watermark = store.save("bot", "m1")
        assert watermark.last_seen_id == "m1"

    def test_refuses_empty_id(self, store):
        """A watermark can never be reset to none."""
        with pytest.raises(PersistenceError):
            store.save("bot", "")
        with pytest.raises(PersistenceError):
            store.save("bot", None)

    def test_no_temp_files_left(self, store, state_dir):
        """Only the final file remains after a save."""
        store.save("bot", "m1")
        store.save("bot", "m2")
        assert [p.name for p in state_dir.iterdir()] == [store.path_for("bot").name]

    def test_failed_replace_keeps_old_value(self, store, state_dir):
        """If the rename fails, the previous watermark is intact."""
        store.save("bot", "m1")

        with patch("roomwatch.watermark.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError) as exc:
                store.save("bot", "m2")

        assert "disk full" in str(exc.value)
        assert store.load("bot").last_seen_id == "m1"
        # Temp file cleaned up
        assert [p.name for p in state_dir.iterdir()] == [store.path_for("bot").name]

    def test_failed_fsync_raises_persistence_error(self, store):
        with patch("roomwatch.watermark.os.fsync", side_effect=OSError("io error")):
            with pytest.raises(PersistenceError):
                store.save("bot", "m1")
        assert store.load("bot").is_empty

    def test_unwritable_dir_raises_persistence_error(self, tmp_path):
        """A state_dir that is actually a file can't be written."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = WatermarkStore(blocker / "state")
        with pytest.raises(PersistenceError):
            store.save("bot", "m1")


class TestPathFor:
    """Test filename derivation."""

    def test_plain_handle(self, store, state_dir):
        assert store.path_for("bot") == state_dir / "poller_cache_bot.json"

    def test_unsafe_characters_replaced(self, store):
        """Handles can't escape the state directory."""
        path = store.path_for("../evil/bot")
        assert path.parent == store.state_dir
        assert os.sep not in path.name
