"""Shared fixtures for roomwatch tests."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import MagicMock, patch

import pytest

from roomwatch.config import PollConfig
from roomwatch.dispatch.base import ActionDispatcher
from roomwatch.exceptions import DispatchUnavailable
from roomwatch.models import Message
from roomwatch.poller import PollLoop
from roomwatch.source import MessageSource
from roomwatch.watermark import WatermarkStore

ROOM = "083b04cb-a227-44f1-8257-7db779d988f1"
T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_message(msg_id: str, body: str = "hello", minutes: int = 0, room_id: str = ROOM) -> Message:
    """Create a message created `minutes` after T0."""
    return Message(
        id=msg_id,
        body=body,
        created_at=T0 + timedelta(minutes=minutes),
        room_id=room_id,
    )


class FakeSource(MessageSource):
    """Returns queued results in order; repeats the last one when exhausted.

    Queue entries are a Message, None (empty room), or an exception to raise.
    """

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.on_fetch = None

    def push(self, *results):
        self.results.extend(results)

    def fetch_latest(self, room_id: str) -> Optional[Message]:
        self.calls += 1
        if self.on_fetch:
            self.on_fetch(self.calls)
        if not self.results:
            return None
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeDispatcher(ActionDispatcher):
    """In-memory target context that records what it receives."""

    def __init__(self, reachable: bool = True, fail_delivery: bool = False):
        self.reachable = reachable
        self.fail_delivery = fail_delivery
        self.probes = []
        self.delivered = []

    def probe(self, target: str) -> bool:
        self.probes.append(target)
        return self.reachable

    def deliver(self, target: str, instruction: str) -> None:
        if self.fail_delivery:
            raise DispatchUnavailable("send-keys failed")
        self.delivered.append((target, instruction))


@pytest.fixture(autouse=True)
def event_log_dir(tmp_path):
    """Keep the JSONL event journal out of the home directory."""
    log_dir = tmp_path / "logs"
    with patch("roomwatch.events.LOG_DIR", log_dir):
        yield log_dir


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def poll_config(state_dir):
    return PollConfig(
        room_id=ROOM,
        handle="bot",
        interval_seconds=0.01,
        target_context="claude",
        state_dir=state_dir,
    )


@pytest.fixture
def store(state_dir):
    return WatermarkStore(state_dir)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def loop(poll_config, source, store, dispatcher):
    return PollLoop(poll_config, source=source, store=store, dispatcher=dispatcher)


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tmux commands."""
    with patch("roomwatch.dispatch.tmux.subprocess.run") as mock:
        mock.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock
