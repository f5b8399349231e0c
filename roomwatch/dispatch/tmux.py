"""Deliver triggers by typing into a tmux session."""

import logging
import subprocess
import time
from typing import Callable

from ..exceptions import DispatchUnavailable
from .base import ActionDispatcher

logger = logging.getLogger(__name__)

TMUX_TIMEOUT = 5  # Seconds per tmux call


def tmux_session_exists(target: str) -> bool:
    """Check if a tmux session (or pane) exists."""
    try:
        result = subprocess.run(
            ["tmux", "has-session", "-t", target],
            capture_output=True, timeout=TMUX_TIMEOUT,
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, OSError, ValueError):
        return False


def tmux_send_literal(target: str, text: str) -> bool:
    """Type text into a tmux target without interpreting key names."""
    try:
        result = subprocess.run(
            ["tmux", "send-keys", "-l", "-t", target, "--", text],
            capture_output=True, timeout=TMUX_TIMEOUT,
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, OSError, ValueError):
        return False


def tmux_submit(target: str) -> bool:
    """Press Enter in a tmux target."""
    try:
        result = subprocess.run(
            ["tmux", "send-keys", "-t", target, "Enter"],
            capture_output=True, timeout=TMUX_TIMEOUT,
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, OSError, ValueError):
        return False


class TmuxDispatcher(ActionDispatcher):
    """Injects the instruction into a tmux session, then submits it.

    Text and Enter go out as two separate send-keys calls with a short
    pause between them; the agent's input box drops the Enter otherwise.
    """

    def __init__(self, settle_seconds: float = 0.3, sleep: Callable[[float], None] = time.sleep):
        self.settle_seconds = settle_seconds
        self._sleep = sleep

    def probe(self, target: str) -> bool:
        return tmux_session_exists(target)

    def deliver(self, target: str, instruction: str) -> None:
        logger.info(f"Injecting prompt into tmux session: {target}")
        if not tmux_send_literal(target, instruction):
            raise DispatchUnavailable(f"send-keys to '{target}' failed")
        self._sleep(self.settle_seconds)
        if not tmux_submit(target):
            raise DispatchUnavailable(f"submit to '{target}' failed")
