"""Append-only JSONL event journal.

One file per day under LOG_DIR. Each poller process tags its entries
with a short run id so restarts can be told apart.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import DEFAULT_HOME

logger = logging.getLogger(__name__)

LOG_DIR = DEFAULT_HOME / "logs"

# Run ID for this poller process
_run_id: str = str(uuid.uuid4())[:8]
_log_lock = threading.Lock()


def configure(log_dir: Path) -> None:
    """Point the journal at a different directory."""
    global LOG_DIR
    LOG_DIR = Path(log_dir)


def get_log_file() -> Path:
    """Get today's log file path."""
    return LOG_DIR / f"{datetime.now().strftime('%Y-%m-%d')}.jsonl"


def log_event(
    handle: Optional[str],
    event: str,
    message_id: Optional[str] = None,
    result: str = "ok",
    error: Optional[str] = None,
    extra: Optional[dict] = None,
) -> None:
    """Log an event to the JSONL log file. Never raises."""
    entry = {
        "ts": datetime.now().isoformat(),
        "run_id": _run_id,
        "handle": handle,
        "event": event,
        "message_id": message_id,
        "result": result,
        "error": error,
    }
    if extra:
        entry.update(extra)

    with _log_lock:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            with open(get_log_file(), "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except Exception as e:
            logger.warning(f"Could not write event log: {e}")
