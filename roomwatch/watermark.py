"""Durable per-handle watermark storage."""

import json
import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from .exceptions import PersistenceError
from .models import Watermark, parse_timestamp

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class WatermarkStore:
    """Stores the last processed message id for each handle.

    One small JSON file per handle:

        <state_dir>/poller_cache_<handle>.json
        {"lastSeenId": "...", "lastSeenAt": "...", "handle": "...", "updatedAt": "..."}

    Saves go through a temp file in the same directory which is fsynced and
    then renamed over the target, so a crash leaves either the old record or
    the new one. Loads ignore fields they don't know about.
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def path_for(self, handle: str) -> Path:
        safe = _UNSAFE.sub("_", handle) or "_"
        return self.state_dir / f"poller_cache_{safe}.json"

    def load(self, handle: str) -> Watermark:
        """Load the watermark for a handle.

        A missing file is an empty watermark. So is an unreadable one:
        first-run semantics never dispatch, so starting fresh cannot cause
        a duplicate.
        """
        path = self.path_for(handle)
        if not path.exists():
            return Watermark()

        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read watermark {path}, starting fresh: {e}")
            return Watermark()

        if not isinstance(data, dict):
            logger.warning(f"Watermark {path} is not a JSON object, starting fresh")
            return Watermark()

        last_seen_id = data.get("lastSeenId") or data.get("lastSeenMessageId")
        if last_seen_id is not None:
            last_seen_id = str(last_seen_id)

        try:
            last_seen_at = parse_timestamp(data.get("lastSeenAt"))
        except (TypeError, ValueError):
            last_seen_at = None

        return Watermark(last_seen_id=last_seen_id or None, last_seen_at=last_seen_at)

    def save(self, handle: str, message_id: str, seen_at: Optional[datetime] = None) -> Watermark:
        """Durably record message_id as the last one seen for handle.

        Raises:
            PersistenceError: If the id is empty or the write fails
        """
        if not message_id:
            raise PersistenceError(f"Refusing to clear watermark for {handle}")

        path = self.path_for(handle)
        record = {
            "lastSeenId": str(message_id),
            "lastSeenAt": seen_at.isoformat() if seen_at else None,
            "handle": handle,
            "updatedAt": datetime.now().astimezone().isoformat(),
        }

        tmp_name = None
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(self.state_dir)
            )
            with os.fdopen(fd, "w") as f:
                f.write(json.dumps(record, indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
            self._sync_dir()
        except OSError as e:
            raise PersistenceError(f"Could not save watermark to {path}: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        return Watermark(last_seen_id=str(message_id), last_seen_at=seen_at)

    def _sync_dir(self) -> None:
        """Flush the rename itself (POSIX only)."""
        if not hasattr(os, "O_DIRECTORY"):
            return
        fd = os.open(str(self.state_dir), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
