"""Data models shared by the poller components."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

# PostgREST trims trailing zeros: ".12345", ".5"
_FRACTION = re.compile(r"\.(\d+)")


def _pad_fraction(match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware datetime.

    Accepts the trailing "Z" and the trimmed fractional seconds
    Postgres/Supabase emit. Naive values are taken as UTC. Returns None
    for empty input, raises ValueError for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(_pad_fraction, text, count=1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Message:
    """A single entry in a room."""
    id: str
    body: str
    created_at: Optional[datetime]
    room_id: str


@dataclass(frozen=True)
class Watermark:
    """Last message already processed for a handle.

    last_seen_at is the created_at of that message, when known.
    """
    last_seen_id: Optional[str] = None
    last_seen_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.last_seen_id


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of matching one message against the watermark."""
    is_new: bool
    is_self_authored: bool = False
    is_trigger_match: bool = False
    is_first_observation: bool = False
