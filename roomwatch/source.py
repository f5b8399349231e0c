"""Message sources: where the latest room message comes from."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .exceptions import FetchError, ParseError
from .models import Message, parse_timestamp

logger = logging.getLogger(__name__)


class MessageSource(ABC):
    """Read-only view of a room."""

    @abstractmethod
    def fetch_latest(self, room_id: str) -> Optional[Message]:
        """Return the newest message in the room, or None if it is empty.

        Raises:
            FetchError: On transport, auth, or malformed-response failures
        """

    def close(self) -> None:
        pass


def parse_message(record: Any, room_id: str) -> Message:
    """Build a Message from one REST record.

    Raises:
        ParseError: If the record is not an object, has no id, or has a bad timestamp
    """
    if not isinstance(record, dict):
        raise ParseError(f"Expected message object, got {type(record).__name__}")

    msg_id = record.get("id")
    if msg_id is None or msg_id == "":
        raise ParseError("Message record has no id")

    try:
        created_at = parse_timestamp(record.get("created_at"))
    except (TypeError, ValueError) as e:
        raise ParseError(f"Bad created_at on message {msg_id}: {e}")

    body = record.get("body")
    return Message(
        id=str(msg_id),
        body="" if body is None else str(body),
        created_at=created_at,
        room_id=str(record.get("room_id") or room_id),
    )


class SupabaseMessageSource(MessageSource):
    """Fetches the newest message through the Supabase REST (PostgREST) API.

    Equivalent query:
        GET {url}/rest/v1/messages?room_id=eq.<room>&order=created_at.desc&limit=1
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 10.0,
        table: str = "messages",
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the source.

        Args:
            url: Project base URL, e.g. https://xyz.supabase.co
            api_key: Service role or anon key, sent as apikey and bearer token
            timeout: Hard timeout for each request in seconds
            table: Table holding the room messages
            client: Pre-built httpx client (tests inject a MockTransport here)
        """
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    def fetch_latest(self, room_id: str) -> Optional[Message]:
        params = {
            "room_id": f"eq.{room_id}",
            "select": "*",
            "order": "created_at.desc",
            "limit": "1",
        }

        try:
            response = self._client.get(
                self.endpoint,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            raise FetchError(f"Request timed out after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise FetchError(f"Authentication failed ({status}): check the API key")
            raise FetchError(f"API error: HTTP {status}")
        except httpx.RequestError as e:
            raise FetchError(f"Network error: {e}")

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Response is not JSON: {e}")

        if not isinstance(data, list):
            raise ParseError(f"Expected a list of messages, got {type(data).__name__}")
        if not data:
            return None

        return parse_message(data[0], room_id)

    def close(self) -> None:
        self._client.close()
