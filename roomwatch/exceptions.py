"""
Exception hierarchy for roomwatch.

All exceptions inherit from RoomWatchError for easy catching.
"""


class RoomWatchError(Exception):
    """Base exception for roomwatch.

    All other exceptions in this module inherit from this,
    allowing callers to catch any roomwatch error with a single except.
    """
    pass


class FetchError(RoomWatchError):
    """Error fetching the latest message from the room.

    Raised when:
    - The request times out
    - The transport fails (DNS, connection refused, TLS)
    - The server rejects our credentials (401/403)
    - The server returns any other error status

    Recovered locally: the cycle is skipped and the watermark is untouched.
    """
    pass


class ParseError(FetchError):
    """The room returned a payload we could not understand.

    Raised when:
    - The body is not JSON
    - The JSON is not a list of message records
    - A record is missing its id or has an unreadable timestamp

    Handled exactly like FetchError.
    """
    pass


class PersistenceError(RoomWatchError):
    """The watermark could not be written durably.

    Not recoverable: once a write fails we can no longer promise that a
    message dispatches at most once, so the poll loop stops.
    """
    pass


class DispatchUnavailable(RoomWatchError):
    """The target execution context could not be reached.

    Raised when:
    - The target session does not exist
    - tmux is not installed or timed out
    - The gateway is down or rejected the call

    Recovered locally. Never retried, the watermark has already advanced.
    """
    pass


class ConfigurationError(RoomWatchError):
    """Error in configuration.

    Raised when:
    - Config file not found or not valid YAML
    - Required settings are missing (room, handle, source url)
    - A value is out of range
    """
    pass
