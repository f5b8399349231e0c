"""
roomwatch - Wake an automation session when a shared room asks for it.

Watches a room for its newest message and, when someone says "check room"
or mentions our handle, types a fixed instruction into a tmux session (or
hands it to the local agent gateway).

Guarantees:
- Each message dispatches at most once, across restarts (durable watermark)
- Our own messages never wake us (anti-echo)
- The first message seen after a fresh start only sets the watermark

Quick start:
    from roomwatch import PollConfig, PollLoop, SupabaseMessageSource, TmuxDispatcher, WatermarkStore

    config = PollConfig(room_id="083b04cb-...", handle="claudemm", target_context="claude")
    loop = PollLoop(
        config,
        source=SupabaseMessageSource(url, api_key, timeout=config.fetch_timeout),
        store=WatermarkStore(config.state_dir),
        dispatcher=TmuxDispatcher(),
    )
    loop.run()

CLI usage:
    roomwatch poll --room 083b04cb-... --handle claudemm --target claude
"""

__version__ = "0.1.0"

from .config import Config, PollConfig, SourceConfig, GatewayConfig
from .exceptions import (
    RoomWatchError,
    FetchError,
    ParseError,
    PersistenceError,
    DispatchUnavailable,
    ConfigurationError,
)
from .models import Message, Watermark, TriggerDecision
from .matcher import decide
from .source import MessageSource, SupabaseMessageSource
from .watermark import WatermarkStore
from .dispatch import (
    ActionDispatcher,
    DispatchResult,
    TmuxDispatcher,
    GatewayClient,
    GatewayDispatcher,
)
from .poller import PollLoop, LoopState, CycleOutcome, CycleResult

__all__ = [
    "__version__",
    # Config
    "Config",
    "PollConfig",
    "SourceConfig",
    "GatewayConfig",
    # Exceptions
    "RoomWatchError",
    "FetchError",
    "ParseError",
    "PersistenceError",
    "DispatchUnavailable",
    "ConfigurationError",
    # Models
    "Message",
    "Watermark",
    "TriggerDecision",
    # Components
    "decide",
    "MessageSource",
    "SupabaseMessageSource",
    "WatermarkStore",
    "ActionDispatcher",
    "DispatchResult",
    "TmuxDispatcher",
    "GatewayClient",
    "GatewayDispatcher",
    # Loop
    "PollLoop",
    "LoopState",
    "CycleOutcome",
    "CycleResult",
]
