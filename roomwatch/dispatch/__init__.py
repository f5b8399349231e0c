"""
Action dispatchers.

Handles:
- tmux session injection (default)
- Local agent gateway RPC (alternate)
"""

from ..config import Config
from .base import ActionDispatcher, DispatchResult
from .gateway import GatewayClient, GatewayDispatcher, GatewayResponse
from .tmux import TmuxDispatcher


def build_dispatcher(config: Config) -> ActionDispatcher:
    """Create the dispatcher named by config.poll.dispatcher."""
    if config.poll.dispatcher == "gateway":
        gw = config.gateway
        client = GatewayClient(
            host=gw.host,
            port=gw.port,
            token=gw.token,
            timeout=gw.timeout_seconds,
        )
        return GatewayDispatcher(client, method=gw.method, mode=gw.mode)
    return TmuxDispatcher(settle_seconds=config.poll.settle_seconds)


__all__ = [
    "ActionDispatcher",
    "DispatchResult",
    "GatewayClient",
    "GatewayDispatcher",
    "GatewayResponse",
    "TmuxDispatcher",
    "build_dispatcher",
]
