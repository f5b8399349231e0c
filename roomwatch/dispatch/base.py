"""Dispatcher interface shared by all delivery targets."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..exceptions import DispatchUnavailable

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of a dispatch attempt."""
    ok: bool
    target: str
    reason: Optional[str] = None

    @classmethod
    def delivered(cls, target: str) -> "DispatchResult":
        return cls(ok=True, target=target)

    @classmethod
    def unavailable(cls, target: str, reason: str) -> "DispatchResult":
        return cls(ok=False, target=target, reason=reason)


class ActionDispatcher(ABC):
    """Delivers a fixed instruction into a named execution context.

    Subclasses implement probe() and deliver(). dispatch() never raises
    for an unreachable target. The caller has already advanced its
    watermark; nothing is retried.
    """

    @abstractmethod
    def probe(self, target: str) -> bool:
        """Check whether the target context exists and is reachable."""

    @abstractmethod
    def deliver(self, target: str, instruction: str) -> None:
        """Push the instruction into the target.

        Raises:
            DispatchUnavailable: If any step of the delivery fails
        """

    def dispatch(self, target: str, instruction: str) -> DispatchResult:
        """Probe the target, then deliver the instruction once."""
        try:
            reachable = self.probe(target)
        except OSError as e:
            logger.warning(f"Probing '{target}' failed: {e}")
            return DispatchResult.unavailable(target, f"probe failed: {e}")
        if not reachable:
            logger.warning(f"Target '{target}' not found or unreachable")
            return DispatchResult.unavailable(target, "target unreachable")

        try:
            self.deliver(target, instruction)
        except (DispatchUnavailable, OSError) as e:
            logger.warning(f"Delivery to '{target}' failed: {e}")
            return DispatchResult.unavailable(target, str(e))

        return DispatchResult.delivered(target)

    def close(self) -> None:
        pass
