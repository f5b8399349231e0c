"""
Room poll loop: fetch the latest message, decide, persist, dispatch.

State machine:
    IDLE -> SLEEPING -> POLLING -> SLEEPING -> ... -> STOPPED

Ordering inside a cycle is the whole point of this module: the watermark
is written (durably, synchronously) before any dispatch is attempted, so a
crash after dispatching can never replay the same message on restart.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import PollConfig
from .dispatch.base import ActionDispatcher
from .events import log_event
from .exceptions import FetchError, PersistenceError
from .matcher import decide
from .models import Message, TriggerDecision, Watermark
from .source import MessageSource
from .watermark import WatermarkStore

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    SLEEPING = "sleeping"
    POLLING = "polling"
    STOPPED = "stopped"


class CycleOutcome(str, Enum):
    """What a single poll cycle ended up doing."""
    SKIPPED = "skipped"  # Another cycle in flight, or stopping
    FETCH_ERROR = "fetch_error"
    EMPTY = "empty"
    SEEN = "seen"  # Latest message already processed
    ADVANCED = "advanced"  # Watermark moved, nothing to dispatch
    DISPATCHED = "dispatched"
    UNAVAILABLE = "unavailable"  # Matched, but target unreachable
    DRY_RUN = "dry_run"


@dataclass
class CycleResult:
    outcome: CycleOutcome
    message_id: Optional[str] = None
    decision: Optional[TriggerDecision] = None
    error: Optional[str] = None


class PollLoop:
    """Watches one room on behalf of one handle.

    Owns the in-memory watermark. Exactly one cycle runs at a time; a
    cycle requested while another is still in flight is dropped, never
    queued.

    Usage:
        loop = PollLoop(config, source, store, dispatcher)
        loop.run()            # blocks until stop()
        # or
        loop.run_in_background()
        ...
        loop.stop()
    """

    def __init__(
        self,
        config: PollConfig,
        source: MessageSource,
        store: WatermarkStore,
        dispatcher: ActionDispatcher,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.source = source
        self.store = store
        self.dispatcher = dispatcher
        self._clock = clock

        self.state = LoopState.IDLE
        self.watermark: Optional[Watermark] = None
        self.error: Optional[BaseException] = None
        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def handle(self) -> str:
        return self.config.handle

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # --- Lifecycle ---

    def start(self) -> Watermark:
        """Load the stored watermark and get ready to poll."""
        self.watermark = self.store.load(self.handle)
        if self.watermark.is_empty:
            logger.info(f"No watermark for {self.handle}, first message seen will only set it")
        else:
            logger.info(f"Loaded state: last seen message was {self.watermark.last_seen_id}")
        log_event(self.handle, "startup", message_id=self.watermark.last_seen_id, extra={
            "room_id": self.config.room_id,
            "target": self.config.target_context,
            "dispatcher": self.config.dispatcher,
            "dry_run": self.config.dry_run,
        })
        self.state = LoopState.SLEEPING
        return self.watermark

    def stop(self) -> None:
        """Stop starting new cycles. An in-flight cycle runs to completion."""
        self._stop_event.set()

    def run(self) -> None:
        """Poll at a fixed cadence until stop() is called.

        The first poll happens immediately. If a cycle overruns the
        interval, the ticks it missed are dropped.

        Raises:
            PersistenceError: The watermark could not be saved; the loop stops
        """
        if self.watermark is None:
            self.start()

        interval = self.config.interval_seconds
        next_tick = self._clock()
        logger.info(
            f"Polling room {self.config.room_id} as {self.handle} every {interval:g}s"
        )

        try:
            while not self._stop_event.is_set():
                delay = next_tick - self._clock()
                if delay > 0 and self._stop_event.wait(delay):
                    break

                self.poll_once()

                next_tick += interval
                now = self._clock()
                if next_tick <= now:
                    missed = int((now - next_tick) // interval) + 1
                    logger.debug(f"Cycle overran, dropping {missed} tick(s)")
                    next_tick += missed * interval
                    if next_tick <= now:
                        next_tick += interval

        except PersistenceError as e:
            self.error = e
            self._stop_event.set()
            logger.error(f"Stopping: watermark can no longer be persisted: {e}")
            raise
        finally:
            self.state = LoopState.STOPPED
            log_event(self.handle, "shutdown", message_id=self._last_seen_id(),
                      result="fail" if self.error else "ok",
                      error=str(self.error) if self.error else None)

    def run_in_background(self) -> threading.Thread:
        """Run the loop in a daemon thread. Errors land in self.error."""
        if self._thread and self._thread.is_alive():
            return self._thread

        def _target():
            try:
                self.run()
            except PersistenceError:
                # Already recorded in self.error by run()
                pass

        self._thread = threading.Thread(target=_target, name=f"roomwatch-{self.handle}", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread:
            self._thread.join(timeout=timeout)

    # --- One cycle ---

    def poll_once(self) -> CycleResult:
        """Run a single poll cycle.

        Returns immediately with SKIPPED if a cycle is already running or
        the loop has been stopped.

        Raises:
            PersistenceError: If the advancing watermark could not be saved
        """
        if self._stop_event.is_set():
            return CycleResult(CycleOutcome.SKIPPED)
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Previous cycle still running, skipping tick")
            return CycleResult(CycleOutcome.SKIPPED)

        try:
            if self.watermark is None:
                self.start()
            self.state = LoopState.POLLING
            return self._cycle()
        finally:
            if self.state is LoopState.POLLING:
                self.state = LoopState.SLEEPING
            self._cycle_lock.release()

    def _cycle(self) -> CycleResult:
        logger.debug(f"Polling for {self.handle}...")
        try:
            message = self.source.fetch_latest(self.config.room_id)
        except FetchError as e:
            logger.warning(f"Error fetching latest message: {e}")
            log_event(self.handle, "fetch_error", result="fail", error=str(e))
            return CycleResult(CycleOutcome.FETCH_ERROR, error=str(e))

        if message is None:
            return CycleResult(CycleOutcome.EMPTY)

        decision = decide(
            message,
            self.watermark,
            self.handle,
            case_sensitive=self.config.case_sensitive_handle,
        )
        if not decision.is_new:
            return CycleResult(CycleOutcome.SEEN, message.id, decision)

        self._advance(message, decision)

        if decision.is_first_observation:
            logger.info(f"[INIT] Set watermark at msg {message.id}")
            return CycleResult(CycleOutcome.ADVANCED, message.id, decision)

        if decision.is_self_authored:
            logger.info(f"Ignoring own message {message.id}")
            log_event(self.handle, "self_authored", message_id=message.id)
            return CycleResult(CycleOutcome.ADVANCED, message.id, decision)

        if not decision.is_trigger_match:
            logger.info(f"Ignored irrelevant message: {message.id}")
            return CycleResult(CycleOutcome.ADVANCED, message.id, decision)

        return self._dispatch(message, decision)

    def _advance(self, message: Message, decision: TriggerDecision) -> None:
        """Persist the new watermark before anything else happens.

        An undated message keeps the previous timestamp so the
        regression guard in is_newer() still holds.
        """
        seen_at = message.created_at or self.watermark.last_seen_at
        try:
            self.watermark = self.store.save(self.handle, message.id, seen_at)
        except PersistenceError as e:
            log_event(self.handle, "persistence_error", message_id=message.id,
                      result="fail", error=str(e))
            raise

        event = "watermark_init" if decision.is_first_observation else "watermark_advance"
        log_event(self.handle, event, message_id=message.id)

    def _dispatch(self, message: Message, decision: TriggerDecision) -> CycleResult:
        target = self.config.target_context
        preview = message.body[:80] + ("..." if len(message.body) > 80 else "")
        logger.info(f"Trigger matched: \"{preview}\"")

        if self.config.dry_run:
            logger.info(f"[DRY-RUN] Would send '{self.config.instruction}' to {target}")
            log_event(self.handle, "dispatch", message_id=message.id, result="dry_run",
                      extra={"target": target})
            return CycleResult(CycleOutcome.DRY_RUN, message.id, decision)

        result = self.dispatcher.dispatch(target, self.config.instruction)
        log_event(
            self.handle, "dispatch", message_id=message.id,
            result="ok" if result.ok else "fail",
            error=result.reason,
            extra={"target": target},
        )

        if not result.ok:
            logger.warning(
                f"Target '{target}' not found or unreachable, trigger for {message.id} dropped"
            )
            return CycleResult(CycleOutcome.UNAVAILABLE, message.id, decision, error=result.reason)

        logger.info(f"Successfully triggered {self.handle} via {target}")
        return CycleResult(CycleOutcome.DISPATCHED, message.id, decision)

    def _last_seen_id(self) -> Optional[str]:
        return self.watermark.last_seen_id if self.watermark else None
