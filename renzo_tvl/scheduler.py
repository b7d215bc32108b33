"""
Interval driver for snapshot cycles.

SnapshotScheduler runs `cycle()` every `interval` seconds on a background
thread. At most one cycle is in flight: a trigger that arrives while one is
still running is skipped. stop() bumps a generation counter so a cycle that
finishes after stop() is discarded rather than published.

The scheduler keeps the last good payload and the last error separately.
A failed cycle does not clear `latest`; the consumer decides whether to keep
showing it.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .errors import RenzoTVLError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0
WAIT_POLL = 0.5

Payload = Dict[str, Any]


class SnapshotScheduler:
    def __init__(
        self,
        cycle: Callable[[], Payload],
        interval: float = DEFAULT_INTERVAL,
        on_snapshot: Optional[Callable[[Payload], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.cycle = cycle
        self.interval = interval
        self.on_snapshot = on_snapshot
        self.on_error = on_error

        self._in_flight = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._generation = 0

        self.latest: Optional[Payload] = None
        self.last_error: Optional[BaseException] = None
        self.last_success_at: Optional[datetime] = None
        self.cycles_run = 0
        self.cycles_skipped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def generation(self) -> int:
        with self._state_lock:
            return self._generation

    def run_once(self) -> bool:
        """
        Run one cycle now unless one is already in flight.

        Returns True if a cycle ran (successfully or not), False if skipped.
        RenzoTVLError is recorded, not raised; anything else propagates
        (the background loop logs and records it instead).
        """
        if not self._in_flight.acquire(blocking=False):
            with self._state_lock:
                self.cycles_skipped += 1
            logger.info("previous snapshot cycle still running, skipping this one")
            return False

        try:
            with self._state_lock:
                generation = self._generation
            try:
                payload = self.cycle()
            except RenzoTVLError as e:
                self._publish_error(generation, e)
                return True
            self._publish(generation, payload)
            return True
        finally:
            self._in_flight.release()

    def _publish(self, generation: int, payload: Payload):
        with self._state_lock:
            self.cycles_run += 1
            if generation != self._generation:
                logger.info("discarding snapshot from stopped generation %d", generation)
                return
            self.latest = payload
            self.last_error = None
            self.last_success_at = datetime.now(timezone.utc)
        if self.on_snapshot:
            self.on_snapshot(payload)

    def _publish_error(self, generation: int, exc: BaseException):
        with self._state_lock:
            self.cycles_run += 1
            if generation != self._generation:
                return
            self.last_error = exc
        logger.error("snapshot cycle failed: %s", exc)
        if self.on_error:
            self.on_error(exc)

    def _loop(self):
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                # a broken callback (e.g. closed stdout) must not end the loop
                logger.exception("snapshot cycle raised unexpectedly")
                with self._state_lock:
                    self.last_error = e
            if self._stop.wait(self.interval):
                break

    def start(self):
        if self.running:
            raise RuntimeError("scheduler already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="renzo-snapshot", daemon=True)
        self._thread.start()
        logger.info("snapshot scheduler started (every %ss)", self.interval)

    def stop(self, timeout: Optional[float] = None):
        """Stop the loop; a cycle still in flight finishes but its result is dropped."""
        with self._state_lock:
            self._generation += 1
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            self._thread = None
        logger.info("snapshot scheduler stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called or the loop thread has exited; True if so."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            thread = self._thread
            if self._stop.is_set() or thread is None or not thread.is_alive():
                return True
            step = WAIT_POLL if deadline is None else min(WAIT_POLL, deadline - time.monotonic())
            if step <= 0:
                return False
            self._stop.wait(step)
