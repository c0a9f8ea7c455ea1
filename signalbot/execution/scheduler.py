"""
Fixed-interval tick scheduler.

Runs a tick callable every `interval` seconds until stopped.  Ticks
never overlap: a fire time that arrives while a tick is still running
is skipped, not queued, and the next tick waits for the following
fire time.  Exceptions escaping a tick are logged and the loop keeps
going; only `stop()` ends it, and a stopped scheduler stays stopped.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Optional

from ..utils.timeutils import SystemClock


logger = logging.getLogger(__name__)


class Scheduler:
    """Call `tick` on a fixed interval with skip-not-queue semantics."""

    def __init__(self, tick: Callable[[], object], interval: float, clock=None) -> None:
        if interval <= 0:
            raise ValueError("Scheduler interval must be positive")
        self.tick = tick
        self.interval = float(interval)
        self.clock = clock or SystemClock()
        self.ticks_run = 0
        self.ticks_skipped = 0
        self._stop = threading.Event()
        self._running = threading.Lock()
        self._looping = False

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def running(self) -> bool:
        """`True` while `run()` is looping."""
        return self._looping

    def stop(self) -> None:
        """Request the loop to exit before its next tick.  Safe to call repeatedly."""
        if not self._stop.is_set():
            logger.info("Scheduler stop requested")
        self._stop.set()

    def reset(self) -> None:
        """Clear a previous `stop()` so that `run()` can be called again."""
        self._stop.clear()

    def run_once(self) -> bool:
        """Run one tick now unless a tick is already in progress.

        Returns
        -------
        bool
            `False` if the tick was skipped.
        """
        if not self._running.acquire(blocking=False):
            self.ticks_skipped += 1
            logger.warning("Tick still running, skipping this fire")
            return False
        try:
            self.tick()
            self.ticks_run += 1
        except Exception:
            logger.exception("Tick failed")
        finally:
            self._running.release()
        return True

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Block, ticking every interval, until `stop()` is called.

        The first tick fires immediately.  `max_ticks` bounds the number
        of ticks run, mainly for tests and ``--once``.  A scheduler that
        has been stopped returns at once until `reset()` is called.
        """
        next_fire = self.clock.monotonic()
        started = 0
        self._looping = True
        try:
            while not self._stop.is_set():
                if max_ticks is not None and started >= max_ticks:
                    break
                delay = next_fire - self.clock.monotonic()
                if delay > 0:
                    if self.clock.wait(self._stop, delay):
                        break
                    continue

                self.run_once()
                started += 1

                # Fire times that passed during the tick are dropped
                now = self.clock.monotonic()
                missed = max(0, math.floor((now - next_fire) / self.interval))
                if missed:
                    self.ticks_skipped += missed
                    logger.warning("Tick overran the interval, skipping %d fire(s)", missed)
                next_fire += (missed + 1) * self.interval
        finally:
            self._looping = False
        logger.info("Scheduler stopped after %d tick(s)", self.ticks_run)
