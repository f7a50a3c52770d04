"""
Scheduler — Keyed, cancellable timers on the asyncio event loop.

Every delayed action in the fleet (reconnects, deferred retries, combat ticks,
staggered leaves) goes through here so it can be cancelled by key.
"""

from __future__ import annotations
import asyncio
import time
from typing import Any, Callable, Dict, Hashable, Optional, Set
import logging

logger = logging.getLogger(__name__)


class Timer:
    """Handle for a scheduled callback. Repeating timers re-arm themselves."""

    def __init__(self, scheduler: "Scheduler", key: Optional[Hashable], interval: Optional[float]):
        self.key = key
        self.interval = interval
        self.cancelled = False
        self.fired = False
        self._scheduler = scheduler
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return not self.cancelled and (self.interval is not None or not self.fired)

    def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        self._scheduler._forget(self)


class Scheduler:
    """Timer registry keyed by owner (usually a slot id)."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loop = loop
        self._clock = clock
        self._timers: Dict[Hashable, Set[Timer]] = {}

    def now(self) -> float:
        return self._clock()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        key: Optional[Hashable] = None,
    ) -> Timer:
        """Run callback(*args) once after delay seconds."""
        timer = Timer(self, key, interval=None)
        self._track(timer)
        self._arm(timer, max(0.0, delay), callback, args)
        return timer

    def call_every(
        self,
        interval: float,
        callback: Callable[..., Any],
        *args: Any,
        key: Optional[Hashable] = None,
    ) -> Timer:
        """Run callback(*args) every interval seconds until it returns False."""
        timer = Timer(self, key, interval=interval)
        self._track(timer)
        self._arm(timer, interval, callback, args)
        return timer

    def cancel(self, key: Hashable) -> int:
        """Cancel every timer under key. Returns how many were pending."""
        timers = list(self._timers.get(key, ()))
        for timer in timers:
            timer.cancel()
        return len(timers)

    def cancel_all(self):
        for key in list(self._timers):
            self.cancel(key)

    def pending(self, key: Hashable) -> int:
        return len(self._timers.get(key, ()))

    # ==================== Internal ====================

    def _arm(self, timer: Timer, delay: float, callback: Callable[..., Any], args: tuple):
        timer._handle = self.loop.call_later(delay, self._fire, timer, callback, args)

    def _fire(self, timer: Timer, callback: Callable[..., Any], args: tuple):
        if timer.cancelled:
            return
        timer.fired = True
        try:
            result = callback(*args)
        except Exception as e:
            logger.error(f"[SCHEDULER] Timer callback error ({timer.key}): {e}", exc_info=True)
            result = False

        if timer.interval is not None and result is not False and not timer.cancelled:
            self._arm(timer, timer.interval, callback, args)
        else:
            self._forget(timer)

    def _track(self, timer: Timer):
        self._timers.setdefault(timer.key, set()).add(timer)

    def _forget(self, timer: Timer):
        timers = self._timers.get(timer.key)
        if timers is None:
            return
        timers.discard(timer)
        if not timers:
            del self._timers[timer.key]
