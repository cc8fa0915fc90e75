"""Fixed-interval polling gated by the active-hours window."""

from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Callable

from .display import ActivityLog
from .models import ServiceMode


def is_within_active_hours(hour: int, start: int, end: int) -> bool:
    """Return True when ``hour`` falls inside the [start, end) window.

    A window with ``start > end`` runs from ``start`` through midnight to
    ``end``. ``start == end`` is an empty window.
    """
    if start < end:
        return start <= hour < end
    if start > end:
        return hour >= start or hour < end
    return False


class Scheduler:
    """Triggers the polling cycle; never runs two cycles at once.

    ``run_forever`` ticks on the calling thread, so its own ticks never
    overlap. The lock guards callers that invoke ``tick()`` from other
    threads, e.g. a manual trigger alongside the loop.
    """

    def __init__(
        self,
        run_cycle: Callable[[], object],
        log: ActivityLog,
        interval: float,
        hour_start: int,
        hour_end: int,
        tz,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.run_cycle = run_cycle
        self.log = log
        self.interval = interval
        self.hour_start = hour_start
        self.hour_end = hour_end
        self._clock = clock or (lambda: datetime.now(tz))
        self._sleep = sleep
        self._monotonic = monotonic
        self._cycle_lock = threading.Lock()
        self.mode: ServiceMode | None = None

    def is_active(self) -> bool:
        return is_within_active_hours(self._clock().hour, self.hour_start, self.hour_end)

    def _transition(self, mode: ServiceMode) -> None:
        if mode == self.mode:
            return
        self.mode = mode
        if mode is ServiceMode.ACTIVE:
            self.log.write("[v] Auto-reply now running")
        else:
            self.log.write("[*] Auto-reply inactive (outside active hours)")

    def tick(self) -> bool:
        """Run one cycle if allowed. Returns True when a cycle ran."""
        if not self.is_active():
            self._transition(ServiceMode.INACTIVE)
            return False
        self._transition(ServiceMode.ACTIVE)

        if not self._cycle_lock.acquire(blocking=False):
            self.log.write("[*] Previous cycle still running, skipping this check")
            return False
        try:
            self.run_cycle()
        finally:
            self._cycle_lock.release()
        return True

    def run_forever(self, max_ticks: int | None = None) -> None:
        """Tick now, then every ``interval`` seconds measured from each tick start."""
        ticks = 0
        next_tick = self._monotonic()
        while max_ticks is None or ticks < max_ticks:
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            next_tick += self.interval
            delay = next_tick - self._monotonic()
            if delay < 0:
                # a slow cycle overran; start counting again from now
                next_tick = self._monotonic()
                delay = 0
            self._sleep(delay)
