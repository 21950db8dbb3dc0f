"""
Timers and Clocks

Every periodic behaviour in the game (market ticks, the once-per-second
time watch) is armed through a Scheduler and owned as a cancellable
TimerHandle by the component that armed it.

AsyncioScheduler runs timers on the asyncio event loop. ManualScheduler is
a deterministic fake clock for tests: time only moves when advance() is
called, and due timers fire in order as it does.
"""

import asyncio
import heapq
import itertools
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# Timestamp meaning "never" (e.g. no active boost)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def add_calendar_seconds(moment: datetime, seconds: float, tz_name: Optional[str] = None) -> datetime:
    """
    Add seconds to a moment using local wall-clock arithmetic.

    The moment is decomposed into local calendar fields (sub-second part
    dropped), the seconds are added to the seconds field, and the result is
    interpreted in the local zone again. Across a DST change this differs
    from adding a raw duration.

    Args:
        moment: Timezone-aware starting point
        seconds: Seconds to add; fractional seconds are truncated
        tz_name: IANA zone name, or None for the system local zone

    Returns:
        Timezone-aware datetime
    """
    zone = ZoneInfo(tz_name) if tz_name else None
    local = moment.astimezone(zone)
    wall_clock = local.replace(tzinfo=None, microsecond=0) + timedelta(seconds=int(seconds))
    if zone is None:
        # Naive datetimes are interpreted as system local time
        return wall_clock.astimezone()
    return wall_clock.replace(tzinfo=zone)


class TimerHandle:
    """A repeating timer armed by a Scheduler."""

    def __init__(self, interval_ms: float, callback: Callable[[], None]):
        self.interval_ms = interval_ms
        self.callback = callback
        self.cancelled = False
        self.fire_count = 0
        self._loop_handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()
            self._loop_handle = None

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"TimerHandle(every {self.interval_ms}ms, {state}, fired {self.fire_count}x)"


class Scheduler:
    """Clock plus repeating timers. Subclasses implement call_every()."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    @staticmethod
    def _validate_interval(interval_ms: float) -> None:
        if interval_ms <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval_ms}")


class AsyncioScheduler(Scheduler):
    """
    Runs timers on an asyncio event loop.

    Timers armed while no loop is running are kept pending and armed by
    attach(), or by the next call_every() made from inside a running loop.
    A game can therefore be built or restored before the loop starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._pending: List[TimerHandle] = []

    @property
    def pending_timers(self) -> int:
        return sum(1 for handle in self._pending if not handle.cancelled)

    def _resolve_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        self._validate_interval(interval_ms)
        handle = TimerHandle(interval_ms, callback)
        loop = self._resolve_loop()
        if loop is None:
            self._pending.append(handle)
            logger.debug(f"No running event loop, {handle!r} is pending")
            return handle

        self.attach(loop)
        self._arm(handle, loop)
        return handle

    def attach(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> int:
        """
        Arm every pending timer on `loop` (default: the running loop).

        Returns:
            Number of timers armed
        """
        loop = loop or self._resolve_loop() or asyncio.get_running_loop()
        pending, self._pending = self._pending, []
        armed = 0
        for handle in pending:
            if handle.cancelled:
                continue
            self._arm(handle, loop)
            armed += 1
        return armed

    @staticmethod
    def _arm(handle: TimerHandle, loop: asyncio.AbstractEventLoop) -> None:
        delay = handle.interval_ms / 1000.0

        def fire():
            if handle.cancelled:
                return
            # Re-arm first so a callback that cancels the handle also cancels the next firing
            handle._loop_handle = loop.call_later(delay, fire)
            handle.fire_count += 1
            handle.callback()

        handle._loop_handle = loop.call_later(delay, fire)


class ManualScheduler(Scheduler):
    """
    Deterministic fake clock.

    now() starts at `start` and only moves when advance() is called. Timers
    due within the advanced window fire in due-time order; timers due at the
    same instant fire in the order they were armed. A callback that raises is
    logged and does not stop the remaining timers.
    """

    def __init__(self, start: Optional[datetime] = None):
        self.start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.elapsed_ms: float = 0.0
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        return self.start + timedelta(milliseconds=self.elapsed_ms)

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        self._validate_interval(interval_ms)
        handle = TimerHandle(interval_ms, callback)
        self._arm(handle, self.elapsed_ms + interval_ms)
        return handle

    def _arm(self, handle: TimerHandle, due_ms: float) -> None:
        heapq.heappush(self._queue, (due_ms, next(self._sequence), handle))

    def advance(self, ms: float) -> int:
        """
        Move the clock forward, firing every timer that falls due.

        Returns:
            Number of callbacks fired
        """
        if ms < 0:
            raise ValueError(f"Cannot move the clock backwards ({ms}ms)")

        target = self.elapsed_ms + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due_ms, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.elapsed_ms = due_ms
            self._arm(handle, due_ms + handle.interval_ms)
            handle.fire_count += 1
            fired += 1
            try:
                handle.callback()
            except Exception:
                logger.exception(f"Timer callback failed at +{due_ms}ms")
        self.elapsed_ms = target
        return fired

    @property
    def active_timers(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)
