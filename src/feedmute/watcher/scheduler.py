"""Debounced, non-overlapping scan scheduling."""

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

from ..logging import get_logger

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Timers(Protocol):
    """Source of delayed callbacks; swapped for a manual clock in tests."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopTimers:
    """Timers backed by the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class ScanScheduler:
    """
    Coalesce scan requests and keep scans from overlapping.

    State is a timer handle (or None) plus a scanning flag. A request while
    idle (re)starts the debounce timer, so a burst of requests collapses
    into one scan after the quiet period. A request while scanning does
    nothing; when the scan ends, any pending work starts the next scan
    straight away.
    """

    def __init__(
        self,
        run_scan: Callable[[], Awaitable[None]],
        has_pending: Callable[[], bool],
        timers: Optional[Timers] = None,
        delay: float = 0.05,
    ):
        self._run_scan = run_scan
        self._has_pending = has_pending
        self._timers = timers or LoopTimers()
        self.delay = delay
        self._timer: Optional[TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.scanning = False
        self.cycles = 0

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None

    def request(self) -> None:
        """Ask for a scan of whatever is pending."""
        if self.scanning:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._idle.clear()
        self._timer = self._timers.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the timer and abandon the running scan, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.scanning = False
        self._idle.set()

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no scan is running."""
        await self._idle.wait()

    def _fire(self) -> None:
        self._timer = None
        if self.scanning:
            return
        if not self._has_pending():
            self._idle.set()
            return
        self.scanning = True
        self.cycles += 1
        self._task = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        try:
            await self._run_scan()
        finally:
            # A cancelled scan has already been detached by cancel().
            if asyncio.current_task() is self._task:
                self._task = None
                self.scanning = False
                if self._has_pending():
                    logger.debug("Posts arrived during the scan, starting a follow-up cycle")
                    self._fire()
                elif self._timer is None:
                    self._idle.set()
