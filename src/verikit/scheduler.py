"""Interval scheduling for the trackers.

schedule(interval, task) runs ``task`` once immediately and then every
``interval`` seconds until the returned handle is cancelled. Ticks never
overlap: the next tick is timed from the end of the previous one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[None]]


class CancelHandle:
    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Scheduler:
    def schedule(self, interval: float, task: Task) -> CancelHandle:
        raise NotImplementedError


async def _run_tick(task: Task) -> None:
    try:
        await task()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Scheduled task failed; will retry next tick")


class AsyncioScheduler(Scheduler):
    """Real-time scheduling on the running event loop."""

    def schedule(self, interval: float, task: Task) -> CancelHandle:
        async def loop():
            while True:
                await _run_tick(task)
                await asyncio.sleep(interval)

        runner = asyncio.ensure_future(loop())
        return CancelHandle(runner.cancel)


class _ManualEntry:
    def __init__(self, interval: float, task: Task, due: float):
        self.interval = interval
        self.task = task
        self.due = due
        self.handle = CancelHandle()


class ManualScheduler(Scheduler):
    """Virtual clock for deterministic tests.

    Nothing runs until advance() (or run_due()) is awaited; the immediate
    first tick of a schedule is due at the current virtual time.
    """

    def __init__(self):
        self.now = 0.0
        self._entries: List[_ManualEntry] = []

    def schedule(self, interval: float, task: Task) -> CancelHandle:
        entry = _ManualEntry(interval, task, due=self.now)
        self._entries.append(entry)
        return entry.handle

    @property
    def active_count(self) -> int:
        return sum(1 for e in self._entries if not e.handle.cancelled)

    async def run_due(self) -> int:
        """Run every tick due at the current time; returns how many ran."""
        ran = 0
        for entry in list(self._entries):
            if entry.handle.cancelled or entry.due > self.now:
                continue
            entry.due = self.now + entry.interval
            await _run_tick(entry.task)
            ran += 1
        self._entries = [e for e in self._entries if not e.handle.cancelled]
        return ran

    async def advance(self, seconds: float = 0.0) -> int:
        """Move the clock forward, running ticks in due order."""
        target = self.now + seconds
        ran = await self.run_due()
        while True:
            pending = [e.due for e in self._entries if not e.handle.cancelled and e.due <= target]
            if not pending:
                break
            self.now = min(pending)
            ran += await self.run_due()
        self.now = target
        return ran
