"""Per-simulation timer set.

Each simulation owns one TimerSet. Timers are asyncio tasks tracked by
name, so a single ``close()`` on a terminal transition (or on removal)
tears down everything the simulation scheduled.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger("media-chaos")

TimerCallback = Callable[[], Awaitable[Any] | Any]


class TimerSet:
    """Named one-shot and repeating timers that can be cancelled as a group."""

    def __init__(self, label: str = "") -> None:
        self._label = label
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active(self) -> list[str]:
        return [name for name, task in self._tasks.items() if not task.done()]

    def after(self, name: str, delay: float, callback: TimerCallback) -> bool:
        """Run ``callback`` once after ``delay`` seconds."""
        return self._spawn(name, self._run_after(name, delay, callback))

    def every(self, name: str, interval: float, callback: TimerCallback) -> bool:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        return self._spawn(name, self._run_every(name, interval, callback))

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every timer. A timer calling this is left to finish its callback."""
        current = asyncio.current_task()
        tasks, self._tasks = self._tasks, {}
        cancelled = 0
        for task in tasks.values():
            if task.done() or task is current:
                continue
            task.cancel()
            cancelled += 1
        return cancelled

    def close(self) -> int:
        """Cancel everything and refuse new timers from now on."""
        self._closed = True
        return self.cancel_all()

    def _spawn(self, name: str, coro: Awaitable[None]) -> bool:
        if self._closed:
            coro.close()  # type: ignore[attr-defined]
            return False
        self.cancel(name)
        task = asyncio.create_task(coro, name=f"{self._label}:{name}")
        self._tasks[name] = task
        task.add_done_callback(lambda t, n=name: self._forget(n, t))
        return True

    def _forget(self, name: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]

    async def _invoke(self, name: str, callback: TimerCallback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[{self._label}] Timer '{name}' callback failed")

    async def _run_after(self, name: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        await self._invoke(name, callback)

    async def _run_every(self, name: str, interval: float, callback: TimerCallback) -> None:
        me = asyncio.current_task()
        while True:
            await asyncio.sleep(interval)
            await self._invoke(name, callback)
            # Cancelled from inside its own callback
            if self._tasks.get(name) is not me:
                return
