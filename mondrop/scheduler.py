"""Named periodic tasks on the asyncio loop.

Each scheduled task sleeps for its interval, then runs its function.
Errors are logged and the schedule keeps going. Scheduling a name that
already exists cancels the old task first.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

log = logging.getLogger(__name__)

TaskFn = Callable[[], Any]
SleepFn = Callable[[float], Awaitable[None]]


class Scheduler:
    def __init__(self, sleep: Optional[SleepFn] = None) -> None:
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._fns: dict[str, TaskFn] = {}
        self.run_counts: dict[str, int] = {}

    @property
    def names(self) -> list[str]:
        return sorted(self._tasks)

    def schedule(self, name: str, fn: TaskFn, interval_s: float) -> asyncio.Task[None]:
        """Run ``fn`` every ``interval_s`` seconds. Replaces a task with the same name."""
        old = self._tasks.pop(name, None)
        if old is not None:
            old.cancel()
            log.debug("rescheduled existing task %s", name)

        log.info("scheduling task %r every %.1fs", name, interval_s)
        self._fns[name] = fn
        self.run_counts.setdefault(name, 0)
        task = asyncio.get_running_loop().create_task(
            self._loop(name, fn, float(interval_s)), name=name
        )
        self._tasks[name] = task
        return task

    async def trigger_now(self, name: str) -> None:
        """Run a registered task's function once, outside its schedule."""
        fn = self._fns.get(name)
        if fn is None:
            log.warning("task %r has no function to trigger", name)
            return
        log.debug("triggering task %r immediately", name)
        await self._run_once(name, fn)

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        self._fns.pop(name, None)
        if task is None:
            return False
        task.cancel()
        log.debug("cleared scheduled task %s", name)
        return True

    def cancel_all(self) -> None:
        for name in list(self._tasks):
            self.cancel(name)
        log.debug("cleared all scheduled tasks")

    # ── Internals ──

    async def _loop(self, name: str, fn: TaskFn, interval_s: float) -> None:
        while True:
            await self._sleep(interval_s)
            await self._run_once(name, fn)

    async def _run_once(self, name: str, fn: TaskFn) -> None:
        try:
            result = fn()
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("error in scheduled task %r", name)
        finally:
            self.run_counts[name] = self.run_counts.get(name, 0) + 1
