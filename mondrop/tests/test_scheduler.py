"""Tests for the periodic task scheduler."""
from __future__ import annotations

import asyncio

from mondrop.scheduler import Scheduler


async def instant_sleep(_: float) -> None:
    await asyncio.sleep(0)


async def spin(n: int = 20) -> None:
    for _ in range(n):
        await asyncio.sleep(0)


class TestScheduler:
    def test_runs_repeatedly(self) -> None:
        calls: list[int] = []

        async def scenario() -> None:
            sched = Scheduler(sleep=instant_sleep)
            sched.schedule("tick", lambda: calls.append(1), 1.0)
            await spin()
            sched.cancel_all()

        asyncio.run(scenario())
        assert len(calls) >= 3

    def test_async_function(self) -> None:
        calls: list[str] = []

        async def work() -> None:
            await asyncio.sleep(0)
            calls.append("done")

        async def scenario() -> None:
            sched = Scheduler(sleep=instant_sleep)
            sched.schedule("work", work, 1.0)
            await spin()
            sched.cancel_all()

        asyncio.run(scenario())
        assert calls

    def test_errors_do_not_stop_schedule(self) -> None:
        async def scenario() -> int:
            sched = Scheduler(sleep=instant_sleep)

            def broken() -> None:
                raise RuntimeError("boom")

            sched.schedule("broken", broken, 1.0)
            await spin()
            count = sched.run_counts["broken"]
            sched.cancel_all()
            return count

        assert asyncio.run(scenario()) >= 3

    def test_same_name_replaces(self) -> None:
        first: list[int] = []
        second: list[int] = []

        async def scenario() -> None:
            sched = Scheduler(sleep=instant_sleep)
            sched.schedule("job", lambda: first.append(1), 1.0)
            sched.schedule("job", lambda: second.append(1), 1.0)
            assert sched.names == ["job"]
            await spin()
            sched.cancel_all()

        asyncio.run(scenario())
        assert first == []
        assert second

    def test_cancel_all(self) -> None:
        calls: list[int] = []

        async def scenario() -> None:
            sched = Scheduler(sleep=instant_sleep)
            sched.schedule("a", lambda: calls.append(1), 1.0)
            sched.schedule("b", lambda: calls.append(2), 1.0)
            sched.cancel_all()
            assert sched.names == []
            await spin()

        asyncio.run(scenario())
        assert calls == []

    def test_cancel_unknown(self) -> None:
        async def scenario() -> bool:
            return Scheduler().cancel("missing")

        assert asyncio.run(scenario()) is False

    def test_trigger_now(self) -> None:
        calls: list[int] = []

        async def scenario() -> None:
            # real sleep with a long interval: only the trigger can run it
            sched = Scheduler()
            sched.schedule("status", lambda: calls.append(1), 3600.0)
            await sched.trigger_now("status")
            await sched.trigger_now("missing")
            assert sched.run_counts["status"] == 1
            sched.cancel_all()

        asyncio.run(scenario())
        assert calls == [1]
