"""Keyed timers on a real event loop."""

import asyncio

import pytest

from core.scheduler import Scheduler


@pytest.mark.asyncio
class TestScheduler:
    """call_later / call_every / cancel by key."""

    async def test_call_later_fires_once(self):
        scheduler = Scheduler()
        fired = []
        timer = scheduler.call_later(0.01, fired.append, "x", key=1)

        assert scheduler.pending(1) == 1
        await asyncio.sleep(0.05)
        assert fired == ["x"]
        assert timer.fired and not timer.active
        assert scheduler.pending(1) == 0

    async def test_cancel_by_key(self):
        scheduler = Scheduler()
        fired = []
        scheduler.call_later(0.01, fired.append, "a", key=("join", 1))
        scheduler.call_later(0.01, fired.append, "b", key=("join", 1))
        scheduler.call_later(0.01, fired.append, "c", key=("join", 2))

        assert scheduler.cancel(("join", 1)) == 2
        await asyncio.sleep(0.05)
        assert fired == ["c"]

    async def test_call_every_until_false(self):
        scheduler = Scheduler()
        ticks = []

        def tick():
            ticks.append(1)
            return len(ticks) < 3

        scheduler.call_every(0.01, tick, key="t")
        await asyncio.sleep(0.1)
        assert len(ticks) == 3
        assert scheduler.pending("t") == 0

    async def test_failing_repeat_stops(self):
        scheduler = Scheduler()
        calls = []

        def boom():
            calls.append(1)
            raise RuntimeError("nope")

        scheduler.call_every(0.01, boom, key="b")
        await asyncio.sleep(0.05)
        assert calls == [1]
        assert scheduler.pending("b") == 0

    async def test_cancel_all(self):
        scheduler = Scheduler()
        fired = []
        for key in range(3):
            scheduler.call_later(0.01, fired.append, key, key=key)
        scheduler.cancel_all()
        await asyncio.sleep(0.03)
        assert fired == []

    async def test_injected_clock(self):
        scheduler = Scheduler(clock=lambda: 42.0)
        assert scheduler.now() == 42.0
