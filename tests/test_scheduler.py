# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Unit tests for debouncing and single-flight scheduling."""

import asyncio

import pytest

from victor_fim.completion.scheduler import NamedLocks, RequestScheduler, SchedulerState


class TestNamedLocks:
    """Tests for the lock registry."""

    def test_same_name_same_lock(self):
        locks = NamedLocks()
        assert locks.get("a") is locks.get("a")
        assert locks.get("a") is not locks.get("b")
        assert not locks.is_locked("missing")


class TestRequestScheduler:
    """Tests for the request scheduler."""

    @pytest.mark.asyncio
    async def test_burst_of_triggers_runs_only_the_last(self):
        scheduler = RequestScheduler(debounce_wait_ms=100)
        calls = []

        async def work(label):
            calls.append(label)
            return label

        async def trigger(label, delay):
            await asyncio.sleep(delay)
            return await scheduler.schedule(lambda: work(label))

        results = await asyncio.gather(
            trigger("first", 0), trigger("second", 0.02), trigger("third", 0.04)
        )

        assert results == [None, None, "third"]
        assert calls == ["third"]
        assert scheduler.cycles_started == 1

    @pytest.mark.asyncio
    async def test_cycles_never_overlap(self):
        scheduler = RequestScheduler(debounce_wait_ms=0)
        active = 0
        max_active = 0
        order = []

        async def work(label):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            order.append(label)
            await asyncio.sleep(0.05)
            active -= 1
            return label

        async def trigger(label, delay):
            await asyncio.sleep(delay)
            return await scheduler.schedule(lambda: work(label))

        results = await asyncio.gather(trigger("a", 0), trigger("b", 0.01))

        assert results == ["a", "b"]
        assert order == ["a", "b"]
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_state_transitions(self):
        scheduler = RequestScheduler(debounce_wait_ms=50)
        started = asyncio.Event()
        release = asyncio.Event()

        async def work():
            started.set()
            await release.wait()
            return "done"

        task = asyncio.ensure_future(scheduler.schedule(work))
        await asyncio.sleep(0)
        assert scheduler.state == SchedulerState.DEBOUNCING

        await started.wait()
        assert scheduler.state == SchedulerState.LOCKED

        release.set()
        assert await task == "done"
        assert scheduler.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_pending_resolves_to_none(self):
        scheduler = RequestScheduler(debounce_wait_ms=1000)
        calls = []

        async def work():
            calls.append(1)

        task = asyncio.ensure_future(scheduler.schedule(work))
        await asyncio.sleep(0)

        assert scheduler.cancel_pending() is True
        assert await task is None
        assert calls == []
        assert scheduler.cancel_pending() is False

    @pytest.mark.asyncio
    async def test_debounce_override(self):
        scheduler = RequestScheduler(debounce_wait_ms=10_000)

        async def work():
            return 42

        assert await asyncio.wait_for(scheduler.schedule(work, debounce_wait_ms=0), 1) == 42

    @pytest.mark.asyncio
    async def test_work_errors_propagate(self):
        scheduler = RequestScheduler(debounce_wait_ms=0)

        async def work():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await scheduler.schedule(work)

    @pytest.mark.asyncio
    async def test_outer_cancellation_is_not_swallowed(self):
        scheduler = RequestScheduler(debounce_wait_ms=1000)

        async def work():
            return 1

        task = asyncio.ensure_future(scheduler.schedule(work))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert scheduler.state == SchedulerState.IDLE
