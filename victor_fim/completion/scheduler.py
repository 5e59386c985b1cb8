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

"""Debouncing and single-flight scheduling of completion cycles.

Bursts of triggers are coalesced by a debounce timer; once a timer fires
its cycle waits on a named lock so at most one prompt-build, stream and
decide cycle runs at a time. Cycles acquire the lock in the order their
timers fired.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_NAME = "victor_fim.completion"


class SchedulerState(Enum):
    """Coarse state of the scheduler."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    LOCKED = "locked"


class NamedLocks:
    """Registry of ``asyncio.Lock`` objects keyed by name."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def is_locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, name: str) -> AsyncIterator[None]:
        async with self.get(name):
            yield


class RequestScheduler:
    """Debounces triggers and serializes the resulting work.

    Example:
        scheduler = RequestScheduler(debounce_wait_ms=300)
        result = await scheduler.schedule(run_cycle)
        # None if a newer trigger replaced this one while debouncing
    """

    def __init__(
        self,
        debounce_wait_ms: float = 300,
        lock_name: str = DEFAULT_LOCK_NAME,
        locks: Optional[NamedLocks] = None,
    ):
        """Initialize the scheduler.

        Args:
            debounce_wait_ms: Default quiet period before work starts
            lock_name: Name of the lock serializing cycles
            locks: Lock registry (a private one is created by default)
        """
        self.debounce_wait_ms = debounce_wait_ms
        self._lock_name = lock_name
        self._locks = locks or NamedLocks()
        self._pending: Optional[asyncio.Future] = None
        self._superseded: set[asyncio.Future] = set()
        self._cycles_started = 0

    @property
    def lock_name(self) -> str:
        return self._lock_name

    @property
    def cycles_started(self) -> int:
        """Number of cycles that acquired the lock and ran their work."""
        return self._cycles_started

    @property
    def state(self) -> SchedulerState:
        if self._locks.is_locked(self._lock_name):
            return SchedulerState.LOCKED
        if self._pending is not None and not self._pending.done():
            return SchedulerState.DEBOUNCING
        return SchedulerState.IDLE

    def cancel_pending(self) -> bool:
        """Discard the debounce timer that has not fired yet.

        Returns:
            True if a pending trigger was discarded
        """
        pending = self._pending
        self._pending = None
        if pending is None or pending.done():
            return False
        self._superseded.add(pending)
        pending.cancel()
        logger.debug("Discarded pending debounced trigger")
        return True

    async def schedule(
        self,
        work: Callable[[], Awaitable[T]],
        debounce_wait_ms: Optional[float] = None,
    ) -> Optional[T]:
        """Debounce, then run ``work`` under the lock.

        Args:
            work: Coroutine factory for one cycle
            debounce_wait_ms: Override of the default quiet period

        Returns:
            The work's result, or None if superseded while debouncing
        """
        self.cancel_pending()
        wait_ms = self.debounce_wait_ms if debounce_wait_ms is None else debounce_wait_ms

        task = asyncio.ensure_future(self._run(work, wait_ms / 1000))
        self._pending = task
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._superseded:
                return None
            task.cancel()
            raise
        finally:
            self._superseded.discard(task)
            if self._pending is task:
                self._pending = None

    async def _run(self, work: Callable[[], Awaitable[T]], wait_seconds: float) -> T:
        await asyncio.sleep(wait_seconds)

        # The timer fired: from here on newer triggers queue behind this cycle
        current = asyncio.current_task()
        if self._pending is current:
            self._pending = None

        async with self._locks.acquire(self._lock_name):
            self._cycles_started += 1
            logger.debug(f"Acquired {self._lock_name}, starting cycle {self._cycles_started}")
            return await work()
