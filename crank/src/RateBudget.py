"""RateBudget: Periodic full-refill admission control for RPC calls.

A budget holds up to ``capacity`` units. Every RPC call consumes one unit;
when none is left, callers wait until the next refill tick. A background
task wakes every ``refill_interval`` seconds and tops the budget back up to
``capacity`` in a single step.

The budget approximates a requests-per-window cap: up to
``capacity`` requests may burst right after each tick, after which callers
queue until the next one.

.. code-block:: python

    >>> budget = RateBudget(capacity=15, refill_interval=15.0)
    >>> budget.start()
    >>> await budget.acquire()
    >>> budget.available
    14
    >>> await budget.close()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from .errors import RateBudgetError

logger = logging.getLogger(__name__)


class RateBudget:
    """Capacity-bounded call budget with a discrete periodic refill.

    :cvar DEFAULT_CAPACITY: Units available per refill window.
    :cvar DEFAULT_REFILL_INTERVAL: Seconds between refill ticks.
    :ivar capacity: Maximum number of available units.
    :ivar refill_interval: Seconds between refill ticks.
    """

    DEFAULT_CAPACITY = 15
    DEFAULT_REFILL_INTERVAL = 15.0

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        refill_interval: float = DEFAULT_REFILL_INTERVAL,
    ) -> None:
        """Initialize a full budget.

        :param capacity: Units available per refill window (default: 15).
        :param refill_interval: Seconds between refill ticks (default: 15.0).
        :raises ValueError: If capacity or interval is not positive.
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_interval <= 0:
            raise ValueError("refill_interval must be positive")

        self.capacity = capacity
        self.refill_interval = refill_interval
        self._available = capacity
        self._closed = False
        self._condition = asyncio.Condition()
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def available(self) -> int:
        """Number of units that can be acquired without waiting."""
        return self._available

    @property
    def closed(self) -> bool:
        """Whether the budget has been shut down."""
        return self._closed

    @property
    def running(self) -> bool:
        """Whether the refill task is active."""
        return self._task is not None and not self._task.done()

    async def acquire(self) -> None:
        """Consume one unit, waiting for a refill tick if none is available.

        :raises RateBudgetError: If the budget is closed before or while waiting.
        """
        async with self._condition:
            while self._available == 0 and not self._closed:
                await self._condition.wait()
            if self._closed:
                raise RateBudgetError("Rate budget is closed")
            self._available -= 1

    async def refill(self) -> int:
        """Top the budget back up to capacity and wake waiters.

        :returns: Number of units added.
        """
        async with self._condition:
            to_add = max(self.capacity - self._available, 0)
            if to_add > 0:
                self._available += to_add
                self._condition.notify_all()
        if to_add:
            logger.debug(f"Rate budget replenished with {to_add} units")
        return to_add

    def start(self) -> None:
        """Start the background refill task on the running event loop."""
        if self._closed:
            raise RateBudgetError("Rate budget is closed")
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._refill_loop(), name="rate-budget-refill")

    async def close(self) -> None:
        """Stop the refill task and fail any pending or future acquisitions."""
        self._stop.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    async def _refill_loop(self) -> None:
        """Refill on every interval until the stop event is set."""
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.refill_interval)
            except asyncio.TimeoutError:
                await self.refill()
