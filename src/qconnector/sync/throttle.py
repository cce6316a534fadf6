"""Courtesy delays and retry backoff between outbound calls."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class ThrottlePolicy:
    """Fixed sleeps between pages and batches plus exponential retry backoff.

    `sleep` is injectable so callers (and tests) can swap the clock.
    """

    page_delay: float = 0.1
    batch_delay: float = 1.0
    sleep: SleepFunc = field(default=asyncio.sleep, repr=False)

    async def pause(self, seconds: float) -> None:
        if seconds > 0:
            await self.sleep(seconds)

    async def between_pages(self) -> None:
        await self.pause(self.page_delay)

    async def between_batches(self) -> None:
        await self.pause(self.batch_delay)

    @staticmethod
    def backoff(attempt: int, base: float) -> float:
        """Delay before retry `attempt` (1-based): base, 2*base, 4*base, ..."""
        return base * (2 ** (attempt - 1))
