"""
Delay gate for pacing sequential upstream calls.
"""

import asyncio
from typing import Awaitable, Callable

Sleeper = Callable[[float], Awaitable[None]]


class PacingGate:
    """
    Enforces a fixed delay between consecutive calls.

    ``await gate.wait()`` before each call: the first call passes
    immediately, every later call first sleeps ``interval`` seconds.
    The sleep function is injectable so pacing is testable without
    real timers.
    """

    def __init__(self, interval: float, sleep: Sleeper = asyncio.sleep):
        self.interval = interval
        self._sleep = sleep
        self._primed = False

    async def wait(self) -> None:
        if self._primed and self.interval > 0:
            await self._sleep(self.interval)
        self._primed = True
