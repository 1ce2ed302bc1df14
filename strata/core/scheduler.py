"""
Timer scheduling for the session.

Everything that fires "later" (retry timers, notification auto-dismissal) goes
through a `Scheduler`, so the whole session can be driven by a manual clock.
"""

import asyncio
from typing import Any, Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler:
    """Arms timers on the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Runs `callback` after `delay` seconds on the event loop thread."""
        return self._get_loop().call_later(delay, callback)
