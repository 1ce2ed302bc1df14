"""
Cooperative cancellation for downloads.
"""

import asyncio

from strata.exceptions import DownloadCancelledError


class CancellationToken:
    """
    A one-shot cancellation flag that coroutines can poll or await.

    Cancelling is idempotent. Loops check `raise_if_cancelled` at chunk and
    segment boundaries; in-flight requests race against `wait()`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DownloadCancelledError("Download was cancelled.")

    async def sleep(self, delay: float) -> bool:
        """
        Sleeps for `delay` seconds unless cancelled first.

        Returns:
            True if the full delay elapsed, False if the token was cancelled.
        """
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False
