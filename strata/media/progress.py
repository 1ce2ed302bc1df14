"""
Sliding-window throughput and ETA estimation for downloads.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Tuple


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class ProgressSnapshot:
    loaded: int
    total: int
    rate: float  # units per millisecond
    eta_ms: Optional[float]

    @property
    def percent(self) -> Optional[float]:
        if not self.total:
            return None
        return min(100.0, self.loaded / self.total * 100)


class ProgressWindow:
    """
    Estimates throughput from recent `(timestamp_ms, loaded)` samples.

    Samples older than the window are pruned. The rate is the difference
    between the newest and oldest sample; with fewer than two samples it falls
    back to the average since the window was created. Units are whatever the
    caller counts: bytes for progressive downloads, segments for HLS.
    """

    def __init__(
        self,
        total: int = 0,
        window_ms: float = 5000,
        interval_ms: float = 800,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self.total = total
        self.window_ms = window_ms
        self.interval_ms = interval_ms
        self._clock = clock
        self._samples: Deque[Tuple[float, int]] = deque()
        self._started_at = clock()
        self._last_emit: Optional[float] = None
        self.loaded = 0

    def add_sample(self, loaded: int, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        self.loaded = loaded
        self._samples.append((now, loaded))
        cutoff = now - self.window_ms
        while len(self._samples) > 1 and self._samples[0][0] < cutoff:
            self._samples.popleft()

    def rate(self, now: Optional[float] = None) -> float:
        """Units per millisecond."""
        if len(self._samples) >= 2:
            (oldest_t, oldest_b), (newest_t, newest_b) = self._samples[0], self._samples[-1]
            elapsed = newest_t - oldest_t
            if elapsed > 0:
                return (newest_b - oldest_b) / elapsed
        now = self._clock() if now is None else now
        elapsed = now - self._started_at
        return self.loaded / elapsed if elapsed > 0 else 0.0

    def eta_ms(self, now: Optional[float] = None) -> Optional[float]:
        """Milliseconds remaining, or None when the total or rate is unknown."""
        if not self.total:
            return None
        rate = self.rate(now)
        if rate <= 0:
            return None
        return max(0.0, (self.total - self.loaded) / rate)

    def snapshot(self, now: Optional[float] = None) -> ProgressSnapshot:
        return ProgressSnapshot(
            loaded=self.loaded,
            total=self.total,
            rate=self.rate(now),
            eta_ms=self.eta_ms(now),
        )

    def should_report(self, is_last: bool = False, now: Optional[float] = None) -> bool:
        """
        Debounces progress reports: always on the first and last sample, otherwise
        at most once per `interval_ms`.
        """
        now = self._clock() if now is None else now
        if is_last or self._last_emit is None or now - self._last_emit >= self.interval_ms:
            self._last_emit = now
            return True
        return False
