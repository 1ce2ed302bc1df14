"""
Exponential-backoff recovery from fatal playback errors.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from strata.core.event_bus import EventBus
from strata.core.notifications import NotificationCenter
from strata.core.scheduler import Scheduler, TimerHandle
from strata.core.store import StateStore
from strata.models.state import SessionState

log = logging.getLogger(__name__)


class RetryPhase(Enum):
    """States of the retry controller."""

    IDLE = "idle"  # Normal playback, or never failed
    BACKOFF = "backoff"  # Waiting for the retry timer
    RELOADING = "reloading"  # Source reissued, waiting for data or another error
    FAILED = "failed"  # Retries exhausted; only an explicit load recovers


class RetryController:
    """
    Turns fatal playback errors into delayed reloads.

    Attempt n waits `base_delay * 2 ** (n - 1)` seconds (1.5s, 3s, 6s, 12s, 24s
    with the defaults). Only one retry timer exists at a time. Once
    `max_retries` attempts have failed the error becomes terminal: it is written
    to `state.error`, published on the `error` channel and the current source is
    marked as failed.
    """

    NOTIFICATION_ID = "retry"

    def __init__(
        self,
        store: StateStore[SessionState],
        events: EventBus,
        notifications: NotificationCenter,
        scheduler: Scheduler,
        reload: Callable[[], None],
        max_retries: int = 5,
        base_delay: float = 1.5,
    ):
        """
        Args:
            reload: Called when the retry timer fires; must reissue the current
                source as a retry load.
            max_retries: Attempts before the failure becomes terminal.
            base_delay: Delay in seconds before the first attempt.
        """
        self.store = store
        self.events = events
        self.notifications = notifications
        self.scheduler = scheduler
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._reload = reload

        self.retry_count = 0
        self._phase = RetryPhase.IDLE
        self._timer: Optional[TimerHandle] = None

    @property
    def phase(self) -> RetryPhase:
        return self._phase

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def delay_for(self, attempt: int) -> float:
        """Returns the backoff delay in seconds for a 1-based attempt number."""
        return self.base_delay * (2 ** (attempt - 1))

    def handle_fatal_error(self, message: str) -> bool:
        """
        Reacts to a fatal playback error.

        Returns:
            True if a retry was scheduled, False if the failure is terminal.
        """
        if self._phase is RetryPhase.FAILED:
            log.debug(f"Ignoring error after terminal failure: {message}")
            return False

        if self.retry_count >= self.max_retries:
            self._fail(message)
            return False

        self.retry_count += 1
        delay = self.delay_for(self.retry_count)
        self.cancel()

        self.notifications.notify(
            f"Playback error. Retrying attempt {self.retry_count}/{self.max_retries}...",
            type="loading",
            id=self.NOTIFICATION_ID,
        )
        log.warning(
            f"[yellow]Playback error: {message}. Retrying in {delay:.1f}s "
            f"(attempt {self.retry_count}/{self.max_retries})[/yellow]"
        )
        self._timer = self.scheduler.call_later(delay, self._fire)
        self._phase = RetryPhase.BACKOFF
        return True

    def _fire(self) -> None:
        self._timer = None
        self._phase = RetryPhase.RELOADING
        log.debug(f"Retry timer fired (attempt {self.retry_count}).")
        self._reload()

    def _fail(self, message: str) -> None:
        self.cancel()
        self._phase = RetryPhase.FAILED
        self.notifications.remove(self.NOTIFICATION_ID)

        final_message = f"Failed to load video: {message or 'Unknown error'}"
        log.error(
            f"[red]✗ Playback failed after {self.retry_count} retries: {message}[/red]"
        )

        def mark_failed(state: SessionState) -> dict:
            update = {"error": final_message, "is_buffering": False}
            if state.current_source_index >= 0:
                statuses = dict(state.source_statuses)
                statuses[state.current_source_index] = "error"
                update["source_statuses"] = statuses
            return update

        self.store.set(mark_failed)
        self.events.publish("error", final_message)

    def reset(self) -> None:
        """Leaves any retry streak: data arrived, or a fresh load started."""
        self.cancel()
        if self.retry_count or self._phase is not RetryPhase.IDLE:
            log.debug("Retry state reset.")
        self.retry_count = 0
        self._phase = RetryPhase.IDLE
        self.notifications.remove(self.NOTIFICATION_ID)

    def cancel(self) -> None:
        """Disarms the pending retry timer, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
