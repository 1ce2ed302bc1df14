"""
Manages the `notifications` list held in the session state.
"""

import logging
import uuid
from typing import Dict, Optional

from strata.models.state import (
    Notification,
    NotificationAction,
    NotificationType,
    SessionState,
)

from .scheduler import Scheduler, TimerHandle
from .store import StateStore

log = logging.getLogger(__name__)


class NotificationCenter:
    """
    Creates, replaces and removes notifications.

    A notification whose id already exists is replaced in place, which is how
    progress notifications are updated live. A notification with a duration is
    removed automatically once it elapses.
    """

    def __init__(self, store: StateStore[SessionState], scheduler: Scheduler):
        self.store = store
        self.scheduler = scheduler
        self._timers: Dict[str, TimerHandle] = {}

    def notify(
        self,
        message: str,
        type: NotificationType = "info",
        id: Optional[str] = None,
        duration: Optional[float] = None,
        progress: Optional[float] = None,
        action: Optional[NotificationAction] = None,
    ) -> str:
        """
        Posts a notification.

        Args:
            message: Text shown to the user.
            type: One of info, success, warning, error, loading.
            id: Reuse an id to replace an existing notification in place.
            duration: Seconds until automatic removal; None keeps it until removed.
            progress: Optional completion percentage (0-100).
            action: Optional button shown with the notification.

        Returns:
            The notification id.
        """
        notification_id = id or uuid.uuid4().hex[:9]
        notification = Notification(
            id=notification_id,
            message=message,
            type=type,
            duration=duration,
            progress=progress,
            action=action,
        )

        def replace_or_append(state: SessionState) -> dict:
            current = list(state.notifications)
            for i, existing in enumerate(current):
                if existing.id == notification_id:
                    current[i] = notification
                    break
            else:
                current.append(notification)
            return {"notifications": tuple(current)}

        self.store.set(replace_or_append)

        # A replacement supersedes any earlier dismissal timer for this id.
        self._cancel_timer(notification_id)
        if duration:
            self._timers[notification_id] = self.scheduler.call_later(
                duration, lambda: self._expire(notification_id, notification)
            )
        return notification_id

    def remove(self, notification_id: str) -> None:
        self._cancel_timer(notification_id)
        state = self.store.get()
        if any(n.id == notification_id for n in state.notifications):
            self.store.set(
                lambda s: {
                    "notifications": tuple(
                        n for n in s.notifications if n.id != notification_id
                    )
                }
            )

    def get(self, notification_id: str) -> Optional[Notification]:
        for n in self.store.get().notifications:
            if n.id == notification_id:
                return n
        return None

    def _expire(self, notification_id: str, scheduled: Notification) -> None:
        self._timers.pop(notification_id, None)
        # Only drop the exact notification the timer was armed for.
        if self.get(notification_id) is scheduled:
            self.remove(notification_id)

    def _cancel_timer(self, notification_id: str) -> None:
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()

    def teardown(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        log.debug("Notification timers cleared.")
