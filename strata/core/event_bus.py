"""
A minimal named-channel publish/subscribe bus.

Handlers run synchronously, in subscription order, on the publisher's stack.
There is no error isolation: an exception raised by a handler propagates to
whoever called `publish`, and the remaining handlers for that round are skipped.
"""

import logging
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Named channels with ordered, synchronous delivery."""

    def __init__(self) -> None:
        self._channels: Dict[str, List[Handler]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        """
        Registers a handler on a channel.

        Returns:
            A function that removes exactly this handler again.
        """
        self._channels.setdefault(channel, []).append(handler)
        return lambda: self.unsubscribe(channel, handler)

    def unsubscribe(self, channel: str, handler: Handler) -> None:
        subscribers = self._channels.get(channel)
        if subscribers:
            # Identity, not equality: two equal bound methods are still different
            # registrations.
            self._channels[channel] = [h for h in subscribers if h is not handler]

    def publish(self, channel: str, payload: Any = None) -> None:
        """Invokes every current subscriber of `channel` with `payload`."""
        subscribers = self._channels.get(channel)
        if not subscribers:
            return
        # Snapshot so handlers may (un)subscribe while being dispatched.
        for handler in list(subscribers):
            handler(payload)

    def has_subscribers(self, channel: str) -> bool:
        return bool(self._channels.get(channel))

    def teardown(self) -> None:
        """Drops every channel and handler."""
        self._channels.clear()
        log.debug("Event bus torn down.")
