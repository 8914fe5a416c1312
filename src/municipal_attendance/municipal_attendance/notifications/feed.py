from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from ..core.enums import ChangeFamily

logger = logging.getLogger("municipal_attendance.notifications")

ChangeCallback = Callable[[ChangeFamily], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", family: ChangeFamily, callback: ChangeCallback):
        self._feed = feed
        self.family = family
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self)
            self.active = False


class ChangeFeed:
    """In-process event bus for the three watched entity families.

    An event carries only the family that changed; subscribers refetch.
    Callbacks run on the event loop thread that published.
    """

    def __init__(self):
        self._subscribers: dict[ChangeFamily, list[Subscription]] = defaultdict(list)

    def subscribe(self, family: ChangeFamily, callback: ChangeCallback) -> Subscription:
        sub = Subscription(self, ChangeFamily(family), callback)
        self._subscribers[sub.family].append(sub)
        logger.debug("Subscribed to %s (%d listeners)", sub.family.value, len(self._subscribers[sub.family]))
        return sub

    def _remove(self, sub: Subscription) -> None:
        listeners = self._subscribers.get(sub.family, [])
        if sub in listeners:
            listeners.remove(sub)

    def publish(self, family: ChangeFamily) -> None:
        self._deliver(ChangeFamily(family))

    def _deliver(self, family: ChangeFamily) -> None:
        for sub in list(self._subscribers.get(family, [])):
            try:
                sub.callback(family)
            except Exception:
                # One broken listener must not stop the others or the writer.
                logger.exception("Change listener failed for %s", family.value)

    async def start(self) -> None:
        return None

    async def wait_connected(self) -> None:
        """Resolves once notifications can be received (immediately in-process)."""
        return None

    def close(self) -> None:
        self._subscribers.clear()
