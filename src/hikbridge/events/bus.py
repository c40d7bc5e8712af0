"""Per-channel motion event subscriptions."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MotionCallback = Callable[[int, str, bool], None]


@dataclass(frozen=True, slots=True)
class MotionEvent:
    """One recognized motion alert from the NVR."""

    channel_id: int
    event_type: str
    active: bool


@dataclass(frozen=True, slots=True)
class Subscription:
    """Handle returned by `MotionEventBus.subscribe`."""

    channel_id: int
    token: int


class MotionEventBus:
    """Registry of motion callbacks keyed by channel id.

    Handlers for a channel run in subscription order. A handler that raises
    is logged and does not stop delivery to the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[int, dict[int, MotionCallback]] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, channel_id: int, handler: MotionCallback) -> Subscription:
        subscription = Subscription(channel_id=channel_id, token=next(self._tokens))
        self._handlers.setdefault(channel_id, {})[subscription.token] = handler
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        handlers = self._handlers.get(subscription.channel_id)
        if not handlers or subscription.token not in handlers:
            return False
        del handlers[subscription.token]
        if not handlers:
            del self._handlers[subscription.channel_id]
        return True

    def subscriber_count(self, channel_id: int) -> int:
        return len(self._handlers.get(channel_id, {}))

    @property
    def channels(self) -> list[int]:
        return sorted(self._handlers)

    def publish(self, event: MotionEvent) -> int:
        """Deliver `event` to every handler of its channel; return how many ran cleanly."""
        handlers = list(self._handlers.get(event.channel_id, {}).values())
        delivered = 0
        for handler in handlers:
            try:
                handler(event.channel_id, event.event_type, event.active)
            except Exception as exc:
                logger.error("Error in motion callback: %s", exc, exc_info=exc)
                continue
            delivered += 1
        return delivered

    def clear(self) -> None:
        self._handlers.clear()
