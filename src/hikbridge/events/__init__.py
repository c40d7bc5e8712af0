"""Motion event stream and subscriptions."""

from hikbridge.events.bus import MotionCallback, MotionEvent, MotionEventBus, Subscription
from hikbridge.events.monitor import AlertNotification, EventStreamMonitor, parse_alert

__all__ = [
    "AlertNotification",
    "EventStreamMonitor",
    "MotionCallback",
    "MotionEvent",
    "MotionEventBus",
    "Subscription",
    "parse_alert",
]
