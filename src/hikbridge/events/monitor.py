"""alertStream monitor: buffers the multipart feed and dispatches motion events."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from hikbridge.constants import (
    CHANNEL_ID_TAGS,
    EVENT_BUFFER_MAX_CHARS,
    ISAPI_ALERT_STREAM_PATH,
    MOTION_EVENT_TYPES,
)
from hikbridge.errors import EventParseError, XmlParseError
from hikbridge.events.bus import MotionCallback, MotionEvent, MotionEventBus, Subscription
from hikbridge.isapi.client import IsapiClient, IsapiStream
from hikbridge.isapi.xml import parse_xml, text_of

logger = logging.getLogger(__name__)

_ALERT_RE = re.compile(
    r"<EventNotificationAlert\b[^>]*>.*?</EventNotificationAlert>",
    re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class AlertNotification:
    """Fields extracted from one EventNotificationAlert fragment."""

    channel_id: int | None
    event_type: str | None
    active: bool


def parse_alert(fragment: str) -> AlertNotification:
    """Extract channel, type and state from one alert fragment.

    The channel comes from the first present tag in CHANNEL_ID_TAGS. A
    missing eventState counts as active.

    Raises:
        EventParseError: If the fragment is not XML or the channel is not an integer
    """
    try:
        document = parse_xml(fragment)
    except XmlParseError as exc:
        raise EventParseError(f"Malformed alert fragment: {exc}", cause=exc) from exc

    alert = document.get("EventNotificationAlert")
    if not isinstance(alert, dict):
        raise EventParseError("Alert fragment has no EventNotificationAlert body")

    channel_id: int | None = None
    for tag in CHANNEL_ID_TAGS:
        value = text_of(alert.get(tag))
        if not value:
            continue
        try:
            channel_id = int(value)
        except ValueError as exc:
            raise EventParseError(f"Non-numeric {tag}: {value!r}", cause=exc) from exc
        break

    event_type = text_of(alert.get("eventType")) or None
    state = text_of(alert.get("eventState"))
    active = state.lower() == "active" if state else True
    return AlertNotification(channel_id=channel_id, event_type=event_type, active=active)


class EventStreamMonitor:
    """Keeps the NVR alertStream open and republishes motion events per channel."""

    def __init__(
        self,
        client: IsapiClient,
        bus: MotionEventBus | None = None,
        *,
        debug: bool = False,
        path: str = ISAPI_ALERT_STREAM_PATH,
        max_buffer_chars: int = EVENT_BUFFER_MAX_CHARS,
    ) -> None:
        self._client = client
        self._bus = bus if bus is not None else MotionEventBus()
        self._debug = debug
        self._path = path
        self._max_buffer_chars = max_buffer_chars
        self._buffer = ""
        self._stream: IsapiStream | None = None

    @property
    def bus(self) -> MotionEventBus:
        return self._bus

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def is_running(self) -> bool:
        return self._stream is not None

    def subscribe(self, channel_id: int, handler: MotionCallback) -> Subscription:
        return self._bus.subscribe(channel_id, handler)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._bus.unsubscribe(subscription)

    def start(self) -> None:
        """Open the alert stream; a no-op when already running."""
        if self._stream is not None:
            logger.debug("Event stream already running")
            return
        logger.info("Starting motion event stream...")
        self._stream = self._client.open_stream(
            self._path,
            self.feed,
            self._handle_error,
            self._handle_close,
        )

    async def stop(self) -> None:
        """Close the alert stream and cancel any pending reconnect."""
        stream = self._stream
        if stream is None:
            return
        logger.info("Stopping motion event stream")
        self._stream = None
        await stream.close()
        self._buffer = ""

    def feed(self, chunk: str) -> list[MotionEvent]:
        """Append `chunk`, dispatch every complete alert, and return the dispatched events."""
        self._buffer += chunk

        dispatched: list[MotionEvent] = []
        last_end = -1
        for match in _ALERT_RE.finditer(self._buffer):
            last_end = match.end()
            event = self._handle_fragment(match.group(0))
            if event is not None:
                dispatched.append(event)

        if last_end >= 0:
            self._buffer = self._buffer[last_end:]

        if len(self._buffer) > self._max_buffer_chars:
            logger.warning(
                "Event buffer overflow (%d chars without a complete event), clearing",
                len(self._buffer),
            )
            self._buffer = ""

        return dispatched

    def _handle_fragment(self, fragment: str) -> MotionEvent | None:
        try:
            alert = parse_alert(fragment)
        except EventParseError as exc:
            logger.warning("Failed to parse event: %s", exc)
            return None

        if alert.event_type is None:
            logger.debug("Ignoring alert without eventType")
            return None
        if alert.event_type not in MOTION_EVENT_TYPES:
            if self._debug:
                logger.debug("Ignoring non-motion event type: %s", alert.event_type)
            return None
        if alert.channel_id is None:
            logger.warning("Motion event %s has no channel id, skipping", alert.event_type)
            return None

        event = MotionEvent(
            channel_id=alert.channel_id,
            event_type=alert.event_type,
            active=alert.active,
        )
        if self._debug:
            logger.debug(
                "Motion event: channel=%d, type=%s, active=%s",
                event.channel_id,
                event.event_type,
                event.active,
            )
        self._bus.publish(event)
        return event

    def _handle_error(self, exc: Exception) -> None:
        logger.error("Event stream error: %s", exc)
        if self._buffer:
            logger.debug("Discarding %d buffered chars from the failed connection", len(self._buffer))
            self._buffer = ""

    def _handle_close(self) -> None:
        logger.debug("Event stream closed")
