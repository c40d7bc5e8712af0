"""NVR device info, channel discovery, and per-channel source builders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from hikbridge.constants import (
    DEFAULT_RTSP_PORT,
    ISAPI_CHANNELS_PATH,
    ISAPI_DEVICE_INFO_PATH,
    STREAM_TYPE_SUFFIX,
)
from hikbridge.errors import HikBridgeError
from hikbridge.isapi.client import IsapiClient
from hikbridge.isapi.xml import as_list, deep_get, text_of
from hikbridge.models.enums import StreamType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NvrDeviceInfo:
    """Identity metadata returned by /ISAPI/System/deviceInfo."""

    name: str | None = None
    model: str | None = None
    serial_number: str | None = None
    firmware_version: str | None = None
    mac_address: str | None = None


@dataclass(frozen=True, slots=True)
class DiscoveredChannel:
    """One proxied input channel reported by the NVR."""

    id: int
    name: str
    input_port: int | None
    enabled: bool = True


class NvrDiscovery:
    """Query the NVR for identity and channels and build ffmpeg inputs for them."""

    def __init__(self, client: IsapiClient) -> None:
        self._client = client

    async def get_device_info(self) -> NvrDeviceInfo:
        """Return device info, or an empty record when the NVR cannot be queried."""
        try:
            response = await self._client.get(ISAPI_DEVICE_INFO_PATH)
        except HikBridgeError as exc:
            logger.warning("Failed to get device info: %s", exc)
            return NvrDeviceInfo()
        info = response.get("DeviceInfo")
        return NvrDeviceInfo(
            name=text_of(deep_get(info, "deviceName")),
            model=text_of(deep_get(info, "model")),
            serial_number=text_of(deep_get(info, "serialNumber")),
            firmware_version=text_of(deep_get(info, "firmwareVersion")),
            mac_address=text_of(deep_get(info, "macAddress")),
        )

    async def discover_channels(self) -> list[DiscoveredChannel]:
        """Return all input proxy channels.

        Raises:
            HikBridgeError: If the channel list cannot be fetched
        """
        try:
            response = await self._client.get(ISAPI_CHANNELS_PATH)
        except HikBridgeError as exc:
            logger.error("Failed to discover channels: %s", exc)
            raise

        raw_channels = as_list(deep_get(response, "InputProxyChannelList", "InputProxyChannel"))
        if not raw_channels:
            logger.warning("No channels found in NVR response")
            return []

        channels: list[DiscoveredChannel] = []
        for raw in raw_channels:
            channel = _parse_channel(raw)
            if channel is None:
                logger.warning("Skipping channel entry without a numeric id: %s", raw)
                continue
            channels.append(channel)
        return channels

    def build_rtsp_url(self, channel_id: int, stream_type: StreamType = StreamType.MAINSTREAM) -> str:
        credentials = self._client.credentials
        user = quote(credentials.username, safe="")
        password = quote(credentials.password, safe="")
        return (
            f"rtsp://{user}:{password}@{credentials.host}:{DEFAULT_RTSP_PORT}"
            f"/Streaming/Channels/{_channel_path(channel_id, stream_type)}"
        )

    def build_still_image_url(
        self,
        channel_id: int,
        stream_type: StreamType = StreamType.MAINSTREAM,
        *,
        width: int = 1920,
        height: int = 1080,
    ) -> str:
        credentials = self._client.credentials
        user = quote(credentials.username, safe="")
        password = quote(credentials.password, safe="")
        return (
            f"http://{user}:{password}@{credentials.host}:80"
            f"/ISAPI/Streaming/channels/{_channel_path(channel_id, stream_type)}/picture"
            f"?videoResolutionWidth={width}&videoResolutionHeight={height}"
        )

    def build_ffmpeg_source(self, channel_id: int, stream_type: StreamType = StreamType.MAINSTREAM) -> str:
        return f"-rtsp_transport tcp -i {self.build_rtsp_url(channel_id, stream_type)}"

    def build_ffmpeg_still_source(
        self, channel_id: int, stream_type: StreamType = StreamType.MAINSTREAM
    ) -> str:
        return f"-i {self.build_still_image_url(channel_id, stream_type)}"


def _channel_path(channel_id: int, stream_type: StreamType) -> str:
    return f"{channel_id}{STREAM_TYPE_SUFFIX[str(stream_type)]}"


def _parse_channel(raw: Any) -> DiscoveredChannel | None:
    if not isinstance(raw, dict):
        return None
    try:
        channel_id = int(text_of(raw.get("id")) or "")
    except ValueError:
        return None
    input_port_text = text_of(raw.get("inputPort"))
    try:
        input_port = int(input_port_text) if input_port_text else None
    except ValueError:
        input_port = None
    name = text_of(raw.get("name")) or f"Channel {channel_id}"
    return DiscoveredChannel(id=channel_id, name=name, input_port=input_port)


__all__ = ["DiscoveredChannel", "NvrDeviceInfo", "NvrDiscovery"]
