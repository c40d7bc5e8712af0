"""Protocol constants and platform ceilings."""

from __future__ import annotations

# Viewer platform hard ceilings
PLATFORM_MAX_WIDTH = 1920
PLATFORM_MAX_HEIGHT = 1080
PLATFORM_MAX_FPS = 30

DEFAULT_RTSP_PORT = 554
DEFAULT_PACKET_SIZE = 1316
AUDIO_PACKET_SIZE = 188
DEFAULT_VIDEO_PAYLOAD_TYPE = 99
DEFAULT_AUDIO_PAYLOAD_TYPE = 110
SRTP_CRYPTO_SUITE = "AES_CM_128_HMAC_SHA1_80"

ISAPI_DEVICE_INFO_PATH = "/ISAPI/System/deviceInfo"
ISAPI_CHANNELS_PATH = "/ISAPI/ContentMgmt/InputProxy/channels"
ISAPI_ALERT_STREAM_PATH = "/ISAPI/Event/notification/alertStream"

STREAM_RECONNECT_DELAY_S = 5.0
REQUEST_TIMEOUT_S = 30.0

EVENT_BUFFER_MAX_CHARS = 100_000

# alertStream eventType values treated as motion
MOTION_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "VMD",
        "linedetection",
        "fielddetection",
        "regionEntrance",
        "regionExiting",
        "shelteralarm",
    }
)

# Tag spellings carrying the channel number, in lookup order
CHANNEL_ID_TAGS: tuple[str, ...] = ("channelID", "channelId", "dynChannelID", "inputIOPortID")

STREAM_TYPE_SUFFIX: dict[str, str] = {
    "mainstream": "01",
    "substream": "02",
    "thirdstream": "03",
}

SNAPSHOT_CACHE_TTL_S = 3.0
SNAPSHOT_TIMEOUT_S = 10.0
PORT_RESERVE_TIMEOUT_S = 15.0
PROCESS_REAP_TIMEOUT_S = 5.0
