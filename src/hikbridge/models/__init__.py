"""Configuration and domain models."""

from hikbridge.models.config import CameraConfig, PlatformConfig, VideoConfig
from hikbridge.models.enums import AccelerationMode, AudioCodec, SessionState, StreamType

__all__ = [
    "AccelerationMode",
    "AudioCodec",
    "CameraConfig",
    "PlatformConfig",
    "SessionState",
    "StreamType",
    "VideoConfig",
]
