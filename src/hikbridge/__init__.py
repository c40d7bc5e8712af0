"""Hikvision NVR bridge: ISAPI client, motion events and SRTP stream sessions."""

__version__ = "0.1.0"

# Export commonly used types
from hikbridge.errors import HikBridgeError
from hikbridge.events.bus import MotionEvent
from hikbridge.models.config import CameraConfig, PlatformConfig, VideoConfig

__all__ = [
    "CameraConfig",
    "HikBridgeError",
    "MotionEvent",
    "PlatformConfig",
    "VideoConfig",
    "__version__",
]
