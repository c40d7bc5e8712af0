"""Stream sessions, transcoder commands and snapshots."""

from hikbridge.streaming.command import (
    ArgumentGroup,
    AudioOutput,
    SrtpTarget,
    TranscoderCommand,
    build_snapshot_command,
    build_stream_command,
)
from hikbridge.streaming.ports import UdpPortAllocator
from hikbridge.streaming.profiles import (
    ENCODER_PROFILES,
    EncoderProfile,
    default_encoder_flags,
    resolve_encoder_profile,
)
from hikbridge.streaming.resolution import (
    ResolutionConstraint,
    ResolvedResolution,
    clamp_bitrate,
    clamp_fps,
)
from hikbridge.streaming.session import (
    AudioParams,
    MediaEndpoint,
    PrepareRequest,
    PrepareResponse,
    StreamSession,
    StreamSessionManager,
    VideoParams,
)
from hikbridge.streaming.snapshot import SnapshotFetcher

__all__ = [
    "ArgumentGroup",
    "AudioOutput",
    "AudioParams",
    "ENCODER_PROFILES",
    "EncoderProfile",
    "MediaEndpoint",
    "PrepareRequest",
    "PrepareResponse",
    "ResolutionConstraint",
    "ResolvedResolution",
    "SnapshotFetcher",
    "SrtpTarget",
    "StreamSession",
    "StreamSessionManager",
    "TranscoderCommand",
    "UdpPortAllocator",
    "VideoParams",
    "build_snapshot_command",
    "build_stream_command",
    "clamp_bitrate",
    "clamp_fps",
    "default_encoder_flags",
    "resolve_encoder_profile",
]
