"""Configuration models for the NVR platform and its cameras."""

from __future__ import annotations

import os
import shlex
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from hikbridge.constants import DEFAULT_PACKET_SIZE, PLATFORM_MAX_HEIGHT, PLATFORM_MAX_WIDTH
from hikbridge.models.enums import StreamType


class VideoConfig(BaseModel):
    """Per-camera transcoding limits and ffmpeg options."""

    model_config = {"extra": "forbid"}

    source: str | None = Field(
        default=None,
        description="ffmpeg input arguments for live video, e.g. '-rtsp_transport tcp -i rtsp://...'.",
    )
    still_image_source: str | None = Field(
        default=None,
        description="ffmpeg input arguments for snapshots (falls back to source).",
    )
    max_streams: int = Field(default=2, ge=1)
    max_width: int = Field(default=PLATFORM_MAX_WIDTH, ge=0)
    max_height: int = Field(default=PLATFORM_MAX_HEIGHT, ge=0)
    max_fps: int | None = Field(default=None, ge=1)
    max_bitrate: int | None = Field(default=2000, ge=0, description="Upper bitrate bound in kbps.")
    min_bitrate: int | None = Field(default=300, ge=0, description="Lower bitrate bound in kbps.")
    encoder: str = Field(
        default="software",
        description="Acceleration mode: software, vaapi, quicksync, nvenc, amf.",
    )
    vcodec: str | None = Field(default=None, description="Override the encoder's video codec.")
    encoder_options: str | None = Field(
        default=None,
        description="Encoder flags replacing the codec defaults.",
    )
    hwaccel_device: str | None = None
    audio: bool = True
    map_video: str | None = None
    map_audio: str | None = None
    video_filter: str | None = None
    vflip: bool = False
    hflip: bool = False
    packet_size: int = Field(default=DEFAULT_PACKET_SIZE, gt=0)
    debug: bool = False

    @field_validator("source", "still_image_source", "encoder_options")
    @classmethod
    def _validate_shell_arguments(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                shlex.split(value)
            except ValueError as exc:
                raise ValueError(f"cannot be split into ffmpeg arguments: {exc}") from exc
        return value

    @field_validator("encoder", mode="before")
    @classmethod
    def _normalize_encoder(cls, value: Any) -> Any:
        if value is None:
            return "software"
        if isinstance(value, str):
            return value.strip().lower() or "software"
        return value

    @model_validator(mode="after")
    def _validate_bitrate_bounds(self) -> VideoConfig:
        if (
            self.min_bitrate is not None
            and self.max_bitrate is not None
            and self.min_bitrate > 0
            and self.max_bitrate > 0
            and self.min_bitrate > self.max_bitrate
        ):
            raise ValueError(
                f"min_bitrate ({self.min_bitrate}) must not exceed max_bitrate ({self.max_bitrate})"
            )
        return self

    @property
    def snapshot_source(self) -> str | None:
        return self.still_image_source or self.source


class CameraConfig(BaseModel):
    """One NVR channel exposed as a camera."""

    model_config = {"extra": "forbid"}

    channel_id: int = Field(ge=0)
    name: str = Field(min_length=1)
    manufacturer: str = "Hikvision"
    model: str = "IP Camera"
    serial_number: str | None = None
    firmware_revision: str | None = None
    stream_type: StreamType | None = None
    motion: bool = True
    motion_timeout_s: float = Field(default=1.0, ge=0.0)
    enabled: bool = True
    video: VideoConfig = Field(default_factory=VideoConfig)


class PlatformConfig(BaseModel):
    """NVR connection and platform-wide options."""

    model_config = {"extra": "forbid"}

    host: str = Field(min_length=1)
    port: int = Field(default=80, gt=0, le=65535)
    secure: bool = False
    verify_tls: bool = False
    username: str = Field(min_length=1)
    password: str | None = None
    password_env: str | None = Field(
        default=None,
        description="Environment variable holding the NVR password.",
    )
    stream_type: StreamType = StreamType.MAINSTREAM
    probe_on_startup: bool = False
    probe_timeout_s: float = Field(default=10.0, gt=0.0)
    debug_motion: bool = False
    video_processor: str | None = Field(
        default=None,
        description="Path to the ffmpeg binary (defaults to ffmpeg on PATH).",
    )
    cameras: list[CameraConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_platform(self) -> PlatformConfig:
        if self.password is None and self.password_env is None:
            raise ValueError("Either password or password_env is required")
        seen: set[int] = set()
        for camera in self.cameras:
            if camera.channel_id in seen:
                raise ValueError(f"Duplicate camera channel_id: {camera.channel_id}")
            seen.add(camera.channel_id)
        return self

    def resolve_password(self) -> str:
        """Return the configured password, reading password_env when set."""
        if self.password is not None:
            return self.password
        if self.password_env is None:
            raise ValueError("Either password or password_env is required")
        value = os.environ.get(self.password_env)
        if value is None:
            raise KeyError(self.password_env)
        return value

    @property
    def enabled_cameras(self) -> list[CameraConfig]:
        return [camera for camera in self.cameras if camera.enabled]
