"""Resolution, frame rate and bitrate constraints for viewer requests."""

from __future__ import annotations

from dataclasses import dataclass

from hikbridge.constants import PLATFORM_MAX_FPS, PLATFORM_MAX_HEIGHT, PLATFORM_MAX_WIDTH
from hikbridge.streaming.profiles import EncoderProfile


@dataclass(frozen=True, slots=True)
class ResolvedResolution:
    width: int
    height: int
    filter_chain: str | None


@dataclass(frozen=True, slots=True)
class ResolutionConstraint:
    """Requested dimensions against a camera maximum; resolving is a pure function."""

    requested_width: int
    requested_height: int
    max_width: int = PLATFORM_MAX_WIDTH
    max_height: int = PLATFORM_MAX_HEIGHT

    @classmethod
    def for_camera(
        cls,
        requested_width: int,
        requested_height: int,
        *,
        camera_max_width: int | None,
        camera_max_height: int | None,
    ) -> ResolutionConstraint:
        """Cap the camera maximum at the platform ceiling; 0/None means the ceiling."""
        max_width = min(camera_max_width or PLATFORM_MAX_WIDTH, PLATFORM_MAX_WIDTH)
        max_height = min(camera_max_height or PLATFORM_MAX_HEIGHT, PLATFORM_MAX_HEIGHT)
        return cls(requested_width, requested_height, max_width, max_height)

    def clamp(self) -> tuple[int, int]:
        """Scale the request down to fit the maximum, keeping aspect ratio; never upscale."""
        width = max(self.requested_width, 0)
        height = max(self.requested_height, 0)
        if width == 0 or height == 0:
            return min(width, self.max_width), min(height, self.max_height)

        scale = min(self.max_width / width, self.max_height / height, 1.0)
        if scale >= 1.0:
            return width, height
        return (
            min(int(width * scale), self.max_width),
            min(int(height * scale), self.max_height),
        )

    def resolve(
        self,
        profile: EncoderProfile,
        *,
        hflip: bool = False,
        vflip: bool = False,
        custom_filter: str | None = None,
        hardware: bool = True,
    ) -> ResolvedResolution:
        """Clamp dimensions and build the ffmpeg video filter chain.

        Order: flips, scale-to-fit, hardware pixel-format/upload stages (when
        `hardware` and the profile is a hardware one), then the custom filter.
        A custom filter doing its own hardware scaling (`scale_*`) is skipped.
        """
        width, height = self.clamp()
        if width <= 0 and height <= 0:
            return ResolvedResolution(width=width, height=height, filter_chain=None)

        filters: list[str] = []
        if hflip:
            filters.append("hflip")
        if vflip:
            filters.append("vflip")
        filters.append(profile.scale_filter(width, height))
        if hardware and profile.is_hardware:
            filters.extend(profile.upload_filters)
        if custom_filter and "scale_" not in custom_filter:
            filters.append(custom_filter)

        return ResolvedResolution(width=width, height=height, filter_chain=",".join(filters))


def clamp_fps(requested: int | None, camera_max: int | None = None) -> int:
    """Minimum of the request, the camera maximum and the platform ceiling."""
    candidates = [PLATFORM_MAX_FPS]
    if requested is not None and requested > 0:
        candidates.append(requested)
    if camera_max is not None and camera_max > 0:
        candidates.append(camera_max)
    return min(candidates)


def clamp_bitrate(requested: int, *, min_bitrate: int | None, max_bitrate: int | None) -> int:
    """Clamp into [min_bitrate, max_bitrate]; unset or zero bounds are ignored."""
    bitrate = requested
    if max_bitrate and bitrate > max_bitrate:
        bitrate = max_bitrate
    if min_bitrate and bitrate < min_bitrate:
        bitrate = min_bitrate
    return bitrate


__all__ = [
    "ResolutionConstraint",
    "ResolvedResolution",
    "clamp_bitrate",
    "clamp_fps",
]
