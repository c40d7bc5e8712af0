"""Acceleration mode to encoder profile lookup."""

from __future__ import annotations

from pydantic import BaseModel

from hikbridge.models.enums import AccelerationMode

SCALE_FILTER_TEMPLATE = "scale={width}:{height}:force_original_aspect_ratio=decrease"
DEFAULT_VAAPI_DEVICE = "/dev/dri/renderD128"


class EncoderProfile(BaseModel):
    """Locked encoder pipeline for one acceleration mode."""

    model_config = {"extra": "forbid", "frozen": True}

    mode: AccelerationMode
    codec: str
    decoder_flags: tuple[str, ...] = ()
    encoder_flags: tuple[str, ...] = ()
    pixel_flags: tuple[str, ...] = ()
    scaling_filter_template: str = SCALE_FILTER_TEMPLATE
    upload_filters: tuple[str, ...] = ()
    description: str

    @property
    def is_hardware(self) -> bool:
        return self.mode != AccelerationMode.SOFTWARE

    def hardware_init_args(self, device: str | None = None) -> list[str]:
        """Decoder flags with the hardware device substituted."""
        resolved = device or DEFAULT_VAAPI_DEVICE
        return [flag.format(device=resolved) for flag in self.decoder_flags]

    def scale_filter(self, width: int, height: int) -> str:
        """Scale-to-fit filter that never upscales; 0 keeps the input dimension."""
        return self.scaling_filter_template.format(
            width=f"'min({width},iw)'" if width > 0 else "iw",
            height=f"'min({height},ih)'" if height > 0 else "ih",
        )


_HARDWARE_PIXEL_FLAGS = ("-color_range", "mpeg")

ENCODER_PROFILES: dict[AccelerationMode, EncoderProfile] = {
    AccelerationMode.SOFTWARE: EncoderProfile(
        mode=AccelerationMode.SOFTWARE,
        codec="libx264",
        encoder_flags=("-preset", "ultrafast", "-tune", "zerolatency"),
        pixel_flags=("-pix_fmt", "yuv420p"),
        description="software (libx264)",
    ),
    AccelerationMode.VAAPI: EncoderProfile(
        mode=AccelerationMode.VAAPI,
        codec="h264_vaapi",
        decoder_flags=("-init_hw_device", "vaapi=va:{device}"),
        pixel_flags=_HARDWARE_PIXEL_FLAGS,
        upload_filters=("format=nv12", "hwupload"),
        description="VAAPI - CPU decode, GPU scale+encode",
    ),
    AccelerationMode.QUICKSYNC: EncoderProfile(
        mode=AccelerationMode.QUICKSYNC,
        codec="h264_qsv",
        decoder_flags=("-init_hw_device", "qsv=hw"),
        encoder_flags=("-preset", "veryfast"),
        pixel_flags=_HARDWARE_PIXEL_FLAGS,
        upload_filters=("format=nv12", "hwupload=extra_hw_frames=64"),
        description="QuickSync",
    ),
    AccelerationMode.NVENC: EncoderProfile(
        mode=AccelerationMode.NVENC,
        codec="h264_nvenc",
        decoder_flags=("-init_hw_device", "cuda=cu:0"),
        encoder_flags=("-preset", "p1", "-tune", "ll"),
        pixel_flags=_HARDWARE_PIXEL_FLAGS,
        upload_filters=("format=nv12", "hwupload_cuda"),
        description="NVENC",
    ),
    AccelerationMode.AMF: EncoderProfile(
        mode=AccelerationMode.AMF,
        codec="h264_amf",
        encoder_flags=("-usage", "transcoding", "-quality", "speed"),
        pixel_flags=_HARDWARE_PIXEL_FLAGS,
        upload_filters=("format=nv12",),
        description="AMF - CPU decode+scale, GPU encode",
    ),
}


def resolve_encoder_profile(mode: str | AccelerationMode | None) -> EncoderProfile:
    """Return the profile for `mode`; unset or unknown modes get the software profile."""
    if isinstance(mode, AccelerationMode):
        return ENCODER_PROFILES[mode]
    return ENCODER_PROFILES[AccelerationMode.parse(mode)]


def default_encoder_flags(codec: str) -> tuple[str, ...]:
    """Encoder flags for a codec chosen independently of the profile (vcodec override)."""
    for profile in ENCODER_PROFILES.values():
        if profile.codec == codec:
            return profile.encoder_flags
    if "nvenc" in codec:
        return ENCODER_PROFILES[AccelerationMode.NVENC].encoder_flags
    return ()


__all__ = [
    "ENCODER_PROFILES",
    "EncoderProfile",
    "default_encoder_flags",
    "resolve_encoder_profile",
]
