"""Structured ffmpeg argument builder for stream sessions.

The transcoder command line is an ordered list of named argument groups,
each produced by a pure function. The group order is a compatibility
contract with ffmpeg:

    hardware init -> input -> selection -> codec/filter -> encoder
    -> bitrate -> output (payload, SSRC, SRTP) -> [audio] -> logging
"""

from __future__ import annotations

import base64
import logging
import shlex
from dataclasses import dataclass, field

from hikbridge.constants import (
    AUDIO_PACKET_SIZE,
    DEFAULT_PACKET_SIZE,
    SRTP_CRYPTO_SUITE,
)
from hikbridge.models.enums import AudioCodec
from hikbridge.streaming.profiles import EncoderProfile, default_encoder_flags

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ArgumentGroup:
    name: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SrtpTarget:
    """Where one media type is sent, and the SRTP material protecting it."""

    address: str
    port: int
    ssrc: int
    srtp_key: bytes
    srtp_salt: bytes
    payload_type: int

    @property
    def srtp_params(self) -> str:
        """Base64 of master key followed by salt, as ffmpeg's -srtp_out_params expects."""
        return base64.b64encode(self.srtp_key + self.srtp_salt).decode("ascii")

    def url(self, packet_size: int) -> str:
        host = f"[{self.address}]" if ":" in self.address else self.address
        return f"srtp://{host}:{self.port}?rtcpport={self.port}&pkt_size={packet_size}"


@dataclass(frozen=True, slots=True)
class AudioOutput:
    codec: AudioCodec | str
    sample_rate: int
    bitrate: int
    channels: int
    target: SrtpTarget
    map_audio: str | None = None


@dataclass(frozen=True, slots=True)
class TranscoderCommand:
    executable: str
    groups: tuple[ArgumentGroup, ...] = field(default_factory=tuple)

    def flatten(self) -> list[str]:
        """Full argv, executable first."""
        argv = [self.executable]
        for group in self.groups:
            argv.extend(group.args)
        return argv

    @property
    def args(self) -> list[str]:
        return self.flatten()[1:]

    def group(self, name: str) -> ArgumentGroup | None:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def group_names(self) -> list[str]:
        return [group.name for group in self.groups]

    def redacted(self) -> str:
        """Shell-quoted command line with URL credentials and SRTP keys masked, for logging."""
        argv = self.flatten()
        masked: list[str] = []
        for index, arg in enumerate(argv):
            if index > 0 and argv[index - 1] == "-srtp_out_params":
                masked.append("***")
            else:
                masked.append(redact_url(arg))
        return format_cmd(masked)


def hardware_init_group(profile: EncoderProfile, device: str | None = None) -> ArgumentGroup:
    return ArgumentGroup("hardware_init", tuple(profile.hardware_init_args(device)))


def input_group(source: str) -> ArgumentGroup:
    """Split the configured ffmpeg input arguments (e.g. '-rtsp_transport tcp -i rtsp://...')."""
    return ArgumentGroup("input", tuple(shlex.split(source)))


def selection_group(map_video: str | None) -> ArgumentGroup:
    if map_video:
        return ArgumentGroup("selection", ("-map", map_video))
    return ArgumentGroup("selection", ("-an", "-sn", "-dn"))


def codec_group(
    codec: str,
    profile: EncoderProfile,
    *,
    filter_chain: str | None,
    fps: int | None,
) -> ArgumentGroup:
    args = ["-codec:v", codec, *profile.pixel_flags]
    if fps:
        args.extend(["-r", str(fps)])
    if filter_chain:
        args.extend(["-filter:v", filter_chain])
    return ArgumentGroup("codec", tuple(args))


def encoder_group(codec: str, encoder_options: str | None) -> ArgumentGroup:
    """Explicit encoder options replace the per-codec defaults entirely."""
    if encoder_options:
        return ArgumentGroup("encoder", tuple(shlex.split(encoder_options)))
    return ArgumentGroup("encoder", default_encoder_flags(codec))


def bitrate_group(bitrate: int) -> ArgumentGroup:
    if bitrate > 0:
        return ArgumentGroup("bitrate", ("-b:v", f"{bitrate}k"))
    return ArgumentGroup("bitrate")


def output_group(
    target: SrtpTarget,
    *,
    packet_size: int = DEFAULT_PACKET_SIZE,
    name: str = "output",
) -> ArgumentGroup:
    return ArgumentGroup(
        name,
        (
            "-payload_type",
            str(target.payload_type),
            "-ssrc",
            str(target.ssrc),
            "-f",
            "rtp",
            "-srtp_out_suite",
            SRTP_CRYPTO_SUITE,
            "-srtp_out_params",
            target.srtp_params,
            target.url(packet_size),
        ),
    )


def audio_groups(audio: AudioOutput) -> list[ArgumentGroup]:
    """Audio encode and output groups; empty when the codec cannot be produced."""
    codec = str(audio.codec)
    if codec == AudioCodec.OPUS:
        codec_args: tuple[str, ...] = ("-codec:a", "libopus", "-application", "lowdelay")
    elif codec == AudioCodec.AAC_ELD:
        codec_args = ("-codec:a", "libfdk_aac", "-profile:a", "aac_eld")
    else:
        logger.error("Unsupported audio codec requested: %s", codec)
        return []

    selection = ("-map", audio.map_audio) if audio.map_audio else ("-vn", "-sn", "-dn")
    encode = ArgumentGroup(
        "audio",
        (
            *selection,
            *codec_args,
            "-flags",
            "+global_header",
            "-ar",
            f"{audio.sample_rate}k",
            "-b:a",
            f"{audio.bitrate}k",
            "-ac",
            str(audio.channels),
        ),
    )
    return [encode, output_group(audio.target, packet_size=AUDIO_PACKET_SIZE, name="audio_output")]


def logging_group(debug: bool) -> ArgumentGroup:
    return ArgumentGroup("logging", ("-loglevel", "level+verbose" if debug else "level"))


def build_stream_command(
    executable: str,
    *,
    source: str,
    profile: EncoderProfile,
    codec: str | None = None,
    hwaccel_device: str | None = None,
    map_video: str | None = None,
    filter_chain: str | None = None,
    fps: int | None = None,
    encoder_options: str | None = None,
    bitrate: int = 0,
    video_target: SrtpTarget,
    packet_size: int = DEFAULT_PACKET_SIZE,
    audio: AudioOutput | None = None,
    debug: bool = False,
) -> TranscoderCommand:
    """Assemble the full stream command from its groups in contract order."""
    video_codec = codec or profile.codec
    groups = [
        hardware_init_group(profile, hwaccel_device),
        input_group(source),
        selection_group(map_video),
        codec_group(video_codec, profile, filter_chain=filter_chain, fps=fps),
        encoder_group(video_codec, encoder_options),
        bitrate_group(bitrate),
        output_group(video_target, packet_size=packet_size),
    ]
    if audio is not None:
        groups.extend(audio_groups(audio))
    groups.append(logging_group(debug))
    return TranscoderCommand(executable=executable, groups=tuple(groups))


def build_snapshot_command(
    executable: str,
    *,
    source: str,
    filter_chain: str | None = None,
) -> TranscoderCommand:
    """One-frame JPEG capture written to stdout."""
    groups = [
        ArgumentGroup("banner", ("-hide_banner",)),
        input_group(source),
        ArgumentGroup("frames", ("-frames:v", "1")),
    ]
    if filter_chain:
        groups.append(ArgumentGroup("filter", ("-vf", filter_chain)))
    groups.append(ArgumentGroup("output", ("-f", "image2", "-")))
    return TranscoderCommand(executable=executable, groups=tuple(groups))


def redact_url(value: str) -> str:
    """Mask `user:pass@` in anything that looks like a URL."""
    if "://" not in value:
        return value
    scheme, rest = value.split("://", 1)
    if "@" not in rest.split("/", 1)[0]:
        return value
    _creds, host = rest.split("@", 1)
    return f"{scheme}://***:***@{host}"


def format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join([str(x) for x in cmd])
    except Exception as exc:
        logger.warning("Failed to format command with shlex.join: %s", exc, exc_info=True)
        return " ".join([str(x) for x in cmd])


__all__ = [
    "ArgumentGroup",
    "AudioOutput",
    "SrtpTarget",
    "TranscoderCommand",
    "build_snapshot_command",
    "build_stream_command",
    "format_cmd",
    "redact_url",
]
