"""ffprobe-based stream inspection."""

from __future__ import annotations

import json
import logging
import subprocess
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from hikbridge.streaming.command import format_cmd, redact_url

logger = logging.getLogger(__name__)


class DetectedStreamInfo(BaseModel):
    """Codec and format details of a camera stream as reported by ffprobe."""

    model_config = {"extra": "forbid"}

    video_codec: str | None = None
    video_profile: str | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    video_bitrate: int | None = None
    audio_codec: str | None = None
    audio_sample_rate: int | None = None
    audio_channels: int | None = None
    probed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_video(self) -> bool:
        return self.video_codec is not None

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None


def probe_stream(
    ffprobe_path: str,
    stream_url: str,
    *,
    timeout_s: float = 10.0,
) -> DetectedStreamInfo | None:
    """Probe `stream_url`; returns None when ffprobe fails or its output is unusable."""
    cmd = [
        ffprobe_path,
        "-v",
        "quiet",
        "-print_format",
        "json",
        "-show_streams",
        "-rtsp_transport",
        "tcp",
        "-timeout",
        str(int(timeout_s * 1_000_000)),
        stream_url,
    ]
    logger.debug("Running ffprobe: %s", format_cmd([redact_url(arg) for arg in cmd]))

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout_s + 1.0,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug("ffprobe timeout for %s", redact_url(stream_url))
        return None
    except (FileNotFoundError, PermissionError, subprocess.SubprocessError) as exc:
        logger.warning("ffprobe error: %s", exc)
        return None

    if result.returncode != 0:
        logger.debug("ffprobe exited with code %s: %s", result.returncode, result.stderr.strip())
        return None

    try:
        return parse_probe_payload(result.stdout)
    except ValueError as exc:
        logger.warning("Failed to parse ffprobe output: %s", exc)
        return None


def parse_probe_payload(payload: str) -> DetectedStreamInfo:
    """Build DetectedStreamInfo from ffprobe `-show_streams` JSON.

    Raises:
        ValueError: If the payload is not a JSON object
    """
    raw = json.loads(payload)
    if not isinstance(raw, dict):
        raise ValueError("ffprobe output is not a JSON object")

    streams = [item for item in raw.get("streams") or [] if isinstance(item, dict)]
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

    info = DetectedStreamInfo()
    if video is not None:
        info.video_codec = _coerce_str(video.get("codec_name"))
        info.video_profile = _coerce_str(video.get("profile"))
        info.width = _coerce_int(video.get("width"))
        info.height = _coerce_int(video.get("height"))
        info.fps = parse_frame_rate(
            _coerce_str(video.get("r_frame_rate")) or _coerce_str(video.get("avg_frame_rate"))
        )
        info.video_bitrate = _coerce_int(video.get("bit_rate"))
    if audio is not None:
        info.audio_codec = _coerce_str(audio.get("codec_name"))
        info.audio_sample_rate = _coerce_int(audio.get("sample_rate"))
        info.audio_channels = _coerce_int(audio.get("channels"))
    return info


def parse_frame_rate(raw: str | None) -> float | None:
    """'30000/1001' -> 29.97; plain numbers pass through; 0 denominators give None."""
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None

    if "/" in value:
        numerator, denominator = value.split("/", 1)
        try:
            den = float(denominator)
            if den <= 0:
                return None
            return round(float(numerator) / den, 2)
        except ValueError:
            return None

    try:
        return float(value)
    except ValueError:
        return None


def _coerce_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _coerce_str(value: object) -> str | None:
    if isinstance(value, str):
        return value
    return None
