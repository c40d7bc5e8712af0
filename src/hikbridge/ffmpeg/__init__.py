"""ffmpeg/ffprobe discovery and capability helpers."""

from hikbridge.ffmpeg.hardware import EncoderSupport, HardwareEncoderDetector
from hikbridge.ffmpeg.path import (
    FfmpegAvailability,
    check_ffmpeg_available,
    resolve_ffmpeg_path,
    resolve_ffprobe_path,
)
from hikbridge.ffmpeg.probe import DetectedStreamInfo, probe_stream

__all__ = [
    "DetectedStreamInfo",
    "EncoderSupport",
    "FfmpegAvailability",
    "HardwareEncoderDetector",
    "check_ffmpeg_available",
    "probe_stream",
    "resolve_ffmpeg_path",
    "resolve_ffprobe_path",
]
