"""Suggest an acceleration mode from the encoders ffmpeg was built with."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from hikbridge.models.enums import AccelerationMode
from hikbridge.streaming.profiles import DEFAULT_VAAPI_DEVICE, ENCODER_PROFILES

logger = logging.getLogger(__name__)

# Preference order when several hardware encoders are present
_HARDWARE_ORDER = (
    AccelerationMode.VAAPI,
    AccelerationMode.NVENC,
    AccelerationMode.QUICKSYNC,
    AccelerationMode.AMF,
)


@dataclass(frozen=True, slots=True)
class EncoderSupport:
    """Result of encoder detection."""

    mode: AccelerationMode
    available_encoders: frozenset[str]
    hwaccel_device: str | None = None

    @property
    def is_hardware(self) -> bool:
        return self.mode != AccelerationMode.SOFTWARE


class HardwareEncoderDetector:
    """Inspect `ffmpeg -encoders` and the host to pick an acceleration mode."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", *, vaapi_device: str = DEFAULT_VAAPI_DEVICE) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._vaapi_device = vaapi_device

    def detect(self) -> EncoderSupport:
        """Return the first usable hardware mode, else software."""
        encoders = self.list_encoders()
        for mode in _HARDWARE_ORDER:
            codec = ENCODER_PROFILES[mode].codec
            if codec not in encoders:
                continue
            if mode == AccelerationMode.VAAPI:
                if not Path(self._vaapi_device).exists():
                    logger.debug("%s available but %s is missing", codec, self._vaapi_device)
                    continue
                return EncoderSupport(mode, encoders, hwaccel_device=self._vaapi_device)
            if mode == AccelerationMode.NVENC and not self._check_nvidia():
                logger.debug("%s available but no NVIDIA GPU responded", codec)
                continue
            return EncoderSupport(mode, encoders)

        logger.info("Using software encoding (no hardware H.264 encoder found)")
        return EncoderSupport(AccelerationMode.SOFTWARE, encoders)

    def list_encoders(self) -> frozenset[str]:
        """Encoder names from `ffmpeg -encoders`; empty when ffmpeg cannot run."""
        try:
            result = subprocess.run(
                [self._ffmpeg_path, "-hide_banner", "-encoders"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, subprocess.SubprocessError):
            return frozenset()
        if result.returncode != 0:
            return frozenset()
        return parse_encoder_list(result.stdout)

    @staticmethod
    def _check_nvidia() -> bool:
        try:
            subprocess.run(
                ["nvidia-smi"],
                capture_output=True,
                check=True,
                timeout=2,
            )
            return True
        except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
            return False


def parse_encoder_list(output: str) -> frozenset[str]:
    """Names from `ffmpeg -encoders` rows such as ` V....D libx264   H.264 ...`."""
    names: set[str] = set()
    in_table = False
    for line in output.splitlines():
        stripped = line.strip()
        if stripped.startswith("------"):
            in_table = True
            continue
        if not in_table or not stripped:
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            names.add(parts[1])
    return frozenset(names)
