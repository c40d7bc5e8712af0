"""Locate ffmpeg/ffprobe and check that they run."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"version\s+(\S+)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class FfmpegAvailability:
    available: bool
    version: str | None = None
    error: str | None = None


def resolve_ffmpeg_path(custom_path: str | None = None) -> str:
    """Configured path when given (even if it does not exist yet), else `ffmpeg` on PATH."""
    if custom_path:
        if not Path(custom_path).exists():
            logger.debug("Configured ffmpeg path %s does not exist; trying it anyway", custom_path)
        return custom_path
    return "ffmpeg"


def resolve_ffprobe_path(ffmpeg_path: str) -> str:
    """ffprobe next to the ffmpeg binary, else `ffprobe` on PATH."""
    if ffmpeg_path == "ffmpeg":
        return "ffprobe"
    directory = Path(ffmpeg_path).parent
    for name in ("ffprobe", "ffprobe.exe"):
        candidate = directory / name
        if candidate.exists():
            return str(candidate)
    return "ffprobe"


def check_ffmpeg_available(path: str, *, timeout_s: float = 5.0) -> FfmpegAvailability:
    """Run `<path> -version` and extract the version from its output."""
    try:
        result = subprocess.run(
            [path, "-version"],
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except (FileNotFoundError, PermissionError, subprocess.SubprocessError) as exc:
        return FfmpegAvailability(available=False, error=str(exc))

    if result.returncode != 0:
        return FfmpegAvailability(available=False, error=f"Exit code: {result.returncode}")

    match = _VERSION_RE.search(result.stdout)
    return FfmpegAvailability(available=True, version=match.group(1) if match else "unknown")
