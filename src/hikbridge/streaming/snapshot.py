"""Single-frame snapshot capture with a short-lived cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from hikbridge.constants import SNAPSHOT_CACHE_TTL_S, SNAPSHOT_TIMEOUT_S
from hikbridge.errors import (
    CaptureTimeout,
    EmptyCapture,
    ProcessFailed,
    ProcessSpawnError,
    SourceNotConfigured,
)
from hikbridge.models.config import VideoConfig
from hikbridge.streaming.command import build_snapshot_command
from hikbridge.streaming.process import kill_and_reap
from hikbridge.streaming.profiles import resolve_encoder_profile
from hikbridge.streaming.resolution import ResolutionConstraint

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CachedSnapshot:
    data: bytes
    captured_at: float


class SnapshotFetcher:
    """Capture JPEG snapshots through ffmpeg, reusing captures younger than the TTL."""

    def __init__(
        self,
        video_config: VideoConfig,
        camera_name: str,
        *,
        video_processor: str = "ffmpeg",
        cache_ttl_s: float = SNAPSHOT_CACHE_TTL_S,
        capture_timeout_s: float = SNAPSHOT_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._video_config = video_config
        self._camera_name = camera_name
        self._video_processor = video_processor
        self._cache_ttl_s = cache_ttl_s
        self._capture_timeout_s = capture_timeout_s
        self._clock = clock
        self._cached: CachedSnapshot | None = None

    @property
    def cached(self) -> CachedSnapshot | None:
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    async def get_snapshot(self, width: int = 0, height: int = 0) -> bytes:
        """Return image bytes for the requested size hint.

        Raises:
            SourceNotConfigured: If neither still_image_source nor source is set
            ProcessSpawnError: If ffmpeg cannot be started or its arguments cannot be parsed
            CaptureTimeout: If capture exceeds the timeout (the process is killed)
            ProcessFailed: If ffmpeg exits non-zero
            EmptyCapture: If ffmpeg exits cleanly without output
        """
        extra = {"camera_name": self._camera_name}
        resolution = ResolutionConstraint.for_camera(
            width,
            height,
            camera_max_width=self._video_config.max_width,
            camera_max_height=self._video_config.max_height,
        ).resolve(
            resolve_encoder_profile(self._video_config.encoder),
            hflip=self._video_config.hflip,
            vflip=self._video_config.vflip,
            custom_filter=self._video_config.video_filter,
            hardware=False,
        )
        logger.debug(
            "Snapshot request: %dx%d -> %dx%d",
            width,
            height,
            resolution.width,
            resolution.height,
            extra=extra,
        )

        cached = self._cached
        if cached is not None and self._clock() - cached.captured_at < self._cache_ttl_s:
            logger.debug("Returning cached snapshot", extra=extra)
            return cached.data

        source = self._video_config.snapshot_source
        if not source:
            logger.error("No source configured", extra=extra)
            raise SourceNotConfigured(self._camera_name)

        try:
            command = build_snapshot_command(
                self._video_processor, source=source, filter_chain=resolution.filter_chain
            )
        except ValueError as exc:
            logger.error("Invalid snapshot source: %s", exc, extra=extra)
            raise ProcessSpawnError(f"Cannot build ffmpeg command: {exc}", cause=exc) from exc
        logger.debug("Snapshot command: %s", command.redacted(), extra=extra)

        try:
            process = await asyncio.create_subprocess_exec(
                *command.flatten(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Snapshot error: %s", exc, extra=extra)
            raise ProcessSpawnError(f"Failed to start {self._video_processor}: {exc}", cause=exc) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._capture_timeout_s
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Snapshot timeout", extra=extra)
            await kill_and_reap(process, camera_name=self._camera_name)
            raise CaptureTimeout(
                f"Snapshot capture exceeded {self._capture_timeout_s:.0f}s", cause=exc
            ) from exc

        if process.returncode != 0:
            stderr_text = (stderr or b"").decode("utf-8", errors="replace")
            logger.error("Snapshot FFmpeg exited with code %s", process.returncode, extra=extra)
            if self._video_config.debug:
                logger.debug("FFmpeg stderr: %s", stderr_text, extra=extra)
            raise ProcessFailed(process.returncode, stderr_tail=stderr_text[-500:])

        if not stdout:
            logger.error("Empty snapshot received", extra=extra)
            raise EmptyCapture()

        self._cached = CachedSnapshot(data=stdout, captured_at=self._clock())
        logger.debug("Snapshot captured: %d bytes", len(stdout), extra=extra)
        return stdout


__all__ = ["CachedSnapshot", "SnapshotFetcher"]
