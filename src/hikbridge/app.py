"""Bridge runner that wires the NVR client, motion events and per-camera streaming together."""

from __future__ import annotations

import asyncio
import logging
import re
import signal
from collections.abc import Callable
from pathlib import Path

from hikbridge.config import load_config, resolve_password
from hikbridge.errors import HikBridgeError
from hikbridge.events import EventStreamMonitor, Subscription
from hikbridge.ffmpeg import (
    check_ffmpeg_available,
    probe_stream,
    resolve_ffmpeg_path,
    resolve_ffprobe_path,
)
from hikbridge.isapi import Credentials, IsapiClient, NvrDiscovery
from hikbridge.models.config import CameraConfig, PlatformConfig
from hikbridge.streaming import SnapshotFetcher, StreamSessionManager, UdpPortAllocator

logger = logging.getLogger(__name__)

MotionSink = Callable[[CameraConfig, bool], None]

_RTSP_URL_RE = re.compile(r"(rtsp://\S+)")


class CameraStreamer:
    """Everything one camera exposes: stream sessions, snapshots and motion state."""

    def __init__(
        self,
        camera: CameraConfig,
        *,
        video_processor: str = "ffmpeg",
        port_allocator: UdpPortAllocator | None = None,
        motion_sink: MotionSink | None = None,
    ) -> None:
        self._camera = camera
        self._motion_sink = motion_sink
        self._motion_detected = False
        self._motion_reset: asyncio.TimerHandle | None = None
        self.sessions = StreamSessionManager(
            camera, video_processor=video_processor, port_allocator=port_allocator
        )
        self.snapshots = SnapshotFetcher(camera.video, camera.name, video_processor=video_processor)

    @property
    def camera(self) -> CameraConfig:
        return self._camera

    @property
    def channel_id(self) -> int:
        return self._camera.channel_id

    @property
    def motion_detected(self) -> bool:
        return self._motion_detected

    def trigger_motion(self, active: bool) -> None:
        """Set motion state; an active trigger clears itself after motion_timeout_s."""
        if not self._camera.motion:
            return
        if self._motion_reset is not None:
            self._motion_reset.cancel()
            self._motion_reset = None

        self._motion_detected = active
        if active:
            logger.debug("Motion detected", extra={"camera_name": self._camera.name})
            timeout = self._camera.motion_timeout_s
            if timeout > 0:
                loop = asyncio.get_running_loop()
                self._motion_reset = loop.call_later(timeout, self.trigger_motion, False)
        else:
            logger.debug("Motion cleared", extra={"camera_name": self._camera.name})

        if self._motion_sink is not None:
            try:
                self._motion_sink(self._camera, active)
            except Exception as exc:
                logger.error("Motion sink failed: %s", exc, exc_info=exc)

    def on_motion_event(self, channel_id: int, event_type: str, active: bool) -> None:
        self.trigger_motion(active)

    async def shutdown(self) -> None:
        if self._motion_reset is not None:
            self._motion_reset.cancel()
            self._motion_reset = None
        await self.sessions.stop_all()


class Bridge:
    """Main application: connects to the NVR and runs until SIGINT/SIGTERM."""

    def __init__(
        self,
        config: PlatformConfig | Path,
        *,
        motion_sink: MotionSink | None = None,
    ) -> None:
        self._config_path = config if isinstance(config, Path) else None
        self._config = config if isinstance(config, PlatformConfig) else None
        self._motion_sink = motion_sink
        self._client: IsapiClient | None = None
        self._monitor: EventStreamMonitor | None = None
        self._streamers: dict[int, CameraStreamer] = {}
        self._subscriptions: list[Subscription] = []
        self._ports = UdpPortAllocator()
        self._ffmpeg_path = "ffmpeg"

        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False

    @property
    def config(self) -> PlatformConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded")
        return self._config

    @property
    def streamers(self) -> dict[int, CameraStreamer]:
        return dict(self._streamers)

    @property
    def monitor(self) -> EventStreamMonitor | None:
        return self._monitor

    async def run(self) -> None:
        """Start everything, wait for a shutdown signal, then stop everything."""
        await self.start()
        self._setup_signal_handlers()
        logger.info("Bridge started with %d camera(s)", len(self._streamers))
        await self._shutdown_event.wait()
        await self.shutdown()

    async def start(self) -> None:
        if self._config is None:
            if self._config_path is None:
                raise RuntimeError("Bridge needs a PlatformConfig or a config path")
            self._config = load_config(self._config_path)
            logger.info("Config loaded from %s", self._config_path)
        config = self._config

        self._ffmpeg_path = resolve_ffmpeg_path(config.video_processor)
        availability = await asyncio.to_thread(check_ffmpeg_available, self._ffmpeg_path)
        if availability.available:
            logger.info("Using FFmpeg %s: %s", availability.version, self._ffmpeg_path)
        else:
            logger.error("FFmpeg not available at %s: %s", self._ffmpeg_path, availability.error)

        self._client = IsapiClient(
            Credentials(
                username=config.username,
                password=resolve_password(config),
                host=config.host,
                port=config.port,
                use_tls=config.secure,
            ),
            verify_tls=config.verify_tls,
        )
        discovery = NvrDiscovery(self._client)
        device_info = await discovery.get_device_info()
        if device_info.name or device_info.model:
            logger.info(
                "Connected to NVR: %s (%s)",
                device_info.name or "Unknown",
                device_info.model or "Unknown model",
            )

        cameras = await self._resolve_cameras(config, discovery)
        if config.probe_on_startup:
            await self._probe_cameras(cameras, config.probe_timeout_s)

        for camera in cameras:
            self._streamers[camera.channel_id] = CameraStreamer(
                camera,
                video_processor=self._ffmpeg_path,
                port_allocator=self._ports,
                motion_sink=self._motion_sink,
            )

        self._monitor = EventStreamMonitor(self._client, debug=config.debug_motion)
        for streamer in self._streamers.values():
            if streamer.camera.motion:
                self._subscriptions.append(
                    self._monitor.subscribe(streamer.channel_id, streamer.on_motion_event)
                )
        self._monitor.start()

    async def shutdown(self) -> None:
        logger.info("Shutting down bridge...")
        for streamer in self._streamers.values():
            await streamer.shutdown()
        if self._monitor is not None:
            for subscription in self._subscriptions:
                self._monitor.unsubscribe(subscription)
            self._subscriptions.clear()
            await self._monitor.stop()
        if self._client is not None:
            await self._client.close()
        logger.info("Bridge shutdown complete")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _resolve_cameras(
        self, config: PlatformConfig, discovery: NvrDiscovery
    ) -> list[CameraConfig]:
        """Configured cameras, or every NVR channel when none are configured; sources filled in."""
        cameras = list(config.enabled_cameras)
        if not config.cameras:
            logger.info("No cameras configured - starting auto-discovery...")
            try:
                channels = await discovery.discover_channels()
            except HikBridgeError as exc:
                logger.error("Failed to discover cameras: %s", exc)
                channels = []
            logger.info("Found %d channel(s) on NVR", len(channels))
            cameras = [CameraConfig(channel_id=channel.id, name=channel.name) for channel in channels]

        resolved: list[CameraConfig] = []
        for camera in cameras:
            stream_type = camera.stream_type or config.stream_type
            updates: dict[str, str] = {}
            if not camera.video.source:
                updates["source"] = discovery.build_ffmpeg_source(camera.channel_id, stream_type)
            if not camera.video.still_image_source:
                updates["still_image_source"] = discovery.build_ffmpeg_still_source(
                    camera.channel_id, stream_type
                )
            if updates:
                camera = camera.model_copy(update={"video": camera.video.model_copy(update=updates)})
            logger.info(
                "Camera %s (channel %d): max %dx%d, %s kbps, encoder %s",
                camera.name,
                camera.channel_id,
                camera.video.max_width,
                camera.video.max_height,
                camera.video.max_bitrate,
                camera.video.encoder,
            )
            resolved.append(camera)
        return resolved

    async def _probe_cameras(self, cameras: list[CameraConfig], timeout_s: float) -> None:
        logger.info("Probing camera streams...")
        ffprobe_path = resolve_ffprobe_path(self._ffmpeg_path)
        for camera in cameras:
            match = _RTSP_URL_RE.search(camera.video.source or "")
            if match is None:
                logger.debug("Could not extract RTSP URL from source for %s", camera.name)
                continue
            detected = await asyncio.to_thread(
                probe_stream, ffprobe_path, match.group(1), timeout_s=timeout_s
            )
            if detected is None:
                logger.warning("Failed to probe %s", camera.name)
                continue
            logger.info(
                "%s: %s %sx%s @ %sfps%s",
                camera.name,
                detected.video_codec or "unknown",
                detected.width,
                detected.height,
                detected.fps,
                f" + {detected.audio_codec}" if detected.audio_codec else "",
            )

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_started:
            logger.warning("Shutdown already in progress, ignoring signal")
            return
        logger.info("Received signal %s, initiating shutdown...", sig.name)
        self._shutdown_started = True
        self._shutdown_event.set()


__all__ = ["Bridge", "CameraStreamer", "MotionSink"]
