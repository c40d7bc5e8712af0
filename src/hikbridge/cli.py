"""CLI entrypoint for the Hikvision NVR bridge."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from hikbridge.app import Bridge
from hikbridge.config import ConfigError, load_config, resolve_password
from hikbridge.errors import HikBridgeError
from hikbridge.events import EventStreamMonitor
from hikbridge.ffmpeg import (
    HardwareEncoderDetector,
    check_ffmpeg_available,
    probe_stream,
    resolve_ffmpeg_path,
    resolve_ffprobe_path,
)
from hikbridge.isapi import Credentials, IsapiClient, NvrDiscovery
from hikbridge.logging_setup import configure_logging
from hikbridge.models.config import PlatformConfig
from hikbridge.streaming import SnapshotFetcher


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level)


def _client_for(cfg: PlatformConfig) -> IsapiClient:
    return IsapiClient(
        Credentials(
            username=cfg.username,
            password=resolve_password(cfg),
            host=cfg.host,
            port=cfg.port,
            use_tls=cfg.secure,
        ),
        verify_tls=cfg.verify_tls,
    )


class HikBridge:
    """HikBridge CLI - Hikvision NVR streaming and motion bridge."""

    def run(self, config: str, log_level: str = "INFO") -> None:
        """Run the bridge until interrupted.

        Args:
            config: Path to YAML config file
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        setup_logging(log_level)
        bridge = Bridge(Path(config))
        try:
            asyncio.run(bridge.run())
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pass  # Handled by signal handlers

    def validate(self, config: str) -> None:
        """Validate config file without connecting.

        Args:
            config: Path to YAML config file
        """
        config_path = Path(config)
        try:
            cfg = load_config(config_path)
            resolve_password(cfg)
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"✓ Config valid: {config_path}")
        print(f"  NVR: {cfg.host}:{cfg.port} (tls={cfg.secure})")
        print(f"  Cameras: {[camera.name for camera in cfg.cameras]}")
        print(f"  Encoders: {sorted({camera.video.encoder for camera in cfg.cameras})}")

    def info(self, config: str, log_level: str = "WARNING") -> None:
        """Print NVR device info and local ffmpeg capabilities.

        Args:
            config: Path to YAML config file
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = self._load(config)
        ffmpeg_path = resolve_ffmpeg_path(cfg.video_processor)
        availability = check_ffmpeg_available(ffmpeg_path)
        support = HardwareEncoderDetector(ffmpeg_path).detect()

        async def _info() -> None:
            client = _client_for(cfg)
            try:
                device = await NvrDiscovery(client).get_device_info()
            finally:
                await client.close()
            print(f"NVR: {device.name or 'unknown'} ({device.model or 'unknown model'})")
            print(f"  Serial: {device.serial_number or '-'}")
            print(f"  Firmware: {device.firmware_version or '-'}")

        asyncio.run(_info())
        if availability.available:
            print(f"FFmpeg: {availability.version} ({ffmpeg_path})")
        else:
            print(f"FFmpeg: unavailable ({availability.error})")
        print(f"  Suggested encoder: {support.mode}")

    def channels(self, config: str, log_level: str = "WARNING") -> None:
        """List the NVR's input channels with their RTSP sources.

        Args:
            config: Path to YAML config file
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = self._load(config)

        async def _channels() -> None:
            client = _client_for(cfg)
            try:
                discovery = NvrDiscovery(client)
                found = await discovery.discover_channels()
            finally:
                await client.close()
            for channel in found:
                print(f"{channel.id:>3}  {channel.name}")

        try:
            asyncio.run(_channels())
        except HikBridgeError as e:
            print(f"✗ {e}", file=sys.stderr)
            sys.exit(1)

    def events(self, config: str, log_level: str = "INFO") -> None:
        """Print motion events from the NVR until interrupted.

        Args:
            config: Path to YAML config file
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = self._load(config)

        def _print_event(channel_id: int, event_type: str, active: bool) -> None:
            state = "active" if active else "inactive"
            print(f"channel={channel_id} type={event_type} state={state}", flush=True)

        async def _events() -> None:
            client = _client_for(cfg)
            monitor = EventStreamMonitor(client, debug=cfg.debug_motion)
            channel_ids = [camera.channel_id for camera in cfg.enabled_cameras]
            if not channel_ids:
                channel_ids = [channel.id for channel in await NvrDiscovery(client).discover_channels()]
            for channel_id in channel_ids:
                monitor.subscribe(channel_id, _print_event)
            monitor.start()
            try:
                await asyncio.Event().wait()
            finally:
                await monitor.stop()
                await client.close()

        try:
            asyncio.run(_events())
        except KeyboardInterrupt:
            pass

    def probe(self, config: str, channel: int | None = None, log_level: str = "WARNING") -> None:
        """Probe camera streams with ffprobe.

        Args:
            config: Path to YAML config file
            channel: Only probe this channel id
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = self._load(config)
        ffprobe_path = resolve_ffprobe_path(resolve_ffmpeg_path(cfg.video_processor))
        discovery = NvrDiscovery(_client_for(cfg))
        for camera in cfg.enabled_cameras:
            if channel is not None and camera.channel_id != channel:
                continue
            url = discovery.build_rtsp_url(camera.channel_id, camera.stream_type or cfg.stream_type)
            detected = probe_stream(ffprobe_path, url, timeout_s=cfg.probe_timeout_s)
            if detected is None:
                print(f"{camera.name}: probe failed")
                continue
            audio = f" + {detected.audio_codec}" if detected.audio_codec else ""
            print(
                f"{camera.name}: {detected.video_codec or 'unknown'} "
                f"{detected.width}x{detected.height} @ {detected.fps}fps{audio}"
            )

    def snapshot(
        self,
        config: str,
        channel: int,
        output: str = "snapshot.jpg",
        width: int = 1920,
        height: int = 1080,
        log_level: str = "WARNING",
    ) -> None:
        """Capture one JPEG snapshot from a camera.

        Args:
            config: Path to YAML config file
            channel: Channel id of the camera
            output: Output file path
            width: Requested width
            height: Requested height
            log_level: Logging level
        """
        setup_logging(log_level)
        cfg = self._load(config)
        camera = next((c for c in cfg.cameras if c.channel_id == channel), None)
        if camera is None:
            print(f"✗ No camera configured for channel {channel}", file=sys.stderr)
            sys.exit(1)

        video = camera.video
        if not video.snapshot_source:
            source = NvrDiscovery(_client_for(cfg)).build_ffmpeg_still_source(
                camera.channel_id, camera.stream_type or cfg.stream_type
            )
            video = video.model_copy(update={"still_image_source": source})

        fetcher = SnapshotFetcher(
            video, camera.name, video_processor=resolve_ffmpeg_path(cfg.video_processor)
        )
        try:
            data = asyncio.run(fetcher.get_snapshot(width, height))
        except HikBridgeError as e:
            print(f"✗ Snapshot failed: {e}", file=sys.stderr)
            sys.exit(1)
        Path(output).write_bytes(data)
        print(f"✓ Wrote {len(data)} bytes to {output}")

    @staticmethod
    def _load(config: str) -> PlatformConfig:
        try:
            cfg = load_config(Path(config))
            resolve_password(cfg)
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        return cfg


def main() -> None:
    """Main CLI entrypoint."""
    # Strip --help/-h when it's the only arg so Fire shows its commands list
    if len(sys.argv) == 2 and sys.argv[1] in ("--help", "-h"):
        sys.argv.pop()
    fire.Fire(HikBridge)


if __name__ == "__main__":
    main()
