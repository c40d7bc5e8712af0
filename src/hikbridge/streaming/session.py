"""Viewer stream sessions: prepare -> start -> [reconfigure] -> stop.

Each session lives in exactly one of the pending or active tables. The
active entry exclusively owns its ffmpeg process and its reserved ports,
and both are released on the single stop path, whether the stop comes
from the viewer or from the process exiting on its own.
"""

from __future__ import annotations

import asyncio
import collections
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any

from hikbridge.constants import DEFAULT_AUDIO_PAYLOAD_TYPE, DEFAULT_VIDEO_PAYLOAD_TYPE
from hikbridge.errors import (
    InvalidStreamRequest,
    ProcessSpawnError,
    SessionError,
    SessionNotFound,
    SourceNotConfigured,
)
from hikbridge.models.config import CameraConfig
from hikbridge.models.enums import AudioCodec, SessionState
from hikbridge.streaming.command import (
    AudioOutput,
    SrtpTarget,
    TranscoderCommand,
    build_stream_command,
)
from hikbridge.streaming.ports import UdpPortAllocator
from hikbridge.streaming.process import kill_and_reap
from hikbridge.streaming.profiles import resolve_encoder_profile
from hikbridge.streaming.resolution import ResolutionConstraint, clamp_bitrate, clamp_fps

logger = logging.getLogger(__name__)

_STDERR_TAIL_LINES = 20


@dataclass(frozen=True, slots=True)
class MediaEndpoint:
    """Viewer-side receive port and SRTP material for one media type."""

    port: int
    srtp_key: bytes
    srtp_salt: bytes


@dataclass(frozen=True, slots=True)
class PrepareRequest:
    session_id: str
    target_address: str
    video: MediaEndpoint
    audio: MediaEndpoint
    ipv6: bool = False


@dataclass(frozen=True, slots=True)
class PreparedMedia:
    port: int
    ssrc: int
    srtp_key: bytes
    srtp_salt: bytes


@dataclass(frozen=True, slots=True)
class PrepareResponse:
    video: PreparedMedia
    audio: PreparedMedia


@dataclass(frozen=True, slots=True)
class VideoParams:
    width: int
    height: int
    fps: int
    max_bitrate: int
    payload_type: int = DEFAULT_VIDEO_PAYLOAD_TYPE


@dataclass(frozen=True, slots=True)
class AudioParams:
    codec: AudioCodec | str
    sample_rate: int
    max_bitrate: int
    channels: int = 1
    payload_type: int = DEFAULT_AUDIO_PAYLOAD_TYPE


@dataclass(frozen=True, slots=True)
class MediaTransport:
    """Negotiated transport for one session; key material is passed through untouched."""

    address: str
    ipv6: bool
    video: MediaEndpoint
    audio: MediaEndpoint
    video_ssrc: int
    audio_ssrc: int
    video_port: int
    video_return_port: int
    audio_port: int
    audio_return_port: int

    @property
    def local_ports(self) -> tuple[int, int, int, int]:
        return (self.video_port, self.video_return_port, self.audio_port, self.audio_return_port)

    def video_target(self, payload_type: int) -> SrtpTarget:
        return SrtpTarget(
            address=self.address,
            port=self.video.port,
            ssrc=self.video_ssrc,
            srtp_key=self.video.srtp_key,
            srtp_salt=self.video.srtp_salt,
            payload_type=payload_type,
        )

    def audio_target(self, payload_type: int) -> SrtpTarget:
        return SrtpTarget(
            address=self.address,
            port=self.audio.port,
            ssrc=self.audio_ssrc,
            srtp_key=self.audio.srtp_key,
            srtp_salt=self.audio.srtp_salt,
            payload_type=payload_type,
        )


@dataclass(slots=True)
class StreamSession:
    session_id: str
    transport: MediaTransport
    state: SessionState = SessionState.PENDING
    process: Any = None
    command: TranscoderCommand | None = None
    width: int = 0
    height: int = 0
    bitrate: int = 0
    stderr_tail: collections.deque[str] = field(
        default_factory=lambda: collections.deque(maxlen=_STDERR_TAIL_LINES)
    )
    _watcher: asyncio.Task[None] | None = None
    _stderr_reader: asyncio.Task[None] | None = None


def generate_ssrc() -> int:
    """Random positive 32-bit SSRC (top byte zero)."""
    while True:
        ssrc = int.from_bytes(b"\x00" + secrets.token_bytes(3), "big")
        if ssrc:
            return ssrc


class StreamSessionManager:
    """Owns every stream session of one camera."""

    def __init__(
        self,
        camera: CameraConfig,
        *,
        video_processor: str = "ffmpeg",
        port_allocator: UdpPortAllocator | None = None,
    ) -> None:
        self._camera = camera
        self._video_processor = video_processor
        self._ports = port_allocator or UdpPortAllocator()
        self._pending: dict[str, StreamSession] = {}
        self._active: dict[str, StreamSession] = {}

    @property
    def camera(self) -> CameraConfig:
        return self._camera

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    @property
    def active_ids(self) -> list[str]:
        return list(self._active)

    def get_session(self, session_id: str) -> StreamSession | None:
        return self._pending.get(session_id) or self._active.get(session_id)

    def prepare_session(self, request: PrepareRequest) -> PrepareResponse:
        """Reserve local ports and SSRCs and record a pending session.

        Raises:
            InvalidStreamRequest: If the request is malformed or the id is in use
            TransportError: If UDP ports cannot be allocated
        """
        _validate_prepare(request)
        if request.session_id in self._pending or request.session_id in self._active:
            raise InvalidStreamRequest(f"Session already exists: {request.session_id}")

        video_port, video_return_port, audio_port, audio_return_port = self._ports.allocate_many(
            4, ipv6=request.ipv6
        )
        video_ssrc = generate_ssrc()
        audio_ssrc = generate_ssrc()
        while audio_ssrc == video_ssrc:
            audio_ssrc = generate_ssrc()

        transport = MediaTransport(
            address=request.target_address,
            ipv6=request.ipv6,
            video=request.video,
            audio=request.audio,
            video_ssrc=video_ssrc,
            audio_ssrc=audio_ssrc,
            video_port=video_port,
            video_return_port=video_return_port,
            audio_port=audio_port,
            audio_return_port=audio_return_port,
        )
        self._pending[request.session_id] = StreamSession(
            session_id=request.session_id, transport=transport
        )
        logger.debug(
            "Stream prepared: %s:%d",
            request.target_address,
            request.video.port,
            extra={"camera_name": self._camera.name},
        )
        return PrepareResponse(
            video=PreparedMedia(
                port=video_port,
                ssrc=video_ssrc,
                srtp_key=request.video.srtp_key,
                srtp_salt=request.video.srtp_salt,
            ),
            audio=PreparedMedia(
                port=audio_port,
                ssrc=audio_ssrc,
                srtp_key=request.audio.srtp_key,
                srtp_salt=request.audio.srtp_salt,
            ),
        )

    async def start_session(
        self,
        session_id: str,
        video: VideoParams,
        audio: AudioParams | None = None,
        *,
        bitrate_hint: int | None = None,
    ) -> StreamSession:
        """Spawn the transcoder for a prepared session and mark it active.

        The pending entry is consumed even when starting fails; the viewer
        must prepare again.

        Raises:
            SessionNotFound: If no pending session has this id
            SourceNotConfigured: If the camera has no video source
            SessionError: If the camera is already at max_streams
            InvalidStreamRequest: If the configured ffmpeg arguments cannot be parsed
            ProcessSpawnError: If ffmpeg cannot be started
        """
        session = self._pending.pop(session_id, None)
        if session is None:
            logger.error(
                "Session not found: %s", session_id, extra={"camera_name": self._camera.name}
            )
            raise SessionNotFound(session_id)

        video_config = self._camera.video
        if not video_config.source:
            self._ports.release(*session.transport.local_ports)
            logger.error("No source configured", extra={"camera_name": self._camera.name})
            raise SourceNotConfigured(self._camera.name)
        if len(self._active) >= video_config.max_streams:
            self._ports.release(*session.transport.local_ports)
            raise SessionError(
                f"Camera {self._camera.name} already has {len(self._active)} active streams"
            )

        try:
            command = self._build_command(
                session, video_config.source, video, audio, bitrate_hint=bitrate_hint
            )
        except ValueError as exc:
            self._ports.release(*session.transport.local_ports)
            logger.error(
                "Invalid ffmpeg arguments: %s", exc, extra={"camera_name": self._camera.name}
            )
            raise InvalidStreamRequest(f"Cannot build ffmpeg command: {exc}", cause=exc) from exc
        logger.debug(
            "FFmpeg command: %s", command.redacted(), extra={"camera_name": self._camera.name}
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *command.flatten(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._ports.release(*session.transport.local_ports)
            logger.error(
                "Failed to start ffmpeg: %s", exc, extra={"camera_name": self._camera.name}
            )
            raise ProcessSpawnError(f"Failed to start {self._video_processor}: {exc}", cause=exc) from exc

        session.process = process
        session.command = command
        session.state = SessionState.ACTIVE
        self._active[session_id] = session
        session._stderr_reader = asyncio.create_task(
            self._drain_stderr(session), name=f"ffmpeg-stderr:{session_id}"
        )
        session._watcher = asyncio.create_task(
            self._watch_process(session), name=f"ffmpeg-watch:{session_id}"
        )
        return session

    def reconfigure_session(self, session_id: str, video: VideoParams | None = None) -> None:
        """Acknowledge a reconfigure request; the running process is left unchanged."""
        if video is not None:
            logger.debug(
                "Reconfigure ignored for %s: %dx%d",
                session_id,
                video.width,
                video.height,
                extra={"camera_name": self._camera.name},
            )
        else:
            logger.debug("Reconfigure ignored for %s", session_id, extra={"camera_name": self._camera.name})

    async def stop_session(self, session_id: str) -> bool:
        """Kill the process, release ports and forget the session.

        Safe to call for unknown or already stopped sessions. Returns True
        when a session was actually stopped.
        """
        session = self._active.pop(session_id, None)
        if session is None:
            session = self._pending.pop(session_id, None)
        if session is None:
            return False

        was_active = session.state == SessionState.ACTIVE
        session.state = SessionState.STOPPED
        if was_active:
            logger.info("Stopping stream", extra={"camera_name": self._camera.name})
        await kill_and_reap(session.process, camera_name=self._camera.name)
        self._ports.release(*session.transport.local_ports)

        current = asyncio.current_task()
        tasks = [
            task
            for task in (session._watcher, session._stderr_reader)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return True

    async def stop_all(self) -> None:
        for session_id in [*self._active, *self._pending]:
            await self.stop_session(session_id)

    def _build_command(
        self,
        session: StreamSession,
        source: str,
        video: VideoParams,
        audio: AudioParams | None,
        *,
        bitrate_hint: int | None,
    ) -> TranscoderCommand:
        video_config = self._camera.video
        profile = resolve_encoder_profile(video_config.encoder)
        resolution = ResolutionConstraint.for_camera(
            video.width,
            video.height,
            camera_max_width=video_config.max_width,
            camera_max_height=video_config.max_height,
        ).resolve(
            profile,
            hflip=video_config.hflip,
            vflip=video_config.vflip,
            custom_filter=video_config.video_filter,
        )
        fps = clamp_fps(video.fps, video_config.max_fps)
        bitrate = clamp_bitrate(
            bitrate_hint if bitrate_hint is not None else video.max_bitrate,
            min_bitrate=video_config.min_bitrate,
            max_bitrate=video_config.max_bitrate,
        )
        session.width = resolution.width
        session.height = resolution.height
        session.bitrate = bitrate

        codec = video_config.vcodec or profile.codec
        logger.info(
            "Starting stream: %dx%d %dkbps",
            resolution.width,
            resolution.height,
            bitrate,
            extra={"camera_name": self._camera.name},
        )
        logger.info(
            "Video encoder: %s (%s)", codec, profile.description, extra={"camera_name": self._camera.name}
        )

        audio_output: AudioOutput | None = None
        if video_config.audio and audio is not None:
            logger.info("Audio enabled: %s", audio.codec, extra={"camera_name": self._camera.name})
            audio_output = AudioOutput(
                codec=audio.codec,
                sample_rate=audio.sample_rate,
                bitrate=audio.max_bitrate,
                channels=audio.channels,
                target=session.transport.audio_target(audio.payload_type),
                map_audio=video_config.map_audio,
            )

        return build_stream_command(
            self._video_processor,
            source=source,
            profile=profile,
            codec=codec,
            hwaccel_device=video_config.hwaccel_device,
            map_video=video_config.map_video,
            filter_chain=resolution.filter_chain,
            fps=fps,
            encoder_options=video_config.encoder_options,
            bitrate=bitrate,
            video_target=session.transport.video_target(video.payload_type),
            packet_size=video_config.packet_size,
            audio=audio_output,
            debug=video_config.debug,
        )

    async def _watch_process(self, session: StreamSession) -> None:
        returncode = await session.process.wait()
        if session.state != SessionState.ACTIVE:
            return
        if returncode not in (0, None):
            logger.warning(
                "FFmpeg exited with code %s: %s",
                returncode,
                " | ".join(session.stderr_tail),
                extra={"camera_name": self._camera.name},
            )
        await self.stop_session(session.session_id)

    async def _drain_stderr(self, session: StreamSession) -> None:
        stream = session.process.stderr
        if stream is None:
            return
        debug = self._camera.video.debug
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if not text:
                continue
            session.stderr_tail.append(text)
            if debug:
                logger.debug("[FFmpeg] %s", text, extra={"camera_name": self._camera.name})


def _validate_prepare(request: PrepareRequest) -> None:
    if not request.session_id:
        raise InvalidStreamRequest("Session id is required")
    if not request.target_address:
        raise InvalidStreamRequest("Target address is required")
    for name, endpoint in (("video", request.video), ("audio", request.audio)):
        if not 0 < endpoint.port <= 65535:
            raise InvalidStreamRequest(f"Invalid {name} port: {endpoint.port}")


__all__ = [
    "AudioParams",
    "MediaEndpoint",
    "MediaTransport",
    "PrepareRequest",
    "PrepareResponse",
    "PreparedMedia",
    "StreamSession",
    "StreamSessionManager",
    "VideoParams",
    "generate_ssrc",
]
