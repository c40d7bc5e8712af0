"""Error hierarchy for the NVR client and streaming layers."""

from __future__ import annotations


class HikBridgeError(Exception):
    """Base exception for all bridge errors.

    Preserves the originating exception via chaining so callers can inspect
    the transport- or process-level cause.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class AuthenticationError(HikBridgeError):
    """Digest challenge missing, malformed, or rejected by the NVR."""


class NoChallengeAvailable(AuthenticationError):
    """An Authorization header was requested before any 401 challenge was parsed."""

    def __init__(self) -> None:
        super().__init__("No digest challenge available; a 401 response must be parsed first")


class TransportError(HikBridgeError):
    """Connection-level failure talking to the NVR."""


class ProtocolError(HikBridgeError):
    """The NVR answered, but not with something we can use."""


class UnexpectedStatus(ProtocolError):
    """Non-200 HTTP status (other than the digest 401 handshake)."""

    def __init__(self, status: int, path: str, reason: str | None = None) -> None:
        detail = f" {reason}" if reason else ""
        super().__init__(f"HTTP {status}{detail} for {path}")
        self.status = status
        self.path = path


class XmlParseError(ProtocolError):
    """Response body is not well-formed XML."""


class SessionError(HikBridgeError):
    """A stream session operation failed; other sessions are unaffected."""


class SessionNotFound(SessionError):
    """No pending session exists for the given identifier."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidStreamRequest(SessionError):
    """Stream request is missing required fields or carries invalid values."""


class SourceNotConfigured(SessionError):
    """Camera has no ffmpeg source configured for streaming or snapshots."""

    def __init__(self, camera_name: str) -> None:
        super().__init__(f"No source configured for camera {camera_name}")
        self.camera_name = camera_name


class ProcessError(HikBridgeError):
    """External transcoder process failed."""


class ProcessSpawnError(ProcessError):
    """The transcoder executable could not be started."""


class ProcessFailed(ProcessError):
    """Transcoder exited with a non-zero status."""

    def __init__(self, exit_code: int | None, stderr_tail: str = "") -> None:
        super().__init__(f"ffmpeg exited with code {exit_code}")
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class CaptureTimeout(ProcessError):
    """Snapshot capture exceeded its hard timeout and was killed."""


class EmptyCapture(ProcessError):
    """Snapshot capture exited cleanly but produced no bytes."""

    def __init__(self) -> None:
        super().__init__("Snapshot capture produced no data")


class EventParseError(ProtocolError):
    """A single alertStream fragment could not be parsed; never escapes the monitor."""
