"""Async ISAPI client: digest-authenticated requests and persistent byte streams."""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from hikbridge.constants import REQUEST_TIMEOUT_S, STREAM_RECONNECT_DELAY_S
from hikbridge.errors import (
    AuthenticationError,
    HikBridgeError,
    TransportError,
    UnexpectedStatus,
)
from hikbridge.isapi.digest import DigestAuthenticator, is_digest_challenge
from hikbridge.isapi.xml import parse_xml

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[str], None]
ErrorHandler = Callable[[Exception], None]
CloseHandler = Callable[[], None]


@dataclass(frozen=True, slots=True)
class Credentials:
    """NVR endpoint and login; immutable for the client's lifetime."""

    username: str
    password: str = ""
    host: str = ""
    port: int = 80
    use_tls: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_tls else "http"
        host = f"[{self.host}]" if ":" in self.host and not self.host.startswith("[") else self.host
        return f"{scheme}://{host}:{self.port}"

    def __repr__(self) -> str:
        return (
            f"Credentials(username={self.username!r}, password='***', host={self.host!r}, "
            f"port={self.port}, use_tls={self.use_tls})"
        )


class IsapiClient:
    """HTTP(S) client for a single NVR using digest authentication.

    A cached challenge is reused across requests so the nonce count keeps
    increasing; any 401 replaces the challenge and the request is retried
    exactly once.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        request_timeout_s: float = REQUEST_TIMEOUT_S,
        reconnect_delay_s: float = STREAM_RECONNECT_DELAY_S,
        verify_tls: bool = False,
    ) -> None:
        self._credentials = credentials
        self._auth = DigestAuthenticator(credentials.username, credentials.password)
        self._request_timeout_s = request_timeout_s
        self._reconnect_delay_s = reconnect_delay_s
        self._verify_tls = verify_tls
        self._session: aiohttp.ClientSession | None = None
        self._streams: set[IsapiStream] = set()
        self._closed = False

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def authenticator(self) -> DigestAuthenticator:
        return self._auth

    @property
    def base_url(self) -> str:
        return self._credentials.base_url

    async def get(self, path: str) -> dict[str, Any]:
        """GET `path` and return the body parsed as an attribute-merged XML tree."""
        return parse_xml(await self.get_text(path))

    async def get_text(self, path: str) -> str:
        response = await self.request("GET", path)
        async with response:
            try:
                return await response.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransportError(f"Failed reading body of {path}: {exc}", cause=exc) from exc

    async def request(self, method: str, path: str, *, stream: bool = False) -> aiohttp.ClientResponse:
        """Perform the digest handshake and return a 200 response.

        The caller owns the returned response and must release it.

        Raises:
            AuthenticationError: If the NVR sends no usable challenge or rejects the digest
            UnexpectedStatus: For any other non-200 status
            TransportError: On connection failures and timeouts
        """
        response = await self._send(method, path, authorized=self._auth.has_challenge, stream=stream)

        if response.status == 401:
            header = response.headers.get("WWW-Authenticate")
            response.release()
            if not is_digest_challenge(header):
                raise AuthenticationError(f"No digest WWW-Authenticate header in 401 response for {path}")
            self._auth.update_challenge(header or "")
            response = await self._send(method, path, authorized=True, stream=stream)
            if response.status == 401:
                response.release()
                raise AuthenticationError(f"Digest authentication rejected for {path}")

        if response.status != 200:
            status = response.status
            reason = response.reason
            response.release()
            raise UnexpectedStatus(status, path, reason)

        return response

    def open_stream(
        self,
        path: str,
        on_chunk: ChunkHandler,
        on_error: ErrorHandler | None = None,
        on_close: CloseHandler | None = None,
    ) -> IsapiStream:
        """Open a persistent, auto-reconnecting stream; requires a running loop."""
        if self._closed:
            raise RuntimeError("IsapiClient has been closed")
        stream = IsapiStream(
            self,
            path,
            on_chunk=on_chunk,
            on_error=on_error,
            on_close=on_close,
            reconnect_delay_s=self._reconnect_delay_s,
        )
        self._streams.add(stream)
        stream.start()
        return stream

    async def close(self) -> None:
        """Close all open streams and the HTTP session."""
        if self._closed:
            return
        self._closed = True
        for stream in list(self._streams):
            await stream.close()
        self._streams.clear()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _forget_stream(self, stream: IsapiStream) -> None:
        self._streams.discard(stream)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        authorized: bool,
        stream: bool,
    ) -> aiohttp.ClientResponse:
        headers = {"Accept": "application/xml"}
        if authorized:
            headers["Authorization"] = self._auth.authorization_header(method, path)

        if stream:
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._request_timeout_s)
        else:
            timeout = aiohttp.ClientTimeout(total=self._request_timeout_s)

        session = await self._get_session()
        try:
            return await session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=timeout,
                ssl=self._verify_tls,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransportError(f"{method} {path} failed: {exc}", cause=exc) from exc

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session


class IsapiStream:
    """Supervised task that keeps one streaming GET open until closed.

    Decoded text chunks go to `on_chunk`. When the body ends or the
    connection fails, `on_error` is called and the task reconnects after
    `reconnect_delay_s`. `close()` cancels the task, including any pending
    reconnect delay, and calls `on_close` once.
    """

    def __init__(
        self,
        client: IsapiClient,
        path: str,
        *,
        on_chunk: ChunkHandler,
        on_error: ErrorHandler | None = None,
        on_close: CloseHandler | None = None,
        reconnect_delay_s: float = STREAM_RECONNECT_DELAY_S,
    ) -> None:
        self._client = client
        self._path = path
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._on_close = on_close
        self._reconnect_delay_s = reconnect_delay_s
        self._task: asyncio.Task[None] | None = None
        self._connected = False
        self._closed = False
        self.connect_count = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None or self._closed:
            return
        self._task = asyncio.create_task(self._run(), name=f"isapi-stream:{self._path}")
        self._task.add_done_callback(self._on_task_done)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._connected = False
        self._client._forget_stream(self)
        if self._on_close is not None:
            self._on_close()

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self._consume_once()
                error: Exception = TransportError(f"Stream ended: {self._path}")
                logger.debug("Stream %s ended, reconnecting...", self._path)
            except HikBridgeError as exc:
                error = exc
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                error = TransportError(f"Stream {self._path} failed: {exc}", cause=exc)

            self._connected = False
            self._notify_error(error)
            await asyncio.sleep(self._reconnect_delay_s)

    async def _consume_once(self) -> None:
        response = await self._client.request("GET", self._path, stream=True)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async with response:
            self._connected = True
            self.connect_count += 1
            logger.info("Stream connected: %s (attempt %d)", self._path, self.connect_count)
            async for chunk in response.content.iter_any():
                text = decoder.decode(chunk)
                if text:
                    self._deliver(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                self._deliver(tail)

    def _deliver(self, text: str) -> None:
        try:
            self._on_chunk(text)
        except Exception as exc:
            logger.error("Stream chunk handler failed for %s: %s", self._path, exc, exc_info=exc)

    def _notify_error(self, exc: Exception) -> None:
        if self._on_error is None:
            logger.warning("Stream %s error: %s", self._path, exc)
            return
        try:
            self._on_error(exc)
        except Exception as handler_exc:
            logger.error("Stream error handler failed: %s", handler_exc, exc_info=handler_exc)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Stream task for %s crashed: %s", self._path, exc, exc_info=exc)


__all__ = ["Credentials", "IsapiClient", "IsapiStream"]
