"""HTTP stream player: progressive download of a media source via aiohttp.

This is not a decoder. It measures what a real client would observe on the
wire while pulling the media bytes:
- first frame = first body chunk received after ``play()``
- estimated bitrate = throughput over a sliding window (100 kbps steps)
- stall = no chunk within ``stall_timeout`` seconds
- ``pause()`` drops the connection; ``play()`` resumes with a Range request
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from urllib.parse import urlparse

import aiohttp

from ..exceptions import PlayerInitError, PlayerLoadError, PlayerPlaybackError
from .base import FaultCode, PlayerAdapter, PlayerStats

logger = logging.getLogger("media-chaos")


def _quantize(bps: float, step: int = 100_000) -> int:
    return int(round(bps / step) * step)


class HttpStreamPlayer(PlayerAdapter):
    """Pulls the source over HTTP(S) and reports wire-level playback signals."""

    def __init__(
        self,
        *,
        request_timeout: float = 10.0,
        stall_timeout: float = 2.0,
        chunk_size: int = 64 * 1024,
        throughput_window: float = 3.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        self._request_timeout = request_timeout
        self._stall_timeout = stall_timeout
        self._chunk_size = chunk_size
        self._window = throughput_window
        self._session = session
        self._owns_session = session is None

        self._target = ""
        self._source_url = ""
        self._loaded = False
        self._paused = True
        self._offset = 0
        self._bytes = 0
        self._samples: deque[tuple[float, int]] = deque()
        self._task: asyncio.Task[None] | None = None

    async def attach(self, target: str) -> None:
        self._target = target
        if self._session is not None:
            return
        try:
            timeout = aiohttp.ClientTimeout(
                total=None, sock_connect=self._request_timeout
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
        except Exception as e:
            raise PlayerInitError(
                f"Failed to initialize HTTP player: {e}", FaultCode.INIT_FAILED
            ) from e

    async def load(self, source_url: str) -> None:
        if self._session is None:
            raise PlayerInitError("Player is not attached", FaultCode.INIT_FAILED)
        await self._halt()
        self._source_url = source_url
        self._loaded = False
        self._offset = 0

        parsed = urlparse(source_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise PlayerLoadError(
                f"Malformed source URL: {source_url!r}", FaultCode.MALFORMED_SOURCE
            )

        try:
            async with asyncio.timeout(self._request_timeout):
                async with self._session.get(
                    source_url, headers={"Range": "bytes=0-0"}
                ) as resp:
                    if resp.status >= 400:
                        raise PlayerLoadError(
                            f"HTTP {resp.status} for {source_url}",
                            FaultCode.BAD_HTTP_STATUS,
                        )
        except TimeoutError as e:
            raise PlayerLoadError(
                f"Timed out loading {source_url}", FaultCode.TIMEOUT
            ) from e
        except aiohttp.ClientError as e:
            raise PlayerLoadError(
                f"Failed to load video: {e}", FaultCode.HTTP_ERROR
            ) from e

        self._loaded = True
        logger.debug(f"[{self._target}] HTTP source probed: {source_url}")

    async def play(self) -> None:
        if not self._loaded:
            raise PlayerPlaybackError(
                "No playable source loaded", FaultCode.PLAYBACK_ERROR
            )
        if not self._paused:
            return
        self._paused = False
        self._task = asyncio.create_task(self._stream())

    async def pause(self) -> None:
        await self._halt()

    async def stop(self) -> None:
        await self._halt()
        self._offset = 0

    async def destroy(self) -> None:
        await self._halt()
        self.unbind()
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def get_stats(self) -> PlayerStats:
        return PlayerStats(
            estimated_bitrate_bps=self._estimate_bitrate(),
            cumulative_bytes=self._bytes,
        )

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def source_url(self) -> str:
        return self._source_url

    def _estimate_bitrate(self) -> int:
        now = time.monotonic()
        while self._samples and now - self._samples[0][0] > self._window:
            self._samples.popleft()
        if not self._samples:
            return 0
        span = max(now - self._samples[0][0], self._window / 2)
        total = sum(size for _, size in self._samples)
        return _quantize(total * 8 / span)

    async def _halt(self) -> None:
        self._paused = True
        self._samples.clear()
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _stream(self) -> None:
        assert self._session is not None
        headers = {"Range": f"bytes={self._offset}-"} if self._offset else {}
        rendered = False
        stalled = False
        try:
            async with self._session.get(self._source_url, headers=headers) as resp:
                if resp.status >= 400:
                    self._emit_error(
                        FaultCode.BAD_HTTP_STATUS,
                        f"HTTP {resp.status} for {self._source_url}",
                    )
                    return
                while True:
                    try:
                        chunk = await asyncio.wait_for(
                            resp.content.read(self._chunk_size), self._stall_timeout
                        )
                    except TimeoutError:
                        if not stalled:
                            stalled = True
                            self._emit_buffering_start()
                        continue

                    if not chunk:
                        logger.info(f"[{self._target}] End of stream reached")
                        self._paused = True
                        return

                    self._offset += len(chunk)
                    self._bytes += len(chunk)
                    self._samples.append((time.monotonic(), len(chunk)))
                    if not rendered:
                        rendered = True
                        self._emit_first_frame()
                    if stalled:
                        stalled = False
                        self._emit_buffering_end()
        except aiohttp.ClientError as e:
            self._emit_error(FaultCode.HTTP_ERROR, f"Stream interrupted: {e}")
