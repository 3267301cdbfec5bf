"""Simulated player: a synthetic playback engine for headless load runs.

Nothing is downloaded or decoded. After ``play()`` the engine waits for a
configurable startup latency, reports the first frame, then advances a
byte counter at the current bitrate-ladder level. Each tick it may switch
one ladder level up or down, or stall for a while (buffering start/end).

Sources that are not http(s), or that point at a reserved test domain
(``*.test``, ``*.invalid``), fail to load the same way an unreachable
host would. The chaos injector relies on this to manufacture faults.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Sequence
from urllib.parse import urlparse

from ..exceptions import PlayerInitError, PlayerLoadError, PlayerPlaybackError
from .base import FaultCode, PlayerAdapter, PlayerStats

logger = logging.getLogger("media-chaos")

_UNREACHABLE_SUFFIXES = (".test", ".invalid", ".localhost")


def check_source_url(url: str) -> None:
    """Raise PlayerLoadError if ``url`` could never be played."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise PlayerLoadError(f"Malformed source URL: {url!r}", FaultCode.MALFORMED_SOURCE)
    if parsed.hostname.endswith(_UNREACHABLE_SUFFIXES):
        raise PlayerLoadError(
            f"Failed to load video: host {parsed.hostname} unreachable",
            FaultCode.HTTP_ERROR,
        )


class SimulatedPlayer(PlayerAdapter):
    """Player that fakes playback progress, bitrate switches and stalls.

    Usage:
        player = SimulatedPlayer(rng=random.Random(7))
        player.bind(listener)
        await player.attach("sim-1")
        await player.load("https://cdn.example.com/video.mp4")
        await player.play()
    """

    def __init__(
        self,
        *,
        startup_latency: float = 0.8,
        ladder: Sequence[int] = (800_000, 2_000_000, 5_000_000),
        tick: float = 0.25,
        switch_probability: float = 0.05,
        stall_probability: float = 0.01,
        stall_seconds: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__()
        if not ladder:
            raise ValueError("Bitrate ladder must not be empty")
        self._startup_latency = startup_latency
        self._ladder = list(ladder)
        self._tick = tick
        self._switch_probability = switch_probability
        self._stall_probability = stall_probability
        self._stall_seconds = stall_seconds
        self._rng = rng or random.Random()

        self._target = ""
        self._attached = False
        self._destroyed = False
        self._source_url = ""
        self._loaded = False
        self._paused = True
        self._rendering = False
        self._level = len(self._ladder) // 2
        self._bytes = 0
        self._task: asyncio.Task[None] | None = None

    async def attach(self, target: str) -> None:
        if self._destroyed:
            raise PlayerInitError("Player already destroyed", FaultCode.INIT_FAILED)
        self._target = target
        self._attached = True

    async def load(self, source_url: str) -> None:
        if not self._attached:
            raise PlayerInitError("Player is not attached", FaultCode.INIT_FAILED)
        await self._halt()
        self._source_url = source_url
        self._loaded = False
        check_source_url(source_url)
        self._loaded = True
        logger.debug(f"[{self._target}] Simulated source loaded: {source_url}")

    async def play(self) -> None:
        if not self._loaded:
            raise PlayerPlaybackError("No playable source loaded", FaultCode.PLAYBACK_ERROR)
        if not self._paused:
            return
        self._paused = False
        self._task = asyncio.create_task(self._playback())

    async def pause(self) -> None:
        await self._halt()

    async def stop(self) -> None:
        await self._halt()

    async def destroy(self) -> None:
        await self._halt()
        self.unbind()
        self._destroyed = True
        self._attached = False

    def get_stats(self) -> PlayerStats:
        bitrate = self._ladder[self._level] if self._rendering else 0
        return PlayerStats(estimated_bitrate_bps=bitrate, cumulative_bytes=self._bytes)

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def source_url(self) -> str:
        return self._source_url

    async def _halt(self) -> None:
        self._paused = True
        self._rendering = False
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _playback(self) -> None:
        await asyncio.sleep(self._startup_latency)
        self._rendering = True
        self._emit_first_frame()

        while True:
            await asyncio.sleep(self._tick)
            if self._rng.random() < self._stall_probability:
                self._emit_buffering_start()
                await asyncio.sleep(self._stall_seconds)
                self._emit_buffering_end()
                continue

            self._bytes += int(self._ladder[self._level] / 8 * self._tick)
            if self._rng.random() < self._switch_probability:
                step = self._rng.choice((-1, 1))
                self._level = min(max(self._level + step, 0), len(self._ladder) - 1)
