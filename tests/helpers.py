"""Test helpers: a scripted player adapter and a polling wait."""

from __future__ import annotations

import asyncio

from media_chaos.config import EngineConfig
from media_chaos.exceptions import PlayerInitError, PlayerLoadError
from media_chaos.player.base import FaultCode, PlayerAdapter, PlayerStats


class ScriptedPlayer(PlayerAdapter):
    """Player whose notifications are fired by the test.

    Sources containing "invalid" fail to load. Nothing happens on play()
    unless ``auto_first_frame`` is set; tests call ``first_frame()`` etc.
    """

    def __init__(self, *, auto_first_frame: bool = False, fail_attach: bool = False):
        super().__init__()
        self.auto_first_frame = auto_first_frame
        self.fail_attach = fail_attach
        self.calls: list[str] = []
        self.loaded: list[str] = []
        self.stats = PlayerStats()
        self.play_requested = asyncio.Event()
        self.destroyed = False
        self._paused = True
        self._source_url = ""

    async def attach(self, target: str) -> None:
        self.calls.append("attach")
        if self.fail_attach:
            raise PlayerInitError("no playback engine", FaultCode.INIT_FAILED)

    async def load(self, source_url: str) -> None:
        self.calls.append("load")
        self.loaded.append(source_url)
        self._source_url = source_url
        self._paused = True
        if "invalid" in source_url:
            raise PlayerLoadError("Failed to load video", FaultCode.HTTP_ERROR)

    async def play(self) -> None:
        self.calls.append("play")
        self._paused = False
        self.play_requested.set()
        if self.auto_first_frame:
            asyncio.get_running_loop().call_soon(self._emit_first_frame)

    async def pause(self) -> None:
        self.calls.append("pause")
        self._paused = True

    async def stop(self) -> None:
        self.calls.append("stop")
        self._paused = True

    async def destroy(self) -> None:
        self.calls.append("destroy")
        self.destroyed = True
        self.unbind()

    def get_stats(self) -> PlayerStats:
        return self.stats

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def source_url(self) -> str:
        return self._source_url

    # ── Scripted notifications ──────────────────────────

    def first_frame(self) -> None:
        self._emit_first_frame()

    def buffering_start(self) -> None:
        self._emit_buffering_start()

    def buffering_end(self) -> None:
        self._emit_buffering_end()

    def error(self, code: int = FaultCode.HTTP_ERROR, message: str = "boom") -> None:
        self._emit_error(code, message)


def fast_engine(**overrides) -> EngineConfig:
    """Engine settings short enough for unit tests."""
    settings = dict(
        test_duration_seconds=0.3,
        progress_interval_seconds=0.02,
        stats_interval_seconds=0.02,
        chaos_interval_seconds=0.03,
        recovery_delay_seconds=0.01,
    )
    settings.update(overrides)
    return EngineConfig(**settings)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until true or fail the test."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(interval)
