"""Chaos injector: probabilistic fault manufacture for a running session.

Every ``interval`` seconds the injector draws a uniform number in [0, 1)
and injects when it falls below the preset's error rate, so the error rate
is a per-tick probability. Injection swaps the player's source for a known
invalid one; the resulting load failure travels the normal fault path. A
one-shot recovery timer then restores the original source.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable

from ..exceptions import PlayerError
from ..player.base import FaultCode, PlayerAdapter
from ..presets import SimulationPreset
from .timers import TimerSet

logger = logging.getLogger("media-chaos")

CHAOS_TIMER = "chaos"
RECOVERY_TIMER = "chaos-recovery"


class ChaosInjector:
    def __init__(
        self,
        preset: SimulationPreset,
        player: PlayerAdapter,
        timers: TimerSet,
        *,
        source_url: str,
        invalid_source_url: str,
        is_running: Callable[[], bool],
        report_fault: Callable[[int, str], None],
        interval: float = 3.0,
        recovery_delay: float = 0.5,
        rng: random.Random | None = None,
        label: str = "",
    ) -> None:
        self._preset = preset
        self._player = player
        self._timers = timers
        self._source_url = source_url
        self._invalid_source_url = invalid_source_url
        self._is_running = is_running
        self._report_fault = report_fault
        self._interval = interval
        self._recovery_delay = recovery_delay
        self._rng = rng or random.Random()
        self._label = label
        self.injections = 0

    @property
    def enabled(self) -> bool:
        return self._preset.injects_faults

    def arm(self) -> bool:
        """Start the injection cadence. No-op for chaos type ``none``."""
        if not self.enabled:
            return False
        return self._timers.every(CHAOS_TIMER, self._interval, self.tick)

    def should_inject(self) -> bool:
        if not self.enabled:
            return False
        return self._rng.random() < self._preset.error_rate

    async def tick(self) -> bool:
        if not self._is_running():
            self._timers.cancel(CHAOS_TIMER)
            return False
        if not self.should_inject():
            return False
        await self.inject()
        return True

    async def inject(self) -> None:
        self.injections += 1
        bad_source = f"{self._invalid_source_url}?r={uuid.uuid4().hex[:7]}"
        logger.warning(
            f"[{self._label}] Chaos injected: forcing error by setting invalid source."
        )
        # Armed first so a terminal transition caused by this fault cancels it
        self._timers.after(RECOVERY_TIMER, self._recovery_delay, self.recover)
        try:
            await self._player.load(bad_source)
        except PlayerError as e:
            self._report_fault(e.code or FaultCode.HTTP_ERROR, str(e))

    async def recover(self) -> bool:
        """Restore the original source and resume playback if paused."""
        try:
            await self._player.load(self._source_url)
        except PlayerError as e:
            logger.warning(f"[{self._label}] Chaos recovery could not restore source: {e}")
            return False
        if self._player.is_paused:
            try:
                await self._player.play()
            except PlayerError as e:
                logger.warning(
                    f"[{self._label}] Could not auto-play after chaos recovery: {e}"
                )
                return False
        return True
