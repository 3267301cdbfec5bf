"""Simulation lifecycle: one state machine per simulation.

    pending ──first frame──▶ running ──test window──▶ completed
       │                        │
       └────────fault───────────┴──────────▶ failed

Behavior:
  - On start, the player is attached and the source loaded; playback is
    requested once the preset's initial delay has elapsed
  - The first frame after that request records TTFF and flips to running,
    which arms the progress, stats, chaos and test-window timers
  - Every adapter fault is counted. The first one that arrives before a
    terminal state flips the simulation to failed; later ones are only tallied
  - Terminal transitions are a one-way latch: whichever of fault or test
    window lands first wins, and all of the simulation's timers are cancelled
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from datetime import datetime

from ..config import EngineConfig
from ..exceptions import PlayerError
from ..models import Simulation, SimulationStatus, can_transition
from ..player.base import FaultCode, PlayerAdapter, PlayerListener
from ..presets import SimulationPreset
from ..store import SimulationStore
from .chaos import ChaosInjector
from .collector import MetricsCollector
from .timers import TimerSet

logger = logging.getLogger("media-chaos")

PROGRESS_TIMER = "progress"
STATS_TIMER = "stats"
TEST_WINDOW_TIMER = "test-window"


def _sim_label(name: str, sim_id: str) -> str:
    """Human-readable simulation label: 'BASELINE TEST (sim_1a2b3c4d)'."""
    if name:
        return f"{name} ({sim_id})"
    return sim_id or "unknown"


class SimulationLifecycle(PlayerListener):
    """Drives one simulation from pending to a terminal state."""

    def __init__(
        self,
        simulation: Simulation,
        store: SimulationStore,
        player: PlayerAdapter,
        preset: SimulationPreset,
        config: EngineConfig,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sim_id = simulation.id
        self.label = _sim_label(simulation.name, simulation.id)
        self._source_url = simulation.source_url
        self._store = store
        self._player = player
        self._preset = preset
        self._config = config
        self._clock = clock

        self.timers = TimerSet(label=self.sim_id)
        self.collector = MetricsCollector(clock)
        self.chaos = ChaosInjector(
            preset,
            player,
            self.timers,
            source_url=simulation.source_url,
            invalid_source_url=config.invalid_source_url,
            is_running=lambda: self.status == SimulationStatus.RUNNING,
            report_fault=self.on_error,
            interval=config.chaos_interval_seconds,
            recovery_delay=config.recovery_delay_seconds,
            rng=rng,
            label=self.label,
        )

        self.finished = asyncio.Event()
        self._started = False
        self._closed = False
        self._play_requested = False
        self._running_since: float | None = None
        self._stop_task: asyncio.Task[None] | None = None

    @property
    def status(self) -> SimulationStatus | None:
        sim = self._store.get(self.sim_id)
        return sim.status if sim is not None else None

    # ── Startup ─────────────────────────────────────────

    def start(self) -> bool:
        """Begin the test for a pending simulation. Needs a running event loop."""
        if self._started or self._closed or self.status != SimulationStatus.PENDING:
            return False
        self._started = True
        self._player.bind(self)
        self.collector.start_test_clock()
        self._store.apply_patch(self.sim_id, {"started_at": datetime.now()})
        self.timers.after("startup", 0, self._startup)
        return True

    async def _startup(self) -> None:
        try:
            await self._player.attach(self.sim_id)
        except Exception as e:
            logger.error(f"[{self.label}] Failed to initialize player: {e}")
            self.on_error(FaultCode.INIT_FAILED, f"Failed to initialize player: {e}")
            return

        try:
            await self._player.load(self._source_url)
        except PlayerError as e:
            self.on_error(e.code or FaultCode.HTTP_ERROR, str(e) or "Failed to load video")
            return

        delay = self._preset.initial_delay_ms / 1000
        self.timers.after("initial-delay", delay, self._request_play)

    async def _request_play(self) -> None:
        self._play_requested = True
        try:
            await self._player.play()
        except PlayerError as e:
            logger.info(f"[{self.label}] Autoplay failed: {e}")

    # ── Transitions ─────────────────────────────────────

    def _transition(self, target: SimulationStatus, extra: dict | None = None) -> bool:
        moved = False

        def patch(sim: Simulation) -> dict | None:
            nonlocal moved
            if not can_transition(sim.status, target):
                return None
            moved = True
            return {"status": target, **(extra or {})}

        self._store.apply_patch(self.sim_id, patch)
        return moved

    def _arm_running_timers(self) -> None:
        cfg = self._config
        self.timers.every(PROGRESS_TIMER, cfg.progress_interval_seconds, self._poll_progress)
        self.timers.every(STATS_TIMER, cfg.stats_interval_seconds, self._poll_stats)
        self.chaos.arm()
        self.timers.after(TEST_WINDOW_TIMER, cfg.test_duration_seconds, self._complete)

    async def _complete(self) -> None:
        if self.status != SimulationStatus.RUNNING:
            return
        self.timers.close()
        segment = self.collector.flush()
        stall = self.collector.buffering_ended()
        ended_at = datetime.now()

        def patch(sim: Simulation) -> dict | None:
            if not can_transition(sim.status, SimulationStatus.COMPLETED):
                return None
            update: dict = {
                "status": SimulationStatus.COMPLETED,
                "ended_at": ended_at,
                "progress_percent": 100.0,
            }
            if segment is not None:
                update["bitrate_segments"] = [*sim.bitrate_segments, segment]
            if stall is not None:
                update.update(stall(sim))
            return update

        updated = self._store.apply_patch(self.sim_id, patch)
        if updated is not None and updated.status == SimulationStatus.COMPLETED:
            logger.info(
                f"[{self.label}] Completed: faults={updated.fault_count}, "
                f"rebuffers={updated.rebuffer_count}, ttff={updated.time_to_first_frame_ms}ms"
            )
        await self._stop_player()
        self.finished.set()

    def _teardown_after_failure(self) -> None:
        self.timers.close()
        segment = self.collector.flush()
        stall = self.collector.buffering_ended()

        def patch(sim: Simulation) -> dict:
            update: dict = {}
            if segment is not None:
                update["bitrate_segments"] = [*sim.bitrate_segments, segment]
            if stall is not None:
                update.update(stall(sim))
            return update

        self._store.apply_patch(self.sim_id, patch)
        self._stop_task = asyncio.create_task(self._stop_player())
        self.finished.set()

    async def _stop_player(self) -> None:
        try:
            await self._player.stop()
        except Exception as e:
            logger.warning(f"[{self.label}] Could not stop playback: {e}")

    # ── Periodic polls ──────────────────────────────────

    def _poll_progress(self) -> None:
        if self._running_since is None:
            return
        elapsed = self._clock() - self._running_since
        percent = round(
            min(100.0, elapsed / self._config.test_duration_seconds * 100), 1
        )
        if percent >= 100.0:
            return  # Only completion pins 100

        def patch(sim: Simulation) -> dict | None:
            if sim.status != SimulationStatus.RUNNING:
                return None
            return {"progress_percent": max(sim.progress_percent, percent)}

        self._store.apply_patch(self.sim_id, patch)

    def _poll_stats(self) -> None:
        if self.status != SimulationStatus.RUNNING:
            return
        try:
            stats = self._player.get_stats()
        except Exception as e:
            logger.debug(f"[{self.label}] Stats poll failed: {e}")
            return
        self._store.apply_patch(self.sim_id, self.collector.stats_patch(stats))

    # ── Player notifications ────────────────────────────

    def on_first_frame(self) -> None:
        if self._closed:
            return
        self._end_stall()
        if not self._play_requested or self.status != SimulationStatus.PENDING:
            return

        ttff = self.collector.time_to_first_frame_ms()
        if ttff is None:
            return
        if self._transition(SimulationStatus.RUNNING, {"time_to_first_frame_ms": ttff}):
            self._running_since = self._clock()
            logger.info(f"[{self.label}] Running (first frame after {ttff}ms)")
            self._arm_running_timers()

    def on_buffering_start(self) -> None:
        if self._closed:
            return
        status = self.status
        if status is None or status.is_terminal:
            return
        patch = self.collector.buffering_started()
        if patch is not None:
            self._store.apply_patch(self.sim_id, patch)

    def on_buffering_end(self) -> None:
        if self._closed:
            return
        self._end_stall()

    def _end_stall(self) -> None:
        patch = self.collector.buffering_ended()
        if patch is not None:
            self._store.apply_patch(self.sim_id, patch)

    def on_error(self, code: int, message: str) -> None:
        if self._closed:
            return
        failed_now = False
        ended_at = datetime.now()

        def patch(sim: Simulation) -> dict:
            nonlocal failed_now
            update: dict = {
                "fault_count": sim.fault_count + 1,
                "fault_codes": [*sim.fault_codes, int(code)],
            }
            if can_transition(sim.status, SimulationStatus.FAILED):
                failed_now = True
                update["status"] = SimulationStatus.FAILED
                update["ended_at"] = ended_at
            return update

        if self._store.apply_patch(self.sim_id, patch) is None:
            return
        logger.warning(f"[{self.label}] ERROR (Code {int(code)}): {message}")
        if failed_now:
            logger.info(f"[{self.label}] Failed")
            self._teardown_after_failure()

    # ── Removal ─────────────────────────────────────────

    async def shutdown(self) -> None:
        """Cancel every timer and release the player. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self.timers.close()
        self._player.unbind()
        if self._stop_task is not None:
            await asyncio.gather(self._stop_task, return_exceptions=True)
        try:
            await self._player.destroy()
        except Exception as e:
            logger.warning(f"[{self.label}] Player destroy failed: {e}")
        self.finished.set()
