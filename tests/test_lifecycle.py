"""Tests for the per-simulation lifecycle state machine."""

from __future__ import annotations

import asyncio

import pytest

from helpers import ScriptedPlayer, fast_engine, wait_until
from media_chaos.engine.lifecycle import SimulationLifecycle
from media_chaos.models import Simulation, SimulationStatus
from media_chaos.player.base import FaultCode, PlayerStats
from media_chaos.presets import BUILTIN_PRESETS, ChaosType, SimulationPreset
from media_chaos.store import SimulationStore

SOURCE = "https://cdn.example.com/video.mp4"
ALWAYS_FAULT = SimulationPreset(
    name="ALWAYS FAULT", error_rate=1.0, chaos_type=ChaosType.FAULT_INJECTION
)


class FaultOnStopPlayer(ScriptedPlayer):
    """Reports an error while stopping, as a real player tearing down a request can."""

    async def stop(self) -> None:
        await super().stop()
        self.error(FaultCode.HTTP_ERROR, "aborted during stop")
        await asyncio.sleep(0.05)


class BrokenStopPlayer(ScriptedPlayer):
    async def stop(self) -> None:
        self.calls.append("stop")
        raise RuntimeError("player already torn down")


def _build(
    preset: SimulationPreset = BUILTIN_PRESETS["baseline"],
    player: ScriptedPlayer | None = None,
    store: SimulationStore | None = None,
    source_url: str = SOURCE,
    **engine,
) -> tuple[SimulationLifecycle, SimulationStore, ScriptedPlayer]:
    store = store or SimulationStore()
    player = player or ScriptedPlayer(auto_first_frame=True)
    sim = store.create(
        Simulation(name=f"{preset.name} TEST", source_url=source_url, preset="x")
    )
    lifecycle = SimulationLifecycle(sim, store, player, preset, fast_engine(**engine))
    return lifecycle, store, player


class TestCompletion:
    @pytest.mark.asyncio
    async def test_baseline_runs_to_completion(self):
        lifecycle, store, player = _build()
        player.stats = PlayerStats(estimated_bitrate_bps=2_000_000, cumulative_bytes=5000)
        assert lifecycle.start() is True
        await asyncio.wait_for(lifecycle.finished.wait(), 2)

        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.COMPLETED
        assert sim.fault_count == 0
        assert sim.progress_percent == 100.0
        assert sim.time_to_first_frame_ms is not None
        assert sim.started_at is not None
        assert sim.ended_at is not None
        assert sim.bytes_observed == 5000
        assert "stop" in player.calls
        assert lifecycle.timers.closed is True

    @pytest.mark.asyncio
    async def test_bitrate_segments_cover_running_time(self):
        lifecycle, store, player = _build(test_duration_seconds=0.4)
        player.stats = PlayerStats(estimated_bitrate_bps=2_000_000)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        await asyncio.sleep(0.2)
        player.stats = PlayerStats(estimated_bitrate_bps=5_000_000)
        await asyncio.wait_for(lifecycle.finished.wait(), 2)

        segments = store.get(lifecycle.sim_id).bitrate_segments
        assert [s.bitrate_bps for s in segments] == [2_000_000, 5_000_000]
        total = sum(s.duration_seconds for s in segments)
        assert total == pytest.approx(0.4, abs=0.1)

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_below_100_while_running(self):
        lifecycle, store, _ = _build(test_duration_seconds=0.5)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        seen = []
        while lifecycle.status == SimulationStatus.RUNNING:
            seen.append(store.get(lifecycle.sim_id).progress_percent)
            await asyncio.sleep(0.03)
        assert seen == sorted(seen)
        assert all(p < 100 for p in seen)
        assert store.get(lifecycle.sim_id).progress_percent == 100.0

    @pytest.mark.asyncio
    async def test_fault_after_completion_is_counted_without_status_change(self):
        lifecycle, store, player = _build(test_duration_seconds=0.1)
        lifecycle.start()
        await asyncio.wait_for(lifecycle.finished.wait(), 2)
        player.error(FaultCode.TIMEOUT, "late")
        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.COMPLETED
        assert sim.fault_count == 1
        assert sim.fault_codes == [FaultCode.TIMEOUT]

    @pytest.mark.asyncio
    async def test_fault_raised_while_stopping_keeps_completed(self):
        player = FaultOnStopPlayer(auto_first_frame=True)
        lifecycle, store, _ = _build(player=player, test_duration_seconds=0.1)
        lifecycle.start()
        await asyncio.wait_for(lifecycle.finished.wait(), 2)

        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.COMPLETED
        assert sim.progress_percent == 100.0
        assert sim.fault_count == 1
        assert sim.fault_codes == [FaultCode.HTTP_ERROR]

    @pytest.mark.asyncio
    async def test_stop_exception_does_not_block_completion(self):
        player = BrokenStopPlayer(auto_first_frame=True)
        lifecycle, store, _ = _build(player=player, test_duration_seconds=0.1)
        lifecycle.start()
        await asyncio.wait_for(lifecycle.finished.wait(), 2)

        assert "stop" in player.calls
        assert store.get(lifecycle.sim_id).status == SimulationStatus.COMPLETED


class TestFailure:
    @pytest.mark.asyncio
    async def test_always_fault_preset_fails_before_window(self):
        lifecycle, store, player = _build(ALWAYS_FAULT, test_duration_seconds=2.0)
        lifecycle.start()
        await asyncio.wait_for(lifecycle.finished.wait(), 1.5)

        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.FAILED
        assert sim.fault_count >= 1
        assert FaultCode.HTTP_ERROR in sim.fault_codes
        assert sim.progress_percent < 100
        assert sim.ended_at is not None

        # Recovery was cancelled by the terminal transition
        await asyncio.sleep(0.1)
        assert player.loaded[-1] != SOURCE
        assert store.get(lifecycle.sim_id).status == SimulationStatus.FAILED

    @pytest.mark.asyncio
    async def test_adapter_error_while_running_fails(self):
        lifecycle, store, player = _build(test_duration_seconds=1.0)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        player.error(FaultCode.PLAYBACK_ERROR, "decode")
        player.error(FaultCode.HTTP_ERROR, "second")

        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.FAILED
        assert sim.fault_codes == [FaultCode.PLAYBACK_ERROR, FaultCode.HTTP_ERROR]
        assert sim.fault_count == 2

    @pytest.mark.asyncio
    async def test_failed_never_becomes_completed(self):
        lifecycle, store, player = _build(test_duration_seconds=0.15)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        player.error()
        await asyncio.sleep(0.3)
        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.FAILED
        assert sim.progress_percent < 100

    @pytest.mark.asyncio
    async def test_stop_exception_after_failure_is_logged(self, caplog):
        player = BrokenStopPlayer(auto_first_frame=True)
        lifecycle, store, _ = _build(player=player, test_duration_seconds=1.0)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        with caplog.at_level("WARNING", logger="media-chaos"):
            player.error(FaultCode.PLAYBACK_ERROR, "decode")
            await asyncio.wait_for(lifecycle._stop_task, 1)

        assert "stop" in player.calls
        assert store.get(lifecycle.sim_id).status == SimulationStatus.FAILED
        assert "Could not stop playback" in caplog.text
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_init_failure_marks_failed_with_init_code(self):
        lifecycle, store, _ = _build(player=ScriptedPlayer(fail_attach=True))
        lifecycle.start()
        await asyncio.wait_for(lifecycle.finished.wait(), 1)
        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.FAILED
        assert sim.fault_codes == [FaultCode.INIT_FAILED]

    @pytest.mark.asyncio
    async def test_unloadable_source_fails_from_pending(self):
        lifecycle, store, player = _build(
            source_url="https://invalid.example.com/video.mp4"
        )
        lifecycle.start()
        await asyncio.wait_for(lifecycle.finished.wait(), 1)
        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.FAILED
        assert sim.fault_codes == [FaultCode.HTTP_ERROR]
        assert sim.time_to_first_frame_ms is None
        assert "play" not in player.calls


class TestPending:
    @pytest.mark.asyncio
    async def test_no_first_frame_stays_pending(self):
        lifecycle, store, player = _build(player=ScriptedPlayer())
        lifecycle.start()
        await asyncio.wait_for(player.play_requested.wait(), 1)
        await asyncio.sleep(0.4)
        sim = store.get(lifecycle.sim_id)
        assert sim.status == SimulationStatus.PENDING
        assert sim.time_to_first_frame_ms is None
        assert sim.progress_percent == 0.0

    @pytest.mark.asyncio
    async def test_first_frame_before_play_request_is_ignored(self):
        delayed = SimulationPreset(name="SLOW", initial_delay_ms=200)
        lifecycle, store, player = _build(delayed, player=ScriptedPlayer())
        lifecycle.start()
        await asyncio.sleep(0.05)
        player.first_frame()
        assert lifecycle.status == SimulationStatus.PENDING
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_ttff_includes_initial_delay(self):
        delayed = SimulationPreset(name="SLOW", initial_delay_ms=100)
        lifecycle, store, _ = _build(delayed)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        assert store.get(lifecycle.sim_id).time_to_first_frame_ms >= 100
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_start_only_once(self):
        lifecycle, _, _ = _build()
        assert lifecycle.start() is True
        assert lifecycle.start() is False
        await lifecycle.shutdown()


class TestSignals:
    @pytest.mark.asyncio
    async def test_ttff_set_once(self):
        lifecycle, store, player = _build(test_duration_seconds=1.0)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        ttff = store.get(lifecycle.sim_id).time_to_first_frame_ms
        await asyncio.sleep(0.05)
        player.first_frame()
        assert store.get(lifecycle.sim_id).time_to_first_frame_ms == ttff
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_rebuffer_counted_and_timed(self):
        lifecycle, store, player = _build(test_duration_seconds=1.0)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        player.buffering_start()
        player.buffering_start()
        await asyncio.sleep(0.05)
        player.buffering_end()
        sim = store.get(lifecycle.sim_id)
        assert sim.rebuffer_count == 1
        assert sim.rebuffer_time_seconds >= 0.04
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_open_stall_closed_on_completion(self):
        lifecycle, store, player = _build(test_duration_seconds=0.15)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        player.buffering_start()
        await asyncio.wait_for(lifecycle.finished.wait(), 2)
        sim = store.get(lifecycle.sim_id)
        assert sim.rebuffer_count == 1
        assert sim.rebuffer_time_seconds > 0


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_stops_all_patches(self):
        lifecycle, store, player = _build(test_duration_seconds=1.0)
        lifecycle.start()
        await wait_until(lambda: lifecycle.status == SimulationStatus.RUNNING)
        await lifecycle.shutdown()
        snapshot = store.get(lifecycle.sim_id)
        assert lifecycle.timers.active == []
        assert player.destroyed is True

        player.first_frame()
        player.error()
        await asyncio.sleep(0.1)
        assert store.get(lifecycle.sim_id) == snapshot

    @pytest.mark.asyncio
    async def test_shutdown_twice_is_safe(self):
        lifecycle, _, player = _build()
        lifecycle.start()
        await lifecycle.shutdown()
        await lifecycle.shutdown()
        assert player.calls.count("destroy") == 1
