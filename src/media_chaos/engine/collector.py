"""Metrics collector: derives QoE fields from raw player signals.

The player only knows "current estimated bitrate" and "bytes so far". The
collector keeps the clocks needed to turn those, plus the first-frame and
buffering notifications, into TTFF, rebuffer totals and bitrate-ladder
segments. It never writes to the store itself; it hands back patches.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from ..models import BitrateSegment, Simulation
from ..player.base import PlayerStats
from ..store import PatchFn


class MetricsCollector:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._test_started: float | None = None
        self._ttff_recorded = False
        self._stall_started: float | None = None
        self._bitrate = 0
        self._segment_started: float | None = None

    # ── Time to first frame ─────────────────────────────

    def start_test_clock(self) -> None:
        self._test_started = self._clock()

    def time_to_first_frame_ms(self) -> float | None:
        """Elapsed ms since the test clock started; only ever returned once."""
        if self._ttff_recorded or self._test_started is None:
            return None
        self._ttff_recorded = True
        return round((self._clock() - self._test_started) * 1000, 2)

    # ── Rebuffering ─────────────────────────────────────

    @property
    def stalled(self) -> bool:
        return self._stall_started is not None

    def buffering_started(self) -> PatchFn | None:
        """Open a stall. Returns the count patch, or None if one is already open."""
        if self._stall_started is not None:
            return None
        self._stall_started = self._clock()
        return lambda sim: {"rebuffer_count": sim.rebuffer_count + 1}

    def buffering_ended(self) -> PatchFn | None:
        """Close the open stall and return the time patch (None if none open)."""
        if self._stall_started is None:
            return None
        elapsed = self._clock() - self._stall_started
        self._stall_started = None
        return lambda sim: {"rebuffer_time_seconds": sim.rebuffer_time_seconds + elapsed}

    # ── Bitrate ladder / throughput ─────────────────────

    @property
    def current_bitrate(self) -> int:
        return self._bitrate

    def observe_bitrate(self, bitrate_bps: int) -> BitrateSegment | None:
        """Record one bitrate poll; return the segment it closed, if any.

        Zero means "no estimate yet" and is ignored. The first nonzero value
        opens a segment without closing anything.
        """
        if bitrate_bps <= 0:
            return None
        now = self._clock()
        if self._bitrate == 0 or self._segment_started is None:
            self._bitrate = bitrate_bps
            self._segment_started = now
            return None
        if bitrate_bps == self._bitrate:
            return None

        closed = BitrateSegment(
            bitrate_bps=self._bitrate,
            duration_seconds=round(now - self._segment_started, 3),
        )
        self._bitrate = bitrate_bps
        self._segment_started = now
        return closed

    def stats_patch(self, stats: PlayerStats) -> PatchFn:
        """Patch for one stats poll: byte snapshot plus any closed segment."""
        closed = self.observe_bitrate(stats.estimated_bitrate_bps)

        def patch(sim: Simulation) -> dict:
            update: dict = {"bytes_observed": stats.cumulative_bytes}
            if closed is not None:
                update["bitrate_segments"] = [*sim.bitrate_segments, closed]
            return update

        return patch

    def flush(self) -> BitrateSegment | None:
        """Close the open segment at the end of a run."""
        if self._bitrate == 0 or self._segment_started is None:
            return None
        segment = BitrateSegment(
            bitrate_bps=self._bitrate,
            duration_seconds=round(self._clock() - self._segment_started, 3),
        )
        self._bitrate = 0
        self._segment_started = None
        return segment
