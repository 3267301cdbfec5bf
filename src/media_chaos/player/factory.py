"""Player creation from config.

Supported backends:
- simulated: synthetic playback engine (no network traffic)
- http: progressive HTTP(S) download via aiohttp
"""

from __future__ import annotations

import random

from ..config import PlayerConfig
from .base import PlayerAdapter
from .http import HttpStreamPlayer
from .simulated import SimulatedPlayer


def create_player(
    config: PlayerConfig, rng: random.Random | None = None
) -> PlayerAdapter:
    """Create a fresh, unattached player instance from configuration."""
    player_type = config.type.lower()

    if player_type == "simulated":
        return SimulatedPlayer(
            startup_latency=config.startup_latency_seconds,
            ladder=config.bitrate_ladder_bps,
            tick=config.tick_seconds,
            switch_probability=config.switch_probability,
            stall_probability=config.stall_probability,
            stall_seconds=config.stall_seconds,
            rng=rng,
        )
    if player_type == "http":
        return HttpStreamPlayer(
            request_timeout=config.request_timeout_seconds,
            stall_timeout=config.stall_timeout_seconds,
            chunk_size=config.chunk_size,
            throughput_window=config.throughput_window_seconds,
        )
    raise ValueError(
        f"Unknown player type: {config.type!r}. Supported: simulated, http"
    )
