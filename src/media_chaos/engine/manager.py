"""Simulation manager: creation flow, removal and shutdown.

Owns the store, the preset table and one SimulationLifecycle per record.
The manager is the only place that pairs a record with a player instance.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Iterable

from ..config import MediaChaosConfig
from ..exceptions import SimulationNotFoundError
from ..models import Simulation
from ..player.base import PlayerAdapter
from ..player.factory import create_player
from ..presets import PresetTable
from ..store import SimulationStore
from .lifecycle import SimulationLifecycle

logger = logging.getLogger("media-chaos")

PlayerFactory = Callable[[random.Random], PlayerAdapter]


class SimulationManager:
    def __init__(
        self,
        config: MediaChaosConfig | None = None,
        *,
        store: SimulationStore | None = None,
        presets: PresetTable | None = None,
        player_factory: PlayerFactory | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or MediaChaosConfig()
        self.store = store or SimulationStore()
        self.presets = presets or PresetTable(self.config.presets)
        self._player_factory = player_factory or (
            lambda r: create_player(self.config.player, rng=r)
        )
        self._rng = rng or random.Random()
        self._lifecycles: dict[str, SimulationLifecycle] = {}

    def create(
        self,
        source_url: str,
        preset_key: str,
        display_name: str | None = None,
        *,
        pinned: bool = False,
    ) -> Simulation:
        """Store a pending simulation and start its lifecycle.

        Must be called with a running event loop.

        Raises:
            ValueError: empty source URL.
            PresetNotFoundError: preset key not in the table.
        """
        source_url = (source_url or "").strip()
        if not source_url:
            raise ValueError("source_url must not be empty")
        preset = self.presets.get(preset_key)

        record = self.store.create(
            Simulation(
                name=(display_name or "").strip() or f"{preset.name} TEST",
                source_url=source_url,
                preset=preset_key,
                pinned=pinned,
            )
        )

        sim_rng = random.Random(self._rng.getrandbits(64))
        player = self._player_factory(random.Random(sim_rng.getrandbits(64)))
        lifecycle = SimulationLifecycle(
            record, self.store, player, preset, self.config.engine, rng=sim_rng
        )
        self._lifecycles[record.id] = lifecycle
        logger.info(
            f"[{lifecycle.label}] Created with preset '{preset_key}' for {source_url}"
        )
        lifecycle.start()
        return self.store.get(record.id) or record

    async def remove(self, sim_id: str) -> bool:
        """Cancel timers, release the player and drop the record. Idempotent."""
        lifecycle = self._lifecycles.pop(sim_id, None)
        if lifecycle is not None:
            await lifecycle.shutdown()
        removed = self.store.remove(sim_id)
        if removed:
            logger.info(f"[{sim_id}] Removed")
        return removed

    def set_pinned(self, sim_id: str, pinned: bool) -> Simulation:
        updated = self.store.apply_patch(sim_id, {"pinned": pinned})
        if updated is None:
            raise SimulationNotFoundError(f"Simulation not found: {sim_id}")
        return updated

    def get(self, sim_id: str) -> Simulation:
        sim = self.store.get(sim_id)
        if sim is None:
            raise SimulationNotFoundError(f"Simulation not found: {sim_id}")
        return sim

    def list(self, pinned: bool | None = None) -> list[Simulation]:
        sims = self.store.list()
        if pinned is None:
            return sims
        return [s for s in sims if s.pinned == pinned]

    def lifecycle(self, sim_id: str) -> SimulationLifecycle | None:
        return self._lifecycles.get(sim_id)

    async def wait(
        self, ids: Iterable[str] | None = None, timeout: float | None = None
    ) -> bool:
        """Wait until the given simulations (default: all) are terminal.

        Returns False if the timeout elapsed first.
        """
        targets = list(ids) if ids is not None else list(self._lifecycles)
        events = [
            self._lifecycles[i].finished.wait()
            for i in targets
            if i in self._lifecycles
        ]
        if not events:
            return True
        try:
            async with asyncio.timeout(timeout):
                await asyncio.gather(*events)
        except TimeoutError:
            return False
        return True

    async def shutdown(self) -> None:
        """Stop every lifecycle. Records stay in the store."""
        lifecycles, self._lifecycles = list(self._lifecycles.values()), {}
        for lifecycle in lifecycles:
            await lifecycle.shutdown()
        if lifecycles:
            logger.info(f"Stopped {len(lifecycles)} simulation(s)")
