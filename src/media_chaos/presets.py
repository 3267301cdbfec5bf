"""Built-in chaos presets for simulations.

A preset is picked by key when a simulation is created and never changes
afterwards. Extra presets can be declared in the config file; they are
merged over the built-ins once, at startup.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import PresetNotFoundError


class ChaosType(str, Enum):
    NONE = "none"
    FAULT_INJECTION = "fault_injection"
    SPIKEY = "spikey"


class SimulationPreset(BaseModel):
    """Immutable bundle of chaos parameters applied at creation time."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    initial_delay_ms: int = Field(default=0, ge=0)
    error_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    chaos_type: ChaosType = ChaosType.NONE

    @property
    def injects_faults(self) -> bool:
        return self.chaos_type != ChaosType.NONE and self.error_rate > 0


# ── Built-in presets ──────────────────────────────────────────────
BUILTIN_PRESETS: dict[str, SimulationPreset] = {
    "baseline": SimulationPreset(
        name="BASELINE (STABLE)",
        description="Standard load with no injected errors. System check complete.",
    ),
    "latency": SimulationPreset(
        name="LATENCY INJECT",
        description="Simulates 1 second initial network delay. High-stress pre-buffer test.",
        initial_delay_ms=1000,
    ),
    "404": SimulationPreset(
        name="NETWORK ERROR (10%)",
        description="10% chance of a segment fault during transmission.",
        error_rate=0.1,
        chaos_type=ChaosType.FAULT_INJECTION,
    ),
    "spikey": SimulationPreset(
        name="SPIKE CHAOS",
        description="Randomly injects packet drops and buffering events. High variability.",
        error_rate=0.05,
        chaos_type=ChaosType.SPIKEY,
    ),
}


class PresetTable:
    """Read-only lookup over the preset table."""

    def __init__(self, extra: Mapping[str, SimulationPreset] | None = None) -> None:
        merged = dict(BUILTIN_PRESETS)
        if extra:
            merged.update(extra)
        self._presets = merged

    def get(self, key: str) -> SimulationPreset:
        try:
            return self._presets[key]
        except KeyError:
            raise PresetNotFoundError(key, self.keys()) from None

    def keys(self) -> list[str]:
        return list(self._presets)

    def items(self) -> list[tuple[str, SimulationPreset]]:
        return list(self._presets.items())

    def __contains__(self, key: object) -> bool:
        return key in self._presets

    def __len__(self) -> int:
        return len(self._presets)
