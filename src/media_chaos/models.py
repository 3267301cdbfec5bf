"""Pydantic models for simulations, bitrate segments and client metadata."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SimulationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SimulationStatus.COMPLETED, SimulationStatus.FAILED)


# Allowed forward moves; terminal states have none.
_TRANSITIONS: dict[SimulationStatus, frozenset[SimulationStatus]] = {
    SimulationStatus.PENDING: frozenset(
        {SimulationStatus.RUNNING, SimulationStatus.FAILED}
    ),
    SimulationStatus.RUNNING: frozenset(
        {SimulationStatus.COMPLETED, SimulationStatus.FAILED}
    ),
    SimulationStatus.COMPLETED: frozenset(),
    SimulationStatus.FAILED: frozenset(),
}


def can_transition(current: SimulationStatus, target: SimulationStatus) -> bool:
    return target in _TRANSITIONS[current]


def new_simulation_id() -> str:
    return f"sim_{uuid.uuid4().hex[:8]}"


class BitrateSegment(BaseModel):
    bitrate_bps: int
    duration_seconds: float


class Simulation(BaseModel):
    """One playback session under test. Mutated only through SimulationStore."""

    id: str = Field(default_factory=new_simulation_id)
    name: str
    source_url: str
    preset: str  # Key into the preset table
    status: SimulationStatus = SimulationStatus.PENDING
    pinned: bool = False  # Presentation flag, never read by the engine
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    time_to_first_frame_ms: float | None = None
    rebuffer_count: int = 0
    rebuffer_time_seconds: float = 0.0
    fault_count: int = 0
    fault_codes: list[int] = Field(default_factory=list)
    progress_percent: float = 0.0
    bytes_observed: int = 0
    bitrate_segments: list[BitrateSegment] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ClientInfo(BaseModel):
    """Network identity of the machine running the tests (display only)."""

    ip: str = "Unknown"
    city: str = "Unknown"
    region: str = "Unknown"
    country: str = "Unknown"
    org: str = "Unknown ISP"

    @classmethod
    def unknown(cls) -> ClientInfo:
        return cls()
