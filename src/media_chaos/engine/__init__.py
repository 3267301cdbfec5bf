"""Simulation engine: per-simulation lifecycle, metrics and chaos."""

from .chaos import ChaosInjector
from .collector import MetricsCollector
from .lifecycle import SimulationLifecycle
from .manager import SimulationManager
from .timers import TimerSet

__all__ = [
    "ChaosInjector",
    "MetricsCollector",
    "SimulationLifecycle",
    "SimulationManager",
    "TimerSet",
]
