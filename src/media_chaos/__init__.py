"""media-chaos: chaos and QoE testing for media playback sessions."""

__version__ = "0.3.0"

from .exceptions import (
    ConfigError,
    MediaChaosError,
    PlayerError,
    PlayerInitError,
    PlayerLoadError,
    PlayerPlaybackError,
    PresetNotFoundError,
    SimulationNotFoundError,
)

__all__ = [
    "__version__",
    "MediaChaosError",
    "PlayerError",
    "PlayerInitError",
    "PlayerLoadError",
    "PlayerPlaybackError",
    "ConfigError",
    "PresetNotFoundError",
    "SimulationNotFoundError",
]
