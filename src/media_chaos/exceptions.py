"""Custom exception hierarchy for media-chaos.

All media-chaos exceptions inherit from MediaChaosError, allowing users
to catch broad or specific errors:

    try:
        await player.load("https://example.com/stream.m3u8")
    except PlayerLoadError as e:
        print(f"Source problem ({e.code}): {e}")
    except MediaChaosError as e:
        print(f"media-chaos error: {e}")

Player errors never cross the lifecycle engine boundary: the engine turns
them into counted faults (code + message) on the simulation record.
"""

from __future__ import annotations


class MediaChaosError(Exception):
    """Base exception for all media-chaos errors."""


class PlayerError(MediaChaosError):
    """Raised when a playback adapter operation fails."""

    def __init__(self, message: str = "", code: int = 0) -> None:
        super().__init__(message)
        self.code = code


class PlayerInitError(PlayerError):
    """Raised when the playback engine cannot be initialised at all."""


class PlayerLoadError(PlayerError):
    """Raised when a source is malformed or unreachable."""


class PlayerPlaybackError(PlayerError):
    """Raised when a play/resume request is rejected."""


class ConfigError(MediaChaosError):
    """Raised when configuration is invalid or missing."""


class PresetNotFoundError(ConfigError):
    """Raised when a preset key does not resolve in the preset table."""

    def __init__(self, key: str, available: list[str] | None = None) -> None:
        known = ", ".join(available or [])
        super().__init__(f"Unknown preset: {key!r}. Available: {known}")
        self.key = key


class SimulationNotFoundError(MediaChaosError):
    """Raised when a simulation id is not present in the store."""
