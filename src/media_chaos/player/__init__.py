"""Playback backends: simulated engine and HTTP progressive download."""

from .base import FaultCode, PlayerAdapter, PlayerListener, PlayerStats
from .factory import create_player
from .http import HttpStreamPlayer
from .simulated import SimulatedPlayer
