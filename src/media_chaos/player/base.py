"""Playback adapter abstraction: PlayerStats, listener hooks and PlayerAdapter ABC.

The lifecycle engine never looks inside the playback engine. It only needs
to attach it, load a source, start/stop playback, read a stats snapshot and
receive four kinds of notification (first frame, buffering start/end, error).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum

logger = logging.getLogger("media-chaos")


class FaultCode(IntEnum):
    """Integer fault codes recorded in ``Simulation.fault_codes``."""

    INIT_FAILED = 999
    BAD_HTTP_STATUS = 1001
    HTTP_ERROR = 1002
    TIMEOUT = 1003
    MALFORMED_SOURCE = 1004
    PLAYBACK_ERROR = 3016


@dataclass(frozen=True)
class PlayerStats:
    """Snapshot returned by ``PlayerAdapter.get_stats()``."""

    estimated_bitrate_bps: int = 0
    cumulative_bytes: int = 0


class PlayerListener:
    """Receiver for adapter notifications. Default hooks ignore everything."""

    def on_first_frame(self) -> None:
        pass

    def on_buffering_start(self) -> None:
        pass

    def on_buffering_end(self) -> None:
        pass

    def on_error(self, code: int, message: str) -> None:
        pass


class PlayerAdapter(ABC):
    """Abstract interface for all playback backends."""

    def __init__(self) -> None:
        self._listener: PlayerListener = PlayerListener()

    def bind(self, listener: PlayerListener) -> None:
        """Route notifications to ``listener`` (replaces any previous one)."""
        self._listener = listener

    def unbind(self) -> None:
        self._listener = PlayerListener()

    # ── Notification helpers for subclasses ───────────────────

    def _emit_first_frame(self) -> None:
        self._safe_emit("on_first_frame")

    def _emit_buffering_start(self) -> None:
        self._safe_emit("on_buffering_start")

    def _emit_buffering_end(self) -> None:
        self._safe_emit("on_buffering_end")

    def _emit_error(self, code: int, message: str) -> None:
        self._safe_emit("on_error", int(code), message)

    def _safe_emit(self, hook: str, *args: object) -> None:
        try:
            getattr(self._listener, hook)(*args)
        except Exception:
            logger.exception("Player listener hook %s failed", hook)

    # ── Contract ──────────────────────────────────────────────

    @abstractmethod
    async def attach(self, target: str) -> None: ...

    @abstractmethod
    async def load(self, source_url: str) -> None: ...

    @abstractmethod
    async def play(self) -> None: ...

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def destroy(self) -> None: ...

    @abstractmethod
    def get_stats(self) -> PlayerStats: ...

    @property
    @abstractmethod
    def is_paused(self) -> bool: ...

    @property
    @abstractmethod
    def source_url(self) -> str: ...
