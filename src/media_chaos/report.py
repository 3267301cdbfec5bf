"""Human-readable formatting and run summaries."""

from __future__ import annotations

from collections.abc import Iterable

from .models import Simulation


def format_duration(ms: float | None) -> str:
    """Milliseconds as MM:SS, or 'N/A' when unknown."""
    if ms is None:
        return "N/A"
    total_seconds = int(ms // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def format_bytes(num_bytes: int | float) -> str:
    if num_bytes <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB")
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{value:.2f} {units[unit]}"


def format_bitrate(bps: int | float) -> str:
    return f"{bps / 1_000_000:.2f} Mbps"


def average_bitrate(sim: Simulation) -> float:
    """Time-weighted mean over the recorded ladder segments."""
    total = sum(s.duration_seconds for s in sim.bitrate_segments)
    if total <= 0:
        return 0.0
    weighted = sum(s.bitrate_bps * s.duration_seconds for s in sim.bitrate_segments)
    return weighted / total


def summarize(sim: Simulation) -> dict:
    """Flat dict of one simulation's QoE results (JSON-friendly)."""
    return {
        "id": sim.id,
        "name": sim.name,
        "preset": sim.preset,
        "status": sim.status.value,
        "pinned": sim.pinned,
        "source_url": sim.source_url,
        "time_to_first_frame_ms": sim.time_to_first_frame_ms,
        "rebuffer_count": sim.rebuffer_count,
        "rebuffer_time_seconds": round(sim.rebuffer_time_seconds, 3),
        "fault_count": sim.fault_count,
        "fault_codes": list(sim.fault_codes),
        "progress_percent": sim.progress_percent,
        "bytes_observed": sim.bytes_observed,
        "bitrate_switches": max(len(sim.bitrate_segments) - 1, 0),
        "average_bitrate_bps": round(average_bitrate(sim)),
        "started_at": sim.started_at.isoformat() if sim.started_at else None,
        "ended_at": sim.ended_at.isoformat() if sim.ended_at else None,
    }


_COLUMNS = ("ID", "NAME", "STATUS", "TTFF", "REBUF", "FAULTS", "PROGRESS", "BYTES")


def _row(sim: Simulation) -> tuple[str, ...]:
    ttff = (
        f"{sim.time_to_first_frame_ms:.0f}ms"
        if sim.time_to_first_frame_ms is not None
        else "N/A"
    )
    return (
        sim.id,
        sim.name,
        sim.status.value.upper(),
        ttff,
        f"{sim.rebuffer_count} ({sim.rebuffer_time_seconds:.1f}s)",
        str(sim.fault_count),
        f"{sim.progress_percent:.0f}%",
        format_bytes(sim.bytes_observed),
    )


def render_table(sims: Iterable[Simulation]) -> str:
    """Plain-text table for terminal output."""
    rows = [_COLUMNS] + [_row(s) for s in sims]
    widths = [max(len(r[i]) for r in rows) for i in range(len(_COLUMNS))]
    lines = ["  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip() for row in rows]
    lines.insert(1, "  ".join("-" * w for w in widths))
    return "\n".join(lines)
