"""In-memory simulation store: the single source of truth for records.

Every component that changes a simulation computes a delta and hands it to
``apply_patch``. A patch is either a literal mapping of field -> value or a
pure function of the current record returning such a mapping. The merge
runs synchronously on the event loop, so a patch computed from the current
record can never lose an update to another callback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Union

from .models import Simulation

logger = logging.getLogger("media-chaos")

PatchFn = Callable[[Simulation], Union[Mapping[str, Any], None]]
Patch = Union[Mapping[str, Any], PatchFn]


class SimulationStore:
    """Holds simulation id -> record. No decision logic lives here."""

    def __init__(self) -> None:
        self._records: dict[str, Simulation] = {}

    def create(self, record: Simulation) -> Simulation:
        if record.id in self._records:
            raise ValueError(f"Simulation {record.id!r} already exists")
        self._records[record.id] = record.model_copy(deep=True)
        return self.get(record.id)  # type: ignore[return-value]

    def apply_patch(self, sim_id: str, patch: Patch) -> Simulation | None:
        """Merge ``patch`` into the record and return the new snapshot.

        Returns None (and changes nothing) when the id is unknown, e.g. a
        late callback for a simulation that was already removed.
        """
        current = self._records.get(sim_id)
        if current is None:
            logger.debug(f"Patch for unknown simulation {sim_id} ignored")
            return None

        update = patch(current) if callable(patch) else patch
        if not update:
            return current.model_copy(deep=True)

        unknown = set(update) - set(Simulation.model_fields)
        if unknown:
            raise ValueError(f"Unknown simulation fields: {sorted(unknown)}")
        if update.get("id", sim_id) != sim_id:
            raise ValueError("Simulation id is immutable")

        updated = current.model_copy(update=dict(update))
        self._records[sim_id] = updated
        return updated.model_copy(deep=True)

    def remove(self, sim_id: str) -> bool:
        """Drop a record. Removing an unknown id is a no-op."""
        return self._records.pop(sim_id, None) is not None

    def get(self, sim_id: str) -> Simulation | None:
        record = self._records.get(sim_id)
        return record.model_copy(deep=True) if record is not None else None

    def list(self) -> list[Simulation]:
        return [r.model_copy(deep=True) for r in self._records.values()]

    def __contains__(self, sim_id: object) -> bool:
        return sim_id in self._records

    def __len__(self) -> int:
        return len(self._records)
