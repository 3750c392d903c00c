"""In-memory per-cell energy table shared by the producers and the uploader."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace

from shinemap.geo import GRID_SCALE, grid_id
from shinemap.tracking.pulse import Pulse, PulseType


@dataclass
class GridCell:
    grid_id: str
    lat: float  # of the pulse that created the cell
    lng: float
    type: PulseType
    intensity: int
    floor: int = 0

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "type": self.type.value,
            "intensity": self.intensity,
            "floor": self.floor,
        }


@dataclass
class PendingBatch:
    """Cells drained at one flush, in first-touched order."""

    cells: list[GridCell] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cells)

    @property
    def total_intensity(self) -> int:
        return sum(cell.intensity for cell in self.cells)

    def to_payload(self) -> dict:
        return {"pulses": [cell.to_dict() for cell in self.cells]}


class GridAggregator:
    """Merges pulses into cells keyed by quantized coordinates.

    Merge rule for an existing cell: intensities add up, ``resting`` wins over
    ``path`` and is never downgraded, the floor follows the latest pulse.
    """

    def __init__(self, scale: int = GRID_SCALE) -> None:
        self._scale = scale
        self._cells: dict[str, GridCell] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cells)

    def is_empty(self) -> bool:
        return len(self) == 0

    def cell_id(self, lat: float, lng: float) -> str:
        return grid_id(lat, lng, self._scale)

    def merge(self, pulse: Pulse) -> GridCell:
        """Fold a pulse into its cell. Returns a copy of the updated cell."""
        key = grid_id(pulse.lat, pulse.lng, self._scale)
        with self._lock:
            cell = self._cells.get(key)
            if cell is None:
                cell = GridCell(
                    grid_id=key,
                    lat=pulse.lat,
                    lng=pulse.lng,
                    type=pulse.type,
                    intensity=pulse.intensity,
                    floor=pulse.floor,
                )
                self._cells[key] = cell
            else:
                cell.intensity += pulse.intensity
                if pulse.type is PulseType.RESTING:
                    cell.type = PulseType.RESTING
                cell.floor = pulse.floor
            return replace(cell)

    def get(self, key: str) -> GridCell | None:
        with self._lock:
            cell = self._cells.get(key)
            return replace(cell) if cell is not None else None

    def snapshot(self) -> list[GridCell]:
        """Copies of the current cells; the table is left untouched."""
        with self._lock:
            return [replace(cell) for cell in self._cells.values()]

    def drain(self) -> PendingBatch:
        """Take every cell and clear the table in one step."""
        with self._lock:
            cells = list(self._cells.values())
            self._cells = {}
        return PendingBatch(cells=cells)
