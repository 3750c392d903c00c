"""HTTP client for the remote shine store: config, batch upload, cell query."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import httpx

from shinemap.errors import ConfigLoadError, UploadError
from shinemap.grid.aggregator import PendingBatch

log = logging.getLogger(__name__)

CONFIG_PATH = "/api/shine-config"
PULSE_PATH = "/api/shine/pulse"
MAP_PATH = "/api/shine/map"


@dataclass
class CellSummary:
    """One aggregated cell as the store serves it back for display."""

    grid_id: str
    center: tuple[float, float]
    energy: float
    resting: int = 0
    passing: int = 0
    floors: dict[int, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict) -> CellSummary:
        center = d.get("center") or {}
        stats = d.get("stats") or {}
        return cls(
            grid_id=str(d["gridId"]),
            center=(float(center["lat"]), float(center["lng"])),
            energy=float(d.get("energy", 0.0)),
            resting=int(stats.get("resting", 0)),
            passing=int(stats.get("passing", 0)),
            floors={int(k): float(v) for k, v in (d.get("floors") or {}).items()},
        )


class RemoteStore:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_config(self) -> dict:
        """GET the tuning document. Raises ConfigLoadError."""
        try:
            response = await self._client.get(CONFIG_PATH, params={"t": int(time.time() * 1000)})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise ConfigLoadError(f"config fetch failed: {e}") from e
        except ValueError as e:
            raise ConfigLoadError("config response is not JSON") from e
        if not isinstance(payload, dict):
            raise ConfigLoadError(f"config response is {type(payload).__name__}, expected object")
        return payload

    async def upload(self, batch: PendingBatch, token: str) -> None:
        """POST one batch. Raises UploadError; never retries."""
        try:
            response = await self._client.post(
                PULSE_PATH,
                json=batch.to_payload(),
                headers={"Authorization": token},
            )
        except httpx.HTTPError as e:
            raise UploadError(f"upload failed: {e!r}") from e
        if not response.is_success:
            raise UploadError(
                f"upload rejected: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        log.debug("uploaded %d cells", len(batch))

    async def fetch_cells(
        self,
        north: float,
        south: float,
        east: float,
        west: float,
        token: str | None = None,
    ) -> list[CellSummary]:
        """Aggregated cells inside a bounding box."""
        headers = {"Authorization": token} if token else {}
        response = await self._client.get(
            MAP_PATH,
            params={"north": north, "south": south, "east": east, "west": west},
            headers=headers,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("success"):
            return []
        cells: list[CellSummary] = []
        for item in data.get("cells", []):
            try:
                cells.append(CellSummary.from_dict(item))
            except (KeyError, TypeError, ValueError):
                log.debug("malformed cell in map response")
        return cells
