"""Great-circle distance and grid quantization."""

from __future__ import annotations

import math

EARTH_RADIUS_M = 6_371_000.0

# 1e-4 degrees is ~11 m of latitude, and a little less of longitude away
# from the equator.
GRID_SCALE = 10_000


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in metres between two lat/lng points on a spherical Earth."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; cells must not flip on .5 parity.
    return math.floor(value + 0.5)


def quantize(lat: float, lng: float, scale: int = GRID_SCALE) -> tuple[int, int]:
    return _round_half_up(lat * scale), _round_half_up(lng * scale)


def grid_id(lat: float, lng: float, scale: int = GRID_SCALE) -> str:
    """Stable cell key for a coordinate, e.g. ``"223000_1141700"``."""
    lat_key, lng_key = quantize(lat, lng, scale)
    return f"{lat_key}_{lng_key}"


def cell_center(cell_id: str, scale: int = GRID_SCALE) -> tuple[float, float]:
    """Inverse of :func:`grid_id`: the coordinate the cell is centred on."""
    lat_key, _, lng_key = cell_id.partition("_")
    return int(lat_key) / scale, int(lng_key) / scale
