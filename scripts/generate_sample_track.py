"""Write a synthetic JSON-lines track: walk, linger, walk, linger.

Usage: python scripts/generate_sample_track.py out.jsonl [--seed 7]
Replay it with: shinemap out.jsonl --realtime --ui
"""

from __future__ import annotations

import argparse
import math
import random
import time
from pathlib import Path

from shinemap.protocol import encode

_WALK_SPEED = 1.4  # m/s
_METRES_PER_DEG = 111_195.0


def generate_track(
    *,
    seed: int,
    start_ms: int,
    origin: tuple[float, float] = (22.3, 114.17),
    legs: int = 4,
) -> list[dict]:
    """Alternate walking legs and stays, with GPS jitter and sparse stays."""
    rng = random.Random(seed)
    lat, lng = origin
    t = start_ms
    out: list[dict] = []

    for leg in range(legs):
        if leg % 2 == 0:
            heading = rng.uniform(0, 2 * math.pi)
            for _ in range(rng.randint(20, 40)):
                step = _WALK_SPEED * 2.0
                lat += step * math.cos(heading) / _METRES_PER_DEG
                lng += step * math.sin(heading) / (_METRES_PER_DEG * math.cos(math.radians(lat)))
                t += 2000
                out.append(_point(rng, lat, lng, t, speed=_WALK_SPEED))
        else:
            # Stationary providers report rarely; the gaps are the point.
            for _ in range(rng.randint(4, 8)):
                t += int(rng.uniform(5_000, 25_000))
                out.append(_point(rng, lat, lng, t, speed=None, jitter_m=8.0))
    return out


def _point(
    rng: random.Random,
    lat: float,
    lng: float,
    t: int,
    speed: float | None,
    jitter_m: float = 3.0,
) -> dict:
    jlat = rng.gauss(0, jitter_m) / _METRES_PER_DEG
    jlng = rng.gauss(0, jitter_m) / _METRES_PER_DEG
    point = {
        "lat": round(lat + jlat, 7),
        "lng": round(lng + jlng, 7),
        "time": t,
        "altitude": round(rng.uniform(4.0, 40.0), 1),
        "accuracy": rng.choice([5.0, 8.0, 12.0, 20.0, 35.0, 120.0]),
    }
    if speed is not None:
        point["speed"] = speed
    return point


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic sample track")
    parser.add_argument("out", type=Path)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--legs", type=int, default=4)
    args = parser.parse_args()

    points = generate_track(seed=args.seed, start_ms=int(time.time() * 1000), legs=args.legs)
    args.out.write_bytes(b"".join(encode(p) for p in points))
    print(f"wrote {len(points)} samples to {args.out}")


if __name__ == "__main__":
    main()
