"""Stationary-anchor state machine: raw samples in, classified pulses out."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from shinemap.config import ShineConfig
from shinemap.geo import haversine_m
from shinemap.tracking.pulse import Pulse, PulseType, Sample, StationaryAnchor

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LastFix:
    """Most recent accepted position, used by the heartbeat."""

    lat: float
    lng: float
    floor: int
    time: int
    accuracy: float | None = None
    speed: float | None = None  # as reported by the device


def estimate_floor(altitude: float | None, metres_per_floor: float = 3.0) -> int:
    if altitude is None or metres_per_floor <= 0:
        return 0
    return int(altitude / metres_per_floor)


def moving_fast(reported_speed: float | None, config: ShineConfig) -> bool:
    """True when a device-reported speed is over the gate. Unreported never is."""
    if reported_speed is None or config.speed_threshold <= 0:
        return False
    return reported_speed > config.speed_threshold


def derive_speed(prev: Sample | None, cur: Sample) -> float:
    """Speed in m/s between two consecutive samples, 0 when undefined."""
    if prev is None:
        return 0.0
    dt = (cur.time - prev.time) / 1000.0
    if dt <= 0:
        return 0.0
    return haversine_m(prev.lat, prev.lng, cur.lat, cur.lng) / dt


class MotionClassifier:
    """Holds one stationary anchor and turns each sample into a pulse.

    A sample outside ``stationary_radius`` of the anchor (or the first sample of
    a session) replaces the anchor and is a ``path`` pulse. A sample inside the
    radius is ``resting`` once the anchor has been held for longer than
    ``resting_threshold_ms``, unless the device reports a speed above
    ``speed_threshold``. Derived speed is display only: GPS jitter on a still
    device easily reads as walking pace.
    """

    def __init__(self, config: ShineConfig) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._anchor: StationaryAnchor | None = None
        self._prev: Sample | None = None
        self._last_fix: LastFix | None = None
        self.last_speed = 0.0

    @property
    def anchor(self) -> StationaryAnchor | None:
        return self._anchor

    @property
    def last_fix(self) -> LastFix | None:
        return self._last_fix

    def state(self) -> tuple[StationaryAnchor | None, LastFix | None]:
        """Consistent (anchor, last fix) pair."""
        with self._lock:
            return self._anchor, self._last_fix

    def reset(self) -> None:
        with self._lock:
            self._anchor = None
            self._prev = None
            self._last_fix = None
            self.last_speed = 0.0

    def classify(self, sample: Sample, now: int) -> Pulse | None:
        """Classify one sample at wall time ``now`` (epoch ms).

        Returns None when the sample is unusable (no coordinates, or a fix
        coarser than ``max_accuracy``).
        """
        if not sample.has_position():
            log.debug("dropping sample without coordinates")
            return None
        cfg = self._config
        if sample.accuracy is not None and sample.accuracy > cfg.max_accuracy:
            log.debug("dropping low accuracy sample (%.0fm)", sample.accuracy)
            return None

        floor = estimate_floor(sample.altitude, cfg.metres_per_floor)

        with self._lock:
            reported = sample.speed if sample.speed is not None and sample.speed >= 0 else None
            if reported is not None:
                self.last_speed = reported
            else:
                self.last_speed = derive_speed(self._prev, sample)

            anchor = self._anchor
            pulse_type = PulseType.PATH
            if anchor is None or haversine_m(
                anchor.lat, anchor.lng, sample.lat, sample.lng
            ) >= cfg.stationary_radius:
                self._anchor = StationaryAnchor(lat=sample.lat, lng=sample.lng, since=now)
                if anchor is not None:
                    log.debug("anchor moved to %.6f,%.6f", sample.lat, sample.lng)
            elif now - anchor.since > cfg.resting_threshold_ms:
                if moving_fast(reported, cfg):
                    log.debug("resting suppressed at %.2f m/s", reported)
                else:
                    pulse_type = PulseType.RESTING

            self._prev = sample
            self._last_fix = LastFix(
                lat=sample.lat,
                lng=sample.lng,
                floor=floor,
                time=now,
                accuracy=sample.accuracy,
                speed=reported,
            )

        intensity = cfg.resting_intensity if pulse_type is PulseType.RESTING else cfg.path_intensity
        return Pulse(
            lat=sample.lat,
            lng=sample.lng,
            type=pulse_type,
            intensity=intensity,
            floor=floor,
        )
