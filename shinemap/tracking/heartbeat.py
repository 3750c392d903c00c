"""Synthetic resting pulses while the device is held still but silent.

Location providers often stop reporting while the holder is stationary. The
heartbeat keeps a held anchor accumulating energy between samples.
"""

from __future__ import annotations

import logging

from shinemap.config import ShineConfig
from shinemap.grid.aggregator import GridAggregator
from shinemap.tracking.classifier import LastFix, MotionClassifier, moving_fast
from shinemap.tracking.pulse import Pulse, PulseType, StationaryAnchor

log = logging.getLogger(__name__)


def heartbeat_pulse(
    anchor: StationaryAnchor | None,
    last_fix: LastFix | None,
    now: int,
    config: ShineConfig,
) -> Pulse | None:
    """Resting pulse at the last known position, or None if the anchor is not ripe."""
    if anchor is None or last_fix is None:
        return None
    if last_fix.accuracy is not None and last_fix.accuracy > config.max_accuracy:
        return None
    if now - anchor.since <= config.resting_threshold_ms:
        return None
    if moving_fast(last_fix.speed, config):
        return None
    return Pulse(
        lat=last_fix.lat,
        lng=last_fix.lng,
        type=PulseType.RESTING,
        intensity=config.resting_intensity,
        floor=last_fix.floor,
    )


class Heartbeat:
    def __init__(
        self,
        classifier: MotionClassifier,
        aggregator: GridAggregator,
        config: ShineConfig,
    ) -> None:
        self._classifier = classifier
        self._aggregator = aggregator
        self._config = config
        self.beats = 0

    def tick(self, now: int) -> Pulse | None:
        anchor, last_fix = self._classifier.state()
        pulse = heartbeat_pulse(anchor, last_fix, now, self._config)
        if pulse is None:
            return None
        self._aggregator.merge(pulse)
        self.beats += 1
        return pulse
