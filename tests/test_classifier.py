from __future__ import annotations

from shinemap.config import ShineConfig
from shinemap.tracking.classifier import MotionClassifier, derive_speed, estimate_floor
from shinemap.tracking.pulse import PulseType, Sample

ANCHOR = (22.300000, 114.170000)


def _sample(t_s: float, dlat: float = 0.0, **kwargs) -> Sample:
    return Sample(lat=ANCHOR[0] + dlat, lng=ANCHOR[1], time=int(t_s * 1000), **kwargs)


def _classifier(**overrides) -> MotionClassifier:
    config = ShineConfig(stationary_radius=100.0, resting_threshold_ms=10_000)
    for key, value in overrides.items():
        setattr(config, key, value)
    return MotionClassifier(config)


def test_held_anchor_becomes_resting_after_threshold() -> None:
    clf = _classifier()
    types = {}
    for t in (0, 2, 4, 6, 8, 10, 12):
        pulse = clf.classify(_sample(t, dlat=t * 1e-6), now=t * 1000)
        assert pulse is not None
        types[t] = pulse.type

    assert all(types[t] is PulseType.PATH for t in (0, 2, 4, 6, 8))
    # Strictly greater than the threshold: exactly 10s is still a path pulse.
    assert types[10] is PulseType.PATH
    assert types[12] is PulseType.RESTING
    assert clf.anchor is not None
    assert clf.anchor.since == 0


JITTER = (0.0, 3.5e-5, -3e-5, 2e-5, -3.5e-5, 3e-5, -2e-5)  # up to ~4 m


def test_jittered_stay_rests_with_default_config() -> None:
    clf = MotionClassifier(ShineConfig())
    types = []
    for i, dlat in enumerate(JITTER):
        t = i * 2
        types.append(clf.classify(_sample(t, dlat=dlat), now=t * 1000).type)

    # Jitter reads as several m/s, which must not count as moving.
    assert clf.last_speed > ShineConfig().speed_threshold
    assert types[:6] == [PulseType.PATH] * 6
    assert types[6] is PulseType.RESTING
    assert clf.last_fix.speed is None


def test_resting_pulse_uses_resting_intensity() -> None:
    clf = _classifier()
    clf.classify(_sample(0), now=0)
    pulse = clf.classify(_sample(11), now=11_000)
    assert pulse is not None
    assert pulse.type is PulseType.RESTING
    assert pulse.intensity == 5


def test_far_sample_resets_anchor_and_elapsed_time() -> None:
    clf = _classifier()
    clf.classify(_sample(0), now=0)
    assert clf.classify(_sample(20), now=20_000).type is PulseType.RESTING

    pulse = clf.classify(_sample(22, dlat=0.00135), now=22_000)
    assert pulse is not None
    assert pulse.type is PulseType.PATH
    assert pulse.intensity == 1
    assert clf.anchor.since == 22_000
    assert abs(clf.anchor.lat - (ANCHOR[0] + 0.00135)) < 1e-12

    # Prior elapsed time is gone: 5s after the reset is not resting.
    assert clf.classify(_sample(27, dlat=0.00135), now=27_000).type is PulseType.PATH


def test_reported_speed_above_threshold_suppresses_resting() -> None:
    clf = _classifier(speed_threshold=0.5)
    clf.classify(_sample(0), now=0)
    pulse = clf.classify(_sample(15, speed=3.0), now=15_000)
    assert pulse.type is PulseType.PATH
    assert clf.last_speed == 3.0
    # Anchor is kept, so the next slow sample rests.
    assert clf.classify(_sample(16, speed=0.1), now=16_000).type is PulseType.RESTING


def test_zero_speed_threshold_disables_gate() -> None:
    clf = _classifier(speed_threshold=0.0)
    clf.classify(_sample(0), now=0)
    assert clf.classify(_sample(15, speed=30.0), now=15_000).type is PulseType.RESTING


def test_speed_is_derived_when_not_reported() -> None:
    clf = _classifier()
    clf.classify(_sample(0), now=0)
    clf.classify(_sample(10, dlat=0.0009), now=10_000)  # ~100 m in 10 s
    assert 9.0 < clf.last_speed < 11.0


def test_derived_speed_does_not_suppress_resting() -> None:
    clf = _classifier(speed_threshold=0.5)
    clf.classify(_sample(0), now=0)
    pulse = clf.classify(_sample(11, dlat=0.0008), now=11_000)  # ~89 m, still inside
    assert clf.last_speed > 0.5
    assert pulse.type is PulseType.RESTING


def test_negative_reported_speed_falls_back_to_derived() -> None:
    clf = _classifier()
    clf.classify(_sample(0), now=0)
    clf.classify(_sample(2, speed=-1.0), now=2_000)
    assert clf.last_speed == 0.0


def test_derive_speed_handles_non_increasing_time() -> None:
    a = _sample(5)
    b = _sample(5, dlat=0.001)
    assert derive_speed(None, a) == 0.0
    assert derive_speed(a, b) == 0.0


def test_floor_estimate_truncates() -> None:
    assert estimate_floor(None) == 0
    assert estimate_floor(10.0) == 3
    assert estimate_floor(-4.0) == -1
    clf = _classifier()
    assert clf.classify(_sample(0, altitude=31.0), now=0).floor == 10


def test_sample_without_coordinates_is_dropped() -> None:
    clf = _classifier()
    assert clf.classify(Sample(lat=float("nan"), lng=114.17, time=0), now=0) is None
    assert clf.anchor is None
    assert clf.last_fix is None


def test_low_accuracy_sample_is_dropped() -> None:
    clf = _classifier(max_accuracy=80.0)
    assert clf.classify(_sample(0, accuracy=120.0), now=0) is None
    assert clf.classify(_sample(1, accuracy=15.0), now=1_000) is not None
    assert clf.last_fix.accuracy == 15.0


def test_last_fix_tracks_latest_sample() -> None:
    clf = _classifier()
    clf.classify(_sample(0), now=0)
    clf.classify(_sample(3, dlat=0.0001, altitude=6.0), now=3_000)
    anchor, fix = clf.state()
    assert anchor.lat == ANCHOR[0]
    assert fix.lat == ANCHOR[0] + 0.0001
    assert fix.floor == 2
    assert fix.time == 3_000
