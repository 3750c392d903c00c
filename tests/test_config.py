from __future__ import annotations

from shinemap.config import ShineConfig, apply_overrides, apply_remote, parse_interval


def test_parse_interval_units() -> None:
    assert parse_interval("500ms") == 0.5
    assert parse_interval("10m") == 600.0
    assert parse_interval("1h") == 3600.0
    assert parse_interval("30s") == 30.0
    assert parse_interval("15") == 15.0


def test_apply_overrides_parses_flush_interval_string() -> None:
    config = ShineConfig()
    apply_overrides(config, {"flush_interval": "2m", "heartbeat_interval": "500ms"})
    assert config.flush_interval_ms == 120_000
    assert config.flush_interval == 120.0
    assert config.heartbeat_interval == 0.5


def test_apply_overrides_sets_plain_fields() -> None:
    config = ShineConfig()
    apply_overrides(config, {"stationary_radius": 50.0, "token": "abc", "unknown": 1})
    assert config.stationary_radius == 50.0
    assert config.token == "abc"
    assert not hasattr(config, "unknown")


def test_apply_remote_maps_camel_case_and_physics() -> None:
    config = ShineConfig()
    changed = apply_remote(config, {
        "restingThresholdMs": 20000,
        "stationaryRadius": 100,
        "physics": {"baseWeightResting": 8.0},
        "colorPath": {"hue": 200},
    })
    assert config.resting_threshold_ms == 20_000
    assert config.resting_intensity == 8
    assert set(changed) == {"resting_threshold_ms", "resting_intensity"}


def test_apply_remote_ignores_bad_values() -> None:
    config = ShineConfig()
    changed = apply_remote(config, {
        "stationaryRadius": "far",
        "speedThreshold": -1,
        "flushInterval": None,
        "restingThresholdMs": True,
    })
    assert changed == []
    assert config == ShineConfig(data_dir=config.data_dir)


def test_apply_remote_keeps_intensity_positive() -> None:
    config = ShineConfig()
    apply_remote(config, {"physics": {"baseWeightPassing": 0.2}})
    assert config.path_intensity == 1


def test_apply_remote_ignores_non_positive_periods() -> None:
    config = ShineConfig()
    changed = apply_remote(config, {"flushInterval": 0, "restingThresholdMs": -5_000})
    assert changed == []
    assert config.flush_interval_ms == 60_000
    assert config.resting_threshold_ms == 10_000

    assert apply_remote(config, {"flushInterval": 30_000}) == ["flush_interval_ms"]
    assert config.flush_interval == 30.0
