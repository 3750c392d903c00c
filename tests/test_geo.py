from __future__ import annotations

from shinemap.geo import cell_center, grid_id, haversine_m, quantize


def test_grid_id_matches_for_same_quantized_pair() -> None:
    assert grid_id(22.300001, 114.170001) == grid_id(22.300049, 114.169951)
    assert grid_id(22.3, 114.17) == "223000_1141700"


def test_grid_id_splits_across_cell_boundary() -> None:
    assert grid_id(22.30004, 114.17) != grid_id(22.30006, 114.17)


def test_quantize_rounds_half_up() -> None:
    assert quantize(2.5, -2.5, scale=1) == (3, -2)
    assert quantize(-22.30001, -114.17004) == (-223000, -1141700)


def test_cell_center_inverts_grid_id() -> None:
    lat, lng = cell_center(grid_id(-33.86783, 151.20732))
    assert grid_id(lat, lng) == grid_id(-33.86783, 151.20732)
    assert abs(lat + 33.8678) < 1e-9


def test_haversine_of_known_offset() -> None:
    # 0.00135 degrees of latitude is ~150 m.
    d = haversine_m(22.3, 114.17, 22.30135, 114.17)
    assert 145.0 < d < 155.0
    assert haversine_m(22.3, 114.17, 22.3, 114.17) == 0.0
