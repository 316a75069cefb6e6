"""
Geometry helper tests.
"""

import math
import pytest

from backend.app.domain.tracking.geometry import (
    INSTANT_JUMP_SPEED_KMH,
    bearing_degrees,
    bounding_box,
    haversine_meters,
    implied_speed_kmh,
    mps_to_kmh,
)


def test_haversine_zero_distance():
    assert haversine_meters(41.3111, 69.2797, 41.3111, 69.2797) == 0


def test_haversine_one_degree_of_latitude():
    # One degree along a meridian is ~111.19 km on a 6371 km sphere
    distance = haversine_meters(0.0, 0.0, 1.0, 0.0)
    assert distance == pytest.approx(111195, rel=1e-3)


def test_haversine_is_symmetric():
    a = haversine_meters(41.3111, 69.2797, 41.3200, 69.2900)
    b = haversine_meters(41.3200, 69.2900, 41.3111, 69.2797)
    assert a == pytest.approx(b)


def test_bearing_cardinal_directions():
    assert bearing_degrees(0, 0, 1, 0) == pytest.approx(0.0)
    assert bearing_degrees(0, 0, 0, 1) == pytest.approx(90.0)
    assert bearing_degrees(0, 0, -1, 0) == pytest.approx(180.0)
    assert bearing_degrees(0, 0, 0, -1) == pytest.approx(270.0)


def test_implied_speed():
    # 1 km in 60 s
    assert implied_speed_kmh(1000, 60) == pytest.approx(60.0)


@pytest.mark.parametrize("elapsed", [0, -5])
def test_implied_speed_without_elapsed_time(elapsed):
    assert implied_speed_kmh(1500, elapsed) == INSTANT_JUMP_SPEED_KMH


def test_mps_to_kmh():
    assert mps_to_kmh(10) == pytest.approx(36.0)


def test_bounding_box_widens_with_latitude():
    min_lat, max_lat, min_lon, max_lon = bounding_box(0.0, 0.0, 2.0)
    equator_lon_span = max_lon - min_lon

    min_lat_n, max_lat_n, min_lon_n, max_lon_n = bounding_box(60.0, 0.0, 2.0)

    assert max_lat - min_lat == pytest.approx(max_lat_n - min_lat_n)
    assert max_lon_n - min_lon_n == pytest.approx(equator_lon_span / math.cos(math.radians(60)))


def test_bounding_box_contains_radius():
    lat, lon = 41.3111, 69.2797
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, 2.0)

    # Points 2 km away along each axis fall inside the box
    assert haversine_meters(lat, lon, max_lat, lon) >= 2000 * 0.99
    assert haversine_meters(lat, lon, lat, max_lon) >= 2000 * 0.99
    assert min_lat < lat < max_lat
    assert min_lon < lon < max_lon


def test_bounding_box_at_pole():
    _, _, min_lon, max_lon = bounding_box(90.0, 10.0, 2.0)
    assert (min_lon, max_lon) == (-170.0, 190.0)
