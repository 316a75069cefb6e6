"""
Spherical geometry helpers for GPS tracking.

Pure functions on WGS84 degree coordinates.
"""

import math
from typing import Tuple

# Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0

# Length of one degree of latitude in kilometers
KM_PER_DEGREE = 111.32

# Implied speed reported when two points share a timestamp (or arrive out of order)
INSTANT_JUMP_SPEED_KMH = 999.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2, in degrees [0, 360)."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    x = math.sin(dlon) * math.cos(lat2_rad)
    y = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)

    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def implied_speed_kmh(distance_meters: float, elapsed_seconds: float) -> float:
    """Speed needed to cover ``distance_meters`` in ``elapsed_seconds``."""
    if elapsed_seconds <= 0:
        return INSTANT_JUMP_SPEED_KMH
    return (distance_meters / 1000.0) / (elapsed_seconds / 3600.0)


def mps_to_kmh(speed_mps: float) -> float:
    return speed_mps * 3.6


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Latitude-adjusted box around a point.

    The longitude span widens with latitude so the box covers at least
    ``radius_km`` in every direction.

    Returns:
        (min_lat, max_lat, min_lon, max_lon)
    """
    lat_delta = radius_km / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    # Near the poles every longitude is within reach
    if cos_lat < 1e-6:
        lon_delta = 180.0
    else:
        lon_delta = radius_km / (KM_PER_DEGREE * cos_lat)

    return (lat - lat_delta, lat + lat_delta, lon - lon_delta, lon + lon_delta)
