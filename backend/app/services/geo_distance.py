"""
Great-circle distance between geolocated rows.

Works on anything exposing `latitude` and `longitude` attributes
(addresses, airports, agglos, neighborhoods, cities).
"""

import math
from typing import Any, Callable

EARTH_RADIUS_M = 6371000.0

DistanceFn = Callable[[Any, Any], float]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
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
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2) - math.radians(lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def great_circle_distance(a: Any, b: Any) -> float:
    """Distance in meters between two geolocated rows."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)
